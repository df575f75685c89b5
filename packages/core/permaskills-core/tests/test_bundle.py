"""Tests for BundleBuilder and extract_bundle."""

import io
import tarfile

import pytest

from permaskills_core import BundleBuilder, FileSystemError, extract_bundle, format_size


def _tar_gz(members: dict[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for name, data in members.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


class TestBundleBuilder:
    def test_collects_files_sorted(self, make_skill_dir):
        skill_dir = make_skill_dir(
            files={"scripts/run.sh": "echo", "references/b.md": "b", "references/a.md": "a"}
        )
        bundle = BundleBuilder().build(skill_dir)
        assert bundle.files == (
            "SKILL.md",
            "references/a.md",
            "references/b.md",
            "scripts/run.sh",
        )
        assert bundle.file_count == 4
        assert bundle.size == len(bundle.blob)
        assert not bundle.exceeded_limit

    def test_deterministic(self, make_skill_dir):
        skill_dir = make_skill_dir(files={"notes.md": "hello"})
        first = BundleBuilder().build(skill_dir)
        (skill_dir / "notes.md").touch()
        second = BundleBuilder().build(skill_dir)
        assert first.blob == second.blob

    def test_excluded_entries(self, make_skill_dir):
        skill_dir = make_skill_dir(
            files={
                ".git/config": "x",
                "node_modules/pkg/index.js": "x",
                "__pycache__/m.pyc": "x",
                ".DS_Store": "x",
                "Thumbs.db": "x",
                ".env": "SECRET=1",
                ".skillsrc": "{}",
                "keep.md": "keep",
            }
        )
        bundle = BundleBuilder().build(skill_dir)
        assert bundle.files == (".skillsrc", "SKILL.md", "keep.md")

    def test_source_directory_untouched(self, make_skill_dir):
        skill_dir = make_skill_dir(files={"a.md": "a"})
        before = sorted(p.name for p in skill_dir.iterdir())
        BundleBuilder().build(skill_dir)
        assert sorted(p.name for p in skill_dir.iterdir()) == before

    def test_exceeded_limit_flag(self, make_skill_dir):
        skill_dir = make_skill_dir(files={"a.md": "a"})
        assert BundleBuilder(max_bytes=10).build(skill_dir).exceeded_limit

    def test_missing_directory(self, tmp_path):
        with pytest.raises(FileSystemError, match="Skill directory not found"):
            BundleBuilder().build(tmp_path / "nope")

    def test_missing_manifest(self, tmp_path):
        with pytest.raises(FileSystemError, match="SKILL.md not found"):
            BundleBuilder().build(tmp_path)


class TestExtractBundle:
    def test_extracts_bundle(self, make_skill_dir, tmp_path):
        skill_dir = make_skill_dir(files={"scripts/run.sh": "echo hi"})
        bundle = BundleBuilder().build(skill_dir)
        target = tmp_path / "installed" / "my-skill"
        names = extract_bundle(bundle.blob, target)
        assert sorted(names) == ["SKILL.md", "scripts/run.sh"]
        assert (target / "scripts" / "run.sh").read_text() == "echo hi"

    def test_existing_target_requires_force(self, tmp_path):
        target = tmp_path / "skill"
        target.mkdir()
        with pytest.raises(FileSystemError, match="already exists"):
            extract_bundle(_tar_gz({"SKILL.md": b"x"}), target)

    def test_force_replaces_target(self, tmp_path):
        target = tmp_path / "skill"
        target.mkdir()
        (target / "stale.md").write_text("old")
        extract_bundle(_tar_gz({"SKILL.md": b"new"}), target, force=True)
        assert not (target / "stale.md").exists()
        assert (target / "SKILL.md").read_bytes() == b"new"

    @pytest.mark.parametrize("name", ["../evil.sh", "/etc/passwd", "a/../../evil"])
    def test_unsafe_paths_rejected(self, tmp_path, name):
        target = tmp_path / "skill"
        with pytest.raises(FileSystemError, match="Unsafe entry"):
            extract_bundle(_tar_gz({name: b"x"}), target)
        assert not target.exists()

    def test_symlink_rejected(self, tmp_path):
        buf = io.BytesIO()
        with tarfile.open(fileobj=buf, mode="w:gz") as tar:
            info = tarfile.TarInfo("link")
            info.type = tarfile.SYMTYPE
            info.linkname = "/etc/passwd"
            tar.addfile(info)
        with pytest.raises(FileSystemError, match="Unsafe entry"):
            extract_bundle(buf.getvalue(), tmp_path / "skill")

    def test_corrupt_archive(self, tmp_path):
        with pytest.raises(FileSystemError, match="corrupt"):
            extract_bundle(b"not a tarball", tmp_path / "skill")


class TestFormatSize:
    @pytest.mark.parametrize(
        ("size", "expected"),
        [(512, "512 B"), (1536, "1.50 KB"), (2 * 1024 * 1024, "2.00 MB")],
    )
    def test_format(self, size, expected):
        assert format_size(size) == expected
