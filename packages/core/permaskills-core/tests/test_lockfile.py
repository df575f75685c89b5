"""Tests for the lock file."""

import json
import os

import pytest

from permaskills_core import FileSystemError, LockEntry, LockFile, lock_path_for


def _entry(version="1.0.0", content_id="tx-1", dependents=()):
    return LockEntry(version, content_id, 1730000000000, frozenset(dependents))


class TestLockEntry:
    def test_to_dict_uses_camel_case(self):
        assert _entry(dependents=["b", "a"]).to_dict() == {
            "version": "1.0.0",
            "contentId": "tx-1",
            "installedAt": 1730000000000,
            "dependedOnBy": ["a", "b"],
        }

    def test_from_dict(self):
        entry = LockEntry.from_dict(
            {"version": "2.0.0", "contentId": "tx", "installedAt": 5, "dependedOnBy": ["x"]}
        )
        assert entry == LockEntry("2.0.0", "tx", 5, frozenset({"x"}))

    def test_from_dict_defaults(self):
        entry = LockEntry.from_dict({"version": "2.0.0", "contentId": "tx"})
        assert entry.installed_at == 0
        assert entry.depended_on_by == frozenset()

    def test_with_dependent(self):
        entry = _entry(dependents=["a"]).with_dependent("b")
        assert entry.depended_on_by == {"a", "b"}


class TestLockFile:
    def test_is_installed(self):
        lock = LockFile({"pdf-tools": _entry("1.2.0")})
        assert lock.is_installed("pdf-tools", "1.2.0")
        assert not lock.is_installed("pdf-tools", "1.3.0")
        assert not lock.is_installed("other", "1.2.0")

    def test_iteration_is_sorted(self):
        lock = LockFile({"b": _entry(), "a": _entry()})
        assert list(lock) == ["a", "b"]
        assert len(lock) == 2
        assert "a" in lock

    def test_copy_is_independent(self):
        lock = LockFile({"a": _entry()})
        clone = lock.copy()
        clone.set("b", _entry())
        assert "b" not in lock
        assert clone != lock

    def test_dangling_dependents(self):
        lock = LockFile({"a": _entry(dependents=["b", "ghost"]), "b": _entry()})
        assert lock.dangling_dependents() == ["ghost"]


# ------------------------------------------------------------------
# Persistence
# ------------------------------------------------------------------


class TestLoadAndSave:
    def test_missing_file_is_empty(self, tmp_path):
        assert len(LockFile.load(tmp_path / "skills-lock.json")) == 0

    def test_save_then_load(self, tmp_path):
        path = tmp_path / "skills-lock.json"
        lock = LockFile({"a": _entry(dependents=["b"]), "b": _entry("2.0.0", "tx-2")})
        lock.save(path)
        assert LockFile.load(path) == lock

    def test_saved_json_shape(self, tmp_path):
        path = tmp_path / "skills-lock.json"
        LockFile({"a": _entry()}).save(path)
        data = json.loads(path.read_text())
        assert data["a"]["contentId"] == "tx-1"

    def test_save_creates_parent(self, tmp_path):
        path = tmp_path / "nested" / "skills-lock.json"
        LockFile().save(path)
        assert path.is_file()

    def test_save_leaves_no_temp_files(self, tmp_path):
        path = tmp_path / "skills-lock.json"
        LockFile({"a": _entry()}).save(path)
        LockFile({"b": _entry()}).save(path)
        assert os.listdir(tmp_path) == ["skills-lock.json"]

    def test_malformed_json_is_empty(self, tmp_path, caplog):
        path = tmp_path / "skills-lock.json"
        path.write_text("{not json")
        assert len(LockFile.load(path)) == 0
        assert "malformed lock file" in caplog.text

    def test_wrong_shape_is_empty(self, tmp_path):
        path = tmp_path / "skills-lock.json"
        path.write_text(json.dumps({"a": {"contentId": "tx"}}))
        assert len(LockFile.load(path)) == 0

    def test_unwritable_target_raises(self, tmp_path):
        target = tmp_path / "skills-lock.json"
        target.mkdir()
        with pytest.raises(FileSystemError):
            LockFile({"a": _entry()}).save(target)
        assert target.is_dir()
        assert [p.name for p in tmp_path.iterdir()] == ["skills-lock.json"]


class TestLockPathFor:
    def test_sits_next_to_install_root(self, tmp_path):
        root = tmp_path / ".claude" / "skills"
        assert lock_path_for(root) == tmp_path / ".claude" / "skills-lock.json"
