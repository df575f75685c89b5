"""Tests for manifest validation."""

import pytest

from permaskills_core import DependencyRef, SkillManifest, validate_manifest


def _manifest(**overrides) -> SkillManifest:
    fields = {
        "name": "my-skill",
        "version": "1.0.0",
        "description": "Does useful things.",
        "author": "Ada",
    }
    fields.update(overrides)
    return SkillManifest(**fields)


class TestValidateManifest:
    def test_valid_manifest(self):
        result = validate_manifest(_manifest())
        assert result.valid
        assert result.errors == []

    @pytest.mark.parametrize("field", ["name", "version", "description", "author"])
    def test_missing_required_field(self, field):
        result = validate_manifest(_manifest(**{field: ""}))
        assert not result.valid
        assert result.errors == [
            f"Missing required field: {field} → Solution: Add '{field}' to SKILL.md frontmatter"
        ]

    def test_whitespace_counts_as_missing(self):
        result = validate_manifest(_manifest(author="   "))
        assert any("Missing required field: author" in e for e in result.errors)

    @pytest.mark.parametrize("name", ["My-Skill", "my_skill", "my skill", "skill!"])
    def test_invalid_name_format(self, name):
        result = validate_manifest(_manifest(name=name))
        assert any(e.startswith("Invalid name format") for e in result.errors)

    def test_name_at_limit_is_valid(self):
        assert validate_manifest(_manifest(name="a" * 64)).valid

    def test_name_too_long(self):
        result = validate_manifest(_manifest(name="a" * 65))
        assert result.errors == [
            "Field name exceeds maximum length of 64 characters "
            "→ Solution: Shorten the name to 64 characters or fewer"
        ]

    @pytest.mark.parametrize("version", ["1.0", "v1.0.0", "1.0.0-beta", "latest"])
    def test_invalid_version(self, version):
        result = validate_manifest(_manifest(version=version))
        assert any(e.startswith("Invalid version format") for e in result.errors)

    def test_description_at_limit_is_valid(self):
        assert validate_manifest(_manifest(description="x" * 1024)).valid

    def test_description_too_long(self):
        result = validate_manifest(_manifest(description="x" * 1025))
        assert any("description exceeds maximum length of 1024" in e for e in result.errors)

    def test_dependency_any_version_is_valid(self):
        manifest = _manifest(dependencies=(DependencyRef("pdf-tools"),))
        assert validate_manifest(manifest).valid

    def test_dependency_invalid_name(self):
        manifest = _manifest(dependencies=(DependencyRef("PDF_Tools", "1.0.0"),))
        assert any("Invalid dependency name" in e for e in validate_manifest(manifest).errors)

    def test_dependency_range_version_rejected(self):
        manifest = _manifest(dependencies=(DependencyRef("pdf-tools", "^1.0.0"),))
        errors = validate_manifest(manifest).errors
        assert any("Invalid version for dependency" in e for e in errors)

    def test_unexpected_field(self):
        result = validate_manifest(_manifest(extra={"homepage": "https://x"}))
        assert result.errors == [
            "Unexpected field: homepage → Solution: Remove 'homepage' from SKILL.md "
            "frontmatter (not a valid field)"
        ]

    def test_all_errors_collected(self):
        result = validate_manifest(_manifest(name="Bad Name", version="1", author=""))
        assert len(result.errors) == 3

    def test_every_error_has_solution(self):
        result = validate_manifest(
            _manifest(name="", version="x", description="d" * 2000, extra={"k": 1})
        )
        assert result.errors
        assert all("→ Solution:" in e for e in result.errors)
