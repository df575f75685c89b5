"""Tests for the exception hierarchy, exit codes and error formatting."""

import json

import pytest

from permaskills_core import (
    AuthorizationError,
    ConfigurationError,
    DependencyError,
    ExitCode,
    FileSystemError,
    NetworkError,
    ParseError,
    PermaskillsError,
    RegistryError,
    RegistryErrorCode,
    SkillNotFoundError,
    ValidationError,
    exit_code_for,
    format_error,
    redact_secrets,
)


class TestExceptionHierarchy:
    @pytest.mark.parametrize(
        "cls",
        [
            ValidationError,
            ParseError,
            FileSystemError,
            ConfigurationError,
            DependencyError,
            NetworkError,
            RegistryError,
            SkillNotFoundError,
            AuthorizationError,
        ],
    )
    def test_all_errors_are_permaskills_errors(self, cls):
        assert issubclass(cls, PermaskillsError)

    def test_skill_not_found_is_lookup_error(self):
        assert issubclass(SkillNotFoundError, LookupError)

    def test_skill_not_found_carries_not_found_code(self):
        err = SkillNotFoundError("Skill 'x' not found")
        assert err.code is RegistryErrorCode.NOT_FOUND
        assert isinstance(err, RegistryError)

    def test_registry_error_code_is_string(self):
        assert RegistryErrorCode.PARSE_ERROR == "PARSE_ERROR"


class TestMessages:
    def test_message_without_solution(self):
        err = PermaskillsError("Something broke")
        assert str(err) == "Something broke"
        assert err.solution is None

    def test_message_with_solution(self):
        err = ConfigurationError("No wallet", solution="Set ARWEAVE_WALLET")
        assert str(err) == "No wallet → Solution: Set ARWEAVE_WALLET"
        assert err.message == "No wallet"

    def test_parse_error_truncates_snippet(self):
        err = ParseError("bad", snippet="x" * 500)
        assert len(err.snippet) == 200

    def test_dependency_error_context(self):
        err = DependencyError("cycle", dependency_name="a", path=("a", "b", "a"))
        assert err.context() == {"dependency_name": "a", "path": ["a", "b", "a"]}

    def test_network_error_default_kind(self):
        assert NetworkError("down").kind == NetworkError.CONNECTION_FAILURE

    def test_validation_error_errors_list(self):
        err = ValidationError("invalid", errors=["one", "two"])
        assert err.errors == ["one", "two"]


# ------------------------------------------------------------------
# Exit codes
# ------------------------------------------------------------------


class TestExitCodes:
    @pytest.mark.parametrize(
        "exc",
        [
            ValidationError("v"),
            ConfigurationError("c"),
            AuthorizationError("a"),
            DependencyError("d"),
        ],
    )
    def test_user_errors(self, exc):
        assert exit_code_for(exc) is ExitCode.USER_ERROR

    @pytest.mark.parametrize(
        "exc",
        [
            NetworkError("n"),
            RegistryError("r", code=RegistryErrorCode.EMPTY_RESPONSE),
            FileSystemError("f"),
            RuntimeError("boom"),
        ],
    )
    def test_system_errors(self, exc):
        assert exit_code_for(exc) is ExitCode.SYSTEM_ERROR

    def test_success_is_zero(self):
        assert int(ExitCode.SUCCESS) == 0


# ------------------------------------------------------------------
# Redaction and formatting
# ------------------------------------------------------------------


SEED = "abandon ability able about above absent absorb abstract absurd abuse access accident"


class TestRedactSecrets:
    def test_redacts_seed_phrase(self):
        out = redact_secrets(f"wallet phrase: {SEED}")
        assert "abandon" not in out
        assert "[REDACTED_SEED_PHRASE]" in out

    def test_short_phrase_is_kept(self):
        text = "the skill was not found in the registry"
        assert redact_secrets(text) == text

    def test_redacts_long_base64(self):
        key = "Ab9_-" * 20
        out = redact_secrets(f"key={key}")
        assert out == "key=[REDACTED_PRIVATE_KEY]"

    def test_transaction_id_is_kept(self):
        tx = "a" * 43
        assert redact_secrets(f"uploaded {tx}") == f"uploaded {tx}"


class TestFormatError:
    def test_plain_form(self):
        err = ValidationError("Bad manifest", solution="Fix it")
        assert format_error(err) == "ValidationError: Bad manifest → Solution: Fix it"

    def test_verbose_form_is_json(self):
        err = NetworkError("Timed out", endpoint="https://cu.example", kind=NetworkError.TIMEOUT)
        payload = json.loads(format_error(err, verbose=True))
        assert payload["error"] == "NetworkError"
        assert payload["message"] == "Timed out"
        assert payload["context"] == {"endpoint": "https://cu.example", "kind": "timeout"}
        assert payload["correlationId"]

    def test_verbose_includes_solution(self):
        err = ConfigurationError("No wallet", solution="Set it")
        payload = json.loads(format_error(err, verbose=True))
        assert payload["solution"] == "Set it"

    def test_output_is_redacted(self):
        err = ConfigurationError(f"Bad wallet {SEED}")
        assert "abandon" not in format_error(err)
        assert "abandon" not in format_error(err, verbose=True)

    def test_foreign_exception(self):
        assert format_error(ValueError("nope")) == "ValueError: nope"
