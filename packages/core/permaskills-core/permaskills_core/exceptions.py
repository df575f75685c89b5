"""Exception hierarchy for permaskills.

All exceptions raised by :mod:`permaskills_core` (and by the registry,
object-store and signing providers built on it) inherit from
:class:`PermaskillsError`, so callers can catch the whole family with a
single ``except`` clause.

Every error may carry a *solution* -- a short, actionable remedy that is
appended to the rendered message as ``"<problem> → Solution: <fix>"``.
Pipelines never swallow these errors; the MCP and CLI boundaries use
:func:`exit_code_for` and :func:`format_error` to turn them into
user-facing output.

The kinds are:

* :class:`ValidationError` -- bad manifest shape or values.
* :class:`ParseError` -- a ``SKILL.md`` that cannot be parsed at all.
* :class:`ConfigurationError` -- missing or invalid configuration.
* :class:`DependencyError` -- a cycle or a missing dependency.
* :class:`NetworkError` -- a transport failure against an endpoint.
* :class:`RegistryError` -- a malformed or unexpected registry response,
  tagged with a :class:`RegistryErrorCode`.
* :class:`AuthorizationError` -- ownership or insufficient funds.
* :class:`FileSystemError` -- local I/O failure.
"""

from __future__ import annotations

import enum
import json
import re
import uuid
from collections.abc import Sequence
from typing import Any


class PermaskillsError(Exception):
    """Base exception for all permaskills errors.

    Args:
        message: Description of the problem.
        solution: Optional remedy shown to the user.
    """

    def __init__(self, message: str, *, solution: str | None = None) -> None:
        self.message = message
        self.solution = solution
        super().__init__(message if solution is None else f"{message} → Solution: {solution}")

    def context(self) -> dict[str, Any]:
        """Return the error-specific fields used in verbose output."""
        return {}


class ValidationError(PermaskillsError):
    """A manifest (or user input) violates one or more rules.

    *errors* lists every violated rule, each already in the
    ``"<problem> → Solution: <fix>"`` form, so a user can fix them all
    in one pass.

    Example::

        try:
            await pipeline.publish(Path("./my-skill"), provider)
        except ValidationError as exc:
            for line in exc.errors:
                print(f"  - {line}")
    """

    def __init__(
        self,
        message: str,
        *,
        errors: Sequence[str] = (),
        field: str | None = None,
        value: Any = None,
        solution: str | None = None,
    ) -> None:
        self.errors = list(errors)
        self.field = field
        self.value = value
        super().__init__(message, solution=solution)

    def context(self) -> dict[str, Any]:
        return {"field": self.field, "value": self.value, "errors": self.errors}


class ParseError(PermaskillsError):
    """A ``SKILL.md`` is empty, has no frontmatter, or the YAML is malformed."""

    _SNIPPET_MAX_LEN = 200

    def __init__(
        self, message: str, *, snippet: str | None = None, solution: str | None = None
    ) -> None:
        self.snippet = snippet[: self._SNIPPET_MAX_LEN] if snippet else snippet
        super().__init__(message, solution=solution)

    def context(self) -> dict[str, Any]:
        return {"snippet": self.snippet}


class FileSystemError(PermaskillsError):
    """A local file or directory could not be read or written."""

    def __init__(self, message: str, *, path: str | None = None, solution: str | None = None):
        self.path = path
        super().__init__(message, solution=solution)

    def context(self) -> dict[str, Any]:
        return {"path": self.path}


class ConfigurationError(PermaskillsError):
    """Required configuration (wallet, registry id, endpoint) is missing or invalid."""

    def __init__(
        self, message: str, *, config_key: str | None = None, solution: str | None = None
    ) -> None:
        self.config_key = config_key
        super().__init__(message, solution=solution)

    def context(self) -> dict[str, Any]:
        return {"config_key": self.config_key}


class DependencyError(PermaskillsError):
    """Dependency resolution failed.

    *path* holds the skill names from the root down to the offending
    node.  For a cycle the repeated node appears twice, e.g.
    ``["a", "b", "c", "a"]``.
    """

    def __init__(
        self,
        message: str,
        *,
        dependency_name: str | None = None,
        path: Sequence[str] = (),
        solution: str | None = None,
    ) -> None:
        self.dependency_name = dependency_name
        self.path = list(path)
        super().__init__(message, solution=solution)

    def context(self) -> dict[str, Any]:
        return {"dependency_name": self.dependency_name, "path": self.path}


class NetworkError(PermaskillsError):
    """A request to a gateway, compute node or registry endpoint failed."""

    TIMEOUT = "timeout"
    GATEWAY_ERROR = "gateway_error"
    CONNECTION_FAILURE = "connection_failure"
    NOT_FOUND = "not_found"

    def __init__(
        self,
        message: str,
        *,
        endpoint: str | None = None,
        kind: str = CONNECTION_FAILURE,
        solution: str | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.kind = kind
        super().__init__(message, solution=solution)

    def context(self) -> dict[str, Any]:
        return {"endpoint": self.endpoint, "kind": self.kind}


class RegistryErrorCode(str, enum.Enum):
    """Machine-readable reasons for a :class:`RegistryError`."""

    EMPTY_RESPONSE = "EMPTY_RESPONSE"
    INVALID_STRUCTURE = "INVALID_STRUCTURE"
    PARSE_ERROR = "PARSE_ERROR"
    REGISTRY_ERROR = "REGISTRY_ERROR"
    NOT_FOUND = "NOT_FOUND"


class RegistryError(PermaskillsError):
    """The registry answered, but not with what was expected.

    Callers branch on :attr:`code`, never on the message text.
    """

    def __init__(
        self,
        message: str,
        *,
        code: RegistryErrorCode,
        endpoint: str | None = None,
        solution: str | None = None,
    ) -> None:
        self.code = code
        self.endpoint = endpoint
        super().__init__(message, solution=solution)

    def context(self) -> dict[str, Any]:
        return {"code": self.code.value, "endpoint": self.endpoint}


class SkillNotFoundError(RegistryError, LookupError):
    """The registry has no entry for the requested skill (or version).

    Always carries :attr:`RegistryErrorCode.NOT_FOUND`.

    Example::

        try:
            meta = await registry.get_skill("nonexistent")
        except SkillNotFoundError:
            print("Skill not found")
    """

    def __init__(self, message: str, *, endpoint: str | None = None) -> None:
        super().__init__(message, code=RegistryErrorCode.NOT_FOUND, endpoint=endpoint)


class AuthorizationError(PermaskillsError):
    """The acting identity may not perform the operation.

    Raised when updating a skill owned by someone else, or when the
    wallet cannot pay for an upload.
    """

    def __init__(
        self,
        message: str,
        *,
        address: str | None = None,
        balance: float | None = None,
        solution: str | None = None,
    ) -> None:
        self.address = address
        self.balance = balance
        super().__init__(message, solution=solution)

    def context(self) -> dict[str, Any]:
        return {"address": self.address, "balance": self.balance}


# ------------------------------------------------------------------
# Exit codes
# ------------------------------------------------------------------


class ExitCode(enum.IntEnum):
    """Process exit codes used by command-line front ends."""

    SUCCESS = 0
    USER_ERROR = 1
    SYSTEM_ERROR = 2


_USER_ERRORS = (ValidationError, ConfigurationError, AuthorizationError, DependencyError)


def exit_code_for(exc: BaseException) -> ExitCode:
    """Map an exception to the exit code a CLI should return."""
    if isinstance(exc, _USER_ERRORS):
        return ExitCode.USER_ERROR
    return ExitCode.SYSTEM_ERROR


# ------------------------------------------------------------------
# Redaction and formatting
# ------------------------------------------------------------------

# Twelve or more lowercase words of 3+ letters (a BIP-39 style phrase).
_SEED_PHRASE_RE = re.compile(r"\b[a-z]{3,}(?:\s+[a-z]{3,}){11,}\b")
# Long base64 / base64url runs (JWK members, raw keys).
_PRIVATE_KEY_RE = re.compile(r"[A-Za-z0-9+/_-]{64,}={0,2}")

REDACTED_SEED_PHRASE = "[REDACTED_SEED_PHRASE]"
REDACTED_PRIVATE_KEY = "[REDACTED_PRIVATE_KEY]"


def redact_secrets(text: str) -> str:
    """Replace substrings that look like secret material.

    Example::

        >>> redact_secrets("key=" + "A" * 80)
        'key=[REDACTED_PRIVATE_KEY]'
    """
    text = _SEED_PHRASE_RE.sub(REDACTED_SEED_PHRASE, text)
    return _PRIVATE_KEY_RE.sub(REDACTED_PRIVATE_KEY, text)


def format_error(exc: BaseException, *, verbose: bool = False) -> str:
    """Render *exc* for display.

    The normal form is ``"<ErrorType>: <message>"``.  With *verbose*
    the output is a JSON document that also carries the solution, the
    error-specific context and a correlation id for log lookup.  Both
    forms are passed through :func:`redact_secrets`.
    """
    name = type(exc).__name__
    if not verbose:
        return redact_secrets(f"{name}: {exc}")

    payload: dict[str, Any] = {
        "error": name,
        "message": getattr(exc, "message", str(exc)),
        "correlationId": uuid.uuid4().hex,
    }
    if isinstance(exc, PermaskillsError):
        if exc.solution:
            payload["solution"] = exc.solution
        payload["context"] = exc.context()
    return redact_secrets(json.dumps(payload, indent=2, default=str))
