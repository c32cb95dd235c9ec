"""Error taxonomy for webhook delivery.

All failures raised by the package are instances of :class:`HookpostError`.
Callers branch on :attr:`HookpostError.kind` instead of on subclasses, and
read the kind-specific fields (``issues``, ``status``, ``failures``...) that
the matching constructor fills in.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Final

from hookpost.utils.sanitization import sanitize_url


class ErrorKind(Enum):
    """Discriminant for :class:`HookpostError`."""

    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    TRANSPORT = "transport"
    FILE_SYSTEM = "file_system"
    BATCH = "batch"
    UNKNOWN = "unknown"


_DEFAULT_CODES: Final[dict[ErrorKind, str]] = {
    ErrorKind.CONFIGURATION: "CONFIGURATION_ERROR",
    ErrorKind.VALIDATION: "VALIDATION_ERROR",
    ErrorKind.TRANSPORT: "REQUEST_ERROR",
    ErrorKind.FILE_SYSTEM: "FILE_SYSTEM_ERROR",
    ErrorKind.BATCH: "BATCH_ERROR",
    ErrorKind.UNKNOWN: "UNKNOWN_ERROR",
}


@dataclass(slots=True, frozen=True)
class ValidationIssue:
    """A single violated payload constraint."""

    path: str  # dotted location, "" for the message root
    reason: str

    def __str__(self) -> str:
        return f"{self.path}: {self.reason}" if self.path else self.reason


class HookpostError(Exception):
    """Exception for every webhook delivery failure.

    Only the fields relevant to ``kind`` are populated; the others keep their
    empty defaults. Prefer the classmethod constructors over calling the
    initializer directly.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        code: str | None = None,
        status: int | None = None,
        provider_message: str | None = None,
        issues: Sequence[ValidationIssue] = (),
        index: int | None = None,
        path: str | None = None,
        failures: Sequence[HookpostError] = (),
    ) -> None:
        """Initialize a webhook error.

        Args:
            kind: Error category
            message: Human-readable description
            code: Machine-readable code; defaults per kind
            status: HTTP status code (transport errors)
            provider_message: Error message returned by the provider
            issues: Violated constraints (validation errors)
            index: Queue position of the offending message (validation errors)
            path: Filesystem path (file system errors)
            failures: Individual errors (batch errors)
        """
        super().__init__(message)
        self.kind: ErrorKind = kind
        self.message: str = message
        self.code: str = code or _DEFAULT_CODES[kind]
        self.status: int | None = status
        self.provider_message: str | None = provider_message
        self.issues: tuple[ValidationIssue, ...] = tuple(issues)
        self.index: int | None = index
        self.path: str | None = path
        self.failures: tuple[HookpostError, ...] = tuple(failures)

    @classmethod
    def configuration(cls, message: str) -> HookpostError:
        return cls(ErrorKind.CONFIGURATION, message)

    @classmethod
    def validation(
        cls,
        issues: Sequence[ValidationIssue],
        *,
        index: int | None = None,
    ) -> HookpostError:
        """Build a validation error from a non-empty issue list."""
        subject = "Message" if index is None else f"Message #{index + 1}"
        rendered = "; ".join(str(issue) for issue in issues)
        return cls(
            ErrorKind.VALIDATION,
            f"{subject} failed validation: {rendered}",
            issues=issues,
            index=index,
        )

    @classmethod
    def transport(
        cls,
        message: str,
        *,
        status: int | None = None,
        provider_message: str | None = None,
        code: str | None = None,
    ) -> HookpostError:
        return cls(
            ErrorKind.TRANSPORT,
            message,
            status=status,
            provider_message=provider_message,
            code=code,
        )

    @classmethod
    def file_system(cls, message: str, *, path: str) -> HookpostError:
        return cls(ErrorKind.FILE_SYSTEM, message, path=path)

    @classmethod
    def batch(cls, failures: Sequence[HookpostError], *, attempted: int) -> HookpostError:
        """Aggregate per-message failures of one batch into a single error."""
        details = "; ".join(f"{number}) {failure.message}" for number, failure in enumerate(failures, start=1))
        return cls(
            ErrorKind.BATCH,
            f"Failed to send {len(failures)} of {attempted} message(s): {details}",
            failures=failures,
        )

    @classmethod
    def unknown(cls, error: BaseException) -> HookpostError:
        return cls(ErrorKind.UNKNOWN, f"An unknown error occurred: {sanitize_url(str(error))}")

    def __reduce__(self) -> tuple[object, ...]:
        fields = {
            "code": self.code,
            "status": self.status,
            "provider_message": self.provider_message,
            "issues": self.issues,
            "index": self.index,
            "path": self.path,
            "failures": self.failures,
        }
        return _restore_error, (type(self), self.kind, self.message, fields)

    def format_issues(self) -> str:
        """Render validation issues as ``path: reason`` pairs joined by ``; ``."""
        return "; ".join(str(issue) for issue in self.issues)

    def __repr__(self) -> str:
        return f"HookpostError(kind={self.kind.name}, code={self.code!r}, message={self.message!r})"


def _restore_error(
    cls: type[HookpostError],
    kind: ErrorKind,
    message: str,
    fields: dict[str, object],
) -> HookpostError:
    """Rebuild a pickled error with its kind and payload fields."""
    return cls(kind, message, **fields)  # pyright: ignore[reportArgumentType]
