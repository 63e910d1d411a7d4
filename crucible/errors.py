"""
Crucible errors - taxonomy shared by the engine and provider collaborators.
"""

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ResourceIdentity


class CrucibleError(Exception):
    """Base exception for all Crucible errors."""
    pass


class ConfigurationError(CrucibleError):
    """Errors in configuration (missing credentials, bad settings)."""
    pass


class StateError(CrucibleError):
    """State store could not be read or written."""
    pass


class ValidationError(CrucibleError):
    """Declared properties failed a precondition. Raised before any remote call."""
    pass


class DependencyError(CrucibleError):
    """A declared property references an output that is not settled."""
    pass


class ErrorKind(str, Enum):
    """Classes of provider failure the engine and handlers react to."""
    ALREADY_EXISTS = "already_exists"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    PROVIDER = "provider"


class ProviderError(CrucibleError):
    """A provider API call failed.

    Attributes:
        kind: Error class used for adoption and 404 handling
        status: HTTP status code, if the failure came from a response
        code: Provider-specific error code, if any
    """

    kind: ErrorKind = ErrorKind.PROVIDER

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind | None = None,
        status: int | None = None,
        code: int | None = None,
    ):
        super().__init__(message)
        if kind is not None:
            self.kind = kind
        self.status = status
        self.code = code

    def __str__(self) -> str:
        message = super().__str__()
        if self.code is not None:
            return f"{message} (code {self.code})"
        return message


class AlreadyExistsError(ProviderError):
    kind = ErrorKind.ALREADY_EXISTS


class NotFoundError(ProviderError):
    kind = ErrorKind.NOT_FOUND


class TransientProviderError(ProviderError):
    """Network or 5xx failure. Retried inside polling loops only."""
    kind = ErrorKind.TRANSIENT


def provider_error(
    message: str,
    kind: ErrorKind,
    status: int | None = None,
    code: int | None = None,
) -> ProviderError:
    """Build the ProviderError subclass matching `kind`."""
    cls = {
        ErrorKind.ALREADY_EXISTS: AlreadyExistsError,
        ErrorKind.NOT_FOUND: NotFoundError,
        ErrorKind.TRANSIENT: TransientProviderError,
    }.get(kind, ProviderError)
    return cls(message, kind=kind, status=status, code=code)


class PollTimeoutError(CrucibleError):
    """A polling loop hit its deadline or attempt cap."""
    pass


class ResourceError(CrucibleError):
    """A resource handler failed.

    The message always names the resource type, logical id and the
    underlying provider error so the failing declaration is unambiguous.
    """

    def __init__(self, identity: "ResourceIdentity", phase: str, cause: BaseException):
        self.identity = identity
        self.phase = phase
        self.cause = cause
        super().__init__(
            f"{identity.kind} '{identity.id}' failed to {phase}: {cause}"
        )


class PartialSweepFailure(CrucibleError):
    """One or more deletions failed during a sweep or destroy walk.

    Attributes:
        failures: (fqn, error) pairs for deletes that raised
        skipped: fqns left in place because something that depends on them
            could not be deleted
    """

    def __init__(
        self,
        failures: list[tuple[str, BaseException]],
        skipped: list[str] | None = None,
    ):
        self.failures = failures
        self.skipped = skipped or []
        lines = [f"{len(failures)} resource(s) failed to delete:"]
        lines.extend(f"  - {fqn}: {error}" for fqn, error in failures)
        if self.skipped:
            lines.append(
                f"  skipped (dependents still exist): {', '.join(self.skipped)}"
            )
        super().__init__("\n".join(lines))
