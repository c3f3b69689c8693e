"""Exception hierarchy for oceankeys."""

from __future__ import annotations

from typing import Optional


class OceanKeysError(Exception):
    """Root of every error raised by oceankeys."""


class ApiError(OceanKeysError):
    """Failure reported by (or while talking to) the key API."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_id = error_id

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"{self.message} (status={self.status_code}, id={self.error_id})"


class TransportError(ApiError):
    """Network, authentication or server-side failure."""


class ValidationError(ApiError):
    """The request carried malformed input."""


class ConflictError(ApiError):
    """A name or key material is already in use."""


class NotFoundError(ApiError):
    """The addressed key does not exist."""


class TimeoutFailure(OceanKeysError, TimeoutError):
    """An outer deadline elapsed before the awaited condition held."""

    def __init__(self, step: str, timeout: float) -> None:
        super().__init__(f"{step} did not complete within {timeout:.1f}s")
        self.step = step
        self.timeout = timeout


class LifecycleError(OceanKeysError):
    """A lifecycle scenario step failed.

    ``kind`` is the class name of the underlying error so reports can tell a
    convergence timeout apart from an API error or a failed assertion.
    """

    def __init__(self, step: str, state: str, cause: BaseException) -> None:
        self.step = step
        self.state = state
        self.cause = cause
        self.kind = type(cause).__name__
        super().__init__(f"step '{step}' failed in state {state}: {self.kind}: {cause}")


__all__ = [
    "OceanKeysError",
    "ApiError",
    "TransportError",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "TimeoutFailure",
    "LifecycleError",
]
