from __future__ import annotations

from typing import Any


GENERIC_ERROR_MESSAGE = "Something went wrong"


class RemoteCatalogError(Exception):
    """A catalog call failed, either in transport (status is None) or with a non-2xx answer."""

    def __init__(self, status: int | None, body: Any, *, operation: str = "catalog call"):
        super().__init__(f"{operation} failed with status {status}")
        self.status = status
        self.body = body
        self.operation = operation


class ListingError(Exception):
    status_code: int = 500

    def __init__(self, message: str, *, detail: Any = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def body(self) -> Any:
        return self.message


class ValidationError(ListingError):
    status_code = 400


class AuthorizationError(ListingError):
    status_code = 403


class QuotaExceededError(ListingError):
    status_code = 403


class UpstreamError(ListingError):
    status_code = 500

    @classmethod
    def from_remote(cls, exc: RemoteCatalogError) -> "UpstreamError":
        return cls(GENERIC_ERROR_MESSAGE, detail=exc.body)

    def body(self) -> Any:
        # Upstream payload when we have one, generic message otherwise
        return self.detail or self.message


class PartialUploadError(ListingError):
    """One or more members of a concurrent image group failed."""

    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        failures: list[BaseException] | None = None,
        applied: list[Any] | None = None,
        detail: Any = None,
    ):
        super().__init__(message, detail=detail)
        self.failures = list(failures or [])
        # members of the group that did go through on the remote side
        self.applied = list(applied or [])

    def body(self) -> Any:
        return self.detail or GENERIC_ERROR_MESSAGE


class PartiallyAppliedError(PartialUploadError):
    """An image group failed and the already-applied remote steps were compensated."""

    def __init__(
        self,
        message: str,
        *,
        failures: list[BaseException] | None = None,
        compensated: list[str] | None = None,
        compensation_failures: list[str] | None = None,
    ):
        super().__init__(message, failures=failures)
        self.compensated = list(compensated or [])
        self.compensation_failures = list(compensation_failures or [])

    def body(self) -> Any:
        return {
            "message": self.message,
            "compensated": self.compensated,
            "compensation_failures": self.compensation_failures,
        }
