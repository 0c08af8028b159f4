"""
azmachine/errors.py

Exception hierarchy for Azure Resource Manager failures:
  - AzureApiError: base class, carries service label, resource name, HTTP status,
    ARM error code and a coarse ErrorClass for callers.
  - NotFoundError: the resource is absent (HTTP 404).
  - ConflictError: the resource is in use by another resource.
  - BackendError: any other create/read/delete/poll failure.
  - TeardownError: one or more parallel deletions failed.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional, Sequence, Type, TypeVar

E = TypeVar("E", bound="AzureApiError")

_QUOTA_OR_PERMISSION_CODES = {
    "AuthorizationFailed",
    "AuthenticationFailed",
    "InvalidAuthenticationToken",
    "LinkedAuthorizationFailed",
    "QuotaExceeded",
    "OperationNotAllowed",
    "SkuNotAvailable",
    "ZonalAllocationFailed",
    "AllocationFailed",
}

_TRANSIENT_CODES = {
    "RetryableError",
    "InternalServerError",
    "ServiceUnavailable",
    "GatewayTimeout",
    "TooManyRequests",
    "OperationPreempted",
    "AnotherOperationInProgress",
}


class ErrorClass(str, Enum):
    """Coarse classification of a failure, used by callers for retry and reporting."""

    already_exists = "already_exists"
    quota_or_permission = "quota_or_permission"
    transient = "transient"
    not_found = "not_found"
    conflict = "conflict"
    internal = "internal"


def classify(status: Optional[int], code: Optional[str]) -> ErrorClass:
    """Map an HTTP status and ARM error code onto an ErrorClass.

    Args:
        status: The HTTP status returned by ARM, if any.
        code: The ARM error code from the response body, if any.

    Returns:
        The matching ErrorClass, or ErrorClass.internal when nothing matches.
    """
    if code is not None:
        if code.endswith("AlreadyExists"):
            return ErrorClass.already_exists
        if code in _QUOTA_OR_PERMISSION_CODES:
            return ErrorClass.quota_or_permission
        if code in _TRANSIENT_CODES:
            return ErrorClass.transient
        if code in ("NotFound", "ResourceNotFound", "ResourceGroupNotFound"):
            return ErrorClass.not_found

    if status is None:
        return ErrorClass.internal
    if status == 404:
        return ErrorClass.not_found
    if status in (401, 403):
        return ErrorClass.quota_or_permission
    if status == 409:
        return ErrorClass.conflict
    if status in (408, 429) or status >= 500:
        return ErrorClass.transient
    return ErrorClass.internal


class AzureApiError(Exception):
    """Represents a failed interaction with an Azure resource.

    Attributes:
        message (str): Human readable description including upstream detail.
        service (Optional[str]): Resource-kind label (e.g. 'network_interfaces').
        resource_name (Optional[str]): Name of the resource involved.
        status (Optional[int]): HTTP status code if the failure came from ARM.
        code (Optional[str]): ARM error code if present in the response body.
        error_class (ErrorClass): Coarse classification for callers.
    """

    default_class = ErrorClass.internal

    def __init__(
        self,
        message: str,
        *,
        service: Optional[str] = None,
        resource_name: Optional[str] = None,
        status: Optional[int] = None,
        code: Optional[str] = None,
        error_class: Optional[ErrorClass] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.service = service
        self.resource_name = resource_name
        self.status = status
        self.code = code
        if error_class is None:
            error_class = (
                classify(status, code)
                if status is not None or code is not None
                else self.default_class
            )
        self.error_class = error_class

    def with_context(
        self: E,
        message: str,
        *,
        service: Optional[str] = None,
        resource_name: Optional[str] = None,
    ) -> E:
        """Return a copy of this error with a prefixed message and resource context.

        The concrete class, status, code and classification are preserved so that
        NotFound tolerance still works on the wrapped error.
        """
        wrapped = type(self).__new__(type(self))
        wrapped.__dict__.update(self.__dict__)
        AzureApiError.__init__(
            wrapped,
            f"{message}: {self.message}",
            service=service or self.service,
            resource_name=resource_name or self.resource_name,
            status=self.status,
            code=self.code,
            error_class=self.error_class,
        )
        return wrapped


class NotFoundError(AzureApiError):
    """The requested resource does not exist."""

    default_class = ErrorClass.not_found


class ConflictError(AzureApiError):
    """The resource cannot be changed because another resource holds it."""

    default_class = ErrorClass.conflict


class BackendError(AzureApiError):
    """Any other failure from a create, read, delete or long-running poll."""


class TeardownError(AzureApiError):
    """One or more deletions in a teardown batch failed.

    Attributes:
        failures (List[BaseException]): Every failed deletion, in submission order.
    """

    def __init__(self, failures: Sequence[BaseException]) -> None:
        self.failures: List[BaseException] = list(failures)
        lines = "; ".join(_describe(f) for f in self.failures)
        super().__init__(
            f"{len(self.failures)} deletion(s) failed during teardown: {lines}",
            error_class=_aggregate_class(self.failures),
        )


def _describe(exc: BaseException) -> str:
    if isinstance(exc, AzureApiError) and exc.resource_name:
        return f"[{exc.service or 'unknown'}/{exc.resource_name}] {exc.message}"
    return f"{type(exc).__name__}: {exc}"


def _aggregate_class(failures: Sequence[BaseException]) -> ErrorClass:
    classes = [
        f.error_class if isinstance(f, AzureApiError) else ErrorClass.internal
        for f in failures
    ]
    non_transient = [c for c in classes if c is not ErrorClass.transient]
    return non_transient[0] if non_transient else ErrorClass.transient


def as_azure_error(
    exc: BaseException,
    message: str,
    *,
    service: Optional[str] = None,
    resource_name: Optional[str] = None,
    cls: Type[AzureApiError] = BackendError,
) -> AzureApiError:
    """Wrap any exception as an AzureApiError carrying resource context.

    AzureApiError instances keep their concrete class; anything else becomes `cls`.
    """
    if isinstance(exc, AzureApiError):
        return exc.with_context(message, service=service, resource_name=resource_name)
    return cls(f"{message}: {exc}", service=service, resource_name=resource_name)


__all__ = [
    "ErrorClass",
    "classify",
    "AzureApiError",
    "NotFoundError",
    "ConflictError",
    "BackendError",
    "TeardownError",
    "as_azure_error",
]
