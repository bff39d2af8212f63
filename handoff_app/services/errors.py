# handoff_app/services/errors.py
# -*- coding: utf-8 -*-
"""
Error taxonomy for chat routing. Gateways hand these back inside a
:class:`GatewayResult`; the router converts them to ``FailureResponse`` values
so nothing is raised past its boundary.
"""
from typing import Any, Dict, Generic, Optional, TypeVar

from ..models.chat_schemas import FailureResponse

T = TypeVar("T")


class RoutingError(Exception):
    error_type = "routing_error"

    def __init__(self, message: str, error_details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_details = error_details or {}

    def to_failure(self) -> FailureResponse:
        return FailureResponse(
            message=self.message,
            error_type=self.error_type,
            error_details=self.error_details,
        )


class ValidationError(RoutingError):
    """Bad or missing input. No I/O was performed."""
    error_type = "validation_error"


class NetworkError(RoutingError):
    """The transport failed before an HTTP response was received."""
    error_type = "network_error"


class UpstreamError(RoutingError):
    """A backend answered with a non-2xx status (or an unusable body)."""
    error_type = "upstream_error"

    def __init__(self, message: str, status: Optional[int], body: Optional[str],
                 error_details: Optional[Dict[str, Any]] = None):
        details = {"status": status, "body": body}
        details.update(error_details or {})
        super().__init__(message, details)
        self.status = status
        self.body = body


class MissingIdentityError(RoutingError):
    """A human-handled session has no platform user to send on behalf of."""
    error_type = "missing_identity"


class PartialSuccessError(RoutingError):
    """The message reached the human-agent platform but the transcript refetch failed."""
    error_type = "partial_success"


class GatewayResult(Generic[T]):
    """``{success, data | error}`` returned by every gateway call."""

    __slots__ = ("success", "data", "error")

    def __init__(self, success: bool, data: Optional[T] = None, error: Optional[RoutingError] = None):
        self.success = success
        self.data = data
        self.error = error

    @classmethod
    def ok(cls, data: T) -> "GatewayResult[T]":
        return cls(True, data=data)

    @classmethod
    def fail(cls, error: RoutingError) -> "GatewayResult[T]":
        return cls(False, error=error)

    def __repr__(self):
        if self.success:
            return f"<GatewayResult success data={self.data!r}>"
        return f"<GatewayResult failure error={self.error!r}>"
