"""Error taxonomy for the hierarchy admin engine.

Every error carries an HTTP status and a machine-readable code so the
blueprint can turn it into a consistent JSON payload:

    {"success": false, "error": "<message>", "code": "<CODE>"}
"""

from typing import Any, Dict, Optional


class ErrorCode:
    """Machine-readable error codes."""

    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    CASCADE_ABORTED = "CASCADE_ABORTED"


class HierarchyError(Exception):
    """Base class for errors raised by the hierarchy services."""

    status_code = 500
    code = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": False,
            "error": self.message,
            "code": self.code,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidArgumentError(HierarchyError):
    """Malformed id, empty list, disallowed status or position."""

    status_code = 400
    code = ErrorCode.INVALID_ARGUMENT


class NotFoundError(HierarchyError):
    status_code = 404
    code = ErrorCode.NOT_FOUND


class ConflictError(HierarchyError):
    """Duplicate name within a parent scope, or a position collision."""

    status_code = 409
    code = ErrorCode.CONFLICT


class InternalError(HierarchyError):
    status_code = 500
    code = ErrorCode.INTERNAL_ERROR


class CascadeAbortedError(InternalError):
    """A fail-fast cascade stopped partway; ``report`` holds what did run."""

    code = ErrorCode.CASCADE_ABORTED

    def __init__(self, message: str, report: Dict[str, Any]):
        super().__init__(message)
        self.report = report

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload.update(self.report)
        return payload
