"""
Error types raised by the inventory API.

Handlers raise these instead of building HTTP responses by hand; the
exception handlers in api.py turn them into JSON bodies of the form
``{"message": ..., "code": ..., "details": {...}}`` with the class's status code.
"""

from typing import Any, Dict, Optional


class InventoryError(Exception):
    """Base exception for all inventory errors"""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"message": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


# --------------------------------------------------------------------------
# Client errors
# --------------------------------------------------------------------------
class ValidationError(InventoryError):
    """Input is missing or malformed"""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if field:
            details["field"] = field
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class MissingFieldsError(ValidationError):
    def __init__(self, fields):
        fields = list(fields)
        super().__init__(
            f"Required fields missing: {', '.join(fields)}",
            details={"missing": fields},
        )
        self.code = "MISSING_FIELDS"


class FileTooLargeError(ValidationError):
    status_code = 413

    def __init__(self, limit: int):
        super().__init__(f"File exceeds the {limit // (1024 * 1024)} MB limit", details={"limit": limit})
        self.code = "FILE_TOO_LARGE"


class AuthenticationError(InventoryError):
    status_code = 401

    def __init__(self, message: str = "Invalid username or password"):
        super().__init__(message, code="AUTH_FAILED")


class NotFoundError(InventoryError):
    """Unknown identifier"""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: Any = None):
        message = f"{resource_type} not found"
        details = {"resource_type": resource_type}
        if resource_id is not None:
            details["resource_id"] = resource_id
        super().__init__(message, code="NOT_FOUND", details=details)


class ConflictError(InventoryError):
    status_code = 409

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="CONFLICT", details=details)


class DependentsExistError(ConflictError):
    """
    Delete refused because other rows still reference the target.

    ``counts`` maps each dependent kind to the number of referencing rows,
    so the caller knows what to reassign first. Answered with 400.
    """

    status_code = 400

    def __init__(self, resource_type: str, counts: Dict[str, int]):
        super().__init__(
            f"Cannot delete {resource_type.lower()} with associated items. "
            "Please reassign or delete the related items first.",
            details=dict(counts),
        )
        self.code = "HAS_DEPENDENTS"
        self.counts = dict(counts)


# --------------------------------------------------------------------------
# Server errors
# --------------------------------------------------------------------------
class UpstreamError(InventoryError):
    """Storage or file-system failure; the client only sees a generic message"""

    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message, code="UPSTREAM_ERROR")


class ServiceUnavailableError(UpstreamError):
    status_code = 503

    def __init__(self, message: str = "Service temporarily unavailable, try again"):
        super().__init__(message)
        self.code = "UNAVAILABLE"
