import re
from typing import Optional, Dict, Any


class CostsightException(Exception):
    """Base exception for all Costsight errors."""
    def __init__(
        self,
        message: str,
        code: str = "internal_error",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}


class ValidationError(CostsightException):
    """Raised when request parameters are malformed. Never partially processed."""
    def __init__(self, message: str, code: str = "validation_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=400, details=details)


class UnknownModelError(ValidationError):
    """Raised when a forecast is requested with an unrecognized model name."""
    def __init__(self, model: str):
        super().__init__(
            f"Unknown forecasting model: {model}",
            code="unknown_model",
            details={"model": model}
        )


class UnknownDialectError(ValidationError):
    """Raised when a billing file dialect is not one of the supported exports."""
    def __init__(self, dialect: str):
        super().__init__(
            f"Unsupported billing file type: {dialect}",
            code="unknown_dialect",
            details={"dialect": dialect}
        )


class BillingFileError(ValidationError):
    """Raised when a billing file is structurally unreadable (encoding, missing header)."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="unreadable_file", details=details)


class InvalidStatusTransitionError(CostsightException):
    """Raised when a suggestion status change is not pending->applied or pending->dismissed."""
    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot move suggestion from '{current}' to '{requested}'",
            code="invalid_transition",
            status_code=409,
            details={"current": current, "requested": requested}
        )


class NoValidRowsError(CostsightException):
    """Raised when every row of an import was dropped during normalization."""
    def __init__(self, message: str = "No valid data found in billing file", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="no_valid_rows", status_code=422, details=details)


class InsufficientHistoryError(CostsightException):
    """
    Raised when there is not enough cost history to forecast.
    The request was well-formed; the data is not ready yet.
    """
    def __init__(self, required: int, available: int):
        super().__init__(
            f"Not enough historical data to make predictions: need {required} days, got {available}",
            code="insufficient_history",
            status_code=409,
            details={"required": required, "available": available}
        )


class InventoryUnavailableError(CostsightException):
    """
    Raised when the resource inventory cannot be read.
    Automatically sanitizes error messages to avoid leaking credentials.
    """
    def __init__(self, message: str, code: str = "inventory_unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__(self._sanitize(message), code=code, status_code=502, details=details)

    @staticmethod
    def _sanitize(msg: str) -> str:
        """Remove bearer tokens and credential query parameters from error messages."""
        msg = re.sub(r'(?i)bearer\s+[A-Za-z0-9\-_.=]+', 'Bearer [REDACTED]', msg)
        msg = re.sub(r'(?i)(access_key|secret_key|token|password|signature)=[^&\s]+', r'\1=[REDACTED]', msg)
        return msg


class AuthError(CostsightException):
    """Raised when authentication or organization scoping fails."""
    def __init__(self, message: str, code: str = "auth_error", status_code: int = 401, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=status_code, details=details)


class ResourceNotFoundError(CostsightException):
    """Raised when a requested entity is not found in the caller's organization."""
    def __init__(self, message: str, code: str = "not_found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=404, details=details)
