"""Exception types raised across the relay.

Every error carries the HTTP status the API layer answers with, so route
handlers never translate exceptions themselves.
"""

from typing import Any, Dict, Optional


class PaymentRelayError(Exception):
    """Base class for all relay errors."""

    status_code: int = 500
    error: str = "internal error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error, "detail": self.message}


class ConfigurationError(PaymentRelayError):
    """Credentials or settings are missing or invalid. Fatal at startup."""

    error = "configuration error"


class ValidationError(PaymentRelayError):
    """A request is missing required fields or carries malformed ones."""

    status_code = 400
    error = "validation failed"


class GatewayError(PaymentRelayError):
    """The gateway answered with a failure envelope."""

    status_code = 400
    error = "gateway rejected request"

    def __init__(
        self,
        error_code: Optional[str],
        error_message: Optional[str],
        error_group: Optional[str] = None,
        raw_response: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(error_message or "gateway returned failure")
        self.error_code = error_code
        self.error_message = error_message
        self.error_group = error_group
        self.raw_response = raw_response or {}

    def to_dict(self) -> Dict[str, Any]:
        # Same shape the storefront already consumes
        return {"errorCode": self.error_code, "errorMessage": self.error_message}


class NetworkError(PaymentRelayError):
    """No usable response came back from the gateway."""

    status_code = 502
    error = "gateway unavailable"


class StorageError(PaymentRelayError):
    """The order store could not be read or written."""

    status_code = 500
    error = "storage failure"


class SignatureInvalid(PaymentRelayError):
    """A webhook arrived with a missing or wrong signature."""

    status_code = 400
    error = "invalid signature"
