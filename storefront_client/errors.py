"""
Storefront Client Error Handling

Defines the error taxonomy shared by the gateway and the services:
transport, authentication, validation, payment, integrity and server errors.
"""

from typing import Optional, Any, Dict
from enum import Enum


class ErrorKind(Enum):
    """Error categories surfaced by the client"""

    TRANSPORT = "transport"            # Network failure or timeout
    AUTHENTICATION = "authentication"  # Server declared the token invalid
    VALIDATION = "validation"          # Rejected locally before any request
    PAYMENT = "payment"                # Gateway failure or user cancellation
    INTEGRITY = "integrity"            # Verification rejected by the server
    SERVER = "server"                  # Any other non-2xx response


class StorefrontError(Exception):
    """Base class for all storefront client errors"""

    kind = ErrorKind.SERVER

    def __init__(self, message: str, data: Optional[Dict[str, Any]] = None):
        """
        Initialize storefront error

        Args:
            message: Human-readable error message
            data: Optional additional error data
        """
        self.message = message
        self.data = data or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to a serializable dict"""
        error_dict = {
            "kind": self.kind.value,
            "message": self.message
        }
        if self.data:
            error_dict["data"] = self.data
        return error_dict


class TransportError(StorefrontError):
    """Network or timeout failure talking to the storefront API"""

    kind = ErrorKind.TRANSPORT

    def __init__(self, endpoint: str, reason: str, data: Optional[Dict] = None):
        super().__init__(
            f"Transport error for {endpoint}: {reason}",
            data or {"endpoint": endpoint}
        )
        self.endpoint = endpoint


class AuthenticationError(StorefrontError):
    """The server rejected the bearer token, or no token could be obtained"""

    kind = ErrorKind.AUTHENTICATION

    def __init__(self, message: str = "Not authenticated", data: Optional[Dict] = None):
        super().__init__(message, data)


class ApiError(StorefrontError):
    """Non-2xx response other than 401"""

    kind = ErrorKind.SERVER

    def __init__(self, endpoint: str, status_code: int, server_message: Optional[str] = None,
                 data: Optional[Dict] = None):
        self.endpoint = endpoint
        self.status_code = status_code
        self.server_message = server_message
        message = f"HTTP {status_code} for {endpoint}"
        if server_message:
            message += f": {server_message}"
        super().__init__(
            message,
            data or {"endpoint": endpoint, "status_code": status_code}
        )


class CheckoutGuardError(StorefrontError):
    """Checkout entry conditions not met (no session, empty cart, no address)"""

    kind = ErrorKind.VALIDATION


class PaymentError(StorefrontError):
    """Payment session creation or gateway failure"""

    kind = ErrorKind.PAYMENT


class IntegrityError(StorefrontError):
    """Payment verification rejected by the server"""

    kind = ErrorKind.INTEGRITY
