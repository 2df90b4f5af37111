"""
Exception Classes - Strongly typed exception hierarchy.

Each error maps to exactly one HTTP outcome in storefront.main.
"""

from storefront.models.domain import ProviderResponse


class CheckoutError(Exception):
    """Base exception for all checkout errors."""

    pass


class ValidationError(CheckoutError):
    """Raised when caller input is rejected before any provider call."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidQuantityError(ValidationError):
    """Raised when an order quantity is missing, non-numeric or below one."""

    def __init__(self, quantity: object) -> None:
        self.quantity = quantity
        super().__init__("A valid quantity is required.")


class InvalidRefundRequestError(ValidationError):
    """Raised when a refund lacks a payment id or a positive amount."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__("A valid Payment ID and amount are required.")


class UpstreamError(CheckoutError):
    """Raised when the payment provider answers with a non-2xx status."""

    def __init__(self, response: ProviderResponse) -> None:
        self.response = response
        super().__init__(f"Payment provider returned status {response.status_code}")

    @property
    def status_code(self) -> int:
        return self.response.status_code


class TransportError(CheckoutError):
    """Raised when the payment provider could not be reached or understood."""

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        self.message = message
        super().__init__(f"Transport error during {operation}: {message}")


class AuthenticationError(CheckoutError):
    """Raised when an inbound request fails authentication."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Authentication failed: {message}")


class WebhookVerificationError(AuthenticationError):
    """Raised when a webhook signature is missing or does not match."""

    pass
