"""
Domain Models - Internal checkout models using dataclasses.

All entities are request scoped and immutable.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class OrderIntent:
    """Validated order - the total is derived, never supplied by the caller."""

    quantity: int
    currency: str
    unit_price_minor: int

    def __post_init__(self) -> None:
        """Validate order constraints."""
        if self.quantity < 1:
            raise ValueError(f"Quantity must be at least 1: {self.quantity}")
        if self.unit_price_minor <= 0:
            raise ValueError(f"Unit price must be positive: {self.unit_price_minor}")
        if len(self.currency) != 3:
            raise ValueError(f"Invalid currency code: {self.currency}")


@dataclass(frozen=True)
class MerchantProfile:
    """Fixed merchant metadata attached to every payment session."""

    processing_channel_id: str
    display_name: str
    billing_country: str
    customer_name: str
    customer_email: str
    success_url: str
    failure_url: str
    item_reference: str
    item_name: str


@dataclass(frozen=True)
class RefundIntent:
    """Refund request ready to be sent to the provider."""

    payment_id: str
    amount_minor: int
    reference: str

    def __post_init__(self) -> None:
        """Validate refund constraints."""
        if not self.payment_id:
            raise ValueError("payment_id cannot be empty")
        if self.amount_minor <= 0:
            raise ValueError(f"Refund amount must be positive: {self.amount_minor}")


@dataclass(frozen=True)
class ProviderResponse:
    """Provider reply relayed to the caller byte for byte."""

    status_code: int
    content: bytes
    media_type: str = "application/json"

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


class WebhookState(str, Enum):
    """Verification state of an inbound webhook."""

    UNVERIFIED = "unverified"
    VERIFIED = "verified"
    REJECTED = "rejected"


@dataclass(frozen=True)
class WebhookEvent:
    """Verified webhook notification."""

    event_id: str | None
    event_type: str
    data: dict[str, Any]
    raw_body: bytes = field(repr=False)
    dedup_key: str

    @property
    def payment_id(self) -> str | None:
        value = self.data.get("id")
        return value if isinstance(value, str) else None
