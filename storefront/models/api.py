"""
API Models - Pydantic models for request/response validation.

Request field names follow the storefront page's JSON (camelCase where it sends camelCase).
Semantic checks on quantity and amount live in storefront.services.amount so that
they run the same way for every caller.
"""

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, field_validator

# ============================================================================
# Payment Session Models
# ============================================================================


class CreatePaymentSessionRequest(BaseModel):
    """POST /create-payment-sessions request body."""

    quantity: StrictInt | StrictFloat | None = Field(
        None, description="Number of items; must be a whole number of at least 1"
    )
    currency: str | None = Field(
        None,
        min_length=3,
        max_length=3,
        description="ISO-4217 code; defaults to the storefront currency",
    )

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str | None) -> str | None:
        """Normalize currency to upper case letters."""
        if v is None:
            return v
        if not (v.isascii() and v.isalpha()):
            raise ValueError("currency must be a three-letter ISO-4217 code")
        return v.upper()


# ============================================================================
# Refund Models
# ============================================================================


class RefundPaymentRequest(BaseModel):
    """POST /refund-payment request body."""

    model_config = ConfigDict(populate_by_name=True)

    payment_id: str | None = Field(None, alias="paymentId")
    amount: StrictInt | StrictFloat | None = Field(
        None, description="Refund amount in major currency units, e.g. 10.50"
    )


# ============================================================================
# Webhook Models
# ============================================================================


class WebhookAckResponse(BaseModel):
    """POST /webhook response once the signature is verified."""

    status: str
    event_id: str | None = None
    event_type: str | None = None


# ============================================================================
# Storefront Models
# ============================================================================


class CheckoutConfigResponse(BaseModel):
    """GET /checkout-config response - public values the browser widget needs."""

    public_key: str
    environment: str
    locale: str
    currency: str
    unit_price_minor: int


class HealthResponse(BaseModel):
    """GET /health response."""

    status: str
    service: str
    version: str
