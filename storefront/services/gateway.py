"""
Checkout.com Gateway Client.

A relay, not an interpreter: provider replies are returned byte for byte so the
browser widget sees exactly what the provider said. Two failure modes stay
distinct for callers:

- UpstreamError: the provider answered with a non-2xx status (forwarded verbatim)
- TransportError: the provider could not be reached (opaque 500)
"""

import time
from typing import Any
from urllib.parse import quote

import httpx
from structlog import get_logger

from storefront.config import Settings
from storefront.exceptions import InvalidRefundRequestError, TransportError, UpstreamError
from storefront.models.domain import MerchantProfile, OrderIntent, ProviderResponse, RefundIntent
from storefront.observability.metrics import metrics
from storefront.observability.tracing import trace_operation
from storefront.services.amount import calculate_order_total, to_minor_units
from storefront.services.references import order_reference, refund_reference

logger = get_logger(__name__)


def merchant_profile_from_settings(settings: Settings) -> MerchantProfile:
    """Build the merchant metadata block from configuration."""
    return MerchantProfile(
        processing_channel_id=settings.processing_channel_id,
        display_name=settings.display_name,
        billing_country=settings.billing_country,
        customer_name=settings.customer_name,
        customer_email=settings.customer_email,
        success_url=settings.success_url,
        failure_url=settings.failure_url,
        item_reference=settings.item_reference,
        item_name=settings.item_name,
    )


def build_payment_session_payload(
    order: OrderIntent, merchant: MerchantProfile, reference: str
) -> dict[str, Any]:
    """Payment session body; available payment methods depend on these details."""
    payload: dict[str, Any] = {
        "amount": calculate_order_total(order.quantity, order.unit_price_minor),
        "currency": order.currency,
        "reference": reference,
        "display_name": merchant.display_name,
        "payment_type": "Regular",
        "billing": {"address": {"country": merchant.billing_country}},
        "items": [
            {
                "reference": merchant.item_reference,
                "name": merchant.item_name,
                "quantity": order.quantity,
                "unit_price": order.unit_price_minor,
            }
        ],
        "capture": True,
        "processing_channel_id": merchant.processing_channel_id,
        "success_url": merchant.success_url,
        "failure_url": merchant.failure_url,
    }
    customer = {
        key: value
        for key, value in (("name", merchant.customer_name), ("email", merchant.customer_email))
        if value
    }
    if customer:
        payload["customer"] = customer
    return payload


class CheckoutGatewayClient:
    """
    Client for the provider's payment session and refund endpoints.

    Usage:
        client = CheckoutGatewayClient.from_settings(settings, http_client=shared_client)
        response = await client.create_payment_session(order)
    """

    PAYMENT_SESSIONS_PATH = "/payment-sessions"
    REFUNDS_PATH = "/payments/{payment_id}/refunds"

    def __init__(
        self,
        secret_key: str,
        merchant: MerchantProfile,
        base_url: str = "https://api.sandbox.checkout.com",
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.secret_key = secret_key
        self.merchant = merchant
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http_client = http_client

    @classmethod
    def from_settings(
        cls, settings: Settings, http_client: httpx.AsyncClient | None = None
    ) -> "CheckoutGatewayClient":
        return cls(
            secret_key=settings.secret_key,
            merchant=merchant_profile_from_settings(settings),
            base_url=settings.api_base_url,
            timeout=settings.gateway_timeout_seconds,
            http_client=http_client,
        )

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._http_client

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    async def _post(self, operation: str, path: str, payload: dict[str, Any]) -> ProviderResponse:
        """
        POST payload to the provider and relay its reply.

        Raises:
            UpstreamError: If the provider answers with a non-2xx status
            TransportError: If the request could not be sent or answered
        """
        start = time.perf_counter()
        with trace_operation(f"gateway.{operation}", path=path) as span:
            try:
                response = await self.http_client.post(
                    f"{self.base_url}{path}",
                    json=payload,
                    headers=self._headers(),
                    timeout=self.timeout,
                )
            except httpx.HTTPError as exc:
                duration = time.perf_counter() - start
                metrics.record_gateway_call(operation, "transport_error", duration)
                logger.error(
                    "gateway_unreachable",
                    operation=operation,
                    error_type=type(exc).__name__,
                    duration_seconds=duration,
                )
                raise TransportError(operation, type(exc).__name__) from exc
            except (TypeError, ValueError) as exc:
                duration = time.perf_counter() - start
                metrics.record_gateway_call(operation, "transport_error", duration)
                logger.error("gateway_payload_unserializable", operation=operation, error=str(exc))
                raise TransportError(operation, "payload serialization failed") from exc

            duration = time.perf_counter() - start
            span.set_attribute("http.status_code", response.status_code)

        provider_response = ProviderResponse(
            status_code=response.status_code,
            content=response.content,
            media_type=response.headers.get("content-type", "application/json"),
        )

        if not provider_response.is_success:
            metrics.record_gateway_call(operation, "upstream_error", duration)
            logger.warning(
                "gateway_request_rejected",
                operation=operation,
                status_code=response.status_code,
                duration_seconds=duration,
            )
            raise UpstreamError(provider_response)

        metrics.record_gateway_call(operation, "success", duration)
        return provider_response

    async def create_payment_session(self, order: OrderIntent) -> ProviderResponse:
        """
        Create a payment session for a validated order.

        Args:
            order: Order with server-side quantity, currency and unit price

        Returns:
            Provider reply (status and body unmodified)

        Raises:
            UpstreamError: If the provider rejects the session
            TransportError: If the provider cannot be reached
        """
        reference = order_reference()
        payload = build_payment_session_payload(order, self.merchant, reference)
        amount_minor = payload["amount"]

        logger.info(
            "creating_payment_session",
            reference=reference,
            quantity=order.quantity,
            amount_minor=amount_minor,
            currency=order.currency,
        )

        response = await self._post("create_payment_session", self.PAYMENT_SESSIONS_PATH, payload)
        metrics.order_amount_minor.observe(amount_minor)

        logger.info(
            "payment_session_created",
            reference=reference,
            status_code=response.status_code,
        )
        return response

    async def refund_payment(self, payment_id: str | None, amount: object) -> ProviderResponse:
        """
        Refund part or all of a captured payment.

        Args:
            payment_id: Provider payment identifier (pay_...)
            amount: Amount in major units; converted to minor units rounding half up

        Returns:
            Provider reply (status and body unmodified)

        Raises:
            InvalidRefundRequestError: If payment_id is empty or amount is not positive
            UpstreamError: If the provider rejects the refund
            TransportError: If the provider cannot be reached
        """
        if not payment_id or not isinstance(payment_id, str):
            raise InvalidRefundRequestError("payment_id is required")

        refund = RefundIntent(
            payment_id=payment_id,
            amount_minor=to_minor_units(amount),
            reference=refund_reference(payment_id),
        )

        logger.info(
            "creating_refund",
            payment_id=refund.payment_id,
            amount_minor=refund.amount_minor,
            reference=refund.reference,
        )

        path = self.REFUNDS_PATH.format(payment_id=quote(refund.payment_id, safe=""))
        response = await self._post(
            "refund_payment",
            path,
            {"amount": refund.amount_minor, "reference": refund.reference},
        )

        logger.info(
            "refund_created",
            payment_id=refund.payment_id,
            status_code=response.status_code,
        )
        return response

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
