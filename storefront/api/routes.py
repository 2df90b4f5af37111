"""
API Routes - Payment session, refund and webhook endpoints used by the storefront page.

Errors are raised as storefront.exceptions types and mapped to responses in
storefront.main, so every route shares one error contract.
"""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from fastapi import APIRouter, Depends, Request, Response, status
from structlog import get_logger

from storefront.api.dependencies import get_gateway_client, get_webhook_processor
from storefront.config import settings
from storefront.models.api import (
    CheckoutConfigResponse,
    CreatePaymentSessionRequest,
    HealthResponse,
    RefundPaymentRequest,
    WebhookAckResponse,
)
from storefront.models.domain import OrderIntent, ProviderResponse
from storefront.services.amount import validate_quantity
from storefront.services.gateway import CheckoutGatewayClient
from storefront.services.signatures import SIGNATURE_HEADER
from storefront.services.webhooks import WebhookProcessor

router = APIRouter()
logger = get_logger(__name__)

T = TypeVar("T")

# Provider calls still running after their client went away
_detached_calls: set[asyncio.Task] = set()


def _log_detached_outcome(task: asyncio.Task) -> None:
    _detached_calls.discard(task)
    if task.cancelled():
        logger.warning("detached_provider_call_cancelled")
        return
    exc = task.exception()
    if exc is not None:
        logger.error(
            "detached_provider_call_failed",
            error=str(exc),
            error_type=type(exc).__name__,
            status_code=getattr(exc, "status_code", None),
        )
        return
    result = task.result()
    logger.info(
        "detached_provider_call_completed",
        status_code=getattr(result, "status_code", None),
    )


async def run_to_completion(call: Awaitable[T]) -> T:
    """
    Await a provider call that must not be abandoned midway.

    If the inbound client disconnects the handler is cancelled, but the charge or
    refund attempt already sent to the provider keeps running to completion. Its
    outcome is then logged, since no one is left to receive it.
    """
    task = asyncio.ensure_future(call)
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        if not task.done():
            _detached_calls.add(task)
        task.add_done_callback(_log_detached_outcome)
        raise


def relay(provider_response: ProviderResponse) -> Response:
    """Provider reply as an HTTP response, status and body untouched."""
    return Response(
        content=provider_response.content,
        status_code=provider_response.status_code,
        media_type=provider_response.media_type,
    )


@router.post("/create-payment-sessions")
async def create_payment_session(
    body: CreatePaymentSessionRequest,
    gateway: CheckoutGatewayClient = Depends(get_gateway_client),
) -> Response:
    """
    Create a payment session for the requested quantity.

    The amount is computed here from the configured unit price; the page only
    sends a quantity. The provider's status code and body are relayed as-is.
    """
    order = OrderIntent(
        quantity=validate_quantity(body.quantity),
        currency=body.currency or settings.default_currency,
        unit_price_minor=settings.unit_price_minor,
    )
    provider_response = await run_to_completion(gateway.create_payment_session(order))
    return relay(provider_response)


@router.post("/refund-payment")
async def refund_payment(
    body: RefundPaymentRequest,
    gateway: CheckoutGatewayClient = Depends(get_gateway_client),
) -> Response:
    """Refund `amount` (major units) of payment `paymentId`."""
    provider_response = await run_to_completion(
        gateway.refund_payment(body.payment_id, body.amount)
    )
    return relay(provider_response)


@router.post("/webhook", response_model=WebhookAckResponse, status_code=status.HTTP_200_OK)
async def receive_webhook(
    request: Request,
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> WebhookAckResponse:
    """
    Receive a provider notification.

    The signature covers the raw bytes, so the body is read before any parsing.
    A bad signature is answered with 401 by the WebhookVerificationError handler.
    """
    raw_body = await request.body()
    outcome = await processor.process(raw_body, request.headers.get(SIGNATURE_HEADER))
    return WebhookAckResponse(
        status=outcome.status,
        event_id=outcome.event_id,
        event_type=outcome.event_type,
    )


@router.get("/checkout-config", response_model=CheckoutConfigResponse)
async def checkout_config() -> CheckoutConfigResponse:
    """Public values the browser widget needs; never includes secrets."""
    return CheckoutConfigResponse(
        public_key=settings.public_key,
        environment=settings.provider_environment,
        locale=settings.locale,
        currency=settings.default_currency,
        unit_price_minor=settings.unit_price_minor,
    )


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(
        status="ok",
        service=settings.api_title,
        version=settings.api_version,
    )
