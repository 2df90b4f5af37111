"""
FastAPI dependencies for the checkout routes.

The gateway client and webhook processor are created once per application in the
lifespan and shared by every request; they hold no per-request state.
"""

import httpx
from fastapi import FastAPI, Request

from storefront.config import Settings, get_settings
from storefront.services.gateway import CheckoutGatewayClient
from storefront.services.webhooks import ProcessedEventStore, WebhookProcessor


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    """Shared connection pool for outbound provider calls."""
    return httpx.AsyncClient(timeout=httpx.Timeout(settings.gateway_timeout_seconds))


def build_webhook_processor(settings: Settings) -> WebhookProcessor:
    return WebhookProcessor(
        secret=settings.webhook_secret,
        store=ProcessedEventStore(
            ttl_seconds=settings.webhook_dedup_ttl_seconds,
            max_entries=settings.webhook_dedup_max_entries,
        ),
    )


def init_app_state(app: FastAPI, http_client: httpx.AsyncClient) -> None:
    """Attach the shared gateway client and webhook processor to the app."""
    settings = get_settings()
    app.state.gateway = CheckoutGatewayClient.from_settings(settings, http_client=http_client)
    app.state.webhook_processor = build_webhook_processor(settings)


def get_gateway_client(request: Request) -> CheckoutGatewayClient:
    """Gateway client bound to the application's shared HTTP client."""
    gateway: CheckoutGatewayClient | None = getattr(request.app.state, "gateway", None)
    if gateway is None:
        # App served without lifespan (e.g. a bare TestClient)
        gateway = CheckoutGatewayClient.from_settings(get_settings())
        request.app.state.gateway = gateway
    return gateway


def get_webhook_processor(request: Request) -> WebhookProcessor:
    """Webhook processor shared across requests so replays are detected."""
    processor: WebhookProcessor | None = getattr(request.app.state, "webhook_processor", None)
    if processor is None:
        processor = build_webhook_processor(get_settings())
        request.app.state.webhook_processor = processor
    return processor
