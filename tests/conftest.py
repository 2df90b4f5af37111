"""
Pytest Configuration and Centralized Fixtures.

Provides reusable fixtures for testing:
- Payment provider stubbed with httpx.MockTransport
- Gateway client and webhook processor wired to test settings
- API test client with the gateway dependency overridden
- Signed webhook bodies
"""

import json
import os
from collections.abc import Callable, Iterator

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

# Set required environment variables BEFORE importing storefront modules
os.environ.setdefault("SECRET_KEY", "sk_sbox_test_fake_key")
os.environ.setdefault("PROCESSING_CHANNEL_ID", "pc_test_channel")
os.environ.setdefault("WEBHOOK_SECRET", "whsec_test_fake_secret")
os.environ.setdefault("PORT", "3000")
os.environ.setdefault("PUBLIC_KEY", "pk_sbox_test_fake_key")
os.environ.setdefault("LOG_FORMAT", "console")
os.environ.setdefault("STATIC_DIR", "tests/no-such-static-dir")

from storefront.api.dependencies import get_gateway_client
from storefront.models.domain import MerchantProfile, OrderIntent
from storefront.services.gateway import CheckoutGatewayClient
from storefront.services.signatures import compute_signature
from storefront.services.webhooks import ProcessedEventStore, WebhookDispatcher, WebhookProcessor

TEST_BASE_URL = "https://api.test.checkout.com"
WEBHOOK_SECRET = os.environ["WEBHOOK_SECRET"]


# ============================================================================
# Payment Provider Stub
# ============================================================================


class ProviderStub:
    """Records outbound requests and answers them with a configurable reply."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status_code = 201
        self.body: dict = {"id": "ps_test_123", "payment_session_secret": "pss_test"}
        self.error: Exception | None = None

    def reply(self, status_code: int, body: dict) -> None:
        self.status_code = status_code
        self.body = body

    def fail_with(self, error: Exception) -> None:
        self.error = error

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(
            self.status_code,
            content=json.dumps(self.body).encode(),
            headers={"content-type": "application/json"},
        )

    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def provider() -> ProviderStub:
    """Stubbed payment provider."""
    return ProviderStub()


@pytest.fixture
def merchant() -> MerchantProfile:
    """Merchant metadata used in payment sessions."""
    return MerchantProfile(
        processing_channel_id="pc_test_channel",
        display_name="Online shop",
        billing_country="HK",
        customer_name="Test Customer",
        customer_email="customer@example.com",
        success_url="https://example.com/payments/success",
        failure_url="https://example.com/payments/failure",
        item_reference="0001",
        item_name="Phone case",
    )


@pytest.fixture
def gateway(provider: ProviderStub, merchant: MerchantProfile) -> CheckoutGatewayClient:
    """Gateway client talking to the stubbed provider."""
    return CheckoutGatewayClient(
        secret_key="sk_sbox_test_fake_key",
        merchant=merchant,
        base_url=TEST_BASE_URL,
        timeout=5.0,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(provider)),
    )


@pytest.fixture
def order() -> OrderIntent:
    """Standard three-item order at the default unit price."""
    return OrderIntent(quantity=3, currency="HKD", unit_price_minor=9000)


# ============================================================================
# Webhook Fixtures
# ============================================================================


@pytest.fixture
def webhook_secret() -> str:
    return WEBHOOK_SECRET


@pytest.fixture
def captured_body() -> bytes:
    """Raw body of a payment_captured notification."""
    return b'{"type":"payment_captured","data":{"id":"pay_123"}}'


@pytest.fixture
def sign() -> Callable[..., str]:
    """Sign a raw body with the configured webhook secret (or another one)."""

    def _sign(raw_body: bytes, secret: str = WEBHOOK_SECRET) -> str:
        return compute_signature(raw_body, secret)

    return _sign


@pytest.fixture
def dispatcher() -> WebhookDispatcher:
    return WebhookDispatcher()


@pytest.fixture
def processor(dispatcher: WebhookDispatcher) -> WebhookProcessor:
    """Webhook processor with a fresh dedup store."""
    return WebhookProcessor(
        secret=WEBHOOK_SECRET, dispatcher=dispatcher, store=ProcessedEventStore()
    )


# ============================================================================
# FastAPI Test Client Fixtures
# ============================================================================


@pytest.fixture
def app() -> FastAPI:
    """FastAPI app for testing."""
    from storefront.main import app as main_app

    return main_app


@pytest.fixture
def client(app: FastAPI, gateway: CheckoutGatewayClient) -> Iterator[TestClient]:
    """Test client with lifespan run and the provider stubbed out."""
    app.dependency_overrides[get_gateway_client] = lambda: gateway
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
