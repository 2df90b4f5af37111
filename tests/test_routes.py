"""
Tests for API Routes.

Exercises the HTTP surface end to end with the payment provider stubbed.
"""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from storefront.api.routes import _detached_calls, run_to_completion
from storefront.exceptions import TransportError

# ============================================================================
# Payment Session Route Tests
# ============================================================================


class TestCreatePaymentSessionRoute:
    """Tests for POST /create-payment-sessions."""

    def test_amount_computed_from_quantity(self, client: TestClient, provider):
        response = client.post("/create-payment-sessions", json={"quantity": 3})

        assert response.status_code == 201
        assert response.json() == provider.body
        sent = provider.last_json()
        assert sent["amount"] == 27000
        assert sent["currency"] == "HKD"
        assert sent["items"][0]["quantity"] == 3

    def test_client_supplied_total_ignored(self, client: TestClient, provider):
        client.post("/create-payment-sessions", json={"quantity": 2, "amount": 1})
        assert provider.last_json()["amount"] == 18000

    def test_currency_normalized(self, client: TestClient, provider):
        client.post("/create-payment-sessions", json={"quantity": 1, "currency": "usd"})
        assert provider.last_json()["currency"] == "USD"

    def test_provider_status_mirrored(self, client: TestClient, provider):
        provider.reply(200, {"id": "ps_ok"})
        response = client.post("/create-payment-sessions", json={"quantity": 1})
        assert response.status_code == 200

    def test_provider_402_forwarded_verbatim(self, client: TestClient, provider):
        body = {"request_id": "0HL80RJLS76I7", "error_type": "request_invalid"}
        provider.reply(402, body)

        response = client.post("/create-payment-sessions", json={"quantity": 1})

        assert response.status_code == 402
        assert response.content == json.dumps(body).encode()

    def test_unreachable_provider_is_opaque_500(self, client: TestClient, provider):
        provider.fail_with(httpx.ConnectError("dns failure for api.test.checkout.com"))

        response = client.post("/create-payment-sessions", json={"quantity": 1})

        assert response.status_code == 500
        assert response.json() == {"error": "Internal Server Error"}

    def test_invalid_quantities_rejected_before_provider_call(
        self, client: TestClient, provider
    ):
        for body in (
            {"quantity": 0},
            {"quantity": -3},
            {"quantity": 1.5},
            {"quantity": "two"},
            {"quantity": True},
            {"quantity": None},
            {},
        ):
            response = client.post("/create-payment-sessions", json=body)
            assert response.status_code == 400, body
            assert "error" in response.json()

        assert provider.requests == []

    def test_invalid_quantity_message(self, client: TestClient):
        response = client.post("/create-payment-sessions", json={"quantity": 0})
        assert response.json() == {"error": "A valid quantity is required."}

    def test_invalid_currency_rejected(self, client: TestClient, provider):
        response = client.post("/create-payment-sessions", json={"quantity": 1, "currency": "H1"})
        assert response.status_code == 400
        assert provider.requests == []

    def test_non_json_body_rejected(self, client: TestClient, provider):
        response = client.post(
            "/create-payment-sessions",
            content=b"quantity=3",
            headers={"content-type": "application/json"},
        )
        assert response.status_code == 400
        assert provider.requests == []


# ============================================================================
# Refund Route Tests
# ============================================================================


class TestRefundPaymentRoute:
    """Tests for POST /refund-payment."""

    def test_refund_forwarded(self, client: TestClient, provider):
        provider.reply(202, {"action_id": "act_123", "reference": "REF-x"})

        response = client.post("/refund-payment", json={"paymentId": "pay_123", "amount": 10.005})

        assert response.status_code == 202
        assert response.json() == {"action_id": "act_123", "reference": "REF-x"}
        assert provider.last_json()["amount"] == 1001
        assert str(provider.requests[0].url).endswith("/payments/pay_123/refunds")

    def test_provider_rejection_forwarded(self, client: TestClient, provider):
        provider.reply(422, {"error_type": "refund_amount_exceeds_balance"})

        response = client.post("/refund-payment", json={"paymentId": "pay_123", "amount": 500})

        assert response.status_code == 422
        assert response.json() == {"error_type": "refund_amount_exceeds_balance"}

    def test_invalid_refunds_rejected_before_provider_call(self, client: TestClient, provider):
        for body in (
            {"paymentId": "pay_123", "amount": 0},
            {"paymentId": "pay_123", "amount": -10},
            {"paymentId": "pay_123"},
            {"paymentId": "", "amount": 10},
            {"amount": 10},
        ):
            response = client.post("/refund-payment", json=body)
            assert response.status_code == 400, body
            assert response.json() == {"error": "A valid Payment ID and amount are required."}

        assert provider.requests == []


# ============================================================================
# Webhook Route Tests
# ============================================================================


class TestWebhookRoute:
    """Tests for POST /webhook."""

    def test_verified_capture_dispatched_once(
        self, app: FastAPI, client: TestClient, captured_body: bytes, sign
    ):
        handler = AsyncMock()
        app.state.webhook_processor.dispatcher.register("payment_captured", handler)

        response = client.post(
            "/webhook", content=captured_body, headers={"cko-signature": sign(captured_body)}
        )

        assert response.status_code == 200
        assert response.json()["status"] == "processed"
        assert response.json()["event_type"] == "payment_captured"
        handler.assert_awaited_once()

    def test_replay_acknowledged_but_not_reapplied(
        self, app: FastAPI, client: TestClient, captured_body: bytes, sign
    ):
        handler = AsyncMock()
        app.state.webhook_processor.dispatcher.register("payment_captured", handler)
        headers = {"cko-signature": sign(captured_body)}

        first = client.post("/webhook", content=captured_body, headers=headers)
        second = client.post("/webhook", content=captured_body, headers=headers)

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json()["status"] == "duplicate"
        handler.assert_awaited_once()

    def test_signature_from_other_secret_rejected(
        self, app: FastAPI, client: TestClient, captured_body: bytes, sign
    ):
        handler = AsyncMock()
        app.state.webhook_processor.dispatcher.register("payment_captured", handler)

        response = client.post(
            "/webhook",
            content=captured_body,
            headers={"cko-signature": sign(captured_body, secret="another-secret")},
        )

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}
        handler.assert_not_awaited()

    def test_missing_signature_rejected(self, client: TestClient, captured_body: bytes):
        response = client.post("/webhook", content=captured_body)
        assert response.status_code == 401

    def test_signature_covers_raw_bytes(self, client: TestClient, captured_body: bytes, sign):
        """A body re-serialized after signing no longer verifies."""
        reformatted = json.dumps(json.loads(captured_body), indent=2).encode()
        response = client.post(
            "/webhook", content=reformatted, headers={"cko-signature": sign(captured_body)}
        )
        assert response.status_code == 401

    def test_handler_failure_still_acknowledged(
        self, app: FastAPI, client: TestClient, captured_body: bytes, sign
    ):
        app.state.webhook_processor.dispatcher.register(
            "payment_captured", AsyncMock(side_effect=RuntimeError("ledger down"))
        )

        response = client.post(
            "/webhook", content=captured_body, headers={"cko-signature": sign(captured_body)}
        )

        assert response.status_code == 200
        assert response.json()["status"] == "handler_failed"

    def test_malformed_body_with_valid_signature_acknowledged(self, client: TestClient, sign):
        raw = b"{this is not json"
        response = client.post("/webhook", content=raw, headers={"cko-signature": sign(raw)})

        assert response.status_code == 200
        assert response.json()["status"] == "unparseable"

    def test_unknown_event_type_acknowledged(self, client: TestClient, sign):
        raw = b'{"id":"evt_9","type":"dispute_received","data":{"id":"pay_9"}}'
        response = client.post("/webhook", content=raw, headers={"cko-signature": sign(raw)})

        assert response.status_code == 200
        assert response.json() == {
            "status": "processed",
            "event_id": "evt_9",
            "event_type": "dispute_received",
        }


# ============================================================================
# Storefront Route Tests
# ============================================================================


class TestStorefrontRoutes:
    """Tests for configuration and health endpoints."""

    def test_checkout_config_exposes_public_values_only(self, client: TestClient):
        response = client.get("/checkout-config")

        assert response.status_code == 200
        body = response.json()
        assert body == {
            "public_key": "pk_sbox_test_fake_key",
            "environment": "sandbox",
            "locale": "en-GB",
            "currency": "HKD",
            "unit_price_minor": 9000,
        }
        assert "sk_sbox_test_fake_key" not in response.text
        assert "whsec_test_fake_secret" not in response.text

    def test_health(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_root_without_static_dir(self, client: TestClient):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "running"

    def test_metrics_exposed(self, client: TestClient):
        client.get("/health")
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "checkout_http_requests_total" in response.text


# ============================================================================
# Client Disconnect Tests
# ============================================================================


class TestRunToCompletion:
    """Provider calls outlive a cancelled request handler."""

    @pytest.mark.asyncio
    async def test_result_returned_when_caller_stays(self):
        async def provider_call() -> int:
            return 201

        assert await run_to_completion(provider_call()) == 201
        assert not _detached_calls

    @pytest.mark.asyncio
    async def test_failure_after_disconnect_is_held_and_logged(self):
        gate = asyncio.Event()
        finished = []

        async def provider_call() -> None:
            await gate.wait()
            finished.append(True)
            raise TransportError("refund_payment", "connection reset")

        caller = asyncio.create_task(run_to_completion(provider_call()))
        await asyncio.sleep(0)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        assert len(_detached_calls) == 1
        (detached,) = _detached_calls

        with patch("storefront.api.routes.logger") as mock_logger:
            gate.set()
            await asyncio.wait({detached})
            await asyncio.sleep(0)

        assert finished == [True]
        assert not _detached_calls
        mock_logger.error.assert_called_once()
        assert mock_logger.error.call_args.args[0] == "detached_provider_call_failed"
        assert mock_logger.error.call_args.kwargs["error_type"] == "TransportError"
