"""
Webhook Verification and Dispatch.

Inbound provider notifications move UNVERIFIED -> VERIFIED or REJECTED:

1. The HMAC-SHA256 of the exact raw body is compared, in constant time, with the
   cko-signature header. The body is never re-serialized before hashing.
2. A mismatch is REJECTED; the body is not parsed and nothing runs.
3. A verified event is parsed and dispatched by type. The provider may deliver an
   event more than once, so each event id is applied at most once per process.

Once verified, delivery is always acknowledged; the provider retries on non-2xx
and a retry cannot fix a handler failure or a malformed body.
"""

import asyncio
import hashlib
import json
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import ClassVar

from structlog import get_logger

from storefront.exceptions import WebhookVerificationError
from storefront.models.domain import WebhookEvent, WebhookState
from storefront.observability.metrics import metrics
from storefront.services.signatures import verify_signature

logger = get_logger(__name__)

EventHandler = Callable[[WebhookEvent], Awaitable[None]]


def parse_event(raw_body: bytes) -> WebhookEvent | None:
    """Parse a verified body into a WebhookEvent, or None if it is not an event envelope."""
    try:
        envelope = json.loads(raw_body)
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None

    if not isinstance(envelope, dict) or not isinstance(envelope.get("type"), str):
        return None

    data = envelope.get("data")
    event_id = envelope.get("id")
    if not isinstance(event_id, str) or not event_id:
        event_id = None

    return WebhookEvent(
        event_id=event_id,
        event_type=envelope["type"],
        data=data if isinstance(data, dict) else {},
        raw_body=raw_body,
        dedup_key=event_id or f"sha256:{hashlib.sha256(raw_body).hexdigest()}",
    )


class ProcessedEventStore:
    """
    Record-once registry of dispatched webhook events.

    A claimed key is in flight until its handler either completes it or releases
    it. Only completed keys are remembered; a released key can be applied again.
    Bounded and TTL-based: a completed entry older than ttl_seconds, or evicted
    because the store is full, no longer blocks a replay. Claims never await, so a
    check and the following insert cannot interleave with another request on the
    event loop.
    """

    def __init__(self, ttl_seconds: int = 86400, max_entries: int = 10000) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        # Key: dedup key, Value: completed_at (monotonic)
        self._entries: OrderedDict[str, float] = OrderedDict()
        # Key: dedup key, Value: set once the in-flight attempt finishes
        self._in_flight: dict[str, asyncio.Event] = {}

    def _cleanup(self, now: float) -> None:
        while self._entries:
            key, completed_at = next(iter(self._entries.items()))
            if now - completed_at < self.ttl_seconds:
                break
            del self._entries[key]

    def claim(self, key: str) -> bool:
        """Claim key; False if it is in flight or already completed."""
        self._cleanup(time.monotonic())
        if key in self._entries or key in self._in_flight:
            return False
        self._in_flight[key] = asyncio.Event()
        return True

    def complete(self, key: str) -> None:
        """Record key as applied and wake deliveries waiting on it."""
        self._entries[key] = time.monotonic()
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
        done = self._in_flight.pop(key, None)
        if done is not None:
            done.set()

    def release(self, key: str) -> None:
        """Forget key so a redelivery can be applied again."""
        self._entries.pop(key, None)
        done = self._in_flight.pop(key, None)
        if done is not None:
            done.set()

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    async def wait(self, key: str) -> None:
        """Wait until the in-flight attempt for key completes or is released."""
        done = self._in_flight.get(key)
        if done is not None:
            await done.wait()

    def __contains__(self, key: object) -> bool:
        return key in self._entries or key in self._in_flight

    def __len__(self) -> int:
        return len(self._entries) + len(self._in_flight)


@dataclass(frozen=True)
class WebhookOutcome:
    """Result of handling one verified delivery."""

    state: WebhookState
    status: str  # processed, duplicate, handler_failed, unparseable
    event_id: str | None = None
    event_type: str | None = None


async def handle_payment_captured(event: WebhookEvent) -> None:
    logger.info("payment_captured", payment_id=event.payment_id, event_id=event.event_id)


async def handle_payment_refunded(event: WebhookEvent) -> None:
    logger.info("payment_refunded", payment_id=event.payment_id, event_id=event.event_id)


async def handle_payment_approved(event: WebhookEvent) -> None:
    logger.info("payment_approved", payment_id=event.payment_id, event_id=event.event_id)


async def handle_unrecognized_event(event: WebhookEvent) -> None:
    logger.info("webhook_event_unhandled", event_type=event.event_type, event_id=event.event_id)


class WebhookDispatcher:
    """
    Routes verified events to per-type handlers.

    Usage:
        dispatcher = WebhookDispatcher()
        dispatcher.register("payment_captured", ship_order)
        await dispatcher.dispatch(event)
    """

    DEFAULT_HANDLERS: ClassVar[dict[str, EventHandler]] = {
        "payment_captured": handle_payment_captured,
        "payment_refunded": handle_payment_refunded,
        "payment_approved": handle_payment_approved,
    }

    def __init__(
        self,
        handlers: dict[str, EventHandler] | None = None,
        default_handler: EventHandler = handle_unrecognized_event,
    ) -> None:
        self.handlers: dict[str, EventHandler] = dict(self.DEFAULT_HANDLERS)
        if handlers:
            self.handlers.update(handlers)
        self.default_handler = default_handler

    def register(self, event_type: str, handler: EventHandler) -> None:
        self.handlers[event_type] = handler

    def handler_for(self, event_type: str) -> EventHandler:
        return self.handlers.get(event_type, self.default_handler)

    async def dispatch(self, event: WebhookEvent) -> None:
        await self.handler_for(event.event_type)(event)


class WebhookProcessor:
    """
    Verifies inbound deliveries and dispatches each event at most once.

    Usage:
        processor = WebhookProcessor(secret=settings.webhook_secret)
        outcome = await processor.process(raw_body, request.headers.get("cko-signature"))
    """

    def __init__(
        self,
        secret: str,
        dispatcher: WebhookDispatcher | None = None,
        store: ProcessedEventStore | None = None,
    ) -> None:
        if not secret:
            raise ValueError("webhook secret cannot be empty")
        self._secret = secret
        self.dispatcher = dispatcher or WebhookDispatcher()
        self.store = store or ProcessedEventStore()

    def verify(self, raw_body: bytes, signature: str | None) -> WebhookState:
        """
        Authenticate a delivery.

        Raises:
            WebhookVerificationError: If the signature is missing or does not match
        """
        try:
            verify_signature(raw_body, signature, self._secret)
        except WebhookVerificationError as exc:
            metrics.record_webhook("rejected")
            logger.warning(
                "webhook_signature_rejected",
                state=WebhookState.REJECTED.value,
                reason=exc.message,
                body_bytes=len(raw_body),
            )
            raise
        return WebhookState.VERIFIED

    async def process(self, raw_body: bytes, signature: str | None) -> WebhookOutcome:
        """
        Verify, parse and dispatch one delivery.

        Raises:
            WebhookVerificationError: If the signature is missing or does not match
        """
        state = self.verify(raw_body, signature)

        event = parse_event(raw_body)
        if event is None:
            metrics.record_webhook("unparseable")
            logger.warning("webhook_payload_unparseable", body_bytes=len(raw_body))
            return WebhookOutcome(state=state, status="unparseable")

        logger.info(
            "webhook_received",
            event_id=event.event_id,
            event_type=event.event_type,
            payment_id=event.payment_id,
        )

        while not self.store.claim(event.dedup_key):
            if self.store.is_in_flight(event.dedup_key):
                # Same event still being handled by another delivery
                logger.info(
                    "webhook_awaiting_in_flight_delivery",
                    event_id=event.event_id,
                    event_type=event.event_type,
                )
                await self.store.wait(event.dedup_key)
                continue
            metrics.record_webhook("duplicate", event.event_type)
            logger.info(
                "webhook_duplicate_ignored",
                event_id=event.event_id,
                event_type=event.event_type,
            )
            return WebhookOutcome(
                state=state,
                status="duplicate",
                event_id=event.event_id,
                event_type=event.event_type,
            )

        applied = False
        try:
            await self.dispatcher.dispatch(event)
            applied = True
        except Exception as exc:
            metrics.record_webhook("handler_failed", event.event_type)
            logger.error(
                "webhook_handler_failed",
                event_id=event.event_id,
                event_type=event.event_type,
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            return WebhookOutcome(
                state=state,
                status="handler_failed",
                event_id=event.event_id,
                event_type=event.event_type,
            )
        finally:
            if applied:
                self.store.complete(event.dedup_key)
            else:
                self.store.release(event.dedup_key)

        metrics.record_webhook("processed", event.event_type)
        return WebhookOutcome(
            state=state,
            status="processed",
            event_id=event.event_id,
            event_type=event.event_type,
        )
