"""
Request references sent to the payment provider.

The provider treats the reference as a merchant-side identifier, so two
concurrent requests must never share one. A millisecond timestamp alone
collides under load; each reference also carries random bits.
"""

import secrets
import time

RANDOM_SUFFIX_BYTES = 6


def _suffix() -> str:
    return f"{time.time_ns() // 1_000_000}-{secrets.token_hex(RANDOM_SUFFIX_BYTES)}"


def order_reference() -> str:
    """Reference for a payment session, e.g. ORD-1718000000000-9f86d081884c."""
    return f"ORD-{_suffix()}"


def refund_reference(payment_id: str) -> str:
    """Reference for a refund attempt on payment_id."""
    return f"REF-{payment_id}-{_suffix()}"
