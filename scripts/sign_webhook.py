#!/usr/bin/env python3
"""
Sign a webhook payload the way the payment provider does.

Prints the cko-signature header value for a payload so the /webhook endpoint
can be exercised locally:

    python scripts/sign_webhook.py --secret "$WEBHOOK_SECRET" --file event.json
    curl -X POST localhost:3000/webhook -H "cko-signature: <output>" --data-binary @event.json
"""

import argparse
import json
import os
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from storefront.services.signatures import compute_signature


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Compute the cko-signature for a webhook body")
    parser.add_argument(
        "--secret",
        default=os.environ.get("WEBHOOK_SECRET", ""),
        help="Webhook signing secret (defaults to $WEBHOOK_SECRET)",
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--file", type=Path, help="File holding the exact body bytes")
    source.add_argument("--payload", help="Body given inline")
    args = parser.parse_args(argv)

    if not args.secret:
        print("Error: a secret is required (--secret or WEBHOOK_SECRET)", file=sys.stderr)
        return 1

    raw_body = args.file.read_bytes() if args.file else args.payload.encode("utf-8")

    try:
        json.loads(raw_body)
    except ValueError:
        print(
            "Warning: payload is not valid JSON; it will be acknowledged as unparseable",
            file=sys.stderr,
        )

    print(compute_signature(raw_body, args.secret))
    return 0


if __name__ == "__main__":
    sys.exit(main())
