"""Compute gateway signatures for manual verification and webhook testing.

Examples:
    python scripts/sign_payment.py payment --order-id order_1 --payment-id pay_1 --secret s3cret
    python scripts/sign_payment.py webhook --file event.json --secret whsec
"""

import argparse
from pathlib import Path

from payrelay.common.signatures import compute_payment_signature, compute_webhook_signature


def main() -> None:
    """Parse CLI args and print the hex signature."""

    parser = argparse.ArgumentParser(description="Compute payment or webhook HMAC signatures.")
    sub = parser.add_subparsers(dest="kind", required=True)

    payment = sub.add_parser("payment", help="Checkout signature over order_id|payment_id")
    payment.add_argument("--order-id", required=True)
    payment.add_argument("--payment-id", required=True)
    payment.add_argument("--secret", required=True, help="Gateway key secret")

    webhook = sub.add_parser("webhook", help="Webhook signature over a raw JSON body")
    webhook.add_argument("--json", dest="json_inline", default=None, help="Inline raw body")
    webhook.add_argument("--file", dest="json_file", default=None, help="Path to raw body file")
    webhook.add_argument("--secret", required=True, help="Webhook secret")
    args = parser.parse_args()

    if args.kind == "payment":
        print(compute_payment_signature(args.order_id, args.payment_id, args.secret))
        return

    if bool(args.json_inline) == bool(args.json_file):
        raise SystemExit("Provide exactly one of --json or --file")
    raw = args.json_inline.encode("utf-8") if args.json_inline else Path(args.json_file).read_bytes()
    print(compute_webhook_signature(raw, args.secret))


if __name__ == "__main__":
    main()
