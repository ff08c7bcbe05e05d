"""Fetch and print the ledger state of one order."""

import argparse
import json

import httpx


def main() -> None:
    """CLI entrypoint for ledger lookups."""

    parser = argparse.ArgumentParser(description="Fetch a payment ledger row over HTTP.")
    parser.add_argument("order_id")
    parser.add_argument("--bridge-url", default="http://localhost:3000")
    parser.add_argument("--attempt", default=None)
    args = parser.parse_args()

    params = {"attempt": args.attempt} if args.attempt else None
    resp = httpx.get(f"{args.bridge_url}/payments/{args.order_id}", params=params, timeout=10.0)
    resp.raise_for_status()
    print(json.dumps(resp.json(), indent=2))


if __name__ == "__main__":
    main()
