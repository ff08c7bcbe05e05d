"""Recompute the hash of a hosted-page URL and report whether it matches."""

import argparse
import json
from urllib.parse import parse_qsl, urlsplit

from paybridge.common.hosted_page import HostedPageBuilder


def main() -> None:
    """CLI entrypoint for hosted-page hash reconciliation."""

    parser = argparse.ArgumentParser(description="Verify the signed fields of a hosted-page redirect URL.")
    parser.add_argument("url")
    parser.add_argument("--secret", required=True)
    parser.add_argument("--encoding", default="base64", choices=["base64", "hex"])
    args = parser.parse_args()

    params = dict(parse_qsl(urlsplit(args.url).query, keep_blank_values=True))
    builder = HostedPageBuilder(encoding=args.encoding)
    ok = builder.verify_hash(params, args.secret, params.get("hash"))
    signed = {key: params.get(key) for key in ("id", "merch", "amount", "purchase", "time")}
    print(json.dumps({"valid": ok, "signed": signed}, indent=2))
    raise SystemExit(0 if ok else 1)


if __name__ == "__main__":
    main()
