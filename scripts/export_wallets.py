#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from modules.distribution.errors import DistributionValidationError
from modules.sources import generate_wallets, serialize_wallets_csv, serialize_wallets_json


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate recipient wallets and export their keypairs.")
    parser.add_argument("count", help="Number of wallets to generate (1..100)")
    parser.add_argument("--format", choices=("csv", "json"), default="csv")
    parser.add_argument("--output", help="Destination file; stdout when omitted")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        wallets = generate_wallets(args.count)
    except DistributionValidationError as error:
        print(f"[error] {error}", file=sys.stderr)
        return 2

    if args.format == "json":
        payload = serialize_wallets_json(wallets)
    else:
        payload = serialize_wallets_csv(wallets)

    if not args.output:
        print(payload)
        return 0

    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(payload, encoding="utf-8")
    print(f"[ok] wrote {len(wallets)} wallets to {output_path}")
    print("[warn] the file holds private keys; store it offline", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
