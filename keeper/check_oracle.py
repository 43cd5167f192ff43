"""
Check Oracle - print the latest oracle prices the funding bot would use

Needs no secret key: simulations are paid by a throwaway testnet account
funded through friendbot (or FUNDING_SECRET_KEY's account when set).

Usage:
    python -m keeper.check_oracle                 # XLM, BTC, ETH
    python -m keeper.check_oracle --assets XLM,BTC
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time

from config import DEFAULT_ORACLE_CONTRACT, LOG_DATEFMT, LOG_FORMAT, load_ledger_config

from .errors import ConfigError, DecodeError
from .ledger_client import LedgerClient
from .oracle import OracleReader
from .schemas import DEC_P

logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Print latest oracle prices")
    parser.add_argument("--assets", "-a", default="XLM,BTC,ETH", help="Comma-separated oracle base assets")
    parser.add_argument("--oracle", default=os.getenv("ORACLE_CONTRACT", DEFAULT_ORACLE_CONTRACT))
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )

    try:
        ledger_cfg = load_ledger_config()
    except ConfigError as e:
        logger.critical(f"Fatal configuration error: {e}")
        return 1

    secret = os.getenv("FUNDING_SECRET_KEY") or os.getenv("SECRET_KEY") or None
    client = LedgerClient.from_config(ledger_cfg, secret)
    reader = OracleReader(client, args.oracle)

    failures = 0
    for asset in [a.strip().upper() for a in args.assets.split(",") if a.strip()]:
        try:
            price = reader.fetch_price(asset)
        except DecodeError as e:
            failures += 1
            print(f"{asset}: no price ({e})")
            continue
        except Exception as e:
            failures += 1
            print(f"{asset}: failed to fetch ({e})")
            continue

        age = time.time() - price.timestamp
        print(f"{asset} price: {price.price / DEC_P:.6f} ({price.price} @1e6, {age:.0f}s old)")

    print(f"Oracle decimals: {reader.cached_decimals if reader.cached_decimals is not None else 'unknown'}")
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
