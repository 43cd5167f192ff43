"""
Funding Bot - Periodic funding pokes from fresh oracle prices

Every tick (hourly by default, first tick at startup), for each market:
1. Read the oracle price for the market's base asset
2. Skip the market if the price is older than ORACLE_MAX_AGE_SECONDS
3. Submit poke_funding(symbol) and wait for confirmation

Markets are processed one after another; a failure on one never stops the
others.

Usage:
    python -m keeper.funding_bot             # run forever
    python -m keeper.funding_bot --once      # one tick, then exit
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from typing import Callable, Dict, List

from config import LOG_DATEFMT, LOG_FORMAT, LOG_LEVEL, load_funding_config

from .errors import ConfigError, ConfirmationTimeout, DecodeError, SimulationError
from .ledger_client import LedgerClient, submissions
from .oracle import OracleReader
from .scheduler import PeriodicTask, run_until_shutdown
from .schemas import TxStatus
from . import scval

logger = logging.getLogger(__name__)

# Per-symbol outcomes of one tick
STATUS_OK = "ok"
STATUS_FAILED = "failed"
STATUS_DRY_RUN = "dry_run"
STATUS_STALE = "stale"
STATUS_NO_PRICE = "no_price"
STATUS_ERROR = "error"

DEFAULT_MAX_PRICE_AGE = 900


def oracle_asset_for(symbol: str, quote_suffix: str = "USD") -> str:
    """Market symbol → oracle base asset (``XLMUSD`` → ``XLM``)."""
    if quote_suffix and symbol.endswith(quote_suffix) and len(symbol) > len(quote_suffix):
        return symbol[: -len(quote_suffix)]
    return symbol


def is_stale(timestamp: int, now: float, max_age: int = DEFAULT_MAX_PRICE_AGE) -> bool:
    """Strict: a price exactly ``max_age`` seconds old is still fresh."""
    return now - timestamp > max_age


class FundingUpdater:
    """Pokes funding for each configured market from the oracle price."""

    def __init__(
        self,
        client: LedgerClient,
        oracle: OracleReader,
        perp_contract_id: str,
        symbols: List[str],
        max_price_age: int = DEFAULT_MAX_PRICE_AGE,
        quote_suffix: str = "USD",
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self.oracle = oracle
        self.perp_contract_id = perp_contract_id
        self.symbols = list(symbols)
        self.max_price_age = max_price_age
        self.quote_suffix = quote_suffix
        self.clock = clock

    def poke(self, symbol: str) -> str:
        result = self.client.invoke(self.perp_contract_id, "poke_funding", [scval.symbol(symbol)])
        if result.status == TxStatus.DRY_RUN.value:
            return STATUS_DRY_RUN
        if result.success:
            logger.info(f"[FUNDING] ✓ Funding poked for {symbol} (tx {result.tx_hash})")
            return STATUS_OK
        logger.error(f"[FUNDING] ✗ poke_funding for {symbol} ended {result.error} (tx {result.tx_hash})")
        return STATUS_FAILED

    def update_symbol(self, symbol: str) -> str:
        asset = oracle_asset_for(symbol, self.quote_suffix)

        try:
            price = self.oracle.fetch_price(asset)
        except DecodeError as e:
            logger.warning(f"[FUNDING] No usable oracle price for {symbol} ({asset}): {e}")
            return STATUS_NO_PRICE
        except Exception as e:
            logger.error(f"[FUNDING] Oracle read failed for {symbol} ({asset}): {e}")
            return STATUS_NO_PRICE

        now = self.clock()
        if is_stale(price.timestamp, now, self.max_price_age):
            logger.warning(
                f"[FUNDING] Oracle price for {symbol} is stale "
                f"({price.age(now):.0f}s old > {self.max_price_age}s), skip"
            )
            return STATUS_STALE

        logger.info(f"[FUNDING] {symbol} oracle price: {price.price} (1e6), {price.age(now):.0f}s old")

        try:
            return self.poke(symbol)
        except SimulationError as e:
            logger.error(f"[FUNDING] ✗ {e}")
        except ConfirmationTimeout as e:
            logger.error(f"[FUNDING] ✗ poke_funding for {symbol}: {e}; will re-check next tick")
        except Exception as e:
            logger.error(f"[FUNDING] ✗ Failed to update funding for {symbol}: {e}")
        return STATUS_ERROR

    def tick(self) -> Dict[str, str]:
        logger.info(f"[FUNDING] Running funding update for {len(self.symbols)} market(s)...")
        results: Dict[str, str] = {}
        for symbol in self.symbols:
            try:
                results[symbol] = self.update_symbol(symbol)
            except Exception as e:
                logger.exception(f"[FUNDING] Error processing {symbol}: {e}")
                results[symbol] = STATUS_ERROR

        summary = " | ".join(f"{s}: {r}" for s, r in results.items())
        logger.info(f"[FUNDING] Tick done - {summary}")
        return results


def build_updater(cfg) -> FundingUpdater:
    client = LedgerClient.from_config(cfg.ledger, cfg.secret_key)
    oracle = OracleReader(client, cfg.oracle_contract, default_decimals=cfg.default_oracle_decimals)
    return FundingUpdater(
        client=client,
        oracle=oracle,
        perp_contract_id=cfg.perp_contract,
        symbols=cfg.symbols,
        max_price_age=cfg.max_price_age_seconds,
        quote_suffix=cfg.quote_suffix,
    )


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="FlashPerp funding bot")
    parser.add_argument("--once", action="store_true", help="Run one tick and exit")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else LOG_LEVEL,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )

    try:
        cfg = load_funding_config()
    except ConfigError as e:
        logger.critical(f"Fatal configuration error: {e}")
        return 1

    updater = build_updater(cfg)

    logger.info("=" * 50)
    logger.info("Starting FlashPerp funding bot")
    logger.info(f"  Oracle contract: {cfg.oracle_contract}")
    logger.info(f"  Perp contract:   {cfg.perp_contract}")
    logger.info(f"  Signer:          {updater.client.public_key}")
    logger.info(f"  Markets:         {', '.join(cfg.symbols)}")
    logger.info(f"  Interval:        {cfg.interval_seconds}s")
    logger.info(f"  Max price age:   {cfg.max_price_age_seconds}s")
    logger.info(f"  Mode:            {'DRY RUN' if cfg.ledger.dry_run else 'LIVE'}")
    logger.info("=" * 50)

    if args.once:
        updater.tick()
        return 0

    task = PeriodicTask("funding", cfg.interval_seconds, updater.tick, run_immediately=True)
    run_until_shutdown([task], submissions=submissions)
    logger.info("Funding bot stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
