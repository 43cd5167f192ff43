"""
Liquidator Bot - watches positions and liquidates those under maintenance margin

Two periodic tasks, each on its own thread:
- event scan  (EVENT_SCAN_INTERVAL_SECONDS, default 10s): positions touched
  by recent OPEN / CLOSE / PositionUpdated events
- full sweep  (FULL_SCAN_INTERVAL_SECONDS, default 60s): every watched trader
  in every market; runs once at startup

Usage:
    python -m keeper.liquidator_bot
    python -m keeper.liquidator_bot --once       # one sweep + one event scan
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass

from config import LOG_DATEFMT, LOG_FORMAT, LOG_LEVEL, load_liquidator_config

from .errors import ConfigError
from .health import PositionHealthEvaluator
from .ledger_client import LedgerClient, submissions
from .liquidation import LiquidationExecutor
from .scanner import EventScanner, FullSweepScanner, InMemoryCheckpointStore
from .scheduler import PeriodicTask, run_until_shutdown
from .watchlist import TraderRegistry

logger = logging.getLogger(__name__)


@dataclass
class LiquidatorBot:
    """The liquidator's components, wired together."""
    client: LedgerClient
    evaluator: PositionHealthEvaluator
    registry: TraderRegistry
    event_scanner: EventScanner
    full_sweep: FullSweepScanner

    def tasks(self, event_interval: float, sweep_interval: float) -> list:
        return [
            PeriodicTask("full-sweep", sweep_interval, self.full_sweep.sweep, run_immediately=True),
            PeriodicTask("event-scan", event_interval, self.event_scanner.scan, run_immediately=True),
        ]


def build_bot(cfg, client: LedgerClient = None) -> LiquidatorBot:
    client = client or LedgerClient.from_config(cfg.ledger, cfg.secret_key)
    executor = LiquidationExecutor(client, cfg.perp_contract)
    evaluator = PositionHealthEvaluator(client, cfg.perp_contract, executor, mmr_bp=cfg.mmr_bp)
    registry = TraderRegistry.from_sources(cfg.watch_traders, cfg.watchlist_file)

    event_scanner = EventScanner(
        client,
        cfg.perp_contract,
        evaluator,
        checkpoints=InMemoryCheckpointStore(),
        registry=registry,
        lookback=cfg.event_lookback_ledgers,
        page_limit=cfg.event_page_limit,
        max_pages=cfg.event_max_pages,
    )
    full_sweep = FullSweepScanner(evaluator, registry, cfg.symbols)
    return LiquidatorBot(client, evaluator, registry, event_scanner, full_sweep)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="FlashPerp liquidator bot")
    parser.add_argument("--once", action="store_true", help="Run one full sweep and one event scan, then exit")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else LOG_LEVEL,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )

    try:
        cfg = load_liquidator_config()
        bot = build_bot(cfg)
    except (ConfigError, ValueError) as e:
        logger.critical(f"Fatal configuration error: {e}")
        return 1

    logger.info("=" * 50)
    logger.info("Starting FlashPerp liquidator bot")
    logger.info(f"  Perp contract:      {cfg.perp_contract}")
    logger.info(f"  Liquidator address: {bot.client.public_key}")
    logger.info(f"  Markets:            {', '.join(cfg.symbols)}")
    logger.info(f"  Maintenance margin: {cfg.mmr_bp} bp")
    logger.info(f"  Watched traders:    {len(bot.registry)}")
    logger.info(f"  Event scan every:   {cfg.event_scan_interval_seconds}s")
    logger.info(f"  Full sweep every:   {cfg.full_scan_interval_seconds}s")
    logger.info(f"  Mode:               {'DRY RUN' if cfg.ledger.dry_run else 'LIVE'}")
    logger.info("=" * 50)

    if args.once:
        bot.full_sweep.sweep()
        try:
            bot.event_scanner.scan()
        except Exception as e:
            logger.error(f"[SCAN] Error scanning events: {e}")
        return 0

    run_until_shutdown(
        bot.tasks(cfg.event_scan_interval_seconds, cfg.full_scan_interval_seconds),
        submissions=submissions,
    )
    logger.info("Liquidator bot stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
