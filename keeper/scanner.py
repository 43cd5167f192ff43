"""
Position Scanners - which positions the liquidator looks at, and when

EventScanner (every few seconds)
    Reads exchange events since the last checkpoint, pulls (trader, symbol)
    out of OPEN / CLOSE / PositionUpdated topics and health-checks those
    positions. The checkpoint only moves after the events were fetched, so a
    failed query retries the same range on the next tick.

FullSweepScanner (every minute or so)
    Health-checks every known trader × every market, whether or not an event
    was seen. Backstop for anything the event scan missed or could not decode.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .errors import DecodeError, EventDecodeError
from .schemas import HealthOutcome, PositionKey
from . import scval

logger = logging.getLogger(__name__)

POSITION_EVENT_TOPICS = ("PositionUpdated", "OPEN", "CLOSE")
DEFAULT_LOOKBACK_LEDGERS = 100


# ═══════════════════════════════════════════════════════════════════════════════
# CHECKPOINT STATE
# ═══════════════════════════════════════════════════════════════════════════════

class CheckpointStore:
    """Where the event scanner keeps its last checked ledger."""

    def get(self) -> Optional[int]:
        raise NotImplementedError

    def set(self, ledger: int) -> None:
        raise NotImplementedError


class InMemoryCheckpointStore(CheckpointStore):
    """Process-local checkpoint. Lost on restart; the scan then starts from the look-back window."""

    def __init__(self, ledger: Optional[int] = None):
        self._ledger = ledger

    def get(self) -> Optional[int]:
        return self._ledger

    def set(self, ledger: int) -> None:
        self._ledger = int(ledger)


# ═══════════════════════════════════════════════════════════════════════════════
# EVENT DECODING
# ═══════════════════════════════════════════════════════════════════════════════

def decode_position_topics(topics: Sequence, names: Iterable[str] = POSITION_EVENT_TOPICS) -> PositionKey:
    """Topics ``[Symbol(name), Address(trader), Symbol(market)]`` → PositionKey."""
    if not topics or len(topics) < 3:
        raise EventDecodeError(f"expected 3 topics, got {len(topics or [])}")

    try:
        name = scval.to_native(topics[0])
        trader = scval.to_native(topics[1])
        symbol = scval.to_native(topics[2])
    except DecodeError as e:
        raise EventDecodeError(str(e)) from e
    except Exception as e:
        # e.g. a map topic with an unhashable key
        raise EventDecodeError(f"undecodable topics: {type(e).__name__}: {e}") from e

    if name not in tuple(names):
        raise EventDecodeError(f"not a position event: {name!r}")
    if not isinstance(trader, str) or not trader:
        raise EventDecodeError(f"trader topic is not an address: {trader!r}")
    if not isinstance(symbol, str) or not symbol:
        raise EventDecodeError(f"symbol topic is not a symbol: {symbol!r}")
    return PositionKey(trader, symbol)


# ═══════════════════════════════════════════════════════════════════════════════
# SCANNERS
# ═══════════════════════════════════════════════════════════════════════════════

class EventScanner:
    """Incremental scan: new position events since the checkpoint → health checks."""

    def __init__(
        self,
        client,
        perp_contract_id: str,
        evaluator,
        checkpoints: Optional[CheckpointStore] = None,
        registry=None,
        topics: Sequence[str] = POSITION_EVENT_TOPICS,
        lookback: int = DEFAULT_LOOKBACK_LEDGERS,
        page_limit: int = 100,
        max_pages: int = 10,
    ):
        self.client = client
        self.perp_contract_id = perp_contract_id
        self.evaluator = evaluator
        self.checkpoints = checkpoints or InMemoryCheckpointStore()
        self.registry = registry
        self.topics = tuple(topics)
        self.topic_filters = scval.topic_filter(self.topics)
        self.lookback = lookback
        self.page_limit = page_limit
        self.max_pages = max_pages

    def fetch_events(self, start_ledger: int) -> Tuple[list, bool]:
        """All matching events from ``start_ledger``, following cursors.

        Returns (events, complete); ``complete`` is False when max_pages was hit
        with more events still pending.
        """
        events: list = []
        cursor = None
        for _ in range(self.max_pages):
            page = self.client.get_events(
                contract_ids=[self.perp_contract_id],
                topics=self.topic_filters,
                start_ledger=start_ledger if cursor is None else None,
                cursor=cursor,
                limit=self.page_limit,
            )
            events.extend(page)
            if len(page) < self.page_limit:
                return events, True
            cursor = page[-1].id
        return events, False

    def extract_positions(self, events: list) -> List[PositionKey]:
        keys: Dict[PositionKey, None] = {}
        for event in events:
            try:
                key = decode_position_topics(event.topic, self.topics)
            except EventDecodeError as e:
                logger.debug(f"[SCAN] Ignoring event {getattr(event, 'id', '?')}: {e}")
                continue
            keys.setdefault(key, None)
        return list(keys)

    def scan(self) -> int:
        """One incremental pass. Returns the number of positions checked.

        Raises if the ledger or event query fails; the checkpoint is then left
        where it was.
        """
        current = self.client.latest_ledger()
        start = self.checkpoints.get()
        if start is None:
            start = max(1, current - self.lookback)
            self.checkpoints.set(start)
            logger.info(f"[SCAN] Starting event scan at ledger {start} ({self.lookback} ledgers back)")

        events, complete = self.fetch_events(start)
        positions = self.extract_positions(events)

        for key in positions:
            if self.registry is not None:
                self.registry.add(key.trader)
            logger.info(f"[SCAN] Checking position after event: {key}")
            try:
                self.evaluator.evaluate(key.trader, key.symbol)
            except Exception as e:
                logger.error(f"[SCAN] Error processing event for {key}: {e}")

        if complete:
            self.checkpoints.set(current)
        else:
            # Resume from where the page cap stopped us. A single ledger with
            # more events than the cap would never progress, so skip past it.
            resume = int(events[-1].ledger)
            if resume <= start:
                resume = current
            self.checkpoints.set(resume)
            logger.warning(
                f"[SCAN] Page cap ({self.max_pages} x {self.page_limit}) reached, "
                f"resuming from ledger {resume} next tick"
            )

        if events:
            logger.info(f"[SCAN] Ledgers {start}..{current}: {len(events)} event(s), {len(positions)} position(s)")
        else:
            logger.debug(f"[SCAN] Ledgers {start}..{current}: no position events")
        return len(positions)


class FullSweepScanner:
    """Health-checks every known trader in every market."""

    def __init__(self, evaluator, registry, symbols: Sequence[str]):
        self.evaluator = evaluator
        self.registry = registry
        self.symbols = list(symbols)

    def sweep(self) -> Dict[str, int]:
        stats = {"checked": 0, "liquidated": 0, "failed": 0, "errors": 0}
        traders = self.registry.snapshot()
        logger.info(f"[SWEEP] Scanning {len(traders)} trader(s) x {len(self.symbols)} market(s)...")

        for trader in traders:
            for symbol in self.symbols:
                try:
                    check = self.evaluator.evaluate(trader, symbol)
                except Exception as e:
                    stats["errors"] += 1
                    logger.error(f"[SWEEP] Error checking {trader}/{symbol}: {e}")
                    continue

                stats["checked"] += 1
                if check.outcome == HealthOutcome.LIQUIDATED:
                    stats["liquidated"] += 1
                elif check.outcome in (HealthOutcome.LIQUIDATION_FAILED, HealthOutcome.READ_FAILED):
                    stats["failed"] += 1

        logger.info(
            f"[SWEEP] Checked {stats['checked']} | Liquidated {stats['liquidated']} | "
            f"Failed {stats['failed']} | Errors {stats['errors']}"
        )
        return stats
