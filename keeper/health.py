"""
Position Health - margin ratio check for one (trader, symbol) position

    current_notional = |size| * mark_price / 1e6
    margin_ratio_bp  = 10_000                                 if current_notional == 0
                     = margin * 10_000 / current_notional     otherwise

Integer math with truncation toward zero, matching the contract. A position
below the maintenance ratio (MMR_BP) is handed to the liquidation executor.

If the mark price cannot be read the position is left alone: we never
liquidate on data we could not verify.
"""

from __future__ import annotations

import logging
from typing import Optional

from .schemas import BP_DENOMINATOR, DEC_P, HealthCheck, HealthOutcome, Position
from . import scval

logger = logging.getLogger(__name__)

DEFAULT_MMR_BP = 1000  # 10%


def _div_trunc(a: int, b: int) -> int:
    """Integer division rounding toward zero (Rust i128 semantics)."""
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b > 0) else -q


def current_notional(size: int, mark_price: int) -> int:
    return _div_trunc(abs(size) * mark_price, DEC_P)


def margin_ratio_bp(size: int, margin: int, mark_price: int) -> int:
    notional = current_notional(size, mark_price)
    if notional == 0:
        return BP_DENOMINATOR
    return _div_trunc(margin * BP_DENOMINATOR, notional)


def is_liquidatable(ratio_bp: int, mmr_bp: int = DEFAULT_MMR_BP) -> bool:
    return ratio_bp < mmr_bp


class PositionHealthEvaluator:
    """Reads a position and its mark price and liquidates when under MMR."""

    def __init__(self, client, perp_contract_id: str, liquidator, mmr_bp: int = DEFAULT_MMR_BP):
        self.client = client
        self.perp_contract_id = perp_contract_id
        self.liquidator = liquidator
        self.mmr_bp = mmr_bp

    def get_position(self, trader: str, symbol: str) -> Optional[Position]:
        raw = self.client.simulate(
            self.perp_contract_id,
            "get_position",
            [scval.address(trader), scval.symbol(symbol)],
        )
        if raw is None:
            return None
        if not isinstance(raw, dict):
            raise ValueError(f"unexpected get_position result: {raw!r}")
        return Position.from_native(raw)

    def get_mark_price(self, symbol: str) -> Optional[int]:
        """Mark price at 1e6, or None when it can't be read."""
        try:
            raw = self.client.simulate(self.perp_contract_id, "get_mark_price_view", [scval.symbol(symbol)])
        except Exception as e:
            logger.warning(f"[HEALTH] Could not fetch mark price for {symbol}: {e}")
            return None
        if isinstance(raw, bool) or not isinstance(raw, int) or raw <= 0:
            logger.warning(f"[HEALTH] Unusable mark price for {symbol}: {raw!r}")
            return None
        return raw

    def evaluate(self, trader: str, symbol: str) -> HealthCheck:
        try:
            position = self.get_position(trader, symbol)
        except Exception as e:
            logger.error(f"[HEALTH] Error fetching position for {trader}/{symbol}: {e}")
            return HealthCheck(trader, symbol, HealthOutcome.READ_FAILED)

        if position is None or not position.is_open:
            return HealthCheck(trader, symbol, HealthOutcome.NO_POSITION)

        mark_price = self.get_mark_price(symbol)
        if mark_price is None:
            return HealthCheck(trader, symbol, HealthOutcome.MARK_UNAVAILABLE)

        ratio = margin_ratio_bp(position.size, position.margin, mark_price)
        logger.info(
            f"[HEALTH] Position {trader}/{symbol} {position.side} size={position.size} "
            f"- Margin ratio: {ratio}/{BP_DENOMINATOR}"
        )

        if not is_liquidatable(ratio, self.mmr_bp):
            return HealthCheck(trader, symbol, HealthOutcome.HEALTHY, ratio, mark_price)

        logger.warning(f"[HEALTH] ⚠️ Position {trader}/{symbol} is below maintenance margin ({ratio} < {self.mmr_bp} bp)")
        if self.liquidator.liquidate(trader, symbol):
            return HealthCheck(trader, symbol, HealthOutcome.LIQUIDATED, ratio, mark_price)
        return HealthCheck(trader, symbol, HealthOutcome.LIQUIDATION_FAILED, ratio, mark_price)
