"""
Keeper Schemas - Snapshots of contract state and pipeline outcomes

All of these are transient: they are rebuilt from the chain on every tick
and never written back anywhere.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple, Optional, Union


# Fixed-point scale of prices and sizes in the exchange contract (1e6).
PRICE_DECIMALS = 6
DEC_P = 10 ** PRICE_DECIMALS

# Ratios are expressed in basis points out of 10_000 (= 100%).
BP_DENOMINATOR = 10_000


@dataclass(frozen=True)
class Position:
    """One trader's open exposure in one market (contract `Position`)."""
    size: int            # signed: > 0 long, < 0 short
    notional: int
    margin: int
    funding_index: int = 0

    @property
    def is_open(self) -> bool:
        return self.size != 0

    @property
    def side(self) -> str:
        if self.size > 0:
            return "LONG"
        if self.size < 0:
            return "SHORT"
        return "FLAT"

    @classmethod
    def from_native(cls, data: dict) -> "Position":
        """Build from the decoded contract struct (keys are field names)."""
        return cls(
            size=int(data.get("size", 0) or 0),
            notional=int(data.get("notional", 0) or 0),
            margin=int(data.get("margin", 0) or 0),
            funding_index=int(data.get("funding_index", 0) or 0),
        )


@dataclass(frozen=True)
class OraclePrice:
    """Oracle price rescaled to 6 decimals, with its publish time (Unix seconds)."""
    price: int
    timestamp: int

    def age(self, now: float) -> float:
        return now - self.timestamp


# ═══════════════════════════════════════════════════════════════════════════════
# Option<Price> as a tagged variant
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class PriceNone:
    """The oracle has no price for the asset."""


@dataclass(frozen=True)
class PriceSome:
    """Raw oracle price (oracle-native decimals) and its timestamp."""
    price: int
    timestamp: int


OptionalPrice = Union[PriceNone, PriceSome]


class PositionKey(NamedTuple):
    trader: str
    symbol: str

    def __str__(self) -> str:
        return f"{self.trader}/{self.symbol}"


class TxStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    DRY_RUN = "DRY_RUN"


@dataclass
class TxResult:
    """Outcome of one simulate → prepare → sign → submit → confirm run."""
    status: str
    tx_hash: Optional[str] = None
    ledger: Optional[int] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == TxStatus.SUCCESS.value


class HealthOutcome(str, Enum):
    NO_POSITION = "no_position"
    READ_FAILED = "read_failed"
    MARK_UNAVAILABLE = "mark_unavailable"
    HEALTHY = "healthy"
    LIQUIDATED = "liquidated"
    LIQUIDATION_FAILED = "liquidation_failed"


@dataclass
class HealthCheck:
    """Result of evaluating one (trader, symbol) position."""
    trader: str
    symbol: str
    outcome: HealthOutcome
    margin_ratio_bp: Optional[int] = None
    mark_price: Optional[int] = None

    @property
    def liquidation_attempted(self) -> bool:
        return self.outcome in (HealthOutcome.LIQUIDATED, HealthOutcome.LIQUIDATION_FAILED)
