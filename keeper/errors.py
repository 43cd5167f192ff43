"""Keeper error taxonomy.

Only ConfigError is fatal. Everything else is caught at the per-symbol or
per-position boundary, logged, and retried naturally on the next tick.
"""
from __future__ import annotations

import re
from typing import Optional

from config import ConfigError

# Error enum of the FlashPerp exchange contract (contracterror codes).
CONTRACT_ERRORS = {
    1: "NotInitialized",
    2: "AlreadyInitialized",
    3: "InsufficientCollateral",
    4: "PositionTooLarge",
    5: "InvalidAmount",
    6: "BelowMaintenanceMargin",
    7: "PositionNotFound",
    8: "Unauthorized",
    9: "Paused",
    10: "OracleUnavailable",
    11: "OracleStale",
    12: "InvalidSymbol",
    13: "ZeroAmount",
    14: "SelfLiquidation",
}

_CONTRACT_ERROR_RE = re.compile(r"Error\(Contract,\s*#(\d+)\)")


class KeeperError(Exception):
    """Base class for recoverable keeper errors."""


class DecodeError(KeeperError):
    """A remote value did not have the shape we expect."""


class OracleDecodeError(DecodeError):
    """The oracle returned a malformed Option<Price>."""


class OracleNoPriceError(DecodeError):
    """The oracle returned None: it has no price for this asset."""


class EventDecodeError(DecodeError):
    """A contract event's topics are not (name, trader, symbol)."""


class SimulationError(KeeperError):
    """The RPC rejected a simulated invocation.

    ``code``/``name`` are set when the rejection is a contract error
    (``Error(Contract, #N)``), e.g. code 7 ``PositionNotFound``.
    """

    def __init__(self, message: str, method: str = ""):
        self.raw = message
        self.method = method
        self.code = parse_contract_error_code(message)
        self.name = CONTRACT_ERRORS.get(self.code) if self.code is not None else None
        label = f"{self.name} (#{self.code})" if self.name else message
        super().__init__(f"{method} simulation failed: {label}" if method else f"simulation failed: {label}")


class SubmissionError(KeeperError):
    """sendTransaction did not accept the transaction."""

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        self.tx_hash = tx_hash
        super().__init__(message)


class ConfirmationTimeout(KeeperError):
    """The transaction was submitted but never left PENDING/NOT_FOUND in time.

    The transaction may still land; callers treat it as a failure and let the
    next tick re-read ground truth.
    """

    def __init__(self, tx_hash: str, waited: float):
        self.tx_hash = tx_hash
        self.waited = waited
        super().__init__(f"transaction {tx_hash} not confirmed after {waited:.0f}s")


def parse_contract_error_code(message: str) -> Optional[int]:
    match = _CONTRACT_ERROR_RE.search(message or "")
    return int(match.group(1)) if match else None


__all__ = [
    "CONTRACT_ERRORS",
    "ConfigError",
    "ConfirmationTimeout",
    "DecodeError",
    "EventDecodeError",
    "KeeperError",
    "OracleDecodeError",
    "OracleNoPriceError",
    "SimulationError",
    "SubmissionError",
    "parse_contract_error_code",
]
