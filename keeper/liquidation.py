"""
Liquidation Executor - submits liquidate(liquidator, trader, symbol)

Never raises: any failure is logged and reported as False. The position is
simply checked again on the next scan, and if a previous (timed-out) or
competing liquidation already closed it, the health check finds nothing to
do.
"""

from __future__ import annotations

import logging

from .errors import ConfirmationTimeout, SimulationError, SubmissionError
from .schemas import TxStatus
from . import scval

logger = logging.getLogger(__name__)


class LiquidationExecutor:

    def __init__(self, client, perp_contract_id: str):
        self.client = client
        self.perp_contract_id = perp_contract_id

    @property
    def liquidator_address(self) -> str:
        return self.client.public_key

    def liquidate(self, trader: str, symbol: str) -> bool:
        """True only when the liquidation transaction confirmed SUCCESS."""
        try:
            result = self.client.invoke(
                self.perp_contract_id,
                "liquidate",
                [scval.address(self.liquidator_address), scval.address(trader), scval.symbol(symbol)],
            )
        except SimulationError as e:
            # e.g. PositionNotFound when another liquidator got there first
            logger.error(f"[LIQUIDATE] ✗ Simulation rejected {trader}/{symbol}: {e}")
            return False
        except SubmissionError as e:
            logger.error(f"[LIQUIDATE] ✗ Submission failed for {trader}/{symbol}: {e}")
            return False
        except ConfirmationTimeout as e:
            logger.error(f"[LIQUIDATE] ✗ {trader}/{symbol}: {e}; will re-check on next scan")
            return False
        except Exception as e:
            logger.error(f"[LIQUIDATE] ✗ Error liquidating position {trader}/{symbol}: {e}")
            return False

        if result.status == TxStatus.DRY_RUN.value:
            logger.info(f"[LIQUIDATE] [DRY RUN] Would liquidate {trader}/{symbol}")
            return False
        if result.success:
            logger.info(f"[LIQUIDATE] ✓ Successfully liquidated position {trader}/{symbol} (tx {result.tx_hash})")
            return True

        logger.error(f"[LIQUIDATE] ✗ Liquidation of {trader}/{symbol} ended {result.error} (tx {result.tx_hash})")
        return False
