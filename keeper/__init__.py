# FlashPerp keeper bots
#
# Two processes keep the perp exchange contract healthy:
# 1. funding_bot: pokes funding hourly from fresh oracle prices
# 2. liquidator_bot: scans positions and liquidates those under maintenance margin
#
# Both talk to Soroban RPC through LedgerClient.

from .errors import (
    ConfigError,
    ConfirmationTimeout,
    DecodeError,
    EventDecodeError,
    KeeperError,
    OracleDecodeError,
    OracleNoPriceError,
    SimulationError,
    SubmissionError,
)

from .schemas import (
    HealthCheck,
    HealthOutcome,
    OraclePrice,
    Position,
    PositionKey,
    PriceNone,
    PriceSome,
    TxResult,
)

from .ledger_client import LedgerClient, SubmissionGuard
from .oracle import OracleReader, decode_optional_price, rescale_price
from .funding_bot import FundingUpdater
from .health import PositionHealthEvaluator, margin_ratio_bp
from .liquidation import LiquidationExecutor
from .scanner import (
    CheckpointStore,
    EventScanner,
    FullSweepScanner,
    InMemoryCheckpointStore,
)
from .scheduler import PeriodicTask
from .watchlist import TraderRegistry
