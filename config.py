"""Keeper configuration.

Every setting comes from the environment (a ``.env`` file at the project
root is loaded first, without overriding variables that are already set).
Settings are grouped per bot into NamedTuples built by the ``load_*``
functions, which read the environment at call time so a bot validates its
own required secrets at startup and nothing else.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import List, NamedTuple, Optional

DEFAULT_RPC_URL = "https://soroban-testnet.stellar.org"
TESTNET_PASSPHRASE = "Test SDF Network ; September 2015"
# Reflector oracle on testnet
DEFAULT_ORACLE_CONTRACT = "CCYOZJCOPG34LLQQ7N24YXBM7LL62R7ONMZ3G6WZAAYPB5OYKOMJRN63"
DEFAULT_SYMBOLS = ["XLMUSD", "BTCUSD", "ETHUSD"]


class ConfigError(ValueError):
    """Missing or malformed required configuration. Fatal at startup."""


def _strip_inline_comment(raw_value: str) -> str:
    # Remove trailing inline comments like: VALUE  # comment
    # Preserve literal '#' when not preceded by whitespace.
    in_single = False
    in_double = False
    for i, ch in enumerate(raw_value):
        if ch == "'" and not in_double:
            in_single = not in_single
        elif ch == '"' and not in_single:
            in_double = not in_double
        elif ch == "#" and not in_single and not in_double:
            if i == 0 or raw_value[i - 1].isspace():
                return raw_value[:i].rstrip()
    return raw_value.strip()


def load_env_file(path: Path) -> int:
    """Load KEY=VALUE lines from ``path`` into os.environ. Returns count set."""
    if not path.exists():
        return 0

    loaded = 0
    with open(path, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue

            if line.startswith("export "):
                line = line[len("export "):].lstrip()

            if "=" not in line:
                continue

            key, _, value = line.partition("=")
            key = key.strip()
            value = _strip_inline_comment(value.strip())

            if len(value) >= 2 and ((value[0] == value[-1] == '"') or (value[0] == value[-1] == "'")):
                value = value[1:-1]

            if key and key not in os.environ:
                os.environ[key] = value
                loaded += 1
    return loaded


load_env_file(Path(__file__).parent / ".env")


# ─────────────────────────────────────────────────────────────
# Typed environment helpers
# ─────────────────────────────────────────────────────────────

def _str(name: str, default: str = "") -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigError(f"Environment variable {name} must be a float, got {value!r}")


def _int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"Environment variable {name} must be an int, got {value!r}")


def _bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes"}


def _list(name: str, default: List[str]) -> List[str]:
    value = os.getenv(name)
    if value is None:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


def _required(name: str, *fallbacks: str) -> str:
    for key in (name,) + fallbacks:
        value = _str(key)
        if value:
            return value
    raise ConfigError(f"{name} environment variable is required")


def _validate_secret(name: str, secret: str) -> str:
    from stellar_sdk import Keypair

    try:
        Keypair.from_secret(secret)
    except ValueError:
        # Never echo the secret itself.
        raise ConfigError(f"{name} is not a valid Stellar secret seed")
    return secret


# ─────────────────────────────────────────────────────────────
# Grouped settings
# ─────────────────────────────────────────────────────────────

class LedgerConfig(NamedTuple):
    """Connection and transaction pipeline settings shared by both bots."""
    rpc_url: str
    network_passphrase: str
    base_fee: int
    tx_timeout_seconds: int
    poll_interval_seconds: float
    dry_run: bool


class FundingBotConfig(NamedTuple):
    ledger: LedgerConfig
    secret_key: str
    perp_contract: str
    oracle_contract: str
    symbols: List[str]
    quote_suffix: str
    interval_seconds: int
    max_price_age_seconds: int
    default_oracle_decimals: int


class LiquidatorBotConfig(NamedTuple):
    ledger: LedgerConfig
    secret_key: str
    perp_contract: str
    symbols: List[str]
    mmr_bp: int
    event_scan_interval_seconds: int
    full_scan_interval_seconds: int
    event_lookback_ledgers: int
    event_page_limit: int
    event_max_pages: int
    watch_traders: List[str]
    watchlist_file: Optional[str]


def load_ledger_config() -> LedgerConfig:
    cfg = LedgerConfig(
        rpc_url=_str("RPC_URL", DEFAULT_RPC_URL),
        network_passphrase=_str("NETWORK_PASSPHRASE", TESTNET_PASSPHRASE),
        base_fee=_int("BASE_FEE", 100),
        tx_timeout_seconds=_int("TX_TIMEOUT_SECONDS", 300),
        poll_interval_seconds=_float("TX_POLL_INTERVAL_SECONDS", 1.0),
        dry_run=_bool("KEEPER_DRY_RUN", False),
    )
    if cfg.tx_timeout_seconds <= 0:
        raise ConfigError("TX_TIMEOUT_SECONDS must be positive")
    if cfg.poll_interval_seconds <= 0:
        raise ConfigError("TX_POLL_INTERVAL_SECONDS must be positive")
    return cfg


def load_funding_config() -> FundingBotConfig:
    """Build the funding bot settings, raising ConfigError on anything missing."""
    secret = _validate_secret("FUNDING_SECRET_KEY", _required("FUNDING_SECRET_KEY", "SECRET_KEY"))
    symbols = _list("SYMBOLS", DEFAULT_SYMBOLS)
    if not symbols:
        raise ConfigError("SYMBOLS must list at least one market symbol")

    cfg = FundingBotConfig(
        ledger=load_ledger_config(),
        secret_key=secret,
        perp_contract=_required("PERP_CONTRACT"),
        oracle_contract=_str("ORACLE_CONTRACT", DEFAULT_ORACLE_CONTRACT),
        symbols=symbols,
        quote_suffix=_str("ORACLE_QUOTE_SUFFIX", "USD"),
        interval_seconds=_int("FUNDING_INTERVAL_SECONDS", 3600),
        max_price_age_seconds=_int("ORACLE_MAX_AGE_SECONDS", 900),
        default_oracle_decimals=_int("ORACLE_DEFAULT_DECIMALS", 14),
    )
    if cfg.interval_seconds <= 0:
        raise ConfigError("FUNDING_INTERVAL_SECONDS must be positive")
    return cfg


def load_liquidator_config() -> LiquidatorBotConfig:
    """Build the liquidator bot settings, raising ConfigError on anything missing."""
    secret = _validate_secret("LIQUIDATOR_SECRET_KEY", _required("LIQUIDATOR_SECRET_KEY"))
    symbols = _list("SYMBOLS", DEFAULT_SYMBOLS)
    if not symbols:
        raise ConfigError("SYMBOLS must list at least one market symbol")

    traders = _list("WATCH_TRADERS", [])
    if not traders:
        traders = _list("TEST_TRADERS", [])

    cfg = LiquidatorBotConfig(
        ledger=load_ledger_config(),
        secret_key=secret,
        perp_contract=_required("PERP_CONTRACT"),
        symbols=symbols,
        mmr_bp=_int("MMR_BP", 1000),
        event_scan_interval_seconds=_int("EVENT_SCAN_INTERVAL_SECONDS", 10),
        full_scan_interval_seconds=_int("FULL_SCAN_INTERVAL_SECONDS", 60),
        event_lookback_ledgers=_int("EVENT_LOOKBACK_LEDGERS", 100),
        event_page_limit=_int("EVENT_PAGE_LIMIT", 100),
        event_max_pages=_int("EVENT_MAX_PAGES", 10),
        watch_traders=traders,
        watchlist_file=_str("WATCHLIST_FILE", "watchlist.yaml") or None,
    )
    if not 0 < cfg.mmr_bp <= 10_000:
        raise ConfigError(f"MMR_BP must be in (0, 10000], got {cfg.mmr_bp}")
    if cfg.event_scan_interval_seconds <= 0 or cfg.full_scan_interval_seconds <= 0:
        raise ConfigError("Scan intervals must be positive")
    if cfg.event_page_limit <= 0 or cfg.event_max_pages <= 0:
        raise ConfigError("EVENT_PAGE_LIMIT and EVENT_MAX_PAGES must be positive")
    return cfg


LOG_LEVEL = _str("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
