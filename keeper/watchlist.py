"""Known traders for the liquidator's full sweep.

The contract has no trader registry, so the set is assembled locally from:

- WATCH_TRADERS (comma-separated addresses)
- an optional YAML watchlist file::

      traders:
        - GABC...
        - GDEF...

- traders seen in position events while the bot runs
"""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Iterable, List, Optional, Union

import yaml
from stellar_sdk import StrKey

log = logging.getLogger(__name__)


def is_valid_address(address: str) -> bool:
    return StrKey.is_valid_ed25519_public_key(address) or StrKey.is_valid_contract(address)


def load_watchlist(path: Union[str, Path]) -> List[str]:
    """Read trader addresses from a YAML watchlist. A missing file is an empty list."""
    path = Path(path)
    if not path.exists():
        log.debug(f"Watchlist {path} not found, skipping")
        return []

    with open(path, encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Watchlist {path} is not valid YAML: {e}") from e

    if isinstance(data, list):
        traders = data
    elif isinstance(data, dict):
        traders = data.get("traders") or []
    else:
        raise ValueError(f"Watchlist {path} must be a list or a mapping with 'traders'")

    if not isinstance(traders, list):
        raise ValueError(f"'traders' in {path} must be a list")
    return [str(t).strip() for t in traders if str(t).strip()]


class TraderRegistry:
    """Thread-safe set of trader addresses, shared by the event scan and the sweep."""

    def __init__(self, traders: Optional[Iterable[str]] = None):
        self._lock = threading.Lock()
        self._traders: dict = {}  # insertion-ordered set
        if traders:
            self.add_many(traders)

    def add(self, trader: str) -> bool:
        """Add a trader. Returns True if it was new."""
        trader = (trader or "").strip()
        if not is_valid_address(trader):
            log.warning(f"Ignoring invalid trader address {trader!r}")
            return False
        with self._lock:
            if trader in self._traders:
                return False
            self._traders[trader] = None
        log.info(f"Watching trader {trader}")
        return True

    def add_many(self, traders: Iterable[str]) -> int:
        return sum(1 for t in traders if self.add(t))

    def snapshot(self) -> List[str]:
        with self._lock:
            return list(self._traders)

    def __contains__(self, trader: str) -> bool:
        with self._lock:
            return trader in self._traders

    def __len__(self) -> int:
        with self._lock:
            return len(self._traders)

    @classmethod
    def from_sources(cls, env_traders: Iterable[str], watchlist_file: Optional[str] = None) -> "TraderRegistry":
        registry = cls(env_traders)
        if watchlist_file:
            registry.add_many(load_watchlist(watchlist_file))
        return registry
