"""
Oracle Reader - Latest prices from the Reflector-style oracle contract

Calls ``lastprice(Asset::Other(symbol))`` and ``decimals()`` and returns
prices rescaled to the exchange's 6-decimal fixed point.

``lastprice`` returns ``Option<PriceData>``. Depending on the decoder in
front of the RPC it shows up as one of:

    None                                   → no price
    {"price": p, "timestamp": t}           → price
    ["none"] / ["none", None]              → no price
    ["some", {"price": p, "timestamp": t}] → price

decode_optional_price() folds all of them into PriceNone / PriceSome.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from .errors import OracleDecodeError, OracleNoPriceError
from .schemas import PRICE_DECIMALS, OptionalPrice, OraclePrice, PriceNone, PriceSome
from . import scval

logger = logging.getLogger(__name__)

DEFAULT_ORACLE_DECIMALS = 14


def _as_int(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise OracleDecodeError(f"oracle field {field!r} is not an integer: {value!r}")
    try:
        return int(value)
    except ValueError:
        raise OracleDecodeError(f"oracle field {field!r} is not an integer: {value!r}")


def _price_record(value: Any) -> PriceSome:
    if not isinstance(value, dict):
        raise OracleDecodeError(f"expected a price record, got {type(value).__name__}: {value!r}")
    if "price" not in value:
        raise OracleDecodeError(f"price record has no 'price' field: {value!r}")
    if "timestamp" not in value:
        raise OracleDecodeError(f"price record has no 'timestamp' field: {value!r}")
    return PriceSome(price=_as_int(value["price"], "price"), timestamp=_as_int(value["timestamp"], "timestamp"))


def decode_optional_price(value: Any) -> OptionalPrice:
    """Normalize every observed wire shape of Option<PriceData>."""
    if value is None:
        return PriceNone()

    if isinstance(value, dict):
        return _price_record(value)

    if isinstance(value, (list, tuple)):
        if not value or not isinstance(value[0], str):
            raise OracleDecodeError(f"tagged option without a tag: {value!r}")
        tag = value[0].lower()
        if tag == "none":
            if len(value) > 1 and value[1] is not None:
                raise OracleDecodeError(f"'none' option carries a payload: {value!r}")
            return PriceNone()
        if tag == "some":
            if len(value) != 2:
                raise OracleDecodeError(f"'some' option must carry exactly one value: {value!r}")
            return _price_record(value[1])
        raise OracleDecodeError(f"unknown option tag {value[0]!r}")

    raise OracleDecodeError(f"unexpected oracle result type {type(value).__name__}: {value!r}")


def rescale_price(raw: int, from_decimals: int, to_decimals: int = PRICE_DECIMALS) -> int:
    """Rescale a fixed-point integer. Scaling down truncates (integer division)."""
    if from_decimals < 0:
        raise ValueError(f"decimals must be non-negative, got {from_decimals}")
    if from_decimals >= to_decimals:
        return raw // 10 ** (from_decimals - to_decimals)
    return raw * 10 ** (to_decimals - from_decimals)


class OracleReader:
    """Reads and rescales oracle prices. Caches the oracle's decimals once known."""

    def __init__(self, client, oracle_contract_id: str, default_decimals: int = DEFAULT_ORACLE_DECIMALS):
        self.client = client
        self.oracle_contract_id = oracle_contract_id
        self.default_decimals = default_decimals
        self._decimals: Optional[int] = None

    @property
    def cached_decimals(self) -> Optional[int]:
        return self._decimals

    def decimals(self) -> int:
        if self._decimals is not None:
            return self._decimals
        try:
            value = self.client.simulate(self.oracle_contract_id, "decimals")
            self._decimals = int(value)
            logger.info(f"[ORACLE] Oracle decimals: {self._decimals}")
            return self._decimals
        except Exception as e:
            # Not cached: the next call tries again.
            logger.warning(f"[ORACLE] Could not read decimals ({e}), assuming {self.default_decimals}")
            return self.default_decimals

    def fetch_raw(self, asset: str) -> OptionalPrice:
        result = self.client.simulate(self.oracle_contract_id, "lastprice", [scval.asset_other(asset)])
        return decode_optional_price(result)

    def fetch_price(self, asset: str) -> OraclePrice:
        """Latest price for ``asset`` at 6 decimals.

        Raises OracleNoPriceError when the oracle has no price and
        OracleDecodeError when the result is malformed.
        """
        decoded = self.fetch_raw(asset)
        if isinstance(decoded, PriceNone):
            raise OracleNoPriceError(f"oracle has no price for {asset}")

        decimals = self.decimals()
        return OraclePrice(
            price=rescale_price(decoded.price, decimals, PRICE_DECIMALS),
            timestamp=decoded.timestamp,
        )
