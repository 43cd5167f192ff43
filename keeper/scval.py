"""Soroban SCVal helpers.

Argument builders for the contract calls the keepers make, and a decoder
that turns any SCVal the contracts return into plain Python values:

    void → None, bool → bool, integers (32..256 bit, timepoint, duration) → int,
    symbol/string → str, bytes → bytes, address → "G..."/"C..." str,
    vec → list, map → dict
"""
from __future__ import annotations

from typing import Any, Iterable, List, Union

from stellar_sdk import scval
from stellar_sdk import xdr as stellar_xdr

from .errors import DecodeError

SCValType = stellar_xdr.SCValType

_INT_DECODERS = {
    SCValType.SCV_U32: scval.from_uint32,
    SCValType.SCV_I32: scval.from_int32,
    SCValType.SCV_U64: scval.from_uint64,
    SCValType.SCV_I64: scval.from_int64,
    SCValType.SCV_TIMEPOINT: scval.from_timepoint,
    SCValType.SCV_DURATION: scval.from_duration,
    SCValType.SCV_U128: scval.from_uint128,
    SCValType.SCV_I128: scval.from_int128,
    SCValType.SCV_U256: scval.from_uint256,
    SCValType.SCV_I256: scval.from_int256,
}


# ─────────────────────────────────────────────────────────────
# Builders
# ─────────────────────────────────────────────────────────────

def symbol(value: str) -> stellar_xdr.SCVal:
    return scval.to_symbol(value)


def address(value: str) -> stellar_xdr.SCVal:
    return scval.to_address(value)


def asset_other(asset: str) -> stellar_xdr.SCVal:
    """Oracle ``Asset::Other(Symbol)``: a vec of the variant name and payload."""
    return scval.to_vec([scval.to_symbol("Other"), scval.to_symbol(asset)])


def topic_filter(names: Iterable[str], trailing_wildcards: int = 2) -> List[List[str]]:
    """One getEvents topic filter per event name: ``[name, "*", ...]``."""
    return [[symbol(name).to_xdr()] + ["*"] * trailing_wildcards for name in names]


# ─────────────────────────────────────────────────────────────
# Decoding
# ─────────────────────────────────────────────────────────────

def from_base64(value: Union[str, stellar_xdr.SCVal]) -> stellar_xdr.SCVal:
    if isinstance(value, stellar_xdr.SCVal):
        return value
    try:
        return stellar_xdr.SCVal.from_xdr(value)
    except Exception as e:
        raise DecodeError(f"not a base64 SCVal: {e}") from e


def to_native(value: Union[str, stellar_xdr.SCVal]) -> Any:
    """Decode an SCVal (or its base64 XDR) into plain Python values."""
    value = from_base64(value)
    kind = value.type

    if kind == SCValType.SCV_VOID:
        return None
    if kind == SCValType.SCV_BOOL:
        return scval.from_bool(value)
    if kind in _INT_DECODERS:
        return _INT_DECODERS[kind](value)
    if kind == SCValType.SCV_SYMBOL:
        return scval.from_symbol(value)
    if kind == SCValType.SCV_STRING:
        raw = scval.from_string(value)
        return raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    if kind == SCValType.SCV_BYTES:
        return scval.from_bytes(value)
    if kind == SCValType.SCV_ADDRESS:
        return scval.from_address(value).address
    if kind == SCValType.SCV_VEC:
        if value.vec is None:
            return []
        return [to_native(item) for item in value.vec.sc_vec]
    if kind == SCValType.SCV_MAP:
        if value.map is None:
            return {}
        out = {}
        for entry in value.map.sc_map:
            key = to_native(entry.key)
            if isinstance(key, list):
                key = tuple(key)
            out[key] = to_native(entry.val)
        return out

    raise DecodeError(f"unsupported SCVal type {kind}")
