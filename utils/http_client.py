"""Shared HTTP client utilities.

One pooled ``requests.Session`` per process so the keeper loops reuse
connections to the Soroban RPC endpoint instead of opening a socket per
call.

Soroban RPC is JSON-RPC over POST, including ``sendTransaction``. The retry
policy therefore retries POSTs only when the connection could not be
established (the request never left this process); read errors and 5xx
responses on POST are surfaced to the caller so a submission is never sent
twice by the transport.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = (3.05, 30)  # (connect, read)
POOL_SIZE = 10

# Methods safe to replay after the server may already have seen them.
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def build_retry() -> Retry:
    return Retry(
        total=3,
        connect=3,
        read=2,
        status=2,
        backoff_factor=0.4,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=IDEMPOTENT_METHODS,
        raise_on_status=False,
        respect_retry_after_header=True,
    )


def build_session(pool_size: int = POOL_SIZE) -> requests.Session:
    s = requests.Session()
    adapter = HTTPAdapter(max_retries=build_retry(), pool_connections=pool_size, pool_maxsize=pool_size)
    s.mount("https://", adapter)
    s.mount("http://", adapter)
    return s


session = build_session()


def request(method: str, url: str, *, timeout: Any = None, **kwargs) -> requests.Response:
    """Perform an HTTP request with shared defaults."""
    if timeout is None:
        timeout = DEFAULT_TIMEOUT
    return session.request(method=method, url=url, timeout=timeout, **kwargs)


def fund_with_friendbot(friendbot_url: str, address: str, *, timeout: Any = None) -> Optional[dict]:
    """Ask a testnet friendbot to create and fund ``address``.

    Friendbot answers 400 when the account already exists, which is fine for
    our purposes; that case returns None instead of raising.
    """
    resp = request("GET", friendbot_url, params={"addr": address}, timeout=timeout)
    if resp.status_code == 400:
        logger.debug("Friendbot refused %s (already funded?)", address)
        return None
    resp.raise_for_status()
    return resp.json()
