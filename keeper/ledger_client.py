"""
Ledger Client - Soroban RPC access for the keeper bots

Wraps ``stellar_sdk.SorobanServer`` (HTTP transport on the shared pooled
session from utils.http_client) and exposes exactly what the bots need:

1. read-only contract calls: build → simulate → decode the return value
2. mutating contract calls: simulate → prepare → sign → submit → confirm
3. ledger sequence and contract event queries

Submission is at-most-once per call. A confirmation timeout is reported as a
failure; the transaction may still land, and the next tick re-reads state.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, List, Optional, Sequence

from stellar_sdk import Keypair, SorobanServer, TransactionBuilder
from stellar_sdk import xdr as stellar_xdr
from stellar_sdk.client.requests_client import RequestsClient
from stellar_sdk.soroban_rpc import EventFilter, EventFilterType

from utils import http_client
from utils.http_client import fund_with_friendbot

from .errors import ConfigError, ConfirmationTimeout, KeeperError, SimulationError, SubmissionError
from .schemas import TxResult, TxStatus
from .scval import to_native

logger = logging.getLogger(__name__)

# Statuses of getTransaction that mean "not final yet".
PENDING_STATUSES = ("PENDING", "NOT_FOUND")
# sendTransaction statuses that mean the transaction was not accepted.
REJECTED_SEND_STATUSES = ("ERROR", "TRY_AGAIN_LATER")

SIMULATION_TIMEOUT = 30


def _status_name(status: Any) -> str:
    return str(getattr(status, "value", status)).upper()


class SubmissionGuard:
    """Tracks transactions between signing and the sendTransaction reply.

    Shutdown closes the guard and waits until nothing is in flight; once
    closed, new submissions are refused before anything is sent.
    """

    def __init__(self):
        self._cond = threading.Condition()
        self._in_flight = 0
        self._closed = False

    @contextmanager
    def sending(self, method: str):
        with self._cond:
            if self._closed:
                raise SubmissionError(f"{method} not sent: shutting down")
            self._in_flight += 1
        try:
            yield
        finally:
            with self._cond:
                self._in_flight -= 1
                self._cond.notify_all()

    @property
    def in_flight(self) -> int:
        with self._cond:
            return self._in_flight

    def close(self):
        with self._cond:
            self._closed = True

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: self._in_flight == 0, timeout)


# Process-wide: every client in the process shares one shutdown barrier.
submissions = SubmissionGuard()


class LedgerClient:
    """Soroban RPC client shared by the funding and liquidator bots."""

    def __init__(
        self,
        rpc_url: str,
        network_passphrase: str,
        signer: Optional[Keypair] = None,
        base_fee: int = 100,
        tx_timeout: float = 300,
        poll_interval: float = 1.0,
        dry_run: bool = False,
        server: Optional[SorobanServer] = None,
        guard: Optional[SubmissionGuard] = None,
    ):
        self.rpc_url = rpc_url
        self.network_passphrase = network_passphrase
        self.signer = signer
        self.base_fee = base_fee
        self.tx_timeout = tx_timeout
        self.poll_interval = poll_interval
        self.dry_run = dry_run
        self.server = server or SorobanServer(rpc_url, client=RequestsClient(session=http_client.session))
        self.guard = guard or submissions

        self._throwaway: Optional[Keypair] = None
        self._read_account = None

    @classmethod
    def from_config(cls, ledger_cfg, secret_key: Optional[str] = None) -> "LedgerClient":
        signer = Keypair.from_secret(secret_key) if secret_key else None
        return cls(
            rpc_url=ledger_cfg.rpc_url,
            network_passphrase=ledger_cfg.network_passphrase,
            signer=signer,
            base_fee=ledger_cfg.base_fee,
            tx_timeout=ledger_cfg.tx_timeout_seconds,
            poll_interval=ledger_cfg.poll_interval_seconds,
            dry_run=ledger_cfg.dry_run,
        )

    @property
    def public_key(self) -> Optional[str]:
        return self.signer.public_key if self.signer else None

    # ─────────────────────────────────────────────────────────────
    # Accounts
    # ─────────────────────────────────────────────────────────────

    def _fee_payer(self) -> str:
        """Account that pays for simulations: our signer, else a friendbot-funded throwaway."""
        if self.signer is not None:
            return self.signer.public_key

        if self._throwaway is None:
            kp = Keypair.random()
            friendbot_url = self.server.get_network().friendbot_url
            if not friendbot_url:
                raise KeeperError("No signer configured and the network has no friendbot")
            logger.info(f"[TX] Funding throwaway simulation account {kp.public_key} via friendbot")
            fund_with_friendbot(friendbot_url, kp.public_key)
            self._throwaway = kp
        return self._throwaway.public_key

    def source_account(self):
        """Account used as transaction source for read-only simulations (cached)."""
        if self._read_account is None:
            self._read_account = self.server.load_account(self._fee_payer())
        return self._read_account

    # ─────────────────────────────────────────────────────────────
    # Contract calls
    # ─────────────────────────────────────────────────────────────

    def build_invocation(self, contract_id: str, method: str, args: Sequence[stellar_xdr.SCVal], account, timeout: int):
        return (
            TransactionBuilder(
                source_account=account,
                network_passphrase=self.network_passphrase,
                base_fee=self.base_fee,
            )
            .append_invoke_contract_function_op(
                contract_id=contract_id,
                function_name=method,
                parameters=list(args),
            )
            .set_timeout(timeout)
            .build()
        )

    def _simulate(self, tx, method: str):
        sim = self.server.simulate_transaction(tx)
        if sim.error:
            raise SimulationError(sim.error, method=method)
        return sim

    def simulate(self, contract_id: str, method: str, args: Sequence[stellar_xdr.SCVal] = ()) -> Any:
        """Simulate a call and return its decoded return value."""
        tx = self.build_invocation(contract_id, method, args, self.source_account(), SIMULATION_TIMEOUT)
        sim = self._simulate(tx, method)
        if not sim.results:
            return None
        return to_native(sim.results[0].xdr)

    def submit(self, contract_id: str, method: str, args: Sequence[stellar_xdr.SCVal] = ()) -> Optional[str]:
        """Simulate, prepare, sign and send a mutating call. Returns the tx hash.

        Returns None in dry-run mode, after a successful simulation.
        """
        if self.signer is None:
            raise ConfigError(f"Cannot submit {method}: no signing key configured")

        account = self.server.load_account(self.signer.public_key)
        tx = self.build_invocation(contract_id, method, args, account, int(self.tx_timeout))
        sim = self._simulate(tx, method)

        if self.dry_run:
            logger.info(f"[TX] [DRY RUN] {method} simulated OK, not submitting")
            return None

        with self.guard.sending(method):
            prepared = self.server.prepare_transaction(tx, sim)
            prepared.sign(self.signer)
            resp = self.server.send_transaction(prepared)

        status = _status_name(resp.status)
        if status in REJECTED_SEND_STATUSES:
            raise SubmissionError(
                f"{method} rejected by sendTransaction: {status} {resp.error_result_xdr or ''}".strip(),
                tx_hash=resp.hash,
            )
        logger.info(f"[TX] {method} submitted: {resp.hash} ({status})")
        return resp.hash

    def wait_for_transaction(self, tx_hash: str) -> TxResult:
        """Poll getTransaction until the status is final, bounded by tx_timeout."""
        started = time.monotonic()
        while True:
            resp = self.server.get_transaction(tx_hash)
            status = _status_name(resp.status)
            if status not in PENDING_STATUSES:
                return TxResult(
                    status=TxStatus.SUCCESS.value if status == "SUCCESS" else TxStatus.FAILED.value,
                    tx_hash=tx_hash,
                    ledger=getattr(resp, "ledger", None),
                    error=None if status == "SUCCESS" else status,
                )

            waited = time.monotonic() - started
            if waited >= self.tx_timeout:
                raise ConfirmationTimeout(tx_hash, waited)
            time.sleep(self.poll_interval)

    def invoke(self, contract_id: str, method: str, args: Sequence[stellar_xdr.SCVal] = ()) -> TxResult:
        """Full pipeline for a mutating call."""
        tx_hash = self.submit(contract_id, method, args)
        if tx_hash is None:
            return TxResult(status=TxStatus.DRY_RUN.value)
        return self.wait_for_transaction(tx_hash)

    # ─────────────────────────────────────────────────────────────
    # Ledger / events
    # ─────────────────────────────────────────────────────────────

    def latest_ledger(self) -> int:
        return int(self.server.get_latest_ledger().sequence)

    def get_events(
        self,
        contract_ids: List[str],
        topics: List[List[str]],
        start_ledger: Optional[int] = None,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list:
        """One page of contract events. Pass either start_ledger or cursor."""
        filters = [
            EventFilter(
                event_type=EventFilterType.CONTRACT,
                contract_ids=contract_ids,
                topics=topics,
            )
        ]
        resp = self.server.get_events(
            start_ledger=None if cursor else start_ledger,
            filters=filters,
            cursor=cursor,
            limit=limit,
        )
        return list(resp.events or [])
