from types import SimpleNamespace

import pytest
from stellar_sdk import Keypair
from stellar_sdk import xdr as stellar_xdr

from keeper import scval
from keeper.scanner import (
    EventScanner,
    FullSweepScanner,
    InMemoryCheckpointStore,
    decode_position_topics,
)
from keeper.errors import EventDecodeError
from keeper.schemas import HealthCheck, HealthOutcome, PositionKey
from keeper.watchlist import TraderRegistry

PERP = "CPERP"
ALICE = Keypair.random().public_key
BOB = Keypair.random().public_key


def _event(name, trader, symbol, ledger, event_id=None):
    return SimpleNamespace(
        topic=[scval.symbol(name).to_xdr(), scval.address(trader).to_xdr(), scval.symbol(symbol).to_xdr()],
        id=event_id or f"{ledger:019d}-0000000001",
        ledger=ledger,
    )


class FakeClient:
    """Serves event pages in order; records every get_events call."""

    def __init__(self, latest=1000, pages=None):
        self.latest = latest
        self.pages = list(pages or [])
        self.event_calls = []
        self.fail_events = None

    def latest_ledger(self):
        return self.latest

    def get_events(self, contract_ids, topics, start_ledger=None, cursor=None, limit=None):
        self.event_calls.append({"start_ledger": start_ledger, "cursor": cursor, "limit": limit, "topics": topics})
        if self.fail_events:
            raise self.fail_events
        return self.pages.pop(0) if self.pages else []


class FakeEvaluator:
    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.checked = []

    def evaluate(self, trader, symbol):
        self.checked.append((trader, symbol))
        if (trader, symbol) in self.fail_for:
            raise RuntimeError("boom")
        return HealthCheck(trader, symbol, HealthOutcome.HEALTHY, 50_000, 2_000_000)


def _scanner(client, evaluator=None, checkpoint=None, registry=None, **kwargs):
    return EventScanner(
        client,
        PERP,
        evaluator or FakeEvaluator(),
        checkpoints=InMemoryCheckpointStore(checkpoint),
        registry=registry,
        **kwargs,
    )


class TestDecodeTopics:

    def test_open_event(self):
        event = _event("OPEN", ALICE, "XLMUSD", 10)
        assert decode_position_topics(event.topic) == PositionKey(ALICE, "XLMUSD")

    def test_too_few_topics(self):
        with pytest.raises(EventDecodeError):
            decode_position_topics([scval.symbol("OPEN").to_xdr()])

    def test_unknown_event_name(self):
        with pytest.raises(EventDecodeError):
            decode_position_topics(_event("DEPOSIT", ALICE, "XLMUSD", 10).topic)

    def test_undecodable_trader_topic(self):
        topics = _event("OPEN", ALICE, "XLMUSD", 10).topic
        topics[1] = "garbage"
        with pytest.raises(EventDecodeError):
            decode_position_topics(topics)


class TestEventScanner:

    def test_first_scan_starts_lookback_ledgers_back(self):
        client = FakeClient(latest=1000)
        scanner = _scanner(client)

        assert scanner.scan() == 0

        assert client.event_calls[0]["start_ledger"] == 900
        assert scanner.checkpoints.get() == 1000

    def test_lookback_is_clamped_to_ledger_one(self):
        client = FakeClient(latest=40)
        _scanner(client).scan()
        assert client.event_calls[0]["start_ledger"] == 1

    def test_resumes_from_checkpoint(self):
        client = FakeClient(latest=1200)
        scanner = _scanner(client, checkpoint=1000)

        scanner.scan()

        assert client.event_calls[0]["start_ledger"] == 1000
        assert scanner.checkpoints.get() == 1200

    def test_query_failure_leaves_checkpoint(self):
        client = FakeClient(latest=1200)
        client.fail_events = ConnectionError("rpc down")
        scanner = _scanner(client, checkpoint=1000)

        with pytest.raises(ConnectionError):
            scanner.scan()
        assert scanner.checkpoints.get() == 1000

    def test_one_filter_per_event_name(self):
        client = FakeClient()
        _scanner(client).scan()
        topics = client.event_calls[0]["topics"]
        assert [scval.to_native(t[0]) for t in topics] == ["PositionUpdated", "OPEN", "CLOSE"]

    def test_positions_are_deduplicated_and_checked(self):
        client = FakeClient(latest=1000, pages=[[
            _event("OPEN", ALICE, "XLMUSD", 950),
            _event("CLOSE", ALICE, "XLMUSD", 951),
            _event("OPEN", BOB, "BTCUSD", 952),
        ]])
        evaluator = FakeEvaluator()
        registry = TraderRegistry()

        assert _scanner(client, evaluator, checkpoint=900, registry=registry).scan() == 2

        assert evaluator.checked == [(ALICE, "XLMUSD"), (BOB, "BTCUSD")]
        assert registry.snapshot() == [ALICE, BOB]

    def test_malformed_events_are_ignored(self):
        bad = SimpleNamespace(topic=["not-xdr"], id="x", ledger=950)
        client = FakeClient(latest=1000, pages=[[bad, _event("OPEN", ALICE, "ETHUSD", 951)]])
        evaluator = FakeEvaluator()

        assert _scanner(client, evaluator, checkpoint=900).scan() == 1
        assert evaluator.checked == [(ALICE, "ETHUSD")]

    def test_event_with_unhashable_topic_does_not_block_the_checkpoint(self):
        inner = stellar_xdr.SCVal(stellar_xdr.SCValType.SCV_MAP, map=stellar_xdr.SCMap([]))
        nested = stellar_xdr.SCVal(
            stellar_xdr.SCValType.SCV_MAP,
            map=stellar_xdr.SCMap([stellar_xdr.SCMapEntry(inner, scval.symbol("x"))]),
        )
        bad = _event("OPEN", ALICE, "XLMUSD", 950)
        bad.topic[1] = nested.to_xdr()
        client = FakeClient(latest=1000, pages=[[bad, _event("OPEN", BOB, "XLMUSD", 951)]])
        evaluator = FakeEvaluator()
        scanner = _scanner(client, evaluator, checkpoint=900)

        assert scanner.scan() == 1

        assert evaluator.checked == [(BOB, "XLMUSD")]
        assert scanner.checkpoints.get() == 1000

    def test_evaluation_error_does_not_stop_the_scan(self):
        client = FakeClient(latest=1000, pages=[[
            _event("OPEN", ALICE, "XLMUSD", 950),
            _event("OPEN", BOB, "XLMUSD", 951),
        ]])
        evaluator = FakeEvaluator(fail_for=[(ALICE, "XLMUSD")])
        scanner = _scanner(client, evaluator, checkpoint=900)

        scanner.scan()

        assert evaluator.checked == [(ALICE, "XLMUSD"), (BOB, "XLMUSD")]
        assert scanner.checkpoints.get() == 1000

    def test_follows_cursor_across_pages(self):
        first = [_event("OPEN", ALICE, "XLMUSD", 950, "a"), _event("OPEN", ALICE, "BTCUSD", 951, "b")]
        second = [_event("OPEN", BOB, "XLMUSD", 960, "c")]
        client = FakeClient(latest=1000, pages=[first, second])

        assert _scanner(client, checkpoint=900, page_limit=2).scan() == 3

        assert client.event_calls[0]["start_ledger"] == 900
        assert client.event_calls[1] == {"start_ledger": None, "cursor": "b", "limit": 2, "topics": client.event_calls[1]["topics"]}

    def test_page_cap_resumes_from_last_event_ledger(self):
        pages = [
            [_event("OPEN", ALICE, "XLMUSD", 950, "a")],
            [_event("OPEN", BOB, "XLMUSD", 970, "b")],
            [_event("OPEN", BOB, "BTCUSD", 990, "c")],
        ]
        client = FakeClient(latest=1000, pages=pages)
        scanner = _scanner(client, checkpoint=900, page_limit=1, max_pages=2)

        scanner.scan()

        assert len(client.event_calls) == 2
        assert scanner.checkpoints.get() == 970

    def test_page_cap_within_start_ledger_skips_ahead(self):
        pages = [[_event("OPEN", ALICE, "XLMUSD", 900, "a")], [_event("OPEN", BOB, "XLMUSD", 900, "b")]]
        client = FakeClient(latest=1000, pages=pages)
        scanner = _scanner(client, checkpoint=900, page_limit=1, max_pages=2)

        scanner.scan()

        assert scanner.checkpoints.get() == 1000


class TestFullSweep:

    def test_checks_every_trader_in_every_market(self):
        evaluator = FakeEvaluator(fail_for=[(ALICE, "BTCUSD")])
        sweep = FullSweepScanner(evaluator, TraderRegistry([ALICE, BOB]), ["XLMUSD", "BTCUSD"])

        stats = sweep.sweep()

        assert evaluator.checked == [
            (ALICE, "XLMUSD"), (ALICE, "BTCUSD"), (BOB, "XLMUSD"), (BOB, "BTCUSD"),
        ]
        assert stats == {"checked": 3, "liquidated": 0, "failed": 0, "errors": 1}

    def test_empty_registry(self):
        evaluator = FakeEvaluator()
        assert FullSweepScanner(evaluator, TraderRegistry(), ["XLMUSD"]).sweep()["checked"] == 0
        assert evaluator.checked == []
