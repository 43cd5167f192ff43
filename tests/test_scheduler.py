import threading
import time

import pytest

from keeper.errors import SubmissionError
from keeper.ledger_client import SubmissionGuard
from keeper.scheduler import PeriodicTask, run_until_shutdown


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        PeriodicTask("bad", 0, lambda: None)


def test_run_once_swallows_and_counts_failures():
    def body():
        raise RuntimeError("boom")

    task = PeriodicTask("failing", 60, body)

    assert task.run_once() is False
    assert task.run_once() is False
    assert (task.runs, task.failures) == (2, 2)


def test_runs_immediately_then_stops():
    ran = threading.Event()
    task = PeriodicTask("quick", 60, ran.set)

    task.start()
    assert ran.wait(5)
    assert task.stop(timeout=5) is True
    assert not task.is_running
    assert task.runs == 1


def test_deferred_first_run():
    calls = []
    task = PeriodicTask("deferred", 60, lambda: calls.append(1), run_immediately=False)

    task.start()
    assert task.stop(timeout=5) is True
    assert calls == []


def test_failing_tick_keeps_the_loop_alive():
    calls = []
    done = threading.Event()

    def body():
        calls.append(1)
        if len(calls) >= 3:
            done.set()
        raise RuntimeError("boom")

    task = PeriodicTask("flaky", 0.01, body)
    task.start()
    assert done.wait(5)
    task.stop(timeout=5)
    assert task.failures >= 3


def test_stop_reports_a_tick_still_running():
    release = threading.Event()
    started = threading.Event()

    def body():
        started.set()
        release.wait(5)

    task = PeriodicTask("slow", 60, body)
    task.start()
    assert started.wait(5)

    assert task.stop(timeout=0.05) is False
    release.set()
    assert task.stop(timeout=5) is True


def test_run_until_shutdown_stops_every_task():
    shutdown = threading.Event()
    seen = {"a": threading.Event(), "b": threading.Event()}
    tasks = [PeriodicTask(name, 60, seen[name].set) for name in ("a", "b")]

    runner = threading.Thread(
        target=run_until_shutdown,
        args=(tasks,),
        kwargs={"shutdown_event": shutdown, "grace": 5, "install_signal_handlers": False},
    )
    runner.start()
    assert seen["a"].wait(5) and seen["b"].wait(5)

    shutdown.set()
    runner.join(10)

    assert not runner.is_alive()
    assert not any(t.is_running for t in tasks)


def test_shutdown_waits_for_a_send_past_the_grace_period():
    guard = SubmissionGuard()
    shutdown = threading.Event()
    sending = threading.Event()
    sent = threading.Event()

    def body():
        with guard.sending("liquidate"):
            sending.set()
            shutdown.set()
            time.sleep(0.5)
            sent.set()

    task = PeriodicTask("liq", 60, body)
    run_until_shutdown(
        [task],
        shutdown_event=shutdown,
        grace=0.05,
        install_signal_handlers=False,
        submissions=guard,
    )

    assert sending.is_set()
    assert sent.is_set()
    assert guard.in_flight == 0


def test_closed_guard_refuses_new_sends():
    guard = SubmissionGuard()
    guard.close()

    with pytest.raises(SubmissionError):
        with guard.sending("poke_funding"):
            pass
    assert guard.in_flight == 0
    assert guard.wait_idle(timeout=0) is True
