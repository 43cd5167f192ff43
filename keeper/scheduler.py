"""Periodic tasks for the keeper bots.

Each task owns one thread and runs its body back to back with an
interruptible wait in between, so a task never overlaps itself and a slow
tick (e.g. confirmation polling) only delays its own next run. Stopping a
task sets its event: the current tick finishes, no new tick starts.
"""
from __future__ import annotations

import logging
import signal
import threading
import time
from typing import Callable, List, Optional

log = logging.getLogger(__name__)

DEFAULT_SHUTDOWN_GRACE = 30.0


class PeriodicTask:
    """Runs ``body`` every ``interval`` seconds in a background thread."""

    def __init__(self, name: str, interval: float, body: Callable[[], object], run_immediately: bool = True):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.name = name
        self.interval = interval
        self.body = body
        self.run_immediately = run_immediately

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.runs = 0
        self.failures = 0
        self.last_run_at: Optional[float] = None

    def run_once(self) -> bool:
        """Run the body one time. Exceptions are logged, never raised."""
        self.runs += 1
        self.last_run_at = time.time()
        started = time.monotonic()
        try:
            self.body()
            return True
        except Exception as e:
            self.failures += 1
            log.exception(f"[{self.name}] tick failed: {e}")
            return False
        finally:
            elapsed = time.monotonic() - started
            if elapsed > self.interval:
                log.warning(f"[{self.name}] tick took {elapsed:.1f}s, longer than its {self.interval}s interval")

    def loop(self):
        """Main loop - runs until stop() is called."""
        if not self.run_immediately:
            self._stop_event.wait(self.interval)

        while not self._stop_event.is_set():
            self.run_once()
            # Wait for next iteration (interruptible)
            self._stop_event.wait(self.interval)

        log.info(f"[{self.name}] stopped after {self.runs} run(s), {self.failures} failure(s)")

    def start(self):
        """Start the task in a background thread."""
        if self._thread and self._thread.is_alive():
            log.warning(f"[{self.name}] already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self.loop, name=self.name, daemon=True)
        self._thread.start()
        log.info(f"[{self.name}] started (every {self.interval}s)")

    def stop(self, timeout: Optional[float] = None) -> bool:
        """Ask the task to stop and wait up to ``timeout`` for an in-flight tick.

        Returns False when the tick is still running after the grace period;
        the daemon thread is then abandoned when the process exits.
        """
        self._stop_event.set()
        if self._thread is None:
            return True
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            log.warning(f"[{self.name}] still finishing a tick, abandoning it at exit")
            return False
        return True

    @property
    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())


def run_until_shutdown(
    tasks: List[PeriodicTask],
    shutdown_event: Optional[threading.Event] = None,
    grace: float = DEFAULT_SHUTDOWN_GRACE,
    install_signal_handlers: bool = True,
    submissions=None,
):
    """Start ``tasks`` and block until SIGINT/SIGTERM (or ``shutdown_event``).

    In-flight ticks get ``grace`` seconds. A transaction already being sent
    (tracked by ``submissions``, a SubmissionGuard) is always waited for,
    however long it takes; only confirmation polling is abandoned.
    """
    shutdown_event = shutdown_event or threading.Event()

    if install_signal_handlers:
        def handle_shutdown(signum, frame):
            log.info("Shutdown requested, letting in-flight ticks finish...")
            shutdown_event.set()

        signal.signal(signal.SIGINT, handle_shutdown)
        signal.signal(signal.SIGTERM, handle_shutdown)

    for task in tasks:
        task.start()

    try:
        while not shutdown_event.wait(1.0):
            pass
    except KeyboardInterrupt:
        log.info("Keyboard interrupt received")

    deadline = time.monotonic() + grace
    for task in tasks:
        task.stop(timeout=max(0.0, deadline - time.monotonic()))

    if submissions is not None:
        submissions.close()
        if submissions.in_flight:
            log.info(f"Waiting for {submissions.in_flight} transaction submission(s) to finish...")
        submissions.wait_idle()
