# piko_poller/services/retry_scheduler.py

from __future__ import annotations

import threading
from enum import Enum
from typing import Callable, Optional

from piko_poller.config import PollingConfig
from piko_poller.errors import ExhaustedRetries
from piko_poller.logging import PollLogEntry, StructuredLog
from piko_poller.models.poll import PollOutcome


class SchedulerState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    STEADY_WAIT = "steady_wait"
    RETRY_WAIT = "retry_wait"
    STOPPED = "stopped"


class RetryScheduler:
    """
    Drives poll cycles one after another.

    After a success the next poll runs after the steady interval; after a
    failure it runs after the retry interval until ``fail_count`` consecutive
    failures have been retried, then polling stops for good. At most one timer
    is ever outstanding and a new one is only armed once the current cycle
    (including all field publications) has finished.
    """

    def __init__(
        self,
        cycle,
        timer,
        cfg: PollingConfig,
        publisher,
        log,
        *,
        structured_log: Optional[StructuredLog] = None,
        on_stopped: Optional[Callable[[], None]] = None,
    ):
        self.cycle = cycle
        self.timer = timer
        self.cfg = cfg
        self.publisher = publisher
        self.log = log
        self.structured_log = structured_log
        self.on_stopped = on_stopped

        self.state = SchedulerState.IDLE
        self.failure_count = 0
        self.last_outcome: Optional[PollOutcome] = None
        self.gave_up: Optional[ExhaustedRetries] = None
        self.crashed = False
        self._handle = None
        self._shut_down = False
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    @property
    def pending(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        with self._lock:
            if self.state is not SchedulerState.IDLE:
                raise RuntimeError(f"scheduler already started (state={self.state.value})")
        self._poll()

    def _on_timer(self) -> None:
        self._poll()

    # ------------------------------------------------------------------
    def _poll(self) -> None:
        with self._lock:
            if self.state is SchedulerState.STOPPED:
                return
            self._handle = None
            self.state = SchedulerState.POLLING
            try:
                outcome = self.cycle.run()
            except Exception:
                self.log.exception("poll cycle crashed; polling stopped")
                self.state = SchedulerState.STOPPED
                self.crashed = True
                self._notify_stopped()
                raise
            self.last_outcome = outcome
            self._advance(outcome)
            self._write_log(outcome)
            stopped = self.state is SchedulerState.STOPPED

        if stopped:
            self._notify_stopped()

    def _advance(self, outcome: PollOutcome) -> None:
        if outcome.success:
            self.failure_count = 0
            self.state = SchedulerState.STEADY_WAIT
            self.log.debug("create refresh timer")
            self._schedule(self.cfg.interval_ms)
            return

        self.failure_count += 1
        if self.failure_count <= self.cfg.fail_count:
            self.log.info(
                "Retry %s from %s in %s ms",
                self.failure_count,
                self.cfg.fail_count,
                self.cfg.fail_timeout_ms,
            )
            self.state = SchedulerState.RETRY_WAIT
            self._schedule(self.cfg.fail_timeout_ms)
            return

        self.gave_up = ExhaustedRetries(self.failure_count, self.cfg.fail_count)
        self.state = SchedulerState.STOPPED
        self.log.error(
            "Polling stopped: %s. Check that the inverter is reachable with the "
            "configured server settings, then restart.",
            self.gave_up,
        )

    def _schedule(self, delay_ms: int) -> None:
        if self._handle is not None:
            raise RuntimeError("a poll is already scheduled")
        self._handle = self.timer.call_later(delay_ms / 1000.0, self._on_timer)

    def _write_log(self, outcome: PollOutcome) -> None:
        if self.structured_log is None or not self.structured_log.enabled:
            return
        self.structured_log.write(
            PollLogEntry(
                timestamp=outcome.timestamp.isoformat() if outcome.timestamp else None,
                success=outcome.success,
                reason=outcome.reason,
                status_code=outcome.status_code,
                message=outcome.message,
                failure_count=self.failure_count,
                scheduler_state=self.state.value,
                published=outcome.published or None,
                field_errors=outcome.field_errors or None,
            )
        )

    def _notify_stopped(self) -> None:
        if self.on_stopped is not None:
            self.on_stopped()

    # ------------------------------------------------------------------
    def shutdown(self) -> None:
        """Cancel any pending poll and mark the device disconnected. Idempotent."""
        with self._lock:
            if self._shut_down:
                return
            self._shut_down = True
            if self._handle is not None:
                self._handle.cancel()
                self._handle = None
            self.state = SchedulerState.STOPPED
            self.publisher.set_connection(False)
        self.log.debug("scheduler shut down")
