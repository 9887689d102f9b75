"""
SweepScheduler -- in-process polling scheduler for automation sweeps.

Contract:
    Polls the configured sweep cadences on a fixed interval, evaluates
    ``cadence_is_due()`` (pure) and runs each due cadence once through
    ``SweepRunner``.

Architecture: household_batch.  Uses ``AutomationSweepOrchestrator`` for
    the per-user work; owns sessions and threads, which the orchestrator
    does not.

Invariants enforced:
    - All timestamps from the injected Clock.
    - Cadence evaluation is pure (``cadence_is_due``).
    - One session and one commit per user; a failed user is rolled back
      and counted, never aborting the run.
    - Graceful shutdown: the stop signal is honoured between cadences and
      the current cadence finishes.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Sequence

from sqlalchemy.orm import Session

from household_batch.sweep import (
    AutomationSweepOrchestrator,
    ScheduledSweepSummary,
    SweepResult,
    normalize_mode,
    respects_monthly_gate,
)
from household_config.schema import CoreSettings, SweepCadence
from household_kernel.domain.clock import Clock, SystemClock
from household_kernel.logging_config import get_logger
from household_kernel.selectors.user_state import UserStateSelector

logger = get_logger("batch.scheduler")


def cadence_is_due(cadence: SweepCadence, last_run_ms: int | None, now_ms: int) -> bool:
    """A cadence fires when it never ran or its interval has elapsed."""
    if last_run_ms is None:
        return True
    return now_ms - last_run_ms >= cadence.interval_seconds * 1000


class SweepRunner:
    """Runs one sweep mode over every user, one session per user.

    Contract:
        - ``run_once(mode)`` returns a ``ScheduledSweepSummary``.
        - ``run_user(user_id, mode)`` commits that user's work on success.

    Non-goals:
        - Does NOT decide when to run -- that is the scheduler's job.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        settings: CoreSettings | None = None,
        max_workers: int | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._settings = settings or CoreSettings()
        self._max_workers = max(1, max_workers or self._settings.scheduler.max_workers)

    def list_user_ids(self) -> list[str]:
        session = self._session_factory()
        try:
            return UserStateSelector(session).list_user_ids()
        finally:
            session.close()

    def run_user(
        self, user_id: str, mode: str, respect_monthly_gate: bool = False
    ) -> SweepResult:
        session = self._session_factory()
        try:
            orchestrator = AutomationSweepOrchestrator(session, self._clock, self._settings)
            result = orchestrator.run_for_user(user_id, mode, respect_monthly_gate)
            session.commit()
            return result
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _run_user_safely(
        self, user_id: str, mode: str, respect_monthly_gate: bool
    ) -> SweepResult | None:
        try:
            return self.run_user(user_id, mode, respect_monthly_gate)
        except Exception as exc:
            logger.exception(
                "sweep_user_failed",
                extra={"user_id": user_id, "sweep_mode": mode, "error": str(exc)},
            )
            return None

    def run_once(self, mode: str) -> ScheduledSweepSummary:
        sweep_mode = normalize_mode(mode)
        respect_gate = respects_monthly_gate(self._settings, sweep_mode)
        start_time = time.monotonic()
        user_ids = self.list_user_ids()

        if self._max_workers > 1 and len(user_ids) > 1:
            with ThreadPoolExecutor(
                max_workers=self._max_workers, thread_name_prefix="sweep"
            ) as pool:
                results = list(
                    pool.map(
                        lambda uid: self._run_user_safely(uid, sweep_mode, respect_gate),
                        user_ids,
                    )
                )
        else:
            results = [
                self._run_user_safely(uid, sweep_mode, respect_gate) for uid in user_ids
            ]

        completed = [r for r in results if r is not None]
        ran = [r for r in completed if not r.skipped]
        summary = ScheduledSweepSummary(
            mode=sweep_mode,
            user_count=len(user_ids),
            processed=len(ran),
            skipped=len(completed) - len(ran),
            failed=len(results) - len(completed),
            alerts_created=sum(r.alerts_created for r in ran),
            alerts_updated=sum(r.alerts_updated for r in ran),
            alerts_resolved=sum(r.alerts_resolved for r in ran),
            suggestions_created=sum(r.suggestions_created for r in ran),
            duration_ms=int((time.monotonic() - start_time) * 1000),
        )
        logger.info(
            "sweep_run_completed",
            extra={
                "sweep_mode": sweep_mode,
                "user_count": summary.user_count,
                "processed": summary.processed,
                "skipped": summary.skipped,
                "failed": summary.failed,
                "duration_ms": summary.duration_ms,
            },
        )
        return summary


class SweepScheduler:
    """In-process polling scheduler for the sweep cadences.

    Contract:
        - ``tick()`` runs every due cadence once and returns their summaries.
        - ``start()`` / ``stop()`` for background thread operation.

    Non-goals:
        - NOT a distributed scheduler (no leader election).
        - Last-run times live in memory; a restart fires every cadence once.
    """

    def __init__(
        self,
        runner: SweepRunner,
        cadences: Sequence[SweepCadence] | None = None,
        clock: Clock | None = None,
        tick_interval_seconds: int = 60,
    ):
        self._runner = runner
        self._cadences = tuple(
            cadences if cadences is not None else CoreSettings().scheduler.cadences
        )
        self._clock = clock or SystemClock()
        self._tick_interval = tick_interval_seconds
        self._last_run: dict[str, int] = {}
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @classmethod
    def from_settings(
        cls,
        session_factory: Callable[[], Session],
        settings: CoreSettings,
        clock: Clock | None = None,
    ) -> SweepScheduler:
        runner = SweepRunner(session_factory, clock, settings)
        return cls(
            runner,
            settings.scheduler.cadences,
            clock,
            settings.scheduler.tick_interval_seconds,
        )

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def last_run_ms(self, mode: str) -> int | None:
        return self._last_run.get(mode)

    def tick(self) -> list[ScheduledSweepSummary]:
        """Fire due cadences (public for testing)."""
        now_ms = self._clock.now_ms()
        fired: list[ScheduledSweepSummary] = []
        for cadence in self._cadences:
            if self._stop_event.is_set():
                break
            if not cadence_is_due(cadence, self._last_run.get(cadence.mode), now_ms):
                continue
            try:
                summary = self._runner.run_once(cadence.mode)
            except Exception:
                logger.exception("sweep_cadence_failed", extra={"sweep_mode": cadence.mode})
                continue
            self._last_run[cadence.mode] = now_ms
            fired.append(summary)
            logger.info(
                "sweep_cadence_fired",
                extra={
                    "sweep_mode": cadence.mode,
                    "interval_seconds": cadence.interval_seconds,
                    "processed": summary.processed,
                    "failed": summary.failed,
                },
            )
        return fired

    def start(self) -> None:
        """Start the scheduler in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="sweep-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info("scheduler_started", extra={"tick_interval": self._tick_interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current tick to finish."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("scheduler_tick_exception")
            self._stop_event.wait(timeout=self._tick_interval)
