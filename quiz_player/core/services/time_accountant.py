"""Per-question and total elapsed-time bookkeeping for an attempt.

The accountant owns the session's single periodic tick. Totals are always
derived from a monotonic clock, so a late or skipped tick never changes the
recorded time; the tick only drives expiry detection and display refresh.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from abc import ABC, abstractmethod
from typing import Callable, Iterable

from quiz_player.constants.quiz_constants import TICK_INTERVAL_SECONDS
from quiz_player.core.models import TimeLedger

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class Ticker(ABC):
    """Periodic callback source. Exactly one owner starts and stops it."""

    @abstractmethod
    def start(self, callback: Callable[[], None]) -> None:
        pass

    @abstractmethod
    def stop(self) -> None:
        pass

    @property
    @abstractmethod
    def is_active(self) -> bool:
        pass


class AsyncioTicker(Ticker):
    """Ticker backed by a re-armed ``loop.call_later`` handle."""

    def __init__(self, interval_seconds: float = TICK_INTERVAL_SECONDS) -> None:
        if interval_seconds <= 0:
            raise ValueError("Tick interval must be positive.")
        self._interval = interval_seconds
        self._loop: asyncio.AbstractEventLoop | None = None
        self._handle: asyncio.TimerHandle | None = None
        self._callback: Callable[[], None] | None = None

    @property
    def is_active(self) -> bool:
        return self._handle is not None

    def start(self, callback: Callable[[], None]) -> None:
        self.stop()
        self._loop = asyncio.get_running_loop()
        self._callback = callback
        self._schedule()

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._callback = None

    def _schedule(self) -> None:
        if self._loop is None:
            raise RuntimeError("Ticker has not been started.")
        self._handle = self._loop.call_later(self._interval, self._fire)

    def _fire(self) -> None:
        callback = self._callback
        self._handle = None
        if callback is None:
            return
        # Re-arm before the callback so that the callback may stop the ticker.
        self._schedule()
        callback()


class TimeAccountant:
    """Maintains the running total and per-question accrual for one attempt."""

    def __init__(
        self,
        question_ids: Iterable[str],
        time_limit_seconds: int | None = None,
        ticker: Ticker | None = None,
        clock: Clock = time.monotonic,
        on_expired: Callable[[], None] | None = None,
        on_tick: Callable[[int], None] | None = None,
    ) -> None:
        self._ledger = TimeLedger(
            per_question={question_id: 0.0 for question_id in question_ids},
            time_limit_seconds=time_limit_seconds,
        )
        self._ticker = ticker if ticker is not None else AsyncioTicker()
        self._clock = clock
        self.on_expired = on_expired
        self.on_tick = on_tick

        self._stopped_at: float | None = None
        self._active_question: str | None = None
        self._segment_started_at: float | None = None
        self._running_total: int = 0
        self._paused = False
        self._expired = False

    @property
    def ledger(self) -> TimeLedger:
        return self._ledger

    @property
    def is_started(self) -> bool:
        return self._ledger.started_at is not None

    @property
    def is_running(self) -> bool:
        return self.is_started and not self._paused and self._stopped_at is None

    @property
    def is_stopped(self) -> bool:
        return self._stopped_at is not None

    @property
    def has_expired(self) -> bool:
        return self._expired

    @property
    def running_total(self) -> int:
        """Whole seconds since start as of the last tick."""
        return self._running_total

    @property
    def active_question(self) -> str | None:
        return self._active_question

    def start(self, initial_question_id: str | None = None) -> None:
        if self._ledger.started_at is not None:
            raise RuntimeError("Time accountant already started.")
        now = self._clock()
        self._ledger.started_at = now
        for question_id in self._ledger.per_question:
            self._ledger.per_question[question_id] = 0.0
        if initial_question_id is not None:
            self._begin_segment(initial_question_id, now)
        self._ticker.start(self.tick)

    def switch_to(self, question_id: str) -> None:
        """Close the active question's segment and open one for ``question_id``."""
        if question_id not in self._ledger.per_question:
            raise ValueError(f"Unknown question id {question_id!r}.")
        self.flush()
        if self.is_running:
            self._begin_segment(question_id, self._clock())
        else:
            self._active_question = question_id

    def flush(self) -> float:
        """Add the active segment's partial time to the ledger and return the delta."""
        if self._active_question is None or self._segment_started_at is None:
            return 0.0
        now = self._clock()
        delta = max(0.0, now - self._segment_started_at)
        self._ledger.per_question[self._active_question] += delta
        self._segment_started_at = now
        return delta

    def pause(self) -> None:
        if not self.is_running:
            return
        self.flush()
        self._segment_started_at = None
        self._ticker.stop()
        self._paused = True

    def resume(self) -> None:
        if not self._paused or self.is_stopped:
            return
        self._paused = False
        if self._active_question is not None:
            self._segment_started_at = self._clock()
        self._ticker.start(self.tick)
        # The time box may have run out while paused.
        self._check_expiry()

    def stop(self) -> None:
        """Cancel every scheduled tick and freeze the totals."""
        if self._stopped_at is not None:
            return
        self.flush()
        self._segment_started_at = None
        self._ticker.stop()
        now = self._clock()
        if self._ledger.started_at is None:
            self._ledger.started_at = now
        self._stopped_at = now

    def tick(self) -> None:
        if not self.is_running:
            return
        self._running_total = max(self._running_total, int(self.elapsed_seconds()))
        if self.on_tick is not None:
            self.on_tick(self.display_seconds())
        self._check_expiry()

    def elapsed_seconds(self) -> float:
        if self._ledger.started_at is None:
            return 0.0
        end = self._stopped_at if self._stopped_at is not None else self._clock()
        return max(0.0, end - self._ledger.started_at)

    def remaining_seconds(self) -> float | None:
        limit = self._ledger.time_limit_seconds
        if limit is None:
            return None
        return max(0.0, limit - self.elapsed_seconds())

    def display_seconds(self) -> int:
        """Seconds left for time-boxed attempts, seconds elapsed otherwise."""
        remaining = self.remaining_seconds()
        if remaining is None:
            return int(self.elapsed_seconds())
        return int(math.ceil(remaining))

    def seconds_for(self, question_id: str) -> float:
        seconds = self._ledger.seconds_for(question_id)
        if question_id == self._active_question and self._segment_started_at is not None:
            seconds += max(0.0, self._clock() - self._segment_started_at)
        return seconds

    def whole_seconds_by_question(self) -> dict[str, int]:
        return {question_id: int(seconds) for question_id, seconds in self._ledger.per_question.items()}

    def _begin_segment(self, question_id: str, now: float) -> None:
        self._active_question = question_id
        self._segment_started_at = now

    def _check_expiry(self) -> None:
        remaining = self.remaining_seconds()
        if remaining is None or remaining > 0 or self._expired:
            return
        self._expired = True
        logger.info("Time limit of %ss reached", self._ledger.time_limit_seconds)
        self.stop()
        if self.on_expired is not None:
            self.on_expired()
