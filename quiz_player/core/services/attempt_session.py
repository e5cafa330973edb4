"""Service for driving a single quiz attempt from start to its graded result."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from quiz_player.core.errors import (
    AlreadyStarted,
    AttemptStartFailed,
    IncompleteAnswers,
    ResultUnavailable,
    SessionClosed,
    SessionNotStarted,
    SubmissionInProgress,
    SubmitFailed,
)
from quiz_player.core.models import (
    AnswerRecord,
    AnswerValue,
    Attempt,
    AttemptSubmission,
    Question,
    Quiz,
    Result,
    SessionState,
)
from quiz_player.core.services.contracts import AttemptService
from quiz_player.core.services.scoring_reconciler import ScoringReconciler
from quiz_player.core.services.submission_adapter import build_submission, coerce_answer, is_answered
from quiz_player.core.services.time_accountant import Clock, Ticker, TimeAccountant

logger = logging.getLogger(__name__)

_PENDING_STATES = (SessionState.STARTING, SessionState.SUBMITTING)


class AttemptSession:
    """Owns one attempt of one quiz: its answers, its time ledger and its timer.

    All methods run on the event loop thread. Network round trips (start and
    submit) are the only suspension points; everything else, including the
    time-expiry handler, runs synchronously.
    """

    def __init__(
        self,
        quiz: Quiz,
        attempt_service: AttemptService,
        reconciler: ScoringReconciler | None = None,
        ticker: Ticker | None = None,
        clock: Clock = time.monotonic,
        on_tick: Callable[[int], None] | None = None,
    ) -> None:
        self._quiz = quiz
        self._attempt_service = attempt_service
        self._reconciler = reconciler if reconciler is not None else ScoringReconciler(attempt_service)
        self._accountant = TimeAccountant(
            [question.id for question in quiz.questions],
            time_limit_seconds=quiz.settings.time_limit_seconds,
            ticker=ticker,
            clock=clock,
            on_expired=self._handle_time_expired,
            on_tick=on_tick,
        )

        self._state = SessionState.IDLE
        self._attempt: Attempt | None = None
        self._records: dict[str, AnswerRecord] = {
            question.id: AnswerRecord(question_id=question.id) for question in quiz.questions
        }
        self._current_index = 0
        self._time_expired = False
        self._answers_locked = False
        self._submission_task: asyncio.Task | None = None
        self._submission_forced = False

    async def __aenter__(self) -> "AttemptSession":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    # --- State ---

    def current_state(self) -> SessionState:
        return self._state

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def quiz(self) -> Quiz:
        return self._quiz

    @property
    def attempt(self) -> Attempt | None:
        return self._attempt

    @property
    def accountant(self) -> TimeAccountant:
        return self._accountant

    @property
    def is_pending(self) -> bool:
        """True while a network round trip is outstanding."""
        return self._state in _PENDING_STATES

    @property
    def is_time_expired(self) -> bool:
        return self._time_expired

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def current_question(self) -> Question:
        return self._quiz.questions[self._current_index]

    def time_remaining_or_elapsed(self) -> int:
        return self._accountant.display_seconds()

    def result(self) -> Result:
        if self._state is not SessionState.COMPLETED or self._attempt is None or self._attempt.result is None:
            raise ResultUnavailable(f"No result yet; session is {self._state.value}.")
        return self._attempt.result

    # --- Lifecycle ---

    async def start(self) -> Attempt:
        if self._state is SessionState.CLOSED:
            raise SessionClosed("Session has been closed.")
        if self._state is not SessionState.IDLE:
            raise AlreadyStarted(f"Attempt for quiz {self._quiz.id} already started ({self._state.value}).")

        self._set_state(SessionState.STARTING)
        try:
            handle = await self._attempt_service.start_attempt(self._quiz)
        except Exception as exc:
            logger.error("Failed to start attempt for quiz %s: %s", self._quiz.id, exc)
            if self._state is SessionState.STARTING:
                self._set_state(SessionState.IDLE)
            raise AttemptStartFailed(f"Failed to start quiz: {exc}") from exc

        self._attempt = Attempt(id=handle.attempt_id, quiz_id=self._quiz.id, created_at=handle.created_at)
        if self._state is SessionState.CLOSED:
            logger.warning("Session closed while attempt %s was starting; it stays open server-side", handle.attempt_id)
            return self._attempt

        self._current_index = 0
        self._accountant.start(self.current_question.id)
        if self._quiz.is_time_boxed:
            logger.info(
                "Attempt %s has %d seconds to finish", handle.attempt_id, self._quiz.settings.time_limit_seconds
            )
        self._set_state(SessionState.IN_PROGRESS)
        return self._attempt

    def close(self) -> None:
        """Tear the session down. Never submits; an open attempt stays in progress server-side."""
        if self._state is SessionState.CLOSED:
            return
        self._accountant.stop()
        if self._state is SessionState.COMPLETED:
            return
        logger.info(
            "Closing session for quiz %s in state %s without submitting",
            self._quiz.id,
            self._state.value,
        )
        self._set_state(SessionState.CLOSED)

    # --- Interaction ---

    def navigate(self, index: int) -> bool:
        if not self._accepts_input("navigate"):
            return False
        target = self._quiz.question_at(index)
        if index == self._current_index:
            return True
        previous_id = self.current_question.id
        self._accountant.switch_to(target.id)
        self._sync_record_time(previous_id)
        self._current_index = index
        return True

    def next_question(self) -> bool:
        if self._current_index >= self._quiz.question_count - 1:
            return False
        return self.navigate(self._current_index + 1)

    def previous_question(self) -> bool:
        if self._current_index <= 0:
            return False
        return self.navigate(self._current_index - 1)

    def answer(self, question_id: str, value: object) -> bool:
        """Record or overwrite the answer for ``question_id``.

        Returns False, without raising, when the session no longer accepts
        input (submission begun, answers frozen by expiry, or closed).
        """
        if not self._accepts_input("answer"):
            return False
        question = self._quiz.questions[self._quiz.index_of(question_id)]
        value = coerce_answer(question, value)
        record = self._records[question_id]
        if record.value != value:
            record.value = value
            record.dirty = True
        return True

    def clear_answer(self, question_id: str) -> bool:
        return self.answer(question_id, None)

    def answer_for(self, question_id: str) -> AnswerValue | None:
        self._quiz.index_of(question_id)
        return self._records[question_id].value

    def answer_records(self) -> list[AnswerRecord]:
        return [self._records[question.id] for question in self._quiz.questions]

    def unanswered_question_ids(self) -> list[str]:
        return [question.id for question in self._quiz.questions if not is_answered(self._records[question.id].value)]

    def unanswered_count(self) -> int:
        return len(self.unanswered_question_ids())

    def progress_percent(self) -> float:
        answered = self._quiz.question_count - self.unanswered_count()
        return (answered / self._quiz.question_count) * 100

    # --- Submission ---

    async def submit(self) -> Result:
        if self._state in (SessionState.IDLE, SessionState.STARTING):
            raise SessionNotStarted("No active quiz attempt found.")
        if self._state is SessionState.CLOSED:
            raise SessionClosed("Session has been closed.")
        if self._state is SessionState.COMPLETED:
            logger.warning("Attempt %s already submitted; returning its result", self._attempt.id)
            return self.result()
        if self._state is SessionState.SUBMITTING:
            if self._submission_forced:
                logger.info("Attempt %s is already being submitted after time expiry", self._attempt.id)
                return await self.wait_for_submission()
            raise SubmissionInProgress(f"Attempt {self._attempt.id} is already being submitted.")

        forced = self._answers_locked
        if not forced and self._quiz.settings.require_all_answers:
            missing = self.unanswered_question_ids()
            if missing:
                raise IncompleteAnswers(missing)

        self._begin_submission(forced=forced)
        return await self.wait_for_submission()

    async def wait_for_submission(self) -> Result | None:
        """Wait for the in-flight (or last) submission; None if nothing was ever submitted."""
        if self._submission_task is None:
            return None
        return await asyncio.shield(self._submission_task)

    def _begin_submission(self, forced: bool) -> None:
        if forced:
            self._answers_locked = True
            self._accountant.stop()
        else:
            self._accountant.pause()
        for question in self._quiz.questions:
            self._sync_record_time(question.id)

        submission = build_submission(
            self._quiz,
            self._records,
            self._accountant.whole_seconds_by_question(),
            int(self._accountant.elapsed_seconds()),
        )
        self._submission_forced = forced
        self._set_state(SessionState.SUBMITTING)
        task = asyncio.get_running_loop().create_task(self._run_submission(submission, forced))
        task.add_done_callback(self._log_submission_outcome)
        self._submission_task = task

    async def _run_submission(self, submission: AttemptSubmission, forced: bool) -> Result:
        logger.info(
            "Submitting attempt %s: %d answers, %ss total%s",
            self._attempt.id,
            len(submission.answers),
            submission.total_time_seconds,
            " (time expired)" if forced else "",
        )
        try:
            result = await self._reconciler.submit(
                self._quiz, self._attempt, submission, expired=self._time_expired
            )
        except Exception as exc:
            self._roll_back(exc)
            raise SubmitFailed(f"Failed to submit quiz: {exc}") from exc

        for record in self._records.values():
            record.dirty = False
        self._accountant.stop()
        if self._state is SessionState.SUBMITTING:
            self._set_state(SessionState.COMPLETED)
        return result

    def _roll_back(self, exc: Exception) -> None:
        logger.error("Submission of attempt %s failed: %s", self._attempt.id, exc)
        if self._state is not SessionState.SUBMITTING:
            return
        self._set_state(SessionState.IN_PROGRESS)
        if not self._answers_locked:
            self._accountant.resume()

    def _handle_time_expired(self) -> None:
        if self._state is not SessionState.IN_PROGRESS or not self._quiz.is_time_boxed:
            return
        self._time_expired = True
        if not self._quiz.settings.allow_partial_on_expiry and self.unanswered_question_ids():
            logger.warning(
                "Time is up for attempt %s with %d unanswered question(s); waiting for the learner",
                self._attempt.id,
                self.unanswered_count(),
            )
            return
        logger.info("Time is up! Submitting attempt %s", self._attempt.id)
        self._begin_submission(forced=True)

    @staticmethod
    def _log_submission_outcome(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Submission ended with an error: %s", exc)

    # --- Helpers ---

    def _accepts_input(self, action: str) -> bool:
        if self._state in (SessionState.IDLE, SessionState.STARTING):
            raise SessionNotStarted(f"Cannot {action} before the attempt has started.")
        if self._state is SessionState.IN_PROGRESS and not self._answers_locked:
            return True
        logger.warning("Ignoring %s on quiz %s: session is %s", action, self._quiz.id, self._state.value)
        return False

    def _sync_record_time(self, question_id: str) -> None:
        record = self._records[question_id]
        record.time_spent_seconds = max(record.time_spent_seconds, self._accountant.ledger.seconds_for(question_id))

    def _set_state(self, new_state: SessionState) -> None:
        if new_state is self._state:
            return
        logger.info("Quiz %s session: %s -> %s", self._quiz.id, self._state.value, new_state.value)
        self._state = new_state
