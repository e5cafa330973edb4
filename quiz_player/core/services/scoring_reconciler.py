"""Service that submits attempts and interprets the server's verdict."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from quiz_player.core.errors import AttemptExpiredAlready
from quiz_player.core.models import (
    Attempt,
    AttemptSubmission,
    NarrativeFeedback,
    Provenance,
    QuestionReview,
    Quiz,
    Result,
)
from quiz_player.core.services.contracts import AttemptService, ContentProgressService

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ResultSummary:
    """What the results screen shows. Every number comes from the server."""

    score: int
    passed: bool
    correct_answers: int
    incorrect_answers: int
    total_questions: int
    time_spent_seconds: int
    feedback: NarrativeFeedback | None
    can_retake: bool
    reviews: tuple[QuestionReview, ...] = ()


class ScoringReconciler:
    """Sends answers for grading and attaches the authoritative result to the attempt."""

    def __init__(
        self,
        attempt_service: AttemptService,
        progress_service: ContentProgressService | None = None,
    ) -> None:
        self._attempts = attempt_service
        self._progress = progress_service
        self._background: set[asyncio.Task] = set()

    async def submit(
        self,
        quiz: Quiz,
        attempt: Attempt,
        submission: AttemptSubmission,
        expired: bool = False,
    ) -> Result:
        """Grade ``submission`` and finalize ``attempt``.

        Transport and server errors propagate to the caller untouched. An
        attempt the server already finalized is not an error: its stored
        result is fetched and used instead.
        """
        try:
            result = await self._attempts.submit_attempt(quiz, attempt.id, submission)
        except AttemptExpiredAlready:
            logger.warning("Attempt %s was already finalized server-side, fetching stored result", attempt.id)
            result = await self._attempts.get_attempt_result(quiz, attempt.id)

        attempt.finalize(result, expired=expired)
        logger.info(
            "Attempt %s graded: score=%d correct=%d/%d passed=%s",
            attempt.id,
            result.score,
            result.correct_answers,
            result.total_questions,
            result.passed,
        )
        self._notify_progress(quiz)
        return result

    @staticmethod
    def summarize(result: Result) -> ResultSummary:
        return ResultSummary(
            score=result.score,
            passed=result.passed,
            correct_answers=result.correct_answers,
            incorrect_answers=result.incorrect_answers,
            total_questions=result.total_questions,
            time_spent_seconds=result.time_spent_seconds,
            feedback=result.feedback,
            can_retake=result.can_retake,
            reviews=result.reviews,
        )

    async def drain(self) -> None:
        """Wait for pending progress notifications."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    def _notify_progress(self, quiz: Quiz) -> None:
        if self._progress is None or quiz.provenance is not Provenance.CONTENT_DERIVED or not quiz.content_id:
            return
        task = asyncio.get_running_loop().create_task(self._mark_complete(quiz.content_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _mark_complete(self, content_id: str) -> None:
        try:
            await self._progress.mark_content_complete(content_id)
        except Exception as exc:
            logger.warning("Could not mark content %s as complete: %s", content_id, exc)
