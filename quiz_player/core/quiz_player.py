"""Caller-facing entry point tying quiz resolution, access codes and attempt sessions together."""

from __future__ import annotations

import logging
import time
from typing import Callable

from quiz_player.core.errors import RetakeNotAllowed
from quiz_player.core.models import AccessGrant, Quiz, Result, Visibility
from quiz_player.core.services.access_gate import AccessGate
from quiz_player.core.services.attempt_session import AttemptSession
from quiz_player.core.services.contracts import (
    AccessService,
    AttemptService,
    ContentProgressService,
    QuizProvisioningService,
)
from quiz_player.core.services.scoring_reconciler import ResultSummary, ScoringReconciler
from quiz_player.core.services.source_resolver import QuizSourceResolver
from quiz_player.core.services.time_accountant import Clock, Ticker
from quiz_player.core.sources import CommunitySource, DirectQuizSource, QuizSourceDescriptor, cache_key

logger = logging.getLogger(__name__)


class QuizPlayer:
    """Facade for quiz services: SourceResolver, AccessGate, ScoringReconciler and AttemptSession.

    At most one session is active per player; opening another one closes the
    previous session first, so no two sessions ever tick at the same time.
    """

    def __init__(
        self,
        provisioning: QuizProvisioningService,
        attempts: AttemptService,
        access: AccessService,
        progress: ContentProgressService | None = None,
        ticker_factory: Callable[[], Ticker] | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._resolver = QuizSourceResolver(provisioning)
        self._gate = AccessGate(access)
        self._attempts = attempts
        self._reconciler = ScoringReconciler(attempts, progress)
        self._ticker_factory = ticker_factory
        self._clock = clock

        self._quiz_cache: dict[tuple[str, ...], Quiz] = {}
        self._session: AttemptSession | None = None

    # --- Resolution ---

    async def resolve_quiz(self, descriptor: QuizSourceDescriptor) -> Quiz:
        """Resolve ``descriptor``, redeeming its access code first when it has one.

        Quizzes resolved from content, ids or communities are cached, so
        navigating back to the same content never generates a second quiz.
        Topic descriptors always produce a fresh quiz.
        """
        key = cache_key(descriptor)
        if key is not None and key in self._quiz_cache:
            return self._quiz_cache[key]

        if isinstance(descriptor, CommunitySource) and descriptor.access_code:
            await self._gate.redeem(descriptor.access_code)

        quiz = await self._resolver.resolve(descriptor)
        if key is not None:
            self._quiz_cache[key] = quiz
        return quiz

    def forget(self, descriptor: QuizSourceDescriptor) -> None:
        key = cache_key(descriptor)
        if key is not None:
            self._quiz_cache.pop(key, None)

    async def redeem_access_code(self, code: str) -> AccessGrant:
        return await self._gate.redeem(code)

    def has_access(self, quiz: Quiz) -> bool:
        return quiz.visibility is Visibility.PUBLIC or self._gate.has_access(quiz.id)

    # --- Sessions ---

    def open_session(self, quiz: Quiz, on_tick: Callable[[int], None] | None = None) -> AttemptSession:
        self.close()
        ticker = self._ticker_factory() if self._ticker_factory is not None else None
        self._session = AttemptSession(
            quiz,
            self._attempts,
            reconciler=self._reconciler,
            ticker=ticker,
            clock=self._clock,
            on_tick=on_tick,
        )
        return self._session

    async def play(self, descriptor: QuizSourceDescriptor, on_tick: Callable[[int], None] | None = None) -> AttemptSession:
        """Resolve, open and start a session in one go."""
        quiz = await self.resolve_quiz(descriptor)
        session = self.open_session(quiz, on_tick=on_tick)
        await session.start()
        return session

    async def retake(
        self,
        session: AttemptSession,
        on_tick: Callable[[int], None] | None = None,
    ) -> AttemptSession:
        """Start a new attempt on the same quiz. The finished attempt is left untouched."""
        attempt = session.attempt
        if attempt is not None and attempt.result is not None and not attempt.result.can_retake:
            raise RetakeNotAllowed(f"Quiz {session.quiz.id} cannot be retaken.")
        quiz = session.quiz
        self._quiz_cache.setdefault(cache_key(DirectQuizSource(quiz.id)), quiz)
        new_session = self.open_session(quiz, on_tick=on_tick)
        await new_session.start()
        return new_session

    @property
    def active_session(self) -> AttemptSession | None:
        return self._session

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    # --- Results ---

    @staticmethod
    def summarize(result: Result) -> ResultSummary:
        return ScoringReconciler.summarize(result)

    async def drain(self) -> None:
        """Wait for background notifications still in flight."""
        await self._reconciler.drain()
