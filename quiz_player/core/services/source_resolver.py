"""Service that turns a source descriptor into a playable quiz."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from quiz_player.constants.quiz_constants import DIFFICULTY_LEVELS
from quiz_player.core.errors import ResolutionFailed
from quiz_player.core.models import Quiz
from quiz_player.core.services.contracts import QuizProvisioningService
from quiz_player.core.sources import (
    CommunitySource,
    ContentSource,
    DirectQuizSource,
    QuizSourceDescriptor,
    TopicSource,
)

logger = logging.getLogger(__name__)


class QuizSourceResolver:
    """Resolves every kind of quiz source through one entry point.

    Generation is attempted at most once per call and never retried here;
    retrying is the caller's decision.
    """

    def __init__(self, provisioning: QuizProvisioningService) -> None:
        self._provisioning = provisioning
        self._handlers: dict[type, Callable[..., Awaitable[Quiz]]] = {
            ContentSource: self._resolve_content,
            TopicSource: self._resolve_topic,
            DirectQuizSource: self._resolve_direct,
            CommunitySource: self._resolve_community,
        }

    async def resolve(self, descriptor: QuizSourceDescriptor) -> Quiz:
        handler = self._handlers.get(type(descriptor))
        if handler is None:
            raise TypeError(f"Unsupported quiz source {type(descriptor).__name__}.")
        _validate(descriptor)
        try:
            quiz = await handler(descriptor)
        except ResolutionFailed:
            raise
        except Exception as exc:
            logger.error("Failed to resolve quiz from %s: %s", descriptor, exc)
            raise ResolutionFailed(descriptor, f"Failed to load quiz: {exc}") from exc
        logger.info("Resolved quiz %s (%s, %d questions)", quiz.id, quiz.provenance.value, quiz.question_count)
        return quiz

    async def _resolve_content(self, source: ContentSource) -> Quiz:
        existing = await self._provisioning.get_existing_quiz(source.content_id)
        if existing is not None:
            return existing
        logger.info("No existing quiz for content %s, generating one", source.content_id)
        return await self._provisioning.generate_quiz(source)

    async def _resolve_topic(self, source: TopicSource) -> Quiz:
        return await self._provisioning.generate_quiz(source)

    async def _resolve_direct(self, source: DirectQuizSource) -> Quiz:
        if source.quiz is not None:
            _check_identity(source, source.quiz.id, source.quiz_id)
            return source.quiz
        return await self._provisioning.get_quiz_by_id(source.quiz_id)

    async def _resolve_community(self, source: CommunitySource) -> Quiz:
        if source.quiz is not None:
            _check_identity(source, source.quiz.id, source.quiz_id)
            return source.quiz
        return await self._provisioning.get_community_quiz(source.community_id, source.quiz_id)


def _validate(descriptor: QuizSourceDescriptor) -> None:
    if isinstance(descriptor, TopicSource):
        if not descriptor.topic.strip():
            raise ValueError("Please enter a topic for your quiz.")
        if descriptor.difficulty not in DIFFICULTY_LEVELS:
            raise ValueError(f"Difficulty must be one of {', '.join(DIFFICULTY_LEVELS)}.")
        if descriptor.question_count < 1:
            raise ValueError("A quiz needs at least one question.")
    elif isinstance(descriptor, ContentSource) and descriptor.question_count < 1:
        raise ValueError("A quiz needs at least one question.")


def _check_identity(descriptor: QuizSourceDescriptor, actual: str, expected: str) -> None:
    if actual != expected:
        raise ResolutionFailed(descriptor, f"Supplied quiz {actual!r} does not match requested id {expected!r}.")
