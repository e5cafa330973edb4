"""Descriptors naming where a quiz comes from."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from quiz_player.constants.quiz_constants import (
    DEFAULT_CONTENT_QUESTION_COUNT,
    DEFAULT_DIFFICULTY,
    DEFAULT_TOPIC_QUESTION_COUNT,
)
from quiz_player.core.models import Quiz


@dataclass(frozen=True, slots=True)
class ContentSource:
    """Quiz derived from a piece of study material; generated on first use."""

    content_id: str
    question_count: int = DEFAULT_CONTENT_QUESTION_COUNT


@dataclass(frozen=True, slots=True)
class TopicSource:
    """Freely specified topic. Every resolution generates a new quiz."""

    topic: str
    difficulty: str = DEFAULT_DIFFICULTY
    question_count: int = DEFAULT_TOPIC_QUESTION_COUNT
    description: str | None = None


@dataclass(frozen=True, slots=True)
class DirectQuizSource:
    """Known quiz id, optionally with the quiz already in hand (retake, navigation payload)."""

    quiz_id: str
    quiz: Quiz | None = None


@dataclass(frozen=True, slots=True)
class CommunitySource:
    """Quiz shared within a community; private ones need an access code."""

    community_id: str
    quiz_id: str
    access_code: str | None = None
    quiz: Quiz | None = None


QuizSourceDescriptor = Union[ContentSource, TopicSource, DirectQuizSource, CommunitySource]
GenerationSource = Union[ContentSource, TopicSource]


def cache_key(descriptor: QuizSourceDescriptor) -> tuple[str, ...] | None:
    """Key under which a resolved quiz may be reused, or None when it must not be."""
    if isinstance(descriptor, ContentSource):
        return ("content", descriptor.content_id)
    if isinstance(descriptor, DirectQuizSource):
        return ("quiz", descriptor.quiz_id)
    if isinstance(descriptor, CommunitySource):
        return ("community", descriptor.community_id, descriptor.quiz_id)
    return None
