"""Timed quiz attempts reconciled with a server-side grade."""

from .core.errors import (
    AlreadyStarted,
    AttemptExpiredAlready,
    AttemptStartFailed,
    IncompleteAnswers,
    InvalidAccessCode,
    QuizPlayerError,
    RequestRejected,
    ResolutionFailed,
    ResultUnavailable,
    RetakeNotAllowed,
    ServiceUnavailable,
    SessionClosed,
    SessionNotStarted,
    SubmissionInProgress,
    SubmitFailed,
)
from .core.quiz_player import QuizPlayer
from .core.services.attempt_session import AttemptSession
from .core.sources import CommunitySource, ContentSource, DirectQuizSource, TopicSource

__all__ = [
    "AlreadyStarted",
    "AttemptExpiredAlready",
    "AttemptSession",
    "AttemptStartFailed",
    "CommunitySource",
    "ContentSource",
    "DirectQuizSource",
    "IncompleteAnswers",
    "InvalidAccessCode",
    "QuizPlayer",
    "QuizPlayerError",
    "RequestRejected",
    "ResolutionFailed",
    "ResultUnavailable",
    "RetakeNotAllowed",
    "ServiceUnavailable",
    "SessionClosed",
    "SessionNotStarted",
    "SubmissionInProgress",
    "SubmitFailed",
    "TopicSource",
]
