"""Exceptions raised by the quiz player."""

from __future__ import annotations

from typing import Sequence


class QuizPlayerError(Exception):
    """Base class for all quiz player errors."""


class ServiceUnavailable(QuizPlayerError):
    """The quiz backend could not be reached or failed on its side."""


class RequestRejected(QuizPlayerError):
    """The quiz backend refused a request for a reason not covered elsewhere."""

    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(f"Request rejected ({status_code}): {detail}")
        self.status_code = status_code
        self.detail = detail


class ResolutionFailed(QuizPlayerError):
    """A quiz could not be fetched or generated. The caller may retry."""

    def __init__(self, descriptor: object, message: str) -> None:
        super().__init__(message)
        self.descriptor = descriptor


class InvalidAccessCode(QuizPlayerError):
    """The access code is wrong or expired."""


class IncompleteAnswers(QuizPlayerError):
    """Submission refused locally because some questions have no answer."""

    def __init__(self, question_ids: Sequence[str]) -> None:
        count = len(question_ids)
        super().__init__(f"Please answer all questions. {count} question(s) remaining.")
        self.question_ids = tuple(question_ids)
        self.unanswered_count = count


class AttemptStartFailed(QuizPlayerError):
    """The server did not open an attempt. The session stays idle."""


class SubmitFailed(QuizPlayerError):
    """Submission failed in transit. Answers are kept and the learner may resubmit."""


class AttemptExpiredAlready(QuizPlayerError):
    """The server already finalized this attempt, usually through a time-expiry submission."""


class SessionMisuseError(QuizPlayerError, RuntimeError):
    """The caller drove a session against its contract."""


class AlreadyStarted(SessionMisuseError):
    pass


class SubmissionInProgress(SessionMisuseError):
    pass


class SessionNotStarted(SessionMisuseError):
    pass


class SessionClosed(SessionMisuseError):
    pass


class ResultUnavailable(SessionMisuseError):
    pass


class RetakeNotAllowed(QuizPlayerError):
    """The server ruled that this quiz may not be taken again."""
