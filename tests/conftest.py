"""Pytest configuration and shared fixtures"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from quiz_player.core.errors import InvalidAccessCode
from quiz_player.core.models import (
    AccessGrant,
    AnswerFormat,
    AttemptHandle,
    NarrativeFeedback,
    Provenance,
    Question,
    QuestionType,
    Quiz,
    QuizSettings,
    Result,
    Visibility,
)
from quiz_player.core.services.attempt_session import AttemptSession
from quiz_player.core.services.contracts import (
    AccessService,
    AttemptService,
    ContentProgressService,
    QuizProvisioningService,
)
from quiz_player.core.services.time_accountant import Ticker
from quiz_player.core.sources import ContentSource, TopicSource
from quiz_player.server.question_bank import QuestionBank, parse_bank_text

TEST_BANK = """
TOPIC: letters
Q: Pick the second letter.
A: A
B: B
C: C
D: D
CORRECT: B

TOPIC: arithmetic
TYPE: true-false
Q: 2 + 2 equals 4.
CORRECT: True

TOPIC: arithmetic
TYPE: short-answer
Q: What is 6 x 7?
CORRECT: 42
EXPLANATION: Six sevens are forty-two.

TOPIC: python
Q: Which keyword defines a function?
A: func
B: def
CORRECT: B
"""

# Correct answer per prompt, in the form a learner would enter it.
CORRECT_ANSWERS = {
    "Pick the second letter.": "B",
    "2 + 2 equals 4.": True,
    "What is 6 x 7?": "42",
    "Which keyword defines a function?": "def",
}


class FakeClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ManualTicker(Ticker):
    """Ticker that only fires when the test calls ``fire()``."""

    def __init__(self) -> None:
        self.callback = None
        self.start_calls = 0
        self.stop_calls = 0

    @property
    def is_active(self) -> bool:
        return self.callback is not None

    def start(self, callback) -> None:
        self.callback = callback
        self.start_calls += 1

    def stop(self) -> None:
        self.callback = None
        self.stop_calls += 1

    def fire(self) -> None:
        if self.callback is not None:
            self.callback()


def example_questions() -> tuple[Question, ...]:
    return (
        Question(
            id="q1",
            prompt="Pick the second letter.",
            type=QuestionType.MULTIPLE_CHOICE,
            options=("A", "B", "C", "D"),
        ),
        Question(id="q2", prompt="2 + 2 equals 4.", type=QuestionType.TRUE_FALSE),
        Question(id="q3", prompt="What is 6 x 7?", type=QuestionType.SHORT_ANSWER),
    )


def make_quiz(
    quiz_id: str = "quiz-1",
    provenance: Provenance = Provenance.CONTENT_DERIVED,
    time_limit_seconds: int | None = None,
    require_all_answers: bool = True,
    allow_partial_on_expiry: bool = True,
    answer_format: AnswerFormat | None = None,
    visibility: Visibility = Visibility.PUBLIC,
    access_code: str | None = None,
    content_id: str | None = None,
    community_id: str | None = None,
) -> Quiz:
    if provenance is Provenance.CONTENT_DERIVED and content_id is None:
        content_id = "content-1"
    if provenance is Provenance.COMMUNITY and community_id is None:
        community_id = "community-1"
    return Quiz(
        id=quiz_id,
        title="Example quiz",
        questions=example_questions(),
        provenance=provenance,
        settings=QuizSettings(
            time_limit_seconds=time_limit_seconds,
            require_all_answers=require_all_answers,
            allow_partial_on_expiry=allow_partial_on_expiry,
            answer_format=answer_format,
        ),
        visibility=visibility,
        access_code=access_code,
        content_id=content_id,
        community_id=community_id,
    )


def make_result(
    score: int = 67,
    correct_answers: int = 2,
    total_questions: int = 3,
    passed: bool = False,
    can_retake: bool = True,
) -> Result:
    return Result(
        score=score,
        correct_answers=correct_answers,
        total_questions=total_questions,
        passed=passed,
        time_spent_seconds=95,
        feedback=NarrativeFeedback(summary="Solid effort.", strengths=("letters",)),
        can_retake=can_retake,
        submitted_at=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
    )


class FakeProvisioningService(QuizProvisioningService):
    """Records every call; ``errors`` maps an operation name to the exception it raises."""

    def __init__(self) -> None:
        self.existing: dict[str, Quiz] = {}
        self.quizzes: dict[str, Quiz] = {}
        self.community: dict[tuple[str, str], Quiz] = {}
        self.errors: dict[str, Exception] = {}
        self.calls: list[tuple[str, object]] = []
        self._generated = 0

    async def get_existing_quiz(self, content_id: str) -> Quiz | None:
        self._record("get_existing_quiz", content_id)
        return self.existing.get(content_id)

    async def generate_quiz(self, source) -> Quiz:
        self._record("generate_quiz", source)
        self._generated += 1
        if isinstance(source, ContentSource):
            quiz = make_quiz(quiz_id=f"generated-{self._generated}", content_id=source.content_id)
            self.existing[source.content_id] = quiz
            return quiz
        assert isinstance(source, TopicSource)
        return make_quiz(quiz_id=f"topic-{self._generated}", provenance=Provenance.TOPIC_GENERATED)

    async def get_quiz_by_id(self, quiz_id: str) -> Quiz:
        self._record("get_quiz_by_id", quiz_id)
        return self.quizzes[quiz_id]

    async def get_community_quiz(self, community_id: str, quiz_id: str) -> Quiz:
        self._record("get_community_quiz", (community_id, quiz_id))
        return self.community[(community_id, quiz_id)]

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def _record(self, name: str, argument: object) -> None:
        self.calls.append((name, argument))
        error = self.errors.get(name)
        if error is not None:
            raise error


class FakeAttemptService(AttemptService):
    """Hands out attempt ids and a canned result.

    ``start_gate``/``submit_gate`` hold the call in flight until the test sets
    them; ``submit_errors`` are raised by successive submissions.
    """

    def __init__(self, result: Result | None = None) -> None:
        self.result = result if result is not None else make_result()
        self.stored_result: Result | None = None
        self.start_error: Exception | None = None
        self.submit_errors: list[Exception] = []
        self.start_gate: asyncio.Event | None = None
        self.submit_gate: asyncio.Event | None = None
        self.started: list[str] = []
        self.submissions: list[tuple[str, object]] = []
        self.result_lookups: list[str] = []

    async def start_attempt(self, quiz: Quiz) -> AttemptHandle:
        self.started.append(quiz.id)
        if self.start_gate is not None:
            await self.start_gate.wait()
        if self.start_error is not None:
            raise self.start_error
        return AttemptHandle(
            attempt_id=f"attempt-{len(self.started)}",
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )

    async def submit_attempt(self, quiz: Quiz, attempt_id: str, submission) -> Result:
        self.submissions.append((attempt_id, submission))
        if self.submit_gate is not None:
            await self.submit_gate.wait()
        if self.submit_errors:
            raise self.submit_errors.pop(0)
        return self.result

    async def get_attempt_result(self, quiz: Quiz, attempt_id: str) -> Result:
        self.result_lookups.append(attempt_id)
        return self.stored_result if self.stored_result is not None else self.result


class FakeAccessService(AccessService):
    def __init__(self, grants: dict[str, AccessGrant] | None = None) -> None:
        self.grants = grants or {}
        self.error: Exception | None = None
        self.calls: list[str] = []

    async def redeem_access_code(self, code: str) -> AccessGrant:
        self.calls.append(code)
        if self.error is not None:
            raise self.error
        grant = self.grants.get(code)
        if grant is None:
            raise InvalidAccessCode("Invalid access code.")
        return grant


class FakeProgressService(ContentProgressService):
    def __init__(self) -> None:
        self.completed: list[str] = []
        self.error: Exception | None = None

    async def mark_content_complete(self, content_id: str) -> None:
        self.completed.append(content_id)
        if self.error is not None:
            raise self.error


def make_session(quiz: Quiz, attempts: AttemptService, clock: FakeClock, ticker: ManualTicker, **kwargs) -> AttemptSession:
    return AttemptSession(quiz, attempts, ticker=ticker, clock=clock, **kwargs)


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ticker() -> ManualTicker:
    return ManualTicker()


@pytest.fixture
def attempts() -> FakeAttemptService:
    return FakeAttemptService()


@pytest.fixture
def provisioning() -> FakeProvisioningService:
    return FakeProvisioningService()


@pytest.fixture
def access() -> FakeAccessService:
    return FakeAccessService(
        {"ABC123": AccessGrant(code="ABC123", quiz_id="private-1", community_id="community-1")}
    )


@pytest.fixture
def progress() -> FakeProgressService:
    return FakeProgressService()


@pytest.fixture
def bank() -> QuestionBank:
    return QuestionBank(parse_bank_text(TEST_BANK))
