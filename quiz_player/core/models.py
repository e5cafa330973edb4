"""Domain models for the quiz player."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Union

from quiz_player.constants.quiz_constants import DEFAULT_PASSING_SCORE_PERCENT


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple-choice"
    TRUE_FALSE = "true-false"
    SHORT_ANSWER = "short-answer"
    ESSAY = "essay"


class Visibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class Provenance(str, Enum):
    CONTENT_DERIVED = "content-derived"
    TOPIC_GENERATED = "topic-generated"
    COMMUNITY = "community"


class AttemptStatus(str, Enum):
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    SUBMITTED = "submitted"
    EXPIRED = "expired"


class SessionState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    IN_PROGRESS = "in-progress"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    CLOSED = "closed"


class AnswerFormat(str, Enum):
    """How a multiple-choice selection travels to the server."""

    OPTION_TEXT = "option-text"
    OPTION_INDEX = "option-index"


@dataclass(frozen=True, slots=True)
class Question:
    """A single question. Correctness is only ever known server-side."""

    id: str
    prompt: str
    type: QuestionType
    options: tuple[str, ...] = ()
    explanation: str | None = None

    def __post_init__(self) -> None:
        if not self.prompt.strip():
            raise ValueError(f"Question {self.id!r} has no prompt text.")
        if self.type is QuestionType.MULTIPLE_CHOICE:
            if len(self.options) < 2:
                raise ValueError(f"Multiple-choice question {self.id!r} needs at least two options.")
            if any(not option.strip() for option in self.options):
                raise ValueError(f"Option text cannot be empty (question {self.id!r}).")
        elif self.options:
            raise ValueError(f"Only multiple-choice questions carry options (question {self.id!r}).")


@dataclass(frozen=True, slots=True)
class QuizSettings:
    time_limit_seconds: int | None = None
    passing_score_percent: int = DEFAULT_PASSING_SCORE_PERCENT
    require_all_answers: bool = True
    allow_partial_on_expiry: bool = True
    answer_format: AnswerFormat | None = None

    def __post_init__(self) -> None:
        if self.time_limit_seconds is not None and self.time_limit_seconds <= 0:
            raise ValueError("Time limit must be a positive integer.")
        if not 0 <= self.passing_score_percent <= 100:
            raise ValueError("Passing score must be between 0 and 100.")


@dataclass(frozen=True, slots=True)
class Quiz:
    """A playable quiz definition. Question order defines numbering and navigation."""

    id: str
    title: str
    questions: tuple[Question, ...]
    provenance: Provenance
    settings: QuizSettings = field(default_factory=QuizSettings)
    visibility: Visibility = Visibility.PUBLIC
    access_code: str | None = None
    description: str | None = None
    content_id: str | None = None
    community_id: str | None = None
    difficulty: str | None = None

    def __post_init__(self) -> None:
        if not self.questions:
            raise ValueError("Quiz must contain at least one question.")
        ids = [question.id for question in self.questions]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Quiz {self.id!r} contains duplicate question ids.")
        if self.access_code is not None and self.visibility is not Visibility.PRIVATE:
            raise ValueError("Only private quizzes carry an access code.")

    @property
    def question_count(self) -> int:
        return len(self.questions)

    @property
    def is_time_boxed(self) -> bool:
        return self.settings.time_limit_seconds is not None

    def question_at(self, index: int) -> Question:
        if not 0 <= index < len(self.questions):
            raise IndexError(f"Question index {index} out of range")
        return self.questions[index]

    def index_of(self, question_id: str) -> int:
        for index, question in enumerate(self.questions):
            if question.id == question_id:
                return index
        raise ValueError(f"Unknown question id {question_id!r} for quiz {self.id!r}.")


@dataclass(frozen=True, slots=True)
class TextAnswer:
    text: str


@dataclass(frozen=True, slots=True)
class OptionIndex:
    index: int


@dataclass(frozen=True, slots=True)
class BooleanAnswer:
    value: bool


AnswerValue = Union[TextAnswer, OptionIndex, BooleanAnswer]


@dataclass(slots=True)
class AnswerRecord:
    """The learner's current answer for one question."""

    question_id: str
    value: AnswerValue | None = None
    time_spent_seconds: float = 0.0
    dirty: bool = False


@dataclass(slots=True)
class TimeLedger:
    """Per-question accrued seconds plus the attempt's time box, if any."""

    per_question: dict[str, float] = field(default_factory=dict)
    time_limit_seconds: int | None = None
    started_at: float | None = None

    def seconds_for(self, question_id: str) -> float:
        return self.per_question.get(question_id, 0.0)

    def accrued_total(self) -> float:
        return sum(self.per_question.values())


@dataclass(frozen=True, slots=True)
class NarrativeFeedback:
    """Server-authored commentary on an attempt."""

    summary: str | None = None
    overall_performance: str | None = None
    strengths: tuple[str, ...] = ()
    weaknesses: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()
    next_steps: str | None = None
    motivational_message: str | None = None


@dataclass(frozen=True, slots=True)
class QuestionReview:
    """How one question went, revealed only once the attempt is graded."""

    question_id: str
    is_correct: bool
    explanation: str | None = None


@dataclass(frozen=True, slots=True)
class Result:
    score: int
    correct_answers: int
    total_questions: int
    passed: bool
    time_spent_seconds: int = 0
    feedback: NarrativeFeedback | None = None
    can_retake: bool = True
    submitted_at: datetime | None = None
    reviews: tuple[QuestionReview, ...] = ()

    def __post_init__(self) -> None:
        if not 0 <= self.score <= 100:
            raise ValueError(f"Score must be between 0 and 100, got {self.score}.")
        if not 0 <= self.correct_answers <= self.total_questions:
            raise ValueError("Correct answer count exceeds the number of questions.")

    @property
    def incorrect_answers(self) -> int:
        return self.total_questions - self.correct_answers


@dataclass(slots=True)
class Attempt:
    """One play of a quiz, from start to its single finalization."""

    id: str
    quiz_id: str
    created_at: datetime
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    result: Result | None = None
    submitted_at: datetime | None = None

    @property
    def is_finalized(self) -> bool:
        return self.result is not None

    def finalize(self, result: Result, expired: bool = False) -> None:
        if self.result is not None:
            raise RuntimeError(f"Attempt {self.id} already has a result.")
        self.result = result
        self.status = AttemptStatus.EXPIRED if expired else AttemptStatus.SUBMITTED
        self.submitted_at = result.submitted_at or datetime.utcnow()


@dataclass(frozen=True, slots=True)
class AttemptHandle:
    attempt_id: str
    created_at: datetime


@dataclass(frozen=True, slots=True)
class AccessGrant:
    code: str
    quiz_id: str
    community_id: str | None = None


@dataclass(frozen=True, slots=True)
class SubmittedAnswer:
    question_id: str
    answer: str | int
    time_spent_seconds: int


@dataclass(frozen=True, slots=True)
class AttemptSubmission:
    answers: tuple[SubmittedAnswer, ...]
    total_time_seconds: int
    answer_format: AnswerFormat
