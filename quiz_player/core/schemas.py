"""Payload schemas exchanged with the quiz backend, and their domain conversions."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from quiz_player.constants.quiz_constants import (
    DEFAULT_COMMUNITY_TIME_LIMIT_SECONDS,
    DEFAULT_CONTENT_QUESTION_COUNT,
    DEFAULT_DIFFICULTY,
    DEFAULT_PASSING_SCORE_PERCENT,
    DEFAULT_TOPIC_QUESTION_COUNT,
)
from quiz_player.core.models import (
    AccessGrant,
    AnswerFormat,
    AttemptHandle,
    AttemptSubmission,
    NarrativeFeedback,
    Provenance,
    Question,
    QuestionReview,
    QuestionType,
    Quiz,
    QuizSettings,
    Result,
    SubmittedAnswer,
    Visibility,
)
from quiz_player.core.sources import ContentSource, TopicSource


class QuestionPayload(BaseModel):
    id: str
    prompt: str
    type: QuestionType
    options: list[str] = Field(default_factory=list)
    explanation: str | None = None

    def to_domain(self) -> Question:
        return Question(
            id=self.id,
            prompt=self.prompt,
            type=self.type,
            options=tuple(self.options),
            explanation=self.explanation,
        )

    @classmethod
    def from_domain(cls, question: Question) -> "QuestionPayload":
        return cls(
            id=question.id,
            prompt=question.prompt,
            type=question.type,
            options=list(question.options),
            explanation=question.explanation,
        )


class QuizSettingsPayload(BaseModel):
    time_limit_seconds: int | None = Field(default=None, gt=0)
    passing_score_percent: int = Field(default=DEFAULT_PASSING_SCORE_PERCENT, ge=0, le=100)
    require_all_answers: bool | None = None
    allow_partial_on_expiry: bool = True
    answer_format: AnswerFormat | None = None


class QuizPayload(BaseModel):
    id: str
    title: str
    questions: list[QuestionPayload]
    provenance: Provenance
    settings: QuizSettingsPayload = Field(default_factory=QuizSettingsPayload)
    visibility: Visibility = Visibility.PUBLIC
    access_code: str | None = None
    description: str | None = None
    content_id: str | None = None
    community_id: str | None = None
    difficulty: str | None = None

    def to_domain(self) -> Quiz:
        """Build the domain quiz, filling in per-provenance defaults.

        Community quizzes are time-boxed (30 minutes unless stated) and accept
        partial answers; self-study quizzes count up and need every answer.
        """
        is_community = self.provenance is Provenance.COMMUNITY
        time_limit = self.settings.time_limit_seconds
        if time_limit is None and is_community:
            time_limit = DEFAULT_COMMUNITY_TIME_LIMIT_SECONDS
        require_all = self.settings.require_all_answers
        if require_all is None:
            require_all = not is_community

        return Quiz(
            id=self.id,
            title=self.title,
            questions=tuple(question.to_domain() for question in self.questions),
            provenance=self.provenance,
            settings=QuizSettings(
                time_limit_seconds=time_limit,
                passing_score_percent=self.settings.passing_score_percent,
                require_all_answers=require_all,
                allow_partial_on_expiry=self.settings.allow_partial_on_expiry,
                answer_format=self.settings.answer_format,
            ),
            visibility=self.visibility,
            access_code=self.access_code if self.visibility is Visibility.PRIVATE else None,
            description=self.description,
            content_id=self.content_id,
            community_id=self.community_id,
            difficulty=self.difficulty,
        )

    @classmethod
    def from_domain(cls, quiz: Quiz) -> "QuizPayload":
        settings = quiz.settings
        return cls(
            id=quiz.id,
            title=quiz.title,
            questions=[QuestionPayload.from_domain(question) for question in quiz.questions],
            provenance=quiz.provenance,
            settings=QuizSettingsPayload(
                time_limit_seconds=settings.time_limit_seconds,
                passing_score_percent=settings.passing_score_percent,
                require_all_answers=settings.require_all_answers,
                allow_partial_on_expiry=settings.allow_partial_on_expiry,
                answer_format=settings.answer_format,
            ),
            visibility=quiz.visibility,
            access_code=quiz.access_code,
            description=quiz.description,
            content_id=quiz.content_id,
            community_id=quiz.community_id,
            difficulty=quiz.difficulty,
        )

    def for_learner(self) -> "QuizPayload":
        """Copy without the access code. Explanations are held back until the attempt is graded."""
        questions = [question.model_copy(update={"explanation": None}) for question in self.questions]
        return self.model_copy(update={"access_code": None, "questions": questions})


class GenerateFromContentPayload(BaseModel):
    content_id: str
    question_count: int = Field(default=DEFAULT_CONTENT_QUESTION_COUNT, ge=1)

    @classmethod
    def from_source(cls, source: ContentSource) -> "GenerateFromContentPayload":
        return cls(content_id=source.content_id, question_count=source.question_count)


class GenerateFromTopicPayload(BaseModel):
    topic: str = Field(min_length=1)
    difficulty: str = DEFAULT_DIFFICULTY
    question_count: int = Field(default=DEFAULT_TOPIC_QUESTION_COUNT, ge=1)
    description: str | None = None

    @classmethod
    def from_source(cls, source: TopicSource) -> "GenerateFromTopicPayload":
        return cls(
            topic=source.topic,
            difficulty=source.difficulty,
            question_count=source.question_count,
            description=source.description,
        )


class AttemptHandlePayload(BaseModel):
    attempt_id: str
    created_at: datetime

    def to_domain(self) -> AttemptHandle:
        return AttemptHandle(attempt_id=self.attempt_id, created_at=self.created_at)


class SubmittedAnswerPayload(BaseModel):
    question_id: str
    answer: str | int = ""
    time_spent_seconds: int = Field(default=0, ge=0)


class SubmitAttemptPayload(BaseModel):
    answers: list[SubmittedAnswerPayload]
    total_time_seconds: int = Field(ge=0)
    answer_format: AnswerFormat = AnswerFormat.OPTION_TEXT

    @classmethod
    def from_domain(cls, submission: AttemptSubmission) -> "SubmitAttemptPayload":
        return cls(
            answers=[
                SubmittedAnswerPayload(
                    question_id=answer.question_id,
                    answer=answer.answer,
                    time_spent_seconds=answer.time_spent_seconds,
                )
                for answer in submission.answers
            ],
            total_time_seconds=submission.total_time_seconds,
            answer_format=submission.answer_format,
        )

    def to_domain(self) -> AttemptSubmission:
        return AttemptSubmission(
            answers=tuple(
                SubmittedAnswer(
                    question_id=answer.question_id,
                    answer=answer.answer,
                    time_spent_seconds=answer.time_spent_seconds,
                )
                for answer in self.answers
            ),
            total_time_seconds=self.total_time_seconds,
            answer_format=self.answer_format,
        )


class NarrativeFeedbackPayload(BaseModel):
    summary: str | None = None
    overall_performance: str | None = None
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    next_steps: str | None = None
    motivational_message: str | None = None

    def to_domain(self) -> NarrativeFeedback:
        return NarrativeFeedback(
            summary=self.summary,
            overall_performance=self.overall_performance,
            strengths=tuple(self.strengths),
            weaknesses=tuple(self.weaknesses),
            recommendations=tuple(self.recommendations),
            next_steps=self.next_steps,
            motivational_message=self.motivational_message,
        )


class QuestionReviewPayload(BaseModel):
    question_id: str
    is_correct: bool
    explanation: str | None = None


class ResultPayload(BaseModel):
    attempt_id: str
    score: int = Field(ge=0, le=100)
    correct_answers: int = Field(ge=0)
    total_questions: int = Field(ge=0)
    passed: bool | None = None
    time_spent_seconds: int = Field(default=0, ge=0)
    feedback: NarrativeFeedbackPayload | None = None
    can_retake: bool = True
    submitted_at: datetime | None = None
    reviews: list[QuestionReviewPayload] = Field(default_factory=list)

    def to_domain(self, passing_score_percent: int = DEFAULT_PASSING_SCORE_PERCENT) -> Result:
        passed = self.passed if self.passed is not None else self.score >= passing_score_percent
        return Result(
            score=self.score,
            correct_answers=self.correct_answers,
            total_questions=self.total_questions,
            passed=passed,
            time_spent_seconds=self.time_spent_seconds,
            feedback=self.feedback.to_domain() if self.feedback is not None else None,
            can_retake=self.can_retake,
            submitted_at=self.submitted_at,
            reviews=tuple(
                QuestionReview(
                    question_id=review.question_id,
                    is_correct=review.is_correct,
                    explanation=review.explanation,
                )
                for review in self.reviews
            ),
        )

    @classmethod
    def from_domain(cls, attempt_id: str, result: Result) -> "ResultPayload":
        feedback = result.feedback
        return cls(
            attempt_id=attempt_id,
            score=result.score,
            correct_answers=result.correct_answers,
            total_questions=result.total_questions,
            passed=result.passed,
            time_spent_seconds=result.time_spent_seconds,
            feedback=None if feedback is None else NarrativeFeedbackPayload(
                summary=feedback.summary,
                overall_performance=feedback.overall_performance,
                strengths=list(feedback.strengths),
                weaknesses=list(feedback.weaknesses),
                recommendations=list(feedback.recommendations),
                next_steps=feedback.next_steps,
                motivational_message=feedback.motivational_message,
            ),
            can_retake=result.can_retake,
            submitted_at=result.submitted_at,
            reviews=[
                QuestionReviewPayload(
                    question_id=review.question_id,
                    is_correct=review.is_correct,
                    explanation=review.explanation,
                )
                for review in result.reviews
            ],
        )


class AccessCodePayload(BaseModel):
    access_code: str


class AccessGrantPayload(BaseModel):
    access_code: str
    quiz_id: str
    community_id: str | None = None

    def to_domain(self) -> AccessGrant:
        return AccessGrant(code=self.access_code, quiz_id=self.quiz_id, community_id=self.community_id)

    @classmethod
    def from_domain(cls, grant: AccessGrant) -> "AccessGrantPayload":
        return cls(access_code=grant.code, quiz_id=grant.quiz_id, community_id=grant.community_id)


class ProgressPayload(BaseModel):
    progress: int = Field(default=100, ge=0, le=100)
