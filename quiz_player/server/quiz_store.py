"""In-memory storage and grading for the reference quiz service."""

from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from uuid import uuid4

from quiz_player.constants.quiz_constants import (
    ACCESS_CODE_LENGTH,
    DEFAULT_COMMUNITY_TIME_LIMIT_SECONDS,
    DEFAULT_DIFFICULTY,
)
from quiz_player.core.models import (
    AccessGrant,
    AttemptSubmission,
    NarrativeFeedback,
    Provenance,
    Question,
    QuestionReview,
    QuestionType,
    Quiz,
    QuizSettings,
    Result,
    Visibility,
)
from quiz_player.server.question_bank import BankQuestion, QuestionBank

logger = logging.getLogger(__name__)

_CODE_ALPHABET = string.ascii_uppercase + string.digits


@dataclass(slots=True)
class StoredQuiz:
    quiz: Quiz
    answer_key: dict[str, BankQuestion]
    allow_retake: bool = True


@dataclass(slots=True)
class StoredAttempt:
    attempt_id: str
    quiz_id: str
    learner_id: str
    created_at: datetime
    result: Result | None = None


@dataclass(slots=True)
class LearnerState:
    granted_quizzes: set[str] = field(default_factory=set)
    progress: dict[str, int] = field(default_factory=dict)


class QuizStore:
    """Holds quizzes, attempts, access grants and content progress.

    Lookups of unknown ids raise ``KeyError``, access to a private quiz that
    was never granted raises ``PermissionError`` and a second submission of
    the same attempt raises ``RuntimeError``.
    """

    def __init__(self, bank: QuestionBank) -> None:
        self._bank = bank
        self._lock = Lock()
        self._quizzes: dict[str, StoredQuiz] = {}
        self._content_quizzes: dict[str, str] = {}
        self._access_codes: dict[str, str] = {}
        self._attempts: dict[str, StoredAttempt] = {}
        self._learners: dict[str, LearnerState] = {}

    # --- Quizzes ---

    def get_content_quiz(self, content_id: str) -> Quiz:
        with self._lock:
            quiz_id = self._content_quizzes.get(content_id)
            if quiz_id is None:
                raise KeyError(f"No quiz generated for content {content_id} yet.")
            return self._quizzes[quiz_id].quiz

    def generate_from_content(self, content_id: str, question_count: int) -> Quiz:
        """Return the content's quiz, generating it on first request."""
        with self._lock:
            existing = self._content_quizzes.get(content_id)
            if existing is not None:
                return self._quizzes[existing].quiz
            picked = self._bank.sample(question_count, seed=content_id)
            stored = self._build(
                picked,
                title=f"Quiz: {content_id}",
                provenance=Provenance.CONTENT_DERIVED,
                settings=QuizSettings(),
                content_id=content_id,
            )
            self._content_quizzes[content_id] = stored.quiz.id
            return stored.quiz

    def generate_from_topic(
        self,
        topic: str,
        question_count: int,
        difficulty: str = DEFAULT_DIFFICULTY,
        description: str | None = None,
    ) -> Quiz:
        if not topic.strip():
            raise ValueError("Please enter a topic for your quiz.")
        with self._lock:
            picked = self._bank.sample(question_count, topic=topic)
            stored = self._build(
                picked,
                title=f"{topic.strip().title()} Quiz",
                provenance=Provenance.TOPIC_GENERATED,
                settings=QuizSettings(),
                description=description,
                difficulty=difficulty,
            )
            return stored.quiz

    def publish_community_quiz(
        self,
        community_id: str,
        title: str,
        question_count: int,
        topic: str | None = None,
        visibility: Visibility = Visibility.PUBLIC,
        time_limit_seconds: int = DEFAULT_COMMUNITY_TIME_LIMIT_SECONDS,
        allow_retake: bool = True,
    ) -> Quiz:
        with self._lock:
            access_code = self._new_access_code() if visibility is Visibility.PRIVATE else None
            picked = self._bank.sample(question_count, topic=topic)
            stored = self._build(
                picked,
                title=title,
                provenance=Provenance.COMMUNITY,
                settings=QuizSettings(
                    time_limit_seconds=time_limit_seconds,
                    require_all_answers=False,
                ),
                visibility=visibility,
                access_code=access_code,
                community_id=community_id,
                allow_retake=allow_retake,
            )
            if access_code is not None:
                self._access_codes[access_code] = stored.quiz.id
            logger.info("Published %s community quiz %s in %s", visibility.value, stored.quiz.id, community_id)
            return stored.quiz

    def get_quiz(self, quiz_id: str, learner_id: str) -> Quiz:
        with self._lock:
            stored = self._stored(quiz_id)
            self._check_access(stored.quiz, learner_id)
            return stored.quiz

    def get_community_quiz(self, community_id: str, quiz_id: str, learner_id: str) -> Quiz:
        with self._lock:
            stored = self._stored_in_community(community_id, quiz_id)
            self._check_access(stored.quiz, learner_id)
            return stored.quiz

    # --- Access codes ---

    def redeem_access_code(self, code: str, learner_id: str) -> AccessGrant:
        normalized = code.strip().upper()
        if not normalized:
            raise ValueError("Please enter an access code.")
        with self._lock:
            quiz_id = self._access_codes.get(normalized)
            if quiz_id is None:
                raise KeyError("Invalid access code.")
            quiz = self._quizzes[quiz_id].quiz
            self._learner(learner_id).granted_quizzes.add(quiz_id)
            return AccessGrant(code=normalized, quiz_id=quiz_id, community_id=quiz.community_id)

    # --- Attempts ---

    def start_attempt(self, quiz_id: str, learner_id: str, community_id: str | None = None) -> StoredAttempt:
        with self._lock:
            if community_id is not None:
                stored = self._stored_in_community(community_id, quiz_id)
            else:
                stored = self._stored(quiz_id)
            self._check_access(stored.quiz, learner_id)
            attempt = StoredAttempt(
                attempt_id=uuid4().hex,
                quiz_id=quiz_id,
                learner_id=learner_id,
                created_at=datetime.now(timezone.utc),
            )
            self._attempts[attempt.attempt_id] = attempt
            logger.info("Learner %s started attempt %s on quiz %s", learner_id, attempt.attempt_id, quiz_id)
            return attempt

    def submit_attempt(
        self,
        attempt_id: str,
        submission: AttemptSubmission,
        learner_id: str,
        community_id: str | None = None,
    ) -> Result:
        with self._lock:
            attempt = self._owned_attempt(attempt_id, learner_id)
            stored = self._quizzes[attempt.quiz_id]
            if community_id is not None and stored.quiz.community_id != community_id:
                raise KeyError(f"Attempt {attempt_id} does not belong to community {community_id}.")
            if attempt.result is not None:
                raise RuntimeError(f"Attempt {attempt_id} has already been submitted.")
            attempt.result = _grade(stored, submission)
            logger.info(
                "Attempt %s graded: %d/%d correct",
                attempt_id,
                attempt.result.correct_answers,
                attempt.result.total_questions,
            )
            return attempt.result

    def get_result(self, attempt_id: str, learner_id: str) -> Result:
        with self._lock:
            attempt = self._owned_attempt(attempt_id, learner_id)
            if attempt.result is None:
                raise KeyError(f"Attempt {attempt_id} has not been submitted yet.")
            return attempt.result

    # --- Progress ---

    def set_progress(self, content_id: str, learner_id: str, progress: int) -> int:
        if not 0 <= progress <= 100:
            raise ValueError("Progress must be between 0 and 100.")
        with self._lock:
            state = self._learner(learner_id)
            state.progress[content_id] = max(progress, state.progress.get(content_id, 0))
            return state.progress[content_id]

    def get_progress(self, content_id: str, learner_id: str) -> int:
        with self._lock:
            return self._learner(learner_id).progress.get(content_id, 0)

    # --- Helpers ---

    def _build(
        self,
        picked: list[BankQuestion],
        title: str,
        provenance: Provenance,
        settings: QuizSettings,
        visibility: Visibility = Visibility.PUBLIC,
        access_code: str | None = None,
        description: str | None = None,
        content_id: str | None = None,
        community_id: str | None = None,
        difficulty: str | None = None,
        allow_retake: bool = True,
    ) -> StoredQuiz:
        quiz_id = uuid4().hex
        answer_key: dict[str, BankQuestion] = {}
        questions = []
        for position, bank_question in enumerate(picked, start=1):
            question_id = f"{quiz_id[:8]}-q{position}"
            answer_key[question_id] = bank_question
            questions.append(
                Question(
                    id=question_id,
                    prompt=bank_question.prompt,
                    type=bank_question.type,
                    options=tuple(bank_question.options),
                    explanation=bank_question.explanation,
                )
            )
        quiz = Quiz(
            id=quiz_id,
            title=title,
            questions=tuple(questions),
            provenance=provenance,
            settings=settings,
            visibility=visibility,
            access_code=access_code,
            description=description,
            content_id=content_id,
            community_id=community_id,
            difficulty=difficulty,
        )
        stored = StoredQuiz(quiz=quiz, answer_key=answer_key, allow_retake=allow_retake)
        self._quizzes[quiz_id] = stored
        return stored

    def _stored(self, quiz_id: str) -> StoredQuiz:
        stored = self._quizzes.get(quiz_id)
        if stored is None:
            raise KeyError(f"Quiz {quiz_id} not found.")
        return stored

    def _stored_in_community(self, community_id: str, quiz_id: str) -> StoredQuiz:
        stored = self._stored(quiz_id)
        if stored.quiz.community_id != community_id:
            raise KeyError(f"Quiz {quiz_id} not found in community {community_id}.")
        return stored

    def _owned_attempt(self, attempt_id: str, learner_id: str) -> StoredAttempt:
        attempt = self._attempts.get(attempt_id)
        if attempt is None or attempt.learner_id != learner_id:
            raise KeyError(f"Attempt {attempt_id} not found.")
        return attempt

    def _check_access(self, quiz: Quiz, learner_id: str) -> None:
        if quiz.visibility is Visibility.PRIVATE and quiz.id not in self._learner(learner_id).granted_quizzes:
            raise PermissionError("This quiz is private. Enter its access code to join.")

    def _learner(self, learner_id: str) -> LearnerState:
        return self._learners.setdefault(learner_id, LearnerState())

    def _new_access_code(self) -> str:
        while True:
            code = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(ACCESS_CODE_LENGTH))
            if code not in self._access_codes:
                return code


def _grade(stored: StoredQuiz, submission: AttemptSubmission) -> Result:
    quiz = stored.quiz
    answers = {answer.question_id: answer.answer for answer in submission.answers}
    unknown = set(answers) - set(stored.answer_key)
    if unknown:
        raise ValueError(f"Unknown question id(s): {', '.join(sorted(unknown))}.")

    correct: list[Question] = []
    incorrect: list[Question] = []
    reviews: list[QuestionReview] = []
    for question in quiz.questions:
        given = _answer_text(question, answers.get(question.id, ""))
        expected = stored.answer_key[question.id].correct_answer
        is_correct = bool(given) and given.casefold() == expected.strip().casefold()
        if is_correct:
            correct.append(question)
        else:
            incorrect.append(question)
        reviews.append(QuestionReview(question.id, is_correct, question.explanation))

    total = quiz.question_count
    score = round(len(correct) * 100 / total)
    passed = score >= quiz.settings.passing_score_percent
    return Result(
        score=score,
        correct_answers=len(correct),
        total_questions=total,
        passed=passed,
        time_spent_seconds=submission.total_time_seconds,
        feedback=_narrative(score, passed, correct, incorrect),
        can_retake=stored.allow_retake,
        submitted_at=datetime.now(timezone.utc),
        reviews=tuple(reviews),
    )


def _answer_text(question: Question, answer: str | int) -> str:
    """Bring an index or text answer into the form stored in the answer key."""
    if isinstance(answer, int):
        if question.type is not QuestionType.MULTIPLE_CHOICE:
            raise ValueError(f"Question {question.id} does not take an option index.")
        if not 0 <= answer < len(question.options):
            raise ValueError(f"Option index {answer} out of range for question {question.id}.")
        return question.options[answer]
    return answer.strip()


def _narrative(score: int, passed: bool, correct: list[Question], incorrect: list[Question]) -> NarrativeFeedback:
    if score >= 90:
        performance = "Excellent"
    elif score >= 70:
        performance = "Good"
    elif score >= 50:
        performance = "Fair"
    else:
        performance = "Needs improvement"

    recommendations = tuple(
        question.explanation or f"Review: {_shorten(question.prompt)}" for question in incorrect
    )
    if passed:
        next_steps = "Try a harder quiz on the same material."
        motivation = "Great work, keep it up!"
    else:
        next_steps = "Review the material and retake the quiz."
        motivation = "Every attempt gets you closer. Keep going!"

    return NarrativeFeedback(
        summary=f"You answered {len(correct)} of {len(correct) + len(incorrect)} questions correctly ({score}%).",
        overall_performance=performance,
        strengths=tuple(_shorten(question.prompt) for question in correct),
        weaknesses=tuple(_shorten(question.prompt) for question in incorrect),
        recommendations=recommendations,
        next_steps=next_steps,
        motivational_message=motivation,
    )


def _shorten(text: str, limit: int = 80) -> str:
    first_line = text.splitlines()[0]
    return first_line if len(first_line) <= limit else first_line[: limit - 3] + "..."
