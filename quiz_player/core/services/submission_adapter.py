"""Answer coercion and the wire shape of a submission.

Internally every multiple-choice selection is an ``OptionIndex``. Whether the
server receives the option text or the index is decided here, once, from the
quiz's provenance (or its explicit ``answer_format`` setting).
"""

from __future__ import annotations

from typing import Mapping

from quiz_player.core.models import (
    AnswerFormat,
    AnswerRecord,
    AnswerValue,
    AttemptSubmission,
    BooleanAnswer,
    OptionIndex,
    Provenance,
    Question,
    QuestionType,
    Quiz,
    SubmittedAnswer,
    TextAnswer,
)

_DEFAULT_FORMATS: dict[Provenance, AnswerFormat] = {
    Provenance.CONTENT_DERIVED: AnswerFormat.OPTION_TEXT,
    Provenance.TOPIC_GENERATED: AnswerFormat.OPTION_TEXT,
    Provenance.COMMUNITY: AnswerFormat.OPTION_INDEX,
}

_TRUE_WORDS = {"true", "t", "yes"}
_FALSE_WORDS = {"false", "f", "no"}


def answer_format_for(quiz: Quiz) -> AnswerFormat:
    if quiz.settings.answer_format is not None:
        return quiz.settings.answer_format
    return _DEFAULT_FORMATS[quiz.provenance]


def coerce_answer(question: Question, raw: object) -> AnswerValue | None:
    """Turn a raw value (or an ``AnswerValue``) into the canonical form for ``question``.

    Returns None for blank answers, which count as unanswered.
    """
    if raw is None:
        return None
    if isinstance(raw, (TextAnswer, OptionIndex, BooleanAnswer)):
        value: AnswerValue = raw
    elif isinstance(raw, bool):
        value = BooleanAnswer(raw)
    elif isinstance(raw, int):
        value = OptionIndex(raw)
    elif isinstance(raw, str):
        value = TextAnswer(raw)
    else:
        raise ValueError(f"Unsupported answer type {type(raw).__name__} for question {question.id!r}.")

    if isinstance(value, TextAnswer) and not value.text.strip():
        return None

    if question.type is QuestionType.MULTIPLE_CHOICE:
        return _coerce_choice(question, value)
    if question.type is QuestionType.TRUE_FALSE:
        return _coerce_boolean(question, value)
    if not isinstance(value, TextAnswer):
        raise ValueError(f"Question {question.id!r} expects a free-text answer.")
    return value


def is_answered(value: AnswerValue | None) -> bool:
    if value is None:
        return False
    if isinstance(value, TextAnswer):
        return bool(value.text.strip())
    return True


def to_wire(question: Question, value: AnswerValue | None, answer_format: AnswerFormat) -> str | int:
    if value is None:
        return ""
    if isinstance(value, OptionIndex):
        if answer_format is AnswerFormat.OPTION_INDEX:
            return value.index
        return question.options[value.index]
    if isinstance(value, BooleanAnswer):
        return "True" if value.value else "False"
    return value.text.strip()


def build_submission(
    quiz: Quiz,
    records: Mapping[str, AnswerRecord],
    seconds_by_question: Mapping[str, int],
    total_time_seconds: int,
) -> AttemptSubmission:
    """Build the payload for every question, in quiz order, unanswered ones included."""
    answer_format = answer_format_for(quiz)
    answers = []
    for question in quiz.questions:
        record = records.get(question.id)
        value = record.value if record is not None else None
        answers.append(
            SubmittedAnswer(
                question_id=question.id,
                answer=to_wire(question, value, answer_format),
                time_spent_seconds=max(0, int(seconds_by_question.get(question.id, 0))),
            )
        )
    return AttemptSubmission(
        answers=tuple(answers),
        total_time_seconds=max(0, int(total_time_seconds)),
        answer_format=answer_format,
    )


def _coerce_choice(question: Question, value: AnswerValue) -> OptionIndex:
    if isinstance(value, OptionIndex):
        if not 0 <= value.index < len(question.options):
            raise ValueError(
                f"Option index {value.index} out of range for question {question.id!r}."
            )
        return value
    if isinstance(value, TextAnswer):
        text = value.text.strip()
        for index, option in enumerate(question.options):
            if option == text:
                return OptionIndex(index)
        raise ValueError(f"{text!r} is not one of the options of question {question.id!r}.")
    raise ValueError(f"Question {question.id!r} expects one of its options, not a boolean.")


def _coerce_boolean(question: Question, value: AnswerValue) -> BooleanAnswer:
    if isinstance(value, BooleanAnswer):
        return value
    if isinstance(value, TextAnswer):
        word = value.text.strip().lower()
        if word in _TRUE_WORDS:
            return BooleanAnswer(True)
        if word in _FALSE_WORDS:
            return BooleanAnswer(False)
    raise ValueError(f"Question {question.id!r} expects True or False.")
