"""Plain-text question bank used by the reference quiz service.

File format (repeat blocks separated by blank lines or '---'):

    TOPIC: topic name          (optional, used by topic quizzes)
    TYPE: multiple-choice | true-false | short-answer | essay
                               (optional, defaults to multiple-choice)
    Q: Question text. Additional lines until the next marker are part of
       the question.
    A: First option text       (multiple-choice only, A-F, at least two)
    B: Second option text
    CORRECT: B                 (option letter, True/False, or the expected text)
    EXPLANATION: text          (optional)

Example:

    TOPIC: arithmetic
    Q: What is 6 x 7?
    TYPE: short-answer
    CORRECT: 42
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from pathlib import Path

from quiz_player.core.models import QuestionType

logger = logging.getLogger(__name__)

_DATA_PATH = Path(__file__).resolve().parent.parent / "data" / "sample_bank.txt"
_OPTION_ORDER = ["A", "B", "C", "D", "E", "F"]
_BOOLEAN_WORDS = {"TRUE": "True", "T": "True", "FALSE": "False", "F": "False"}


class QuestionBankError(Exception):
    """Raised when a question bank cannot be parsed."""


@dataclass(slots=True)
class BankQuestion:
    """A question together with its answer key. Never sent to learners as is."""

    prompt: str
    type: QuestionType
    correct_answer: str
    options: list[str] = field(default_factory=list)
    topic: str | None = None
    explanation: str | None = None


class QuestionBank:
    """Holds the parsed questions and samples them into quizzes."""

    def __init__(self, questions: list[BankQuestion]) -> None:
        if not questions:
            raise QuestionBankError("Question bank did not contain any questions.")
        self._questions = list(questions)

    @classmethod
    def from_default_file(cls) -> "QuestionBank":
        return load_bank_from_file(_DATA_PATH)

    def __len__(self) -> int:
        return len(self._questions)

    def topics(self) -> list[str]:
        return sorted({question.topic for question in self._questions if question.topic})

    def sample(self, count: int, topic: str | None = None, seed: str | None = None) -> list[BankQuestion]:
        """Pick up to ``count`` distinct questions, preferring ones on ``topic``.

        The same ``seed`` always yields the same selection.
        """
        if count < 1:
            raise ValueError("A quiz needs at least one question.")
        rng = random.Random(seed)
        pool = list(self._questions)
        rng.shuffle(pool)
        if topic:
            wanted = topic.strip().casefold()
            matching = [question for question in pool if (question.topic or "").casefold() == wanted]
            if not matching:
                logger.info("No questions on topic %r, sampling from the whole bank", topic)
            others = [question for question in pool if question not in matching]
            pool = matching + others
        return pool[:count]


def load_bank_from_file(file_path: Path) -> QuestionBank:
    text = file_path.read_text(encoding="utf-8")
    return QuestionBank(parse_bank_text(text))


def parse_bank_text(text: str) -> list[BankQuestion]:
    blocks: list[str] = []
    current_block: list[str] = []
    for raw_line in text.splitlines():
        stripped = raw_line.strip()
        if stripped.startswith("#"):
            continue
        if stripped == "---":
            if current_block:
                blocks.append("\n".join(current_block).strip())
                current_block = []
            continue
        if stripped:
            current_block.append(raw_line)
        elif current_block:
            blocks.append("\n".join(current_block).strip())
            current_block = []
    if current_block:
        blocks.append("\n".join(current_block).strip())

    return [_parse_block(block) for block in blocks if block]


def _parse_block(block: str) -> BankQuestion:
    question_lines: list[str] = []
    options: dict[str, str] = {}
    correct_raw: str | None = None
    question_type = QuestionType.MULTIPLE_CHOICE
    topic: str | None = None
    explanation: str | None = None
    current_section: str | None = None

    for raw_line in block.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        upper = line.upper()
        if upper.startswith("Q:"):
            question_lines = [line[2:].strip()]
            current_section = "Q"
            continue

        if upper.startswith("CORRECT:"):
            correct_raw = line.split(":", 1)[1].strip()
            current_section = None
            continue

        if upper.startswith("TYPE:"):
            raw_value = line.split(":", 1)[1].strip().lower()
            try:
                question_type = QuestionType(raw_value)
            except ValueError as exc:
                raise QuestionBankError(f"Unknown question TYPE '{raw_value}'.") from exc
            current_section = None
            continue

        if upper.startswith("TOPIC:"):
            topic = line.split(":", 1)[1].strip() or None
            current_section = None
            continue

        if upper.startswith("EXPLANATION:"):
            explanation = line.split(":", 1)[1].strip() or None
            current_section = "EXPLANATION"
            continue

        if len(line) > 2 and line[0].upper() in _OPTION_ORDER and line[1] == ":":
            letter = line[0].upper()
            options[letter] = line[2:].strip()
            current_section = letter
            continue

        if current_section == "Q":
            question_lines.append(line)
        elif current_section == "EXPLANATION":
            explanation = f"{explanation}\n{line}" if explanation else line
        elif current_section in _OPTION_ORDER:
            options[current_section] = options[current_section] + f"\n{line}"
        else:
            raise QuestionBankError(f"Encountered text outside of a known section: '{line}'.")

    prompt = "\n".join(question_lines).strip()
    if not prompt:
        raise QuestionBankError("Question text missing (Q: ...)")
    if not correct_raw:
        raise QuestionBankError(f"Question '{prompt}' has no CORRECT answer.")

    option_list = _collect_options(options, question_type)
    correct_answer = _normalize_correct(correct_raw, question_type, option_list)

    return BankQuestion(
        prompt=prompt,
        type=question_type,
        correct_answer=correct_answer,
        options=option_list,
        topic=topic,
        explanation=explanation,
    )


def _collect_options(options: dict[str, str], question_type: QuestionType) -> list[str]:
    if question_type is not QuestionType.MULTIPLE_CHOICE:
        if options:
            raise QuestionBankError("Only multiple-choice questions may define options.")
        return []
    letters = _OPTION_ORDER[: len(options)]
    if len(options) < 2 or sorted(options) != letters:
        raise QuestionBankError("Multiple-choice questions need consecutive options starting at A (at least A and B).")
    option_list = [options[letter].strip() for letter in letters]
    if any(not option for option in option_list):
        raise QuestionBankError("Option text cannot be empty.")
    return option_list


def _normalize_correct(raw: str, question_type: QuestionType, options: list[str]) -> str:
    """Store the answer key as the text a correct learner answer must match."""
    if question_type is QuestionType.MULTIPLE_CHOICE:
        letter = raw.upper()
        if letter not in _OPTION_ORDER[: len(options)]:
            raise QuestionBankError(f"CORRECT must be one of {', '.join(_OPTION_ORDER[: len(options)])}.")
        return options[_OPTION_ORDER.index(letter)]
    if question_type is QuestionType.TRUE_FALSE:
        word = _BOOLEAN_WORDS.get(raw.upper())
        if word is None:
            raise QuestionBankError("CORRECT must be True or False for true-false questions.")
        return word
    return raw
