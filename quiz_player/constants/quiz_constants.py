"""Quiz-related constants shared across the session engine and the reference service."""

TICK_INTERVAL_SECONDS: float = 1.0
LEDGER_TOLERANCE_SECONDS: float = 2.0

DEFAULT_PASSING_SCORE_PERCENT: int = 70
DEFAULT_COMMUNITY_TIME_LIMIT_SECONDS: int = 30 * 60
DEFAULT_CONTENT_QUESTION_COUNT: int = 3
DEFAULT_TOPIC_QUESTION_COUNT: int = 5
DEFAULT_DIFFICULTY: str = "medium"
DIFFICULTY_LEVELS: tuple[str, ...] = ("easy", "medium", "hard")

ACCESS_CODE_LENGTH: int = 6
