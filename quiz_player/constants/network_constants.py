"""Network configuration constants for the quiz player."""

import os

DEFAULT_HOST: str = os.getenv("QUIZ_PLAYER_HOST", "127.0.0.1")
DEFAULT_PORT: int = int(os.getenv("QUIZ_PLAYER_PORT", "8000"))
DEFAULT_API_BASE_URL: str = os.getenv("QUIZ_PLAYER_API_URL", f"http://{DEFAULT_HOST}:{DEFAULT_PORT}")
REQUEST_TIMEOUT_SECONDS: float = float(os.getenv("QUIZ_PLAYER_TIMEOUT", "30"))
LEARNER_HEADER: str = "X-Learner-Id"
DEFAULT_LEARNER_ID: str = "anonymous"
