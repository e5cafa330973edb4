"""Application entry point: serves the reference quiz service with sample data."""

from __future__ import annotations

import logging

from quiz_player.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from quiz_player.core.models import Visibility
from quiz_player.server.api_server import start_api_server
from quiz_player.server.question_bank import QuestionBank
from quiz_player.server.quiz_store import QuizStore
from quiz_player.utils.logging_config import configure_logging

DEMO_COMMUNITY_ID = "demo-community"

logger = logging.getLogger(__name__)


def build_demo_store() -> QuizStore:
    """Load the sample bank and publish one public and one private community quiz."""
    store = QuizStore(QuestionBank.from_default_file())
    public = store.publish_community_quiz(
        DEMO_COMMUNITY_ID, "Arithmetic Warm-up", question_count=5, topic="arithmetic"
    )
    private = store.publish_community_quiz(
        DEMO_COMMUNITY_ID,
        "Python Basics (members only)",
        question_count=4,
        topic="python",
        visibility=Visibility.PRIVATE,
    )
    logger.info("Public community quiz: /community-quiz/%s/quiz/%s", DEMO_COMMUNITY_ID, public.id)
    logger.info("Private community quiz %s, access code %s", private.id, private.access_code)
    return store


def main() -> None:
    """Initialize logging and run the API server until interrupted."""
    configure_logging()
    logger.info("Starting QuizPlayer reference service...")

    store = build_demo_store()
    thread = start_api_server(store=store, host=DEFAULT_HOST, port=DEFAULT_PORT)
    logger.info("Quiz API available at http://%s:%d/", DEFAULT_HOST, DEFAULT_PORT)

    try:
        thread.join()
    except KeyboardInterrupt:
        logger.info("Shutting down")


if __name__ == "__main__":
    main()
