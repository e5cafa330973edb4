"""FastAPI server that exposes the quiz provisioning, attempt and access endpoints."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from threading import Thread
from typing import Iterator

from fastapi import Depends, FastAPI, Header, HTTPException
import uvicorn

from quiz_player.constants.about import APP_ABOUT_TEXT, APP_LICENSE, APP_NAME, APP_VERSION
from quiz_player.constants.network_constants import DEFAULT_HOST, DEFAULT_LEARNER_ID, DEFAULT_PORT, LEARNER_HEADER
from quiz_player.core.models import Quiz
from quiz_player.core.schemas import (
    AccessCodePayload,
    AccessGrantPayload,
    AttemptHandlePayload,
    GenerateFromContentPayload,
    GenerateFromTopicPayload,
    ProgressPayload,
    QuizPayload,
    ResultPayload,
    SubmitAttemptPayload,
)
from quiz_player.server.quiz_store import StoredAttempt, QuizStore

logger = logging.getLogger(__name__)


@contextmanager
def _store_errors() -> Iterator[None]:
    """Translate store exceptions into HTTP errors."""
    try:
        yield
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc.args[0]) if exc.args else "Not found") from exc
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except RuntimeError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _learner_id(x_learner_id: str = Header(default=DEFAULT_LEARNER_ID, alias=LEARNER_HEADER)) -> str:
    return x_learner_id.strip() or DEFAULT_LEARNER_ID


def _get_store_dependency(store: QuizStore):
    def dependency() -> QuizStore:
        return store

    return dependency


def _quiz_out(quiz: Quiz) -> QuizPayload:
    return QuizPayload.from_domain(quiz).for_learner()


def _handle_out(attempt: StoredAttempt) -> AttemptHandlePayload:
    return AttemptHandlePayload(attempt_id=attempt.attempt_id, created_at=attempt.created_at)


def create_api_app(store: QuizStore) -> FastAPI:
    """Create a FastAPI application wired to the provided quiz store."""
    app = FastAPI(
        title=f"{APP_NAME} API",
        version=APP_VERSION,
        description=APP_ABOUT_TEXT,
        license_info={"name": APP_LICENSE},
    )
    store_dep = _get_store_dependency(store)

    @app.get("/quiz/content/{content_id}", response_model=QuizPayload)
    def get_content_quiz(content_id: str, quizzes: QuizStore = Depends(store_dep)) -> QuizPayload:
        with _store_errors():
            return _quiz_out(quizzes.get_content_quiz(content_id))

    @app.post("/quiz/generate", response_model=QuizPayload, status_code=201)
    def generate_from_content(
        payload: GenerateFromContentPayload,
        quizzes: QuizStore = Depends(store_dep),
    ) -> QuizPayload:
        with _store_errors():
            quiz = quizzes.generate_from_content(payload.content_id, payload.question_count)
        return _quiz_out(quiz)

    @app.post("/quiz/generate-from-topic", response_model=QuizPayload, status_code=201)
    def generate_from_topic(
        payload: GenerateFromTopicPayload,
        quizzes: QuizStore = Depends(store_dep),
    ) -> QuizPayload:
        with _store_errors():
            quiz = quizzes.generate_from_topic(
                payload.topic,
                payload.question_count,
                difficulty=payload.difficulty,
                description=payload.description,
            )
        return _quiz_out(quiz)

    @app.get("/quiz/attempt/{attempt_id}", response_model=ResultPayload)
    def get_attempt_result(
        attempt_id: str,
        learner_id: str = Depends(_learner_id),
        quizzes: QuizStore = Depends(store_dep),
    ) -> ResultPayload:
        with _store_errors():
            result = quizzes.get_result(attempt_id, learner_id)
        return ResultPayload.from_domain(attempt_id, result)

    @app.post("/quiz/attempt/{attempt_id}/submit", response_model=ResultPayload)
    def submit_attempt(
        attempt_id: str,
        payload: SubmitAttemptPayload,
        learner_id: str = Depends(_learner_id),
        quizzes: QuizStore = Depends(store_dep),
    ) -> ResultPayload:
        with _store_errors():
            result = quizzes.submit_attempt(attempt_id, payload.to_domain(), learner_id)
        return ResultPayload.from_domain(attempt_id, result)

    @app.get("/quiz/{quiz_id}", response_model=QuizPayload)
    def get_quiz(
        quiz_id: str,
        learner_id: str = Depends(_learner_id),
        quizzes: QuizStore = Depends(store_dep),
    ) -> QuizPayload:
        with _store_errors():
            return _quiz_out(quizzes.get_quiz(quiz_id, learner_id))

    @app.post("/quiz/{quiz_id}/attempt", response_model=AttemptHandlePayload, status_code=201)
    def start_attempt(
        quiz_id: str,
        learner_id: str = Depends(_learner_id),
        quizzes: QuizStore = Depends(store_dep),
    ) -> AttemptHandlePayload:
        with _store_errors():
            return _handle_out(quizzes.start_attempt(quiz_id, learner_id))

    @app.post("/community-quiz/join-private", response_model=AccessGrantPayload)
    def join_private(
        payload: AccessCodePayload,
        learner_id: str = Depends(_learner_id),
        quizzes: QuizStore = Depends(store_dep),
    ) -> AccessGrantPayload:
        with _store_errors():
            grant = quizzes.redeem_access_code(payload.access_code, learner_id)
        logger.info("Learner %s joined private quiz %s", learner_id, grant.quiz_id)
        return AccessGrantPayload.from_domain(grant)

    @app.get("/community-quiz/{community_id}/quiz/{quiz_id}", response_model=QuizPayload)
    def get_community_quiz(
        community_id: str,
        quiz_id: str,
        learner_id: str = Depends(_learner_id),
        quizzes: QuizStore = Depends(store_dep),
    ) -> QuizPayload:
        with _store_errors():
            return _quiz_out(quizzes.get_community_quiz(community_id, quiz_id, learner_id))

    @app.post(
        "/community-quiz/{community_id}/quiz/{quiz_id}/attempt",
        response_model=AttemptHandlePayload,
        status_code=201,
    )
    def start_community_attempt(
        community_id: str,
        quiz_id: str,
        learner_id: str = Depends(_learner_id),
        quizzes: QuizStore = Depends(store_dep),
    ) -> AttemptHandlePayload:
        with _store_errors():
            return _handle_out(quizzes.start_attempt(quiz_id, learner_id, community_id=community_id))

    @app.post(
        "/community-quiz/{community_id}/quiz/{quiz_id}/attempt/{attempt_id}/submit",
        response_model=ResultPayload,
    )
    def submit_community_attempt(
        community_id: str,
        quiz_id: str,
        attempt_id: str,
        payload: SubmitAttemptPayload,
        learner_id: str = Depends(_learner_id),
        quizzes: QuizStore = Depends(store_dep),
    ) -> ResultPayload:
        with _store_errors():
            result = quizzes.submit_attempt(attempt_id, payload.to_domain(), learner_id, community_id=community_id)
        return ResultPayload.from_domain(attempt_id, result)

    @app.put("/content/{content_id}/progress", response_model=ProgressPayload)
    def update_progress(
        content_id: str,
        payload: ProgressPayload,
        learner_id: str = Depends(_learner_id),
        quizzes: QuizStore = Depends(store_dep),
    ) -> ProgressPayload:
        with _store_errors():
            progress = quizzes.set_progress(content_id, learner_id, payload.progress)
        return ProgressPayload(progress=progress)

    return app


def start_api_server(
    store: QuizStore,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
) -> Thread:
    """Start the FastAPI server in a background daemon thread."""
    app = create_api_app(store)
    config = uvicorn.Config(app=app, host=host, port=port, log_level="info")
    server = uvicorn.Server(config)

    def run_server() -> None:
        server.run()

    thread = Thread(target=run_server, name="QuizApiServer", daemon=True)
    thread.start()
    return thread
