"""HTTP client for the quiz backend, implementing every collaborator contract."""

from __future__ import annotations

import logging
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from quiz_player.constants.network_constants import (
    DEFAULT_API_BASE_URL,
    DEFAULT_LEARNER_ID,
    LEARNER_HEADER,
    REQUEST_TIMEOUT_SECONDS,
)
from quiz_player.core.errors import (
    AttemptExpiredAlready,
    InvalidAccessCode,
    RequestRejected,
    ServiceUnavailable,
)
from quiz_player.core.models import AccessGrant, AttemptHandle, AttemptSubmission, Provenance, Quiz, Result
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
from quiz_player.core.services.contracts import (
    AccessService,
    AttemptService,
    ContentProgressService,
    QuizProvisioningService,
)
from quiz_player.core.sources import ContentSource, GenerationSource, TopicSource

logger = logging.getLogger(__name__)

_ModelT = TypeVar("_ModelT", bound=BaseModel)


class QuizApiClient(QuizProvisioningService, AttemptService, AccessService, ContentProgressService):
    """Talks to the quiz backend over JSON/HTTP.

    Transport failures and 5xx responses become ``ServiceUnavailable``; any
    other refusal becomes ``RequestRejected`` unless an operation maps the
    status code to something more specific.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_BASE_URL,
        learner_id: str = DEFAULT_LEARNER_ID,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={LEARNER_HEADER: learner_id},
            transport=transport,
        )

    async def __aenter__(self) -> "QuizApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # --- QuizProvisioningService ---

    async def get_existing_quiz(self, content_id: str) -> Quiz | None:
        response = await self._request("GET", f"/quiz/content/{content_id}")
        if response.status_code == 404:
            return None
        return _parse(QuizPayload, _checked(response)).to_domain()

    async def generate_quiz(self, source: GenerationSource) -> Quiz:
        if isinstance(source, ContentSource):
            path, body = "/quiz/generate", GenerateFromContentPayload.from_source(source)
        elif isinstance(source, TopicSource):
            path, body = "/quiz/generate-from-topic", GenerateFromTopicPayload.from_source(source)
        else:
            raise TypeError(f"Cannot generate a quiz from {type(source).__name__}.")
        response = await self._request("POST", path, json=body.model_dump(mode="json"))
        return _parse(QuizPayload, _checked(response)).to_domain()

    async def get_quiz_by_id(self, quiz_id: str) -> Quiz:
        response = await self._request("GET", f"/quiz/{quiz_id}")
        return _parse(QuizPayload, _checked(response)).to_domain()

    async def get_community_quiz(self, community_id: str, quiz_id: str) -> Quiz:
        response = await self._request("GET", f"/community-quiz/{community_id}/quiz/{quiz_id}")
        return _parse(QuizPayload, _checked(response)).to_domain()

    # --- AttemptService ---

    async def start_attempt(self, quiz: Quiz) -> AttemptHandle:
        response = await self._request("POST", f"{_quiz_path(quiz)}/attempt")
        return _parse(AttemptHandlePayload, _checked(response)).to_domain()

    async def submit_attempt(self, quiz: Quiz, attempt_id: str, submission: AttemptSubmission) -> Result:
        if _is_community(quiz):
            path = f"{_quiz_path(quiz)}/attempt/{attempt_id}/submit"
        else:
            path = f"/quiz/attempt/{attempt_id}/submit"
        body = SubmitAttemptPayload.from_domain(submission)
        response = await self._request("POST", path, json=body.model_dump(mode="json"))
        if response.status_code == 409:
            raise AttemptExpiredAlready(_detail(response))
        return _parse(ResultPayload, _checked(response)).to_domain(quiz.settings.passing_score_percent)

    async def get_attempt_result(self, quiz: Quiz, attempt_id: str) -> Result:
        response = await self._request("GET", f"/quiz/attempt/{attempt_id}")
        return _parse(ResultPayload, _checked(response)).to_domain(quiz.settings.passing_score_percent)

    # --- AccessService ---

    async def redeem_access_code(self, code: str) -> AccessGrant:
        body = AccessCodePayload(access_code=code)
        response = await self._request("POST", "/community-quiz/join-private", json=body.model_dump())
        if response.status_code in (400, 404):
            raise InvalidAccessCode(_detail(response) or "Invalid access code.")
        return _parse(AccessGrantPayload, _checked(response)).to_domain()

    # --- ContentProgressService ---

    async def mark_content_complete(self, content_id: str) -> None:
        body = ProgressPayload(progress=100)
        response = await self._request("PUT", f"/content/{content_id}/progress", json=body.model_dump())
        _checked(response)

    # --- Helpers ---

    async def _request(self, method: str, path: str, json: Any = None) -> httpx.Response:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.RequestError as exc:
            logger.error("%s %s failed: %s", method, path, exc)
            raise ServiceUnavailable(f"Quiz service unreachable: {exc}") from exc
        if response.status_code >= 500:
            logger.error("%s %s returned %d", method, path, response.status_code)
            raise ServiceUnavailable(f"Quiz service error ({response.status_code}): {_detail(response)}")
        logger.debug("%s %s -> %d", method, path, response.status_code)
        return response


def _is_community(quiz: Quiz) -> bool:
    return quiz.provenance is Provenance.COMMUNITY and quiz.community_id is not None


def _quiz_path(quiz: Quiz) -> str:
    if _is_community(quiz):
        return f"/community-quiz/{quiz.community_id}/quiz/{quiz.id}"
    return f"/quiz/{quiz.id}"


def _checked(response: httpx.Response) -> httpx.Response:
    if response.status_code >= 400:
        raise RequestRejected(response.status_code, _detail(response))
    return response


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and "detail" in body:
        return str(body["detail"])
    return response.text


def _parse(model: type[_ModelT], response: httpx.Response) -> _ModelT:
    try:
        return model.model_validate(response.json())
    except (ValueError, ValidationError) as exc:
        logger.error("Malformed response from %s: %s", response.request.url, exc)
        raise ServiceUnavailable(f"Malformed response from quiz service: {exc}") from exc
