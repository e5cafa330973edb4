"""Interfaces of the backend collaborators the quiz player talks to."""

from __future__ import annotations

from abc import ABC, abstractmethod

from quiz_player.core.models import AccessGrant, AttemptHandle, AttemptSubmission, Quiz, Result
from quiz_player.core.sources import GenerationSource


class QuizProvisioningService(ABC):

    @abstractmethod
    async def get_existing_quiz(self, content_id: str) -> Quiz | None:
        """Return the quiz already generated for this content, or None if there is none yet."""
        pass

    @abstractmethod
    async def generate_quiz(self, source: GenerationSource) -> Quiz:
        pass

    @abstractmethod
    async def get_quiz_by_id(self, quiz_id: str) -> Quiz:
        pass

    @abstractmethod
    async def get_community_quiz(self, community_id: str, quiz_id: str) -> Quiz:
        pass


class AttemptService(ABC):

    @abstractmethod
    async def start_attempt(self, quiz: Quiz) -> AttemptHandle:
        pass

    @abstractmethod
    async def submit_attempt(self, quiz: Quiz, attempt_id: str, submission: AttemptSubmission) -> Result:
        """Grade the submission. Raises AttemptExpiredAlready if the attempt is already final."""
        pass

    @abstractmethod
    async def get_attempt_result(self, quiz: Quiz, attempt_id: str) -> Result:
        pass


class AccessService(ABC):

    @abstractmethod
    async def redeem_access_code(self, code: str) -> AccessGrant:
        pass


class ContentProgressService(ABC):

    @abstractmethod
    async def mark_content_complete(self, content_id: str) -> None:
        pass
