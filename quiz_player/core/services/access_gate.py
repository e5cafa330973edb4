"""Service for exchanging access codes for private quiz visibility."""

from __future__ import annotations

import logging

from quiz_player.core.errors import InvalidAccessCode
from quiz_player.core.models import AccessGrant
from quiz_player.core.services.contracts import AccessService

logger = logging.getLogger(__name__)


def normalize_code(code: str) -> str:
    return code.strip().upper()


class AccessGate:
    """Holds the access grants redeemed in this player.

    Redeeming a code that is already held succeeds without another round trip.
    """

    def __init__(self, access_service: AccessService) -> None:
        self._service = access_service
        self._grants: dict[str, AccessGrant] = {}

    async def redeem(self, code: str) -> AccessGrant:
        normalized = normalize_code(code)
        if not normalized:
            raise InvalidAccessCode("Please enter an access code.")

        held = self._grants.get(normalized)
        if held is not None:
            logger.debug("Access code %s already redeemed for quiz %s", normalized, held.quiz_id)
            return held

        # InvalidAccessCode and ServiceUnavailable propagate unchanged.
        grant = await self._service.redeem_access_code(normalized)
        self._grants[normalized] = grant
        logger.info("Access code redeemed for quiz %s", grant.quiz_id)
        return grant

    def has_access(self, quiz_id: str) -> bool:
        return any(grant.quiz_id == quiz_id for grant in self._grants.values())

    def held_codes(self) -> list[str]:
        return list(self._grants)
