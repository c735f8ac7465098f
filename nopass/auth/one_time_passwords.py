"""One-time password issuance and single-use consumption."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

import structlog

from nopass.exceptions import GenerationError
from nopass.utils.clock import SystemClock
from nopass.utils.secrets import generate_secret, hash_secret

if TYPE_CHECKING:
    from nopass.models.database import OneTimePassword
    from nopass.utils.clock import Clock

logger = structlog.get_logger(__name__)

OTP_PREFIX = "otp"


class OneTimePasswordRepository(Protocol):
    async def create(
        self, identity: str, secret_hash: str, expires_at: int, now: int
    ) -> OneTimePassword: ...

    async def pop_live(self, secret_hash: str, now: int) -> OneTimePassword | None: ...

    async def purge_expired(self, now: int) -> int: ...


class OneTimePasswordStore:
    """Issues one-time passwords and consumes them exactly once.

    An OTP is active from issue until ``expires_at``. A successful
    ``consume`` deletes the row; an expired row stays in storage but can no
    longer be matched, and is removed by ``purge_expired``.
    """

    def __init__(
        self,
        repo: OneTimePasswordRepository,
        clock: Clock | None = None,
        expires_after_seconds: int = 600,
        length: int = 20,
    ) -> None:
        self._repo = repo
        self._clock = clock or SystemClock()
        self._expires_after_seconds = expires_after_seconds
        self._length = length

    async def issue(
        self,
        identity: str,
        expires_after_seconds: int | None = None,
        length: int | None = None,
    ) -> str:
        """Create an OTP for ``identity`` and return its plaintext.

        The plaintext is handed back exactly once; only its hash is stored.
        """
        if expires_after_seconds is None:
            expires_after_seconds = self._expires_after_seconds
        if expires_after_seconds <= 0:
            msg = f"One-time password lifetime must be positive, got {expires_after_seconds}"
            raise GenerationError(msg)

        plaintext = OTP_PREFIX + generate_secret(self._length if length is None else length)
        now = self._clock.now()
        row = await self._repo.create(
            identity=identity,
            secret_hash=hash_secret(plaintext),
            expires_at=now + expires_after_seconds,
            now=now,
        )
        logger.info(
            "one_time_password_issued",
            otp_id=row.id,
            identity=identity,
            expires_at=row.expires_at,
        )
        return plaintext

    async def consume(self, plaintext: str) -> str | None:
        """Atomically delete the live OTP and return its identity, or None."""
        row = await self._repo.pop_live(hash_secret(plaintext), self._clock.now())
        if row is None:
            logger.info("one_time_password_rejected")
            return None
        logger.info("one_time_password_consumed", otp_id=row.id, identity=row.identity)
        return row.identity

    async def purge_expired(self) -> int:
        count = await self._repo.purge_expired(self._clock.now())
        logger.info("one_time_passwords_purged", count=count)
        return count
