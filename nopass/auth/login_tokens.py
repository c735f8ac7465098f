"""Login token issuance, verification, listing and revocation."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog
from sqlalchemy.exc import SQLAlchemyError

from nopass.exceptions import GenerationError, StorageError
from nopass.models.domain import LoginTokenRecord
from nopass.types import MetadataRecordingFailed, Ok
from nopass.utils.clock import SystemClock
from nopass.utils.secrets import generate_secret, hash_secret

if TYPE_CHECKING:
    from nopass.models.database import LoginToken
    from nopass.utils.clock import Clock

logger = structlog.get_logger(__name__)

LOGIN_TOKEN_PREFIX = "lt"


class LoginTokenRepository(Protocol):
    async def create(
        self, identity: str, secret_hash: str, expires_at: int, now: int
    ) -> LoginToken: ...

    async def get_live(self, secret_hash: str, now: int) -> LoginToken | None: ...

    async def record_access(self, token_id: int, now: int, metadata: dict[str, Any]) -> bool: ...

    async def list_live_for_identity(self, identity: str, now: int) -> list[LoginToken]: ...

    async def delete_by_hash(self, secret_hash: str) -> int: ...

    async def delete_by_id(self, token_id: int) -> int: ...

    async def purge_expired(self, now: int) -> int: ...


class LoginTokenStore:
    """Manages the persisted lifecycle of login tokens.

    Rows are looked up by the hash of the plaintext. Every read filters on
    ``expires_at >= now`` so expired rows are invisible without being
    deleted.
    """

    def __init__(
        self,
        repo: LoginTokenRepository,
        clock: Clock | None = None,
        expires_after_seconds: int = 60 * 60 * 24,
        length: int = 50,
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
        """Create a login token for ``identity`` and return its plaintext."""
        if expires_after_seconds is None:
            expires_after_seconds = self._expires_after_seconds
        if expires_after_seconds <= 0:
            msg = f"Login token lifetime must be positive, got {expires_after_seconds}"
            raise GenerationError(msg)

        plaintext = LOGIN_TOKEN_PREFIX + generate_secret(self._length if length is None else length)
        now = self._clock.now()
        row = await self._repo.create(
            identity=identity,
            secret_hash=hash_secret(plaintext),
            expires_at=now + expires_after_seconds,
            now=now,
        )
        logger.info(
            "login_token_issued", token_id=row.id, identity=identity, expires_at=row.expires_at
        )
        return plaintext

    async def find_valid(self, plaintext: str) -> LoginTokenRecord | None:
        row = await self._repo.get_live(hash_secret(plaintext), self._clock.now())
        return LoginTokenRecord.from_row(row) if row is not None else None

    async def record_access(
        self, record: LoginTokenRecord, metadata: dict[str, Any]
    ) -> Ok[None] | MetadataRecordingFailed:
        """Set ``last_verified_at`` to now and replace the token's metadata.

        Best effort: a failed write is returned, not raised.
        """
        try:
            updated = await self._repo.record_access(record.id, self._clock.now(), metadata)
        except (SQLAlchemyError, StorageError) as e:
            logger.warning("login_token_metadata_update_failed", token_id=record.id, error=str(e))
            return MetadataRecordingFailed(reason=str(e))
        if not updated:
            logger.warning(
                "login_token_metadata_update_failed", token_id=record.id, error="missing"
            )
            return MetadataRecordingFailed(reason="login token no longer exists")
        return Ok(None)

    async def verify(self, plaintext: str, metadata: dict[str, Any] | None = None) -> str | None:
        """Return the identity bound to a live token, or None.

        Metadata, when given, is recorded after the lookup succeeds; a failed
        recording does not undo the verification.
        """
        record = await self.find_valid(plaintext)
        if record is None:
            return None
        if metadata is not None:
            await self.record_access(record, metadata)
        return record.identity

    async def list_for_identity(self, identity: str) -> list[LoginTokenRecord]:
        """Live tokens for ``identity``, newest first."""
        rows = await self._repo.list_live_for_identity(identity, self._clock.now())
        return [LoginTokenRecord.from_row(row) for row in rows]

    async def delete_by_secret(self, plaintext: str) -> None:
        count = await self._repo.delete_by_hash(hash_secret(plaintext))
        logger.info("login_token_deleted", count=count)

    async def delete_by_id(self, token_id: int) -> None:
        count = await self._repo.delete_by_id(token_id)
        logger.info("login_token_deleted", token_id=token_id, count=count)

    async def purge_expired(self) -> int:
        count = await self._repo.purge_expired(self._clock.now())
        logger.info("login_tokens_purged", count=count)
        return count
