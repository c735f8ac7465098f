"""Passwordless authentication: the surface a host application calls.

The host mails a one-time password to the user, the user trades it for a
login token, and the login token proves the user's identity afterwards::

    nopass = create_nopass()
    otp = await nopass.issue_one_time_password("luigi@mansion")
    match await nopass.trade_one_time_password_for_login_token(otp):
        case Ok(value=login_token):
            ...
        case ExpiredOrMissing():
            ...

All operations are coroutines; state lives in the repositories only.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from nopass.auth.exchange import TokenExchange
from nopass.auth.login_tokens import LoginTokenStore
from nopass.auth.one_time_passwords import OneTimePasswordStore
from nopass.config.settings import Settings, get_settings
from nopass.models.domain import PurgeResult
from nopass.types import EXPIRED_OR_MISSING, KEEP_IDENTITY, Ok

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from nopass.models.domain import LoginTokenRecord
    from nopass.types import ExpiredOrMissing, IdentityTransform, MetadataRecordingFailed
    from nopass.utils.clock import Clock

logger = structlog.get_logger(__name__)


class Nopass:
    """Issues, trades, verifies, lists and revokes passwordless credentials."""

    def __init__(
        self,
        one_time_passwords: OneTimePasswordStore,
        login_tokens: LoginTokenStore,
    ) -> None:
        self._one_time_passwords = one_time_passwords
        self._login_tokens = login_tokens
        self._exchange = TokenExchange(one_time_passwords, login_tokens)

    async def issue_one_time_password(
        self,
        identity: str,
        *,
        expires_after_seconds: int | None = None,
        length: int | None = None,
    ) -> str:
        """Return a fresh one-time password for ``identity``.

        Delivering it (email, SMS) is up to the caller.
        """
        return await self._one_time_passwords.issue(
            identity, expires_after_seconds=expires_after_seconds, length=length
        )

    async def trade_one_time_password_for_login_token(
        self,
        one_time_password: str,
        *,
        identity_transform: IdentityTransform = KEEP_IDENTITY,
        expires_after_seconds: int | None = None,
        length: int | None = None,
    ) -> Ok[str] | ExpiredOrMissing:
        """Exchange a live one-time password for a login token. Works once per OTP."""
        return await self._exchange.trade(
            one_time_password,
            identity_transform=identity_transform,
            expires_after_seconds=expires_after_seconds,
            length=length,
        )

    async def find_valid_login_token(self, login_token: str) -> LoginTokenRecord | None:
        return await self._login_tokens.find_valid(login_token)

    async def verify_login_token(
        self, login_token: str, metadata: dict[str, Any] | None = None
    ) -> Ok[str] | ExpiredOrMissing:
        """Return the identity behind ``login_token``.

        With ``metadata``, also stamps ``last_verified_at`` and stores the
        metadata on the token (best effort).
        """
        identity = await self._login_tokens.verify(login_token, metadata)
        if identity is None:
            return EXPIRED_OR_MISSING
        return Ok(identity)

    async def record_access_and_set_metadata(
        self, record: LoginTokenRecord, metadata: dict[str, Any]
    ) -> Ok[None] | MetadataRecordingFailed:
        return await self._login_tokens.record_access(record, metadata)

    async def list_login_tokens_for_identity(self, identity: str) -> list[LoginTokenRecord]:
        return await self._login_tokens.list_for_identity(identity)

    async def delete_login_token(self, login_token: str | int) -> None:
        """Revoke a login token given its plaintext or its id. Never fails for unknown tokens."""
        if isinstance(login_token, int):
            await self._login_tokens.delete_by_id(login_token)
        else:
            await self._login_tokens.delete_by_secret(login_token)

    async def delete_login_token_by_id(self, token_id: int) -> None:
        await self._login_tokens.delete_by_id(token_id)

    async def purge_expired(self) -> PurgeResult:
        """Remove expired rows. Optional housekeeping; reads already ignore them."""
        return PurgeResult(
            one_time_passwords=await self._one_time_passwords.purge_expired(),
            login_tokens=await self._login_tokens.purge_expired(),
        )


def create_nopass(
    settings: Settings | None = None,
    engine: AsyncEngine | None = None,
    clock: Clock | None = None,
) -> Nopass:
    """Wire the stores to database or in-memory repositories.

    A supplied ``engine`` always selects the database repositories; otherwise
    ``settings.use_database`` decides, using the cached engine.
    """
    settings = settings or get_settings()

    if engine is None and settings.use_database:
        from nopass.storage.database import get_engine

        engine = get_engine()

    otp_repo: Any
    token_repo: Any
    if engine is not None:
        from nopass.storage.repositories.login_tokens import DatabaseLoginTokenRepository
        from nopass.storage.repositories.one_time_passwords import (
            DatabaseOneTimePasswordRepository,
        )

        otp_repo = DatabaseOneTimePasswordRepository(engine)
        token_repo = DatabaseLoginTokenRepository(engine)
    else:
        from nopass.storage.repositories.login_tokens import InMemoryLoginTokenRepository
        from nopass.storage.repositories.one_time_passwords import (
            InMemoryOneTimePasswordRepository,
        )

        otp_repo = InMemoryOneTimePasswordRepository()
        token_repo = InMemoryLoginTokenRepository()

    logger.debug("nopass_created", backend=type(otp_repo).__name__)
    return Nopass(
        OneTimePasswordStore(
            otp_repo,
            clock=clock,
            expires_after_seconds=settings.otp_expires_after_seconds,
            length=settings.otp_length,
        ),
        LoginTokenStore(
            token_repo,
            clock=clock,
            expires_after_seconds=settings.login_token_expires_after_seconds,
            length=settings.login_token_length,
        ),
    )
