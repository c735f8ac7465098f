"""Trade a one-time password for a login token."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from nopass.types import EXPIRED_OR_MISSING, KEEP_IDENTITY, ExpiredOrMissing, IdentityTransform, Ok

if TYPE_CHECKING:
    from nopass.auth.login_tokens import LoginTokenStore
    from nopass.auth.one_time_passwords import OneTimePasswordStore

logger = structlog.get_logger(__name__)


class TokenExchange:
    """Consumes a one-time password and issues a login token in its place.

    Consumption is atomic, so concurrent trades of one OTP yield exactly one
    login token. Consumption and issuance are two separate writes: if
    issuance fails the OTP is already gone and the error propagates.
    """

    def __init__(
        self,
        one_time_passwords: OneTimePasswordStore,
        login_tokens: LoginTokenStore,
    ) -> None:
        self._one_time_passwords = one_time_passwords
        self._login_tokens = login_tokens

    async def trade(
        self,
        one_time_password: str,
        identity_transform: IdentityTransform = KEEP_IDENTITY,
        expires_after_seconds: int | None = None,
        length: int | None = None,
    ) -> Ok[str] | ExpiredOrMissing:
        otp_identity = await self._one_time_passwords.consume(one_time_password)
        if otp_identity is None:
            return EXPIRED_OR_MISSING

        login_identity = identity_transform.apply(otp_identity)
        try:
            login_token = await self._login_tokens.issue(
                login_identity,
                expires_after_seconds=expires_after_seconds,
                length=length,
            )
        except Exception:
            logger.exception(
                "login_token_issue_failed",
                otp_identity=otp_identity,
                identity=login_identity,
            )
            raise
        return Ok(login_token)
