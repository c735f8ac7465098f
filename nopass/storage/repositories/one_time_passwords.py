"""One-time password repositories: database-backed and in-memory."""

from __future__ import annotations

import itertools
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import delete
from sqlmodel import col
from sqlmodel.ext.asyncio.session import AsyncSession

from nopass.exceptions import StorageError
from nopass.models.database import OneTimePassword

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


class DatabaseOneTimePasswordRepository:
    """Stores one-time passwords in the ``one_time_passwords`` table."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def create(
        self, identity: str, secret_hash: str, expires_at: int, now: int
    ) -> OneTimePassword:
        row = OneTimePassword(
            identity=identity,
            secret_hash=secret_hash,
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )
        async with AsyncSession(self._engine) as session:
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return row

    async def pop_live(self, secret_hash: str, now: int) -> OneTimePassword | None:
        """Delete the live row matching ``secret_hash`` and return what it held.

        A single ``DELETE ... RETURNING`` statement, so of several concurrent
        callers at most one gets the row back.
        """
        stmt = (
            delete(OneTimePassword)
            .where(
                col(OneTimePassword.secret_hash) == secret_hash,
                col(OneTimePassword.expires_at) >= now,
            )
            .returning(
                col(OneTimePassword.id),
                col(OneTimePassword.identity),
                col(OneTimePassword.expires_at),
                col(OneTimePassword.created_at),
                col(OneTimePassword.updated_at),
            )
            .execution_options(synchronize_session=False)
        )
        async with AsyncSession(self._engine) as session:
            result = await session.execute(stmt)
            deleted = result.first()
            await session.commit()

        if deleted is None:
            return None
        return OneTimePassword(
            id=deleted.id,
            identity=deleted.identity,
            secret_hash=secret_hash,
            expires_at=deleted.expires_at,
            created_at=deleted.created_at,
            updated_at=deleted.updated_at,
        )

    async def purge_expired(self, now: int) -> int:
        stmt = (
            delete(OneTimePassword)
            .where(col(OneTimePassword.expires_at) < now)
            .execution_options(synchronize_session=False)
        )
        async with AsyncSession(self._engine) as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount or 0


class InMemoryOneTimePasswordRepository:
    """In-memory fallback for dev/testing without a database.

    Rows are keyed by secret hash. ``pop_live`` removes before it checks
    expiry, so two callers can never both receive the same row; expired
    entries are dropped on the way.
    """

    def __init__(self) -> None:
        self._rows: dict[str, OneTimePassword] = {}
        self._ids = itertools.count(1)

    async def create(
        self, identity: str, secret_hash: str, expires_at: int, now: int
    ) -> OneTimePassword:
        if secret_hash in self._rows:
            msg = "Duplicate one-time password hash"
            raise StorageError(msg)
        row = OneTimePassword(
            id=next(self._ids),
            identity=identity,
            secret_hash=secret_hash,
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )
        self._rows[secret_hash] = row
        return row

    async def pop_live(self, secret_hash: str, now: int) -> OneTimePassword | None:
        row = self._rows.pop(secret_hash, None)
        if row is None or row.expires_at < now:
            return None
        return row

    async def purge_expired(self, now: int) -> int:
        expired = [h for h, row in self._rows.items() if row.expires_at < now]
        for h in expired:
            del self._rows[h]
        if expired:
            logger.debug("in_memory_one_time_passwords_purged", count=len(expired))
        return len(expired)
