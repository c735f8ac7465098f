"""Login token repositories: database-backed and in-memory."""

from __future__ import annotations

import itertools
import json
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import delete, update
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from nopass.exceptions import StorageError
from nopass.models.database import LoginToken

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


class DatabaseLoginTokenRepository:
    """Stores login tokens in the ``login_tokens`` table."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def create(
        self, identity: str, secret_hash: str, expires_at: int, now: int
    ) -> LoginToken:
        row = LoginToken(
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

    async def get_live(self, secret_hash: str, now: int) -> LoginToken | None:
        async with AsyncSession(self._engine) as session:
            stmt = select(LoginToken).where(
                col(LoginToken.secret_hash) == secret_hash,
                col(LoginToken.expires_at) >= now,
            )
            result = await session.execute(stmt)
            return result.scalars().first()

    async def record_access(self, token_id: int, now: int, metadata: dict[str, Any]) -> bool:
        """Stamp ``last_verified_at`` and replace metadata. False if the row is gone."""
        stmt = (
            update(LoginToken)
            .where(col(LoginToken.id) == token_id)
            .values(
                {
                    LoginToken.last_verified_at: now,
                    LoginToken.token_metadata: metadata,
                    LoginToken.updated_at: now,
                }
            )
            .execution_options(synchronize_session=False)
        )
        async with AsyncSession(self._engine) as session:
            result = await session.execute(stmt)
            await session.commit()
            return bool(result.rowcount)

    async def list_live_for_identity(self, identity: str, now: int) -> list[LoginToken]:
        async with AsyncSession(self._engine) as session:
            stmt = (
                select(LoginToken)
                .where(
                    col(LoginToken.identity) == identity,
                    col(LoginToken.expires_at) >= now,
                )
                .order_by(col(LoginToken.created_at).desc(), col(LoginToken.id).desc())
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def delete_by_hash(self, secret_hash: str) -> int:
        return await self._delete(col(LoginToken.secret_hash) == secret_hash)

    async def delete_by_id(self, token_id: int) -> int:
        return await self._delete(col(LoginToken.id) == token_id)

    async def purge_expired(self, now: int) -> int:
        return await self._delete(col(LoginToken.expires_at) < now)

    async def _delete(self, condition: Any) -> int:
        stmt = delete(LoginToken).where(condition).execution_options(synchronize_session=False)
        async with AsyncSession(self._engine) as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount or 0


class InMemoryLoginTokenRepository:
    """In-memory fallback for dev/testing without a database.

    Rows are keyed by id with a secret-hash index beside them. Metadata is
    stored as a JSON snapshot, the same shape the database column keeps.
    """

    def __init__(self) -> None:
        self._rows: dict[int, LoginToken] = {}
        self._ids_by_hash: dict[str, int] = {}
        self._ids = itertools.count(1)

    async def create(
        self, identity: str, secret_hash: str, expires_at: int, now: int
    ) -> LoginToken:
        if secret_hash in self._ids_by_hash:
            msg = "Duplicate login token hash"
            raise StorageError(msg)
        token_id = next(self._ids)
        row = LoginToken(
            id=token_id,
            identity=identity,
            secret_hash=secret_hash,
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )
        self._rows[token_id] = row
        self._ids_by_hash[secret_hash] = token_id
        return row

    async def get_live(self, secret_hash: str, now: int) -> LoginToken | None:
        token_id = self._ids_by_hash.get(secret_hash)
        if token_id is None:
            return None
        row = self._rows[token_id]
        return row if row.expires_at >= now else None

    async def record_access(self, token_id: int, now: int, metadata: dict[str, Any]) -> bool:
        row = self._rows.get(token_id)
        if row is None:
            return False
        try:
            snapshot = json.loads(json.dumps(metadata))
        except (TypeError, ValueError) as e:
            msg = f"Login token metadata is not JSON serializable: {e}"
            raise StorageError(msg) from e
        row.last_verified_at = now
        row.token_metadata = snapshot
        row.updated_at = now
        return True

    async def list_live_for_identity(self, identity: str, now: int) -> list[LoginToken]:
        rows = [r for r in self._rows.values() if r.identity == identity and r.expires_at >= now]
        return sorted(rows, key=lambda r: (r.created_at, r.id), reverse=True)

    async def delete_by_hash(self, secret_hash: str) -> int:
        token_id = self._ids_by_hash.get(secret_hash)
        return self._drop([token_id] if token_id is not None else [])

    async def delete_by_id(self, token_id: int) -> int:
        return self._drop([token_id] if token_id in self._rows else [])

    async def purge_expired(self, now: int) -> int:
        return self._drop([i for i, row in self._rows.items() if row.expires_at < now])

    def _drop(self, ids: list[int]) -> int:
        for i in ids:
            row = self._rows.pop(i)
            del self._ids_by_hash[row.secret_hash]
        return len(ids)
