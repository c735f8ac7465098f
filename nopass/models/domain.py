"""Read views handed to callers (not persisted directly)."""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from nopass.exceptions import StorageError

if TYPE_CHECKING:
    from nopass.models.database import LoginToken


class LoginTokenRecord(BaseModel):
    """A login token as seen by the host application.

    Carries no secret material: neither the plaintext nor its hash.
    """

    model_config = {"frozen": True}

    id: int
    identity: str
    expires_at: int
    created_at: int
    last_verified_at: int | None = None
    metadata: dict[str, Any] | None = None

    @classmethod
    def from_row(cls, row: LoginToken) -> LoginTokenRecord:
        if row.id is None:
            msg = "Login token row has not been persisted"
            raise StorageError(msg)
        return cls(
            id=row.id,
            identity=row.identity,
            expires_at=row.expires_at,
            created_at=row.created_at,
            last_verified_at=row.last_verified_at,
            metadata=copy.deepcopy(row.token_metadata),
        )


class PurgeResult(BaseModel):
    one_time_passwords: int = 0
    login_tokens: int = 0
