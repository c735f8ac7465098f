"""SQLModel database table models.

Times are integer seconds since the epoch. Only digests of secrets are
stored; the plaintext never reaches a row.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, BigInteger, Column, Index
from sqlmodel import Field, SQLModel


class OneTimePassword(SQLModel, table=True):
    __tablename__ = "one_time_passwords"
    __table_args__ = (
        Index("one_time_passwords_expires_at_index", "secret_hash", "expires_at"),
    )

    id: int | None = Field(default=None, primary_key=True)
    identity: str
    secret_hash: str = Field(unique=True)
    expires_at: int = Field(sa_type=BigInteger)
    created_at: int = Field(sa_type=BigInteger)
    updated_at: int = Field(sa_type=BigInteger)


class LoginToken(SQLModel, table=True):
    __tablename__ = "login_tokens"
    __table_args__ = (Index("login_tokens_expires_at_index", "secret_hash", "expires_at"),)

    id: int | None = Field(default=None, primary_key=True)
    identity: str = Field(index=True)
    secret_hash: str = Field(unique=True)
    expires_at: int = Field(sa_type=BigInteger)
    created_at: int = Field(sa_type=BigInteger)
    updated_at: int = Field(sa_type=BigInteger)
    last_verified_at: int | None = Field(default=None, sa_type=BigInteger)
    # ``metadata`` is reserved on SQLModel classes; the column keeps the name
    token_metadata: dict[str, Any] | None = Field(
        default=None, sa_column=Column("metadata", JSON, nullable=True)
    )
