"""Unit tests for LoginTokenStore."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from nopass.auth.login_tokens import LoginTokenStore
from nopass.exceptions import GenerationError, StorageError
from nopass.models.database import LoginToken
from nopass.models.domain import LoginTokenRecord
from nopass.storage.repositories.login_tokens import InMemoryLoginTokenRepository
from nopass.types import MetadataRecordingFailed, Ok
from nopass.utils.clock import ManualClock


def _write_error() -> OperationalError:
    return OperationalError("UPDATE login_tokens", {}, Exception("database is down"))


def _make_store(clock: ManualClock) -> tuple[LoginTokenStore, InMemoryLoginTokenRepository]:
    repo = InMemoryLoginTokenRepository()
    return LoginTokenStore(repo, clock=clock), repo


@pytest.mark.unit
class TestLoginTokenIssue:
    async def test_default_shape(self, clock: ManualClock) -> None:
        store, _ = _make_store(clock)
        token = await store.issue("peach")
        assert token.startswith("lt")
        assert len(token) == 52

    async def test_expiry_defaults_to_one_day(self, clock: ManualClock) -> None:
        store, _ = _make_store(clock)
        token = await store.issue("peach")
        record = await store.find_valid(token)
        assert record is not None
        assert record.expires_at == clock.now() + 86400
        assert record.created_at == clock.now()
        assert record.last_verified_at is None
        assert record.metadata is None

    async def test_non_positive_lifetime_rejected(self, clock: ManualClock) -> None:
        store, _ = _make_store(clock)
        with pytest.raises(GenerationError):
            await store.issue("peach", expires_after_seconds=0)


@pytest.mark.unit
class TestLoginTokenVerify:
    async def test_verify_valid(self, clock: ManualClock) -> None:
        store, _ = _make_store(clock)
        token = await store.issue("peach")
        assert await store.verify(token) == "peach"

    async def test_verify_bad_token(self, clock: ManualClock) -> None:
        store, _ = _make_store(clock)
        assert await store.verify("nosuchtoken") is None

    async def test_verify_expired(self, clock: ManualClock) -> None:
        store, _ = _make_store(clock)
        token = await store.issue("princess peach", expires_after_seconds=1)
        assert await store.verify(token) == "princess peach"
        clock.advance(2)
        assert await store.verify(token) is None

    async def test_verify_without_metadata_does_not_write(self, clock: ManualClock) -> None:
        store, repo = _make_store(clock)
        token = await store.issue("wario")
        with patch.object(repo, "record_access", wraps=repo.record_access) as spy:
            for _ in range(1000):
                assert await store.verify(token) == "wario"
        spy.assert_not_called()
        record = await store.find_valid(token)
        assert record is not None
        assert record.last_verified_at is None

    async def test_verify_with_metadata_records_access(self, clock: ManualClock) -> None:
        store, _ = _make_store(clock)
        token = await store.issue("peach")
        clock.advance(30)
        assert await store.verify(token, {"user_agent": "mushroom/1.0"}) == "peach"
        record = await store.find_valid(token)
        assert record is not None
        assert record.last_verified_at == clock.now()
        assert record.metadata == {"user_agent": "mushroom/1.0"}

    async def test_verify_survives_metadata_failure(self, clock: ManualClock) -> None:
        store, repo = _make_store(clock)
        token = await store.issue("peach")
        repo.record_access = AsyncMock(side_effect=_write_error())
        assert await store.verify(token, {"ip": "1.2.3.4"}) == "peach"


@pytest.mark.unit
class TestRecordAccess:
    async def test_returns_ok(self, clock: ManualClock) -> None:
        store, _ = _make_store(clock)
        token = await store.issue("peach")
        record = await store.find_valid(token)
        assert record is not None
        assert await store.record_access(record, {"ip": "1.2.3.4"}) == Ok(None)

    async def test_write_failure_is_reported(self, clock: ManualClock) -> None:
        store, repo = _make_store(clock)
        token = await store.issue("peach")
        record = await store.find_valid(token)
        assert record is not None
        repo.record_access = AsyncMock(side_effect=_write_error())

        with patch("nopass.auth.login_tokens.logger") as mock_logger:
            result = await store.record_access(record, {"ip": "1.2.3.4"})
        assert isinstance(result, MetadataRecordingFailed)
        assert mock_logger.warning.call_args[0][0] == "login_token_metadata_update_failed"

    async def test_deleted_token_is_reported(self, clock: ManualClock) -> None:
        store, _ = _make_store(clock)
        token = await store.issue("peach")
        record = await store.find_valid(token)
        assert record is not None
        await store.delete_by_secret(token)
        result = await store.record_access(record, {"ip": "1.2.3.4"})
        assert isinstance(result, MetadataRecordingFailed)


@pytest.mark.unit
class TestListAndDelete:
    async def test_list_for_identity(self, clock: ManualClock) -> None:
        store, _ = _make_store(clock)
        await store.issue("peach")
        clock.advance(10)
        await store.issue("peach")
        await store.issue("toad")

        records = await store.list_for_identity("peach")
        assert len(records) == 2
        assert all(isinstance(r, LoginTokenRecord) for r in records)
        assert records[0].created_at > records[1].created_at

    async def test_list_excludes_expired(self, clock: ManualClock) -> None:
        store, _ = _make_store(clock)
        await store.issue("peach", expires_after_seconds=1)
        await store.issue("peach", expires_after_seconds=100)
        clock.advance(2)
        assert len(await store.list_for_identity("peach")) == 1

    async def test_records_carry_no_secret(self, clock: ManualClock) -> None:
        store, _ = _make_store(clock)
        token = await store.issue("peach")
        [record] = await store.list_for_identity("peach")
        dumped = record.model_dump()
        assert "secret_hash" not in dumped
        assert token not in dumped.values()

    async def test_delete_by_secret_is_idempotent(self, clock: ManualClock) -> None:
        store, _ = _make_store(clock)
        token = await store.issue("peach")
        assert await store.delete_by_secret(token) is None
        assert await store.delete_by_secret(token) is None
        assert await store.delete_by_secret("non such") is None
        assert await store.verify(token) is None

    async def test_delete_by_id(self, clock: ManualClock) -> None:
        store, _ = _make_store(clock)
        await store.issue("peach")
        [record] = await store.list_for_identity("peach")
        await store.delete_by_id(record.id)
        await store.delete_by_id(record.id)
        assert await store.list_for_identity("peach") == []


@pytest.mark.unit
class TestLoginTokenRecord:
    def test_unsaved_row_rejected(self) -> None:
        row = LoginToken(
            identity="peach", secret_hash="h", expires_at=1, created_at=0, updated_at=0
        )
        with pytest.raises(StorageError):
            LoginTokenRecord.from_row(row)

    def test_metadata_is_copied(self) -> None:
        row = LoginToken(
            id=1,
            identity="peach",
            secret_hash="h",
            expires_at=1,
            created_at=0,
            updated_at=0,
            token_metadata={"nested": {"ip": "1.1.1.1"}},
        )
        record = LoginTokenRecord.from_row(row)
        row.token_metadata["nested"]["ip"] = "6.6.6.6"
        assert record.metadata == {"nested": {"ip": "1.1.1.1"}}
