"""Tests for the PostgreSQL referral store against a mocked asyncpg pool."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from referral_guard.common.exceptions import GraphQueryError, StorageError
from referral_guard.core.types import ReviewStatus, Severity, SuspicionType
from referral_guard.data.schemas import QuickCancelEvidence, SuspiciousReferral
from referral_guard.storage.postgres import PostgresReferralStore


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def pool():
    pool = MagicMock()
    pool.fetchrow = AsyncMock()
    pool.fetchval = AsyncMock()
    pool.fetch = AsyncMock(return_value=[])
    pool.execute = AsyncMock()
    pool.close = AsyncMock()
    return pool


@pytest.fixture
def pg_store(pool):
    return PostgresReferralStore(pool)


def _fingerprint_row(**overrides):
    row = {
        "id": "0b7f6a1e-6b43-4a53-9a3e-0d8f2f1f0c11",
        "fingerprint_hash": "fp1",
        "fingerprint_components": {"platform": "iOS"},
        "total_accounts": 0,
        "first_seen_at": NOW,
        "last_seen_at": NOW,
    }
    row.update(overrides)
    return row


class TestFingerprintQueries:

    @pytest.mark.asyncio
    async def test_get_fingerprint_maps_row(self, pg_store, pool):
        pool.fetchrow.return_value = _fingerprint_row(total_accounts=2)

        fp = await pg_store.get_fingerprint_by_hash("fp1")

        assert fp.fingerprint_hash == "fp1"
        assert fp.total_accounts == 2
        assert pool.fetchrow.await_args.args[1] == "fp1"

    @pytest.mark.asyncio
    async def test_get_fingerprint_missing(self, pg_store, pool):
        pool.fetchrow.return_value = None

        assert await pg_store.get_fingerprint_by_hash("fp1") is None

    @pytest.mark.asyncio
    async def test_create_uses_on_conflict(self, pg_store, pool):
        pool.fetchrow.return_value = _fingerprint_row()

        await pg_store.create_fingerprint("fp1", {"platform": "iOS"})

        sql = pool.fetchrow.await_args.args[0]
        assert "ON CONFLICT (fingerprint_hash)" in sql
        assert pool.fetchrow.await_args.args[1:] == ("fp1", {"platform": "iOS"})

    @pytest.mark.asyncio
    async def test_link_upsert_uses_unique_key(self, pg_store, pool):
        await pg_store.upsert_fingerprint_link("fp-id", "a1")

        assert "ON CONFLICT (fingerprint_id, account_id)" in pool.execute.await_args.args[0]

    @pytest.mark.asyncio
    async def test_count_links_handles_null(self, pg_store, pool):
        pool.fetchval.return_value = None

        assert await pg_store.count_fingerprint_links("fp-id") == 0

    @pytest.mark.asyncio
    async def test_list_accounts(self, pg_store, pool):
        pool.fetch.return_value = [{"account_id": "a1"}, {"account_id": "a2"}]

        assert await pg_store.list_accounts_for_fingerprint("fp1") == ["a1", "a2"]


class TestReferralQueries:

    @pytest.mark.asyncio
    async def test_walk_chain_returns_path(self, pg_store, pool):
        pool.fetchval.return_value = ["a", "b", "r"]

        chain = await pg_store.walk_referral_chain("a", "r", 10)

        assert chain == ["a", "b", "r"]
        sql, start, stop, depth = pool.fetchval.await_args.args
        assert "WITH RECURSIVE" in sql
        assert (start, stop, depth) == ("a", "r", 10)

    @pytest.mark.asyncio
    async def test_walk_chain_without_rows_returns_start(self, pg_store, pool):
        pool.fetchval.return_value = None

        assert await pg_store.walk_referral_chain("a", "r", 10) == ["a"]

    @pytest.mark.asyncio
    async def test_walk_chain_failure_is_graph_query_error(self, pg_store, pool):
        pool.fetchval.side_effect = asyncio.TimeoutError()

        with pytest.raises(GraphQueryError) as exc_info:
            await pg_store.walk_referral_chain("a", "r", 10)

        assert exc_info.value.details["operation"] == "walk_referral_chain"

    @pytest.mark.asyncio
    async def test_count_referrals_since(self, pg_store, pool):
        pool.fetchval.return_value = 7

        assert await pg_store.count_referrals_since("r", NOW) == 7
        assert pool.fetchval.await_args.args[1:] == ("r", NOW)

    @pytest.mark.asyncio
    async def test_paid_referrals(self, pg_store, pool):
        pool.fetch.return_value = [{
            "referral_id": "1",
            "referred_account_id": "a",
            "first_payment_at": NOW,
            "subscription_status": "cancelled",
            "cancelled_at": NOW,
        }]

        paid = await pg_store.list_paid_referrals_with_subscriptions("r")

        assert len(paid) == 1
        assert paid[0].is_cancelled


class TestSuspicionQueries:

    @pytest.mark.asyncio
    async def test_insert_passes_evidence_payload(self, pg_store, pool):
        record = SuspiciousReferral(
            referrer_account_id="r",
            referred_account_id="a",
            suspicion_type=SuspicionType.QUICK_CANCEL,
            severity=Severity.MEDIUM,
            evidence=QuickCancelEvidence(cancel_count=2, cancel_within_days=7, threshold=2),
        )
        pool.fetchval.return_value = record.id

        assert await pg_store.insert_suspicious_referral(record) == record.id

        args = pool.fetchval.await_args.args
        assert args[5:9] == ("quick_cancel", "medium", record.evidence_payload(), "pending")

    @pytest.mark.asyncio
    async def test_list_builds_filters_and_caps_limit(self, pg_store, pool):
        await pg_store.list_suspicious_referrals(
            status=ReviewStatus.PENDING, severity=Severity.HIGH, limit=10_000, offset=5
        )

        args = pool.fetch.await_args.args
        sql = args[0]
        assert "status = $1" in sql
        assert "severity = $2" in sql
        assert "LIMIT $3 OFFSET $4" in sql
        assert args[1:] == ("pending", "high", 500, 5)

    @pytest.mark.asyncio
    async def test_list_without_filters(self, pg_store, pool):
        await pg_store.list_suspicious_referrals()

        sql = pool.fetch.await_args.args[0]
        assert "WHERE" not in sql
        assert "LIMIT $1 OFFSET $2" in sql


class TestErrorsAndLifecycle:

    @pytest.mark.asyncio
    async def test_driver_error_becomes_storage_error(self, pg_store, pool):
        pool.fetchval.side_effect = OSError("connection refused")

        with pytest.raises(StorageError) as exc_info:
            await pg_store.get_referrer_of("a")

        assert not isinstance(exc_info.value, GraphQueryError)
        assert exc_info.value.details["operation"] == "get_referrer_of"

    @pytest.mark.asyncio
    async def test_unrelated_errors_propagate(self, pg_store, pool):
        pool.fetchval.side_effect = KeyError("bug")

        with pytest.raises(KeyError):
            await pg_store.get_referrer_of("a")

    @pytest.mark.asyncio
    async def test_connect_failure(self):
        with patch(
            "referral_guard.storage.postgres.asyncpg.create_pool",
            new=AsyncMock(side_effect=OSError("no route to host")),
        ):
            with pytest.raises(StorageError, match="Failed to create database pool"):
                await PostgresReferralStore.connect("postgresql://db/x")

    @pytest.mark.asyncio
    async def test_init_schema_executes_schema_file(self, pg_store, pool):
        await pg_store.init_schema()

        assert "CREATE TABLE IF NOT EXISTS suspicious_referrals" in pool.execute.await_args.args[0]

    @pytest.mark.asyncio
    async def test_close(self, pg_store, pool):
        await pg_store.close()

        pool.close.assert_awaited_once()
