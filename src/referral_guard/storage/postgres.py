"""PostgreSQL referral store on asyncpg.

Concurrent sightings of the same fingerprint rely on INSERT ... ON CONFLICT
rather than application locks. Every driver failure is re-raised as
StorageError (GraphQueryError for the recursive chain walk).
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Type

import asyncpg

from referral_guard.common.constants import StorageConstants
from referral_guard.common.exceptions import GraphQueryError, StorageError
from referral_guard.core.types import ReviewStatus, Severity, SuspicionType, TrackingEventType
from referral_guard.data.schemas import DeviceFingerprint, PaidReferral, SuspiciousReferral
from referral_guard.storage.base import ReferralStore

logger = logging.getLogger(__name__)

SCHEMA_FILE = Path(__file__).parent / "schema.sql"

_DRIVER_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)

_FINGERPRINT_COLUMNS = (
    "id::text AS id, fingerprint_hash, fingerprint_components, "
    "total_accounts, first_seen_at, last_seen_at"
)

_WALK_CHAIN_SQL = """
WITH RECURSIVE chain AS (
    SELECT $1::text AS account_id, 0 AS depth, ARRAY[$1::text] AS path
    UNION ALL
    SELECT r.referrer_account_id, c.depth + 1, c.path || r.referrer_account_id
    FROM chain c
    JOIN referrals r ON r.referred_account_id = c.account_id
    WHERE c.depth < $3
      AND c.account_id <> $2
      AND NOT r.referrer_account_id = ANY(c.path)
)
SELECT path FROM chain ORDER BY depth DESC LIMIT 1
"""


async def _init_connection(conn: asyncpg.Connection) -> None:
    """Decode JSONB columns to Python objects."""
    await conn.set_type_codec(
        "jsonb",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )


class PostgresReferralStore(ReferralStore):
    """Referral store backed by an asyncpg connection pool."""

    supports_recursive_queries = True

    def __init__(self, pool: asyncpg.Pool):
        """Initialize with an existing pool.

        Args:
            pool: asyncpg pool. Use connect() to create one with the JSONB codec.
        """
        self._pool = pool

    @classmethod
    async def connect(
        cls,
        dsn: str,
        min_size: int = StorageConstants.POOL_MIN_SIZE,
        max_size: int = StorageConstants.POOL_MAX_SIZE,
        command_timeout: float = StorageConstants.COMMAND_TIMEOUT_SECONDS,
    ) -> "PostgresReferralStore":
        """Create a pool and return a store bound to it.

        Raises:
            StorageError: If the database cannot be reached
        """
        try:
            pool = await asyncpg.create_pool(
                dsn,
                min_size=min_size,
                max_size=max_size,
                command_timeout=command_timeout,
                init=_init_connection,
            )
        except _DRIVER_ERRORS as e:
            raise StorageError(
                f"Failed to create database pool: {e}", operation="connect"
            ) from e
        logger.info(f"Connected referral store pool (min={min_size}, max={max_size})")
        return cls(pool)

    async def close(self) -> None:
        await self._pool.close()
        logger.info("Referral store pool closed")

    async def init_schema(self) -> None:
        """Apply schema.sql. Safe to run repeatedly."""
        sql = SCHEMA_FILE.read_text()
        async with self._guard("init_schema"):
            await self._pool.execute(sql)

    @asynccontextmanager
    async def _guard(
        self,
        operation: str,
        error_cls: Type[StorageError] = StorageError,
    ) -> AsyncIterator[None]:
        try:
            yield
        except _DRIVER_ERRORS as e:
            logger.debug(f"Store operation {operation} failed: {type(e).__name__}: {e}")
            raise error_cls(
                f"{operation} failed: {type(e).__name__}: {e}",
                operation=operation,
            ) from e

    @staticmethod
    def _fingerprint_from_row(row: asyncpg.Record) -> DeviceFingerprint:
        return DeviceFingerprint(**dict(row))

    # ----- Device fingerprints -----

    async def get_fingerprint_by_hash(self, fingerprint_hash: str) -> Optional[DeviceFingerprint]:
        async with self._guard("get_fingerprint_by_hash"):
            row = await self._pool.fetchrow(
                f"SELECT {_FINGERPRINT_COLUMNS} FROM device_fingerprints "
                "WHERE fingerprint_hash = $1",
                fingerprint_hash,
            )
        return self._fingerprint_from_row(row) if row else None

    async def create_fingerprint(
        self,
        fingerprint_hash: str,
        components: Optional[Dict[str, Any]] = None,
    ) -> DeviceFingerprint:
        async with self._guard("create_fingerprint"):
            row = await self._pool.fetchrow(
                "INSERT INTO device_fingerprints (fingerprint_hash, fingerprint_components) "
                "VALUES ($1, $2) "
                "ON CONFLICT (fingerprint_hash) DO UPDATE SET last_seen_at = NOW() "
                f"RETURNING {_FINGERPRINT_COLUMNS}",
                fingerprint_hash,
                components,
            )
        return self._fingerprint_from_row(row)

    async def touch_fingerprint(
        self,
        fingerprint_id: str,
        components: Optional[Dict[str, Any]] = None,
    ) -> None:
        async with self._guard("touch_fingerprint"):
            await self._pool.execute(
                """UPDATE device_fingerprints
                   SET last_seen_at = NOW(),
                       fingerprint_components = CASE
                           WHEN $2::jsonb IS NULL THEN fingerprint_components
                           ELSE COALESCE(fingerprint_components, '{}'::jsonb) || $2::jsonb
                       END
                   WHERE id = $1::uuid""",
                fingerprint_id,
                components,
            )

    async def upsert_fingerprint_link(self, fingerprint_id: str, account_id: str) -> None:
        async with self._guard("upsert_fingerprint_link"):
            await self._pool.execute(
                """INSERT INTO device_fingerprint_accounts (fingerprint_id, account_id)
                   VALUES ($1::uuid, $2)
                   ON CONFLICT (fingerprint_id, account_id)
                   DO UPDATE SET last_seen_at = NOW()""",
                fingerprint_id,
                account_id,
            )

    async def count_fingerprint_links(self, fingerprint_id: str) -> int:
        async with self._guard("count_fingerprint_links"):
            count = await self._pool.fetchval(
                "SELECT COUNT(DISTINCT account_id) FROM device_fingerprint_accounts "
                "WHERE fingerprint_id = $1::uuid",
                fingerprint_id,
            )
        return int(count or 0)

    async def set_fingerprint_total_accounts(self, fingerprint_id: str, total: int) -> None:
        async with self._guard("set_fingerprint_total_accounts"):
            await self._pool.execute(
                "UPDATE device_fingerprints SET total_accounts = $2 WHERE id = $1::uuid",
                fingerprint_id,
                total,
            )

    async def list_accounts_for_fingerprint(self, fingerprint_hash: str) -> List[str]:
        async with self._guard("list_accounts_for_fingerprint"):
            rows = await self._pool.fetch(
                """SELECT a.account_id
                   FROM device_fingerprint_accounts a
                   JOIN device_fingerprints f ON f.id = a.fingerprint_id
                   WHERE f.fingerprint_hash = $1
                   ORDER BY a.first_seen_at""",
                fingerprint_hash,
            )
        return [row["account_id"] for row in rows]

    # ----- Referral graph -----

    async def get_referrer_of(self, account_id: str) -> Optional[str]:
        async with self._guard("get_referrer_of"):
            return await self._pool.fetchval(
                "SELECT referrer_account_id FROM referrals "
                "WHERE referred_account_id = $1 LIMIT 1",
                account_id,
            )

    async def walk_referral_chain(
        self,
        start_account_id: str,
        stop_account_id: str,
        max_depth: int,
    ) -> List[str]:
        async with self._guard("walk_referral_chain", GraphQueryError):
            path = await self._pool.fetchval(
                _WALK_CHAIN_SQL,
                start_account_id,
                stop_account_id,
                max_depth,
            )
        return list(path) if path else [start_account_id]

    async def count_referrals_since(self, referrer_account_id: str, since: datetime) -> int:
        async with self._guard("count_referrals_since"):
            count = await self._pool.fetchval(
                "SELECT COUNT(*) FROM referrals "
                "WHERE referrer_account_id = $1 AND created_at >= $2",
                referrer_account_id,
                since,
            )
        return int(count or 0)

    async def list_paid_referrals_with_subscriptions(
        self,
        referrer_account_id: str,
    ) -> List[PaidReferral]:
        async with self._guard("list_paid_referrals_with_subscriptions"):
            rows = await self._pool.fetch(
                """SELECT r.id::text AS referral_id,
                          r.referred_account_id,
                          r.first_payment_at,
                          s.status AS subscription_status,
                          s.cancelled_at
                   FROM referrals r
                   LEFT JOIN subscriptions s ON s.account_id = r.referred_account_id
                   WHERE r.referrer_account_id = $1
                     AND r.first_payment_at IS NOT NULL""",
                referrer_account_id,
            )
        return [PaidReferral(**dict(row)) for row in rows]

    # ----- Tracking log -----

    async def count_tracking_events(
        self,
        ip_address: str,
        event_type: TrackingEventType = TrackingEventType.REGISTER,
    ) -> int:
        async with self._guard("count_tracking_events"):
            count = await self._pool.fetchval(
                "SELECT COUNT(*) FROM referral_tracking_logs "
                "WHERE ip_address = $1 AND event_type = $2",
                ip_address,
                event_type.value,
            )
        return int(count or 0)

    # ----- Suspicious referrals -----

    async def insert_suspicious_referral(self, record: SuspiciousReferral) -> str:
        async with self._guard("insert_suspicious_referral"):
            return await self._pool.fetchval(
                """INSERT INTO suspicious_referrals (
                       id, referral_id, referrer_account_id, referred_account_id,
                       suspicion_type, severity, evidence, status, created_at
                   )
                   VALUES ($1::uuid, $2, $3, $4, $5, $6, $7, $8, $9)
                   RETURNING id::text""",
                record.id,
                record.referral_id,
                record.referrer_account_id,
                record.referred_account_id,
                record.suspicion_type.value,
                record.severity.value,
                record.evidence_payload(),
                record.status.value,
                record.created_at,
            )

    async def list_suspicious_referrals(
        self,
        status: Optional[ReviewStatus] = None,
        suspicion_type: Optional[SuspicionType] = None,
        severity: Optional[Severity] = None,
        limit: int = StorageConstants.DEFAULT_QUERY_LIMIT,
        offset: int = 0,
    ) -> List[SuspiciousReferral]:
        clauses = []
        params: List[Any] = []
        for column, value in (
            ("status", status),
            ("suspicion_type", suspicion_type),
            ("severity", severity),
        ):
            if value is not None:
                params.append(value.value)
                clauses.append(f"{column} = ${len(params)}")

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.extend([min(limit, StorageConstants.MAX_QUERY_LIMIT), offset])

        async with self._guard("list_suspicious_referrals"):
            rows = await self._pool.fetch(
                f"""SELECT id::text AS id, referral_id, referrer_account_id,
                           referred_account_id, suspicion_type, severity, evidence,
                           status, reviewed_by, reviewed_at, review_notes,
                           action_taken, created_at
                    FROM suspicious_referrals
                    {where}
                    ORDER BY created_at DESC
                    LIMIT ${len(params) - 1} OFFSET ${len(params)}""",
                *params,
            )
        return [SuspiciousReferral(**dict(row)) for row in rows]
