"""
PostgreSQL persistence for engagement requests.
"""

from datetime import datetime
from typing import List, Optional

import asyncpg

from shared.logging import get_logger
from shared.errors import ExternalServiceError
from ..engagements.models import EngagementRequest, EngagementStatus
from ..engagements.store import RequestStore


class PostgreSQLRequestStore(RequestStore):
    """Engagement request store on PostgreSQL.

    Transitions are a single conditional ``UPDATE ... WHERE status = $2
    RETURNING *`` so the status check and the write cannot interleave with
    another writer.
    """

    def __init__(self, dsn: str):
        self.dsn = dsn
        self.logger = get_logger("gating.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Open the pool and create tables."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=2,
                max_size=10,
                command_timeout=30
            )
            await self._create_tables()
            self.logger.info("PostgreSQL request store started")
        except Exception as e:
            self.logger.error("Failed to start PostgreSQL request store", error=str(e))
            raise ExternalServiceError("postgres", str(e))

    async def stop(self):
        if self.pool:
            await self.pool.close()
            self.logger.info("PostgreSQL request store stopped")

    async def _create_tables(self):
        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS engagement_requests (
                    id VARCHAR(64) PRIMARY KEY,
                    startup_org_id VARCHAR(255) NOT NULL,
                    advisor_org_id VARCHAR(255) NOT NULL,
                    status VARCHAR(20) NOT NULL,
                    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
                    responded_at TIMESTAMP WITH TIME ZONE,
                    prep_room_id VARCHAR(255),
                    cancellation_reason TEXT
                );
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_engagement_requests_startup
                ON engagement_requests(startup_org_id);
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_engagement_requests_advisor
                ON engagement_requests(advisor_org_id);
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_engagement_requests_sent
                ON engagement_requests(created_at) WHERE status = 'sent';
            """)

    async def insert(self, request: EngagementRequest) -> EngagementRequest:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                INSERT INTO engagement_requests (
                    id, startup_org_id, advisor_org_id, status, created_at,
                    responded_at, prep_room_id, cancellation_reason
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                RETURNING *
            """,
                request.id, request.startup_org_id, request.advisor_org_id,
                request.status.value, request.created_at, request.responded_at,
                request.prep_room_id, request.cancellation_reason
            )
        self.logger.info("Engagement request stored", request_id=request.id)
        return self._row_to_request(row)

    async def get(self, request_id: str) -> Optional[EngagementRequest]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT * FROM engagement_requests WHERE id = $1
            """, request_id)
        return self._row_to_request(row) if row else None

    async def transition(
        self,
        request_id: str,
        expected_status: EngagementStatus,
        next_status: EngagementStatus,
        responded_at: Optional[datetime] = None,
        prep_room_id: Optional[str] = None,
        cancellation_reason: Optional[str] = None,
    ) -> Optional[EngagementRequest]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                UPDATE engagement_requests
                SET status = $3,
                    responded_at = $4,
                    prep_room_id = $5,
                    cancellation_reason = $6
                WHERE id = $1 AND status = $2
                RETURNING *
            """,
                request_id, expected_status.value, next_status.value,
                responded_at, prep_room_id, cancellation_reason
            )
        if row is None:
            self.logger.info(
                "Conditional transition matched no rows",
                request_id=request_id,
                expected_status=expected_status.value,
            )
            return None
        return self._row_to_request(row)

    async def list_stale(self, created_before: datetime) -> List[EngagementRequest]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT * FROM engagement_requests
                WHERE status = 'sent' AND created_at < $1
                ORDER BY created_at ASC
            """, created_before)
        return [self._row_to_request(row) for row in rows]

    async def list_for_org(self, org_id: str) -> List[EngagementRequest]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT * FROM engagement_requests
                WHERE startup_org_id = $1 OR advisor_org_id = $1
                ORDER BY created_at DESC
            """, org_id)
        return [self._row_to_request(row) for row in rows]

    def _row_to_request(self, row) -> EngagementRequest:
        return EngagementRequest(
            id=row['id'],
            startup_org_id=row['startup_org_id'],
            advisor_org_id=row['advisor_org_id'],
            status=EngagementStatus(row['status']),
            created_at=row['created_at'],
            responded_at=row['responded_at'],
            prep_room_id=row['prep_room_id'],
            cancellation_reason=row['cancellation_reason'],
        )

    async def health_check(self) -> bool:
        """Check database health."""
        if not self.pool:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except Exception as e:
            self.logger.warning("PostgreSQL health check failed", error=str(e))
            return False
