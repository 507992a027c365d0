"""
Idempotency record Data Access Object.

WHY: Isolates the (key, user) storage so the service layer only deals with
"have we answered this before" and "remember this answer".
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core.clock import utcnow
from helpdesk.core.exceptions import IdempotencyConflictError
from helpdesk.models.idempotency import IdempotencyRecord


class IdempotencyDAO:
    """Data Access Object for idempotency records."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, key: str, user_id: int) -> Optional[IdempotencyRecord]:
        result = await self.session.execute(
            select(IdempotencyRecord).where(
                IdempotencyRecord.key == key,
                IdempotencyRecord.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        key: str,
        user_id: int,
        status_code: int,
        body: Any,
    ) -> IdempotencyRecord:
        """
        Insert a record.

        WHY: The composite primary key rejects a second insert for the same
        (key, user). That only happens when two requests raced past lookup,
        and the loser's whole transaction must roll back so its resource
        isn't created twice.

        Raises:
            IdempotencyConflictError: If the pair was stored concurrently
        """
        record = IdempotencyRecord(
            key=key,
            user_id=user_id,
            status_code=status_code,
            body=body,
            created_at=utcnow(),
        )
        self.session.add(record)
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise IdempotencyConflictError(user_id=user_id, error=str(e.orig)) from e
        return record

    async def delete(self, record: IdempotencyRecord) -> None:
        """
        Remove one loaded record.

        WHY: Goes through the unit of work so the identity map forgets the
        row and a fresh record with the same key can be added afterwards.
        """
        await self.session.delete(record)
        await self.session.flush()

    async def delete_older_than(self, cutoff: datetime) -> int:
        """
        Remove records created before cutoff.

        Returns:
            Number of rows removed
        """
        result = await self.session.execute(
            delete(IdempotencyRecord)
            .where(IdempotencyRecord.created_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def delete_for_user(self, user_id: int) -> int:
        """Remove every record owned by user_id (account deletion)."""
        result = await self.session.execute(
            delete(IdempotencyRecord)
            .where(IdempotencyRecord.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
