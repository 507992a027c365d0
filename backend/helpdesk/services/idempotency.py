"""
Idempotent request handling.

WHAT: Replays the stored response for a repeated (Idempotency-Key, user)
pair and records the response of the first attempt.

WHY: Creating POSTs are retried by clients after timeouts. Without this a
retry files a second ticket. With it:
- a repeated key replays the first status and body exactly, without
  running the operation again
- the first attempt's outcome is stored even when it was a business error,
  so replays never re-validate
- two requests racing on a new key cannot both commit (see IdempotencyDAO)

HOW: Records live for IDEMPOTENCY_TTL_HOURS. An expired record is deleted
when looked up, which frees its key for reuse.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional, Tuple

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core.clock import utcnow
from helpdesk.core.config import settings
from helpdesk.core.exceptions import AppException
from helpdesk.dao.idempotency import IdempotencyDAO


logger = logging.getLogger(__name__)

REPLAY_HEADER = "Idempotent-Replayed"


@dataclass
class StoredResponse:
    """Status and JSON body previously returned for a key."""

    status_code: int
    body: Any

    def to_response(self, replayed: bool = False) -> JSONResponse:
        headers = {REPLAY_HEADER: "true"} if replayed else None
        return JSONResponse(status_code=self.status_code, content=self.body, headers=headers)


Operation = Callable[[], Awaitable[Tuple[int, Any]]]


class IdempotencyService:
    """
    Lookup/store contract around one user's idempotency keys.

    Example:
        service = IdempotencyService(db)
        return await service.execute(key, user.id, create_the_ticket)
    """

    def __init__(self, session: AsyncSession, ttl_hours: Optional[int] = None):
        """
        Args:
            session: Async database session of the current request
            ttl_hours: Record lifetime, defaults to settings.IDEMPOTENCY_TTL_HOURS
        """
        self.dao = IdempotencyDAO(session)
        hours = settings.IDEMPOTENCY_TTL_HOURS if ttl_hours is None else ttl_hours
        self.ttl = timedelta(hours=hours)

    async def lookup(self, key: str, user_id: int) -> Optional[StoredResponse]:
        """
        Find the stored response for (key, user_id).

        Returns:
            StoredResponse, or None if unseen or expired
        """
        record = await self.dao.get(key, user_id)
        if record is None:
            return None

        if record.created_at < utcnow() - self.ttl:
            logger.info(f"Idempotency key expired for user {user_id}; treating as new")
            await self.dao.delete(record)
            return None

        return StoredResponse(status_code=record.status_code, body=record.body)

    async def store(self, key: str, user_id: int, status_code: int, body: Any) -> StoredResponse:
        """
        Remember the response for (key, user_id).

        Raises:
            IdempotencyConflictError: If a concurrent request stored it first
        """
        encoded = jsonable_encoder(body)
        await self.dao.create(key=key, user_id=user_id, status_code=status_code, body=encoded)
        return StoredResponse(status_code=status_code, body=encoded)

    async def execute(self, key: str, user_id: int, operation: Operation) -> JSONResponse:
        """
        Run operation at most once per (key, user_id).

        Args:
            key: Client-supplied Idempotency-Key
            user_id: Authenticated caller
            operation: Coroutine factory returning (status_code, body)

        Returns:
            JSONResponse with either the replayed or the fresh outcome
        """
        previous = await self.lookup(key, user_id)
        if previous is not None:
            logger.info(f"Replaying stored response for user {user_id} (status {previous.status_code})")
            return previous.to_response(replayed=True)

        try:
            status_code, body = await operation()
        except AppException as exc:
            status_code, body = exc.status_code, exc.to_dict()

        stored = await self.store(key, user_id, status_code, body)
        return stored.to_response()

    async def purge_expired(self) -> int:
        """
        Delete every expired record.

        Returns:
            Number of records removed
        """
        removed = await self.dao.delete_older_than(utcnow() - self.ttl)
        if removed:
            logger.info(f"Purged {removed} expired idempotency records")
        return removed
