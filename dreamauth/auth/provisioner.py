"""Idempotent identity provisioning for verified subjects.

Two mechanisms keep one identity per subject. Within a process, callers for
the same subject queue on a sharded ``asyncio.Lock``; across processes, the
unique constraint on ``external_subject`` rejects the second insert and the
loser refetches the winner's row.
"""

import asyncio
import hashlib

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dreamauth.auth.types import Identity
from dreamauth.core.errors import ConstraintViolationError, StoreUnavailableError
from dreamauth.core.logging import get_logger
from dreamauth.core.settings import PROVISIONING_LOCK_SHARDS_DEFAULT
from dreamauth.db import repo_identity

logger = get_logger(__name__)


class IdentityProvisioner:
    """Fetches the identity for a subject, creating it on first sight."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        lock_shards: int = PROVISIONING_LOCK_SHARDS_DEFAULT,
    ) -> None:
        self._session_factory = session_factory
        self._locks = [asyncio.Lock() for _ in range(max(1, lock_shards))]

    def _lock_for(self, subject: str) -> asyncio.Lock:
        digest = hashlib.blake2b(subject.encode(), digest_size=8).digest()
        return self._locks[int.from_bytes(digest, "big") % len(self._locks)]

    async def resolve_or_create(
        self, subject: str, email: str | None = None
    ) -> Identity:
        """Return the identity for ``subject``, creating it if absent.

        An existing identity is returned unchanged, even when ``email``
        differs from the stored value.

        Raises:
            StoreUnavailableError: The identity store failed.
            ConstraintViolationError: A create conflicted but no row was found.
        """
        if not subject:
            raise ValueError("subject must be non-empty")

        async with self._lock_for(subject):
            try:
                return await self._resolve_or_create(subject, email)
            except (SQLAlchemyError, OSError) as exc:
                logger.error(
                    "identity_store_unavailable",
                    stage="provisioning",
                    error=type(exc).__name__,
                )
                raise StoreUnavailableError("identity store unavailable") from exc

    async def _resolve_or_create(self, subject: str, email: str | None) -> Identity:
        async with self._session_factory() as session:
            existing = await repo_identity.get_identity_by_subject(session, subject)
            if existing is not None:
                return Identity.model_validate(existing)

            try:
                created = await repo_identity.create_identity(session, subject, email)
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.info("identity_create_conflict", stage="provisioning")
            else:
                logger.info("identity_provisioned", identity_id=created.id)
                return Identity.model_validate(created)

        return await self._refetch_after_conflict(subject)

    async def _refetch_after_conflict(self, subject: str) -> Identity:
        async with self._session_factory() as session:
            winner = await repo_identity.get_identity_by_subject(session, subject)
        if winner is None:
            logger.error("identity_conflict_without_row", stage="provisioning")
            raise ConstraintViolationError("create conflicted but no identity found")
        return Identity.model_validate(winner)
