"""Identity repository for database operations."""

from datetime import UTC, datetime

import uuid_utils
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dreamauth.db.models_identity import IdentityEntity


async def get_identity_by_subject(
    session: AsyncSession, subject: str
) -> IdentityEntity | None:
    """Look up an identity by its provider subject (exact match)."""
    stmt = select(IdentityEntity).where(IdentityEntity.external_subject == subject)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def create_identity(
    session: AsyncSession, subject: str, email: str | None
) -> IdentityEntity:
    """Insert a new identity.

    Raises ``sqlalchemy.exc.IntegrityError`` on flush when the subject is
    already taken.
    """
    identity = IdentityEntity(
        id=str(uuid_utils.uuid7()),
        external_subject=subject,
        email=email,
        created_at=datetime.now(UTC),
    )
    session.add(identity)
    await session.flush()
    return identity
