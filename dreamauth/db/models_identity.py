"""SQLAlchemy model for the identities table."""

from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from dreamauth.db.base import BaseEntity


class IdentityEntity(BaseEntity):
    """A local user provisioned from an identity provider subject."""

    __tablename__ = "identities"

    id: Mapped[str] = mapped_column(String(48), primary_key=True)
    external_subject: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True
    )
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
