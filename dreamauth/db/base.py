"""Declarative base for dreamauth SQLAlchemy models."""

from sqlalchemy.orm import DeclarativeBase


class BaseEntity(DeclarativeBase):
    """Base class for all dreamauth database entities."""
