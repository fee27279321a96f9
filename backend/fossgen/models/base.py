"""Declarative base for read-only mirrors of the web app's project tables.

The schema is owned and migrated by the web app; nothing here creates or
alters tables.
"""
from datetime import datetime

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class CreatedAtMixin:
    """Row creation time as written by the web app. Placements are ordered by it."""
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
