"""SQLAlchemy base metadata and declarative registry."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base for ledger models."""

    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
