"""SQLAlchemy Declarative Base — shared base class for versioned records and their ledgers.

Invariants:
    - Record types and history types may inherit from Base (or any DeclarativeBase)
    - Base is the single source of truth for table metadata in tests and bootstrap

Design Decisions:
    - Separate file for Base: avoids circular imports between models
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for SoftTrack ORM models."""
    pass
