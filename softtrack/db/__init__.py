"""Database Infrastructure — async session factory and SQLAlchemy Base.

Invariants:
    - All sessions are async (AsyncSession)
    - Sessions handed out here carry the versioning hook when a registry is given

Design Decisions:
    - asyncpg driver for PostgreSQL, aiosqlite for SQLite
"""
