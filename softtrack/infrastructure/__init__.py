"""Infrastructure Layer — session management and cross-cutting concerns.

Invariants:
    - Database errors leaving a managed session are mapped to DatabaseError
    - Logging is configured here once; other modules only call logging.getLogger

Design Decisions:
    - Thin wrappers over SQLAlchemy and logging, no domain logic
"""
