"""SoftTrack — soft deletion, record versioning and a history ledger for SQLAlchemy async models.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)

Design Decisions:
    - Empty __init__.py: explicit imports only, no star exports
"""
