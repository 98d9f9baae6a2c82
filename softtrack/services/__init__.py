"""Services Layer — repository, flush hook, ledger and registry over AsyncSession.

Invariants:
    - Transitions are computed by core/versioning.py only; services apply them
    - Versioned types are listed explicitly in a VersionedRegistry (no auto-discovery)

Design Decisions:
    - One file per concern for locality (repository, hook, ledger, registry, mapping)
"""
