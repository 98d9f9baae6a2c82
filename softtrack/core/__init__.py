"""Core Layer — pure versioning logic, no IO, no async, no DB.

Invariants:
    - No module in core/ imports from services/, infrastructure/, db/ or models/
    - All functions are pure and deterministic (the caller passes `now`)

Design Decisions:
    - Functional core separated from imperative shell: the repository and the
      flush hook both call the same transition functions
"""
