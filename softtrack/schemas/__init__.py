"""Pydantic Schemas — validation for data crossing the storage boundary.

Invariants:
    - Schemas validate at system boundary (ledger snapshot text)
    - Decoded snapshots become core/ RecordState values, never raw dicts

Design Decisions:
    - Separate from models: schemas are wire contracts, models are persistence
"""
