"""Core Layer — metadata, schema derivation, auth and session types. No IO, no DB.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - Async appears only in Protocol signatures; request/secret scopes are contextvars

Design Decisions:
    - Functional core separated from the imperative shell (services/, infrastructure/)
"""
