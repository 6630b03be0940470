"""Infrastructure Layer — session stores, auth providers, database and logging.

Invariants:
    - Infrastructure implements core/ protocols; it never imports from services/
    - All external calls wrapped with retry/timeout/error mapping

Design Decisions:
    - Resilient wrappers over raw clients (one concern per module)
"""
