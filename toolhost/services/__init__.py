"""Services Layer — registration, discovery, auth gating, dispatch and sessions.

Invariants:
    - The routing table is built once at startup and never mutated afterwards
    - Every tool/prompt/resource call flows through Dispatcher (lookup, validate, auth, invoke)

Design Decisions:
    - One module per stage of the call pipeline for locality (no god objects)
"""
