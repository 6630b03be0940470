"""Pydantic Schemas — JSON-RPC envelope and method params.

Invariants:
    - Schemas validate at the system boundary (inbound JSON-RPC messages)

Design Decisions:
    - Separate from models: schemas are wire contracts, models are persistence
"""
