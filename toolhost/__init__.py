"""Toolhost — declarative tool server speaking MCP over JSON-RPC/HTTP.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)

Design Decisions:
    - Empty __init__.py: explicit imports only, no star exports
"""
