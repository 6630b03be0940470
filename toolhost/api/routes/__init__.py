"""Route Modules — one file per concern (MCP endpoint, health, discovery metadata).

Invariants:
    - Each module defines its own APIRouter with tags
    - Routes never contain protocol logic (delegate to services/)

Design Decisions:
    - Explicit registration in main.py over auto-discovery
"""
