"""Database Package — declarative Base for ORM models.

Invariants:
    - Engine lifecycle lives in infrastructure/database.py, not here
"""
