"""ORM Models — SQLAlchemy declarative models.

Invariants:
    - All models inherit from Base (db/base.py)

Design Decisions:
    - Models imported here so Base.metadata is complete for create_all() and Alembic
"""

from toolhost.models.session_record import SessionRecord  # noqa: F401
