"""Field Constraints — per-field validation metadata declared on input/output classes.

Usage:

    class ForecastInput:
        city: str = constraint(description="City name", min_length=1)
        days: int = constraint(minimum=1, maximum=14, default=3)
        units: str = constraint(enum=["metric", "imperial"], optional=True)

Invariants:
    - FieldConstraint is frozen: created with the owning class, immutable thereafter
    - enum values are stored as a tuple (hashable, order-preserving)
    - UNSET distinguishes "no default" from a default of None
"""

from dataclasses import dataclass
from collections.abc import Iterable
from typing import Any

from toolhost.core.domain_types import SemanticType


class _Unset:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(frozen=True)
class FieldConstraint:
    """Declared constraints for one field. Interpreted by schema_deriver."""
    type: SemanticType | str | None = None
    description: str | None = None
    min_length: int | None = None
    max_length: int | None = None
    minimum: float | None = None
    maximum: float | None = None
    pattern: str | None = None
    enum: tuple | None = None
    items: SemanticType | str | None = None
    optional: bool = False
    default: Any = UNSET

    @property
    def has_default(self) -> bool:
        return self.default is not UNSET


def constraint(
    *,
    type: SemanticType | str | None = None,
    description: str | None = None,
    min_length: int | None = None,
    max_length: int | None = None,
    minimum: float | None = None,
    maximum: float | None = None,
    pattern: str | None = None,
    enum: Iterable[Any] | None = None,
    items: SemanticType | str | None = None,
    optional: bool = False,
    default: Any = UNSET,
) -> Any:
    """Declare a constrained field. Returns a FieldConstraint typed as Any so it
    can sit behind any annotation (`days: int = constraint(...)`)."""
    return FieldConstraint(
        type=type,
        description=description,
        min_length=min_length,
        max_length=max_length,
        minimum=minimum,
        maximum=maximum,
        pattern=pattern,
        enum=tuple(enum) if enum is not None else None,
        items=items,
        optional=optional,
        default=default,
    )
