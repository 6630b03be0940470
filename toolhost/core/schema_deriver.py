"""Schema Deriver — turns a class's field constraints into a JSON Schema and a validator.

Invariants:
    - Fields are processed in declaration order (base classes first)
    - A field is required unless marked optional or given a default
    - Omitted fields with a default are filled with it (present-with-default)
    - Numeric bounds are inclusive (minimum/maximum)
    - validate() reports every violated field in one pass, never fail-fast
    - Malformed constraints raise InvalidConstraintError when the schema is derived
      (contradictory bounds, enum mixed with bounds, a default violating its own field)
    - A class with no fields yields an always-valid empty-object schema

Design Decisions:
    - Validation runs on a pydantic model built with create_model(): strict mode
      (no "3" -> 3 coercion, booleans are not numbers), extra keys ignored
    - Model fields use positional internal names with the declared name as alias,
      so author field names can never collide with BaseModel attributes
    - derive_schema() is cached per class: schemas are build-once, read-many
"""

import enum
import inspect
import re
import types
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, ClassVar, Literal, Union, get_args, get_origin

from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

from toolhost.core.domain_types import SemanticType
from toolhost.core.errors import InvalidConstraintError
from toolhost.core.field_constraints import FieldConstraint, UNSET


@dataclass(frozen=True)
class Violation:
    """One violated field."""
    field: str
    message: str
    type: str

    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message, "type": self.type}


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    value: dict[str, Any] | None = None
    errors: tuple[Violation, ...] = ()


@dataclass(frozen=True)
class FieldSpec:
    """A field after type resolution."""
    name: str
    type: SemanticType
    constraint: FieldConstraint
    required: bool
    enum: tuple | None = None
    items: SemanticType | None = None


_PYTHON_TYPES: dict[type, SemanticType] = {
    str: SemanticType.STRING,
    bool: SemanticType.BOOLEAN,
    int: SemanticType.INTEGER,
    float: SemanticType.NUMBER,
    list: SemanticType.ARRAY,
    tuple: SemanticType.ARRAY,
    set: SemanticType.ARRAY,
    dict: SemanticType.OBJECT,
}

_VALIDATION_TYPES: dict[SemanticType, Any] = {
    SemanticType.STRING: str,
    SemanticType.BOOLEAN: bool,
    SemanticType.INTEGER: int,
    SemanticType.NUMBER: float,
    SemanticType.OBJECT: dict[str, Any],
}

_MODEL_CONFIG = ConfigDict(strict=True, extra="ignore", regex_engine="python-re")

_LENGTH_TYPES = (SemanticType.STRING, SemanticType.ARRAY)
_NUMERIC_TYPES = (SemanticType.NUMBER, SemanticType.INTEGER)


class DerivedSchema:
    """JSON Schema document plus validator for one input/output class."""

    def __init__(self, owner: type, fields: tuple[FieldSpec, ...]):
        self.owner = owner
        self.fields = fields
        self._json_schema = _build_document(fields)
        self._model = _build_model(owner, fields)

    @property
    def json_schema(self) -> dict:
        return _deep_copy_schema(self._json_schema)

    @property
    def is_empty(self) -> bool:
        return not self.fields

    def validate(self, raw: Any) -> ValidationResult:
        """Validate raw input; on success `value` holds declared fields only."""
        if raw is None:
            raw = {}
        if not isinstance(raw, Mapping):
            return ValidationResult(
                ok=False,
                errors=(Violation("", "Input should be an object", "object_type"),),
            )
        try:
            instance = self._model.model_validate(dict(raw))
        except ValidationError as exc:
            return ValidationResult(
                ok=False, errors=tuple(_to_violation(e) for e in exc.errors()),
            )
        dumped = instance.model_dump(by_alias=True)
        value = {}
        for index, spec in enumerate(self.fields):
            omitted = f"field_{index}" not in instance.model_fields_set
            if omitted and not spec.required and not spec.constraint.has_default:
                continue
            value[spec.name] = dumped[spec.name]
        return ValidationResult(ok=True, value=value)

    def instantiate(self, value: Mapping[str, Any]) -> Any:
        """Build an owner instance carrying validated values (None for omitted optionals)."""
        obj = object.__new__(self.owner)
        for spec in self.fields:
            object.__setattr__(obj, spec.name, value.get(spec.name))
        return obj


@lru_cache(maxsize=None)
def derive_schema(cls: type) -> DerivedSchema:
    """Derive (and cache) the schema for cls. Raises InvalidConstraintError."""
    specs = tuple(
        _resolve_field(cls, name, annotation, declared)
        for name, annotation, declared in _collect_fields(cls)
    )
    return DerivedSchema(cls, specs)


# ─── Field collection ───────────────────────────────────────────

def _collect_fields(cls: type) -> list[tuple[str, Any, FieldConstraint]]:
    found: dict[str, Any] = {}
    for klass in reversed(cls.__mro__):
        if klass is object:
            continue
        annotations = inspect.get_annotations(klass, eval_str=True)
        for name, annotation in annotations.items():
            if name.startswith("_") or get_origin(annotation) is ClassVar:
                continue
            found[name] = annotation
        for name, value in vars(klass).items():
            if isinstance(value, FieldConstraint) and name not in found:
                found[name] = None

    fields = []
    for name, annotation in found.items():
        value = getattr(cls, name, UNSET)
        if isinstance(value, FieldConstraint):
            declared = value
        elif value is UNSET or callable(value):
            declared = FieldConstraint()
        else:
            declared = FieldConstraint(default=value)
        fields.append((name, annotation, declared))
    return fields


def _resolve_field(
    owner: type, name: str, annotation: Any, declared: FieldConstraint,
) -> FieldSpec:
    annotation, nullable = _unwrap_optional(annotation)
    ann_type, ann_enum, ann_items = _from_annotation(annotation)

    semantic = _coerce_type(owner, name, declared.type, "type")
    if semantic is None:
        semantic = ann_type
    enum_values = declared.enum if declared.enum is not None else ann_enum
    if semantic is None and enum_values:
        semantic = _PYTHON_TYPES.get(type(enum_values[0]))
    if semantic is None and declared.has_default:
        semantic = _PYTHON_TYPES.get(type(declared.default))
    if semantic is None:
        semantic = SemanticType.STRING

    items = _coerce_type(owner, name, declared.items, "items") or ann_items
    if semantic is SemanticType.ARRAY and items is None:
        items = SemanticType.STRING

    _check_constraint(owner, name, semantic, declared, enum_values)
    optional = declared.optional or nullable
    spec = FieldSpec(
        name=name,
        type=semantic,
        constraint=declared,
        required=not optional and not declared.has_default,
        enum=enum_values,
        items=items,
    )
    if declared.has_default:
        _check_default(owner, spec)
    return spec


def _unwrap_optional(annotation: Any) -> tuple[Any, bool]:
    if get_origin(annotation) in (Union, types.UnionType):
        args = get_args(annotation)
        rest = [a for a in args if a is not type(None)]
        if len(rest) == 1 and len(rest) < len(args):
            return rest[0], True
    return annotation, False


def _from_annotation(
    annotation: Any,
) -> tuple[SemanticType | None, tuple | None, SemanticType | None]:
    if annotation is None:
        return None, None, None
    origin = get_origin(annotation)
    if origin is Literal:
        values = get_args(annotation)
        return _PYTHON_TYPES.get(type(values[0])), values, None
    if isinstance(annotation, type) and issubclass(annotation, enum.Enum):
        values = tuple(member.value for member in annotation)
        return _PYTHON_TYPES.get(type(values[0])) if values else None, values, None
    base = origin or annotation
    semantic = _PYTHON_TYPES.get(base) if isinstance(base, type) else None
    items = None
    if semantic is SemanticType.ARRAY:
        args = get_args(annotation)
        if args and isinstance(args[0], type):
            items = _PYTHON_TYPES.get(args[0])
    return semantic, None, items


def _coerce_type(
    owner: type, name: str, value: SemanticType | str | None, what: str,
) -> SemanticType | None:
    if value is None:
        return None
    try:
        return SemanticType(value)
    except ValueError:
        raise InvalidConstraintError(
            owner.__name__, name, f"unknown {what} '{value}'",
        ) from None


def _check_constraint(
    owner: type,
    name: str,
    semantic: SemanticType,
    c: FieldConstraint,
    enum_values: tuple | None,
) -> None:
    def fail(reason: str) -> None:
        raise InvalidConstraintError(owner.__name__, name, reason)

    if c.min_length is not None or c.max_length is not None:
        if semantic not in _LENGTH_TYPES:
            fail(f"length bounds are not valid for type '{semantic.value}'")
        for bound in (c.min_length, c.max_length):
            if bound is not None and (not isinstance(bound, int) or bound < 0):
                fail("length bounds must be non-negative integers")
        if (
            c.min_length is not None and c.max_length is not None
            and c.min_length > c.max_length
        ):
            fail(f"min_length {c.min_length} > max_length {c.max_length}")

    if c.minimum is not None or c.maximum is not None:
        if semantic not in _NUMERIC_TYPES:
            fail(f"numeric bounds are not valid for type '{semantic.value}'")
        if c.minimum is not None and c.maximum is not None and c.minimum > c.maximum:
            fail(f"minimum {c.minimum} > maximum {c.maximum}")

    if c.pattern is not None:
        if semantic is not SemanticType.STRING:
            fail(f"pattern is not valid for type '{semantic.value}'")
        try:
            re.compile(c.pattern)
        except re.error as exc:
            fail(f"invalid pattern: {exc}")

    if enum_values is not None:
        if len(enum_values) == 0:
            fail("enum must list at least one value")
        if any(
            bound is not None
            for bound in (c.min_length, c.max_length, c.minimum, c.maximum, c.pattern)
        ):
            fail("enum cannot be combined with length, numeric or pattern bounds")


def _check_default(owner: type, spec: FieldSpec) -> None:
    """A declared default must itself satisfy the field's type and bounds."""
    default = spec.constraint.default
    if isinstance(default, enum.Enum):
        default = default.value
    checker = create_model(
        f"{owner.__name__}_{spec.name}_Default",
        __config__=_MODEL_CONFIG,
        value=_field_definition(spec, ...),
    )
    try:
        checker.model_validate({spec.name: default})
    except ValidationError as exc:
        raise InvalidConstraintError(
            owner.__name__, spec.name,
            f"default {default!r} does not satisfy the field: {exc.errors()[0]['msg']}",
        ) from None


# ─── Document / model construction ──────────────────────────────

def _schema_node(spec: FieldSpec) -> dict:
    c = spec.constraint
    node: dict[str, Any] = {"type": spec.type.value}
    if c.description:
        node["description"] = c.description
    if spec.enum is not None:
        node["enum"] = list(spec.enum)
    if c.min_length is not None:
        node["minItems" if spec.type is SemanticType.ARRAY else "minLength"] = c.min_length
    if c.max_length is not None:
        node["maxItems" if spec.type is SemanticType.ARRAY else "maxLength"] = c.max_length
    if c.minimum is not None:
        node["minimum"] = c.minimum
    if c.maximum is not None:
        node["maximum"] = c.maximum
    if c.pattern is not None:
        node["pattern"] = c.pattern
    if spec.type is SemanticType.ARRAY:
        node["items"] = {"type": (spec.items or SemanticType.STRING).value}
    if c.has_default:
        node["default"] = c.default
    return node


def _build_document(fields: tuple[FieldSpec, ...]) -> dict:
    return {
        "type": "object",
        "properties": {spec.name: _schema_node(spec) for spec in fields},
        "required": [spec.name for spec in fields if spec.required],
    }


def _validation_type(spec: FieldSpec) -> Any:
    if spec.enum is not None:
        return Literal[spec.enum]
    if spec.type is SemanticType.ARRAY:
        item = _VALIDATION_TYPES.get(spec.items or SemanticType.STRING, Any)
        return list[item]
    return _VALIDATION_TYPES[spec.type]


def _field_definition(spec: FieldSpec, default: Any) -> tuple[Any, Any]:
    c = spec.constraint
    annotation = _validation_type(spec)
    if not spec.required:
        annotation = annotation | None
    return (
        annotation,
        Field(
            default, alias=spec.name, description=c.description,
            min_length=c.min_length, max_length=c.max_length,
            ge=c.minimum, le=c.maximum, pattern=c.pattern,
        ),
    )


def _build_model(owner: type, fields: tuple[FieldSpec, ...]) -> type[BaseModel]:
    definitions: dict[str, Any] = {}
    for index, spec in enumerate(fields):
        c = spec.constraint
        if c.has_default:
            default = c.default
        elif spec.required:
            default = ...
        else:
            default = None
        definitions[f"field_{index}"] = _field_definition(spec, default)
    return create_model(
        f"{owner.__name__}Validator", __config__=_MODEL_CONFIG, **definitions,
    )


def _to_violation(error: dict) -> Violation:
    location = ".".join(str(part) for part in error.get("loc", ()))
    return Violation(field=location, message=error["msg"], type=error["type"])


def _deep_copy_schema(node: Any) -> Any:
    if isinstance(node, dict):
        return {k: _deep_copy_schema(v) for k, v in node.items()}
    if isinstance(node, list):
        return [_deep_copy_schema(v) for v in node]
    return node
