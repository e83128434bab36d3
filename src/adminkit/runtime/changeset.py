"""
Changesets - staged, validated mutations of a record.

A Changeset holds the target record, the raw params, the cast values that
differ from the target, nested changesets for embedded sub-objects, and the
diagnostics collected while casting. Nothing here touches the store; the
service persists ``changeset.changed_values()`` once the changeset is valid.

Casting rules:
    - Only visible, non-embed fields are cast; immutable fields only when the
      target is a brand-new record.
    - Unknown param keys are ignored; "" casts to None.
    - Embeds are cast recursively with an empty config. The literal string
      ``"delete"`` clears the embed ([] for many, None for one).
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from functools import cache
from typing import Any
from uuid import UUID, uuid4

from pydantic import TypeAdapter, ValidationError

from adminkit.errors import ConfigurationError
from adminkit.runtime.introspection import fields
from adminkit.specs.entity import (
    EntitySpec,
    FieldSpec,
    FieldType,
    ScalarType,
    ValidatorKind,
)
from adminkit.specs.resource import ResourceConfig, ResourceSpec

EMBED_DELETE = "delete"

# Depth guard for self-referencing embeds
MAX_EMBED_DEPTH = 16


class CastError(ValueError):
    """A raw param could not be coerced to the field's type."""


# =============================================================================
# Type coercion
# =============================================================================


def _scalar_type_to_python(scalar_type: ScalarType) -> Any:
    """Map scalar types to Python types."""
    mapping: dict[ScalarType, Any] = {
        ScalarType.STR: str,
        ScalarType.TEXT: str,
        ScalarType.INT: int,
        ScalarType.DECIMAL: Decimal,
        ScalarType.FLOAT: float,
        ScalarType.BOOL: bool,
        ScalarType.DATE: date,
        ScalarType.DATETIME: datetime,
        ScalarType.UUID: UUID,
        ScalarType.EMAIL: str,
        ScalarType.URL: str,
        ScalarType.JSON: dict[str, Any] | list[Any],
    }
    return mapping.get(scalar_type, str)


@cache
def _adapter(scalar_type: ScalarType, many: bool = False) -> TypeAdapter[Any]:
    python_type = _scalar_type_to_python(scalar_type)
    return TypeAdapter(list[python_type] if many else python_type)


def _index_map_to_list(value: Mapping[str, Any]) -> list[Any] | None:
    """Turn a form-style ``{"0": a, "1": b}`` map into ``[a, b]``."""
    keys = list(value.keys())
    if not keys or not all(str(k).isdigit() for k in keys):
        return None
    return [value[k] for k in sorted(keys, key=lambda k: int(k))]


def _coerce(adapter: TypeAdapter[Any], value: Any) -> Any:
    try:
        return adapter.validate_python(value)
    except ValidationError as exc:
        raise CastError(exc.errors()[0]["msg"]) from exc


def cast_value(field_type: FieldType, value: Any) -> Any:
    """
    Coerce a raw param to a field's Python type.

    Raises:
        CastError: if the value cannot be coerced
    """
    if value is None or value == "":
        return None

    if field_type.kind == "enum":
        if not isinstance(value, str) or value not in (field_type.enum_values or []):
            raise CastError("is invalid")
        return value

    if field_type.kind == "array":
        if isinstance(value, Mapping):
            value = _index_map_to_list(value)
            if value is None:
                raise CastError("is invalid")
        return _coerce(_adapter(field_type.scalar_type or ScalarType.STR, many=True), value)

    if field_type.kind == "ref":
        return _coerce(_adapter(field_type.scalar_type or ScalarType.INT), value)

    return _coerce(_adapter(field_type.scalar_type or ScalarType.STR), value)


# =============================================================================
# Changeset
# =============================================================================


@dataclass
class Changeset:
    """
    A staged mutation.

    Attributes:
        entity: Schema of the target record
        data: The target record (existing values, or a blank record)
        params: Raw params, string-keyed
        changes: Cast values that differ from ``data``; embeds map to nested
            Changesets (or a list of them, or None when cleared)
        errors: (field, message) diagnostics
        action: Set when diagnostics are requested ("validate") or after a
            persistence attempt ("insert", "update", "delete")
        is_new: True when ``data`` is a blank record
        record: The persisted record after a successful insert/update/delete
    """

    entity: EntitySpec
    data: dict[str, Any]
    params: dict[str, Any] = field(default_factory=dict)
    changes: dict[str, Any] = field(default_factory=dict)
    errors: list[tuple[str, str]] = field(default_factory=list)
    action: str | None = None
    is_new: bool = False
    record: dict[str, Any] | None = None

    @property
    def valid(self) -> bool:
        """True when neither this changeset nor any nested one carries errors."""
        if self.errors:
            return False
        return all(nested.valid for nested in self._nested())

    def add_error(self, field_name: str, message: str) -> Changeset:
        self.errors.append((field_name, message))
        return self

    def get_change(self, field_name: str, default: Any = None) -> Any:
        return self.changes.get(field_name, default)

    def get_field(self, field_name: str) -> Any:
        """The value the field would have after applying changes."""
        if field_name in self.changes:
            return self._applied(field_name, self.changes[field_name])
        return self.data.get(field_name)

    def changed_values(self) -> dict[str, Any]:
        """Top-level changes with nested embed changesets applied."""
        return {name: self._applied(name, value) for name, value in self.changes.items()}

    def apply_changes(self) -> dict[str, Any]:
        """The target record with every change applied."""
        result = dict(self.data)
        result.update(self.changed_values())
        return result

    def traverse_errors(self) -> dict[str, Any]:
        """Errors keyed by field; embeds contribute nested dicts (or lists of them)."""
        result: dict[str, Any] = {}
        for field_name, message in self.errors:
            result.setdefault(field_name, []).append(message)

        for field_name, value in self.changes.items():
            if isinstance(value, Changeset):
                nested = value.traverse_errors()
                if nested:
                    result[field_name] = nested
            elif isinstance(value, list) and value and isinstance(value[0], Changeset):
                nested_list = [item.traverse_errors() for item in value]
                if any(nested_list):
                    result[field_name] = nested_list
        return result

    def _applied(self, field_name: str, value: Any) -> Any:
        if isinstance(value, Changeset):
            return value.apply_changes()
        spec = self.entity.get_field(field_name)
        if spec is not None and spec.type.is_many and value:
            return [item.apply_changes() for item in value]
        return value

    def _nested(self) -> list[Changeset]:
        nested: list[Changeset] = []
        for value in self.changes.values():
            if isinstance(value, Changeset):
                nested.append(value)
            elif isinstance(value, list):
                nested.extend(item for item in value if isinstance(item, Changeset))
        return nested


# =============================================================================
# Building
# =============================================================================


def change(
    resource: ResourceSpec,
    record: Mapping[str, Any] | None = None,
    params: Mapping[str, Any] | None = None,
) -> Changeset:
    """
    Build a changeset for a resource.

    Args:
        resource: The administered resource
        record: Existing record, or None to target a blank record
        params: Raw input params

    Returns:
        A Changeset restricted to the resource's castable fields
    """
    if record is None:
        return build_changeset(
            resource.entity, resource.entity.blank(), resource.config, params or {}, is_new=True
        )
    return build_changeset(resource.entity, dict(record), resource.config, params or {})


def build_changeset(
    entity: EntitySpec,
    data: dict[str, Any],
    config: ResourceConfig,
    params: Mapping[str, Any],
    is_new: bool = False,
    depth: int = 0,
) -> Changeset:
    """Cast params onto ``data`` following the visibility rules of ``config``."""
    if depth > MAX_EMBED_DEPTH:
        raise RecursionError(f"Embeds nested deeper than {MAX_EMBED_DEPTH} levels")

    changeset = Changeset(
        entity=entity,
        data=data,
        params={str(k): v for k, v in params.items()},
        is_new=is_new,
    )

    visible = fields(entity, config)
    pk = entity.primary_key
    castable = [
        d.name
        for d in visible
        if not d.is_embed
        and (is_new or (not d.immutable and (pk is None or d.name != pk.name)))
    ]
    _cast(changeset, castable)

    for descriptor in visible:
        if descriptor.is_embed:
            _cast_embed(changeset, descriptor.name, descriptor.type, depth)

    _validate_fields(changeset, castable)
    return changeset


def _cast(changeset: Changeset, castable: list[str]) -> None:
    for name in castable:
        if name not in changeset.params:
            continue
        spec = changeset.entity.get_field(name)
        if spec is None:
            raise ConfigurationError(f"{changeset.entity.name} has no field '{name}' to cast")
        try:
            value = cast_value(spec.type, changeset.params[name])
        except CastError as exc:
            changeset.add_error(name, str(exc))
            continue
        if value != changeset.data.get(name):
            changeset.changes[name] = value


def _cast_embed(changeset: Changeset, name: str, field_type: FieldType, depth: int) -> None:
    if name not in changeset.params:
        return

    raw = changeset.params[name]
    if isinstance(raw, str) and raw == EMBED_DELETE:
        raw = [] if field_type.is_many else None
        changeset.params[name] = raw

    embed = field_type.embed
    if embed is None:
        raise ConfigurationError(
            f"Embed field '{name}' of {changeset.entity.name} declares no embedded entity"
        )
    existing = changeset.data.get(name)

    if field_type.is_many:
        _cast_embeds_many(changeset, name, embed, raw, existing or [], depth)
        return

    if raw is None:
        if existing is not None:
            changeset.changes[name] = None
        return

    if not isinstance(raw, Mapping):
        changeset.add_error(name, "is invalid")
        return

    if existing is None:
        nested = build_changeset(embed, embed.blank(), ResourceConfig(), raw, True, depth + 1)
        _assign_key(nested, set())
    else:
        nested = build_changeset(embed, dict(existing), ResourceConfig(), raw, False, depth + 1)

    if nested.is_new or nested.changes or nested.errors:
        changeset.changes[name] = nested


def _cast_embeds_many(
    changeset: Changeset,
    name: str,
    embed: EntitySpec,
    raw: Any,
    existing: list[dict[str, Any]],
    depth: int,
) -> None:
    if isinstance(raw, Mapping):
        items = _index_map_to_list(raw)
        if items is None:
            changeset.add_error(name, "is invalid")
            return
        raw = items

    if not isinstance(raw, list) or not all(isinstance(item, Mapping) for item in raw):
        changeset.add_error(name, "is invalid")
        return

    if not raw:
        if existing:
            changeset.changes[name] = []
        return

    # Items carrying a known primary key update that embed; all others are new.
    pk = embed.primary_key
    by_key: dict[str, dict[str, Any]] = {}
    if pk is not None:
        by_key = {
            str(item[pk.name]): item for item in existing if item.get(pk.name) is not None
        }

    taken: set[Any] = {item[pk.name] for item in existing if pk is not None and pk.name in item}
    nested: list[Changeset] = []
    for item in raw:
        key = item.get(pk.name) if pk is not None else None
        current = by_key.get(str(key)) if key is not None else None
        if current is None:
            item_changeset = build_changeset(
                embed, embed.blank(), ResourceConfig(), item, True, depth + 1
            )
            _assign_key(item_changeset, taken)
        else:
            item_changeset = build_changeset(
                embed, dict(current), ResourceConfig(), item, False, depth + 1
            )
        nested.append(item_changeset)
    changeset.changes[name] = nested


def _assign_key(changeset: Changeset, taken: set[Any]) -> None:
    """Give a new embedded item a primary key unless the params supplied one.

    Integer keys continue from the largest key in ``taken``; UUID keys are
    random. The key actually used is added to ``taken``.
    """
    pk = changeset.entity.primary_key
    if pk is None:
        return
    key = changeset.get_field(pk.name)
    if key is None and pk.name not in changeset.traverse_errors():
        scalar = pk.type.scalar_type
        if scalar == ScalarType.INT:
            key = max((k for k in taken if isinstance(k, int)), default=0) + 1
        elif scalar == ScalarType.UUID:
            key = uuid4()
        else:
            key = str(uuid4())
        changeset.changes[pk.name] = key
    if key is not None:
        taken.add(key)


# =============================================================================
# Validation
# =============================================================================


def _is_blank(value: Any) -> bool:
    return value is None or value == "" or value == []


def _validate_fields(changeset: Changeset, castable: list[str]) -> None:
    """Required-field and validator diagnostics for castable fields and embeds."""
    for spec in changeset.entity.fields:
        checked = spec.name in castable or (
            spec.type.is_embed and spec.name in changeset.params
        )
        if not checked:
            continue

        if spec.required and _is_blank(changeset.get_field(spec.name)):
            changeset.add_error(spec.name, "can't be blank")
            continue

        if spec.name in changeset.changes and not spec.type.is_embed:
            _run_validators(changeset, spec, changeset.changes[spec.name])


def _run_validators(changeset: Changeset, spec: FieldSpec, value: Any) -> None:
    if value is None:
        return

    if spec.type.max_length and isinstance(value, str) and len(value) > spec.type.max_length:
        changeset.add_error(
            spec.name, f"should be at most {spec.type.max_length} character(s)"
        )

    for validator in spec.validators:
        message = _check(validator.kind, validator.value, value)
        if message:
            changeset.add_error(spec.name, validator.message or message)


def _check(kind: ValidatorKind, limit: Any, value: Any) -> str | None:
    if kind == ValidatorKind.MIN and value < limit:
        return f"must be greater than or equal to {limit}"
    if kind == ValidatorKind.MAX and value > limit:
        return f"must be less than or equal to {limit}"
    if kind == ValidatorKind.MIN_LENGTH and len(value) < limit:
        return f"should be at least {limit} character(s)"
    if kind == ValidatorKind.MAX_LENGTH and len(value) > limit:
        return f"should be at most {limit} character(s)"
    if kind == ValidatorKind.PATTERN and not re.search(str(limit), str(value)):
        return "has invalid format"
    return None
