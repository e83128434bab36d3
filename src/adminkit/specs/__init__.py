"""
Specification type definitions.

This module exports all entity and resource specification types.
"""

from adminkit.specs.builder import EntityBuilder
from adminkit.specs.entity import (
    EntitySpec,
    FieldSpec,
    FieldType,
    RelationKind,
    RelationSpec,
    ScalarType,
    ValidatorKind,
    ValidatorSpec,
)
from adminkit.specs.resource import (
    DEFAULT,
    HOOK_OPTIONS,
    HookSpec,
    QueryOptions,
    ResourceConfig,
    ResourceSpec,
    SortDirection,
    SortField,
    to_hook,
)

__all__ = [
    # Entity types
    "EntitySpec",
    "FieldSpec",
    "FieldType",
    "RelationKind",
    "RelationSpec",
    "ScalarType",
    "ValidatorKind",
    "ValidatorSpec",
    "EntityBuilder",
    # Resource types
    "DEFAULT",
    "HOOK_OPTIONS",
    "HookSpec",
    "ResourceConfig",
    "ResourceSpec",
    "QueryOptions",
    "SortDirection",
    "SortField",
    "to_hook",
]
