"""
adminkit - schema-driven resource administration engine.

Given a resource (an entity schema plus a configuration), adminkit lists,
searches, paginates, creates, updates, deletes, and validates its records,
with every lifecycle step overridable by a configured hook.

This package provides:
- specs: Entity and resource specification types
- runtime: The engine (introspection, queries, changesets, hooks, store)
"""

__version__ = "0.1.0"

from adminkit.errors import (
    AdminError,
    ConfigurationError,
    ConstraintViolationError,
    HookResolutionError,
    RecordNotFoundError,
)
from adminkit.runtime import (
    PAGE_SIZE,
    Changeset,
    DatabaseManager,
    ResourceRegistry,
    ResourceService,
    change,
    fields,
    preloads,
)
from adminkit.specs import (
    EntityBuilder,
    EntitySpec,
    HookSpec,
    QueryOptions,
    ResourceConfig,
    ResourceSpec,
    ScalarType,
    SortField,
)

__all__ = [
    "__version__",
    # Errors
    "AdminError",
    "ConfigurationError",
    "ConstraintViolationError",
    "HookResolutionError",
    "RecordNotFoundError",
    # Specs
    "EntityBuilder",
    "EntitySpec",
    "HookSpec",
    "QueryOptions",
    "ResourceConfig",
    "ResourceSpec",
    "ScalarType",
    "SortField",
    # Runtime
    "PAGE_SIZE",
    "Changeset",
    "DatabaseManager",
    "ResourceRegistry",
    "ResourceService",
    "change",
    "fields",
    "preloads",
]
