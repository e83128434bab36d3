"""
adminkit Runtime

Engine implementation for administered resources (SQLite + Pydantic).

This module provides:
- Field introspection (visible fields, immutability)
- Listing queries (search, single-key sort, fixed-size pages)
- Changesets (casting, embeds, diagnostics)
- Lifecycle hook dispatch and association preloading
- Resource services and a registry wiring them to the store

Example usage:
    >>> from adminkit.runtime import DatabaseManager, ResourceRegistry
    >>>
    >>> registry = ResourceRegistry(DatabaseManager("admin.db"))
    >>> users = registry.register(ResourceSpec(entity=user_entity))
    >>> records, total = await users.list({"search": "name:Tom"})
"""

from adminkit.runtime.associations import parent_associations, preloads
from adminkit.runtime.changeset import (
    EMBED_DELETE,
    CastError,
    Changeset,
    build_changeset,
    cast_value,
    change,
)
from adminkit.runtime.hooks import dispatch, import_target, invoke, invoke_sync, resolve
from adminkit.runtime.introspection import FieldDescriptor, field_names, fields
from adminkit.runtime.query_builder import (
    PAGE_SIZE,
    QueryBuilder,
    parse_search,
    tokenize_search,
)
from adminkit.runtime.registry import ResourceRegistry
from adminkit.runtime.repository import DatabaseManager, SQLiteRepository
from adminkit.runtime.service import SESSION_PREFIX_KEY, ResourceService, session_prefix
from adminkit.runtime.settings import AdminSettings, get_settings

__all__ = [
    # Introspection
    "FieldDescriptor",
    "fields",
    "field_names",
    # Queries
    "PAGE_SIZE",
    "QueryBuilder",
    "parse_search",
    "tokenize_search",
    # Changesets
    "EMBED_DELETE",
    "CastError",
    "Changeset",
    "build_changeset",
    "cast_value",
    "change",
    # Hooks
    "dispatch",
    "import_target",
    "invoke",
    "invoke_sync",
    "resolve",
    # Associations
    "parent_associations",
    "preloads",
    # Store
    "DatabaseManager",
    "SQLiteRepository",
    # Services
    "SESSION_PREFIX_KEY",
    "ResourceService",
    "ResourceRegistry",
    "session_prefix",
    # Settings
    "AdminSettings",
    "get_settings",
]
