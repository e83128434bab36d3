"""Shared pytest fixtures for adminkit tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from adminkit.runtime.registry import ResourceRegistry
from adminkit.runtime.repository import DatabaseManager
from adminkit.runtime.service import ResourceService
from adminkit.specs import (
    EntityBuilder,
    EntitySpec,
    ResourceConfig,
    ResourceSpec,
    ScalarType,
    ValidatorKind,
    ValidatorSpec,
)


@pytest.fixture
def settings_entity() -> EntitySpec:
    """Embedded per-user settings object."""
    return (
        EntityBuilder("Settings", primary_key=False)
        .field("theme", ScalarType.STR, default="light")
        .field("notifications", ScalarType.BOOL, default=True)
        .build()
    )


@pytest.fixture
def address_entity() -> EntitySpec:
    """Embedded address list item, keyed by an integer id."""
    return (
        EntityBuilder("Address")
        .field("street", ScalarType.STR)
        .field("city", ScalarType.STR, required=True)
        .build()
    )


@pytest.fixture
def user_entity(settings_entity: EntitySpec, address_entity: EntitySpec) -> EntitySpec:
    """User with an immutable password, one embed, and a list of embeds."""
    return (
        EntityBuilder("User")
        .field("name", ScalarType.STR, required=True, max_length=50)
        .field("email", ScalarType.EMAIL, unique=True)
        .field("encrypted_password", ScalarType.STR)
        .enum("role", ["admin", "member"], default="member")
        .field(
            "age",
            ScalarType.INT,
            validators=[ValidatorSpec(kind=ValidatorKind.MIN, value=0)],
        )
        .array("tags", ScalarType.STR)
        .embed("settings", settings_entity)
        .embed("addresses", address_entity, many=True)
        .has_many("posts", "Post", foreign_key="user_id")
        .build()
    )


@pytest.fixture
def post_entity() -> EntitySpec:
    """Post belonging to a User."""
    return (
        EntityBuilder("Post")
        .field("title", ScalarType.STR, required=True)
        .field("body", ScalarType.TEXT)
        .belongs_to("user", "User")
        .build()
    )


@pytest.fixture
def user_config() -> ResourceConfig:
    return ResourceConfig(immutable_fields=["encrypted_password"])


@pytest.fixture
def user_resource(user_entity: EntitySpec, user_config: ResourceConfig) -> ResourceSpec:
    return ResourceSpec(entity=user_entity, config=user_config)


@pytest.fixture
def post_resource(post_entity: EntitySpec) -> ResourceSpec:
    return ResourceSpec(entity=post_entity)


@pytest.fixture
def db_manager(tmp_path: Path) -> DatabaseManager:
    """Database manager on a fresh temporary SQLite file."""
    return DatabaseManager(tmp_path / "admin.db")


@pytest.fixture
def registry(db_manager: DatabaseManager) -> ResourceRegistry:
    return ResourceRegistry(db_manager)


@pytest.fixture
def users(registry: ResourceRegistry, user_resource: ResourceSpec) -> ResourceService:
    """Service for the User resource, table created."""
    return registry.register(user_resource)


@pytest.fixture
def posts(
    registry: ResourceRegistry, users: ResourceService, post_resource: ResourceSpec
) -> ResourceService:
    """Service for the Post resource, registered after User."""
    return registry.register(post_resource)
