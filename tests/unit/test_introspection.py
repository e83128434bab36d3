"""Tests for field introspection."""

from __future__ import annotations

from dataclasses import FrozenInstanceError

import pytest

from adminkit.runtime.introspection import FieldDescriptor, field_names, fields
from adminkit.specs import EntitySpec, ResourceConfig, ResourceSpec


class TestFields:
    """fields() lists visible fields with type and immutability."""

    def test_declaration_order_without_config(self, user_entity: EntitySpec) -> None:
        """With no config every field is visible and mutable."""
        result = fields(user_entity)
        assert [d.name for d in result] == user_entity.field_names
        assert not any(d.immutable for d in result)

    def test_hidden_fields_are_omitted(self, user_entity: EntitySpec) -> None:
        config = ResourceConfig(hidden_fields=["encrypted_password", "age"])
        names = field_names(user_entity, config)
        assert "encrypted_password" not in names
        assert "age" not in names
        assert names[0] == "id"
        assert "name" in names

    def test_immutable_fields_are_flagged(self, user_resource: ResourceSpec) -> None:
        by_name = {d.name: d for d in fields(user_resource)}
        assert by_name["encrypted_password"].immutable is True
        assert by_name["name"].immutable is False

    def test_resource_and_entity_forms_agree(self, user_resource: ResourceSpec) -> None:
        """fields(resource) uses the resource's own config."""
        assert fields(user_resource) == fields(user_resource.entity, user_resource.config)

    def test_hidden_and_immutable_field_is_not_listed(self, user_entity: EntitySpec) -> None:
        config = ResourceConfig(
            hidden_fields=["encrypted_password"], immutable_fields=["encrypted_password"]
        )
        assert "encrypted_password" not in field_names(user_entity, config)

    def test_descriptor_carries_type(self, user_entity: EntitySpec) -> None:
        by_name = {d.name: d for d in fields(user_entity)}
        assert by_name["settings"].is_embed
        assert by_name["addresses"].type.is_many
        assert by_name["role"].type.enum_values == ["admin", "member"]
        assert not by_name["name"].is_embed

    def test_descriptor_is_frozen(self, user_entity: EntitySpec) -> None:
        descriptor = fields(user_entity)[0]
        assert isinstance(descriptor, FieldDescriptor)
        with pytest.raises(FrozenInstanceError):
            descriptor.name = "other"  # type: ignore[misc]
