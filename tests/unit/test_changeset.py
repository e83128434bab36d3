"""Tests for changeset casting, embeds, and diagnostics."""

from __future__ import annotations

from datetime import date
from typing import Any
from uuid import UUID

import pytest

from adminkit.errors import ConfigurationError
from adminkit.runtime.changeset import (
    EMBED_DELETE,
    CastError,
    Changeset,
    _cast,
    build_changeset,
    cast_value,
    change,
)
from adminkit.specs import (
    EntityBuilder,
    EntitySpec,
    FieldSpec,
    FieldType,
    ResourceConfig,
    ResourceSpec,
    ScalarType,
)


@pytest.fixture
def stored_user() -> dict[str, Any]:
    return {
        "id": 1,
        "name": "Tom Jones",
        "email": "tom@example.com",
        "encrypted_password": "hash",
        "role": "member",
        "age": 30,
        "tags": ["a"],
        "settings": {"theme": "light", "notifications": True},
        "addresses": [{"id": 1, "street": "1 Main St", "city": "Leeds"}],
    }


class TestCastValue:
    """cast_value() coerces raw params to field types."""

    def test_int_from_string(self) -> None:
        assert cast_value(FieldType(kind="scalar", scalar_type=ScalarType.INT), "42") == 42

    def test_invalid_int(self) -> None:
        with pytest.raises(CastError):
            cast_value(FieldType(kind="scalar", scalar_type=ScalarType.INT), "abc")

    def test_empty_string_is_none(self) -> None:
        assert cast_value(FieldType(kind="scalar", scalar_type=ScalarType.STR), "") is None

    def test_bool_from_form_value(self) -> None:
        assert cast_value(FieldType(kind="scalar", scalar_type=ScalarType.BOOL), "true") is True

    def test_date_from_iso_string(self) -> None:
        field_type = FieldType(kind="scalar", scalar_type=ScalarType.DATE)
        assert cast_value(field_type, "2024-01-02") == date(2024, 1, 2)

    def test_enum_membership(self) -> None:
        field_type = FieldType(kind="enum", enum_values=["admin", "member"])
        assert cast_value(field_type, "admin") == "admin"
        with pytest.raises(CastError):
            cast_value(field_type, "owner")

    def test_array_from_index_map(self) -> None:
        field_type = FieldType(kind="array", scalar_type=ScalarType.INT)
        assert cast_value(field_type, {"1": "20", "0": "10"}) == [10, 20]

    def test_ref_defaults_to_int_key(self) -> None:
        assert cast_value(FieldType(kind="ref", ref_entity="User"), "7") == 7


class TestChange:
    """change() builds a changeset restricted to castable fields."""

    def test_new_record_casts_immutable_fields(self, user_resource: ResourceSpec) -> None:
        changeset = change(user_resource, None, {"name": "Tom", "encrypted_password": "x"})
        assert changeset.is_new
        assert changeset.get_change("encrypted_password") == "x"
        assert changeset.valid

    def test_existing_record_ignores_immutable_fields(
        self, user_resource: ResourceSpec, stored_user: dict[str, Any]
    ) -> None:
        changeset = change(user_resource, stored_user, {"encrypted_password": "x"})
        assert "encrypted_password" not in changeset.changes
        assert changeset.apply_changes()["encrypted_password"] == "hash"

    def test_existing_record_ignores_primary_key(
        self, user_resource: ResourceSpec, stored_user: dict[str, Any]
    ) -> None:
        changeset = change(user_resource, stored_user, {"id": "99"})
        assert changeset.changes == {}

    def test_hidden_fields_are_never_cast(
        self, user_entity: Any, stored_user: dict[str, Any]
    ) -> None:
        resource = ResourceSpec(
            entity=user_entity, config=ResourceConfig(hidden_fields=["role"])
        )
        changeset = change(resource, stored_user, {"role": "admin"})
        assert changeset.changes == {}

    def test_unknown_params_are_ignored(
        self, user_resource: ResourceSpec, stored_user: dict[str, Any]
    ) -> None:
        changeset = change(user_resource, stored_user, {"nickname": "T"})
        assert changeset.changes == {}
        assert changeset.valid

    def test_unchanged_values_are_not_changes(
        self, user_resource: ResourceSpec, stored_user: dict[str, Any]
    ) -> None:
        changeset = change(user_resource, stored_user, {"name": "Tom Jones", "age": "31"})
        assert changeset.changes == {"age": 31}

    def test_blank_record_takes_defaults(self, user_resource: ResourceSpec) -> None:
        changeset = change(user_resource)
        assert changeset.data["role"] == "member"
        assert changeset.data["addresses"] == []
        assert changeset.data["settings"] is None

    def test_cast_failure_is_a_diagnostic(self, user_resource: ResourceSpec) -> None:
        changeset = change(user_resource, None, {"name": "Tom", "age": "old"})
        assert not changeset.valid
        assert changeset.traverse_errors()["age"]

    def test_required_field(self, user_resource: ResourceSpec) -> None:
        changeset = change(user_resource, None, {"email": "a@b.c"})
        assert ("name", "can't be blank") in changeset.errors

    def test_required_field_cleared_on_update(
        self, user_resource: ResourceSpec, stored_user: dict[str, Any]
    ) -> None:
        changeset = change(user_resource, stored_user, {"name": ""})
        assert ("name", "can't be blank") in changeset.errors

    def test_max_length(self, user_resource: ResourceSpec) -> None:
        changeset = change(user_resource, None, {"name": "x" * 51})
        assert changeset.traverse_errors() == {"name": ["should be at most 50 character(s)"]}

    def test_validator_rule(self, user_resource: ResourceSpec) -> None:
        changeset = change(user_resource, None, {"name": "Tom", "age": "-1"})
        assert changeset.traverse_errors() == {
            "age": ["must be greater than or equal to 0"]
        }


class TestEmbeds:
    """Embedded sub-objects are cast recursively."""

    def test_new_embed(self, user_resource: ResourceSpec) -> None:
        changeset = change(user_resource, None, {"name": "Tom", "settings": {"theme": "dark"}})
        nested = changeset.get_change("settings")
        assert isinstance(nested, Changeset)
        assert nested.is_new
        assert changeset.apply_changes()["settings"] == {"theme": "dark", "notifications": True}

    def test_existing_embed_is_merged(
        self, user_resource: ResourceSpec, stored_user: dict[str, Any]
    ) -> None:
        changeset = change(user_resource, stored_user, {"settings": {"notifications": "false"}})
        assert changeset.changed_values() == {
            "settings": {"theme": "light", "notifications": False}
        }

    def test_unchanged_embed_is_not_a_change(
        self, user_resource: ResourceSpec, stored_user: dict[str, Any]
    ) -> None:
        changeset = change(user_resource, stored_user, {"settings": {"theme": "light"}})
        assert changeset.changes == {}

    def test_delete_sentinel_clears_one_embed(
        self, user_resource: ResourceSpec, stored_user: dict[str, Any]
    ) -> None:
        changeset = change(user_resource, stored_user, {"settings": EMBED_DELETE})
        assert changeset.changes == {"settings": None}
        assert changeset.apply_changes()["settings"] is None

    def test_delete_sentinel_clears_many_embed(
        self, user_resource: ResourceSpec, stored_user: dict[str, Any]
    ) -> None:
        changeset = change(user_resource, stored_user, {"addresses": "delete"})
        assert changeset.apply_changes()["addresses"] == []

    def test_delete_sentinel_is_case_sensitive(
        self, user_resource: ResourceSpec, stored_user: dict[str, Any]
    ) -> None:
        changeset = change(user_resource, stored_user, {"settings": "DELETE"})
        assert changeset.traverse_errors() == {"settings": ["is invalid"]}

    def test_many_embed_matches_items_by_key(
        self, user_resource: ResourceSpec, stored_user: dict[str, Any]
    ) -> None:
        params = {"addresses": [{"id": "1", "city": "York"}, {"city": "Hull"}]}
        changeset = change(user_resource, stored_user, params)
        assert changeset.apply_changes()["addresses"] == [
            {"id": 1, "street": "1 Main St", "city": "York"},
            {"id": 2, "street": None, "city": "Hull"},
        ]

    def test_new_many_embed_items_get_sequential_keys(self, user_resource: ResourceSpec) -> None:
        params = {"name": "Tom", "addresses": [{"city": "Leeds"}, {"id": "7", "city": "York"}]}
        changeset = change(user_resource, None, params)
        assert [a["id"] for a in changeset.apply_changes()["addresses"]] == [1, 7]

    def test_new_uuid_keyed_embed_item_gets_uuid(self) -> None:
        tag = (
            EntityBuilder("Tag")
            .field("id", ScalarType.UUID, primary_key=True)
            .field("label", ScalarType.STR)
            .build()
        )
        entity = EntityBuilder("Note").embed("tags", tag, many=True).build()
        changeset = change(ResourceSpec(entity=entity), None, {"tags": [{"label": "x"}]})
        assert isinstance(changeset.apply_changes()["tags"][0]["id"], UUID)

    def test_many_embed_index_map(
        self, user_resource: ResourceSpec, stored_user: dict[str, Any]
    ) -> None:
        params = {"addresses": {"0": {"city": "Hull"}}}
        changeset = change(user_resource, stored_user, params)
        assert [a["city"] for a in changeset.apply_changes()["addresses"]] == ["Hull"]

    def test_nested_errors_invalidate_parent(
        self, user_resource: ResourceSpec, stored_user: dict[str, Any]
    ) -> None:
        changeset = change(user_resource, stored_user, {"addresses": [{"street": "2 High St"}]})
        assert not changeset.valid
        assert changeset.errors == []
        assert changeset.traverse_errors() == {"addresses": [{"city": ["can't be blank"]}]}

    def test_embeds_ignore_parent_config(self, user_entity: Any) -> None:
        """The parent's hidden fields do not apply inside an embed."""
        resource = ResourceSpec(
            entity=user_entity, config=ResourceConfig(hidden_fields=["theme"])
        )
        changeset = change(resource, None, {"name": "Tom", "settings": {"theme": "dark"}})
        assert changeset.apply_changes()["settings"]["theme"] == "dark"


class TestBuildChangeset:
    def test_depth_guard(self, user_entity: Any) -> None:
        with pytest.raises(RecursionError):
            build_changeset(user_entity, user_entity.blank(), ResourceConfig(), {}, depth=17)

    def test_embed_without_entity_is_a_configuration_error(self) -> None:
        broken = FieldSpec(name="meta", type=FieldType.model_construct(kind="embed", embed=None))
        entity = EntitySpec(name="Thing", fields=[broken])
        with pytest.raises(ConfigurationError, match="meta"):
            build_changeset(entity, {"meta": None}, ResourceConfig(), {"meta": {}})

    def test_uncastable_field_name_is_a_configuration_error(self, user_entity: Any) -> None:
        changeset = Changeset(entity=user_entity, data={}, params={"nickname": "T"})
        with pytest.raises(ConfigurationError, match="nickname"):
            _cast(changeset, ["nickname"])
