"""
Field introspection for administered resources.

Produces the ordered set of visible fields for an entity, each tagged with its
type and immutability. The same visibility rules drive forms, search, and
changeset casting, so a hidden field is never read, searched, or written.
"""

from __future__ import annotations

from dataclasses import dataclass

from adminkit.specs.entity import EntitySpec, FieldType
from adminkit.specs.resource import ResourceConfig, ResourceSpec


@dataclass(frozen=True)
class FieldDescriptor:
    """A visible field: name, type, and whether updates may change it."""

    name: str
    type: FieldType
    immutable: bool = False

    @property
    def is_embed(self) -> bool:
        return self.type.is_embed


def fields(
    entity_or_resource: EntitySpec | ResourceSpec,
    config: ResourceConfig | None = None,
) -> list[FieldDescriptor]:
    """
    List the visible fields of an entity in declaration order.

    Args:
        entity_or_resource: An EntitySpec (paired with ``config``) or a
            ResourceSpec, whose own config is used.
        config: Resource configuration; absent means nothing hidden or immutable.

    Returns:
        One FieldDescriptor per field not listed in ``hidden_fields``.
    """
    if isinstance(entity_or_resource, ResourceSpec):
        entity = entity_or_resource.entity
        config = entity_or_resource.config
    else:
        entity = entity_or_resource
    config = config or ResourceConfig()

    return [
        FieldDescriptor(
            name=field.name,
            type=field.type,
            immutable=config.is_immutable(field.name),
        )
        for field in entity.fields
        if not config.is_hidden(field.name)
    ]


def field_names(
    entity_or_resource: EntitySpec | ResourceSpec,
    config: ResourceConfig | None = None,
) -> list[str]:
    """Names of the visible fields, in declaration order."""
    return [d.name for d in fields(entity_or_resource, config)]
