"""
Association resolution for listings.

Decides which relations are eager-loaded alongside each page of records.
"""

from __future__ import annotations

import logging

from adminkit.runtime.hooks import invoke_sync
from adminkit.specs.resource import HookSpec, ResourceSpec

logger = logging.getLogger(__name__)


def parent_associations(resource: ResourceSpec) -> list[str]:
    """Names of the entity's belongs-to relations, in declaration order."""
    return [relation.name for relation in resource.entity.parent_relations]


def preloads(resource: ResourceSpec) -> list[str]:
    """
    Relations to eager-load for a resource.

    - explicit ``preload`` list: returned verbatim
    - ``preload`` override: called with ``(resource, *args)``
    - otherwise: every parent association
    """
    preload = resource.config.preload
    if preload is None:
        return parent_associations(resource)
    if isinstance(preload, HookSpec):
        result = list(invoke_sync(preload, resource))
        logger.debug("Preload override %s returned %s", preload.name, result)
        return result
    return list(preload)
