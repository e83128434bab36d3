"""
Resource registry - wires administered resources to their stores.

Registering a resource creates its table (and, for every attached prefix,
the same table in that schema), builds the SQLiteRepository for its entity,
and returns the ResourceService that runs its lifecycle operations.
"""

from __future__ import annotations

import logging

from adminkit.errors import ConfigurationError
from adminkit.runtime.repository import DatabaseManager, SQLiteRepository
from adminkit.runtime.service import ResourceService
from adminkit.runtime.settings import AdminSettings, get_settings
from adminkit.specs.entity import EntitySpec
from adminkit.specs.resource import ResourceSpec

logger = logging.getLogger(__name__)


class ResourceRegistry:
    """
    Registry of administered resources keyed by resource name.
    """

    def __init__(self, db_manager: DatabaseManager):
        """
        Initialize the registry.

        Args:
            db_manager: Database manager shared by every resource
        """
        self.db = db_manager
        # Shared with every repository so preloaded parents decode by their own types
        self._entities: dict[str, EntitySpec] = {}
        self._services: dict[str, ResourceService] = {}

    @classmethod
    def from_settings(cls, settings: AdminSettings | None = None) -> ResourceRegistry:
        """Build a registry on the database named by engine settings."""
        settings = settings or get_settings()
        return cls(DatabaseManager(settings.db_path))

    def register(self, resource: ResourceSpec) -> ResourceService:
        """
        Register a resource and create its tables.

        Returns:
            The service for the resource

        Raises:
            ConfigurationError: if a resource with the same name is registered
        """
        key = resource.key
        if key in self._services:
            raise ConfigurationError(f"Resource '{key}' is already registered")

        entity = resource.entity
        self._entities[entity.name] = entity
        self.db.create_table(entity)
        for prefix in self.db.prefixes:
            self.db.create_table(entity, prefix)

        repository = SQLiteRepository(self.db, entity, self._entities)
        service = ResourceService(resource, repository)
        self._services[key] = service
        logger.info("Registered resource %s (entity %s)", key, entity.name)
        return service

    def get(self, name: str) -> ResourceService:
        """
        Look up a registered resource's service.

        Raises:
            ConfigurationError: if no resource has that name
        """
        service = self._services.get(name)
        if service is None:
            raise ConfigurationError(f"Unknown resource '{name}'")
        return service

    @property
    def services(self) -> dict[str, ResourceService]:
        return dict(self._services)

    def create_tables(self, prefix: str | None = None) -> None:
        """Create every registered entity's table, e.g. after attaching a new prefix."""
        self.db.create_all_tables(list(self._entities.values()), prefix)
