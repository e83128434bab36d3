"""
Resource service - the engine's lifecycle operations for one resource.

Provides list, create, update, delete, and validate, each routed through the
resource's hook configuration, plus lookup, changeset building, field
introspection, and record actions.

Persistence outcomes are reported through Changesets: a failed insert,
update, or delete returns the changeset with diagnostics instead of raising.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from adminkit.errors import (
    ConfigurationError,
    ConstraintViolationError,
    HookResolutionError,
    RecordNotFoundError,
)
from adminkit.logging import log_with_context
from adminkit.runtime.associations import preloads
from adminkit.runtime.changeset import Changeset, change
from adminkit.runtime.hooks import dispatch, invoke
from adminkit.runtime.introspection import FieldDescriptor, field_names, fields
from adminkit.runtime.query_builder import QueryBuilder
from adminkit.runtime.repository import SQLiteRepository
from adminkit.specs.entity import EntitySpec
from adminkit.specs.resource import QueryOptions, ResourceConfig, ResourceSpec, SortField

logger = logging.getLogger(__name__)

# Session key carrying the namespace prefix
SESSION_PREFIX_KEY = "__prefix__"

Session = Mapping[str, Any]

# Alias to prevent mypy resolving `list` as ResourceService.list inside the class
_list = list


def session_prefix(session: Session | None) -> str | None:
    """The namespace prefix carried by a session, if any."""
    if not session:
        return None
    return session.get(SESSION_PREFIX_KEY)


class ResourceService:
    """
    Lifecycle operations for an administered resource.

    The service holds no per-call state: every operation receives its own
    options, params, and session.
    """

    def __init__(self, resource: ResourceSpec, repository: SQLiteRepository):
        """
        Initialize the service.

        Args:
            resource: The administered resource
            repository: Store for the resource's entity
        """
        self.resource = resource
        self.repository = repository

    @property
    def entity(self) -> EntitySpec:
        return self.resource.entity

    @property
    def config(self) -> ResourceConfig:
        return self.resource.config

    def fields(self) -> list[FieldDescriptor]:
        """Visible fields with their types and immutability."""
        return fields(self.resource)

    async def find(self, record_id: Any, prefix: str | None = None) -> dict[str, Any]:
        """
        Look up a record by primary key.

        Raises:
            RecordNotFoundError: if no row matches
        """
        record = await self.repository.get(record_id, prefix)
        if record is None:
            raise RecordNotFoundError(self.entity.name, record_id, prefix)
        return record

    # -------------------------------------------------------------------------
    # List
    # -------------------------------------------------------------------------

    async def list(
        self,
        options: QueryOptions | Mapping[str, Any] | None = None,
        session: Session | None = None,
    ) -> Any:
        """
        List a page of records.

        Returns:
            ``(records, total)`` on the default path, where ``total`` counts
            every record matching the search regardless of page. An override
            owns the result shape.
        """
        options = options if options is not None else {}
        return await dispatch(
            self.config,
            "list_with",
            lambda: self._build_list(options, session),
            self.resource,
            options,
            session,
        )

    async def _build_list(
        self,
        options: QueryOptions | Mapping[str, Any],
        session: Session | None,
    ) -> tuple[_list[dict[str, Any]], int]:
        if isinstance(options, QueryOptions):
            opts = options
        else:
            opts = QueryOptions.model_validate(dict(options))
        prefix = opts.prefix or session_prefix(session)
        sort = opts.sort or SortField(field=self.repository.pk_name)
        if sort.field != self.repository.pk_name and self.entity.get_field(sort.field) is None:
            raise ConfigurationError(f"{self.entity.name} has no field '{sort.field}' to sort by")

        query = (
            QueryBuilder(table_name=self.entity.name, schema=prefix)
            .set_pagination(opts.page)
            .set_sort(sort)
            .set_preloads(preloads(self.resource))
            .apply_search(opts.search, field_names(self.resource))
        )

        records = await self.repository.all(query)
        total = await self.repository.count(query)
        logger.debug(
            "Listed %s page %d: %d of %d (search=%r)",
            self.entity.name,
            opts.page,
            len(records),
            total,
            opts.search,
        )
        return records, total

    # -------------------------------------------------------------------------
    # Changesets
    # -------------------------------------------------------------------------

    def change(
        self,
        record: Mapping[str, Any] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> Changeset:
        """Build a changeset against ``record`` (or a blank record)."""
        return change(self.resource, record, params)

    async def validate(self, changeset: Changeset, session: Session | None = None) -> Changeset:
        """
        Request diagnostics for a changeset without committing it.

        A ``validate_with`` override receives ``(changeset, session, *args)``
        and returns the changeset to report; its action is always set to
        ``"validate"``.

        Raises:
            HookResolutionError: if the override returns anything but a Changeset
        """

        async def _identity() -> Changeset:
            return changeset

        result = await dispatch(self.config, "validate_with", _identity, changeset, session)
        if not isinstance(result, Changeset):
            raise HookResolutionError(
                f"validate_with for {self.entity.name} must return a Changeset, "
                f"got {type(result).__name__}"
            )
        result.action = "validate"
        return result

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    async def create(self, params: Mapping[str, Any], session: Session | None = None) -> Any:
        """
        Create a record from params.

        Returns:
            The insert changeset on the default path (``record`` set on
            success, diagnostics otherwise). An override's return value is
            passed through unmodified.
        """

        async def _default() -> Changeset:
            changeset = self.change(None, params)
            return await self._insert(changeset, session_prefix(session))

        return await dispatch(self.config, "create_with", _default, params, session)

    async def update(
        self,
        record: Mapping[str, Any],
        params: Mapping[str, Any],
        session: Session | None = None,
    ) -> Any:
        """
        Update an existing record from params.

        Immutable fields are never changed on this path.
        """

        async def _default() -> Changeset:
            changeset = self.change(record, params)
            return await self._update(changeset, session_prefix(session))

        return await dispatch(self.config, "update_with", _default, record, params, session)

    async def delete(self, record: Mapping[str, Any], session: Session | None = None) -> Any:
        """Delete a record."""

        async def _default() -> Changeset:
            changeset = Changeset(entity=self.entity, data=dict(record))
            return await self._delete(changeset, session_prefix(session))

        return await dispatch(self.config, "delete_with", _default, record, session)

    async def run_action(
        self,
        name: str,
        record: Mapping[str, Any],
        session: Session | None = None,
    ) -> Any:
        """
        Run a configured record action with ``(record, session, *args)``.

        Raises:
            ConfigurationError: if no action has that name
        """
        hook = self.config.actions.get(name)
        if hook is None:
            raise ConfigurationError(f"{self.entity.name} has no action '{name}'")
        logger.info("Running action %s on %s", name, self.entity.name)
        return await invoke(hook, record, session)

    async def _insert(self, changeset: Changeset, prefix: str | None) -> Changeset:
        changeset.action = "insert"
        if not changeset.valid:
            logger.debug("Rejected %s insert: %s", self.entity.name, changeset.traverse_errors())
            return changeset

        data = {k: v for k, v in changeset.apply_changes().items() if v is not None}
        try:
            changeset.record = await self.repository.insert(data, prefix)
        except ConstraintViolationError as exc:
            return self._constraint_failed(changeset, exc)

        logger.info(
            "Inserted %s %s",
            self.entity.name,
            changeset.record.get(self.repository.pk_name),
        )
        return changeset

    async def _update(self, changeset: Changeset, prefix: str | None) -> Changeset:
        changeset.action = "update"
        if not changeset.valid:
            logger.debug("Rejected %s update: %s", self.entity.name, changeset.traverse_errors())
            return changeset

        if not changeset.changes:
            changeset.record = dict(changeset.data)
            return changeset

        pk_value = changeset.data.get(self.repository.pk_name)
        try:
            stored = await self.repository.update(pk_value, changeset.changed_values(), prefix)
        except ConstraintViolationError as exc:
            return self._constraint_failed(changeset, exc)

        if stored is None:
            return changeset.add_error("base", "is stale")

        changeset.record = stored
        logger.info("Updated %s %s: %s", self.entity.name, pk_value, sorted(changeset.changes))
        return changeset

    async def _delete(self, changeset: Changeset, prefix: str | None) -> Changeset:
        changeset.action = "delete"
        pk_value = changeset.data.get(self.repository.pk_name)
        try:
            deleted = await self.repository.delete(pk_value, prefix)
        except ConstraintViolationError as exc:
            return self._constraint_failed(changeset, exc)

        if not deleted:
            return changeset.add_error("base", "is stale")

        changeset.record = dict(changeset.data)
        logger.info("Deleted %s %s", self.entity.name, pk_value)
        return changeset

    def _constraint_failed(
        self, changeset: Changeset, exc: ConstraintViolationError
    ) -> Changeset:
        log_with_context(
            logger,
            logging.WARNING,
            f"{changeset.action} on {self.entity.name} violated a constraint",
            constraint_type=exc.constraint_type,
            field=exc.field,
        )
        return changeset.add_error(exc.field or "base", exc.message)
