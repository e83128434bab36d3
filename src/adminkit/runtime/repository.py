"""
SQLite repository - provides the persistence layer for administered resources.

This module implements the repository pattern for SQLite database access.
It creates tables from EntitySpec and provides lookup, insert, update, delete,
listing, counting, and batched parent-association loading. Every operation
accepts an optional prefix: the schema name of an attached database, used to
keep tenants' rows in separate files.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import UUID, uuid4

from adminkit.errors import ConstraintViolationError
from adminkit.runtime.query_builder import (
    CASEFOLD_FUNCTION,
    QueryBuilder,
    qualified_table,
    quote_identifier,
    validate_sql_identifier,
)
from adminkit.specs.entity import (
    EntitySpec,
    FieldSpec,
    FieldType,
    RelationSpec,
    ScalarType,
)

logger = logging.getLogger(__name__)


def _parse_constraint_error(exc: str | Exception) -> tuple[str, str | None]:
    """Parse an SQLite integrity error message into (constraint_type, field)."""
    err = str(exc)

    # "UNIQUE constraint failed: User.email"
    if "UNIQUE constraint failed:" in err:
        parts = err.split("UNIQUE constraint failed:")[-1].strip()
        # Composite constraints list several columns; report the first
        first = parts.split(",")[0].strip()
        field_name = first.split(".")[-1].strip() if first else None
        return "unique", field_name or None

    # "NOT NULL constraint failed: User.name"
    if "NOT NULL constraint failed:" in err:
        parts = err.split("NOT NULL constraint failed:")[-1].strip()
        field_name = parts.split(".")[-1].strip() if parts else None
        return "not_null", field_name or None

    if "FOREIGN KEY constraint failed" in err:
        return "foreign_key", None

    return "integrity", None


def _constraint_violation(
    exc: sqlite3.IntegrityError, table_name: str
) -> ConstraintViolationError:
    """Translate an IntegrityError into a ConstraintViolationError."""
    ctype, field = _parse_constraint_error(exc)
    if ctype == "unique":
        msg = (
            f"A {table_name} with this {field} already exists"
            if field
            else f"Duplicate value violates unique constraint on {table_name}"
        )
    elif ctype == "not_null":
        msg = f"{field} can't be blank" if field else f"Missing required value on {table_name}"
    elif ctype == "foreign_key":
        msg = f"Referenced record does not exist for {table_name}"
    else:
        msg = f"Integrity constraint violated on {table_name}: {exc}"
    return ConstraintViolationError(msg, field=field, constraint_type=ctype)


# =============================================================================
# SQLite Type Mapping
# =============================================================================


def _scalar_type_to_sqlite(scalar_type: ScalarType) -> str:
    """Map scalar types to SQLite types."""
    mapping: dict[ScalarType, str] = {
        ScalarType.STR: "TEXT",
        ScalarType.TEXT: "TEXT",
        ScalarType.INT: "INTEGER",
        ScalarType.DECIMAL: "REAL",
        ScalarType.FLOAT: "REAL",
        ScalarType.BOOL: "INTEGER",  # SQLite uses 0/1 for bool
        ScalarType.DATE: "TEXT",  # ISO format
        ScalarType.DATETIME: "TEXT",  # ISO format
        ScalarType.UUID: "TEXT",  # UUID as string
        ScalarType.EMAIL: "TEXT",
        ScalarType.URL: "TEXT",
        ScalarType.JSON: "TEXT",  # JSON as string
    }
    return mapping.get(scalar_type, "TEXT")


def _field_type_to_sqlite(field_type: FieldType) -> str:
    """Convert FieldType to SQLite column type."""
    if field_type.kind == "scalar" and field_type.scalar_type:
        return _scalar_type_to_sqlite(field_type.scalar_type)
    if field_type.kind == "ref":
        return _scalar_type_to_sqlite(field_type.scalar_type or ScalarType.INT)
    # enum, array (JSON), embed (JSON)
    return "TEXT"


def _json_default(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _python_to_sqlite(value: Any, field_type: FieldType | None = None) -> Any:
    """Convert Python value to SQLite-compatible value."""
    if value is None:
        return None
    elif isinstance(value, UUID):
        return str(value)
    elif isinstance(value, datetime):
        return value.isoformat()
    elif isinstance(value, date):
        return value.isoformat()
    elif isinstance(value, Decimal):
        return float(value)
    elif isinstance(value, bool):
        return 1 if value else 0
    elif isinstance(value, (dict, list)):
        return json.dumps(value, default=_json_default, ensure_ascii=False)
    else:
        return value


def _decode_scalar(value: Any, scalar: ScalarType | None) -> Any:
    """Restore a scalar from its stored text/number form."""
    if value is None or scalar is None:
        return value
    if scalar == ScalarType.UUID:
        return UUID(value) if value else None
    elif scalar == ScalarType.DATETIME:
        return datetime.fromisoformat(value) if value else None
    elif scalar == ScalarType.DATE:
        return date.fromisoformat(value) if value else None
    elif scalar == ScalarType.DECIMAL:
        return Decimal(str(value))
    elif scalar == ScalarType.BOOL:
        return bool(value)
    else:
        return value


def _decode_embed(value: Any, embed: EntitySpec) -> Any:
    if not isinstance(value, dict):
        return value
    types = {f.name: f.type for f in embed.fields}
    return {k: _json_to_python(v, types.get(k)) for k, v in value.items()}


def _json_to_python(value: Any, field_type: FieldType | None) -> Any:
    """Restore declared types inside an already JSON-decoded value, recursively."""
    if value is None or field_type is None:
        return value

    if field_type.kind == "embed" and field_type.embed is not None:
        if field_type.is_many:
            return [_decode_embed(item, field_type.embed) for item in value]
        return _decode_embed(value, field_type.embed)

    if field_type.kind == "array":
        return [_decode_scalar(item, field_type.scalar_type) for item in value]

    if field_type.kind == "ref":
        return _decode_scalar(value, field_type.scalar_type or ScalarType.INT)
    if field_type.kind == "scalar" and field_type.scalar_type != ScalarType.JSON:
        return _decode_scalar(value, field_type.scalar_type)
    return value


def _sqlite_to_python(value: Any, field_type: FieldType | None = None) -> Any:
    """Convert SQLite value to Python type based on field type."""
    if value is None:
        return None
    if field_type is None:
        return value

    if field_type.kind in ("embed", "array"):
        return _json_to_python(json.loads(value), field_type) if value else None

    scalar = field_type.scalar_type
    if field_type.kind == "ref":
        scalar = scalar or ScalarType.INT
    if field_type.kind not in ("scalar", "ref") or scalar is None:
        return value

    if scalar == ScalarType.JSON:
        return json.loads(value) if value else None
    return _decode_scalar(value, scalar)



# =============================================================================
# Database Manager
# =============================================================================


def _casefold(value: Any) -> Any:
    return value.casefold() if isinstance(value, str) else value



class DatabaseManager:
    """
    Manages SQLite database connections and schema.

    Handles database creation, attached prefix databases, and table creation.
    """

    def __init__(self, db_path: str | Path = ".adminkit/data.db"):
        """
        Initialize the database manager.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self._ensure_directory(self.db_path)
        self._attachments: dict[str, Path] = {}

    @staticmethod
    def _ensure_directory(path: Path) -> None:
        """Ensure the database directory exists."""
        path.parent.mkdir(parents=True, exist_ok=True)

    def attach(self, prefix: str, db_path: str | Path) -> None:
        """
        Register a database file to attach under schema name ``prefix``.

        Every connection opened afterwards sees it as ``"prefix".<table>``.
        """
        validate_sql_identifier(prefix, "prefix")
        path = Path(db_path)
        self._ensure_directory(path)
        self._attachments[prefix] = path
        logger.info("Attached prefix %s at %s", prefix, path)

    @property
    def prefixes(self) -> list[str]:
        return list(self._attachments)

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """
        Get a database connection context manager.

        Commits on success, rolls back on error.

        Yields:
            SQLite connection
        """
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.create_function(CASEFOLD_FUNCTION, 1, _casefold, deterministic=True)
        conn.execute("PRAGMA foreign_keys = ON")
        for prefix, path in self._attachments.items():
            conn.execute(f"ATTACH DATABASE ? AS {quote_identifier(prefix)}", (str(path),))
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def create_table(self, entity: EntitySpec, prefix: str | None = None) -> None:
        """
        Create a table for an entity if it doesn't exist.

        Args:
            entity: Entity specification
            prefix: Attached schema to create the table in
        """
        columns = self._build_columns(entity)
        table = qualified_table(entity.name, prefix)
        sql = f"CREATE TABLE IF NOT EXISTS {table} ({columns})"

        with self.connection() as conn:
            conn.execute(sql)

            for field in entity.fields:
                if field.indexed:
                    index_name = f"idx_{entity.name}_{field.name}"
                    index = qualified_table(index_name, prefix)
                    conn.execute(
                        f"CREATE INDEX IF NOT EXISTS {index} "
                        f"ON {quote_identifier(entity.name)}({quote_identifier(field.name)})"
                    )

    def _build_columns(self, entity: EntitySpec) -> str:
        """Build column definitions for CREATE TABLE."""
        pk = entity.primary_key
        columns = [
            self._build_column(field, is_pk=pk is not None and field.name == pk.name)
            for field in entity.fields
        ]

        if pk is None:
            columns.insert(0, '"id" INTEGER PRIMARY KEY')

        for field in entity.fields:
            if field.type.kind == "ref" and field.type.ref_entity:
                columns.append(
                    f"FOREIGN KEY ({quote_identifier(field.name)}) "
                    f"REFERENCES {quote_identifier(field.type.ref_entity)}"
                )

        return ", ".join(columns)

    def _build_column(self, field: FieldSpec, is_pk: bool = False) -> str:
        """Build a single column definition."""
        parts = [quote_identifier(field.name), _field_type_to_sqlite(field.type)]

        if is_pk:
            parts.append("PRIMARY KEY")
        elif field.required:
            parts.append("NOT NULL")

        if field.unique and not is_pk:
            parts.append("UNIQUE")

        if field.default is not None:
            default_val = _python_to_sqlite(field.default, field.type)
            if isinstance(default_val, str):
                escaped = default_val.replace("'", "''")
                parts.append(f"DEFAULT '{escaped}'")
            else:
                parts.append(f"DEFAULT {default_val}")

        return " ".join(parts)

    def create_all_tables(self, entities: list[EntitySpec], prefix: str | None = None) -> None:
        """
        Create tables for all entities.

        Args:
            entities: List of entity specifications
            prefix: Attached schema to create the tables in
        """
        for entity in entities:
            self.create_table(entity, prefix)

    def table_exists(self, table_name: str, prefix: str | None = None) -> bool:
        """Check if a table exists."""
        master = qualified_table("sqlite_master", prefix)
        with self.connection() as conn:
            cursor = conn.execute(
                f"SELECT name FROM {master} WHERE type='table' AND name=?",
                (table_name,),
            )
            return cursor.fetchone() is not None


# =============================================================================
# Repository
# =============================================================================


class SQLiteRepository:
    """
    SQLite repository for a single entity type.

    Records are plain dicts keyed by field name. Integer primary keys are
    assigned by SQLite; UUID primary keys are generated on insert.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        entity_spec: EntitySpec,
        entities: Mapping[str, EntitySpec] | None = None,
    ):
        """
        Initialize the repository.

        Args:
            db_manager: Database manager instance
            entity_spec: Entity specification
            entities: Other entities by name, used to decode preloaded parents
        """
        self.db = db_manager
        self.entity_spec = entity_spec
        self.table_name = entity_spec.name
        self._entities = entities if entities is not None else {}

        pk = entity_spec.primary_key
        self.pk_name = pk.name if pk else "id"
        self._pk_type = pk.type.scalar_type if pk else ScalarType.INT

        # Build field type lookup for conversions
        self._field_types: dict[str, FieldType] = {f.name: f.type for f in entity_spec.fields}

    def _table(self, prefix: str | None) -> str:
        return qualified_table(self.table_name, prefix)

    def _to_row(self, data: Mapping[str, Any]) -> dict[str, Any]:
        return {
            k: _python_to_sqlite(v, self._field_types.get(k))
            for k, v in data.items()
            if k in self._field_types or k == self.pk_name
        }

    def _from_row(self, row: sqlite3.Row | Mapping[str, Any]) -> dict[str, Any]:
        return {k: _sqlite_to_python(v, self._field_types.get(k)) for k, v in dict(row).items()}

    def _select_by_pk(self, conn: sqlite3.Connection, pk_value: Any, prefix: str | None) -> Any:
        sql = f"SELECT * FROM {self._table(prefix)} WHERE {quote_identifier(self.pk_name)} = ?"
        return conn.execute(sql, (_python_to_sqlite(pk_value),)).fetchone()

    async def get(self, pk_value: Any, prefix: str | None = None) -> dict[str, Any] | None:
        """
        Read a record by primary key.

        Returns:
            The record, or None if not found
        """
        with self.db.connection() as conn:
            row = self._select_by_pk(conn, pk_value, prefix)
        return self._from_row(row) if row else None

    async def insert(self, data: Mapping[str, Any], prefix: str | None = None) -> dict[str, Any]:
        """
        Insert a record.

        Args:
            data: Field values; the primary key may be omitted

        Returns:
            The stored record, re-read so column defaults are included

        Raises:
            ConstraintViolationError: on unique, not-null, or FK violations
        """
        data = dict(data)
        if data.get(self.pk_name) is None:
            data.pop(self.pk_name, None)
            if self._pk_type == ScalarType.UUID:
                data[self.pk_name] = uuid4()

        row = self._to_row(data)
        table = self._table(prefix)
        if row:
            columns = ", ".join(quote_identifier(k) for k in row)
            placeholders = ", ".join("?" for _ in row)
            sql = f"INSERT INTO {table} ({columns}) VALUES ({placeholders})"
        else:
            sql = f"INSERT INTO {table} DEFAULT VALUES"

        try:
            with self.db.connection() as conn:
                cursor = conn.execute(sql, list(row.values()))
                pk_value = data.get(self.pk_name, cursor.lastrowid)
                stored = self._select_by_pk(conn, pk_value, prefix)
        except sqlite3.IntegrityError as exc:
            raise _constraint_violation(exc, self.table_name) from exc

        return self._from_row(stored)

    async def update(
        self,
        pk_value: Any,
        changes: Mapping[str, Any],
        prefix: str | None = None,
    ) -> dict[str, Any] | None:
        """
        Update a record.

        Args:
            pk_value: Primary key of the record
            changes: Fields to set; None clears a column

        Returns:
            The updated record, or None if no row matched

        Raises:
            ConstraintViolationError: on unique, not-null, or FK violations
        """
        row = self._to_row(changes)
        if not row:
            return await self.get(pk_value, prefix)

        set_clause = ", ".join(f"{quote_identifier(k)} = ?" for k in row)
        sql = (
            f"UPDATE {self._table(prefix)} SET {set_clause} "
            f"WHERE {quote_identifier(self.pk_name)} = ?"
        )
        values = [*row.values(), _python_to_sqlite(pk_value)]

        try:
            with self.db.connection() as conn:
                cursor = conn.execute(sql, values)
                if cursor.rowcount == 0:
                    return None
                stored = self._select_by_pk(conn, pk_value, prefix)
        except sqlite3.IntegrityError as exc:
            raise _constraint_violation(exc, self.table_name) from exc

        return self._from_row(stored)

    async def delete(self, pk_value: Any, prefix: str | None = None) -> bool:
        """
        Delete a record by primary key.

        Returns:
            True if deleted, False if not found

        Raises:
            ConstraintViolationError: when child rows still reference it
        """
        sql = f"DELETE FROM {self._table(prefix)} WHERE {quote_identifier(self.pk_name)} = ?"
        try:
            with self.db.connection() as conn:
                cursor = conn.execute(sql, (_python_to_sqlite(pk_value),))
                return cursor.rowcount > 0
        except sqlite3.IntegrityError as exc:
            raise _constraint_violation(exc, self.table_name) from exc

    async def all(self, query: QueryBuilder) -> list[dict[str, Any]]:
        """Run a listing query and return the page of records."""
        sql, params = query.build_select()
        with self.db.connection() as conn:
            rows = conn.execute(sql, params).fetchall()
        records = [self._from_row(row) for row in rows]
        if query.preloads:
            records = await self.load_parents(records, query.preloads, query.schema)
        return records

    async def count(self, query: QueryBuilder) -> int:
        """Count every row matching the query's predicates, ignoring the page window."""
        sql, params = query.build_count()
        with self.db.connection() as conn:
            return conn.execute(sql, params).fetchone()[0]

    async def load_parents(
        self,
        records: list[dict[str, Any]],
        relation_names: list[str],
        prefix: str | None = None,
    ) -> list[dict[str, Any]]:
        """
        Attach parent records under each relation's name.

        Uses one batched query per relation. Relations that are unknown or
        not belongs-to are skipped.
        """
        if not records:
            return records

        for name in relation_names:
            relation = self.entity_spec.get_relation(name)
            if relation is None or not relation.is_parent:
                logger.debug("Skipping preload %s on %s", name, self.table_name)
                continue
            self._attach_parents(records, relation, prefix)

        return records

    def _attach_parents(
        self,
        records: list[dict[str, Any]],
        relation: RelationSpec,
        prefix: str | None,
    ) -> None:
        fk_field = relation.fk_field
        fk_values = {r[fk_field] for r in records if r.get(fk_field) is not None}
        if not fk_values:
            for record in records:
                record[relation.name] = None
            return

        parent = self._entities.get(relation.to_entity)
        parent_pk = parent.primary_key.name if parent and parent.primary_key else "id"
        parent_types = {f.name: f.type for f in parent.fields} if parent else {}

        placeholders = ", ".join("?" for _ in fk_values)
        sql = (
            f"SELECT * FROM {qualified_table(relation.to_entity, prefix)} "
            f"WHERE {quote_identifier(parent_pk)} IN ({placeholders})"
        )
        with self.db.connection() as conn:
            rows = conn.execute(sql, [_python_to_sqlite(v) for v in fk_values]).fetchall()

        parents = {}
        for row in rows:
            decoded = {k: _sqlite_to_python(v, parent_types.get(k)) for k, v in dict(row).items()}
            parents[str(decoded[parent_pk])] = decoded

        for record in records:
            fk_value = record.get(fk_field)
            record[relation.name] = parents.get(str(fk_value)) if fk_value is not None else None
