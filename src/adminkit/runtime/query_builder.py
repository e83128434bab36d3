"""
Query builder for paginated, sorted, searchable listings.

Clauses are accumulated as typed values (text matches, a sort key, a page
window, preloads) and only lowered to SQL by ``build_select`` / ``build_count``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from adminkit.specs.resource import SortDirection, SortField

logger = logging.getLogger(__name__)

PAGE_SIZE = 10

# Valid SQL identifier pattern (alphanumeric and underscore, not starting with digit)
_VALID_IDENTIFIER_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

# A field qualifier is any run of non-whitespace immediately followed by a colon.
_QUALIFIER_PATTERN = re.compile(r"(\S*:)")

_LIKE_ESCAPE = "\\"

# SQL function registered on every store connection; folds case beyond ASCII
CASEFOLD_FUNCTION = "casefold"


def validate_sql_identifier(name: str, context: str = "identifier") -> str:
    """
    Validate that a string is a safe SQL identifier.

    Args:
        name: The identifier to validate
        context: Description of what's being validated (for error messages)

    Returns:
        The validated name

    Raises:
        ValueError: If the name contains invalid characters
    """
    if not name:
        raise ValueError(f"SQL {context} cannot be empty")
    if not _VALID_IDENTIFIER_PATTERN.match(name):
        raise ValueError(
            f"Invalid SQL {context} '{name}': must contain only letters, digits, "
            "and underscores, and cannot start with a digit"
        )
    return name


def quote_identifier(name: str) -> str:
    """Validate and double-quote an identifier."""
    return f'"{validate_sql_identifier(name)}"'


def qualified_table(table_name: str, schema: str | None = None) -> str:
    """Quoted table reference, qualified by an attached schema when given."""
    if schema:
        return f"{quote_identifier(schema)}.{quote_identifier(table_name)}"
    return quote_identifier(table_name)


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so the term matches literally."""
    return (
        term.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
        .replace("%", _LIKE_ESCAPE + "%")
        .replace("_", _LIKE_ESCAPE + "_")
    )


# =============================================================================
# Clauses
# =============================================================================


@dataclass(frozen=True)
class TextMatch:
    """
    Case-insensitive substring match against a field's text representation.

    Both sides are Unicode case-folded: the column through the connection's
    ``casefold`` function, the term in Python.
    """

    field: str
    term: str

    def to_sql(self) -> tuple[str, list[str]]:
        sql = (
            f"{CASEFOLD_FUNCTION}(CAST({quote_identifier(self.field)} AS TEXT)) "
            f"LIKE ? ESCAPE '{_LIKE_ESCAPE}'"
        )
        return sql, [f"%{escape_like(self.term.casefold())}%"]


@dataclass(frozen=True)
class OrderBy:
    """A single ORDER BY key."""

    field: str
    descending: bool = False

    @classmethod
    def from_sort(cls, sort: SortField) -> OrderBy:
        return cls(field=sort.field, descending=sort.direction == SortDirection.DESC)

    def to_sql(self) -> str:
        direction = "DESC" if self.descending else "ASC"
        return f"{quote_identifier(self.field)} {direction}"


# =============================================================================
# Search parsing
# =============================================================================


def tokenize_search(query: str) -> list[str]:
    """
    Split a search string around ``word:`` qualifier tokens.

    Examples:
        "fred" -> ["fred"]
        "name:Tom" -> ["name:", "Tom"]
        "name:Tom email:gmail" -> ["name:", "Tom ", "email:", "gmail"]
    """
    return [part for part in _QUALIFIER_PATTERN.split(query) if part]


def parse_search(query: str) -> list[tuple[str | None, str]]:
    """
    Parse a search string into (qualifier, term) pairs.

    A string without qualifier tokens yields a single unqualified pair
    ``(None, query)``. Otherwise the trimmed tokens are consumed two at a
    time; a trailing unpaired token is dropped. Qualifiers keep their colon.
    """
    parts = tokenize_search(query)
    if len(parts) == 1:
        return [(None, parts[0])]

    stripped = [part.strip() for part in parts]
    return [
        (stripped[i], stripped[i + 1])
        for i in range(0, len(stripped) - 1, 2)
    ]


# =============================================================================
# Query builder
# =============================================================================


@dataclass
class QueryBuilder:
    """
    Builds listing queries with search, a single sort key, and pagination.

    Example:
        builder = QueryBuilder(table_name="User")
        builder.set_sort(SortField(direction="desc", field="name"))
        builder.set_pagination(page=2)
        builder.apply_search("name:Tom", ["id", "name", "email"])

        sql, params = builder.build_select()
        count_sql, count_params = builder.build_count()
    """

    table_name: str
    schema: str | None = None
    matches: list[TextMatch] = field(default_factory=list)
    order: OrderBy | None = None
    page: int = 1
    page_size: int = PAGE_SIZE
    preloads: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Validate table and schema names on initialization."""
        validate_sql_identifier(self.table_name, "table name")
        if self.schema:
            validate_sql_identifier(self.schema, "schema name")

    def set_sort(self, sort: SortField) -> QueryBuilder:
        """Set the sort key. Exactly one key is supported; later calls replace it."""
        validate_sql_identifier(sort.field, "sort field")
        self.order = OrderBy.from_sort(sort)
        return self

    def set_pagination(self, page: int, page_size: int = PAGE_SIZE) -> QueryBuilder:
        """Set pagination parameters."""
        self.page = max(1, page)
        self.page_size = max(1, page_size)
        return self

    def set_preloads(self, relations: Iterable[str]) -> QueryBuilder:
        self.preloads = list(relations)
        return self

    def or_match(self, field_name: str, term: str) -> QueryBuilder:
        """OR a case-insensitive substring match into the search predicate."""
        validate_sql_identifier(field_name, "search field")
        self.matches.append(TextMatch(field=field_name, term=term))
        return self

    def apply_search(self, query: str | None, searchable: list[str]) -> QueryBuilder:
        """
        Add search predicates for a raw search string.

        Unqualified searches match the term against every searchable field.
        Qualified searches (``field:term``) match only the named field;
        qualifiers naming no searchable field are skipped.
        """
        if not query:
            return self

        for qualifier, term in parse_search(query):
            if qualifier is None:
                for field_name in searchable:
                    self.or_match(field_name, term)
                continue

            field_name = next((f for f in searchable if f"{f}:" == qualifier), None)
            if field_name is None:
                logger.debug("Skipping search qualifier %r on %s", qualifier, self.table_name)
                continue
            self.or_match(field_name, term)

        return self

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    @property
    def table_ref(self) -> str:
        return qualified_table(self.table_name, self.schema)

    def build_where_clause(self) -> tuple[str, list[str]]:
        """
        Build the WHERE clause from search matches.

        Returns:
            Tuple of (where_clause, parameters)
        """
        if not self.matches:
            return "", []

        fragments = []
        params: list[str] = []
        for match in self.matches:
            sql, match_params = match.to_sql()
            fragments.append(sql)
            params.extend(match_params)

        return f"WHERE ({' OR '.join(fragments)})", params

    def build_order_clause(self) -> str:
        """Build the ORDER BY clause."""
        if not self.order:
            return ""
        return f"ORDER BY {self.order.to_sql()}"

    def build_select(self, count_only: bool = False) -> tuple[str, list[object]]:
        """
        Build complete SELECT query.

        Args:
            count_only: If True, build a COUNT(*) query that keeps every
                predicate but drops ordering, limit, and offset

        Returns:
            Tuple of (sql, parameters)
        """
        params: list[object] = []

        if count_only:
            select = f"SELECT COUNT(*) FROM {self.table_ref}"
        else:
            select = f"SELECT * FROM {self.table_ref}"

        where_clause, where_params = self.build_where_clause()
        params.extend(where_params)

        query_parts = [select]
        if where_clause:
            query_parts.append(where_clause)

        if not count_only:
            order_clause = self.build_order_clause()
            if order_clause:
                query_parts.append(order_clause)

            query_parts.append("LIMIT ? OFFSET ?")
            params.extend([self.page_size, self.offset])

        return " ".join(query_parts), params

    def build_count(self) -> tuple[str, list[object]]:
        """Build COUNT query."""
        return self.build_select(count_only=True)
