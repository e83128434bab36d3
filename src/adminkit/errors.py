"""
Error types for the adminkit resource engine.
"""


class AdminError(Exception):
    """Base exception for all adminkit errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class RecordNotFoundError(AdminError, LookupError):
    """
    Raised when a lookup by primary key matches no row.

    Not a reportable condition: callers are expected to guard against
    invalid ids before asking for the record.
    """

    def __init__(self, entity_name: str, record_id: object, prefix: str | None = None):
        self.entity_name = entity_name
        self.record_id = record_id
        self.prefix = prefix
        scope = f" in {prefix}" if prefix else ""
        super().__init__(f"No {entity_name} with id {record_id!r}{scope}")


class HookResolutionError(AdminError):
    """
    Raised when an override target cannot be resolved to a callable.

    Examples:
    - Module cannot be imported
    - Module has no attribute with the configured name
    - Attribute exists but is not callable
    - A validate_with override returns something other than a Changeset
    """

    pass


class ConfigurationError(AdminError, ValueError):
    """
    Raised when a resource is configured or queried inconsistently.

    Examples:
    - Sort field that the entity does not declare
    - Unknown record action name
    """

    pass


class ConstraintViolationError(AdminError):
    """Raised when a database constraint (unique, FK, not-null) is violated."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        constraint_type: str = "integrity",
    ):
        self.field = field
        self.constraint_type = constraint_type  # "unique" | "foreign_key" | "not_null"
        super().__init__(message)
