"""Error taxonomy shared by the collect and verify phases."""

from __future__ import annotations

from typing import Optional


class MigrationVerifyError(RuntimeError):
    """Base class for errors raised by this package."""


class ConfigError(MigrationVerifyError):
    """Bad arguments, invalid configuration, or an unusable baseline file."""


class SourceConnectionError(MigrationVerifyError):
    """The data source cannot be reached at all."""


class QueryError(MigrationVerifyError):
    """A single entity count could not be obtained."""

    def __init__(self, message: str, namespace: Optional[str] = None, entity: Optional[str] = None) -> None:
        super().__init__(message)
        self.namespace = namespace
        self.entity = entity


class EntityNotFoundError(QueryError):
    """The entity does not exist in a live namespace."""


class QueryTimeoutError(QueryError):
    """The count did not finish within the query timeout."""


class FormatError(ValueError):
    """A snapshot line could not be parsed."""

    def __init__(self, message: str, line_no: int, line: str) -> None:
        super().__init__(f"line {line_no}: {message}")
        self.line_no = line_no
        self.line = line
