from __future__ import annotations

from typing import List, Optional, Tuple

from sqlalchemy import create_engine, func, inspect, select, table, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import ArgumentError, DBAPIError, NoSuchModuleError, SQLAlchemyError

from ..config import VerifyConfig
from ..errors import ConfigError, EntityNotFoundError, QueryError, QueryTimeoutError, SourceConnectionError
from .base import DataSourceAdapter, validated_count

SYSTEM_SCHEMAS = frozenset({"information_schema", "pg_catalog", "pg_toast", "mysql", "performance_schema", "sys"})
_TIMEOUT_MARKERS = ("timeout", "timed out", "canceling statement", "max_execution_time", "max_statement_time")


def timeout_statements(dialect: str, timeout: Optional[float]) -> Tuple[Optional[str], Optional[str]]:
    """Return the statements that set and then clear a per-query timeout.

    The setting must not outlive the transaction on a pooled connection:
    PostgreSQL uses ``SET LOCAL``, MySQL and MariaDB restore the session
    default afterwards.
    """

    if not timeout:
        return None, None
    if dialect == "postgresql":
        return f"SET LOCAL statement_timeout = {int(timeout * 1000)}", None
    if dialect == "mysql":
        return (
            f"SET SESSION max_execution_time = {int(timeout * 1000)}",
            "SET SESSION max_execution_time = DEFAULT",
        )
    if dialect == "mariadb":
        return f"SET SESSION max_statement_time = {timeout:g}", "SET SESSION max_statement_time = DEFAULT"
    return None, None


def _is_timeout(exc: DBAPIError) -> bool:
    message = str(exc.orig if exc.orig is not None else exc).lower()
    return any(marker in message for marker in _TIMEOUT_MARKERS)


class SqlAlchemyAdapter(DataSourceAdapter):
    """Schemas are namespaces, tables are entities."""

    _TYPE = "sqlalchemy"

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    @property
    def display_name(self) -> str:  # type: ignore[override]
        return self._engine.dialect.name

    @classmethod
    def from_config(cls, config: VerifyConfig) -> "SqlAlchemyAdapter":
        url = config.sqlalchemy_url
        if not url:
            raise ConfigError("sqlalchemy_url must be provided for the sqlalchemy engine")
        try:
            engine = create_engine(url, **config.sqlalchemy_options)
        except (ArgumentError, NoSuchModuleError, TypeError) as exc:
            raise ConfigError(f"Invalid SQLAlchemy settings: {exc}") from exc
        return cls(engine)

    def get_version(self) -> str:
        try:
            with self._engine.connect() as conn:
                info = conn.dialect.server_version_info
        except SQLAlchemyError as exc:
            raise SourceConnectionError(f"Cannot connect to {self._engine.url!r}: {exc}") from exc
        if not info:
            return self._engine.dialect.name
        return ".".join(str(part) for part in info)

    def list_namespaces(self) -> List[str]:
        try:
            names = inspect(self._engine).get_schema_names()
        except SQLAlchemyError as exc:
            raise SourceConnectionError(f"Cannot list schemas: {exc}") from exc
        return [name for name in names if name.lower() not in SYSTEM_SCHEMAS]

    def list_entities(self, namespace: str) -> List[str]:
        try:
            return list(inspect(self._engine).get_table_names(schema=namespace))
        except SQLAlchemyError as exc:
            raise SourceConnectionError(f"Cannot list tables of '{namespace}': {exc}") from exc

    def count_entity(self, namespace: str, entity: str, *, timeout: Optional[float] = None) -> int:
        stmt = select(func.count()).select_from(table(entity, schema=namespace))
        try:
            with self._engine.connect() as conn, conn.begin():
                if not inspect(conn).has_table(entity, schema=namespace):
                    raise EntityNotFoundError(f"table {namespace}.{entity} not found", namespace, entity)
                set_sql, reset_sql = timeout_statements(conn.dialect.name, timeout)
                if set_sql:
                    conn.execute(text(set_sql))
                try:
                    value = conn.execute(stmt).scalar()
                finally:
                    if reset_sql:
                        conn.execute(text(reset_sql))
        except DBAPIError as exc:
            if _is_timeout(exc):
                raise QueryTimeoutError(f"count of {namespace}.{entity} timed out", namespace, entity) from exc
            raise QueryError(f"count of {namespace}.{entity} failed: {exc}", namespace, entity) from exc
        except SQLAlchemyError as exc:
            raise QueryError(f"count of {namespace}.{entity} failed: {exc}", namespace, entity) from exc
        return validated_count(value, namespace, entity)

    def close(self) -> None:
        if self._engine:
            self._engine.dispose()
