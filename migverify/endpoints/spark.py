from __future__ import annotations

import threading
from typing import Any, List, Optional

from ..config import VerifyConfig
from ..errors import ConfigError, EntityNotFoundError, QueryError, QueryTimeoutError, SourceConnectionError
from .base import DataSourceAdapter, validated_count


def _quote(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


class SparkCatalogAdapter(DataSourceAdapter):
    """Catalog databases are namespaces, tables are entities.

    Spark jobs on one session are serialized here; the reconciliation runner
    caps parallelism at 1 for this adapter.
    """

    _TYPE = "spark"
    display_name = "Spark"
    supports_parallel = False

    def __init__(self, spark: Any, *, owns_session: bool = False) -> None:
        self.spark = spark
        self._owns_session = owns_session

    @classmethod
    def from_config(cls, config: VerifyConfig) -> "SparkCatalogAdapter":
        try:
            from pyspark.sql import SparkSession
        except ImportError as exc:  # pragma: no cover
            raise ConfigError("Spark support requires the 'pyspark' package (pip install .[spark])") from exc
        spark = SparkSession.builder.appName(config.job_name).enableHiveSupport().getOrCreate()
        return cls(spark, owns_session=True)

    def get_version(self) -> str:
        try:
            return str(self.spark.version)
        except Exception as exc:
            raise SourceConnectionError(f"Cannot query Spark version: {exc}") from exc

    def list_namespaces(self) -> List[str]:
        try:
            return [db.name for db in self.spark.catalog.listDatabases()]
        except Exception as exc:
            raise SourceConnectionError(f"Cannot list catalog databases: {exc}") from exc

    def list_entities(self, namespace: str) -> List[str]:
        try:
            tables = self.spark.catalog.listTables(namespace)
        except Exception as exc:
            raise SourceConnectionError(f"Cannot list tables of '{namespace}': {exc}") from exc
        return [tbl.name for tbl in tables if not getattr(tbl, "isTemporary", False)]

    def count_entity(self, namespace: str, entity: str, *, timeout: Optional[float] = None) -> int:
        try:
            exists = self.spark.catalog.tableExists(entity, namespace)
        except Exception as exc:
            raise QueryError(f"lookup of {namespace}.{entity} failed: {exc}", namespace, entity) from exc
        if not exists:
            raise EntityNotFoundError(f"table {namespace}.{entity} not found", namespace, entity)
        fired = threading.Event()
        timer = self._start_cancel_timer(f"migverify:{namespace}.{entity}", timeout, fired)
        try:
            value = self.spark.table(f"{_quote(namespace)}.{_quote(entity)}").count()
        except Exception as exc:
            if fired.is_set():
                raise QueryTimeoutError(f"count of {namespace}.{entity} timed out", namespace, entity) from exc
            raise QueryError(f"count of {namespace}.{entity} failed: {exc}", namespace, entity) from exc
        finally:
            if timer is not None:
                timer.cancel()
        return validated_count(value, namespace, entity)

    def close(self) -> None:
        if self._owns_session:
            self.spark.stop()

    def _start_cancel_timer(
        self, group: str, timeout: Optional[float], fired: threading.Event
    ) -> Optional[threading.Timer]:
        if not timeout:
            return None
        context = self.spark.sparkContext
        context.setJobGroup(group, group, interruptOnCancel=True)

        def _cancel() -> None:
            fired.set()
            context.cancelJobGroup(group)

        timer = threading.Timer(timeout, _cancel)
        timer.daemon = True
        timer.start()
        return timer
