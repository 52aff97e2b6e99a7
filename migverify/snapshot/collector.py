from __future__ import annotations

from datetime import datetime
from typing import AbstractSet, List, Optional

from ..common import PrintLogger
from ..config import VerifyConfig
from ..endpoints.base import DataSourceAdapter
from ..errors import QueryError
from ..events import emit_log
from .codec import write_snapshot
from .model import CountRecord, Snapshot


def collect_snapshot(
    adapter: DataSourceAdapter,
    exclusions: AbstractSet[str],
    *,
    logger: Optional[PrintLogger] = None,
    timeout: Optional[float] = None,
) -> Snapshot:
    """Count every entity of every non-excluded namespace.

    A failed count is recorded as 0 and logged; it never aborts the run.
    Version and namespace/entity listing failures propagate.
    """

    # the file header carries whole seconds only
    captured_at = datetime.now().astimezone().replace(microsecond=0)
    version = adapter.get_version()
    emit_log(level="INFO", msg="collect_source_version", source=adapter.display_name, version=version, logger=logger)
    records: List[CountRecord] = []
    for namespace in adapter.list_namespaces():
        if namespace in exclusions:
            emit_log(level="INFO", msg="collect_namespace_skipped", namespace=namespace, reason="excluded", logger=logger)
            continue
        emit_log(level="INFO", msg="collect_namespace", namespace=namespace, logger=logger)
        for entity in adapter.list_entities(namespace):
            try:
                count = adapter.count_entity(namespace, entity, timeout=timeout)
            except QueryError as exc:
                emit_log(
                    level="WARN",
                    msg="count_query_failed",
                    namespace=namespace,
                    entity=entity,
                    err=str(exc),
                    fallback=0,
                    logger=logger,
                )
                count = 0
            emit_log(level="INFO", msg="collect_entity_count", namespace=namespace, entity=entity, count=count, logger=logger)
            records.append(CountRecord(namespace=namespace, entity=entity, count=count))
    return Snapshot(
        source_version=version,
        captured_at=captured_at,
        records=tuple(records),
        source_name=adapter.display_name,
    )


def collect_to_file(
    adapter: DataSourceAdapter,
    config: VerifyConfig,
    output_path: str,
    *,
    logger: Optional[PrintLogger] = None,
) -> Snapshot:
    emit_log(
        level="INFO",
        msg="collect_start",
        engine=config.engine,
        endpoint=config.endpoint,
        excluded=",".join(sorted(config.excluded_namespaces)),
        output=output_path,
        logger=logger,
    )
    snapshot = collect_snapshot(
        adapter,
        config.excluded_namespaces,
        logger=logger,
        timeout=config.query_timeout_seconds,
    )
    write_snapshot(output_path, snapshot)
    emit_log(
        level="INFO",
        msg="collect_end",
        output=output_path,
        namespaces=len(snapshot.namespaces()),
        entities=len(snapshot.records),
        logger=logger,
    )
    return snapshot


__all__ = ["collect_snapshot", "collect_to_file"]
