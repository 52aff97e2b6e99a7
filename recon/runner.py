from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import AbstractSet, Dict, List, Optional, Tuple

from migverify.common import PrintLogger
from migverify.config import VerifyConfig
from migverify.endpoints.base import DataSourceAdapter
from migverify.errors import EntityNotFoundError, QueryError, QueryTimeoutError
from migverify.events import emit_log
from migverify.snapshot.codec import format_timestamp, load_snapshot
from migverify.snapshot.model import EntityKey, Snapshot

from .context import ReconContext
from .report import render, write_json, write_result_file
from .results import EntityOutcome, OutcomeStatus, ReconciliationResult


def _baseline_counts(baseline: Snapshot, logger: Optional[PrintLogger]) -> Dict[EntityKey, int]:
    """Collapse repeated identifiers into one entity; the last occurrence wins."""

    counts: Dict[EntityKey, int] = {}
    for record in baseline.records:
        key = record.key
        if key in counts:
            emit_log(
                level="WARN",
                msg="baseline_duplicate_entity",
                entity=key.identifier,
                previous=counts[key],
                count=record.count,
                logger=logger,
            )
        counts[key] = record.count
    return counts


def _verify_entity(ctx: ReconContext, key: EntityKey, baseline_count: int) -> EntityOutcome:
    namespace, entity = key.namespace, key.entity
    try:
        live_count = ctx.adapter.count_entity(namespace, entity, timeout=ctx.query_timeout)
    except QueryError as exc:
        if isinstance(exc, QueryTimeoutError):
            msg = "count_query_timeout"
        elif isinstance(exc, EntityNotFoundError):
            msg = "verify_entity_missing"
        else:
            msg = "count_query_failed"
        emit_log(level="WARN", msg=msg, entity=key.identifier, err=str(exc), logger=ctx.logger)
        return EntityOutcome(
            namespace=namespace,
            entity=entity,
            status=OutcomeStatus.MISSING_ENTITY,
            baseline_count=baseline_count,
            detail=str(exc),
        )
    if live_count == baseline_count:
        emit_log(level="INFO", msg="verify_entity_match", entity=key.identifier, count=live_count, logger=ctx.logger)
        status = OutcomeStatus.MATCHED
    else:
        emit_log(
            level="WARN",
            msg="verify_entity_mismatch",
            entity=key.identifier,
            baseline=baseline_count,
            live=live_count,
            delta=live_count - baseline_count,
            logger=ctx.logger,
        )
        status = OutcomeStatus.MISMATCHED
    return EntityOutcome(
        namespace=namespace,
        entity=entity,
        status=status,
        baseline_count=baseline_count,
        live_count=live_count,
    )


def _effective_parallel(adapter: DataSourceAdapter, requested: int, logger: Optional[PrintLogger]) -> int:
    parallel = max(int(requested or 1), 1)
    if parallel > 1 and not adapter.supports_parallel:
        emit_log(
            level="WARN",
            msg="recon_parallelism_limited",
            source=adapter.display_name,
            requested=parallel,
            applied=1,
            logger=logger,
        )
        return 1
    return parallel


def reconcile(
    baseline: Snapshot,
    adapter: DataSourceAdapter,
    exclusions: AbstractSet[str],
    *,
    logger: Optional[PrintLogger] = None,
    max_parallel: int = 1,
    query_timeout: Optional[float] = None,
) -> ReconciliationResult:
    """Compare ``baseline`` against the live store behind ``adapter``.

    Entities of namespaces absent from the live store become
    ``MISSING_NAMESPACE`` without any count query. Every other entity is
    counted once; query failures and timeouts become ``MISSING_ENTITY``.
    Version or namespace listing failures propagate as
    ``SourceConnectionError``.
    """

    verified_at = datetime.now().astimezone()
    counts = _baseline_counts(baseline.without(exclusions), logger)
    current_version = adapter.get_version()
    emit_log(level="INFO", msg="verify_source_version", source=adapter.display_name, version=current_version, logger=logger)
    live_namespaces = set(adapter.list_namespaces())
    considered = sorted({key.namespace for key in counts})
    for namespace in considered:
        if namespace not in live_namespaces:
            emit_log(level="WARN", msg="verify_namespace_missing", namespace=namespace, logger=logger)

    ctx = ReconContext(adapter=adapter, logger=logger, query_timeout=query_timeout)
    outcomes: Dict[EntityKey, EntityOutcome] = {}
    pending: List[Tuple[EntityKey, int]] = []
    for key, baseline_count in counts.items():
        if key.namespace in live_namespaces:
            pending.append((key, baseline_count))
            continue
        outcomes[key] = EntityOutcome(
            namespace=key.namespace,
            entity=key.entity,
            status=OutcomeStatus.MISSING_NAMESPACE,
            baseline_count=baseline_count,
        )

    parallel = _effective_parallel(adapter, max_parallel, logger)
    if parallel == 1:
        for key, baseline_count in pending:
            outcomes[key] = _verify_entity(ctx, key, baseline_count)
    else:
        with ThreadPoolExecutor(max_workers=parallel) as executor:
            future_map = {
                executor.submit(_verify_entity, ctx, key, baseline_count): key for key, baseline_count in pending
            }
            for future in as_completed(future_map):
                outcomes[future_map[future]] = future.result()

    result = ReconciliationResult(
        baseline_version=baseline.source_version,
        current_version=current_version,
        outcomes=outcomes,
        source_name=baseline.source_name,
        baseline_captured_at=baseline.captured_at,
        verified_at=verified_at,
    )
    emit_log(
        level="INFO" if result.summary.success else "WARN",
        msg="verify_summary",
        verdict=result.verdict,
        namespaces=f"{result.summary.namespaces_matched}/{result.summary.namespaces_total}",
        entities=f"{result.summary.entities_matched}/{result.summary.entities_total}",
        logger=logger,
    )
    return result


def run_verification(
    adapter: DataSourceAdapter,
    config: VerifyConfig,
    input_path: str,
    *,
    logger: Optional[PrintLogger] = None,
    output_json: Optional[str] = None,
) -> Tuple[ReconciliationResult, str, str]:
    """Load the baseline, reconcile it, and persist the result file.

    Returns the result, the console summary text and the result file path.
    """

    emit_log(
        level="INFO",
        msg="verify_start",
        engine=config.engine,
        endpoint=config.endpoint,
        excluded=",".join(sorted(config.excluded_namespaces)),
        input=input_path,
        logger=logger,
    )
    baseline = load_snapshot(input_path, logger=logger)
    emit_log(
        level="INFO",
        msg="baseline_loaded",
        source=baseline.source_name,
        version=baseline.source_version,
        captured_at=format_timestamp(baseline.captured_at) or baseline.captured_at_raw,
        records=len(baseline.records),
        logger=logger,
    )
    result = reconcile(
        baseline,
        adapter,
        config.excluded_namespaces,
        logger=logger,
        max_parallel=config.max_parallel,
        query_timeout=config.query_timeout_seconds,
    )
    rendered = render(result)
    result_path = write_result_file(result, config.result_dir, rendered=rendered)
    if output_json:
        write_json(result, output_json)
    emit_log(level="INFO", msg="verify_end", result_file=result_path, verdict=result.verdict, logger=logger)
    return result, rendered.console_text, result_path


__all__ = ["reconcile", "run_verification"]
