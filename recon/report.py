"""
Rendering of a reconciliation result.

The result file is the machine-readable record of every decision::

    # <Source> Verification Results
    # Previous Version: <v1>
    # Current Version: <v2>
    # Verification Date: <timestamp>
    MISSING_DB: <namespace>
    MISSING_COLLECTION: <namespace>.<entity>
    MATCH: <namespace>.<entity>|<baseline>|<current>
    MISMATCH: <namespace>.<entity>|<baseline>|<current>|<delta>
    RESULT: SUCCESS|FAILURE

Entries are sorted by (namespace, entity) so repeated runs diff cleanly.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from migverify.errors import ConfigError
from migverify.snapshot.codec import format_timestamp

from .results import MISSING_STATUSES, EntityOutcome, OutcomeStatus, ReconciliationResult

RESULT_MARKER = "Verification Results"
RULE = "=" * 30


@dataclass(frozen=True)
class RenderedReport:
    console_text: str
    result_file_text: str
    exit_code: int


def format_count(value: int) -> str:
    return f"{value:,}"


def format_delta(value: int) -> str:
    return f"{value:+,}"


def result_filename(at: Optional[datetime] = None) -> str:
    at = at or datetime.now()
    return f"migration-verification-{at:%Y%m%d%H%M%S}.txt"


def _outcome_line(outcome: EntityOutcome) -> Optional[str]:
    if outcome.status is OutcomeStatus.MATCHED:
        return f"MATCH: {outcome.identifier}|{outcome.baseline_count}|{outcome.live_count}"
    if outcome.status is OutcomeStatus.MISMATCHED:
        return f"MISMATCH: {outcome.identifier}|{outcome.baseline_count}|{outcome.live_count}|{outcome.delta}"
    if outcome.status is OutcomeStatus.MISSING_ENTITY:
        return f"MISSING_COLLECTION: {outcome.identifier}"
    # entities of a missing namespace are covered by its MISSING_DB line
    return None


def render_result_file(result: ReconciliationResult) -> str:
    verified_at = format_timestamp(result.verified_at or datetime.now().astimezone())
    lines = [
        f"# {result.source_name} {RESULT_MARKER}",
        f"# Previous Version: {result.baseline_version}",
        f"# Current Version: {result.current_version}",
        f"# Verification Date: {verified_at}",
    ]
    lines.extend(f"MISSING_DB: {namespace}" for namespace in result.missing_namespaces())
    for outcome in result.sorted_outcomes():
        line = _outcome_line(outcome)
        if line is not None:
            lines.append(line)
    lines.append(f"RESULT: {result.verdict}")
    return "\n".join(lines) + "\n"


def render_console(result: ReconciliationResult) -> str:
    summary = result.summary
    lines: List[str] = [
        RULE,
        "Migration Verification Summary",
        RULE,
        f"{result.source_name} Version: {result.baseline_version} → {result.current_version}",
        f"Namespaces: {summary.namespaces_matched}/{summary.namespaces_total} matched",
        f"Entities: {summary.entities_matched}/{summary.entities_total} matched",
    ]
    mismatched = result.sorted_outcomes(OutcomeStatus.MISMATCHED)
    if mismatched:
        lines += ["", "Mismatched Entities:", "-" * 20]
        for outcome in mismatched:
            lines.append(
                f"{outcome.identifier}: {format_count(outcome.baseline_count)} → "
                f"{format_count(outcome.live_count or 0)} ({format_delta(outcome.delta or 0)})"
            )
    missing = result.sorted_outcomes(*MISSING_STATUSES)
    if missing:
        lines += ["", "Missing Entities:", "-" * 17]
        for outcome in missing:
            suffix = " (namespace missing)" if outcome.status is OutcomeStatus.MISSING_NAMESPACE else ""
            lines.append(f"- {outcome.identifier}{suffix}")
    lines += ["", RULE]
    if summary.success:
        lines.append("✅ MIGRATION VERIFIED SUCCESSFULLY")
    else:
        lines.append("❌ MIGRATION VERIFICATION FAILED")
        lines.append(f"   {summary.entities_total - summary.entities_matched} entity(ies) have issues")
    lines.append(RULE)
    return "\n".join(lines) + "\n"


def render(result: ReconciliationResult) -> RenderedReport:
    return RenderedReport(
        console_text=render_console(result),
        result_file_text=render_result_file(result),
        exit_code=result.exit_code,
    )


def write_result_file(
    result: ReconciliationResult,
    directory: str = ".",
    *,
    rendered: Optional[RenderedReport] = None,
) -> str:
    rendered = rendered or render(result)
    path = os.path.join(directory, result_filename(result.verified_at))
    try:
        os.makedirs(directory, exist_ok=True)
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(rendered.result_file_text)
    except OSError as exc:
        raise ConfigError(f"Cannot write result file '{path}': {exc}") from exc
    return path


def write_json(result: ReconciliationResult, path: str) -> None:
    try:
        with open(path, "w", encoding="utf-8") as handle:
            json.dump(result.to_dict(), handle, indent=2, sort_keys=True)
    except OSError as exc:
        raise ConfigError(f"Cannot write JSON output '{path}': {exc}") from exc


__all__ = [
    "RenderedReport",
    "format_count",
    "format_delta",
    "render",
    "render_console",
    "render_result_file",
    "result_filename",
    "write_json",
    "write_result_file",
]
