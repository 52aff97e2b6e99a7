"""
Line-oriented text codec for count snapshots.

Layout::

    # <Source> Count File - Version: <version> - Date: <timestamp>
    # Format: namespace.entity|count
    <namespace>.<entity>|<count>

Data lines split on the last ``|`` (counts never contain one) and the
identifier splits on the first ``.``. A bad data line is skipped on its own;
it never aborts the decode.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import List, Optional, Tuple

from ..common import PrintLogger
from ..errors import ConfigError, FormatError
from ..events import emit_log
from .model import CountRecord, Snapshot, split_identifier

COUNT_FILE_SUFFIX = "Count File"
FORMAT_LINE = "# Format: namespace.entity|count"
COUNT_SEPARATOR = "|"

_COUNT_RE = re.compile(r"[0-9]+")
_LEGACY_DATE_FORMATS = (
    "%a %b %d %H:%M:%S %Z %Y",
    "%a %b %d %H:%M:%S %Y",
    "%a %d %b %Y %H:%M:%S %Z",
)


def format_timestamp(value: Optional[datetime]) -> str:
    return value.isoformat(timespec="seconds") if value is not None else ""


def parse_timestamp(text: str) -> Optional[datetime]:
    """ISO 8601 first, then the output formats of ``date``; ``None`` if nothing fits."""

    text = text.strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass
    collapsed = " ".join(text.split())
    for fmt in _LEGACY_DATE_FORMATS:
        try:
            return datetime.strptime(collapsed, fmt)
        except ValueError:
            continue
    return None


def header_line(source_name: str, version: str, captured_at: str) -> str:
    return f"# {source_name} {COUNT_FILE_SUFFIX} - Version: {version} - Date: {captured_at}"


def parse_header(line: str) -> Optional[Tuple[str, str, str]]:
    """Return ``(source_name, version, date_text)`` for a count-file header line."""

    body = line.lstrip("#").strip()
    marker, sep, rest = body.partition(" - Version:")
    if not sep or not marker.endswith(COUNT_FILE_SUFFIX):
        return None
    version_part, _, date_part = rest.partition(" - Date:")
    tokens = version_part.split()
    version = tokens[0] if tokens else ""
    source_name = marker[: -len(COUNT_FILE_SUFFIX)].strip()
    return source_name, version, date_part.strip()


def _is_utf8(line: str) -> bool:
    try:
        line.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def parse_record_line(line: str, line_no: int = 0) -> CountRecord:
    if not _is_utf8(line):
        raise FormatError("line is not valid UTF-8", line_no, line)
    identifier, sep, count_text = line.rpartition(COUNT_SEPARATOR)
    if not sep:
        raise FormatError("missing '|' separator", line_no, line)
    count_text = count_text.strip()
    if not _COUNT_RE.fullmatch(count_text):
        raise FormatError(f"count '{count_text}' is not a non-negative integer", line_no, line)
    try:
        namespace, entity = split_identifier(identifier.strip())
    except ValueError as exc:
        raise FormatError(str(exc), line_no, line) from exc
    return CountRecord(namespace=namespace, entity=entity, count=int(count_text))


def encode(snapshot: Snapshot) -> str:
    captured = format_timestamp(snapshot.captured_at) or (snapshot.captured_at_raw or "")
    lines = [header_line(snapshot.source_name, snapshot.source_version, captured), FORMAT_LINE]
    lines.extend(f"{record.identifier}{COUNT_SEPARATOR}{record.count}" for record in snapshot.records)
    return "\n".join(lines) + "\n"


def decode_with_errors(text: str) -> Tuple[Snapshot, List[FormatError]]:
    source_name = "MongoDB"
    version = ""
    date_text: Optional[str] = None
    records: List[CountRecord] = []
    errors: List[FormatError] = []
    for line_no, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line:
            continue
        if line.startswith("#"):
            if date_text is None and _is_utf8(line):
                header = parse_header(line)
                if header is not None:
                    source_name, version, date_text = header
            continue
        try:
            records.append(parse_record_line(line, line_no))
        except FormatError as exc:
            errors.append(exc)
    captured_at = parse_timestamp(date_text) if date_text else None
    snapshot = Snapshot(
        source_version=version,
        captured_at=captured_at,
        records=tuple(records),
        source_name=source_name or "MongoDB",
        captured_at_raw=date_text,
    )
    return snapshot, errors


def decode(text: str, *, logger: Optional[PrintLogger] = None) -> Snapshot:
    snapshot, errors = decode_with_errors(text)
    for err in errors:
        emit_log(level="WARN", msg="baseline_line_skipped", line_no=err.line_no, line=err.line, err=str(err), logger=logger)
    if snapshot.captured_at_raw and snapshot.captured_at is None:
        emit_log(level="WARN", msg="baseline_date_unparsed", value=snapshot.captured_at_raw, logger=logger)
    return snapshot


def write_snapshot(path: str, snapshot: Snapshot) -> None:
    try:
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(encode(snapshot))
    except OSError as exc:
        raise ConfigError(f"Cannot write output file '{path}': {exc}") from exc


def load_snapshot(path: str, *, logger: Optional[PrintLogger] = None) -> Snapshot:
    """Read and decode a baseline file; unreadable or record-less files are a ``ConfigError``."""

    try:
        # undecodable bytes survive as surrogates and fail on their own line
        with open(path, "r", encoding="utf-8", errors="surrogateescape") as handle:
            text = handle.read()
    except FileNotFoundError as exc:
        raise ConfigError(f"Input file '{path}' not found") from exc
    except OSError as exc:
        raise ConfigError(f"Cannot read input file '{path}': {exc}") from exc
    snapshot = decode(text, logger=logger)
    if not snapshot.records:
        raise ConfigError(f"Input file '{path}' contains no usable count records")
    return snapshot


__all__ = [
    "COUNT_FILE_SUFFIX",
    "FORMAT_LINE",
    "decode",
    "decode_with_errors",
    "encode",
    "format_timestamp",
    "header_line",
    "load_snapshot",
    "parse_header",
    "parse_record_line",
    "parse_timestamp",
    "write_snapshot",
]
