from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from migverify.common import PrintLogger
from migverify.endpoints.base import DataSourceAdapter


@dataclass(frozen=True)
class ReconContext:
    """Read-only state shared by every per-entity verification of one run."""

    adapter: DataSourceAdapter
    logger: Optional[PrintLogger] = None
    query_timeout: Optional[float] = None
