from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional

from migverify.snapshot.model import EntityKey


class OutcomeStatus(str, Enum):
    MATCHED = "matched"
    MISMATCHED = "mismatched"
    MISSING_ENTITY = "missing_entity"
    MISSING_NAMESPACE = "missing_namespace"


MISSING_STATUSES = frozenset({OutcomeStatus.MISSING_ENTITY, OutcomeStatus.MISSING_NAMESPACE})


@dataclass(frozen=True)
class EntityOutcome:
    namespace: str
    entity: str
    status: OutcomeStatus
    baseline_count: int
    live_count: Optional[int] = None
    detail: Optional[str] = None

    @property
    def key(self) -> EntityKey:
        return EntityKey(self.namespace, self.entity)

    @property
    def identifier(self) -> str:
        return self.key.identifier

    @property
    def delta(self) -> Optional[int]:
        """Live minus baseline for mismatches; ``None`` for every other status."""

        if self.status is not OutcomeStatus.MISMATCHED or self.live_count is None:
            return None
        return self.live_count - self.baseline_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "namespace": self.namespace,
            "entity": self.entity,
            "status": self.status.value,
            "baseline_count": self.baseline_count,
            "live_count": self.live_count,
            "delta": self.delta,
            "detail": self.detail,
        }


@dataclass(frozen=True)
class ReconSummary:
    namespaces_total: int
    namespaces_matched: int
    entities_total: int
    entities_matched: int

    @classmethod
    def from_outcomes(cls, outcomes: Iterable[EntityOutcome]) -> "ReconSummary":
        # a namespace is matched iff it was present live and all of its entities matched
        namespace_ok: Dict[str, bool] = {}
        entities_total = entities_matched = 0
        for outcome in outcomes:
            entities_total += 1
            matched = outcome.status is OutcomeStatus.MATCHED
            if matched:
                entities_matched += 1
            namespace_ok[outcome.namespace] = namespace_ok.get(outcome.namespace, True) and matched
        return cls(
            namespaces_total=len(namespace_ok),
            namespaces_matched=sum(1 for ok in namespace_ok.values() if ok),
            entities_total=entities_total,
            entities_matched=entities_matched,
        )

    @property
    def success(self) -> bool:
        return self.entities_matched == self.entities_total

    def to_dict(self) -> Dict[str, Any]:
        return {
            "namespaces_total": self.namespaces_total,
            "namespaces_matched": self.namespaces_matched,
            "entities_total": self.entities_total,
            "entities_matched": self.entities_matched,
        }


@dataclass(frozen=True)
class ReconciliationResult:
    """Outcome of one verify run, keyed by entity. Ordering is applied only when rendering."""

    baseline_version: str
    current_version: str
    outcomes: Mapping[EntityKey, EntityOutcome]
    source_name: str = "MongoDB"
    baseline_captured_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    summary: ReconSummary = field(init=False)

    def __post_init__(self) -> None:
        frozen = MappingProxyType(dict(self.outcomes))
        object.__setattr__(self, "outcomes", frozen)
        object.__setattr__(self, "summary", ReconSummary.from_outcomes(frozen.values()))

    @property
    def verdict(self) -> str:
        return "SUCCESS" if self.summary.success else "FAILURE"

    @property
    def exit_code(self) -> int:
        return 0 if self.summary.success else 1

    def sorted_outcomes(self, *statuses: OutcomeStatus) -> List[EntityOutcome]:
        wanted = set(statuses) if statuses else None
        return [
            self.outcomes[key]
            for key in sorted(self.outcomes)
            if wanted is None or self.outcomes[key].status in wanted
        ]

    def missing_namespaces(self) -> List[str]:
        return sorted(
            {outcome.namespace for outcome in self.outcomes.values() if outcome.status is OutcomeStatus.MISSING_NAMESPACE}
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.verdict,
            "source": self.source_name,
            "baseline_version": self.baseline_version,
            "current_version": self.current_version,
            "baseline_captured_at": self.baseline_captured_at.isoformat() if self.baseline_captured_at else None,
            "verified_at": self.verified_at.isoformat() if self.verified_at else None,
            "summary": self.summary.to_dict(),
            "missing_namespaces": self.missing_namespaces(),
            "outcomes": [outcome.to_dict() for outcome in self.sorted_outcomes()],
        }


__all__ = ["EntityOutcome", "MISSING_STATUSES", "OutcomeStatus", "ReconSummary", "ReconciliationResult"]
