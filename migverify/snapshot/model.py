from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

IDENT_DELIMITER = "."


def split_identifier(identifier: str, delimiter: str = IDENT_DELIMITER) -> Tuple[str, str]:
    """Split ``namespace<delimiter>entity`` on the first delimiter only.

    Entity names may themselves contain the delimiter (``db.a.b`` yields
    ``("db", "a.b")``). Raises ``ValueError`` when either side is empty.
    """

    namespace, sep, entity = identifier.partition(delimiter)
    if not sep or not namespace or not entity:
        raise ValueError(f"identifier '{identifier}' is not of the form namespace{delimiter}entity")
    return namespace, entity


def join_identifier(namespace: str, entity: str, delimiter: str = IDENT_DELIMITER) -> str:
    return f"{namespace}{delimiter}{entity}"


@dataclass(frozen=True, order=True)
class EntityKey:
    namespace: str
    entity: str

    @property
    def identifier(self) -> str:
        return join_identifier(self.namespace, self.entity)

    @classmethod
    def parse(cls, identifier: str) -> "EntityKey":
        namespace, entity = split_identifier(identifier)
        return cls(namespace=namespace, entity=entity)


@dataclass(frozen=True)
class CountRecord:
    namespace: str
    entity: str
    count: int

    def __post_init__(self) -> None:
        if self.count < 0:
            raise ValueError(f"count for {self.namespace}.{self.entity} must be non-negative")

    @property
    def key(self) -> EntityKey:
        return EntityKey(self.namespace, self.entity)

    @property
    def identifier(self) -> str:
        return join_identifier(self.namespace, self.entity)


@dataclass(frozen=True)
class Snapshot:
    """Counts captured at one point in time. Records keep file order and may repeat."""

    source_version: str
    captured_at: Optional[datetime]
    records: Tuple[CountRecord, ...] = field(default_factory=tuple)
    source_name: str = "MongoDB"
    captured_at_raw: Optional[str] = None

    def namespaces(self) -> List[str]:
        seen: Dict[str, None] = {}
        for record in self.records:
            seen.setdefault(record.namespace, None)
        return list(seen)

    def without(self, excluded: Iterable[str]) -> "Snapshot":
        drop = set(excluded)
        return Snapshot(
            source_version=self.source_version,
            captured_at=self.captured_at,
            records=tuple(record for record in self.records if record.namespace not in drop),
            source_name=self.source_name,
            captured_at_raw=self.captured_at_raw,
        )


__all__ = [
    "IDENT_DELIMITER",
    "CountRecord",
    "EntityKey",
    "Snapshot",
    "join_identifier",
    "split_identifier",
]
