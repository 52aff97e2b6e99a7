from __future__ import annotations

import abc
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Type

from ..errors import QueryError

if TYPE_CHECKING:
    from ..config import VerifyConfig


class DataSourceAdapter(abc.ABC):
    """Namespace/entity enumeration and per-entity counts against one data store.

    ``count_entity`` returns a non-negative ``int`` or raises
    :class:`~migverify.errors.QueryError` (``EntityNotFoundError`` and
    ``QueryTimeoutError`` included). Version and namespace listing failures
    raise :class:`~migverify.errors.SourceConnectionError`.
    """

    display_name = "Data Source"
    supports_parallel = True

    @classmethod
    def type_name(cls) -> str:
        return getattr(cls, "_TYPE", cls.__name__.lower())

    @classmethod
    @abc.abstractmethod
    def from_config(cls, config: "VerifyConfig") -> "DataSourceAdapter":
        ...

    @abc.abstractmethod
    def get_version(self) -> str:
        ...

    @abc.abstractmethod
    def list_namespaces(self) -> List[str]:
        ...

    @abc.abstractmethod
    def list_entities(self, namespace: str) -> List[str]:
        ...

    @abc.abstractmethod
    def count_entity(self, namespace: str, entity: str, *, timeout: Optional[float] = None) -> int:
        ...

    def close(self) -> None:
        return None

    def __enter__(self) -> "DataSourceAdapter":
        return self

    def __exit__(self, *_exc) -> None:
        self.close()


class AdapterRegistry:
    """Registry of available data-source adapters keyed by engine name."""

    def __init__(self) -> None:
        self._by_type: Dict[str, Type[DataSourceAdapter]] = {}

    def register(self, adapter_cls: Type[DataSourceAdapter]) -> None:
        self._by_type[adapter_cls.type_name()] = adapter_cls

    def get(self, engine: str) -> Optional[Type[DataSourceAdapter]]:
        return self._by_type.get(engine.lower())

    def all(self) -> Dict[str, Type[DataSourceAdapter]]:
        return dict(self._by_type)


registry = AdapterRegistry()


def validated_count(value: Any, namespace: str, entity: str) -> int:
    """Coerce a driver result to a non-negative int or raise ``QueryError``."""

    if isinstance(value, bool) or value is None:
        raise QueryError(f"count for {namespace}.{entity} returned {value!r}", namespace, entity)
    try:
        count = int(value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise QueryError(f"count for {namespace}.{entity} returned {value!r}", namespace, entity) from exc
    if count < 0 or count != value:
        raise QueryError(f"count for {namespace}.{entity} returned {value!r}", namespace, entity)
    return count
