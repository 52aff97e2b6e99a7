import io
import json
import threading
from typing import Any, Dict, List, Optional, Tuple

import pytest

from migverify.common import PrintLogger
from migverify.endpoints.base import DataSourceAdapter
from migverify.errors import EntityNotFoundError, SourceConnectionError


class FakeAdapter(DataSourceAdapter):
    """In-memory data source: ``{namespace: {entity: count | Exception}}``."""

    _TYPE = "fake"
    display_name = "MongoDB"

    def __init__(
        self,
        data: Dict[str, Dict[str, Any]],
        *,
        version: str = "7.0.2",
        supports_parallel: bool = True,
        fail_listing: bool = False,
    ) -> None:
        self.data = data
        self.version = version
        self.supports_parallel = supports_parallel
        self.fail_listing = fail_listing
        self.count_calls: List[Tuple[str, str]] = []
        self.timeouts: List[Optional[float]] = []
        self.closed = False
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config):
        return cls({})

    def get_version(self) -> str:
        return self.version

    def list_namespaces(self) -> List[str]:
        if self.fail_listing:
            raise SourceConnectionError("connection refused")
        return list(self.data)

    def list_entities(self, namespace: str) -> List[str]:
        return list(self.data.get(namespace, {}))

    def count_entity(self, namespace: str, entity: str, *, timeout: Optional[float] = None) -> int:
        with self._lock:
            self.count_calls.append((namespace, entity))
            self.timeouts.append(timeout)
        entities = self.data.get(namespace, {})
        if entity not in entities:
            raise EntityNotFoundError(f"{namespace}.{entity} not found", namespace, entity)
        value = entities[entity]
        if isinstance(value, Exception):
            raise value
        return value

    def close(self) -> None:
        self.closed = True


class CapturedLog:
    def __init__(self) -> None:
        self.stream = io.StringIO()
        self.logger = PrintLogger(job_name="test", stream=self.stream, level="DEBUG")

    def events(self) -> List[Dict[str, Any]]:
        return [json.loads(line) for line in self.stream.getvalue().splitlines() if line.strip()]

    def messages(self, level: Optional[str] = None) -> List[str]:
        return [event["msg"] for event in self.events() if level is None or event["level"] == level]


@pytest.fixture
def captured_log() -> CapturedLog:
    return CapturedLog()
