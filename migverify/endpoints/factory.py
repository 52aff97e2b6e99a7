from __future__ import annotations

from ..config import VerifyConfig
from ..errors import ConfigError
from .base import DataSourceAdapter, registry


class AdapterFactory:
    """Construct the data-source adapter selected by configuration."""

    @staticmethod
    def build(config: VerifyConfig) -> DataSourceAdapter:
        adapter_cls = registry.get(config.engine)
        if adapter_cls is None:
            known = ", ".join(sorted(registry.all()))
            raise ConfigError(f"Unknown engine '{config.engine}' (registered: {known})")
        return adapter_cls.from_config(config)
