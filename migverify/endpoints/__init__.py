from .base import AdapterRegistry, DataSourceAdapter, registry
from .factory import AdapterFactory
from .mongo import MongoAdapter
from .spark import SparkCatalogAdapter
from .sqlalchemy import SqlAlchemyAdapter

registry.register(MongoAdapter)
registry.register(SqlAlchemyAdapter)
registry.register(SparkCatalogAdapter)

__all__ = [
    "AdapterFactory",
    "AdapterRegistry",
    "DataSourceAdapter",
    "MongoAdapter",
    "SparkCatalogAdapter",
    "SqlAlchemyAdapter",
    "registry",
]
