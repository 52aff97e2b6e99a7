from __future__ import annotations

from typing import Any, Dict, List, Optional

from pymongo import MongoClient
from pymongo.errors import ConfigurationError, ExecutionTimeout, PyMongoError

from ..config import VerifyConfig
from ..errors import ConfigError, EntityNotFoundError, QueryError, QueryTimeoutError, SourceConnectionError
from .base import DataSourceAdapter, validated_count

# listCollections filter that hides system.* collections
_USER_COLLECTIONS = {"name": {"$regex": r"^(?!system\.)"}}


def client_options(config: VerifyConfig) -> Dict[str, Any]:
    """Translate TLS/auth settings into ``MongoClient`` keyword options."""

    options: Dict[str, Any] = {
        "serverSelectionTimeoutMS": int(config.query_timeout_seconds * 1000),
    }
    if config.tls_enabled:
        options["tls"] = True
        if config.tls_cert_path:
            options["tlsCertificateKeyFile"] = config.tls_cert_path
        if config.tls_ca_path:
            options["tlsCAFile"] = config.tls_ca_path
    if config.auth_mechanism:
        options["authMechanism"] = config.auth_mechanism
        if config.auth_source:
            options["authSource"] = config.auth_source
    return options


class MongoAdapter(DataSourceAdapter):
    """Databases are namespaces, collections are entities."""

    _TYPE = "mongo"
    display_name = "MongoDB"

    def __init__(self, client: Any) -> None:
        self._client = client

    @classmethod
    def from_config(cls, config: VerifyConfig) -> "MongoAdapter":
        try:
            client = MongoClient(config.mongo_uri, **client_options(config))
        except ConfigurationError as exc:
            raise ConfigError(f"Invalid MongoDB connection settings: {exc}") from exc
        except PyMongoError as exc:
            raise SourceConnectionError(f"Cannot connect to {config.mongo_uri}: {exc}") from exc
        return cls(client)

    def get_version(self) -> str:
        try:
            return str(self._client.server_info()["version"])
        except PyMongoError as exc:
            raise SourceConnectionError(f"Cannot query MongoDB version: {exc}") from exc

    def list_namespaces(self) -> List[str]:
        try:
            return list(self._client.list_database_names())
        except PyMongoError as exc:
            raise SourceConnectionError(f"Cannot list databases: {exc}") from exc

    def list_entities(self, namespace: str) -> List[str]:
        try:
            return list(self._client[namespace].list_collection_names(filter=_USER_COLLECTIONS))
        except PyMongoError as exc:
            raise SourceConnectionError(f"Cannot list collections of '{namespace}': {exc}") from exc

    def count_entity(self, namespace: str, entity: str, *, timeout: Optional[float] = None) -> int:
        db = self._client[namespace]
        kwargs: Dict[str, Any] = {}
        if timeout:
            kwargs["maxTimeMS"] = int(timeout * 1000)
        try:
            # count_documents reports 0 for a collection that does not exist
            if not db.list_collection_names(filter={"name": entity}, **kwargs):
                raise EntityNotFoundError(f"collection {namespace}.{entity} not found", namespace, entity)
            value = db[entity].count_documents({}, **kwargs)
        except ExecutionTimeout as exc:
            raise QueryTimeoutError(f"count of {namespace}.{entity} timed out", namespace, entity) from exc
        except PyMongoError as exc:
            raise QueryError(f"count of {namespace}.{entity} failed: {exc}", namespace, entity) from exc
        return validated_count(value, namespace, entity)

    def close(self) -> None:
        self._client.close()
