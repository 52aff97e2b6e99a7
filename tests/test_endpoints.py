from types import SimpleNamespace

import pytest
from pymongo.errors import ExecutionTimeout, ServerSelectionTimeoutError
from sqlalchemy import create_engine, text

from migverify.config import VerifyConfig
from migverify.endpoints import AdapterFactory, MongoAdapter, SparkCatalogAdapter, SqlAlchemyAdapter, registry
from migverify.endpoints.base import validated_count
from migverify.endpoints.mongo import client_options
from migverify.endpoints.sqlalchemy import timeout_statements
from migverify.errors import (
    ConfigError,
    EntityNotFoundError,
    QueryError,
    QueryTimeoutError,
    SourceConnectionError,
)


def test_registry_knows_every_engine():
    assert set(registry.all()) >= {"mongo", "sqlalchemy", "spark"}
    assert registry.get("MONGO") is MongoAdapter


def test_factory_rejects_unregistered_engine():
    config = VerifyConfig.from_config({})
    object.__setattr__(config, "engine", "cassandra")

    with pytest.raises(ConfigError):
        AdapterFactory.build(config)


@pytest.mark.parametrize("value", [None, True, -1, 2.5, "abc"])
def test_validated_count_rejects_non_counts(value):
    with pytest.raises(QueryError):
        validated_count(value, "db", "coll")


def test_validated_count_accepts_integral_values():
    assert validated_count(0, "db", "coll") == 0
    assert validated_count(12.0, "db", "coll") == 12


# --- SQLAlchemy ---------------------------------------------------------------


@pytest.fixture
def sqlite_adapter(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'store.db'}")
    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE users (id INTEGER PRIMARY KEY)"))
        conn.execute(text('CREATE TABLE "events.2024" (id INTEGER)'))
        conn.execute(text("INSERT INTO users (id) VALUES (1), (2), (3)"))
    adapter = SqlAlchemyAdapter(engine)
    yield adapter
    adapter.close()


def test_sqlalchemy_lists_and_counts(sqlite_adapter):
    assert sqlite_adapter.display_name == "sqlite"
    assert sqlite_adapter.get_version().startswith("3.")
    assert "main" in sqlite_adapter.list_namespaces()
    assert sorted(sqlite_adapter.list_entities("main")) == ["events.2024", "users"]
    assert sqlite_adapter.count_entity("main", "users", timeout=5) == 3
    assert sqlite_adapter.count_entity("main", "events.2024") == 0


def test_sql_timeouts_do_not_outlive_the_count():
    assert timeout_statements("postgresql", 2.5) == ("SET LOCAL statement_timeout = 2500", None)
    assert timeout_statements("mysql", 2) == (
        "SET SESSION max_execution_time = 2000",
        "SET SESSION max_execution_time = DEFAULT",
    )
    assert timeout_statements("mariadb", 1.5) == (
        "SET SESSION max_statement_time = 1.5",
        "SET SESSION max_statement_time = DEFAULT",
    )
    assert timeout_statements("sqlite", 5) == (None, None)
    assert timeout_statements("postgresql", None) == (None, None)


def test_sqlalchemy_missing_table(sqlite_adapter):
    with pytest.raises(EntityNotFoundError):
        sqlite_adapter.count_entity("main", "orders")


def test_sqlalchemy_requires_url():
    config = VerifyConfig.from_config({})
    object.__setattr__(config, "engine", "sqlalchemy")

    with pytest.raises(ConfigError):
        SqlAlchemyAdapter.from_config(config)


def test_sqlalchemy_from_config_builds_engine(tmp_path):
    config = VerifyConfig.from_config({"engine": "sqlalchemy", "sqlalchemy_url": f"sqlite:///{tmp_path / 'x.db'}"})

    adapter = AdapterFactory.build(config)

    assert isinstance(adapter, SqlAlchemyAdapter)
    adapter.close()


# --- MongoDB ------------------------------------------------------------------


class _StubCollection:
    def __init__(self, count):
        self._count = count
        self.kwargs = None

    def count_documents(self, query, **kwargs):
        self.kwargs = kwargs
        if isinstance(self._count, Exception):
            raise self._count
        return self._count


class _StubDatabase:
    def __init__(self, collections):
        self.collections = {name: _StubCollection(count) for name, count in collections.items()}
        self.filters = []
        self.listing_kwargs = []

    def list_collection_names(self, filter=None, **kwargs):
        self.filters.append(filter)
        self.listing_kwargs.append(kwargs)
        names = [name for name in self.collections if not name.startswith("system.")]
        if filter and isinstance(filter.get("name"), str):
            return [name for name in names if name == filter["name"]]
        return names

    def __getitem__(self, name):
        return self.collections[name]


class _StubClient:
    def __init__(self, databases, *, version="7.0.2", down=False):
        self.databases = {name: _StubDatabase(colls) for name, colls in databases.items()}
        self.version = version
        self.down = down
        self.closed = False

    def server_info(self):
        if self.down:
            raise ServerSelectionTimeoutError("no servers")
        return {"version": self.version}

    def list_database_names(self):
        if self.down:
            raise ServerSelectionTimeoutError("no servers")
        return list(self.databases)

    def __getitem__(self, name):
        return self.databases.setdefault(name, _StubDatabase({}))

    def close(self):
        self.closed = True


def test_mongo_counts_with_time_limit():
    client = _StubClient({"app": {"users": 42, "system.views": 1}})
    adapter = MongoAdapter(client)

    assert adapter.get_version() == "7.0.2"
    assert adapter.list_namespaces() == ["app"]
    assert adapter.list_entities("app") == ["users"]
    assert adapter.count_entity("app", "users", timeout=2.5) == 42
    assert client.databases["app"].collections["users"].kwargs == {"maxTimeMS": 2500}
    assert client.databases["app"].listing_kwargs[-1] == {"maxTimeMS": 2500}


def test_mongo_missing_collection_is_not_counted_as_zero():
    adapter = MongoAdapter(_StubClient({"app": {"users": 1}}))

    with pytest.raises(EntityNotFoundError):
        adapter.count_entity("app", "orders")


def test_mongo_timeout_and_failures_are_typed():
    adapter = MongoAdapter(_StubClient({"app": {"slow": ExecutionTimeout("operation exceeded time limit")}}))

    with pytest.raises(QueryTimeoutError):
        adapter.count_entity("app", "slow", timeout=1)


def test_mongo_unreachable_server():
    adapter = MongoAdapter(_StubClient({}, down=True))

    with pytest.raises(SourceConnectionError):
        adapter.get_version()
    with pytest.raises(SourceConnectionError):
        adapter.list_namespaces()
    adapter.close()


def test_client_options_follow_tls_and_auth_settings():
    config = VerifyConfig.from_config(
        {"tls_cert_path": "/certs/client.pem", "tls_ca_path": "/certs/ca.pem", "query_timeout_seconds": 5}
    )

    options = client_options(config)

    assert options == {
        "serverSelectionTimeoutMS": 5000,
        "tls": True,
        "tlsCertificateKeyFile": "/certs/client.pem",
        "tlsCAFile": "/certs/ca.pem",
        "authMechanism": "MONGODB-X509",
        "authSource": "$external",
    }
    plain = client_options(VerifyConfig.from_config({"tls_enabled": False, "auth_mechanism": ""}))
    assert plain == {"serverSelectionTimeoutMS": 60000}


# --- Spark catalog ------------------------------------------------------------


class _StubCatalog:
    def __init__(self, tables):
        self.tables = tables

    def listDatabases(self):
        return [SimpleNamespace(name=name) for name in self.tables]

    def listTables(self, db):
        return [SimpleNamespace(name=name, isTemporary=name.startswith("tmp_")) for name in self.tables[db]]

    def tableExists(self, table, db):
        return table in self.tables.get(db, {})


class _StubSpark:
    version = "3.5.1"

    def __init__(self, tables):
        self.catalog = _StubCatalog(tables)
        self.requested = []

    def table(self, name):
        self.requested.append(name)
        db, tbl = name.replace("`", "").split(".", 1)
        count = self.catalog.tables[db][tbl]
        return SimpleNamespace(count=lambda: count)


def test_spark_catalog_adapter():
    spark = _StubSpark({"sales": {"orders": 7, "tmp_scratch": 1}})
    adapter = SparkCatalogAdapter(spark)

    assert adapter.supports_parallel is False
    assert adapter.get_version() == "3.5.1"
    assert adapter.list_namespaces() == ["sales"]
    assert adapter.list_entities("sales") == ["orders"]
    assert adapter.count_entity("sales", "orders") == 7
    assert spark.requested == ["`sales`.`orders`"]
    with pytest.raises(EntityNotFoundError):
        adapter.count_entity("sales", "returns")
