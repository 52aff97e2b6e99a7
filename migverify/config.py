from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional

from .errors import ConfigError

DEFAULT_EXCLUSIONS: FrozenSet[str] = frozenset({"admin", "config", "local"})
ENGINES = ("mongo", "sqlalchemy", "spark")

# option name -> environment variable
ENV_VARS: Dict[str, str] = {
    "engine": "VERIFY_ENGINE",
    "host": "MONGO_HOST",
    "uri": "MONGO_URI",
    "auth_mechanism": "MONGO_AUTH_MECHANISM",
    "auth_source": "MONGO_AUTH_DB",
    "tls_enabled": "MONGO_TLS",
    "tls_cert_path": "MONGO_CERT",
    "tls_ca_path": "MONGO_CA",
    "excluded_namespaces": "EXCLUDED_DBS",
    "sqlalchemy_url": "VERIFY_SQLALCHEMY_URL",
    "max_parallel": "VERIFY_MAX_PARALLEL",
    "query_timeout_seconds": "VERIFY_QUERY_TIMEOUT",
    "result_dir": "VERIFY_RESULT_DIR",
    "log_file": "VERIFY_LOG_FILE",
    "log_level": "VERIFY_LOG_LEVEL",
}

_ALIASES: Dict[str, str] = {
    "authMethod": "auth_mechanism",
    "authMechanism": "auth_mechanism",
    "authDB": "auth_source",
    "authSource": "auth_source",
    "tlsEnabled": "tls_enabled",
    "tlsCertPath": "tls_cert_path",
    "tlsCAPath": "tls_ca_path",
    "excludedNamespaces": "excluded_namespaces",
    "sqlalchemyUrl": "sqlalchemy_url",
    "maxParallel": "max_parallel",
    "queryTimeoutSeconds": "query_timeout_seconds",
    "resultDir": "result_dir",
    "logFile": "log_file",
    "logLevel": "log_level",
    "jobName": "job_name",
}


def parse_exclusions(value: Any) -> FrozenSet[str]:
    """Accept a space/comma separated string or an iterable of names."""

    if value is None:
        return frozenset()
    if isinstance(value, str):
        parts: Iterable[str] = re.split(r"[\s,]+", value)
    else:
        parts = (str(item) for item in value)
    return frozenset(part.strip() for part in parts if part and part.strip())


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _env_values(environ: Mapping[str, str]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for option, var in ENV_VARS.items():
        raw = environ.get(var)
        if raw is None or not raw.strip():
            continue
        values[option] = raw.strip()
    return values


def _normalize_keys(cfg: Mapping[str, Any]) -> Dict[str, Any]:
    return {_ALIASES.get(key, key): value for key, value in cfg.items()}


def read_config_file(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except OSError as exc:
        raise ConfigError(f"Cannot read config file '{path}': {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config file '{path}' is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError(f"Config file '{path}' must contain a JSON object")
    return payload


@dataclass(frozen=True)
class VerifyConfig:
    """Settings resolved once at startup and passed to every component."""

    engine: str = "mongo"
    host: str = "localhost"
    uri: Optional[str] = None
    auth_mechanism: Optional[str] = "MONGODB-X509"
    auth_source: Optional[str] = "$external"
    tls_enabled: bool = True
    tls_cert_path: Optional[str] = None
    tls_ca_path: Optional[str] = None
    excluded_namespaces: FrozenSet[str] = DEFAULT_EXCLUSIONS
    sqlalchemy_url: Optional[str] = None
    sqlalchemy_options: Dict[str, Any] = field(default_factory=dict)
    max_parallel: int = 1
    query_timeout_seconds: float = 60.0
    result_dir: str = "."
    log_file: Optional[str] = None
    log_level: str = "INFO"
    job_name: str = "migration_verify"

    @property
    def mongo_uri(self) -> str:
        return self.uri or f"mongodb://{self.host}:27017"

    @property
    def endpoint(self) -> str:
        if self.engine == "sqlalchemy":
            return str(self.sqlalchemy_url)
        if self.engine == "spark":
            return "spark-catalog"
        return self.mongo_uri

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any]) -> "VerifyConfig":
        data = _normalize_keys(cfg)
        defaults = cls()
        engine = str(data.get("engine") or defaults.engine).strip().lower()
        if engine not in ENGINES:
            raise ConfigError(f"Unsupported engine '{engine}' (expected one of: {', '.join(ENGINES)})")
        try:
            max_parallel = int(data.get("max_parallel", defaults.max_parallel))
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"max_parallel must be an integer: {data.get('max_parallel')!r}") from exc
        if max_parallel < 1:
            raise ConfigError("max_parallel must be at least 1")
        try:
            timeout = float(data.get("query_timeout_seconds", defaults.query_timeout_seconds))
        except (TypeError, ValueError) as exc:
            raise ConfigError(
                f"query_timeout_seconds must be a number: {data.get('query_timeout_seconds')!r}"
            ) from exc
        if timeout <= 0:
            raise ConfigError("query_timeout_seconds must be positive")
        sa_url = data.get("sqlalchemy_url")
        if engine == "sqlalchemy" and not sa_url:
            raise ConfigError("sqlalchemy_url must be provided for the sqlalchemy engine")
        sa_options = data.get("sqlalchemy_options") or {}
        if not isinstance(sa_options, dict):
            raise ConfigError("sqlalchemy_options must be an object when provided")
        excluded = (
            parse_exclusions(data["excluded_namespaces"])
            if "excluded_namespaces" in data
            else defaults.excluded_namespaces
        )
        return cls(
            engine=engine,
            host=str(data.get("host") or defaults.host),
            uri=data.get("uri") or None,
            auth_mechanism=data.get("auth_mechanism", defaults.auth_mechanism) or None,
            auth_source=data.get("auth_source", defaults.auth_source) or None,
            tls_enabled=_as_bool(data.get("tls_enabled", defaults.tls_enabled)),
            tls_cert_path=data.get("tls_cert_path") or None,
            tls_ca_path=data.get("tls_ca_path") or None,
            excluded_namespaces=excluded,
            sqlalchemy_url=sa_url or None,
            sqlalchemy_options=dict(sa_options),
            max_parallel=max_parallel,
            query_timeout_seconds=timeout,
            result_dir=str(data.get("result_dir") or defaults.result_dir),
            log_file=data.get("log_file") or None,
            log_level=str(data.get("log_level") or defaults.log_level).upper(),
            job_name=str(data.get("job_name") or defaults.job_name),
        )

    @classmethod
    def load(
        cls,
        *,
        environ: Optional[Mapping[str, str]] = None,
        config_path: Optional[str] = None,
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> "VerifyConfig":
        """Merge environment, config file and explicit overrides (later wins)."""

        merged: Dict[str, Any] = _env_values(os.environ if environ is None else environ)
        if config_path:
            merged.update(_normalize_keys(read_config_file(config_path)))
        if overrides:
            merged.update({key: value for key, value in _normalize_keys(overrides).items() if value is not None})
        return cls.from_config(merged)


__all__ = ["VerifyConfig", "DEFAULT_EXCLUSIONS", "ENGINES", "ENV_VARS", "parse_exclusions", "read_config_file"]
