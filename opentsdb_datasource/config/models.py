"""Config models and loader.

This module defines Pydantic models for file- and environment-based
configuration. JSON parsing prefers `orjson` when available, falling back to
the standard library's `json` module so `orjson` stays optional.
"""

from __future__ import annotations

import json as _json
from pathlib import Path
from typing import Any, Callable, Dict, Optional

try:
    import orjson as _orjson_mod  # type: ignore[assignment]
except ImportError:  # pragma: no cover - optional dependency
    _orjson_mod = None  # type: ignore[assignment]
    _loads_orjson: Optional[Callable[[bytes], Any]] = None
else:

    def _loads_orjson(buf: bytes) -> Any:
        loader = getattr(_orjson_mod, "loads")  # type: ignore[assignment]
        return loader(buf)


from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SUGGEST_MAX = 99999


class DatasourceConfig(BaseModel):
    """Configuration for a single OpenTSDB datasource.

    Attributes
    ----------
    url: str
        Base URL of the OpenTSDB HTTP API (e.g., "http://localhost:4242").
    name: str
        Datasource name, referenced by annotation sources.
    timeout_seconds: float
        HTTP timeout passed to the transport.
    suggest_max: int
        ``max`` parameter of ``/api/suggest`` requests.
    variables: Dict[str, str]
        Static template variables used when no template service is wired in.
    """

    url: str = Field(..., description="OpenTSDB base URL")
    name: str = Field("opentsdb", description="Datasource name")
    timeout_seconds: float = Field(30.0, gt=0)
    suggest_max: int = Field(DEFAULT_SUGGEST_MAX, ge=1)
    variables: Dict[str, str] = Field(default_factory=dict)


class AppConfig(BaseModel):
    """Top-level configuration.

    Attributes
    ----------
    datasources: Dict[str, DatasourceConfig]
        Mapping from datasource name to connection settings.
    default: Optional[str]
        Name of the datasource used when none is specified.
    """

    datasources: Dict[str, DatasourceConfig] = Field(default_factory=dict)
    default: Optional[str] = None

    @staticmethod
    def load(path: Path) -> "AppConfig":
        """Load configuration from a JSON file."""
        raw = path.read_bytes()
        if _loads_orjson is not None:
            data = _loads_orjson(raw)
        else:
            data = _json.loads(raw.decode("utf-8"))
        return AppConfig.model_validate(data)

    def resolve(self, name: Optional[str] = None) -> DatasourceConfig:
        """Return the named datasource, the default one, or the only one.

        Raises
        ------
        KeyError
            If no datasource can be selected.
        """
        key = name or self.default
        if key is None and len(self.datasources) == 1:
            key = next(iter(self.datasources))
        if key is None or key not in self.datasources:
            raise KeyError(f"Datasource '{key}' is not configured.")
        return self.datasources[key]


class EnvSettings(BaseSettings):
    """Environment-driven settings and .env support.

    Attributes
    ----------
    log_level: str
        Logging level name (e.g., "DEBUG", "INFO"). Defaults to "WARNING".
    url: Optional[str]
        OpenTSDB base URL used when no config file is given.
    timeout_seconds: float
        HTTP timeout for the env-configured datasource.
    """

    model_config = SettingsConfigDict(env_file=".env", env_prefix="OPENTSDB_DS_")

    log_level: str = Field("WARNING")
    url: Optional[str] = None
    timeout_seconds: float = Field(30.0, gt=0)
