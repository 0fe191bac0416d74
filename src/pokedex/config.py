"""Configuration schema and loading for the pokedex service.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

# Packaged defaults, next to this module
DEFAULT_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"
DEFAULT_DATA_DIR = Path(__file__).parent / "data"

# Environment variable naming an alternative settings file
SETTINGS_ENV_VAR = "POKEDEX_SETTINGS"

SecondaryFailurePolicy = Literal["fail", "skip"]


class ServerSettings(BaseModel):
    """HTTP server binding."""

    model_config = {"frozen": True}

    host: str = "0.0.0.0"
    port: int = Field(default=8079, gt=0, lt=65536)
    api_prefix: str = ""

    @field_validator("api_prefix")
    @classmethod
    def normalize_prefix(cls, v: str) -> str:
        """Prefix is either empty or starts with '/' and has no trailing '/'."""
        v = v.strip().rstrip("/")
        if v and not v.startswith("/"):
            v = "/" + v
        return v


class DatabaseSettings(BaseModel):
    """Database URL and the named SQL statements.

    Statements are literal SQL with positional (qmark) parameters,
    referenced by name from the rest of the code.
    """

    model_config = {"frozen": True}

    url: str = "sqlite:///data/pokedex.db"
    statements: dict[str, str] = Field(default_factory=dict)


class AggregationSettings(BaseModel):
    """Fan-out behaviour of the pokemon/type aggregation.

    Attributes:
        max_concurrency: Maximum secondary lookups in flight (None = unbounded).
        secondary_failure: "fail" fails the whole aggregation on the first
            failed lookup, "skip" keeps the pokemon with an empty type list.
        preserve_order: Return documents in primary query order instead of
            completion order.
        timeout_seconds: Upper bound for one aggregation (None = no limit).
    """

    model_config = {"frozen": True}

    max_concurrency: int | None = Field(default=8, gt=0)
    secondary_failure: SecondaryFailurePolicy = "fail"
    preserve_order: bool = True
    timeout_seconds: float | None = Field(default=30.0, gt=0)


class BootstrapSettings(BaseModel):
    """Schema and sample data handling at start-up and shutdown."""

    model_config = {"frozen": True}

    reset_on_start: bool = True
    drop_on_shutdown: bool = True
    types_file: Path | None = None
    pokemons_file: Path | None = None

    @property
    def resolved_types_file(self) -> Path:
        return self.types_file or DEFAULT_DATA_DIR / "types.json"

    @property
    def resolved_pokemons_file(self) -> Path:
        return self.pokemons_file or DEFAULT_DATA_DIR / "pokemons.json"


class PokedexSettings(BaseModel):
    """Top-level settings."""

    model_config = {"frozen": True}

    server: ServerSettings = Field(default_factory=ServerSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    aggregation: AggregationSettings = Field(default_factory=AggregationSettings)
    bootstrap: BootstrapSettings = Field(default_factory=BootstrapSettings)


def _lower_keys(value: Any) -> Any:
    """Recursively lowercase mapping keys.

    Keys coming from environment overrides are uppercase; on a clash with
    the lowercase key from the file the override wins.
    """
    if not isinstance(value, dict):
        return value
    lowered: dict[str, Any] = {}
    for k, v in value.items():
        key = str(k)
        if key.lower() not in lowered or key != key.lower():
            lowered[key.lower()] = _lower_keys(v)
    return lowered


def load_settings(config_path: Path | None = None) -> PokedexSettings:
    """Load settings from YAML file with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (POKEDEX_*) - highest priority
    2. Config file (settings.yaml)
    3. Defaults from Pydantic schema - lowest priority

    Environment variable format: POKEDEX_DATABASE__URL for nested keys.

    Args:
        config_path: Path to YAML configuration file. Defaults to the file
            named by POKEDEX_SETTINGS, then to the packaged settings.yaml.

    Returns:
        Validated PokedexSettings instance

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    if config_path is None:
        env_path = os.environ.get(SETTINGS_ENV_VAR)
        config_path = Path(env_path) if env_path else DEFAULT_SETTINGS_PATH

    config_path = Path(config_path)

    # Explicit check for file existence (Dynaconf silently accepts missing files)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="POKEDEX",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    # Filter out internal Dynaconf settings
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES", "SETTINGS"}
    raw_config = {
        k.lower(): _lower_keys(v)
        for k, v in dynaconf_settings.as_dict().items()
        if k not in internal_keys
    }
    known = PokedexSettings.model_fields.keys()
    return PokedexSettings(**{k: v for k, v in raw_config.items() if k in known})
