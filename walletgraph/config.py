"""
Config loading for walletgraph.

Sources (in precedence order, highest first):
  1. Environment variables (WALLETGRAPH_*)
  2. ~/.walletgraph/config.toml
  3. Built-in defaults

Usage:
    from walletgraph.config import load_config
    config = load_config()
    print(config.graph.page_size)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import toml

from walletgraph.exceptions import ConfigInvalidError

# Default config directory and file
DEFAULT_CONFIG_DIR = Path.home() / ".walletgraph"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.toml"

# Environment variable → config key mapping
# Format: (env_var_name, dotted_config_path, type_converter)
_ENV_OVERRIDES: list[tuple[str, str, type]] = [
    ("WALLETGRAPH_NETWORK", "api.network", str),
    ("WALLETGRAPH_BASE_URL", "api.base_url", str),
    ("WALLETGRAPH_API_KEY", "api.api_key", str),
    ("WALLETGRAPH_TIMEOUT_SECONDS", "api.timeout_seconds", float),
    ("WALLETGRAPH_RATE_LIMIT", "api.rate_limit_per_second", int),
    ("WALLETGRAPH_PAGE_SIZE", "graph.page_size", int),
    ("WALLETGRAPH_HISTORY_LIMIT", "graph.history_limit", int),
    ("WALLETGRAPH_MAX_PAGES", "graph.max_pages", int),
    ("WALLETGRAPH_OUTPUT_FORMAT", "output.default_format", str),
]

VALID_FORMATS = {"json", "jsonl", "csv", "tree"}
VALID_NETWORKS = {"sepolia", "mainnet"}


@dataclass
class APIConfig:
    """Explorer API configuration."""

    network: str = "sepolia"            # sepolia | mainnet
    base_url: str = ""                  # overrides the network's default URL
    api_key: str = ""                   # sent as x-api-key when set
    timeout_seconds: float = 30.0
    rate_limit_per_second: int = 5


@dataclass
class GraphConfig:
    """Paging and expansion limits for exploration sessions."""

    page_size: int = 20
    history_limit: int = 10             # per side, for between-address history
    max_pages: int = 100                # cap on the explorer's lastPage
    fallback_pages: int = 5             # page count shown after a list failure
    prefetch_details: bool = True       # fetch details for transfer txs on page load


@dataclass
class OutputConfig:
    """Output formatting defaults."""

    default_format: str = "json"        # json | jsonl | csv | tree
    color: bool = True


@dataclass
class WalletGraphConfig:
    """Full configuration object. Passed via Click context to all commands."""

    api: APIConfig = field(default_factory=APIConfig)
    graph: GraphConfig = field(default_factory=GraphConfig)
    output: OutputConfig = field(default_factory=OutputConfig)


def load_config(path: str | None = None) -> WalletGraphConfig:
    """
    Load configuration from TOML file + environment variable overrides.

    Args:
        path: Override config file path. If None, uses WALLETGRAPH_CONFIG_PATH
              env var or default (~/.walletgraph/config.toml).

    Returns:
        WalletGraphConfig with all values resolved. A missing file is not
        an error; defaults apply.

    Raises:
        ConfigInvalidError: Config file exists but is invalid TOML or values.
    """
    config_path = _resolve_config_path(path)

    raw: dict = {}
    if config_path.exists():
        try:
            raw = toml.load(str(config_path))
        except toml.TomlDecodeError as e:
            raise ConfigInvalidError(f"Invalid TOML in {config_path}: {e}") from e

    try:
        config = _dict_to_config(raw)
    except (ValueError, TypeError) as e:
        raise ConfigInvalidError(f"Invalid value in {config_path}: {e}") from e
    _apply_env_overrides(config)
    validate_config(config)

    return config


def save_config(config: WalletGraphConfig, path: str | None = None) -> Path:
    """
    Serialize WalletGraphConfig to TOML and write to disk.

    Returns the path where config was written.
    """
    config_path = _resolve_config_path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    data = {
        "api": {
            "network": config.api.network,
            "base_url": config.api.base_url,
            "api_key": config.api.api_key,
            "timeout_seconds": config.api.timeout_seconds,
            "rate_limit_per_second": config.api.rate_limit_per_second,
        },
        "graph": {
            "page_size": config.graph.page_size,
            "history_limit": config.graph.history_limit,
            "max_pages": config.graph.max_pages,
            "fallback_pages": config.graph.fallback_pages,
            "prefetch_details": config.graph.prefetch_details,
        },
        "output": {
            "default_format": config.output.default_format,
            "color": config.output.color,
        },
    }

    with open(config_path, "w") as f:
        toml.dump(data, f)

    return config_path


def get_default_config_path() -> Path:
    """Return the default config file path."""
    return DEFAULT_CONFIG_PATH


# ──────────────────────────────────────────────────────────────
# Private helpers
# ──────────────────────────────────────────────────────────────


def _resolve_config_path(path: str | None) -> Path:
    if path:
        return Path(path).expanduser()
    env_path = os.environ.get("WALLETGRAPH_CONFIG_PATH")
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_PATH


def _dict_to_config(raw: dict) -> WalletGraphConfig:
    """Build WalletGraphConfig from raw TOML dict, applying defaults for missing keys."""
    config = WalletGraphConfig()

    api = raw.get("api", {})
    config.api.network = api.get("network", "sepolia")
    config.api.base_url = api.get("base_url", "")
    config.api.api_key = api.get("api_key", "")
    config.api.timeout_seconds = float(api.get("timeout_seconds", 30.0))
    config.api.rate_limit_per_second = int(api.get("rate_limit_per_second", 5))

    graph = raw.get("graph", {})
    config.graph.page_size = int(graph.get("page_size", 20))
    config.graph.history_limit = int(graph.get("history_limit", 10))
    config.graph.max_pages = int(graph.get("max_pages", 100))
    config.graph.fallback_pages = int(graph.get("fallback_pages", 5))
    config.graph.prefetch_details = bool(graph.get("prefetch_details", True))

    output = raw.get("output", {})
    config.output.default_format = output.get("default_format", "json")
    config.output.color = bool(output.get("color", True))

    return config


def _apply_env_overrides(config: WalletGraphConfig) -> None:
    """Apply environment variable overrides to a loaded config."""
    # Bool flags handled separately
    prefetch = os.environ.get("WALLETGRAPH_PREFETCH_DETAILS")
    if prefetch is not None:
        config.graph.prefetch_details = prefetch.lower() in ("1", "true", "yes")

    if os.environ.get("WALLETGRAPH_NO_COLOR"):
        config.output.color = False

    for env_var, dotted_key, converter in _ENV_OVERRIDES:
        val = os.environ.get(env_var)
        if val is None:
            continue
        section, key = dotted_key.split(".", 1)
        section_obj = getattr(config, section)
        try:
            setattr(section_obj, key, converter(val))
        except (ValueError, TypeError) as e:
            raise ConfigInvalidError(
                f"Invalid value for {env_var}={val!r}: {e}"
            ) from e


def validate_config(config: WalletGraphConfig) -> None:
    """Validate config values. Raises ConfigInvalidError on invalid values."""
    if config.api.network not in VALID_NETWORKS:
        raise ConfigInvalidError(
            f"api.network must be one of {sorted(VALID_NETWORKS)}, "
            f"got {config.api.network!r}"
        )
    if config.api.timeout_seconds <= 0:
        raise ConfigInvalidError(
            f"api.timeout_seconds must be positive, got {config.api.timeout_seconds}"
        )
    if config.api.rate_limit_per_second < 1:
        raise ConfigInvalidError(
            f"api.rate_limit_per_second must be >= 1, got {config.api.rate_limit_per_second}"
        )
    if not 1 <= config.graph.page_size <= 100:
        raise ConfigInvalidError(
            f"graph.page_size must be 1–100, got {config.graph.page_size}"
        )
    if config.graph.history_limit < 1:
        raise ConfigInvalidError(
            f"graph.history_limit must be >= 1, got {config.graph.history_limit}"
        )
    if not 1 <= config.graph.max_pages <= 100:
        raise ConfigInvalidError(
            f"graph.max_pages must be 1–100, got {config.graph.max_pages}"
        )
    if config.graph.fallback_pages < 1:
        raise ConfigInvalidError(
            f"graph.fallback_pages must be >= 1, got {config.graph.fallback_pages}"
        )
    if config.output.default_format not in VALID_FORMATS:
        raise ConfigInvalidError(
            f"output.default_format must be one of {VALID_FORMATS}, "
            f"got {config.output.default_format!r}"
        )
