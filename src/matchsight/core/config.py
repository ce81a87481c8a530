"""
Matchsight settings.

Values are layered, later layers winning:
1. Dataclass defaults below
2. The first config file found (YAML, TOML or JSON), or the one given with --config
3. MATCHSIGHT_* environment variables

The live session reads the ``live`` section on every tick, so changes made
through ``set_config`` take effect without restarting the loop.
"""

import json
import logging
import os
import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

from matchsight.core import constants

logger = logging.getLogger(__name__)


# ============================================================================
# Sections
# ============================================================================


@dataclass
class LiveConfig:
    """Display preferences consulted at tick time."""

    # Weapon whose equipped skin is reported per player
    weapon: str = constants.DEFAULT_WEAPON

    # Hide names of incognito players outside the user's party
    hide_names: bool = True

    # Phase visibility toggles; hidden phases skip player assembly
    show_menus: bool = True
    show_pregame: bool = True
    show_ingame: bool = True


@dataclass
class PollingConfig:
    """Cadence and retry settings for the session loop."""

    not_running_interval: float = constants.NOT_RUNNING_INTERVAL
    not_running_backoff_interval: float = constants.NOT_RUNNING_BACKOFF_INTERVAL
    # Consecutive absent ticks before backing off
    not_running_backoff_after: int = 15
    menus_interval: float = constants.MENUS_INTERVAL
    pregame_interval: float = constants.PREGAME_INTERVAL
    ingame_interval: float = constants.INGAME_INTERVAL
    disconnected_interval: float = constants.DISCONNECTED_INTERVAL

    failure_threshold: int = constants.FAILURE_THRESHOLD
    max_patience: int = constants.MAX_PATIENCE_RETRIES
    initial_attempts: int = constants.INITIAL_DETECTION_ATTEMPTS
    initial_interval: float = constants.INITIAL_DETECTION_INTERVAL

    # Per-request timeout, grown by timeout_step per patience retry
    fetch_timeout: float = 5.0
    timeout_step: float = 1.0
    max_timeout: float = 15.0

    # Worker threads for per-player fetches
    max_workers: int = 12
    # Delay before a fresh loop replaces one that died
    restart_delay: float = 5.0
    not_running_log_interval: float = constants.NOT_RUNNING_LOG_INTERVAL


@dataclass
class ClientConfig:
    """Where to find the game client and its services."""

    lockfile_path: str | None = None
    log_path: str | None = None
    process_name: str = constants.GAME_PROCESS_NAME
    catalog_url: str = constants.CATALOG_API_BASE
    catalog_timeout: float = 10.0


@dataclass
class ServerConfig:
    """Bind address of the status API."""

    host: str = "127.0.0.1"
    port: int = 1100


@dataclass
class LoggingConfig:
    """Root logger level, format and optional rotating log file."""

    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
    file: str | None = None
    file_max_bytes: int = 5 * 1024 * 1024
    file_backup_count: int = 3


@dataclass
class MatchsightConfig:
    """All settings, one attribute per section."""

    live: LiveConfig = field(default_factory=LiveConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    client: ClientConfig = field(default_factory=ClientConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    config_version: str = "1.0"


SECTIONS = ("live", "polling", "client", "server", "logging")


# ============================================================================
# Reading
# ============================================================================


def get_default_config_paths() -> list[Path]:
    """Candidate config files, in search order."""
    cwd = Path.cwd()
    home = Path.home()
    config_home = Path(os.environ.get("XDG_CONFIG_HOME", str(home / ".config")))

    paths = [cwd / f"matchsight.{ext}" for ext in ("yaml", "toml", "json")]
    paths.append(cwd / ".matchsight.yaml")
    paths.extend(config_home / "matchsight" / name for name in ("config.yaml", "config.toml"))
    paths.append(home / ".matchsight.yaml")
    return paths


def _read_yaml(path: Path) -> dict[str, Any]:
    with path.open(encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _read_toml(path: Path) -> dict[str, Any]:
    with path.open("rb") as f:
        return tomllib.load(f)


def _read_json(path: Path) -> dict[str, Any]:
    with path.open(encoding="utf-8") as f:
        return json.load(f)


_READERS = {
    ".yaml": _read_yaml,
    ".yml": _read_yaml,
    ".toml": _read_toml,
    ".json": _read_json,
}


def load_config_file(path: Path) -> dict[str, Any]:
    """Read one config file; missing files and unknown suffixes read as empty."""
    if not path.exists():
        return {}

    reader = _READERS.get(path.suffix.lower())
    if reader is None:
        logger.warning(f"Ignoring {path}: expected .yaml, .toml or .json")
        return {}
    return reader(path)


ENV_MAPPINGS = {
    "MATCHSIGHT_LOG_LEVEL": ("logging", "level"),
    "MATCHSIGHT_LOG_FILE": ("logging", "file"),
    "MATCHSIGHT_WEAPON": ("live", "weapon"),
    "MATCHSIGHT_HIDE_NAMES": ("live", "hide_names"),
    "MATCHSIGHT_SHOW_MENUS": ("live", "show_menus"),
    "MATCHSIGHT_SHOW_PREGAME": ("live", "show_pregame"),
    "MATCHSIGHT_SHOW_INGAME": ("live", "show_ingame"),
    "MATCHSIGHT_LOCKFILE": ("client", "lockfile_path"),
    "MATCHSIGHT_CLIENT_LOG": ("client", "log_path"),
    "MATCHSIGHT_PROCESS_NAME": ("client", "process_name"),
    "MATCHSIGHT_CATALOG_URL": ("client", "catalog_url"),
    "MATCHSIGHT_FETCH_TIMEOUT": ("polling", "fetch_timeout"),
    "MATCHSIGHT_FAILURE_THRESHOLD": ("polling", "failure_threshold"),
    "MATCHSIGHT_MAX_WORKERS": ("polling", "max_workers"),
    "MATCHSIGHT_HOST": ("server", "host"),
    "MATCHSIGHT_PORT": ("server", "port"),
}


def _coerce_env_value(raw: str) -> Any:
    """Environment strings to bool, int or float where they look like one."""
    lowered = raw.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if raw.isdigit():
        return int(raw)
    try:
        return float(raw)
    except ValueError:
        return raw


def load_env_config() -> dict[str, Any]:
    """Collect MATCHSIGHT_* overrides into section dictionaries."""
    overrides: dict[str, Any] = {}
    for env_var, (section, key) in ENV_MAPPINGS.items():
        raw = os.environ.get(env_var)
        if raw is None:
            continue
        overrides.setdefault(section, {})[key] = _coerce_env_value(raw)
    return overrides


def merge_configs(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Overlay ``override`` on ``base``, descending into nested sections."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_configs(current, value)
        else:
            merged[key] = value
    return merged


def dict_to_config(data: dict[str, Any]) -> MatchsightConfig:
    """Convert a dictionary to MatchsightConfig, ignoring unknown keys."""
    config = MatchsightConfig()

    for section_name in SECTIONS:
        values = data.get(section_name)
        if not isinstance(values, dict):
            continue
        section = getattr(config, section_name)
        for key, value in values.items():
            if hasattr(section, key):
                setattr(section, key, value)
            else:
                logger.debug(f"Ignoring unknown config key: {section_name}.{key}")

    return config


def load_config(config_file: Path | None = None, include_env: bool = True) -> MatchsightConfig:
    """
    Build the effective configuration.

    Args:
        config_file: File to read instead of searching the default locations
        include_env: Apply MATCHSIGHT_* environment overrides

    Returns:
        Merged MatchsightConfig
    """
    data: dict[str, Any] = {}

    candidates = [config_file] if config_file else get_default_config_paths()
    for path in candidates:
        if path.exists():
            data = load_config_file(path)
            logger.info(f"Using config file {path}")
            break
    else:
        if config_file:
            logger.warning(f"Config file {config_file} not found; using defaults")

    if include_env:
        data = merge_configs(data, load_env_config())

    return dict_to_config(data)


# ============================================================================
# Writing
# ============================================================================


def save_config(config: MatchsightConfig, path: Path) -> None:
    """
    Write ``config`` to ``path``.

    Args:
        config: Settings to write
        path: Destination ending in .yaml, .yml or .json

    Raises:
        ValueError: For any other suffix
    """
    suffix = path.suffix.lower()
    data = config_to_dict(config)

    if suffix in (".yaml", ".yml"):
        path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    elif suffix == ".json":
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    else:
        raise ValueError(f"Cannot write config as '{suffix}'; use .yaml, .yml or .json")

    logger.info(f"Wrote config to {path}")


def config_to_dict(config: MatchsightConfig) -> dict[str, Any]:
    return asdict(config)


# ============================================================================
# Process-wide settings
# ============================================================================

_global_config: MatchsightConfig | None = None


def get_config() -> MatchsightConfig:
    """Return the process-wide settings, loading them on first use."""
    global _global_config
    if _global_config is None:
        _global_config = load_config()
    return _global_config


def set_config(config: MatchsightConfig) -> None:
    global _global_config
    _global_config = config


def reset_config() -> None:
    """Forget the process-wide settings; the next get_config reloads them."""
    global _global_config
    _global_config = None


# ============================================================================
# Template
# ============================================================================

DEFAULT_CONFIG_YAML = """# Matchsight settings

# What the live view shows
live:
  weapon: Vandal
  hide_names: true
  show_menus: true
  show_pregame: true
  show_ingame: true

# Session loop cadence (seconds) and retry policy
polling:
  menus_interval: 0.5
  pregame_interval: 0.25
  ingame_interval: 0.5
  failure_threshold: 3
  max_patience: 15
  fetch_timeout: 5.0

# Game client discovery
client:
  process_name: Valorant.exe
  # lockfile_path: /path/to/Riot Client/Config/lockfile
  # log_path: /path/to/VALORANT/Saved/Logs/ShooterGame.log

# Status API
server:
  host: 127.0.0.1
  port: 1100

logging:
  level: INFO
  # file: /path/to/matchsight.log
"""


def generate_default_config(path: Path) -> None:
    """Write a commented YAML template, or the defaults for other suffixes."""
    if path.suffix.lower() in (".yaml", ".yml"):
        path.write_text(DEFAULT_CONFIG_YAML, encoding="utf-8")
    else:
        save_config(MatchsightConfig(), path)

    logger.info(f"Wrote default config to {path}")
