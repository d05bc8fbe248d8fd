# travel_journal/config.py
# Description: Configuration management for the travel journal sync engine.
#
# Imports
import copy
import os
import tomllib
from pathlib import Path
from typing import Dict, Any, Optional, Union
#
# Third-Party Imports
import toml
from loguru import logger
#
# Local Imports
from travel_journal.Constants import DEFAULT_SYNC_INTERVAL_SECONDS
#
#######################################################################################################################
#
# Functions:

# --- Constants ---
# Client ID written into the local database for this installation
APP_CLIENT_ID = "travel_journal_local_instance_v1"

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "travel_journal" / "config.toml"
BASE_DATA_DIR = Path.home() / ".local" / "share" / "travel_journal"

# Environment variables that override values from the config file
ENV_REMOTE_URL = "SUPABASE_URL"
ENV_REMOTE_ANON_KEY = "SUPABASE_ANON_KEY"
ENV_LOG_LEVEL = "TRAVEL_JOURNAL_LOG_LEVEL"

CONFIG_TOML_CONTENT = f"""
# Configuration for the travel journal sync engine
# This file is created automatically on first run. Values set here override the built-in defaults.

[remote]
# Supabase-compatible backend. Both values can also come from the
# SUPABASE_URL and SUPABASE_ANON_KEY environment variables.
url = ""
anon_key = ""
timeout_seconds = 30.0

[sync]
# Periodic sync interval while the app is running
interval_seconds = {DEFAULT_SYNC_INTERVAL_SECONDS}
# Any HTTP response from this URL counts as "online"
probe_url = "https://www.google.com/generate_204"
connectivity_poll_seconds = 15.0

[database]
db_path = "~/.local/share/travel_journal/travel_journal.db"
state_file = "~/.local/share/travel_journal/sync_state.json"
client_id = "{APP_CLIENT_ID}"

[logging]
log_level = "INFO"
log_file = "~/.local/share/travel_journal/logs/travel_journal.log"
metrics_log_file = "~/.local/share/travel_journal/logs/travel_journal_metrics.json"
"""

try:
    DEFAULT_CONFIG_FROM_TOML: Dict[str, Any] = tomllib.loads(CONFIG_TOML_CONTENT)
except tomllib.TOMLDecodeError as e:
    logger.critical(f"FATAL: Could not parse internal CONFIG_TOML_CONTENT: {e}.")
    DEFAULT_CONFIG_FROM_TOML = {}


# --- Helper for deep merging dictionaries ---
def deep_merge_dicts(base: Dict, update: Dict) -> Dict:
    """Recursively merges update_dict into base_dict."""
    merged = copy.deepcopy(base)
    for key, value in update.items():
        if isinstance(value, dict) and key in merged and isinstance(merged[key], dict):
            merged[key] = deep_merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def _apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    remote = config.setdefault("remote", {})
    if os.environ.get(ENV_REMOTE_URL):
        remote["url"] = os.environ[ENV_REMOTE_URL]
    if os.environ.get(ENV_REMOTE_ANON_KEY):
        remote["anon_key"] = os.environ[ENV_REMOTE_ANON_KEY]
    if os.environ.get(ENV_LOG_LEVEL):
        config.setdefault("logging", {})["log_level"] = os.environ[ENV_LOG_LEVEL]
    return config


# --- Primary Configuration Loading Logic ---
_CONFIG_CACHE: Optional[Dict[str, Any]] = None


def load_settings(config_path: Optional[Union[str, Path]] = None, force_reload: bool = False) -> Dict[str, Any]:
    """
    Loads settings from the TOML config file (default ~/.config/travel_journal/config.toml),
    merged on top of the built-in defaults, then applies environment overrides.

    A missing file is not an error; the built-in defaults are used as-is.
    """
    global _CONFIG_CACHE
    if _CONFIG_CACHE is not None and not force_reload:
        return _CONFIG_CACHE

    path = Path(config_path).expanduser() if config_path else DEFAULT_CONFIG_PATH
    loaded_config = copy.deepcopy(DEFAULT_CONFIG_FROM_TOML)

    if not path.exists():
        logger.info(f"Config file not found at {path}. Using built-in defaults.")
    else:
        logger.info(f"Attempting to load config from: {path}")
        try:
            with open(path, "rb") as f:
                user_config_from_file = tomllib.load(f)
            loaded_config = deep_merge_dicts(loaded_config, user_config_from_file)
            logger.info(f"Successfully loaded and merged config from {path}")
        except tomllib.TOMLDecodeError as e:
            logger.error(f"Error decoding TOML config file {path}: {e}. Using internal defaults.")
        except OSError as e:
            logger.error(f"Could not read config file {path}: {e}. Using internal defaults.")

    _CONFIG_CACHE = _apply_env_overrides(loaded_config)
    logger.debug(f"load_settings returning config with top-level keys: {list(_CONFIG_CACHE.keys())}")
    return _CONFIG_CACHE


def ensure_default_config(config_path: Optional[Union[str, Path]] = None) -> Path:
    """Writes the default configuration file if it does not exist yet. Returns its path."""
    path = Path(config_path).expanduser() if config_path else DEFAULT_CONFIG_PATH
    if path.exists():
        return path
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            toml.dump(DEFAULT_CONFIG_FROM_TOML, f)
        logger.info(f"Created default config file at {path}")
    except OSError as e:
        logger.error(f"Could not create default config file {path}: {e}. Using internal defaults.")
    return path


# --- Setting Getter ---
def get_setting(section: str, key: str, default: Any = None) -> Any:
    """Helper to get a specific setting from the loaded configuration."""
    config = load_settings()
    section_data = config.get(section)
    if isinstance(section_data, dict):
        return section_data.get(key, default)
    return default


# --- Path Getters ---
def _resolve_path_setting(section: str, key: str, fallback: Path) -> Path:
    default_str = DEFAULT_CONFIG_FROM_TOML.get(section, {}).get(key, str(fallback))
    path_str = get_setting(section, key, default_str)
    return Path(path_str).expanduser().resolve()


def get_db_path() -> Path:
    return _resolve_path_setting("database", "db_path", BASE_DATA_DIR / "travel_journal.db")


def get_state_file_path() -> Path:
    return _resolve_path_setting("database", "state_file", BASE_DATA_DIR / "sync_state.json")


def get_log_file_path() -> Path:
    return _resolve_path_setting("logging", "log_file", BASE_DATA_DIR / "logs" / "travel_journal.log")


def get_metrics_log_file_path() -> Path:
    return _resolve_path_setting("logging", "metrics_log_file", BASE_DATA_DIR / "logs" / "travel_journal_metrics.json")


def get_remote_settings() -> Dict[str, Any]:
    """
    Returns the [remote] section, validated.

    Raises:
        ValueError: If the backend URL or the anon key is not configured.
    """
    remote = dict(load_settings().get("remote", {}))
    if not remote.get("url") or not remote.get("anon_key"):
        raise ValueError(
            f"Remote backend URL or anon key is not set. Configure [remote] in the config file "
            f"or set {ENV_REMOTE_URL} / {ENV_REMOTE_ANON_KEY}."
        )
    remote["timeout_seconds"] = float(remote.get("timeout_seconds", 30.0))
    return remote

#
# End of config.py
#######################################################################################################################
