"""
Configuration Loader for the portal assistant

Reads from config.json (plus .env / environment overrides) and provides a simple
interface for accessing settings. Defaults to sensible values if config.json is
missing.

Usage:
    from portal_assistant.config import get_config
    config = get_config()
    voice = config.get("tts.voice")
"""

# ============================================================================
# 1) IMPORTS
# ============================================================================
import copy
import json
import os
import logging
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from portal_assistant.policy import (
    SESSION_MEMORY_CAPACITY,
    SUGGESTION_DELAY_MS,
    TTS_TIMEOUT_SECONDS,
)

# ============================================================================
# 2) MODULE LOGGER
# ============================================================================
logger = logging.getLogger(__name__)


# ============================================================================
# 3) CONFIG WRAPPER (DOT-NOTATION ACCESS)
# ============================================================================
class Config:
    """Simple config wrapper with dot-notation access."""

    def __init__(self, data: dict):
        """Initialize with config dict."""
        self._data = data

    # 3.1) Dot-notation getter
    def get(self, key: str, default: Any = None) -> Any:
        """
        Get config value using dot notation.

        Examples:
            config.get("tts.voice")
            config.get("suggestion.delay_ms")
            config.get("nonexistent.key", "default_value")

        Args:
            key: Dot-separated config path
            default: Default value if key not found

        Returns:
            Config value or default
        """
        keys = key.split(".")
        value = self._data

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    # 3.2) Dict-style getter
    def __getitem__(self, key: str) -> Any:
        """Allow dict-style access."""
        return self.get(key)

    def as_dict(self) -> dict:
        return copy.deepcopy(self._data)


# ============================================================================
# 4) DEFAULT CONFIGURATION (FALLBACK)
# ============================================================================
_DEFAULT_CONFIG = {
    "system": {
        "log_level": "INFO",
    },
    "tts": {
        "enabled": True,
        "engine": "http",
        "base_url": "http://localhost:3000",
        "voice": "rachel",
        "edge_voice": "en-US-AriaNeural",
        "timeout_seconds": TTS_TIMEOUT_SECONDS,
    },
    "memory": {
        "capacity": SESSION_MEMORY_CAPACITY,
    },
    "suggestion": {
        "enabled": True,
        "delay_ms": SUGGESTION_DELAY_MS,
    },
    # Per-role keyword -> path overrides, merged over routes.DEFAULT_ROUTE_MAP
    "routes": {},
    "launchboard": {
        "modules": {
            "billing": "/admin/invoices",
            "invoices": "/admin/invoices",
            "audit": "/admin/audit",
            "users": "/admin/users",
            "employers": "/admin/employers",
            "charts": "/admin/charts",
            "settings": "/admin/settings",
        },
    },
}

# Environment variable -> (config key, parser)
_ENV_OVERRIDES = {
    "PORTAL_TTS_BASE_URL": ("tts.base_url", str),
    "PORTAL_TTS_VOICE": ("tts.voice", str),
    "PORTAL_TTS_ENGINE": ("tts.engine", lambda v: v.strip().lower()),
    "VOICE_ENABLED": ("tts.enabled", lambda v: v.strip().lower() == "true"),
    "PORTAL_LOG_LEVEL": ("system.log_level", lambda v: v.strip().upper()),
}

# ============================================================================
# 5) CONFIG SINGLETON
# ============================================================================
_config_instance: Optional[Config] = None


# ============================================================================
# 6) LOAD / GET CONFIG
# ============================================================================
def load_config(config_path: str = "config.json", env_path: Optional[str] = None) -> Config:
    """
    Load configuration from JSON file, .env and environment.

    Falls back to defaults if file not found or on error.

    Args:
        config_path: Path to config.json
        env_path: Optional path to a .env file (defaults to ./.env)

    Returns:
        Config instance
    """
    global _config_instance

    config_data = copy.deepcopy(_DEFAULT_CONFIG)

    if os.path.exists(config_path):
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                user_config = json.load(f)
                # Deep merge user config over defaults
                _merge_dicts(config_data, user_config)
                logger.info(f"[Config] Loaded from {config_path}")
        except Exception as e:
            logger.warning(f"[Config] Failed to load {config_path}: {e}, using defaults")
    else:
        logger.debug(f"[Config] No config file at {config_path}, using defaults")

    load_dotenv(env_path or Path.cwd() / ".env", override=False)
    _apply_env_overrides(config_data)

    _config_instance = Config(config_data)
    return _config_instance


def get_config() -> Config:
    """
    Get current config instance (lazy load if needed).

    Returns:
        Config instance
    """
    global _config_instance
    if _config_instance is None:
        load_config()
    return _config_instance


def reset_config() -> None:
    """Drop the cached config (next get_config() reloads)."""
    global _config_instance
    _config_instance = None


# ============================================================================
# 7) HELPERS
# ============================================================================
def _apply_env_overrides(config_data: dict) -> None:
    for env_name, (key, parse) in _ENV_OVERRIDES.items():
        raw = os.getenv(env_name)
        if raw is None or raw == "":
            continue
        _set_dotted(config_data, key, parse(raw))
        logger.debug(f"[Config] {key} overridden by {env_name}")


def _set_dotted(data: dict, key: str, value: Any) -> None:
    *parents, leaf = key.split(".")
    node = data
    for k in parents:
        node = node.setdefault(k, {})
    node[leaf] = value


def _merge_dicts(base: dict, override: dict) -> None:
    """
    Deep merge override dict into base dict (modifies base in place).

    Args:
        base: Base dict to merge into
        override: Dict with values to override
    """
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _merge_dicts(base[key], value)
        else:
            base[key] = value
