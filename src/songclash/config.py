"""
Configuration management for Songclash.

Loads and validates TOML config against strict bounds.
All tunable parameters are bounded and validated at startup.
"""

import copy
import os
import string
from pathlib import Path
from typing import Dict, Any, Optional
import toml
import logging

logger = logging.getLogger(__name__)

# RFC 3986 unreserved characters; codes travel in a ?join= query parameter
URL_SAFE_CHARS = frozenset(string.ascii_letters + string.digits + "-._~")


class ConfigError(Exception):
    """Raised when config validation fails."""
    pass


class Config:
    """Configuration loader and validator."""

    PARAM_BOUNDS = {
        "party": {
            "code_length": (4, 12),
            "code_alphabet": None,  # Checked separately
            "create_attempts": (1, 10),
        },
        "playlist": {
            "target_duration_minutes": (30.0, 600.0),
            "avg_track_minutes": (1.0, 10.0),
        },
        "fetch": {
            "page_size": (10, 500),
            "max_items": (100, 100000),
        },
        "store": {
            "db_path": None,
            "poll_interval_seconds": (0.0, 60.0),
        },
        "share": {
            "base_url": None,
        },
    }

    DEFAULT_CONFIG = {
        "config_version": "1.0",
        "party": {
            "code_length": 6,
            "code_alphabet": "123456789",
            "create_attempts": 3,
        },
        "playlist": {
            "target_duration_minutes": 150,
            "avg_track_minutes": 3.5,
        },
        "fetch": {
            "page_size": 100,
            "max_items": 5000,
        },
        "store": {
            "db_path": "data/db/parties.sqlite",
            "poll_interval_seconds": 1.0,
        },
        "share": {
            "base_url": "https://songclash.app",
        },
    }

    def __init__(self, config_dict: Dict[str, Any]):
        """Initialize config from dictionary."""
        self.data = config_dict
        self._validate()

    @classmethod
    def defaults(cls) -> "Config":
        """Config built purely from DEFAULT_CONFIG."""
        return cls(copy.deepcopy(cls.DEFAULT_CONFIG))

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "Config":
        """
        Load config from TOML file.

        Args:
            config_path: Path to songclash.toml. If None, uses SONGCLASH_CONFIG_PATH
                        env var or defaults to configs/songclash.toml.

        Returns:
            Config instance.

        Raises:
            ConfigError: If config is invalid or unreadable.
        """
        if config_path is None:
            config_path = os.getenv("SONGCLASH_CONFIG_PATH", "configs/songclash.toml")

        config_path = Path(config_path)

        if not config_path.exists():
            logger.warning(f"Config file not found: {config_path}. Using defaults.")
            return cls.defaults()

        try:
            config_dict = toml.load(config_path)
        except (OSError, toml.TomlDecodeError) as e:
            raise ConfigError(f"Failed to load config from {config_path}: {e}") from e

        logger.info(f"Loaded config from {config_path}")
        return cls(config_dict)

    def _validate(self) -> None:
        """
        Validate all config parameters against PARAM_BOUNDS.

        Raises:
            ConfigError: If any parameter is out of bounds.
        """
        for section, params in self.PARAM_BOUNDS.items():
            if section not in self.data:
                logger.warning(f"Missing config section: {section}. Using defaults.")
                self.data[section] = copy.deepcopy(self.DEFAULT_CONFIG.get(section, {}))
                continue

            section_data = self.data[section]

            for param, bounds in params.items():
                if param not in section_data:
                    default_val = self.DEFAULT_CONFIG.get(section, {}).get(param)
                    if default_val is not None:
                        logger.warning(f"Missing param {section}.{param}. Using default: {default_val}")
                        section_data[param] = default_val
                    continue

                value = section_data[param]

                if bounds is None:
                    continue

                min_val, max_val = bounds
                if not isinstance(value, (int, float)) or isinstance(value, bool):
                    raise ConfigError(f"Parameter {section}.{param}={value!r} is not a number")
                if isinstance(min_val, int) and not isinstance(value, int):
                    raise ConfigError(f"Parameter {section}.{param}={value!r} is not an integer")
                if not (min_val <= value <= max_val):
                    raise ConfigError(
                        f"Parameter {section}.{param}={value} out of bounds "
                        f"[{min_val}, {max_val}]"
                    )

        self._validate_alphabet(self.data["party"]["code_alphabet"])
        logger.debug("✅ Config validation passed")

    @staticmethod
    def _validate_alphabet(alphabet: Any) -> None:
        if not isinstance(alphabet, str) or len(set(alphabet)) < 2:
            raise ConfigError(
                f"party.code_alphabet={alphabet!r} needs at least 2 distinct characters"
            )
        unsafe = sorted(set(alphabet) - URL_SAFE_CHARS)
        if unsafe:
            raise ConfigError(
                f"party.code_alphabet contains characters that are not URL-safe: {''.join(unsafe)!r}"
            )

    def get(self, section: str, param: str, default: Any = None) -> Any:
        """Get a config parameter safely."""
        return self.data.get(section, {}).get(param, default)

    def __getitem__(self, section: str) -> Dict[str, Any]:
        """Allow dict-like access: config["playlist"]"""
        return self.data.get(section, {})

    def __repr__(self) -> str:
        version = self.data.get('config_version', 'unknown')
        return f"Config(version={version})"
