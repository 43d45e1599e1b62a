"""
Wakegate - Configuration Manager
==================================
Handles loading of application configuration from two sources:

1. config.yaml  - Settings (web server, device list path, wake timings)
2. .env         - Secrets (WAKEGATE_HASHED_PASSWORD may live here instead
                  of in config.yaml)

Configuration is read once at startup and treated as immutable after
that. Anything the server cannot run without (a readable config.yaml,
the password hash, TLS files when TLS is on) raises ConfigError so the
process stops before accepting connections.

Usage:
    config_manager = ConfigManager(project_dir="/opt/wakegate")
    config = config_manager.load()            # Merged config dict
    secrets = config_manager.load_env()       # Values from .env + environment
    certfile, keyfile = config_manager.tls_files(config)
"""

import os
import yaml
from dotenv import dotenv_values


# Default configuration values used when config.yaml is missing a section.
DEFAULTS = {
    "web": {
        "host": "0.0.0.0",
        "port": 5000,
        "tls": True,
        "ssl_certfile": "cert.pem",
        "ssl_keyfile": "key.pem",
        "static_dir": "public",
    },
    "auth": {
        "hashed_password": "",
    },
    "devices": {
        "file": "devices.json",
    },
    "wake": {
        "broadcast_ip": "255.255.255.255",
        "port": 9,
        "interface": None,
        "initial_probe_timeout": 2,
        "probe_timeout": 2,
        "poll_interval": 6,
        "poll_attempts": 15,
    },
}

# Environment variable that overrides auth.hashed_password.
HASHED_PASSWORD_ENV = "WAKEGATE_HASHED_PASSWORD"


class ConfigError(Exception):
    """Startup configuration is missing or invalid. Fatal."""


class ConfigManager:
    """
    Read-only configuration manager for Wakegate.

    Attributes:
        project_dir: Root directory of the Wakegate project.
        config_path: Full path to config.yaml.
        env_path:    Full path to .env file.
    """

    def __init__(self, project_dir: str):
        """
        Initialize the config manager.

        Args:
            project_dir: Absolute path to the Wakegate project root directory.
        """
        self.project_dir = project_dir
        self.config_path = os.path.join(project_dir, "config.yaml")
        self.env_path = os.path.join(project_dir, ".env")

    def load(self) -> dict:
        """
        Load and merge configuration from config.yaml with defaults.

        A missing config.yaml yields the defaults. A file that exists but
        cannot be read or parsed is fatal, unlike a missing one, because
        silently falling back would drop the password hash.

        Returns:
            A dictionary containing the full configuration.

        Raises:
            ConfigError: If config.yaml is unreadable or not a mapping.
        """
        config = _deep_copy(DEFAULTS)

        if os.path.exists(self.config_path):
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    user_config = yaml.safe_load(f) or {}
            except (yaml.YAMLError, OSError) as e:
                raise ConfigError(f"Cannot read {self.config_path}: {e}") from e

            if not isinstance(user_config, dict):
                raise ConfigError(f"{self.config_path} must contain a mapping")
            _deep_merge(config, user_config)

        return config

    def load_env(self) -> dict[str, str]:
        """
        Collect secrets from .env, with the process environment taking priority.

        Returns:
            Dict of variable names to values (only non-empty values).
        """
        values = dotenv_values(self.env_path) if os.path.exists(self.env_path) else {}
        merged = {k: v for k, v in values.items() if v}
        if os.environ.get(HASHED_PASSWORD_ENV):
            merged[HASHED_PASSWORD_ENV] = os.environ[HASHED_PASSWORD_ENV]
        return merged

    def resolve_path(self, path: str) -> str:
        """Resolve a config path relative to the project directory."""
        if os.path.isabs(path):
            return path
        return os.path.join(self.project_dir, path)

    def devices_path(self, config: dict) -> str:
        """Absolute path of the device list file."""
        return self.resolve_path(config["devices"]["file"])

    def static_dir(self, config: dict) -> str | None:
        """Absolute path of the static frontend directory, if configured."""
        static_dir = config["web"].get("static_dir")
        return self.resolve_path(static_dir) if static_dir else None

    def tls_files(self, config: dict) -> tuple[str, str] | None:
        """
        Locate the TLS certificate and private key.

        Args:
            config: Merged configuration dict.

        Returns:
            (certfile, keyfile) when TLS is enabled, None otherwise.

        Raises:
            ConfigError: If TLS is enabled and either file is missing.
        """
        web = config["web"]
        if not web.get("tls"):
            return None

        certfile = self.resolve_path(web.get("ssl_certfile") or "")
        keyfile = self.resolve_path(web.get("ssl_keyfile") or "")
        for label, path in (("certificate", certfile), ("private key", keyfile)):
            if not os.path.isfile(path):
                raise ConfigError(
                    f"TLS {label} not found at {path}. "
                    "Provide it or set web.tls to false."
                )
        return certfile, keyfile


# -- Helper Functions ---------------------------------------------------------

def _deep_copy(d: dict) -> dict:
    """Create a deep copy of a nested dictionary."""
    result = {}
    for key, value in d.items():
        if isinstance(value, dict):
            result[key] = _deep_copy(value)
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _deep_merge(base: dict, override: dict) -> None:
    """
    Recursively merge 'override' into 'base' (in-place).

    For nested dicts, values are merged recursively.
    For all other types, override replaces base.
    """
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
