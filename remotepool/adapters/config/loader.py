"""
Configuration loader with priority: env > CLI > TOML > defaults
"""
import os
import tomllib
from pathlib import Path
from typing import Dict, Any, Optional

from ...core.constants import DEFAULT_SSH_PORT, DEFAULT_SSH_TIMEOUT, ENV_PREFIX
from ...core.exceptions import ConfigError
from ...core.session import ClientConfig
from ...core.utils import load_ssh_config
from ...domain.pool import PoolConfig


class ConfigLoader:
    """Configuration loader with priority support"""

    # env suffix -> config key, dotted keys go into a table
    ENV_MAPPINGS = {
        "HOST": "host",
        "USER": "user",
        "PORT": "port",
        "KEY": "key",
        "PASSWORD": "password",
        "TIMEOUT": "timeout",
        "SSH_CONFIG": "ssh_config",
        "MAX_CONNECTION": "pool.max_connection",
        "CONNECTION_RETRY": "pool.connection_retry",
        "CONNECTION_RETRY_DELAY": "pool.connection_retry_delay",
        "EXEC_RETRY_DELAY": "pool.exec_retry_delay",
        "RECONNECT_RETRY": "pool.reconnect_retry",
        "MAX_RUNNING": "pool.max_running",
    }

    def __init__(self, env_prefix: str = ENV_PREFIX):
        self._env_prefix = env_prefix

    def load_toml(self, path: Path) -> Dict[str, Any]:
        """Load TOML configuration file"""
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        try:
            return tomllib.loads(path.read_text(encoding="utf-8"))
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Failed to parse TOML configuration: {e}") from e

    def load_env(self, environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """Load configuration from environment variables"""
        environ = os.environ if environ is None else environ
        config: Dict[str, Any] = {}

        for suffix, config_key in self.ENV_MAPPINGS.items():
            value = environ.get(self._env_prefix + suffix)
            if not value:
                continue
            if "." in config_key:
                table, key = config_key.split(".", 1)
                config.setdefault(table, {})[key] = self._convert_value(value)
            else:
                config[config_key] = self._convert_value(value)

        return config

    def _convert_value(self, value: str) -> Any:
        """Convert string value to appropriate type"""
        if value.lower() in ("true", "yes"):
            return True
        if value.lower() in ("false", "no"):
            return False

        for convert in (int, float):
            try:
                return convert(value)
            except ValueError:
                pass

        return value

    def merge_configs(self, *configs: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge multiple configurations with priority.
        Later configs override earlier ones.
        """
        result: Dict[str, Any] = {}

        for config in configs:
            result = self._deep_merge(result, config)

        return result

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries"""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def load(
        self,
        toml_path: Optional[Path] = None,
        cli_overrides: Optional[Dict[str, Any]] = None,
        use_env: bool = True,
        environ: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Load configuration with priority: env > CLI > TOML > defaults

        Args:
            toml_path: Path to TOML configuration file
            cli_overrides: CLI parameter overrides (None values are ignored)
            use_env: Whether to load from environment variables
            environ: Environment to read instead of os.environ

        Returns:
            Merged configuration dictionary
        """
        configs = []

        if toml_path:
            configs.append(self.load_toml(toml_path))

        if cli_overrides:
            configs.append(_drop_none(cli_overrides))

        if use_env:
            env_config = self.load_env(environ)
            if env_config:
                configs.append(env_config)

        return self.merge_configs(*configs)


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, dict):
            value = _drop_none(value)
            if not value:
                continue
        elif value is None:
            continue
        result[key] = value
    return result


# ============================================================
# Typed views
# ============================================================

def resolve_connection_params(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """
    Resolve connection parameters, expanding an ``ssh_config`` host alias.

    Explicit keys win over values found in ~/.ssh/config.
    """
    params: Dict[str, Any] = {}

    if cfg.get("ssh_config"):
        params.update(load_ssh_config(cfg["ssh_config"]))

    for key in ("host", "user", "port", "password", "timeout", "key_passphrase"):
        if key in cfg:
            params[key] = cfg[key]
    if "key" in cfg:
        params["key_path"] = cfg["key"]
    elif "key_file" in cfg:
        params["key_path"] = cfg["key_file"]

    params.setdefault("port", DEFAULT_SSH_PORT)
    params.setdefault("timeout", DEFAULT_SSH_TIMEOUT)
    return params


def build_client_config(params: Dict[str, Any]) -> ClientConfig:
    """Create ClientConfig from resolved parameters"""
    if not params.get("host"):
        raise ConfigError("host is required")
    if not params.get("user"):
        raise ConfigError("user is required")
    try:
        params = {**params, "port": int(params["port"]), "timeout": float(params["timeout"])}
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid connection parameter: {e}") from e
    return ClientConfig.from_dict(params)


def build_pool_config(cfg: Dict[str, Any]) -> PoolConfig:
    """Create PoolConfig from the ``[pool]`` table"""
    pool_table = cfg.get("pool", {})
    if not isinstance(pool_table, dict):
        raise ConfigError("[pool] must be a table")
    return PoolConfig.from_dict(pool_table)
