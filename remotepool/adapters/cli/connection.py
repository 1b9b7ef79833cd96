"""
RemoteClient construction for CLI commands
"""
from pathlib import Path
from typing import Any, Dict, Optional

from ...client import RemoteClient
from ...core.logging import get_logger
from ..config.loader import (
    ConfigLoader,
    build_client_config,
    build_pool_config,
    resolve_connection_params,
)
from .prompts import RichPromptProvider

logger = get_logger(__name__)


def build_client(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
    prompt: Optional[RichPromptProvider] = None,
    interactive: bool = True,
) -> RemoteClient:
    """
    Create a RemoteClient from TOML / CLI / env configuration.

    Missing user and password are asked for interactively.

    Args:
        config_path: Optional TOML file
        overrides: CLI options, ``pool`` sub-dict for pool options
        prompt: Prompt provider (rich prompts if None)
        interactive: Allow prompting for missing values

    Returns:
        Unconnected RemoteClient

    Raises:
        ConfigError: If required parameters are missing or invalid
    """
    cfg = ConfigLoader().load(toml_path=config_path, cli_overrides=overrides)
    params = resolve_connection_params(cfg)

    if interactive:
        prompt = prompt or RichPromptProvider()
        if params.get("host") and not params.get("user"):
            params["user"] = prompt.prompt("User")
        if not params.get("key_path") and not params.get("password"):
            params["password"] = prompt.prompt(
                f"Password for {params.get('user')}@{params.get('host')}", password=True
            )

    client_config = build_client_config(params)
    pool_config = build_pool_config(cfg)
    logger.debug(f"client config: {client_config.to_dict()}, pool: {pool_config.to_dict()}")
    return RemoteClient(client_config, pool_config)
