"""
Core utility functions
"""
import posixpath
import re
import paramiko
from pathlib import Path
from typing import Dict, Any, Set

from .constants import SSH_CONFIG_PATH
from .exceptions import ConfigError


# ============================================================
# SSH Config Management
# ============================================================

def load_ssh_config(hostname: str) -> Dict[str, Any]:
    """
    Load configuration for specified Host from ~/.ssh/config.

    Args:
        hostname: Host name in SSH configuration

    Returns:
        Dictionary containing host, user, port, key_path

    Raises:
        ConfigError: If ~/.ssh/config doesn't exist
    """
    config_path = Path(SSH_CONFIG_PATH).expanduser()
    if not config_path.exists():
        raise ConfigError(f"{SSH_CONFIG_PATH} does not exist")

    ssh_config = paramiko.SSHConfig.from_path(str(config_path))
    entry = ssh_config.lookup(hostname)

    params: Dict[str, Any] = {
        "host": entry.get("hostname", hostname),
        "port": int(entry.get("port", 22)),
    }
    if entry.get("user"):
        params["user"] = entry["user"]
    if entry.get("identityfile"):
        params["key_path"] = entry["identityfile"][0]
    return params


# ============================================================
# Path Utilities
# ============================================================

_GLOB_MAGIC = re.compile(r"[*?\[]")


def has_glob_magic(pattern: str) -> bool:
    """Check whether a path contains glob wildcards"""
    return _GLOB_MAGIC.search(pattern) is not None


def to_posix(path: str) -> str:
    """Convert a local (possibly Windows) path to a remote-style posix path"""
    return path.replace("\\", "/")


def strip_trailing_sep(path: str) -> str:
    """Remove trailing separators but keep the root"""
    stripped = path.rstrip("/\\")
    return stripped or path[:1]


def remote_basename(path: str) -> str:
    return posixpath.basename(strip_trailing_sep(to_posix(path)))


def ends_with_sep(path: str) -> bool:
    return path.endswith("/") or path.endswith("\\")


def ssh_config_hosts() -> Set[str]:
    """Host names declared in ~/.ssh/config (empty if there is none)"""
    config_path = Path(SSH_CONFIG_PATH).expanduser()
    if not config_path.exists():
        return set()
    return paramiko.SSHConfig.from_path(str(config_path)).get_hostnames()
