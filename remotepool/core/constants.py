"""
Project constants definitions
"""

# ============================================================
# Connection Defaults
# ============================================================

DEFAULT_SSH_PORT = 22
DEFAULT_SSH_TIMEOUT = 10

# ============================================================
# Pool / Scheduler Defaults
# ============================================================

DEFAULT_MAX_CONNECTION = 4
DEFAULT_CONNECTION_RETRY = 5
DEFAULT_CONNECTION_RETRY_DELAY = 1.0  # seconds
DEFAULT_EXEC_RETRY_DELAY = 1.0  # seconds
DEFAULT_RECONNECT_RETRY = 10
RUNNING_PER_CONNECTION = 2

# ============================================================
# Transfer
# ============================================================

TRANSFER_CHUNK_SIZE = 32 * 1024
PERMISSION_MASK = 0o777

# ============================================================
# Exec output
# ============================================================

OUTPUT_TAIL_LENGTH = 5
OUTPUT_READ_SIZE = 4096

# ============================================================
# Watch
# ============================================================

DEFAULT_WATCH_RETRY_DELAY = 30.0  # seconds

# ============================================================
# Config
# ============================================================

SSH_CONFIG_PATH = "~/.ssh/config"
ENV_PREFIX = "REMOTEPOOL_"
