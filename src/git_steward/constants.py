import os
from pathlib import Path

"""Global constants and path definitions for Git Steward.

This module defines the filesystem layout (adhering to XDG standards where applicable),
application identifiers, and the defaults used when no configuration file is present.
"""

# --- Identity ---
APP_NAME = "git-steward"
"""str: The human-readable application name."""

APP_LABEL = "io.github.gitsteward"
"""str: The reverse-DNS style application identifier (used for the systemd unit)."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "git-steward"
"""Path: The directory for runtime state data (logs, cache, pid file)."""

CACHE_FILE = STATE_DIR / "repos.cache"
"""Path: The default cache file storing the last scan result."""

LOG_FILE = STATE_DIR / "daemon.log"
"""Path: The file path for the daemon process logs."""

PID_FILE = STATE_DIR / "daemon.pid"
"""Path: The file path storing the daemon's process ID."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/git-steward"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The main configuration file path."""

# --- Scan / Monitor Constants ---
REPOS_CACHE_KEY = "repos"
"""str: The cache key holding the ordered list of discovered repository paths."""

REPOS_DELIMITER = ";"
"""str: Separator used to join repository paths into a single cache value."""

DEFAULT_SCAN_EXCLUDES = ["node_modules", ".git", ".venv"]
"""list[str]: Directory name substrings pruned from every scan."""

DEFAULT_CHECK_INTERVAL = 30 * 60
"""int: Seconds between two monitor ticks."""

FALLBACK_COMMIT_MESSAGE = "Automated update: summarized changes"
"""str: Commit message used when a diff cannot be summarized."""
