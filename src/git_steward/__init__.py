"""Git Steward: an unattended watchdog for a tree of git repositories.

This package discovers the repositories under a root directory, adopts nested
repositories as submodules of their parent, caches the result, and runs a poll
loop that commits pending changes with a summarized message and pushes them.
"""

from . import (
    cache,
    cli,
    config,
    constants,
    daemon,
    git_wrapper,
    manager,
    monitor,
    scanner,
    service,
    summarizer,
    system,
)

__all__ = [
    "cache",
    "cli",
    "config",
    "constants",
    "daemon",
    "git_wrapper",
    "manager",
    "monitor",
    "scanner",
    "service",
    "summarizer",
    "system",
]
