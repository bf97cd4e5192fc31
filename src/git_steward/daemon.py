import argparse
import atexit
import logging
import os
import signal
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from types import FrameType

from rich.console import Console

from .cache import CacheError
from .config import ConfigError, ManagerConfig
from .constants import APP_NAME, LOG_FILE, PID_FILE
from .manager import GitManager
from .system import ThrottledNotifier, get_system

logger = logging.getLogger(APP_NAME)
logger.setLevel(logging.INFO)

err_console = Console(stderr=True)


def setup_logging(interactive: bool, max_log_size: int = 5 * 1024 * 1024) -> None:
    """Configures the logging subsystem.

    Args:
        interactive (bool): If True, logs to stdout. If False, logs to file/stderr
                            with rotation enabled.
        max_log_size (int, optional): Bytes before the log file is rotated.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    # Drop handlers from a previous call (e.g. a foreground run after a one-off).
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    # Always log to stderr (captured by systemd/launchd).
    stream_handler = logging.StreamHandler(
        sys.stderr if not interactive else sys.stdout
    )
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if not interactive:
        # In daemon mode, rotate logs to file.
        LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=max_log_size,
            backupCount=5,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def load_config(config_path: Path | None, root_dir: Path | None) -> ManagerConfig:
    """Loads and validates the configuration, exiting on invariant violations."""
    try:
        config = ManagerConfig.load(config_path, root_dir=root_dir)
        config.validate()
    except ConfigError as e:
        err_console.print(f"[bold red]FATAL:[/bold red] {e}")
        sys.exit(1)
    return config


def _write_pid_file() -> None:
    try:
        PID_FILE.parent.mkdir(parents=True, exist_ok=True)
        with open(PID_FILE, "w") as f:
            f.write(str(os.getpid()))

        # Ensure cleanup on exit.
        atexit.register(lambda: PID_FILE.unlink(missing_ok=True))
    except OSError as e:
        logger.warning(f"Could not write PID file: {e}")


def run(config: ManagerConfig, interactive: bool = False) -> None:
    """Runs the manager until SIGINT or SIGTERM.

    Args:
        config (ManagerConfig): The validated configuration.
        interactive (bool, optional): Foreground run from the CLI. Disables the
                                      PID file and desktop notifications.
    """
    shutdown = threading.Event()

    def shutdown_handler(signum: int, _frame: FrameType | None) -> None:
        logger.info(f"SHUTDOWN: Received signal {signum}.")
        shutdown.set()

    signal.signal(signal.SIGTERM, shutdown_handler)
    signal.signal(signal.SIGINT, shutdown_handler)

    if not interactive:
        _write_pid_file()

    notifier = None if interactive else ThrottledNotifier(get_system())
    try:
        manager = GitManager(config, notifier=notifier)
    except CacheError as e:
        logger.critical(f"CRITICAL: {e}")
        sys.exit(1)

    with manager:
        manager.start()
        shutdown.wait()
        logger.info("SHUTDOWN: Waiting for the current tick to finish...")


def main(argv: list[str] | None = None) -> None:
    """Entry point of the background daemon (`git-steward-daemon`)."""
    parser = argparse.ArgumentParser(prog=f"{APP_NAME}-daemon")
    parser.add_argument("--config", type=Path, help="Path to the config file")
    parser.add_argument("--root", type=Path, help="Directory to scan")
    args = parser.parse_args(argv)

    config = load_config(args.config, args.root)
    setup_logging(interactive=False, max_log_size=config.limits.max_log_size)
    run(config, interactive=False)


if __name__ == "__main__":
    main()
