import logging
from collections.abc import Callable
from types import TracebackType

from .cache import FileCache
from .config import ManagerConfig
from .constants import APP_NAME
from .git_wrapper import GitRunner
from .monitor import ChangeMonitor, TickReport
from .scanner import RepoScanner, RepositoryEntry
from .summarizer import Summarizer, build_summarizer

logger = logging.getLogger(APP_NAME)


class GitManager:
    """Ties the scanner, the cache and the change monitor into one lifecycle.

    `start()` scans once and hands the resulting snapshot to a new monitor;
    `stop()` stops that monitor. Use as a context manager to stop on exit.
    """

    def __init__(
        self,
        config: ManagerConfig,
        summarizer: Summarizer | None = None,
        runner: GitRunner | None = None,
        cache: FileCache | None = None,
        notifier: Callable[[str, str], None] | None = None,
    ):
        """Initializes the manager.

        Args:
            config (ManagerConfig): The validated configuration.
            summarizer (Summarizer | None): Defaults to the configured summarizer.
            runner (GitRunner | None): Defaults to a git CLI runner.
            cache (FileCache | None): Defaults to the configured cache file.
            notifier (Callable | None): Receives (title, message) on failures.

        Raises:
            CacheError: If the cache file exists but cannot be read.
        """
        self.config = config
        self.runner = runner or GitRunner()
        self.summarizer = summarizer or build_summarizer(
            config.summary.command, config.summary.timeout, config.summary.max_files
        )
        self.cache = cache or FileCache(config.cache.file)
        self.scanner = RepoScanner(config.scan, self.cache, self.runner)
        self.notifier = notifier
        self.monitor: ChangeMonitor | None = None

    def _build_monitor(self, repos: list[RepositoryEntry]) -> ChangeMonitor:
        return ChangeMonitor(
            repos,
            self.runner,
            self.summarizer,
            interval=self.config.monitor.check_interval,
            notifier=self.notifier,
        )

    def start(self) -> list[RepositoryEntry]:
        """Scans for repositories and starts monitoring them.

        Returns:
            list[RepositoryEntry]: The snapshot the monitor works on.
        """
        if self.monitor is not None and self.monitor.is_running:
            logger.warning("MANAGER: Already running.")
            return list(self.monitor.repos)

        repos = self.scanner.scan()
        self.monitor = self._build_monitor(repos)
        self.monitor.start()
        return repos

    def run_once(self) -> TickReport:
        """Scans and runs a single tick synchronously."""
        repos = self.scanner.scan()
        return self._build_monitor(repos).run_tick()

    def stop(self, timeout: float | None = None) -> None:
        """Stops the monitor and waits up to `timeout` for its current tick."""
        if self.monitor is None:
            return
        self.monitor.stop()
        if not self.monitor.join(timeout):
            logger.warning("MANAGER: Tick still running after stop request.")

    def __enter__(self) -> "GitManager":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop()
