import enum
import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

from .constants import APP_NAME, FALLBACK_COMMIT_MESSAGE
from .git_wrapper import GitRunner
from .scanner import RepositoryEntry
from .summarizer import Summarizer

logger = logging.getLogger(APP_NAME)


class MonitorState(enum.Enum):
    STOPPED = "stopped"
    RUNNING = "running"


@dataclass(frozen=True)
class RepoFailure:
    """A failed step for one repository during a tick.

    Attributes:
        path (Path): The repository.
        operation (str): The step that failed ('status', 'diff', 'commit', 'push').
        message (str): The underlying error message.
    """

    path: Path
    operation: str
    message: str


@dataclass
class TickReport:
    """What a single tick did, repository by repository."""

    processed: list[Path] = field(default_factory=list)
    skipped: list[Path] = field(default_factory=list)
    committed: list[Path] = field(default_factory=list)
    pushed: list[Path] = field(default_factory=list)
    failures: list[RepoFailure] = field(default_factory=list)


class ChangeMonitor:
    """Periodically commits and pushes pending changes of known repositories.

    A single worker thread runs a tick, then waits for either the interval or a
    stop request. Ticks therefore never overlap: a slow tick delays the next
    one. `stop()` lets an in-flight tick finish and can be called from any
    thread.

    Attributes:
        repos (tuple[RepositoryEntry, ...]): The snapshot handed over at creation.
        interval (float): Seconds between the end of a tick and the next one.
    """

    def __init__(
        self,
        repos: Iterable[RepositoryEntry],
        runner: GitRunner,
        summarizer: Summarizer,
        interval: float,
        notifier: Callable[[str, str], None] | None = None,
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.repos = tuple(repos)
        self.runner = runner
        self.summarizer = summarizer
        self.interval = interval
        self.notifier = notifier

        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._state = MonitorState.STOPPED

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is MonitorState.RUNNING

    def start(self) -> None:
        """Runs a tick immediately, then one every `interval` seconds."""
        with self._lock:
            if self._state is MonitorState.RUNNING:
                logger.warning("MONITOR: start() called while already running.")
                return
            if self._thread is not None and self._thread.is_alive():
                # The previous worker must finish its tick before a new one begins.
                self._thread.join()
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._loop, name=f"{APP_NAME}-monitor", daemon=True
            )
            self._state = MonitorState.RUNNING
            self._thread.start()
        logger.info(
            f"MONITOR: Watching {len(self.repos)} repositories "
            f"every {self.interval:g}s."
        )

    def stop(self) -> None:
        """Prevents further ticks. A tick already running is not interrupted."""
        with self._lock:
            if self._state is MonitorState.STOPPED:
                return
            self._state = MonitorState.STOPPED
            self._stop_event.set()
        logger.info("MONITOR: Stopped.")

    def join(self, timeout: float | None = None) -> bool:
        """Waits for the worker thread to exit.

        Returns:
            bool: True if the worker is gone, False if the timeout expired.
        """
        thread = self._thread
        if thread is None or thread is threading.current_thread():
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_tick()
            except Exception:
                logger.exception("TICK ERROR")
            if self._stop_event.wait(self.interval):
                break

    def run_tick(self) -> TickReport:
        """Processes every repository once, in list order.

        Returns:
            TickReport: The outcome of each repository.
        """
        report = TickReport()
        for repo in self.repos:
            if repo.excluded_from_checks:
                report.skipped.append(repo.path)
                continue
            try:
                self._process(repo, report)
            except Exception as e:
                logger.exception(f"LOOP ERROR {repo.path}")
                self._fail(report, repo, "tick", str(e))
            report.processed.append(repo.path)

        if report.failures:
            logger.warning(
                f"TICK: {len(report.processed)} processed, "
                f"{len(report.failures)} failure(s)."
            )
        return report

    def _process(self, repo: RepositoryEntry, report: TickReport) -> None:
        status = self.runner.has_changes(repo.path)
        if not status.ok:
            self._fail(report, repo, "status", status.error)
            return
        if not status.output.strip():
            return

        diff = self.runner.diff(repo.path)
        if not diff.ok:
            self._fail(report, repo, "diff", diff.error)
            return

        message = self.summarizer.summarize(diff.output).strip()
        if not message:
            message = FALLBACK_COMMIT_MESSAGE

        commit = self.runner.commit(repo.path, message)
        if not commit.ok:
            self._fail(report, repo, "commit", commit.error)
            return
        report.committed.append(repo.path)
        logger.info(f"COMMITTED {repo.name}: {message}")

        # A failed push keeps the local commit.
        push = self.runner.push(repo.path, repo.alternative_remote)
        if not push.ok:
            self._fail(report, repo, "push", push.error)
            return
        report.pushed.append(repo.path)
        target = repo.alternative_remote or "default remote"
        logger.info(f"SUCCESS {repo.name}: Pushed to {target}.")

    def _fail(
        self, report: TickReport, repo: RepositoryEntry, operation: str, message: str
    ) -> None:
        report.failures.append(RepoFailure(repo.path, operation, message))
        logger.error(f"{operation.upper()} ERROR {repo.path}: {message}")
        if self.notifier:
            try:
                self.notifier(
                    "Steward Warning", f"{operation} failed in {repo.name}"
                )
            except Exception as e:
                logger.debug(f"Notification failed: {e}")
