import logging
import os
import subprocess
import sys
import threading
import time
from collections.abc import Callable

from .constants import APP_NAME, PID_FILE

logger = logging.getLogger(APP_NAME)

NOTIFY_TIMEOUT = 10


class SystemStrategy:
    """Desktop integration of the host platform. The base class stays silent."""

    def notify(self, title: str, message: str) -> None:
        """Shows a desktop notification.

        Args:
            title (str): Headline of the notification.
            message (str): Body text.
        """
        logger.debug(f"NOTIFY (no desktop): {title}: {message}")

    def _send(self, cmd: list[str]) -> None:
        try:
            subprocess.run(
                cmd,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=NOTIFY_TIMEOUT,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug(f"Notification via {cmd[0]} failed: {e}")


class MacOSStrategy(SystemStrategy):
    def notify(self, title: str, message: str) -> None:
        # AppleScript string literals end at the first unescaped quote.
        def quote(text: str) -> str:
            return text.replace("\\", "\\\\").replace('"', "'")

        script = f'display notification "{quote(message)}" with title "{quote(title)}"'
        self._send(["osascript", "-e", script])


class LinuxStrategy(SystemStrategy):
    def notify(self, title: str, message: str) -> None:
        self._send(["notify-send", f"--app-name={APP_NAME}", title, message])


def get_system() -> SystemStrategy:
    """Picks the desktop integration for the running platform."""
    if sys.platform == "darwin":
        return MacOSStrategy()
    if sys.platform.startswith("linux"):
        return LinuxStrategy()
    return SystemStrategy()


class ThrottledNotifier:
    """Forwards notifications, dropping repeats of the same message for a while.

    A repository that keeps failing would otherwise raise the same alert on
    every tick.

    Attributes:
        strategy (SystemStrategy): Where notifications are delivered.
        quiet_period (float): Seconds during which an identical message is dropped.
    """

    def __init__(
        self,
        strategy: SystemStrategy,
        quiet_period: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.strategy = strategy
        self.quiet_period = quiet_period
        self._clock = clock
        self._last_sent: dict[tuple[str, str], float] = {}
        self._lock = threading.Lock()

    def __call__(self, title: str, message: str) -> None:
        key = (title, message)
        now = self._clock()
        with self._lock:
            last = self._last_sent.get(key)
            if last is not None and now - last < self.quiet_period:
                return
            self._last_sent[key] = now
        self.strategy.notify(title, message)


def read_daemon_pid() -> int | None:
    """Returns the PID recorded by a live daemon, or None."""
    try:
        pid = int(PID_FILE.read_text().strip())
        os.kill(pid, 0)
    except FileNotFoundError:
        return None
    except (ValueError, OSError):
        logger.debug(f"Stale PID file {PID_FILE}")
        return None
    return pid
