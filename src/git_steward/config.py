import logging
import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CACHE_FILE,
    CONFIG_FILE,
    DEFAULT_CHECK_INTERVAL,
    DEFAULT_SCAN_EXCLUDES,
)

logger = logging.getLogger(APP_NAME)


class ConfigError(ValueError):
    """Raised when the configuration violates an invariant required at startup."""


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_time(value: int | str) -> int:
    """Converts human-readable time strings (e.g., '1hr', '30m') to seconds."""
    if isinstance(value, int):
        return value
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(s|sec|m|min|h|hr)s?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {"s": 1, "sec": 1, "m": 60, "min": 60, "h": 3600, "hr": 3600}
    return int(num * multiplier[unit])


def _parse_path(value: str | Path) -> Path:
    return Path(value).expanduser()


@dataclass
class ScanConfig:
    """Repository discovery settings.

    Attributes:
        root_dir (Path): The directory the scan starts from.
        excludes (list[str]): Name substrings pruned from the traversal.
        check_excludes (list[str]): Name substrings marking a repository as
            tracked but never committed or pushed.
        alternative_remotes (dict[str, str]): Repository name to the remote
            used instead of the default one when pushing.
    """

    root_dir: Path = field(default_factory=Path.cwd)
    excludes: list[str] = field(default_factory=lambda: list(DEFAULT_SCAN_EXCLUDES))
    check_excludes: list[str] = field(default_factory=list)
    alternative_remotes: dict[str, str] = field(default_factory=dict)


@dataclass
class MonitorConfig:
    """Change monitor settings.

    Attributes:
        check_interval (int): Seconds between two ticks.
    """

    check_interval: int = DEFAULT_CHECK_INTERVAL


@dataclass
class CacheConfig:
    """Scan cache settings.

    Attributes:
        file (Path): The key/value file holding the last scan result.
    """

    file: Path = CACHE_FILE


@dataclass
class SummaryConfig:
    """Commit message summarization settings.

    Attributes:
        command (str | None): Shell command receiving the diff on stdin and
            printing a commit message. Uses the built-in diff summary when unset.
        timeout (int): Seconds before the summary command is abandoned.
        max_files (int): Maximum number of file names listed in a message.
    """

    command: str | None = None
    timeout: int = 60
    max_files: int = 3


@dataclass
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for log files before rotation.
    """

    max_log_size: int = 5 * 1024 * 1024


@dataclass
class ManagerConfig:
    """Global configuration aggregator.

    Attributes:
        scan (ScanConfig): Discovery settings.
        monitor (MonitorConfig): Poll loop settings.
        cache (CacheConfig): Cache settings.
        summary (SummaryConfig): Commit message settings.
        limits (LimitsConfig): Resource limits.
    """

    scan: ScanConfig = field(default_factory=ScanConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    summary: SummaryConfig = field(default_factory=SummaryConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)

    @classmethod
    def default(cls, root_dir: Path) -> "ManagerConfig":
        """Builds the default configuration for a given scan root."""
        instance = cls()
        instance.scan.root_dir = root_dir
        return instance

    @classmethod
    def load(
        cls, path: Path | None = None, root_dir: Path | None = None
    ) -> "ManagerConfig":
        """Loads configuration from defaults and an optional TOML file.

        Args:
            path (Path | None): The config file. Defaults to CONFIG_FILE.
            root_dir (Path | None): Overrides `scan.root_dir` when given.

        Returns:
            ManagerConfig: The fully merged configuration object.
        """
        instance = cls()
        config_path = path or CONFIG_FILE
        if config_path.exists():
            instance._merge_from_file(config_path)
        elif path is not None:
            raise ConfigError(f"Config file not found: {path}")

        if root_dir is not None:
            instance.scan.root_dir = root_dir
        instance.scan.root_dir = instance.scan.root_dir.expanduser().resolve()
        return instance

    def validate(self) -> None:
        """Checks the invariants required before monitoring can begin.

        Raises:
            ConfigError: If the interval is not positive or the root is missing.
        """
        if self.monitor.check_interval <= 0:
            raise ConfigError(
                f"check_interval must be positive, got {self.monitor.check_interval}"
            )
        if not self.scan.root_dir.is_dir():
            raise ConfigError(f"Root directory does not exist: {self.scan.root_dir}")
        if self.summary.timeout <= 0:
            raise ConfigError(
                f"summary timeout must be positive, got {self.summary.timeout}"
            )

    def _merge_from_file(self, path: Path) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.

        Raises:
            ConfigError: If the file is not valid TOML.
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Config syntax error in {path}: {e}") from e

        if "scan" in data:
            scan_data = dict(data["scan"])
            # List settings extend the defaults instead of replacing them.
            extra = {
                key: scan_data.pop(key, [])
                for key in ("excludes", "check_excludes")
            }
            self.scan = self._update_dataclass("scan", self.scan, scan_data)
            for key, values in extra.items():
                if not isinstance(values, list):
                    logger.warning(
                        f"Config error in [scan].{key}: expected a list. Ignoring."
                    )
                    continue
                merged = getattr(self.scan, key) + [str(v) for v in values]
                setattr(self.scan, key, list(dict.fromkeys(merged)))
        if "monitor" in data:
            self.monitor = self._update_dataclass(
                "monitor", self.monitor, data["monitor"]
            )
        if "cache" in data:
            self.cache = self._update_dataclass("cache", self.cache, data["cache"])
        if "summary" in data:
            self.summary = self._update_dataclass(
                "summary", self.summary, data["summary"]
            )
        if "limits" in data:
            self.limits = self._update_dataclass("limits", self.limits, data["limits"])

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        # 1. Catch and warn about typos / unknown keys
        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: {', '.join(sorted(invalid_keys))}. Ignoring."
            )

        # 2. Process valid keys
        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k == "max_log_size":
                    filtered_updates[k] = parse_size(v)
                elif k in ["check_interval", "timeout"]:
                    filtered_updates[k] = parse_time(v)
                elif k in ["root_dir", "file"]:
                    filtered_updates[k] = _parse_path(v)
                elif k == "alternative_remotes":
                    if not isinstance(v, dict):
                        raise ValueError("expected a table of name = remote")
                    filtered_updates[k] = {str(n): str(r) for n, r in v.items()}
                else:
                    filtered_updates[k] = v
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)
