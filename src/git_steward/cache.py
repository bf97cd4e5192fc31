import contextlib
import logging
import os
from pathlib import Path

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


class CacheError(RuntimeError):
    """Raised when the cache file cannot be read or written."""


class FileCache:
    """A durable key/value store backed by a flat `key=value` text file.

    The file is read once on construction and held in memory. Every mutating
    call rewrites the whole file before returning, so a crash between calls never
    loses committed state. A single process is expected to own the file.

    Attributes:
        path (Path): The backing file.
    """

    def __init__(self, path: Path):
        """Initializes the cache and loads any persisted entries.

        Args:
            path (Path): The backing file. It is created on the first write.

        Raises:
            CacheError: If an existing file cannot be read.
        """
        self.path = path
        self._data: dict[str, str] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            with open(self.path, "r", encoding="utf-8", newline="\n") as f:
                for line in f:
                    key, sep, value = line.rstrip("\n").partition("=")
                    if sep:
                        self._data[key] = value
        except (OSError, UnicodeDecodeError) as e:
            raise CacheError(f"Could not read cache {self.path}: {e}") from e

    def _save(self) -> None:
        tmp_file = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_file, "w", encoding="utf-8", newline="\n") as f:
                for key, value in self._data.items():
                    f.write(f"{key}={value}\n")
                f.flush()
                os.fsync(f.fileno())  # Force write to disk.

            # Atomic Swap.
            os.replace(tmp_file, self.path)
        except (OSError, UnicodeEncodeError) as e:
            if tmp_file.exists():
                with contextlib.suppress(OSError):
                    tmp_file.unlink()
            raise CacheError(f"Could not write cache {self.path}: {e}") from e

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        """Stores a value and flushes the cache to disk.

        Raises:
            ValueError: If the key contains '=' or a newline, or the value
                        contains a newline.
            CacheError: If the file cannot be written.
        """
        if not key or "=" in key or "\n" in key:
            raise ValueError(f"Invalid cache key: {key!r}")
        if "\n" in value:
            raise ValueError(f"Cache value for {key!r} contains a newline")
        self._data[key] = value
        self._save()

    def delete(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            self._save()

    def clear(self) -> None:
        self._data.clear()
        self._save()

    def keys(self) -> list[str]:
        return list(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data
