import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .cache import CacheError, FileCache
from .config import ScanConfig
from .constants import APP_NAME, REPOS_CACHE_KEY, REPOS_DELIMITER
from .git_wrapper import GitRunner

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class RepositoryEntry:
    """A repository discovered by a scan.

    Attributes:
        path (Path): Absolute path of the repository root.
        excluded_from_checks (bool): Tracked, but never committed or pushed.
        alternative_remote (str | None): Remote used for pushes instead of the
                                         repository's default one.
    """

    path: Path
    excluded_from_checks: bool = False
    alternative_remote: str | None = None

    @property
    def name(self) -> str:
        return self.path.name


@dataclass(frozen=True)
class ScanIssue:
    """A non-fatal problem met during a scan.

    Attributes:
        path (Path): The directory involved.
        operation (str): What was being attempted ('list', 'submodule', 'cache').
        message (str): The underlying error message.
    """

    path: Path
    operation: str
    message: str


def name_matches(name: str, patterns: list[str]) -> bool:
    """Checks whether a directory name contains any of the given substrings."""
    return any(pattern and pattern in name for pattern in patterns)


class RepoScanner:
    """Discovers the repositories under a root directory.

    The first scan walks the tree and stores the result in the cache; later
    scans read the cache and never touch the filesystem until the entry is
    invalidated. Repositories nested directly inside another repository are
    adopted as submodules of their parent instead of being reported.

    Attributes:
        config (ScanConfig): Root and exclusion settings.
        cache (FileCache): Store for the discovered paths.
        runner (GitRunner): Used to detect repositories and add submodules.
        issues (list[ScanIssue]): Problems recorded by the last scan.
    """

    def __init__(
        self, config: ScanConfig, cache: FileCache, runner: GitRunner | None = None
    ):
        self.config = config
        self.cache = cache
        self.runner = runner or GitRunner()
        self.issues: list[ScanIssue] = []

    def scan(self) -> list[RepositoryEntry]:
        """Returns the repositories under the root, using the cache when possible.

        Returns:
            list[RepositoryEntry]: Entries in traversal (or cached) order.
        """
        self.issues = []

        cached = self.cache.get(REPOS_CACHE_KEY)
        if cached is not None:
            paths = [p for p in cached.split(REPOS_DELIMITER) if p]
            logger.debug(f"CACHE HIT: {len(paths)} repositories.")
            return [self._make_entry(Path(p)) for p in paths]

        root = Path(self.config.root_dir).absolute()
        logger.info(f"SCAN: Walking {root}...")
        repos: list[RepositoryEntry] = []
        self._scan_dir(root, repos, visited=set())

        try:
            self.cache.set(
                REPOS_CACHE_KEY, REPOS_DELIMITER.join(str(r.path) for r in repos)
            )
        except (CacheError, ValueError) as e:
            logger.error(f"CACHE ERROR: Scan result not persisted. {e}")
            self.issues.append(ScanIssue(root, "cache", str(e)))

        logger.info(
            f"SCAN COMPLETE: {len(repos)} repositories, {len(self.issues)} issue(s)."
        )
        return repos

    def invalidate(self) -> None:
        """Drops the cached result so that the next scan walks the tree again."""
        self.cache.delete(REPOS_CACHE_KEY)

    def _make_entry(self, path: Path) -> RepositoryEntry:
        return RepositoryEntry(
            path=path,
            excluded_from_checks=name_matches(path.name, self.config.check_excludes),
            alternative_remote=self.config.alternative_remotes.get(path.name),
        )

    def _is_excluded(self, path: Path) -> bool:
        return name_matches(path.name, self.config.excludes)

    def _list_subdirs(self, path: Path) -> list[Path] | None:
        """Lists child directories (symlinks are not followed), sorted by name.

        Returns:
            list[Path] | None: The children, or None if the directory is unreadable.
        """
        try:
            with os.scandir(path) as it:
                children = [
                    Path(entry.path)
                    for entry in it
                    if entry.is_dir(follow_symlinks=False)
                ]
        except OSError as e:
            logger.warning(f"SCAN ERROR {path}: {e}")
            self.issues.append(ScanIssue(path, "list", str(e)))
            return None
        return sorted(children, key=lambda p: p.name)

    def _scan_dir(
        self, path: Path, repos: list[RepositoryEntry], visited: set[Path]
    ) -> None:
        if self._is_excluded(path):
            return

        try:
            real = path.resolve()
        except OSError as e:
            logger.warning(f"SCAN ERROR {path}: {e}")
            self.issues.append(ScanIssue(path, "list", str(e)))
            return
        if real in visited:
            return
        visited.add(real)

        if self.runner.is_repository(path):
            entry = self._make_entry(path)
            repos.append(entry)
            logger.debug(f"FOUND {path}")
            self._normalize_nested(path)
            return

        children = self._list_subdirs(path)
        for child in children or []:
            self._scan_dir(child, repos, visited)

    def _normalize_nested(self, parent: Path) -> None:
        """Adopts every immediate child repository as a submodule of `parent`."""
        for child in self._list_subdirs(parent) or []:
            if self._is_excluded(child) or not self.runner.is_repository(child):
                continue
            if (child / ".git").is_file():
                # Gitlink file: already a submodule (or a worktree).
                logger.debug(f"SKIPPED {child}: already attached to {parent.name}")
                continue
            if self.runner.is_submodule(parent, child):
                logger.debug(f"SKIPPED {child}: already a submodule of {parent.name}")
                continue

            result = self.runner.add_submodule(parent, child)
            if result.ok:
                logger.info(f"SUBMODULE {parent.name}: adopted {child.name}")
            else:
                logger.warning(
                    f"SUBMODULE ERROR {parent.name}/{child.name}: {result.error}"
                )
                self.issues.append(ScanIssue(child, "submodule", result.error))
