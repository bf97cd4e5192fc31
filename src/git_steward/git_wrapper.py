import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


def is_git_repo(path: Path) -> bool:
    """Checks whether a directory is the root of a git working tree.

    Args:
        path (Path): The directory to inspect.

    Returns:
        bool: True if the directory holds a `.git` directory or gitlink file.
    """
    return (path / ".git").exists()


class GitRepo:
    """A wrapper around the Git command-line interface for a specific repository.

    This class provides methods to execute common Git operations using `subprocess`,
    abstracting away the command construction and output handling.

    Attributes:
        path (Path): The file system path to the repository root.
    """

    def __init__(self, path: Path):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.

        Raises:
            ValueError: If the specified path does not contain a .git directory.
        """
        self.path = path
        if not is_git_repo(self.path):
            raise ValueError(f"Not a git repository: {self.path}")

    def _run(
        self, args: list[str], capture: bool = True, env: dict | None = None
    ) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            capture (bool, optional):   Whether to capture and return stdout.
                                        Defaults to True.
            env (Optional[dict], optional): Environment variables to pass to the
                                            subprocess. Defaults to None.

        Returns:
            str:    The stripped stdout of the command if capture is True,
                    otherwise an empty string.

        Raises:
            RuntimeError: If the git command returns a non-zero exit code.
        """
        try:
            res = subprocess.run(
                ["git", *args],
                cwd=self.path,
                capture_output=capture,
                text=True,
                check=True,
                env=env,
            )
            return res.stdout.strip() if capture else ""
        except subprocess.CalledProcessError as e:
            # git commit reports "nothing to commit" and similar on stdout.
            detail = (e.stderr or e.stdout or "").strip() or str(e)
            raise RuntimeError(f"Git error: {detail}") from e

    def status_porcelain(self) -> list[str]:
        """Returns the porcelain (machine-readable) status of the repository.

        Work in progress inside a submodule (edits or untracked files that were
        never committed there) is not reported; a moved submodule HEAD is.

        Returns:
            list[str]: A list of status lines returned by `git status --porcelain`.
        """
        output = self._run(["status", "--porcelain", "--ignore-submodules=dirty"])
        return output.splitlines() if output else []

    def diff(self, staged: bool = False) -> str:
        """Returns changes as a unified diff.

        Args:
            staged (bool, optional): Diff the index against HEAD instead of the
                                     working tree against the index.
        """
        return self._run(["diff", "--cached"] if staged else ["diff"])

    def add_all(self) -> None:
        """
        Stages all changes (modified, deleted, and untracked files)
        in the working directory.
        """
        self._run(["add", "-A"])

    def commit(self, message: str) -> None:
        """Creates a new commit with the provided message.

        Args:
            message (str): The commit message.
        """
        self._run(["commit", "-m", message])

    def push(self, remote: str | None = None) -> None:
        """Pushes the current branch.

        Args:
            remote (str | None, optional): The remote to push to. Defaults to the
                                           branch's configured upstream.
        """
        cmd = ["push"]
        if remote:
            cmd.append(remote)
        self._run(cmd)

    def remote_url(self, remote: str = "origin") -> str | None:
        """Resolves the URL of a remote.

        Args:
            remote (str, optional): The remote name. Defaults to 'origin'.

        Returns:
            str | None: The URL, or None if the remote is not configured.
        """
        try:
            return self._run(["remote", "get-url", remote]) or None
        except RuntimeError as e:
            logger.debug(f"No '{remote}' remote for {self.path.name}: {e}")
            return None

    def tracks_submodule(self, rel_path: str) -> bool:
        """Checks whether the index records `rel_path` as a submodule (gitlink)."""
        output = self._run(["ls-files", "--stage", "--", rel_path])
        return any(line.startswith("160000 ") for line in output.splitlines())

    def submodule_add(self, url: str, rel_path: str) -> None:
        """Registers a repository as a submodule at the given relative path.

        When `rel_path` already holds a repository, git adopts it in place.

        Args:
            url (str): The submodule URL recorded in `.gitmodules`.
            rel_path (str): The submodule location relative to this repository.
        """
        self._run(["submodule", "add", url, rel_path])


@dataclass(frozen=True)
class GitResult:
    """Outcome of a single git operation.

    Attributes:
        ok (bool): Whether the operation succeeded.
        output (str): The captured stdout on success.
        error (str): The failure reason on failure.
    """

    ok: bool
    output: str = ""
    error: str = ""

    @classmethod
    def success(cls, output: str = "") -> "GitResult":
        return cls(ok=True, output=output)

    @classmethod
    def failure(cls, error: str) -> "GitResult":
        return cls(ok=False, error=error)


class GitRunner:
    """Runs the git operations needed by the scanner and the monitor.

    Every method executes against the given working directory and reports git
    failures as a `GitResult` instead of raising, so a caller can move on to the
    next repository. A clean working tree is a normal, successful result.
    """

    def is_repository(self, path: Path) -> bool:
        return is_git_repo(path)

    def _attempt(self, path: Path, action: str, fn) -> GitResult:
        try:
            output = fn(GitRepo(path))
        except (RuntimeError, ValueError, OSError) as e:
            logger.debug(f"{action} failed for {path}: {e}")
            return GitResult.failure(str(e))
        return GitResult.success(output or "")

    def has_changes(self, path: Path) -> GitResult:
        """Queries pending changes.

        Returns:
            GitResult: On success, `output` holds the porcelain status lines;
                       empty output means the working tree is clean.
        """
        return self._attempt(
            path, "status", lambda repo: "\n".join(repo.status_porcelain())
        )

    def diff(self, path: Path) -> GitResult:
        """Stages every change and returns the staged diff.

        New files and submodule updates are only visible to a summarizer once
        they are in the index.
        """

        def _diff(repo: GitRepo) -> str:
            repo.add_all()
            return repo.diff(staged=True)

        return self._attempt(path, "diff", _diff)

    def commit(self, path: Path, message: str) -> GitResult:
        """Stages every change and commits it with `message`."""

        def _commit(repo: GitRepo) -> str:
            repo.add_all()
            repo.commit(message)
            return ""

        return self._attempt(path, "commit", _commit)

    def push(self, path: Path, remote: str | None = None) -> GitResult:
        return self._attempt(path, "push", lambda repo: repo.push(remote))

    def is_submodule(self, parent: Path, child: Path) -> bool:
        """Checks whether `child` is already registered as a submodule of `parent`.

        An adopted repository keeps its own `.git` directory, so only the
        parent's index tells it apart from a stray nested repository.
        """
        try:
            rel_path = child.relative_to(parent).as_posix()
            return GitRepo(parent).tracks_submodule(rel_path)
        except (RuntimeError, ValueError, OSError) as e:
            logger.debug(f"Submodule lookup failed for {child}: {e}")
            return False

    def add_submodule(self, parent: Path, child: Path) -> GitResult:
        """Adopts a nested repository as a submodule of its parent.

        The child's `origin` URL is recorded when it has one, otherwise its
        absolute path.

        Args:
            parent (Path): The enclosing repository root.
            child (Path): The nested repository root (an immediate child).
        """
        try:
            url = GitRepo(child).remote_url() or str(child.resolve())
            rel_path = child.relative_to(parent).as_posix()
        except (ValueError, OSError) as e:
            return GitResult.failure(str(e))
        return self._attempt(
            parent, "submodule add", lambda repo: repo.submodule_add(url, rel_path)
        )
