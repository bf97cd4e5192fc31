import shutil
import subprocess
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from git_steward.git_wrapper import GitRepo, GitResult, GitRunner, is_git_repo


def test_git_repo_requires_git_dir(tmp_path: Path) -> None:
    """Verifies that GitRepo refuses a directory that is not a repository."""
    with pytest.raises(ValueError, match="Not a git repository"):
        GitRepo(tmp_path)


def test_is_git_repo_accepts_gitlink_file(tmp_path: Path) -> None:
    assert not is_git_repo(tmp_path)
    (tmp_path / ".git").write_text("gitdir: ../.git/modules/x\n")
    assert is_git_repo(tmp_path)


def test_run_wraps_called_process_error(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies that git failures surface as RuntimeError with git's stderr.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        mocker (MagicMock): Pytest fixture for mocking.
    """
    (tmp_path / ".git").mkdir()
    mocker.patch(
        "subprocess.run",
        side_effect=subprocess.CalledProcessError(
            128, ["git", "push"], stderr="fatal: no upstream\n"
        ),
    )

    with pytest.raises(RuntimeError, match="Git error: fatal: no upstream"):
        GitRepo(tmp_path).push()


def test_run_reports_stdout_when_stderr_is_empty(
    tmp_path: Path, mocker: MagicMock
) -> None:
    """Verifies that a failure explained only on stdout keeps its explanation."""
    (tmp_path / ".git").mkdir()
    mocker.patch(
        "subprocess.run",
        side_effect=subprocess.CalledProcessError(
            1,
            ["git", "commit", "-m", "msg"],
            output="On branch main\nnothing to commit, working tree clean\n",
            stderr="",
        ),
    )

    with pytest.raises(RuntimeError, match="nothing to commit"):
        GitRepo(tmp_path).commit("msg")


def test_push_targets_remote_when_given(tmp_path: Path, mocker: MagicMock) -> None:
    (tmp_path / ".git").mkdir()
    mock_run = mocker.patch.object(GitRepo, "_run", return_value="")

    repo = GitRepo(tmp_path)
    repo.push()
    repo.push("mirror")

    assert mock_run.call_args_list == [
        mocker.call(["push"]),
        mocker.call(["push", "mirror"]),
    ]


def test_runner_reports_failure_instead_of_raising(
    tmp_path: Path, mocker: MagicMock
) -> None:
    """Verifies that each runner operation turns git errors into a failed result."""
    (tmp_path / ".git").mkdir()
    mocker.patch.object(GitRepo, "_run", side_effect=RuntimeError("Git error: boom"))
    runner = GitRunner()

    for result in (
        runner.has_changes(tmp_path),
        runner.diff(tmp_path),
        runner.commit(tmp_path, "msg"),
        runner.push(tmp_path, "origin"),
    ):
        assert result == GitResult.failure("Git error: boom")


def test_runner_reports_missing_repository(tmp_path: Path) -> None:
    result = GitRunner().has_changes(tmp_path / "gone")

    assert not result.ok
    assert "Not a git repository" in result.error


def test_runner_status_and_commit_sequence(tmp_path: Path, mocker: MagicMock) -> None:
    (tmp_path / ".git").mkdir()
    mock_run = mocker.patch.object(GitRepo, "_run", return_value="M a.py\n?? b.py")
    runner = GitRunner()

    status = runner.has_changes(tmp_path)
    assert status == GitResult.success("M a.py\n?? b.py")
    mock_run.assert_called_once_with(
        ["status", "--porcelain", "--ignore-submodules=dirty"]
    )

    mock_run.reset_mock()
    assert runner.commit(tmp_path, "Update a.py").ok
    assert mock_run.call_args_list == [
        mocker.call(["add", "-A"]),
        mocker.call(["commit", "-m", "Update a.py"]),
    ]


def test_runner_diff_stages_before_diffing(
    tmp_path: Path, mocker: MagicMock
) -> None:
    """Verifies that the diff covers new files by diffing the index."""
    (tmp_path / ".git").mkdir()
    mock_run = mocker.patch.object(
        GitRepo, "_run", return_value="diff --git a/n b/n"
    )

    assert GitRunner().diff(tmp_path) == GitResult.success("diff --git a/n b/n")
    assert mock_run.call_args_list == [
        mocker.call(["add", "-A"]),
        mocker.call(["diff", "--cached"]),
    ]


@pytest.mark.parametrize(
    ("ls_files", "expected"),
    [
        ("160000 1f2e3d4c5b6a79881f2e3d4c5b6a79881f2e3d4c 0\tchild", True),
        ("100644 1f2e3d4c5b6a79881f2e3d4c5b6a79881f2e3d4c 0\tchild", False),
        ("", False),
    ],
)
def test_is_submodule_reads_parent_index(
    tmp_path: Path, mocker: MagicMock, ls_files: str, expected: bool
) -> None:
    parent = tmp_path / "parent"
    (parent / ".git").mkdir(parents=True)
    mock_run = mocker.patch.object(GitRepo, "_run", return_value=ls_files)

    assert GitRunner().is_submodule(parent, parent / "child") is expected
    mock_run.assert_called_once_with(["ls-files", "--stage", "--", "child"])


def test_is_submodule_is_false_when_git_fails(
    tmp_path: Path, mocker: MagicMock
) -> None:
    parent = tmp_path / "parent"
    (parent / ".git").mkdir(parents=True)
    mocker.patch.object(GitRepo, "_run", side_effect=RuntimeError("Git error: bad"))

    assert GitRunner().is_submodule(parent, parent / "child") is False


def test_add_submodule_prefers_origin_url(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies the recorded URL and relative path of an adopted repository."""
    parent = tmp_path / "parent"
    child = parent / "child"
    (child / ".git").mkdir(parents=True)
    (parent / ".git").mkdir()

    calls = []

    def fake_run(self, args, capture=True, env=None):
        calls.append((self.path, args))
        if args[:2] == ["remote", "get-url"]:
            return "git@example.com:me/child.git"
        return ""

    mocker.patch.object(GitRepo, "_run", fake_run)

    assert GitRunner().add_submodule(parent, child).ok
    assert calls[-1] == (
        parent,
        ["submodule", "add", "git@example.com:me/child.git", "child"],
    )


def test_add_submodule_falls_back_to_local_path(
    tmp_path: Path, mocker: MagicMock
) -> None:
    parent = tmp_path / "parent"
    child = parent / "child"
    (child / ".git").mkdir(parents=True)
    (parent / ".git").mkdir()

    def fake_run(self, args, capture=True, env=None):
        if args[:2] == ["remote", "get-url"]:
            raise RuntimeError("Git error: No such remote 'origin'")
        return ""

    mocker.patch.object(GitRepo, "_run", fake_run)
    submodule_add = mocker.spy(GitRepo, "submodule_add")

    assert GitRunner().add_submodule(parent, child).ok
    submodule_add.assert_called_once_with(mocker.ANY, str(child.resolve()), "child")


def _git(path: Path, *args: str) -> None:
    subprocess.run(["git", *args], cwd=path, check=True, capture_output=True)


@pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")
def test_runner_against_real_repository(tmp_path: Path) -> None:
    """Verifies status, diff and commit on a real repository, and that a push
    without a remote fails while keeping the commit."""
    _git(tmp_path, "init", "-q")
    _git(tmp_path, "config", "user.email", "steward@example.com")
    _git(tmp_path, "config", "user.name", "Steward")
    (tmp_path / "notes.txt").write_text("one\n")
    runner = GitRunner()

    status = runner.has_changes(tmp_path)
    assert status.ok and "notes.txt" in status.output

    assert runner.commit(tmp_path, "Add notes").ok
    assert runner.has_changes(tmp_path) == GitResult.success("")

    (tmp_path / "notes.txt").write_text("two\n")
    diff = runner.diff(tmp_path)
    assert diff.ok and "+two" in diff.output
    assert runner.commit(tmp_path, "Edit notes").ok

    (tmp_path / "todo.txt").write_text("new\n")
    diff = runner.diff(tmp_path)
    assert diff.ok and "b/todo.txt" in diff.output
    assert runner.commit(tmp_path, "Add todo").ok

    push = runner.push(tmp_path)
    assert not push.ok

    log = subprocess.run(
        ["git", "log", "--format=%s"],
        cwd=tmp_path,
        check=True,
        capture_output=True,
        text=True,
    )
    assert log.stdout.splitlines() == ["Add todo", "Edit notes", "Add notes"]
