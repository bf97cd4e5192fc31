from pathlib import Path
from unittest.mock import MagicMock

import pytest
from rich.console import Console

from git_steward import cli
from git_steward.cache import FileCache
from git_steward.constants import REPOS_CACHE_KEY
from git_steward.monitor import RepoFailure, TickReport


@pytest.fixture(autouse=True)
def wide_console(mocker: MagicMock) -> None:
    """Keeps table cells on one line so paths can be asserted on."""
    mocker.patch("git_steward.cli.console", Console(width=400))


@pytest.fixture
def workspace(tmp_path: Path) -> tuple[Path, Path]:
    """Creates a scan root with two repositories and a config file for it.

    Returns:
        tuple[Path, Path]: The config file and the cache file it points to.
    """
    root = tmp_path / "work"
    for name in ("alpha", "beta-archive"):
        (root / name / ".git").mkdir(parents=True)
    cache_file = tmp_path / "repos.cache"
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        "[scan]\n"
        f'root_dir = "{root}"\n'
        'check_excludes = ["archive"]\n'
        "[cache]\n"
        f'file = "{cache_file}"\n'
    )
    return config_path, cache_file


def test_scan_prints_repositories_and_fills_cache(
    workspace: tuple[Path, Path], capsys: pytest.CaptureFixture
) -> None:
    """Verifies that 'scan' renders the table and persists the result.

    Args:
        workspace (tuple[Path, Path]): Config and cache files.
        capsys (pytest.CaptureFixture): Pytest fixture for capturing output.
    """
    config_path, cache_file = workspace

    cli.main(["--config", str(config_path), "scan"])

    out = capsys.readouterr().out
    assert "alpha" in out
    assert "beta-archive" in out
    assert "Excluded" in out
    assert REPOS_CACHE_KEY in FileCache(cache_file)


def test_list_without_cache(
    workspace: tuple[Path, Path], capsys: pytest.CaptureFixture
) -> None:
    config_path, _ = workspace

    cli.main(["--config", str(config_path), "list"])

    assert "No cached scan" in capsys.readouterr().out


def test_rescan_picks_up_new_repositories(
    workspace: tuple[Path, Path], capsys: pytest.CaptureFixture
) -> None:
    config_path, cache_file = workspace
    cli.main(["--config", str(config_path), "scan"])
    root = Path(FileCache(cache_file).get(REPOS_CACHE_KEY).split(";")[0]).parent
    (root / "gamma" / ".git").mkdir(parents=True)
    capsys.readouterr()

    cli.main(["--config", str(config_path), "list"])
    assert "gamma" not in capsys.readouterr().out

    cli.main(["--config", str(config_path), "rescan"])
    assert "gamma" in capsys.readouterr().out


def test_clear_cache(workspace: tuple[Path, Path], capsys: pytest.CaptureFixture) -> None:
    config_path, cache_file = workspace
    cli.main(["--config", str(config_path), "scan"])

    cli.main(["--config", str(config_path), "clear-cache"])

    assert FileCache(cache_file).keys() == []
    assert "Cache cleared" in capsys.readouterr().out


def test_now_exits_non_zero_on_failures(
    workspace: tuple[Path, Path], mocker: MagicMock, capsys: pytest.CaptureFixture
) -> None:
    """Verifies that a one-off check reports failures through its exit code."""
    config_path, _ = workspace
    repo = Path("/work/alpha")
    manager = mocker.patch("git_steward.cli.GitManager").return_value
    manager.scanner.issues = []
    manager.run_once.return_value = TickReport(
        processed=[repo],
        committed=[repo],
        failures=[RepoFailure(repo, "push", "rejected")],
    )

    with pytest.raises(SystemExit) as exc:
        cli.main(["--config", str(config_path), "now"])

    assert exc.value.code == 1
    assert "push failed" in capsys.readouterr().out


def test_invalid_config_exits(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text(f'[scan]\nroot_dir = "{tmp_path / "missing"}"\n')

    with pytest.raises(SystemExit) as exc:
        cli.main(["--config", str(config_path), "scan"])

    assert exc.value.code == 1
    assert "Root directory does not exist" in capsys.readouterr().err


def test_config_list_prints_schema(capsys: pytest.CaptureFixture) -> None:
    cli.main(["config", "--list"])

    out = capsys.readouterr().out
    assert "check_interval" in out
    assert "alternative_remotes" in out


def test_help_groups_commands(capsys: pytest.CaptureFixture) -> None:
    cli.main([])

    out = capsys.readouterr().out
    assert "Monitoring:" in out
    assert "Discovery:" in out
    assert "clear-cache" in out
