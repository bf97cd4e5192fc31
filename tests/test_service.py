from pathlib import Path
from unittest.mock import MagicMock

from git_steward import service


def test_build_unit_passes_root_and_config() -> None:
    unit = service.build_unit(
        "/usr/bin/git-steward-daemon", Path("/srv/code"), Path("/etc/steward.toml")
    )

    assert (
        "ExecStart=/usr/bin/git-steward-daemon --config /etc/steward.toml "
        "--root /srv/code\n"
    ) in unit
    assert "Restart=on-failure" in unit
    assert "WantedBy=default.target" in unit


def test_install_writes_unit_and_enables_it(
    tmp_path: Path, mocker: MagicMock
) -> None:
    """Verifies the systemd user unit installation flow.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        mocker (MagicMock): Pytest fixture for mocking.
    """
    mocker.patch("sys.platform", "linux")
    unit_path = tmp_path / "systemd" / "io.github.gitsteward.service"
    mocker.patch("git_steward.service.get_unit_path", return_value=unit_path)
    mocker.patch(
        "git_steward.service.get_executable", return_value="/bin/git-steward-daemon"
    )
    mock_run = mocker.patch("subprocess.run")

    service.install(root_dir=Path("/srv/code"))

    assert "--root /srv/code" in unit_path.read_text()
    commands = [c.args[0] for c in mock_run.call_args_list]
    assert ["systemctl", "--user", "daemon-reload"] in commands
    assert [
        "systemctl",
        "--user",
        "enable",
        "--now",
        "io.github.gitsteward.service",
    ] in commands


def test_install_outside_linux_is_a_note(mocker: MagicMock) -> None:
    mocker.patch("sys.platform", "darwin")
    mock_run = mocker.patch("subprocess.run")

    service.install()

    mock_run.assert_not_called()


def test_uninstall_removes_unit(tmp_path: Path, mocker: MagicMock) -> None:
    mocker.patch("sys.platform", "linux")
    unit_path = tmp_path / "io.github.gitsteward.service"
    unit_path.write_text("[Unit]\n")
    mocker.patch("git_steward.service.get_unit_path", return_value=unit_path)
    mocker.patch("subprocess.run")

    service.uninstall()

    assert not unit_path.exists()


def test_build_unit_quotes_paths_with_spaces() -> None:
    """Verifies that each ExecStart argument survives systemd word splitting."""
    unit = service.build_unit(
        "/usr/bin/git-steward-daemon",
        Path("/home/me/My Projects"),
        Path("/home/me/steward config.toml"),
    )

    assert (
        "ExecStart=/usr/bin/git-steward-daemon "
        "--config '/home/me/steward config.toml' "
        "--root '/home/me/My Projects'\n"
    ) in unit
