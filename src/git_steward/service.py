import shlex
import shutil
import subprocess
import sys
from pathlib import Path

from rich.console import Console

from .constants import APP_LABEL

console = Console()


def get_executable() -> str:
    """Locates the installed daemon executable in the system path.

    Returns:
        str: The absolute path to the 'git-steward-daemon' executable.

    Raises:
        SystemExit: If the executable is not found in the PATH.
    """
    exe = shutil.which("git-steward-daemon")
    if not exe:
        console.print(
            "[bold red]ERROR:[/bold red] Could not find 'git-steward-daemon'. "
            "Ensure the package is installed."
        )
        sys.exit(1)
    return exe


def get_unit_path() -> Path:
    """Resolves the systemd user unit path.

    Raises:
        NotImplementedError: If called on a platform without systemd.
    """
    if sys.platform.startswith("linux"):
        return Path.home() / f".config/systemd/user/{APP_LABEL}.service"

    raise NotImplementedError("Service installation is only supported on Linux.")


def build_unit(executable: str, root_dir: Path | None, config: Path | None) -> str:
    """Renders the systemd unit running the daemon in the foreground."""
    cmd = [executable]
    if config:
        cmd.extend(["--config", str(config)])
    if root_dir:
        cmd.extend(["--root", str(root_dir)])
    exec_start = " ".join(shlex.quote(arg) for arg in cmd)

    return f"""[Unit]
Description=Git Steward Repository Watchdog

[Service]
ExecStart={exec_start}
Restart=on-failure
RestartSec=30

[Install]
WantedBy=default.target
"""


def install(root_dir: Path | None = None, config: Path | None = None) -> None:
    """Installs and starts the daemon as a systemd user service.

    Args:
        root_dir (Path | None, optional): Scan root passed to the daemon.
        config (Path | None, optional): Config file passed to the daemon.
    """
    if not sys.platform.startswith("linux"):
        console.print(
            "\n[bold yellow]NOTE:[/bold yellow] Service installation is only "
            "supported on Linux (systemd)."
        )
        console.print("Run [green]git-steward run[/green] under your own supervisor.\n")
        return

    exe = get_executable()
    unit_path = get_unit_path()
    unit_path.parent.mkdir(parents=True, exist_ok=True)

    with open(unit_path, "w") as f:
        f.write(build_unit(exe, root_dir, config))

    subprocess.run(["systemctl", "--user", "daemon-reload"], check=True)
    subprocess.run(
        ["systemctl", "--user", "enable", "--now", unit_path.name], check=True
    )
    console.print(
        f"[bold green]SUCCESS:[/bold green] Steward service active.\n"
        f"Check status: systemctl --user status {unit_path.name}"
    )


def uninstall() -> None:
    """Stops the systemd user service and removes its unit file."""
    if not sys.platform.startswith("linux"):
        console.print("[yellow]No service installed on this platform.[/yellow]")
        return

    unit_path = get_unit_path()
    subprocess.run(
        ["systemctl", "--user", "disable", "--now", unit_path.name],
        stderr=subprocess.DEVNULL,
    )
    if unit_path.exists():
        unit_path.unlink()
    subprocess.run(["systemctl", "--user", "daemon-reload"])

    console.print("[bold green]SUCCESS:[/bold green] Service uninstalled.")


def is_service_enabled() -> bool:
    """Checks whether the systemd user service is enabled."""
    if not sys.platform.startswith("linux"):
        return False
    try:
        res = subprocess.run(
            ["systemctl", "--user", "is-enabled", f"{APP_LABEL}.service"],
            capture_output=True,
            text=True,
            timeout=2,
        )
    except (OSError, subprocess.TimeoutExpired):
        return False
    return res.stdout.strip() == "enabled"
