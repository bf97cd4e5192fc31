import argparse
import logging
import os
import subprocess
import sys
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from . import daemon, service, system
from .cache import CacheError, FileCache
from .config import ManagerConfig
from .constants import APP_NAME, CONFIG_FILE, LOG_FILE, REPOS_CACHE_KEY
from .git_wrapper import GitRunner
from .manager import GitManager
from .monitor import TickReport
from .scanner import RepoScanner, RepositoryEntry, ScanIssue

logger = logging.getLogger(APP_NAME)
console = Console()


def _display_path(path: Path) -> str:
    return str(path).replace(str(Path.home()), "~")


def _open_cache(config: ManagerConfig) -> FileCache:
    try:
        return FileCache(config.cache.file)
    except CacheError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        sys.exit(1)


def _print_repo_table(repos: list[RepositoryEntry]) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Repository", style="cyan")
    table.add_column("Checks")
    table.add_column("Push Remote", style="dim")

    for repo in repos:
        checks = (
            "[yellow]Excluded[/yellow]"
            if repo.excluded_from_checks
            else "[green]Active[/green]"
        )
        table.add_row(
            _display_path(repo.path), checks, repo.alternative_remote or "default"
        )

    console.print(table)


def _print_issues(issues: list[ScanIssue]) -> None:
    if not issues:
        return
    console.print(f"[yellow]⚠ {len(issues)} scan issue(s):[/yellow]")
    for issue in issues:
        console.print(
            f"   - {_display_path(issue.path)} ({issue.operation}): {issue.message}"
        )


def scan_repos(config: ManagerConfig, rescan: bool = False) -> None:
    """Runs a scan (served from the cache unless `rescan`) and prints the result.

    Args:
        config (ManagerConfig): The loaded configuration.
        rescan (bool, optional): Drop the cached result first. Defaults to False.
    """
    cache = _open_cache(config)
    scanner = RepoScanner(config.scan, cache)
    if rescan:
        try:
            scanner.invalidate()
        except CacheError as e:
            console.print(f"[bold red]ERROR:[/bold red] {e}")
            sys.exit(1)

    with console.status(
        f"[bold blue]Scanning {_display_path(config.scan.root_dir)}...",
        spinner="dots",
    ):
        repos = scanner.scan()

    if not repos:
        console.print("[yellow]No repositories found.[/yellow]")
    else:
        _print_repo_table(repos)
    _print_issues(scanner.issues)


def list_repos(config: ManagerConfig) -> None:
    """Lists the cached repositories without walking the directory tree."""
    cache = _open_cache(config)
    if REPOS_CACHE_KEY not in cache:
        console.print(
            "[yellow]No cached scan. Run 'git-steward scan' first.[/yellow]"
        )
        return
    _print_repo_table(RepoScanner(config.scan, cache).scan())


def clear_cache(config: ManagerConfig) -> None:
    """Removes every entry from the cache file."""
    cache = _open_cache(config)
    try:
        cache.clear()
    except CacheError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        sys.exit(1)
    console.print("✔ Cache cleared. The next run will rescan.", style="green")


def _print_tick_report(report: TickReport) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Repository", style="cyan")
    table.add_column("Result")

    failed = {f.path: f for f in report.failures}
    for path in report.processed:
        if path in failed:
            f = failed[path]
            result = f"[bold red]{f.operation} failed:[/bold red] {f.message}"
        elif path in report.pushed:
            result = "[green]Committed and pushed[/green]"
        elif path in report.committed:
            result = "[yellow]Committed[/yellow]"
        else:
            result = "[dim]Clean[/dim]"
        table.add_row(_display_path(path), result)
    for path in report.skipped:
        table.add_row(_display_path(path), "[dim]Excluded from checks[/dim]")

    console.print(table)


def run_now(config: ManagerConfig) -> None:
    """Scans and runs a single monitor tick in the foreground."""
    try:
        manager = GitManager(config)
    except CacheError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        sys.exit(1)

    with console.status("[bold blue]Checking repositories...", spinner="dots"):
        report = manager.run_once()

    if not report.processed and not report.skipped:
        console.print("[yellow]No repositories found.[/yellow]")
    else:
        _print_tick_report(report)
    _print_issues(manager.scanner.issues)

    if report.failures:
        sys.exit(1)


def show_status(config: ManagerConfig) -> None:
    """Displays the daemon state and the pending changes of cached repositories."""
    pid = system.read_daemon_pid()
    if pid:
        status_text, status_style = f"Active (PID {pid})", "bold green"
    elif service.is_service_enabled():
        status_text, status_style = "Enabled (Not Running)", "yellow"
    else:
        status_text, status_style = "Stopped", "bold red"

    content = Text()
    content.append("Daemon:   ", style="bold")
    content.append(status_text + "\n", style=status_style)
    content.append("Root:     ", style="bold")
    content.append(_display_path(config.scan.root_dir) + "\n")
    content.append("Interval: ", style="bold")
    content.append(f"{config.monitor.check_interval}s")
    console.print(Panel(content, title="System Status", expand=False))

    cache = _open_cache(config)
    if REPOS_CACHE_KEY not in cache:
        console.print("[dim]No cached scan yet.[/dim]")
        return

    runner = GitRunner()
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Repository", style="cyan")
    table.add_column("Pending", justify="right")

    for repo in RepoScanner(config.scan, cache, runner).scan():
        if repo.excluded_from_checks:
            pending = "[dim]excluded[/dim]"
        elif not repo.path.exists():
            pending = "[red]missing[/red]"
        else:
            res = runner.has_changes(repo.path)
            if not res.ok:
                pending = f"[red]error: {res.error}[/red]"
            else:
                count = len(res.output.splitlines())
                pending = f"{count} files" if count else "[green]clean[/green]"
        table.add_row(_display_path(repo.path), pending)

    console.print(table)


def open_config() -> None:
    """Opens the global configuration file in the system default editor."""
    if not CONFIG_FILE.exists():
        CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
        with open(CONFIG_FILE, "w") as f:
            f.write(
                "# Git Steward Configuration\n\n"
                "[scan]\n"
                '# root_dir = "~/code"\n'
                '# excludes = ["build"]\n\n'
                "[monitor]\n"
                '# check_interval = "30m"\n'
            )

    editor = os.environ.get("EDITOR")
    if not editor:
        if sys.platform == "darwin":
            editor = "open"
        else:
            editor = "nano"

    console.print(f"Opening [cyan]{CONFIG_FILE}[/cyan]...")

    try:
        subprocess.run([editor, str(CONFIG_FILE)])
    except OSError as e:
        console.print(f"[red]Could not open editor: {e}[/red]")


def show_config_reference() -> None:
    """Displays a formatted table of all available configuration options."""
    table = Table(title="Git Steward Configuration Schema", show_lines=True)
    table.add_column("Section", style="cyan", justify="right")
    table.add_column("Key", style="green")
    table.add_column("Type", style="dim")
    table.add_column("Default", style="yellow")
    table.add_column("Description")

    table.add_row(
        "scan", "root_dir", "str", "cwd", "Directory scanned for repositories."
    )
    table.add_row(
        "",
        "excludes",
        "list",
        '["node_modules", ".git", ".venv"]',
        "Name substrings pruned from the scan (appended to defaults).",
    )
    table.add_row(
        "",
        "check_excludes",
        "list",
        "[]",
        "Name substrings of repositories that are never committed or pushed.",
    )
    table.add_row(
        "",
        "alternative_remotes",
        "table",
        "{}",
        "Repository name = remote used instead of the default push target.",
    )
    table.add_row(
        "monitor",
        "check_interval",
        "int | str",
        '"30m"',
        "Time between checks (e.g., '30m', '1hr', 600).",
    )
    table.add_row(
        "cache",
        "file",
        "str",
        '"~/.local/state/git-steward/repos.cache"',
        "Scan cache. Clear it (or run 'rescan') after adding repositories.",
    )
    table.add_row(
        "summary",
        "command",
        "str",
        "None",
        "Command reading the diff on stdin and printing a commit message.",
    )
    table.add_row(
        "", "timeout", "int | str", '"60s"', "Time limit for the summary command."
    )
    table.add_row(
        "", "max_files", "int", "3", "File names listed in built-in summaries."
    )
    table.add_row(
        "limits",
        "max_log_size",
        "int | str",
        '"5mb"',
        "Max size for log files before rotation (e.g., '5mb', '1gb').",
    )

    console.print(table)


def tail_log() -> None:
    """Follows the daemon log file in real-time."""
    if not LOG_FILE.exists():
        console.print(f"[red]No log file found yet at {LOG_FILE}.[/red]")
        return

    console.print(f"Tailing [bold cyan]{LOG_FILE}[/bold cyan] (Ctrl+C to stop)...")
    try:
        subprocess.run(["tail", "-n", "1000", "-f", str(LOG_FILE)])
    except KeyboardInterrupt:
        console.print("\nStopped.", style="dim")


class StewardHelpFormatter(argparse.HelpFormatter):
    """Custom help formatter grouping the subcommands into logical categories."""

    def _format_action(self, action: argparse.Action) -> str:
        if isinstance(action, argparse._SubParsersAction):
            parts = []

            groups = {
                "Monitoring": ["run", "now", "status"],
                "Discovery": ["scan", "rescan", "list", "clear-cache"],
                "Maintenance": ["config", "log"],
                "Service": ["install-service", "uninstall-service"],
                "General": ["help"],
            }

            subactions = list(self._iter_indented_subactions(action))

            for group_name, commands in groups.items():
                group_actions = [a for a in subactions if a.dest in commands]
                if not group_actions:
                    continue

                parts.append(f"\n  {group_name}:\n")

                self._indent()
                for subaction in group_actions:
                    parts.append(self._format_action(subaction))
                self._dedent()

            return self._join_parts(parts)

        return super()._format_action(action)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        formatter_class=StewardHelpFormatter,
    )

    # Global flags
    parser.add_argument("--config", type=Path, help="Path to the config file")
    parser.add_argument("--root", type=Path, help="Directory to scan")

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Run the monitor in the foreground")
    subparsers.add_parser("now", help="Scan and check every repository once")
    subparsers.add_parser("status", help="Show daemon and repository status")
    subparsers.add_parser("scan", help="Discover repositories (uses the cache)")
    subparsers.add_parser("rescan", help="Drop the cache and scan again")
    subparsers.add_parser("list", help="List cached repositories")
    subparsers.add_parser("clear-cache", help="Remove all cache entries")

    config_parser = subparsers.add_parser(
        "config", help="Open global config file or view options"
    )
    config_parser.add_argument(
        "--list",
        "-l",
        action="store_true",
        help="List all available configuration options and their descriptions",
    )

    subparsers.add_parser("log", help="Tail the daemon log file")
    subparsers.add_parser("install-service", help="Install the background daemon")
    subparsers.add_parser("uninstall-service", help="Uninstall the background daemon")
    subparsers.add_parser("help", help="Show this help message")

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the Git Steward CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Commands that need no configuration.
    if args.command in (None, "help"):
        parser.print_help()
        return
    elif args.command == "config":
        if args.list:
            show_config_reference()
        else:
            open_config()
        return
    elif args.command == "log":
        tail_log()
        return
    elif args.command == "uninstall-service":
        with console.status("Uninstalling service...", spinner="dots"):
            service.uninstall()
        return
    elif args.command == "install-service":
        with console.status("Installing background service...", spinner="dots"):
            service.install(
                root_dir=args.root.resolve() if args.root else None,
                config=args.config.resolve() if args.config else None,
            )
        return

    config = daemon.load_config(args.config, args.root)

    if args.command == "run":
        daemon.setup_logging(interactive=True)
        console.print(
            f"[bold blue]Git Steward[/bold blue] watching "
            f"[cyan]{_display_path(config.scan.root_dir)}[/cyan] (Ctrl+C to stop)..."
        )
        daemon.run(config, interactive=True)
    elif args.command == "now":
        run_now(config)
    elif args.command == "status":
        show_status(config)
    elif args.command == "scan":
        scan_repos(config)
    elif args.command == "rescan":
        scan_repos(config, rescan=True)
    elif args.command == "list":
        list_repos(config)
    elif args.command == "clear-cache":
        clear_cache(config)


if __name__ == "__main__":
    main()
