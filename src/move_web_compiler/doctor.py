"""
Move Web Compiler Doctor - Environment validation and troubleshooting.

Run this before starting the server to verify the Sui toolchain and the
workspace directory are usable.

Usage:
    move-web-compiler-doctor
    move-web-compiler-doctor --env-file deploy/.env
"""

from __future__ import annotations

import argparse
import os
import shutil
import subprocess
import sys
import tempfile
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from move_web_compiler.config import Settings
from move_web_compiler.errors import BinaryNotExecutableError, BinaryNotFoundError
from move_web_compiler.utils import validate_binary

console = Console()

# Failures here are reported but do not fail the run
OPTIONAL_CHECKS = frozenset({"Static Files", ".env File"})


# ---------------------------------------------------------------------------
# Check Functions
# ---------------------------------------------------------------------------


def check_sui_cli(sui_bin: str) -> tuple[bool, str, str | None]:
    """Check that the Sui CLI resolves and answers `--version`."""
    resolved = shutil.which(sui_bin)
    if resolved:
        try:
            validate_binary(Path(resolved), binary_name="Sui CLI")
        except (BinaryNotFoundError, BinaryNotExecutableError) as e:
            return False, str(e), None
        try:
            result = subprocess.run(
                [resolved, "--version"],
                check=False,
                capture_output=True,
                text=True,
                timeout=10,
            )
            if result.returncode == 0:
                version = result.stdout.strip().split("\n")[0]
                return True, f"Sui CLI found: {version} ({resolved})", None
            return False, f"`{sui_bin} --version` exited with {result.returncode}", None
        except (subprocess.TimeoutExpired, OSError) as e:
            return False, f"`{sui_bin} --version` failed: {e}", None
    return (
        False,
        f"Sui CLI not found ({sui_bin}). Required for every build and proxied command.",
        "cargo install --locked --git https://github.com/MystenLabs/sui.git sui",
    )


def check_workspace_root(root: Path) -> tuple[bool, str, str | None]:
    """Check the workspace root exists and a directory can be created inside it."""
    if not root.is_dir():
        return False, f"Workspace root does not exist: {root}", f"mkdir -p {root}"
    try:
        probe = Path(tempfile.mkdtemp(prefix=".doctor-", dir=root))
        probe.rmdir()
    except OSError as e:
        return False, f"Workspace root not writable: {root} ({e})", None
    return True, f"Workspace root writable: {root}", None


def check_static_dir(static_dir: Path) -> tuple[bool, str, str | None]:
    if (static_dir / "index.html").is_file():
        return True, f"Static files found: {static_dir}", None
    if static_dir.is_dir():
        return False, f"Static directory has no index.html: {static_dir}", None
    return False, f"Static directory not found: {static_dir} (API only)", None


def check_env_file(env_file: Path) -> tuple[bool, str, str | None]:
    if env_file.is_file():
        return True, f".env file found: {env_file}", None
    return False, f".env file not found: {env_file} (using environment and defaults)", None


def check_python_deps() -> tuple[bool, str, str | None]:
    """Check if Python dependencies are installed."""
    try:
        import prometheus_client  # noqa: F401
        import rich  # noqa: F401
        import starlette  # noqa: F401
        import uvicorn  # noqa: F401

        return True, "Python dependencies installed", None
    except ImportError as e:
        return (
            False,
            f"Missing Python dependency: {e.name}",
            "pip install -e .",
        )


# ---------------------------------------------------------------------------
# Main Doctor Logic
# ---------------------------------------------------------------------------


def run_checks(settings: Settings, env_file: Path) -> list[tuple[str, bool, str, str | None]]:
    """
    Run all environment checks.

    Returns:
        List of (check_name, passed, message, fix_command)
    """
    results: list[tuple[str, bool, str, str | None]] = []

    ok, msg, fix = check_sui_cli(settings.sui_bin)
    results.append(("Sui CLI", ok, msg, fix))
    ok, msg, fix = check_workspace_root(settings.workspace_root)
    results.append(("Workspace Root", ok, msg, fix))
    ok, msg, fix = check_python_deps()
    results.append(("Python Deps", ok, msg, fix))
    ok, msg, fix = check_static_dir(settings.static_dir)
    results.append(("Static Files", ok, msg, fix))
    ok, msg, fix = check_env_file(env_file)
    results.append((".env File", ok, msg, fix))

    return results


def print_results(results: list[tuple[str, bool, str, str | None]]) -> bool:
    """Print check results and return whether every required check passed."""
    table = Table(title="Move Web Compiler Environment Check", show_header=True)
    table.add_column("Check", style="cyan", width=15)
    table.add_column("Status", width=6)
    table.add_column("Details", style="dim")

    all_passed = True
    fixes: list[tuple[str, str]] = []

    for name, passed, message, fix in results:
        optional = name in OPTIONAL_CHECKS
        if passed:
            status = "[green]✓[/green]"
        elif optional:
            status = "[yellow]![/yellow]"
        else:
            status = "[red]✗[/red]"
        table.add_row(name, status, message)
        if not passed:
            if not optional:
                all_passed = False
            if fix:
                fixes.append((name, fix))

    console.print(table)

    if fixes:
        console.print()
        console.print(
            Panel.fit(
                "\n".join([f"[bold]{name}:[/bold] {cmd}" for name, cmd in fixes]),
                title="[yellow]Suggested Fixes[/yellow]",
                border_style="yellow",
            )
        )

    return all_passed


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Move Web Compiler Doctor - Environment validation and troubleshooting",
    )
    parser.add_argument("--env-file", type=Path, default=Path(".env"))
    args = parser.parse_args(argv)

    console.print("[bold blue]Move Web Compiler Doctor[/bold blue]")
    console.print()

    settings = Settings.from_env(os.environ, dotenv_path=args.env_file)
    all_passed = print_results(run_checks(settings, args.env_file))

    console.print()
    if all_passed:
        console.print("[bold green]✓ All required checks passed! Ready to compile.[/bold green]")
    else:
        console.print("[bold red]✗ Some checks failed. See suggested fixes above.[/bold red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
