from __future__ import annotations

import argparse
import dataclasses
import os
import sys
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from move_web_compiler.config import Settings
from move_web_compiler.constants import BYTECODE_DIR_NAME, SOURCES_DIR_NAME
from move_web_compiler.logging import configure_logging
from move_web_compiler.pipeline import CompileRequest, CompileResult, CompileService
from move_web_compiler.workspace import parse_address_pairs, render_address_section

console = Console()


def _address_config(args) -> str | None:
    """
    --address-file wins over --address. Neither, or no usable --address binding,
    means default addresses.
    """
    if args.address_file is not None:
        return args.address_file.read_text(encoding="utf-8")
    bindings = parse_address_pairs(args.address)
    if not bindings:
        if args.address:
            console.print("[yellow]No valid --address bindings, using default addresses[/yellow]")
        return None
    return render_address_section(bindings)


def print_usage_guide(workspace: Path) -> None:
    console.print()
    console.rule("Sui CLI usage")
    console.print(f"Sources:  {workspace / SOURCES_DIR_NAME}")
    console.print(f"Bytecode: {workspace / BYTECODE_DIR_NAME}")
    console.print("\n[bold]Local testing[/bold]")
    console.print(f"  sui move test --path {workspace}")
    console.print("\n[bold]Publish[/bold]")
    console.print(f"  testnet: sui client publish --path {workspace} --gas-budget 100000000 --testnet")
    console.print(f"  mainnet: sui client publish --path {workspace} --gas-budget 100000000 --mainnet")
    console.print("\n[bold]On-chain[/bold]")
    console.print("  sui client call --package <published package id> --module <module> --function <fn> --gas-budget 10000000")
    console.print("  sui client objects")


def print_result(result: CompileResult, *, verbose: bool) -> None:
    if verbose:
        console.print(f"Compiled {len(result.encoded_modules)} module(s) in {result.elapsed_ms}ms")
        if result.warnings:
            console.print("\n[yellow]Warnings:[/yellow]")
            for warning in result.warnings:
                console.print(f"- {escape(warning)}")

    table = Table(title="Modules")
    table.add_column("#", justify="right")
    table.add_column("Name")
    table.add_column("Estimated size", justify="right")
    for i, record in enumerate(result.modules, start=1):
        table.add_row(str(i), record.name, f"{record.size_estimate} bytes")
    console.print(table)

    if verbose:
        for record in result.modules:
            console.print(f"\n[bold]{record.name}[/bold]")
            console.print(record.encoded_bytes, soft_wrap=True)


def compile_file(args, settings: Settings) -> int:
    source_path: Path = args.source
    if not source_path.is_file():
        console.print(f"[red]Source file not found: {escape(str(source_path))}[/red]")
        return 1

    if args.verbose:
        console.print(f"Reading source file: {source_path}")
    try:
        source_code = source_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        console.print(f"[red]Cannot read source file: {escape(str(e))}[/red]")
        return 1
    try:
        address_config = _address_config(args)
    except (OSError, UnicodeDecodeError) as e:
        console.print(f"[red]Cannot read address file: {escape(str(e))}[/red]")
        return 1

    service = CompileService.from_settings(settings)
    result = service.compile(
        CompileRequest(
            source_code=source_code,
            file_name=source_path.name,
            address_config=address_config,
        )
    )
    if not result.success:
        console.print(f"[red]Error: {escape(result.error or '')}[/red]")
        return 1

    print_result(result, verbose=args.verbose)
    if result.workspace_path is not None:
        print_usage_guide(result.workspace_path)
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Compile Sui Move sources and serve the web compiler")
    parser.add_argument("--env-file", type=Path, default=Path(".env"))
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_compile = subparsers.add_parser("compile", help="Compile a single Move source file")
    p_compile.add_argument("-s", "--source", type=Path, required=True, help="Path to the .move source file")
    p_compile.add_argument("-v", "--verbose", action="store_true", help="Print timing and base64 bytecode")
    p_compile.add_argument(
        "--address",
        action="append",
        default=[],
        metavar="NAME=ADDR",
        help="Named address binding (repeatable, or comma-separated)",
    )
    p_compile.add_argument("--address-file", type=Path, help="File holding a Move.toml [addresses] section")
    p_compile.add_argument("--workspace-root", type=Path, help="Directory for build workspaces")

    p_serve = subparsers.add_parser("serve", help="Run the HTTP server")
    p_serve.add_argument("--host", type=str, default=None)
    p_serve.add_argument("--port", type=int, default=None)

    args = parser.parse_args(argv)
    settings = Settings.from_env(os.environ, dotenv_path=args.env_file)
    configure_logging(settings.log_level)

    if args.command == "compile":
        if args.workspace_root is not None:
            settings = dataclasses.replace(settings, workspace_root=args.workspace_root)
        sys.exit(compile_file(args, settings))
    elif args.command == "serve":
        from move_web_compiler.server import serve

        serve(settings, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
