"""
Command-line entry point for cloudcode-exec.
"""

import argparse
import json
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from .core.config import ConfigManager, ServiceConfig
from .core.exceptions import CloudCodeExecError, format_error_message
from .core.logging import setup_logging
from .environment.installer import DependencyInstaller
from .environment.probe import check_environment
from .environment.provisioner import EnvironmentProvisioner
from .environment.workspace import WorkspaceLayout
from .execution.engine import ExecutionEngine
from .execution.models import RunRequest, RunStatus
from .languages import supported_languages

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_TIMEOUT = 124

console = Console()
err_console = Console(stderr=True)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cloudcode-exec",
        description="Run untrusted project code and interactive terminals.",
    )
    parser.add_argument("--config", type=Path, help="Path to cloudcode_exec.yaml (or .json).")
    parser.add_argument("--base-dir", help="Directory holding per-project working directories.")
    parser.add_argument("--log-level", help="Log level (default from config: INFO).")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP/websocket service.")
    serve.add_argument("--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=5000, help="Port to bind to (default: 5000)")

    run = sub.add_parser("run", help="Run a source file once.")
    run.add_argument("file", type=Path, help="Source file to run.")
    run.add_argument("--language", "-l", required=True, help="Language id or alias.")
    run.add_argument("--project", "-p", required=True, help="Project identifier.")
    run.add_argument("--timeout", "-t", type=int, help="Timeout in seconds.")
    run.add_argument("--stdin-file", type=Path, help="File whose contents are sent to stdin.")
    run.add_argument("--dep", action="append", default=[], help="Dependency to install first (repeatable).")
    run.add_argument("--json", action="store_true", help="Print the result envelope as JSON.")

    install = sub.add_parser("install", help="Install dependencies into a project environment.")
    install.add_argument("project", help="Project identifier.")
    install.add_argument("dependencies", nargs="+", help="name, name==version or name@version")
    install.add_argument("--language", "-l", required=True, help="Language id or alias.")

    sub.add_parser("doctor", help="Check which runtimes are available.")
    sub.add_parser("languages", help="List supported languages.")
    return parser


def _load_config(args: argparse.Namespace) -> ServiceConfig:
    config = ConfigManager(config_path=args.config).config
    if args.base_dir:
        config.base_directory = args.base_dir
    if args.log_level:
        config.logging.level = args.log_level
    return config


def _build_engine(config: ServiceConfig) -> ExecutionEngine:
    layout = WorkspaceLayout(config.base_path)
    provisioner = EnvironmentProvisioner(layout, config.provisioning)
    installer = DependencyInstaller(provisioner, config.install)
    return ExecutionEngine(provisioner, installer, config.execution)


def _cmd_serve(args: argparse.Namespace, config: ServiceConfig) -> int:
    import uvicorn

    from .server.app import create_app

    uvicorn.run(create_app(config), host=args.host, port=args.port)
    return EXIT_OK


def _cmd_run(args: argparse.Namespace, config: ServiceConfig) -> int:
    source = args.file.read_text(encoding="utf-8")
    stdin = args.stdin_file.read_text(encoding="utf-8") if args.stdin_file else None
    request = RunRequest(
        project_id=args.project,
        language=args.language,
        source_text=source,
        stdin=stdin,
        timeout_seconds=args.timeout,
        dependencies=list(args.dep),
    )
    result = _build_engine(config).run(request)

    if args.json:
        console.print_json(json.dumps(result.to_dict()))
    else:
        if result.output:
            sys.stdout.write(result.output + "\n")
        if result.error_output:
            sys.stderr.write(result.error_output + "\n")
        style = "green" if result.succeeded else "red"
        err_console.print(
            f"[{style}]{result.status.value}[/{style}] exit={result.exit_code} time={result.elapsed_ms}ms"
        )

    if result.status is RunStatus.TIMEOUT:
        return EXIT_TIMEOUT
    return EXIT_OK if result.succeeded else EXIT_FAILED


def _cmd_install(args: argparse.Namespace, config: ServiceConfig) -> int:
    layout = WorkspaceLayout(config.base_path)
    installer = DependencyInstaller(EnvironmentProvisioner(layout, config.provisioning), config.install)
    result = installer.install(args.project, args.language, args.dependencies)

    table = Table(title=f"Dependencies for {args.project}")
    table.add_column("Package")
    table.add_column("Version")
    table.add_column("Status")
    table.add_column("Error", overflow="fold")
    for outcome in result.outcomes:
        status = "[green]installed[/green]" if outcome.installed else "[red]failed[/red]"
        table.add_row(outcome.name, outcome.version or "-", status, outcome.error or "")
    console.print(table)
    if result.error:
        err_console.print(f"[red]{result.error}[/red]")
    return EXIT_OK if result.success else EXIT_FAILED


def _cmd_doctor(args: argparse.Namespace, config: ServiceConfig) -> int:
    status = check_environment(config)
    table = Table(title="Execution environment")
    table.add_column("Tool")
    table.add_column("Available")
    table.add_column("Version")
    for tool, available, version in (
        ("python", status.python_available, status.python_version),
        ("node", status.node_available, status.node_version),
        ("npm", status.npm_available, status.npm_version),
    ):
        table.add_row(tool, "[green]yes[/green]" if available else "[red]no[/red]", version or "-")
    console.print(table)
    console.print(f"Working directory: {status.working_directory}")
    return EXIT_OK if status.python_available else EXIT_FAILED


def _cmd_languages(args: argparse.Namespace, config: ServiceConfig) -> int:
    table = Table(title="Supported languages")
    for column in ("id", "name", "extension", "command"):
        table.add_column(column)
    for entry in supported_languages():
        table.add_row(entry["id"], entry["name"], entry["extension"], entry["command"])
    console.print(table)
    return EXIT_OK


COMMANDS = {
    "serve": _cmd_serve,
    "run": _cmd_run,
    "install": _cmd_install,
    "doctor": _cmd_doctor,
    "languages": _cmd_languages,
}


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        config = _load_config(args)
        setup_logging(config.logging.level, rich=config.logging.rich)
        return COMMANDS[args.command](args, config)
    except (CloudCodeExecError, ValueError, OSError) as e:
        err_console.print(f"[red]Error:[/red] {format_error_message(e)}")
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
