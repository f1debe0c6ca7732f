"""
VN Compiler CLI.

Run:
    vn-compiler compile story.yaml -o dist/index.html --assets assets --minify
    vn-compiler validate story.yaml --verbose
    vn-compiler init my-novel --template interactive
    vn-compiler serve --port 8000 --workdir .

Exit codes: 0 success, 1 validation or compile failure, 2 unexpected error.
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from vncompiler import __version__
from vncompiler.config import settings
from vncompiler.models.compiler import CompileRequest, GameMetadata
from vncompiler.services.compiler import VNCompiler
from vncompiler.services.project_config import load_project_config
from vncompiler.services.project_scaffold import TEMPLATES, ProjectScaffolder, ScaffoldError
from vncompiler.services.script_validator import ScriptValidator
from vncompiler.utils.formatting import format_duration, format_size

logger = logging.getLogger(__name__)

console = Console()
err_console = Console(stderr=True)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_ERROR = 2

DEFAULT_OUTPUT = "game.html"


def _configure_logging(debug: bool, quiet: bool) -> None:
    if debug:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = getattr(logging, settings.log_level, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False, rich_tracebacks=debug)],
        force=True,
    )


def _print_warnings(warnings: List[str]) -> None:
    if not warnings:
        return
    err_console.print(f"[yellow]{len(warnings)} warning(s):[/yellow]")
    for warning in warnings:
        err_console.print(f"  [yellow]-[/yellow] {warning}")


# ==================== compile ====================


def _build_compile_request(args: argparse.Namespace) -> CompileRequest:
    config_warnings: List[str] = []
    config, config_path = load_project_config(args.config, warnings=config_warnings)
    _print_warnings(config_warnings)
    if config_path:
        logger.debug("[CLI] Using project config %s", config_path)

    input_path = args.input or config.input
    output = args.output or (config.output if config_path else DEFAULT_OUTPUT)
    metadata = dict(config.metadata)
    metadata.setdefault("author", config.author)
    metadata.setdefault("description", config.description)
    metadata.setdefault("version", config.version)
    if config_path:
        metadata.setdefault("title", config.title)
    if args.title:
        metadata["title"] = args.title

    return CompileRequest(
        input=input_path,
        output=output,
        assets_dir=args.assets or config.assets_dir,
        custom_css=args.css or config.custom_css,
        custom_js=args.js or config.custom_js,
        minify=args.minify or config.minify,
        title=args.title or config.metadata.get("title"),
        theme=config.theme if config_path else None,
        metadata=GameMetadata.model_validate({k: v for k, v in metadata.items() if v is not None}),
        dependencies=config.dependencies,
    )


def _stats_table(result) -> Table:
    stats = result.stats
    table = Table(title="Compilation Statistics", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Scenes", str(stats.scene_count))
    table.add_row("Assets", str(stats.asset_count))
    table.add_row("Components", str(stats.component_count))
    table.add_row("Dependencies", str(stats.dependency_count))
    table.add_row("Output size", format_size(stats.output_size_bytes))
    table.add_row("Compilation time", format_duration(stats.compilation_time_ms))
    return table


def _cmd_compile(args: argparse.Namespace) -> int:
    request = _build_compile_request(args)
    if "\n" not in request.input and not Path(request.input).is_file():
        err_console.print(f"[red]Input file not found:[/red] {request.input}")
        return EXIT_FAILED

    result = asyncio.run(VNCompiler().compile(request))
    if not result.success:
        err_console.print(f"[red]Compilation failed:[/red] {result.error}")
        _print_warnings(result.warnings)
        if result.error and "YAML" in result.error:
            err_console.print(f"Run 'vn-compiler validate {request.input}' for details")
        return EXIT_FAILED

    if not args.quiet:
        console.print(_stats_table(result))
    console.print(f"[green]Game compiled:[/green] {result.output_path}")
    _print_warnings(result.warnings)
    return EXIT_OK


# ==================== validate ====================


def _cmd_validate(args: argparse.Namespace) -> int:
    path = Path(args.input)
    if not path.is_file():
        err_console.print(f"[red]Input file not found:[/red] {args.input}")
        return EXIT_FAILED

    result = ScriptValidator().validate_file(path)
    if result.errors:
        table = Table(title=f"Errors in {path.name}")
        table.add_column("Type", style="red")
        table.add_column("Location")
        table.add_column("Message")
        if args.verbose:
            table.add_column("Suggestion", style="dim")
        for issue in result.errors:
            location = ""
            if issue.location:
                parts = []
                if issue.location.scene:
                    parts.append(f"scene {issue.location.scene}")
                if issue.location.line is not None:
                    parts.append(f"line {issue.location.line}:{issue.location.column}")
                location = ", ".join(parts)
            row = [issue.type, location, issue.message]
            if args.verbose:
                row.append(issue.suggestion or "")
            table.add_row(*row)
        console.print(table)

    if args.verbose or result.valid:
        _print_warnings(result.warnings)

    if not result.valid:
        err_console.print(f"[red]Validation failed with {len(result.errors)} error(s)[/red]")
        return EXIT_FAILED
    console.print(f"[green]{path} is valid[/green]")
    return EXIT_OK


# ==================== init ====================


def _cmd_init(args: argparse.Namespace) -> int:
    try:
        result = ProjectScaffolder().create(
            args.name,
            template=args.template,
            directory=args.directory,
            title=args.title,
            author=args.author,
            description=args.description,
        )
    except ScaffoldError as exc:
        err_console.print(f"[red]{exc}[/red]")
        return EXIT_FAILED

    console.print(f"[green]Created {result.template} project:[/green] {result.path}")
    if not args.quiet:
        for path in result.files:
            console.print(f"  {path.relative_to(result.path)}")
        console.print(f"\nNext: cd {result.path} && vn-compiler compile story.yaml")
    return EXIT_OK


# ==================== serve ====================


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from vncompiler.main import create_app

    workdir = Path(args.workdir)
    if not workdir.is_dir():
        err_console.print(f"[red]Workdir not found:[/red] {args.workdir}")
        return EXIT_FAILED
    settings.server_workdir = str(workdir.resolve())
    if args.cors:
        settings.cors_enabled = True

    console.print(f"Serving {settings.server_workdir} on http://{args.host}:{args.port}")
    uvicorn.run(create_app(), host=args.host, port=args.port, log_level="debug" if args.debug else "info")
    return EXIT_OK


# ==================== entry ====================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vn-compiler",
        description="Compile YAML visual novel scripts into single-file HTML games",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    parser.add_argument("--quiet", action="store_true", help="Only warnings and errors")
    subparsers = parser.add_subparsers(dest="command", required=True)

    compile_parser = subparsers.add_parser("compile", help="Compile a script to HTML")
    compile_parser.add_argument("input", nargs="?", help="Script file (defaults to the project config input)")
    compile_parser.add_argument("-o", "--output", help=f"Output HTML file (default: {DEFAULT_OUTPUT})")
    compile_parser.add_argument("--assets", help="Assets directory")
    compile_parser.add_argument("--css", help="Custom stylesheet")
    compile_parser.add_argument("--js", help="Custom script")
    compile_parser.add_argument("--minify", action="store_true", help="Minify the output document")
    compile_parser.add_argument("--title", help="Game title")
    compile_parser.add_argument("--config", help="Project config file")

    validate_parser = subparsers.add_parser("validate", help="Check a script without compiling")
    validate_parser.add_argument("input")
    validate_parser.add_argument("--verbose", action="store_true", help="Show suggestions and warnings")

    init_parser = subparsers.add_parser("init", help="Create a new project")
    init_parser.add_argument("name")
    init_parser.add_argument("--template", choices=TEMPLATES, default="basic")
    init_parser.add_argument("--directory", default=".")
    init_parser.add_argument("--title")
    init_parser.add_argument("--author")
    init_parser.add_argument("--description")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--cors", action="store_true", help="Enable CORS")
    serve_parser.add_argument("--workdir", default=settings.server_workdir)

    return parser


COMMANDS = {
    "compile": _cmd_compile,
    "validate": _cmd_validate,
    "init": _cmd_init,
    "serve": _cmd_serve,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.debug, args.quiet)
    try:
        return COMMANDS[args.command](args)
    except KeyboardInterrupt:
        err_console.print("Interrupted")
        return EXIT_ERROR
    except Exception as exc:
        logger.exception("[CLI] Unexpected error: %s", exc)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
