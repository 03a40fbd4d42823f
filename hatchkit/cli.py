from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Callable, Mapping, NoReturn, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .bookmarks import BookmarkError, DefaultSetting, load_global_settings
from .cargo import CargoError
from .config import TEMPLATE_CONFIG_FILE, config_dir
from .context import ContextError
from .defaults import DefaultsError
from .prompts import PromptCancelled, Prompter
from .repo import RepoError
from .scaffold import (
    ScaffoldError,
    ScaffoldOptions,
    init_template,
    remote_checkout,
    resolve_template,
    scaffold_project,
    target_directory,
)
from .schema import SettingsError
from .templates import TemplateError

app = typer.Typer(help="Hatch new projects from templates.")
console = Console()
err_console = Console(stderr=True)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INVALID_INPUT = 2
EXIT_NOT_FOUND = 3
EXIT_CANCELLED = 130

# Error class -> (exit code, error code) reported by generation commands.
GENERATION_ERRORS: tuple[tuple[type[Exception], int, str], ...] = (
    (SettingsError, EXIT_INVALID_INPUT, "settings_error"),
    (DefaultsError, EXIT_INVALID_INPUT, "defaults_error"),
    (ContextError, EXIT_INVALID_INPUT, "context_error"),
    (TemplateError, EXIT_INVALID_INPUT, "template_error"),
    (ScaffoldError, EXIT_INVALID_INPUT, "scaffold_error"),
    (RepoError, EXIT_ERROR, "repo_error"),
    (CargoError, EXIT_ERROR, "cargo_error"),
)


class OutputFormat(str, Enum):
    table = "table"
    json = "json"
    md = "md"


def _json_print(payload: dict) -> None:
    typer.echo(json.dumps(payload, ensure_ascii=True, sort_keys=True))


def _print_key_value_table(title: str, rows: list[tuple[str, str]]) -> None:
    table = Table(title=title)
    table.add_column("Field")
    table.add_column("Value")
    for key, value in rows:
        table.add_row(key, value)
    console.print(table)


def _emit_success(
    command: str,
    output_format: OutputFormat,
    data: dict,
    md_renderer: Callable[[dict], str] | None = None,
    table_renderer: Callable[[dict], None] | None = None,
) -> None:
    if output_format == OutputFormat.json:
        _json_print(
            {
                "ok": True,
                "command": command,
                "exit_code": EXIT_OK,
                "data": data,
            }
        )
        return

    if output_format == OutputFormat.md and md_renderer is not None:
        console.print(md_renderer(data))
        return

    if output_format == OutputFormat.table and table_renderer is not None:
        table_renderer(data)
        return

    # Fallback for simple commands without dedicated renderer.
    if output_format == OutputFormat.md:
        lines = [f"# {command}", ""]
        lines.extend(f"- **{key}**: {value}" for key, value in data.items())
        console.print("\n".join(lines))
    else:
        _print_key_value_table(
            title=command,
            rows=[(str(key), str(value)) for key, value in data.items()],
        )


def _emit_error(
    command: str,
    output_format: OutputFormat,
    exit_code: int,
    code: str,
    message: str,
) -> NoReturn:
    if output_format == OutputFormat.json:
        _json_print(
            {
                "ok": False,
                "command": command,
                "exit_code": exit_code,
                "error": {
                    "code": code,
                    "message": message,
                },
            }
        )
    elif output_format == OutputFormat.md:
        console.print(f"# {command}\n\n- **status**: error\n- **code**: {code}\n- **message**: {message}")
    else:
        console.print(f"[red]Error ({code}):[/red] {message}")

    raise typer.Exit(code=exit_code)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging."),
) -> None:
    """Hatch new projects from templates."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _generate(
    command: str,
    template_root: Callable[[], Path],
    name: Optional[str],
    defaults: Mapping[str, DefaultSetting],
    update_deps: bool,
    output_format: OutputFormat,
) -> None:
    try:
        project_name, target = target_directory(Path.cwd(), name)
        report = scaffold_project(
            ScaffoldOptions(
                template_root=template_root(),
                target=target,
                defaults=defaults,
                update_deps=update_deps,
            ),
            prompter=Prompter(console=err_console),
        )
    except PromptCancelled as error:
        _emit_error(command, output_format, EXIT_CANCELLED, "cancelled", str(error))
    except tuple(cls for cls, _, _ in GENERATION_ERRORS) as error:
        for cls, exit_code, code in GENERATION_ERRORS:
            if isinstance(error, cls):
                _emit_error(command, output_format, exit_code, code, str(error))
        raise

    data = {
        "path": str(report.target),
        "project_name": report.project_name,
        "rendered": len(report.rendered),
        "copied": len(report.copied),
        "skipped": len(report.skipped),
    }
    _emit_success(command=command, output_format=output_format, data=data)


@app.command("new")
def new_project(
    bookmark: str = typer.Argument(..., help="Bookmark as defined in the global configuration."),
    name: Optional[str] = typer.Argument(None, help="Name of the new project, using the current directory if omitted."),
    update_deps: bool = typer.Option(False, "--update-deps", "-u", help="Update dependencies to the latest compatible versions."),
    output_format: OutputFormat = typer.Option(OutputFormat.table, "--format", help="Output format."),
):
    """Create a new project from a configured bookmark."""
    try:
        settings = load_global_settings()
    except BookmarkError as error:
        _emit_error("new", output_format, EXIT_INVALID_INPUT, "bookmark_error", str(error))

    selected = settings.bookmarks.get(bookmark)
    if selected is None:
        _emit_error("new", output_format, EXIT_NOT_FOUND, "unknown_bookmark", f"Bookmark with name `{bookmark}` unknown.")

    _generate("new", lambda: resolve_template(selected), name, selected.defaults, update_deps, output_format)


@app.command("git")
def git_project(
    url: str = typer.Argument(..., help="HTTP or Git URL to the remote repository."),
    name: Optional[str] = typer.Argument(None, help="Name of the new project, using the current directory if omitted."),
    folder: Optional[Path] = typer.Option(None, "--folder", help="Sub-folder within the repository that contains the template."),
    update_deps: bool = typer.Option(False, "--update-deps", "-u", help="Update dependencies to the latest compatible versions."),
    output_format: OutputFormat = typer.Option(OutputFormat.table, "--format", help="Output format."),
):
    """Create a new project from a template in a remote Git repository."""
    _generate("git", lambda: remote_checkout(url, folder), name, {}, update_deps, output_format)


@app.command("local")
def local_project(
    path: Path = typer.Argument(..., help="Location of the template directory."),
    name: Optional[str] = typer.Argument(None, help="Name of the new project, using the current directory if omitted."),
    update_deps: bool = typer.Option(False, "--update-deps", "-u", help="Update dependencies to the latest compatible versions."),
    output_format: OutputFormat = typer.Option(OutputFormat.table, "--format", help="Output format."),
):
    """Create a new project from a template in the local file system."""
    _generate("local", lambda: path.resolve(), name, {}, update_deps, output_format)


@app.command("list")
def list_bookmarks(
    output_format: OutputFormat = typer.Option(OutputFormat.table, "--format", help="Output format."),
):
    """List all configured bookmarks with name and description."""
    try:
        settings = load_global_settings()
    except BookmarkError as error:
        _emit_error("list", output_format, EXIT_INVALID_INPUT, "bookmark_error", str(error))

    if not settings.bookmarks:
        _emit_error(
            command="list",
            output_format=output_format,
            exit_code=EXIT_NOT_FOUND,
            code="no_bookmarks",
            message=f"No bookmarks configured in {config_dir()}.",
        )

    data = {
        "bookmarks": [
            {
                "name": bookmark.name,
                "description": bookmark.description,
                "repository": bookmark.repository,
            }
            for bookmark in settings.bookmarks.values()
        ]
    }

    def render_md(payload: dict) -> str:
        lines = ["# Bookmarks", ""]
        for item in payload["bookmarks"]:
            lines.append(f"- `{item['name']}` - {item['description']}")
        return "\n".join(lines)

    def render_table(payload: dict) -> None:
        table = Table(title="Bookmarks")
        table.add_column("Name")
        table.add_column("Description")
        table.add_column("Repository")
        for item in payload["bookmarks"]:
            table.add_row(item["name"], item["description"], item["repository"])
        console.print(table)

    _emit_success(command="list", output_format=output_format, data=data, md_renderer=render_md, table_renderer=render_table)


@app.command("init")
def init(
    name: Optional[str] = typer.Argument(None, help="Name of the new template, using the current directory if omitted."),
    output_format: OutputFormat = typer.Option(OutputFormat.table, "--format", help="Output format."),
):
    """Initialize a new template with a sample configuration."""
    path = Path.cwd() / name if name else Path.cwd()
    try:
        config_path = init_template(path)
    except ScaffoldError as error:
        _emit_error("init", output_format, EXIT_INVALID_INPUT, "scaffold_error", str(error))

    _emit_success(command="init", output_format=output_format, data={"path": str(config_path), "file": TEMPLATE_CONFIG_FILE})


@app.command("version")
def version(
    output_format: OutputFormat = typer.Option(OutputFormat.table, "--format", help="Output format."),
) -> None:
    """Print version."""
    _emit_success(command="version", output_format=output_format, data={"version": __version__})


if __name__ == "__main__":
    app()
