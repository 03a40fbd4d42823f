from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from . import repo
from .bookmarks import Bookmark, DefaultSetting
from .cargo import CrateIndex, SparseIndex, update_all_cargo_tomls
from .config import TEMPLATE_CONFIG_FILE, cache_dir
from .context import fill_context, new_context
from .prompts import PromptCancelled, Prompter
from .repo import GitIdentity
from .schema import load_repo_settings
from .templates import FileKind, RepoFile, collect_files, filter_ignored, render

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScaffoldOptions:
    template_root: Path
    target: Path
    defaults: Mapping[str, DefaultSetting] = field(default_factory=dict)
    update_deps: bool = False
    init_repo: bool = True


@dataclass(frozen=True)
class ScaffoldReport:
    target: Path
    project_name: str
    files: tuple[RepoFile, ...]
    context: Mapping[str, Any]

    @property
    def rendered(self) -> tuple[str, ...]:
        return tuple(file.name for file in self.files if file.kind == FileKind.render)

    @property
    def copied(self) -> tuple[str, ...]:
        return tuple(file.name for file in self.files if file.kind == FileKind.copy)

    @property
    def skipped(self) -> tuple[str, ...]:
        return tuple(file.name for file in self.files if file.kind == FileKind.skip)


class ScaffoldError(RuntimeError):
    pass


SAMPLE_TEMPLATE_CONFIG = """\
# crate_type: bin        # `bin` or `lib`, asked interactively when omitted

ignore:
  - paths: ["src/main.rs"]
    condition: crate_lib
  - paths: ["src/lib.rs"]
    condition: crate_bin
  - paths: ["assets/**"]
    scope: template      # copied as-is, never rendered

settings:
  description:
    description: Short description of the project
    type: string
  license:
    description: License of the project
    type: list
    values: ["MIT", "Apache-2.0", "MIT OR Apache-2.0"]
    default: "MIT OR Apache-2.0"
  use_cli:
    description: Include a command line interface?
    condition: crate_bin
    type: bool
    default: true
"""


def init_template(path: Path) -> Path:
    config_path = path / TEMPLATE_CONFIG_FILE
    if config_path.exists():
        raise ScaffoldError(f"Template configuration already exists: {config_path}")
    try:
        path.mkdir(parents=True, exist_ok=True)
        config_path.write_text(SAMPLE_TEMPLATE_CONFIG, encoding="utf-8")
    except OSError as error:
        raise ScaffoldError(f"failed writing template configuration {config_path}: {error}") from error
    return config_path


def target_directory(cwd: Path, name: str | None) -> tuple[str, Path]:
    target = cwd / name if name else cwd
    project_name = target.name
    if not project_name:
        raise ScaffoldError(f"Directory can't be used as project name: {target}")
    return project_name, target


def prepare_target(target: Path, prompter: Prompter) -> None:
    """Make sure ``target`` is missing or empty, asking before clearing it."""
    if not target.exists():
        return
    if not target.is_dir():
        raise ScaffoldError(f"Target path appears to be an existing file: {target}")
    if not any(target.iterdir()):
        return

    clear = prompter.confirm(
        "target directory already exists. Do you want to continue? (it will be cleared beforehand)",
        default=False,
    )
    if not clear:
        raise PromptCancelled("generation cancelled by user")
    logger.info("Clearing %s", target)
    try:
        shutil.rmtree(target)
    except OSError as error:
        raise ScaffoldError(f"failed clearing target directory {target}: {error}") from error


def resolve_template(bookmark: Bookmark) -> Path:
    if bookmark.is_remote:
        path = remote_checkout(bookmark.repository)
    else:
        path = Path(bookmark.repository).expanduser()
        if not path.is_dir():
            raise ScaffoldError(
                f"Bookmark repository of `{bookmark.name}` is neither a remote git URL nor a local folder: {bookmark.repository}"
            )
    if bookmark.folder:
        path = path / bookmark.folder
    return path


def remote_checkout(url: str, folder: Path | None = None) -> Path:
    repo_name = repo.find_repo_name(url)
    if repo_name is None:
        raise ScaffoldError(f"Can't determine repository name from git URL: {url}")
    path = cache_dir() / repo_name
    repo.clone_or_update(url, path)
    return path / folder if folder else path


def scaffold_project(
    options: ScaffoldOptions,
    prompter: Prompter | None = None,
    identity: GitIdentity | None = None,
    index: CrateIndex | None = None,
) -> ScaffoldReport:
    prompter = prompter or Prompter()
    template_root = options.template_root
    if not template_root.is_dir():
        raise ScaffoldError(f"Template directory does not exist: {template_root}")
    if not (template_root / TEMPLATE_CONFIG_FILE).exists():
        raise ScaffoldError(f"Missing {TEMPLATE_CONFIG_FILE} in template: {template_root}")

    project_name = options.target.name
    prepare_target(options.target, prompter)

    files = collect_files(template_root)
    settings = load_repo_settings(template_root)

    ctx = new_context(settings, project_name, prompter, identity=identity)
    context = fill_context(ctx, settings.settings, options.defaults, prompter.prompt)

    files = filter_ignored(files, context, settings.ignore)
    render(files, context, options.target)
    logger.info("Generated %d file(s) in %s", sum(1 for file in files if file.kind != FileKind.skip), options.target)

    if options.update_deps:
        if index is None:
            with SparseIndex() as sparse:
                update_all_cargo_tomls(options.target, files, sparse, console=prompter.console)
        else:
            update_all_cargo_tomls(options.target, files, index, console=prompter.console)

    if options.init_repo:
        repo.init(options.target)

    return ScaffoldReport(
        target=options.target,
        project_name=project_name,
        files=tuple(files),
        context=context,
    )
