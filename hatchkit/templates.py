"""Finding template files, filtering them and rendering them to a target directory.

Rendering means the file is processed through the Jinja2 engine when it is
considered a template; every other file is copied byte for byte.
"""

from __future__ import annotations

import logging
import mimetypes
import os
import re
import shutil
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any, Iterable, Mapping

import jinja2
from jinja2 import DictLoader, Environment, StrictUndefined, Undefined
from pathspec import GitIgnoreSpec
from wcmatch import glob

from .config import BUILTIN_FILTERS, TEMPLATE_IGNORE_FILE
from .schema import IgnorePattern, IgnoreScope

logger = logging.getLogger(__name__)

IGNORE_FILES = (".gitignore", ".ignore", TEMPLATE_IGNORE_FILE)
GLOB_FLAGS = glob.GLOBSTAR | glob.DOTGLOB | glob.BRACE

BINARY_TYPES = ("audio", "font", "image", "video")
BINARY_APPLICATION_SUBTYPES = ("octet-stream", "pdf")


class TemplateError(RuntimeError):
    pass


class FileKind(str, Enum):
    render = "render"
    copy = "copy"
    skip = "skip"


@dataclass(frozen=True)
class RepoFile:
    """A single file of a template that ends up in the generated project."""

    path: Path
    name: str
    kind: FileKind

    @property
    def file_name(self) -> str:
        return PurePosixPath(self.name).name


def _file_name_filter(value: Any) -> str:
    return PurePosixPath(str(value)).name


def create_environment(undefined: type[Undefined] = StrictUndefined, loader: jinja2.BaseLoader | None = None) -> Environment:
    env = Environment(
        loader=loader,
        undefined=undefined,
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )
    env.filters["file_name"] = _file_name_filter
    return env


def _parse_bool(text: str, subject: str) -> bool:
    value = text.strip().lower()
    if value == "true":
        return True
    if value == "false":
        return False
    raise TemplateError(f"condition of {subject} must evaluate to true or false, got `{text.strip()}`")


def evaluate_condition(condition: str, context: Mapping[str, Any], subject: str) -> bool:
    """Evaluate an activation condition against the context built so far.

    Plain expressions (``crate_bin``, ``crate_type == "lib"``) are evaluated
    directly, with undefined names being falsy. Conditions containing template
    markers are rendered and the output must read ``true`` or ``false``.
    """
    env = create_environment(undefined=Undefined)
    try:
        if "{{" in condition or "{%" in condition:
            result = env.from_string(condition).render(context)
        else:
            result = env.compile_expression(condition, undefined_to_none=False)(**context)
    except Exception as error:
        raise TemplateError(f"invalid condition `{condition}` of {subject}: {error}") from error

    if isinstance(result, str):
        return _parse_bool(result, subject)
    return bool(result)


def is_binary(name: str) -> bool:
    """Guess from the path whether a file must not be treated as a template."""
    mime, _ = mimetypes.guess_type(name, strict=False)
    main_type, _, subtype = (mime or "text/plain").partition("/")
    if main_type in BINARY_TYPES:
        return True
    return main_type == "application" and subtype in BINARY_APPLICATION_SUBTYPES


class _IgnoreStack:
    """Ignore files found along the walk; deeper files take precedence."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.specs: list[tuple[str, GitIgnoreSpec]] = []

    def load(self, directory: Path) -> int:
        lines: list[str] = []
        for file_name in IGNORE_FILES:
            candidate = directory / file_name
            if not candidate.is_file():
                continue
            try:
                lines.extend(candidate.read_text(encoding="utf-8", errors="replace").splitlines())
            except OSError as error:
                raise TemplateError(f"failed reading ignore file {candidate}: {error}") from error
        if not lines:
            return 0
        base = directory.relative_to(self.root).as_posix()
        self.specs.append(("" if base == "." else base, GitIgnoreSpec.from_lines(lines)))
        return 1

    def is_ignored(self, relative: str, is_dir: bool) -> bool:
        for base, spec in reversed(self.specs):
            if base and not relative.startswith(base + "/"):
                continue
            local = relative[len(base) + 1 :] if base else relative
            if is_dir:
                local += "/"
            result = spec.check_file(local)
            if result.include is not None:
                return result.include
        return False

    def drop_outside(self, relative_dir: str) -> None:
        self.specs = [
            (base, spec)
            for base, spec in self.specs
            if not base or relative_dir == base or relative_dir.startswith(base + "/")
        ]


def collect_files(root: Path) -> list[RepoFile]:
    """Walk ``root`` and classify every regular file by its content type.

    Nested ``.gitignore``, ``.ignore`` and ``.hatchkitignore`` files are
    honoured; the git metadata directory and the template's own configuration
    files are always left out.
    """
    root = Path(root)
    if not root.is_dir():
        raise TemplateError(f"Template directory does not exist: {root}")

    ignores = _IgnoreStack(root)
    files: list[RepoFile] = []

    def on_error(error: OSError) -> None:
        raise TemplateError(f"failed walking {error.filename}: {error.strerror}") from error

    for current, dirnames, filenames in os.walk(root, onerror=on_error):
        directory = Path(current)
        relative_dir = directory.relative_to(root).as_posix()
        relative_dir = "" if relative_dir == "." else relative_dir
        ignores.drop_outside(relative_dir)
        ignores.load(directory)

        def relative(entry: str) -> str:
            return f"{relative_dir}/{entry}" if relative_dir else entry

        dirnames[:] = sorted(
            entry
            for entry in dirnames
            if entry not in BUILTIN_FILTERS
            and not (directory / entry).is_symlink()
            and not ignores.is_ignored(relative(entry), is_dir=True)
        )

        for entry in sorted(filenames):
            path = directory / entry
            if entry in BUILTIN_FILTERS or path.is_symlink() or not path.is_file():
                continue
            name = relative(entry)
            if ignores.is_ignored(name, is_dir=False):
                continue
            kind = FileKind.copy if is_binary(name) else FileKind.render
            files.append(RepoFile(path=path, name=name, kind=kind))

    logger.debug("Collected %d file(s) from %s", len(files), root)
    return files


@dataclass(frozen=True)
class GlobMatcher:
    patterns: tuple[str, ...]

    def is_match(self, name: str) -> bool:
        return bool(self.patterns) and glob.globmatch(name, list(self.patterns), flags=GLOB_FLAGS)


def _check_glob(pattern: str) -> None:
    try:
        includes, _ = glob.translate(pattern, flags=GLOB_FLAGS)
        for expression in includes:
            re.compile(expression)
    except (ValueError, re.error) as error:
        raise TemplateError(f"invalid glob pattern `{pattern}`: {error}") from error


def build_matcher(context: Mapping[str, Any], ignore: Iterable[IgnorePattern], scope: IgnoreScope) -> GlobMatcher:
    """Combine the paths of every active rule of ``scope`` into one matcher."""
    patterns: list[str] = []
    for index, rule in enumerate(ignore):
        if rule.scope != scope:
            continue
        if rule.condition is not None and not evaluate_condition(rule.condition, context, f"ignore rule #{index}"):
            continue
        for pattern in rule.paths:
            _check_glob(pattern)
            patterns.append(pattern)
    if patterns:
        logger.debug("Active %s ignore patterns: %s", scope.value, ", ".join(patterns))
    return GlobMatcher(patterns=tuple(patterns))


def filter_ignored(
    files: Iterable[RepoFile],
    context: Mapping[str, Any],
    ignore: Iterable[IgnorePattern],
) -> list[RepoFile]:
    """Apply ignore rules to the collected files.

    A match of an ``all`` rule skips the file entirely, a ``template`` rule
    forces a plain copy and a ``render`` rule forces template processing. The
    first matching scope in that order wins.
    """
    rules = tuple(ignore)
    all_ignore = build_matcher(context, rules, IgnoreScope.all)
    template_ignore = build_matcher(context, rules, IgnoreScope.template)
    render_ignore = build_matcher(context, rules, IgnoreScope.render)

    result = []
    for file in files:
        if all_ignore.is_match(file.name):
            file = replace(file, kind=FileKind.skip)
        elif template_ignore.is_match(file.name):
            file = replace(file, kind=FileKind.copy)
        elif render_ignore.is_match(file.name):
            file = replace(file, kind=FileKind.render)
        logger.debug("%s -> %s", file.name, file.kind.value)
        result.append(file)
    return result


def _load_sources(files: Iterable[RepoFile]) -> dict[str, str]:
    sources = {}
    for file in files:
        if file.kind != FileKind.render:
            continue
        try:
            sources[file.name] = file.path.read_bytes().decode("utf-8")
        except (OSError, UnicodeDecodeError) as error:
            raise TemplateError(f"failed loading template `{file.name}`: {error}") from error
    return sources


def render(files: list[RepoFile], context: Mapping[str, Any], target: Path) -> None:
    """Render all given files to ``target``.

    Every template is compiled before anything is written, so a syntax error
    in any file aborts the run with an untouched target.
    """
    env = create_environment(loader=DictLoader(_load_sources(files)))
    templates = {}
    for name in env.list_templates():
        try:
            templates[name] = env.get_template(name)
        except jinja2.TemplateSyntaxError as error:
            raise TemplateError(f"failed compiling template `{name}` (line {error.lineno}): {error.message}") from error

    try:
        target.mkdir(parents=True, exist_ok=True)
    except OSError as error:
        raise TemplateError(f"failed creating target directory {target}: {error}") from error

    for file in files:
        if file.kind == FileKind.skip:
            continue
        destination = target / file.name
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as error:
            raise TemplateError(f"failed creating directories for `{file.name}`: {error}") from error

        if file.kind == FileKind.render:
            try:
                rendered = templates[file.name].render(context)
            except Exception as error:
                raise TemplateError(f"failed rendering template `{file.name}`: {error}") from error
            try:
                with destination.open("w", encoding="utf-8", newline="") as handle:
                    handle.write(rendered)
            except OSError as error:
                raise TemplateError(f"failed writing `{file.name}`: {error}") from error
            logger.debug("Rendered %s", file.name)
        else:
            try:
                shutil.copy(file.path, destination)
            except OSError as error:
                raise TemplateError(f"failed copying `{file.name}`: {error}") from error
            logger.debug("Copied %s", file.name)
