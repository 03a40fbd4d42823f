"""Bump dependency versions in generated ``Cargo.toml`` files."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Protocol

import httpx
import tomlkit
from rich.console import Console
from rich.table import Table
from semver import Version
from tomlkit.exceptions import TOMLKitError
from tomlkit.items import InlineTable, String
from tomlkit.items import Table as TomlTable

from .config import CRATES_INDEX_URL, MANIFEST_TABLES
from .templates import FileKind, RepoFile
from .versions import VersionReq, VersionReqError

logger = logging.getLogger(__name__)


class CargoError(RuntimeError):
    pass


@dataclass(frozen=True)
class Update:
    name: str
    old: str
    new: str


class CrateIndex(Protocol):
    def find_latest_version(self, name: str, req: str) -> Version | None:
        ...


def index_path(name: str) -> str:
    """Location of a crate inside the sparse registry index."""
    name = name.lower()
    if len(name) == 1:
        return f"1/{name}"
    if len(name) == 2:
        return f"2/{name}"
    if len(name) == 3:
        return f"3/{name[0]}/{name}"
    return f"{name[:2]}/{name[2:4]}/{name}"


def latest_matching(lines: Iterable[str], req: str) -> Version | None:
    try:
        requirement = VersionReq.parse(req)
    except VersionReqError:
        return None

    best: Version | None = None
    for line in lines:
        if not line.strip():
            continue
        try:
            entry = json.loads(line)
        except ValueError as error:
            raise CargoError(f"malformed crate index entry: {error}") from error
        if not isinstance(entry, dict) or entry.get("yanked"):
            continue
        try:
            version = Version.parse(entry["vers"])
        except (KeyError, ValueError, TypeError):
            continue
        if requirement.matches(version) and (best is None or version > best):
            best = version
    return best


class SparseIndex:
    """crates.io sparse index client."""

    def __init__(self, base_url: str = CRATES_INDEX_URL, timeout: float = 30.0) -> None:
        self.client = httpx.Client(base_url=base_url, timeout=httpx.Timeout(timeout, connect=10.0), follow_redirects=True)

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "SparseIndex":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def find_latest_version(self, name: str, req: str) -> Version | None:
        try:
            response = self.client.get(f"/{index_path(name)}")
            if response.status_code == 404:
                logger.debug("Crate %s not found in index", name)
                return None
            response.raise_for_status()
        except httpx.HTTPError as error:
            raise CargoError(f"failed fetching index entry of `{name}`: {error}") from error
        return latest_matching(response.text.splitlines(), req)


def _version_item(spec: object) -> tuple[object, str] | None:
    if isinstance(spec, String):
        return spec, "plain"
    if isinstance(spec, (InlineTable, TomlTable)):
        version = spec.get("version")
        if isinstance(version, String):
            return spec, "table"
    return None


def update_versions(index: CrateIndex, doc: tomlkit.TOMLDocument, table: str) -> list[Update]:
    updates: list[Update] = []
    deps = doc.get(table)
    if not isinstance(deps, (TomlTable, InlineTable)):
        return updates

    for name in list(deps.keys()):
        found = _version_item(deps[name])
        if found is None:
            continue
        spec, shape = found
        current = str(deps[name]) if shape == "plain" else str(spec["version"])
        latest = index.find_latest_version(name, current)
        if latest is None:
            continue

        new = str(latest)
        if new == current:
            continue
        updates.append(Update(name=name, old=current, new=new))
        if shape == "plain":
            deps[name] = new
        else:
            spec["version"] = new
    return updates


def print_updates(console: Console, file: str, updates: list[Update]) -> None:
    if not updates:
        return
    table = Table(title=f"Updated versions of {file}")
    table.add_column("Name")
    table.add_column("Old")
    table.add_column("New")
    for update in updates:
        table.add_row(update.name, update.old, update.new)
    console.print(table)


def update_all_cargo_tomls(
    target: Path,
    files: Iterable[RepoFile],
    index: CrateIndex,
    console: Console | None = None,
) -> dict[str, list[Update]]:
    console = console or Console(stderr=True)
    report: dict[str, list[Update]] = {}

    for file in files:
        if file.kind == FileKind.skip or file.file_name != "Cargo.toml":
            continue
        manifest = target / file.name
        try:
            doc = tomlkit.parse(manifest.read_text(encoding="utf-8"))
        except (OSError, TOMLKitError) as error:
            raise CargoError(f"failed reading manifest `{file.name}`: {error}") from error

        updates: list[Update] = []
        for table in MANIFEST_TABLES:
            found = update_versions(index, doc, table)
            print_updates(console, file.name, found)
            updates.extend(found)

        try:
            manifest.write_text(tomlkit.dumps(doc), encoding="utf-8")
        except OSError as error:
            raise CargoError(f"failed writing manifest `{file.name}`: {error}") from error
        logger.info("Checked dependencies of %s (%d update(s))", file.name, len(updates))
        report[file.name] = updates

    return report
