from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from .config import GLOBAL_SETTINGS_FILE, config_dir
from .schema import TYPE_TAGS

logger = logging.getLogger(__name__)


class BookmarkError(RuntimeError):
    pass


@dataclass(frozen=True)
class DefaultValue:
    """Externally supplied value, tagged with the setting type it is meant for."""

    type: str
    value: Any


@dataclass(frozen=True)
class DefaultSetting:
    value: DefaultValue
    skip_prompt: bool = False


@dataclass(frozen=True)
class Bookmark:
    name: str
    repository: str
    description: str = ""
    folder: Path | None = None
    defaults: Mapping[str, DefaultSetting] = field(default_factory=dict)

    @property
    def is_remote(self) -> bool:
        return self.repository.startswith(("git@", "http:", "https:"))


@dataclass(frozen=True)
class GlobalSettings:
    bookmarks: Mapping[str, Bookmark] = field(default_factory=dict)


def parse_default(name: str, raw: Any) -> DefaultSetting:
    if not isinstance(raw, Mapping):
        raise BookmarkError(f"invalid default for `{name}`: expected a mapping with `type` and `value`")
    tag = raw.get("type")
    if tag not in TYPE_TAGS:
        raise BookmarkError(f"invalid default for `{name}`: unknown type `{tag}`")
    if "value" not in raw:
        raise BookmarkError(f"invalid default for `{name}`: missing `value`")
    skip_prompt = raw.get("skip_prompt", False)
    if not isinstance(skip_prompt, bool):
        raise BookmarkError(f"invalid default for `{name}`: `skip_prompt` must be true or false")
    return DefaultSetting(value=DefaultValue(type=tag, value=raw["value"]), skip_prompt=skip_prompt)


def parse_bookmark(name: str, raw: Any) -> Bookmark:
    if not isinstance(raw, Mapping):
        raise BookmarkError(f"invalid bookmark `{name}`: expected a mapping")
    repository = raw.get("repository")
    if not isinstance(repository, str) or not repository.strip():
        raise BookmarkError(f"invalid bookmark `{name}`: missing `repository`")
    folder = raw.get("folder")
    raw_defaults = raw.get("defaults") or {}
    if not isinstance(raw_defaults, Mapping):
        raise BookmarkError(f"invalid bookmark `{name}`: `defaults` must be a mapping")

    return Bookmark(
        name=name,
        repository=repository.strip(),
        description=str(raw.get("description") or ""),
        folder=Path(str(folder)) if folder else None,
        defaults={str(key): parse_default(str(key), value) for key, value in raw_defaults.items()},
    )


def parse_global_settings(data: Any) -> GlobalSettings:
    if data is None:
        return GlobalSettings()
    if not isinstance(data, Mapping):
        raise BookmarkError("global settings must be a mapping")
    raw_bookmarks = data.get("bookmarks") or {}
    if not isinstance(raw_bookmarks, Mapping):
        raise BookmarkError("`bookmarks` must be a mapping")
    bookmarks = {str(name): parse_bookmark(str(name), raw) for name, raw in sorted(raw_bookmarks.items())}
    return GlobalSettings(bookmarks=bookmarks)


def load_global_settings(directory: Path | None = None) -> GlobalSettings:
    path = (directory or config_dir()) / GLOBAL_SETTINGS_FILE
    if not path.exists():
        logger.debug("No global settings at %s", path)
        return GlobalSettings()
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as error:
        raise BookmarkError(f"invalid global settings {path}: {error}") from error
    return parse_global_settings(data)
