"""Build the template context: builtin keys first, then the template settings."""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, Callable, Iterator, Mapping

from .bookmarks import DefaultSetting
from .config import CRATE_TYPES
from .defaults import resolve
from .prompts import Prompter
from .repo import GitIdentity, load_git_identity
from .schema import ListSetting, RepoSettings, Setting
from .templates import evaluate_condition

logger = logging.getLogger(__name__)

CRATE_TYPE_QUESTION = "what crate type would you like to create?"


class ContextError(RuntimeError):
    pass


class Context(Mapping[str, Any]):
    """Ordered, append-only mapping of resolved values."""

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}
        self._frozen = False

    def insert(self, key: str, value: Any) -> None:
        if self._frozen:
            raise ContextError(f"context is complete, cannot add `{key}`")
        if key in self._values:
            raise ContextError(f"context already contains a value for `{key}`")
        self._values[key] = value

    def freeze(self) -> Mapping[str, Any]:
        self._frozen = True
        return MappingProxyType(self._values)

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)


def new_context(
    settings: RepoSettings,
    project_name: str,
    prompter: Prompter,
    identity: GitIdentity | None = None,
) -> Context:
    identity = identity or load_git_identity()

    ctx = Context()
    ctx.insert("project_name", project_name)
    ctx.insert("git_author", identity.author)
    ctx.insert("git_name", identity.name)
    ctx.insert("git_email", identity.email)

    crate_type = settings.crate_type
    if crate_type is None:
        crate_type = prompter.prompt(CRATE_TYPE_QUESTION, ListSetting(values=CRATE_TYPES))

    ctx.insert("crate_type", crate_type)
    for kind in CRATE_TYPES:
        ctx.insert(f"crate_{kind}", crate_type == kind)
    return ctx


def fill_context(
    ctx: Context,
    settings: tuple[Setting, ...],
    defaults: Mapping[str, DefaultSetting],
    prompt: Callable[[str, Any], Any],
) -> Mapping[str, Any]:
    """Resolve every active setting in declaration order and freeze the context.

    A condition sees only the values resolved before it, so a setting can only
    depend on settings declared above it.
    """
    for setting in settings:
        if setting.condition is not None:
            if not evaluate_condition(setting.condition, ctx, f"setting `{setting.name}`"):
                logger.debug("Skipping setting %s, condition `%s` is false", setting.name, setting.condition)
                continue

        value = resolve(setting, defaults.get(setting.name), prompt)
        ctx.insert(setting.name, value)

    return ctx.freeze()
