"""Declarative template configuration: settings, ignore rules and crate type.

A template carries a ``.hatchkit.yml`` file that describes the questions asked
during generation. Every setting is one of a closed set of typed variants; the
variants are plain frozen dataclasses and every per-type operation dispatches
on them in a single place (see :func:`validate_setting`).
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Union

import yaml

from .config import CRATE_TYPES, TEMPLATE_CONFIG_FILE

logger = logging.getLogger(__name__)


class SettingsError(RuntimeError):
    pass


class ValidatorKind(str, Enum):
    required = "required"
    crate = "crate"
    ident = "ident"
    semver = "semver"
    semver_req = "semver_req"
    regex = "regex"


@dataclass(frozen=True)
class StringValidator:
    kind: ValidatorKind
    pattern: re.Pattern | None = None


@dataclass(frozen=True)
class BoolSetting:
    default: bool | None = None


@dataclass(frozen=True)
class StringSetting:
    default: str | None = None
    validator: StringValidator | None = None


@dataclass(frozen=True)
class NumberSetting:
    min: int
    max: int
    default: int | None = None


@dataclass(frozen=True)
class FloatSetting:
    min: float
    max: float
    default: float | None = None


@dataclass(frozen=True)
class ListSetting:
    values: tuple[str, ...]
    default: str | None = None


@dataclass(frozen=True)
class MultiListSetting:
    values: tuple[str, ...]
    default: frozenset[str] | None = None


SettingType = Union[BoolSetting, StringSetting, NumberSetting, FloatSetting, ListSetting, MultiListSetting]

TYPE_TAGS: dict[str, type] = {
    "bool": BoolSetting,
    "string": StringSetting,
    "number": NumberSetting,
    "float": FloatSetting,
    "list": ListSetting,
    "multi_list": MultiListSetting,
}


@dataclass(frozen=True)
class Setting:
    name: str
    description: str
    ty: SettingType
    condition: str | None = None


class IgnoreScope(str, Enum):
    """Processing stage a matching ignore rule removes a file from."""

    all = "all"
    template = "template"
    render = "render"


@dataclass(frozen=True)
class IgnorePattern:
    paths: tuple[str, ...]
    condition: str | None = None
    scope: IgnoreScope = IgnoreScope.all


@dataclass(frozen=True)
class RepoSettings:
    crate_type: str | None
    ignore: tuple[IgnorePattern, ...]
    settings: tuple[Setting, ...]


def type_tag(ty: SettingType) -> str:
    for tag, cls in TYPE_TAGS.items():
        if isinstance(ty, cls):
            return tag
    raise TypeError(f"unknown setting type {type(ty).__name__}")


def validate_setting(setting: Setting) -> str | None:
    """Return the reason a setting is invalid, or ``None`` when it is fine.

    The numeric default check uses a half open range: ``min`` is allowed as a
    default while ``max`` is not.
    """
    ty = setting.ty
    if isinstance(ty, (BoolSetting, StringSetting)):
        return None
    if isinstance(ty, (NumberSetting, FloatSetting)):
        if ty.min >= ty.max:
            return "minimum is greater or equal the maximum value"
        if ty.default is not None and not (ty.min <= ty.default < ty.max):
            return "default value is not within the min/max range"
        return None
    if isinstance(ty, ListSetting):
        if ty.default is not None and ty.default not in ty.values:
            return "default value isn't part of the possible values"
        return None
    if isinstance(ty, MultiListSetting):
        if ty.default is not None and any(value not in ty.values for value in ty.default):
            return "one of the default values isn't part of the possible values"
        return None
    raise TypeError(f"unknown setting type {type(ty).__name__}")


def _ordered_unique(values: Any, name: str) -> tuple[str, ...]:
    if not isinstance(values, list) or not values:
        raise SettingsError(f"invalid setting `{name}`: `values` must be a non-empty list")
    for value in values:
        if not isinstance(value, str):
            raise SettingsError(f"invalid setting `{name}`: all `values` must be strings")
    return tuple(dict.fromkeys(values))


def _optional(raw: Mapping[str, Any], key: str, kinds: tuple[type, ...], name: str) -> Any:
    value = raw.get(key)
    if value is None:
        return None
    if isinstance(value, bool) and bool not in kinds:
        raise SettingsError(f"invalid setting `{name}`: `{key}` has the wrong type")
    if not isinstance(value, kinds):
        raise SettingsError(f"invalid setting `{name}`: `{key}` has the wrong type")
    return value


def _required_number(raw: Mapping[str, Any], key: str, kinds: tuple[type, ...], name: str) -> Any:
    if key not in raw:
        raise SettingsError(f"invalid setting `{name}`: missing `{key}`")
    value = _optional(raw, key, kinds, name)
    if value is None:
        raise SettingsError(f"invalid setting `{name}`: missing `{key}`")
    return value


def _parse_validator(raw: Any, name: str) -> StringValidator | None:
    if raw is None:
        return None
    if isinstance(raw, Mapping):
        if set(raw) != {"regex"} or not isinstance(raw["regex"], str):
            raise SettingsError(f"invalid setting `{name}`: regex validator must be `{{regex: <pattern>}}`")
        try:
            pattern = re.compile(raw["regex"])
        except re.error as error:
            raise SettingsError(f"invalid setting `{name}`: invalid regex `{raw['regex']}`: {error}") from error
        return StringValidator(kind=ValidatorKind.regex, pattern=pattern)
    try:
        kind = ValidatorKind(raw)
    except ValueError:
        raise SettingsError(f"invalid setting `{name}`: unknown validator `{raw}`") from None
    if kind == ValidatorKind.regex:
        raise SettingsError(f"invalid setting `{name}`: regex validator needs a pattern")
    return StringValidator(kind=kind)


def _to_float(value: Any) -> float | None:
    if value is None:
        return None
    value = float(value)
    if math.isnan(value):
        raise ValueError("NaN is not a valid value")
    return value


def parse_setting_type(raw: Mapping[str, Any], name: str) -> SettingType:
    tag = raw.get("type")
    if tag not in TYPE_TAGS:
        raise SettingsError(f"invalid setting `{name}`: unknown type `{tag}`")

    if tag == "bool":
        return BoolSetting(default=_optional(raw, "default", (bool,), name))
    if tag == "string":
        return StringSetting(
            default=_optional(raw, "default", (str,), name),
            validator=_parse_validator(raw.get("validator"), name),
        )
    if tag == "number":
        return NumberSetting(
            min=_required_number(raw, "min", (int,), name),
            max=_required_number(raw, "max", (int,), name),
            default=_optional(raw, "default", (int,), name),
        )
    if tag == "float":
        try:
            return FloatSetting(
                min=_to_float(_required_number(raw, "min", (int, float), name)),
                max=_to_float(_required_number(raw, "max", (int, float), name)),
                default=_to_float(_optional(raw, "default", (int, float), name)),
            )
        except ValueError as error:
            raise SettingsError(f"invalid setting `{name}`: {error}") from error

    values = _ordered_unique(raw.get("values"), name)
    if tag == "list":
        return ListSetting(values=values, default=_optional(raw, "default", (str,), name))

    default = _optional(raw, "default", (list,), name)
    if default is not None and not all(isinstance(item, str) for item in default):
        raise SettingsError(f"invalid setting `{name}`: `default` must be a list of strings")
    return MultiListSetting(values=values, default=frozenset(default) if default is not None else None)


def parse_setting(name: str, raw: Any) -> Setting:
    if not isinstance(raw, Mapping):
        raise SettingsError(f"invalid setting `{name}`: expected a mapping")
    description = raw.get("description")
    if not isinstance(description, str) or not description.strip():
        raise SettingsError(f"invalid setting `{name}`: missing `description`")
    condition = raw.get("condition")
    if condition is not None and not isinstance(condition, str):
        raise SettingsError(f"invalid setting `{name}`: `condition` must be a string")
    return Setting(name=name, description=description, ty=parse_setting_type(raw, name), condition=condition)


def parse_ignore(raw: Any, index: int) -> IgnorePattern:
    if not isinstance(raw, Mapping):
        raise SettingsError(f"invalid ignore rule #{index}: expected a mapping")
    paths = raw.get("paths")
    if isinstance(paths, str):
        paths = [paths]
    if not isinstance(paths, list) or not all(isinstance(path, str) for path in paths):
        raise SettingsError(f"invalid ignore rule #{index}: `paths` must be a list of glob patterns")
    condition = raw.get("condition")
    if condition is not None and not isinstance(condition, str):
        raise SettingsError(f"invalid ignore rule #{index}: `condition` must be a string")
    try:
        scope = IgnoreScope(raw.get("scope", IgnoreScope.all.value))
    except ValueError:
        raise SettingsError(f"invalid ignore rule #{index}: unknown scope `{raw.get('scope')}`") from None
    return IgnorePattern(paths=tuple(paths), condition=condition, scope=scope)


def parse_repo_settings(data: Any) -> RepoSettings:
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise SettingsError("template configuration must be a mapping")

    crate_type = data.get("crate_type")
    if crate_type is not None and crate_type not in CRATE_TYPES:
        raise SettingsError(f"invalid crate_type `{crate_type}`, expected one of: {', '.join(CRATE_TYPES)}")

    raw_ignore = data.get("ignore") or []
    if not isinstance(raw_ignore, list):
        raise SettingsError("`ignore` must be a list of rules")
    ignore = tuple(parse_ignore(rule, index) for index, rule in enumerate(raw_ignore))

    raw_settings: dict[str, Any] = {}
    nested = data.get("settings")
    if nested is not None:
        if not isinstance(nested, Mapping):
            raise SettingsError("`settings` must be a mapping")
        raw_settings.update(nested)
    for key, value in data.items():
        if key in ("crate_type", "ignore", "settings"):
            continue
        if key in raw_settings:
            raise SettingsError(f"setting `{key}` is declared twice")
        raw_settings[key] = value

    settings = tuple(parse_setting(str(name), raw) for name, raw in raw_settings.items())

    for setting in settings:
        error = validate_setting(setting)
        if error:
            raise SettingsError(f"invalid setting `{setting.name}`: {error}")

    return RepoSettings(crate_type=crate_type, ignore=ignore, settings=settings)


def load_repo_settings(template_root: Path) -> RepoSettings:
    config_path = template_root / TEMPLATE_CONFIG_FILE
    if not config_path.exists():
        raise SettingsError(f"Missing {TEMPLATE_CONFIG_FILE} in template: {template_root}")
    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as error:
        raise SettingsError(f"invalid template configuration {config_path}: {error}") from error
    except OSError as error:
        raise SettingsError(f"failed reading template configuration {config_path}: {error}") from error

    settings = parse_repo_settings(data)
    logger.debug("Loaded %d setting(s) and %d ignore rule(s) from %s", len(settings.settings), len(settings.ignore), config_path)
    return settings
