"""Resolve a setting value from an externally supplied default.

Policy:

* no external default: prompt with the setting's own default,
* ``skip_prompt`` set: use the external value without prompting,
* otherwise: replace the setting's default with the external value and prompt.
"""

from __future__ import annotations

import dataclasses
from typing import Any, Callable

from .bookmarks import DefaultSetting
from .schema import (
    BoolSetting,
    FloatSetting,
    ListSetting,
    MultiListSetting,
    NumberSetting,
    Setting,
    SettingType,
    StringSetting,
    type_tag,
)


class DefaultsError(RuntimeError):
    pass


def _mismatch(setting: Setting, default: DefaultSetting) -> DefaultsError:
    return DefaultsError(
        f"invalid default value for {type_tag(setting.ty).replace('_', '-')} setting "
        f"`{setting.name}` ({default.value.type}: {default.value.value!r})"
    )


def default_value(setting: Setting, default: DefaultSetting) -> Any:
    """Coerce an external default to the value type of ``setting``.

    The tag of the external value has to match the setting type. Integers are
    accepted for float settings.
    """
    ty = setting.ty
    tag = type_tag(ty)
    value = default.value.value
    if default.value.type != tag:
        raise _mismatch(setting, default)

    if isinstance(ty, BoolSetting):
        if isinstance(value, bool):
            return value
    elif isinstance(ty, (StringSetting, ListSetting)):
        if isinstance(value, str):
            return value
    elif isinstance(ty, NumberSetting):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    elif isinstance(ty, FloatSetting):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    elif isinstance(ty, MultiListSetting):
        if isinstance(value, list) and all(isinstance(item, str) for item in value):
            return value
    raise _mismatch(setting, default)


def seed_default(ty: SettingType, value: Any) -> SettingType:
    if isinstance(ty, MultiListSetting):
        return dataclasses.replace(ty, default=frozenset(value))
    return dataclasses.replace(ty, default=value)


def resolve(
    setting: Setting,
    default: DefaultSetting | None,
    prompt: Callable[[str, SettingType], Any],
) -> Any:
    if default is None:
        return prompt(setting.description, setting.ty)

    value = default_value(setting, default)
    if default.skip_prompt:
        return value

    return prompt(setting.description, seed_default(setting.ty, value))
