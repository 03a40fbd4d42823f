from pathlib import Path

import pytest
import yaml

from hatchkit.schema import (
    BoolSetting,
    FloatSetting,
    IgnoreScope,
    ListSetting,
    MultiListSetting,
    NumberSetting,
    Setting,
    SettingsError,
    StringSetting,
    ValidatorKind,
    load_repo_settings,
    parse_repo_settings,
    validate_setting,
)


def _setting(ty) -> Setting:
    return Setting(name="value", description="A value", ty=ty)


@pytest.mark.parametrize("cls", [NumberSetting, FloatSetting])
def test_numeric_min_must_be_below_max(cls):
    assert validate_setting(_setting(cls(min=5, max=5))) == "minimum is greater or equal the maximum value"
    assert validate_setting(_setting(cls(min=6, max=5))) is not None
    assert validate_setting(_setting(cls(min=1, max=5))) is None


@pytest.mark.parametrize("cls", [NumberSetting, FloatSetting])
def test_numeric_default_range_excludes_max(cls):
    assert validate_setting(_setting(cls(min=1, max=5, default=1))) is None
    assert validate_setting(_setting(cls(min=1, max=5, default=4))) is None
    assert validate_setting(_setting(cls(min=1, max=5, default=5))) == "default value is not within the min/max range"
    assert validate_setting(_setting(cls(min=1, max=5, default=0))) is not None


def test_list_default_must_be_a_value():
    assert validate_setting(_setting(ListSetting(values=("a", "b"), default="b"))) is None
    assert validate_setting(_setting(ListSetting(values=("a", "b"), default="c"))) == (
        "default value isn't part of the possible values"
    )


def test_multi_list_defaults_must_be_values():
    assert validate_setting(_setting(MultiListSetting(values=("a", "b"), default=frozenset({"a"})))) is None
    assert validate_setting(_setting(MultiListSetting(values=("a", "b"), default=frozenset({"a", "z"})))) == (
        "one of the default values isn't part of the possible values"
    )


def test_bool_and_string_are_always_valid():
    assert validate_setting(_setting(BoolSetting(default=True))) is None
    assert validate_setting(_setting(StringSetting(default=""))) is None


def test_parse_keeps_declaration_order():
    data = yaml.safe_load(
        """
crate_type: lib
ignore:
  - paths: ["src/main.rs"]
    condition: crate_lib
  - paths: "assets/**"
    scope: template
settings:
  zeta:
    description: Last letter
    type: bool
  alpha:
    description: First letter
    type: string
    validator: ident
  middle:
    description: Pick one
    type: list
    values: [x, y, x]
    default: y
"""
    )
    settings = parse_repo_settings(data)

    assert settings.crate_type == "lib"
    assert [setting.name for setting in settings.settings] == ["zeta", "alpha", "middle"]
    assert settings.settings[1].ty.validator.kind == ValidatorKind.ident
    assert settings.settings[2].ty.values == ("x", "y")
    assert settings.ignore[0].scope == IgnoreScope.all
    assert settings.ignore[0].condition == "crate_lib"
    assert settings.ignore[1].paths == ("assets/**",)
    assert settings.ignore[1].scope == IgnoreScope.template


def test_parse_accepts_top_level_settings():
    settings = parse_repo_settings(
        {
            "use_feature": {"description": "Use it?", "type": "bool", "default": True},
            "workers": {"description": "Workers", "type": "number", "min": 1, "max": 16, "default": 4},
        }
    )

    assert [setting.name for setting in settings.settings] == ["use_feature", "workers"]
    assert settings.settings[1].ty == NumberSetting(min=1, max=16, default=4)
    assert settings.crate_type is None


def test_parse_regex_validator():
    settings = parse_repo_settings(
        {"code": {"description": "Code", "type": "string", "validator": {"regex": "^[a-z]+$"}}}
    )

    validator = settings.settings[0].ty.validator
    assert validator.kind == ValidatorKind.regex
    assert validator.pattern.pattern == "^[a-z]+$"


def test_parse_float_accepts_integers():
    settings = parse_repo_settings({"ratio": {"description": "Ratio", "type": "float", "min": 0, "max": 1, "default": 0.5}})

    assert settings.settings[0].ty == FloatSetting(min=0.0, max=1.0, default=0.5)


def test_load_fails_on_first_invalid_setting_with_name():
    data = {
        "good": {"description": "Fine", "type": "bool"},
        "bad": {"description": "Broken", "type": "number", "min": 1, "max": 5, "default": 5},
    }

    with pytest.raises(SettingsError, match="invalid setting `bad`: default value is not within"):
        parse_repo_settings(data)


@pytest.mark.parametrize(
    "raw, message",
    [
        ({"description": "x", "type": "text"}, "unknown type"),
        ({"type": "bool"}, "missing `description`"),
        ({"description": "x", "type": "number", "max": 3}, "missing `min`"),
        ({"description": "x", "type": "number", "min": 1, "max": 3, "default": "2"}, "wrong type"),
        ({"description": "x", "type": "bool", "default": "yes"}, "wrong type"),
        ({"description": "x", "type": "string", "validator": "email"}, "unknown validator"),
        ({"description": "x", "type": "string", "validator": {"regex": "("}}, "invalid regex"),
        ({"description": "x", "type": "list", "values": []}, "non-empty list"),
        ({"description": "x", "type": "multi_list", "values": ["a"], "default": "a"}, "wrong type"),
    ],
)
def test_parse_rejects_malformed_settings(raw, message):
    with pytest.raises(SettingsError, match=message):
        parse_repo_settings({"broken": raw})


def test_parse_rejects_unknown_scope_and_crate_type():
    with pytest.raises(SettingsError, match="unknown scope"):
        parse_repo_settings({"ignore": [{"paths": ["a"], "scope": "sometimes"}]})
    with pytest.raises(SettingsError, match="invalid crate_type"):
        parse_repo_settings({"crate_type": "dylib"})


def test_load_repo_settings_reads_config_file(tmp_path: Path):
    (tmp_path / ".hatchkit.yml").write_text(
        "settings:\n  name:\n    description: Name\n    type: string\n",
        encoding="utf-8",
    )

    settings = load_repo_settings(tmp_path)

    assert settings.settings[0].name == "name"


def test_load_repo_settings_missing_file(tmp_path: Path):
    with pytest.raises(SettingsError, match="Missing .hatchkit.yml"):
        load_repo_settings(tmp_path)


def test_load_repo_settings_invalid_yaml(tmp_path: Path):
    (tmp_path / ".hatchkit.yml").write_text("settings: [unclosed", encoding="utf-8")

    with pytest.raises(SettingsError, match="invalid template configuration"):
        load_repo_settings(tmp_path)
