from __future__ import annotations

import os
from pathlib import Path

import typer

APP_NAME = "hatchkit"

TEMPLATE_CONFIG_FILE = ".hatchkit.yml"
TEMPLATE_IGNORE_FILE = ".hatchkitignore"
GLOBAL_SETTINGS_FILE = "settings.yml"

# Names that are never part of a generated project.
BUILTIN_FILTERS = (".git", TEMPLATE_CONFIG_FILE, TEMPLATE_IGNORE_FILE)

CRATE_TYPES = ("bin", "lib")
MANIFEST_TABLES = ("dependencies", "dev-dependencies", "build-dependencies")
CRATES_INDEX_URL = "https://index.crates.io"

CONFIG_DIR_ENV = "HATCHKIT_CONFIG_DIR"
CACHE_DIR_ENV = "HATCHKIT_CACHE_DIR"


def config_dir() -> Path:
    override = os.environ.get(CONFIG_DIR_ENV, "").strip()
    if override:
        return Path(override)
    return Path(typer.get_app_dir(APP_NAME))


def cache_dir() -> Path:
    override = os.environ.get(CACHE_DIR_ENV, "").strip()
    if override:
        return Path(override)
    return config_dir() / "cache"
