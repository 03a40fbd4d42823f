from pathlib import Path

import pytest
from semver import Version

from hatchkit import repo as repo_module
from hatchkit.bookmarks import Bookmark, DefaultSetting, DefaultValue
from hatchkit.prompts import PromptCancelled
from hatchkit.scaffold import (
    ScaffoldError,
    ScaffoldOptions,
    init_template,
    prepare_target,
    remote_checkout,
    resolve_template,
    scaffold_project,
    target_directory,
)
from hatchkit.schema import load_repo_settings

TEMPLATE_CONFIG = """\
crate_type: bin
ignore:
  - paths: ["src/lib.rs"]
    condition: crate_bin
  - paths: ["assets/**"]
    scope: template
settings:
  description:
    description: Short description
    type: string
    default: A demo
  use_cli:
    description: Include a CLI?
    type: bool
    default: true
"""

CARGO_TOML = """\
[package]
name = "{{ project_name }}"
description = "{{ description }}"
authors = ["{{ git_author }}"]

[dependencies]
serde = "1.0.100"
"""


class FakeIndex:
    def __init__(self, versions):
        self.versions = versions

    def find_latest_version(self, name, req):
        return self.versions.get(name)


@pytest.fixture
def template(write_template):
    return write_template(
        {
            ".hatchkit.yml": TEMPLATE_CONFIG,
            "Cargo.toml": CARGO_TOML,
            "src/main.rs": "{% if use_cli %}mod cli;\n{% endif %}fn main() {}\n",
            "src/lib.rs": "pub fn lib() {}\n",
            "assets/banner.txt": "{{ kept verbatim }}\n",
        }
    )


def test_scaffold_project_end_to_end(template, tmp_path, make_prompter, identity):
    target = tmp_path / "out" / "demo"
    prompter = make_prompter(lines=["", ""])

    report = scaffold_project(
        ScaffoldOptions(template_root=template, target=target, init_repo=False),
        prompter=prompter,
        identity=identity,
    )

    assert report.project_name == "demo"
    assert report.rendered == ("Cargo.toml", "src/main.rs")
    assert report.copied == ("assets/banner.txt",)
    assert report.skipped == ("src/lib.rs",)
    assert report.context["description"] == "A demo"
    assert report.context["use_cli"] is True

    cargo = (target / "Cargo.toml").read_text(encoding="utf-8")
    assert 'name = "demo"' in cargo
    assert 'authors = ["Jane Doe <jane@example.com>"]' in cargo
    assert (target / "src" / "main.rs").read_text(encoding="utf-8") == "mod cli;\nfn main() {}\n"
    assert (target / "assets" / "banner.txt").read_text(encoding="utf-8") == "{{ kept verbatim }}\n"
    assert not (target / "src" / "lib.rs").exists()
    assert not (target / ".hatchkit.yml").exists()


def test_scaffold_project_with_skip_prompt_defaults(template, tmp_path, make_prompter, identity):
    defaults = {
        "description": DefaultSetting(value=DefaultValue(type="string", value="From bookmark"), skip_prompt=True),
        "use_cli": DefaultSetting(value=DefaultValue(type="bool", value=False), skip_prompt=True),
    }
    target = tmp_path / "demo"

    report = scaffold_project(
        ScaffoldOptions(template_root=template, target=target, defaults=defaults, init_repo=False),
        prompter=make_prompter(),
        identity=identity,
    )

    assert report.context["use_cli"] is False
    assert (target / "src" / "main.rs").read_text(encoding="utf-8") == "fn main() {}\n"
    assert 'description = "From bookmark"' in (target / "Cargo.toml").read_text(encoding="utf-8")


def test_scaffold_project_updates_dependencies(template, tmp_path, make_prompter, identity):
    target = tmp_path / "demo"

    scaffold_project(
        ScaffoldOptions(template_root=template, target=target, update_deps=True, init_repo=False),
        prompter=make_prompter(lines=["", ""]),
        identity=identity,
        index=FakeIndex({"serde": Version.parse("1.0.210")}),
    )

    cargo = (target / "Cargo.toml").read_text(encoding="utf-8")
    assert 'serde = "1.0.210"' in cargo


def test_scaffold_project_initializes_repository(template, tmp_path, make_prompter, identity, monkeypatch):
    calls = []
    monkeypatch.setattr(repo_module, "init", calls.append)
    target = tmp_path / "demo"

    scaffold_project(
        ScaffoldOptions(template_root=template, target=target),
        prompter=make_prompter(lines=["", ""]),
        identity=identity,
    )

    assert calls == [target]


def test_scaffold_project_requires_config(write_template, tmp_path, make_prompter, identity):
    root = write_template({"README.md": "hi"})

    with pytest.raises(ScaffoldError, match=".hatchkit.yml"):
        scaffold_project(
            ScaffoldOptions(template_root=root, target=tmp_path / "demo", init_repo=False),
            prompter=make_prompter(),
            identity=identity,
        )


def test_prepare_target_missing_or_empty(tmp_path, make_prompter):
    prepare_target(tmp_path / "missing", make_prompter())
    (tmp_path / "empty").mkdir()
    prepare_target(tmp_path / "empty", make_prompter())


def test_prepare_target_clears_after_confirmation(tmp_path, make_prompter):
    target = tmp_path / "demo"
    target.mkdir()
    (target / "old.txt").write_text("old", encoding="utf-8")

    prepare_target(target, make_prompter(lines=["y"]))

    assert not target.exists()


@pytest.mark.parametrize("answer", ["n", ""])
def test_prepare_target_declined(tmp_path, make_prompter, answer):
    target = tmp_path / "demo"
    target.mkdir()
    (target / "old.txt").write_text("old", encoding="utf-8")

    with pytest.raises(PromptCancelled):
        prepare_target(target, make_prompter(lines=[answer]))

    assert (target / "old.txt").exists()


def test_prepare_target_existing_file(tmp_path, make_prompter):
    target = tmp_path / "demo"
    target.write_text("file", encoding="utf-8")

    with pytest.raises(ScaffoldError, match="existing file"):
        prepare_target(target, make_prompter())


def test_target_directory(tmp_path):
    assert target_directory(tmp_path, "demo") == ("demo", tmp_path / "demo")
    assert target_directory(tmp_path / "here", None) == ("here", tmp_path / "here")
    with pytest.raises(ScaffoldError):
        target_directory(Path("/"), None)


def test_init_template_writes_loadable_sample(tmp_path):
    path = init_template(tmp_path / "tpl")

    settings = load_repo_settings(tmp_path / "tpl")
    assert path.name == ".hatchkit.yml"
    assert [setting.name for setting in settings.settings] == ["description", "license", "use_cli"]

    with pytest.raises(ScaffoldError, match="already exists"):
        init_template(tmp_path / "tpl")


def test_resolve_template_local_bookmark(tmp_path):
    (tmp_path / "templates" / "rust").mkdir(parents=True)
    bookmark = Bookmark(name="rust", repository=str(tmp_path / "templates"), folder=Path("rust"))

    assert resolve_template(bookmark) == tmp_path / "templates" / "rust"


def test_resolve_template_unknown_location(tmp_path):
    bookmark = Bookmark(name="gone", repository=str(tmp_path / "missing"))

    with pytest.raises(ScaffoldError, match="neither a remote git URL nor a local folder"):
        resolve_template(bookmark)


def test_remote_checkout_uses_cache_dir(tmp_path, monkeypatch):
    calls = []
    monkeypatch.setenv("HATCHKIT_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.setattr(repo_module, "clone_or_update", lambda url, path: calls.append((url, path)))

    path = remote_checkout("git@github.com:owner/templates.git", Path("rust"))

    assert calls == [("git@github.com:owner/templates.git", tmp_path / "cache" / "owner/templates")]
    assert path == tmp_path / "cache" / "owner" / "templates" / "rust"


def test_remote_checkout_rejects_unknown_url():
    with pytest.raises(ScaffoldError, match="repository name"):
        remote_checkout("file:///tmp/templates")


def test_scaffold_project_seeded_default_and_binary_copy(write_template, tmp_path, make_prompter, identity):
    logo = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\xff\x00\x10"
    root = write_template(
        {
            ".hatchkit.yml": (
                "crate_type: bin\n"
                "use_feature:\n"
                "  description: Use the feature?\n"
                "  type: bool\n"
                "  default: true\n"
            ),
            "Cargo.toml": '[package]\nname = "{{ project_name }}"\nfeature = {{ use_feature | lower }}\n',
            "logo.png": logo,
        },
        root_name="scenario",
    )
    defaults = {"use_feature": DefaultSetting(value=DefaultValue(type="bool", value=False))}
    prompter = make_prompter(lines=[""])
    target = tmp_path / "demo"

    report = scaffold_project(
        ScaffoldOptions(template_root=root, target=target, defaults=defaults, init_repo=False),
        prompter=prompter,
        identity=identity,
    )

    assert report.context["use_feature"] is False
    assert "y/N" in prompter.console.file.getvalue()
    assert report.rendered == ("Cargo.toml",)
    assert report.copied == ("logo.png",)
    assert (target / "Cargo.toml").read_text(encoding="utf-8") == '[package]\nname = "demo"\nfeature = false\n'
    assert (target / "logo.png").read_bytes() == logo


def test_prepare_target_clear_failure(tmp_path, make_prompter, monkeypatch):
    from hatchkit import scaffold as scaffold_module

    target = tmp_path / "demo"
    target.mkdir()
    (target / "old.txt").write_text("old", encoding="utf-8")

    def locked(path):
        raise PermissionError(13, "Permission denied", str(path))

    monkeypatch.setattr(scaffold_module.shutil, "rmtree", locked)

    with pytest.raises(ScaffoldError, match="failed clearing target directory"):
        prepare_target(target, make_prompter(lines=["y"]))


def test_init_template_write_failure(tmp_path):
    blocker = tmp_path / "tpl"
    blocker.write_text("not a directory", encoding="utf-8")

    with pytest.raises(ScaffoldError, match="failed writing template configuration"):
        init_template(blocker)
