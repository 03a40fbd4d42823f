import io
from pathlib import Path

import pytest
from rich.console import Console

from hatchkit.prompts import Prompter
from hatchkit.repo import GitIdentity


def _scripted_prompter(lines=(), keys=()) -> Prompter:
    line_iter = iter(lines)
    key_iter = iter(keys)

    def read_line() -> str:
        try:
            return next(line_iter)
        except StopIteration:
            raise EOFError from None

    def read_key() -> str:
        try:
            return next(key_iter)
        except StopIteration:
            raise EOFError from None

    console = Console(file=io.StringIO(), width=120)
    return Prompter(console=console, read_line=read_line, read_key=read_key)


@pytest.fixture
def identity() -> GitIdentity:
    return GitIdentity(name="Jane Doe", email="jane@example.com")


@pytest.fixture
def write_template(tmp_path: Path):
    def _write(files: dict, root_name: str = "template") -> Path:
        root = tmp_path / root_name
        for name, content in files.items():
            path = root / name
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                path.write_text(content, encoding="utf-8")
        return root

    return _write


@pytest.fixture
def make_prompter():
    return _scripted_prompter
