"""Interactive readers, one per setting type.

Line based readers (bool, string, number, float) print a header, read a line
and parse it; invalid input prints the reason and asks again. The list readers
take over the keyboard: arrow keys move the cursor, space/tab toggles an entry
of a multi list and enter confirms. Ctrl-C or end of input raises
:class:`PromptCancelled` from every reader.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Callable, Mapping

import typer
from rich.console import Console, Group
from rich.live import Live
from rich.markup import escape
from rich.text import Text

from .schema import (
    BoolSetting,
    FloatSetting,
    ListSetting,
    MultiListSetting,
    NumberSetting,
    SettingType,
    StringSetting,
)
from .validators import check_string

logger = logging.getLogger(__name__)

UP_KEYS = ("\x1b[A", "\x1bOA", "\xe0H", "\x00H", "k")
DOWN_KEYS = ("\x1b[B", "\x1bOB", "\xe0P", "\x00P", "j")
CONFIRM_KEYS = ("\r", "\n")
TOGGLE_KEYS = (" ", "\t")
CANCEL_KEYS = ("\x03", "\x04")

_INTEGER_RE = re.compile(r"[+-]?\d+", re.ASCII)
_FLOAT_RE = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)(e[+-]?\d+)?", re.ASCII)

Reader = Callable[[str, Any], Any]


class PromptCancelled(Exception):
    """The operator aborted an interactive prompt."""


class InvalidInput(ValueError):
    pass


def parse_bool(text: str, default: bool | None) -> bool:
    value = text.strip().lower()
    if not value:
        if default is None:
            raise InvalidInput("must provide a value")
        return default
    if value in ("y", "yes", "true"):
        return True
    if value in ("n", "no", "false"):
        return False
    raise InvalidInput("unknown input")


def parse_string(text: str, setting: StringSetting) -> str:
    value = text.strip()
    if not value:
        if setting.default is None:
            raise InvalidInput("must provide a value")
        return setting.default
    error = check_string(setting.validator, value)
    if error:
        raise InvalidInput(error)
    return value


def parse_number(text: str, setting: NumberSetting | FloatSetting) -> int | float:
    value = text.strip().lower()
    if not value:
        if setting.default is None:
            raise InvalidInput("must provide a value")
        return setting.default

    pattern = _INTEGER_RE if isinstance(setting, NumberSetting) else _FLOAT_RE
    if not pattern.fullmatch(value):
        raise InvalidInput("not a number")
    number = int(value) if isinstance(setting, NumberSetting) else float(value)
    if isinstance(number, float) and not math.isfinite(number):
        raise InvalidInput("not a number")
    if not (number >= setting.min):
        raise InvalidInput("value is below the minimum")
    if not (number <= setting.max):
        raise InvalidInput("value is above the maximum")
    return number


def multi_list_result(values: tuple[str, ...], selection: set[int]) -> list[str]:
    return [value for index, value in enumerate(values) if index in selection]


class Prompter:
    def __init__(
        self,
        console: Console | None = None,
        read_line: Callable[[], str] | None = None,
        read_key: Callable[[], str] | None = None,
        readers: Mapping[type, Reader] | None = None,
    ) -> None:
        self.console = console or Console(stderr=True)
        self._read_line = read_line or (lambda: self.console.input("> "))
        self._read_key = read_key or typer.getchar
        self.readers: dict[type, Reader] = {
            BoolSetting: self.read_bool,
            StringSetting: self.read_string,
            NumberSetting: self.read_number,
            FloatSetting: self.read_number,
            ListSetting: self.read_list,
            MultiListSetting: self.read_multi_list,
        }
        if readers:
            self.readers.update(readers)

    def prompt(self, description: str, setting: SettingType) -> Any:
        reader = self.readers.get(type(setting))
        if reader is None:
            raise TypeError(f"no reader for setting type {type(setting).__name__}")
        return reader(description, setting)

    def confirm(self, description: str, default: bool = False) -> bool:
        return self.read_bool(description, BoolSetting(default=default))

    # -- line based readers ------------------------------------------------

    def _line(self) -> str:
        try:
            return self._read_line()
        except (KeyboardInterrupt, EOFError):
            raise PromptCancelled("prompt cancelled by user") from None

    def _ask(self, header: str, parse: Callable[[str], Any]) -> Any:
        while True:
            self.console.print(header)
            try:
                return parse(self._line())
            except InvalidInput as error:
                self.console.print(f"[red]Invalid input:[/red] {escape(str(error))}")

    def read_bool(self, description: str, setting: BoolSetting) -> bool:
        if setting.default is True:
            choices = "[green]Y[/green]/n"
        elif setting.default is False:
            choices = "y/[red]N[/red]"
        else:
            choices = "y/n"
        header = f"{escape(description)} [bold]\\[{choices}][/bold]:"
        return self._ask(header, lambda text: parse_bool(text, setting.default))

    def read_string(self, description: str, setting: StringSetting) -> str:
        header = f"{escape(description)}:"
        if setting.default is not None:
            header = f"{escape(description)} \\[default: {escape(setting.default)}]:"
        return self._ask(header, lambda text: parse_string(text, setting))

    def read_number(self, description: str, setting: NumberSetting | FloatSetting) -> int | float:
        header = f"{escape(description)} ([bold]{setting.min}..={setting.max}[/bold])"
        if setting.default is not None:
            header += f" \\[default: {setting.default}]"
        return self._ask(header + ":", lambda text: parse_number(text, setting))

    # -- keyboard driven readers -------------------------------------------

    def _key(self) -> str:
        try:
            key = self._read_key()
        except (KeyboardInterrupt, EOFError):
            raise PromptCancelled("prompt cancelled by user") from None
        if key in CANCEL_KEYS:
            raise PromptCancelled("prompt cancelled by user")
        return key

    @staticmethod
    def _render_list(values: tuple[str, ...], index: int, selection: set[int] | None = None) -> Group:
        lines = []
        for position, value in enumerate(values):
            current = position == index
            line = Text("* " if current else "  ", style="green" if current else "")
            if selection is not None:
                line.append("[x] " if position in selection else "[ ] ", style="green" if current else "")
            line.append(value, style="green" if current else "")
            lines.append(line)
        return Group(*lines)

    def _navigate(
        self,
        description: str,
        values: tuple[str, ...],
        index: int,
        selection: set[int] | None = None,
    ) -> int:
        self.console.print(f"{escape(description)}:")
        with Live(
            self._render_list(values, index, selection),
            console=self.console,
            auto_refresh=False,
        ) as live:
            while True:
                key = self._key()
                if key in CONFIRM_KEYS:
                    break
                if key in UP_KEYS:
                    index = (index - 1) % len(values)
                elif key in DOWN_KEYS:
                    index = (index + 1) % len(values)
                elif selection is not None and key in TOGGLE_KEYS:
                    selection.symmetric_difference_update({index})
                else:
                    continue
                live.update(self._render_list(values, index, selection), refresh=True)
        return index

    def read_list(self, description: str, setting: ListSetting) -> str:
        index = setting.values.index(setting.default) if setting.default in setting.values else 0
        index = self._navigate(description, setting.values, index)
        return setting.values[index]

    def read_multi_list(self, description: str, setting: MultiListSetting) -> list[str]:
        default = setting.default or frozenset()
        selection = {position for position, value in enumerate(setting.values) if value in default}
        index = min(selection) if selection else 0
        self._navigate(description, setting.values, index, selection)
        return multi_list_result(setting.values, selection)
