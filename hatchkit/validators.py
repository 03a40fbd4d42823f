"""Validators that put additional restrictions on string input.

Each validator returns ``None`` for acceptable input, otherwise the reason
shown to the user before prompting again.
"""

from __future__ import annotations

from typing import Callable

from .schema import StringValidator, ValidatorKind
from .versions import VersionReq, VersionReqError, parse_version

MAX_CRATE_NAME_LENGTH = 64

RUST_KEYWORDS = frozenset(
    {
        "as", "async", "await", "break", "const", "continue", "crate", "dyn", "else", "enum",
        "extern", "false", "fn", "for", "if", "impl", "in", "let", "loop", "match", "mod",
        "move", "mut", "pub", "ref", "return", "self", "Self", "static", "struct", "super",
        "trait", "true", "type", "unsafe", "use", "where", "while", "abstract", "become",
        "box", "do", "final", "macro", "override", "priv", "typeof", "unsized", "virtual",
        "yield", "try", "union",
    }
)


def required(value: str) -> str | None:
    if not value:
        return "A response is required."
    return None


def crate_name(value: str) -> str | None:
    valid = (
        0 < len(value) <= MAX_CRATE_NAME_LENGTH
        and value[0].isascii()
        and value[0].isalpha()
        and all((char.isascii() and char.isalnum()) or char in "_-" for char in value)
    )
    return None if valid else "value must be a valid crate name"


def identifier(value: str) -> str | None:
    # `str.isidentifier` follows XID_Start/XID_Continue; a lone underscore is not an identifier.
    if value.isidentifier() and value != "_" and value not in RUST_KEYWORDS:
        return None
    return "value must be a valid Rust identifier"


def semantic_version(value: str) -> str | None:
    try:
        parse_version(value)
    except VersionReqError as error:
        return f"value is not a valid semantic version: {error}"
    return None


def semantic_version_req(value: str) -> str | None:
    try:
        VersionReq.parse(value)
    except VersionReqError as error:
        return f"value is not a valid semantic version spec: {error}"
    return None


_BY_KIND: dict[ValidatorKind, Callable[[str], str | None]] = {
    ValidatorKind.required: required,
    ValidatorKind.crate: crate_name,
    ValidatorKind.ident: identifier,
    ValidatorKind.semver: semantic_version,
    ValidatorKind.semver_req: semantic_version_req,
}


def check_string(validator: StringValidator | None, value: str) -> str | None:
    if validator is None:
        return required(value)
    if validator.kind == ValidatorKind.regex:
        if validator.pattern is not None and validator.pattern.search(value):
            return None
        pattern = validator.pattern.pattern if validator.pattern is not None else ""
        return f"value must match regex pattern `{pattern}`"
    return _BY_KIND[validator.kind](value)
