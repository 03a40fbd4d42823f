"""Cargo flavoured version requirements on top of the ``semver`` package.

``semver`` covers parsing and ordering of concrete versions. Cargo requirement
strings (``1.2``, ``^0.3``, ``~1``, ``>=1, <2``, ``1.*``) are parsed here into
comparators and matched with the same rules cargo applies.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from semver import Version


class VersionReqError(ValueError):
    pass


class Op(str, Enum):
    exact = "="
    greater = ">"
    greater_eq = ">="
    less = "<"
    less_eq = "<="
    tilde = "~"
    caret = "^"
    wildcard = "*"


_COMPARATOR_RE = re.compile(r"^(?P<op>>=|<=|=|>|<|~|\^)?\s*(?P<version>\S+)$")
_WILDCARDS = ("*", "x", "X")
_IDENT_RE = re.compile(r"^[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*$")
_NUMBER_RE = re.compile(r"^(?:0|[1-9]\d*)$")


@dataclass(frozen=True)
class Comparator:
    op: Op
    major: int
    minor: int | None = None
    patch: int | None = None
    pre: str = ""

    def __str__(self) -> str:
        parts = [str(self.major)]
        if self.minor is not None:
            parts.append(str(self.minor))
        if self.patch is not None:
            parts.append(str(self.patch))
        version = ".".join(parts)
        if self.pre:
            version += f"-{self.pre}"
        if self.op == Op.wildcard:
            return f"{version}.*"
        return f"{self.op.value}{version}"


@dataclass(frozen=True)
class VersionReq:
    comparators: tuple[Comparator, ...]

    @classmethod
    def parse(cls, text: str) -> "VersionReq":
        text = text.strip()
        if not text:
            raise VersionReqError("empty string, expected a semver version requirement")
        if text in _WILDCARDS:
            return cls(comparators=())
        return cls(comparators=tuple(_parse_comparator(part) for part in text.split(",")))

    def matches(self, version: Version) -> bool:
        if not all(_matches(cmp, version) for cmp in self.comparators):
            return False
        if not version.prerelease:
            return True
        # Pre-releases only match when a comparator names the same release explicitly.
        return any(_pre_is_compatible(cmp, version) for cmp in self.comparators)

    def __str__(self) -> str:
        if not self.comparators:
            return "*"
        return ", ".join(str(cmp) for cmp in self.comparators)


def parse_version(text: str) -> Version:
    try:
        return Version.parse(text.strip())
    except (ValueError, TypeError) as error:
        raise VersionReqError(str(error)) from error


def _parse_number(value: str, field: str) -> int:
    if not _NUMBER_RE.match(value):
        raise VersionReqError(f"invalid {field} version component `{value}`")
    return int(value)


def _parse_comparator(text: str) -> Comparator:
    match = _COMPARATOR_RE.match(text.strip())
    if not match:
        raise VersionReqError(f"invalid comparator `{text.strip()}`")

    raw_op = match.group("op")
    version = match.group("version")
    version = version.split("+", 1)[0]
    if not version:
        raise VersionReqError(f"missing version in comparator `{text.strip()}`")

    pre = ""
    if "-" in version:
        version, pre = version.split("-", 1)
        if not _IDENT_RE.match(pre):
            raise VersionReqError(f"invalid pre-release `{pre}`")

    components = version.split(".")
    if len(components) > 3:
        raise VersionReqError(f"too many version components in `{version}`")

    numbers: list[int | None] = []
    wildcard = False
    for field, component in zip(("major", "minor", "patch"), components):
        if component in _WILDCARDS:
            wildcard = True
            numbers.append(None)
            continue
        if wildcard:
            raise VersionReqError(f"unexpected number after wildcard in `{version}`")
        numbers.append(_parse_number(component, field))

    if pre and (len(components) < 3 or wildcard):
        raise VersionReqError(f"pre-release requires a full version in `{version}`")

    if wildcard:
        if raw_op not in (None, "="):
            raise VersionReqError(f"wildcard cannot be combined with `{raw_op}`")
        if numbers[0] is None:
            raise VersionReqError("wildcard `*` must be the only comparator")
        return Comparator(op=Op.wildcard, major=numbers[0], minor=numbers[1] if len(numbers) > 1 else None)

    numbers.extend([None] * (3 - len(numbers)))
    major, minor, patch = numbers
    op = Op(raw_op) if raw_op else Op.caret
    return Comparator(op=op, major=major, minor=minor, patch=patch, pre=pre)


def _cmp_pre(left: str, right: str) -> int:
    return Version(0, 0, 0, prerelease=left or None).compare(Version(0, 0, 0, prerelease=right or None))


def _matches_exact(cmp: Comparator, ver: Version) -> bool:
    if ver.major != cmp.major:
        return False
    if cmp.minor is not None and ver.minor != cmp.minor:
        return False
    if cmp.patch is not None and ver.patch != cmp.patch:
        return False
    return (ver.prerelease or "") == cmp.pre


def _matches_greater(cmp: Comparator, ver: Version) -> bool:
    if ver.major != cmp.major:
        return ver.major > cmp.major
    if cmp.minor is None:
        return False
    if ver.minor != cmp.minor:
        return ver.minor > cmp.minor
    if cmp.patch is None:
        return False
    if ver.patch != cmp.patch:
        return ver.patch > cmp.patch
    return _cmp_pre(ver.prerelease or "", cmp.pre) > 0


def _matches_less(cmp: Comparator, ver: Version) -> bool:
    if ver.major != cmp.major:
        return ver.major < cmp.major
    if cmp.minor is None:
        return False
    if ver.minor != cmp.minor:
        return ver.minor < cmp.minor
    if cmp.patch is None:
        return False
    if ver.patch != cmp.patch:
        return ver.patch < cmp.patch
    return _cmp_pre(ver.prerelease or "", cmp.pre) < 0


def _matches_tilde(cmp: Comparator, ver: Version) -> bool:
    if ver.major != cmp.major:
        return False
    if cmp.minor is not None and ver.minor != cmp.minor:
        return False
    if cmp.patch is not None and ver.patch != cmp.patch:
        return ver.patch > cmp.patch
    return _cmp_pre(ver.prerelease or "", cmp.pre) >= 0


def _matches_caret(cmp: Comparator, ver: Version) -> bool:
    if ver.major != cmp.major:
        return False
    if cmp.minor is None:
        return True
    if cmp.patch is None:
        if cmp.major > 0:
            return ver.minor >= cmp.minor
        return ver.minor == cmp.minor

    if cmp.major > 0:
        if ver.minor != cmp.minor:
            return ver.minor > cmp.minor
        if ver.patch != cmp.patch:
            return ver.patch > cmp.patch
    elif cmp.minor > 0:
        if ver.minor != cmp.minor:
            return False
        if ver.patch != cmp.patch:
            return ver.patch > cmp.patch
    elif ver.minor != cmp.minor or ver.patch != cmp.patch:
        return False

    return _cmp_pre(ver.prerelease or "", cmp.pre) >= 0


def _matches_wildcard(cmp: Comparator, ver: Version) -> bool:
    if ver.major != cmp.major:
        return False
    return cmp.minor is None or ver.minor == cmp.minor


def _matches(cmp: Comparator, ver: Version) -> bool:
    if cmp.op == Op.exact:
        return _matches_exact(cmp, ver)
    if cmp.op == Op.greater:
        return _matches_greater(cmp, ver)
    if cmp.op == Op.greater_eq:
        return _matches_exact(cmp, ver) or _matches_greater(cmp, ver)
    if cmp.op == Op.less:
        return _matches_less(cmp, ver)
    if cmp.op == Op.less_eq:
        return _matches_exact(cmp, ver) or _matches_less(cmp, ver)
    if cmp.op == Op.tilde:
        return _matches_tilde(cmp, ver)
    if cmp.op == Op.caret:
        return _matches_caret(cmp, ver)
    return _matches_wildcard(cmp, ver)


def _pre_is_compatible(cmp: Comparator, ver: Version) -> bool:
    return (
        cmp.major == ver.major
        and cmp.minor == ver.minor
        and cmp.patch == ver.patch
        and bool(cmp.pre)
    )
