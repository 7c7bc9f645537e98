"""Finding, ordering and displaying available package upgrades."""

from __future__ import annotations

import sys
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from functools import cmp_to_key
from typing import Any, Mapping, Protocol, Sequence

from aurtool import text as term
from aurtool.aur import Pkg
from aurtool.vcs import InfoStore, OriginInfo

_DIGITS = frozenset("0123456789")
_LETTERS = frozenset("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ")
_SPECIAL_WORDS = ("rc", "pre", "alpha", "beta")


class _Package(Protocol):
    name: str
    version: str
    build_date: datetime
    should_ignore: bool
    reason: int


@dataclass
class Upgrade:
    """One package that can be upgraded."""

    name: str = ""
    repository: str = ""
    local_version: str = ""
    remote_version: str = ""
    reason: int = 0


def stylized_name_with_repository(upgrade: Upgrade) -> str:
    return term.bold(term.color_hash(upgrade.repository)) + "/" + term.bold(upgrade.name)


def _check_words(value: str, index: int, words: Sequence[str]) -> bool:
    following = index + 1
    return any(
        index < len(value) - len(word) and value[following:following + len(word)] == word
        for word in words
    )


def get_version_diff(old_version: str, new_version: str) -> tuple[str, str]:
    """Both versions with the part after their common prefix coloured."""
    if old_version == new_version:
        return old_version + term.red(""), new_version + term.green("")

    diff_position = 0
    for index, char in enumerate(old_version):
        special = not char.isalnum()

        if index >= len(new_version) or char != new_version[index]:
            if special:
                diff_position = index
            break

        at_end = index == len(old_version) - 1 or index == len(new_version) - 1
        if (
            special
            or (at_end and (len(old_version) != len(new_version)
                            or old_version[index] == new_version[index]))
            or _check_words(old_version, index, _SPECIAL_WORDS)
        ):
            diff_position = index + 1

    same = old_version[:diff_position]
    return (
        same + term.red(old_version[diff_position:]),
        same + term.green(new_version[diff_position:]),
    )


def _upgrade_less(repos: Sequence[str], first: Upgrade, second: Upgrade) -> bool:
    if first.repository == second.repository:
        return term.less_runes(first.name, second.name)
    for repo in repos:
        if repo == first.repository:
            return True
        if repo == second.repository:
            return False
    return term.less_runes(first.repository, second.repository)


@dataclass
class UpSlice:
    """Upgrades together with the repositories they are ordered by."""

    up: list[Upgrade] = field(default_factory=list)
    repos: list[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.up)

    def sort(self) -> None:
        """Order by repository rank, then case-insensitively by name."""

        def compare(first: Upgrade, second: Upgrade) -> int:
            if _upgrade_less(self.repos, first, second):
                return -1
            if _upgrade_less(self.repos, second, first):
                return 1
            return 0

        self.up.sort(key=cmp_to_key(compare))

    def print(self) -> None:
        """Print a numbered table of the upgrades."""
        longest_name = max((len(stylized_name_with_repository(u)) for u in self.up), default=0)
        longest_version = max(
            (len(get_version_diff(u.local_version, u.remote_version)[0]) for u in self.up),
            default=0,
        )
        number_width = len(str(len(self.up)))

        for position, upgrade in enumerate(self.up):
            left, right = get_version_diff(upgrade.local_version, upgrade.remote_version)
            number = f"{len(self.up) - position:>{number_width}}  "
            name = f"{stylized_name_with_repository(upgrade):<{longest_name}}  "
            sys.stdout.write(
                term.magenta(number) + name + f"{left:<{longest_version}} -> {right}\n"
            )


def _rpmvercmp(a: str, b: str) -> int:
    if a == b:
        return 0

    len_a, len_b = len(a), len(b)
    one = two = ptr1 = ptr2 = 0

    def alnum(char: str) -> bool:
        return char in _DIGITS or char in _LETTERS

    while one < len_a and two < len_b:
        while one < len_a and not alnum(a[one]):
            one += 1
        while two < len_b and not alnum(b[two]):
            two += 1
        if one >= len_a or two >= len_b:
            break

        if one - ptr1 != two - ptr2:
            return -1 if one - ptr1 < two - ptr2 else 1

        ptr1, ptr2 = one, two
        kind = _DIGITS if a[ptr1] in _DIGITS else _LETTERS
        is_num = kind is _DIGITS
        while ptr1 < len_a and a[ptr1] in kind:
            ptr1 += 1
        while ptr2 < len_b and b[ptr2] in kind:
            ptr2 += 1

        segment_a, segment_b = a[one:ptr1], b[two:ptr2]
        if not segment_b:
            return 1 if is_num else -1

        if is_num:
            segment_a, segment_b = segment_a.lstrip("0"), segment_b.lstrip("0")
            if len(segment_a) != len(segment_b):
                return 1 if len(segment_a) > len(segment_b) else -1

        if segment_a != segment_b:
            return -1 if segment_a < segment_b else 1

        one, two = ptr1, ptr2

    if one >= len_a and two >= len_b:
        return 0
    if (one >= len_a and b[two] not in _LETTERS) or (one < len_a and a[one] in _LETTERS):
        return -1
    return 1


def _parse_evr(evr: str) -> tuple[str, str, str | None]:
    end = 0
    while end < len(evr) and evr[end] in _DIGITS:
        end += 1
    if end < len(evr) and evr[end] == ":":
        epoch, rest = evr[:end] or "0", evr[end + 1:]
    else:
        epoch, rest = "0", evr
    version, sep, release = rest.rpartition("-")
    if not sep:
        return epoch, rest, None
    return epoch, version, release


def ver_cmp(first: str, second: str) -> int:
    """Compare two package versions: negative, zero or positive."""
    if first == second:
        return 0
    epoch1, version1, release1 = _parse_evr(first)
    epoch2, version2, release2 = _parse_evr(second)
    result = _rpmvercmp(epoch1, epoch2)
    if result == 0:
        result = _rpmvercmp(version1, version2)
        if result == 0 and release1 is not None and release2 is not None:
            result = _rpmvercmp(release1, release2)
    return result


def _print_ignoring_package(pkg: _Package, new_version: str) -> None:
    left, right = get_version_diff(pkg.version, new_version)
    term.warnln(f"{term.cyan(pkg.name)}: ignoring package upgrade ({left} => {right})")


def up_devel(
    remote: Sequence[_Package], aurdata: Mapping[str, Pkg], local_cache: InfoStore
) -> UpSlice:
    """Development packages whose tracked repositories moved on."""

    def check(item: tuple[str, dict[str, OriginInfo]]) -> tuple[str, Any] | None:
        pkg_name, origins = item
        if not local_cache.needs_update(origins):
            return None
        if pkg_name in aurdata:
            for pkg in remote:
                if pkg.name == pkg_name:
                    return "update", pkg
        return "remove", pkg_name

    items = list(local_cache.origins_by_package.items())
    outcomes: list[tuple[str, Any] | None] = []
    if items:
        with ThreadPoolExecutor(max_workers=len(items)) as executor:
            outcomes = list(executor.map(check, items))

    to_upgrade = UpSlice(up=[], repos=["devel"])
    to_remove: list[str] = []
    for outcome in outcomes:
        if outcome is None:
            continue
        action, value = outcome
        if action == "remove":
            to_remove.append(value)
        elif value.should_ignore:
            _print_ignoring_package(value, "latest-commit")
        else:
            to_upgrade.up.append(Upgrade(
                name=value.name,
                repository="devel",
                local_version=value.version,
                remote_version="latest-commit",
            ))

    local_cache.remove_package(to_remove)
    return to_upgrade


def up_aur(
    remote: Sequence[_Package], aurdata: Mapping[str, Pkg], time_update: bool
) -> UpSlice:
    """Foreign packages that have a newer version in the AUR."""
    to_upgrade = UpSlice(up=[], repos=["aur"])
    for pkg in remote:
        aur_pkg = aurdata.get(pkg.name)
        if aur_pkg is None:
            continue

        newer_build = time_update and aur_pkg.last_modified > int(pkg.build_date.timestamp())
        if not (newer_build or ver_cmp(pkg.version, aur_pkg.version) < 0):
            continue

        if pkg.should_ignore:
            _print_ignoring_package(pkg, aur_pkg.version)
        else:
            to_upgrade.up.append(Upgrade(
                name=aur_pkg.name,
                repository="aur",
                local_version=pkg.version,
                remote_version=aur_pkg.version,
                reason=pkg.reason,
            ))
    return to_upgrade