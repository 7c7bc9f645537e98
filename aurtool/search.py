"""Searching the sync databases and the AUR, and presenting the results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from functools import cmp_to_key
from typing import Any, Callable, Collection, Iterable, Protocol, Sequence, TextIO

import requests

from aurtool import text as term
from aurtool.aur import AURSearchError, NoQueryError, Pkg, SearchBy, remove_invalid_targets
from aurtool.parser import TargetMode


class SearchVerbosity(Enum):
    """How much detail search results are printed with."""

    NUMBER_MENU = 0
    DETAILED = 1
    MINIMAL = 2


class _Searcher(Protocol):
    def search(self, query: str, by: SearchBy) -> list[Pkg]: ...


_SEARCH_BY = {
    "name": SearchBy.NAME,
    "maintainer": SearchBy.MAINTAINER,
    "depends": SearchBy.DEPENDS,
    "makedepends": SearchBy.MAKE_DEPENDS,
    "optdepends": SearchBy.OPT_DEPENDS,
    "checkdepends": SearchBy.CHECK_DEPENDS,
}

_LESS: dict[str, Callable[[Pkg, Pkg], bool]] = {
    "votes": lambda a, b: a.num_votes > b.num_votes,
    "popularity": lambda a, b: a.popularity > b.popularity,
    "name": lambda a, b: term.less_runes(a.name, b.name),
    "base": lambda a, b: term.less_runes(a.package_base, b.package_base),
    "submitted": lambda a, b: a.first_submitted < b.first_submitted,
    "modified": lambda a, b: a.last_modified < b.last_modified,
    "id": lambda a, b: a.id < b.id,
    "baseid": lambda a, b: a.package_base_id < b.package_base_id,
}

_SEARCH_ERRORS = (requests.RequestException, ValueError, OSError)


def get_search_by(value: str) -> SearchBy:
    """The AUR search field named by a configuration value."""
    return _SEARCH_BY.get(value, SearchBy.NAME_DESC)


def sort_aur_results(results: Iterable[Pkg], sort_by: str, bottom_up: bool) -> list[Pkg]:
    """AUR results ordered by the chosen field, reversed when bottom_up is set."""
    items = list(results)
    less = _LESS.get(sort_by)
    if less is None:
        return items

    def compare(first: Pkg, second: Pkg) -> int:
        if less(first, second):
            return -1
        if less(second, first):
            return 1
        return 0

    items.sort(key=cmp_to_key(compare), reverse=bottom_up)
    return items


def _installed_marker(executor: Any, name: str, version: str) -> str:
    local = executor.local_package(name)
    if local is None:
        return ""
    if local.version != version:
        return term.bold(term.green(f"(Installed: {local.version})"))
    return term.bold(term.green("(Installed)"))


def print_aur_search(
    out: TextIO,
    query: Sequence[Pkg],
    start: int,
    executor: Any,
    search_mode: SearchVerbosity,
    bottom_up: bool,
    single_line_results: bool,
) -> None:
    """Write AUR search results, numbered from start in the number menu."""
    for index, pkg in enumerate(query):
        if search_mode is SearchVerbosity.MINIMAL:
            out.write(pkg.name + "\n")
            continue

        line = ""
        if search_mode is SearchVerbosity.NUMBER_MENU:
            number = len(query) + start - index - 1 if bottom_up else start + index
            line += term.magenta(f"{number} ")

        line += (
            term.bold(term.color_hash("aur")) + "/" + term.bold(pkg.name)
            + " " + term.cyan(pkg.version)
            + term.bold(f" (+{pkg.num_votes}")
            + " " + term.bold(f"{pkg.popularity:.2f}) ")
        )

        if not pkg.maintainer:
            line += term.bold(term.red("(Orphaned)")) + " "
        if pkg.out_of_date:
            line += term.bold(term.red(f"(Out-of-date: {term.format_time(pkg.out_of_date)})")) + " "

        line += _installed_marker(executor, pkg.name, pkg.version)
        line += "\t" if single_line_results else "\n    "
        line += pkg.description
        out.write(line + "\n")


def print_repo_search(
    out: TextIO,
    query: Sequence[Any],
    executor: Any,
    search_mode: SearchVerbosity,
    bottom_up: bool,
    single_line_results: bool,
) -> None:
    """Write sync database search results."""
    for index, pkg in enumerate(query):
        if search_mode is SearchVerbosity.MINIMAL:
            out.write(pkg.name + "\n")
            continue

        line = ""
        if search_mode is SearchVerbosity.NUMBER_MENU:
            number = len(query) - index if bottom_up else index + 1
            line += term.magenta(f"{number} ")

        line += (
            term.bold(term.color_hash(pkg.db.name)) + "/" + term.bold(pkg.name)
            + " " + term.cyan(pkg.version)
            + term.bold(f" ({term.human(pkg.size)} {term.human(pkg.isize)}) ")
        )

        groups = executor.package_groups(pkg)
        if groups:
            line += "[" + " ".join(groups) + "] "

        line += _installed_marker(executor, pkg.name, pkg.version)
        line += "\t" if single_line_results else "\n    "
        line += pkg.description
        out.write(line + "\n")


def _query_repo(pkgs: Sequence[str], executor: Any, bottom_up: bool) -> list[Any]:
    results = list(executor.sync_packages(*pkgs))
    if bottom_up:
        results.reverse()
    return results


def _query_aur(
    client: _Searcher, pkgs: Sequence[str], search_by: str, bottom_up: bool, sort_by: str
) -> list[Pkg] | None:
    by = get_search_by(search_by)
    if not pkgs:
        return None

    results: list[Pkg] | None = None
    used_index = 0
    last_error: Exception | None = None
    for index, word in enumerate(pkgs):
        try:
            results = client.search(word, by)
        except _SEARCH_ERRORS as exc:
            last_error = exc
            continue
        used_index = index
        break

    if results is None:
        assert last_error is not None
        raise last_error

    if len(pkgs) == 1:
        return sort_aur_results(results, sort_by, bottom_up)

    other_words = [word.lower() for index, word in enumerate(pkgs) if index != used_index]
    matches = [
        pkg for pkg in results
        if all(word in pkg.name.lower() or word in pkg.description.lower() for word in other_words)
    ]
    return sort_aur_results(matches, sort_by, bottom_up)


@dataclass
class SourceQueryBuilder:
    """Runs a search against the enabled sources and prints or selects its results."""

    sort_by: str = "votes"
    target_mode: TargetMode = TargetMode.ANY
    search_by: str = "name-desc"
    bottom_up: bool = True
    single_line_results: bool = False
    repo_query: list[Any] | None = field(default_factory=list)
    aur_query: list[Pkg] | None = field(default_factory=list)

    def execute(self, executor: Any, aur_client: _Searcher, pkgs: Sequence[str]) -> None:
        """Search the sources allowed by the target mode."""
        aur_error: Exception | None = None
        pkgs = remove_invalid_targets(pkgs, self.target_mode)

        if self.target_mode.at_least_aur():
            try:
                self.aur_query = _query_aur(
                    aur_client, pkgs, self.search_by, self.bottom_up, self.sort_by
                )
            except _SEARCH_ERRORS as exc:
                aur_error = exc
                self.aur_query = None

        if self.target_mode.at_least_repo():
            self.repo_query = _query_repo(pkgs, executor, self.bottom_up)

        if aur_error is not None and self.repo_query:
            term.errorln(AURSearchError(aur_error))
            term.warnln("Showing repo packages only")

    def results(self, out: TextIO, executor: Any, verbosity: SearchVerbosity) -> None:
        """Write the results; raise NoQueryError if no query has produced any."""
        if self.aur_query is None or self.repo_query is None:
            raise NoQueryError()

        def write_aur() -> None:
            if self.target_mode.at_least_aur():
                print_aur_search(
                    out, self.aur_query or [], len(self.repo_query or []) + 1, executor,
                    verbosity, self.bottom_up, self.single_line_results,
                )

        def write_repo() -> None:
            if self.target_mode.at_least_repo():
                print_repo_search(
                    out, self.repo_query or [], executor, verbosity,
                    self.bottom_up, self.single_line_results,
                )

        if self.bottom_up:
            write_aur()
            write_repo()
        else:
            write_repo()
            write_aur()

    def __len__(self) -> int:
        return len(self.repo_query or []) + len(self.aur_query or [])

    def get_targets(
        self,
        include: Collection[int],
        exclude: Collection[int],
        other_exclude: Collection[str],
    ) -> list[str]:
        """Targets picked by menu numbers, as 'db/name' strings."""
        is_include = not exclude and not other_exclude
        repo = self.repo_query or []
        aur = self.aur_query or []

        def selected(number: int) -> bool:
            return number in include if is_include else number not in exclude

        targets: list[str] = []
        for index, pkg in enumerate(repo):
            number = len(repo) - index if self.bottom_up else index + 1
            if selected(number):
                targets.append(f"{pkg.db.name}/{pkg.name}")

        for index, pkg in enumerate(aur):
            if self.bottom_up:
                number = len(aur) - index + len(repo)
            else:
                number = index + 1 + len(repo)
            if selected(number):
                targets.append(f"aur/{pkg.name}")

        return targets