"""Querying the AUR RPC interface and sorting installed packages by source."""

from __future__ import annotations

import sys
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Protocol, Sequence

import requests

from aurtool import text as term
from aurtool.parser import TargetMode

DEFAULT_RPC_URL = "https://aur.archlinux.org/rpc"
RPC_VERSION = 5
_TIMEOUT = 30


class _Package(Protocol):
    name: str


class _Executor(Protocol):
    def local_packages(self) -> Sequence[Any]: ...

    def sync_package(self, name: str) -> Any: ...


def _text(value: object) -> str:
    return "" if value is None else str(value)


def _number(value: object) -> int:
    return int(value) if value else 0


def _strings(value: object) -> list[str]:
    return [str(item) for item in value] if isinstance(value, list) else []


@dataclass
class Pkg:
    """A package as described by the AUR."""

    id: int = 0
    name: str = ""
    package_base_id: int = 0
    package_base: str = ""
    version: str = ""
    description: str = ""
    url: str = ""
    num_votes: int = 0
    popularity: float = 0.0
    out_of_date: int = 0
    maintainer: str = ""
    first_submitted: int = 0
    last_modified: int = 0
    url_path: str = ""
    depends: list[str] = field(default_factory=list)
    make_depends: list[str] = field(default_factory=list)
    check_depends: list[str] = field(default_factory=list)
    opt_depends: list[str] = field(default_factory=list)
    conflicts: list[str] = field(default_factory=list)
    provides: list[str] = field(default_factory=list)
    replaces: list[str] = field(default_factory=list)
    groups: list[str] = field(default_factory=list)
    license: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> Pkg:
        """Build a package from one result of an RPC response."""
        return cls(
            id=_number(data.get("ID")),
            name=_text(data.get("Name")),
            package_base_id=_number(data.get("PackageBaseID")),
            package_base=_text(data.get("PackageBase")),
            version=_text(data.get("Version")),
            description=_text(data.get("Description")),
            url=_text(data.get("URL")),
            num_votes=_number(data.get("NumVotes")),
            popularity=float(data.get("Popularity") or 0.0),
            out_of_date=_number(data.get("OutOfDate")),
            maintainer=_text(data.get("Maintainer")),
            first_submitted=_number(data.get("FirstSubmitted")),
            last_modified=_number(data.get("LastModified")),
            url_path=_text(data.get("URLPath")),
            depends=_strings(data.get("Depends")),
            make_depends=_strings(data.get("MakeDepends")),
            check_depends=_strings(data.get("CheckDepends")),
            opt_depends=_strings(data.get("OptDepends")),
            conflicts=_strings(data.get("Conflicts")),
            provides=_strings(data.get("Provides")),
            replaces=_strings(data.get("Replaces")),
            groups=_strings(data.get("Groups")),
            license=_strings(data.get("License")),
            keywords=_strings(data.get("Keywords")),
        )


class SearchBy(Enum):
    """The field an AUR search matches against."""

    NAME = "name"
    NAME_DESC = "name-desc"
    MAINTAINER = "maintainer"
    DEPENDS = "depends"
    MAKE_DEPENDS = "makedepends"
    OPT_DEPENDS = "optdepends"
    CHECK_DEPENDS = "checkdepends"


class AURClient:
    """A small client for the AUR RPC interface."""

    def __init__(
        self,
        base_url: str = DEFAULT_RPC_URL,
        session: requests.Session | None = None,
        user_agent: str = "",
        timeout: float = _TIMEOUT,
    ) -> None:
        self.base_url = base_url
        self.session = session or requests.Session()
        self.user_agent = user_agent
        self.timeout = timeout

    def _request(self, params: list[tuple[str, object]]) -> list[Pkg]:
        headers = {"User-Agent": self.user_agent} if self.user_agent else {}
        response = self.session.get(
            self.base_url.rstrip("?"), params=params, headers=headers, timeout=self.timeout
        )
        response.raise_for_status()
        payload = response.json()
        if payload.get("type") == "error":
            raise ValueError(payload.get("error") or "AUR request failed")
        return [Pkg.from_json(result) for result in payload.get("results") or []]

    def info(self, names: Iterable[str]) -> list[Pkg]:
        """Fetch the details of the named packages."""
        params: list[tuple[str, object]] = [("v", RPC_VERSION), ("type", "info")]
        params += [("arg[]", name) for name in names]
        return self._request(params)

    def search(self, query: str, by: SearchBy = SearchBy.NAME_DESC) -> list[Pkg]:
        """Search packages whose chosen field matches the query."""
        return self._request(
            [("v", RPC_VERSION), ("type", "search"), ("by", by.value), ("arg", query)]
        )


class AURSearchError(Exception):
    """The AUR could not be searched."""

    def __init__(self, inner: BaseException) -> None:
        super().__init__(f"Error during AUR search: {inner}\n")
        self.inner = inner


class NoQueryError(Exception):
    """Results were asked for before any query ran."""

    def __init__(self) -> None:
        super().__init__("no query was executed")


def filter_debug_pkgs(names: Iterable[str]) -> tuple[list[str], list[str]]:
    """Split names into ordinary and debug packages."""
    normal: list[str] = []
    debug: list[str] = []
    for name in names:
        (debug if name.endswith("-debug") else normal).append(name)
    return normal, debug


def _print_range(names: Iterable[str]) -> None:
    sys.stdout.write("".join("  " + term.cyan(name) for name in names) + "\n")


@dataclass
class AURWarnings:
    """Problems noticed while looking packages up in the AUR."""

    orphans: list[str] = field(default_factory=list)
    out_of_date: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    ignore: set[str] = field(default_factory=set)

    def print(self) -> None:
        normal_missing, debug_missing = filter_debug_pkgs(self.missing)
        sections = (
            ("Missing AUR Packages:", normal_missing),
            ("Missing AUR Debug Packages:", debug_missing),
            ("Orphaned AUR Packages:", self.orphans),
            ("Flagged Out Of Date AUR Packages:", self.out_of_date),
        )
        for title, names in sections:
            if names:
                term.warn(title)
                _print_range(names)


def aur_info(
    client: AURClient, names: Sequence[str], warnings: AURWarnings, split_n: int
) -> list[Pkg]:
    """Look the names up in the AUR, split_n names per concurrent request."""
    if split_n <= 0:
        raise ValueError("request split size must be positive")

    names = list(names)
    chunks = [names[start:start + split_n] for start in range(0, len(names), split_n)]
    info: list[Pkg] = []
    errors: list[Exception] = []

    if chunks:
        with ThreadPoolExecutor(max_workers=len(chunks)) as executor:
            futures = [executor.submit(client.info, chunk) for chunk in chunks]
            for future in futures:
                try:
                    info.extend(future.result())
                except Exception as exc:  # re-raised below after all requests end
                    errors.append(exc)

    if errors:
        raise errors[0]

    seen = {pkg.name: pkg for pkg in info}
    for name in names:
        ignored = name in warnings.ignore
        pkg = seen.get(name)
        if pkg is None:
            if not ignored:
                warnings.missing.append(name)
            continue
        if ignored:
            continue
        if not pkg.maintainer:
            warnings.orphans.append(name)
        if pkg.out_of_date:
            warnings.out_of_date.append(name)

    return info


def aur_info_print(client: AURClient, names: Sequence[str], split_n: int) -> list[Pkg]:
    """Look the names up in the AUR and print any warnings found."""
    term.operation_infoln("Querying AUR...")
    warnings = AURWarnings()
    info = aur_info(client, names, warnings, split_n)
    warnings.print()
    return info


def get_package_names_by_source(executor: _Executor) -> tuple[list[str], list[str]]:
    """Names of installed packages found in the sync databases, and of the rest."""
    local: list[str] = []
    remote: list[str] = []
    for pkg in executor.local_packages():
        target = local if executor.sync_package(pkg.name) is not None else remote
        target.append(pkg.name)
    return local, remote


def get_remote_packages(executor: _Executor) -> tuple[list[Any], list[str]]:
    """Installed packages absent from the sync databases, with their names."""
    remote = [pkg for pkg in executor.local_packages() if executor.sync_package(pkg.name) is None]
    return remote, [pkg.name for pkg in remote]


def remove_invalid_targets(targets: Iterable[str], mode: TargetMode) -> list[str]:
    """Drop targets whose database prefix the mode does not allow."""
    filtered: list[str] = []
    for target in targets:
        db_name, _ = term.split_db_from_name(target)
        if db_name == "aur" and not mode.at_least_aur():
            term.warnln(f"{term.cyan(target)}: can't use target with option --repo -- skipping")
            continue
        if db_name not in ("aur", "") and not mode.at_least_repo():
            term.warnln(f"{term.cyan(target)}: can't use target with option --aur -- skipping")
            continue
        filtered.append(target)
    return filtered