"""Tracking the latest commits of development packages' source repositories."""

from __future__ import annotations

import json
import os
import subprocess
import sys
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Iterable

from aurtool import text as term
from aurtool.exe import CmdBuilder

_GIT_TIMEOUT = 5
_GIT_FATAL_EXIT = 128


@dataclass
class OriginInfo:
    """The last known commit of one branch of a repository."""

    protocols: list[str] = field(default_factory=list)
    branch: str = ""
    sha: str = ""

    def to_json(self) -> dict[str, object]:
        return {"protocols": self.protocols, "branch": self.branch, "sha": self.sha}

    @classmethod
    def from_json(cls, data: dict[str, object]) -> OriginInfo:
        return cls(
            protocols=list(data.get("protocols") or []),
            branch=str(data.get("branch") or ""),
            sha=str(data.get("sha") or ""),
        )


def parse_source(source: str) -> tuple[str, str, list[str]]:
    """Return the git url, branch and protocol of a source entry, or empty values."""
    source = source.split("::")[-1]
    scheme, sep, rest = source.partition("://")
    if not sep:
        return "", "", []

    protocols = scheme.split("+", 1)
    if "git" not in protocols:
        return "", "", []
    protocols = protocols[-1:]

    url, branch = "", ""
    path, hash_sep, fragment = rest.partition("#")
    if hash_sep:
        key, eq_sep, value = fragment.partition("=")
        if key != "branch":
            # a commit or tag pins the source to a fixed point
            return "", "", []
        if eq_sep:
            url, branch = path, value
    else:
        url, branch = path, "HEAD"

    return url.split("?")[0], branch.split("?")[0], protocols


@dataclass
class InfoStore:
    """Per-package origin information, persisted as JSON."""

    file_path: str = ""
    cmd_builder: CmdBuilder | None = None
    origins_by_package: dict[str, dict[str, OriginInfo]] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def _get_commit(self, url: str, branch: str, protocols: list[str]) -> str:
        if not protocols or self.cmd_builder is None:
            return ""

        cmd = self.cmd_builder.build_git_cmd("", "ls-remote", f"{protocols[-1]}://{url}", branch)
        cmd.timeout = _GIT_TIMEOUT
        try:
            stdout, _ = self.cmd_builder.capture(cmd)
        except subprocess.CalledProcessError as exc:
            if exc.returncode == _GIT_FATAL_EXIT:
                term.warnln(f"devel check for package failed: '{cmd}' encountered an error")
            else:
                term.warnln(exc)
            return ""
        except (subprocess.SubprocessError, OSError) as exc:
            term.warnln(exc)
            return ""

        fields = stdout.split()
        if len(fields) < 2:
            return ""
        return fields[0]

    def update(self, pkg_name: str, sources: Iterable[str]) -> None:
        """Record the current commits of the package's git sources."""
        info: dict[str, OriginInfo] = {}

        def check_source(source: str) -> None:
            url, branch, protocols = parse_source(source)
            if not url or not branch:
                return
            commit = self._get_commit(url, branch, protocols)
            if not commit:
                return
            with self._lock:
                info[url] = OriginInfo(protocols, branch, commit)
                self.origins_by_package[pkg_name] = info
                term.warnln(f"Found git repo: {term.cyan(url)}")
                try:
                    self.save()
                except OSError as exc:
                    print(exc, file=sys.stderr)

        source_list = list(sources)
        if not source_list:
            return
        with ThreadPoolExecutor(max_workers=len(source_list)) as executor:
            for future in [executor.submit(check_source, s) for s in source_list]:
                future.result()

    def needs_update(self, infos: dict[str, OriginInfo]) -> bool:
        """Whether any of the origins has a commit newer than the one recorded."""
        if not infos:
            return False

        def has_update(url: str, origin: OriginInfo) -> bool:
            commit = self._get_commit(url, origin.branch, origin.protocols)
            return bool(commit) and commit != origin.sha

        executor = ThreadPoolExecutor(max_workers=len(infos))
        try:
            futures = [executor.submit(has_update, url, origin) for url, origin in infos.items()]
            return any(future.result() for future in as_completed(futures))
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _to_json(self) -> str:
        data = {
            pkg: {url: self.origins_by_package[pkg][url].to_json()
                  for url in sorted(self.origins_by_package[pkg])}
            for pkg in sorted(self.origins_by_package)
        }
        return json.dumps(data, indent="\t", ensure_ascii=False)

    def save(self) -> None:
        """Write the store to its file."""
        content = self._to_json()
        with open(self.file_path, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())

    def remove_package(self, pkgs: Iterable[str]) -> None:
        """Forget the given packages and save if anything changed."""
        updated = False
        for name in pkgs:
            if self.origins_by_package.pop(name, None) is not None:
                updated = True
        if updated:
            try:
                self.save()
            except OSError as exc:
                print(exc, file=sys.stderr)

    def load(self) -> None:
        """Read the store's file, if it exists, into this store."""
        try:
            with open(self.file_path, encoding="utf-8") as handle:
                content = handle.read()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise OSError(f"failed to open vcs file '{self.file_path}': {exc}") from exc

        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            raise ValueError(f"failed to read vcs '{self.file_path}': {exc}") from exc
        if data is None:
            return
        if not isinstance(data, dict) or not all(isinstance(v, dict) for v in data.values()):
            raise ValueError(f"failed to read vcs '{self.file_path}': unexpected structure")

        for pkg, by_url in data.items():
            self.origins_by_package[pkg] = {
                url: OriginInfo.from_json(origin or {}) for url, origin in by_url.items()
            }