"""Checking that the PGP keys packages need are known, and importing missing ones."""

from __future__ import annotations

import subprocess
from typing import Mapping, Protocol, Sequence

from aurtool import text as term


class _Base(Protocol):
    """A package base: its name and a printable description."""

    @property
    def pkgbase(self) -> str: ...

    def __str__(self) -> str: ...


class _Srcinfo(Protocol):
    @property
    def valid_pgp_keys(self) -> Sequence[str]: ...


def check_pgp_keys(
    bases: Sequence[_Base],
    srcinfos: Mapping[str, _Srcinfo],
    gpg_bin: str,
    gpg_flags: str,
    no_confirm: bool,
) -> None:
    """Find keys missing from the keyring and offer to import them."""
    problematic: dict[str, list[_Base]] = {}
    list_args = [*gpg_flags.split(), "--list-keys"]

    for base in bases:
        srcinfo = srcinfos[base.pkgbase]
        for key in srcinfo.valid_pgp_keys:
            upper = key.upper()
            if upper in problematic:
                problematic[upper].append(base)
                continue
            try:
                completed = subprocess.run(
                    [gpg_bin, *list_args, key],
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    check=False,
                )
                known = completed.returncode == 0
            except OSError:
                known = False
            if not known:
                problematic.setdefault(upper, []).append(base)

    if not problematic:
        return

    question = format_keys_to_import(problematic)
    print()
    print(question)

    if term.continue_task("Import?", True, no_confirm):
        import_keys(list(problematic), gpg_bin, gpg_flags)


def import_keys(keys: Sequence[str], gpg_bin: str, gpg_flags: str) -> None:
    """Receive the keys with gpg; raise RuntimeError if that fails."""
    argv = [gpg_bin, *gpg_flags.split(), "--recv-keys", *keys]
    term.operation_infoln("Importing keys with gpg...")
    try:
        subprocess.run(argv, check=True)
    except (subprocess.CalledProcessError, OSError) as exc:
        raise RuntimeError("problem importing keys") from exc


def format_keys_to_import(keys: Mapping[str, Sequence[_Base]]) -> str:
    """The message listing missing keys and the packages needing each."""
    if not keys:
        raise ValueError("no keys to import")

    lines = [term.sprint_operation_info("PGP keys need importing:")]
    for key, bases in keys.items():
        pkglist = "  ".join(str(base) for base in bases).rstrip(" ")
        lines.append(term.sprint_warn(f"{term.cyan(key)}, required by: {term.cyan(pkglist)}"))
    return "\n".join(lines)