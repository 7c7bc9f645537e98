"""Building and running the external commands the tool relies on."""

from __future__ import annotations

import os
import pwd
import shutil
import subprocess
import sys
import threading
import time
from dataclasses import dataclass, field
from typing import Protocol

from aurtool import text as term
from aurtool.parser import Arguments, TargetMode

SUDO_LOOP_DURATION = 241
_LOCK_POLL_SECONDS = 3
_PROXY_VARIABLES = ("http_proxy", "https_proxy", "ftp_proxy")


@dataclass
class Command:
    """A command line together with the environment it runs in."""

    args: list[str]
    cwd: str | None = None
    env: dict[str, str] | None = None
    timeout: float | None = None
    user: int | None = None
    group: int | None = None

    def __str__(self) -> str:
        return " ".join(self.args)

    def _run_options(self) -> dict[str, object]:
        return {
            "cwd": self.cwd or None,
            "env": self.env,
            "timeout": self.timeout,
            "user": self.user,
            "group": self.group,
        }


class Runner(Protocol):
    """Something that can run a command, either attached to the terminal or captured."""

    def show(self, cmd: Command) -> None: ...

    def capture(self, cmd: Command) -> tuple[str, str]: ...


class OSRunner:
    """Runs commands as real processes."""

    def show(self, cmd: Command) -> None:
        """Run attached to the terminal; raise CalledProcessError on failure."""
        subprocess.run(cmd.args, check=True, **cmd._run_options())

    def capture(self, cmd: Command) -> tuple[str, str]:
        """Run and return stripped stdout and stderr; raise CalledProcessError on failure."""
        completed = subprocess.run(
            cmd.args,
            capture_output=True,
            text=True,
            check=False,
            **cmd._run_options(),
        )
        stdout = completed.stdout.strip()
        stderr = completed.stderr.strip()
        if completed.returncode != 0:
            raise subprocess.CalledProcessError(
                completed.returncode, cmd.args, output=stdout, stderr=stderr
            )
        return stdout, stderr


def wait_lock(db_path: str) -> None:
    """Block while the package database lock file exists."""
    lock_path = os.path.join(db_path, "db.lck")
    if not os.path.exists(lock_path):
        return

    term.warnln(f"{lock_path} is present.")
    term.warn("There may be another Pacman instance running. Waiting...")
    sys.stdout.flush()

    while True:
        time.sleep(_LOCK_POLL_SECONDS)
        if not os.path.exists(lock_path):
            print()
            return


@dataclass
class CmdBuilder:
    """Builds git, makepkg and pacman command lines from the configuration."""

    git_bin: str = "git"
    git_flags: list[str] = field(default_factory=list)
    makepkg_flags: list[str] = field(default_factory=list)
    makepkg_conf_path: str = ""
    makepkg_bin: str = "makepkg"
    sudo_bin: str = "sudo"
    sudo_flags: list[str] = field(default_factory=list)
    sudo_loop_enabled: bool = False
    pacman_bin: str = "pacman"
    pacman_config_path: str = ""
    pacman_db_path: str = ""
    runner: Runner = field(default_factory=OSRunner)

    def build_git_cmd(self, directory: str, *args: str) -> Command:
        argv = [self.git_bin, *self.git_flags]
        if directory:
            argv += ["-C", directory]
        argv += args
        env = {**os.environ, "GIT_TERMINAL_PROMPT": "0"}
        return self._de_elevate(Command(argv, env=env))

    def add_makepkg_flag(self, flag: str) -> None:
        self.makepkg_flags.append(flag)

    def build_makepkg_cmd(self, directory: str, *args: str) -> Command:
        argv = [self.makepkg_bin, *self.makepkg_flags]
        if self.makepkg_conf_path:
            argv += ["--config", self.makepkg_conf_path]
        argv += args
        return self._de_elevate(Command(argv, cwd=directory or None))

    def set_pacman_db_path(self, db_path: str) -> None:
        self.pacman_db_path = db_path

    def _de_elevate(self, cmd: Command) -> Command:
        """When running as root, run the command as the invoking user or a throwaway one."""
        if os.geteuid() != 0:
            return cmd

        caller = os.environ.get("SUDO_USER") or os.environ.get("DOAS_USER") or ""
        if caller:
            try:
                entry = pwd.getpwnam(caller)
            except KeyError:
                pass
            else:
                cmd.user = entry.pw_uid
                cmd.group = entry.pw_gid
                return cmd

        argv = [
            "--service-type=oneshot",
            "--pipe", "--wait", "--pty", "--quiet",
            "-p", "DynamicUser=yes",
            "-p", "CacheDirectory=yay",
            "-E", "HOME=/tmp",
        ]
        if cmd.cwd:
            argv += ["-p", f"WorkingDirectory={cmd.cwd}"]
        for name in _PROXY_VARIABLES:
            value = os.environ.get(name)
            if value:
                argv += ["-E", f"{name}={value}"]

        argv.append(shutil.which(cmd.args[0]) or "")
        argv += cmd.args[1:]
        return Command(["systemd-run", *argv], cwd=cmd.cwd, timeout=cmd.timeout)

    def _build_privilege_elevator_cmd(self, argv: list[str]) -> Command:
        if self.sudo_bin == "su":
            return Command([self.sudo_bin, "-c", " ".join(argv)])
        return Command([self.sudo_bin, *self.sudo_flags, *argv])

    def build_pacman_cmd(self, args: Arguments, mode: TargetMode, no_confirm: bool) -> Command:
        needs_root = args.need_root(mode)

        argv = [self.pacman_bin, *args.format_globals(), *args.format_args()]
        if no_confirm:
            argv.append("--noconfirm")
        argv += ["--config", self.pacman_config_path, "--", *args.targets]

        if needs_root:
            wait_lock(self.pacman_db_path)
            if os.geteuid() != 0:
                return self._build_privilege_elevator_cmd(argv)

        return Command(argv)

    def sudo_loop(self) -> None:
        """Refresh the sudo timestamp now and keep refreshing it in the background."""
        self._update_sudo()
        threading.Thread(target=self._sudo_loop_background, daemon=True).start()

    def _sudo_loop_background(self) -> None:
        while True:
            self._update_sudo()
            time.sleep(SUDO_LOOP_DURATION)

    def _update_sudo(self) -> None:
        while True:
            try:
                self.show(Command([self.sudo_bin, "-v"]))
            except (subprocess.SubprocessError, OSError) as exc:
                print(exc, file=sys.stderr)
            else:
                return

    def show(self, cmd: Command) -> None:
        self.runner.show(cmd)

    def capture(self, cmd: Command) -> tuple[str, str]:
        return self.runner.capture(cmd)