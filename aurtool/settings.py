"""The tool's configuration: defaults, the JSON file, the environment and command-line options."""

from __future__ import annotations

import json
import os
import re
import shutil
import sys
from dataclasses import dataclass, field, fields
from typing import Any

import requests

from aurtool import text as term
from aurtool.aur import AURClient
from aurtool.exe import CmdBuilder, OSRunner, Runner
from aurtool.parser import Arguments, TargetMode
from aurtool.vcs import InfoStore

CONFIG_FILE_NAME = "config.json"
VCS_FILE_NAME = "vcs.json"
COMPLETION_FILE_NAME = "completion.cache"
SYSTEMD_CACHE = "/var/cache/yay"  # created by systemd-run when running as root

# Whether pacman's provider menus are hidden.
HIDE_MENUS = False
# Whether user input is skipped.
NO_CONFIRM = False

_ENV_PATTERN = re.compile(r"\$(?:\{([^}]*)\}|([*#$@!?\-0-9])|([A-Za-z_][A-Za-z0-9_]*))")
_INTEGER = re.compile(r"[+-]?[0-9]+")


class PrivilegeElevatorNotFoundError(Exception):
    """No program to gain root privileges could be found."""

    def __init__(self, conf_value: str) -> None:
        super().__init__(f"unable to find a privilege elevator, config value: {conf_value}")
        self.conf_value = conf_value


class RuntimeDirError(OSError):
    """A directory the tool needs could not be created."""

    def __init__(self, inner: BaseException, directory: str) -> None:
        super().__init__(f"failed to create directory '{directory}': {inner}")
        self.inner = inner
        self.directory = directory


class UserAbortError(Exception):
    """The user chose to stop."""

    def __init__(self) -> None:
        super().__init__("aborting due to user")


@dataclass
class Runtime:
    """State built at start-up that is not stored in the configuration file."""

    mode: TargetMode = TargetMode.ANY
    save_config: bool = False
    completion_path: str = ""
    config_path: str = ""
    pacman_conf: Any = None
    vcs_store: InfoStore | None = None
    cmd_builder: CmdBuilder | None = None
    http_client: requests.Session | None = None
    aur_client: AURClient | None = None


def _setting(key: str, default: Any) -> Any:
    return field(default=default, metadata={"json": key})


def _default_build_dir() -> str:
    return _expand_env("$HOME/.cache/yay")


def _expand_env(value: str) -> str:
    """Replace $name and ${name} with environment values; unset names become empty."""

    def replace(match: re.Match[str]) -> str:
        name = next(group for group in match.groups() if group is not None) if any(
            group is not None for group in match.groups()
        ) else ""
        return os.environ.get(name, "")

    return _ENV_PATTERN.sub(replace, value)


def _parse_int(value: str) -> int | None:
    return int(value) if _INTEGER.fullmatch(value) else None


@dataclass
class Configuration:
    """Every setting the tool reads from its configuration file."""

    aur_url: str = _setting("aururl", "https://aur.archlinux.org")
    build_dir: str = field(default_factory=_default_build_dir, metadata={"json": "buildDir"})
    editor: str = _setting("editor", "")
    editor_flags: str = _setting("editorflags", "")
    makepkg_bin: str = _setting("makepkgbin", "makepkg")
    makepkg_conf: str = _setting("makepkgconf", "")
    pacman_bin: str = _setting("pacmanbin", "pacman")
    pacman_conf: str = _setting("pacmanconf", "/etc/pacman.conf")
    re_download: str = _setting("redownload", "no")
    re_build: str = _setting("rebuild", "no")
    answer_clean: str = _setting("answerclean", "")
    answer_diff: str = _setting("answerdiff", "")
    answer_edit: str = _setting("answeredit", "")
    answer_upgrade: str = _setting("answerupgrade", "")
    git_bin: str = _setting("gitbin", "git")
    gpg_bin: str = _setting("gpgbin", "gpg")
    gpg_flags: str = _setting("gpgflags", "")
    m_flags: str = _setting("mflags", "")
    sort_by: str = _setting("sortby", "votes")
    search_by: str = _setting("searchby", "name-desc")
    git_flags: str = _setting("gitflags", "")
    remove_make: str = _setting("removemake", "ask")
    sudo_bin: str = _setting("sudobin", "sudo")
    sudo_flags: str = _setting("sudoflags", "")
    request_split_n: int = _setting("requestsplitn", 150)
    completion_interval: int = _setting("completionrefreshtime", 7)
    bottom_up: bool = _setting("bottomup", True)
    sudo_loop: bool = _setting("sudoloop", False)
    time_update: bool = _setting("timeupdate", False)
    devel: bool = _setting("devel", False)
    clean_after: bool = _setting("cleanAfter", False)
    provides: bool = _setting("provides", True)
    pgp_fetch: bool = _setting("pgpfetch", True)
    upgrade_menu: bool = _setting("upgrademenu", True)
    clean_menu: bool = _setting("cleanmenu", True)
    diff_menu: bool = _setting("diffmenu", True)
    edit_menu: bool = _setting("editmenu", False)
    combined_upgrade: bool = _setting("combinedupgrade", False)
    use_ask: bool = _setting("useask", False)
    batch_install: bool = _setting("batchinstall", False)
    single_line_results: bool = _setting("singlelineresults", False)
    runtime: Runtime = field(default_factory=Runtime, compare=False, repr=False)

    @classmethod
    def _stored_fields(cls) -> list[Any]:
        return [f for f in fields(cls) if "json" in f.metadata]

    def _as_dict(self) -> dict[str, Any]:
        return {f.metadata["json"]: getattr(self, f.name) for f in self._stored_fields()}

    def to_json(self) -> str:
        """The settings as indented JSON followed by a newline."""
        return json.dumps(self._as_dict(), indent="\t", ensure_ascii=False) + "\n"

    def __str__(self) -> str:
        return self.to_json()

    def save(self, config_path: str) -> None:
        """Write the settings to the file, creating its directory if needed."""
        content = self.to_json()
        parent = os.path.dirname(config_path)
        if parent and not os.path.exists(parent):
            os.makedirs(parent, mode=0o755, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())

    def load(self, config_path: str) -> None:
        """Read settings from the file if it exists; report problems on stderr."""
        try:
            with open(config_path, encoding="utf-8") as handle:
                content = handle.read()
        except FileNotFoundError:
            return
        except OSError as exc:
            print(f"failed to open config file '{config_path}': {exc}", file=sys.stderr)
            return

        try:
            data = json.loads(content)
            problem = self._apply(data)
        except (json.JSONDecodeError, ValueError) as exc:
            problem = str(exc)
        if problem:
            print(f"failed to read config file '{config_path}': {problem}", file=sys.stderr)

    def _apply(self, data: Any) -> str:
        """Copy the known keys of a decoded document into this object; describe the first bad value."""
        if data is None:
            return ""
        if not isinstance(data, dict):
            raise ValueError("config must be a JSON object")

        exact = {f.metadata["json"]: f for f in self._stored_fields()}
        folded = {key.lower(): f for key, f in exact.items()}
        problem = ""
        for key, value in data.items():
            target = exact.get(key) or folded.get(key.lower())
            if target is None or value is None:
                continue
            expected = target.type if isinstance(target.type, type) else {
                "str": str, "int": int, "bool": bool
            }[target.type]
            valid = isinstance(value, expected) and not (
                expected is int and isinstance(value, bool)
            )
            if valid:
                setattr(self, target.name, value)
            elif not problem:
                problem = f"cannot use {value!r} as value of '{key}'"
        return problem

    def expand_env(self) -> None:
        """Expand environment variables in every text setting."""
        for f in self._stored_fields():
            value = getattr(self, f.name)
            if isinstance(value, str):
                setattr(self, f.name, _expand_env(value))

    def set_privilege_elevator(self) -> None:
        """Keep the configured elevator if it exists, otherwise pick another one."""
        for candidate in (self.sudo_bin, "sudo"):
            if candidate and shutil.which(candidate):
                self.sudo_bin = candidate
                return

        self.sudo_flags = ""
        self.sudo_loop = False

        for candidate in ("doas", "pkexec", "su"):
            if shutil.which(candidate):
                self.sudo_bin = candidate
                return

        raise PrivilegeElevatorNotFoundError(self.sudo_bin)

    def cmd_builder(self, runner: Runner | None) -> CmdBuilder:
        """A command builder using these settings."""
        return CmdBuilder(
            git_bin=self.git_bin,
            git_flags=self.git_flags.split(),
            makepkg_flags=self.m_flags.split(),
            makepkg_conf_path=self.makepkg_conf,
            makepkg_bin=self.makepkg_bin,
            sudo_bin=self.sudo_bin,
            sudo_flags=self.sudo_flags.split(),
            sudo_loop_enabled=self.sudo_loop,
            pacman_bin=self.pacman_bin,
            pacman_config_path=self.pacman_conf,
            pacman_db_path="",
            runner=runner if runner is not None else OSRunner(),
        )

    def parse_command_line(self, args: Arguments, argv: list[str] | None = None) -> None:
        """Parse the command line, apply the tool's own options and rebuild the command builder."""
        args.parse(argv)
        self.extract_yay_options(args)
        self.runtime.cmd_builder = self.cmd_builder(None)

    def extract_yay_options(self, args: Arguments) -> None:
        """Apply and remove the options that belong to this tool rather than pacman."""
        for option, value in list(args.options.items()):
            if self.handle_option(option, value.first()):
                args.del_arg(option)

        aur_url = self.aur_url.rstrip("/")
        if self.runtime.aur_client is not None:
            self.runtime.aur_client.base_url = aur_url + "/rpc?"
        self.aur_url = aur_url

    def handle_option(self, option: str, value: str) -> bool:
        """Apply one option; return whether it was one of the tool's own."""
        global NO_CONFIRM

        if option in _VALUE_OPTIONS:
            setattr(self, _VALUE_OPTIONS[option], value)
        elif option in _FIXED_OPTIONS:
            attr, fixed = _FIXED_OPTIONS[option]
            setattr(self, attr, fixed)
        elif option == "save":
            self.runtime.save_config = True
        elif option == "noconfirm":
            NO_CONFIRM = True
        elif option in ("a", "aur"):
            self.runtime.mode = TargetMode.AUR
        elif option == "repo":
            self.runtime.mode = TargetMode.REPO
        elif option == "completioninterval":
            number = _parse_int(value)
            if number is not None:
                self.completion_interval = number
        elif option == "requestsplitn":
            number = _parse_int(value)
            if number is not None and number > 0:
                self.request_split_n = number
        else:
            return False
        return True


_VALUE_OPTIONS = {
    "aururl": "aur_url",
    "sortby": "sort_by",
    "searchby": "search_by",
    "config": "pacman_conf",
    "answerclean": "answer_clean",
    "answerdiff": "answer_diff",
    "answeredit": "answer_edit",
    "answerupgrade": "answer_upgrade",
    "gpgflags": "gpg_flags",
    "mflags": "m_flags",
    "gitflags": "git_flags",
    "builddir": "build_dir",
    "editor": "editor",
    "editorflags": "editor_flags",
    "makepkg": "makepkg_bin",
    "makepkgconf": "makepkg_conf",
    "pacman": "pacman_bin",
    "git": "git_bin",
    "gpg": "gpg_bin",
    "sudo": "sudo_bin",
    "sudoflags": "sudo_flags",
}

_FIXED_OPTIONS: dict[str, tuple[str, Any]] = {
    "afterclean": ("clean_after", True),
    "cleanafter": ("clean_after", True),
    "noafterclean": ("clean_after", False),
    "nocleanafter": ("clean_after", False),
    "devel": ("devel", True),
    "nodevel": ("devel", False),
    "timeupdate": ("time_update", True),
    "notimeupdate": ("time_update", False),
    "topdown": ("bottom_up", False),
    "bottomup": ("bottom_up", True),
    "singlelineresults": ("single_line_results", True),
    "doublelineresults": ("single_line_results", False),
    "redownload": ("re_download", "yes"),
    "redownloadall": ("re_download", "all"),
    "noredownload": ("re_download", "no"),
    "rebuild": ("re_build", "yes"),
    "rebuildall": ("re_build", "all"),
    "rebuildtree": ("re_build", "tree"),
    "norebuild": ("re_build", "no"),
    "batchinstall": ("batch_install", True),
    "nobatchinstall": ("batch_install", False),
    "noanswerclean": ("answer_clean", ""),
    "noanswerdiff": ("answer_diff", ""),
    "noansweredit": ("answer_edit", ""),
    "noanswerupgrade": ("answer_upgrade", ""),
    "nomakepkgconf": ("makepkg_conf", ""),
    "sudoloop": ("sudo_loop", True),
    "nosudoloop": ("sudo_loop", False),
    "provides": ("provides", True),
    "noprovides": ("provides", False),
    "pgpfetch": ("pgp_fetch", True),
    "nopgpfetch": ("pgp_fetch", False),
    "upgrademenu": ("upgrade_menu", True),
    "noupgrademenu": ("upgrade_menu", False),
    "cleanmenu": ("clean_menu", True),
    "nocleanmenu": ("clean_menu", False),
    "diffmenu": ("diff_menu", True),
    "nodiffmenu": ("diff_menu", False),
    "editmenu": ("edit_menu", True),
    "noeditmenu": ("edit_menu", False),
    "useask": ("use_ask", True),
    "nouseask": ("use_ask", False),
    "combinedupgrade": ("combined_upgrade", True),
    "nocombinedupgrade": ("combined_upgrade", False),
    "removemake": ("remove_make", "yes"),
    "noremovemake": ("remove_make", "no"),
    "askremovemake": ("remove_make", "ask"),
}


def default_config() -> Configuration:
    """A configuration holding the built-in defaults."""
    return Configuration()


def init_dir(directory: str) -> None:
    """Create the directory and its parents unless it already exists."""
    try:
        os.stat(directory)
    except FileNotFoundError:
        try:
            os.makedirs(directory, mode=0o755, exist_ok=True)
        except OSError as exc:
            raise RuntimeDirError(exc, directory) from exc


def get_config_path() -> str:
    """The configuration file's path, creating its directory; empty if none is usable."""
    candidates = []
    if config_home := os.environ.get("XDG_CONFIG_HOME"):
        candidates.append(os.path.join(config_home, "yay"))
    if home := os.environ.get("HOME"):
        candidates.append(os.path.join(home, ".config", "yay"))

    for config_dir in candidates:
        try:
            init_dir(config_dir)
        except OSError:
            continue
        return os.path.join(config_dir, CONFIG_FILE_NAME)
    return ""


def _tmp_cache_dir() -> str:
    return os.path.join(os.environ.get("TMPDIR") or "/tmp", "yay")


def get_cache_home() -> str:
    """The cache directory, created if needed; raise RuntimeDirError if even the fallback fails."""
    uid = os.geteuid()

    if uid != 0:
        candidates = []
        if cache_home := os.environ.get("XDG_CACHE_HOME"):
            candidates.append(os.path.join(cache_home, "yay"))
        if home := os.environ.get("HOME"):
            candidates.append(os.path.join(home, ".cache", "yay"))
        for cache_dir in candidates:
            try:
                init_dir(cache_dir)
            except OSError:
                continue
            return cache_dir

    if uid == 0 and not os.environ.get("SUDO_USER") and not os.environ.get("DOAS_USER"):
        return SYSTEMD_CACHE

    tmp_dir = _tmp_cache_dir()
    init_dir(tmp_dir)
    return tmp_dir


def new_config(version: str) -> Configuration:
    """Build the configuration from defaults, the config file and the environment."""
    config = default_config()

    try:
        cache_home = get_cache_home()
    except OSError as exc:
        term.errorln(exc)
        cache_home = _tmp_cache_dir()

    config.build_dir = cache_home

    config_path = get_config_path()
    config.load(config_path)

    if aurdest := os.environ.get("AURDEST"):
        config.build_dir = aurdest

    config.expand_env()

    if config.build_dir != SYSTEMD_CACHE:
        init_dir(config.build_dir)

    config.set_privilege_elevator()

    cmd_builder = config.cmd_builder(None)
    session = requests.Session()
    config.runtime = Runtime(
        mode=TargetMode.ANY,
        save_config=False,
        completion_path=os.path.join(cache_home, COMPLETION_FILE_NAME),
        config_path=config_path,
        pacman_conf=None,
        vcs_store=None,
        cmd_builder=cmd_builder,
        http_client=session,
        aur_client=AURClient(session=session, user_agent=f"Yay/{version}"),
    )
    config.runtime.vcs_store = InfoStore(
        file_path=os.path.join(cache_home, VCS_FILE_NAME), cmd_builder=cmd_builder
    )
    config.runtime.vcs_store.load()
    return config