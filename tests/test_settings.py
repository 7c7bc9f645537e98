import json
import os

import pytest

from aurtool import settings
from aurtool.aur import AURClient
from aurtool.parser import Arguments, TargetMode
from aurtool.settings import (
    Configuration,
    PrivilegeElevatorNotFoundError,
    RuntimeDirError,
    default_config,
    get_cache_home,
    init_dir,
    new_config,
)


def _make_executable(directory, name):
    path = directory / name
    path.write_text("#!/bin/sh\n")
    path.chmod(0o755)
    return str(path)


@pytest.fixture
def bin_dir(tmp_path, monkeypatch):
    directory = tmp_path / "bin"
    directory.mkdir()
    monkeypatch.setenv("PATH", str(directory))
    return directory


def _prepare_new_config(tmp_path, monkeypatch, bin_dir, config):
    config_home = tmp_path / "config-home"
    (config_home / "yay").mkdir(parents=True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache-home"))
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.delenv("AURDEST", raising=False)
    _make_executable(bin_dir, "sudo")
    (config_home / "yay" / "config.json").write_text(json.dumps(config))


def test_new_config_creates_build_dir(tmp_path, monkeypatch, bin_dir):
    build_dir = str(tmp_path / "cache" / "test-build-dir")
    _prepare_new_config(tmp_path, monkeypatch, bin_dir, {"BuildDir": build_dir})

    config = new_config("v1.0.0")

    assert config.build_dir == build_dir
    assert os.path.isdir(build_dir)
    assert config.runtime.aur_client.user_agent == "Yay/v1.0.0"


def test_new_config_aurdest(tmp_path, monkeypatch, bin_dir):
    other = str(tmp_path / "cache" / "test-other-dir")
    _prepare_new_config(tmp_path, monkeypatch, bin_dir, {"BuildDir": other})
    aurdest = str(tmp_path / "cache" / "test-build-dir")
    monkeypatch.setenv("AURDEST", aurdest)

    config = new_config("v1.0.0")

    assert config.build_dir == aurdest
    assert os.path.isdir(aurdest)


def test_set_privilege_elevator_keeps_sudo(bin_dir):
    _make_executable(bin_dir, "sudo")
    config = default_config()
    config.sudo_loop = True
    config.sudo_flags = "-v"

    config.set_privilege_elevator()

    assert config.sudo_bin == "sudo"
    assert config.sudo_flags == "-v"
    assert config.sudo_loop is True


def test_set_privilege_elevator_su(bin_dir):
    _make_executable(bin_dir, "su")
    config = default_config()
    config.sudo_loop = True
    config.sudo_flags = "-v"

    config.set_privilege_elevator()

    assert config.sudo_bin == "su"
    assert config.sudo_flags == ""
    assert config.sudo_loop is False


def test_set_privilege_elevator_no_path(monkeypatch):
    monkeypatch.setenv("PATH", "")
    config = default_config()
    config.sudo_loop = True
    config.sudo_flags = "-v"

    with pytest.raises(PrivilegeElevatorNotFoundError):
        config.set_privilege_elevator()

    assert config.sudo_bin == "sudo"
    assert config.sudo_flags == ""
    assert config.sudo_loop is False


def test_set_privilege_elevator_doas(bin_dir):
    _make_executable(bin_dir, "doas")
    config = default_config()
    config.sudo_loop = True
    config.sudo_flags = "-v"

    config.set_privilege_elevator()

    assert config.sudo_bin == "doas"
    assert config.sudo_flags == ""
    assert config.sudo_loop is False


def test_set_privilege_elevator_custom_script(bin_dir):
    wrapper = _make_executable(bin_dir, "custom-wrapper")
    config = default_config()
    config.sudo_loop = True
    config.sudo_bin = wrapper
    config.sudo_flags = "-v"

    config.set_privilege_elevator()

    assert config.sudo_bin == wrapper
    assert config.sudo_flags == "-v"
    assert config.sudo_loop is True


def test_get_cache_home_falls_back_to_tmp(tmp_path, monkeypatch):
    monkeypatch.delenv("XDG_CACHE_HOME", raising=False)
    monkeypatch.delenv("HOME", raising=False)
    monkeypatch.setenv("SUDO_USER", "test")
    monkeypatch.setenv("TMPDIR", str(tmp_path))

    got = get_cache_home()

    assert got == os.path.join(str(tmp_path), "yay")
    assert os.path.isdir(got)


def test_init_dir_creates_nested(tmp_path):
    target = tmp_path / "a" / "b"
    init_dir(str(target))
    init_dir(str(target))
    assert target.is_dir()


def test_init_dir_under_file_raises(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    with pytest.raises(RuntimeDirError) as info:
        init_dir(str(blocker / "sub"))
    assert info.value.directory == str(blocker / "sub")


def test_save_and_load_round_trip(tmp_path):
    config = default_config()
    config.sort_by = "name"
    config.request_split_n = 20
    config.devel = True
    path = tmp_path / "nested" / "config.json"

    config.save(str(path))
    content = path.read_text()
    loaded = Configuration()
    loaded.load(str(path))

    assert content.endswith("\n")
    assert loaded == config


def test_load_bad_json_keeps_defaults(tmp_path, capsys):
    path = tmp_path / "config.json"
    path.write_text("{not json")
    config = Configuration()
    config.load(str(path))

    assert config == default_config()
    assert "failed to read config file" in capsys.readouterr().err


def test_load_skips_mismatched_types(tmp_path, capsys):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"requestsplitn": "x", "SORTBY": "name"}))
    config = Configuration()
    config.load(str(path))

    assert config.sort_by == "name"
    assert config.request_split_n == 150
    assert "requestsplitn" in capsys.readouterr().err


def test_load_missing_file_is_silent(tmp_path, capsys):
    config = Configuration()
    config.load(str(tmp_path / "absent.json"))
    assert config == default_config()
    assert capsys.readouterr().err == ""


def test_to_json_order_and_keys():
    data = json.loads(default_config().to_json())
    keys = list(data)
    assert keys[0] == "aururl"
    assert data["aururl"] == "https://aur.archlinux.org"
    assert data["completionrefreshtime"] == 7
    assert "buildDir" in data


def test_expand_env(monkeypatch):
    monkeypatch.setenv("HOME", "/home/someone")
    monkeypatch.delenv("SURELY_UNSET_VARIABLE", raising=False)
    config = Configuration()
    config.build_dir = "$HOME/build"
    config.editor = "${SURELY_UNSET_VARIABLE}vim"

    config.expand_env()

    assert config.build_dir == "/home/someone/build"
    assert config.editor == "vim"


def test_cmd_builder_splits_flags():
    config = Configuration()
    config.git_flags = "--a  --b"
    config.m_flags = "-s"
    config.sudo_flags = "-E -H"

    builder = config.cmd_builder(None)

    assert builder.git_flags == ["--a", "--b"]
    assert builder.makepkg_flags == ["-s"]
    assert builder.sudo_flags == ["-E", "-H"]
    assert builder.pacman_config_path == "/etc/pacman.conf"


@pytest.mark.parametrize(
    ("option", "value", "attr", "expected"),
    [
        ("sortby", "popularity", "sort_by", "popularity"),
        ("requestsplitn", "20", "request_split_n", 20),
        ("requestsplitn", "0", "request_split_n", 150),
        ("requestsplitn", "abc", "request_split_n", 150),
        ("completioninterval", "3", "completion_interval", 3),
        ("rebuildtree", "", "re_build", "tree"),
        ("topdown", "", "bottom_up", False),
        ("nocleanmenu", "", "clean_menu", False),
        ("askremovemake", "", "remove_make", "ask"),
    ],
)
def test_handle_option(option, value, attr, expected):
    config = Configuration()
    assert config.handle_option(option, value) is True
    assert getattr(config, attr) == expected


def test_handle_option_unknown():
    config = Configuration()
    assert config.handle_option("needed", "") is False


def test_handle_option_mode_and_noconfirm(monkeypatch):
    monkeypatch.setattr(settings, "NO_CONFIRM", False)
    config = Configuration()
    config.handle_option("repo", "")
    config.handle_option("noconfirm", "")
    assert config.runtime.mode is TargetMode.REPO
    assert settings.NO_CONFIRM is True


def test_parse_command_line():
    config = Configuration()
    config.runtime.aur_client = AURClient()
    args = Arguments()

    config.parse_command_line(
        args, ["-S", "--aururl", "https://aur.example.com/", "--topdown", "--needed", "foo"]
    )

    assert config.aur_url == "https://aur.example.com"
    assert config.runtime.aur_client.base_url == "https://aur.example.com/rpc?"
    assert config.bottom_up is False
    assert args.op == "S"
    assert args.targets == ["foo"]
    assert set(args.options) == {"needed"}
    assert config.runtime.cmd_builder.pacman_bin == "pacman"