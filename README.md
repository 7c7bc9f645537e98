# aurtool

Building blocks for a pacman and AUR helper, as a plain Python library.

## What is in it

- `aurtool.parser` – `Arguments`, `Option` and `TargetMode`: parses pacman-style
  short and long options (`-Syu`, `--dbpath /x`, `--sortby=votes`, `-` to read
  targets from stdin), tells whether a command needs root (`need_root`) and turns
  the result back into command-line words (`format_args`, `format_globals`).
- `aurtool.exe` – `Command`, `OSRunner` and `CmdBuilder`: builds git, makepkg and
  pacman command lines, wraps pacman in `sudo`/`doas`/`su` when root is needed,
  drops privileges for git and makepkg when running as root, waits for the
  pacman database lock (`wait_lock`) and can keep the sudo timestamp fresh
  (`sudo_loop`).
- `aurtool.aur` – `AURClient` for the AUR RPC interface (`info`, `search`),
  `Pkg`, `SearchBy`, `aur_info` / `aur_info_print` (batched, concurrent lookups
  that fill in `AURWarnings` for missing, orphaned and out-of-date packages),
  `remove_invalid_targets`, `get_package_names_by_source`,
  `get_remote_packages`, `AURSearchError` and `NoQueryError`.
- `aurtool.search` – `SourceQueryBuilder`, which searches the sync databases and
  the AUR, prints results (`SearchVerbosity`) and maps menu numbers back to
  targets; plus `sort_aur_results`, `print_aur_search`, `print_repo_search`
  and `get_search_by`.
- `aurtool.upgrade` – `Upgrade`, `UpSlice` (sorting and a numbered table),
  `up_aur`, `up_devel`, `get_version_diff` and `ver_cmp` (pacman-style version
  comparison).
- `aurtool.vcs` – `InfoStore` and `OriginInfo`: records the latest commit of
  development packages' git sources in a JSON file and checks them with
  `git ls-remote`; `parse_source` reads a PKGBUILD source entry.
- `aurtool.news` – fetches and prints the Arch Linux news feed
  (`print_news_feed`, `parse_feed`, `parse_news`, `NewsItem`).
- `aurtool.pgp` – `check_pgp_keys`, `import_keys` and `format_keys_to_import`,
  which run `gpg` to find and receive missing keys.
- `aurtool.settings` – `Configuration` (defaults, JSON load/save, environment
  expansion, the tool's own command-line options, choosing a privilege
  elevator), `Runtime`, `new_config`, `default_config`, `get_config_path`,
  `get_cache_home`, `init_dir`, and the errors
  `PrivilegeElevatorNotFoundError`, `RuntimeDirError` and `UserAbortError`.
- `aurtool.text` – colours, message prefixes, `human` sizes, dates,
  `less_runes`, `split_db_from_name`, `print_info_value`, `get_input`,
  `continue_task` and `InputOverflowError`.

It depends only on `requests`; the tests use `pytest` and `responses`
(the `test` extra).

## Examples

Parse a command line and rebuild the arguments for pacman:

```python
from aurtool.parser import Arguments, TargetMode

args = Arguments()
args.parse(["-Syu", "--needed", "firefox"])

args.exists_arg("y", "refresh")   # True
args.need_root(TargetMode.ANY)    # True
args.format_args()                # ['-S', '-y', '-u', '--needed']
args.targets                      # ['firefox']
```

Find which part of a version changed:

```python
from aurtool import text
from aurtool.upgrade import get_version_diff, ver_cmp

text.use_color = False
get_version_diff("1.2.3-1", "1.2.4-1")   # ('1.2.3-1', '1.2.4-1'); with colour on, coloured from '3'
ver_cmp("1.2.3-1", "1.2.4-1")            # negative
```

Work out where a PKGBUILD source is tracked from:

```python
from aurtool.vcs import parse_source

parse_source("git+https://github.com/neovim/neovim.git")
# ('github.com/neovim/neovim.git', 'HEAD', ['https'])
```

Sizes and name ordering:

```python
from aurtool.text import human, less_runes

human(1536)                     # '1.5 KiB'
less_runes("apple", "Banana")   # True
```

## Behaviour notes

- Colour is on by default; set `aurtool.text.use_color = False` and every
  colouring helper returns its input unchanged.
- AUR info requests are split into chunks of `split_n` names and sent
  concurrently; the first failure is raised once all requests have finished.
- The configuration is read from `$XDG_CONFIG_HOME/yay/config.json` or
  `$HOME/.config/yay/config.json`; the VCS store lives in the cache directory
  chosen by `get_cache_home`.
- Failures are raised as exceptions rather than returned.

## What it does not do

- It has no command-line program of its own; it is a library to build one on.
- It does not read the local or sync package databases. Functions that need
  them take an executor object you supply (with `local_packages()`,
  `sync_package(name)`, `sync_packages(*names)`, `local_package(name)` and
  `package_groups(pkg)`), and package objects with attributes such as `name`,
  `version`, `build_date`, `should_ignore` and `reason`.
- It does not download PKGBUILDs, build or install packages, or show
  interactive upgrade and clean/diff/edit menus.