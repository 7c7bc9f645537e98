"""Terminal text helpers: colours, message prefixes, prompts and formatting."""

from __future__ import annotations

import os
import sys
from datetime import datetime
from typing import Sequence

RED_CODE = "\x1b[31m"
GREEN_CODE = "\x1b[32m"
YELLOW_CODE = "\x1b[33m"
BLUE_CODE = "\x1b[34m"
MAGENTA_CODE = "\x1b[35m"
CYAN_CODE = "\x1b[36m"
BOLD_CODE = "\x1b[1m"
RESET_CODE = "\x1b[0m"

ARROW = "==>"
SMALL_ARROW = " ->"
OP_SYMBOL = "::"

# Whether the helpers in this module emit colour codes.
use_color = True

_UNITS = ("", "Ki", "Mi", "Gi", "Ti", "Pi", "Ei", "Zi", "Yi")
_INPUT_BUFFER_SIZE = 4096
_KEY_LENGTH = 18  # 16 for the key, one for ':' and one for ' '
_DELIM_COUNT = 2
_DEFAULT_COLUMNS = 80

_cached_column_count = -1


class InputOverflowError(Exception):
    """Raised when a line typed by the user is longer than the input buffer."""

    def __init__(self) -> None:
        super().__init__("input too long")


def _stylize(code: str, text: str) -> str:
    if use_color:
        return f"{code}{text}{RESET_CODE}"
    return text


def red(text: str) -> str:
    return _stylize(RED_CODE, text)


def green(text: str) -> str:
    return _stylize(GREEN_CODE, text)


def yellow(text: str) -> str:
    return _stylize(YELLOW_CODE, text)


def cyan(text: str) -> str:
    return _stylize(CYAN_CODE, text)


def magenta(text: str) -> str:
    return _stylize(MAGENTA_CODE, text)


def blue(text: str) -> str:
    return _stylize(BLUE_CODE, text)


def bold(text: str) -> str:
    return _stylize(BOLD_CODE, text)


def color_hash(name: str) -> str:
    """Colour a name so the same name always gets the same colour."""
    if not use_color:
        return name
    value = 5381
    for byte in name.encode():
        value = (byte + (value << 5) + value) % (1 << 64)
    return f"\x1b[{value % 6 + 31}m{name}\x1b[0m"


def human(size: int) -> str:
    """Format a byte count with binary unit prefixes."""
    value = float(size)
    for unit in _UNITS:
        if value < 1024:
            return f"{value:.1f} {unit}B"
        value /= 1024
    return f"{size}B"


def format_time(timestamp: int) -> str:
    """Format a unix timestamp as a local ISO 8601 date."""
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d")


def format_time_query(timestamp: int) -> str:
    """Format a unix timestamp as a full local date and time."""
    moment = datetime.fromtimestamp(timestamp).astimezone()
    return moment.strftime("%a %d %b %Y %I:%M:%S %p %Z")


def split_db_from_name(pkg: str) -> tuple[str, str]:
    """Split 'db/package' into its database and package parts."""
    db, sep, name = pkg.partition("/")
    if sep:
        return db, name
    return "", db


def less_runes(first: Sequence[str] | None, second: Sequence[str] | None) -> bool:
    """Case-insensitive ordering that breaks ties on the original characters."""
    first = first or ""
    second = second or ""
    for a, b in zip(first, second):
        lower_a, lower_b = a.lower(), b.lower()
        if lower_a != lower_b:
            return lower_a < lower_b
        if a != b:
            return a < b
    return len(first) < len(second)


def _format_operand(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _sprint(*args: object) -> str:
    """Join operands, adding a space only between two non-string operands."""
    parts: list[str] = []
    previous_is_str = True
    for index, value in enumerate(args):
        is_str = isinstance(value, str)
        if index and not is_str and not previous_is_str:
            parts.append(" ")
        parts.append(_format_operand(value))
        previous_is_str = is_str
    return "".join(parts)


def _sprintln(*args: object) -> str:
    return " ".join(_format_operand(value) for value in args) + "\n"


def operation_infoln(*args: object) -> None:
    sys.stdout.write(_sprint(bold(cyan(OP_SYMBOL + " ")), BOLD_CODE, *args))
    sys.stdout.write(RESET_CODE + "\n")


def operation_info(*args: object) -> None:
    sys.stdout.write(_sprint(bold(cyan(OP_SYMBOL + " ")), BOLD_CODE, *args))
    sys.stdout.write(RESET_CODE)


def sprint_operation_info(*args: object) -> str:
    return _sprint(bold(cyan(OP_SYMBOL + " ")), BOLD_CODE, *args) + RESET_CODE


def info(*args: object) -> None:
    sys.stdout.write(_sprint(bold(green(ARROW + " ")), *args))


def infoln(*args: object) -> None:
    sys.stdout.write(_sprintln(bold(green(ARROW)), *args))


def sprint_warn(*args: object) -> str:
    return _sprint(bold(yellow(SMALL_ARROW + " ")), *args)


def warn(*args: object) -> None:
    sys.stdout.write(sprint_warn(*args))


def warnln(*args: object) -> None:
    sys.stdout.write(_sprintln(bold(yellow(SMALL_ARROW)), *args))


def sprint_error(*args: object) -> str:
    return _sprint(bold(red(SMALL_ARROW + " ")), *args)


def error(*args: object) -> None:
    sys.stderr.write(sprint_error(*args))


def errorln(*args: object) -> None:
    sys.stderr.write(_sprintln(bold(red(SMALL_ARROW)), *args))


def _get_column_count() -> int:
    global _cached_column_count
    if _cached_column_count > 0:
        return _cached_column_count
    try:
        _cached_column_count = int(os.environ.get("COLUMNS", ""))
        return _cached_column_count
    except ValueError:
        pass
    try:
        _cached_column_count = os.get_terminal_size(sys.stdout.fileno()).columns
        return _cached_column_count
    except (OSError, ValueError, AttributeError):
        return _DEFAULT_COLUMNS


def _width(value: str) -> int:
    return len(value.encode())


def print_info_value(key: str, *args: str) -> None:
    """Print a key and its values, wrapping values to the terminal width."""
    line = bold(f"{key:<16}: ")
    if not args or (len(args) == 1 and args[0] == ""):
        sys.stdout.write(f"{line}None\n")
        return

    max_cols = _get_column_count()
    cols = _KEY_LENGTH + _width(args[0])
    line += args[0]

    for value in args[1:]:
        if max_cols > _KEY_LENGTH and cols + _width(value) + _DELIM_COUNT >= max_cols:
            cols = _KEY_LENGTH
            line += "\n" + " " * _KEY_LENGTH
        elif cols != _KEY_LENGTH:
            line += " " * _DELIM_COUNT
            cols += _DELIM_COUNT
        line += value
        cols += _width(value)

    sys.stdout.write(line + "\n")


def get_input(default_value: str, no_confirm: bool) -> str:
    """Read one line from the user, or answer with the default when set."""
    info()
    if default_value or no_confirm:
        sys.stdout.write(default_value + "\n")
        return default_value

    sys.stdout.flush()
    line = sys.stdin.readline()
    if not line:
        raise EOFError("unexpected end of input")
    line = line.removesuffix("\n").removesuffix("\r")
    if _width(line) >= _INPUT_BUFFER_SIZE:
        raise InputOverflowError()
    return line


def continue_task(question: str, default: bool, no_confirm: bool) -> bool:
    """Ask a yes/no question; the default answer is used without input."""
    if no_confirm:
        return default

    yes, no = "yes", "no"
    y, n = yes[0], no[0]
    if default:
        postfix = f" [{y.upper()}/{n}] "
    else:
        postfix = f" [{y}/{n.upper()}] "

    info(bold(question), bold(postfix))
    sys.stdout.flush()

    words = sys.stdin.readline().split()
    if len(words) != 1:
        return default

    response = words[0].lower()
    return response in (yes, y)