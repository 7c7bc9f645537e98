"""Building blocks for a pacman and AUR helper: parsing, commands, AUR queries, upgrades and more."""

__version__ = "11.0.0"

__all__ = [
    "aur",
    "exe",
    "news",
    "parser",
    "pgp",
    "search",
    "settings",
    "text",
    "upgrade",
    "vcs",
]