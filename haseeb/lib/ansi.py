import re
from dataclasses import dataclass

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")


@dataclass(frozen=True)
class Theme:
    red: str = "\033[38;5;203m"
    green: str = "\033[38;5;114m"
    yellow: str = "\033[38;5;221m"
    orange: str = "\033[38;5;208m"
    muted: str = "\033[90m"  # dim gray for secondary text
    bold: str = "\033[1m"
    dim: str = "\033[2m"
    reset: str = "\033[0m"


_active = Theme()


def _paint(color: str, text: str) -> str:
    return f"{color}{text}{_active.reset}"


def red(text: str) -> str:
    return _paint(_active.red, text)


def green(text: str) -> str:
    return _paint(_active.green, text)


def yellow(text: str) -> str:
    return _paint(_active.yellow, text)


def orange(text: str) -> str:
    return _paint(_active.orange, text)


def muted(text: str) -> str:
    return _paint(_active.muted, text)


def bold(text: str) -> str:
    return _paint(_active.bold, text)


def dim(text: str) -> str:
    return _paint(_active.dim, text)


def strip(text: str) -> str:
    return _ANSI_RE.sub("", text)
