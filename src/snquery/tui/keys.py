"""Key names used by the interactive widgets.

Keys are plain strings: named keys such as ``"enter"`` or ``"ctrl+p"``,
and single characters for everything printable.
"""

from typing import List

ENTER = "enter"
ESC = "esc"
TAB = "tab"
SHIFT_TAB = "shift+tab"
BACKSPACE = "backspace"
DELETE = "delete"
UP = "up"
DOWN = "down"
LEFT = "left"
RIGHT = "right"
HOME = "home"
END = "end"
PGUP = "pgup"
PGDOWN = "pgdown"
SPACE = " "

# Builder-wide commands
TOGGLE_PREVIEW = "ctrl+p"
TOGGLE_VALIDATION = "ctrl+v"
REVALIDATE = "ctrl+r"
REMOVE_LAST = "ctrl+d"
RESET = "ctrl+x"
TOGGLE_DATE_MODE = "ctrl+t"
FINISH = "ctrl+f"
CLEAR_LINE = "ctrl+u"

NAMED_KEYS = frozenset({
    ENTER, ESC, TAB, SHIFT_TAB, BACKSPACE, DELETE,
    UP, DOWN, LEFT, RIGHT, HOME, END, PGUP, PGDOWN,
})

_ALIASES = {
    "escape": ESC,
    "return": ENTER,
    "space": SPACE,
    "bs": BACKSPACE,
    "del": DELETE,
    "pageup": PGUP,
    "pagedown": PGDOWN,
}


def is_printable(key: str) -> bool:
    """True for single characters that a text input would insert."""
    return len(key) == 1 and key.isprintable()


def is_digit(key: str) -> bool:
    return len(key) == 1 and key in "0123456789"


def normalize_key(name: str) -> str:
    """Map a user-typed key name onto the canonical key string."""
    lowered = name.strip().lower()
    if lowered in _ALIASES:
        return _ALIASES[lowered]
    if lowered in NAMED_KEYS or lowered.startswith("ctrl+"):
        return lowered
    # single characters keep their case ("M" differs from "m")
    return name.strip()


def keys_from_line(line: str) -> List[str]:
    """将一行输入转换为按键序列

    - 空行表示回车
    - 以 ``:`` 开头表示空格分隔的按键名，例如 ``:down down enter``
    - 其他内容逐字符输入
    """
    if line == "":
        return [ENTER]
    if line.startswith(":"):
        return [normalize_key(part) for part in line[1:].split() if part]
    return list(line)
