"""Basic widgets shared by the builder and its pickers."""

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from rich.console import Group
from rich.text import Text

from . import keys


class TextInput:
    """Single-line editable buffer with a cursor."""

    def __init__(self, placeholder: str = "", value: str = "", char_limit: int = 0):
        self.placeholder = placeholder
        self.char_limit = char_limit
        self._value = ""
        self.cursor = 0
        self.set_value(value)

    @property
    def value(self) -> str:
        return self._value

    def set_value(self, value: str) -> None:
        if self.char_limit:
            value = value[: self.char_limit]
        self._value = value
        self.cursor = len(value)

    def reset(self) -> None:
        self.set_value("")

    def handle_key(self, key: str) -> bool:
        """Apply an editing key. Returns False when the key is not an edit."""
        if key == keys.BACKSPACE:
            if self.cursor > 0:
                self._value = self._value[: self.cursor - 1] + self._value[self.cursor:]
                self.cursor -= 1
            return True
        if key == keys.DELETE:
            self._value = self._value[: self.cursor] + self._value[self.cursor + 1:]
            return True
        if key == keys.LEFT:
            self.cursor = max(0, self.cursor - 1)
            return True
        if key == keys.RIGHT:
            self.cursor = min(len(self._value), self.cursor + 1)
            return True
        if key == keys.HOME:
            self.cursor = 0
            return True
        if key == keys.END:
            self.cursor = len(self._value)
            return True
        if key == keys.CLEAR_LINE:
            self.reset()
            return True
        if keys.is_printable(key):
            if self.char_limit and len(self._value) >= self.char_limit:
                return True
            self._value = self._value[: self.cursor] + key + self._value[self.cursor:]
            self.cursor += 1
            return True
        return False

    def view(self, focused: bool = True) -> Text:
        if not self._value:
            text = Text(self.placeholder, style="dim italic")
            if focused:
                text = Text("▏", style="bold") + text
            return text
        text = Text(self._value)
        if focused:
            if self.cursor < len(self._value):
                text.stylize("reverse", self.cursor, self.cursor + 1)
            else:
                text.append(" ", style="reverse")
        return text


@dataclass(frozen=True)
class PickItem:
    """One row of a PickList."""

    title: str
    description: str = ""
    value: Any = None

    def matches(self, needle: str) -> bool:
        needle = needle.lower()
        return needle in self.title.lower() or needle in self.description.lower()


class PickList:
    """Scrollable list with a cursor and an optional type-to-filter box."""

    def __init__(self, items: Sequence[PickItem] = (), title: str = "",
                 max_visible: int = 15, filterable: bool = False, multi: bool = False):
        self.title = title
        self.max_visible = max(1, max_visible)
        self.filterable = filterable
        self.multi = multi
        self.marked: List[PickItem] = []
        self.filter = TextInput(placeholder="type to filter")
        self._items: List[PickItem] = []
        self._visible: List[PickItem] = []
        self.index = 0
        self.offset = 0
        self.set_items(items)

    @property
    def items(self) -> List[PickItem]:
        return list(self._items)

    @property
    def visible_items(self) -> List[PickItem]:
        return list(self._visible)

    def set_items(self, items: Sequence[PickItem]) -> None:
        self._items = list(items)
        self.marked = []
        self.filter.reset()
        self._refilter()

    def _refilter(self) -> None:
        needle = self.filter.value.strip()
        if needle:
            self._visible = [item for item in self._items if item.matches(needle)]
        else:
            self._visible = list(self._items)
        self.index = 0
        self.offset = 0

    def selected(self) -> Optional[PickItem]:
        if not self._visible:
            return None
        return self._visible[self.index]

    def toggle_mark(self) -> None:
        """Mark or unmark the item under the cursor (multi-select lists)."""
        item = self.selected()
        if item is None:
            return
        if item in self.marked:
            self.marked.remove(item)
        else:
            self.marked.append(item)

    def select_value(self, value: Any) -> bool:
        """Move the cursor onto the first item carrying ``value``."""
        for i, item in enumerate(self._visible):
            if item.value == value:
                self._move_to(i)
                return True
        return False

    def _move_to(self, index: int) -> None:
        if not self._visible:
            self.index = 0
            self.offset = 0
            return
        self.index = max(0, min(index, len(self._visible) - 1))
        if self.index < self.offset:
            self.offset = self.index
        elif self.index >= self.offset + self.max_visible:
            self.offset = self.index - self.max_visible + 1

    def handle_key(self, key: str) -> bool:
        """Navigation and filter keys. Enter and Esc are left to the owner."""
        if key == keys.UP:
            self._move_to(self.index - 1)
            return True
        if key == keys.DOWN:
            self._move_to(self.index + 1)
            return True
        if key == keys.PGUP:
            self._move_to(self.index - self.max_visible)
            return True
        if key == keys.PGDOWN:
            self._move_to(self.index + self.max_visible)
            return True
        if key == keys.HOME:
            self._move_to(0)
            return True
        if key == keys.END:
            self._move_to(len(self._visible) - 1)
            return True
        if not self.filterable:
            if key == "k":
                self._move_to(self.index - 1)
                return True
            if key == "j":
                self._move_to(self.index + 1)
                return True
            return False
        if key in (keys.BACKSPACE, keys.CLEAR_LINE) or keys.is_printable(key):
            before = self.filter.value
            self.filter.handle_key(key)
            if self.filter.value != before:
                self._refilter()
            return True
        return False

    def view(self) -> Group:
        lines = []
        if self.title:
            lines.append(Text(self.title, style="bold cyan"))
        if self.filterable and self.filter.value:
            lines.append(Text("Filter: ", style="dim") + self.filter.view())
        if not self._visible:
            lines.append(Text("  (no matches)", style="dim"))
        window = self._visible[self.offset: self.offset + self.max_visible]
        for i, item in enumerate(window, start=self.offset):
            line = Text()
            if self.multi:
                line.append("[x] " if item in self.marked else "[ ] ", style="green")
            if i == self.index:
                line.append("▶ ", style="bold yellow")
                line.append(item.title, style="bold yellow")
            else:
                line.append("  ")
                line.append(item.title)
            if item.description:
                line.append(f"  {item.description}", style="dim")
            lines.append(line)
        if len(self._visible) > self.max_visible:
            lines.append(Text(
                f"  {self.index + 1}/{len(self._visible)}", style="dim",
            ))
        return Group(*lines)
