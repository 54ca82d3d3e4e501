"""Conditions and the ordered condition set they are committed to."""

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional

from .dates import BACKEND_FORMAT
from .fields import FieldDescriptor


class LogicalOperator(str, Enum):
    """How a condition connects to the one after it."""

    AND = "AND"
    OR = "OR"

    @property
    def separator(self) -> str:
        return "^OR" if self is LogicalOperator.OR else "^"


@dataclass(frozen=True)
class Condition:
    """One field/operator/value unit of a filter."""

    field: FieldDescriptor
    operator: str
    value: str = ""
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    logical_op: Optional[LogicalOperator] = None

    def with_logical_op(self, op: Optional[LogicalOperator]) -> "Condition":
        return replace(self, logical_op=op)

    def describe(self) -> str:
        """Short human readable form, e.g. ``Priority = 1``."""
        parts = [self.field.display_label, self.operator]
        if self.value:
            parts.append(self.value)
        return " ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field": self.field.to_dict(),
            "operator": self.operator,
            "value": self.value,
            "start": self.start.strftime(BACKEND_FORMAT) if self.start else None,
            "end": self.end.strftime(BACKEND_FORMAT) if self.end else None,
            "logical_op": self.logical_op.value if self.logical_op else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Condition":
        """Load a condition; ``field`` may be a full descriptor or a bare name."""
        raw_field = data.get("field")
        if isinstance(raw_field, dict):
            field_desc = FieldDescriptor.from_dict(raw_field)
        else:
            field_desc = FieldDescriptor(name=str(raw_field or ""))

        def _instant(key: str) -> Optional[datetime]:
            raw = data.get(key)
            return datetime.strptime(raw, BACKEND_FORMAT) if raw else None

        logical = data.get("logical_op")
        return cls(
            field=field_desc,
            operator=str(data.get("operator") or ""),
            value=str(data.get("value") or ""),
            start=_instant("start"),
            end=_instant("end"),
            logical_op=LogicalOperator(str(logical).upper()) if logical else None,
        )


class ConditionSet:
    """Ordered sequence of committed conditions.

    The last condition never carries a logical operator: the join is stored
    on the earlier condition of each adjacent pair.
    """

    def __init__(self, conditions: Optional[Iterable[Condition]] = None):
        self._items: List[Condition] = []
        for condition in conditions or []:
            self._items.append(condition)
        self._normalize_tail()

    def __iter__(self) -> Iterator[Condition]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index: int) -> Condition:
        return self._items[index]

    def __bool__(self) -> bool:
        return bool(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ConditionSet):
            return self._items == other._items
        if isinstance(other, list):
            return self._items == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"ConditionSet({self._items!r})"

    def append(self, condition: Condition, join: Optional[LogicalOperator] = None) -> None:
        """Commit ``condition``; ``join`` connects the previous tail to it."""
        if self._items:
            previous = self._items[-1]
            self._items[-1] = previous.with_logical_op(join or LogicalOperator.AND)
        self._items.append(condition.with_logical_op(None))

    def pop(self) -> Optional[Condition]:
        if not self._items:
            return None
        removed = self._items.pop()
        self._normalize_tail()
        return removed

    def clear(self) -> None:
        self._items.clear()

    def copy(self) -> "ConditionSet":
        return ConditionSet(self._items)

    def to_list(self) -> List[Dict[str, Any]]:
        return [c.to_dict() for c in self._items]

    @classmethod
    def from_list(cls, data: Iterable[Dict[str, Any]]) -> "ConditionSet":
        return cls(Condition.from_dict(item) for item in data)

    def _normalize_tail(self) -> None:
        if self._items and self._items[-1].logical_op is not None:
            self._items[-1] = self._items[-1].with_logical_op(None)
