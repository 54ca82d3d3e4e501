"""Field metadata types for a remote table."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class FieldType(str, Enum):
    """Field types as reported by the backend dictionary."""

    STRING = "string"
    INTEGER = "integer"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    DATE = "glide_date"
    DATE_TIME = "glide_date_time"
    REFERENCE = "reference"
    CHOICE = "choice"
    JOURNAL = "journal"
    HTML = "html"
    URL = "url"
    EMAIL = "email"
    PASSWORD = "password"
    TRANSLATED_TEXT = "translated_text"

    @classmethod
    def from_internal(cls, internal_type: Optional[str]) -> "FieldType":
        """Map a dictionary ``internal_type`` to a FieldType.

        Unknown types are treated as plain strings.
        """
        if not internal_type:
            return cls.STRING
        key = str(internal_type).strip().lower()
        return _INTERNAL_TYPES.get(key, cls.STRING)

    @property
    def is_date(self) -> bool:
        return self in (FieldType.DATE, FieldType.DATE_TIME)

    @property
    def is_numeric(self) -> bool:
        return self in (FieldType.INTEGER, FieldType.DECIMAL)

    @property
    def is_text(self) -> bool:
        return self in TEXT_TYPES


_INTERNAL_TYPES: Dict[str, FieldType] = {
    "glide_date_time": FieldType.DATE_TIME,
    "glide_date": FieldType.DATE,
    "reference": FieldType.REFERENCE,
    "choice": FieldType.CHOICE,
    "boolean": FieldType.BOOLEAN,
    "integer": FieldType.INTEGER,
    "decimal": FieldType.DECIMAL,
    "float": FieldType.DECIMAL,
    "numeric": FieldType.DECIMAL,
    "journal": FieldType.JOURNAL,
    "journal_input": FieldType.JOURNAL,
    "html": FieldType.HTML,
    "url": FieldType.URL,
    "email": FieldType.EMAIL,
    "password": FieldType.PASSWORD,
    "password2": FieldType.PASSWORD,
    "translated_text": FieldType.TRANSLATED_TEXT,
    "string": FieldType.STRING,
    "syslog": FieldType.STRING,
}

TEXT_TYPES = frozenset({
    FieldType.STRING,
    FieldType.JOURNAL,
    FieldType.HTML,
    FieldType.URL,
    FieldType.EMAIL,
    FieldType.TRANSLATED_TEXT,
})


@dataclass(frozen=True)
class FieldChoice:
    """One value/label pair of a choice field."""

    value: str
    label: str = ""

    def __post_init__(self):
        if not self.label:
            object.__setattr__(self, "label", self.value)


@dataclass(frozen=True)
class FieldDescriptor:
    """Metadata about a single table field. Immutable for the session."""

    name: str
    label: str = ""
    type: FieldType = FieldType.STRING
    max_length: int = 0
    mandatory: bool = False
    read_only: bool = False
    reference: str = ""
    choices: Tuple[FieldChoice, ...] = ()
    default_value: str = ""
    description: str = ""

    @property
    def display_label(self) -> str:
        return self.label or self.name

    def has_choice(self, value: str) -> bool:
        """Check a value against both the choice values and labels."""
        return any(c.value == value or c.label == value for c in self.choices)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "label": self.label,
            "type": self.type.value,
            "max_length": self.max_length,
            "mandatory": self.mandatory,
            "read_only": self.read_only,
            "reference": self.reference,
            "choices": [{"value": c.value, "label": c.label} for c in self.choices],
            "default_value": self.default_value,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldDescriptor":
        choices = tuple(
            FieldChoice(value=str(c.get("value", "")), label=str(c.get("label", "")))
            for c in data.get("choices") or []
        )
        raw_type = data.get("type", FieldType.STRING.value)
        try:
            field_type = FieldType(raw_type)
        except ValueError:
            field_type = FieldType.from_internal(raw_type)
        return cls(
            name=str(data.get("name", "")),
            label=str(data.get("label", "")),
            type=field_type,
            max_length=int(data.get("max_length") or 0),
            mandatory=bool(data.get("mandatory", False)),
            read_only=bool(data.get("read_only", False)),
            reference=str(data.get("reference") or ""),
            choices=choices,
            default_value=str(data.get("default_value") or ""),
            description=str(data.get("description") or ""),
        )


# 常用字段优先显示
PRIORITY_FIELDS = [
    "state", "priority", "assigned_to", "assignment_group", "caller_id",
    "number", "short_description", "description", "category", "subcategory",
    "active", "name", "title", "subject", "urgency", "impact",
    "due_date", "work_start", "work_end", "opened_at", "closed_at",
    "sys_created_on", "sys_updated_on", "sys_created_by", "sys_updated_by",
    "comments", "work_notes", "close_notes", "approval",
]

_PRIORITY_INDEX = {name: i for i, name in enumerate(PRIORITY_FIELDS)}


def sort_fields_by_priority(fields: List[FieldDescriptor]) -> List[FieldDescriptor]:
    """Sort fields with commonly used ones first, the rest by label."""

    def sort_key(f: FieldDescriptor):
        if f.name in _PRIORITY_INDEX:
            return (0, _PRIORITY_INDEX[f.name], "")
        return (1, 0, f.display_label)

    return sorted(fields, key=sort_key)


@dataclass
class TableFieldMetadata:
    """All field metadata for one table."""

    table_name: str
    fields: List[FieldDescriptor] = field(default_factory=list)
    loaded_at: datetime = field(default_factory=datetime.now)

    def find_field(self, name: str) -> Optional[FieldDescriptor]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def fields_of_type(self, field_type: FieldType) -> List[FieldDescriptor]:
        return [f for f in self.fields if f.type == field_type]

    def date_fields(self) -> List[FieldDescriptor]:
        return [f for f in self.fields if f.type.is_date]

    def choice_fields(self) -> List[FieldDescriptor]:
        return self.fields_of_type(FieldType.CHOICE)

    def reference_fields(self) -> List[FieldDescriptor]:
        return self.fields_of_type(FieldType.REFERENCE)

    def searchable_fields(self) -> List[FieldDescriptor]:
        """Writable text fields long enough to be worth searching."""
        searchable = (FieldType.STRING, FieldType.JOURNAL, FieldType.HTML, FieldType.TRANSLATED_TEXT)
        return [
            f for f in self.fields
            if f.type in searchable and not f.read_only and f.max_length > 10
        ]

    @classmethod
    def text_only(cls, table_name: str, names: List[str]) -> "TableFieldMetadata":
        """Fallback metadata: every field is a plain string."""
        return cls(
            table_name=table_name,
            fields=[FieldDescriptor(name=n, label=n) for n in names],
        )
