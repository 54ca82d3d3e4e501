"""Record sources: where table rows come from."""

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Union

from loguru import logger

from ..errors import NetworkError, NotFoundError, QuerySyntaxError
from ..filter.lang import QueryTerm, parse_query


class RecordSource(Protocol):
    """Anything that can list rows of a table given query parameters."""

    def list(self, table: str, params: Mapping[str, str],
             timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        ...


def _plain(value: Any) -> str:
    if isinstance(value, Mapping):
        value = value.get("value", value.get("display_value", ""))
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def record_field(record: Mapping[str, Any], name: str) -> str:
    """Read a field that may be a plain value or a display/value pair."""
    raw = record.get(name)
    if raw is None:
        return ""
    if isinstance(raw, Mapping):
        for key in ("display_value", "value"):
            value = raw.get(key)
            if value not in (None, ""):
                return str(value)
        return ""
    return str(raw)


def _compare(left: str, right: str) -> int:
    try:
        a, b = float(left), float(right)
    except ValueError:
        a, b = left, right
    return (a > b) - (a < b)


def match_term(record: Mapping[str, Any], term: QueryTerm) -> bool:
    """Evaluate one query term against a record.

    Text operators match case-insensitively against both the stored
    value and its display value. Unsupported operators match nothing.
    """
    value = _plain(record.get(term.field))
    shown = record_field(record, term.field)
    needle = term.value
    op = term.operator

    if op == "=":
        return value == needle or shown == needle
    if op == "!=":
        return value != needle and shown != needle
    if op == "ISEMPTY":
        return value == ""
    if op == "ISNOTEMPTY":
        return value != ""
    if op in ("CONTAINS", "LIKE"):
        n = needle.lower().replace("%", "")
        return n in value.lower() or n in shown.lower()
    if op == "DOESNOTCONTAIN":
        n = needle.lower()
        return n not in value.lower() and n not in shown.lower()
    if op == "STARTSWITH":
        n = needle.lower()
        return value.lower().startswith(n) or shown.lower().startswith(n)
    if op == "ENDSWITH":
        n = needle.lower()
        return value.lower().endswith(n) or shown.lower().endswith(n)
    if op in ("IN", "NOT IN"):
        options = [v.strip() for v in needle.split(",")]
        found = value in options or shown in options
        return found if op == "IN" else not found
    if op in (">", ">=", "<", "<="):
        if value == "":
            return False
        cmp = _compare(value, needle)
        return {
            ">": cmp > 0,
            ">=": cmp >= 0,
            "<": cmp < 0,
            "<=": cmp <= 0,
        }[op]
    return False


def match_query(record: Mapping[str, Any], terms: Iterable[QueryTerm]) -> bool:
    """AND of OR-groups: ``a^ORb^c`` means ``(a or b) and c``.

    ``^NQ`` starts a new query whose result is ORed with the previous ones.
    """
    queries: List[List[List[QueryTerm]]] = [[]]
    for term in terms:
        if term.join == "^NQ":
            queries.append([[term]])
        elif term.join == "^OR" and queries[-1]:
            queries[-1][-1].append(term)
        else:
            queries[-1].append([term])
    for groups in queries:
        if all(any(match_term(record, t) for t in group) for group in groups):
            return True
    return False


class JsonRecordSource:
    """Serves records from a JSON dump of the form ``{table: [records]}``.

    Honours ``sysparm_query``, ``sysparm_limit`` and ``sysparm_fields``.
    """

    def __init__(self, tables: Dict[str, List[Dict[str, Any]]]):
        self.tables = tables
        self.calls: List[Dict[str, Any]] = []

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "JsonRecordSource":
        path = Path(path).expanduser()
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected an object mapping table names to record lists")
        logger.debug(f"loaded {len(data)} tables from {path}")
        return cls(data)

    def list(self, table: str, params: Mapping[str, str],
             timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        self.calls.append({"table": table, "params": dict(params)})
        if table not in self.tables:
            raise NotFoundError(table, "table not found")

        records = self.tables[table]
        query = params.get("sysparm_query", "")
        if query:
            try:
                terms = parse_query(query)
            except QuerySyntaxError as e:
                raise NetworkError(table, e)
            records = [r for r in records if match_query(r, terms)]

        limit = params.get("sysparm_limit")
        if limit:
            records = records[: int(limit)]

        fields = params.get("sysparm_fields")
        if fields:
            wanted = [f.strip() for f in fields.split(",") if f.strip()]
            records = [{k: r[k] for k in wanted if k in r} for r in records]
        return [dict(r) for r in records]
