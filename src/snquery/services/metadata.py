"""Field metadata loading from the backend's dictionary tables."""

from typing import Any, Dict, List, Mapping, Optional

from loguru import logger

from ..errors import NetworkError, NotFoundError, PermissionDeniedError
from ..filter.fields import FieldChoice, FieldDescriptor, FieldType, TableFieldMetadata
from .records import record_field

DICTIONARY_TABLE = "sys_dictionary"
CHOICE_TABLE = "sys_choice"

_DICTIONARY_FIELDS = (
    "element,column_label,internal_type,max_length,mandatory,"
    "read_only,reference,default_value,comments"
)


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes")


def _as_int(value: str) -> int:
    try:
        return int(float(value))
    except ValueError:
        return 0


class DictionaryMetadataProvider:
    """Builds TableFieldMetadata from ``sys_dictionary`` and ``sys_choice``.

    Args:
        source: record source used for the dictionary queries
        timeout: per-request timeout passed to the source
    """

    def __init__(self, source, timeout: Optional[float] = 10.0):
        self.source = source
        self.timeout = timeout

    def get_field_metadata(self, table: str) -> TableFieldMetadata:
        """Load every field of ``table``.

        Raises:
            NotFoundError: the table has no discoverable fields
            PermissionDeniedError: the dictionary cannot be read
            NetworkError: any other source failure
        """
        records = self._dictionary_records(table)

        fields: List[FieldDescriptor] = []
        seen = set()
        for record in records:
            name = record_field(record, "element")
            # the collection row of a table has no element
            if not name or name in seen:
                continue
            seen.add(name)
            field_type = FieldType.from_internal(record_field(record, "internal_type"))
            choices = ()
            if field_type == FieldType.CHOICE:
                choices = tuple(self._load_choices(table, name))
            fields.append(FieldDescriptor(
                name=name,
                label=record_field(record, "column_label"),
                type=field_type,
                max_length=_as_int(record_field(record, "max_length")),
                mandatory=_as_bool(record_field(record, "mandatory")),
                read_only=_as_bool(record_field(record, "read_only")),
                reference=record_field(record, "reference"),
                choices=choices,
                default_value=record_field(record, "default_value"),
                description=record_field(record, "comments"),
            ))

        if not fields:
            raise NotFoundError(
                table,
                "no field metadata found; the table may not exist or sys_dictionary is not readable",
            )
        logger.info(f"loaded {len(fields)} fields for {table}")
        return TableFieldMetadata(table_name=table, fields=fields)

    def _list(self, table: str, params: Mapping[str, str]) -> List[Dict[str, Any]]:
        return self.source.list(table, params, timeout=self.timeout)

    def _dictionary_records(self, table: str) -> List[Dict[str, Any]]:
        queries = [
            {"sysparm_query": f"name={table}", "sysparm_fields": _DICTIONARY_FIELDS},
            {"sysparm_query": f"name.name={table}", "sysparm_fields": _DICTIONARY_FIELDS},
            # include extension tables sharing the prefix
            {"sysparm_query": f"name={table}^ORnameSTARTSWITH{table}",
             "sysparm_fields": "element,column_label,internal_type,max_length,mandatory,read_only,reference,name"},
        ]
        last_error: Optional[NetworkError] = None
        for params in queries:
            params = dict(params, sysparm_limit="1000")
            try:
                records = self._list(DICTIONARY_TABLE, params)
            except PermissionDeniedError:
                raise
            except NetworkError as e:
                logger.debug(f"dictionary query {params['sysparm_query']!r} failed: {e}")
                last_error = e
                continue
            if records:
                return records

        if last_error is not None:
            # can the dictionary be read at all?
            try:
                self._list(DICTIONARY_TABLE, {"sysparm_limit": "5", "sysparm_fields": "element,internal_type,name"})
            except NotFoundError as e:
                raise PermissionDeniedError(table, f"sys_dictionary is not accessible: {e.error}")
            raise last_error
        return []

    def _load_choices(self, table: str, field_name: str) -> List[FieldChoice]:
        params = {
            "sysparm_query": f"name={table}^element={field_name}",
            "sysparm_fields": "value,label",
            "sysparm_limit": "100",
        }
        try:
            records = self._list(CHOICE_TABLE, params)
        except NetworkError as e:
            logger.warning(f"could not load choices for {table}.{field_name}: {e}")
            return []
        return [
            FieldChoice(value=record_field(r, "value"), label=record_field(r, "label"))
            for r in records
        ]
