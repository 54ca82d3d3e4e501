"""
记录源、元数据加载和已保存过滤器测试
"""

import json

import pytest

from snquery import api
from snquery.errors import NotFoundError, PermissionDeniedError
from snquery.filter.condition import Condition, ConditionSet
from snquery.filter.fields import FieldType
from snquery.filter.lang import parse_query
from snquery.services.metadata import DictionaryMetadataProvider
from snquery.services.records import JsonRecordSource, match_query, record_field
from snquery.services.saved import SavedFilterStore


INCIDENTS = [
    {"sys_id": "i1", "number": "INC001", "priority": "1", "state": "1", "active": "true",
     "assigned_to": {"value": "u1", "display_value": "Abel Tuter"}},
    {"sys_id": "i2", "number": "INC002", "priority": "3", "state": "2", "active": "true",
     "assigned_to": ""},
    {"sys_id": "i3", "number": "INC003", "priority": "2", "state": "7", "active": "false",
     "short_description": "Disk full on server"},
]

DICTIONARY = {
    "sys_dictionary": [
        {"name": "incident", "element": "", "internal_type": "collection"},
        {"name": "incident", "element": "number", "column_label": "Number",
         "internal_type": "string", "max_length": "40", "read_only": "true"},
        {"name": "incident", "element": "state", "column_label": "State",
         "internal_type": "integer"},
        {"name": "incident", "element": "category", "column_label": "Category",
         "internal_type": "choice"},
        {"name": "incident", "element": "assigned_to", "column_label": "Assigned to",
         "internal_type": "reference", "reference": "sys_user", "mandatory": "false"},
        {"name": "incident", "element": "number", "column_label": "Duplicate",
         "internal_type": "string"},
        {"name": "problem", "element": "known_error", "internal_type": "boolean"},
    ],
    "sys_choice": [
        {"name": "incident", "element": "category", "value": "network", "label": "Network"},
        {"name": "incident", "element": "category", "value": "hardware", "label": "Hardware"},
        {"name": "problem", "element": "category", "value": "other", "label": "Other"},
    ],
    "incident": INCIDENTS,
}


def _ids(records):
    return [r["sys_id"] for r in records]


# ==================== 单元测试 ====================

class TestJsonRecordSource:
    """测试 JSON 记录源的查询过滤"""

    def test_and_or(self):
        source = JsonRecordSource({"incident": INCIDENTS})
        records = source.list("incident", {"sysparm_query": "active=true^priority=1^ORpriority=3"})
        assert _ids(records) == ["i1", "i2"]

    def test_comparisons_and_text(self):
        source = JsonRecordSource({"incident": INCIDENTS})
        assert _ids(source.list("incident", {"sysparm_query": "priority>=2"})) == ["i2", "i3"]
        assert _ids(source.list("incident", {"sysparm_query": "short_descriptionCONTAINSdisk"})) == ["i3"]
        assert _ids(source.list("incident", {"sysparm_query": "stateIN1,7"})) == ["i1", "i3"]
        assert _ids(source.list("incident", {"sysparm_query": "assigned_toISEMPTY"})) == ["i2", "i3"]

    def test_display_value_match(self):
        source = JsonRecordSource({"incident": INCIDENTS})
        assert _ids(source.list("incident", {"sysparm_query": "assigned_to=u1"})) == ["i1"]
        assert _ids(source.list("incident", {"sysparm_query": "assigned_toSTARTSWITHabel"})) == ["i1"]

    def test_new_query(self):
        terms = parse_query("priority=1^NQstate=7")
        assert [match_query(r, terms) for r in INCIDENTS] == [True, False, True]

    def test_limit_and_fields(self):
        source = JsonRecordSource({"incident": INCIDENTS})
        records = source.list("incident", {"sysparm_limit": "2", "sysparm_fields": "sys_id,number"})
        assert records == [{"sys_id": "i1", "number": "INC001"}, {"sys_id": "i2", "number": "INC002"}]
        assert source.calls[0]["table"] == "incident"

    def test_missing_table(self):
        with pytest.raises(NotFoundError):
            JsonRecordSource({}).list("incident", {})

    def test_from_file(self, tmp_path):
        path = tmp_path / "dump.json"
        path.write_text(json.dumps({"incident": INCIDENTS}), encoding="utf-8")
        assert len(JsonRecordSource.from_file(path).list("incident", {})) == 3

    def test_from_file_rejects_list(self, tmp_path):
        path = tmp_path / "dump.json"
        path.write_text("[]", encoding="utf-8")
        with pytest.raises(ValueError):
            JsonRecordSource.from_file(path)

    def test_record_field(self):
        assert record_field({"a": {"value": "x", "display_value": "X"}}, "a") == "X"
        assert record_field({"a": {"value": "x", "display_value": ""}}, "a") == "x"
        assert record_field({"a": None}, "a") == ""
        assert record_field({}, "a") == ""


class TestDictionaryMetadata:
    """测试 sys_dictionary 元数据加载"""

    def test_fields(self):
        metadata = DictionaryMetadataProvider(JsonRecordSource(DICTIONARY)).get_field_metadata("incident")
        assert [f.name for f in metadata.fields] == ["number", "state", "category", "assigned_to"]

        number = metadata.find_field("number")
        assert number.label == "Number"
        assert number.max_length == 40
        assert number.read_only

        assert metadata.find_field("state").type == FieldType.INTEGER
        assigned = metadata.find_field("assigned_to")
        assert assigned.type == FieldType.REFERENCE
        assert assigned.reference == "sys_user"

    def test_choices(self):
        source = JsonRecordSource(DICTIONARY)
        category = DictionaryMetadataProvider(source).get_field_metadata("incident").find_field("category")
        assert [(c.value, c.label) for c in category.choices] == [
            ("network", "Network"), ("hardware", "Hardware"),
        ]
        choice_calls = [c for c in source.calls if c["table"] == "sys_choice"]
        assert choice_calls[0]["params"]["sysparm_query"] == "name=incident^element=category"

    def test_unknown_table(self):
        with pytest.raises(NotFoundError):
            DictionaryMetadataProvider(JsonRecordSource(DICTIONARY)).get_field_metadata("nothing")

    def test_dictionary_unreadable(self):
        with pytest.raises(PermissionDeniedError):
            DictionaryMetadataProvider(JsonRecordSource({"incident": INCIDENTS})).get_field_metadata("incident")

    def test_fallback_to_text_fields(self):
        metadata = api.load_metadata(JsonRecordSource({"incident": INCIDENTS}), "incident")
        assert [f.name for f in metadata.fields] == [
            "active", "assigned_to", "number", "priority", "state", "sys_id",
        ]
        assert all(f.type == FieldType.STRING for f in metadata.fields)

    def test_fallback_without_table(self):
        metadata = api.load_metadata(JsonRecordSource({}), "incident")
        assert metadata.fields == []


class TestSavedFilterStore:
    """测试已保存过滤器的持久化"""

    @pytest.fixture
    def store(self, tmp_path):
        return SavedFilterStore(tmp_path / "saved.json")

    def test_round_trip(self, store, metadata):
        conditions = ConditionSet([Condition(metadata.find_field("priority"), "=", "1")])
        saved = store.save("P1", "incident", "priority=1", description="urgent", conditions=conditions)

        loaded = store.get(saved.id)
        assert loaded.name == "P1"
        assert loaded.query == "priority=1"
        assert loaded.condition_set() == conditions

        data = json.loads(store.path.read_text(encoding="utf-8"))
        assert data["version"] == 1
        assert len(data["filters"]) == 1

    def test_same_name_replaces(self, store):
        store.save("mine", "incident", "priority=1")
        store.save("mine", "incident", "priority=2")
        store.save("mine", "problem", "priority=3")
        assert [f.query for f in store.list("incident")] == ["priority=2"]
        assert len(store.list()) == 2

    def test_ordering(self, store):
        first = store.save("first", "incident", "priority=1")
        store.save("second", "incident", "priority=2")
        third = store.save("third", "incident", "priority=3")
        store.set_favorite(third.id)
        store.mark_used(first.id)
        assert [f.name for f in store.list()] == ["third", "first", "second"]
        assert store.get(first.id).use_count == 1

    def test_search(self, store):
        store.save("Open P1", "incident", "priority=1", description="critical work")
        store.save("Closed", "incident", "state=7")
        assert [f.name for f in store.search("critical")] == ["Open P1"]
        assert [f.name for f in store.search("STATE")] == ["Closed"]
        assert store.search("nothing") == []

    def test_delete(self, store):
        saved = store.save("gone", "incident", "active=true")
        assert store.delete(saved.id)
        assert not store.delete(saved.id)
        assert store.list() == []

    def test_name_required(self, store):
        with pytest.raises(ValueError):
            store.save("  ", "incident", "active=true")

    def test_missing_file(self, store):
        assert store.list() == []
        assert store.mark_used("42") is None
