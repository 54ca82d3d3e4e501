"""测试公共夹具"""

from datetime import datetime

import pytest

from snquery.filter.fields import FieldChoice, FieldDescriptor, FieldType, TableFieldMetadata


# 2024-03-15 是星期五
FIXED_NOW = datetime(2024, 3, 15, 10, 30, 0)


def make_metadata() -> TableFieldMetadata:
    return TableFieldMetadata("incident", [
        FieldDescriptor("number", "Number", FieldType.STRING, max_length=40),
        FieldDescriptor("priority", "Priority", FieldType.INTEGER),
        FieldDescriptor("impact_score", "Impact score", FieldType.DECIMAL),
        FieldDescriptor("active", "Active", FieldType.BOOLEAN),
        FieldDescriptor("opened_at", "Opened", FieldType.DATE_TIME),
        FieldDescriptor("due_date", "Due date", FieldType.DATE),
        FieldDescriptor("assigned_to", "Assigned to", FieldType.REFERENCE, reference="sys_user"),
        FieldDescriptor("state", "State", FieldType.CHOICE, choices=(
            FieldChoice("1", "New"),
            FieldChoice("2", "In Progress"),
            FieldChoice("7", "Closed"),
        )),
        FieldDescriptor("short_description", "Short description", FieldType.STRING, max_length=160),
    ])


@pytest.fixture
def metadata():
    return make_metadata()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """日志、配置和保存的过滤器都写到临时目录"""
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("SNQUERY_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.delenv("SNQUERY_CONFIG", raising=False)
