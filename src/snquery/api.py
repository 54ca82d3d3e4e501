"""
snquery 核心 API 模块

提供无 CLI 依赖的条件编译、校验、元数据加载功能
可作为库独立使用
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union

from loguru import logger

from .errors import NetworkError, ParseError, QuerySyntaxError, ValidationError
from .filter.compiler import compile_conditions
from .filter.condition import Condition, ConditionSet, LogicalOperator
from .filter.dates import parse_range_expression
from .filter.fields import FieldDescriptor, FieldType, TableFieldMetadata
from .filter.grammar import operators_for
from .filter.lang import parse_query
from .filter.validator import ConditionValidator, ValidationResult
from .services.metadata import DictionaryMetadataProvider
from .tui.daterange import DatePreset, default_presets

ConditionLike = Union[Condition, Dict[str, Any]]


def load_conditions(items: Iterable[ConditionLike]) -> ConditionSet:
    """将字典或 Condition 列表转换为 ConditionSet"""
    conditions = []
    for item in items:
        if isinstance(item, Condition):
            conditions.append(item)
        else:
            conditions.append(Condition.from_dict(item))
    return ConditionSet(conditions)


def compile_query(
    items: Iterable[ConditionLike],
    metadata: Optional[TableFieldMetadata] = None,
    strict: bool = False,
) -> str:
    """
    编译条件列表为 encoded query

    Args:
        items: 条件列表（Condition 或字典）
        metadata: 表字段元数据，用于校验
        strict: 为 True 时校验失败抛出 ValidationError

    Returns:
        编译后的查询字符串
    """
    conditions = load_conditions(items)
    if strict:
        result = ConditionValidator(metadata).validate_query(list(conditions))
        if not result.is_valid:
            first = result.errors[0]
            raise ValidationError(first.format(), result.issues)
    return compile_conditions(conditions)


def validate_conditions(
    items: Iterable[ConditionLike],
    metadata: Optional[TableFieldMetadata] = None,
) -> ValidationResult:
    """校验条件列表，返回包含编译预览的结果"""
    return ConditionValidator(metadata).validate_query(list(load_conditions(items)))


def validate_raw_query(query: str) -> ValidationResult:
    """对手写查询做语法检查（非安全保证）"""
    return ConditionValidator().validate_raw_query(query)


def query_to_conditions(
    query: str,
    metadata: Optional[TableFieldMetadata] = None,
) -> ConditionSet:
    """
    将 encoded query 拆回条件列表

    字段类型取自 metadata；未知字段按字符串处理。
    ``^NQ`` 多查询无法表示为单个条件链，会抛出 QuerySyntaxError。
    """
    conditions: List[Condition] = []
    for term in parse_query(query):
        if term.join == "^NQ":
            raise QuerySyntaxError("^NQ queries cannot be loaded into the builder")
        field = metadata.find_field(term.field) if metadata else None
        if field is None:
            field = FieldDescriptor(name=term.field, label=term.field)

        start = end = None
        try:
            bounds = parse_range_expression(term.value)
        except ParseError:
            bounds = None
        if bounds is not None:
            start, end = bounds

        if term.join == "^OR" and conditions:
            conditions[-1] = conditions[-1].with_logical_op(LogicalOperator.OR)
        elif conditions:
            conditions[-1] = conditions[-1].with_logical_op(LogicalOperator.AND)
        conditions.append(Condition(field, term.operator, term.value, start=start, end=end))
    return ConditionSet(conditions)


def load_metadata(source, table: str) -> TableFieldMetadata:
    """
    加载表字段元数据

    字典表不可用时退化为纯文本字段列表（取第一条记录的字段名）
    """
    try:
        return DictionaryMetadataProvider(source).get_field_metadata(table)
    except NetworkError as e:
        logger.warning(f"field metadata unavailable for {table}: {e}; using text fields")

    names: List[str] = []
    try:
        records = source.list(table, {"sysparm_limit": "1"})
        if records:
            names = sorted(records[0].keys())
    except NetworkError as e:
        logger.warning(f"could not sample {table}: {e}")
    return TableFieldMetadata.text_only(table, names)


def operator_table(field_type: Optional[FieldType] = None) -> List[Dict[str, Any]]:
    """返回字段类型对应的操作符（字典形式）"""
    return [
        {
            'token': op.token,
            'label': op.label,
            'description': op.description,
            'requires_value': op.requires_value,
            'date_only': op.date_only,
        }
        for op in operators_for(field_type)
    ]


def date_presets(now: Optional[datetime] = None) -> List[DatePreset]:
    """返回相对于 now 的日期范围预设"""
    return default_presets(now or datetime.now())
