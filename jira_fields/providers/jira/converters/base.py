"""
转换器公共约定

每个转换器都是签名为 (value, field, context) 的异步函数:
- value 为 None 时原样返回；字段必填时抛出 ValidationError
- 已解析的 wire 对象（含 id 等标识键）原样返回
- 其余输入解包后按类型转换为 Jira REST API 需要的格式
"""

from typing import Any, Awaitable, Callable

from jira_fields.core.context import ConversionContext
from jira_fields.core.errors import ValidationError
from jira_fields.schemas.field import FieldSchema

Converter = Callable[[Any, FieldSchema, ConversionContext], Awaitable[Any]]


def check_required(value: Any, field: FieldSchema) -> bool:
    """
    检查空值

    Returns:
        True 表示 value 为 None 且可直接返回

    Raises:
        ValidationError: 必填字段为 None
    """
    if value is not None:
        return False
    if field.required:
        raise ValidationError(f'Field "{field.name}" is required', {"field": field.id})
    return True


def type_name(value: Any) -> str:
    return type(value).__name__


def expect_non_empty_string(value: Any, field: FieldSchema, what: str) -> str:
    """
    校验并返回去除首尾空白的字符串

    Args:
        what: 错误消息中的值描述（如 "component", "priority"）
    """
    if not isinstance(value, str):
        raise ValidationError(
            f'Expected string or object for field "{field.name}", got {type_name(value)}',
            {"field": field.id, "value": value, "type": type_name(value)},
        )
    trimmed = value.strip()
    if not trimmed:
        raise ValidationError(
            f'Empty string is not a valid {what} for field "{field.name}"',
            {"field": field.id, "value": value},
        )
    return trimmed


def has_identifier(value: Any, key: str = "id") -> bool:
    return isinstance(value, dict) and bool(value.get(key))


def is_not_found(error: ValidationError) -> bool:
    return error.details.get("reason") == "not_found"


def names_of(candidates: Any) -> str:
    return ", ".join(str(c.get("name")) for c in candidates)
