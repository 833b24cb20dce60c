"""
数组转换器

元素类型取自 schema.items，每个元素委托给注册表中对应的转换器。
"""

from typing import Any, List, Optional

from jira_fields.core.context import ConversionContext
from jira_fields.core.errors import ValidationError
from jira_fields.providers.jira.converters.base import check_required, type_name
from jira_fields.schemas.field import FieldSchema, RawFieldSchema


async def convert_array(
    value: Any, field: FieldSchema, context: ConversionContext
) -> Optional[List[Any]]:
    """
    转换数组字段

    Args:
        value: 列表，或逗号分隔字符串（空段会被丢弃）

    Raises:
        ValidationError: 必填字段为 None，缺少注册表 / 元素类型 / 元素转换器，或某个元素转换失败
    """
    if check_required(value, field):
        return None

    if context.registry is None:
        raise ValidationError(
            f'Array converter requires registry in context for field "{field.name}"',
            {"field": field.id},
        )

    item_type = field.items
    if not item_type:
        raise ValidationError(
            f'Array field "{field.name}" missing items type in schema',
            {"field": field.id, "schema": field.schema_.model_dump(exclude_none=True)},
        )

    if isinstance(value, (list, tuple)):
        items = list(value)
    elif isinstance(value, str):
        items = [part.strip() for part in value.split(",") if part.strip()]
    else:
        raise ValidationError(
            f'Expected array or CSV string for field "{field.name}", got {type_name(value)}',
            {"field": field.id, "value": value, "type": type_name(value)},
        )

    converter = context.registry.get(item_type)
    if converter is None:
        raise ValidationError(
            f"No converter for type: {item_type}",
            {"field": field.id, "itemType": item_type, "availableTypes": context.registry.types()},
        )

    item_field = field.model_copy(
        update={"type": item_type, "schema_": RawFieldSchema(type=item_type)}
    )

    converted = []
    for index, item in enumerate(items):
        try:
            converted.append(await converter(item, item_field, context))
        except ValidationError as e:
            raise ValidationError(
                f'Error converting item at index {index} for field "{field.name}": {e.message}',
                {
                    "field": field.id,
                    "itemIndex": index,
                    "itemValue": item,
                    "originalError": e.details,
                },
            ) from e
    return converted
