"""字符串 / 文本 / 数字转换器"""

import logging
import math
from typing import Any, Optional, Union

from jira_fields.core.context import ConversionContext
from jira_fields.core.errors import ValidationError
from jira_fields.providers.jira.converters.base import check_required, type_name
from jira_fields.schemas.field import FieldSchema

logger = logging.getLogger(__name__)

MAX_SAFE_INTEGER = 2**53 - 1


async def convert_string(value: Any, field: FieldSchema, context: ConversionContext) -> str:
    if value is None:
        return ""
    return str(value).strip()


async def convert_text(value: Any, field: FieldSchema, context: ConversionContext) -> str:
    # 只去掉首尾空白，保留内部换行
    if value is None:
        return ""
    return str(value).strip()


async def convert_number(
    value: Any, field: FieldSchema, context: ConversionContext
) -> Optional[Union[int, float]]:
    """
    数字转换

    - int / float: 必须是有限数
    - 字符串: 去空白后解析，空串报错
    - -0 归一化为 0
    """
    if check_required(value, field):
        return None

    if isinstance(value, bool):
        raise ValidationError(
            f"Invalid number format for field '{field.name}': cannot convert value of type bool to number",
            {"field": field.name, "valueType": "bool"},
        )

    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        trimmed = value.strip()
        if not trimmed:
            raise ValidationError(
                f"Invalid number format for field '{field.name}': empty string provided",
                {"field": field.name, "value": "(empty string)"},
            )
        try:
            number = int(trimmed)
        except ValueError:
            try:
                number = float(trimmed)
            except ValueError:
                raise ValidationError(
                    f"Invalid number format for field '{field.name}': cannot convert '{value}' to number",
                    {"field": field.name, "value": value},
                ) from None
    else:
        raise ValidationError(
            f"Invalid number format for field '{field.name}': "
            f"cannot convert value of type {type_name(value)} to number",
            {"field": field.name, "valueType": type_name(value)},
        )

    if isinstance(number, float):
        if math.isnan(number):
            raise ValidationError(
                f"Invalid number for field '{field.name}': value is NaN",
                {"field": field.name, "value": "NaN"},
            )
        if math.isinf(number):
            raise ValidationError(
                f"Invalid number for field '{field.name}': value is {number}",
                {"field": field.name, "value": str(number)},
            )

    if abs(number) > MAX_SAFE_INTEGER:
        logger.warning(
            "Number %s for field '%s' exceeds MAX_SAFE_INTEGER. Precision may be lost.",
            number,
            field.name,
        )

    return 0 if number == 0 else number
