"""
时间跟踪转换器

支持:
- Jira 原生格式: "2h", "1d 4h", "1w 2d 3h 30m"（原样透传）
- 自然语言: "2 hours" -> "2h", "30 minutes" -> "30m"
- 整数秒: 按 Jira 工作日历换算（1 周 = 5 天，1 天 = 8 小时）
- 对象: {originalEstimate, remainingEstimate}，每个属性独立按以上规则解析
"""

import re
from typing import Any, Dict, Optional, Union

from jira_fields.core.context import ConversionContext
from jira_fields.core.errors import ValidationError
from jira_fields.providers.jira.converters.base import check_required, type_name
from jira_fields.schemas.field import FieldSchema

_JIRA_DURATION = re.compile(r"^(\d+[wdhm])(\s+\d+[wdhm])*$")

_FRIENDLY_UNITS = {
    "week": "w",
    "weeks": "w",
    "day": "d",
    "days": "d",
    "hour": "h",
    "hours": "h",
    "minute": "m",
    "minutes": "m",
    "min": "m",
    "mins": "m",
}
_FRIENDLY = re.compile(r"^(\d+)\s*(" + "|".join(_FRIENDLY_UNITS) + r")$")

_UNIT_SECONDS = (
    ("w", 5 * 8 * 3600),
    ("d", 8 * 3600),
    ("h", 3600),
    ("m", 60),
)

ESTIMATE_KEYS = ("originalEstimate", "remainingEstimate")


async def convert_time_tracking(
    value: Any, field: FieldSchema, context: ConversionContext
) -> Optional[Union[str, Dict[str, Optional[str]]]]:
    if check_required(value, field):
        return None

    if isinstance(value, dict):
        result: Dict[str, Optional[str]] = {}
        for key in ESTIMATE_KEYS:
            if key not in value:
                continue
            result[key] = None if value[key] is None else parse_time_value(value[key], field, key)
        return result

    return parse_time_value(value, field)


def parse_time_value(value: Any, field: FieldSchema, label: Optional[str] = None) -> str:
    label = label or field.name

    if isinstance(value, bool):
        raise ValidationError(
            f'Time tracking value for field "{label}" must be a string, number, or object (got bool)',
            {"field": field.id, "value": value},
        )

    if isinstance(value, (int, float)):
        if value < 0 or not float(value).is_integer():
            raise ValidationError(
                f'Time tracking value for field "{label}" must be a positive integer (got {value})',
                {"field": field.id, "value": value},
            )
        return seconds_to_duration(int(value))

    if isinstance(value, str):
        trimmed = value.strip()
        if not trimmed:
            raise ValidationError(
                f'Time tracking value for field "{label}" cannot be empty. '
                'Valid formats: "2h", "30m", "1d", "1w", "1h 30m", etc.',
                {"field": field.id, "value": value},
            )
        if _JIRA_DURATION.match(trimmed):
            return trimmed

        match = _FRIENDLY.match(trimmed.lower())
        if match:
            return f"{match.group(1)}{_FRIENDLY_UNITS[match.group(2)]}"

        raise ValidationError(
            f'Time tracking value for field "{label}" has invalid format: "{value}". '
            'Expected JIRA format (e.g., "2h", "1d 4h") or friendly format '
            '(e.g., "2 hours", "30 minutes")',
            {"field": field.id, "value": value},
        )

    raise ValidationError(
        f'Time tracking value for field "{label}" must be a string, number, or object '
        f"(got {type_name(value)})",
        {"field": field.id, "value": value},
    )


def seconds_to_duration(total_seconds: int) -> str:
    """秒数转 Jira 时长格式，不足一分钟的部分舍去"""
    parts = []
    remaining = total_seconds
    for unit, seconds in _UNIT_SECONDS:
        if remaining >= seconds:
            count, remaining = divmod(remaining, seconds)
            parts.append(f"{count}{unit}")
    return " ".join(parts) or "0m"
