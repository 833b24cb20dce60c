"""
日期 / 日期时间转换器

date:
- ISO 8601 字符串（YYYY-MM-DD 或带时间部分，只取日期部分），校验日历有效性
- Excel 序列号（1900-01-01 为 1，保留 Excel 的 1900 闰年 bug）
- date / datetime 对象
- 输出 YYYY-MM-DD

datetime:
- ISO 8601 字符串（缺省秒补 :00，缺省时区视为 UTC）
- Unix 时间戳（|value| < 1e10 视为秒，否则为毫秒）
- datetime / date 对象
- 输出 YYYY-MM-DDTHH:MM:SS.mmm+0000（UTC）
"""

import math
import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from jira_fields.core.context import ConversionContext
from jira_fields.core.errors import ValidationError
from jira_fields.providers.jira.converters.base import check_required, type_name
from jira_fields.schemas.field import FieldSchema

EXCEL_EPOCH = date(1900, 1, 1)
UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
SECONDS_THRESHOLD = 10_000_000_000

_ISO_DATE_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}(T|$)")
_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_NO_SECONDS = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}$")
_NO_ZONE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?$")
_FULL = re.compile(
    r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})$"
)


def _format_date(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


async def convert_date(value: Any, field: FieldSchema, context: ConversionContext) -> Optional[str]:
    if check_required(value, field):
        return None

    if isinstance(value, bool):
        raise ValidationError(
            f"Invalid date value for field '{field.name}': expected string, number "
            f"(Excel serial), or date object, got bool",
            {"field": field.id, "value": value, "type": "bool"},
        )
    if isinstance(value, (int, float)):
        return _excel_serial_to_date(value, field)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return _format_date(value.date())
    if isinstance(value, date):
        return _format_date(value)
    if isinstance(value, str):
        return _iso_string_to_date(value, field)

    raise ValidationError(
        f"Invalid date value for field '{field.name}': expected string, number "
        f"(Excel serial), or date object, got {type_name(value)}",
        {"field": field.id, "value": value, "type": type_name(value)},
    )


def _excel_serial_to_date(serial: float, field: FieldSchema) -> str:
    if not math.isfinite(serial) or serial <= 0:
        raise ValidationError(
            f"Invalid Excel serial date: {serial} for field '{field.name}' (must be > 0)",
            {"field": field.id, "value": serial},
        )

    # Excel 认为 1900-02-29 存在（序列号 60），之后的序列号整体偏移一天
    offset = 1 if serial <= 60 else 2
    try:
        result = EXCEL_EPOCH + timedelta(days=math.floor(serial) - offset)
    except OverflowError:
        raise ValidationError(
            f"Invalid Excel serial date: {serial} for field '{field.name}' (out of range)",
            {"field": field.id, "value": serial},
        ) from None
    return _format_date(result)


def _iso_string_to_date(raw: str, field: FieldSchema) -> str:
    trimmed = raw.strip()
    if not trimmed:
        raise ValidationError(
            f"Empty string is not a valid date for field '{field.name}'",
            {"field": field.id, "value": raw},
        )

    if not _ISO_DATE_PREFIX.match(trimmed):
        raise ValidationError(
            f"Invalid date format for field '{field.name}': expected ISO 8601 format "
            f'(YYYY-MM-DD), got "{trimmed}"',
            {"field": field.id, "value": raw},
        )

    date_part = trimmed.split("T", 1)[0]
    try:
        parsed = date.fromisoformat(date_part)
    except ValueError:
        raise ValidationError(
            f"Invalid date for field '{field.name}': \"{trimmed}\" (date does not exist)",
            {"field": field.id, "value": raw, "expected": date_part},
        ) from None
    return _format_date(parsed)


def _format_datetime(value: datetime) -> str:
    value = value.astimezone(timezone.utc)
    return (
        f"{_format_date(value)}T{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
        f".{value.microsecond // 1000:03d}+0000"
    )


async def convert_datetime(
    value: Any, field: FieldSchema, context: ConversionContext
) -> Optional[str]:
    if check_required(value, field):
        return None

    if isinstance(value, bool):
        raise ValidationError(
            f'Expected datetime value (string, number, or datetime) for field "{field.name}", got bool',
            {"field": field.id, "value": value, "type": "bool"},
        )
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return _format_datetime(value)
    if isinstance(value, date):
        return _format_datetime(datetime(value.year, value.month, value.day, tzinfo=timezone.utc))
    if isinstance(value, (int, float)):
        return _format_datetime(_timestamp_to_datetime(value, field))
    if isinstance(value, str):
        return _format_datetime(_parse_iso_datetime(value, field))

    raise ValidationError(
        f'Expected datetime value (string, number, or datetime) for field "{field.name}", '
        f"got {type_name(value)}",
        {"field": field.id, "value": value, "type": type_name(value)},
    )


def _timestamp_to_datetime(timestamp: float, field: FieldSchema) -> datetime:
    if not math.isfinite(timestamp):
        raise ValidationError(
            f'Invalid timestamp for field "{field.name}": {timestamp}',
            {"field": field.id, "value": timestamp},
        )
    try:
        if abs(timestamp) < SECONDS_THRESHOLD:
            return UNIX_EPOCH + timedelta(seconds=timestamp)
        return UNIX_EPOCH + timedelta(milliseconds=timestamp)
    except OverflowError:
        raise ValidationError(
            f'Invalid timestamp for field "{field.name}": {timestamp}',
            {"field": field.id, "value": timestamp},
        ) from None


def _parse_iso_datetime(raw: str, field: FieldSchema) -> datetime:
    trimmed = raw.strip()
    if not trimmed:
        raise ValidationError(
            f'Empty string is not a valid datetime for field "{field.name}"',
            {"field": field.id, "value": raw},
        )

    normalized = trimmed
    if _DATE_ONLY.match(normalized):
        normalized += "T00:00:00Z"
    elif _NO_SECONDS.match(normalized):
        normalized += ":00Z"
    elif _NO_ZONE.match(normalized):
        normalized += "Z"

    invalid = ValidationError(
        f'Invalid datetime format for field "{field.name}": "{raw}". '
        f'Expected ISO 8601 format (e.g., "2025-09-30T14:30:00Z")',
        {"field": field.id, "value": raw},
    )

    match = _FULL.match(normalized)
    if not match:
        raise invalid

    base, fraction, zone = match.groups()
    # 统一为 fromisoformat 可接受的 6 位小数与 +HH:MM 时区
    micro = (fraction or "").ljust(6, "0")[:6]
    zone = "+00:00" if zone == "Z" else zone
    try:
        return datetime.fromisoformat(f"{base}.{micro}{zone}")
    except ValueError:
        raise invalid from None
