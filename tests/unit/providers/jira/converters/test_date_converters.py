"""
日期 / 日期时间转换器测试
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from jira_fields.core.errors import ValidationError
from jira_fields.providers.jira.converters import convert_date, convert_datetime


@pytest.fixture
def date_field(make_field):
    return make_field(field_id="duedate", name="Due Date", type="date")


@pytest.fixture
def datetime_field(make_field):
    return make_field(field_id="customfield_10300", name="Deployed At", type="datetime")


class TestConvertDate:
    """测试日期转换"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("2024-06-15", "2024-06-15"),
            (" 2024-02-29 ", "2024-02-29"),
            ("2024-06-15T10:30:00Z", "2024-06-15"),
            (date(2024, 1, 5), "2024-01-05"),
            (datetime(2024, 1, 5, 23, 0, tzinfo=timezone(timedelta(hours=-2))), "2024-01-06"),
        ],
    )
    async def test_valid(self, date_field, make_context, value, expected):
        assert await convert_date(value, date_field, make_context()) == expected

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "serial, expected",
        [
            (1, "1900-01-01"),
            (59, "1900-02-28"),
            (61, "1900-03-01"),
            (43831, "2020-01-01"),
            (45000.75, "2023-03-15"),
        ],
    )
    async def test_excel_serial(self, date_field, make_context, serial, expected):
        """测试 Excel 序列号（含 1900 闰年 bug 偏移）"""
        assert await convert_date(serial, date_field, make_context()) == expected

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "value", ["2023-02-29", "2024-06-31", "06/15/2024", "2024-06", "", 0, -3, True]
    )
    async def test_invalid(self, date_field, make_context, value):
        with pytest.raises(ValidationError):
            await convert_date(value, date_field, make_context())

    @pytest.mark.asyncio
    async def test_nonexistent_date_message(self, date_field, make_context):
        with pytest.raises(ValidationError) as exc_info:
            await convert_date("2024-06-31", date_field, make_context())

        assert "date does not exist" in exc_info.value.message


class TestConvertDateTime:
    """测试日期时间转换"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("2025-09-30T14:30:00Z", "2025-09-30T14:30:00.000+0000"),
            ("2025-09-30T14:30", "2025-09-30T14:30:00.000+0000"),
            ("2025-09-30", "2025-09-30T00:00:00.000+0000"),
            ("2025-09-30T14:30:00.5+02:00", "2025-09-30T12:30:00.500+0000"),
            ("2025-09-30T14:30:00.123456", "2025-09-30T14:30:00.123+0000"),
            (datetime(2025, 9, 30, 14, 30), "2025-09-30T14:30:00.000+0000"),
            (date(2025, 9, 30), "2025-09-30T00:00:00.000+0000"),
        ],
    )
    async def test_strings_and_objects(self, datetime_field, make_context, value, expected):
        assert await convert_datetime(value, datetime_field, make_context()) == expected

    @pytest.mark.asyncio
    async def test_timestamp_seconds_vs_milliseconds(self, datetime_field, make_context):
        """测试时间戳按量级区分秒与毫秒"""
        context = make_context()

        seconds = await convert_datetime(1700000000, datetime_field, context)
        millis = await convert_datetime(1700000000000, datetime_field, context)

        assert seconds == millis == "2023-11-14T22:13:20.000+0000"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "value", ["30/09/2025 14:30", "2025-02-30T10:00:00Z", "", "yesterday", True, float("nan")]
    )
    async def test_invalid(self, datetime_field, make_context, value):
        with pytest.raises(ValidationError):
            await convert_datetime(value, datetime_field, make_context())
