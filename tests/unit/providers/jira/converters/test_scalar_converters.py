"""
字符串 / 文本 / 数字 / 时间跟踪转换器测试
"""

import logging

import pytest

from jira_fields.core.errors import ValidationError
from jira_fields.providers.jira.converters import (
    convert_number,
    convert_string,
    convert_text,
    convert_time_tracking,
)
from jira_fields.providers.jira.converters.time_tracking import seconds_to_duration


class TestStringConverters:
    @pytest.mark.asyncio
    async def test_string_trimmed(self, make_field, make_context):
        assert await convert_string("  Login  ", make_field(), make_context()) == "Login"

    @pytest.mark.asyncio
    async def test_none_becomes_empty(self, make_field, make_context):
        assert await convert_string(None, make_field(), make_context()) == ""
        assert await convert_text(None, make_field(type="text"), make_context()) == ""

    @pytest.mark.asyncio
    async def test_text_keeps_inner_newlines(self, make_field, make_context):
        value = "\n line one\nline two \n"

        assert await convert_text(value, make_field(type="text"), make_context()) == (
            "line one\nline two"
        )


class TestConvertNumber:
    """测试数字转换"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "value, expected",
        [(42, 42), (3.5, 3.5), ("42", 42), (" 3.14 ", 3.14), ("-7", -7), (-0.0, 0), ("1e3", 1000.0)],
    )
    async def test_valid(self, make_field, make_context, value, expected):
        result = await convert_number(value, make_field(type="number"), make_context())

        assert result == expected

    @pytest.mark.asyncio
    async def test_string_integer_stays_int(self, make_field, make_context):
        result = await convert_number("5", make_field(type="number"), make_context())

        assert isinstance(result, int)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", ["", "   ", "abc", True, float("nan"), float("inf"), [1]])
    async def test_invalid(self, make_field, make_context, value):
        with pytest.raises(ValidationError):
            await convert_number(value, make_field(type="number"), make_context())

    @pytest.mark.asyncio
    async def test_optional_none(self, make_field, make_context):
        assert await convert_number(None, make_field(type="number"), make_context()) is None

    @pytest.mark.asyncio
    async def test_required_none(self, make_field, make_context):
        """测试必填字段为 None 时报错"""
        field = make_field(name="Story Points", type="number", required=True)

        with pytest.raises(ValidationError) as exc_info:
            await convert_number(None, field, make_context())

        assert exc_info.value.message == 'Field "Story Points" is required'

    @pytest.mark.asyncio
    async def test_unsafe_integer_warns(self, make_field, make_context, caplog):
        with caplog.at_level(logging.WARNING):
            await convert_number(2**60, make_field(type="number"), make_context())

        assert "exceeds MAX_SAFE_INTEGER" in caplog.text


class TestConvertTimeTracking:
    """测试时间跟踪转换"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("2h", "2h"),
            ("1w 2d 3h 30m", "1w 2d 3h 30m"),
            ("2 hours", "2h"),
            ("30 Minutes", "30m"),
            ("1 day", "1d"),
            (3600, "1h"),
            (0, "0m"),
            (174600, "1w 1d 30m"),
        ],
    )
    async def test_valid(self, make_field, make_context, value, expected):
        field = make_field(field_id="timetracking", type="timetracking")

        assert await convert_time_tracking(value, field, make_context()) == expected

    @pytest.mark.asyncio
    async def test_object_each_estimate_parsed(self, make_field, make_context):
        field = make_field(field_id="timetracking", type="timetracking")

        result = await convert_time_tracking(
            {"originalEstimate": "3 hours", "remainingEstimate": 1800}, field, make_context()
        )

        assert result == {"originalEstimate": "3h", "remainingEstimate": "30m"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", [-5, 1.5, "", "soon", "2 fortnights", True])
    async def test_invalid(self, make_field, make_context, value):
        field = make_field(field_id="timetracking", type="timetracking")

        with pytest.raises(ValidationError):
            await convert_time_tracking(value, field, make_context())

    @pytest.mark.asyncio
    async def test_required_none(self, make_field, make_context):
        """测试必填的时间跟踪字段为 None 时报错"""
        field = make_field(
            field_id="timetracking", name="Time tracking", type="timetracking", required=True
        )

        with pytest.raises(ValidationError) as exc_info:
            await convert_time_tracking(None, field, make_context())

        assert exc_info.value.message == 'Field "Time tracking" is required'

    def test_seconds_below_minute_dropped(self):
        assert seconds_to_duration(59) == "0m"
        assert seconds_to_duration(8 * 3600) == "1d"
