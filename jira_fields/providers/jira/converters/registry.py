"""
转换器注册表

按 schema 字段类型分发到对应的转换器。
未注册的类型原样透传并记录警告，远端新增的字段类型不会中断整个流程。
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from jira_fields.core.context import ConversionContext
from jira_fields.providers.jira.converters.array import convert_array
from jira_fields.providers.jira.converters.base import Converter
from jira_fields.providers.jira.converters.cascading import convert_option_with_child
from jira_fields.providers.jira.converters.dates import convert_date, convert_datetime
from jira_fields.providers.jira.converters.issue_type import convert_issue_type
from jira_fields.providers.jira.converters.lookup import (
    convert_component,
    convert_option,
    convert_priority,
    convert_version,
)
from jira_fields.providers.jira.converters.project import convert_project
from jira_fields.providers.jira.converters.scalar import (
    convert_number,
    convert_string,
    convert_text,
)
from jira_fields.providers.jira.converters.time_tracking import convert_time_tracking
from jira_fields.providers.jira.converters.user import convert_user
from jira_fields.schemas.field import FieldSchema, ProjectSchema

logger = logging.getLogger(__name__)

BUILTIN_CONVERTERS: Dict[str, Converter] = {
    "string": convert_string,
    "text": convert_text,
    "number": convert_number,
    "date": convert_date,
    "datetime": convert_datetime,
    "array": convert_array,
    "priority": convert_priority,
    "user": convert_user,
    "option": convert_option,
    "option-with-child": convert_option_with_child,
    "component": convert_component,
    "version": convert_version,
    "timetracking": convert_time_tracking,
    "issuetype": convert_issue_type,
    "project": convert_project,
}

# 字段解析阶段已转换为 {key} / {name} 的元字段
META_FIELDS = ("project", "issuetype")


class ConverterRegistry:
    """字段类型 -> 转换器"""

    def __init__(self, converters: Optional[Mapping[str, Converter]] = None, include_builtins: bool = True):
        self._converters: Dict[str, Converter] = dict(BUILTIN_CONVERTERS) if include_builtins else {}
        if converters:
            self._converters.update(converters)

    def register(self, field_type: str, converter: Converter) -> None:
        """注册（或覆盖）某个字段类型的转换器"""
        if field_type in self._converters:
            logger.debug("Overriding converter for type '%s'", field_type)
        self._converters[field_type] = converter

    def get(self, field_type: str) -> Optional[Converter]:
        return self._converters.get(field_type)

    def has(self, field_type: str) -> bool:
        return field_type in self._converters

    def types(self) -> List[str]:
        return sorted(self._converters)

    async def convert(self, value: Any, field: FieldSchema, context: ConversionContext) -> Any:
        """
        转换单个字段值

        分发只依据 field.type；上下文中没有注册表时补上自身，供数组转换器委托元素转换。
        """
        converter = self._converters.get(field.type)
        if converter is None:
            logger.warning(
                "No converter for type '%s' (field %s), passing value through", field.type, field.id
            )
            return value

        if context.registry is None:
            context = context.with_registry(self)
        return await converter(value, field, context)

    async def convert_fields(
        self, schema: ProjectSchema, resolved_fields: Dict[str, Any], context: ConversionContext
    ) -> Dict[str, Any]:
        """
        按字段 ID 批量转换

        Args:
            schema: 项目 + 工作项类型的字段 schema
            resolved_fields: 字段 ID -> 原始值（字段解析器的输出）

        Returns:
            字段 ID -> wire 值；值为 None 的字段被省略
        """
        context = context.with_registry(self)
        converted: Dict[str, Any] = {}

        for field_id, value in resolved_fields.items():
            if value is None:
                continue

            if field_id in META_FIELDS:
                converted[field_id] = value
                continue

            field = schema.fields.get(field_id)
            if field is None:
                logger.debug("Field %s not in schema, passing value through", field_id)
                converted[field_id] = value
                continue

            converted[field_id] = await self.convert(value, field, context)

        logger.debug("Converted %d fields", len(converted))
        return converted
