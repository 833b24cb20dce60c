"""
候选列表类转换器: component / version / priority / option

共同流程:
1. 已解析对象 {id} 原样返回，单键包装对象解包
2. 候选列表优先读缓存（component / version 按项目，priority / option 按工作项类型隔离，option 另按字段 ID 隔离）
3. 缓存未命中或出错时回退到 schema 的 allowedValues，并回填缓存
4. 唯一名称解析，未找到时在错误消息中列出全部可选值
"""

import logging
from typing import Any, Dict, List, NamedTuple, Optional

from jira_fields.core.context import ConversionContext
from jira_fields.core.errors import ValidationError
from jira_fields.core.matching import extract_field_value, resolve_unique_name
from jira_fields.providers.jira.converters.base import (
    check_required,
    expect_non_empty_string,
    has_identifier,
    is_not_found,
    names_of,
)
from jira_fields.schemas.field import FieldSchema

logger = logging.getLogger(__name__)


class _LookupKind(NamedTuple):
    field_type: str
    label: str  # 错误消息中的值描述
    issue_type_scoped: bool
    field_scoped: bool = False  # 每个字段独立的候选列表（自定义选择字段）


COMPONENT = _LookupKind("component", "component", False)
VERSION = _LookupKind("version", "version", False)
PRIORITY = _LookupKind("priority", "priority", True)
OPTION = _LookupKind("option", "option", True, field_scoped=True)


def lookup_cache_type(kind: _LookupKind, field: FieldSchema) -> str:
    """候选缓存 key 中的类型段: 选择字段按字段 ID 隔离（option:customfield_10010）"""
    return f"{kind.field_type}:{field.id}" if kind.field_scoped else kind.field_type


async def load_candidates(
    kind: _LookupKind, field: FieldSchema, context: ConversionContext
) -> Optional[List[Dict[str, Any]]]:
    """读取候选列表: 缓存 -> allowedValues（回填缓存）"""
    issue_type = context.issue_type if kind.issue_type_scoped else None
    cache_type = lookup_cache_type(kind, field)
    candidates = None

    if context.cache is not None:
        try:
            candidates = (
                await context.cache.get_lookup(context.project_key, cache_type, issue_type)
            ).value
        except Exception as e:
            logger.warning("Lookup cache read failed for %s: %s", kind.field_type, e)
            candidates = None

    if not candidates and field.allowedValues:
        candidates = field.lookup_values()
        if context.cache is not None and candidates:
            try:
                await context.cache.set_lookup(
                    context.project_key, cache_type, candidates, issue_type
                )
            except Exception as e:
                logger.warning("Lookup cache write failed for %s: %s", kind.field_type, e)

    return candidates


async def _resolve(
    kind: _LookupKind, name: str, value: Any, field: FieldSchema, context: ConversionContext
) -> Dict[str, Any]:
    candidates = await load_candidates(kind, field, context)
    if not candidates:
        details = {"field": field.id, "value": value, "projectKey": context.project_key}
        if kind.issue_type_scoped:
            details["issueType"] = context.issue_type
        raise ValidationError(
            f'No {kind.label} values available for field "{field.name}". Cannot resolve "{name}".',
            details,
        )

    try:
        resolved = resolve_unique_name(
            name,
            candidates,
            field=field.id,
            field_name=field.name,
            policy=context.config.LOOKUP_AMBIGUITY_POLICY,
            threshold=context.config.FUZZY_THRESHOLD,
        )
    except ValidationError as e:
        if not is_not_found(e):
            raise
        available = names_of(candidates)
        if kind is PRIORITY:
            message = (
                f'Value "{name}" not found for field "{field.name}". '
                f"Available priorities: {available}"
            )
        elif kind is OPTION:
            message = (
                f'Value "{name}" not found for field "{field.name}". '
                f"Available options: {available}"
            )
        else:
            message = (
                f'{kind.label.capitalize()} "{name}" not found in project '
                f"{context.project_key}. Available: {available}"
            )
        raise ValidationError(
            message,
            {
                "field": field.id,
                "value": value,
                "reason": "not_found",
                "availableValues": candidates,
            },
        ) from e

    return {"id": resolved["id"]}


async def _convert_project_level(
    kind: _LookupKind, value: Any, field: FieldSchema, context: ConversionContext
) -> Any:
    if check_required(value, field):
        return None

    value = extract_field_value(value)
    if isinstance(value, dict) and "id" in value:
        return value

    name = expect_non_empty_string(value, field, kind.label)
    return await _resolve(kind, name, value, field, context)


async def convert_component(value: Any, field: FieldSchema, context: ConversionContext) -> Any:
    return await _convert_project_level(COMPONENT, value, field, context)


async def convert_version(value: Any, field: FieldSchema, context: ConversionContext) -> Any:
    return await _convert_project_level(VERSION, value, field, context)


async def convert_priority(value: Any, field: FieldSchema, context: ConversionContext) -> Any:
    if check_required(value, field):
        return None

    if isinstance(value, dict):
        if has_identifier(value):
            return value
        if isinstance(value.get("name"), str):
            value = value["name"]

    name = expect_non_empty_string(value, field, PRIORITY.label)
    return await _resolve(PRIORITY, name, value, field, context)


async def convert_option(value: Any, field: FieldSchema, context: ConversionContext) -> Any:
    if check_required(value, field):
        return None

    if isinstance(value, dict):
        if has_identifier(value):
            return value
        if isinstance(value.get("value"), str):
            value = value["value"]
        elif isinstance(value.get("name"), str):
            value = value["name"]

    name = expect_non_empty_string(value, field, OPTION.label)
    return await _resolve(OPTION, name, value, field, context)
