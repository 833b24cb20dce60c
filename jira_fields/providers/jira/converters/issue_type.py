"""
工作项类型转换器

解析顺序:
1. 缓存（5 分钟，按 base_url + 项目 + 名称 + 层级）
2. 大小写不敏感精确匹配
3. 配置的缩写（ISSUE_TYPE_ABBREVIATIONS，如 "bug" -> ["Defect"]）
4. 模糊匹配

可按层级过滤候选类型；层级不可用或层级不存在时不做过滤。
"""

import json
import logging
from typing import Any, Dict, List, Optional

from jira_fields.core.context import ConversionContext
from jira_fields.core.errors import AmbiguityError, NotFoundError, ValidationError
from jira_fields.core.matching import resolve_unique_name
from jira_fields.providers.jira.api import MetadataAPI
from jira_fields.providers.jira.converters.base import (
    check_required,
    has_identifier,
    is_not_found,
    type_name,
)
from jira_fields.providers.jira.managers.hierarchy_discovery import JPOHierarchyDiscovery
from jira_fields.schemas.field import FieldSchema, IssueTypeInfo

logger = logging.getLogger(__name__)

ISSUE_TYPE_TTL = 300  # 5分钟


def _cache_key(base_url: str, project_key: str, name: str, level: Optional[int]) -> str:
    level_part = f":{level}" if level is not None else ""
    return f"issuetype:{base_url}:{project_key}:{name.lower().strip()}{level_part}"


def _to_resolved(issue_type: Dict[str, Any]) -> Dict[str, Any]:
    return IssueTypeInfo(
        id=str(issue_type.get("id")),
        name=issue_type.get("name") or "",
        subtask=bool(issue_type.get("subtask")),
    ).model_dump()


async def convert_issue_type(value: Any, field: FieldSchema, context: ConversionContext) -> Any:
    if check_required(value, field):
        return None

    if has_identifier(value):
        return value

    if isinstance(value, dict) and "name" in value:
        if not isinstance(value["name"], str):
            raise ValidationError(
                f'Invalid issue type object for field "{field.name}": name must be a string',
                {"field": field.id, "value": value},
            )
        name = value["name"]
    elif isinstance(value, str):
        name = value
    else:
        raise ValidationError(
            f'Expected string or object for field "{field.name}", got {type_name(value)}',
            {"field": field.id, "value": value, "type": type_name(value)},
        )

    name = name.strip()
    if not name:
        raise ValidationError(
            f'Empty string is not a valid issue type for field "{field.name}"',
            {"field": field.id, "value": value},
        )
    if not context.project_key:
        raise ValidationError(
            "projectKey is required in context for issue type resolution",
            {"field": field.id, "value": value},
        )
    if not context.base_url:
        raise ValidationError(
            "baseUrl is required in context for issue type resolution",
            {"field": field.id, "value": value},
        )

    project_key = context.project_key
    level = context.hierarchy_level
    cache = context.cache_client
    cache_key = _cache_key(context.base_url, project_key, name, level)

    if cache is not None:
        try:
            cached = (await cache.get(cache_key)).value
            if cached:
                return json.loads(cached)
        except Exception as e:
            logger.warning("Issue type cache read failed: %s", e)

    metadata_api = MetadataAPI(context.client)
    issue_types = await _fetch_issue_types(metadata_api, project_key)

    candidates = issue_types
    if level is not None and cache is not None:
        candidates = await _filter_by_hierarchy_level(issue_types, level, metadata_api, cache)

    resolved = _match(name, candidates, field, context)
    if resolved is None:
        available = [it.get("name") for it in candidates]
        level_note = f" at hierarchy level {level}" if level is not None else ""
        raise NotFoundError(
            f"Issue type '{name}' not found in project {project_key}{level_note}. "
            f"Available types: {', '.join(str(a) for a in available)}",
            {
                "field": field.id,
                "projectKey": project_key,
                "issueTypeName": name,
                "hierarchyLevel": level,
                "availableTypes": available,
            },
        )

    result = _to_resolved(resolved)
    if cache is not None:
        try:
            await cache.set(cache_key, json.dumps(result), ISSUE_TYPE_TTL)
        except Exception as e:
            logger.warning("Issue type cache write failed: %s", e)
    return result


def _match(
    name: str, candidates: List[Dict[str, Any]], field: FieldSchema, context: ConversionContext
) -> Optional[Dict[str, Any]]:
    lowered = name.lower()

    exact = [it for it in candidates if (it.get("name") or "").lower() == lowered]
    if len(exact) == 1:
        return exact[0]
    if len(exact) > 1:
        if context.config.LOOKUP_AMBIGUITY_POLICY != "error":
            return exact[0]
        raise AmbiguityError(
            f"Issue type '{name}' is ambiguous in project {context.project_key}",
            {
                "field": field.id,
                "input": name,
                "candidates": [{"id": str(it.get("id")), "name": it.get("name")} for it in exact],
            },
        )

    for full_name in context.config.ISSUE_TYPE_ABBREVIATIONS.get(lowered, []):
        target = full_name.lower()
        match = next((it for it in candidates if (it.get("name") or "").lower() == target), None)
        if match is not None:
            logger.debug("Issue type abbreviation '%s' resolved to '%s'", name, match.get("name"))
            return match

    try:
        matched = resolve_unique_name(
            name,
            [{"id": str(it.get("id")), "name": it.get("name")} for it in candidates],
            field=field.id,
            field_name=field.name,
            policy=context.config.LOOKUP_AMBIGUITY_POLICY,
            threshold=context.config.FUZZY_THRESHOLD,
        )
    except ValidationError as e:
        if is_not_found(e):
            return None
        raise
    return next((it for it in candidates if str(it.get("id")) == matched["id"]), None)


async def _fetch_issue_types(metadata_api: MetadataAPI, project_key: str) -> List[Dict[str, Any]]:
    try:
        values = await metadata_api.get_issue_types(project_key)
    except NotFoundError:
        raise
    except Exception as e:
        raise NotFoundError(
            f"Failed to fetch issue types for project '{project_key}': {e}",
            {"projectKey": project_key},
        ) from e

    if not values:
        raise NotFoundError(
            f"No issue types found for project '{project_key}'", {"projectKey": project_key}
        )
    return values


async def _filter_by_hierarchy_level(
    issue_types: List[Dict[str, Any]], level_id: int, metadata_api: MetadataAPI, cache
) -> List[Dict[str, Any]]:
    try:
        hierarchy = await JPOHierarchyDiscovery(metadata_api, cache).get_hierarchy()
    except Exception as e:
        logger.warning("Hierarchy lookup failed, skipping level filter: %s", e)
        return issue_types

    if not hierarchy:
        return issue_types
    level = next((lv for lv in hierarchy if lv.id == level_id), None)
    if level is None:
        return issue_types
    return [it for it in issue_types if str(it.get("id")) in level.issueTypeIds]
