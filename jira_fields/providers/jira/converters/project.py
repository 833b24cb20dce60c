"""
项目转换器

- {key} 原样返回
- 形如项目 Key 的输入（"PROJ"）直接查询，404 时回退到名称搜索
- 其余按名称在全部项目中解析（项目列表缓存 15 分钟）
- 输出 {key}
"""

import json
import logging
import re
from typing import Any, Optional

from jira_fields.core.cache import LookupCache
from jira_fields.core.context import ConversionContext
from jira_fields.core.errors import NotFoundError, ValidationError
from jira_fields.core.matching import extract_field_value, resolve_unique_name
from jira_fields.providers.jira.api import IssueAPI
from jira_fields.providers.jira.converters.base import check_required, type_name
from jira_fields.schemas.field import FieldSchema

logger = logging.getLogger(__name__)

PROJECT_TTL = 900  # 15分钟
_PROJECT_KEY = re.compile(r"^[A-Z][A-Z0-9]{0,10}$")


def looks_like_project_key(value: str) -> bool:
    return bool(_PROJECT_KEY.match(value.strip()))


async def _cache_get(cache: Optional[LookupCache], key: str) -> Any:
    if cache is None:
        return None
    try:
        cached = (await cache.get(key)).value
        return json.loads(cached) if cached else None
    except Exception as e:
        logger.warning("Project cache read failed: key=%s, error=%s", key, e)
        return None


async def _cache_set(cache: Optional[LookupCache], key: str, value: Any) -> None:
    if cache is None:
        return
    try:
        await cache.set(key, json.dumps(value), PROJECT_TTL)
    except Exception as e:
        logger.warning("Project cache write failed: key=%s, error=%s", key, e)


async def convert_project(value: Any, field: FieldSchema, context: ConversionContext) -> Any:
    if check_required(value, field):
        return None

    value = extract_field_value(value)
    if isinstance(value, dict) and value.get("key"):
        return {"key": value["key"]}

    if not isinstance(value, str):
        raise ValidationError(
            f'Invalid project value for field "{field.name}": expected string or object, '
            f"got {type_name(value)}",
            {"field": field.id, "value": value, "type": type_name(value)},
        )

    key_or_name = value.strip()
    base_url = context.base_url or ""
    cache = context.cache_client or context.cache
    cache_key = f"project:{base_url}:{key_or_name.lower()}"

    cached = await _cache_get(cache, cache_key)
    if cached:
        return cached

    issue_api = IssueAPI(context.client)

    if looks_like_project_key(key_or_name):
        try:
            project = await issue_api.get_project(key_or_name)
            result = {"key": project["key"]}
            await _cache_set(cache, cache_key, result)
            return result
        except NotFoundError:
            logger.debug("Project key '%s' not found, falling back to name search", key_or_name)

    projects_key = f"projects:{base_url}"
    projects = await _cache_get(cache, projects_key)
    if not projects:
        projects = await issue_api.list_projects()
        await _cache_set(cache, projects_key, projects)

    matched = resolve_unique_name(
        key_or_name,
        [{"id": p.get("key"), "name": p.get("name")} for p in projects],
        field=field.id,
        field_name=field.name,
        policy=context.config.LOOKUP_AMBIGUITY_POLICY,
        threshold=context.config.FUZZY_THRESHOLD,
    )
    # 项目以 key 作为候选 ID
    result = {"key": matched["id"]}
    await _cache_set(cache, cache_key, result)
    return result
