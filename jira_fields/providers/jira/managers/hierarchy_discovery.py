"""
JPO 层级结构发现

状态: 已缓存（有层级） / 已缓存（无层级，"null"） / 未缓存

未安装层级插件的实例访问端点返回 404，此时缓存 "null"，
调用方据此回退到标准字段，而不是报错。
"""

import json
import logging
from typing import Any, List, Optional

from jira_fields.core.cache import LookupCache
from jira_fields.core.errors import NotFoundError, SchemaError
from jira_fields.providers.jira.api import MetadataAPI
from jira_fields.schemas.field import HierarchyLevel

logger = logging.getLogger(__name__)

HIERARCHY_CACHE_KEY = "hierarchy:jpo-structure"
_NULL_MARKER = "null"

HierarchyStructure = Optional[List[HierarchyLevel]]


class JPOHierarchyDiscovery:
    """JPO 层级结构发现（带缓存与优雅降级）"""

    HIERARCHY_TTL = 3600  # 1小时

    def __init__(
        self,
        metadata_api: Optional[MetadataAPI] = None,
        cache: Optional[LookupCache] = None,
    ):
        self.metadata_api = metadata_api or MetadataAPI()
        self.cache = cache or LookupCache()

    async def get_hierarchy(self, refresh: bool = False) -> HierarchyStructure:
        """
        获取层级结构

        Args:
            refresh: True 时忽略缓存强制重新拉取

        Returns:
            按 id 升序排列的层级列表；未安装层级插件时返回 None

        Raises:
            SchemaError: 端点返回的数据结构非法
        """
        cached_value: Optional[str] = None
        try:
            cached_value = (await self.cache.get(HIERARCHY_CACHE_KEY)).value
        except Exception as e:
            logger.warning("Failed to read JPO hierarchy from cache: %s", e)

        if not refresh and cached_value:
            if cached_value == _NULL_MARKER:
                return None
            try:
                return self._normalize_hierarchy(json.loads(cached_value))
            except (ValueError, SchemaError) as e:
                logger.warning("Cached JPO hierarchy data is malformed. Refetching from API: %s", e)

        try:
            raw = await self.metadata_api.get_hierarchy()
        except NotFoundError:
            await self._write_cache(_NULL_MARKER)
            logger.warning("JPO hierarchy endpoint returned 404. Caching null hierarchy.")
            return None

        normalized = self._normalize_hierarchy(raw)
        serialized = json.dumps([level.model_dump() for level in normalized])
        if cached_value != serialized:
            await self._write_cache(serialized)

        logger.info("Retrieved JPO hierarchy with %d levels", len(normalized))
        return normalized

    async def _write_cache(self, value: str) -> None:
        try:
            await self.cache.set(HIERARCHY_CACHE_KEY, value, self.HIERARCHY_TTL)
        except Exception as e:
            logger.warning("Failed to cache JPO hierarchy data: %s", e)

    def _normalize_hierarchy(self, raw: Any) -> List[HierarchyLevel]:
        if not isinstance(raw, list):
            raise SchemaError("JPO hierarchy response must be an array.")
        levels = [self._normalize_level(level) for level in raw]
        return sorted(levels, key=lambda level: level.id)

    @staticmethod
    def _normalize_level(level: Any) -> HierarchyLevel:
        if not isinstance(level, dict):
            raise SchemaError("JPO hierarchy levels must be objects.")

        level_id = level.get("id")
        title = level.get("title")
        issue_type_ids = level.get("issueTypeIds")

        # bool 是 int 的子类，需要排除
        if isinstance(level_id, bool) or not isinstance(level_id, int) or level_id < 0:
            raise SchemaError(
                "JPO hierarchy level id must be a non-negative integer.", {"level": level}
            )
        if not isinstance(title, str) or not title.strip():
            raise SchemaError(
                f"JPO hierarchy level {level_id} must include a title.", {"level": level}
            )
        if not isinstance(issue_type_ids, list):
            raise SchemaError(
                f"JPO hierarchy level {level_id} must include an issueTypeIds array.",
                {"level": level},
            )

        ids = sorted(str(v) for v in issue_type_ids)
        if not ids:
            logger.warning("JPO hierarchy level %d (%s) has no issue type ids.", level_id, title)

        return HierarchyLevel(id=level_id, title=title, issueTypeIds=ids)


def get_parent_level(
    issue_type_id: str, hierarchy: HierarchyStructure
) -> Optional[HierarchyLevel]:
    """
    获取工作项类型的父层级

    Returns:
        id 为子层级 id+1 的层级；类型不在任何层级中或已是顶层时返回 None
    """
    if not hierarchy:
        return None

    child_level = next((lv for lv in hierarchy if issue_type_id in lv.issueTypeIds), None)
    if child_level is None:
        return None

    return next((lv for lv in hierarchy if lv.id == child_level.id + 1), None)


def is_valid_parent(
    child_type_id: str, parent_type_id: str, hierarchy: HierarchyStructure
) -> bool:
    parent_level = get_parent_level(child_type_id, hierarchy)
    if parent_level is None:
        return False
    return parent_type_id in parent_level.issueTypeIds
