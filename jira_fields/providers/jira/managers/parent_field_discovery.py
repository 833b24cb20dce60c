"""
ParentFieldDiscovery - 父字段发现

不同实例、不同层级的工作项类型使用的父字段不同:
- 子任务: 原生 "parent" 字段
- 其他类型: JPO 提供的自定义字段（schema.type == "any"，名称匹配同义词列表）

未找到时返回 None（缓存 "null"），调用方应回退到标准字段。
"""

import logging
from typing import Dict, List, NamedTuple, Optional

from jira_fields.core.cache import LookupCache
from jira_fields.core.config import settings
from jira_fields.core.errors import NotFoundError
from jira_fields.providers.jira.managers.schema_discovery import SchemaDiscovery
from jira_fields.schemas.field import FieldSchema, ProjectSchema

logger = logging.getLogger(__name__)

_NULL_MARKER = "null"
_SUBTASK_PATTERNS = ("sub-task", "subtask", "sub task")


class _FieldCandidate(NamedTuple):
    priority: int
    field_name: str
    field_key: str


class ParentFieldDiscovery:
    """父字段发现管理器"""

    PARENT_FIELD_TTL = 3600  # 1小时

    def __init__(
        self,
        schema_discovery: SchemaDiscovery,
        cache: Optional[LookupCache] = None,
        parent_synonyms: Optional[List[str]] = None,
    ):
        """
        Args:
            schema_discovery: schema 发现实例
            cache: 缓存实例（默认与 schema_discovery 共享）
            parent_synonyms: 父字段同义词（默认读取配置 PARENT_FIELD_SYNONYMS）
        """
        self.schema_discovery = schema_discovery
        self.cache = cache or schema_discovery.cache
        self.parent_field_patterns = [
            p.lower().strip()
            for p in (
                settings.PARENT_FIELD_SYNONYMS if parent_synonyms is None else parent_synonyms
            )
        ]

    @staticmethod
    def _cache_key(project_key: str, issue_type_name: str) -> str:
        return f"hierarchy:{project_key}:{issue_type_name}:parent-field"

    @staticmethod
    def is_subtask_issue_type(issue_type_name: str) -> bool:
        lowered = issue_type_name.lower()
        return any(pattern in lowered for pattern in _SUBTASK_PATTERNS)

    async def get_parent_field_key(
        self, project_key: str, issue_type_name: str
    ) -> Optional[str]:
        """
        获取工作项类型对应的父字段 ID

        Args:
            project_key: 项目 Key
            issue_type_name: 工作项类型名称

        Returns:
            父字段 ID（如 "parent", "customfield_10014"），未配置时返回 None
        """
        cache_key = self._cache_key(project_key, issue_type_name)

        try:
            cached = (await self.cache.get(cache_key)).value
        except Exception as e:
            logger.warning("Parent field cache read failed: %s", e)
            cached = None
        if cached:
            return None if cached == _NULL_MARKER else cached

        if self.is_subtask_issue_type(issue_type_name):
            logger.warning("Using standard JIRA parent field for Sub-task: %s", issue_type_name)
            await self._write_cache(cache_key, "parent")
            return "parent"

        candidates = await self._find_candidates(project_key, issue_type_name)
        if not candidates:
            await self._write_cache(cache_key, _NULL_MARKER)
            logger.warning(
                "Parent field not found for project %s, issue type %s",
                project_key,
                issue_type_name,
            )
            return None

        if len(candidates) > 1:
            logger.warning(
                "Multiple parent field candidates for project %s, issue type %s: %s",
                project_key,
                issue_type_name,
                [c.field_name for c in candidates],
            )

        selected = min(candidates)
        await self._write_cache(cache_key, selected.field_key)
        return selected.field_key

    async def _write_cache(self, cache_key: str, value: str) -> None:
        try:
            await self.cache.set(cache_key, value, self.PARENT_FIELD_TTL)
        except Exception as e:
            logger.warning("Parent field cache write failed: %s", e)

    async def _find_candidates(
        self, project_key: str, issue_type_name: str
    ) -> List[_FieldCandidate]:
        try:
            schema = await self.schema_discovery.get_fields_for_issue_type(
                project_key, issue_type_name
            )
        except NotFoundError:
            return []
        return self._collect_candidates(schema)

    def _collect_candidates(self, schema: ProjectSchema) -> List[_FieldCandidate]:
        candidates: Dict[str, _FieldCandidate] = {}
        for field_key, field in schema.fields.items():
            if field.schema_.type != "any":
                continue
            priority = self._evaluate_field(field)
            if priority is None:
                continue
            existing = candidates.get(field_key)
            if existing is None or priority < existing.priority:
                candidates[field_key] = _FieldCandidate(priority, field.name, field_key)
        return list(candidates.values())

    def _evaluate_field(self, field: FieldSchema) -> Optional[int]:
        """精确匹配优先级为同义词下标，子串匹配排在所有精确匹配之后"""
        name = field.name.lower().strip()
        for i, pattern in enumerate(self.parent_field_patterns):
            if pattern and name == pattern:
                return i
        for i, pattern in enumerate(self.parent_field_patterns):
            if pattern and pattern in name:
                return i + len(self.parent_field_patterns)
        return None
