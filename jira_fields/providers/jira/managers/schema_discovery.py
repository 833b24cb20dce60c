"""
SchemaDiscovery - 字段 schema 发现

负责按 (项目, 工作项类型) 获取并归一化字段元数据:
- 工作项类型名称 -> ID（大小写不敏感）
- 分页拉取全部字段定义
- 解析类型、必填、允许值（含级联选项的子选项）
- 根据虚拟字段注册表生成子属性字段

缓存策略 (stale-while-revalidate):
- 新鲜命中: 直接返回
- 过期命中: 立即返回旧值，同时触发后台刷新（同一 key 至多一个）
- 未命中: 同步拉取
"""

import logging
from typing import Any, Dict, List, Optional

from jira_fields.core.cache import LookupCache
from jira_fields.core.config import settings
from jira_fields.core.errors import NotFoundError
from jira_fields.providers.jira.api import MetadataAPI
from jira_fields.providers.jira.managers.virtual_fields import VirtualFieldRegistry
from jira_fields.schemas.field import (
    AllowedValue,
    ChildOption,
    FieldSchema,
    ProjectSchema,
    RawFieldSchema,
)

logger = logging.getLogger(__name__)


class SchemaDiscovery:
    """字段 schema 发现管理器 (Manager Layer)"""

    SCHEMA_TTL = 900  # 15分钟
    PAGE_SIZE = 1000

    def __init__(
        self,
        metadata_api: Optional[MetadataAPI] = None,
        cache: Optional[LookupCache] = None,
        base_url: Optional[str] = None,
        virtual_fields: Optional[VirtualFieldRegistry] = None,
    ):
        """
        Args:
            metadata_api: MetadataAPI 实例（可选，默认自动创建）
            cache: 缓存实例（可选，默认新建进程内缓存）
            base_url: Jira 实例地址，用于缓存 key 隔离
            virtual_fields: 虚拟字段注册表（可选，默认内置定义）
        """
        self.metadata_api = metadata_api or MetadataAPI()
        self.cache = cache or LookupCache()
        self.base_url = base_url or settings.JIRA_BASE_URL
        self.virtual_fields = virtual_fields or VirtualFieldRegistry()

    def _cache_key(self, project_key: str, issue_type_name: str) -> str:
        return f"schema:{self.base_url}:{project_key}:{issue_type_name}"

    async def get_issue_types_for_project(self, project_key: str) -> List[Dict[str, Any]]:
        """
        获取项目下的工作项类型

        Returns:
            [{id, name, subtask}]

        Raises:
            NotFoundError: 项目下没有工作项类型
        """
        values = await self.metadata_api.get_issue_types(project_key)
        if not values:
            raise NotFoundError(
                f"No issue types found for project '{project_key}'",
                {"projectKey": project_key},
            )
        return [
            {"id": str(it.get("id")), "name": it.get("name"), "subtask": bool(it.get("subtask"))}
            for it in values
        ]

    async def get_fields_for_issue_type(
        self, project_key: str, issue_type_name: str
    ) -> ProjectSchema:
        """
        获取工作项类型的字段 schema

        Args:
            project_key: 项目 Key
            issue_type_name: 工作项类型名称（大小写不敏感）

        Returns:
            ProjectSchema

        Raises:
            NotFoundError: 项目或工作项类型不存在
        """
        cache_key = self._cache_key(project_key, issue_type_name)

        try:
            cached = await self.cache.get(cache_key)
            if cached.value:
                schema = ProjectSchema.model_validate_json(cached.value)
                if cached.is_stale:
                    logger.debug("Schema cache stale, refreshing in background: %s", cache_key)
                    self.cache.refresh_in_background(
                        cache_key,
                        lambda: self._fetch_and_cache(project_key, issue_type_name, cache_key),
                    )
                return schema
        except Exception as e:
            logger.warning("Schema cache read failed, fetching from API: %s", e)

        return await self._fetch_and_cache(project_key, issue_type_name, cache_key)

    async def _fetch_and_cache(
        self, project_key: str, issue_type_name: str, cache_key: str
    ) -> ProjectSchema:
        issue_types = await self.get_issue_types_for_project(project_key)

        lowered = issue_type_name.lower()
        issue_type = next(
            (it for it in issue_types if (it["name"] or "").lower() == lowered), None
        )
        if issue_type is None:
            available = [it["name"] for it in issue_types]
            raise NotFoundError(
                f"Issue type '{issue_type_name}' not found in project '{project_key}'. "
                f"Available types: {', '.join(available)}",
                {
                    "projectKey": project_key,
                    "issueTypeName": issue_type_name,
                    "availableTypes": available,
                },
            )

        raw_fields = await self._fetch_all_fields(project_key, issue_type_name, issue_type["id"])
        schema = self._parse_schema(project_key, issue_type_name, raw_fields)

        try:
            await self.cache.set(
                cache_key, schema.model_dump_json(by_alias=True), self.SCHEMA_TTL
            )
        except Exception as e:
            logger.warning("Schema cache write failed: %s", e)

        logger.info(
            "Discovered %d fields for %s/%s", len(schema.fields), project_key, issue_type_name
        )
        return schema

    async def _fetch_all_fields(
        self, project_key: str, issue_type_name: str, issue_type_id: str
    ) -> List[Dict[str, Any]]:
        """分页拉取字段定义，直到数量达到服务端报告的 total"""
        details = {
            "projectKey": project_key,
            "issueTypeName": issue_type_name,
            "issueTypeId": issue_type_id,
        }
        all_fields: List[Dict[str, Any]] = []
        start_at = 0
        total = 0

        while True:
            page = await self.metadata_api.get_fields_page(
                project_key, issue_type_id, start_at=start_at, max_results=self.PAGE_SIZE
            )
            values = page.get("values")
            if values is None:
                raise NotFoundError(
                    f"No fields found for issue type '{issue_type_name}' in project '{project_key}'",
                    details,
                )

            all_fields.extend(values)
            total = page.get("total") or len(all_fields)
            # 服务端可能限制单页数量，按实际返回条数推进
            start_at += len(values)

            # 空页说明服务端已无更多数据
            if not values or len(all_fields) >= total:
                break

        if len(all_fields) < total:
            logger.warning(
                "Fetched %d of %d fields for %s/%s; server stopped paging early",
                len(all_fields),
                total,
                project_key,
                issue_type_name,
            )

        if not all_fields:
            raise NotFoundError(
                f"No fields found for issue type '{issue_type_name}' in project '{project_key}'",
                details,
            )
        return all_fields

    def _parse_schema(
        self, project_key: str, issue_type_name: str, raw_fields: List[Dict[str, Any]]
    ) -> ProjectSchema:
        fields: Dict[str, FieldSchema] = {}
        for field_def in raw_fields:
            field_id = field_def.get("fieldId")
            if not field_id:
                continue
            fields[field_id] = self._parse_field(field_id, field_def)

        fields.update(self._virtual_fields_for(fields))

        return ProjectSchema(projectKey=project_key, issueType=issue_type_name, fields=fields)

    def _virtual_fields_for(self, fields: Dict[str, FieldSchema]) -> Dict[str, FieldSchema]:
        virtual: Dict[str, FieldSchema] = {}
        for field_id, field in fields.items():
            for definition in self.virtual_fields.get_by_parent_field(field_id):
                virtual_id = f"{field_id}.{definition.property_path}"
                virtual[virtual_id] = FieldSchema(
                    id=virtual_id,
                    name=definition.name,
                    type=definition.type,
                    required=field.required,
                    schema=RawFieldSchema(
                        type=definition.type,
                        system=definition.property_path,
                        custom="virtual",
                    ),
                )
        return virtual

    @staticmethod
    def _map_field_type(raw_schema: Optional[Dict[str, Any]]) -> str:
        if not raw_schema:
            return "unknown"
        return raw_schema.get("type") or "unknown"

    def _parse_field(self, field_id: str, field_def: Dict[str, Any]) -> FieldSchema:
        raw_schema = field_def.get("schema")
        allowed = field_def.get("allowedValues")

        allowed_values = None
        if isinstance(allowed, list):
            allowed_values = []
            for v in allowed:
                display = v.get("value") or v.get("name") or ""
                children = v.get("children")
                allowed_values.append(
                    AllowedValue(
                        id=str(v.get("id")),
                        name=display,
                        value=display,
                        children=[
                            ChildOption(
                                id=str(c.get("id")), value=c.get("value") or c.get("name") or ""
                            )
                            for c in children
                        ]
                        if isinstance(children, list)
                        else None,
                    )
                )

        return FieldSchema(
            id=field_id,
            name=field_def.get("name") or field_id,
            type=self._map_field_type(raw_schema),
            required=bool(field_def.get("required")),
            allowedValues=allowed_values,
            schema=RawFieldSchema.model_validate(raw_schema or {}),
        )

    async def get_field_id_by_name(
        self, project_key: str, issue_type_name: str, field_name: str
    ) -> Optional[str]:
        """按显示名查找字段 ID（大小写不敏感），未找到返回 None"""
        schema = await self.get_fields_for_issue_type(project_key, issue_type_name)
        lowered = field_name.lower()
        for field_id, field in schema.fields.items():
            if field.name.lower() == lowered:
                return field_id
        return None
