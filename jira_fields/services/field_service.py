"""
字段载荷服务 (Application Layer)

把一行原始输入（字段名 -> 用户值）转换为 Jira REST API 的 fields 载荷:
原始行 -> FieldResolver（字段名 -> 字段 ID）-> ConverterRegistry（值 -> wire 格式）
发送请求由调用方负责。
"""

import logging
from typing import Any, Dict, Optional

from jira_fields.core.cache import LookupCache
from jira_fields.core.config import Settings, settings as default_settings
from jira_fields.core.context import ConversionContext
from jira_fields.core.errors import ValidationError
from jira_fields.core.jira_client import JiraClient, get_jira_client
from jira_fields.core.matching import find_system_field
from jira_fields.providers.jira.api import IssueAPI, MetadataAPI
from jira_fields.providers.jira.converters import ConverterRegistry
from jira_fields.providers.jira.managers import (
    FieldResolver,
    JPOHierarchyDiscovery,
    ParentFieldDiscovery,
    ParentLinkResolver,
    SchemaDiscovery,
)

logger = logging.getLogger(__name__)


class FieldPayloadService:
    """
    字段载荷服务
    负责组装各组件（共享同一个客户端和缓存），并编排一次完整的字段转换。
    """

    def __init__(
        self,
        client: Optional[JiraClient] = None,
        cache: Optional[LookupCache] = None,
        config: Optional[Settings] = None,
        schema_discovery: Optional[SchemaDiscovery] = None,
        field_resolver: Optional[FieldResolver] = None,
        registry: Optional[ConverterRegistry] = None,
    ):
        self.config = config or default_settings
        self.client = client or get_jira_client()
        self.cache = cache or LookupCache(
            ttl=self.config.CACHE_TTL_SECONDS,
            key_prefix=self.config.CACHE_KEY_PREFIX,
            max_entries=self.config.CACHE_MAX_ENTRIES,
        )
        self.base_url = self.client.base_url

        metadata_api = MetadataAPI(self.client)
        self.schema_discovery = schema_discovery or SchemaDiscovery(
            metadata_api, self.cache, base_url=self.base_url
        )

        if field_resolver is None:
            hierarchy = JPOHierarchyDiscovery(metadata_api, self.cache)
            field_resolver = FieldResolver(
                self.schema_discovery,
                parent_field_discovery=ParentFieldDiscovery(
                    self.schema_discovery, self.cache, self.config.PARENT_FIELD_SYNONYMS
                ),
                parent_link_resolver=ParentLinkResolver(
                    hierarchy, IssueAPI(self.client), self.cache
                ),
                parent_synonyms=self.config.PARENT_FIELD_SYNONYMS,
            )
        self.field_resolver = field_resolver
        self.registry = registry or ConverterRegistry()
        logger.debug("FieldPayloadService initialized for %s", self.base_url)

    async def build_fields(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """
        构建 fields 载荷

        Args:
            row: 原始输入，必须包含 project 和 issuetype（或 type）

        Returns:
            字段 ID -> wire 值

        Raises:
            ValidationError: 缺少 project / issuetype，或某个字段值无法转换
        """
        project = find_system_field(row, "project")
        if project is None or not project.extracted:
            raise ValidationError(
                "Row must include a project (key or name)", {"fields": list(row or {})}
            )
        issue_type = find_system_field(row, "issuetype")
        if issue_type is None or not issue_type.extracted:
            raise ValidationError(
                "Row must include an issue type", {"fields": list(row or {})}
            )

        project_key = project.extracted
        issue_type_name = issue_type.extracted
        logger.info(
            "Building fields: project=%s, issue_type=%s, input_fields=%d",
            project_key,
            issue_type_name,
            len(row),
        )

        resolved = await self.field_resolver.resolve_fields(project_key, issue_type_name, row)
        schema = await self.schema_discovery.get_fields_for_issue_type(project_key, issue_type_name)

        context = ConversionContext(
            project_key=project_key,
            issue_type=issue_type_name,
            base_url=self.base_url,
            cache=self.cache,
            cache_client=self.cache,
            client=self.client,
            config=self.config,
        )
        fields = await self.registry.convert_fields(schema, resolved, context)
        logger.info("Built %d fields for %s/%s", len(fields), project_key, issue_type_name)
        return fields
