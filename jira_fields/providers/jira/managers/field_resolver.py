"""
FieldResolver - 字段名解析

将用户输入的字段名映射为 schema 中的字段 ID:
- 归一化精确匹配（"Fix Version" / "fix_version" / "fixversion"）
- 别名（"type" -> "issuetype"）
- 父字段同义词（"Parent" / "Epic Link" ...），经 ParentFieldDiscovery 得到实际字段 ID
- 虚拟字段（"Original Estimate" -> "timetracking.originalEstimate"）
- 前缀 / 包含匹配（处理 "Fix Version/s" 这类单复数差异）
"""

import difflib
import logging
from typing import Any, Dict, List, Optional

from jira_fields.core.config import settings
from jira_fields.core.errors import ConfigurationError
from jira_fields.core.matching import FIELD_ALIASES, normalize_field_name
from jira_fields.providers.jira.managers.parent_field_discovery import ParentFieldDiscovery
from jira_fields.providers.jira.managers.parent_link_resolver import ParentLinkResolver
from jira_fields.providers.jira.managers.schema_discovery import SchemaDiscovery
from jira_fields.providers.jira.managers.virtual_fields import VirtualFieldRegistry
from jira_fields.schemas.field import ProjectSchema

logger = logging.getLogger(__name__)


class FieldResolver:
    """字段名解析器"""

    def __init__(
        self,
        schema_discovery: SchemaDiscovery,
        parent_field_discovery: Optional[ParentFieldDiscovery] = None,
        parent_link_resolver: Optional[ParentLinkResolver] = None,
        parent_synonyms: Optional[List[str]] = None,
        virtual_fields: Optional[VirtualFieldRegistry] = None,
    ):
        self.schema_discovery = schema_discovery
        self.parent_field_discovery = parent_field_discovery
        self.parent_link_resolver = parent_link_resolver
        self.virtual_fields = virtual_fields or schema_discovery.virtual_fields
        self._parent_synonyms = {
            normalize_field_name(s)
            for s in (
                settings.PARENT_FIELD_SYNONYMS if parent_synonyms is None else parent_synonyms
            )
        }

    def is_parent_synonym(self, field_name: str) -> bool:
        return normalize_field_name(field_name) in self._parent_synonyms

    @staticmethod
    def is_issue_type_field(field_name: str) -> bool:
        normalized = normalize_field_name(field_name)
        return FIELD_ALIASES.get(normalized, normalized) == "issuetype"

    async def resolve_field_name(self, field_name: str, schema: ProjectSchema) -> Optional[str]:
        """
        解析单个字段名

        Args:
            field_name: 用户输入的字段名或字段 ID
            schema: 目标 schema

        Returns:
            字段 ID；无法解析时返回 None
        """
        normalized = normalize_field_name(field_name)

        if self.is_parent_synonym(field_name):
            if self.parent_field_discovery is None:
                return None
            return await self.parent_field_discovery.get_parent_field_key(
                schema.projectKey, schema.issueType
            )

        if normalized == "project":
            return "project"
        if self.is_issue_type_field(field_name):
            return "issuetype"

        definition = self.virtual_fields.get(field_name)
        if definition is not None:
            virtual_id = f"{definition.parent_field_id}.{definition.property_path}"
            if virtual_id in schema.fields:
                return virtual_id

        if field_name in schema.fields:
            return field_name
        aliased = FIELD_ALIASES.get(normalized)
        if aliased and aliased in schema.fields:
            return aliased

        return self._find_field_by_name(schema, field_name)

    async def resolve_fields(
        self, project_key: str, issue_type: str, row: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        将用户输入的整行字段映射为 {字段 ID: 原始值}

        - 父字段同义词: 解析父工作项，issuelink 类型输出 {key}，否则输出 Key 字符串；值为 None 时跳过
        - project: 输出 {key}
        - issuetype / type: 输出 {name}
        - 虚拟字段: 按父字段分组，覆盖显式提供的父字段对象中的同名属性
        - 未知字段: 记录告警并跳过

        Raises:
            ConfigurationError: 使用了父字段同义词但项目未配置父字段
        """
        schema = await self.schema_discovery.get_fields_for_issue_type(project_key, issue_type)
        resolved: Dict[str, Any] = {}
        virtual_groups: Dict[str, Dict[str, Any]] = {}

        for field_name, value in row.items():
            if self.is_parent_synonym(field_name):
                if value is None:
                    logger.debug("Skipping empty parent field %r", field_name)
                    continue
                field_id, parent_value = await self._resolve_parent_synonym(
                    value, project_key, issue_type, schema
                )
                resolved[field_id] = parent_value
                continue

            if normalize_field_name(field_name) == "project":
                if isinstance(value, dict) and "key" in value:
                    resolved["project"] = value
                else:
                    resolved["project"] = {"key": value}
                continue

            if self.is_issue_type_field(field_name):
                if isinstance(value, dict) and ("id" in value or "name" in value):
                    resolved["issuetype"] = value
                else:
                    resolved["issuetype"] = {"name": value}
                continue

            definition = self.virtual_fields.get(field_name)
            if definition is not None:
                group = virtual_groups.setdefault(definition.parent_field_id, {})
                group[definition.property_path] = value
                continue

            if field_name.startswith("customfield_") or field_name in schema.fields:
                if field_name not in schema.fields:
                    logger.warning(
                        "Field ID '%s' not found in schema for %s in %s. Skipping this field.",
                        field_name,
                        issue_type,
                        project_key,
                    )
                    continue
                resolved[field_name] = value
                continue

            field_id = self._find_field_by_name(schema, field_name)
            if field_id is None:
                suggestions = self._closest_names(schema, field_name)
                logger.warning(
                    "Field '%s' not found for %s in %s. Skipping this field.%s",
                    field_name,
                    issue_type,
                    project_key,
                    f" Did you mean: {', '.join(suggestions)}?" if suggestions else "",
                )
                continue

            resolved[field_id] = value

        # 虚拟字段优先于显式父字段对象中的同名属性
        for parent_id, properties in virtual_groups.items():
            existing = resolved.get(parent_id)
            if isinstance(existing, dict):
                resolved[parent_id] = {**existing, **properties}
            else:
                resolved[parent_id] = properties

        return resolved

    async def _resolve_parent_synonym(
        self, value: Any, project_key: str, issue_type: str, schema: ProjectSchema
    ):
        if self.parent_field_discovery is None:
            raise ConfigurationError(
                "Parent field discovery not configured. Cannot resolve parent synonyms."
            )

        parent_field_key = await self.parent_field_discovery.get_parent_field_key(
            project_key, issue_type
        )
        if not parent_field_key:
            raise ConfigurationError(
                f"Project {project_key} does not have a parent field configured. "
                "Please configure a parent field in JIRA or use the exact field ID.",
                {"projectKey": project_key, "issueType": issue_type},
            )

        if self.parent_link_resolver is None:
            raise ConfigurationError(
                "Required dependencies not configured for parent link resolution"
            )

        issue_types = await self.schema_discovery.get_issue_types_for_project(project_key)
        lowered = issue_type.lower()
        match = next((it for it in issue_types if (it["name"] or "").lower() == lowered), None)
        if match is None:
            raise ConfigurationError(
                f"Issue type '{issue_type}' not found in project '{project_key}'",
                {"projectKey": project_key, "issueType": issue_type},
            )

        if isinstance(value, dict) and "key" in value:
            value = value["key"]
        parent_key = await self.parent_link_resolver.resolve(str(value), match["id"], project_key)

        parent_field = schema.fields.get(parent_field_key)
        if parent_field is not None and parent_field.type == "issuelink":
            return parent_field_key, {"key": parent_key}
        return parent_field_key, parent_key

    @staticmethod
    def _find_field_by_name(schema: ProjectSchema, field_name: str) -> Optional[str]:
        normalized = normalize_field_name(field_name)
        entries = [(field_id, normalize_field_name(f.name)) for field_id, f in schema.fields.items()]

        # 1. 归一化精确匹配
        for field_id, name in entries:
            if name == normalized:
                return field_id

        # 2. 前缀匹配（长度差 <= 2）
        prefix = [
            field_id
            for field_id, name in entries
            if abs(len(name) - len(normalized)) <= 2
            and (name.startswith(normalized) or normalized.startswith(name))
        ]
        if len(prefix) == 1:
            return prefix[0]

        # 3. 包含匹配（输入至少 5 个字符，长度差 <= 4）
        if len(normalized) >= 5:
            contains = [
                field_id
                for field_id, name in entries
                if abs(len(name) - len(normalized)) <= 4
                and (normalized in name or name in normalized)
            ]
            if len(contains) == 1:
                return contains[0]

        return None

    @staticmethod
    def _closest_names(schema: ProjectSchema, field_name: str, limit: int = 3) -> List[str]:
        names = {f.name.lower(): f.name for f in schema.fields.values()}
        matches = difflib.get_close_matches(field_name.lower(), list(names), n=limit, cutoff=0.0)
        return [names[m] for m in matches]
