"""
FieldResolver 测试模块

测试覆盖:
1. resolve_field_name - 精确、别名、虚拟字段、前缀 / 包含匹配
2. resolve_fields - 元字段、父字段同义词（含空值、空同义词列表）、虚拟字段合并、未知字段跳过
"""

import logging
from unittest.mock import AsyncMock

import pytest

from jira_fields.core.errors import ConfigurationError
from jira_fields.providers.jira.managers import FieldResolver, VirtualFieldRegistry
from jira_fields.schemas.field import FieldSchema, ProjectSchema


def _field(field_id, name, field_type="string"):
    return FieldSchema(id=field_id, name=name, type=field_type, schema={"type": field_type})


SCHEMA = ProjectSchema(
    projectKey="PROJ",
    issueType="Story",
    fields={
        f.id: f
        for f in [
            _field("summary", "Summary"),
            _field("issuetype", "Issue Type", "issuetype"),
            _field("fixVersions", "Fix Version/s", "array"),
            _field("customfield_10016", "Story Points", "number"),
            _field("customfield_10014", "Epic Link", "any"),
            _field("timetracking", "Time tracking", "timetracking"),
            _field("timetracking.originalEstimate", "Original Estimate"),
            _field("timetracking.remainingEstimate", "Remaining Estimate"),
        ]
    },
)


@pytest.fixture
def mock_schema_discovery():
    discovery = AsyncMock()
    discovery.virtual_fields = VirtualFieldRegistry()
    discovery.get_fields_for_issue_type.return_value = SCHEMA
    discovery.get_issue_types_for_project.return_value = [
        {"id": "10001", "name": "Story", "subtask": False}
    ]
    return discovery


@pytest.fixture
def mock_parent_field_discovery():
    discovery = AsyncMock()
    discovery.get_parent_field_key.return_value = "customfield_10014"
    return discovery


@pytest.fixture
def mock_parent_link_resolver():
    resolver = AsyncMock()
    resolver.resolve.return_value = "PROJ-5"
    return resolver


@pytest.fixture
def resolver(mock_schema_discovery, mock_parent_field_discovery, mock_parent_link_resolver):
    return FieldResolver(
        mock_schema_discovery,
        parent_field_discovery=mock_parent_field_discovery,
        parent_link_resolver=mock_parent_link_resolver,
    )


class TestResolveFieldName:
    """测试单个字段名解析"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "name, expected",
        [
            ("summary", "summary"),
            ("SUMMARY", "summary"),
            ("Fix Version", "fixVersions"),
            ("story_points", "customfield_10016"),
            ("Story Point", "customfield_10016"),
            ("customfield_10016", "customfield_10016"),
            ("Type", "issuetype"),
            ("Original Estimate", "timetracking.originalEstimate"),
            ("project", "project"),
            ("Parent", "customfield_10014"),
            ("Reporter", None),
        ],
    )
    async def test_resolve(self, resolver, name, expected):
        assert await resolver.resolve_field_name(name, SCHEMA) == expected


class TestResolveFields:
    """测试整行解析"""

    @pytest.mark.asyncio
    async def test_meta_fields(self, resolver):
        """测试 project / issuetype 输出格式"""
        result = await resolver.resolve_fields(
            "PROJ", "Story", {"Project": "PROJ", "Issue Type": "Story", "Summary": "Login"}
        )

        assert result == {
            "project": {"key": "PROJ"},
            "issuetype": {"name": "Story"},
            "summary": "Login",
        }

    @pytest.mark.asyncio
    async def test_structured_meta_values_kept(self, resolver):
        result = await resolver.resolve_fields(
            "PROJ", "Story", {"project": {"key": "PROJ"}, "type": {"id": "10001"}}
        )

        assert result == {"project": {"key": "PROJ"}, "issuetype": {"id": "10001"}}

    @pytest.mark.asyncio
    async def test_parent_synonym(self, resolver, mock_parent_link_resolver):
        """测试父字段同义词解析为父工作项 Key"""
        result = await resolver.resolve_fields("PROJ", "Story", {"Epic Link": "Login epic"})

        assert result == {"customfield_10014": "PROJ-5"}
        mock_parent_link_resolver.resolve.assert_awaited_once_with("Login epic", "10001", "PROJ")

    @pytest.mark.asyncio
    async def test_parent_none_skipped(self, resolver, mock_parent_link_resolver):
        """测试父字段同义词的值为 None 时直接跳过，不触发父工作项搜索"""
        result = await resolver.resolve_fields(
            "PROJ", "Story", {"Parent": None, "Summary": "Login"}
        )

        assert result == {"summary": "Login"}
        mock_parent_link_resolver.resolve.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_synonyms_respected(
        self, mock_schema_discovery, mock_parent_field_discovery, mock_parent_link_resolver
    ):
        """测试显式传入空同义词列表时不回退到默认配置"""
        resolver = FieldResolver(
            mock_schema_discovery,
            parent_field_discovery=mock_parent_field_discovery,
            parent_link_resolver=mock_parent_link_resolver,
            parent_synonyms=[],
        )

        result = await resolver.resolve_fields("PROJ", "Story", {"Epic Link": "PROJ-9"})

        assert resolver.is_parent_synonym("Parent") is False
        assert result == {"customfield_10014": "PROJ-9"}
        mock_parent_link_resolver.resolve.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_parent_issuelink_field(
        self, resolver, mock_schema_discovery, mock_parent_field_discovery
    ):
        """测试 issuelink 类型父字段输出 {key}"""
        schema = ProjectSchema(
            projectKey="PROJ",
            issueType="Story",
            fields={"parent": _field("parent", "Parent", "issuelink")},
        )
        mock_schema_discovery.get_fields_for_issue_type.return_value = schema
        mock_parent_field_discovery.get_parent_field_key.return_value = "parent"

        result = await resolver.resolve_fields("PROJ", "Story", {"parent": {"key": "PROJ-5"}})

        assert result == {"parent": {"key": "PROJ-5"}}

    @pytest.mark.asyncio
    async def test_parent_not_configured(self, resolver, mock_parent_field_discovery):
        mock_parent_field_discovery.get_parent_field_key.return_value = None

        with pytest.raises(ConfigurationError) as exc_info:
            await resolver.resolve_fields("PROJ", "Story", {"Parent": "PROJ-5"})

        assert "does not have a parent field configured" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_parent_without_discovery(self, mock_schema_discovery):
        resolver = FieldResolver(mock_schema_discovery)

        with pytest.raises(ConfigurationError):
            await resolver.resolve_fields("PROJ", "Story", {"Parent": "PROJ-5"})

    @pytest.mark.asyncio
    async def test_virtual_fields_merged(self, resolver):
        """测试虚拟字段按父字段分组并覆盖显式属性"""
        result = await resolver.resolve_fields(
            "PROJ",
            "Story",
            {
                "timetracking": {"originalEstimate": "1d", "remainingEstimate": "4h"},
                "Original Estimate": "2d",
            },
        )

        assert result == {"timetracking": {"originalEstimate": "2d", "remainingEstimate": "4h"}}

    @pytest.mark.asyncio
    async def test_unknown_fields_skipped(self, resolver, caplog):
        """测试未知字段与未知字段 ID 被跳过并记录警告"""
        with caplog.at_level(logging.WARNING):
            result = await resolver.resolve_fields(
                "PROJ", "Story", {"Sumary Text": "x", "customfield_99999": 1, "Summary": "ok"}
            )

        assert result == {"summary": "ok"}
        assert "Field 'Sumary Text' not found" in caplog.text
        assert "Did you mean" in caplog.text
        assert "Field ID 'customfield_99999' not found" in caplog.text


class TestVirtualFieldRegistry:
    """测试虚拟字段注册表"""

    def test_builtins(self):
        registry = VirtualFieldRegistry()

        assert registry.get("original_estimate").property_path == "originalEstimate"
        assert registry.has("Remaining Estimate")
        assert len(registry.get_by_parent_field("timetracking")) == 2

    def test_immutable(self):
        registry = VirtualFieldRegistry()

        with pytest.raises(TypeError):
            registry._mappings["x"] = None
