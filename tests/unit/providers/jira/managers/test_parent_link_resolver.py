"""
ParentLinkResolver 测试模块

测试覆盖:
1. Key 输入 - 层级校验、大写规范化
2. 标题输入 - JQL 构造、缓存、未找到、歧义
"""

from unittest.mock import AsyncMock

import pytest

from jira_fields.core.errors import AmbiguityError, HierarchyError, NotFoundError
from jira_fields.providers.jira.managers import ParentLinkResolver
from jira_fields.providers.jira.managers.parent_link_resolver import is_issue_key
from jira_fields.schemas.field import HierarchyLevel

HIERARCHY = [
    HierarchyLevel(id=0, title="Story", issueTypeIds=["10001"]),
    HierarchyLevel(id=1, title="Epic", issueTypeIds=["10002", "10005"]),
]


def _issue(key, summary, type_id="10002", type_name="Epic"):
    return {
        "key": key,
        "fields": {"summary": summary, "issuetype": {"id": type_id, "name": type_name}},
    }


@pytest.fixture
def mock_hierarchy(cache):
    hierarchy = AsyncMock()
    hierarchy.cache = cache
    hierarchy.get_hierarchy.return_value = HIERARCHY
    return hierarchy


@pytest.fixture
def mock_issue_api():
    return AsyncMock()


@pytest.fixture
def resolver(mock_hierarchy, mock_issue_api):
    return ParentLinkResolver(mock_hierarchy, mock_issue_api)


class TestIsIssueKey:
    @pytest.mark.parametrize("value", ["PROJ-1", "proj-123"])
    def test_keys(self, value):
        assert is_issue_key(value)

    @pytest.mark.parametrize("value", ["PROJ", "Login epic", "PROJ-", "12-3"])
    def test_not_keys(self, value):
        assert not is_issue_key(value)


class TestResolveByKey:
    """测试按 Key 解析"""

    @pytest.mark.asyncio
    async def test_valid_parent_upper_cased(self, resolver, mock_issue_api):
        mock_issue_api.get_issue.return_value = _issue("PROJ-5", "Login")

        assert await resolver.resolve("proj-5", "10001", "PROJ") == "PROJ-5"

    @pytest.mark.asyncio
    async def test_invalid_parent_type(self, resolver, mock_issue_api):
        """测试父工作项类型不在父层级中"""
        mock_issue_api.get_issue.return_value = _issue("PROJ-6", "Other story", "10001", "Story")

        with pytest.raises(HierarchyError) as exc_info:
            await resolver.resolve("PROJ-6", "10001", "PROJ")

        assert "is not a valid parent" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_hierarchy_unavailable(self, resolver, mock_issue_api, mock_hierarchy):
        mock_issue_api.get_issue.return_value = _issue("PROJ-5", "Login")
        mock_hierarchy.get_hierarchy.return_value = None

        with pytest.raises(HierarchyError):
            await resolver.resolve("PROJ-5", "10001", "PROJ")


class TestResolveBySummary:
    """测试按标题解析"""

    @pytest.mark.asyncio
    async def test_single_match(self, resolver, mock_issue_api):
        """测试 JQL 构造与唯一结果"""
        mock_issue_api.search.return_value = [_issue("PROJ-7", 'Login "v2"')]

        result = await resolver.resolve('Login "v2"', "10001", "PROJ")

        assert result == "PROJ-7"
        jql = mock_issue_api.search.call_args[0][0]
        assert jql == 'project = PROJ AND summary ~ "Login \\"v2\\"" AND issuetype IN (10002,10005)'
        assert mock_issue_api.search.call_args[1]["max_results"] == 10

    @pytest.mark.asyncio
    async def test_cached(self, resolver, mock_issue_api):
        mock_issue_api.search.return_value = [_issue("PROJ-7", "Login")]

        await resolver.resolve("Login", "10001", "PROJ")
        assert await resolver.resolve("login", "10001", "PROJ") == "PROJ-7"

        assert mock_issue_api.search.await_count == 1

    @pytest.mark.asyncio
    async def test_not_found(self, resolver, mock_issue_api):
        mock_issue_api.search.return_value = []

        with pytest.raises(NotFoundError):
            await resolver.resolve("Nothing", "10001", "PROJ")

    @pytest.mark.asyncio
    async def test_ambiguous(self, resolver, mock_issue_api):
        """测试多个结果时列出 Key、类型和标题"""
        mock_issue_api.search.return_value = [
            _issue("PROJ-7", "Login"),
            _issue("PROJ-8", "Login page"),
        ]

        with pytest.raises(AmbiguityError) as exc_info:
            await resolver.resolve("Login", "10001", "PROJ")

        assert 'PROJ-8 (Epic: "Login page")' in exc_info.value.message
        assert [c["id"] for c in exc_info.value.candidates] == ["PROJ-7", "PROJ-8"]

    @pytest.mark.asyncio
    async def test_top_level_type_has_no_parent(self, resolver):
        with pytest.raises(HierarchyError) as exc_info:
            await resolver.resolve("Anything", "10002", "PROJ")

        assert "no valid parent level" in exc_info.value.message
