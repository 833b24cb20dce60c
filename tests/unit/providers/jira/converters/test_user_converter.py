"""
用户转换器测试

测试覆盖:
1. 邮箱 / 用户名 / 前缀 / 显示名 / 模糊匹配
2. 过滤非活跃用户
3. 歧义策略 first / error / score
4. 分页拉取用户目录
5. 用户目录缓存与过期后台刷新
"""

import json
from unittest.mock import AsyncMock, patch

import pytest

from jira_fields.core.cache import LookupCache
from jira_fields.core.config import Settings
from jira_fields.core.errors import AmbiguityError, ValidationError
from jira_fields.providers.jira.converters import convert_user
from jira_fields.providers.jira.converters.user import (
    USER_PAGE_SIZE,
    fetch_all_users,
    find_user_matches,
)

USERS = [
    {"name": "dsmithers", "displayName": "Dan Smithers", "emailAddress": "dan@example.com", "active": True},
    {"name": "asmith", "displayName": "Alice Smith", "emailAddress": "alice.smith@example.com", "active": True},
    {"name": "ajones", "displayName": "Alice Jones", "emailAddress": "alice.jones@example.com", "active": True},
    {"name": "bob", "displayName": "Bob Brown", "emailAddress": "bob@example.com", "active": True},
    {"name": "bobby", "displayName": "Robert Tables", "emailAddress": "bobby@example.com", "active": True},
    {"name": "carol", "displayName": "Carol White", "emailAddress": "carol@example.com", "active": False},
]


@pytest.fixture
def mock_user_api():
    api = AsyncMock()
    api.search_users.return_value = USERS
    with patch("jira_fields.providers.jira.converters.user.UserAPI", return_value=api):
        yield api


@pytest.fixture
def user_field(make_field):
    return make_field(field_id="assignee", name="Assignee", type="user")


def policy_context(make_context, policy):
    return make_context(
        config=Settings(_env_file=None, USER_AMBIGUITY_POLICY=policy),
    )


class TestFindUserMatches:
    """测试匹配顺序"""

    def test_email_exact(self):
        matches = find_user_matches(USERS, "Alice.Smith@example.com", 0.3)

        assert [(m.user["name"], m.reason) for m in matches] == [("asmith", "email-exact")]
        assert matches[0].confidence == 1.0

    def test_username_exact_wins_over_prefix(self):
        matches = find_user_matches(USERS, "bob", 0.3)

        assert [m.user["name"] for m in matches] == ["bob"]
        assert matches[0].reason == "username-exact"

    def test_username_prefix(self):
        matches = find_user_matches(USERS, "asm", 0.3)

        assert [(m.user["name"], m.reason) for m in matches] == [("asmith", "username-prefix")]

    def test_display_partial(self):
        matches = find_user_matches(USERS, "tables", 0.3)

        assert [(m.user["name"], m.reason) for m in matches] == [("bobby", "display-partial")]

    def test_fuzzy(self):
        matches = find_user_matches(USERS, "Alise Smith", 0.3)

        assert matches[0].user["name"] == "asmith"
        assert matches[0].reason == "fuzzy-match"

    def test_no_match(self):
        assert find_user_matches(USERS, "zzzz", 0.3) == []


class TestConvertUser:
    """测试用户解析"""

    @pytest.mark.asyncio
    async def test_email(self, user_field, make_context, mock_user_api):
        result = await convert_user("alice.smith@example.com", user_field, make_context())

        assert result == {"name": "asmith"}

    @pytest.mark.asyncio
    async def test_display_name_object(self, user_field, make_context, mock_user_api):
        result = await convert_user({"name": "Robert Tables"}, user_field, make_context())

        assert result == {"name": "bobby"}

    @pytest.mark.asyncio
    async def test_cloud_user_returns_account_id(self, user_field, make_context, mock_user_api):
        mock_user_api.search_users.return_value = [
            {"accountId": "5b10ac8d", "displayName": "Eve Cloud", "emailAddress": "eve@example.com"}
        ]

        result = await convert_user("eve@example.com", user_field, make_context())

        assert result == {"accountId": "5b10ac8d"}

    @pytest.mark.asyncio
    async def test_account_id_passthrough(self, user_field, make_context, mock_user_api):
        value = {"accountId": "5b10ac8d"}

        assert await convert_user(value, user_field, make_context()) == value
        mock_user_api.search_users.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_inactive_user_not_matched(self, user_field, make_context, mock_user_api):
        with pytest.raises(ValidationError) as exc_info:
            await convert_user("carol", user_field, make_context())

        assert exc_info.value.message == (
            'User "carol" not found for field "Assignee". '
            "No user with that username or display name."
        )
        assert exc_info.value.details["reason"] == "not_found"

    @pytest.mark.asyncio
    async def test_email_not_found(self, user_field, make_context, mock_user_api):
        with pytest.raises(ValidationError) as exc_info:
            await convert_user("zed@nowhere.org", user_field, make_context())

        assert exc_info.value.message.endswith("No user with that email address.")
        assert exc_info.value.details["isEmail"] is True

    @pytest.mark.asyncio
    async def test_no_active_users(self, user_field, make_context, mock_user_api):
        mock_user_api.search_users.return_value = [USERS[-1]]

        with pytest.raises(ValidationError, match="No active users matching search term"):
            await convert_user("carol", user_field, make_context())

    @pytest.mark.asyncio
    async def test_empty_directory(self, user_field, make_context, mock_user_api):
        mock_user_api.search_users.return_value = []

        with pytest.raises(ValidationError, match="No matching users"):
            await convert_user("bob", user_field, make_context())

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", ["   ", 17])
    async def test_invalid_input(self, user_field, make_context, value):
        with pytest.raises(ValidationError):
            await convert_user(value, user_field, make_context())

    @pytest.mark.asyncio
    async def test_required(self, make_field, make_context):
        field = make_field(field_id="reporter", name="Reporter", type="user", required=True)

        with pytest.raises(ValidationError, match='Field "Reporter" is required'):
            await convert_user(None, field, make_context())


class TestAmbiguityPolicy:
    """测试多个匹配结果的处理"""

    @pytest.mark.asyncio
    async def test_first(self, user_field, make_context, mock_user_api):
        result = await convert_user("Alice", user_field, policy_context(make_context, "first"))

        assert result == {"name": "asmith"}

    @pytest.mark.asyncio
    async def test_error_lists_candidates(self, user_field, make_context, mock_user_api):
        with pytest.raises(AmbiguityError) as exc_info:
            await convert_user("Alice", user_field, policy_context(make_context, "error"))

        error = exc_info.value
        assert "Multiple users found:" in error.message
        assert "Alice Smith (asmith, alice.smith@example.com)" in error.message
        assert error.message.endswith(
            "Please use email address for exact matching or specify a different ambiguity policy."
        )
        assert error.details["totalCandidates"] == 2
        assert {c["username"] for c in error.details["candidates"]} == {"asmith", "ajones"}

    @pytest.mark.asyncio
    async def test_score_picks_closest(self, user_field, make_context, mock_user_api):
        """Dan Smithers 排在前面，但 Alice Smith 的次级相似度更高"""
        result = await convert_user("smith", user_field, policy_context(make_context, "score"))

        assert result == {"name": "asmith"}

    @pytest.mark.asyncio
    async def test_score_tie_raises(self, user_field, make_context, mock_user_api):
        with pytest.raises(AmbiguityError, match="Multiple users have identical scores"):
            await convert_user("Alice", user_field, policy_context(make_context, "score"))


class TestUserDirectory:
    """测试用户目录拉取与缓存"""

    @pytest.mark.asyncio
    async def test_fetch_all_users_paginates(self):
        api = AsyncMock()
        first_page = [{"name": f"user{i}"} for i in range(USER_PAGE_SIZE)]
        api.search_users.side_effect = [first_page, [{"name": "last"}]]

        users = await fetch_all_users(api)

        assert len(users) == USER_PAGE_SIZE + 1
        assert api.search_users.await_args_list[1].kwargs == {
            "start_at": USER_PAGE_SIZE,
            "max_results": USER_PAGE_SIZE,
        }

    @pytest.mark.asyncio
    async def test_directory_cached(self, user_field, make_context, cache, mock_user_api):
        context = make_context()

        await convert_user("bob", user_field, context)
        await convert_user("asmith", user_field, context)

        mock_user_api.search_users.assert_awaited_once()
        cached = await cache.get_lookup("global", "user")
        assert len(cached.value) == len(USERS)

    @pytest.mark.asyncio
    async def test_stale_directory_refreshed_in_background(
        self, user_field, make_context, cache, mock_user_api
    ):
        """测试过期目录仍可使用，同时触发后台刷新"""
        stale_users = [{"name": "old", "displayName": "Old Timer", "active": True}]
        await cache.set(
            LookupCache.build_lookup_key("global", "user"), json.dumps(stale_users), ttl_seconds=-1
        )

        result = await convert_user("old", user_field, make_context())
        assert result == {"name": "old"}

        await cache.wait_background()

        mock_user_api.search_users.assert_awaited_once()
        refreshed = await cache.get_lookup("global", "user")
        assert refreshed.is_stale is False
        assert [u["name"] for u in refreshed.value] == [u["name"] for u in USERS]

    @pytest.mark.asyncio
    async def test_cache_read_failure_falls_back_to_api(
        self, user_field, make_context, cache, mock_user_api
    ):
        with patch.object(cache, "get_lookup", AsyncMock(side_effect=RuntimeError("down"))):
            result = await convert_user("bob", user_field, make_context())

        assert result == {"name": "bob"}
        mock_user_api.search_users.assert_awaited_once()
