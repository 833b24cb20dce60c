"""
用户转换器

用户目录（全部活跃用户）缓存在 lookup:global:user，过期后后台刷新。

匹配顺序:
- 邮箱输入: 邮箱精确 -> 用户名精确
- 其他输入: 用户名精确 -> 用户名前缀 -> 显示名包含
- 以上均无结果时做模糊匹配（邮箱 / 显示名 / 用户名）

多个结果时按 USER_AMBIGUITY_POLICY 处理:
- first: 取第一个
- error: 抛出 AmbiguityError，列出前 5 个候选
- score: 按匹配置信度和次级相似度排序，完全并列时抛出 AmbiguityError

输出 {accountId}（Cloud）或 {name}（Server）
"""

import logging
import re
import time
from typing import Any, Dict, List, NamedTuple

from jira_fields.core.context import ConversionContext
from jira_fields.core.errors import AmbiguityError, ValidationError
from jira_fields.core.matching import extract_field_value, fuzzy_score, fuzzy_search
from jira_fields.providers.jira.api import UserAPI
from jira_fields.providers.jira.converters.base import check_required, type_name
from jira_fields.schemas.field import FieldSchema

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
USER_PAGE_SIZE = 1000
USER_REFRESH_KEY = "user:global"
MAX_LISTED_CANDIDATES = 5

MATCH_CONFIDENCE = {
    "email-exact": 1.0,
    "username-exact": 0.95,
    "username-prefix": 0.7,
    "fuzzy-match": 0.5,
    "display-partial": 0.4,
}

_SIMILARITY_KEYS = ("name", "displayName", "emailAddress")
_FUZZY_KEYS = ("emailAddress", "displayName", "name")


class UserMatch(NamedTuple):
    user: Dict[str, Any]
    reason: str
    confidence: float


async def fetch_all_users(user_api: UserAPI) -> List[Dict[str, Any]]:
    """分页拉取用户目录，直到返回不足一页"""
    users: List[Dict[str, Any]] = []
    start_at = 0
    while True:
        batch = await user_api.search_users(start_at=start_at, max_results=USER_PAGE_SIZE)
        if not batch:
            break
        users.extend(batch)
        start_at += len(batch)
        if len(batch) < USER_PAGE_SIZE:
            break
    return users


async def _load_users(context: ConversionContext) -> List[Dict[str, Any]]:
    user_api = UserAPI(context.client)
    cache = context.cache
    users = None

    if cache is not None:
        try:
            result = await cache.get_lookup("global", "user")
        except Exception as e:
            logger.warning("User cache read failed: %s", e)
        else:
            if result.value:
                users = result.value
                if result.is_stale:
                    logger.debug("User cache stale, refreshing in background")
                    cache.refresh_in_background(
                        USER_REFRESH_KEY, lambda: _refresh_users(context, user_api)
                    )
                else:
                    logger.debug("User cache hit: %d users", len(users))

    if not users:
        started = time.monotonic()
        users = await fetch_all_users(user_api)
        logger.info(
            "Fetched %d users from API in %.0fms", len(users), (time.monotonic() - started) * 1000
        )
        if cache is not None and users:
            try:
                await cache.set_lookup("global", "user", users)
            except Exception as e:
                logger.warning("User cache write failed: %s", e)

    return users


async def _refresh_users(context: ConversionContext, user_api: UserAPI) -> None:
    users = await fetch_all_users(user_api)
    if users and context.cache is not None:
        await context.cache.set_lookup("global", "user", users)
        logger.info("Refreshed user cache with %d users", len(users))


def _lower(user: Dict[str, Any], key: str) -> str:
    value = user.get(key)
    return value.lower() if isinstance(value, str) else ""


def find_user_matches(
    users: List[Dict[str, Any]], search: str, threshold: float
) -> List[UserMatch]:
    matches: List[UserMatch] = []
    seen = set()

    def add(user: Dict[str, Any], reason: str) -> None:
        if id(user) in seen:
            return
        seen.add(id(user))
        matches.append(UserMatch(user, reason, MATCH_CONFIDENCE[reason]))

    term = search.lower()
    if EMAIL_PATTERN.match(search):
        for user in users:
            if _lower(user, "emailAddress") == term:
                add(user, "email-exact")
            elif _lower(user, "name") == term:
                add(user, "username-exact")
    else:
        for user in users:
            if _lower(user, "name") == term:
                add(user, "username-exact")
        if not matches:
            for user in users:
                name = _lower(user, "name")
                if name and name.startswith(term):
                    add(user, "username-prefix")
        if not matches:
            for user in users:
                if term in _lower(user, "displayName"):
                    add(user, "display-partial")

    if not matches:
        best: Dict[int, tuple] = {}
        for key in _FUZZY_KEYS:
            for user, score in fuzzy_search(search, users, key=key, threshold=threshold):
                current = best.get(id(user))
                if current is None or score < current[1]:
                    best[id(user)] = (user, score)
        for user, _ in sorted(best.values(), key=lambda pair: pair[1]):
            add(user, "fuzzy-match")

    return matches


def secondary_similarity(user: Dict[str, Any], search: str) -> float:
    """三个字段的模糊分数之和，越小越相似"""
    total = 0.0
    for key in _SIMILARITY_KEYS:
        value = user.get(key)
        total += fuzzy_score(search, value) if isinstance(value, str) and value else 1.0
    return round(total, 6)


def _describe(user: Dict[str, Any]) -> str:
    username = user.get("name") or user.get("accountId") or "unknown"
    return f"{user.get('displayName')} ({username}, {user.get('emailAddress')})"


def _ranked(matches: List[UserMatch], search: str) -> List[tuple]:
    scored = [(m, secondary_similarity(m.user, search)) for m in matches]
    scored.sort(
        key=lambda pair: (
            -pair[0].confidence,
            pair[1],
            (pair[0].user.get("displayName") or "").lower(),
            (pair[0].user.get("emailAddress") or "").lower(),
            (pair[0].user.get("name") or "").lower(),
        )
    )
    return scored


def _candidate_details(ranked: List[tuple]) -> List[Dict[str, Any]]:
    return [
        {
            "index": i,
            "displayName": m.user.get("displayName"),
            "username": m.user.get("name") or m.user.get("accountId") or "unknown",
            "email": m.user.get("emailAddress"),
            "confidence": round(m.confidence, 3),
            "combinedScore": round(score, 3),
            "matchType": m.reason,
        }
        for i, (m, score) in enumerate(ranked, start=1)
    ]


def select_user(
    matches: List[UserMatch], search: str, field: FieldSchema, policy: str
) -> UserMatch:
    if len(matches) == 1 or policy == "first":
        return matches[0]

    ranked = _ranked(matches, search)

    if policy == "score":
        first, second = ranked[0], ranked[1]
        if first[0].confidence == second[0].confidence and first[1] == second[1]:
            lines = "\n".join(
                f"  {i}. {_describe(m.user)}" for i, (m, _) in enumerate(ranked, start=1)
            )
            raise AmbiguityError(
                f'Ambiguous value "{search}" for field "{field.name}". '
                f"Multiple users have identical scores (similarity: {1 - first[1]:.3f}):\n"
                f"{lines}\n\nPlease use email address for exact matching.",
                {"field": field.id, "input": search, "candidates": _candidate_details(ranked)},
            )
        return first[0]

    top = ranked[:MAX_LISTED_CANDIDATES]
    lines = "\n".join(f"  {i}. {_describe(m.user)}" for i, (m, _) in enumerate(top, start=1))
    more = (
        f"\n  ... and {len(ranked) - MAX_LISTED_CANDIDATES} more"
        if len(ranked) > MAX_LISTED_CANDIDATES
        else ""
    )
    raise AmbiguityError(
        f'Ambiguous value "{search}" for field "{field.name}". Multiple users found:\n'
        f"{lines}{more}\n\n"
        "Please use email address for exact matching or specify a different ambiguity policy.",
        {
            "field": field.id,
            "input": search,
            "candidates": _candidate_details(top),
            "totalCandidates": len(ranked),
        },
    )


async def convert_user(value: Any, field: FieldSchema, context: ConversionContext) -> Any:
    if check_required(value, field):
        return None

    value = extract_field_value(value)
    if isinstance(value, dict) and "accountId" in value:
        return value

    if not isinstance(value, str):
        raise ValidationError(
            f'Expected string or object for field "{field.name}", got {type_name(value)}',
            {"field": field.id, "value": value, "type": type_name(value)},
        )

    search = value.strip()
    if not search:
        raise ValidationError(
            f'Empty string is not a valid user for field "{field.name}"',
            {"field": field.id, "value": value},
        )

    users = await _load_users(context)
    if not users:
        raise ValidationError(
            f'User "{search}" not found for field "{field.name}". No matching users.',
            {"field": field.id, "value": value, "searchTerm": search, "reason": "not_found"},
        )

    active = [u for u in users if u.get("active") is not False]
    if not active:
        raise ValidationError(
            f'User "{search}" not found for field "{field.name}". '
            "No active users matching search term.",
            {"field": field.id, "value": value, "searchTerm": search, "reason": "not_found"},
        )

    matches = find_user_matches(active, search, context.config.FUZZY_THRESHOLD)
    if not matches:
        is_email = bool(EMAIL_PATTERN.match(search))
        hint = (
            "No user with that email address."
            if is_email
            else "No user with that username or display name."
        )
        raise ValidationError(
            f'User "{search}" not found for field "{field.name}". {hint}',
            {
                "field": field.id,
                "value": value,
                "searchTerm": search,
                "isEmail": is_email,
                "reason": "not_found",
            },
        )

    selected = select_user(matches, search, field, context.config.USER_AMBIGUITY_POLICY)
    return _format_user(selected.user, field)


def _format_user(user: Dict[str, Any], field: FieldSchema) -> Dict[str, str]:
    if user.get("accountId"):
        return {"accountId": user["accountId"]}
    if user.get("name"):
        return {"name": user["name"]}
    raise ValidationError(
        f'User found but missing both name and accountId for field "{field.name}"',
        {"field": field.id, "user": user},
    )
