"""
ParentLinkResolver - 父工作项解析

输入可以是工作项 Key（PROJ-123）或父工作项的标题:
- Key: 拉取工作项并按 JPO 层级校验父子关系
- 标题: 在父层级允许的工作项类型中做 JQL 文本搜索，结果必须唯一
"""

import logging
import re
from typing import Optional

from jira_fields.core.cache import LookupCache
from jira_fields.core.errors import AmbiguityError, HierarchyError, NotFoundError
from jira_fields.providers.jira.api import IssueAPI
from jira_fields.providers.jira.managers.hierarchy_discovery import (
    JPOHierarchyDiscovery,
    get_parent_level,
    is_valid_parent,
)

logger = logging.getLogger(__name__)

ISSUE_KEY_PATTERN = re.compile(r"^[A-Z]+-[0-9]+$", re.IGNORECASE)


def is_issue_key(value: str) -> bool:
    return bool(ISSUE_KEY_PATTERN.match(value))


class ParentLinkResolver:
    """父工作项解析器"""

    PARENT_LINK_TTL = 300  # 5分钟
    SEARCH_LIMIT = 10

    def __init__(
        self,
        hierarchy_discovery: JPOHierarchyDiscovery,
        issue_api: Optional[IssueAPI] = None,
        cache: Optional[LookupCache] = None,
    ):
        self.hierarchy_discovery = hierarchy_discovery
        self.issue_api = issue_api or IssueAPI()
        self.cache = cache or hierarchy_discovery.cache

    async def resolve(self, value: str, child_issue_type_id: str, project_key: str) -> str:
        """
        解析父工作项 Key

        Args:
            value: 工作项 Key 或标题
            child_issue_type_id: 子工作项类型 ID
            project_key: 项目 Key

        Returns:
            父工作项 Key（大写）

        Raises:
            HierarchyError: 层级不可用或父子关系非法
            NotFoundError: 未找到匹配的父工作项
            AmbiguityError: 标题匹配到多个工作项
        """
        value = value.strip()
        if is_issue_key(value):
            return await self._resolve_by_key(value, child_issue_type_id)
        return await self._resolve_by_summary(value, child_issue_type_id, project_key)

    async def _resolve_by_key(self, key: str, child_issue_type_id: str) -> str:
        issue = await self.issue_api.get_issue(key, fields=["issuetype", "summary"])
        issue_type = (issue.get("fields") or {}).get("issuetype") or {}
        parent_type_id = str(issue_type.get("id"))
        parent_type_name = issue_type.get("name")

        hierarchy = await self.hierarchy_discovery.get_hierarchy()
        if not hierarchy:
            raise HierarchyError(
                "Cannot validate parent hierarchy: JPO hierarchy not available",
                {"childIssueTypeId": child_issue_type_id, "parentIssueTypeId": parent_type_id},
            )

        if not is_valid_parent(child_issue_type_id, parent_type_id, hierarchy):
            raise HierarchyError(
                f"Issue {key} ({parent_type_name}) is not a valid parent "
                f"for issue type {child_issue_type_id}",
                {
                    "parentKey": key,
                    "parentIssueTypeId": parent_type_id,
                    "childIssueTypeId": child_issue_type_id,
                },
            )

        return key.upper()

    async def _resolve_by_summary(
        self, summary: str, child_issue_type_id: str, project_key: str
    ) -> str:
        cache_key = f"parent-link:{project_key}:{summary.lower()}"
        try:
            cached = (await self.cache.get(cache_key)).value
            if cached:
                return cached
        except Exception as e:
            logger.warning("Parent link cache read failed: %s", e)

        hierarchy = await self.hierarchy_discovery.get_hierarchy()
        if not hierarchy:
            raise HierarchyError(
                "Cannot search for parent: JPO hierarchy not available",
                {"childIssueTypeId": child_issue_type_id, "summaryText": summary},
            )

        parent_level = get_parent_level(child_issue_type_id, hierarchy)
        if parent_level is None:
            raise HierarchyError(
                f"Issue type {child_issue_type_id} has no valid parent level in hierarchy",
                {"childIssueTypeId": child_issue_type_id},
            )
        if not parent_level.issueTypeIds:
            raise HierarchyError(
                f"No valid parent issue types available for issue type {child_issue_type_id}",
                {"childIssueTypeId": child_issue_type_id, "parentLevel": parent_level.id},
            )

        escaped = summary.replace("\\", "\\\\").replace('"', '\\"')
        jql = (
            f'project = {project_key} AND summary ~ "{escaped}" '
            f"AND issuetype IN ({','.join(parent_level.issueTypeIds)})"
        )
        issues = await self.issue_api.search(
            jql, fields=["summary", "issuetype", "key"], max_results=self.SEARCH_LIMIT
        )

        if not issues:
            raise NotFoundError(
                f"No parent found matching '{summary}' in project {project_key}",
                {
                    "summaryText": summary,
                    "projectKey": project_key,
                    "validParentTypeIds": parent_level.issueTypeIds,
                },
            )

        if len(issues) > 1:
            described = [
                f'{i["key"]} ({i["fields"]["issuetype"]["name"]}: "{i["fields"]["summary"]}")'
                for i in issues
            ]
            raise AmbiguityError(
                f"Multiple parents match '{summary}': {', '.join(described)}. "
                "Please use exact key or more specific summary.",
                {
                    "field": "parent",
                    "input": summary,
                    "candidates": [
                        {
                            "id": i["key"],
                            "name": i["fields"]["summary"],
                            "issueType": i["fields"]["issuetype"]["name"],
                        }
                        for i in issues
                    ],
                },
            )

        resolved = issues[0]["key"]
        try:
            await self.cache.set(cache_key, resolved, self.PARENT_LINK_TTL)
        except Exception as e:
            logger.warning("Parent link cache write failed: %s", e)
        return resolved
