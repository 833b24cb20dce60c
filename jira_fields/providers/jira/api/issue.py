"""
IssueAPI - L2 原子能力层
负责工作项与项目查询相关的原子接口封装

对应 Jira REST API:
- 获取工作项: GET /rest/api/2/issue/:issueKey
- JQL 搜索: POST /rest/api/2/search
- 获取项目: GET /rest/api/2/project/:projectKey
- 获取全部项目: GET /rest/api/2/project
"""

import logging
from typing import Any, Dict, List, Optional

from jira_fields.core.jira_client import JiraClient, get_jira_client

logger = logging.getLogger(__name__)


class IssueAPI:
    """Jira 工作项 / 项目 API 封装 (L2 - Base API Layer)"""

    def __init__(self, client: Optional[JiraClient] = None):
        self.client = client or get_jira_client()

    async def get_issue(
        self, issue_key: str, fields: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        """
        获取单个工作项

        Args:
            issue_key: 工作项 Key（如 PROJ-123）
            fields: 需要返回的字段列表（可选）

        Raises:
            NotFoundError: 工作项不存在
        """
        url = self.client.api(f"/issue/{issue_key}")
        params = {"fields": ",".join(fields)} if fields else None

        logger.debug("Getting issue: issue_key=%s", issue_key)
        data = await self.client.get(url, params=params)
        return data or {}

    async def search(
        self,
        jql: str,
        fields: Optional[List[str]] = None,
        max_results: int = 50,
    ) -> List[Dict[str, Any]]:
        """
        JQL 搜索工作项

        Args:
            jql: JQL 查询语句
            fields: 返回字段列表
            max_results: 最大返回数量

        Returns:
            工作项列表
        """
        url = self.client.api("/search")
        payload: Dict[str, Any] = {"jql": jql, "maxResults": max_results}
        if fields:
            payload["fields"] = fields

        logger.debug("Searching issues: jql=%s", jql)
        data = await self.client.post(url, json=payload)
        issues = (data or {}).get("issues") or []
        logger.info("Search returned %d issues", len(issues))
        return issues

    async def get_project(self, project_key: str) -> Dict[str, Any]:
        """
        获取项目详情

        Raises:
            NotFoundError: 项目不存在
        """
        url = self.client.api(f"/project/{project_key}")
        logger.debug("Getting project: project_key=%s", project_key)
        data = await self.client.get(url)
        return data or {}

    async def list_projects(self) -> List[Dict[str, Any]]:
        """获取当前用户可见的全部项目"""
        url = self.client.api("/project")
        logger.debug("Listing projects")
        data = await self.client.get(url)
        projects = data if isinstance(data, list) else []
        logger.info("Retrieved %d projects", len(projects))
        return projects
