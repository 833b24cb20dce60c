"""
MetadataAPI - L1 原子能力层
负责字段元数据与层级结构相关的原子接口封装

对应 Jira REST API:
- 获取项目下工作项类型: GET /rest/api/2/issue/createmeta/:projectKey/issuetypes
- 获取工作项类型字段（分页）: GET /rest/api/2/issue/createmeta/:projectKey/issuetypes/:issueTypeId
- 获取 JPO 层级结构: GET /rest/jpo-api/1.0/hierarchy
"""

import logging
from typing import Any, Dict, List, Optional

from jira_fields.core.jira_client import JiraClient, get_jira_client

logger = logging.getLogger(__name__)

JPO_HIERARCHY_PATH = "/rest/jpo-api/1.0/hierarchy"


class MetadataAPI:
    """
    Jira 元数据 API 封装 (L1 - Base API Layer)

    职责: 一个方法对应一个 REST 端点，不做缓存与业务判断
    依赖: project_key / issue_type_id
    """

    def __init__(self, client: Optional[JiraClient] = None):
        self.client = client or get_jira_client()

    async def get_issue_types(self, project_key: str) -> List[Dict[str, Any]]:
        """
        获取项目下可创建的工作项类型

        API: GET /rest/api/2/issue/createmeta/:projectKey/issuetypes

        Args:
            project_key: 项目 Key

        Returns:
            工作项类型列表，每项包含 {id, name, subtask, ...}

        Raises:
            NotFoundError: 项目不存在
        """
        url = self.client.api(f"/issue/createmeta/{project_key}/issuetypes")

        logger.debug("Getting issue types: project_key=%s", project_key)

        data = await self.client.get(url)
        types = (data or {}).get("values") or []
        logger.info("Retrieved %d issue types", len(types))
        return types

    async def get_fields_page(
        self,
        project_key: str,
        issue_type_id: str,
        start_at: int = 0,
        max_results: int = 1000,
    ) -> Dict[str, Any]:
        """
        获取工作项类型字段定义（单页）

        API: GET /rest/api/2/issue/createmeta/:projectKey/issuetypes/:issueTypeId

        Args:
            project_key: 项目 Key
            issue_type_id: 工作项类型 ID
            start_at: 分页起始位置
            max_results: 每页数量

        Returns:
            原始分页响应 {values, total, startAt, maxResults}
        """
        url = self.client.api(f"/issue/createmeta/{project_key}/issuetypes/{issue_type_id}")

        logger.debug(
            "Getting fields page: project_key=%s, issue_type_id=%s, start_at=%d",
            project_key,
            issue_type_id,
            start_at,
        )

        data = await self.client.get(
            url, params={"startAt": start_at, "maxResults": max_results}
        )
        return data or {}

    async def get_hierarchy(self) -> Any:
        """
        获取 JPO (Advanced Roadmaps) 层级结构

        API: GET /rest/jpo-api/1.0/hierarchy

        Returns:
            原始层级数组（未校验）

        Raises:
            NotFoundError: 未安装层级插件
        """
        logger.debug("Getting JPO hierarchy")
        return await self.client.get(JPO_HIERARCHY_PATH)
