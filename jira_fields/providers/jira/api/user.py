"""
UserAPI - 用户相关原子接口

对应 Jira REST API:
- 搜索用户: GET /rest/api/2/user/search
"""

import logging
from typing import Any, Dict, List, Optional

from jira_fields.core.jira_client import JiraClient, get_jira_client

logger = logging.getLogger(__name__)


class UserAPI:
    """Jira 用户 API 封装"""

    def __init__(self, client: Optional[JiraClient] = None):
        self.client = client or get_jira_client()

    async def search_users(
        self, start_at: int = 0, max_results: int = 1000, username: str = "."
    ) -> List[Dict[str, Any]]:
        """
        分页搜索用户

        Jira Server 使用 username="." 匹配全部用户

        Args:
            start_at: 分页起始位置
            max_results: 每页数量
            username: 搜索关键字

        Returns:
            用户列表，每项包含 {name, key, accountId?, emailAddress, displayName, active}
        """
        url = self.client.api("/user/search")

        logger.debug("Searching users: start_at=%d, max_results=%d", start_at, max_results)

        data = await self.client.get(
            url,
            params={"username": username, "startAt": start_at, "maxResults": max_results},
        )
        users = data if isinstance(data, list) else []
        logger.info("Retrieved %d users", len(users))
        return users
