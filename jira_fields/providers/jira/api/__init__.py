"""
Jira API 层 - 原子能力封装

层级依赖拓扑:
- L1: MetadataAPI (工作项类型、字段元数据、JPO 层级)
- L2: IssueAPI (工作项与项目查询)
- L-User: UserAPI (用户相关，独立层)

使用示例:
    from jira_fields.providers.jira.api import MetadataAPI

    metadata_api = MetadataAPI()
    types = await metadata_api.get_issue_types("PROJ")
"""

from .metadata import MetadataAPI
from .issue import IssueAPI
from .user import UserAPI

__all__ = [
    "MetadataAPI",
    "IssueAPI",
    "UserAPI",
]
