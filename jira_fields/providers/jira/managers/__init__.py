"""
Jira Manager 层 - 业务编排与缓存管理

核心组件:
- SchemaDiscovery: 字段 schema 发现（stale-while-revalidate 缓存）
- JPOHierarchyDiscovery: JPO 层级结构发现（插件缺失时降级为 None）
- ParentFieldDiscovery: 父字段 ID 发现
- ParentLinkResolver: 父工作项 Key / 标题解析
- FieldResolver: 字段名 -> 字段 ID
- VirtualFieldRegistry: 虚拟子字段定义
"""

from .virtual_fields import VirtualFieldDefinition, VirtualFieldRegistry
from .schema_discovery import SchemaDiscovery
from .hierarchy_discovery import JPOHierarchyDiscovery, get_parent_level, is_valid_parent
from .parent_field_discovery import ParentFieldDiscovery
from .parent_link_resolver import ParentLinkResolver
from .field_resolver import FieldResolver

__all__ = [
    "VirtualFieldDefinition",
    "VirtualFieldRegistry",
    "SchemaDiscovery",
    "JPOHierarchyDiscovery",
    "get_parent_level",
    "is_valid_parent",
    "ParentFieldDiscovery",
    "ParentLinkResolver",
    "FieldResolver",
]
