"""
转换上下文

每个转换器接收同一个显式上下文对象，而不是依赖全局状态。
上下文是不可变的，需要调整时用 dataclasses.replace 生成副本。
"""

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Optional

from jira_fields.core.cache import LookupCache
from jira_fields.core.config import Settings, settings as default_settings
from jira_fields.core.jira_client import JiraClient

if TYPE_CHECKING:
    from jira_fields.providers.jira.converters.registry import ConverterRegistry


@dataclass(frozen=True)
class ConversionContext:
    """
    转换器能力集合

    Attributes:
        project_key: 项目 Key
        issue_type: 工作项类型名称（用于按类型隔离的候选缓存）
        base_url: Jira 实例地址（缓存 key 的一部分）
        hierarchy_level: 工作项类型过滤的层级 ID（可选）
        registry: 转换器注册表（数组转换器需要）
        cache: 候选列表缓存
        cache_client: 通用键值缓存（工作项类型、项目解析结果）
        client: Jira HTTP 客户端
        config: 配置
    """

    project_key: str
    issue_type: Optional[str] = None
    base_url: Optional[str] = None
    hierarchy_level: Optional[int] = None
    registry: Optional["ConverterRegistry"] = None
    cache: Optional[LookupCache] = None
    cache_client: Optional[LookupCache] = None
    client: Optional[JiraClient] = None
    config: Settings = field(default_factory=lambda: default_settings)

    def with_registry(self, registry: "ConverterRegistry") -> "ConversionContext":
        return replace(self, registry=registry)
