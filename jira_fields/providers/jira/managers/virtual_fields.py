"""
虚拟字段注册表

虚拟字段是 Jira schema 中不存在、但映射到某个真实父字段子属性的字段名。
例如 "Original Estimate" 映射到 timetracking 字段的 originalEstimate 属性。

注册表在构造时确定全部映射，之后只读。
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from jira_fields.core.matching import normalize_field_name


@dataclass(frozen=True)
class VirtualFieldDefinition:
    name: str  # 显示名: "Original Estimate"
    parent_field_id: str  # 父字段 ID: "timetracking"
    property_path: str  # 父字段内属性: "originalEstimate"
    type: str  # 转换器类型
    description: Optional[str] = None


BUILTIN_VIRTUAL_FIELDS: Tuple[VirtualFieldDefinition, ...] = (
    VirtualFieldDefinition(
        name="Original Estimate",
        parent_field_id="timetracking",
        property_path="originalEstimate",
        type="string",
        description="Original time estimate for the issue",
    ),
    VirtualFieldDefinition(
        name="Remaining Estimate",
        parent_field_id="timetracking",
        property_path="remainingEstimate",
        type="string",
        description="Remaining time estimate for the issue",
    ),
)


class VirtualFieldRegistry:
    """
    不可变虚拟字段注册表

    使用示例:
        registry = VirtualFieldRegistry()
        registry.get("originalestimate").property_path  # "originalEstimate"
        registry.get_by_parent_field("timetracking")     # 两个定义
    """

    def __init__(
        self,
        extra: Optional[Iterable[VirtualFieldDefinition]] = None,
        include_builtins: bool = True,
    ):
        mappings: Dict[str, VirtualFieldDefinition] = {}
        definitions = list(BUILTIN_VIRTUAL_FIELDS) if include_builtins else []
        definitions.extend(extra or [])
        for definition in definitions:
            mappings[normalize_field_name(definition.name)] = definition
        self._mappings: Mapping[str, VirtualFieldDefinition] = MappingProxyType(mappings)

    def get(self, name: str) -> Optional[VirtualFieldDefinition]:
        """按名称查找（自动归一化）"""
        return self._mappings.get(normalize_field_name(name))

    def has(self, name: str) -> bool:
        return normalize_field_name(name) in self._mappings

    def get_by_parent_field(self, parent_field_id: str) -> List[VirtualFieldDefinition]:
        return [d for d in self._mappings.values() if d.parent_field_id == parent_field_id]

    def all(self) -> List[VirtualFieldDefinition]:
        return list(self._mappings.values())

    def __len__(self) -> int:
        return len(self._mappings)
