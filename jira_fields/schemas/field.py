from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ChildOption(BaseModel):
    id: str
    value: str


class AllowedValue(BaseModel):
    """允许值（select / priority / component 等），name 与 value 统一为显示名"""

    id: str
    name: str
    value: Optional[str] = None
    children: Optional[List[ChildOption]] = None

    # Allow extra fields for forward compatibility
    model_config = {"extra": "ignore"}


class RawFieldSchema(BaseModel):
    """Jira 返回的原始 schema 元数据"""

    type: str = "unknown"
    system: Optional[str] = None
    custom: Optional[str] = None
    customId: Optional[int] = None
    items: Optional[str] = None

    model_config = {"extra": "ignore"}


class FieldSchema(BaseModel):
    id: str
    name: str
    type: str
    required: bool = False
    allowedValues: Optional[List[AllowedValue]] = None
    schema_: RawFieldSchema = Field(default_factory=RawFieldSchema, alias="schema")

    model_config = {"populate_by_name": True, "frozen": True}

    @property
    def items(self) -> Optional[str]:
        return self.schema_.items

    def lookup_values(self) -> List[Dict[str, Any]]:
        """允许值转换为 LookupValue 字典列表"""
        return [v.model_dump(exclude_none=True) for v in self.allowedValues or []]


class ProjectSchema(BaseModel):
    projectKey: str
    issueType: str
    fields: Dict[str, FieldSchema] = Field(default_factory=dict)

    model_config = {"frozen": True}


class LookupValue(BaseModel):
    id: str
    name: str

    model_config = {"extra": "allow"}


class HierarchyLevel(BaseModel):
    id: int
    title: str
    issueTypeIds: List[str] = Field(default_factory=list)

    model_config = {"frozen": True}


class AmbiguityCandidate(BaseModel):
    """歧义候选项（仅用于诊断）"""

    id: Optional[str] = None
    name: str
    score: Optional[float] = None


class IssueTypeInfo(BaseModel):
    id: str
    name: str
    subtask: bool = False

    model_config = {"extra": "ignore"}
