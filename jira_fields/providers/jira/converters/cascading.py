"""
级联选择转换器 (option-with-child)

输入格式:
- {"parent": "MP", "child": "mp1"}
- 分隔字符串，按优先级尝试: "->", ",", "/", ">", "|"
- 仅子选项: 先尝试作为父选项，再在全部父选项的子选项中查找
- 已解析对象 {"id": "10", "child": {"id": "11"}}（id 存在时原样返回）

输出 {"id": 父选项ID} 或 {"id": 父选项ID, "child": {"id": 子选项ID}}
"""

import re
from typing import Any, Dict, List, NamedTuple, Optional

from jira_fields.core.context import ConversionContext
from jira_fields.core.errors import AmbiguityError, NotFoundError, ValidationError
from jira_fields.core.matching import extract_field_value, resolve_unique_name
from jira_fields.providers.jira.converters.base import check_required, type_name
from jira_fields.schemas.field import AllowedValue, FieldSchema

DELIMITERS = ("->", ",", "/", ">", "|")
_WHITESPACE = re.compile(r"\s+")
_ALNUM = re.compile(r"[a-zA-Z0-9]")


class ParsedInput(NamedTuple):
    parent: Optional[str]
    child: Optional[str]


def _clean(text: str) -> str:
    return _WHITESPACE.sub(" ", text.strip())


def parse_input(value: Any) -> ParsedInput:
    if isinstance(value, dict):
        if "parent" in value or "child" in value:
            parent = value.get("parent")
            child = value.get("child")
            return ParsedInput(
                parent.strip() if isinstance(parent, str) and parent else None,
                child.strip() if isinstance(child, str) and child else None,
            )
        extracted = extract_field_value(value)
        if not isinstance(extracted, str):
            raise ValidationError(
                "Invalid object format for cascading select field: "
                'expected { parent, child } or { value/name: "string" }',
                {"value": value, "type": type_name(value)},
            )
        value = extracted

    if isinstance(value, str):
        trimmed = value.strip()
        for delimiter in DELIMITERS:
            match = re.match(rf"^(.+?)\s*{re.escape(delimiter)}\s*(.+)$", trimmed)
            if match:
                return ParsedInput(_clean(match.group(1)), _clean(match.group(2)))
        return ParsedInput(None, trimmed)

    raise ValidationError(
        "Invalid input type for cascading select field: expected string or object, "
        f"got {type_name(value)}",
        {"value": value, "type": type_name(value)},
    )


def _separator_groups(text: str) -> List[tuple]:
    """连续的非字母数字字符组（至少含一个非空白字符），返回 (start, end)"""
    groups = []
    i = 0
    while i < len(text):
        if _ALNUM.match(text[i]):
            i += 1
            continue
        start = i
        has_non_space = False
        while i < len(text) and not _ALNUM.match(text[i]):
            if not text[i].isspace():
                has_non_space = True
            i += 1
        if has_non_space:
            groups.append((start, i))
    return groups


def try_fallback_split(value: str, field_name: str) -> Optional[ParsedInput]:
    """
    在唯一的分隔符处拆分父子选项（如 "MP - mp1"）

    Raises:
        AmbiguityError: 存在多个可能的拆分点
    """
    normalized = _clean(value)
    groups = _separator_groups(normalized)
    if not groups:
        return None

    if len(groups) == 1:
        start, end = groups[0]
        parent = normalized[:start].strip()
        child = normalized[end:].strip()
        return ParsedInput(parent, child) if parent and child else None

    parts = []
    last_end = 0
    for start, end in groups:
        part = normalized[last_end:start].strip()
        if part:
            parts.append(part)
        last_end = end
    tail = normalized[last_end:].strip()
    if tail:
        parts.append(tail)

    raise AmbiguityError(
        f"Ambiguous input '{value}' for field \"{field_name}\" has multiple potential split points. "
        "Please use a supported delimiter: -> , / > |",
        {
            "field": field_name,
            "input": value,
            "candidates": [{"id": "", "name": p} for p in parts],
        },
    )


class CascadingResolver:
    """在 allowedValues 上解析父子选项"""

    def __init__(self, options: List[AllowedValue], field: FieldSchema, policy: str, threshold: float):
        self.options = options
        self.field = field
        self.policy = policy
        self.threshold = threshold

    def _option(self, option_id: str) -> Optional[AllowedValue]:
        return next((o for o in self.options if o.id == option_id), None)

    def resolve_parent(self, name: str) -> AllowedValue:
        matched = resolve_unique_name(
            name,
            [{"id": o.id, "name": o.value or o.name} for o in self.options],
            field=self.field.name,
            field_name=f"{self.field.name} (parent option)",
            policy=self.policy,
            threshold=self.threshold,
        )
        return self._option(matched["id"])

    def resolve_child(self, name: str, parent: AllowedValue) -> Dict[str, Any]:
        parent_name = parent.value or parent.name
        return resolve_unique_name(
            name,
            [{"id": c.id, "name": c.value} for c in parent.children or []],
            field=self.field.name,
            field_name=f"{self.field.name} (child option under parent '{parent_name}')",
            policy=self.policy,
            threshold=self.threshold,
        )

    def resolve_child_across_parents(self, child_name: str) -> Dict[str, Any]:
        matches = []
        for parent in self.options:
            if not parent.children:
                continue
            try:
                matches.append((parent, self.resolve_child(child_name, parent)))
            except ValidationError:
                continue

        if not matches:
            return self._resolve_by_fallback_split(child_name)

        if len(matches) > 1:
            parent_names = [p.value or p.name for p, _ in matches]
            raise AmbiguityError(
                f"Child '{child_name}' exists under multiple parents for field "
                f'"{self.field.name}": {", ".join(parent_names)}. Please specify parent.',
                {
                    "field": self.field.name,
                    "input": child_name,
                    "parents": parent_names,
                    "candidates": [{"id": p.id, "name": p.value or p.name} for p, _ in matches],
                },
            )

        parent, child = matches[0]
        return {"id": parent.id, "child": {"id": child["id"]}}

    def _resolve_by_fallback_split(self, child_name: str) -> Dict[str, Any]:
        not_found = NotFoundError(
            f"Child option '{child_name}' not found in any parent for field \"{self.field.name}\"",
            {"field": self.field.name, "value": child_name},
        )

        parsed = try_fallback_split(child_name, self.field.name)
        if parsed is None:
            raise not_found
        try:
            parent = self.resolve_parent(parsed.parent)
            if not parent.children:
                raise not_found
            child = self.resolve_child(parsed.child, parent)
        except ValidationError:
            raise not_found from None
        return {"id": parent.id, "child": {"id": child["id"]}}


def _already_resolved(value: Dict[str, Any], options: List[AllowedValue]) -> bool:
    """{id|value, child?: {id|value}} 且引用的选项全部存在"""
    if "id" not in value and "value" not in value:
        return False
    child = value.get("child")
    if child and not (isinstance(child, dict) and ("id" in child or "value" in child)):
        return False

    parent_ref = str(value.get("id") or value.get("value"))
    parent = next((o for o in options if parent_ref in (o.id, o.value)), None)
    if parent is None:
        return False
    if not child:
        return True

    child_ref = child.get("id") or child.get("value")
    if not child_ref:
        return True
    return any(str(child_ref) in (c.id, c.value) for c in parent.children or [])


async def convert_option_with_child(
    value: Any, field: FieldSchema, context: ConversionContext
) -> Any:
    if check_required(value, field):
        return None

    options = field.allowedValues or []
    if not options:
        raise ValidationError(
            f'Field "{field.name}" has no allowed values (cascading select options not available)',
            {"field": field.id, "fieldName": field.name},
        )

    if isinstance(value, dict) and _already_resolved(value, options):
        return value

    parsed = parse_input(value)
    resolver = CascadingResolver(
        options,
        field,
        policy=context.config.LOOKUP_AMBIGUITY_POLICY,
        threshold=context.config.FUZZY_THRESHOLD,
    )

    if parsed.parent:
        parent = resolver.resolve_parent(parsed.parent)
        if not parsed.child:
            return {"id": parent.id}
        if not parent.children:
            raise ValidationError(
                f"Parent '{parent.value or parent.name}' has no children for field \"{field.name}\"",
                {"field": field.id, "parent": parent.value or parent.name},
            )
        child = resolver.resolve_child(parsed.child, parent)
        return {"id": parent.id, "child": {"id": child["id"]}}

    if parsed.child:
        try:
            return {"id": resolver.resolve_parent(parsed.child).id}
        except (ValidationError, AmbiguityError):
            pass
        return resolver.resolve_child_across_parents(parsed.child)

    raise ValidationError(
        f'Must specify parent, child, or both for cascading select field "{field.name}"',
        {"field": field.id, "value": value},
    )
