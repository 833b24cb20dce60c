"""
名称匹配工具

- normalize_field_name: 字段名归一化（"Issue Type" / "issue_type" -> "issuetype"）
- extract_field_value: 解包单键包装对象（{"name": "High"} -> "High"）
- find_system_field: 在原始行数据中查找系统字段（project / issuetype）
- fuzzy_search: 与位置无关的模糊匹配，返回 (候选项, 分数)，0 为完全相同
- resolve_unique_name: 精确匹配优先、模糊匹配兜底的唯一名称解析
"""

import difflib
import logging
import re
import unicodedata
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

from jira_fields.core.errors import AmbiguityError, ValidationError
from jira_fields.schemas.field import AmbiguityCandidate

logger = logging.getLogger(__name__)

IDENTIFIER_KEYS = ("id", "accountId", "key")

FIELD_ALIASES = {
    "type": "issuetype",
}

_SEPARATORS = re.compile(r"[\s_\-/]")
_INVISIBLE = re.compile(r"[\u200b-\u200d\ufeff\u00a0]")

FUZZY_THRESHOLD = 0.3
FUZZY_MIN_MATCH_CHARS = 2
AMBIGUITY_WINDOW = 0.1


def normalize_field_name(name: str) -> str:
    return _SEPARATORS.sub("", name.lower())


def extract_field_value(value: Any) -> Any:
    """
    解包 Jira 风格的单键包装对象

    规则（按顺序）:
    1. 非 dict 原样返回（列表同样原样返回）
    2. 含标识键 (id / accountId / key) 的对象原样返回
    3. 多键对象，或唯一值本身是对象/列表，原样返回
    4. 单键且值为基本类型时解包为该值
    """
    if not isinstance(value, dict):
        return value
    if any(k in value for k in IDENTIFIER_KEYS):
        return value
    if len(value) != 1:
        return value
    inner = next(iter(value.values()))
    if isinstance(inner, (dict, list, tuple)):
        return value
    return inner


class SystemFieldMatch(NamedTuple):
    key: str
    value: Any
    extracted: Optional[str]


def _extract_to_string(value: Any) -> Optional[str]:
    if value is None:
        return None
    extracted = extract_field_value(value)
    if isinstance(extracted, str):
        return extracted.strip() or None
    if isinstance(extracted, dict):
        for k in ("key", "name", "id"):
            if isinstance(extracted.get(k), str):
                return extracted[k].strip() or None
        return None
    if isinstance(extracted, bool):
        return str(extracted).lower()
    if isinstance(extracted, (int, float)):
        return str(extracted)
    return None


def find_system_field(
    row: Optional[Dict[str, Any]], system_field_id: str
) -> Optional[SystemFieldMatch]:
    """
    在原始输入中查找系统字段

    Args:
        row: 用户输入的字段字典
        system_field_id: 系统字段 ID（如 "project", "issuetype"）

    Returns:
        SystemFieldMatch(原始 key, 原始值, 提取出的字符串)，未找到返回 None
    """
    if not isinstance(row, dict):
        return None

    target = normalize_field_name(system_field_id)
    for key, value in row.items():
        normalized = normalize_field_name(key)
        if normalized == target or FIELD_ALIASES.get(normalized) == target:
            return SystemFieldMatch(key, value, _extract_to_string(value))
    return None


def sanitize_input(value: str) -> str:
    """NFKC 归一化并移除不可见字符（零宽空格、NBSP、BOM）"""
    return _INVISIBLE.sub("", unicodedata.normalize("NFKC", value)).strip()


def _similarity(query: str, text: str) -> Tuple[float, int]:
    """
    部分相似度: query 与 text 中等长窗口的最佳 SequenceMatcher 比值

    Returns:
        (相似度 0..1, 最佳窗口的匹配字符数)
    """
    if not query or not text:
        return 0.0, 0

    if len(query) >= len(text):
        windows = [text]
    else:
        width = len(query)
        windows = [text[i : i + width] for i in range(len(text) - width + 1)]
        windows.append(text)

    best_ratio, best_matched = 0.0, 0
    for window in windows:
        matcher = difflib.SequenceMatcher(None, query, window, autojunk=False)
        ratio = matcher.ratio()
        if ratio > best_ratio:
            best_ratio = ratio
            best_matched = sum(block.size for block in matcher.get_matching_blocks())
    return best_ratio, best_matched


def fuzzy_score(query: str, text: str) -> float:
    """0 = 完全相同, 1 = 无匹配"""
    ratio, _ = _similarity(query.lower(), text.lower())
    return round(1.0 - ratio, 6)


def fuzzy_search(
    query: str,
    candidates: Sequence[Dict[str, Any]],
    key: str = "name",
    threshold: float = FUZZY_THRESHOLD,
) -> List[Tuple[Dict[str, Any], float]]:
    """
    模糊搜索候选项

    Returns:
        [(候选项, 分数)]，分数升序，仅包含 分数 <= threshold 且匹配字符数 >= 2 的结果
    """
    q = query.lower()
    hits = []
    for index, candidate in enumerate(candidates):
        text = candidate.get(key)
        if not isinstance(text, str) or not text:
            continue
        ratio, matched = _similarity(q, text.lower())
        score = round(1.0 - ratio, 6)
        if matched >= FUZZY_MIN_MATCH_CHARS and score <= threshold:
            hits.append((index, candidate, score))
    hits.sort(key=lambda h: (h[2], h[0]))
    return [(candidate, score) for _, candidate, score in hits]


def _ambiguity_candidates(
    matches: Iterable[Tuple[Dict[str, Any], Optional[float]]]
) -> List[Dict[str, Any]]:
    """歧义错误 details 中的候选项，id 统一为字符串，没有分数时省略 score"""
    return [
        AmbiguityCandidate(
            id=None if c.get("id") is None else str(c["id"]), name=str(c["name"]), score=s
        ).model_dump(exclude_none=True)
        for c, s in matches
    ]


def resolve_unique_name(
    value: Any,
    candidates: Sequence[Dict[str, Any]],
    field: str,
    field_name: Optional[str] = None,
    policy: str = "error",
    threshold: float = FUZZY_THRESHOLD,
) -> Dict[str, Any]:
    """
    将用户输入解析为唯一的候选项

    算法:
    1. 输入必须是非空字符串（NFKC 归一化并去除不可见字符后）
    2. 候选列表不能为空，忽略 name 为空的候选项
    3. 大小写不敏感精确匹配: 唯一命中直接返回，多个命中为歧义
    4. 模糊匹配: 无命中 -> 未找到；唯一命中 -> 返回；
       多个命中且最优分数差 < 0.1 -> 歧义，否则返回最优结果

    Args:
        value: 用户输入
        candidates: 候选项列表 [{id, name, ...}]
        field: 字段 ID（用于错误上下文）
        field_name: 字段显示名（用于错误消息）
        policy: 歧义策略 "error" | "first" | "score"
        threshold: 模糊匹配阈值

    Returns:
        命中的候选项

    Raises:
        ValidationError: 输入非法或未找到（details["reason"] == "not_found"）
        AmbiguityError: 多个候选项同等匹配
    """
    label = field_name or field

    if value is None:
        raise ValidationError(
            f'Value is required for field "{label}"', {"field": field, "value": value}
        )
    if not isinstance(value, str):
        raise ValidationError(
            f'Expected string for field "{label}", got {type(value).__name__}',
            {"field": field, "value": value, "type": type(value).__name__},
        )

    search = sanitize_input(value)
    if not search:
        raise ValidationError(
            f'Empty string is not valid for field "{label}"',
            {"field": field, "value": value},
        )

    if not candidates:
        raise ValidationError(
            f'Value "{search}" not found for field "{label}" (no allowed values)',
            {"field": field, "value": value, "reason": "not_found", "availableValues": []},
        )

    valid = [c for c in candidates if c.get("name")]
    lowered = search.lower()

    # 1. 精确匹配（大小写不敏感）
    exact = [c for c in valid if str(c["name"]).lower() == lowered]
    if len(exact) == 1:
        return exact[0]
    if len(exact) > 1:
        if policy in ("first", "score"):
            logger.info(
                "Duplicate names for '%s' in field %s, picking first (policy=%s)",
                search,
                field,
                policy,
            )
            return exact[0]
        lines = "\n".join(f"  - {c['name']} (id: {c.get('id')})" for c in exact)
        raise AmbiguityError(
            f'Ambiguous value "{search}" for field "{label}". '
            f"Multiple exact matches found:\n{lines}\n"
            f"Please specify by ID: {{ id: '{exact[0].get('id')}' }}",
            {
                "field": field,
                "input": search,
                "candidates": _ambiguity_candidates((c, None) for c in exact),
            },
        )

    # 2. 模糊匹配
    hits = fuzzy_search(search, valid, threshold=threshold)
    if not hits:
        raise ValidationError(
            f'Value "{search}" not found for field "{label}"',
            {
                "field": field,
                "value": value,
                "reason": "not_found",
                "availableValues": [c["name"] for c in valid],
            },
        )
    if len(hits) == 1:
        return hits[0][0]

    best_candidate, best_score = hits[0]
    close = [(c, s) for c, s in hits if abs(s - best_score) < AMBIGUITY_WINDOW]
    if len(close) <= 1 or policy == "first":
        return best_candidate
    if policy == "score":
        tied = [(c, s) for c, s in close if s == best_score]
        if len(tied) == 1:
            return best_candidate
        close = tied

    lines = "\n".join(
        f"  {i}. {c['name']} (id: {c.get('id')}, score: {s:.3f})"
        for i, (c, s) in enumerate(close, start=1)
    )
    raise AmbiguityError(
        f'Ambiguous value "{search}" for field "{label}". '
        f"Multiple close matches found:\n{lines}\n"
        f"Please use a more specific value or specify by ID: {{ id: '{best_candidate.get('id')}' }}",
        {
            "field": field,
            "input": search,
            "candidates": _ambiguity_candidates((c, round(s, 3)) for c, s in close),
        },
    )
