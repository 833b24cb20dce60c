"""
错误分类体系

所有库内异常均继承 JiraFieldsError，并通过 kind 字段区分类别，
调用方可以按 kind 做穷举匹配，而不必探测异常消息或结构。

分类:
- VALIDATION: 输入格式错误、缺失、类型不匹配，或查找结果为零
- AMBIGUITY: 查找命中多个同等可信的候选项（携带 candidates）
- NOT_FOUND: 项目 / 工作项类型 / 字段等远端资源不存在
- CONFIGURATION: 配置结构非法
- CACHE: 在没有降级来源的场景下缓存操作失败
- SCHEMA: 远端元数据结构非法（如层级定义缺少属性）
- HIERARCHY: 父子层级关系不合法
- AUTHENTICATION / RATE_LIMIT / SERVER / NETWORK: 传输层错误，原样上抛
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    AMBIGUITY = "ambiguity"
    NOT_FOUND = "not_found"
    CONFIGURATION = "configuration"
    CACHE = "cache"
    SCHEMA = "schema"
    HIERARCHY = "hierarchy"
    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    SERVER = "server"
    NETWORK = "network"


class JiraFieldsError(Exception):
    """
    库内所有异常的基类

    Attributes:
        kind: 错误类别
        message: 面向用户的错误描述
        details: 结构化上下文（field, value, candidates 等）
        response: Jira 原始响应体（如有）
    """

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        response: Optional[Any] = None,
    ):
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})
        self.response = response
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r})"


class ValidationError(JiraFieldsError):
    kind = ErrorKind.VALIDATION


class AmbiguityError(JiraFieldsError):
    """多个候选项同等匹配，details["candidates"] 列出候选项"""

    kind = ErrorKind.AMBIGUITY

    @property
    def candidates(self) -> List[Dict[str, Any]]:
        return list(self.details.get("candidates", []))


class NotFoundError(JiraFieldsError):
    kind = ErrorKind.NOT_FOUND


class ConfigurationError(JiraFieldsError):
    kind = ErrorKind.CONFIGURATION


class CacheError(JiraFieldsError):
    kind = ErrorKind.CACHE


class SchemaError(JiraFieldsError):
    kind = ErrorKind.SCHEMA


class HierarchyError(JiraFieldsError):
    kind = ErrorKind.HIERARCHY


class AuthenticationError(JiraFieldsError):
    kind = ErrorKind.AUTHENTICATION


class RateLimitError(JiraFieldsError):
    kind = ErrorKind.RATE_LIMIT

    def __init__(
        self,
        message: str,
        retry_after: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        response: Optional[Any] = None,
    ):
        self.retry_after = retry_after
        super().__init__(message, details, response)


class JiraServerError(JiraFieldsError):
    kind = ErrorKind.SERVER

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        response: Optional[Any] = None,
    ):
        self.status_code = status_code
        super().__init__(message, details, response)


class NetworkError(JiraFieldsError):
    kind = ErrorKind.NETWORK


def _extract_error_message(body: Any, status_code: int) -> str:
    """从 Jira 错误响应体提取可读消息 (errorMessages / errors / message)"""
    if isinstance(body, dict):
        messages = [m for m in body.get("errorMessages") or [] if m]
        field_errors = body.get("errors") or {}
        if isinstance(field_errors, dict):
            messages.extend(f"{field}: {msg}" for field, msg in field_errors.items())
        if messages:
            return "; ".join(str(m) for m in messages)
        if body.get("message"):
            return str(body["message"])
    return f"Jira request failed with status {status_code}"


def error_from_response(
    status_code: int,
    body: Any,
    method: Optional[str] = None,
    path: Optional[str] = None,
    retry_after: Optional[str] = None,
) -> JiraFieldsError:
    """
    将 HTTP 失败响应映射到错误分类

    Args:
        status_code: HTTP 状态码
        body: 已解析的响应体（JSON 或原始文本）
        method: 请求方法
        path: 请求路径
        retry_after: Retry-After 响应头（429 时）

    Returns:
        对应类别的 JiraFieldsError 实例（调用方负责 raise）
    """
    message = _extract_error_message(body, status_code)
    details: Dict[str, Any] = {"status": status_code, "method": method, "path": path}

    if status_code == 400:
        if isinstance(body, dict) and isinstance(body.get("errors"), dict):
            details["fields"] = dict(body["errors"])
        return ValidationError(message, details, body)
    if status_code in (401, 403):
        return AuthenticationError(message, details, body)
    if status_code == 404:
        return NotFoundError(message, details, body)
    if status_code == 429:
        seconds: Optional[int] = None
        if retry_after and retry_after.strip().isdigit():
            seconds = int(retry_after.strip())
        return RateLimitError(message, retry_after=seconds, details=details, response=body)
    if status_code >= 500:
        return JiraServerError(message, status_code=status_code, details=details, response=body)
    return JiraFieldsError(message, details, body)
