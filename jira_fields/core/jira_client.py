import asyncio
import logging
import threading
from typing import Any, Optional

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from jira_fields.core.config import Settings, settings as default_settings
from jira_fields.core.errors import NetworkError, error_from_response

logger = logging.getLogger(__name__)

_jira_client = None
_jira_client_lock = threading.Lock()  # 线程安全锁

# 定义可重试的异常类型
RETRYABLE_EXCEPTIONS = (
    httpx.ConnectError,
    httpx.TimeoutException,
    httpx.ReadTimeout,
    httpx.WriteTimeout,
    httpx.ConnectTimeout,
)


def _should_retry_response(response: httpx.Response) -> bool:
    """检查响应是否需要重试（429 限流或 5xx 服务端错误）"""
    return response.status_code == 429 or response.status_code >= 500


class RetryableHTTPError(Exception):
    """可重试的 HTTP 错误"""

    def __init__(self, response: httpx.Response):
        self.response = response
        super().__init__(f"HTTP {response.status_code}: {response.text[:200]}")


class JiraClient:
    """
    Jira REST API 异步客户端

    特性:
    - Bearer Token 认证 (Personal Access Token)
    - 自动重试机制 (网络错误、超时、429、5xx)
    - 指数退避策略
    - 并发请求上限 (asyncio.Semaphore)
    - 失败统一映射为 jira_fields.core.errors 中的错误类型
    """

    # 重试配置
    MAX_RETRIES = 3
    RETRY_MIN_WAIT = 1  # 最小等待时间（秒）
    RETRY_MAX_WAIT = 10  # 最大等待时间（秒）

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        config: Optional[Settings] = None,
        max_retries: Optional[int] = None,
        retry_min_wait: Optional[float] = None,
        retry_max_wait: Optional[float] = None,
    ):
        self.config = config or default_settings
        self.base_url = (base_url or self.config.JIRA_BASE_URL).rstrip("/")
        self.api_prefix = self.config.api_prefix
        self.max_retries = max_retries or self.MAX_RETRIES
        self.retry_min_wait = self.RETRY_MIN_WAIT if retry_min_wait is None else retry_min_wait
        self.retry_max_wait = self.RETRY_MAX_WAIT if retry_max_wait is None else retry_max_wait
        self._semaphore = asyncio.Semaphore(self.config.JIRA_MAX_CONCURRENCY)

        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        token = token or self.config.JIRA_TOKEN
        if token:
            headers["Authorization"] = f"Bearer {token}"

        logger.info("Initializing JiraClient with base_url=%s", self.base_url)
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(self.config.JIRA_TIMEOUT),
            trust_env=False,
        )
        logger.debug("JiraClient initialized successfully")

    def api(self, path: str) -> str:
        """拼接 REST API 路径: api("/field") -> /rest/api/2/field"""
        return f"{self.api_prefix}/{path.lstrip('/')}"

    def _get_retry_decorator(self):
        """获取重试装饰器配置"""
        return retry(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(
                multiplier=1, min=self.retry_min_wait, max=self.retry_max_wait
            ),
            retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS + (RetryableHTTPError,)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        json: Optional[Any] = None,
        params: Optional[dict] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        """
        带重试的请求方法

        Raises:
            RetryableHTTPError: 429/5xx 重试耗尽
            httpx.HTTPError: 网络错误重试耗尽
        """
        extra = {}
        if timeout is not None:
            extra["timeout"] = timeout

        @self._get_retry_decorator()
        async def _do_request():
            logger.debug("Making %s request to %s", method, path)
            if json is not None:
                logger.debug("%s payload: %s", method, json)
            async with self._semaphore:
                response = await self.client.request(
                    method, path, json=json, params=params, **extra
                )

            logger.debug("Response status: %d from %s", response.status_code, path)

            if _should_retry_response(response):
                logger.warning(
                    "Received %d from %s, will retry...", response.status_code, path
                )
                raise RetryableHTTPError(response)

            return response

        return await _do_request()

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[Any] = None,
        params: Optional[dict] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        发送请求并返回解析后的 JSON

        Returns:
            响应 JSON；空响应体返回 None

        Raises:
            ValidationError / AuthenticationError / NotFoundError /
            RateLimitError / JiraServerError: HTTP 失败
            NetworkError: 网络失败（重试耗尽）
        """
        try:
            response = await self._request_with_retry(method, path, json, params, timeout)
        except RetryableHTTPError as e:
            response = e.response
        except httpx.HTTPError as e:
            logger.error("Network error on %s %s: %s", method, path, e)
            raise NetworkError(
                f"Network error on {method} {path}: {e}",
                {"method": method, "path": path},
            ) from e

        if response.status_code >= 400:
            logger.error(
                "HTTP error %d from %s: %s",
                response.status_code,
                path,
                response.text[:200],
            )
            try:
                body = response.json()
            except ValueError:
                body = response.text[:500]
            raise error_from_response(
                response.status_code,
                body,
                method=method,
                path=path,
                retry_after=response.headers.get("Retry-After"),
            )

        logger.info("Request successful: %s %s -> %d", method, path, response.status_code)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def get(
        self, path: str, params: Optional[dict] = None, timeout: Optional[float] = None
    ) -> Any:
        """GET 请求（带自动重试）"""
        return await self.request("GET", path, params=params, timeout=timeout)

    async def post(
        self, path: str, json: Optional[Any] = None, timeout: Optional[float] = None
    ) -> Any:
        """POST 请求（带自动重试）"""
        return await self.request("POST", path, json=json, timeout=timeout)

    async def put(
        self, path: str, json: Optional[Any] = None, timeout: Optional[float] = None
    ) -> Any:
        """PUT 请求（带自动重试）"""
        return await self.request("PUT", path, json=json, timeout=timeout)

    async def delete(self, path: str, timeout: Optional[float] = None) -> Any:
        """DELETE 请求（带自动重试）"""
        return await self.request("DELETE", path, timeout=timeout)

    async def close(self):
        """关闭客户端连接"""
        logger.info("Closing JiraClient connection")
        await self.client.aclose()
        logger.debug("JiraClient connection closed")


def get_jira_client() -> JiraClient:
    """
    获取全局单例客户端（线程安全）

    使用双重检查锁定模式，防止多线程/多协程并发时重复实例化。

    Returns:
        JiraClient: Jira API 客户端实例
    """
    global _jira_client

    # 快速路径：已初始化则直接返回
    if _jira_client is not None:
        logger.debug("Reusing existing JiraClient singleton instance")
        return _jira_client

    # 慢路径：使用锁保护初始化
    with _jira_client_lock:
        # 双重检查：防止等待锁期间其他线程已完成初始化
        if _jira_client is not None:
            logger.debug("Reusing existing JiraClient singleton instance (after lock)")
            return _jira_client

        logger.debug("Creating new JiraClient singleton instance")
        _jira_client = JiraClient()

    return _jira_client
