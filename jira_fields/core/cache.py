"""
LookupCache - stale-while-revalidate 缓存

两类用法:
- 通用键值: get / set，值为不透明字符串（通常是 JSON）
- 候选列表: get_lookup / set_lookup，按 (project_key, field_type, issue_type?) 组织

过期模型:
- 软过期 (ttl): 超过后读取仍返回旧值，但 is_stale=True，由调用方触发后台刷新
- 硬过期 (HARD_TTL): 超过后条目被移除，视为未命中

并发去重:
- refresh_once(key, fn) 保证同一 key 同时至多一个刷新在执行，其余调用方等待同一个任务
"""

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional, Set

from jira_fields.core.config import settings
from jira_fields.core.errors import CacheError

logger = logging.getLogger(__name__)


class CacheResult(NamedTuple):
    value: Optional[str]
    is_stale: bool


class LookupResult(NamedTuple):
    value: Optional[List[Any]]
    is_stale: bool


class LookupCache:
    """进程内 SWR 缓存实现"""

    LOOKUP_TTL = 900  # 15分钟
    HARD_TTL = 7 * 24 * 3600  # 1周

    def __init__(
        self,
        ttl: Optional[int] = None,
        key_prefix: Optional[str] = None,
        max_entries: Optional[int] = None,
    ):
        self.ttl = ttl if ttl is not None else settings.CACHE_TTL_SECONDS
        self.key_prefix = key_prefix if key_prefix is not None else settings.CACHE_KEY_PREFIX
        self._max_entries = max_entries or settings.CACHE_MAX_ENTRIES
        self._cache: Dict[str, Dict[str, Any]] = {}
        self._inflight: Dict[str, asyncio.Task] = {}
        self._background: Set[asyncio.Task] = set()
        logger.debug(
            "LookupCache initialized with TTL=%d seconds, prefix=%s", self.ttl, self.key_prefix
        )

    def _full_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    # ========== 通用键值 ==========

    async def get(self, key: str, reject_stale: bool = False) -> CacheResult:
        """
        读取缓存

        Args:
            key: 缓存 key（不含前缀）
            reject_stale: True 时将软过期条目视为未命中

        Returns:
            CacheResult(value, is_stale)
        """
        full_key = self._full_key(key)
        item = self._cache.get(full_key)
        if item is None:
            logger.debug("Cache miss: key=%s", full_key)
            return CacheResult(None, False)

        now = time.time()
        if now > item["evict_at"]:
            logger.debug("Cache evicted (hard TTL): key=%s", full_key)
            del self._cache[full_key]
            return CacheResult(None, False)

        is_stale = now > item["expiry"]
        if is_stale and reject_stale:
            logger.debug("Cache stale (rejected): key=%s", full_key)
            return CacheResult(None, False)

        logger.debug("Cache %s: key=%s", "stale hit" if is_stale else "hit", full_key)
        return CacheResult(item["value"], is_stale)

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        """
        写入缓存

        Args:
            key: 缓存 key（不含前缀）
            value: 字符串值
            ttl_seconds: 软过期时间（秒），默认使用实例 TTL
        """
        if not isinstance(value, str):
            raise CacheError(
                f"Cache values must be strings, got {type(value).__name__}", {"key": key}
            )
        full_key = self._full_key(key)
        ttl = self.ttl if ttl_seconds is None else ttl_seconds

        # 超过大小限制时移除最旧的条目
        if full_key not in self._cache and len(self._cache) >= self._max_entries:
            oldest_key = next(iter(self._cache))
            del self._cache[oldest_key]
            logger.debug("Cache size limit reached, removed oldest entry: %s", oldest_key)

        now = time.time()
        self._cache[full_key] = {
            "value": value,
            "expiry": now + ttl,
            "evict_at": now + max(ttl, self.HARD_TTL),
        }
        logger.debug("Cache set: key=%s, ttl=%s", full_key, ttl)

    async def delete(self, key: str) -> None:
        self._cache.pop(self._full_key(key), None)

    async def clear(self) -> None:
        cache_size = len(self._cache)
        self._cache.clear()
        logger.info("Cache cleared: removed %d entries", cache_size)

    # ========== 候选列表 ==========

    @staticmethod
    def build_lookup_key(
        project_key: str, field_type: str, issue_type: Optional[str] = None
    ) -> str:
        """lookup:{project_key}:{field_type}[:{issue_type}]"""
        parts = ["lookup", project_key, field_type]
        if issue_type:
            parts.append(issue_type)
        return ":".join(parts)

    async def get_lookup(
        self, project_key: str, field_type: str, issue_type: Optional[str] = None
    ) -> LookupResult:
        key = self.build_lookup_key(project_key, field_type, issue_type)
        result = await self.get(key)
        if not result.value:
            return LookupResult(None, False)
        try:
            parsed = json.loads(result.value)
        except ValueError:
            logger.warning("Cache get_lookup JSON parse failed: key=%s", key)
            return LookupResult(None, False)
        return LookupResult(parsed, result.is_stale)

    async def set_lookup(
        self,
        project_key: str,
        field_type: str,
        data: List[Any],
        issue_type: Optional[str] = None,
    ) -> None:
        key = self.build_lookup_key(project_key, field_type, issue_type)
        await self.set(key, json.dumps(data), self.LOOKUP_TTL)

    async def clear_lookups(
        self,
        project_key: str,
        field_type: Optional[str] = None,
        issue_type: Optional[str] = None,
    ) -> None:
        """
        清理候选列表缓存

        Args:
            project_key: 项目 Key
            field_type: 字段类型（省略则清理该项目下全部候选列表）
            issue_type: 工作项类型
        """
        if field_type:
            await self.delete(self.build_lookup_key(project_key, field_type, issue_type))
            return

        prefix = self._full_key(f"lookup:{project_key}:")
        stale_keys = [k for k in self._cache if k.startswith(prefix)]
        for k in stale_keys:
            del self._cache[k]
        logger.debug("Cleared %d lookup entries for project %s", len(stale_keys), project_key)

    # ========== 后台刷新 ==========

    async def refresh_once(self, key: str, refresh_fn: Callable[[], Awaitable[Any]]) -> None:
        """
        去重执行刷新函数

        同一 key 已有刷新在进行时，直接等待该任务，不会再次调用 refresh_fn。
        """
        task = self._inflight.get(key)
        if task is None:
            logger.debug("Starting refresh: key=%s", key)
            task = asyncio.ensure_future(refresh_fn())
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._release_inflight(k, t))
        else:
            logger.debug("Joining in-flight refresh: key=%s", key)
        await task

    def _release_inflight(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    def refresh_in_background(
        self, key: str, refresh_fn: Callable[[], Awaitable[Any]]
    ) -> asyncio.Task:
        """
        以分离任务触发 refresh_once，调用方无需等待

        刷新失败只记录日志，不会传播给触发方。
        """
        task = asyncio.ensure_future(self.refresh_once(key, refresh_fn))
        self._background.add(task)
        task.add_done_callback(lambda t, k=key: self._on_background_done(k, t))
        return task

    def _on_background_done(self, key: str, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            logger.debug("Background refresh cancelled: key=%s", key)
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(
                "Background refresh failed: key=%s", key, exc_info=(type(exc), exc, exc.__traceback__)
            )

    async def wait_background(self) -> None:
        """等待所有后台刷新完成（用于关闭或测试）"""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
