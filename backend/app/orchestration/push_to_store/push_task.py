
from __future__ import annotations
import asyncio, logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from celery import shared_task

from app.core.config import settings
from app.db.session import session_scope
from app.infrastructure.cache.query_cache import CacheKey, QueryCache, get_query_cache
from app.integrations.push_gateway.errors import PushGatewayNetworkError
from app.integrations.push_gateway.http_client import PushGatewayHttpClient
from app.integrations.push_gateway.schemas import ENTITY_TYPES, EntityType, PushRequest, PushResponse, PushResult
from app.repository import content_repo
from app.utils.backoff import calc_next_delay_ms


logger = logging.getLogger(__name__)


class PushGateway(Protocol):
    async def invoke(self, payload: Dict[str, Any]) -> Any: ...


Sleep = Callable[[float], Awaitable[None]]


class ResultSink(Protocol):
    """推送前认领 ids（返回允许推送的 id），推送后写回结果。"""

    def claim(self, entity_type: EntityType, ids: Sequence[str]) -> List[str]: ...

    def apply(self, response: PushResponse, forced: bool) -> None: ...


# ========================== 缓存失效 ==========================
# 单个实体的 key + 聚合列表/统计的 key
_ENTITY_KEYS: Dict[str, Tuple[str, ...]] = {
    "product": ("product", "product-content"),
    "article": ("blog-article",),
}
_AGGREGATE_KEYS: Dict[str, Tuple[str, ...]] = {
    "product": ("products", "unsynced-products", "product-stats", "sync-history", "product-conflicts"),
    "article": ("blog-articles", "sync-history"),
}


def invalidation_keys(response: PushResponse) -> List[CacheKey]:
    """只对成功（含 skipped）的实体逐个失效，再失效聚合缓存。"""
    keys: List[CacheKey] = []
    for res in response.results:
        if res.success:
            keys.extend((prefix, res.id) for prefix in _ENTITY_KEYS[response.type])
    keys.extend((prefix,) for prefix in _AGGREGATE_KEYS[response.type])
    return keys


def entity_cache_keys(entity_type: EntityType, entity_id: str) -> List[CacheKey]:
    return [(prefix, entity_id) for prefix in _ENTITY_KEYS[entity_type]]


def aggregate_cache_keys(entity_type: EntityType) -> List[CacheKey]:
    return [(prefix,) for prefix in _AGGREGATE_KEYS[entity_type]]


'''
推送编排：
    1) 一次聚合调用（整批 ids），不拆成 N 个请求
    2) 失败重试：最多 PUSH_MAX_ATTEMPTS 次，间隔 base * 2**attempt（1s, 2s），顺序执行无抖动
    3) 最后一次仍失败：原异常抛给调用方，不做任何缓存失效
    4) 成功：先把结果写回（result_sink），再按实体失效缓存
'''
class PushOrchestrator:

    def __init__(
        self,
        gateway: Optional[PushGateway] = None,
        cache: Optional[QueryCache] = None,
        *,
        result_sink: Optional[ResultSink] = None,
        max_attempts: Optional[int] = None,
        base_delay_ms: Optional[int] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._gateway = gateway or PushGatewayHttpClient()
        self._cache = cache if cache is not None else get_query_cache()
        self._result_sink = result_sink
        self.max_attempts = max_attempts or settings.PUSH_MAX_ATTEMPTS
        self.base_delay_ms = settings.PUSH_BASE_DELAY_MS if base_delay_ms is None else base_delay_ms
        self._sleep = sleep


    async def push_to_store(self, entity_type: EntityType, ids: Sequence[str], force: bool = False) -> PushResponse:
        if entity_type not in ENTITY_TYPES:
            raise ValueError(f"unknown entity type: {entity_type!r}")

        unique_ids = list(dict.fromkeys(str(i) for i in ids if i))
        if not unique_ids:
            logger.info("push_to_store.skip type=%s reason=no_ids", entity_type)
            return PushResponse.empty(entity_type)

        # 按租户认领：不存在 / 其它租户的 id 不发给网关，作为失败结果返回
        rejected: List[PushResult] = []
        if self._result_sink is not None:
            owned = set(await asyncio.to_thread(self._result_sink.claim, entity_type, unique_ids))
            rejected = [PushResult(id=i, success=False, error="not found") for i in unique_ids if i not in owned]
            unique_ids = [i for i in unique_ids if i in owned]
            if rejected:
                logger.warning("push_to_store.rejected type=%s ids=%s", entity_type, [r.id for r in rejected])
            if not unique_ids:
                return PushResponse.empty(entity_type).with_failures(rejected)

        request = PushRequest(type=entity_type, ids=unique_ids, force=force)
        logger.info("push_to_store.start type=%s ids=%d force=%s", entity_type, len(unique_ids), force)

        response = await self._invoke_with_retry(request)

        if self._result_sink is not None:
            await asyncio.to_thread(self._result_sink.apply, response, force)
        self._invalidate(response)

        logger.info(
            "push_to_store.done type=%s total=%s successful=%s skipped=%s failed=%s",
            response.type, response.total, response.successful, response.skipped, response.failed,
        )
        return response.with_failures(rejected)


    async def _invoke_with_retry(self, request: PushRequest) -> PushResponse:
        payload = request.to_payload()
        for attempt in range(self.max_attempts):
            try:
                data = await self._gateway.invoke(payload)
                return PushResponse.from_payload(data, request.type)
            except Exception as exc:
                if attempt == self.max_attempts - 1:
                    logger.error("push_to_store.failed attempts=%s err=%s", self.max_attempts, exc)
                    raise
                delay_ms = calc_next_delay_ms(attempt, self.base_delay_ms)
                logger.warning(
                    "push_to_store.retry attempt=%s/%s delay_ms=%s err=%s",
                    attempt + 1, self.max_attempts, delay_ms, exc,
                )
                await self._sleep(delay_ms / 1000.0)
        raise RuntimeError("unreachable retry loop")


    def _invalidate(self, response: PushResponse) -> None:
        for key in invalidation_keys(response):
            self._cache.invalidate(key)



# ========================== 提示文案（按计数分支，不按异常） ==========================
class PushOutcomeVariant(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(slots=True)
class PushOutcome:
    kind: str            # all_skipped / success / partial / all_failed / error
    variant: PushOutcomeVariant
    title: str
    description: str


def summarize_push(response: PushResponse) -> PushOutcome:
    if response.failed == 0:
        if response.skipped == response.total:
            return PushOutcome("all_skipped", PushOutcomeVariant.INFO,
                               "No changes to sync", "Everything is already up to date.")
        if response.skipped > 0:
            return PushOutcome("success", PushOutcomeVariant.SUCCESS,
                               f"{response.successful} item(s) synced",
                               f"{response.skipped} skipped (already up to date)")
        return PushOutcome("success", PushOutcomeVariant.SUCCESS,
                           f"{response.successful} item(s) synced", "Changes pushed to the store.")

    if response.successful > 0:
        return PushOutcome("partial", PushOutcomeVariant.WARNING, "Partial sync",
                           f"{response.successful} succeeded, {response.failed} failed")

    return PushOutcome("all_failed", PushOutcomeVariant.ERROR, "Sync failed",
                       response.first_error or f"{response.failed} item(s) could not be synced.")


def summarize_push_error(exc: BaseException) -> PushOutcome:
    """重试用尽后的提示：网络断开单独提示。"""
    if isinstance(exc, PushGatewayNetworkError):
        return PushOutcome("error", PushOutcomeVariant.ERROR, "Connection lost",
                           "Could not reach the store. Check your connection and try again.")
    return PushOutcome("error", PushOutcomeVariant.ERROR, "Sync error", str(exc) or exc.__class__.__name__)



# ========================== 结果写回 + Celery 入口 ==========================
'''
数据库写回：
    claim  推送前按租户取实体，记下即将推送的 working 副本；不属于该租户的 id 不推送
    apply  推送后只把记下的副本升为 snapshot，并记录 sync_history
推送期间又保存的修改因此仍是 dirty
'''
class DbResultSink:

    def __init__(self, db, tenant_id: Optional[str]) -> None:
        self._db = db
        self._tenant_id = tenant_id
        self._pushed_content: Dict[str, Dict[str, Any]] = {}

    def claim(self, entity_type: EntityType, ids: Sequence[str]) -> List[str]:
        self._pushed_content = content_repo.capture_working(self._db, entity_type, ids, self._tenant_id)
        return [i for i in ids if i in self._pushed_content]

    def apply(self, response: PushResponse, forced: bool) -> None:
        content_repo.apply_push_results(
            self._db, response, tenant_id=self._tenant_id, forced=forced, pushed_content=self._pushed_content,
        )


"""
  调试开关：True 时推送在当前进程内同步执行。
"""
def inline_tasks_enabled() -> bool:
    return bool(getattr(settings, "SYNC_TASKS_INLINE", True))


def run_push_blocking(entity_type: EntityType, ids: Iterable[str], force: bool = False,
                      tenant_id: Optional[str] = None) -> Dict[str, Any]:
    """在同步上下文（worker / 脚本）里跑完整推送 + 写回。"""
    with session_scope() as db:
        orchestrator = PushOrchestrator(result_sink=DbResultSink(db, tenant_id))
        response = asyncio.run(orchestrator.push_to_store(entity_type, list(ids), force=force))
    return response.to_dict()


@shared_task(name="app.orchestration.push_to_store.push_task.push_entities")
def push_entities(entity_type: str, ids: List[str], force: bool = False, tenant_id: Optional[str] = None) -> Dict[str, Any]:
    logger.info("========  push_entities start type=%s ids=%d  ========", entity_type, len(ids))
    result = run_push_blocking(entity_type, ids, force=force, tenant_id=tenant_id)  # type: ignore[arg-type]
    logger.info("======== push_entities end successful=%s failed=%s ========", result["successful"], result["failed"])
    return result


def enqueue_push(entity_type: EntityType, ids: Sequence[str], force: bool = False,
                 tenant_id: Optional[str] = None) -> str:
    """投递到 sync 队列，返回 Celery task id。"""
    async_result = push_entities.apply_async(
        args=[entity_type, list(ids)],
        kwargs={"force": force, "tenant_id": tenant_id},
        queue="sync",
    )
    return async_result.id
