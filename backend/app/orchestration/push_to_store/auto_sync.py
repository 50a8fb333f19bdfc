# 保存后自动推送：随机延迟后 force 推送单个实体，失败只记日志

from __future__ import annotations
import asyncio, logging, random
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.integrations.push_gateway.schemas import EntityType, PushResponse
from app.infrastructure.cache.query_cache import QueryCache
from app.orchestration.push_to_store.push_task import DbResultSink, PushGateway, PushOrchestrator, Sleep

logger = logging.getLogger(__name__)


class AutoSync:

    def __init__(
        self,
        orchestrator: PushOrchestrator,
        *,
        min_delay_ms: Optional[int] = None,
        max_delay_ms: Optional[int] = None,
        sleep: Sleep = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._orchestrator = orchestrator
        self.min_delay_ms = settings.AUTO_SYNC_MIN_DELAY_MS if min_delay_ms is None else min_delay_ms
        self.max_delay_ms = settings.AUTO_SYNC_MAX_DELAY_MS if max_delay_ms is None else max_delay_ms
        if self.max_delay_ms < self.min_delay_ms:
            raise ValueError("AUTO_SYNC_MAX_DELAY_MS must be >= AUTO_SYNC_MIN_DELAY_MS")
        self._sleep = sleep
        self._rng = rng or random.SystemRandom()


    def next_delay_ms(self) -> int:
        """[min, max] 闭区间内均匀取整数毫秒，避免"点保存"和推送请求之间的固定时间关联。"""
        return self._rng.randint(self.min_delay_ms, self.max_delay_ms)


    async def trigger_auto_sync(self, entity_id: str, entity_type: EntityType = "product") -> Optional[PushResponse]:
        """
        本地保存已经提交；这里的任何失败都不能回滚或阻塞那次保存，
        所以异常只记录，返回 None。
        """
        delay_ms = self.next_delay_ms()
        try:
            await self._sleep(delay_ms / 1000.0)
            return await self._orchestrator.push_to_store(entity_type, [entity_id], force=True)
        except Exception:
            logger.exception("auto_sync.failed type=%s id=%s delay_ms=%s", entity_type, entity_id, delay_ms)
            return None


"""
    FastAPI BackgroundTasks 入口：请求会话已经关闭，这里自己开会话写回推送结果。
"""
async def run_auto_sync_detached(
    entity_type: EntityType,
    entity_id: str,
    tenant_id: Optional[str],
    *,
    session_factory: Callable[[], Session],
    gateway: PushGateway,
    cache: QueryCache,
    sleep: Sleep = asyncio.sleep,
) -> Optional[PushResponse]:
    db = session_factory()
    try:
        orchestrator = PushOrchestrator(gateway, cache, result_sink=DbResultSink(db, tenant_id), sleep=sleep)
        return await AutoSync(orchestrator, sleep=sleep).trigger_auto_sync(entity_id, entity_type)
    finally:
        db.close()
