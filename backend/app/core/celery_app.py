# 后台推送任务（批量 push-to-store）

from celery import Celery
from kombu import Exchange, Queue
from app.core.config import settings
from app.core.logging import configure_logging

configure_logging(settings.LOG_LEVEL)


'''
初始化 Celery 应用/实例
   - Worker: 消费 sync 队列，批量推送到门店
   - SYNC_TASKS_INLINE=True 时 API 在进程内直接执行，不经过 worker
'''
celery_app = Celery(
    "content_sync_hub",
    broker=settings.CELERY_BROKER_URL,          # 队列位置 (Redis)
    backend=settings.CELERY_RESULT_BACKEND,     # 结果存储 (Redis)
    include=[
        "app.orchestration.push_to_store.push_task",   # 批量推送
    ],
)


'''
  通用 Celery 配置
'''
celery_app.conf.update(
    timezone=settings.CELERY_TIMEZONE,
    enable_utc=True,                             # 内部还是存 UTC
    task_serializer="json",                      # 序列化格式 JSON
    accept_content=["json"],
    result_serializer="json",
    task_track_started=True,                     # 任务启动时标记 started
    broker_connection_retry_on_startup=True,     # 启动时如果 broker 挂了会重试
    worker_prefetch_multiplier=1,    # 一个 worker 一次只取一个任务
    task_acks_late=True,             # 任务执行完再确认，worker crash 后重投（网关对无变化的实体返回 skipped）
    broker_heartbeat=30,             # 和 broker 的心跳，防掉线
    broker_pool_limit=10,
)


'''
队列：
   - sync: 门店推送（慢 I/O，单独 worker 消费）
'''
celery_app.conf.task_queues = (
    Queue("default", Exchange("default"), routing_key="default"),
    Queue("sync", Exchange("sync"), routing_key="sync"),
)
celery_app.conf.task_default_queue = "default"

celery_app.conf.task_routes = {
    "app.orchestration.push_to_store.push_task.push_entities": {"queue": "sync"},
}
