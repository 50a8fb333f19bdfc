
from fastapi import APIRouter


# 非租户路由
from .routes_health import router as health_router


# 需要 X-Tenant-Id 的路由（租户依赖在各接口上声明）
from .content import router as content_router
from .sync import router as sync_router


api_v1 = APIRouter()
api_v1.include_router(health_router)      # /health 探活

api_v1.include_router(content_router)     # /content/{type}/...
api_v1.include_router(sync_router)        # /sync/push, /sync/cancel ...
