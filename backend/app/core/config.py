# 环境变量和配置
# pydantic‑settings 读取 .env = core/config.py

from typing import Optional
from pydantic import SecretStr, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# 本机直接跑 uvicorn 时（不走 Docker），才会用到 model_config.env_file=".env"：
# 此时它会读取 backend/.env

class Settings(BaseSettings):

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_prefix="",
        case_sensitive=False,
    )

    # ========= project config =========
    PROJECT_NAME: str = "Content Sync Hub"
    ENVIRONMENT: str = "dev"
    API_PREFIX: str = "/api/v1"
    LOG_LEVEL: str = Field("INFO", alias="LOG_LEVEL")


    # ========= CORS / 租户 =========
    BACKEND_CORS_ORIGINS: str = "http://localhost:3000"
    TENANT_HEADER: str = Field("X-Tenant-Id", alias="TENANT_HEADER")


    # ========= Database =========
    # 容器内默认连 docker 网络里的 "db" 服务；测试用 sqlite 内存库自行建 session
    DATABASE_URL: str = Field(
        default="postgresql+psycopg://csh_user:csh_pass@db:5432/content_sync",
        alias="DATABASE_URL"
    )
    DATABASE_POOL_SIZE: int = Field(10, alias="DATABASE_POOL_SIZE")
    DATABASE_MAX_OVERFLOW: int = Field(20, alias="DATABASE_MAX_OVERFLOW")


    # ========= Redis（查询缓存失效）=========
    # 为空时使用进程内缓存
    REDIS_URL: Optional[str] = Field(None, alias="REDIS_URL")
    QUERY_CACHE_PREFIX: str = Field("csh:query", alias="QUERY_CACHE_PREFIX")
    QUERY_CACHE_TTL_SEC: int = Field(300, ge=1, alias="QUERY_CACHE_TTL_SEC")


    # ========= celery config =========
    CELERY_BROKER_URL: Optional[str] = None
    CELERY_RESULT_BACKEND: Optional[str] = None
    CELERY_TIMEZONE: str = "UTC"
    # True 时推送任务在当前进程内执行，不投递到 worker
    SYNC_TASKS_INLINE: bool = Field(default=True, alias="SYNC_TASKS_INLINE")


    # ========= Push gateway（推送到门店的后端函数网关）=========
    PUSH_GATEWAY_URL: str = Field("http://localhost:54321/functions/v1", alias="PUSH_GATEWAY_URL")
    PUSH_GATEWAY_PATH: str = Field("/push-to-store", alias="PUSH_GATEWAY_PATH")
    PUSH_GATEWAY_TOKEN: Optional[SecretStr] = Field(None, alias="PUSH_GATEWAY_TOKEN")
    PUSH_CONNECT_TIMEOUT: int = Field(10, ge=1, alias="PUSH_CONNECT_TIMEOUT")
    PUSH_READ_TIMEOUT: int = Field(120, ge=1, alias="PUSH_READ_TIMEOUT")

    # 重试：总共 3 次，1s, 2s 指数退避，无抖动
    PUSH_MAX_ATTEMPTS: int = Field(3, ge=1, alias="PUSH_MAX_ATTEMPTS")
    PUSH_BASE_DELAY_MS: int = Field(1000, ge=0, alias="PUSH_BASE_DELAY_MS")

    # 保存后自动推送的随机延迟窗口
    AUTO_SYNC_MIN_DELAY_MS: int = Field(400, ge=0, alias="AUTO_SYNC_MIN_DELAY_MS")
    AUTO_SYNC_MAX_DELAY_MS: int = Field(600, ge=0, alias="AUTO_SYNC_MAX_DELAY_MS")

    # 编辑器防抖保存
    SAVE_DEBOUNCE_MS: int = Field(1500, ge=0, alias="SAVE_DEBOUNCE_MS")


settings = Settings()  # 只从环境读取（含 .env）
