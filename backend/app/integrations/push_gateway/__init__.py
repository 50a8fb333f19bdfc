"""
对外统一入口：推送网关客户端 + 请求/响应结构 + 异常。
"""

from .http_client import PushGatewayHttpClient
from .schemas import EntityType, ENTITY_TYPES, PushRequest, PushResult, PushResponse
from .errors import (
    PushGatewayError, PushGatewayClientError, PushGatewayNetworkError, PushGatewayServerError, PushGatewayPayloadError,
)


__all__ = [
    "PushGatewayHttpClient",
    "EntityType", "ENTITY_TYPES", "PushRequest", "PushResult", "PushResponse",
    "PushGatewayError", "PushGatewayClientError", "PushGatewayNetworkError", "PushGatewayServerError",
    "PushGatewayPayloadError",
]
