
"""
低层 HTTP 客户端：调用 push-to-store 网关
  - 负责鉴权头、超时、状态码 -> 异常的映射、JSON 解析；
  - 不做重试：重试预算（3 次 / 1s, 2s）由 PushOrchestrator 统一控制；
  - invoke() 是给 async 编排层用的入口，阻塞调用放到线程里跑。
"""

from __future__ import annotations
import asyncio, logging, requests
from typing import Any, Dict, Optional
from urllib.parse import urljoin

from app.core.config import settings
from app.integrations.push_gateway.errors import (
    PushGatewayClientError, PushGatewayNetworkError, PushGatewayServerError, PushGatewayPayloadError
)

logger = logging.getLogger(__name__)


class PushGatewayHttpClient:
    """push-to-store 后端函数的 HTTP 客户端。"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        path: Optional[str] = None,
        token: Optional[str] = None,
        connect_timeout: Optional[int] = None,
        read_timeout: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        """允许覆盖配置，方便测试注入假 session。"""
        self.base_url = (base_url or settings.PUSH_GATEWAY_URL).rstrip("/") + "/"
        self.path = (path or settings.PUSH_GATEWAY_PATH).lstrip("/")
        if token is None and settings.PUSH_GATEWAY_TOKEN is not None:
            token = settings.PUSH_GATEWAY_TOKEN.get_secret_value()
        self.token = token
        self.connect_timeout = connect_timeout or settings.PUSH_CONNECT_TIMEOUT
        self.read_timeout = read_timeout or settings.PUSH_READ_TIMEOUT
        self._session = session or requests.Session()


    # ---------- Public ----------
    async def invoke(self, payload: Dict[str, Any]) -> Any:
        """在线程池里执行阻塞的 requests 调用，不阻塞事件循环。"""
        return await asyncio.to_thread(self.post_json, payload)


    def post_json(self, payload: Dict[str, Any]) -> Any:
        """单次 POST，返回解析后的 JSON；失败抛 PushGateway*Error。"""
        url = urljoin(self.base_url, self.path)
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            resp = self._session.post(
                url, json=payload, headers=headers,
                timeout=(self.connect_timeout, self.read_timeout),
            )
        except requests.RequestException as e:
            # 连接 / 超时等网络异常
            raise PushGatewayNetworkError(f"request error: {e}") from e

        logger.debug("push gateway response: POST %s -> %s", url, resp.status_code)

        if resp.status_code == 429 or resp.status_code >= 500:
            snippet = (resp.text or "")[:300]
            raise PushGatewayServerError(f"{resp.status_code} from push gateway: {snippet}", status_code=resp.status_code)

        if 400 <= resp.status_code < 500:
            raise PushGatewayClientError(f"{resp.status_code} client error: {self._error_message(resp)}")

        return self._as_json(resp)


    def close(self) -> None:
        self._session.close()


    # ---------- Internals ----------
    def _as_json(self, resp: requests.Response) -> Any:
        """解析 JSON；失败截取文本并抛 PushGatewayPayloadError。"""
        try:
            data = resp.json()
        except ValueError as e:
            text = (resp.text or "")[:500]  # 截断，避免日志过大
            raise PushGatewayPayloadError(f"non-JSON response (status={resp.status_code}): {text}") from e
        if data is None or data == {}:
            raise PushGatewayPayloadError("empty response from push gateway")
        return data


    def _error_message(self, resp: requests.Response) -> str:
        # 网关错误体一般是 {"error": "..."}
        try:
            body = resp.json()
        except ValueError:
            return (resp.text or "")[:300]
        if isinstance(body, dict):
            return str(body.get("error") or body.get("message") or body)[:300]
        return str(body)[:300]
