"""
   推送网关（push-to-store 后端函数）集成层异常。
   任何一种都会触发编排层的重试；重试用尽后原样抛给调用方。
"""

class PushGatewayError(Exception):
    """Base for all push gateway errors."""

class PushGatewayClientError(PushGatewayError):
    """Network failure or non-retryable 4xx from the gateway."""

class PushGatewayNetworkError(PushGatewayClientError):
    """Connection/timeout error before any HTTP status was received."""

class PushGatewayServerError(PushGatewayError):
    """5xx or 429 from the gateway."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

class PushGatewayPayloadError(PushGatewayError):
    """Response body is not JSON or does not match the push response shape."""
