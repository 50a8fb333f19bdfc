# PushGatewayHttpClient：用假 session 验证请求头 / 状态码映射 / 响应解析，不走网络

import pytest
import requests

from app.integrations.push_gateway.errors import (
    PushGatewayClientError,
    PushGatewayNetworkError,
    PushGatewayPayloadError,
    PushGatewayServerError,
)
from app.integrations.push_gateway.http_client import PushGatewayHttpClient
from app.integrations.push_gateway.schemas import PushResponse


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=None):
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else ("" if body is None else str(body))

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class FakeSession:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.requests = []
        self.closed = False

    def post(self, url, json=None, headers=None, timeout=None):
        self.requests.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.exc is not None:
            raise self.exc
        return self.response

    def close(self):
        self.closed = True


def _client(session, token="secret-token"):
    return PushGatewayHttpClient(
        base_url="https://functions.test/v1",
        path="/push-to-store",
        token=token,
        connect_timeout=3,
        read_timeout=30,
        session=session,
    )


def test_post_json_sends_payload_and_auth():
    body = {"success": True, "type": "product", "results": [{"id": "p1", "success": True}]}
    session = FakeSession(FakeResponse(200, body))

    data = _client(session).post_json({"type": "product", "ids": ["p1"]})

    assert data == body
    sent = session.requests[0]
    assert sent["url"] == "https://functions.test/v1/push-to-store"
    assert sent["json"] == {"type": "product", "ids": ["p1"]}
    assert sent["headers"]["Authorization"] == "Bearer secret-token"
    assert sent["timeout"] == (3, 30)


def test_network_failure_maps_to_network_error():
    session = FakeSession(exc=requests.ConnectionError("refused"))
    with pytest.raises(PushGatewayNetworkError):
        _client(session).post_json({"type": "product", "ids": ["p1"]})


@pytest.mark.parametrize("status", [429, 500, 503])
def test_retryable_statuses_map_to_server_error(status):
    session = FakeSession(FakeResponse(status, text="upstream down"))
    with pytest.raises(PushGatewayServerError) as exc_info:
        _client(session).post_json({})
    assert exc_info.value.status_code == status


def test_client_error_uses_error_body():
    session = FakeSession(FakeResponse(400, {"error": "ids must not be empty"}))
    with pytest.raises(PushGatewayClientError, match="ids must not be empty"):
        _client(session).post_json({})


@pytest.mark.parametrize("body", [ValueError("no json"), None, {}])
def test_unusable_body_is_payload_error(body):
    session = FakeSession(FakeResponse(200, body, text="<html>"))
    with pytest.raises(PushGatewayPayloadError):
        _client(session).post_json({})


async def test_invoke_runs_in_thread():
    body = {"success": True, "type": "article", "results": []}
    session = FakeSession(FakeResponse(200, body))
    client = _client(session, token=None)

    data = await client.invoke({"type": "article", "ids": ["a1"]})

    assert data == body
    assert "Authorization" not in session.requests[0]["headers"]
    client.close()
    assert session.closed


# ---------- 响应解析 ----------
def test_response_counts_fall_back_to_results():
    response = PushResponse.from_payload(
        {
            "results": [
                {"id": "p1", "platform_id": 42, "success": True},
                {"id": "p2", "success": True, "skipped": True, "skip_reason": "unchanged"},
                {"id": "p3", "success": False, "error": "bad sku"},
            ]
        },
        "product",
    )
    assert (response.total, response.successful, response.skipped, response.failed) == (3, 1, 1, 1)
    assert response.success is False
    assert response.results[0].platform_id == "42"
    assert response.results[1].skip_reason == "unchanged"
    assert response.first_error == "bad sku"
    assert response.to_dict()["results"][1] == {
        "id": "p2", "platformId": None, "success": True, "skipped": True, "skipReason": "unchanged",
    }


def test_response_shape_errors():
    with pytest.raises(PushGatewayPayloadError):
        PushResponse.from_payload(["not", "an", "object"], "product")
    with pytest.raises(PushGatewayPayloadError):
        PushResponse.from_payload({"results": [{"success": True}]}, "product")
