from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from app.api.v1 import deps, sync as sync_module
from app.db.session import get_db
from app.integrations.push_gateway.errors import PushGatewayNetworkError
from app.main import app
from app.repository import content_repo


TENANT = "tenant-a"
HEADERS = {"X-Tenant-Id": TENANT}
BASE = "/api/v1"


@pytest.fixture
def gateway(make_gateway, ok_response):
    return make_gateway(ok_response)


@pytest.fixture
def client(session_factory, cache, gateway, sleep):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_cache] = lambda: cache
    app.dependency_overrides[deps.get_push_gateway] = lambda: gateway
    app.dependency_overrides[deps.get_sleep] = lambda: sleep
    app.dependency_overrides[deps.get_session_factory] = lambda: session_factory
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _create(client, store_product, entity_type="product"):
    resp = client.post(f"{BASE}/content/{entity_type}", json={"store_content": store_product}, headers=HEADERS)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _save(client, entity_id, working, auto_sync=False):
    return client.put(
        f"{BASE}/content/product/{entity_id}/working",
        json={"working_content": working, "auto_sync": auto_sync},
        headers=HEADERS,
    )


# ---------- 基础 ----------
def test_health(client):
    assert client.get(f"{BASE}/health").json() == {"status": "ok"}


def test_tenant_header_required(client):
    assert client.get(f"{BASE}/content/product/stats").status_code == 400


def test_unknown_entity_type(client):
    assert client.get(f"{BASE}/content/page/stats", headers=HEADERS).status_code == 422


def test_create_and_get_detail(client, store_product, cache):
    created = _create(client, store_product)
    assert created["status"] == "SYNCED"
    assert created["primary_image"] == "https://cdn.test/desk.jpg"

    detail = client.get(f"{BASE}/content/product/{created['id']}", headers=HEADERS).json()
    assert detail["working_content"]["title"] == "Oak Desk"
    assert cache.get(("product-content", created["id"])) is not None

    # 缓存命中也要校验租户
    other = client.get(f"{BASE}/content/product/{created['id']}", headers={"X-Tenant-Id": "tenant-b"})
    assert other.status_code == 404


# ---------- 编辑 / 草稿 ----------
def test_save_working_marks_dirty_and_invalidates(client, store_product, cache):
    created = _create(client, store_product)
    client.get(f"{BASE}/content/product/{created['id']}", headers=HEADERS)

    resp = _save(client, created["id"], dict(store_product, title="Walnut Desk"))

    body = resp.json()
    assert resp.status_code == 200
    assert body["status"] == "READY_TO_SYNC"
    assert body["dirty_fields_content"] == ["title"]
    assert body["dirty_fields_label"] == "Title"
    assert ("product-content", created["id"]) in cache.invalidated
    assert ("unsynced-products",) in cache.invalidated

    unsynced = client.get(f"{BASE}/content/product/unsynced", headers=HEADERS).json()
    assert [row["id"] for row in unsynced] == [created["id"]]
    assert unsynced[0]["title"] == "Walnut Desk"

    stats = client.get(f"{BASE}/content/product/stats", headers=HEADERS).json()
    assert stats["READY_TO_SYNC"] == 1 and stats["total"] == 1


def test_draft_accept_and_reject(client, store_product):
    created = _create(client, store_product)
    url = f"{BASE}/content/product/{created['id']}"

    assert client.post(f"{url}/draft/accept", json={"field": "title"}, headers=HEADERS).status_code == 409

    resp = client.put(f"{url}/draft", json={"draft_generated_content": {"title": "AI Desk", "sku": "AI-1"}}, headers=HEADERS)
    assert resp.json()["status"] == "PENDING_APPROVAL"
    assert resp.json()["remaining_proposals"] == ["title", "sku"]

    assert client.post(f"{url}/draft/accept", json={"field": "description"}, headers=HEADERS).status_code == 422

    accepted = client.post(f"{url}/draft/accept", json={"field": "title"}, headers=HEADERS).json()
    assert accepted["working_content"]["title"] == "AI Desk"
    assert accepted["draft_generated_content"] == {"sku": "AI-1"}

    rejected = client.post(f"{url}/draft/reject", json={}, headers=HEADERS).json()
    assert rejected["draft_generated_content"] is None
    assert rejected["status"] == "READY_TO_SYNC"


# ---------- 推送 ----------
def test_push_inline_syncs_and_records_history(client, store_product, gateway):
    created = _create(client, store_product)
    _save(client, created["id"], dict(store_product, title="Walnut Desk"))

    resp = client.post(f"{BASE}/sync/push", json={"type": "product", "ids": [created["id"]]}, headers=HEADERS)

    body = resp.json()
    assert resp.status_code == 200
    assert body["response"]["successful"] == 1
    assert body["outcome"]["variant"] == "success"
    assert gateway.calls == [{"type": "product", "ids": [created["id"]]}]

    detail = client.get(f"{BASE}/content/product/{created['id']}", headers=HEADERS).json()
    assert detail["status"] == "SYNCED"
    assert detail["store_snapshot_content"]["title"] == "Walnut Desk"

    history = client.get(f"{BASE}/sync/history", headers=HEADERS).json()
    assert [h["outcome"] for h in history] == ["success"]


def test_push_failure_returns_502_with_outcome(client, store_product, gateway, sleep, cache):
    created = _create(client, store_product)
    gateway.outcomes = [PushGatewayNetworkError("connection reset")]
    cache.invalidated.clear()

    resp = client.post(f"{BASE}/sync/push", json={"type": "product", "ids": [created["id"]]}, headers=HEADERS)

    assert resp.status_code == 502
    assert resp.json()["outcome"]["title"] == "Connection lost"
    assert len(gateway.calls) == 3
    assert sleep.calls == [1.0, 2.0]
    assert cache.invalidated == []


def test_push_rejects_other_tenants_entities(client, store_product, gateway):
    created = _create(client, store_product)
    _save(client, created["id"], dict(store_product, title="Tenant A draft"))
    other = {"X-Tenant-Id": "tenant-b"}

    resp = client.post(f"{BASE}/sync/push", json={"type": "product", "ids": [created["id"]]}, headers=other)

    body = resp.json()
    assert resp.status_code == 200
    assert gateway.calls == []
    assert body["response"]["failed"] == 1
    assert body["response"]["results"][0]["error"] == "not found"
    assert body["outcome"]["kind"] == "all_failed"
    assert client.get(f"{BASE}/sync/history", headers=other).json() == []

    auto = client.post(f"{BASE}/sync/auto", json={"type": "product", "id": created["id"]}, headers=other)
    assert auto.json()["response"]["failed"] == 1
    assert gateway.calls == []

    detail = client.get(f"{BASE}/content/product/{created['id']}", headers=HEADERS).json()
    assert detail["status"] == "READY_TO_SYNC"
    assert detail["store_snapshot_content"]["title"] == "Oak Desk"


def test_push_is_queued_when_not_inline(client, monkeypatch):
    queued = {}

    def fake_enqueue(entity_type, ids, force=False, tenant_id=None):
        queued.update(type=entity_type, ids=list(ids), force=force, tenant_id=tenant_id)
        return "task-42"

    monkeypatch.setattr(sync_module, "inline_tasks_enabled", lambda: False)
    monkeypatch.setattr(sync_module, "enqueue_push", fake_enqueue)

    resp = client.post(f"{BASE}/sync/push", json={"type": "article", "ids": ["a1"], "force": True}, headers=HEADERS)

    assert resp.status_code == 202
    assert resp.json()["task_id"] == "task-42"
    assert queued == {"type": "article", "ids": ["a1"], "force": True, "tenant_id": TENANT}


def test_save_with_auto_sync_pushes_in_background(client, store_product, gateway, sleep):
    created = _create(client, store_product)

    resp = _save(client, created["id"], dict(store_product, title="Auto synced"), auto_sync=True)
    assert resp.json()["status"] == "READY_TO_SYNC"

    # TestClient 在返回前执行完 BackgroundTasks
    assert gateway.calls == [{"type": "product", "ids": [created["id"]], "force": True}]
    assert len(sleep.calls) == 1 and 0.4 <= sleep.calls[0] <= 0.6
    detail = client.get(f"{BASE}/content/product/{created['id']}", headers=HEADERS).json()
    assert detail["status"] == "SYNCED"


def test_auto_sync_failure_does_not_fail_request(client, store_product, gateway):
    created = _create(client, store_product)
    gateway.outcomes = [PushGatewayNetworkError("offline")]

    resp = client.post(f"{BASE}/sync/auto", json={"type": "product", "id": created["id"]}, headers=HEADERS)

    assert resp.status_code == 200
    assert resp.json() == {"response": None, "outcome": None, "task_id": None}


# ---------- 撤销 ----------
def test_cancel_sync_reports_partial_failure(client, store_product):
    created = _create(client, store_product)
    _save(client, created["id"], dict(store_product, title="Oops"))

    resp = client.post(
        f"{BASE}/sync/cancel",
        json={"productIds": [created["id"], "missing"], "type": "product"},
        headers=HEADERS,
    )

    body = resp.json()
    assert body["reverted"] == [created["id"]]
    assert body["failed"] == ["missing"]
    assert body["outcome"]["title"] == "Undo failed"
    detail = client.get(f"{BASE}/content/product/{created['id']}", headers=HEADERS).json()
    assert detail["working_content"]["title"] == "Oak Desk"
    assert detail["status"] == "SYNCED"


# ---------- 门店拉取 / 冲突 ----------
def test_pull_conflict_and_resolve(client, store_product, db):
    created = _create(client, store_product)
    entity = content_repo.get(db, "product", created["id"])
    entity.last_synced_at = entity.last_synced_at - timedelta(hours=2)
    db.commit()

    url = f"{BASE}/content/product/{created['id']}"
    _save(client, created["id"], dict(store_product, title="Local title"))
    store_changed = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()
    pulled = client.post(
        f"{url}/pull",
        json={"store_content": dict(store_product, title="Store title"), "store_updated_at": store_changed},
        headers=HEADERS,
    ).json()
    assert pulled["status"] == "CONFLICT"
    assert pulled["conflict_fields"] == ["title"]

    report = client.get(f"{url}/conflicts", headers=HEADERS).json()
    assert report["has_conflict"] is True
    assert report["conflicts"][0]["store_value"] == "Store title"
    assert report["conflicts"][0]["local_value"] == "Local title"

    bad = client.post(f"{url}/conflicts/resolve", json={"resolutions": [{"field": "title", "resolution": "nope"}]},
                      headers=HEADERS)
    assert bad.status_code == 422

    resolved = client.post(
        f"{url}/conflicts/resolve",
        json={"resolutions": [{"field": "title", "resolution": "use_store"}]},
        headers=HEADERS,
    ).json()
    assert resolved["status"] == "SYNCED"
    assert resolved["working_content"]["title"] == "Store title"


def test_use_store_and_delete(client, store_product):
    created = _create(client, store_product)
    url = f"{BASE}/content/product/{created['id']}"
    _save(client, created["id"], dict(store_product, title="Local title"))

    forced = client.post(f"{url}/conflicts/use-store", headers=HEADERS).json()
    assert forced["working_content"]["title"] == "Oak Desk"
    assert forced["dirty_fields_content"] == []

    assert client.delete(url, headers=HEADERS).status_code == 204
    assert client.get(url, headers=HEADERS).status_code == 404
