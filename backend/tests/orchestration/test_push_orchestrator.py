import threading

import pytest

from app.integrations.push_gateway.errors import PushGatewayNetworkError, PushGatewayServerError
from app.integrations.push_gateway.schemas import PushResponse, PushResult
from app.orchestration.push_to_store import push_task
from app.orchestration.push_to_store.push_task import (
    DbResultSink,
    PushOrchestrator,
    PushOutcomeVariant,
    invalidation_keys,
    summarize_push,
    summarize_push_error,
)
from app.repository import content_repo
from app.services.content.status import ContentStatus, describe_content
from app.utils.backoff import calc_next_delay_ms, retry_schedule_ms


def _orchestrator(gateway, cache, sleep, sink=None):
    return PushOrchestrator(gateway, cache, result_sink=sink, max_attempts=3, base_delay_ms=1000, sleep=sleep)


# ---------- 重试 ----------
async def test_retries_three_times_then_raises_original_error(make_gateway, cache, sleep):
    err = PushGatewayServerError("503 from push gateway", status_code=503)
    gateway = make_gateway(err)
    orchestrator = _orchestrator(gateway, cache, sleep)

    with pytest.raises(PushGatewayServerError) as exc_info:
        await orchestrator.push_to_store("product", ["p1", "p2"])

    assert exc_info.value is err
    assert len(gateway.calls) == 3
    assert sleep.calls == [1.0, 2.0]
    assert cache.invalidated == []


async def test_recovers_on_second_attempt(make_gateway, ok_response, cache, sleep):
    gateway = make_gateway(PushGatewayNetworkError("connection reset"), ok_response)
    orchestrator = _orchestrator(gateway, cache, sleep)

    response = await orchestrator.push_to_store("product", ["p1"])

    assert response.successful == 1
    assert len(gateway.calls) == 2
    assert sleep.calls == [1.0]


async def test_request_payload(make_gateway, ok_response, cache, sleep):
    gateway = make_gateway(ok_response)
    orchestrator = _orchestrator(gateway, cache, sleep)

    await orchestrator.push_to_store("article", ["a1", "a1", "a2", ""])
    await orchestrator.push_to_store("article", ["a1"], force=True)

    assert gateway.calls == [
        {"type": "article", "ids": ["a1", "a2"]},
        {"type": "article", "ids": ["a1"], "force": True},
    ]


async def test_no_ids_short_circuits(make_gateway, ok_response, cache, sleep):
    gateway = make_gateway(ok_response)
    response = await _orchestrator(gateway, cache, sleep).push_to_store("product", [])
    assert gateway.calls == []
    assert response.total == 0 and response.success


async def test_unknown_type_rejected(make_gateway, ok_response, cache, sleep):
    with pytest.raises(ValueError):
        await _orchestrator(make_gateway(ok_response), cache, sleep).push_to_store("page", ["x"])


# ---------- 写回 + 缓存失效 ----------
async def test_success_writes_results_then_invalidates(make_gateway, cache, sleep):
    payload = {
        "success": False, "type": "product", "total": 3, "successful": 1, "skipped": 1, "failed": 1,
        "results": [
            {"id": "p1", "platformId": "wc-1", "success": True},
            {"id": "p2", "success": True, "skipped": True, "skipReason": "unchanged"},
            {"id": "p3", "success": False, "error": "rate limited"},
        ],
    }
    seen = []
    threads = []

    class RecordingSink:
        def claim(self, entity_type, ids):
            return list(ids)

        def apply(self, response, forced):
            seen.append((response.total, forced, list(cache.invalidated)))
            threads.append(threading.current_thread())

    orchestrator = _orchestrator(make_gateway(payload), cache, sleep, sink=RecordingSink())
    cache.set(("product-content", "p1"), {"stale": True})
    cache.set(("product-content", "p3"), {"stale": True})

    response = await orchestrator.push_to_store("product", ["p1", "p2", "p3"], force=True)

    assert seen == [(3, True, [])]
    # 写回不在事件循环线程上执行
    assert threads and threads[0] is not threading.current_thread()
    assert ("product", "p1") in cache.invalidated
    assert ("product-content", "p2") in cache.invalidated
    assert ("product", "p3") not in cache.invalidated
    assert ("unsynced-products",) in cache.invalidated
    assert cache.get(("product-content", "p1")) is None
    assert cache.get(("product-content", "p3")) == {"stale": True}
    assert response.failed == 1


# ---------- 租户认领 / 推送内容 ----------
async def test_foreign_ids_never_reach_gateway(db, store_product, make_gateway, ok_response, cache, sleep):
    owned = content_repo.create_entity(db, entity_type="product", tenant_id="tenant-b", store_content=store_product)
    foreign = content_repo.create_entity(db, entity_type="product", tenant_id="tenant-a", store_content=store_product)
    foreign = content_repo.update_working_content(db, foreign, dict(store_product, title="Tenant A edit"))
    gateway = make_gateway(ok_response)
    orchestrator = _orchestrator(gateway, cache, sleep, sink=DbResultSink(db, "tenant-b"))

    response = await orchestrator.push_to_store("product", [foreign.id, owned.id, "missing"])

    assert gateway.calls == [{"type": "product", "ids": [owned.id]}]
    assert (response.total, response.successful, response.failed) == (3, 1, 2)
    assert response.success is False
    assert {r.id: r.error for r in response.results if not r.success} == {foreign.id: "not found", "missing": "not found"}
    assert [h.entity_id for h in content_repo.list_sync_history(db, "tenant-b")] == [owned.id]
    assert content_repo.list_sync_history(db, "tenant-a") == []

    db.refresh(foreign)
    assert foreign.dirty_fields_content == ["title"]
    assert foreign.store_snapshot_content["title"] == "Oak Desk"


async def test_only_foreign_ids_skip_remote_call(db, store_product, make_gateway, ok_response, cache, sleep):
    foreign = content_repo.create_entity(db, entity_type="product", tenant_id="tenant-a", store_content=store_product)
    gateway = make_gateway(ok_response)
    orchestrator = _orchestrator(gateway, cache, sleep, sink=DbResultSink(db, "tenant-b"))

    response = await orchestrator.push_to_store("product", [foreign.id], force=True)

    assert gateway.calls == []
    assert cache.invalidated == []
    assert (response.total, response.failed) == (1, 1)
    assert summarize_push(response).kind == "all_failed"


async def test_edit_saved_during_push_stays_dirty(db, store_product, make_gateway, ok_response, cache, sleep):
    product = content_repo.create_entity(db, entity_type="product", tenant_id="tenant-a", store_content=store_product)
    product = content_repo.update_working_content(db, product, dict(store_product, title="Walnut Desk"))

    def edit_then_succeed(payload):
        # 网关处理期间用户又保存了一次
        content_repo.update_working_content(db, product, dict(store_product, title="Edited later"))
        return ok_response(payload)

    orchestrator = _orchestrator(make_gateway(edit_then_succeed), cache, sleep, sink=DbResultSink(db, "tenant-a"))
    response = await orchestrator.push_to_store("product", [product.id])

    assert response.successful == 1
    db.refresh(product)
    assert product.store_snapshot_content["title"] == "Walnut Desk"
    assert product.working_content["title"] == "Edited later"
    assert product.dirty_fields_content == ["title"]
    assert describe_content(product).status is ContentStatus.READY_TO_SYNC


def test_invalidation_keys_for_articles():
    response = PushResponse.from_results("article", [PushResult(id="a1", success=True)])
    assert invalidation_keys(response) == [("blog-article", "a1"), ("blog-articles",), ("sync-history",)]


def test_backoff_schedule():
    assert calc_next_delay_ms(0) == 1000
    assert calc_next_delay_ms(1) == 2000
    assert calc_next_delay_ms(5, max_ms=8000) == 8000
    assert retry_schedule_ms(3) == [1000, 2000]


# ---------- 提示文案 ----------
def _response(*results):
    return PushResponse.from_results("product", list(results))


def test_summary_all_skipped():
    outcome = summarize_push(_response(PushResult("p1", success=True, skipped=True)))
    assert outcome.kind == "all_skipped"
    assert outcome.variant is PushOutcomeVariant.INFO


def test_summary_success_with_skips():
    outcome = summarize_push(_response(PushResult("p1", success=True), PushResult("p2", success=True, skipped=True)))
    assert outcome.variant is PushOutcomeVariant.SUCCESS
    assert "1 skipped" in outcome.description


def test_summary_partial():
    outcome = summarize_push(_response(PushResult("p1", success=True), PushResult("p2", error="boom")))
    assert outcome.kind == "partial"
    assert outcome.variant is PushOutcomeVariant.WARNING
    assert outcome.description == "1 succeeded, 1 failed"


def test_summary_all_failed_uses_first_error():
    outcome = summarize_push(_response(PushResult("p1", error="SKU exists"), PushResult("p2", error="other")))
    assert outcome.kind == "all_failed"
    assert outcome.variant is PushOutcomeVariant.ERROR
    assert outcome.description == "SKU exists"


def test_summary_for_exceptions():
    assert summarize_push_error(PushGatewayNetworkError("timeout")).title == "Connection lost"
    outcome = summarize_push_error(PushGatewayServerError("502 from push gateway", 502))
    assert outcome.variant is PushOutcomeVariant.ERROR
    assert outcome.description == "502 from push gateway"


# ---------- Celery 投递 ----------
def test_enqueue_push_targets_sync_queue(monkeypatch):
    captured = {}

    class _Result:
        id = "task-123"

    def fake_apply_async(args, kwargs, queue):
        captured.update(args=args, kwargs=kwargs, queue=queue)
        return _Result()

    monkeypatch.setattr(push_task.push_entities, "apply_async", fake_apply_async)

    task_id = push_task.enqueue_push("product", ("p1", "p2"), force=True, tenant_id="tenant-a")

    assert task_id == "task-123"
    assert captured == {
        "args": ["product", ["p1", "p2"]],
        "kwargs": {"force": True, "tenant_id": "tenant-a"},
        "queue": "sync",
    }
