# push-to-store 请求 / 响应结构（网关的 wire 格式用 camelCase）

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Mapping, Optional, Sequence

from app.integrations.push_gateway.errors import PushGatewayPayloadError


EntityType = Literal["product", "article"]
ENTITY_TYPES = ("product", "article")


@dataclass(slots=True)
class PushRequest:
    type: EntityType
    ids: List[str]
    force: bool = False

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": self.type, "ids": list(self.ids)}
        if self.force:
            payload["force"] = True
        return payload


@dataclass(slots=True)
class PushResult:
    id: str
    platform_id: Optional[str] = None
    success: bool = False
    error: Optional[str] = None
    skipped: bool = False
    skip_reason: Optional[str] = None

    @property
    def pushed(self) -> bool:
        """真正写到门店（成功且未跳过）。"""
        return self.success and not self.skipped

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "PushResult":
        if not isinstance(data, Mapping) or "id" not in data:
            raise PushGatewayPayloadError(f"push result missing id: {data!r}"[:300])
        platform_id = data.get("platformId", data.get("platform_id"))
        return cls(
            id=str(data["id"]),
            platform_id=str(platform_id) if platform_id not in (None, "") else None,
            success=bool(data.get("success")),
            error=data.get("error") or None,
            skipped=bool(data.get("skipped")),
            skip_reason=data.get("skipReason", data.get("skip_reason")) or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"id": self.id, "platformId": self.platform_id, "success": self.success}
        if self.error:
            out["error"] = self.error
        if self.skipped:
            out["skipped"] = True
        if self.skip_reason:
            out["skipReason"] = self.skip_reason
        return out


@dataclass(slots=True)
class PushResponse:
    success: bool
    type: EntityType
    total: int = 0
    successful: int = 0
    skipped: int = 0
    failed: int = 0
    results: List[PushResult] = field(default_factory=list)

    @classmethod
    def empty(cls, entity_type: EntityType) -> "PushResponse":
        return cls(success=True, type=entity_type)

    @classmethod
    def from_results(cls, entity_type: EntityType, results: Sequence[PushResult]) -> "PushResponse":
        # 计数口径：successful = 成功且未跳过；skipped 单独计；failed = 未成功
        successful = sum(1 for r in results if r.success and not r.skipped)
        skipped = sum(1 for r in results if r.skipped)
        failed = sum(1 for r in results if not r.success)
        return cls(
            success=failed == 0,
            type=entity_type,
            total=len(results),
            successful=successful,
            skipped=skipped,
            failed=failed,
            results=list(results),
        )

    @classmethod
    def from_payload(cls, data: Any, entity_type: EntityType) -> "PushResponse":
        if not isinstance(data, Mapping):
            raise PushGatewayPayloadError(f"push response is not an object: {data!r}"[:300])
        raw_results = data.get("results") or []
        if not isinstance(raw_results, list):
            raise PushGatewayPayloadError("push response results is not a list")
        results = [PushResult.from_payload(r) for r in raw_results]

        def _count(key: str, fallback: int) -> int:
            value = data.get(key)
            return int(value) if isinstance(value, (int, float)) and not isinstance(value, bool) else fallback

        derived = cls.from_results(entity_type, results)
        return cls(
            success=bool(data.get("success", derived.success)),
            type=data.get("type") if data.get("type") in ENTITY_TYPES else entity_type,
            total=_count("total", derived.total),
            successful=_count("successful", derived.successful),
            skipped=_count("skipped", derived.skipped),
            failed=_count("failed", derived.failed),
            results=results,
        )

    def with_failures(self, extra: Sequence[PushResult]) -> "PushResponse":
        """追加本地判定失败的结果（未发给网关的 id），计数随之累加。"""
        if not extra:
            return self
        return PushResponse(
            success=False,
            type=self.type,
            total=self.total + len(extra),
            successful=self.successful,
            skipped=self.skipped,
            failed=self.failed + len(extra),
            results=self.results + list(extra),
        )

    @property
    def first_error(self) -> Optional[str]:
        for r in self.results:
            if not r.success and r.error:
                return r.error
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "type": self.type,
            "total": self.total,
            "successful": self.successful,
            "skipped": self.skipped,
            "failed": self.failed,
            "results": [r.to_dict() for r in self.results],
        }
