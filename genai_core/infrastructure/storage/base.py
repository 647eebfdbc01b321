"""各向量存储后端共用的小工具。"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

import httpx

from genai_core.domain.exceptions import ConfigError, ResponseError, ServiceError, TransportError
from genai_core.domain.storage import (
    DEFAULT_NAMESPACE,
    InsertResult,
    VectorInsert,
    VectorSearchResult,
)
from genai_core.infrastructure.logging.logger import logger

# REST 后端把这些字段写进 metadata，读取时剥离
RESERVED_METADATA_KEYS = ("content", "namespace", "created_at", "updated_at")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def new_id() -> str:
    return str(uuid4())


def namespace_of(value: Optional[str]) -> str:
    return value or DEFAULT_NAMESPACE


def assign_ids(records: Sequence[VectorInsert]) -> List[Tuple[str, VectorInsert]]:
    """批量写入前统一分配 ID，保证返回结果里的 ID 就是实际写入的 ID。"""
    return [(r.id or new_id(), r) for r in records]


def pack_metadata(
    metadata: Dict[str, Any],
    content: Optional[str],
    namespace: str,
    created_at: datetime,
    updated_at: datetime,
) -> Dict[str, Any]:
    packed = {k: v for k, v in metadata.items() if k not in RESERVED_METADATA_KEYS}
    if content is not None:
        packed["content"] = content
    packed["namespace"] = namespace
    packed["created_at"] = isoformat(created_at)
    packed["updated_at"] = isoformat(updated_at)
    return packed


def unpack_metadata(raw: Optional[Dict[str, Any]]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """拆分为 (用户 metadata, 保留字段)。"""
    raw = raw or {}
    user = {k: v for k, v in raw.items() if k not in RESERVED_METADATA_KEYS}
    reserved = {k: raw[k] for k in RESERVED_METADATA_KEYS if k in raw}
    return user, reserved


def rank_results(results: List[VectorSearchResult], limit: int) -> List[VectorSearchResult]:
    """按分数降序排序并截断（sorted 是稳定排序）。"""
    ordered = sorted(results, key=lambda r: r.score, reverse=True)
    return ordered[: max(limit, 0)]


def batch_failure(ids: Sequence[str], message: str) -> List[InsertResult]:
    return [InsertResult(id=i, success=False, message=message) for i in ids]


class RestVectorBackend(ABC):
    """基于 HTTP 的向量库后端基类：持有一个长连接的 httpx.Client。"""

    backend_name = "rest"

    def __init__(self, base_url: str, headers: Dict[str, str], timeout: float):
        self._client = httpx.Client(
            base_url=base_url,
            headers={**headers, "Content-Type": "application/json"},
            timeout=timeout,
            trust_env=False,
        )

    def _ensure_healthy(self) -> None:
        # 构造失败时释放连接
        if not self.health_check():
            self.close()
            raise ConfigError(
                code="BACKEND_UNAVAILABLE",
                message=f"{self.backend_name} health check failed",
            )

    @abstractmethod
    def health_check(self) -> bool:
        """后端可用返回 True；不抛异常。"""

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return self._client.request(method, path, **kwargs)
        except httpx.RequestError as e:
            logger.error(
                "storage.network_error",
                extra={"extra": {"backend": self.backend_name, "path": path, "error": str(e)}},
            )
            raise TransportError(code="NETWORK_ERROR", message=f"{self.backend_name} request failed: {e}")

    def _ensure_ok(self, resp: httpx.Response, action: str) -> None:
        if resp.status_code >= 400:
            raise ServiceError(
                code="STORAGE_API_ERROR",
                message=f"{self.backend_name} {action} failed: {resp.text}",
                http_status=resp.status_code,
            )

    @staticmethod
    def _json(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise ResponseError(code="INVALID_JSON", message=f"Failed to parse storage response: {e}")

    def close(self) -> None:
        self._client.close()
