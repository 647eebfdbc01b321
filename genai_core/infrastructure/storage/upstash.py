import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from genai_core.config.settings import UpstashConfig
from genai_core.domain.exceptions import RequestError, TransportError
from genai_core.domain.storage import (
    DEFAULT_NAMESPACE,
    DeleteResult,
    InsertResult,
    StorageCapabilities,
    StorageStats,
    UpdateResult,
    VectorInsert,
    VectorRecord,
    VectorSearch,
    VectorSearchResponse,
    VectorSearchResult,
    VectorUpdate,
)
from genai_core.infrastructure.logging.logger import logger
from genai_core.infrastructure.storage.base import (
    RestVectorBackend,
    assign_ids,
    batch_failure,
    namespace_of,
    new_id,
    pack_metadata,
    parse_timestamp,
    rank_results,
    unpack_metadata,
    utcnow,
)

_FILTER_KEY = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")


def render_filter(filter_: Dict[str, Any]) -> str:
    """把等值过滤 {"k": v} 渲染为 Upstash 的过滤表达式。

    无法表达的条件（嵌套结构、None、包含单引号的字符串、非法字段名）抛 RequestError。
    """

    clauses: List[str] = []
    for key, value in filter_.items():
        if not isinstance(key, str) or not _FILTER_KEY.match(key):
            raise RequestError(code="UNSUPPORTED_FILTER", message=f"Unsupported filter key: {key!r}")
        if isinstance(value, bool):
            literal = "true" if value else "false"
        elif isinstance(value, (int, float)):
            literal = repr(value)
        elif isinstance(value, str) and "'" not in value:
            literal = f"'{value}'"
        else:
            raise RequestError(
                code="UNSUPPORTED_FILTER",
                message=f"Upstash cannot express filter value for {key!r}: {value!r}",
            )
        clauses.append(f"{key} = {literal}")
    return " AND ".join(clauses)


class UpstashVectorStorage(RestVectorBackend):
    """Upstash Vector REST 后端。

    Upstash 这里不使用原生 namespace：namespace 只作为信息写入 metadata，
    查询/读取不按 namespace 过滤。
    """

    backend_name = "upstash"
    capabilities = StorageCapabilities(native_list=False, native_namespaces=False, native_partial_update=False)

    def __init__(self, config: UpstashConfig, check_health: bool = True):
        super().__init__(config.url, {"Authorization": f"Bearer {config.token}"}, config.timeout)
        self._config = config
        if check_health:
            self._ensure_healthy()
        logger.info("upstash.ready", extra={"extra": {"url": config.url}})

    @staticmethod
    def _result(data: Any) -> Any:
        if isinstance(data, dict) and "result" in data:
            return data["result"]
        return data

    def _item(
        self,
        record_id: str,
        vector: List[float],
        metadata: Dict[str, Any],
        content: Optional[str],
        namespace: str,
        created_at: datetime,
        updated_at: datetime,
    ) -> Dict[str, Any]:
        return {
            "id": record_id,
            "vector": list(vector),
            "metadata": pack_metadata(metadata, content, namespace, created_at, updated_at),
        }

    def insert(self, record: VectorInsert) -> InsertResult:
        record_id = record.id or new_id()
        now = utcnow()
        item = self._item(
            record_id, record.vector, record.metadata, record.content, namespace_of(record.namespace), now, now
        )
        resp = self._request("POST", "/upsert", json=item)
        if resp.status_code >= 400:
            return InsertResult(id=record_id, success=False, message=f"Upsert failed: {resp.text}")
        return InsertResult(id=record_id, success=True, message="Vector inserted successfully")

    def insert_batch(self, records: Sequence[VectorInsert]) -> List[InsertResult]:
        assigned = assign_ids(records)
        if not assigned:
            return []
        ids = [rid for rid, _ in assigned]
        now = utcnow()
        items = [
            self._item(rid, r.vector, r.metadata, r.content, namespace_of(r.namespace), now, now)
            for rid, r in assigned
        ]
        try:
            resp = self._request("POST", "/upsert-batch", json={"vectors": items})
        except TransportError as e:
            return batch_failure(ids, e.message)
        if resp.status_code >= 400:
            return batch_failure(ids, f"Batch upsert failed: {resp.text}")
        return [InsertResult(id=i, success=True, message="Vector inserted successfully") for i in ids]

    def search(self, query: VectorSearch) -> VectorSearchResponse:
        payload: Dict[str, Any] = {
            "vector": list(query.vector),
            "topK": query.limit,
            "includeMetadata": query.include_metadata or query.include_content,
            "includeVectors": query.include_vectors,
        }
        if query.filter:
            payload["filter"] = render_filter(query.filter)
        resp = self._request("POST", "/query", json=payload)
        self._ensure_ok(resp, "query")
        results: List[VectorSearchResult] = []
        for match in self._result(self._json(resp)) or []:
            user_meta, reserved = unpack_metadata(match.get("metadata"))
            results.append(
                VectorSearchResult(
                    id=str(match["id"]),
                    score=float(match.get("score") or 0.0),
                    vector=match.get("vector") if query.include_vectors else None,
                    metadata=user_meta if query.include_metadata else {},
                    content=reserved.get("content") if query.include_content else None,
                )
            )
        ranked = rank_results(results, query.limit)
        return VectorSearchResponse(results=ranked, total=len(ranked))

    def get(self, record_id: str, namespace: Optional[str] = None) -> Optional[VectorRecord]:
        resp = self._request(
            "POST",
            "/fetch",
            json={"ids": [record_id], "includeMetadata": True, "includeVectors": True},
        )
        self._ensure_ok(resp, "fetch")
        items = self._result(self._json(resp)) or []
        item = items[0] if items else None
        if not item:
            return None
        user_meta, reserved = unpack_metadata(item.get("metadata"))
        created = parse_timestamp(reserved.get("created_at")) or utcnow()
        return VectorRecord(
            id=str(item.get("id") or record_id),
            vector=[float(v) for v in item.get("vector") or []],
            metadata=user_meta,
            content=reserved.get("content"),
            namespace=reserved.get("namespace") or namespace_of(namespace),
            created_at=created,
            updated_at=parse_timestamp(reserved.get("updated_at")) or created,
        )

    def update(self, update: VectorUpdate) -> UpdateResult:
        existing = self.get(update.id, update.namespace)
        if existing is None:
            return UpdateResult(id=update.id, success=False, message="Vector not found")
        item = self._item(
            update.id,
            update.vector if update.vector is not None else existing.vector,
            {**existing.metadata, **(update.metadata or {})},
            update.content if update.content is not None else existing.content,
            existing.namespace,
            existing.created_at,
            utcnow(),
        )
        resp = self._request("POST", "/upsert", json=item)
        if resp.status_code >= 400:
            return UpdateResult(id=update.id, success=False, message=f"Update failed: {resp.text}")
        return UpdateResult(id=update.id, success=True, message="Vector updated successfully")

    def delete(self, record_id: str, namespace: Optional[str] = None) -> DeleteResult:
        resp = self._request("DELETE", "/delete", json={"ids": [record_id]})
        if resp.status_code >= 400:
            return DeleteResult(id=record_id, success=False, message=f"Delete failed: {resp.text}")
        result = self._result(self._json(resp)) if resp.content else None
        if isinstance(result, dict) and result.get("deleted") == 0:
            return DeleteResult(id=record_id, success=False, message="Vector not found")
        return DeleteResult(id=record_id, success=True, message="Vector deleted successfully")

    def delete_batch(self, record_ids: Sequence[str], namespace: Optional[str] = None) -> List[DeleteResult]:
        return [self.delete(rid, namespace) for rid in record_ids]

    def list(self, namespace: Optional[str] = None, limit: int = 100, offset: int = 0) -> List[VectorRecord]:
        logger.warning(
            "upstash.list_unsupported",
            extra={"extra": {"namespace": namespace_of(namespace)}},
        )
        return []

    def stats(self, namespace: Optional[str] = None) -> StorageStats:
        resp = self._request("GET", "/info")
        self._ensure_ok(resp, "info")
        info = self._result(self._json(resp)) or {}
        return StorageStats(
            total_vectors=int(info.get("vectorCount") or 0),
            namespaces=[DEFAULT_NAMESPACE],
            dimensions=info.get("dimension"),
            storage_size_bytes=info.get("indexSize"),
        )

    def health_check(self) -> bool:
        try:
            resp = self._request("GET", "/info")
        except TransportError:
            return False
        return resp.status_code < 400
