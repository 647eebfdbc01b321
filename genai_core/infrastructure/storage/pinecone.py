from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from genai_core.config.settings import PineconeConfig
from genai_core.domain.exceptions import TransportError
from genai_core.domain.storage import (
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


class PineconeVectorStorage(RestVectorBackend):
    """Pinecone REST 后端，namespace 为原生字段。"""

    backend_name = "pinecone"
    capabilities = StorageCapabilities(native_list=False, native_namespaces=True, native_partial_update=False)

    def __init__(self, config: PineconeConfig, check_health: bool = True):
        super().__init__(config.base_url, {"Api-Key": config.api_key}, config.timeout)
        self._config = config
        if check_health:
            self._ensure_healthy()
        logger.info("pinecone.ready", extra={"extra": {"index": config.index_name}})

    def _vector_item(
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
            "values": list(vector),
            "metadata": pack_metadata(metadata, content, namespace, created_at, updated_at),
        }

    def _upsert(self, items: List[Dict[str, Any]], namespace: str):
        return self._request("POST", "/vectors/upsert", json={"vectors": items, "namespace": namespace})

    def insert(self, record: VectorInsert) -> InsertResult:
        record_id = record.id or new_id()
        ns = namespace_of(record.namespace)
        now = utcnow()
        item = self._vector_item(record_id, record.vector, record.metadata, record.content, ns, now, now)
        resp = self._upsert([item], ns)
        if resp.status_code >= 400:
            return InsertResult(id=record_id, success=False, message=f"Upsert failed: {resp.text}")
        return InsertResult(id=record_id, success=True, message="Vector inserted successfully")

    def insert_batch(self, records: Sequence[VectorInsert]) -> List[InsertResult]:
        assigned = assign_ids(records)
        groups: "OrderedDict[str, List[int]]" = OrderedDict()
        for pos, (_, record) in enumerate(assigned):
            groups.setdefault(namespace_of(record.namespace), []).append(pos)

        results: List[Optional[InsertResult]] = [None] * len(assigned)
        now = utcnow()
        for ns, positions in groups.items():
            ids = [assigned[p][0] for p in positions]
            items = [
                self._vector_item(rid, r.vector, r.metadata, r.content, ns, now, now)
                for rid, r in (assigned[p] for p in positions)
            ]
            try:
                resp = self._upsert(items, ns)
            except TransportError as e:
                group_results = batch_failure(ids, e.message)
            else:
                if resp.status_code >= 400:
                    group_results = batch_failure(ids, f"Batch upsert failed: {resp.text}")
                else:
                    group_results = [InsertResult(id=i, success=True, message="Vector inserted successfully") for i in ids]
            for p, res in zip(positions, group_results):
                results[p] = res
        return [r for r in results if r is not None]

    def search(self, query: VectorSearch) -> VectorSearchResponse:
        payload: Dict[str, Any] = {
            "vector": list(query.vector),
            "topK": query.limit,
            "namespace": namespace_of(query.namespace),
            "includeMetadata": query.include_metadata or query.include_content,
            "includeValues": query.include_vectors,
        }
        if query.filter:
            payload["filter"] = query.filter
        resp = self._request("POST", "/query", json=payload)
        self._ensure_ok(resp, "query")
        results: List[VectorSearchResult] = []
        for match in self._json(resp).get("matches") or []:
            user_meta, reserved = unpack_metadata(match.get("metadata"))
            results.append(
                VectorSearchResult(
                    id=match["id"],
                    score=float(match.get("score") or 0.0),
                    vector=match.get("values") if query.include_vectors else None,
                    metadata=user_meta if query.include_metadata else {},
                    content=reserved.get("content") if query.include_content else None,
                )
            )
        ranked = rank_results(results, query.limit)
        return VectorSearchResponse(results=ranked, total=len(ranked))

    def _fetch(self, ids: Sequence[str], namespace: str) -> Dict[str, Dict[str, Any]]:
        resp = self._request("GET", "/vectors/fetch", params={"ids": list(ids), "namespace": namespace})
        self._ensure_ok(resp, "fetch")
        return self._json(resp).get("vectors") or {}

    def _to_record(self, item: Dict[str, Any], namespace: str) -> VectorRecord:
        user_meta, reserved = unpack_metadata(item.get("metadata"))
        created = parse_timestamp(reserved.get("created_at")) or utcnow()
        return VectorRecord(
            id=item["id"],
            vector=[float(v) for v in item.get("values") or []],
            metadata=user_meta,
            content=reserved.get("content"),
            namespace=reserved.get("namespace") or namespace,
            created_at=created,
            updated_at=parse_timestamp(reserved.get("updated_at")) or created,
        )

    def get(self, record_id: str, namespace: Optional[str] = None) -> Optional[VectorRecord]:
        ns = namespace_of(namespace)
        item = self._fetch([record_id], ns).get(record_id)
        if not item:
            return None
        return self._to_record({"id": record_id, **item}, ns)

    def update(self, update: VectorUpdate) -> UpdateResult:
        ns = namespace_of(update.namespace)
        existing = self.get(update.id, ns)
        if existing is None:
            return UpdateResult(id=update.id, success=False, message="Vector not found")
        item = self._vector_item(
            update.id,
            update.vector if update.vector is not None else existing.vector,
            {**existing.metadata, **(update.metadata or {})},
            update.content if update.content is not None else existing.content,
            ns,
            existing.created_at,
            utcnow(),
        )
        resp = self._upsert([item], ns)
        if resp.status_code >= 400:
            return UpdateResult(id=update.id, success=False, message=f"Update failed: {resp.text}")
        return UpdateResult(id=update.id, success=True, message="Vector updated successfully")

    def delete(self, record_id: str, namespace: Optional[str] = None) -> DeleteResult:
        return self.delete_batch([record_id], namespace)[0]

    def delete_batch(self, record_ids: Sequence[str], namespace: Optional[str] = None) -> List[DeleteResult]:
        ns = namespace_of(namespace)
        if not record_ids:
            return []
        found = self._fetch(record_ids, ns)
        existing = [i for i in record_ids if i in found]
        if existing:
            resp = self._request("POST", "/vectors/delete", json={"ids": existing, "namespace": ns})
            if resp.status_code >= 400:
                return [DeleteResult(id=i, success=False, message=f"Delete failed: {resp.text}") for i in record_ids]
        return [
            DeleteResult(id=i, success=True, message="Vector deleted successfully")
            if i in found
            else DeleteResult(id=i, success=False, message="Vector not found")
            for i in record_ids
        ]

    def list(self, namespace: Optional[str] = None, limit: int = 100, offset: int = 0) -> List[VectorRecord]:
        logger.warning(
            "pinecone.list_unsupported",
            extra={"extra": {"namespace": namespace_of(namespace)}},
        )
        return []

    def stats(self, namespace: Optional[str] = None) -> StorageStats:
        resp = self._request("POST", "/describe_index_stats", json={})
        self._ensure_ok(resp, "describe_index_stats")
        data = self._json(resp)
        namespaces = data.get("namespaces") or {}
        total = int(data.get("totalVectorCount") or 0)
        if namespace is not None:
            total = int((namespaces.get(namespace) or {}).get("vectorCount") or 0)
        return StorageStats(
            total_vectors=total,
            namespaces=sorted(namespaces.keys()),
            dimensions=data.get("dimension"),
        )

    def health_check(self) -> bool:
        try:
            resp = self._request("POST", "/describe_index_stats", json={})
        except TransportError:
            return False
        return resp.status_code < 400
