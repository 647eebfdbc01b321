from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import psycopg
from pgvector.psycopg import register_vector
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool, PoolTimeout

from genai_core.config.settings import PostgresConfig
from genai_core.domain.exceptions import ConfigError, GenAIError, InternalError
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
from genai_core.infrastructure.storage.base import namespace_of, new_id, rank_results

SCHEMA_STATEMENTS = (
    "CREATE EXTENSION IF NOT EXISTS vector",
    """
    CREATE TABLE IF NOT EXISTS vectors (
        id TEXT PRIMARY KEY,
        vector VECTOR,
        metadata JSONB DEFAULT '{}',
        content TEXT,
        namespace TEXT DEFAULT 'default',
        created_at TIMESTAMPTZ DEFAULT NOW(),
        updated_at TIMESTAMPTZ DEFAULT NOW()
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_vectors_namespace ON vectors (namespace)",
)

# 列未声明维度时 ivfflat 索引会创建失败，只记录警告
IVFFLAT_INDEX = (
    "CREATE INDEX IF NOT EXISTS idx_vectors_embedding "
    "ON vectors USING ivfflat (vector vector_cosine_ops) WITH (lists = 100)"
)

INSERT_SQL = """
    INSERT INTO vectors (id, vector, metadata, content, namespace, created_at, updated_at)
    VALUES (%s, %s, %s, %s, %s, NOW(), NOW())
    ON CONFLICT (id) DO UPDATE SET
        vector = EXCLUDED.vector,
        metadata = EXCLUDED.metadata,
        content = EXCLUDED.content,
        namespace = EXCLUDED.namespace,
        updated_at = NOW()
"""

RECORD_COLUMNS = "id, vector, metadata, content, namespace, created_at, updated_at"


def _vector_param(values: Sequence[float]) -> np.ndarray:
    return np.asarray(values, dtype=np.float32)


def _to_floats(value: Any) -> List[float]:
    if value is None:
        return []
    if hasattr(value, "tolist"):
        value = value.tolist()
    return [float(v) for v in value]


def _row_to_record(row: Tuple[Any, ...]) -> VectorRecord:
    rid, vector, metadata, content, namespace, created_at, updated_at = row
    return VectorRecord(
        id=rid,
        vector=_to_floats(vector),
        metadata=dict(metadata or {}),
        content=content,
        namespace=namespace,
        created_at=created_at,
        updated_at=updated_at,
    )


def initialize_schema(conninfo: str) -> None:
    """建表、建索引（幂等）。"""
    try:
        with psycopg.connect(conninfo, autocommit=True) as conn:
            for stmt in SCHEMA_STATEMENTS:
                conn.execute(stmt)
            try:
                conn.execute(IVFFLAT_INDEX)
            except psycopg.Error as e:
                logger.warning("postgres.ivfflat_index_skipped", extra={"extra": {"error": str(e)}})
    except psycopg.Error as e:
        raise ConfigError(code="POSTGRES_UNAVAILABLE", message=f"Failed to initialize schema: {e}")


class PostgresVectorStorage:
    """PostgreSQL + pgvector 后端，连接池在整个生命周期内共享。"""

    backend_name = "postgres"
    capabilities = StorageCapabilities(native_list=True, native_namespaces=True, native_partial_update=True)

    def __init__(
        self,
        config: PostgresConfig,
        pool: Optional[ConnectionPool] = None,
        check_health: bool = True,
    ):
        self._config = config
        if pool is None:
            initialize_schema(config.conninfo)
            pool = ConnectionPool(
                config.conninfo,
                min_size=config.pool_min_size,
                max_size=config.pool_max_size,
                kwargs={"autocommit": True},
                configure=register_vector,
                open=True,
            )
        self._pool = pool
        if check_health and not self.health_check():
            self.close()
            raise ConfigError(code="BACKEND_UNAVAILABLE", message="postgres health check failed")
        logger.info("postgres.ready", extra={"extra": {"host": config.host, "database": config.database}})

    @contextmanager
    def _connection(self):
        try:
            with self._pool.connection() as conn:
                yield conn
        except PoolTimeout as e:
            raise InternalError(code="POOL_TIMEOUT", message=f"Failed to get connection: {e}", http_status=503)
        except psycopg.Error as e:
            logger.error("postgres.error", extra={"extra": {"error": str(e)}})
            raise InternalError(code="DB_ERROR", message=f"Database error: {e}", http_status=500)

    def insert(self, record: VectorInsert) -> InsertResult:
        record_id = record.id or new_id()
        with self._connection() as conn:
            try:
                conn.execute(
                    INSERT_SQL,
                    (
                        record_id,
                        _vector_param(record.vector),
                        Jsonb(dict(record.metadata)),
                        record.content,
                        namespace_of(record.namespace),
                    ),
                )
            except psycopg.Error as e:
                logger.error("postgres.insert_failed", extra={"extra": {"id": record_id, "error": str(e)}})
                return InsertResult(id=record_id, success=False, message=f"Insert failed: {e}")
        return InsertResult(id=record_id, success=True, message="Vector inserted successfully")

    def insert_batch(self, records: Sequence[VectorInsert]) -> List[InsertResult]:
        results: List[InsertResult] = []
        for record in records:
            record_id = record.id or new_id()
            try:
                results.append(self.insert(_with_id(record, record_id)))
            except GenAIError as e:
                results.append(InsertResult(id=record_id, success=False, message=e.message))
        return results

    def search(self, query: VectorSearch) -> VectorSearchResponse:
        params: Dict[str, Any] = {
            "q": _vector_param(query.vector),
            "ns": namespace_of(query.namespace),
            "limit": query.limit,
        }
        sql = (
            "SELECT id, vector, metadata, content, 1 - (vector <=> %(q)s) AS similarity "
            "FROM vectors WHERE namespace = %(ns)s"
        )
        if query.filter:
            sql += " AND metadata @> %(filter)s"
            params["filter"] = Jsonb(dict(query.filter))
        sql += " ORDER BY vector <=> %(q)s LIMIT %(limit)s"
        with self._connection() as conn:
            rows = conn.execute(sql, params).fetchall()
        results = [
            VectorSearchResult(
                id=rid,
                score=float(similarity),
                vector=_to_floats(vector) if query.include_vectors else None,
                metadata=dict(metadata or {}) if query.include_metadata else {},
                content=content if query.include_content else None,
            )
            for rid, vector, metadata, content, similarity in rows
        ]
        ranked = rank_results(results, query.limit)
        return VectorSearchResponse(results=ranked, total=len(ranked))

    def get(self, record_id: str, namespace: Optional[str] = None) -> Optional[VectorRecord]:
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT {RECORD_COLUMNS} FROM vectors WHERE id = %s AND namespace = %s",
                (record_id, namespace_of(namespace)),
            ).fetchone()
        return _row_to_record(row) if row else None

    def update(self, update: VectorUpdate) -> UpdateResult:
        sets: List[str] = []
        params: List[Any] = []
        if update.vector is not None:
            sets.append("vector = %s")
            params.append(_vector_param(update.vector))
        if update.metadata is not None:
            sets.append("metadata = COALESCE(metadata, '{}'::jsonb) || %s")
            params.append(Jsonb(dict(update.metadata)))
        if update.content is not None:
            sets.append("content = %s")
            params.append(update.content)
        if not sets:
            return UpdateResult(id=update.id, success=False, message="No fields to update")
        sets.append("updated_at = NOW()")
        params.extend([update.id, namespace_of(update.namespace)])
        with self._connection() as conn:
            cur = conn.execute(f"UPDATE vectors SET {', '.join(sets)} WHERE id = %s AND namespace = %s", params)
        if cur.rowcount == 0:
            return UpdateResult(id=update.id, success=False, message="Vector not found")
        return UpdateResult(id=update.id, success=True, message="Vector updated successfully")

    def delete(self, record_id: str, namespace: Optional[str] = None) -> DeleteResult:
        with self._connection() as conn:
            cur = conn.execute(
                "DELETE FROM vectors WHERE id = %s AND namespace = %s",
                (record_id, namespace_of(namespace)),
            )
        if cur.rowcount == 0:
            return DeleteResult(id=record_id, success=False, message="Vector not found")
        return DeleteResult(id=record_id, success=True, message="Vector deleted successfully")

    def delete_batch(self, record_ids: Sequence[str], namespace: Optional[str] = None) -> List[DeleteResult]:
        if not record_ids:
            return []
        with self._connection() as conn:
            rows = conn.execute(
                "DELETE FROM vectors WHERE id = ANY(%s) AND namespace = %s RETURNING id",
                (list(record_ids), namespace_of(namespace)),
            ).fetchall()
        deleted = {row[0] for row in rows}
        return [
            DeleteResult(id=i, success=True, message="Vector deleted successfully")
            if i in deleted
            else DeleteResult(id=i, success=False, message="Vector not found")
            for i in record_ids
        ]

    def list(self, namespace: Optional[str] = None, limit: int = 100, offset: int = 0) -> List[VectorRecord]:
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT {RECORD_COLUMNS} FROM vectors WHERE namespace = %s "
                "ORDER BY created_at DESC LIMIT %s OFFSET %s",
                (namespace_of(namespace), limit, offset),
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    def stats(self, namespace: Optional[str] = None) -> StorageStats:
        with self._connection() as conn:
            if namespace is None:
                total = conn.execute("SELECT COUNT(*) FROM vectors").fetchone()[0]
            else:
                total = conn.execute("SELECT COUNT(*) FROM vectors WHERE namespace = %s", (namespace,)).fetchone()[0]
            namespaces = [
                row[0] for row in conn.execute("SELECT DISTINCT namespace FROM vectors ORDER BY namespace").fetchall()
            ]
            dim_row = conn.execute("SELECT vector_dims(vector) FROM vectors LIMIT 1").fetchone()
            size_row = conn.execute("SELECT pg_total_relation_size('vectors')").fetchone()
        return StorageStats(
            total_vectors=int(total or 0),
            namespaces=namespaces,
            dimensions=dim_row[0] if dim_row else None,
            storage_size_bytes=size_row[0] if size_row else None,
        )

    def health_check(self) -> bool:
        try:
            with self._connection() as conn:
                row = conn.execute("SELECT 1").fetchone()
        except InternalError as e:
            logger.warning("postgres.health_check_failed", extra={"extra": {"error": e.message}})
            return False
        return bool(row) and row[0] == 1

    def close(self) -> None:
        self._pool.close()


def _with_id(record: VectorInsert, record_id: str) -> VectorInsert:
    return VectorInsert(
        id=record_id,
        vector=record.vector,
        metadata=record.metadata,
        content=record.content,
        namespace=record.namespace,
    )
