from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence

DEFAULT_NAMESPACE = "default"


@dataclass
class VectorRecord:
    id: str
    vector: List[float]
    metadata: Dict[str, Any]
    content: Optional[str]
    namespace: str
    created_at: datetime
    updated_at: datetime


@dataclass
class VectorInsert:
    vector: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)
    content: Optional[str] = None
    namespace: Optional[str] = None
    id: Optional[str] = None


@dataclass
class VectorUpdate:
    """部分更新；为 None 的字段保持原值，metadata 与原值合并。

    namespace 用于定位记录所在分区，不会移动记录。
    """

    id: str
    vector: Optional[List[float]] = None
    metadata: Optional[Dict[str, Any]] = None
    content: Optional[str] = None
    namespace: Optional[str] = None


@dataclass
class VectorSearch:
    vector: List[float]
    limit: int = 10
    namespace: Optional[str] = None
    # 仅支持等值过滤：{"key": value}
    filter: Optional[Dict[str, Any]] = None
    include_metadata: bool = True
    include_content: bool = False
    include_vectors: bool = False


@dataclass
class VectorSearchResult:
    id: str
    score: float
    vector: Optional[List[float]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    content: Optional[str] = None


@dataclass
class VectorSearchResponse:
    results: List[VectorSearchResult]
    total: int


@dataclass
class InsertResult:
    id: str
    success: bool
    message: Optional[str] = None


@dataclass
class UpdateResult:
    id: str
    success: bool
    message: Optional[str] = None


@dataclass
class DeleteResult:
    id: str
    success: bool
    message: Optional[str] = None


@dataclass
class StorageStats:
    total_vectors: int
    namespaces: List[str]
    dimensions: Optional[int] = None
    storage_size_bytes: Optional[int] = None


@dataclass(frozen=True)
class StorageCapabilities:
    """后端能力标记。

    - native_list: 是否支持高效的全量扫描；否则 list 返回空列表并记录警告。
    - native_namespaces: 是否原生支持 namespace；否则 namespace 只写入 metadata。
    - native_partial_update: 是否支持原生部分更新；否则 update 走读-改-写。
    """

    native_list: bool
    native_namespaces: bool
    native_partial_update: bool


class VectorStorage(Protocol):
    capabilities: StorageCapabilities

    def insert(self, record: VectorInsert) -> InsertResult:
        ...

    def insert_batch(self, records: Sequence[VectorInsert]) -> List[InsertResult]:
        ...

    def search(self, query: VectorSearch) -> VectorSearchResponse:
        ...

    def get(self, record_id: str, namespace: Optional[str] = None) -> Optional[VectorRecord]:
        ...

    def update(self, update: VectorUpdate) -> UpdateResult:
        ...

    def delete(self, record_id: str, namespace: Optional[str] = None) -> DeleteResult:
        ...

    def delete_batch(self, record_ids: Sequence[str], namespace: Optional[str] = None) -> List[DeleteResult]:
        ...

    def list(self, namespace: Optional[str] = None, limit: int = 100, offset: int = 0) -> List[VectorRecord]:
        ...

    def stats(self, namespace: Optional[str] = None) -> StorageStats:
        ...

    def health_check(self) -> bool:
        ...

    def close(self) -> None:
        ...
