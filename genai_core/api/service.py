"""对外 API 服务模块。

GenAIClient 聚合文本、向量、图像三个客户端与可选的向量存储，
并提供 embed_and_store / semantic_search / generate_with_context 等组合操作。
"""

from typing import Any, Dict, Optional

from genai_core.config.settings import Settings, settings
from genai_core.domain.exceptions import ConfigError, GenAIError
from genai_core.domain.models import EmbeddingRequest
from genai_core.domain.storage import (
    InsertResult,
    VectorInsert,
    VectorSearch,
    VectorSearchResponse,
    VectorStorage,
)
from genai_core.flows.runner import RagOrchestrator
from genai_core.infrastructure.logging.logger import logger
from genai_core.infrastructure.storage.manager import create_vector_storage
from genai_core.providers import create_runtime_client
from genai_core.providers.dispatcher import InvocationDispatcher, RuntimeClient
from genai_core.providers.image_client import ImageClient
from genai_core.providers.text_client import TextClient
from genai_core.providers.vector_client import VectorClient


class GenAIClient:
    """统一入口。

    - text / vector / image: 三类模型客户端，共用一个 InvocationDispatcher。
    - storage: 向量存储后端，未配置时访问会抛 ConfigError。
    """

    def __init__(
        self,
        runtime_client: RuntimeClient,
        storage: Optional[VectorStorage] = None,
        cfg: Optional[Settings] = None,
    ):
        cfg = cfg or settings
        dispatcher = InvocationDispatcher(runtime_client)
        self.text = TextClient(dispatcher, cfg.default_text_model, cfg.stream_queue_size)
        self.vector = VectorClient(dispatcher, cfg.default_embedding_model)
        self.image = ImageClient(dispatcher, cfg.default_image_model)
        self._storage = storage
        self._rag: Optional[RagOrchestrator] = None

    @property
    def storage(self) -> VectorStorage:
        if self._storage is None:
            raise ConfigError(code="NO_STORAGE_BACKEND", message="No storage backend configured")
        return self._storage

    def with_storage(self, storage: VectorStorage) -> "GenAIClient":
        self._storage = storage
        self._rag = None
        return self

    def embed_and_store(
        self,
        text: str,
        metadata: Optional[Dict[str, Any]] = None,
        namespace: Optional[str] = None,
        model_id: Optional[str] = None,
    ) -> InsertResult:
        """向量化文本并写入存储，content 即原文。"""

        storage = self.storage
        embedding = self.vector.generate_embedding(EmbeddingRequest(text=text, model_id=model_id))
        return storage.insert(
            VectorInsert(
                vector=embedding.embedding,
                metadata=dict(metadata or {}),
                content=text,
                namespace=namespace,
            )
        )

    def semantic_search(
        self,
        query: str,
        limit: int = 5,
        model_id: Optional[str] = None,
        namespace: Optional[str] = None,
        include_content: bool = True,
    ) -> VectorSearchResponse:
        storage = self.storage
        vector = self.vector.embed(query, model_id)
        return storage.search(
            VectorSearch(
                vector=vector,
                limit=limit,
                namespace=namespace,
                include_metadata=True,
                include_content=include_content,
            )
        )

    def generate_with_context(
        self,
        query: str,
        context_limit: int = 5,
        model_id: Optional[str] = None,
        namespace: Optional[str] = None,
        embedding_model: Optional[str] = None,
    ) -> str:
        if self._rag is None:
            self._rag = RagOrchestrator(self.vector, self.storage, self.text)
        return self._rag.generate_with_context(
            query,
            context_limit=context_limit,
            namespace=namespace,
            model_id=model_id,
            embedding_model=embedding_model,
        )

    def close(self) -> None:
        if self._storage is not None:
            self._storage.close()


def create_client(with_storage: bool = False, cfg: Optional[Settings] = None) -> GenAIClient:
    """根据配置创建 GenAIClient；with_storage=True 时同时创建向量存储后端。"""

    cfg = cfg or settings
    storage = create_vector_storage(cfg) if with_storage else None
    return GenAIClient(create_runtime_client(cfg), storage=storage, cfg=cfg)


_client: Optional[GenAIClient] = None


def get_default_client() -> GenAIClient:
    """获取默认的 GenAIClient 实例（单例）；配置了 storage_backend 时带存储。"""
    global _client
    if _client is None:
        _client = create_client(with_storage=bool(settings.storage_backend))
    return _client


def run_rag_query(
    query: str,
    context_limit: int = 5,
    model_id: Optional[str] = None,
    namespace: Optional[str] = None,
) -> Dict[str, Any]:
    """运行一次 RAG 问答。

    Args:
        query: 用户问题
        context_limit: 检索上下文条数
        model_id: 生成模型（可选）
        namespace: 检索 namespace（可选）

    Returns:
        包含 query、answer、model 的字典

    Raises:
        各种 domain.exceptions 中定义的异常
    """
    try:
        client = get_default_client()
        answer = client.generate_with_context(
            query,
            context_limit=context_limit,
            model_id=model_id,
            namespace=namespace,
        )
        return {"query": query, "answer": answer, "model": model_id or settings.default_text_model}
    except GenAIError as e:
        logger.error(
            f"Failed to run RAG query: {e.message}",
            extra={"extra": {"code": e.code, "namespace": namespace}},
        )
        raise
