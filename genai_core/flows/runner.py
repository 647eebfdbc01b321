"""High-level entry point for retrieval-augmented generation."""

from __future__ import annotations

from typing import Optional

from genai_core.domain.storage import VectorStorage
from genai_core.flows.graph import build_rag_graph
from genai_core.flows.state import RagState
from genai_core.providers.base import Embedder, TextGenerator


class RagOrchestrator:
    """Compose embedding, retrieval, prompt augmentation and generation."""

    def __init__(self, embedder: Embedder, storage: VectorStorage, generator: TextGenerator):
        self._graph = build_rag_graph(embedder, storage, generator)

    def generate_with_context(
        self,
        query: str,
        *,
        context_limit: int = 5,
        namespace: Optional[str] = None,
        model_id: Optional[str] = None,
        embedding_model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """Run the RAG graph and return the generated text.

        Args:
            query: 用户问题
            context_limit: 检索的上下文条数上限
            namespace: 检索的 namespace
            model_id: 生成模型
            embedding_model: 向量化模型
        """

        state: RagState = {
            "query": query,
            "context_limit": context_limit,
            "namespace": namespace,
            "embedding_model": embedding_model,
            "model_id": model_id,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "query_vector": [],
            "contexts": [],
            "prompt": "",
            "answer": "",
        }
        result = self._graph.invoke(state)
        return result.get("answer") or ""
