"""State definition for the RAG graph."""

from __future__ import annotations

from typing import List, Optional, TypedDict


class RagState(TypedDict, total=False):
    """State shared across LangGraph nodes."""

    query: str
    context_limit: int
    namespace: Optional[str]
    embedding_model: Optional[str]
    model_id: Optional[str]
    max_tokens: Optional[int]
    temperature: Optional[float]
    query_vector: List[float]
    contexts: List[str]
    prompt: str
    answer: str
