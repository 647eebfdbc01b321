"""LangGraph construction and node implementations for RAG.

embed -> retrieve -> augment -> generate. Every node lets errors propagate
unchanged; only an empty retrieval is tolerated (logged as a warning).
"""

from __future__ import annotations

from langgraph.graph import END, StateGraph
from langgraph.graph.state import CompiledStateGraph

from genai_core.domain.models import GenerationRequest
from genai_core.domain.storage import VectorSearch, VectorStorage
from genai_core.flows.state import RagState
from genai_core.infrastructure.logging.logger import logger
from genai_core.prompts import build_rag_prompt
from genai_core.providers.base import Embedder, TextGenerator

CONTEXT_SEPARATOR = "\n\n"


def embed_node(state: RagState, embedder: Embedder) -> RagState:
    logger.info("embed_node.start", extra={"extra": {"model": state.get("embedding_model")}})
    state["query_vector"] = embedder.embed(state["query"], state.get("embedding_model"))
    return state


def retrieve_node(state: RagState, storage: VectorStorage) -> RagState:
    query = VectorSearch(
        vector=state["query_vector"],
        limit=state.get("context_limit", 5),
        namespace=state.get("namespace"),
        include_metadata=True,
        include_content=True,
    )
    response = storage.search(query)
    state["contexts"] = [r.content for r in response.results if r.content]
    logger.info("retrieve_node.end", extra={"extra": {"matches": response.total, "contexts": len(state["contexts"])}})
    return state


def augment_node(state: RagState) -> RagState:
    contexts = state.get("contexts") or []
    if not contexts:
        logger.warning("No relevant context found for query", extra={"extra": {"query": state["query"]}})
    state["prompt"] = build_rag_prompt(state["query"], CONTEXT_SEPARATOR.join(contexts))
    return state


def generate_node(state: RagState, generator: TextGenerator) -> RagState:
    req = GenerationRequest(
        prompt=state["prompt"],
        max_tokens=state.get("max_tokens"),
        temperature=state.get("temperature"),
        model_id=state.get("model_id"),
    )
    result = generator.generate(req)
    state["answer"] = result.text
    logger.info("generate_node.end", extra={"extra": {"model": result.model, "tokens": result.tokens_generated}})
    return state


def build_rag_graph(embedder: Embedder, storage: VectorStorage, generator: TextGenerator) -> CompiledStateGraph:
    graph = StateGraph(RagState)
    graph.add_node("embed", lambda s: embed_node(s, embedder))
    graph.add_node("retrieve", lambda s: retrieve_node(s, storage))
    graph.add_node("augment", augment_node)
    graph.add_node("generate", lambda s: generate_node(s, generator))
    graph.set_entry_point("embed")
    graph.add_edge("embed", "retrieve")
    graph.add_edge("retrieve", "augment")
    graph.add_edge("augment", "generate")
    graph.add_edge("generate", END)
    return graph.compile()
