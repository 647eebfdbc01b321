"""RAG flow built on LangGraph."""

from genai_core.flows.runner import RagOrchestrator

__all__ = ["RagOrchestrator"]
