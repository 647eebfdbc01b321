"""向量化（Embedding）客户端。"""

from typing import List, Optional

from genai_core.domain.models import EmbeddingRequest, EmbeddingResponse, ModelCategory, ModelInfo
from genai_core.infrastructure.logging.logger import logger
from genai_core.providers.dispatcher import InvocationDispatcher
from genai_core.providers.normalizer import parse_embedding_response
from genai_core.providers.payloads import build_embedding_payload
from genai_core.providers.registry import DEFAULT_EMBEDDING_MODEL, list_models, resolve_family


class VectorClient:
    def __init__(self, dispatcher: InvocationDispatcher, default_model: str = DEFAULT_EMBEDDING_MODEL):
        self._dispatcher = dispatcher
        self._default_model = default_model

    def generate_embedding(self, req: EmbeddingRequest) -> EmbeddingResponse:
        model_id = req.model_id or self._default_model
        family = resolve_family(model_id, ModelCategory.EMBEDDING)
        payload = build_embedding_payload(req, family)
        raw = self._dispatcher.invoke(payload, model_id)
        resp = parse_embedding_response(raw, family, model_id)
        logger.info(
            "vector_client.embedding",
            extra={"extra": {"model_id": model_id, "dimensions": resp.dimensions}},
        )
        return resp

    def embed(self, text: str, model_id: Optional[str] = None) -> List[float]:
        return self.generate_embedding(EmbeddingRequest(text=text, model_id=model_id)).embedding

    @staticmethod
    def supported_models() -> List[ModelInfo]:
        return list_models(ModelCategory.EMBEDDING)
