"""图像生成客户端，支持 Titan Image 与 Stability 两个厂商族。"""

from typing import List

from genai_core.domain.models import ImageGenerationRequest, ImageGenerationResponse, ModelCategory, ModelInfo
from genai_core.infrastructure.logging.logger import logger
from genai_core.providers.dispatcher import InvocationDispatcher
from genai_core.providers.normalizer import parse_image_response
from genai_core.providers.payloads import build_image_payload
from genai_core.providers.registry import DEFAULT_IMAGE_MODEL, list_models, resolve_family


class ImageClient:
    def __init__(self, dispatcher: InvocationDispatcher, default_model: str = DEFAULT_IMAGE_MODEL):
        self._dispatcher = dispatcher
        self._default_model = default_model

    def generate(self, req: ImageGenerationRequest) -> ImageGenerationResponse:
        model_id = req.model_id or self._default_model
        family = resolve_family(model_id, ModelCategory.IMAGE)
        payload = build_image_payload(req, family)
        logger.info("image_client.generate", extra={"extra": {"model_id": model_id, "family": family.value}})
        raw = self._dispatcher.invoke(payload, model_id)
        return parse_image_response(raw, family, model_id)

    @staticmethod
    def supported_models() -> List[ModelInfo]:
        return list_models(ModelCategory.IMAGE)
