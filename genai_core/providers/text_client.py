"""文本生成客户端。

本模块负责：

1. 接收统一的 GenerationRequest，补齐默认模型。
2. 通过 registry 解析厂商族（每个请求只解析一次）。
3. 构造厂商 payload 并交给 InvocationDispatcher。
4. 非流式：用 normalizer 解析为 GenerationResponse；
   流式：启动 ChunkStream，后台线程逐个解析事件。
5. generate 收到 stream=True 的请求时改走流式调用，再拼接为完整结果。
"""

from typing import List, Optional

from genai_core.domain.models import GenerationRequest, GenerationResponse, ModelCategory, ModelInfo
from genai_core.infrastructure.logging.logger import logger
from genai_core.providers.dispatcher import InvocationDispatcher
from genai_core.providers.normalizer import estimate_tokens, parse_text_response
from genai_core.providers.payloads import build_text_payload
from genai_core.providers.registry import (
    DEFAULT_TEXT_MODEL,
    ProviderFamily,
    list_models,
    resolve_family,
    warn_if_uncatalogued,
)
from genai_core.providers.streaming import STREAM_EVENT_PARSERS, STREAM_QUEUE_SIZE, ChunkStream


class TextClient:
    """文本生成客户端。

    - generate: 非流式调用，返回 GenerationResponse。
    - generate_stream: 流式调用，返回按顺序产出 StreamChunk 的 ChunkStream。
    """

    def __init__(
        self,
        dispatcher: InvocationDispatcher,
        default_model: str = DEFAULT_TEXT_MODEL,
        stream_queue_size: int = STREAM_QUEUE_SIZE,
    ):
        self._dispatcher = dispatcher
        self._default_model = default_model
        self._stream_queue_size = stream_queue_size

    def _prepare(self, req: GenerationRequest):
        model_id = req.model_id or self._default_model
        family = resolve_family(model_id, ModelCategory.TEXT, req.provider)
        if req.provider is None:
            warn_if_uncatalogued(model_id)
        return model_id, family

    def generate(self, req: GenerationRequest) -> GenerationResponse:
        """非流式生成。

        req.stream 为 True 且该厂商族支持流式时，改走流式调用并在本地拼接全部分片；
        不支持流式的厂商族（AI21、Cohere）仍走普通调用。
        """

        model_id, family = self._prepare(req)
        if req.stream and family in STREAM_EVENT_PARSERS:
            return self._collect_stream(req, model_id, family)
        payload = build_text_payload(req, family)
        logger.info(
            "text_client.generate",
            extra={"extra": {"model_id": model_id, "family": family.value, "prompt": req.prompt}},
        )
        raw = self._dispatcher.invoke(payload, model_id)
        resp = parse_text_response(raw, family, model_id)
        logger.info(
            "text_client.generate.done",
            extra={
                "extra": {
                    "model_id": model_id,
                    "tokens_generated": resp.tokens_generated,
                    "finish_reason": resp.finish_reason,
                }
            },
        )
        return resp

    def generate_stream(self, req: GenerationRequest) -> ChunkStream:
        model_id, family = self._prepare(req)
        return self._open_stream(req, model_id, family)

    def _open_stream(self, req: GenerationRequest, model_id: str, family: ProviderFamily) -> ChunkStream:
        payload = build_text_payload(req, family)
        logger.info(
            "text_client.generate_stream",
            extra={"extra": {"model_id": model_id, "family": family.value}},
        )
        events = self._dispatcher.invoke_streaming(payload, model_id)
        return ChunkStream(events, family, maxsize=self._stream_queue_size)

    def _collect_stream(self, req: GenerationRequest, model_id: str, family: ProviderFamily) -> GenerationResponse:
        parts: List[str] = []
        finish_reason = None
        with self._open_stream(req, model_id, family) as stream:
            for chunk in stream:
                parts.append(chunk.chunk)
                if chunk.finish_reason is not None:
                    finish_reason = chunk.finish_reason
        text = "".join(parts)
        logger.info(
            "text_client.generate.done",
            extra={"extra": {"model_id": model_id, "chunks": len(parts), "finish_reason": finish_reason}},
        )
        return GenerationResponse(
            text=text,
            model=model_id,
            tokens_generated=estimate_tokens(text),
            tokens_prompt=0,
            finish_reason=finish_reason,
        )

    @staticmethod
    def supported_models() -> List[ModelInfo]:
        return list_models(ModelCategory.TEXT)

    def family_for(self, model_id: Optional[str] = None) -> ProviderFamily:
        return resolve_family(model_id or self._default_model, ModelCategory.TEXT)
