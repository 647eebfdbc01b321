"""请求 payload 构造（统一请求 -> 厂商 JSON）。

每个厂商族对应一个构造函数，集中在 *_BUILDERS 表里：

- 文本：Titan / Llama / Mistral / Anthropic / AI21 / Cohere。
- 向量：Titan Embed / Cohere Embed。
- 图像：Titan Image / Stability。

默认值在这里补齐（max_tokens=512、temperature=0.7、top_p=0.9），
同一个请求换 model_id 之后可以直接按新的厂商族重新构造。
"""

from typing import Any, Callable, Dict

from genai_core.domain.exceptions import RequestError
from genai_core.domain.models import EmbeddingRequest, GenerationRequest, ImageGenerationRequest
from genai_core.providers.registry import (
    ANTHROPIC_VERSION,
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    DEFAULT_TOP_P,
    ProviderFamily,
)

Payload = Dict[str, Any]


def _max_tokens(req: GenerationRequest) -> int:
    return req.max_tokens if req.max_tokens is not None else DEFAULT_MAX_TOKENS


def _temperature(req: GenerationRequest) -> float:
    return req.temperature if req.temperature is not None else DEFAULT_TEMPERATURE


def _titan_text(req: GenerationRequest) -> Payload:
    return {
        "inputText": req.prompt,
        "textGenerationConfig": {
            "maxTokenCount": _max_tokens(req),
            "temperature": _temperature(req),
            "topP": DEFAULT_TOP_P,
        },
    }


def _llama(req: GenerationRequest) -> Payload:
    return {
        "prompt": req.prompt,
        "max_gen_len": _max_tokens(req),
        "temperature": _temperature(req),
        "top_p": DEFAULT_TOP_P,
    }


def _mistral(req: GenerationRequest) -> Payload:
    return {
        "prompt": req.prompt,
        "max_tokens": _max_tokens(req),
        "temperature": _temperature(req),
        "top_p": DEFAULT_TOP_P,
    }


def _anthropic(req: GenerationRequest) -> Payload:
    return {
        "messages": [{"role": "user", "content": req.prompt}],
        "max_tokens": _max_tokens(req),
        "temperature": _temperature(req),
        "anthropic_version": ANTHROPIC_VERSION,
    }


def _ai21(req: GenerationRequest) -> Payload:
    return {
        "prompt": req.prompt,
        "maxTokens": _max_tokens(req),
        "temperature": _temperature(req),
        "topP": DEFAULT_TOP_P,
    }


def _cohere(req: GenerationRequest) -> Payload:
    return {
        "prompt": req.prompt,
        "max_tokens": _max_tokens(req),
        "temperature": _temperature(req),
        "p": DEFAULT_TOP_P,
    }


TEXT_PAYLOAD_BUILDERS: Dict[ProviderFamily, Callable[[GenerationRequest], Payload]] = {
    ProviderFamily.TITAN_TEXT: _titan_text,
    ProviderFamily.LLAMA: _llama,
    ProviderFamily.MISTRAL: _mistral,
    ProviderFamily.ANTHROPIC: _anthropic,
    ProviderFamily.AI21: _ai21,
    ProviderFamily.COHERE: _cohere,
}


def build_text_payload(req: GenerationRequest, family: ProviderFamily) -> Payload:
    """把 GenerationRequest 转成指定厂商族的请求 JSON。"""

    if not req.prompt or not req.prompt.strip():
        raise RequestError(code="EMPTY_PROMPT", message="Prompt must not be empty")
    if req.max_tokens is not None and req.max_tokens <= 0:
        raise RequestError(code="INVALID_MAX_TOKENS", message=f"max_tokens must be positive: {req.max_tokens}")
    builder = TEXT_PAYLOAD_BUILDERS.get(family)
    if builder is None:
        raise RequestError(
            code="UNSUPPORTED_MODEL",
            message=f"Unsupported model ID: {req.model_id}",
            model_id=req.model_id,
        )
    return builder(req)


def _titan_embed(req: EmbeddingRequest) -> Payload:
    return {"inputText": req.text}


def _cohere_embed(req: EmbeddingRequest) -> Payload:
    return {"texts": [req.text], "input_type": "search_document"}


EMBEDDING_PAYLOAD_BUILDERS: Dict[ProviderFamily, Callable[[EmbeddingRequest], Payload]] = {
    ProviderFamily.TITAN_EMBED: _titan_embed,
    ProviderFamily.COHERE_EMBED: _cohere_embed,
}


def build_embedding_payload(req: EmbeddingRequest, family: ProviderFamily) -> Payload:
    if not req.text or not req.text.strip():
        raise RequestError(code="EMPTY_TEXT", message="Embedding input text must not be empty")
    builder = EMBEDDING_PAYLOAD_BUILDERS.get(family)
    if builder is None:
        raise RequestError(
            code="UNSUPPORTED_MODEL",
            message=f"Unsupported embedding model ID: {req.model_id}",
            model_id=req.model_id,
        )
    return builder(req)


DEFAULT_IMAGE_SIZE = 1024
DEFAULT_CFG_SCALE = 8.0
DEFAULT_STABILITY_STEPS = 30


def _titan_image(req: ImageGenerationRequest) -> Payload:
    config: Payload = {
        "numberOfImages": req.num_images or 1,
        "quality": req.quality or "standard",
        "cfgScale": req.cfg_scale if req.cfg_scale is not None else DEFAULT_CFG_SCALE,
    }
    if req.seed is not None:
        config["seed"] = req.seed
    return {
        "taskType": "TEXT_IMAGE",
        "textToImageParams": {
            "text": req.prompt,
            "width": req.width or DEFAULT_IMAGE_SIZE,
            "height": req.height or DEFAULT_IMAGE_SIZE,
        },
        "imageGenerationConfig": config,
    }


def _stability(req: ImageGenerationRequest) -> Payload:
    return {
        "text_prompts": [{"text": req.prompt, "weight": 1.0}],
        "cfg_scale": req.cfg_scale if req.cfg_scale is not None else DEFAULT_CFG_SCALE,
        "seed": req.seed if req.seed is not None else 0,
        "steps": req.steps or DEFAULT_STABILITY_STEPS,
        "width": req.width or DEFAULT_IMAGE_SIZE,
        "height": req.height or DEFAULT_IMAGE_SIZE,
        "samples": req.num_images or 1,
    }


IMAGE_PAYLOAD_BUILDERS: Dict[ProviderFamily, Callable[[ImageGenerationRequest], Payload]] = {
    ProviderFamily.TITAN_IMAGE: _titan_image,
    ProviderFamily.STABILITY: _stability,
}


def build_image_payload(req: ImageGenerationRequest, family: ProviderFamily) -> Payload:
    if not req.prompt or not req.prompt.strip():
        raise RequestError(code="EMPTY_PROMPT", message="Prompt must not be empty")
    builder = IMAGE_PAYLOAD_BUILDERS.get(family)
    if builder is None:
        raise RequestError(
            code="UNSUPPORTED_MODEL",
            message=f"Unsupported image model ID: {req.model_id}",
            model_id=req.model_id,
        )
    return builder(req)
