"""厂商响应解析（厂商 JSON -> 统一结果）。

本模块负责：

1. 将原始响应字节解码为 JSON（非 UTF-8 或非法 JSON 统一抛 ResponseError）。
2. 按厂商族读取文本、token 统计与结束原因，构造 GenerationResponse。
3. 解析向量与图像响应。

必需数组为空（例如 completions、generations）时抛 ResponseError，
不会返回“空文本成功”的结果。
"""

import json
import math
from typing import Any, Callable, Dict, List, Union

from genai_core.domain.exceptions import ResponseError
from genai_core.domain.models import EmbeddingResponse, GenerationResponse, ImageGenerationResponse
from genai_core.providers.registry import ProviderFamily

RawBody = Union[bytes, bytearray, str]


def decode_json(raw: RawBody) -> Dict[str, Any]:
    """解码响应体为 JSON 对象。"""

    try:
        text = raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else raw
    except UnicodeDecodeError as e:
        raise ResponseError(code="INVALID_ENCODING", message=f"Response is not valid UTF-8: {e}")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ResponseError(code="INVALID_JSON", message=f"Failed to parse response: {e}")
    if not isinstance(data, dict):
        raise ResponseError(code="INVALID_JSON", message="Response body is not a JSON object")
    return data


def estimate_tokens(text: str) -> int:
    """粗略估算 token 数：按 UTF-8 字节数 / 4 向上取整。"""

    return math.ceil(len(text.encode("utf-8")) / 4)


def _require(data: Dict[str, Any], key: str, kind: type = str) -> Any:
    value = data.get(key)
    if not isinstance(value, kind):
        raise ResponseError(code="MISSING_FIELD", message=f"Response missing required field: {key}")
    return value


def _first(data: Dict[str, Any], key: str, missing: str, empty: str) -> Dict[str, Any]:
    items = data.get(key)
    if items is None:
        raise ResponseError(code="MISSING_FIELD", message=missing)
    if not isinstance(items, list) or not items:
        raise ResponseError(code="EMPTY_RESULT", message=empty)
    first = items[0]
    if not isinstance(first, dict):
        raise ResponseError(code="MISSING_FIELD", message=f"Malformed {key} entry")
    return first


def object_field(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    """读取可选的 JSON 对象字段：缺失或 null 视为空对象，其他类型抛 ResponseError。"""

    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ResponseError(code="MISSING_FIELD", message=f"Malformed field: {key}")
    return value


def text_field(data: Dict[str, Any], key: str) -> str:
    """读取可选的文本字段：缺失或 null 视为空串，非字符串抛 ResponseError。"""

    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ResponseError(code="MISSING_FIELD", message=f"Malformed field: {key}")
    return value


def _int(value: Any) -> int:
    try:
        return max(int(value or 0), 0)
    except (TypeError, ValueError):
        return 0


def _parse_titan(data: Dict[str, Any], model_id: str) -> GenerationResponse:
    text = _require(data, "outputText")
    return GenerationResponse(
        text=text,
        model=model_id,
        tokens_generated=estimate_tokens(text),
        tokens_prompt=0,
        finish_reason=data.get("completionReason"),
    )


def _parse_llama(data: Dict[str, Any], model_id: str) -> GenerationResponse:
    text = _require(data, "generation")
    return GenerationResponse(
        text=text,
        model=model_id,
        tokens_generated=_int(data.get("generation_token_count")),
        tokens_prompt=_int(data.get("prompt_token_count")),
        finish_reason=data.get("stop_reason"),
    )


def _parse_mistral(data: Dict[str, Any], model_id: str) -> GenerationResponse:
    # Bedrock 上的 Mistral 返回 outputs 数组；兼容 Llama 风格的 generation 字段
    if "generation" in data:
        return _parse_llama(data, model_id)
    output = _first(data, "outputs", "No outputs found", "Empty outputs array")
    text = _require(output, "text")
    return GenerationResponse(
        text=text,
        model=model_id,
        tokens_generated=estimate_tokens(text),
        tokens_prompt=0,
        finish_reason=output.get("stop_reason"),
    )


def _loose_object(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    # 只用于 token 统计等附加信息，格式异常时按缺失处理
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def _parse_anthropic(data: Dict[str, Any], model_id: str) -> GenerationResponse:
    block = _first(data, "content", "No content found", "Empty content array")
    text = _require(block, "text")
    usage = _loose_object(data, "usage")
    return GenerationResponse(
        text=text,
        model=model_id,
        tokens_generated=_int(usage.get("output_tokens")),
        tokens_prompt=_int(usage.get("input_tokens")),
        finish_reason=data.get("stop_reason"),
    )


def _parse_ai21(data: Dict[str, Any], model_id: str) -> GenerationResponse:
    completion = _first(data, "completions", "No completions found", "Empty completions array")
    text = object_field(completion, "data").get("text")
    if not isinstance(text, str):
        raise ResponseError(code="MISSING_FIELD", message="Response missing required field: completions[0].data.text")
    tokens = _loose_object(data, "prompt").get("tokens")
    return GenerationResponse(
        text=text,
        model=model_id,
        tokens_generated=len(tokens) if isinstance(tokens, list) else 0,
        tokens_prompt=0,
        finish_reason=_loose_object(completion, "finishReason").get("reason"),
    )


def _parse_cohere(data: Dict[str, Any], model_id: str) -> GenerationResponse:
    generation = _first(data, "generations", "No generations found", "Empty generations array")
    return GenerationResponse(
        text=_require(generation, "text"),
        model=model_id,
        tokens_generated=0,
        tokens_prompt=0,
        finish_reason=generation.get("finish_reason"),
    )


TEXT_RESPONSE_PARSERS: Dict[ProviderFamily, Callable[[Dict[str, Any], str], GenerationResponse]] = {
    ProviderFamily.TITAN_TEXT: _parse_titan,
    ProviderFamily.LLAMA: _parse_llama,
    ProviderFamily.MISTRAL: _parse_mistral,
    ProviderFamily.ANTHROPIC: _parse_anthropic,
    ProviderFamily.AI21: _parse_ai21,
    ProviderFamily.COHERE: _parse_cohere,
}


def parse_text_response(raw: RawBody, family: ProviderFamily, model_id: str) -> GenerationResponse:
    """按厂商族解析一次非流式文本响应。"""

    parser = TEXT_RESPONSE_PARSERS.get(family)
    if parser is None:
        raise ResponseError(code="UNKNOWN_MODEL_TYPE", message="Unknown model type")
    return parser(decode_json(raw), model_id)


def _floats(values: Any) -> List[float]:
    if not isinstance(values, list) or not values:
        raise ResponseError(code="EMPTY_EMBEDDING", message="Embedding response is empty")
    try:
        return [float(v) for v in values]
    except (TypeError, ValueError) as e:
        raise ResponseError(code="INVALID_EMBEDDING", message=f"Embedding contains non-numeric values: {e}")


def parse_embedding_response(raw: RawBody, family: ProviderFamily, model_id: str) -> EmbeddingResponse:
    data = decode_json(raw)
    if family == ProviderFamily.TITAN_EMBED:
        vector = _floats(data.get("embedding"))
    elif family == ProviderFamily.COHERE_EMBED:
        embeddings = data.get("embeddings")
        if not isinstance(embeddings, list) or not embeddings:
            raise ResponseError(code="EMPTY_EMBEDDING", message="No embeddings found")
        vector = _floats(embeddings[0])
    else:
        raise ResponseError(code="UNKNOWN_MODEL_TYPE", message="Unknown model type")
    return EmbeddingResponse(embedding=vector, model=model_id)


def parse_image_response(raw: RawBody, family: ProviderFamily, model_id: str) -> ImageGenerationResponse:
    data = decode_json(raw)
    if family == ProviderFamily.TITAN_IMAGE:
        if data.get("error"):
            raise ResponseError(code="IMAGE_ERROR", message=str(data["error"]))
        images = [img for img in data.get("images") or [] if isinstance(img, str) and img]
    elif family == ProviderFamily.STABILITY:
        images = [
            a.get("base64")
            for a in data.get("artifacts") or []
            if isinstance(a, dict) and a.get("base64")
        ]
    else:
        raise ResponseError(code="UNKNOWN_MODEL_TYPE", message="Unknown model type")
    if not images:
        raise ResponseError(code="EMPTY_RESULT", message="No images found in response")
    return ImageGenerationResponse(image_data=images[0], model=model_id, images=images)
