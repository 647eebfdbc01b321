"""厂商族与模型目录。

本模块将“模型 ID”与“厂商族（ProviderFamily）”解耦：

- 模型 ID：Bedrock 上的具体模型，例如 "anthropic.claude-3-haiku-20240307-v1:0"。
- 厂商族：共用同一套请求/响应/流式 JSON 结构的一组模型，例如 Anthropic Messages。

每次请求只做一次前缀匹配得到 ProviderFamily，后续构造 payload、解析响应、
解析流式事件都按 ProviderFamily 分发，不再重复做字符串匹配。"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple

from genai_core.domain.exceptions import RequestError
from genai_core.domain.models import ModelCategory, ModelInfo
from genai_core.infrastructure.logging.logger import logger


class ProviderFamily(str, Enum):
    """厂商族标识。"""

    TITAN_TEXT = "titan-text"
    LLAMA = "llama"
    MISTRAL = "mistral"
    ANTHROPIC = "anthropic"
    AI21 = "ai21"
    COHERE = "cohere"
    TITAN_EMBED = "titan-embed"
    COHERE_EMBED = "cohere-embed"
    TITAN_IMAGE = "titan-image"
    STABILITY = "stability"


DEFAULT_TEXT_MODEL = "amazon.titan-text-express-v1"
DEFAULT_EMBEDDING_MODEL = "amazon.titan-embed-text-v1"
DEFAULT_IMAGE_MODEL = "amazon.titan-image-generator-v1"

DEFAULT_MAX_TOKENS = 512
DEFAULT_TEMPERATURE = 0.7
DEFAULT_TOP_P = 0.9
ANTHROPIC_VERSION = "bedrock-2023-05-31"

# 跨区域推理配置的前缀，例如 "us.anthropic.claude-3-haiku-..."
_INFERENCE_PROFILE_PREFIXES = ("us.", "eu.", "apac.", "us-gov.")


@dataclass(frozen=True)
class FamilyRule:
    """前缀 -> 厂商族 的单条匹配规则。"""

    prefix: str
    family: ProviderFamily


# 按类别分表，顺序即匹配优先级（amazon.titan-embed 必须在 embedding 表里匹配，
# 不能被文本表的 amazon.titan 吃掉）。
FAMILY_RULES: Mapping[ModelCategory, Tuple[FamilyRule, ...]] = {
    ModelCategory.TEXT: (
        FamilyRule("amazon.titan", ProviderFamily.TITAN_TEXT),
        FamilyRule("meta.llama", ProviderFamily.LLAMA),
        FamilyRule("mistral.", ProviderFamily.MISTRAL),
        FamilyRule("anthropic.claude", ProviderFamily.ANTHROPIC),
        FamilyRule("ai21.", ProviderFamily.AI21),
        FamilyRule("cohere.command", ProviderFamily.COHERE),
    ),
    ModelCategory.EMBEDDING: (
        FamilyRule("amazon.titan-embed", ProviderFamily.TITAN_EMBED),
        FamilyRule("cohere.embed", ProviderFamily.COHERE_EMBED),
    ),
    ModelCategory.IMAGE: (
        FamilyRule("amazon.titan-image", ProviderFamily.TITAN_IMAGE),
        FamilyRule("stability.", ProviderFamily.STABILITY),
    ),
}

_CATEGORY_NAMES = {
    ModelCategory.TEXT: "model",
    ModelCategory.EMBEDDING: "embedding model",
    ModelCategory.IMAGE: "image model",
}


def _families_of(category: ModelCategory) -> List[ProviderFamily]:
    return [rule.family for rule in FAMILY_RULES[category]]


def _strip_profile_prefix(model_id: str) -> str:
    for prefix in _INFERENCE_PROFILE_PREFIXES:
        if model_id.startswith(prefix):
            return model_id[len(prefix):]
    return model_id


def resolve_family(
    model_id: str,
    category: ModelCategory = ModelCategory.TEXT,
    explicit: Optional[ProviderFamily] = None,
) -> ProviderFamily:
    """根据模型 ID 解析厂商族。

    - explicit 不为空时直接使用（需属于该类别），用于 ARN 等无法按前缀识别的 ID。
    - 否则按类别的前缀表依次匹配；匹配失败抛 RequestError，错误信息包含模型 ID。
    """

    if explicit is not None:
        if explicit not in _families_of(category):
            raise RequestError(
                code="UNSUPPORTED_MODEL",
                message=f"Provider {explicit.value} does not serve {category.value} models: {model_id}",
                model_id=model_id,
            )
        return explicit

    key = _strip_profile_prefix(model_id or "")
    for rule in FAMILY_RULES[category]:
        if key.startswith(rule.prefix):
            return rule.family
    raise RequestError(
        code="UNSUPPORTED_MODEL",
        message=f"Unsupported {_CATEGORY_NAMES[category]} ID: {model_id}",
        model_id=model_id,
    )


def _text(model_id: str, name: str, provider: str, max_tokens: int, description: str) -> ModelInfo:
    return ModelInfo(model_id, name, provider, ModelCategory.TEXT, max_tokens, description)


MODEL_CATALOG: Tuple[ModelInfo, ...] = (
    # Amazon Titan
    _text("amazon.titan-text-express-v1", "Titan Text Express", "Amazon", 8192, "General purpose text model"),
    _text("amazon.titan-text-lite-v1", "Titan Text Lite", "Amazon", 4096, "Lightweight text model"),
    _text("amazon.titan-text-premier-v1:0", "Titan Text Premier", "Amazon", 32000, "Advanced text model"),
    # Anthropic Claude
    _text("anthropic.claude-3-5-sonnet-20240620-v1:0", "Claude 3.5 Sonnet", "Anthropic", 200000, "Most capable Claude model"),
    _text("anthropic.claude-3-sonnet-20240229-v1:0", "Claude 3 Sonnet", "Anthropic", 200000, "Balanced performance and speed"),
    _text("anthropic.claude-3-haiku-20240307-v1:0", "Claude 3 Haiku", "Anthropic", 200000, "Fast and cost-effective"),
    _text("anthropic.claude-3-opus-20240229-v1:0", "Claude 3 Opus", "Anthropic", 200000, "Most powerful Claude 3 model"),
    _text("anthropic.claude-v2:1", "Claude 2.1", "Anthropic", 200000, "Previous generation Claude"),
    _text("anthropic.claude-instant-v1", "Claude Instant", "Anthropic", 100000, "Fast, lightweight Claude"),
    # Meta Llama
    _text("meta.llama2-13b-chat-v1", "Llama 2 13B Chat", "Meta", 4096, "Llama 2 chat, 13B"),
    _text("meta.llama2-70b-chat-v1", "Llama 2 70B Chat", "Meta", 4096, "Llama 2 chat, 70B"),
    _text("meta.llama3-8b-instruct-v1:0", "Llama 3 8B Instruct", "Meta", 8192, "Llama 3 instruct, 8B"),
    _text("meta.llama3-70b-instruct-v1:0", "Llama 3 70B Instruct", "Meta", 8192, "Llama 3 instruct, 70B"),
    _text("meta.llama3-1-8b-instruct-v1:0", "Llama 3.1 8B Instruct", "Meta", 128000, "Llama 3.1 instruct, 8B"),
    _text("meta.llama3-1-70b-instruct-v1:0", "Llama 3.1 70B Instruct", "Meta", 128000, "Llama 3.1 instruct, 70B"),
    _text("meta.llama3-1-405b-instruct-v1:0", "Llama 3.1 405B Instruct", "Meta", 128000, "Llama 3.1 instruct, 405B"),
    # Mistral
    _text("mistral.mistral-7b-instruct-v0:2", "Mistral 7B Instruct", "Mistral AI", 32000, "Efficient 7B model"),
    _text("mistral.mixtral-8x7b-instruct-v0:1", "Mixtral 8x7B Instruct", "Mistral AI", 32000, "Sparse mixture of experts"),
    _text("mistral.mistral-large-2402-v1:0", "Mistral Large (24.02)", "Mistral AI", 32000, "Flagship model"),
    _text("mistral.mistral-large-2407-v1:0", "Mistral Large (24.07)", "Mistral AI", 128000, "Flagship model, 2407"),
    # AI21
    _text("ai21.j2-ultra-v1", "Jurassic-2 Ultra", "AI21 Labs", 8192, "Most capable Jurassic model"),
    _text("ai21.j2-mid-v1", "Jurassic-2 Mid", "AI21 Labs", 8192, "Mid-size Jurassic model"),
    _text("ai21.jamba-instruct-v1:0", "Jamba Instruct", "AI21 Labs", 256000, "Hybrid SSM-transformer model"),
    # Cohere
    _text("cohere.command-text-v14", "Command", "Cohere", 4096, "Instruction-following model"),
    _text("cohere.command-light-text-v14", "Command Light", "Cohere", 4096, "Smaller, faster Command"),
    _text("cohere.command-r-v1:0", "Command R", "Cohere", 128000, "Retrieval-optimized model"),
    _text("cohere.command-r-plus-v1:0", "Command R+", "Cohere", 128000, "Most capable Command R model"),
    # Embeddings
    ModelInfo("amazon.titan-embed-text-v1", "Titan Embeddings G1 - Text", "Amazon", ModelCategory.EMBEDDING, 8192, "1536-dim text embeddings"),
    ModelInfo("amazon.titan-embed-text-v2:0", "Titan Text Embeddings V2", "Amazon", ModelCategory.EMBEDDING, 8192, "1024-dim text embeddings"),
    ModelInfo("cohere.embed-english-v3", "Cohere Embed English", "Cohere", ModelCategory.EMBEDDING, 512, "English embeddings"),
    ModelInfo("cohere.embed-multilingual-v3", "Cohere Embed Multilingual", "Cohere", ModelCategory.EMBEDDING, 512, "Multilingual embeddings"),
    # Images
    ModelInfo("amazon.titan-image-generator-v1", "Titan Image Generator G1", "Amazon", ModelCategory.IMAGE, 0, "Text-to-image"),
    ModelInfo("amazon.titan-image-generator-v2:0", "Titan Image Generator G1 v2", "Amazon", ModelCategory.IMAGE, 0, "Text-to-image, v2"),
    ModelInfo("stability.stable-diffusion-xl-v1:0", "Stable Diffusion XL", "Stability AI", ModelCategory.IMAGE, 0, "SDXL 1.0"),
)

_CATALOG_BY_ID: Dict[str, ModelInfo] = {m.id: m for m in MODEL_CATALOG}


def list_models(category: Optional[ModelCategory] = None) -> List[ModelInfo]:
    """返回模型目录，可按类别过滤。"""

    return [m for m in MODEL_CATALOG if category is None or m.category == category]


def get_model_info(model_id: str) -> Optional[ModelInfo]:
    return _CATALOG_BY_ID.get(_strip_profile_prefix(model_id))


def is_supported(model_id: str) -> bool:
    return get_model_info(model_id) is not None


def warn_if_uncatalogued(model_id: str) -> None:
    """模型能解析出厂商族但不在目录中时，只记录警告，不拒绝请求。"""

    if not is_supported(model_id):
        logger.warning(
            "registry.uncatalogued_model",
            extra={"extra": {"model_id": model_id}},
        )
