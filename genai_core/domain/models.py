"""统一的请求与结果数据模型。

本模块定义了不同厂商模型之间共享的标准数据结构：

- GenerationRequest / GenerationResponse: 文本生成的统一请求与结果。
- StreamChunk: 流式生成的统一增量。
- EmbeddingRequest / EmbeddingResponse: 向量化请求与结果。
- ImageGenerationRequest / ImageGenerationResponse: 图像生成请求与结果。
- ModelInfo: 模型目录条目。

所有 Provider 适配逻辑（payloads / normalizer / streaming）都只依赖这些模型，
并负责在各家 JSON 与这些模型之间做转换。默认值（max_tokens、temperature 等）
在构造 payload 时才应用，不写死在请求对象里。
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from genai_core.providers.registry import ProviderFamily


class ModelCategory(str, Enum):
    """模型类别。"""

    TEXT = "text"
    IMAGE = "image"
    EMBEDDING = "embedding"


@dataclass(frozen=True)
class GenerationRequest:
    """一次文本生成请求（不可变）。

    - prompt: 非空提示词。
    - max_tokens / temperature: 可选，缺省时由 RequestBuilder 按厂商规则补齐。
    - model_id: 可选，缺省使用基线模型。
    - stream: 为 True 时 TextClient.generate 改走流式调用并拼接结果（厂商族支持流式时）。
    - provider: 显式指定厂商族，用于推理配置 ARN 等无法按前缀识别的 ID。
    """

    prompt: str
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    model_id: Optional[str] = None
    stream: bool = False
    provider: Optional["ProviderFamily"] = None

    def with_model(self, model_id: str) -> "GenerationRequest":
        """返回换了 model_id 的副本，其余字段保持不变。"""

        return replace(self, model_id=model_id, provider=None)


@dataclass
class GenerationResponse:
    """一次文本生成的统一结果。

    tokens_generated 在厂商未返回时为估算值；tokens_prompt 未知时为 0。
    """

    text: str
    model: str
    tokens_generated: int = 0
    tokens_prompt: int = 0
    finish_reason: Optional[str] = None


@dataclass
class StreamChunk:
    """流式生成的单个增量。done=True 的分片为该流的终止分片。"""

    chunk: str
    done: bool = False
    finish_reason: Optional[str] = None


@dataclass(frozen=True)
class EmbeddingRequest:
    text: str
    model_id: Optional[str] = None


@dataclass
class EmbeddingResponse:
    embedding: List[float]
    model: str

    @property
    def dimensions(self) -> int:
        return len(self.embedding)


@dataclass(frozen=True)
class ImageGenerationRequest:
    """图像生成请求。

    cfg_scale / seed / steps 对 Stability 系列生效；Titan 只使用 cfg_scale 与 seed。
    """

    prompt: str
    model_id: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    num_images: Optional[int] = None
    cfg_scale: Optional[float] = None
    seed: Optional[int] = None
    steps: Optional[int] = None
    quality: Optional[str] = None


@dataclass
class ImageGenerationResponse:
    """图像生成结果，image_data 为第一张图片的 base64 字符串。"""

    image_data: str
    model: str
    images: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ModelInfo:
    """模型目录条目，对应 registry 中的 MODEL_CATALOG。"""

    id: str
    name: str
    provider: str
    category: ModelCategory
    max_tokens: int
    description: str = ""
