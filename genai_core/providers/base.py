"""Provider 抽象接口。

上层（RAG 流程、GenAIClient）不直接依赖具体客户端实现，而是依赖这些协议，
测试中可以用简单的假对象替换：

- Embedder: 把文本转换为向量。
- TextGenerator: 执行文本生成（非流式/流式）。
"""

from typing import Iterable, List, Optional, Protocol

from genai_core.domain.models import GenerationRequest, GenerationResponse, StreamChunk


class Embedder(Protocol):
    def embed(self, text: str, model_id: Optional[str] = None) -> List[float]:
        ...


class TextGenerator(Protocol):
    def generate(self, req: GenerationRequest) -> GenerationResponse:
        ...

    def generate_stream(self, req: GenerationRequest) -> Iterable[StreamChunk]:
        """执行一次流式生成，逐步产出增量。"""

        ...
