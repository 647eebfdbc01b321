"""向量存储后端实现。

- postgres: PostgreSQL + pgvector，支持原生 list 与部分更新。
- pinecone: Pinecone REST，原生 namespace。
- upstash: Upstash Vector REST，namespace 仅记录在 metadata 中。
- manager: 根据配置创建后端。
"""

from genai_core.infrastructure.storage.manager import create_vector_storage

__all__ = ["create_vector_storage"]
