"""向量存储后端工厂：根据配置选择 postgres / pinecone / upstash。"""

from typing import Optional

from genai_core.config.settings import PineconeConfig, PostgresConfig, Settings, UpstashConfig, settings
from genai_core.domain.exceptions import ConfigError
from genai_core.domain.storage import VectorStorage
from genai_core.infrastructure.logging.logger import logger


def create_vector_storage(cfg: Optional[Settings] = None, backend: Optional[str] = None) -> VectorStorage:
    """创建向量存储后端。

    后端名称优先取参数 backend，其次取配置中的 storage_backend；
    未配置或对应后端配置不完整时抛 ConfigError。后端构造时会做一次健康检查。
    """

    cfg = cfg or settings
    name = (backend or cfg.storage_backend or "").lower()
    if not name:
        raise ConfigError(code="NO_STORAGE_BACKEND", message="No storage backend configured")

    logger.info("storage.create", extra={"extra": {"backend": name}})
    if name == "postgres":
        from genai_core.infrastructure.storage.postgres import PostgresVectorStorage

        return PostgresVectorStorage(PostgresConfig.from_settings(cfg))
    if name == "pinecone":
        from genai_core.infrastructure.storage.pinecone import PineconeVectorStorage

        return PineconeVectorStorage(PineconeConfig.from_settings(cfg))
    if name == "upstash":
        from genai_core.infrastructure.storage.upstash import UpstashVectorStorage

        return UpstashVectorStorage(UpstashConfig.from_settings(cfg))
    raise ConfigError(code="UNKNOWN_STORAGE_BACKEND", message=f"Unknown storage backend: {name}")
