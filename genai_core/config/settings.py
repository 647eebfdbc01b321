"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置，优先级依次降低。
YAML 文件路径可通过 GENAI_CONFIG_FILE 指定，否则查找当前目录下的 config.yaml。
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, YamlConfigSettingsSource

from genai_core.domain.exceptions import ConfigError


def _yaml_candidates() -> List[Path]:
    """返回可能存在的 config.yaml 路径（不存在的文件会被忽略）。"""
    candidates: List[Path] = []
    explicit = os.getenv("GENAI_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])
    seen: List[Path] = []
    for path in candidates:
        if path not in seen:
            seen.append(path)
    return seen


StorageBackendName = Literal["postgres", "pinecone", "upstash"]


class Settings(BaseSettings):
    """配置设置。"""

    # ---- Bedrock 相关配置 ----
    aws_region: str = Field(default="us-east-1", description="Bedrock 所在区域")
    aws_access_key_id: Optional[str] = Field(default=None, description="AWS Access Key")
    aws_secret_access_key: Optional[str] = Field(default=None, description="AWS Secret Key")
    aws_session_token: Optional[str] = Field(default=None, description="临时凭证 Session Token")
    aws_profile: Optional[str] = Field(default=None, description="使用的本地 AWS profile")

    default_text_model: str = Field(default="amazon.titan-text-express-v1")
    default_embedding_model: str = Field(default="amazon.titan-embed-text-v1")
    default_image_model: str = Field(default="amazon.titan-image-generator-v1")

    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")
    bedrock_read_timeout: float = Field(default=120.0, ge=1.0, description="Bedrock 读取超时（秒）")
    stream_queue_size: int = Field(default=100, ge=1, le=10000, description="流式分片队列容量")

    log_dir: str = Field(default="logs", description="日志目录")
    log_level: str = Field(default="INFO", description="日志级别")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    # ---- 向量存储 ----
    storage_backend: Optional[StorageBackendName] = Field(
        default=None,
        description="向量存储后端：postgres、pinecone、upstash",
    )

    postgres_host: Optional[str] = None
    postgres_port: int = Field(default=5432, ge=1, le=65535)
    postgres_username: Optional[str] = None
    postgres_password: Optional[str] = None
    postgres_database: Optional[str] = None
    postgres_pool_min_size: int = Field(default=1, ge=0)
    postgres_pool_max_size: int = Field(default=10, ge=1)

    pinecone_api_key: Optional[str] = None
    pinecone_environment: Optional[str] = None
    pinecone_index_name: Optional[str] = None
    pinecone_project_id: Optional[str] = None
    pinecone_host: Optional[str] = Field(default=None, description="索引完整 host，优先于拼接地址")

    upstash_url: Optional[str] = None
    upstash_token: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        yaml_file=_yaml_candidates(),
        yaml_file_encoding="utf-8",
    )

    @field_validator("storage_backend", "log_level", mode="before")
    @classmethod
    def normalize_case(cls, v):
        if isinstance(v, str):
            v = v.strip()
            if not v:
                return None
            return v.upper() if v.lower() in {"debug", "info", "warning", "error", "critical"} else v.lower()
        return v

    @field_validator("pinecone_api_key", "upstash_token")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and len(v) < 8:
            raise ValueError("API key seems too short")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )


@dataclass
class PostgresConfig:
    host: str
    port: int
    username: str
    password: str
    database: str
    pool_min_size: int = 1
    pool_max_size: int = 10

    @property
    def conninfo(self) -> str:
        return (
            f"host={self.host} port={self.port} user={self.username} "
            f"password={self.password} dbname={self.database}"
        )

    @classmethod
    def from_settings(cls, cfg: Settings) -> "PostgresConfig":
        missing = [
            name
            for name in ("postgres_host", "postgres_username", "postgres_password", "postgres_database")
            if not getattr(cfg, name)
        ]
        if missing:
            raise ConfigError(
                code="POSTGRES_CONFIG_REQUIRED",
                message=f"PostgreSQL config required, missing: {', '.join(missing)}",
            )
        return cls(
            host=cfg.postgres_host,
            port=cfg.postgres_port,
            username=cfg.postgres_username,
            password=cfg.postgres_password,
            database=cfg.postgres_database,
            pool_min_size=cfg.postgres_pool_min_size,
            pool_max_size=cfg.postgres_pool_max_size,
        )


@dataclass
class PineconeConfig:
    api_key: str
    index_name: str
    environment: Optional[str] = None
    project_id: Optional[str] = None
    host: Optional[str] = None
    timeout: float = 30.0

    @property
    def base_url(self) -> str:
        if self.host:
            host = self.host.rstrip("/")
            return host if host.startswith("http") else f"https://{host}"
        return f"https://{self.index_name}-{self.project_id}.svc.{self.environment}.pinecone.io"

    @classmethod
    def from_settings(cls, cfg: Settings) -> "PineconeConfig":
        if not cfg.pinecone_api_key or not cfg.pinecone_index_name:
            raise ConfigError(code="PINECONE_CONFIG_REQUIRED", message="Pinecone config required")
        if not cfg.pinecone_host and not (cfg.pinecone_environment and cfg.pinecone_project_id):
            raise ConfigError(
                code="PINECONE_CONFIG_REQUIRED",
                message="Pinecone host or environment/project_id required",
            )
        return cls(
            api_key=cfg.pinecone_api_key,
            index_name=cfg.pinecone_index_name,
            environment=cfg.pinecone_environment,
            project_id=cfg.pinecone_project_id,
            host=cfg.pinecone_host,
            timeout=cfg.http_timeout,
        )


@dataclass
class UpstashConfig:
    url: str
    token: str
    timeout: float = 30.0

    @classmethod
    def from_settings(cls, cfg: Settings) -> "UpstashConfig":
        if not cfg.upstash_url or not cfg.upstash_token:
            raise ConfigError(code="UPSTASH_CONFIG_REQUIRED", message="Upstash config required")
        return cls(url=cfg.upstash_url.rstrip("/"), token=cfg.upstash_token, timeout=cfg.http_timeout)


settings = Settings()
