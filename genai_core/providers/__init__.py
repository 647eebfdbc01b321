"""Bedrock Provider 集成层。

该包下的模块负责：
- 定义客户端抽象接口 (base)。
- 维护厂商族与模型目录 (registry)。
- 请求构造、调用分发、响应解析、流式解析 (payloads / dispatcher / normalizer / streaming)。
- 文本、向量、图像三个客户端 (text_client / vector_client / image_client)。
"""

from typing import Any, Optional

import boto3
from botocore.config import Config

from genai_core.config.settings import Settings, settings
from genai_core.providers.dispatcher import InvocationDispatcher
from genai_core.providers.registry import ProviderFamily


def create_runtime_client(cfg: Optional[Settings] = None) -> Any:
    """根据配置创建 bedrock-runtime 客户端；未配置的凭证交给 boto3 默认链处理。"""

    cfg = cfg or settings
    session = boto3.Session(
        aws_access_key_id=cfg.aws_access_key_id,
        aws_secret_access_key=cfg.aws_secret_access_key,
        aws_session_token=cfg.aws_session_token,
        profile_name=cfg.aws_profile,
        region_name=cfg.aws_region,
    )
    return session.client(
        "bedrock-runtime",
        config=Config(
            connect_timeout=cfg.http_timeout,
            read_timeout=cfg.bedrock_read_timeout,
        ),
    )


def create_dispatcher(cfg: Optional[Settings] = None) -> InvocationDispatcher:
    return InvocationDispatcher(create_runtime_client(cfg))


__all__ = ["ProviderFamily", "InvocationDispatcher", "create_runtime_client", "create_dispatcher"]
