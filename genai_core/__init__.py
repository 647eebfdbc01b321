"""GenAI Core 顶层包。

该包提供 Bedrock 多厂商模型调用的归一化层与可插拔的向量存储，
包括配置加载、领域模型、请求构造/响应解析/流式解析、
三种向量存储后端以及基于 LangGraph 的 RAG 流程。
"""

from genai_core.api.service import GenAIClient, create_client, get_default_client

__all__ = ["GenAIClient", "create_client", "get_default_client"]
