"""Bedrock 调用分发。

负责把 payload 序列化为 UTF-8 JSON，调用 bedrock-runtime 的
invoke_model / invoke_model_with_response_stream，并把 botocore 的异常
分类为统一异常：

- ClientError（服务端显式拒绝）-> ServiceError，code 为厂商错误码。
- 凭证缺失 -> ConfigError。
- 其他 BotoCoreError（连接失败、超时等）-> TransportError。

这里不做任何重试，重试与超时由 boto3 客户端配置负责。
"""

import json
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Protocol

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    NoCredentialsError,
    PartialCredentialsError,
)

from genai_core.domain.exceptions import ConfigError, SerializationError, ServiceError, TransportError
from genai_core.infrastructure.logging.logger import logger

CONTENT_TYPE = "application/json"


class RuntimeClient(Protocol):
    """bedrock-runtime 客户端需要提供的两个方法（boto3 签名）。"""

    def invoke_model(self, **kwargs: Any) -> Dict[str, Any]:
        ...

    def invoke_model_with_response_stream(self, **kwargs: Any) -> Dict[str, Any]:
        ...


@contextmanager
def translate_boto_errors(model_id: str):
    """把 botocore 异常转换为统一异常。"""

    try:
        yield
    except ClientError as e:
        err = e.response.get("Error") or {}
        status = (e.response.get("ResponseMetadata") or {}).get("HTTPStatusCode") or 500
        code = err.get("Code") or "ServiceError"
        message = err.get("Message") or str(e)
        logger.error(
            "dispatcher.service_error",
            extra={"extra": {"model_id": model_id, "code": code, "status": status}},
        )
        raise ServiceError(
            code=code,
            message=message,
            http_status=status,
            model_id=model_id,
            vendor_message=message,
        ) from e
    except (NoCredentialsError, PartialCredentialsError) as e:
        raise ConfigError(code="MISSING_CREDENTIALS", message=str(e), model_id=model_id) from e
    except BotoCoreError as e:
        logger.error(
            "dispatcher.transport_error",
            extra={"extra": {"model_id": model_id, "error": str(e)}},
        )
        raise TransportError(code="NETWORK_ERROR", message=str(e), http_status=503, model_id=model_id) from e


def serialize_payload(payload: Dict[str, Any]) -> bytes:
    try:
        return json.dumps(payload, ensure_ascii=False, allow_nan=False).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise SerializationError(code="SERIALIZATION_ERROR", message=str(e))


class InvocationDispatcher:
    """一次调用一个请求；流式调用返回惰性的原始事件迭代器。"""

    def __init__(self, client: RuntimeClient):
        self._client = client

    def invoke(self, payload: Dict[str, Any], model_id: str) -> bytes:
        body = serialize_payload(payload)
        logger.info("dispatcher.invoke", extra={"extra": {"model_id": model_id, "bytes": len(body)}})
        with translate_boto_errors(model_id):
            resp = self._client.invoke_model(
                modelId=model_id,
                contentType=CONTENT_TYPE,
                accept=CONTENT_TYPE,
                body=body,
            )
            raw = resp["body"]
            return raw.read() if hasattr(raw, "read") else raw

    def invoke_streaming(self, payload: Dict[str, Any], model_id: str) -> Iterator[Dict[str, Any]]:
        """发起流式调用。

        建立连接阶段的错误直接抛出；读取事件过程中的错误在迭代时抛出，
        由消费方（ChunkStream 的后台线程）转交给调用方。
        """

        body = serialize_payload(payload)
        logger.info("dispatcher.invoke_stream", extra={"extra": {"model_id": model_id, "bytes": len(body)}})
        with translate_boto_errors(model_id):
            resp = self._client.invoke_model_with_response_stream(
                modelId=model_id,
                contentType=CONTENT_TYPE,
                accept=CONTENT_TYPE,
                body=body,
            )
        return self._iter_events(resp["body"], model_id)

    @staticmethod
    def _iter_events(event_stream: Any, model_id: str) -> Iterator[Dict[str, Any]]:
        try:
            with translate_boto_errors(model_id):
                for event in event_stream:
                    yield event
        finally:
            close = getattr(event_stream, "close", None)
            if callable(close):
                close()
