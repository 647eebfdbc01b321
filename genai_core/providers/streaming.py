"""流式事件解析与分片队列。

- translate_stream_event: 纯函数，把单个厂商流式事件解析为 StreamChunk，
  并按厂商族判断是否结束；字段类型不符时抛 ResponseError。
- ChunkStream: 单生产者/单消费者模型。后台线程独占读取事件源，
  把解析后的分片写入有界队列；调用方以迭代器方式按顺序消费。

消费方提前放弃（close / with 退出 / 对象被回收）时会关闭队列，
后台线程下一次 put 失败后安静退出，不向任何人抛错。
后台线程内的其他异常作为错误值放入队列，由消费方在 __next__ 中抛出，之后流结束。
"""

import queue
import threading
from typing import Any, Callable, Dict, Iterable, Iterator, Optional

from genai_core.domain.exceptions import ResponseError
from genai_core.domain.models import StreamChunk
from genai_core.infrastructure.logging.logger import logger
from genai_core.providers.normalizer import RawBody, decode_json, object_field, text_field
from genai_core.providers.registry import ProviderFamily

STREAM_QUEUE_SIZE = 100
ANTHROPIC_STOP_EVENT = "message_stop"


def _str_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _titan_event(data: Dict[str, Any]) -> StreamChunk:
    reason = _str_or_none(data.get("completionReason"))
    return StreamChunk(chunk=text_field(data, "outputText"), done=reason is not None, finish_reason=reason)


def _llama_event(data: Dict[str, Any]) -> StreamChunk:
    reason = _str_or_none(data.get("stop_reason"))
    return StreamChunk(chunk=text_field(data, "generation"), done=reason is not None, finish_reason=reason)


def _mistral_event(data: Dict[str, Any]) -> StreamChunk:
    outputs = data.get("outputs")
    if outputs is None or outputs == []:
        first: Dict[str, Any] = {}
    elif isinstance(outputs, list) and isinstance(outputs[0], dict):
        first = outputs[0]
    else:
        raise ResponseError(code="MISSING_FIELD", message="Malformed field: outputs")
    reason = _str_or_none(first.get("stop_reason"))
    return StreamChunk(chunk=text_field(first, "text"), done=reason is not None, finish_reason=reason)


def _anthropic_event(data: Dict[str, Any]) -> StreamChunk:
    delta = object_field(data, "delta")
    return StreamChunk(
        chunk=text_field(delta, "text"),
        done=data.get("type") == ANTHROPIC_STOP_EVENT,
        finish_reason=_str_or_none(delta.get("stop_reason")),
    )


STREAM_EVENT_PARSERS: Dict[ProviderFamily, Callable[[Dict[str, Any]], StreamChunk]] = {
    ProviderFamily.TITAN_TEXT: _titan_event,
    ProviderFamily.LLAMA: _llama_event,
    ProviderFamily.MISTRAL: _mistral_event,
    ProviderFamily.ANTHROPIC: _anthropic_event,
}


def translate_stream_event(raw: RawBody, family: ProviderFamily) -> StreamChunk:
    """解析单个流式事件的 payload。"""

    parser = STREAM_EVENT_PARSERS.get(family)
    if parser is None:
        raise ResponseError(
            code="UNKNOWN_MODEL_TYPE",
            message="Unexpected model type in streaming response",
        )
    return parser(decode_json(raw))


def translate_envelope(event: Dict[str, Any], family: ProviderFamily) -> StreamChunk:
    """处理 Bedrock 事件外层结构。

    - {"chunk": {"bytes": ...}}：解析 bytes；没有 bytes 时返回空的未结束分片。
    - 其他事件类型：视为流结束。
    """

    if "chunk" in event:
        payload = object_field(event, "chunk").get("bytes")
        if not payload:
            return StreamChunk(chunk="", done=False)
        if not isinstance(payload, (bytes, bytearray, str)):
            raise ResponseError(code="MISSING_FIELD", message="Malformed field: chunk.bytes")
        return translate_stream_event(payload, family)
    return StreamChunk(chunk="", done=True, finish_reason="complete")


class _End:
    pass


_END = _End()


def _pump(events: Iterable[Dict[str, Any]], family: ProviderFamily, q: "queue.Queue[Any]") -> None:
    # 只持有队列，不持有 ChunkStream，保证消费方可以被回收
    count = 0
    try:
        try:
            for event in events:
                chunk = translate_envelope(event, family)
                q.put(chunk)
                count += 1
                if chunk.done:
                    break
        except queue.ShutDown:
            logger.debug("stream.consumer_dropped", extra={"extra": {"chunks": count}})
            return
        except Exception as exc:  # noqa: BLE001 - 作为错误值交给消费方
            logger.warning(
                "stream.worker_error",
                extra={"extra": {"chunks": count, "error": str(exc)}},
            )
            q.put(exc)
        q.put(_END)
    except queue.ShutDown:
        return
    finally:
        close = getattr(events, "close", None)
        if callable(close):
            close()


class ChunkStream(Iterator[StreamChunk]):
    """按接收顺序产出 StreamChunk 的只读、一次性迭代器。"""

    def __init__(
        self,
        events: Iterable[Dict[str, Any]],
        family: ProviderFamily,
        maxsize: int = STREAM_QUEUE_SIZE,
        name: str = "genai-stream",
    ):
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=maxsize)
        self._finished = False
        self._worker = threading.Thread(
            target=_pump,
            args=(events, family, self._queue),
            name=name,
            daemon=True,
        )
        self._worker.start()

    @property
    def worker(self) -> threading.Thread:
        return self._worker

    def __iter__(self) -> "ChunkStream":
        return self

    def __next__(self) -> StreamChunk:
        if self._finished:
            raise StopIteration
        try:
            item = self._queue.get()
        except queue.ShutDown:
            self._finished = True
            raise StopIteration
        if isinstance(item, _End):
            self.close()
            raise StopIteration
        if isinstance(item, BaseException):
            self.close()
            raise item
        return item

    def close(self) -> None:
        """放弃剩余分片，通知后台线程退出。"""

        self._finished = True
        self._queue.shutdown(immediate=True)

    def __enter__(self) -> "ChunkStream":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __del__(self):
        queue_ = getattr(self, "_queue", None)
        if queue_ is not None:
            queue_.shutdown(immediate=True)
