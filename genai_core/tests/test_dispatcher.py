import json

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, NoCredentialsError

from genai_core.domain.exceptions import ConfigError, SerializationError, ServiceError, TransportError
from genai_core.providers.dispatcher import InvocationDispatcher


class FakeBody:
    def __init__(self, data: bytes):
        self._data = data

    def read(self):
        return self._data


class FakeEventStream:
    def __init__(self, events, error=None):
        self._events = events
        self._error = error
        self.closed = False

    def __iter__(self):
        yield from self._events
        if self._error is not None:
            raise self._error

    def close(self):
        self.closed = True


class FakeRuntime:
    def __init__(self, body=b"{}", stream=None, error=None):
        self.body = body
        self.stream = stream
        self.error = error
        self.calls = []

    def invoke_model(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return {"body": FakeBody(self.body), "contentType": "application/json"}

    def invoke_model_with_response_stream(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return {"body": self.stream}


def _client_error(code="ValidationException", message="bad input", status=400):
    return ClientError(
        {"Error": {"Code": code, "Message": message}, "ResponseMetadata": {"HTTPStatusCode": status}},
        "InvokeModel",
    )


def test_invoke_sends_json_body_and_returns_bytes():
    runtime = FakeRuntime(body=b'{"outputText":"ok"}')
    raw = InvocationDispatcher(runtime).invoke({"inputText": "你好"}, "amazon.titan-text-express-v1")
    assert raw == b'{"outputText":"ok"}'

    call = runtime.calls[0]
    assert call["modelId"] == "amazon.titan-text-express-v1"
    assert call["contentType"] == "application/json"
    assert call["accept"] == "application/json"
    assert json.loads(call["body"].decode("utf-8")) == {"inputText": "你好"}


def test_service_rejection_keeps_vendor_code_and_message():
    runtime = FakeRuntime(error=_client_error("ThrottlingException", "Rate exceeded", 429))
    with pytest.raises(ServiceError) as exc:
        InvocationDispatcher(runtime).invoke({"inputText": "x"}, "m")
    assert exc.value.code == "ThrottlingException"
    assert exc.value.message == "Rate exceeded"
    assert exc.value.http_status == 429


def test_connection_failure_is_transport_error():
    runtime = FakeRuntime(error=EndpointConnectionError(endpoint_url="https://bedrock-runtime.us-east-1.amazonaws.com"))
    with pytest.raises(TransportError):
        InvocationDispatcher(runtime).invoke({"inputText": "x"}, "m")


def test_missing_credentials_is_config_error():
    runtime = FakeRuntime(error=NoCredentialsError())
    with pytest.raises(ConfigError):
        InvocationDispatcher(runtime).invoke({"inputText": "x"}, "m")


def test_unserializable_payload():
    runtime = FakeRuntime()
    dispatcher = InvocationDispatcher(runtime)
    with pytest.raises(SerializationError):
        dispatcher.invoke({"tags": {1, 2}}, "m")
    with pytest.raises(SerializationError):
        dispatcher.invoke({"temperature": float("nan")}, "m")
    assert runtime.calls == []


def test_streaming_yields_events_and_closes_source():
    stream = FakeEventStream([{"chunk": {"bytes": b"{}"}}, {"chunk": {"bytes": b"{}"}}])
    runtime = FakeRuntime(stream=stream)
    events = list(InvocationDispatcher(runtime).invoke_streaming({"inputText": "x"}, "m"))
    assert len(events) == 2
    assert stream.closed


def test_streaming_error_mid_iteration_is_translated():
    stream = FakeEventStream([{"chunk": {"bytes": b"{}"}}], error=_client_error("ModelStreamErrorException", "boom", 424))
    runtime = FakeRuntime(stream=stream)
    events = InvocationDispatcher(runtime).invoke_streaming({"inputText": "x"}, "m")
    assert next(events) == {"chunk": {"bytes": b"{}"}}
    with pytest.raises(ServiceError) as exc:
        next(events)
    assert exc.value.code == "ModelStreamErrorException"
    assert stream.closed


def test_streaming_connect_error_raised_immediately():
    runtime = FakeRuntime(error=_client_error("AccessDeniedException", "no access", 403))
    with pytest.raises(ServiceError):
        InvocationDispatcher(runtime).invoke_streaming({"inputText": "x"}, "m")
