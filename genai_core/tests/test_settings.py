import json
import logging

import pytest
from pydantic import ValidationError
from pydantic_settings import SettingsConfigDict

from genai_core.config.settings import PineconeConfig, PostgresConfig, Settings, UpstashConfig, settings
from genai_core.domain.exceptions import ConfigError
from genai_core.infrastructure.logging.logger import JsonFormatter
from genai_core.infrastructure.storage.manager import create_vector_storage
from genai_core.infrastructure.storage.pinecone import PineconeVectorStorage
from genai_core.infrastructure.storage.upstash import UpstashVectorStorage


def test_backend_and_log_level_are_normalized():
    cfg = Settings(_env_file=None, storage_backend=" PINECONE ", log_level="debug")
    assert cfg.storage_backend == "pinecone"
    assert cfg.log_level == "DEBUG"
    assert Settings(_env_file=None, storage_backend="").storage_backend is None


def test_invalid_values_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, storage_backend="redis")
    with pytest.raises(ValidationError):
        Settings(_env_file=None, upstash_token="short")


def test_yaml_file_is_loaded(tmp_path, monkeypatch):
    """YAML 中的配置会被读取，优先级低于环境变量。"""
    monkeypatch.delenv("DEFAULT_TEXT_MODEL", raising=False)
    monkeypatch.delenv("HTTP_TIMEOUT", raising=False)
    monkeypatch.setenv("AWS_REGION", "eu-central-1")
    path = tmp_path / "config.yaml"
    path.write_text(
        "default_text_model: meta.llama3-8b-instruct-v1:0\nhttp_timeout: 12\naws_region: us-west-2\n",
        encoding="utf-8",
    )

    class YamlSettings(Settings):
        model_config = SettingsConfigDict(yaml_file=path, env_file=None)

    cfg = YamlSettings()
    assert cfg.default_text_model == "meta.llama3-8b-instruct-v1:0"
    assert cfg.http_timeout == 12
    assert cfg.aws_region == "eu-central-1"


def test_backend_configs_from_settings():
    with pytest.raises(ConfigError) as exc:
        PostgresConfig.from_settings(Settings(_env_file=None, postgres_host="db"))
    assert "postgres_username" in exc.value.message

    with pytest.raises(ConfigError):
        PineconeConfig.from_settings(Settings(_env_file=None, pinecone_api_key="pc-key-123", pinecone_index_name="docs"))

    pc = PineconeConfig.from_settings(
        Settings(
            _env_file=None,
            pinecone_api_key="pc-key-123",
            pinecone_index_name="docs",
            pinecone_host="docs-abc.svc.aped-1.pinecone.io",
        )
    )
    assert pc.base_url == "https://docs-abc.svc.aped-1.pinecone.io"

    up = UpstashConfig.from_settings(
        Settings(_env_file=None, upstash_url="https://x.upstash.io/", upstash_token="tok-12345")
    )
    assert up.url == "https://x.upstash.io"


class OkResponse:
    status_code = 200
    text = "{}"
    content = b"{}"

    def json(self):
        return {}


class OkClient:
    def __init__(self, **kwargs):
        self.kwargs = kwargs

    def request(self, method, path, **kwargs):
        return OkResponse()

    def close(self):
        pass


def test_factory_requires_backend():
    with pytest.raises(ConfigError) as exc:
        create_vector_storage(Settings(_env_file=None, storage_backend=None))
    assert exc.value.message == "No storage backend configured"

    with pytest.raises(ConfigError) as exc:
        create_vector_storage(Settings(_env_file=None), backend="redis")
    assert exc.value.code == "UNKNOWN_STORAGE_BACKEND"


def test_factory_rejects_incomplete_backend_config():
    with pytest.raises(ConfigError):
        create_vector_storage(Settings(_env_file=None, storage_backend="upstash", upstash_url=None, upstash_token=None))


def test_factory_builds_rest_backends(monkeypatch):
    monkeypatch.setattr("httpx.Client", OkClient)
    cfg = Settings(
        _env_file=None,
        storage_backend="pinecone",
        pinecone_api_key="pc-key-123",
        pinecone_index_name="docs",
        pinecone_host="https://docs.pinecone.io",
        upstash_url="https://x.upstash.io",
        upstash_token="tok-12345",
    )
    assert isinstance(create_vector_storage(cfg), PineconeVectorStorage)
    assert isinstance(create_vector_storage(cfg, backend="upstash"), UpstashVectorStorage)


def _record(msg, extra):
    record = logging.LogRecord("genai_core", logging.INFO, __file__, 1, msg, None, None)
    record.extra = extra
    return record


def test_json_formatter_merges_extra(monkeypatch):
    monkeypatch.setattr(settings, "log_redact_content", False)
    line = JsonFormatter().format(_record("text_client.generate", {"model_id": "m", "prompt": "hi"}))
    data = json.loads(line)
    assert data["msg"] == "text_client.generate"
    assert data["level"] == "INFO"
    assert data["model_id"] == "m"
    assert data["prompt"] == "hi"
    assert data["ts"].endswith("Z")


def test_json_formatter_redacts_content(monkeypatch):
    monkeypatch.setattr(settings, "log_redact_content", True)
    data = json.loads(JsonFormatter().format(_record("x" * 100, {"prompt": "secret", "query": "q", "model_id": "m"})))
    assert len(data["msg"]) == 64
    assert "prompt" not in data and "query" not in data
    assert data["model_id"] == "m"
