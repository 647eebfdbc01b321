import json

import httpx
import pytest

from genai_core.config.settings import UpstashConfig
from genai_core.domain.exceptions import ConfigError, RequestError, ServiceError
from genai_core.domain.storage import VectorInsert, VectorSearch, VectorUpdate
from genai_core.infrastructure.storage.upstash import UpstashVectorStorage, render_filter


class FakeResponse:
    def __init__(self, status_code=200, data=None):
        self.status_code = status_code
        self.content = b"" if data is None else json.dumps(data).encode("utf-8")
        self.text = self.content.decode("utf-8")

    def json(self):
        return json.loads(self.content)


class FakeUpstashIndex:
    def __init__(self):
        self.items = {}
        self.calls = []
        self.clients = []
        self.unreachable = set()
        self.query_status = 200

    def handle(self, method, path, json=None, params=None):
        self.calls.append((method, path, json))
        if path in self.unreachable:
            raise httpx.ConnectError("connection refused")
        if method == "GET" and path == "/info":
            return FakeResponse(data={"result": {"vectorCount": len(self.items), "dimension": 2, "indexSize": 1024}})
        if method == "POST" and path == "/upsert":
            self.items[json["id"]] = json
            return FakeResponse(data={"result": "Success"})
        if method == "POST" and path == "/upsert-batch":
            for item in json["vectors"]:
                self.items[item["id"]] = item
            return FakeResponse(data={"result": "Success"})
        if method == "POST" and path == "/fetch":
            return FakeResponse(data={"result": [self.items.get(i) for i in json["ids"]]})
        if method == "DELETE" and path == "/delete":
            deleted = sum(1 for i in json["ids"] if self.items.pop(i, None) is not None)
            return FakeResponse(data={"result": {"deleted": deleted}})
        if method == "POST" and path == "/query":
            if self.query_status >= 400:
                return FakeResponse(self.query_status, {"error": "bad filter"})
            matches = [
                {
                    "id": item["id"],
                    "score": sum(a * b for a, b in zip(item["vector"], json["vector"])),
                    "metadata": item["metadata"],
                }
                for item in self.items.values()
            ]
            matches.sort(key=lambda m: m["score"])
            return FakeResponse(data={"result": matches[: json["topK"]]})
        return FakeResponse(404, {"error": "not found"})


@pytest.fixture
def index(monkeypatch):
    server = FakeUpstashIndex()

    class Client:
        def __init__(self, base_url="", headers=None, timeout=None, trust_env=True):
            self.base_url = base_url
            self.headers = headers or {}
            self.closed = False
            server.clients.append(self)

        def request(self, method, path, json=None, params=None):
            return server.handle(method, path, json=json, params=params)

        def close(self):
            self.closed = True

    monkeypatch.setattr("httpx.Client", Client)
    return server


def _config():
    return UpstashConfig(url="https://vector-test.upstash.io", token="upstash-token")


def test_render_filter():
    assert render_filter({"genre": "drama", "year": 2020, "public": True}) == (
        "genre = 'drama' AND year = 2020 AND public = true"
    )


@pytest.mark.parametrize("flt", [{"tags": ["a", "b"]}, {"owner": None}, {"name": "o'brien"}, {"bad key": 1}])
def test_render_filter_rejects_unexpressible(flt):
    with pytest.raises(RequestError):
        render_filter(flt)


def test_bearer_token_and_health_check(index):
    UpstashVectorStorage(_config())
    assert index.clients[0].headers["Authorization"] == "Bearer upstash-token"
    assert index.clients[0].base_url == "https://vector-test.upstash.io"
    assert index.calls[0][:2] == ("GET", "/info")


def test_unreachable_backend_closes_client(index):
    index.unreachable.add("/info")
    with pytest.raises(ConfigError):
        UpstashVectorStorage(_config())
    assert len(index.clients) == 1
    assert index.clients[0].closed


def test_insert_get_and_namespace_is_informational(index):
    storage = UpstashVectorStorage(_config())
    result = storage.insert(VectorInsert(vector=[0.5, 0.5], metadata={"k": "v"}, content="text", namespace="docs"))
    assert result.success

    record = storage.get(result.id)
    assert record.metadata == {"k": "v"}
    assert record.content == "text"
    assert record.namespace == "docs"
    assert storage.get("missing") is None


def test_search_sorted_with_rendered_filter(index):
    storage = UpstashVectorStorage(_config())
    storage.insert(VectorInsert(id="low", vector=[0.0, 1.0], content="L"))
    storage.insert(VectorInsert(id="high", vector=[1.0, 0.0], content="H"))

    resp = storage.search(VectorSearch(vector=[1.0, 0.0], limit=2, include_content=True, filter={"lang": "en"}))
    assert [r.id for r in resp.results] == ["high", "low"]
    assert [r.content for r in resp.results] == ["H", "L"]
    assert index.calls[-1][2]["filter"] == "lang = 'en'"


def test_search_with_unsupported_filter_sends_nothing(index):
    storage = UpstashVectorStorage(_config())
    before = len(index.calls)
    with pytest.raises(RequestError):
        storage.search(VectorSearch(vector=[1.0, 0.0], filter={"nested": {"a": 1}}))
    assert len(index.calls) == before


def test_search_error_status_is_service_error(index):
    storage = UpstashVectorStorage(_config())
    index.query_status = 400
    with pytest.raises(ServiceError) as exc:
        storage.search(VectorSearch(vector=[1.0, 0.0]))
    assert exc.value.http_status == 400


def test_update_merges_metadata(index):
    storage = UpstashVectorStorage(_config())
    storage.insert(VectorInsert(id="u1", vector=[1.0, 0.0], metadata={"a": 1}, content="c"))
    assert storage.update(VectorUpdate(id="u1", metadata={"b": 2}, vector=[0.0, 1.0])).success
    record = storage.get("u1")
    assert record.metadata == {"a": 1, "b": 2}
    assert record.vector == [0.0, 1.0]
    assert record.content == "c"
    assert storage.update(VectorUpdate(id="missing", content="x")).message == "Vector not found"


def test_delete_and_delete_batch(index):
    storage = UpstashVectorStorage(_config())
    storage.insert(VectorInsert(id="d1", vector=[1.0, 0.0]))
    results = storage.delete_batch(["d1", "d2"])
    assert [(r.id, r.success) for r in results] == [("d1", True), ("d2", False)]
    assert results[1].message == "Vector not found"


def test_insert_batch_and_transport_failure(index):
    storage = UpstashVectorStorage(_config())
    ok = storage.insert_batch([VectorInsert(vector=[1.0, 0.0]), VectorInsert(id="b2", vector=[0.0, 1.0])])
    assert all(r.success for r in ok)
    assert ok[1].id == "b2"
    assert set(index.items) == {ok[0].id, "b2"}

    index.unreachable.add("/upsert-batch")
    failed = storage.insert_batch([VectorInsert(vector=[1.0, 0.0]), VectorInsert(vector=[0.0, 1.0])])
    assert [r.success for r in failed] == [False, False]
    assert failed[0].message == failed[1].message


def test_list_and_stats(index):
    storage = UpstashVectorStorage(_config())
    storage.insert(VectorInsert(vector=[1.0, 0.0]))
    assert storage.list() == []
    stats = storage.stats()
    assert stats.total_vectors == 1
    assert stats.dimensions == 2
    assert stats.storage_size_bytes == 1024
    assert stats.namespaces == ["default"]
