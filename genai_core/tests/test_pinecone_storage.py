import json

import httpx
import pytest

from genai_core.config.settings import PineconeConfig
from genai_core.domain.exceptions import ConfigError
from genai_core.domain.storage import VectorInsert, VectorSearch, VectorUpdate
from genai_core.infrastructure.storage.base import RestVectorBackend
from genai_core.infrastructure.storage.pinecone import PineconeVectorStorage


class FakeResponse:
    def __init__(self, status_code=200, data=None):
        self.status_code = status_code
        self.content = b"" if data is None else json.dumps(data).encode("utf-8")
        self.text = self.content.decode("utf-8")

    def json(self):
        return json.loads(self.content)


class FakePineconeIndex:
    """内存版 Pinecone 索引，只实现用到的几个 REST 接口。"""

    def __init__(self):
        self.namespaces = {}
        self.calls = []
        self.clients = []
        self.unreachable = set()
        self.status_override = {}

    def handle(self, method, path, json=None, params=None):
        self.calls.append((method, path, json, params))
        if path in self.unreachable:
            raise httpx.ConnectError("connection refused")
        if path in self.status_override:
            return FakeResponse(self.status_override[path], {"message": "boom"})

        if method == "POST" and path == "/describe_index_stats":
            return FakeResponse(
                data={
                    "namespaces": {ns: {"vectorCount": len(v)} for ns, v in self.namespaces.items()},
                    "dimension": 3,
                    "totalVectorCount": sum(len(v) for v in self.namespaces.values()),
                }
            )
        if method == "POST" and path == "/vectors/upsert":
            ns = self.namespaces.setdefault(json["namespace"], {})
            for item in json["vectors"]:
                ns[item["id"]] = item
            return FakeResponse(data={"upsertedCount": len(json["vectors"])})
        if method == "GET" and path == "/vectors/fetch":
            ns = self.namespaces.get(params["namespace"], {})
            return FakeResponse(data={"vectors": {i: ns[i] for i in params["ids"] if i in ns}})
        if method == "POST" and path == "/vectors/delete":
            ns = self.namespaces.get(json["namespace"], {})
            for i in json["ids"]:
                ns.pop(i, None)
            return FakeResponse(data={})
        if method == "POST" and path == "/query":
            ns = self.namespaces.get(json["namespace"], {})
            matches = []
            for item in ns.values():
                flt = json.get("filter") or {}
                if any(item["metadata"].get(k) != v for k, v in flt.items()):
                    continue
                score = sum(a * b for a, b in zip(item["values"], json["vector"]))
                match = {"id": item["id"], "score": score}
                if json["includeMetadata"]:
                    match["metadata"] = item["metadata"]
                if json["includeValues"]:
                    match["values"] = item["values"]
                matches.append(match)
            # 故意按分数升序返回，验证客户端会重新排序
            matches.sort(key=lambda m: m["score"])
            return FakeResponse(data={"matches": matches[: json["topK"]], "namespace": json["namespace"]})
        return FakeResponse(404, {"message": "not found"})


@pytest.fixture
def index(monkeypatch):
    server = FakePineconeIndex()

    class Client:
        def __init__(self, base_url="", headers=None, timeout=None, trust_env=True):
            self.base_url = base_url
            self.headers = headers or {}
            self.timeout = timeout
            self.closed = False
            server.clients.append(self)

        def request(self, method, path, json=None, params=None):
            return server.handle(method, path, json=json, params=params)

        def close(self):
            self.closed = True

    monkeypatch.setattr("httpx.Client", Client)
    return server


def _config():
    return PineconeConfig(api_key="pc-test-key", index_name="docs", environment="us-east-1-aws", project_id="abc123")


def test_client_uses_api_key_and_index_url(index):
    storage = PineconeVectorStorage(_config())
    client = index.clients[0]
    assert client.base_url == "https://docs-abc123.svc.us-east-1-aws.pinecone.io"
    assert client.headers["Api-Key"] == "pc-test-key"
    assert index.calls[0][:2] == ("POST", "/describe_index_stats")
    storage.close()
    assert client.closed


def test_unhealthy_backend_rejected_at_construction(index):
    index.status_override["/describe_index_stats"] = 401
    with pytest.raises(ConfigError):
        PineconeVectorStorage(_config())
    assert index.clients[0].closed


def test_unreachable_backend_closes_client(index):
    index.unreachable.add("/describe_index_stats")
    with pytest.raises(ConfigError) as exc:
        PineconeVectorStorage(_config())
    assert exc.value.code == "BACKEND_UNAVAILABLE"
    assert index.clients[0].closed


def test_rest_backend_requires_health_check(index):
    with pytest.raises(TypeError):
        RestVectorBackend("https://example.invalid", {}, 1.0)
    assert index.clients == []


def test_insert_then_get_round_trip(index):
    storage = PineconeVectorStorage(_config())
    result = storage.insert(
        VectorInsert(vector=[0.1, 0.2, 0.3], metadata={"source": "wiki"}, content="hello", namespace="docs")
    )
    assert result.success

    record = storage.get(result.id, "docs")
    assert record.vector == pytest.approx([0.1, 0.2, 0.3])
    assert record.metadata == {"source": "wiki"}
    assert record.content == "hello"
    assert record.namespace == "docs"
    assert storage.get(result.id, "other") is None


def test_search_results_sorted_and_reserved_keys_stripped(index):
    storage = PineconeVectorStorage(_config())
    storage.insert(VectorInsert(id="a", vector=[1.0, 0.0, 0.0], content="A", metadata={"lang": "en"}))
    storage.insert(VectorInsert(id="b", vector=[0.6, 0.8, 0.0], content="B", metadata={"lang": "en"}))
    storage.insert(VectorInsert(id="c", vector=[0.0, 1.0, 0.0], content="C", metadata={"lang": "fr"}))

    resp = storage.search(VectorSearch(vector=[1.0, 0.0, 0.0], limit=3, include_content=True))
    assert [r.id for r in resp.results] == ["a", "b", "c"]
    assert [r.content for r in resp.results] == ["A", "B", "C"]
    assert resp.results[0].metadata == {"lang": "en"}
    assert resp.total == 3

    filtered = storage.search(VectorSearch(vector=[1.0, 0.0, 0.0], filter={"lang": "fr"}))
    assert [r.id for r in filtered.results] == ["c"]
    assert filtered.results[0].content is None
    assert index.calls[-1][2]["filter"] == {"lang": "fr"}


def test_update_merges_metadata_and_keeps_created_at(index):
    storage = PineconeVectorStorage(_config())
    storage.insert(VectorInsert(id="doc-1", vector=[1.0, 0.0, 0.0], metadata={"a": 1}, content="old"))
    before = storage.get("doc-1")

    result = storage.update(VectorUpdate(id="doc-1", metadata={"b": 2}))
    assert result.success

    after = storage.get("doc-1")
    assert after.metadata == {"a": 1, "b": 2}
    assert after.content == "old"
    assert after.vector == pytest.approx([1.0, 0.0, 0.0])
    assert after.created_at == before.created_at


def test_update_missing_record(index):
    storage = PineconeVectorStorage(_config())
    result = storage.update(VectorUpdate(id="nope", content="x"))
    assert not result.success
    assert result.message == "Vector not found"


def test_delete_reports_missing_ids(index):
    storage = PineconeVectorStorage(_config())
    storage.insert(VectorInsert(id="keep", vector=[1.0, 0.0, 0.0]))
    storage.insert(VectorInsert(id="drop", vector=[0.0, 1.0, 0.0]))

    results = storage.delete_batch(["drop", "ghost"])
    assert [(r.id, r.success) for r in results] == [("drop", True), ("ghost", False)]
    assert results[1].message == "Vector not found"
    assert storage.get("drop") is None
    assert storage.get("keep") is not None
    assert not storage.delete("ghost").success


def test_batch_transport_failure_marks_every_record(index):
    storage = PineconeVectorStorage(_config())
    index.unreachable.add("/vectors/upsert")
    records = [VectorInsert(vector=[1.0, 0.0, 0.0]) for _ in range(3)] + [VectorInsert(id="fixed", vector=[0.0, 0.0, 1.0])]
    results = storage.insert_batch(records)
    assert len(results) == 4
    assert not any(r.success for r in results)
    assert len({r.message for r in results}) == 1
    assert len({r.id for r in results}) == 4
    assert results[-1].id == "fixed"


def test_batch_groups_by_namespace(index):
    storage = PineconeVectorStorage(_config())
    results = storage.insert_batch(
        [
            VectorInsert(id="x", vector=[1.0, 0.0, 0.0], namespace="a"),
            VectorInsert(id="y", vector=[1.0, 0.0, 0.0], namespace="b"),
            VectorInsert(id="z", vector=[1.0, 0.0, 0.0], namespace="a"),
        ]
    )
    assert [r.id for r in results] == ["x", "y", "z"]
    assert all(r.success for r in results)
    assert set(index.namespaces["a"]) == {"x", "z"}
    assert set(index.namespaces["b"]) == {"y"}


def test_list_is_empty_and_stats_reported(index):
    storage = PineconeVectorStorage(_config())
    storage.insert(VectorInsert(vector=[1.0, 0.0, 0.0], namespace="docs"))
    storage.insert(VectorInsert(vector=[1.0, 0.0, 0.0]))
    assert storage.list() == []

    stats = storage.stats()
    assert stats.total_vectors == 2
    assert stats.namespaces == ["default", "docs"]
    assert stats.dimensions == 3
    assert storage.stats("docs").total_vectors == 1


def test_health_check_false_on_network_error(index):
    storage = PineconeVectorStorage(_config())
    index.unreachable.add("/describe_index_stats")
    assert storage.health_check() is False
