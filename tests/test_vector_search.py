import json

import httpx
import pytest

from app.core.nlq.vector_search import (
    HttpEmbeddingProvider,
    VectorSearchService,
    to_vector_literal,
)


class FakeRows:
    def __init__(self, rows):
        self.rows = rows

    def all(self):
        return self.rows


class FakeVectorSession:
    def __init__(self, ids):
        self.ids = ids
        self.executed = []

    async def execute(self, stmt, params=None):
        self.executed.append((str(stmt), params))
        return FakeRows([(i,) for i in self.ids[: params["k"]]])


class FixedEmbedder:
    def __init__(self, vector=None):
        self.vector = vector if vector is not None else [0.1, 0.2, 0.3]
        self.texts = []

    async def embed(self, text):
        self.texts.append(text)
        return self.vector


def test_vector_literal():
    assert to_vector_literal([1, 0.5, -2]) == "[1.0,0.5,-2.0]"


@pytest.mark.asyncio
async def test_search_product_ids_orders_by_cosine_distance():
    session = FakeVectorSession([7, 3, 1])
    embedder = FixedEmbedder()
    service = VectorSearchService(session, embedder)

    ids = await service.search_product_ids("dino onesie", top_k=2)

    assert ids == [7, 3]
    assert embedder.texts == ["dino onesie"]
    sql, params = session.executed[0]
    assert "FROM product_embeddings" in sql
    assert "ORDER BY embedding <=> CAST(:q AS vector)" in sql
    assert params == {"q": "[0.1,0.2,0.3]", "k": 2}


@pytest.mark.asyncio
async def test_precomputed_vector_skips_embedding():
    embedder = FixedEmbedder()
    service = VectorSearchService(FakeVectorSession([1]), embedder)

    await service.search_supplier_ids("acme", qvec=[1.0, 0.0])
    assert embedder.texts == []


@pytest.mark.asyncio
async def test_empty_embedding_is_rejected():
    service = VectorSearchService(FakeVectorSession([1]), FixedEmbedder(vector=[]))
    with pytest.raises(ValueError):
        await service.search_product_ids("dino")


@pytest.mark.asyncio
async def test_vector_search_by_entity():
    session = FakeVectorSession([4, 5])
    service = VectorSearchService(session, FixedEmbedder())

    assert await service.vector_search("Product", "hat", 10) == [4, 5]
    assert await service.vector_search("warehouse", "hat", 10) == []
    assert len(session.executed) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "query, table, text, k",
    [
        ("products: red hat", "product_embeddings", "red hat", 5),
        ("suppliers: acme topk:50", "supplier_embeddings", "acme", 20),
        ("categories: small topk:0", "category_embeddings", "small", 1),
        ("topk:3 blue pants", "product_embeddings", "blue pants", 3),
    ],
)
async def test_dispatch(query, table, text, k):
    session = FakeVectorSession(list(range(30)))
    embedder = FixedEmbedder()
    service = VectorSearchService(session, embedder)

    ids = await service.dispatch(query)

    sql, params = session.executed[0]
    assert f"FROM {table}" in sql
    assert params["k"] == k
    assert embedder.texts == [text]
    assert len(ids) == k


@pytest.mark.asyncio
async def test_dispatch_requires_input():
    service = VectorSearchService(FakeVectorSession([]), FixedEmbedder())
    with pytest.raises(ValueError):
        await service.dispatch("   ")


@pytest.mark.asyncio
async def test_http_embedding_provider():
    seen = {}

    def handler(request: httpx.Request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": [{"embedding": [0.5, 1, -1]}]})

    provider = HttpEmbeddingProvider(
        base_url="https://embeddings.test/v1/",
        api_key="secret",
        model="tiny",
        transport=httpx.MockTransport(handler),
    )

    vector = await provider.embed("dinosaur")

    assert vector == [0.5, 1.0, -1.0]
    assert seen["url"] == "https://embeddings.test/v1/embeddings"
    assert seen["auth"] == "Bearer secret"
    assert seen["body"] == {"model": "tiny", "input": "dinosaur"}


@pytest.mark.asyncio
async def test_http_embedding_provider_bad_payload():
    provider = HttpEmbeddingProvider(
        base_url="https://embeddings.test/v1",
        api_key="",
        transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"data": []})),
    )
    with pytest.raises(ValueError):
        await provider.embed("dinosaur")


@pytest.mark.asyncio
async def test_http_embedding_provider_http_error():
    provider = HttpEmbeddingProvider(
        base_url="https://embeddings.test/v1",
        transport=httpx.MockTransport(lambda r: httpx.Response(500)),
    )
    with pytest.raises(httpx.HTTPStatusError):
        await provider.embed("dinosaur")
