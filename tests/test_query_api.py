import pytest
from httpx import AsyncClient

from app.main import app
from app.api import deps
from app.core import schemas
from app.core.database import get_db


@pytest.mark.asyncio
async def test_root(client: AsyncClient):
    response = await client.get("/")
    assert response.status_code == 200
    assert "message" in response.json()


@pytest.mark.asyncio
async def test_execute_plan(client: AsyncClient):
    """Vector search then keyword rerank over the hits"""
    payload = {
        "plan": [
            {"op": "vector_search", "entity": "product", "text": "dinosaur", "topk": 10, "return": "ids"},
            {"op": "select", "entity": "productcategory", "ids_in": "ids", "keywords": ["dinosaur"], "limit": 20},
        ]
    }
    response = await client.post("/query/plan", json=payload)

    assert response.status_code == 200
    data = response.json()
    assert data["steps"] == 2
    assert [r["product_id"] for r in data["results"]] == [1, 4]
    assert data["results"][0]["product_name"] == "Dinosaur Onesie"


@pytest.mark.asyncio
async def test_execute_plan_empty_result(client: AsyncClient):
    payload = {"plan": [{"op": "select", "entity": "productcategory", "keywords": ["zebra"]}]}
    response = await client.post("/query/plan", json=payload)
    assert response.status_code == 200
    assert response.json()["results"] == []


@pytest.mark.asyncio
async def test_malformed_plan_is_422(client: AsyncClient):
    payload = {"plan": [{"op": "select", "limit": 3}]}
    response = await client.post("/query/plan", json=payload)
    assert response.status_code == 422
    assert "step 0" in response.json()["detail"]


@pytest.mark.asyncio
async def test_sql_preview(client: AsyncClient):
    payload = {
        "table": "productcategory",
        "columns": ["productid", "price"],
        "filters": [{"column": "productid", "operator": "in", "value": [1, 2]}],
        "sort": {"column": "price", "direction": "desc"},
        "limit": 100000,
    }
    response = await client.post("/query/sql/preview", json=payload)

    assert response.status_code == 200
    data = response.json()
    assert data["sql"] == (
        "SELECT productid, price FROM productcategory "
        "WHERE productid IN (:p0, :p1) ORDER BY price DESC LIMIT 50"
    )
    assert data["params"] == {"p0": 1, "p1": 2}


@pytest.mark.asyncio
async def test_sql_preview_rejects_disallowed_table(client: AsyncClient):
    response = await client.post("/query/sql/preview", json={"table": "users_table"})
    assert response.status_code == 400


class FakeMappings:
    def __init__(self, rows):
        self.rows = rows

    def mappings(self):
        return self

    def all(self):
        return self.rows


class FakeSession:
    async def execute(self, stmt, params=None):
        return FakeMappings([{"productid": 3, "productname": "Striped Shirt"}])


@pytest.mark.asyncio
async def test_sql_runs_allowlisted_query(client: AsyncClient):
    async def override_get_db():
        yield FakeSession()

    app.dependency_overrides[get_db] = override_get_db

    response = await client.post(
        "/query/sql", json={"table": "products", "columns": ["productid", "productname"]}
    )
    assert response.status_code == 200
    assert response.json()["rows"] == [{"productid": 3, "productname": "Striped Shirt"}]


@pytest.mark.asyncio
async def test_sql_invalid_operator_is_400(client: AsyncClient):
    async def override_get_db():
        yield FakeSession()

    app.dependency_overrides[get_db] = override_get_db

    response = await client.post(
        "/query/sql",
        json={
            "table": "products",
            "filters": [{"column": "productid", "operator": "; DROP", "value": 1}],
        },
    )
    assert response.status_code == 400


class FakeHybrid:
    async def search_products(self, query, top_k=10):
        return [
            schemas.ProductRecord(productid=5, productname="Rocket Pajamas"),
            schemas.ProductRecord(productid=2, productname="Plain Onesie"),
        ][:top_k]


@pytest.mark.asyncio
async def test_hybrid_search(client: AsyncClient):
    app.dependency_overrides[deps.get_hybrid_service] = lambda: FakeHybrid()

    response = await client.get("/query/hybrid", params={"q": "pajamas", "top_k": 1})
    assert response.status_code == 200
    assert [p["productid"] for p in response.json()] == [5]


@pytest.mark.asyncio
async def test_hybrid_search_requires_query(client: AsyncClient):
    app.dependency_overrides[deps.get_hybrid_service] = lambda: FakeHybrid()

    response = await client.get("/query/hybrid")
    assert response.status_code == 422
