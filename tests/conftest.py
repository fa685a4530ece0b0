import asyncio
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from app.main import app
from app.api import deps
from app.core import schemas
from app.core.nlq.allowlist import SqlAllowlist
from app.core.nlq.executor import PlanExecutor


# In-memory stand-ins for the vector index and the relational store
class FakeVectorRetriever:
    def __init__(self, results=None, block=False):
        self.results = results or {}
        self.calls = []
        self.block = block
        self.started = asyncio.Event()

    async def vector_search(self, entity, text_query, top_k):
        self.calls.append((entity, text_query, top_k))
        self.started.set()
        if self.block:
            # Wait forever until the task is cancelled
            await asyncio.Event().wait()
        return list(self.results.get(text_query, []))[:top_k]


class FakeCatalog:
    def __init__(self, rows, products):
        self.rows = rows
        self.products = products
        self.calls = []

    async def fetch_by_ids(self, entity, ids):
        self.calls.append(("fetch_by_ids", entity, list(ids)))
        wanted = set(ids)
        if entity == "productcategory":
            return [r for r in self.rows if r.productid in wanted]
        if entity == "product":
            return [p for p in self.products if p.productid in wanted]
        return []

    async def fetch_all(self, entity):
        self.calls.append(("fetch_all", entity))
        if entity == "productcategory":
            return list(self.rows)
        if entity == "product":
            return list(self.products)
        return []


def make_row(pcid, pid, price, cost="1.00"):
    return schemas.ProductCategoryRow(
        productcategoryid=pcid,
        productid=pid,
        price=Decimal(str(price)),
        cost=Decimal(str(cost)),
    )


def make_product(pid, name, description, supplier_id=1):
    return schemas.ProductRecord(
        productid=pid,
        productname=name,
        description=description,
        supplierid=supplier_id,
        image_url=f"https://img.example/{pid}.png",
    )


@pytest.fixture
def row_factory():
    return make_row


@pytest.fixture
def product_factory():
    return make_product


# Products
@pytest.fixture
def products():
    return [
        make_product(1, "Dinosaur Onesie", "Green dino onesie for babies"),
        make_product(2, "Plain Onesie", "Soft cotton onesie"),
        make_product(3, "Striped Shirt", "Blue striped cotton shirt", supplier_id=2),
        make_product(4, "Dinosaur Pants", "Stretchy pants with dinosaur print"),
        make_product(5, "Rocket Pajamas", "Glow in the dark rocket pajamas"),
        make_product(6, "Bunny Hat", "Knitted bunny ears hat", supplier_id=3),
    ]


# Variant rows, several per product for 1 and 3
@pytest.fixture
def rows():
    return [
        make_row(10, 1, "15.00", "7.00"),
        make_row(11, 1, "12.00", "6.00"),
        make_row(20, 2, "8.00", "3.00"),
        make_row(30, 3, "20.00", "9.00"),
        make_row(31, 3, "20.00", "9.50"),
        make_row(40, 4, "18.00", "8.00"),
        make_row(50, 5, "25.00", "12.00"),
        make_row(60, 6, "8.00", "2.00"),
    ]


@pytest.fixture
def catalog(rows, products):
    return FakeCatalog(rows, products)


@pytest.fixture
def vectors():
    return FakeVectorRetriever(
        {"dinosaur": [4, 1], "cotton": [3, 2, 99], "soft things": [2, 6, 1]}
    )


@pytest.fixture
def executor(vectors, catalog):
    return PlanExecutor(vectors=vectors, catalog=catalog)


@pytest.fixture
def policy():
    return SqlAllowlist(
        allowed_columns={
            "products": frozenset({"productid", "productname", "description"}),
            "productcategory": frozenset({"productcategoryid", "productid", "price", "cost"}),
        },
        allowed_operators=frozenset({"=", ">", ">=", "<", "<=", "LIKE", "IN"}),
        default_limit=50,
        max_limit=500,
    )


# Client with the collaborators swapped for fakes
@pytest_asyncio.fixture(scope="function")
async def client(executor, policy):
    app.dependency_overrides[deps.get_executor] = lambda: executor
    app.dependency_overrides[deps.get_allowlist] = lambda: policy

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
