from decimal import Decimal

import pytest

from app.core import models, schemas
from app.core.nlq.catalog import CatalogRepository


class FakeScalars:
    def __init__(self, items):
        self.items = items

    def scalars(self):
        return self

    def all(self):
        return self.items


class FakeSession:
    def __init__(self, items):
        self.items = items
        self.statements = []

    async def execute(self, stmt):
        self.statements.append(str(stmt))
        return FakeScalars(self.items)


def variant(pcid, pid, price):
    return models.ProductCategory(
        productcategoryid=pcid,
        productid=pid,
        price=Decimal(price),
        cost=Decimal("1.00"),
        currentstock=4,
        reorderpoint=1,
    )


@pytest.mark.asyncio
async def test_fetch_all_product_categories():
    session = FakeSession([variant(1, 10, "9.99"), variant(2, 11, "4.50")])
    rows = await CatalogRepository(session).fetch_all("ProductCategory")

    assert all(isinstance(r, schemas.ProductCategoryRow) for r in rows)
    assert [(r.productcategoryid, r.price) for r in rows] == [
        (1, Decimal("9.99")),
        (2, Decimal("4.50")),
    ]
    assert "WHERE" not in session.statements[0]


@pytest.mark.asyncio
async def test_fetch_by_ids_filters_on_product_id():
    session = FakeSession([variant(1, 10, "9.99")])
    rows = await CatalogRepository(session).fetch_by_ids("productcategory", [10, 10])

    assert [r.productid for r in rows] == [10]
    assert "productcategory.productid IN" in session.statements[0]


@pytest.mark.asyncio
async def test_fetch_by_ids_without_ids_returns_nothing():
    session = FakeSession([variant(1, 10, "9.99")])
    assert await CatalogRepository(session).fetch_by_ids("productcategory", []) == []
    assert session.statements == []


@pytest.mark.asyncio
async def test_products_by_ids():
    session = FakeSession(
        [models.Product(productid=3, productname="Striped Shirt", supplierid=2)]
    )
    products = await CatalogRepository(session).fetch_by_ids("product", [3])

    assert products == [
        schemas.ProductRecord(productid=3, productname="Striped Shirt", supplierid=2)
    ]


@pytest.mark.asyncio
async def test_unknown_entity_is_empty():
    session = FakeSession([])
    repo = CatalogRepository(session)
    assert await repo.fetch_all("warehouse") == []
    assert await repo.fetch_by_ids("warehouse", [1]) == []
    assert session.statements == []
