from typing import Iterable, List, Optional, Sequence, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import models, schemas


# -----------------------------------------------------------------------------
# CATALOG MODULE
# Purpose: relational candidate fetcher used by plan execution and hybrid search.
# Read-only, always returns plain schema records (never live ORM objects).
# -----------------------------------------------------------------------------


CatalogRecord = Union[schemas.ProductCategoryRow, schemas.ProductRecord]


def _distinct(ids: Optional[Iterable[int]]) -> List[int]:
    return list(dict.fromkeys(ids or []))


class CatalogRepository:
    """Fetch catalog rows through one async session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def fetch_by_ids(
        self, entity: str, ids: Sequence[int]
    ) -> List[CatalogRecord]:
        """
        Rows for the given product ids.

        For "productcategory" the ids are product ids (every variant of each
        product is returned). Empty ids return nothing, use fetch_all for
        the unrestricted universe.
        """
        ids = _distinct(ids)
        if not ids:
            return []
        entity = (entity or "").lower()

        if entity == "productcategory":
            return await self._product_categories(ids)
        if entity == "product":
            return await self.get_products_by_ids(ids)
        return []

    async def fetch_all(self, entity: str) -> List[CatalogRecord]:
        entity = (entity or "").lower()

        if entity == "productcategory":
            return await self._product_categories(None)
        if entity == "product":
            stmt = select(models.Product).order_by(models.Product.productid)
            result = await self.db.execute(stmt)
            return [
                schemas.ProductRecord.model_validate(p) for p in result.scalars().all()
            ]
        return []

    async def _product_categories(
        self, product_ids: Optional[List[int]]
    ) -> List[schemas.ProductCategoryRow]:
        stmt = select(models.ProductCategory).order_by(
            models.ProductCategory.productcategoryid
        )
        if product_ids:
            stmt = stmt.where(models.ProductCategory.productid.in_(product_ids))

        result = await self.db.execute(stmt)
        return [
            schemas.ProductCategoryRow.model_validate(pc)
            for pc in result.scalars().all()
        ]

    async def get_products_by_ids(
        self, ids: Sequence[int]
    ) -> List[schemas.ProductRecord]:
        ids = _distinct(ids)
        if not ids:
            return []

        stmt = select(models.Product).where(models.Product.productid.in_(ids))
        result = await self.db.execute(stmt)
        return [schemas.ProductRecord.model_validate(p) for p in result.scalars().all()]

    async def get_suppliers_by_ids(
        self, ids: Sequence[int]
    ) -> List[schemas.SupplierRecord]:
        ids = _distinct(ids)
        if not ids:
            return []

        stmt = select(models.Supplier).where(models.Supplier.supplierid.in_(ids))
        result = await self.db.execute(stmt)
        return [
            schemas.SupplierRecord.model_validate(s) for s in result.scalars().all()
        ]

    async def get_categories_by_ids(
        self, ids: Sequence[int]
    ) -> List[schemas.ProductCategoryRow]:
        """Variant rows by their own productcategoryid."""
        ids = _distinct(ids)
        if not ids:
            return []

        stmt = select(models.ProductCategory).where(
            models.ProductCategory.productcategoryid.in_(ids)
        )
        result = await self.db.execute(stmt)
        return [
            schemas.ProductCategoryRow.model_validate(pc)
            for pc in result.scalars().all()
        ]
