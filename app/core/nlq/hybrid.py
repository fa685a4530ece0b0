from typing import Any, Callable, Iterable, List, Literal, Sequence, TypeVar

from app.core import schemas
from app.core.nlq.catalog import CatalogRepository
from app.core.nlq.vector_search import VectorSearchService


# -----------------------------------------------------------------------------
# HYBRID MODULE
# Purpose: reconcile ANN-ranked ids with materialized records.
# The database returns rows in whatever order it likes, so similarity order
# has to be restored here.
# -----------------------------------------------------------------------------


T = TypeVar("T")

MissingPolicy = Literal["exclude", "append"]


def join_products(
    rows: Iterable[schemas.ProductCategoryRow],
    products: Iterable[schemas.ProductRecord],
) -> List[schemas.ProductWithPrice]:
    """
    Inner-join variant rows with their products, keeping row order.

    Price and cost come from the variant row, everything else from the product.
    """
    by_id = {p.productid: p for p in products}

    joined = []
    for row in rows:
        product = by_id.get(row.productid)
        if product is None:
            continue
        joined.append(
            schemas.ProductWithPrice(
                product_id=product.productid,
                product_name=product.productname,
                description=product.description,
                image_url=product.image_url,
                supplier_id=product.supplierid,
                price=row.price,
                cost=row.cost,
                product_category_id=row.productcategoryid,
            )
        )
    return joined


def order_by_rank(
    records: Iterable[T],
    ranked_ids: Sequence[int],
    key: Callable[[T], Any],
    missing: MissingPolicy = "exclude",
) -> List[T]:
    """
    Reorder records by the position of their id in ranked_ids.

    Args:
        records: Records in any order
        ranked_ids: Similarity-ranked ids (best first)
        key: Extracts the id from a record
        missing: "exclude" drops records whose id isn't ranked,
            "append" keeps them after every ranked record, in input order

    Example:
        ranked_ids [5, 2, 9], records for {2, 5, 9} -> 5, 2, 9
    """
    if missing not in ("exclude", "append"):
        raise ValueError(f"Unknown missing policy: {missing}")

    position = {}
    for i, rid in enumerate(ranked_ids):
        position.setdefault(rid, i)

    ranked, unranked = [], []
    for record in records:
        if key(record) in position:
            ranked.append(record)
        elif missing == "append":
            unranked.append(record)

    ranked.sort(key=lambda r: position[key(r)])
    return ranked + unranked


class HybridQueryService:
    """Vector search -> ids -> catalog records, in ANN order."""

    def __init__(self, catalog: CatalogRepository, vectors: VectorSearchService):
        self.catalog = catalog
        self.vectors = vectors

    async def search_products(
        self, query: str, top_k: int = 10
    ) -> List[schemas.ProductRecord]:
        ids = await self.vectors.search_product_ids(query, top_k)
        if not ids:
            return []
        products = await self.catalog.get_products_by_ids(ids)
        return order_by_rank(products, ids, key=lambda p: p.productid)

    async def search_suppliers(
        self, query: str, top_k: int = 10
    ) -> List[schemas.SupplierRecord]:
        ids = await self.vectors.search_supplier_ids(query, top_k)
        if not ids:
            return []
        suppliers = await self.catalog.get_suppliers_by_ids(ids)
        return order_by_rank(suppliers, ids, key=lambda s: s.supplierid)

    async def search_categories(
        self, query: str, top_k: int = 10
    ) -> List[schemas.ProductCategoryRow]:
        ids = await self.vectors.search_category_ids(query, top_k)
        if not ids:
            return []
        rows = await self.catalog.get_categories_by_ids(ids)
        return order_by_rank(rows, ids, key=lambda c: c.productcategoryid)

    async def dispatch(self, query: str, top_k: int = 10) -> List[Any]:
        """Route on a "suppliers:" / "categories:" / "products:" prefix, products by default."""
        query = query or ""
        lower = query.lower()

        if lower.startswith("suppliers:"):
            return await self.search_suppliers(query[len("suppliers:") :].strip(), top_k)
        if lower.startswith("categories:"):
            return await self.search_categories(
                query[len("categories:") :].strip(), top_k
            )
        if lower.startswith("products:"):
            query = query[len("products:") :]
        return await self.search_products(query.strip(), top_k)
