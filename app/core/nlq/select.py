from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, List, Optional

from app.core import schemas
from app.core.nlq import rerank as reranker


# -----------------------------------------------------------------------------
# SELECT MODULE
# Purpose: in-memory filter / ordinal / rerank logic over variant rows.
# Why: the planner asks for "2nd cheapest X" as often as "dinosaur onesie",
# and the two need different orderings over the same candidates.
# -----------------------------------------------------------------------------


_COMPARATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "gt": lambda a, b: a > b,
    "gte": lambda a, b: a >= b,
    "lt": lambda a, b: a < b,
    "lte": lambda a, b: a <= b,
    "eq": lambda a, b: a == b,
}

DECIMAL_FIELDS = {"price", "cost"}
# Identifier fields only support equality
ID_FIELDS = {"productid", "productcategoryid"}

SORTABLE_FIELDS = {"price", "cost", "updatedstock", "productcategoryid"}


def _to_decimal(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float, Decimal)):
        return Decimal(str(value))
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except InvalidOperation:
            return None
    return None


def _to_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def apply_where(
    rows: Iterable[schemas.ProductCategoryRow],
    clauses: Iterable[schemas.WhereClause],
) -> List[schemas.ProductCategoryRow]:
    """
    Apply each clause as an independent AND-ed predicate.

    Clauses with a blank field/op, an unknown field or operator, or a value
    that doesn't parse leave the rows unchanged.

    Example:
        apply_where(rows, [WhereClause(field="price", op="lte", value=20)])
    """
    result = list(rows)

    for clause in clauses or []:
        field = (clause.field or "").strip().lower()
        op = (clause.op or "").strip().lower()
        if not field or not op:
            continue

        compare = _COMPARATORS.get(op)
        if compare is None:
            continue

        if field in DECIMAL_FIELDS:
            target = _to_decimal(clause.value)
            if target is None:
                continue
            result = [r for r in result if compare(getattr(r, field), target)]

        elif field in ID_FIELDS:
            target = _to_int(clause.value)
            if target is None or op != "eq":
                continue
            result = [r for r in result if getattr(r, field) == target]

    return result


def _sort_value(row: schemas.ProductCategoryRow, field: str):
    value = getattr(row, field if field in SORTABLE_FIELDS else "price")
    # None sorts after real values in ascending order
    return (value is None, value)


def sort_rows(
    rows: Iterable[schemas.ProductCategoryRow],
    sort_keys: Optional[List[schemas.SortKey]] = None,
) -> List[schemas.ProductCategoryRow]:
    """
    Stable multi-key sort; default is price asc. productcategoryid asc is
    always the final tie-break.
    """
    keys = [k for k in (sort_keys or []) if (k.field or "").strip()]
    if not keys:
        keys = [schemas.SortKey(field="price")]

    ordered = sorted(rows, key=lambda r: r.productcategoryid)
    # Sort by the least significant key first so earlier keys win
    for key in reversed(keys):
        field = key.field.strip().lower()
        ordered.sort(key=lambda r: _sort_value(r, field), reverse=key.descending)
    return ordered


def best_per_product(
    rows: Iterable[schemas.ProductCategoryRow],
) -> List[schemas.ProductCategoryRow]:
    """Collapse variants to one row per product: lowest price, then lowest row id."""
    best: Dict[int, schemas.ProductCategoryRow] = {}
    for row in rows:
        current = best.get(row.productid)
        if current is None or (row.price, row.productcategoryid) < (
            current.price,
            current.productcategoryid,
        ):
            best[row.productid] = row
    return list(best.values())


def select_ordinal(
    rows: Iterable[schemas.ProductCategoryRow],
    sort_keys: Optional[List[schemas.SortKey]],
    offset: int,
    limit: Optional[int],
) -> List[schemas.ProductCategoryRow]:
    """
    "The Nth item by some order": sort everything, then skip/take.

    Keywords are not consulted here. A missing limit means one row.
    """
    offset = max(0, offset or 0)
    take = limit if limit is not None else 1
    if take <= 0:
        return []
    return sort_rows(rows, sort_keys)[offset : offset + take]


def select_reranked(
    rows: Iterable[schemas.ProductCategoryRow],
    products: Iterable[schemas.ProductRecord],
    keywords: List[str],
    sort_keys: Optional[List[schemas.SortKey]],
    offset: Optional[int] = None,
    limit: Optional[int] = None,
) -> List[schemas.ProductCategoryRow]:
    """
    One row per product, reranked by keywords when there are any, then paged.
    """
    best = best_per_product(rows)

    if reranker.normalize_keywords(keywords):
        best = reranker.rerank(best, products, keywords)
    else:
        best = sort_rows(best, sort_keys)

    if offset and offset > 0:
        best = best[offset:]
    if limit is not None and limit > 0:
        best = best[:limit]
    return best
