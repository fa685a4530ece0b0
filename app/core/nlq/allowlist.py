from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, Mapping, Optional

from app.core.config import settings


# -----------------------------------------------------------------------------
# ALLOWLIST MODULE
# Purpose: the closed set of tables, columns and operators ad-hoc SQL may touch.
# Loaded once at startup and shared read-only by every request.
# -----------------------------------------------------------------------------


DEFAULT_ALLOWED_COLUMNS: Dict[str, FrozenSet[str]] = {
    "products": frozenset(
        {
            "productid",
            "productname",
            "description",
            "supplierid",
            "image_url",
            "createdat",
            "updatedat",
        }
    ),
    "productcategory": frozenset(
        {
            "productcategoryid",
            "productid",
            "price",
            "cost",
            "color",
            "agesize",
            "currentstock",
            "reorderpoint",
            "updatedstock",
        }
    ),
    "suppliers": frozenset(
        {
            "supplierid",
            "suppliername",
            "contactperson",
            "phonenumber",
            "supplieremail",
            "address",
            "supplierstatus",
            "createdat",
            "updatedat",
        }
    ),
    "orders": frozenset(
        {
            "orderid",
            "orderdate",
            "totalamount",
            "orderstatus",
            "amount_paid",
            "createdat",
        }
    ),
    "orderitems": frozenset(
        {
            "orderitemid",
            "orderid",
            "productid",
            "productcategoryid",
            "quantity",
            "unitprice",
            "subtotal",
            "createdat",
        }
    ),
    "expenses": frozenset(
        {"id", "occurred_on", "category_id", "amount", "notes", "status"}
    ),
}

DEFAULT_ALLOWED_OPERATORS: FrozenSet[str] = frozenset(
    {"=", "!=", "<>", ">", ">=", "<", "<=", "LIKE", "ILIKE", "IN"}
)


@dataclass(frozen=True)
class SqlAllowlist:
    """
    Which tables/columns/operators are safe to expose.

    Table and column names are compared case-insensitively, operators are
    compared upper-cased.
    """

    allowed_columns: Mapping[str, FrozenSet[str]] = field(
        default_factory=lambda: dict(DEFAULT_ALLOWED_COLUMNS)
    )
    allowed_operators: FrozenSet[str] = DEFAULT_ALLOWED_OPERATORS
    default_limit: int = 50
    max_limit: int = 500
    case_insensitive_like: bool = True

    def __post_init__(self):
        if self.default_limit < 1 or self.default_limit > self.max_limit:
            raise ValueError(
                f"default_limit must be within [1, {self.max_limit}], got {self.default_limit}"
            )

    def is_table_allowed(self, table: Optional[str]) -> bool:
        return bool(table) and table.lower() in self.allowed_columns

    def is_column_allowed(self, table: Optional[str], column: Optional[str]) -> bool:
        if not table or not column:
            return False
        columns = self.allowed_columns.get(table.lower())
        return columns is not None and column.lower() in columns

    def is_operator_allowed(self, operator: Optional[str]) -> bool:
        return bool(operator) and operator.strip().upper() in self.allowed_operators


def build_allowlist(
    tables: Optional[Mapping[str, Iterable[str]]] = None,
    operators: Optional[Iterable[str]] = None,
) -> SqlAllowlist:
    """
    Build the process-wide allowlist from settings.

    Args:
        tables: Override of table -> columns (defaults to the catalog tables)
        operators: Override of allowed operators

    Returns:
        SqlAllowlist with limits from settings
    """
    columns = DEFAULT_ALLOWED_COLUMNS
    if tables is not None:
        columns = {
            name.lower(): frozenset(c.lower() for c in cols)
            for name, cols in tables.items()
        }

    return SqlAllowlist(
        allowed_columns=columns,
        allowed_operators=(
            frozenset(op.strip().upper() for op in operators)
            if operators is not None
            else DEFAULT_ALLOWED_OPERATORS
        ),
        default_limit=settings.SQL_DEFAULT_LIMIT,
        max_limit=settings.SQL_MAX_LIMIT,
        case_insensitive_like=settings.SQL_CASE_INSENSITIVE_LIKE,
    )


# Shared instance, like settings
allowlist = build_allowlist()
