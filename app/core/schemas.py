from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any, Literal, Union
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.config import settings


# =========================
# Enums
# =========================
class PlanOpKind(str, Enum):
    VECTOR_SEARCH = "vector_search"
    SELECT = "select"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


# =========================
# QUERY PLAN (wire format)
# =========================
class WhereClause(BaseModel):
    """In-memory numeric predicate, e.g. {"field": "price", "op": "gte", "value": 10}."""

    field: Optional[str] = None
    op: Optional[str] = None
    value: Any = None


class SortKey(BaseModel):
    field: str = ""
    dir: str = SortDirection.ASC.value

    @property
    def descending(self) -> bool:
        return (self.dir or "").strip().lower() == SortDirection.DESC.value


class VectorSearchOp(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    op: Literal["vector_search"] = "vector_search"
    entity: Optional[str]
    text: Optional[str]
    topk: int = Field(default_factory=lambda: settings.VECTOR_DEFAULT_TOP_K)
    result_var: str = Field("ids", alias="return")

    @field_validator("topk", mode="before")
    @classmethod
    def default_topk(cls, value):
        return settings.VECTOR_DEFAULT_TOP_K if value is None else value

    # topk <= 0 falls back to the default
    @field_validator("topk")
    @classmethod
    def positive_topk(cls, value):
        return value if value > 0 else settings.VECTOR_DEFAULT_TOP_K

    @field_validator("result_var", mode="before")
    @classmethod
    def default_result_var(cls, value):
        return value or "ids"


class SelectOp(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    op: Literal["select"] = "select"
    entity: Optional[str]
    ids_in: Optional[str] = None
    keywords: List[str] = []
    where: List[WhereClause] = []
    sort: List[SortKey] = []
    limit: Optional[int] = None
    # None means "not present"; any present offset (0 or null) is ordinal mode
    offset: Optional[int] = None
    # Reorder the output by the ids_in ranking (unranked products go last)
    preserve_rank: bool = False
    result_var: str = Field("last", alias="return")

    @field_validator("result_var", mode="before")
    @classmethod
    def default_result_var(cls, value):
        return value or "last"


class UnknownOp(BaseModel):
    """A step whose op is not recognised. Executors skip these."""

    op: Optional[str] = None
    raw: Any = None


PlanStep = Union[VectorSearchOp, SelectOp, UnknownOp]


class QueryPlan(BaseModel):
    plan: List[PlanStep] = []


# =========================
# CATALOG RECORDS
# =========================
class ProductCategoryRow(BaseModel):
    productcategoryid: int
    productid: int
    price: Decimal
    cost: Decimal
    color: Optional[str] = None
    agesize: Optional[str] = None
    currentstock: int = 0
    reorderpoint: int = 0
    updatedstock: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ProductRecord(BaseModel):
    productid: int
    productname: str
    description: Optional[str] = None
    supplierid: Optional[int] = None
    image_url: Optional[str] = None
    createdat: Optional[datetime] = None
    updatedat: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SupplierRecord(BaseModel):
    supplierid: int
    suppliername: str
    contactperson: Optional[str] = None
    phonenumber: Optional[str] = None
    supplieremail: Optional[str] = None
    address: Optional[str] = None
    supplierstatus: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ProductWithPrice(BaseModel):
    """Fixed projection returned by select steps."""

    product_id: int
    product_name: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    supplier_id: Optional[int] = None
    price: Optional[Decimal] = None
    cost: Optional[Decimal] = None
    product_category_id: Optional[int] = None


# =========================
# SAFE SQL
# =========================
class SqlFilter(BaseModel):
    column: str = ""
    operator: str = ""
    value: Any = None


class SqlSort(BaseModel):
    column: str = ""
    direction: Optional[str] = SortDirection.ASC.value


class SqlQueryRequest(BaseModel):
    """
    Declarative SELECT request. Turned into parameterized SQL by the
    builder, never interpolated directly.
    """

    table: str = ""
    columns: List[str] = []
    filters: List[SqlFilter] = []
    sort: Optional[SqlSort] = None
    limit: Optional[int] = None


class SqlPreviewResponse(BaseModel):
    sql: str
    params: Dict[str, Any] = {}


class SqlRowsResponse(BaseModel):
    sql: str
    rows: List[Dict[str, Any]] = []


# =========================
# API
# =========================
class PlanExecuteResponse(BaseModel):
    results: List[ProductWithPrice] = []
    steps: int = 0
