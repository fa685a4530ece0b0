import logging
from typing import Annotated, Any, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_allowlist, get_executor, get_hybrid_service
from app.core import schemas
from app.core.config import settings
from app.core.database import get_db
from app.core.nlq.allowlist import SqlAllowlist
from app.core.nlq.errors import MalformedPlanError, SqlValidationError
from app.core.nlq.executor import PlanExecutor
from app.core.nlq.hybrid import HybridQueryService
from app.core.nlq.plan import parse_plan
from app.core.nlq.sql_builder import build_sql, run_sql

router = APIRouter(prefix="/query", tags=["Query"])

executor_dep = Annotated[PlanExecutor, Depends(get_executor)]
hybrid_dep = Annotated[HybridQueryService, Depends(get_hybrid_service)]
allowlist_dep = Annotated[SqlAllowlist, Depends(get_allowlist)]
db_dep = Annotated[AsyncSession, Depends(get_db)]


@router.post("/plan", response_model=schemas.PlanExecuteResponse)
async def execute_plan(
    executor: executor_dep,
    payload: Annotated[Dict[str, Any], Body()],
):
    """
    Execute a retrieval plan, e.g.
    {"plan": [{"op": "vector_search", ...}, {"op": "select", ...}]}
    """
    try:
        plan = parse_plan(payload)
    except MalformedPlanError as error:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, str(error))

    try:
        results = await executor.execute(plan)
    except Exception as error:
        logging.error(f"Plan execution failed: {error}")
        raise HTTPException(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to execute plan"
        )

    return {"results": results, "steps": len(plan.plan)}


@router.post("/sql/preview", response_model=schemas.SqlPreviewResponse)
async def preview_sql(sql_request: schemas.SqlQueryRequest, policy: allowlist_dep):
    """Return the parameterized SQL a request would run, without running it."""
    try:
        sql, params = build_sql(sql_request, policy)
    except SqlValidationError as error:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(error))
    return {"sql": sql, "params": params}


@router.post("/sql", response_model=schemas.SqlRowsResponse)
async def query_sql(
    sql_request: schemas.SqlQueryRequest, policy: allowlist_dep, db: db_dep
):
    """Build and run an allowlisted SELECT."""
    try:
        sql, rows = await run_sql(db, sql_request, policy)
    except SqlValidationError as error:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(error))
    except Exception as error:
        logging.error(f"SQL query failed: {error}")
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, "Query failed")
    return {"sql": sql, "rows": rows}


@router.get("/hybrid", response_model=List[schemas.ProductRecord])
async def hybrid_products(
    hybrid: hybrid_dep,
    q: Annotated[str, Query(min_length=1)],
    top_k: Annotated[int, Query(ge=1, le=100)] = settings.VECTOR_DEFAULT_TOP_K,
):
    """Products most similar to q, in similarity order."""
    try:
        return await hybrid.search_products(q, top_k)
    except Exception as error:
        logging.error(f"Hybrid search failed for '{q}': {error}")
        raise HTTPException(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Hybrid search failed"
        )
