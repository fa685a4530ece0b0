from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db, get_vector_db
from app.core.nlq.allowlist import SqlAllowlist, allowlist
from app.core.nlq.catalog import CatalogRepository
from app.core.nlq.executor import PlanExecutor
from app.core.nlq.hybrid import HybridQueryService
from app.core.nlq.vector_search import HttpEmbeddingProvider, VectorSearchService


def get_catalog(db: Annotated[AsyncSession, Depends(get_db)]) -> CatalogRepository:
    return CatalogRepository(db)


def get_vector_search(
    vector_db: Annotated[AsyncSession, Depends(get_vector_db)],
) -> VectorSearchService:
    return VectorSearchService(vector_db, HttpEmbeddingProvider())


def get_executor(
    catalog: Annotated[CatalogRepository, Depends(get_catalog)],
    vectors: Annotated[VectorSearchService, Depends(get_vector_search)],
) -> PlanExecutor:
    # A fresh executor per request, plans never share variables
    return PlanExecutor(vectors=vectors, catalog=catalog)


def get_hybrid_service(
    catalog: Annotated[CatalogRepository, Depends(get_catalog)],
    vectors: Annotated[VectorSearchService, Depends(get_vector_search)],
) -> HybridQueryService:
    return HybridQueryService(catalog, vectors)


def get_allowlist() -> SqlAllowlist:
    return allowlist
