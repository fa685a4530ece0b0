import logging
import re
from typing import List, Optional, Protocol, Sequence

import httpx
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings


# -----------------------------------------------------------------------------
# VECTOR SEARCH MODULE
# Purpose: free text -> embedding -> ids ranked by pgvector cosine distance.
# Only ids come back; callers materialize records from the catalog.
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)

# Embedding table -> key column
EMBEDDING_TABLES = {
    "product": ("product_embeddings", "product_key"),
    "supplier": ("supplier_embeddings", "supplier_key"),
    "category": ("category_embeddings", "category_key"),
}

DISPATCH_DEFAULT_TOP_K = 5
DISPATCH_MAX_TOP_K = 20


class EmbeddingProvider(Protocol):
    async def embed(self, text: str) -> List[float]: ...


class HttpEmbeddingProvider:
    """Embeddings from an OpenAI-compatible /embeddings endpoint."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.EMBEDDING_API_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.EMBEDDING_API_KEY
        self.model = model or settings.EMBEDDING_MODEL
        self.timeout = timeout or settings.EMBEDDING_TIMEOUT_SECONDS
        self.transport = transport

    async def embed(self, text: str) -> List[float]:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        payload = {"model": self.model, "input": text}

        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self.transport
        ) as client:
            response = await client.post(
                f"{self.base_url}/embeddings", json=payload, headers=headers
            )
            response.raise_for_status()
            data = response.json()

        try:
            return [float(x) for x in data["data"][0]["embedding"]]
        except (KeyError, IndexError, TypeError) as e:
            raise ValueError(f"Unexpected embeddings response format: {e}") from e


def to_vector_literal(vector: Sequence[float]) -> str:
    return "[" + ",".join(repr(float(v)) for v in vector) + "]"


def ensure_vector(vector: Optional[Sequence[float]]) -> Sequence[float]:
    if not vector:
        raise ValueError("qvec must be non-empty (embedding required).")
    return vector


class VectorSearchService:
    """
    Similarity search over the *_embeddings tables.

    Args:
        db: Session bound to the pgvector database
        embedder: Turns query text into a vector
    """

    def __init__(self, db: AsyncSession, embedder: EmbeddingProvider):
        self.db = db
        self.embedder = embedder

    async def _search_ids(
        self,
        kind: str,
        text_query: str,
        top_k: int,
        qvec: Optional[Sequence[float]],
    ) -> List[int]:
        table, key = EMBEDDING_TABLES[kind]
        if qvec is None:
            qvec = await self.embedder.embed(text_query)
        qvec = ensure_vector(qvec)

        stmt = text(
            f"SELECT {key} FROM {table} "
            "ORDER BY embedding <=> CAST(:q AS vector) "
            "LIMIT :k"
        )
        result = await self.db.execute(
            stmt, {"q": to_vector_literal(qvec), "k": top_k}
        )
        ids = [int(row[0]) for row in result.all()]
        logger.info(f"Vector search {kind} '{text_query}' -> {ids}")
        return ids

    async def search_product_ids(
        self,
        text_query: str,
        top_k: int = 10,
        qvec: Optional[Sequence[float]] = None,
    ) -> List[int]:
        return await self._search_ids("product", text_query, top_k, qvec)

    async def search_supplier_ids(
        self,
        text_query: str,
        top_k: int = 10,
        qvec: Optional[Sequence[float]] = None,
    ) -> List[int]:
        return await self._search_ids("supplier", text_query, top_k, qvec)

    async def search_category_ids(
        self,
        text_query: str,
        top_k: int = 10,
        qvec: Optional[Sequence[float]] = None,
    ) -> List[int]:
        return await self._search_ids("category", text_query, top_k, qvec)

    async def vector_search(self, entity: str, text_query: str, top_k: int) -> List[int]:
        """Entity-keyed entry point used by the plan executor."""
        kind = (entity or "").lower()
        if kind not in EMBEDDING_TABLES:
            return []
        return await self._search_ids(kind, text_query, top_k, None)

    async def dispatch(self, query: str) -> List[int]:
        """
        Route "products: ...", "suppliers: ...", "categories: ..." with an
        optional "topk:N" (clamped to 1..20, default 5). Defaults to products.
        """
        if not query or not query.strip():
            raise ValueError("Input cannot be empty.")

        top_k = DISPATCH_DEFAULT_TOP_K
        match = re.search(r"topk:(\d+)", query, re.IGNORECASE)
        if match:
            top_k = int(match.group(1))
            query = (query[: match.start()] + query[match.end() :]).strip()
        top_k = max(1, min(DISPATCH_MAX_TOP_K, top_k))

        lower = query.lower().strip()
        for prefix, kind in (
            ("products:", "product"),
            ("suppliers:", "supplier"),
            ("categories:", "category"),
        ):
            if lower.startswith(prefix):
                return await self._search_ids(
                    kind, query.strip()[len(prefix) :].strip(), top_k, None
                )

        return await self._search_ids("product", query.strip(), top_k, None)
