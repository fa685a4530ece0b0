import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple, Union

from app.core import schemas
from app.core.nlq import select as selection
from app.core.nlq.hybrid import join_products, order_by_rank
from app.core.nlq.plan import parse_plan


# -----------------------------------------------------------------------------
# EXECUTOR MODULE - Orchestration
# Purpose: run plan steps strictly in order, threading results through named
# variables, and hand back one ordered collection.
# Each execute() call owns its variables and log; nothing is shared between runs.
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)

# Vector search text too vague to embed meaningfully
GENERIC_SEARCH_TEXT = {"product", "products", "item", "items"}

DEFAULT_RESULT_VAR = "last"

Value = Union[List[int], List[schemas.ProductWithPrice]]


class VectorRetriever(Protocol):
    async def vector_search(self, entity: str, text_query: str, top_k: int) -> List[int]: ...


class CandidateFetcher(Protocol):
    async def fetch_by_ids(self, entity: str, ids: Sequence[int]) -> List[Any]: ...

    async def fetch_all(self, entity: str) -> List[Any]: ...


class ExecutionLog:
    """Step-by-step log of one plan execution."""

    def __init__(self):
        """
        Example:
            log = ExecutionLog()
            log.log(0, "select", "12 candidate rows")
        """
        self.start_time = datetime.now()
        self.entries = []

    def log(self, step: int, op: str, message: str, level: str = "info"):
        self.entries.append(
            {
                "timestamp": datetime.now().isoformat(),
                "step": step,
                "op": op,
                "message": message,
                "level": level,
                "elapsed_seconds": (datetime.now() - self.start_time).total_seconds(),
            }
        )

        # Also log to console
        if level == "warning":
            logger.warning(f"[step {step}] {op}: {message}")
        else:
            logger.info(f"[step {step}] {op}: {message}")


class PlanExecutor:
    """
    Executes query plans against a vector retriever and a catalog fetcher.

    Args:
        vectors: Anything with vector_search(entity, text, top_k)
        catalog: Anything with fetch_by_ids(entity, ids) and fetch_all(entity)
    """

    def __init__(self, vectors: VectorRetriever, catalog: CandidateFetcher):
        self.vectors = vectors
        self.catalog = catalog

    async def execute(
        self,
        plan: Union[schemas.QueryPlan, Dict[str, Any], List[Any]],
        result_var: Optional[str] = None,
    ) -> Value:
        """Run the plan and return only the result collection (see run)."""
        results, _ = await self.run(plan, result_var)
        return results

    async def run(
        self,
        plan: Union[schemas.QueryPlan, Dict[str, Any], List[Any]],
        result_var: Optional[str] = None,
    ) -> Tuple[Value, ExecutionLog]:
        """
        Run every step in order and return the result collection.

        Args:
            plan: Parsed plan or raw plan JSON (validated before any step runs)
            result_var: Variable to return; defaults to whatever the most
                recent select step wrote

        Returns:
            (value, log): the requested variable's value ([] when nothing was
            bound) and this run's own ExecutionLog

        Raises:
            MalformedPlanError: a step is missing a required field
            asyncio.CancelledError: the calling task was cancelled mid-step
        """
        parsed = parse_plan(plan)
        variables: Dict[str, Value] = {}
        log = ExecutionLog()
        bound = DEFAULT_RESULT_VAR

        for index, step in enumerate(parsed.plan):
            if isinstance(step, schemas.VectorSearchOp):
                variables[step.result_var] = await self._vector_search(step, index, log)

            elif isinstance(step, schemas.SelectOp):
                variables[step.result_var] = await self._select(
                    step, variables, index, log
                )
                bound = step.result_var

            else:
                log.log(index, str(step.op), "unrecognised op, skipped", "warning")

        key = result_var or bound
        return variables.get(key, []), log

    async def _vector_search(
        self, step: schemas.VectorSearchOp, index: int, log: ExecutionLog
    ) -> List[int]:
        entity = (step.entity or "").strip().lower()
        text_query = (step.text or "").strip()

        if entity != "product":
            log.log(index, step.op, f"entity '{step.entity}' not searchable, no ids")
            return []

        if not text_query or text_query.lower() in GENERIC_SEARCH_TEXT:
            log.log(index, step.op, f"generic text '{text_query}', skipping ANN")
            return []

        ids = await self.vectors.vector_search("product", text_query, step.topk)
        log.log(index, step.op, f"'{text_query}' -> {len(ids)} ids")
        return list(ids)

    async def _select(
        self,
        step: schemas.SelectOp,
        variables: Dict[str, Value],
        index: int,
        log: ExecutionLog,
    ) -> List[schemas.ProductWithPrice]:
        entity = (step.entity or "").strip().lower()
        if entity != "productcategory":
            log.log(index, step.op, f"entity '{step.entity}' not supported, empty result")
            return []

        ranked_ids = self._ids_from(variables, step.ids_in)

        # No vector constraint means the whole catalog, not nothing
        if ranked_ids:
            rows = await self.catalog.fetch_by_ids("productcategory", ranked_ids)
        else:
            rows = await self.catalog.fetch_all("productcategory")

        rows = selection.apply_where(rows, step.where)
        log.log(index, step.op, f"{len(rows)} candidate rows after filters")
        if not rows:
            return []

        products: List[schemas.ProductRecord] = []

        if step.offset is not None:
            picked = selection.select_ordinal(rows, step.sort, step.offset, step.limit)
            log.log(index, step.op, f"ordinal offset={step.offset} -> {len(picked)} rows")
        else:
            if step.keywords:
                product_ids = [r.productid for r in selection.best_per_product(rows)]
                products = await self.catalog.fetch_by_ids("product", product_ids)

            picked = selection.select_reranked(
                rows, products, step.keywords, step.sort, step.offset, step.limit
            )
            log.log(index, step.op, f"rerank -> {len(picked)} rows")

        if not picked:
            return []

        needed = {r.productid for r in picked}
        if not needed.issubset({p.productid for p in products}):
            products = await self.catalog.fetch_by_ids("product", sorted(needed))

        joined = join_products(picked, products)

        if step.preserve_rank and ranked_ids:
            joined = order_by_rank(
                joined, ranked_ids, key=lambda r: r.product_id, missing="append"
            )
        return joined

    @staticmethod
    def _ids_from(variables: Dict[str, Value], name: Optional[str]) -> List[int]:
        if not name:
            return []
        value = variables.get(name)
        if not value or not all(isinstance(v, int) for v in value):
            return []
        return list(value)
