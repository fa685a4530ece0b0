import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from app.core import schemas
from app.core.nlq.errors import MalformedPlanError


# -----------------------------------------------------------------------------
# PLAN MODULE
# Purpose: turn the loosely-typed plan JSON (LLM or heuristic output) into
# typed operations once, before anything executes.
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)

# Normalized key (lowercase, no underscores) -> wire field name
_VECTOR_SEARCH_FIELDS = {
    "entity": "entity",
    "text": "text",
    "topk": "topk",
    "return": "return",
}

_SELECT_FIELDS = {
    "entity": "entity",
    "idsin": "ids_in",
    "keywords": "keywords",
    "where": "where",
    "sort": "sort",
    "limit": "limit",
    "offset": "offset",
    "preserverank": "preserve_rank",
    "return": "return",
}


def _norm_key(key: str) -> str:
    return key.replace("_", "").lower()


def _lookup(step: Dict[str, Any], name: str) -> Optional[Any]:
    """Case-insensitive key lookup ("op", "Op" and "OP" are one field)."""
    for key, value in step.items():
        if isinstance(key, str) and _norm_key(key) == name:
            return value
    return None


def _canonical(step: Dict[str, Any], fields: Dict[str, str]) -> Dict[str, Any]:
    data = {}
    for key, value in step.items():
        if not isinstance(key, str):
            continue
        wire = fields.get(_norm_key(key))
        if wire is not None:
            data[wire] = value
    return data


def _objects_only(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, dict)]


def _parse_select(step: Dict[str, Any]) -> schemas.SelectOp:
    data = _canonical(step, _SELECT_FIELDS)

    keywords = data.get("keywords")
    data["keywords"] = (
        [k for k in keywords if isinstance(k, str)] if isinstance(keywords, list) else []
    )
    data["where"] = _objects_only(data.get("where"))
    data["sort"] = [
        {"field": s.get("field") or "", "dir": s.get("dir") or "asc"}
        for s in _objects_only(data.get("sort"))
    ]

    # A present offset means ordinal mode, even when it is null
    if "offset" in data and data["offset"] is None:
        data["offset"] = 0

    return schemas.SelectOp.model_validate(data)


def _parse_vector_search(step: Dict[str, Any]) -> schemas.VectorSearchOp:
    return schemas.VectorSearchOp.model_validate(_canonical(step, _VECTOR_SEARCH_FIELDS))


_PARSERS = {
    schemas.PlanOpKind.VECTOR_SEARCH.value: _parse_vector_search,
    schemas.PlanOpKind.SELECT.value: _parse_select,
}


def parse_step(step: Any, index: int) -> schemas.PlanStep:
    """
    Parse one step.

    Non-object steps and unknown ops come back as UnknownOp so the executor
    can skip them; a known op with missing/invalid fields raises.
    """
    if not isinstance(step, dict):
        return schemas.UnknownOp(op=None, raw=step)

    op = _lookup(step, "op")
    kind = op.strip().lower() if isinstance(op, str) else None
    parser = _PARSERS.get(kind)
    if parser is None:
        return schemas.UnknownOp(op=op if isinstance(op, str) else None, raw=step)

    try:
        return parser(step)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or kind}: {err['msg']}"
            for err in e.errors()
        )
        raise MalformedPlanError(f"invalid '{kind}' step ({problems})", index) from e


def parse_plan(
    payload: Union[schemas.QueryPlan, Dict[str, Any], List[Any], None],
) -> schemas.QueryPlan:
    """
    Parse and validate a whole plan before execution.

    Args:
        payload: {"plan": [...]}, a bare list of steps, or an already parsed plan

    Returns:
        QueryPlan with typed steps

    Raises:
        MalformedPlanError: a known step is structurally invalid, or the
            plan itself isn't a list

    Example:
        parse_plan({"plan": [{"op": "select", "entity": "productcategory", "limit": 5}]})
    """
    if isinstance(payload, schemas.QueryPlan):
        return payload
    if payload is None:
        return schemas.QueryPlan(plan=[])

    steps = payload
    if isinstance(payload, dict):
        steps = _lookup(payload, "plan")
        if steps is None:
            return schemas.QueryPlan(plan=[])

    if not isinstance(steps, list):
        raise MalformedPlanError("'plan' must be a list of steps")

    parsed = [parse_step(step, i) for i, step in enumerate(steps)]
    unknown = sum(1 for s in parsed if isinstance(s, schemas.UnknownOp))
    if unknown:
        logger.warning(f"Plan has {unknown} step(s) with an unrecognised op")

    return schemas.QueryPlan(plan=parsed)
