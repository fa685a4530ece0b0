import math
import re
from typing import Dict, Iterable, List, Mapping, Optional, Set

from rapidfuzz.distance import Levenshtein

from app.core import schemas


# -----------------------------------------------------------------------------
# RERANK MODULE
# Purpose: approximate keyword relevance over a small candidate set.
# Tokens are fuzzily matched (typos, "dino" ~ "dinosaur") and weighted by IDF
# so a keyword every candidate matches counts for little.
# -----------------------------------------------------------------------------


# Broad product nouns that can't discriminate on their own
GENERIC_TERMS: frozenset = frozenset(
    {
        "onesie",
        "shirt",
        "pants",
        "item",
        "items",
        "product",
        "products",
        "clothes",
        "clothing",
    }
)

_STRIP_RE = re.compile(r"[^a-z0-9\- ]")
_SPACE_RE = re.compile(r"\s+")


def normalize_token(value: Optional[str]) -> str:
    """Lowercase, keep [a-z0-9- ], treat hyphens as spaces, collapse whitespace."""
    value = (value or "").lower()
    value = _STRIP_RE.sub("", value)
    value = value.replace("-", " ")
    return _SPACE_RE.sub(" ", value).strip()


def tokenize(value: Optional[str]) -> List[str]:
    return [t for t in normalize_token(value).split() if len(t) > 1]


def levenshtein(a: str, b: str) -> int:
    """Edit distance (insert, delete, substitute)."""
    return Levenshtein.distance(a, b)


def fuzzy_token_equals(a: Optional[str], b: Optional[str]) -> bool:
    """
    Loose token equality.

    Short tokens (<= 5 chars on either side) tolerate one edit, longer ones
    two. Failing that, a prefix of at least 4 chars counts ("dino" ~ "dinosaur").
    """
    a = normalize_token(a)
    b = normalize_token(b)
    if a == b:
        return True

    max_distance = 1 if (len(a) <= 5 or len(b) <= 5) else 2
    if levenshtein(a, b) <= max_distance:
        return True

    if min(len(a), len(b)) >= 4 and (a.startswith(b) or b.startswith(a)):
        return True

    return False


def normalize_keywords(keywords: Iterable[str]) -> List[str]:
    """Trim, drop blanks, normalize and de-duplicate while keeping order."""
    seen: Set[str] = set()
    out: List[str] = []
    for kw in keywords or []:
        if not isinstance(kw, str) or not kw.strip():
            continue
        norm = normalize_token(kw.strip())
        if norm and norm not in seen:
            seen.add(norm)
            out.append(norm)
    return out


def build_token_map(
    products: Iterable[schemas.ProductRecord],
) -> Dict[int, Set[str]]:
    return {
        p.productid: set(tokenize(f"{p.productname or ''} {p.description or ''}"))
        for p in products
    }


def _matches(tokens: Set[str], keyword: str) -> bool:
    return any(fuzzy_token_equals(t, keyword) for t in tokens)


def idf_weights(
    keywords: List[str], token_map: Mapping[int, Set[str]]
) -> Dict[str, float]:
    """
    weight(kw) = ln(1 + (N + 1) / (df + 1)), df = candidates matching kw.
    """
    n = len(token_map)
    weights = {}
    for kw in keywords:
        df = sum(1 for tokens in token_map.values() if _matches(tokens, kw))
        weights[kw] = math.log(1.0 + (n + 1.0) / (df + 1.0))
    return weights


def rerank(
    rows: List[schemas.ProductCategoryRow],
    products: Iterable[schemas.ProductRecord],
    keywords: Iterable[str],
    strict: bool = True,
    generic_terms: Optional[Iterable[str]] = None,
) -> List[schemas.ProductCategoryRow]:
    """
    Score, filter and order candidate rows against free-text keywords.

    Args:
        rows: One representative variant row per product
        products: Product records providing the text to tokenize
        keywords: Free-text keywords from the plan
        strict: Drop candidates that miss the keyword policy below
        generic_terms: Override of the generic vocabulary

    Strict policy:
        - every keyword generic: keep a row matching any keyword
        - mixed: keep a row matching at least one non-generic keyword

    Returns:
        Retained rows by score desc, price asc, productcategoryid asc
    """
    kws = normalize_keywords(keywords)
    if not kws or not rows:
        return list(rows)

    generic = frozenset(generic_terms) if generic_terms is not None else GENERIC_TERMS
    token_map = build_token_map(products)
    weights = idf_weights(kws, token_map)

    all_generic = all(kw in generic for kw in kws)

    scored = []
    for row in rows:
        tokens = token_map.get(row.productid, set())
        matched = [kw for kw in kws if _matches(tokens, kw)]
        score = sum(weights[kw] for kw in matched)

        if strict:
            if all_generic:
                keep = bool(matched)
            else:
                keep = any(kw not in generic for kw in matched)
            if not keep:
                continue

        scored.append((score, row))

    scored.sort(key=lambda item: (-item[0], item[1].price, item[1].productcategoryid))
    return [row for _, row in scored]
