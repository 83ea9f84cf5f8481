"""Keyword relevance scoring of catalog products against a free-text query."""

from __future__ import annotations

from typing import List, Sequence, Tuple

from .models import Product

MIN_KEYWORD_LENGTH = 3
BODY_MATCH_SCORE = 1
NAME_MATCH_SCORE = 3
DEFAULT_LIMIT = 5


def extract_keywords(query: str) -> List[str]:
    """Purpose: Split a query into lowercase keywords worth matching.
    Inputs/Outputs: Input is the raw query; output is the words longer than two characters,
        in query order (duplicates kept, each counts again).
    Side Effects / State: None.
    Testing Notes: "a usb mouse" yields ["usb", "mouse"].
    """
    return [word for word in query.lower().split() if len(word) >= MIN_KEYWORD_LENGTH]


def build_product_blob(product: Product) -> str:
    """Purpose: Build the lowercase searchable text for one product.
    Inputs/Outputs: Input is a Product; output is name, description, short description,
        and category names joined by spaces.
    Side Effects / State: None.
    Testing Notes: Category names must be matchable even when the name is not.
    """
    categories = " ".join(category.name for category in product.categories)
    parts = [product.name, product.description, product.short_description, categories]
    return " ".join(parts).lower()


def score_product(product: Product, keywords: Sequence[str]) -> int:
    """Score one product: +1 per keyword anywhere in the blob, +3 more when it is in the name."""
    blob = build_product_blob(product)
    name = product.name.lower()
    score = 0
    for keyword in keywords:
        if keyword in blob:
            score += BODY_MATCH_SCORE
        if keyword in name:
            score += NAME_MATCH_SCORE
    return score


def find_relevant_products(query: str, products: Sequence[Product], limit: int = DEFAULT_LIMIT) -> List[Product]:
    """Purpose: Rank catalog products against a free-text query.
    Inputs/Outputs: Inputs are the query, candidate products, and a result cap; output is
        at most ``limit`` products sorted by descending score.
    Side Effects / State: None.
    Dependencies: extract_keywords, score_product.
    Failure Modes: Empty catalog or a query without usable keywords returns [].
    Testing Notes: Ties must keep catalog order; zero scores never appear.
    """
    if not products:
        return []
    keywords = extract_keywords(query)
    if not keywords:
        return []

    scored: List[Tuple[int, Product]] = []
    for product in products:
        score = score_product(product, keywords)
        if score > 0:
            scored.append((score, product))

    # list.sort is stable, so equal scores keep catalog order.
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [product for _, product in scored[:limit]]
