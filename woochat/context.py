"""Product context assembly for outbound user turns.

The assembler keeps one time-boxed copy of the catalog, ranks it against the
operator's question, and renders the matches into the text block that is sent
upstream in place of the literal question.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .catalog_client import CatalogClient
from .errors import CatalogError, ConfigurationError
from .formatting import format_products_for_ai
from .models import Product
from .relevance import DEFAULT_LIMIT, find_relevant_products
from .utils import strip_html, truncate_text

logger = logging.getLogger("woochat.context")

DEFAULT_CACHE_TTL = 5 * 60
DESCRIPTION_PREVIEW_CHARS = 100
CONTEXT_HEADING = "Relevant products from our catalog:"
NO_MATCH_CONTEXT = "No specific products found matching your query, but I can help with general information."
UNAVAILABLE_CONTEXT = "Product information is currently unavailable."
SEARCH_HIT_TEMPLATE = (
    "I found {count} product(s) matching \"{term}\":\n\n{details}\n\n"
    "Please provide a helpful response about these products."
)
SEARCH_MISS_TEMPLATE = (
    "I searched for \"{term}\" but couldn't find any matching products. "
    "Can you help me find what I'm looking for?"
)
SEARCH_LIMIT = 10


@dataclass
class AssembledTurn:
    """Outbound user-turn content plus the products it references."""
    content: str
    products: List[Product] = field(default_factory=list)
    catalog_available: bool = True


def format_product_line(product: Product) -> str:
    """Render one product as `name: summary (Price: $x, Stock: status)`."""
    summary = strip_html(product.short_description)
    if not summary:
        summary = truncate_text(strip_html(product.description), DESCRIPTION_PREVIEW_CHARS)
    return f"{product.name}: {summary} (Price: ${product.price}, Stock: {product.stock_status})"


def build_context_block(products: List[Product]) -> str:
    """One line per product, best match first; the fallback sentence when empty."""
    if not products:
        return NO_MATCH_CONTEXT
    return "\n".join(format_product_line(product) for product in products)


def build_user_content(preamble: str, context_block: str, question: str, heading: str = "") -> str:
    """Join the preamble, optional heading, catalog block, and the operator's literal question."""
    sections = [preamble.strip(), heading, context_block, f"Customer Question: {question}"]
    return "\n\n".join(section for section in sections if section)


class ContextAssembler:
    """Time-boxed catalog cache plus relevance-ranked context rendering."""

    def __init__(
        self,
        catalog: CatalogClient,
        preamble: str,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        fetch_limit: int = 50,
        match_limit: int = DEFAULT_LIMIT,
        search_limit: int = SEARCH_LIMIT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Purpose: Wire the assembler to a catalog client and cache policy.
        Inputs/Outputs: Inputs are the catalog client, preamble text, TTL in seconds, the
            page size used for cache fills, the match and search caps, and a monotonic clock.
        Side Effects / State: Starts with an empty, never-fetched cache.
        Dependencies: CatalogClient, relevance scoring.
        Testing Notes: Inject a fake clock to step past the TTL.
        """
        self._catalog = catalog
        self._preamble = preamble
        self._cache_ttl = cache_ttl
        self._fetch_limit = fetch_limit
        self._match_limit = match_limit
        self._search_limit = search_limit
        self._clock = clock
        self._products: List[Product] = []
        self._fetched_at: Optional[float] = None

    @property
    def products(self) -> List[Product]:
        return list(self._products)

    @property
    def is_stale(self) -> bool:
        if self._fetched_at is None:
            return True
        return (self._clock() - self._fetched_at) > self._cache_ttl

    def invalidate(self) -> None:
        """Drop the cached catalog so the next use refetches."""
        self._products = []
        self._fetched_at = None

    async def refresh(self) -> List[Product]:
        """Purpose: Refetch the catalog unconditionally and replace the cache wholesale.
        Inputs/Outputs: No inputs; returns the new product list.
        Side Effects / State: One catalog request; updates the cache and its timestamp.
        Failure Modes: CatalogError/ConfigurationError propagate; the old cache is kept.
        Testing Notes: A failing refresh must not clear previously cached products.
        """
        products = await self._catalog.fetch_products(per_page=self._fetch_limit)
        self._products = products
        self._fetched_at = self._clock()
        logger.info("product cache refreshed count=%s", len(products))
        return list(products)

    async def get_products(self) -> List[Product]:
        # Lazy on first use, then whenever the TTL has elapsed.
        if self.is_stale:
            return await self.refresh()
        return list(self._products)

    async def assemble(self, question: str) -> AssembledTurn:
        """Purpose: Build the outbound user-turn content for a question.
        Inputs/Outputs: Input is the operator's literal question; output is an AssembledTurn.
        Side Effects / State: May refresh the product cache.
        Dependencies: get_products, find_relevant_products, build_context_block.
        Failure Modes: Catalog failures degrade to an "unavailable" block with no products;
            the turn itself still proceeds.
        Testing Notes: Make the catalog raise and check UNAVAILABLE_CONTEXT is sent.
        """
        try:
            catalog = await self.get_products()
        except (CatalogError, ConfigurationError) as exc:
            logger.warning("product context unavailable: %s", exc)
            content = build_user_content(self._preamble, UNAVAILABLE_CONTEXT, question)
            return AssembledTurn(content=content, products=[], catalog_available=False)

        matches = find_relevant_products(question, catalog, limit=self._match_limit)
        logger.debug("context matches=%s catalog=%s", len(matches), len(catalog))
        heading = CONTEXT_HEADING if matches else ""
        content = build_user_content(self._preamble, build_context_block(matches), question, heading=heading)
        return AssembledTurn(content=content, products=matches)

    async def assemble_search(self, term: str) -> AssembledTurn:
        """Purpose: Build an outbound turn from a live store search for the term.
        Inputs/Outputs: Input is the search term; output is an AssembledTurn whose
            content lists the hits in detail, with no preamble or cached-catalog block.
        Side Effects / State: One catalog search request; the product cache is untouched.
        Dependencies: CatalogClient.search_products, format_products_for_ai.
        Failure Modes: CatalogError/ConfigurationError propagate and fail the turn.
        """
        products = await self._catalog.search_products(term, limit=self._search_limit)
        logger.debug("search term=%s hits=%s", term, len(products))
        if not products:
            return AssembledTurn(content=SEARCH_MISS_TEMPLATE.format(term=term))
        content = SEARCH_HIT_TEMPLATE.format(
            count=len(products),
            term=term,
            details=format_products_for_ai(products),
        )
        return AssembledTurn(content=content, products=products)
