"""Async client for the WooCommerce REST products endpoint.

Every request carries the consumer key/secret as query parameters. Upstream
failures are normalized into CatalogError so callers can render one message
regardless of whether the store, the network, or the payload was at fault.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from .errors import CatalogError, ConfigurationError
from .models import Product
from .utils import safe_json_loads

logger = logging.getLogger("woochat.catalog")

API_PREFIX = "wp-json/wc/v3"
DEFAULT_HEADERS = {"Content-Type": "application/json"}


class CatalogClient:
    """Thin wrapper around the store's products API with explicit configure/reset lifecycle."""

    def __init__(
        self,
        store_url: str = "",
        consumer_key: str = "",
        consumer_secret: str = "",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ) -> None:
        """Purpose: Store credentials and the shared HTTP client.
        Inputs/Outputs: Inputs are store credentials and an optional httpx.AsyncClient.
        Side Effects / State: Creates an AsyncClient when none is injected; the client
            is owned (and closed by aclose) only in that case.
        Dependencies: httpx.
        Failure Modes: None at init; missing credentials surface on first request.
        Testing Notes: Inject a client built on httpx.MockTransport.
        """
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)
        self._store_url = ""
        self._consumer_key = ""
        self._consumer_secret = ""
        self.configure(store_url, consumer_key, consumer_secret)

    def configure(self, store_url: str, consumer_key: str, consumer_secret: str) -> None:
        """Replace the store credentials used by subsequent requests."""
        self._store_url = (store_url or "").strip().rstrip("/")
        self._consumer_key = (consumer_key or "").strip()
        self._consumer_secret = (consumer_secret or "").strip()
        if self._store_url:
            logger.info("catalog configured store=%s", self._store_url)

    def reset(self) -> None:
        """Forget all credentials; the client returns to the unconfigured state."""
        self._store_url = ""
        self._consumer_key = ""
        self._consumer_secret = ""

    @property
    def is_configured(self) -> bool:
        return bool(self._store_url and self._consumer_key and self._consumer_secret)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    def build_url(self, endpoint: str) -> str:
        return f"{self._store_url}/{API_PREFIX}/{endpoint.lstrip('/')}"

    def _auth_params(self) -> Dict[str, str]:
        return {
            "consumer_key": self._consumer_key,
            "consumer_secret": self._consumer_secret,
        }

    async def _get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Purpose: Perform an authenticated GET and decode the JSON body.
        Inputs/Outputs: Inputs are an endpoint path and query params; returns decoded JSON.
        Side Effects / State: One HTTP request through the shared client.
        Dependencies: httpx, safe_json_loads for error bodies.
        Failure Modes: ConfigurationError when unconfigured (no request is made);
            CatalogError for transport failures, non-2xx statuses, and undecodable bodies.
        Testing Notes: Return a 401 with {code, message, data.status} and check the fields.
        """
        if not self.is_configured:
            raise ConfigurationError(
                "WooCommerce connection is not configured. Please add your store URL and API credentials in settings."
            )

        # Credentials first, then caller params with empty values dropped.
        query: Dict[str, Any] = self._auth_params()
        for key, value in (params or {}).items():
            if value is None or value == "":
                continue
            query[key] = value

        url = self.build_url(endpoint)
        try:
            response = await self._http.get(url, params=query, headers=DEFAULT_HEADERS)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            # InvalidURL is not an HTTPError; a malformed store URL lands here.
            logger.error("catalog request failed endpoint=%s error=%s", endpoint, exc)
            raise CatalogError(f"Network error: {exc}", code="network_error") from exc

        if response.is_error:
            payload = safe_json_loads(response.text) or {}
            data = payload.get("data")
            status = response.status_code
            if isinstance(data, dict) and isinstance(data.get("status"), int):
                status = data["status"]
            message = payload.get("message") or f"HTTP error! status: {response.status_code}"
            code = payload.get("code") or "unknown_error"
            logger.warning("catalog error endpoint=%s status=%s code=%s", endpoint, status, code)
            raise CatalogError(str(message), status=status, code=str(code))

        try:
            return response.json()
        except ValueError as exc:
            raise CatalogError(
                "Invalid response from store",
                status=response.status_code,
                code="invalid_response",
            ) from exc

    async def fetch_products(
        self,
        per_page: int = 100,
        page: Optional[int] = None,
        search: Optional[str] = None,
        category: Optional[str] = None,
        status: str = "publish",
        orderby: str = "date",
        order: str = "desc",
    ) -> List[Product]:
        """Fetch one page of products; no retry, the caller decides."""
        params: Dict[str, Any] = {
            "per_page": per_page,
            "page": page,
            "search": search,
            "category": category,
            "status": status,
            "orderby": orderby,
            "order": order,
        }
        data = await self._get("products", params)
        if not isinstance(data, list):
            raise CatalogError("Invalid response from store", code="invalid_response")
        products = _parse_products(data)
        logger.debug("catalog fetched count=%s page=%s", len(products), page)
        return products

    async def fetch_product(self, product_id: int) -> Product:
        data = await self._get(f"products/{product_id}")
        if not isinstance(data, dict):
            raise CatalogError("Invalid response from store", code="invalid_response")
        return _parse_products([data])[0]

    async def search_products(self, term: str, limit: int = 20) -> List[Product]:
        return await self.fetch_products(per_page=limit, search=term)

    async def fetch_products_by_category(self, category_id: str, limit: int = 20) -> List[Product]:
        return await self.fetch_products(per_page=limit, category=str(category_id))

    async def fetch_all_products(self, per_page: int = 100, max_pages: int = 10) -> List[Product]:
        """Purpose: Walk the paginated products endpoint until a short page is returned.
        Inputs/Outputs: Inputs are page size and a page cap; returns all products in order.
        Side Effects / State: Up to max_pages HTTP requests.
        Dependencies: fetch_products.
        Failure Modes: The first failing page raises; already fetched pages are discarded.
        Testing Notes: Serve two full pages and a partial third and count the requests.
        """
        products: List[Product] = []
        for page in range(1, max_pages + 1):
            batch = await self.fetch_products(per_page=per_page, page=page)
            products.extend(batch)
            if len(batch) < per_page:
                break
        return products

    async def check_connection(self) -> bool:
        """Probe the store with a single-product request."""
        try:
            await self.fetch_products(per_page=1)
        except (CatalogError, ConfigurationError) as exc:
            logger.warning("catalog connection check failed: %s", exc)
            return False
        return True


def _parse_products(items: List[Any]) -> List[Product]:
    # Skip non-object entries; a malformed object fails the whole payload.
    try:
        return [Product.model_validate(item) for item in items if isinstance(item, dict)]
    except ValidationError as exc:
        raise CatalogError("Invalid product data from store", code="invalid_response") from exc
