import httpx
import pytest

from woochat.catalog_client import CatalogClient
from woochat.errors import CatalogError, ConfigurationError


def make_client(handler, url="https://shop.example.com/", key="ck_test", secret="cs_test"):
    return CatalogClient(
        url,
        key,
        secret,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


async def test_fetch_products_sends_credentials_and_defaults(recording_handler, catalog_payload):
    handler = recording_handler(lambda request: httpx.Response(200, json=catalog_payload))
    client = make_client(handler)

    products = await client.fetch_products(per_page=20, category="7")

    request = handler.requests[0]
    assert request.url.path == "/wp-json/wc/v3/products"
    assert request.url.params["consumer_key"] == "ck_test"
    assert request.url.params["consumer_secret"] == "cs_test"
    assert request.url.params["per_page"] == "20"
    assert request.url.params["category"] == "7"
    assert request.url.params["status"] == "publish"
    assert request.url.params["orderby"] == "date"
    assert request.url.params["order"] == "desc"
    assert "search" not in request.url.params
    assert [product.name for product in products] == ["USB Cable", "Wireless Mouse", "Desk Lamp"]
    assert products[1].categories[0].name == "Peripherals"


async def test_search_products_passes_term(recording_handler):
    handler = recording_handler(lambda request: httpx.Response(200, json=[]))
    client = make_client(handler)

    assert await client.search_products("mouse", limit=10) == []
    assert handler.requests[0].url.params["search"] == "mouse"
    assert handler.requests[0].url.params["per_page"] == "10"


async def test_upstream_error_is_normalized(recording_handler):
    body = {"code": "woocommerce_rest_cannot_view", "message": "Sorry, you cannot list resources.", "data": {"status": 401}}
    handler = recording_handler(lambda request: httpx.Response(401, json=body))
    client = make_client(handler)

    with pytest.raises(CatalogError) as excinfo:
        await client.fetch_products()

    assert excinfo.value.status == 401
    assert excinfo.value.code == "woocommerce_rest_cannot_view"
    assert str(excinfo.value) == "Sorry, you cannot list resources."


async def test_non_json_error_body(recording_handler):
    handler = recording_handler(lambda request: httpx.Response(502, text="<html>Bad gateway</html>"))
    client = make_client(handler)

    with pytest.raises(CatalogError) as excinfo:
        await client.fetch_products()

    assert excinfo.value.status == 502
    assert excinfo.value.code == "unknown_error"
    assert excinfo.value.message == "HTTP error! status: 502"


async def test_transport_failure_becomes_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)

    with pytest.raises(CatalogError) as excinfo:
        await client.fetch_products()

    assert excinfo.value.code == "network_error"
    assert excinfo.value.status is None


async def test_malformed_store_url_becomes_network_error(recording_handler):
    handler = recording_handler(lambda request: httpx.Response(200, json=[]))
    client = make_client(handler, url="https://my shop.example.com")

    with pytest.raises(CatalogError) as excinfo:
        await client.fetch_products()

    assert excinfo.value.code == "network_error"
    assert handler.requests == []
    assert await client.check_connection() is False


async def test_invalid_payload(recording_handler):
    handler = recording_handler(lambda request: httpx.Response(200, json={"unexpected": True}))
    client = make_client(handler)

    with pytest.raises(CatalogError) as excinfo:
        await client.fetch_products()

    assert excinfo.value.code == "invalid_response"


async def test_unconfigured_client_makes_no_request(recording_handler):
    handler = recording_handler(lambda request: httpx.Response(200, json=[]))
    client = make_client(handler, url="", key="", secret="")

    with pytest.raises(ConfigurationError):
        await client.fetch_products()

    assert handler.requests == []
    assert await client.check_connection() is False


async def test_configure_and_reset_lifecycle(recording_handler):
    handler = recording_handler(lambda request: httpx.Response(200, json=[]))
    client = make_client(handler, url="", key="", secret="")

    client.configure("https://other.example.com/", "ck_new", "cs_new")
    assert client.is_configured
    assert await client.check_connection() is True
    assert handler.requests[0].url.host == "other.example.com"
    assert handler.requests[0].url.params["per_page"] == "1"

    client.reset()
    assert not client.is_configured


async def test_fetch_all_products_stops_on_short_page(recording_handler, product_payload):
    pages = {
        "1": [product_payload(1, "A"), product_payload(2, "B")],
        "2": [product_payload(3, "C"), product_payload(4, "D")],
        "3": [product_payload(5, "E")],
    }
    handler = recording_handler(lambda request: httpx.Response(200, json=pages[request.url.params["page"]]))
    client = make_client(handler)

    products = await client.fetch_all_products(per_page=2)

    assert [product.id for product in products] == [1, 2, 3, 4, 5]
    assert len(handler.requests) == 3


async def test_fetch_product_by_id(recording_handler, product_payload):
    handler = recording_handler(lambda request: httpx.Response(200, json=product_payload(42, "Answer", price=42)))
    client = make_client(handler)

    product = await client.fetch_product(42)

    assert handler.requests[0].url.path == "/wp-json/wc/v3/products/42"
    assert product.name == "Answer"
    assert product.price == "42"
