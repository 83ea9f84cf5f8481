import httpx
import pytest

from woochat.catalog_client import CatalogClient
from woochat.context import (
    CONTEXT_HEADING,
    NO_MATCH_CONTEXT,
    UNAVAILABLE_CONTEXT,
    ContextAssembler,
    build_context_block,
    build_user_content,
    format_product_line,
)
from woochat.errors import CatalogError


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def make_assembler(handler, clock=None, ttl=300):
    catalog = CatalogClient(
        "https://shop.example.com",
        "ck_test",
        "cs_test",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    return ContextAssembler(catalog, "Be helpful.", cache_ttl=ttl, clock=clock or FakeClock())


def test_product_line_prefers_short_description(make_product):
    product = make_product(2, "Wireless Mouse", short_description="<p>Ergonomic</p>", price="29.99")
    assert format_product_line(product) == "Wireless Mouse: Ergonomic (Price: $29.99, Stock: instock)"


def test_product_line_truncates_long_description(make_product):
    product = make_product(1, "Rug", description="<div>" + "x" * 300 + "</div>", stock_status="outofstock")
    line = format_product_line(product)
    assert line == "Rug: " + "x" * 100 + " (Price: $10.00, Stock: outofstock)"


def test_context_block_fallback_when_nothing_matched():
    assert build_context_block([]) == NO_MATCH_CONTEXT


def test_context_block_starts_with_best_match(make_product):
    block = build_context_block([make_product(2, "Wireless Mouse", price="29.99"), make_product(1, "USB Cable")])
    assert block.splitlines()[0].startswith("Wireless Mouse: ")
    assert len(block.splitlines()) == 2


def test_user_content_order(make_product):
    block = build_context_block([make_product(2, "Wireless Mouse", price="29.99")])
    content = build_user_content("Preamble.", block, "wireless mouse?", heading=CONTEXT_HEADING)

    preamble, heading, catalog, question = content.split("\n\n")
    assert preamble == "Preamble."
    assert heading == CONTEXT_HEADING
    assert catalog.startswith("Wireless Mouse: ")
    assert question == "Customer Question: wireless mouse?"


async def test_assemble_renders_best_match_first(recording_handler, catalog_payload):
    handler = recording_handler(lambda request: httpx.Response(200, json=catalog_payload))
    assembler = make_assembler(handler)

    turn = await assembler.assemble("wireless mouse")

    sections = turn.content.split("\n\n")
    assert sections[1] == CONTEXT_HEADING
    assert sections[2].splitlines()[0] == "Wireless Mouse: Ergonomic 2.4GHz mouse (Price: $29.99, Stock: instock)"
    assert [product.name for product in turn.products] == ["Wireless Mouse", "USB Cable"]
    assert turn.catalog_available


async def test_cache_is_lazy_and_time_boxed(recording_handler, catalog_payload):
    handler = recording_handler(lambda request: httpx.Response(200, json=catalog_payload))
    clock = FakeClock()
    assembler = make_assembler(handler, clock=clock, ttl=300)

    assert handler.requests == []
    await assembler.assemble("mouse")
    await assembler.assemble("lamp")
    assert len(handler.requests) == 1

    clock.now += 301
    await assembler.assemble("mouse")
    assert len(handler.requests) == 2
    assert handler.requests[-1].url.params["per_page"] == "50"


async def test_invalidate_forces_refetch(recording_handler, catalog_payload):
    handler = recording_handler(lambda request: httpx.Response(200, json=catalog_payload))
    assembler = make_assembler(handler)

    await assembler.get_products()
    assembler.invalidate()
    await assembler.get_products()

    assert len(handler.requests) == 2


async def test_catalog_failure_degrades_gracefully(recording_handler):
    handler = recording_handler(
        lambda request: httpx.Response(500, json={"code": "server_error", "message": "boom", "data": {"status": 500}})
    )
    assembler = make_assembler(handler)

    turn = await assembler.assemble("wireless mouse")

    assert UNAVAILABLE_CONTEXT in turn.content
    assert turn.content.endswith("Customer Question: wireless mouse")
    assert turn.products == []
    assert not turn.catalog_available


async def test_failed_refresh_keeps_previous_cache(recording_handler, catalog_payload):
    responses = [httpx.Response(200, json=catalog_payload), httpx.Response(503, text="down")]
    handler = recording_handler(lambda request: responses.pop(0))
    assembler = make_assembler(handler)

    await assembler.refresh()
    with pytest.raises(CatalogError):
        await assembler.refresh()

    assert len(assembler.products) == 3


async def test_malformed_store_url_degrades_to_unavailable(recording_handler):
    handler = recording_handler(lambda request: httpx.Response(200, json=[]))
    catalog = CatalogClient(
        "https://my shop\x7f.example.com",
        "ck_test",
        "cs_test",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    assembler = ContextAssembler(catalog, "Be helpful.", clock=FakeClock())

    turn = await assembler.assemble("wireless mouse")

    assert UNAVAILABLE_CONTEXT in turn.content
    assert not turn.catalog_available
    assert handler.requests == []


async def test_assemble_search_lists_store_hits(recording_handler, catalog_payload):
    handler = recording_handler(lambda request: httpx.Response(200, json=catalog_payload[1:2]))
    assembler = make_assembler(handler)

    turn = await assembler.assemble_search("mouse")

    assert handler.requests[0].url.params["search"] == "mouse"
    assert handler.requests[0].url.params["per_page"] == "10"
    assert turn.content.startswith('I found 1 product(s) matching "mouse":\n\n1. Product: Wireless Mouse')
    assert turn.content.endswith("Please provide a helpful response about these products.")
    assert "Be helpful." not in turn.content
    assert [product.name for product in turn.products] == ["Wireless Mouse"]
    assert assembler.products == []


async def test_assemble_search_without_hits(recording_handler):
    assembler = make_assembler(recording_handler(lambda request: httpx.Response(200, json=[])))

    turn = await assembler.assemble_search("teapot")

    assert turn.content.startswith('I searched for "teapot" but couldn\'t find any matching products.')
    assert turn.products == []


async def test_assemble_search_propagates_catalog_errors(recording_handler):
    assembler = make_assembler(recording_handler(lambda request: httpx.Response(503, text="down")))

    with pytest.raises(CatalogError):
        await assembler.assemble_search("mouse")
