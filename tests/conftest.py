from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from woochat.catalog_client import CatalogClient
from woochat.completion_client import CompletionClient, ConversationWindow
from woochat.context import ContextAssembler
from woochat.conversation import ConversationManager
from woochat.models import Product, StoreSettings
from woochat.storage import MemoryStore

STORE_URL = "https://shop.example.com"
SYSTEM_PROMPT = "You are a helpful e-commerce assistant."
PREAMBLE = "Be friendly and concise."


def _product_payload(product_id: int, name: str, **fields: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": product_id,
        "name": name,
        "slug": name.lower().replace(" ", "-"),
        "permalink": f"{STORE_URL}/product/{product_id}",
        "type": "simple",
        "status": "publish",
        "description": "",
        "short_description": "",
        "sku": f"SKU-{product_id}",
        "price": "10.00",
        "regular_price": "10.00",
        "sale_price": "",
        "on_sale": False,
        "stock_status": "instock",
        "stock_quantity": None,
        "categories": [],
        "images": [],
        "attributes": [],
    }
    payload.update(fields)
    return payload


@pytest.fixture
def product_payload() -> Callable[..., Dict[str, Any]]:
    return _product_payload


@pytest.fixture
def make_product() -> Callable[..., Product]:
    def factory(product_id: int, name: str, **fields: Any) -> Product:
        return Product.model_validate(_product_payload(product_id, name, **fields))

    return factory


@pytest.fixture
def catalog_payload() -> List[Dict[str, Any]]:
    return [
        _product_payload(
            1,
            "USB Cable",
            description="<p>Braided cable, pairs well with a mouse pad.</p>",
            price="9.99",
            regular_price="9.99",
        ),
        _product_payload(
            2,
            "Wireless Mouse",
            short_description="<p>Ergonomic 2.4GHz mouse</p>",
            price="29.99",
            regular_price="29.99",
            categories=[{"id": 7, "name": "Peripherals", "slug": "peripherals"}],
        ),
        _product_payload(3, "Desk Lamp", description="LED lamp", price="19.00", regular_price="19.00"),
    ]


@pytest.fixture
def store_settings() -> StoreSettings:
    return StoreSettings(
        openai_api_key="sk-test",
        woocommerce_url=STORE_URL,
        woocommerce_consumer_key="ck_test",
        woocommerce_consumer_secret="cs_test",
    )


def completion_body(content: str) -> Dict[str, Any]:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 0,
        "model": "gpt-4o-mini",
        "choices": [
            {"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"}
        ],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
    }


@pytest.fixture
def completion_reply() -> Callable[[str], Dict[str, Any]]:
    return completion_body


class RecordingHandler:
    """MockTransport handler that records requests and delegates to a responder."""

    def __init__(self, responder: Callable[[httpx.Request], Any]) -> None:
        self.responder = responder
        self.requests: List[httpx.Request] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        result = self.responder(request)
        if not isinstance(result, httpx.Response):
            result = await result
        return result

    def json_bodies(self) -> List[Dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]


@pytest.fixture
def recording_handler() -> Callable[[Callable[[httpx.Request], Any]], RecordingHandler]:
    return RecordingHandler


@pytest.fixture
def build_manager(catalog_payload, store_settings):
    """Factory wiring a ConversationManager to mock catalog and completion transports."""

    def factory(
        completion: RecordingHandler,
        catalog: Optional[RecordingHandler] = None,
        settings: Optional[StoreSettings] = None,
        store: Optional[MemoryStore] = None,
    ) -> ConversationManager:
        if catalog is None:
            catalog = RecordingHandler(lambda request: httpx.Response(200, json=catalog_payload))
        active = settings or store_settings
        catalog_client = CatalogClient(
            active.woocommerce_url,
            active.woocommerce_consumer_key,
            active.woocommerce_consumer_secret,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(catalog)),
        )
        completion_client = CompletionClient(
            api_key=active.openai_api_key,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(completion)),
        )
        assembler = ContextAssembler(catalog_client, PREAMBLE)
        return ConversationManager(
            completion_client,
            assembler,
            ConversationWindow(SYSTEM_PROMPT),
            store=store or MemoryStore(),
            settings=active,
        )

    return factory
