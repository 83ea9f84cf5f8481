from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from .config import load_settings
from .errors import CatalogError, ConfigurationError, WooChatError
from .formatting import format_price, format_product_for_ai, regular_price_display, stock_label
from .models import ChatRequest, ChatState, ConnectionStatus, Product, ProductDetail, StoreSettings
from .services import ChatServices, build_services
from .storage import JsonFileStore

BASE_DIR = Path(__file__).resolve().parent

log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
log_level = getattr(logging, log_level_name, logging.INFO)
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

logging.getLogger("woochat").setLevel(log_level)
logger = logging.getLogger("woochat.app")

ENV_PATH = BASE_DIR / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH, override=True)


def _to_http_error(exc: WooChatError) -> HTTPException:
    """Purpose: Map the error taxonomy onto HTTP statuses for the local UI.
    Inputs/Outputs: Input is a WooChatError; output is an HTTPException to raise.
    Failure Modes: Unknown subclasses map to 502.
    """
    # Configuration problems are the operator's to fix; upstream ones are not.
    if isinstance(exc, ConfigurationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, CatalogError) and exc.status == 404:
        return HTTPException(status_code=404, detail=exc.message)
    return HTTPException(status_code=502, detail=str(exc))


def create_app(services: Optional[ChatServices] = None) -> FastAPI:
    """Purpose: Build the FastAPI app serving the chat UI and its JSON API.
    Inputs/Outputs: Optional pre-built ChatServices; returns a FastAPI instance.
    Side Effects / State: Without injected services, reads config from the environment
        and opens the JSON store under DATA_DIR. Restores settings and transcript.
    Dependencies: build_services, JsonFileStore, FastAPI.
    Failure Modes: Invalid numeric env values raise ValueError at startup.
    Testing Notes: Inject services built on httpx.MockTransport and use TestClient.
    """
    if services is None:
        config = load_settings()
        services = build_services(config, JsonFileStore(config.data_dir / "store.json"))
    has_saved_settings = services.initialize()
    if not has_saved_settings:
        logger.info("no saved settings; configure credentials via PUT /api/settings")

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        await services.aclose()

    app = FastAPI(title="WooChat Store Assistant", lifespan=lifespan)
    app.state.services = services
    manager = services.manager
    frontend_dir = services.config.frontend_dir
    if frontend_dir.exists():
        app.mount("/static", StaticFiles(directory=frontend_dir), name="static")

    def chat_state() -> ChatState:
        return ChatState(messages=manager.messages, is_sending=manager.is_sending, error=manager.error)

    @app.get("/", include_in_schema=False)
    def serve_index() -> FileResponse:
        # Serve the static index.html from the frontend directory.
        return FileResponse(frontend_dir / "index.html")

    @app.get("/api/settings", response_model=StoreSettings)
    async def get_settings() -> StoreSettings:
        return manager.settings

    @app.put("/api/settings", response_model=StoreSettings)
    async def update_settings(settings: StoreSettings) -> StoreSettings:
        services.apply_settings(settings)
        return manager.settings

    @app.get("/api/connection", response_model=ConnectionStatus)
    async def connection() -> ConnectionStatus:
        connected = await services.catalog.check_connection()
        return ConnectionStatus(status="connected" if connected else "disconnected")

    @app.get("/api/products", response_model=List[Product])
    async def list_products(search: Optional[str] = None, category: Optional[str] = None) -> List[Product]:
        try:
            if search:
                return await services.catalog.search_products(search)
            if category:
                return await services.catalog.fetch_products_by_category(category)
            return await services.assembler.get_products()
        except WooChatError as exc:
            raise _to_http_error(exc) from exc

    @app.post("/api/products/refresh", response_model=List[Product])
    async def refresh_products() -> List[Product]:
        try:
            return await services.assembler.refresh()
        except WooChatError as exc:
            raise _to_http_error(exc) from exc

    @app.get("/api/products/{product_id}", response_model=ProductDetail)
    async def product_detail(product_id: int) -> ProductDetail:
        try:
            product = await services.catalog.fetch_product(product_id)
        except WooChatError as exc:
            raise _to_http_error(exc) from exc
        return ProductDetail(
            product=product,
            price=format_price(product.price),
            regular_price=regular_price_display(product),
            stock=stock_label(product.stock_status),
            summary=format_product_for_ai(product),
        )

    @app.get("/api/messages", response_model=ChatState)
    async def get_messages() -> ChatState:
        return chat_state()

    @app.delete("/api/messages", response_model=ChatState)
    async def clear_messages() -> ChatState:
        manager.clear()
        return chat_state()

    @app.post("/api/chat", response_model=ChatState)
    async def chat(request: ChatRequest) -> ChatState:
        await manager.submit(request.message, interrupt=request.interrupt)
        return chat_state()

    @app.post("/api/chat/search", response_model=ChatState)
    async def chat_search(request: ChatRequest) -> ChatState:
        await manager.search(request.message, interrupt=request.interrupt)
        return chat_state()

    @app.post("/api/chat/retry", response_model=ChatState)
    async def retry() -> ChatState:
        await manager.retry_last()
        return chat_state()

    @app.post("/api/chat/cancel", response_model=ChatState)
    async def cancel() -> ChatState:
        manager.cancel()
        return chat_state()

    return app


def main() -> None:
    import uvicorn

    uvicorn.run(
        "woochat.app:create_app",
        factory=True,
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        log_level=log_level_name.lower(),
    )


if __name__ == "__main__":
    main()
