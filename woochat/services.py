from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from .catalog_client import CatalogClient
from .completion_client import CompletionClient, ConversationWindow
from .config import Settings
from .context import ContextAssembler
from .conversation import ConversationManager
from .models import StoreSettings
from .prompt_loader import load_prompt
from .storage import KeyValueStore, load_store_settings, save_store_settings

logger = logging.getLogger("woochat.services")


@dataclass
class ChatServices:
    """Explicitly wired service graph; one instance per running app."""
    config: Settings
    store: KeyValueStore
    catalog: CatalogClient
    completion: CompletionClient
    assembler: ContextAssembler
    manager: ConversationManager

    def initialize(self) -> bool:
        """Purpose: Restore persisted settings and transcript.
        Inputs/Outputs: No inputs; returns True when a saved settings record existed.
        Side Effects / State: Configures both clients and loads the transcript. When no
            record is stored, credentials from the environment are applied instead.
        Testing Notes: With an empty store, env-provided keys must still configure clients.
        """
        stored = load_store_settings(self.store)
        if stored is None:
            seeded = StoreSettings(
                openai_api_key=self.config.openai_api_key,
                woocommerce_url=self.config.woocommerce_url,
                woocommerce_consumer_key=self.config.woocommerce_consumer_key,
                woocommerce_consumer_secret=self.config.woocommerce_consumer_secret,
            )
            self._configure(seeded)
        else:
            self._configure(stored)
        self.manager.load()
        return stored is not None

    def apply_settings(self, settings: StoreSettings) -> None:
        """Persist a new settings record and reconfigure every service that depends on it."""
        save_store_settings(self.store, settings)
        self._configure(settings)

    def _configure(self, settings: StoreSettings) -> None:
        if settings.has_api_key:
            self.completion.set_api_key(settings.openai_api_key)
        else:
            self.completion.reset()
        if settings.has_store_credentials:
            self.catalog.configure(
                settings.woocommerce_url,
                settings.woocommerce_consumer_key,
                settings.woocommerce_consumer_secret,
            )
        else:
            self.catalog.reset()
        self.assembler.invalidate()
        self.manager.settings = settings
        logger.info(
            "settings applied api_key=%s store=%s",
            settings.has_api_key,
            settings.has_store_credentials,
        )

    async def aclose(self) -> None:
        self.manager.cancel()
        await self.catalog.aclose()
        await self.completion.aclose()


def build_services(
    config: Settings,
    store: KeyValueStore,
    catalog_http: Optional[httpx.AsyncClient] = None,
    completion_http: Optional[httpx.AsyncClient] = None,
) -> ChatServices:
    """Purpose: Construct the catalog/completion clients and everything built on them.
    Inputs/Outputs: Inputs are runtime config, a key-value store, and optional injected
        HTTP clients; returns an uninitialized ChatServices.
    Side Effects / State: Reads the prompt files from config.prompts_dir.
    Failure Modes: Missing prompt files raise FileNotFoundError.
    """
    system_prompt = load_prompt(config.prompts_dir / "system_prompt.md")
    preamble = load_prompt(config.prompts_dir / "context_preamble.md")

    catalog = CatalogClient(http_client=catalog_http, timeout=config.request_timeout)
    completion = CompletionClient(
        model=config.openai_model,
        api_url=config.openai_api_url,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
        http_client=completion_http,
        timeout=config.request_timeout,
    )
    assembler = ContextAssembler(
        catalog,
        preamble,
        cache_ttl=config.product_cache_ttl,
        fetch_limit=config.context_product_limit,
    )
    manager = ConversationManager(
        completion,
        assembler,
        ConversationWindow(system_prompt),
        store=store,
    )
    return ChatServices(
        config=config,
        store=store,
        catalog=catalog,
        completion=completion,
        assembler=assembler,
        manager=manager,
    )
