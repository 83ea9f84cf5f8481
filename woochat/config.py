from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent

DEFAULT_OPENAI_API_URL = "https://api.openai.com/v1/chat/completions"


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for upstream APIs, caching, and local storage."""
    openai_api_key: str
    openai_model: str
    openai_api_url: str
    max_tokens: int
    temperature: float
    woocommerce_url: str
    woocommerce_consumer_key: str
    woocommerce_consumer_secret: str
    product_cache_ttl: float
    context_product_limit: int
    request_timeout: float
    data_dir: Path
    prompts_dir: Path
    frontend_dir: Path


def load_settings() -> Settings:
    """Purpose: Load runtime configuration from environment variables and defaults.
    Inputs/Outputs: No inputs; returns a Settings instance.
    Side Effects / State: Reads environment variables and resolves filesystem paths.
    Dependencies: Uses os.getenv and BASE_DIR for default paths.
    Failure Modes: Non-numeric OPENAI_MAX_TOKENS/OPENAI_TEMPERATURE/PRODUCT_CACHE_TTL/
        CONTEXT_PRODUCT_LIMIT/REQUEST_TIMEOUT values raise ValueError.
    Testing Notes: Verify defaults and overrides via environment variables.
    """
    # Resolve storage and prompt paths, then build Settings.
    data_dir_env = os.getenv("DATA_DIR")
    if data_dir_env:
        data_dir = Path(data_dir_env).resolve()
    else:
        data_dir = (BASE_DIR / "data").resolve()

    return Settings(
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        openai_api_url=os.getenv("OPENAI_API_URL") or DEFAULT_OPENAI_API_URL,
        max_tokens=int(os.getenv("OPENAI_MAX_TOKENS", "1000")),
        temperature=float(os.getenv("OPENAI_TEMPERATURE", "0.7")),
        woocommerce_url=os.getenv("WOOCOMMERCE_STORE_URL", ""),
        woocommerce_consumer_key=os.getenv("WOOCOMMERCE_CONSUMER_KEY", ""),
        woocommerce_consumer_secret=os.getenv("WOOCOMMERCE_CONSUMER_SECRET", ""),
        product_cache_ttl=float(os.getenv("PRODUCT_CACHE_TTL", "300")),
        context_product_limit=int(os.getenv("CONTEXT_PRODUCT_LIMIT", "50")),
        request_timeout=float(os.getenv("REQUEST_TIMEOUT", "30")),
        data_dir=data_dir,
        prompts_dir=(BASE_DIR / "prompts").resolve(),
        frontend_dir=(BASE_DIR / "frontend").resolve(),
    )
