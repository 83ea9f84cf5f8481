from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ProductCategory(BaseModel):
    """Category reference embedded in a product record."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int = 0
    name: str = ""
    slug: str = ""


class ProductImage(BaseModel):
    """Image reference embedded in a product record."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int = 0
    src: str = ""
    name: str = ""
    alt: str = ""


class ProductAttribute(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int = 0
    name: str = ""
    options: List[str] = Field(default_factory=list)


class Product(BaseModel):
    """Catalog record as returned by the store's products endpoint."""
    model_config = ConfigDict(frozen=True, extra="ignore", coerce_numbers_to_str=True)

    id: int
    name: str = ""
    slug: str = ""
    permalink: str = ""
    type: str = "simple"
    status: str = "publish"
    description: str = ""
    short_description: str = ""
    sku: str = ""
    price: str = ""
    regular_price: str = ""
    sale_price: str = ""
    on_sale: bool = False
    stock_status: str = "instock"
    stock_quantity: Optional[int] = None
    categories: List[ProductCategory] = Field(default_factory=list)
    images: List[ProductImage] = Field(default_factory=list)
    attributes: List[ProductAttribute] = Field(default_factory=list)


class Message(BaseModel):
    """Visible transcript entry; products are the cards attached to a reply."""
    id: str
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime
    products: Optional[List[Product]] = None


class CompletionMessage(BaseModel):
    """Role-tagged entry of the conversation window sent upstream."""
    role: Literal["system", "user", "assistant"]
    content: str


class StoreSettings(BaseModel):
    """Operator-editable credentials, persisted as a single record."""
    openai_api_key: str = ""
    woocommerce_url: str = ""
    woocommerce_consumer_key: str = ""
    woocommerce_consumer_secret: str = ""

    @property
    def has_api_key(self) -> bool:
        return bool(self.openai_api_key.strip())

    @property
    def has_store_credentials(self) -> bool:
        return bool(
            self.woocommerce_url.strip()
            and self.woocommerce_consumer_key.strip()
            and self.woocommerce_consumer_secret.strip()
        )


class ChatRequest(BaseModel):
    """Request payload for the chat API."""
    message: str
    interrupt: bool = False


class ChatState(BaseModel):
    """Snapshot of the transcript returned by chat endpoints."""
    messages: List[Message]
    is_sending: bool
    error: Optional[str] = None


class ConnectionStatus(BaseModel):
    status: Literal["connected", "disconnected"]


class ProductDetail(BaseModel):
    """Single product plus its display-ready summary."""
    product: Product
    price: str
    regular_price: Optional[str] = None
    stock: str
    summary: str
