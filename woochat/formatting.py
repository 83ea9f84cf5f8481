from __future__ import annotations

from typing import List, Optional

from .models import Product
from .utils import strip_html

STOCK_LABELS = {
    "instock": "In Stock",
    "outofstock": "Out of Stock",
    "onbackorder": "On Backorder",
}


def format_price(price: str) -> str:
    """Render a price string as dollars with two decimals; non-numeric text is returned as-is."""
    try:
        value = float(price)
    except (TypeError, ValueError):
        return price
    return f"${value:.2f}"


def stock_label(status: str) -> str:
    return STOCK_LABELS.get(status, status)


def is_on_sale(product: Product) -> bool:
    """Purpose: Decide whether a product is discounted.
    Inputs/Outputs: Input is a Product; output is True when a regular price exists and
        differs from the current price.
    Side Effects / State: None.
    Failure Modes: The upstream on_sale flag is not consulted, so a flag that disagrees
        with the prices never changes the answer.
    Testing Notes: regular 49.99/price 39.99 is on sale; equal prices are not.
    """
    regular = (product.regular_price or "").strip()
    current = (product.price or "").strip()
    if not regular:
        return False
    try:
        return float(regular) != float(current)
    except ValueError:
        return regular != current


def regular_price_display(product: Product) -> Optional[str]:
    """Struck-through regular price for product cards, or None when not on sale."""
    if not is_on_sale(product):
        return None
    return format_price(product.regular_price)


def stock_summary(product: Product) -> str:
    if product.stock_status != "instock":
        return stock_label(product.stock_status)
    if product.stock_quantity:
        return f"{product.stock_quantity} in stock"
    return "In stock"


def format_product_for_ai(product: Product) -> str:
    """Multi-line product description used for detail views and explicit lookups."""
    categories = ", ".join(category.name for category in product.categories)
    price_line = f"Price: ${product.price}"
    if is_on_sale(product):
        price_line += f" (Sale from ${product.regular_price})"
    lines: List[str] = [
        f"Product: {product.name}",
        price_line,
        f"SKU: {product.sku}",
        f"Categories: {categories}",
        f"Stock: {stock_summary(product)}",
        f"Description: {strip_html(product.short_description or product.description)}",
        f"Link: {product.permalink}",
    ]
    return "\n".join(lines)


def format_products_for_ai(products: List[Product]) -> str:
    if not products:
        return "No products found."
    return "\n\n".join(f"{index}. {format_product_for_ai(product)}" for index, product in enumerate(products, 1))
