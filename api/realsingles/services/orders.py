from dataclasses import dataclass
from typing import Any

DEFAULT_SHIPPING_COUNTRY = "US"
SHIPPING_FIELD_MAX_LENGTH = 200

# db column -> accepted request keys, first non-empty wins
SHIPPING_FIELDS = {
    "shipping_name": ("ShippingName", "shipping_name"),
    "shipping_address": ("ShippingAddress", "shipping_address"),
    "shipping_city": ("ShippingCity", "shipping_city"),
    "shipping_state": ("ShippingState", "shipping_state"),
    "shipping_zip": ("ShippingZip", "shipping_zip"),
    "shipping_country": ("ShippingCountry", "shipping_country"),
}


class OrderRejected(Exception):
    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(detail)


@dataclass
class OrderRequest:
    product_id: str
    shipping: dict[str, str]


def _first(payload: dict[str, Any], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, list):
            value = value[0] if value else None
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


def parse_order_request(payload: dict[str, Any]) -> OrderRequest:
    product_id = _first(payload, ("productid", "product_id"))
    if not product_id:
        raise OrderRejected(400, "Product ID is required")

    shipping: dict[str, str] = {}
    for column, keys in SHIPPING_FIELDS.items():
        value = _first(payload, keys)
        if len(value) > SHIPPING_FIELD_MAX_LENGTH:
            raise OrderRejected(400, f"{column} must be {SHIPPING_FIELD_MAX_LENGTH} characters or fewer")
        shipping[column] = value
    if not shipping["shipping_country"]:
        shipping["shipping_country"] = DEFAULT_SHIPPING_COUNTRY
    return OrderRequest(product_id=product_id, shipping=shipping)


def check_redeemable(product: dict[str, Any] | None, points_balance: int) -> int:
    """Return the points cost of a redeemable product or raise OrderRejected."""
    if not product or not product.get("is_active", True):
        raise OrderRejected(404, "Product not found or unavailable")
    stock = product.get("stock_quantity")
    if stock is not None and int(stock) <= 0:
        raise OrderRejected(400, "Product is out of stock")
    cost = int(product["points_cost"])
    if int(points_balance or 0) < cost:
        raise OrderRejected(400, "Insufficient points for this redemption")
    return cost
