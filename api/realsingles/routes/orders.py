import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request

from .. import repo
from ..auth.deps import get_current_user
from ..config import RL_ORDER_CREATE_LIMIT, RL_WINDOW_SECONDS
from ..deps import parse_uuid
from ..http_helpers import ok, parse_pagination, read_payload
from ..services.orders import OrderRejected, parse_order_request
from ..services.rate_limit import rate_limit_dependency

logger = logging.getLogger(__name__)

router = APIRouter()

RL_ORDER_CREATE = rate_limit_dependency("order_create", RL_ORDER_CREATE_LIMIT, RL_WINDOW_SECONDS)


@router.get("/products")
def products_list() -> dict[str, Any]:
    return ok({"products": repo.list_products()})


@router.get("/orders")
def orders_list(
    limit: int | None = None,
    offset: int | None = None,
    current_user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    lim, off = parse_pagination(limit, offset, default_limit=20, max_limit=100)
    orders, total = repo.list_orders(current_user["id"], lim, off)
    return ok({"orders": orders, "total": total})


@router.post("/orders", status_code=201)
async def orders_create(
    request: Request,
    current_user: dict[str, Any] = Depends(get_current_user),
    _: None = RL_ORDER_CREATE,
) -> dict[str, Any]:
    payload = await read_payload(request)
    user_id = current_user["id"]
    try:
        order_request = parse_order_request(payload)
        product_id = parse_uuid(order_request.product_id, "product_id")
        result = repo.create_redemption_order(user_id, product_id, order_request.shipping)
    except OrderRejected as exc:
        logger.warning(f"[orders] rejected user_id={user_id} status={exc.status_code} reason={exc.detail}")
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc

    logger.info(f"[orders] order placed order_id={result['order_id']} user_id={user_id} points={result['points_spent']}")
    return ok(result, "Order placed successfully")
