from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.auth import ORDERS_MANAGE, Principal, get_current_principal, require_permission
from app.database import get_db
from app.errors import not_found
from app.pagination import paging_info
from app.schemas import (
    CartRequest,
    CursorQuery,
    OrderDetailOut,
    OrderOut,
    OrderQuery,
    OrderUpdateRequest,
    empty_result,
    envelope,
)
from app.services import orders

router = APIRouter(prefix="/order", tags=["orders"])


def _order(order, detail=False) -> dict:
    schema = OrderDetailOut if detail else OrderOut
    return schema.model_validate(order).model_dump(mode="json")


@router.get("")
def list_orders(
    params: Annotated[OrderQuery, Query()],
    _: Principal = Depends(require_permission(ORDERS_MANAGE)),
    db: Session = Depends(get_db),
):
    found, total = orders.list_orders(db, params)
    if not total:
        return empty_result("No orders found", paging_info=paging_info(0, 1, params.page_size), orders=[])
    return envelope(
        "Orders successfully retrieved",
        paging_info=paging_info(total, params.page, params.page_size),
        orders=[_order(o, detail=True) for o in found],
    )


@router.post("/checkout/create-checkout-session", status_code=201)
def create_checkout_session(
    request: CartRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    _, url = orders.create_checkout_session(db, principal.user_id, request.cart_items)
    return envelope("Checkout Session and Order successfully created", url=url)


@router.get("/me")
def list_my_orders(
    params: Annotated[CursorQuery, Query()],
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    page, next_cursor = orders.list_user_orders(db, principal.user_id, params.cursor, params.page_size)
    cursor_info = {"page_size": params.page_size, "next_cursor": next_cursor}
    if not page:
        return empty_result("No orders found", cursor_info=cursor_info, orders=[])
    return envelope(
        "User orders successfully retrieved",
        cursor_info=cursor_info,
        orders=[_order(o) for o in page],
    )


@router.get("/{order_id}")
def get_order(
    order_id: str,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    order = orders.get_order(db, order_id)
    if order.user_id != principal.user_id and not principal.can(ORDERS_MANAGE):
        raise not_found("Order not found")
    return envelope("Order successfully retrieved", order=_order(order, detail=True))


@router.patch("/{order_id}")
def update_order(
    order_id: str,
    request: OrderUpdateRequest,
    _: Principal = Depends(require_permission(ORDERS_MANAGE)),
    db: Session = Depends(get_db),
):
    order = orders.update_order(db, order_id, request)
    return envelope("Order successfully updated", order=_order(order, detail=True))


@router.delete("/{order_id}")
def delete_order(
    order_id: str,
    _: Principal = Depends(require_permission(ORDERS_MANAGE)),
    db: Session = Depends(get_db),
):
    orders.delete_order(db, order_id)
    return envelope("Order successfully deleted")
