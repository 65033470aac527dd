import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Tuple

import stripe
from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from app import stripe_service
from app.errors import integration_error, not_found, validation_error
from app.models import CartItem, Order, OrderStatus, PaymentStatus, Product, User
from app.pagination import paginate_cursor, paginate_offset
from app.schemas import CartItemRequest, OrderQuery, OrderUpdateRequest
from app.stripe_service import field

logger = logging.getLogger(__name__)

ORDER_LOAD = (
    selectinload(Order.shipping_address),
    selectinload(Order.cart_items).selectinload(CartItem.product),
)


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    return (Decimal(amount) / 100).quantize(Decimal("0.01"))


def create_checkout_session(db: Session, user_id: str, cart_items: List[CartItemRequest]) -> Tuple[Order, str]:
    """Persist a PENDING order and open a hosted checkout session for it.

    The order row and the gateway call share one transaction: if the gateway
    fails or hands back no URL, the order is rolled back.
    """
    if not cart_items:
        raise validation_error("At least one product is required")

    user = db.get(User, user_id)
    if user is None:
        raise not_found("User not found")
    if user.shipping_address is None:
        raise validation_error("Shipping Address is required")

    # Quantities per distinct product, in first-seen order
    quantities: Dict[str, int] = {}
    for item in cart_items:
        quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity

    products = {
        p.id: p for p in db.query(Product).filter(Product.id.in_(list(quantities))).all()
    }
    if len(products) != len(quantities):
        raise not_found("One or more products not found")

    order = Order(
        user_id=user.id,
        shipping_address_id=user.shipping_address.id,
        status=OrderStatus.PENDING,
        payment_status=PaymentStatus.PENDING,
        cart_items=[CartItem(product_id=item.product_id, quantity=item.quantity) for item in cart_items],
    )
    db.add(order)
    db.flush()
    order_id = order.id

    # Unit price always comes from the catalog, never from the client
    line_items = [
        stripe_service.line_item(products[pid].name, to_minor_units(products[pid].price), qty)
        for pid, qty in quantities.items()
    ]

    try:
        session = stripe_service.create_checkout_session(line_items, order_id, customer_email=user.email)
    except stripe.StripeError:
        db.rollback()
        logger.exception("Stripe checkout session creation failed for order %s", order_id)
        raise integration_error("Error creating Stripe payment session")

    url = field(session, "url")
    if not url:
        db.rollback()
        raise integration_error("Error creating Stripe payment session")

    db.commit()
    logger.info("Order %s created with checkout session %s", order_id, field(session, "id"))
    return order, url


def _locked_order(db: Session, order_id: Optional[str]) -> Optional[Order]:
    if not order_id:
        return None
    return db.get(Order, order_id, with_for_update=True, populate_existing=True)


def mark_paid(db: Session, order_id: Optional[str], amount_total: Optional[int]) -> bool:
    """Apply a checkout-completed notification. Returns True if the order changed."""
    try:
        order = _locked_order(db, order_id)
        if order is None:
            logger.info("Checkout completed for unknown order %s, ignoring", order_id)
            return False
        if order.payment_status == PaymentStatus.PAID:
            return False
        if amount_total is None:
            logger.warning("Checkout completed for order %s without amount_total, ignoring", order_id)
            return False

        order.total_amount = from_minor_units(amount_total)
        order.payment_status = PaymentStatus.PAID
        order.status = OrderStatus.PAID
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Order %s paid, total %s", order_id, order.total_amount)
    return True


def mark_failed(db: Session, order_id: Optional[str]) -> bool:
    """Apply a payment-failed notification. A PAID order is never downgraded."""
    try:
        order = _locked_order(db, order_id)
        if order is None:
            logger.info("Payment failed for unknown order %s, ignoring", order_id)
            return False
        if order.payment_status in (PaymentStatus.PAID, PaymentStatus.FAILED):
            return False

        order.payment_status = PaymentStatus.FAILED
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Order %s payment failed", order_id)
    return True


def handle_payment_event(db: Session, event) -> None:
    """Reconcile one verified gateway event with the order it refers to."""
    event_type = field(event, "type")
    obj = field(field(event, "data"), "object")
    order_id = field(field(obj, "metadata"), "order_id")

    if event_type == stripe_service.CHECKOUT_COMPLETED:
        mark_paid(db, order_id, field(obj, "amount_total"))
    elif event_type in stripe_service.PAYMENT_FAILED_EVENTS:
        mark_failed(db, order_id)
    else:
        logger.info("Unhandled event type %s", event_type)


def get_order(db: Session, order_id: str) -> Order:
    order = (
        db.query(Order)
        .options(*ORDER_LOAD, selectinload(Order.user))
        .filter(Order.id == order_id)
        .first()
    )
    if order is None:
        raise not_found("Order not found")
    return order


def list_orders(db: Session, params: OrderQuery) -> Tuple[List[Order], int]:
    query = db.query(Order).options(*ORDER_LOAD, selectinload(Order.user))

    if params.status:
        query = query.filter(Order.status == params.status)
    if params.payment_status:
        query = query.filter(Order.payment_status == params.payment_status)
    if params.search_query:
        term = f"%{params.search_query}%"
        query = query.join(Order.user).filter(or_(User.name.like(term), User.email.like(term)))

    column = getattr(Order, params.sort_by)
    order_by = [column.asc() if params.sort_order == "asc" else column.desc(), Order.id]
    return paginate_offset(query, params.page, params.page_size, order_by)


def list_user_orders(db: Session, user_id: str, cursor: Optional[str], page_size: int) -> Tuple[List[Order], Optional[str]]:
    query = db.query(Order).options(*ORDER_LOAD).filter(Order.user_id == user_id)
    return paginate_cursor(query, Order, cursor, page_size)


def update_order(db: Session, order_id: str, changes: OrderUpdateRequest) -> Order:
    order = db.get(Order, order_id)
    if order is None:
        raise not_found("Order not found")

    # No cross-field checks: admins may set any combination
    if changes.status is not None:
        order.status = changes.status
    if changes.payment_status is not None:
        order.payment_status = changes.payment_status
    db.commit()
    return get_order(db, order_id)


def delete_order(db: Session, order_id: str) -> None:
    order = db.get(Order, order_id)
    if order is None:
        raise not_found("Order not found")
    db.delete(order)
    db.commit()
