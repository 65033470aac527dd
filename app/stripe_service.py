from typing import Any, List, Optional

import stripe

from app.config import get_settings

CHECKOUT_COMPLETED = "checkout.session.completed"
PAYMENT_FAILED_EVENTS = frozenset({
    "payment_intent.payment_failed",
    "checkout.session.async_payment_failed",
})


def line_item(name: str, unit_amount: int, quantity: int) -> dict:
    return {
        "price_data": {
            "currency": get_settings().currency,
            "unit_amount": unit_amount,
            "product_data": {"name": name},
        },
        "quantity": quantity,
    }


def create_checkout_session(line_items: List[dict], order_id: str, customer_email: Optional[str] = None):
    settings = get_settings()
    metadata = {"order_id": order_id}
    return stripe.checkout.Session.create(
        api_key=settings.stripe_secret_key,
        mode="payment",
        customer_email=customer_email,
        line_items=line_items,
        metadata=metadata,
        # Failure events arrive on the PaymentIntent, not the session
        payment_intent_data={"metadata": metadata},
        shipping_options=[{
            "shipping_rate_data": {
                "display_name": "Delivery",
                "type": "fixed_amount",
                "fixed_amount": {"amount": settings.shipping_fee_cents, "currency": settings.currency},
            },
        }],
        success_url=f"{settings.frontend_url}/order-status?success=true",
        cancel_url=f"{settings.frontend_url}/cart?canceled=true",
        idempotency_key=f"checkout-{order_id}",
    )


def construct_event(payload: bytes, signature: Optional[str]):
    """Verify the signature against the exact request bytes.

    Raises ValueError for an unparsable payload and
    stripe.SignatureVerificationError for a bad signature.
    """
    return stripe.Webhook.construct_event(payload, signature, get_settings().stripe_webhook_secret)


def field(obj: Any, key: str) -> Any:
    # Works for both plain dicts and StripeObject
    if obj is None:
        return None
    try:
        return obj[key]
    except (KeyError, TypeError):
        return None
