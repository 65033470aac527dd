from decimal import Decimal

import stripe

from app.models import Order, OrderStatus, PaymentStatus
from app.services.orders import handle_payment_event

WEBHOOK_URL = "/v1/api/order/checkout/webhook"


def completed_event(order_id, amount_total=2000):
    return {
        "id": "evt_completed",
        "type": "checkout.session.completed",
        "data": {"object": {"id": "cs_test_123", "amount_total": amount_total, "metadata": {"order_id": order_id}}},
    }


def failed_event(order_id, event_type="payment_intent.payment_failed"):
    return {
        "id": "evt_failed",
        "type": event_type,
        "data": {"object": {"id": "pi_test_123", "metadata": {"order_id": order_id}}},
    }


def pending_order(db, user):
    order = Order(user_id=user.id)
    db.add(order)
    db.commit()
    return order.id


def reload(db, order_id):
    db.expire_all()
    return db.get(Order, order_id)


def post_event(client, mocker, event):
    mocker.patch("stripe.Webhook.construct_event", return_value=event)
    return client.post(WEBHOOK_URL, content=b'{"raw": "payload"}', headers={"stripe-signature": "t=1,v1=sig"})


def test_checkout_completed_marks_order_paid(client, db, user, mocker):
    order_id = pending_order(db, user)

    response = post_event(client, mocker, completed_event(order_id, amount_total=2000))

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Webhook received"}
    order = reload(db, order_id)
    assert order.total_amount == Decimal("20.00")
    assert order.status == OrderStatus.PAID
    assert order.payment_status == PaymentStatus.PAID


def test_signature_is_checked_against_raw_body(client, db, user, mocker):
    order_id = pending_order(db, user)
    construct = mocker.patch("stripe.Webhook.construct_event", return_value=completed_event(order_id))

    client.post(WEBHOOK_URL, content=b'{"raw": "payload"}', headers={"stripe-signature": "t=1,v1=sig"})

    construct.assert_called_once_with(b'{"raw": "payload"}', "t=1,v1=sig", "whsec_test")


def test_replayed_completion_is_idempotent(client, db, user, mocker):
    order_id = pending_order(db, user)

    post_event(client, mocker, completed_event(order_id, amount_total=2000))
    response = post_event(client, mocker, completed_event(order_id, amount_total=9999))

    assert response.status_code == 200
    order = reload(db, order_id)
    assert order.total_amount == Decimal("20.00")
    assert order.payment_status == PaymentStatus.PAID


def test_payment_failure_marks_pending_order_failed(client, db, user, mocker):
    order_id = pending_order(db, user)

    response = post_event(client, mocker, failed_event(order_id))

    assert response.status_code == 200
    order = reload(db, order_id)
    assert order.payment_status == PaymentStatus.FAILED
    assert order.status == OrderStatus.PENDING


def test_async_payment_failure_is_handled(client, db, user, mocker):
    order_id = pending_order(db, user)

    post_event(client, mocker, failed_event(order_id, "checkout.session.async_payment_failed"))

    assert reload(db, order_id).payment_status == PaymentStatus.FAILED


def test_late_failure_never_downgrades_paid_order(client, db, user, mocker):
    order_id = pending_order(db, user)

    post_event(client, mocker, completed_event(order_id))
    response = post_event(client, mocker, failed_event(order_id))

    assert response.status_code == 200
    order = reload(db, order_id)
    assert order.payment_status == PaymentStatus.PAID
    assert order.status == OrderStatus.PAID


def test_invalid_signature_rejected_before_any_change(client, db, user, mocker):
    order_id = pending_order(db, user)
    mocker.patch(
        "stripe.Webhook.construct_event",
        side_effect=stripe.SignatureVerificationError("Invalid", "sig"),
    )
    handler = mocker.patch("app.main.handle_payment_event")

    response = client.post(WEBHOOK_URL, content=b"{}", headers={"stripe-signature": "invalid_sig"})

    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Invalid signature"}
    handler.assert_not_called()
    assert reload(db, order_id).payment_status == PaymentStatus.PENDING


def test_missing_signature_rejected(client, mocker):
    construct = mocker.patch("stripe.Webhook.construct_event")

    response = client.post(WEBHOOK_URL, content=b"{}")

    assert response.status_code == 400
    construct.assert_not_called()


def test_unparsable_payload_rejected(client, mocker):
    mocker.patch("stripe.Webhook.construct_event", side_effect=ValueError("bad json"))

    response = client.post(WEBHOOK_URL, content=b"not json", headers={"stripe-signature": "t=1,v1=sig"})

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid payload"


def test_unknown_order_is_acknowledged(client, mocker):
    response = post_event(client, mocker, completed_event("missing-order"))

    assert response.status_code == 200


def test_unhandled_event_type_is_acknowledged(client, db, user, mocker):
    order_id = pending_order(db, user)
    event = {"type": "customer.created", "data": {"object": {"id": "cus_123"}}}

    response = post_event(client, mocker, event)

    assert response.status_code == 200
    assert reload(db, order_id).payment_status == PaymentStatus.PENDING


def test_event_without_metadata_is_ignored(db, user):
    order_id = pending_order(db, user)

    handle_payment_event(db, {"type": "checkout.session.completed", "data": {"object": {"amount_total": 500}}})

    assert reload(db, order_id).payment_status == PaymentStatus.PENDING


def test_failure_after_payment_keeps_paid_total(db, user):
    order_id = pending_order(db, user)
    handle_payment_event(db, completed_event(order_id, amount_total=1250))

    handle_payment_event(db, failed_event(order_id))

    order = reload(db, order_id)
    assert order.total_amount == Decimal("12.50")
    assert order.payment_status == PaymentStatus.PAID
