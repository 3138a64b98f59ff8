import json
import pytest
import stripe
from decimal import Decimal
from types import SimpleNamespace
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from companion_api.crud import crud_bonus, crud_payment, crud_referral, crud_setting, crud_subscription, crud_token_wallet
from tests.conftest import create_user, create_chain, create_payment

pytestmark = pytest.mark.api

SIGNATURE_HEADERS = {"Stripe-Signature": "t=1,v1=test"}


@pytest.fixture
def accept_any_signature(monkeypatch):
    def fake_construct_event(payload, sig_header, secret):
        return json.loads(payload)
    monkeypatch.setattr(stripe.Webhook, "construct_event", fake_construct_event)

@pytest.fixture
def stripe_checkout(monkeypatch):
    """Stand-in for Checkout Session creation; records the kwargs it was called with."""
    calls = []

    def fake_create(**kwargs):
        calls.append(kwargs)
        session_id = f"cs_test_{len(calls)}"
        return SimpleNamespace(id=session_id, url=f"https://checkout.stripe.com/c/pay/{session_id}")

    monkeypatch.setattr(stripe, "api_key", "sk_test_123")
    monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)
    return calls


def checkout_completed_event(session_id: str, payment_id: int, amount_total: int = 999, payment_status: str = "paid"):
    return {
        "id": "evt_test_1",
        "type": "checkout.session.completed",
        "data": {"object": {
            "id": session_id,
            "payment_status": payment_status,
            "amount_total": amount_total,
            "payment_intent": "pi_test_1",
            "metadata": {"payment_id": str(payment_id)},
        }},
    }


# --- Checkout (POST /payments/checkout-session) ---
def test_create_checkout_session(client: TestClient, normal_user_token_headers: tuple, stripe_checkout, db_session: Session):
    headers, user = normal_user_token_headers

    response = client.post("/api/v1/payments/checkout-session", json={"package_id": "tokens_200"}, headers=headers)

    assert response.status_code == 200
    data = response.json()
    assert data["session_id"] == "cs_test_1"
    assert data["checkout_url"].endswith("cs_test_1")

    sent = stripe_checkout[0]
    assert sent["metadata"]["payment_id"] == str(data["payment_id"])
    assert sent["line_items"][0]["price_data"]["unit_amount"] == 999

    payment = crud_payment.get_payment(db_session, payment_id=data["payment_id"])
    assert payment.user_id == user.id
    assert payment.status == "pending"
    assert payment.amount == Decimal("9.99")
    assert payment.tokens == 200
    assert payment.stripe_session_id == "cs_test_1"

def test_checkout_unknown_package(client: TestClient, normal_user_token_headers: tuple, stripe_checkout):
    headers, _ = normal_user_token_headers
    response = client.post("/api/v1/payments/checkout-session", json={"package_id": "tokens_1"}, headers=headers)
    assert response.status_code == 404
    assert stripe_checkout == []

def test_checkout_requires_auth(client: TestClient, db_session: Session, stripe_checkout):
    response = client.post("/api/v1/payments/checkout-session", json={"package_id": "tokens_200"})
    assert response.status_code == 401

def test_checkout_refused_when_monetization_disabled(
    client: TestClient, normal_user_token_headers: tuple, stripe_checkout, db_session: Session
):
    headers, _ = normal_user_token_headers
    crud_setting.upsert_settings(db_session, values={"monetization_enabled": "false"})

    response = client.post("/api/v1/payments/checkout-session", json={"package_id": "tokens_200"}, headers=headers)

    assert response.status_code == 403
    assert stripe_checkout == []

def test_checkout_gateway_error_marks_payment_failed(
    client: TestClient, normal_user_token_headers: tuple, monkeypatch, db_session: Session
):
    headers, user = normal_user_token_headers

    def failing_create(**kwargs):
        raise stripe.StripeError("Stripe is unavailable")

    monkeypatch.setattr(stripe, "api_key", "sk_test_123")
    monkeypatch.setattr(stripe.checkout.Session, "create", failing_create)

    response = client.post("/api/v1/payments/checkout-session", json={"package_id": "tokens_200"}, headers=headers)

    assert response.status_code == 502
    payments = crud_payment.get_payments_by_user(db_session, user_id=user.id)
    assert [p.status for p in payments] == ["failed"]


# --- Webhook (POST /payments/webhook) ---
def test_webhook_completes_payment_and_distributes(client: TestClient, db_session: Session, accept_any_signature):
    payer, r1 = create_chain(db_session, 1)
    payment = create_payment(db_session, payer, amount="9.99", status="pending", tokens=200, stripe_session_id="cs_test_9")

    response = client.post(
        "/api/v1/payments/webhook",
        json=checkout_completed_event("cs_test_9", payment.id),
        headers=SIGNATURE_HEADERS,
    )

    assert response.status_code == 200
    assert response.json() == {
        "received": True, "status": "processed", "payment_id": payment.id, "commission_levels": 1,
    }
    db_session.expire_all()
    assert crud_payment.get_payment(db_session, payment_id=payment.id).status == "completed"
    assert crud_token_wallet.get_balance(db_session, user_id=payer.id) == 200
    assert crud_bonus.get_wallet(db_session, user_id=r1.id).balance == Decimal("4.99")

def test_webhook_duplicate_delivery_is_acknowledged_once(client: TestClient, db_session: Session, accept_any_signature):
    payer, r1, r2 = create_chain(db_session, 2)
    payment = create_payment(db_session, payer, amount="100.00", status="pending", tokens=550, stripe_session_id="cs_test_dup")
    event = checkout_completed_event("cs_test_dup", payment.id, amount_total=10000)

    first = client.post("/api/v1/payments/webhook", json=event, headers=SIGNATURE_HEADERS)
    second = client.post("/api/v1/payments/webhook", json=event, headers=SIGNATURE_HEADERS)

    assert first.json()["status"] == "processed"
    assert first.json()["commission_levels"] == 2
    assert second.status_code == 200
    assert second.json()["status"] == "already_processed"

    db_session.expire_all()
    assert crud_token_wallet.get_balance(db_session, user_id=payer.id) == 550
    assert crud_bonus.get_wallet(db_session, user_id=r1.id).balance == Decimal("50.00")
    assert crud_bonus.get_wallet(db_session, user_id=r2.id).balance == Decimal("5.00")
    assert len(crud_bonus.get_commissions_by_payment(db_session, payment_id=payment.id)) == 2

def test_webhook_finds_payment_by_metadata(client: TestClient, db_session: Session, accept_any_signature):
    payer, _ = create_chain(db_session, 1)
    payment = create_payment(db_session, payer, amount="9.99", status="pending")

    response = client.post(
        "/api/v1/payments/webhook",
        json=checkout_completed_event("cs_test_late", payment.id),
        headers=SIGNATURE_HEADERS,
    )

    assert response.json()["status"] == "processed"
    db_session.expire_all()
    assert crud_payment.get_payment(db_session, payment_id=payment.id).stripe_session_id == "cs_test_late"

def test_webhook_unpaid_session_waits(client: TestClient, db_session: Session, accept_any_signature):
    payer, r1 = create_chain(db_session, 1)
    payment = create_payment(db_session, payer, status="pending", stripe_session_id="cs_test_unpaid")

    response = client.post(
        "/api/v1/payments/webhook",
        json=checkout_completed_event("cs_test_unpaid", payment.id, payment_status="unpaid"),
        headers=SIGNATURE_HEADERS,
    )

    assert response.json()["status"] == "awaiting_payment"
    db_session.expire_all()
    assert crud_payment.get_payment(db_session, payment_id=payment.id).status == "pending"
    assert crud_bonus.get_wallet(db_session, user_id=r1.id) is None

def test_webhook_expired_session_marks_failed(client: TestClient, db_session: Session, accept_any_signature):
    payer, _ = create_chain(db_session, 1)
    payment = create_payment(db_session, payer, status="pending", stripe_session_id="cs_test_exp")
    event = checkout_completed_event("cs_test_exp", payment.id)
    event["type"] = "checkout.session.expired"

    response = client.post("/api/v1/payments/webhook", json=event, headers=SIGNATURE_HEADERS)

    assert response.json()["status"] == "marked_failed"
    db_session.expire_all()
    assert crud_payment.get_payment(db_session, payment_id=payment.id).status == "failed"

def test_webhook_unknown_payment(client: TestClient, db_session: Session, accept_any_signature):
    response = client.post(
        "/api/v1/payments/webhook",
        json=checkout_completed_event("cs_test_ghost", 99999),
        headers=SIGNATURE_HEADERS,
    )
    assert response.status_code == 404

def test_webhook_ignores_other_events(client: TestClient, db_session: Session, accept_any_signature):
    event = {"id": "evt_x", "type": "customer.created", "data": {"object": {"id": "cus_1"}}}
    response = client.post("/api/v1/payments/webhook", json=event, headers=SIGNATURE_HEADERS)
    assert response.status_code == 200
    assert response.json()["status"] == "ignored"

def test_webhook_bad_signature(client: TestClient, db_session: Session, monkeypatch):
    def reject(payload, sig_header, secret):
        raise stripe.SignatureVerificationError("No signatures found matching the expected signature", sig_header)

    monkeypatch.setattr(stripe.Webhook, "construct_event", reject)

    response = client.post("/api/v1/payments/webhook", json={"type": "checkout.session.completed"}, headers=SIGNATURE_HEADERS)
    assert response.status_code == 400


def test_webhook_storage_failure_is_retried_by_redelivery(
    client: TestClient, db_session: Session, accept_any_signature, monkeypatch
):
    payer, r1 = create_chain(db_session, 1)
    payment = create_payment(db_session, payer, amount="9.99", status="pending", tokens=200, stripe_session_id="cs_test_retry")
    event = checkout_completed_event("cs_test_retry", payment.id)

    real_credit_tokens = crud_token_wallet.credit_tokens
    calls = []

    def credit_tokens_failing_once(db, **kwargs):
        calls.append(kwargs["user_id"])
        if len(calls) == 1:
            raise OperationalError("UPDATE user_tokens", {}, Exception("database is locked"))
        return real_credit_tokens(db, **kwargs)

    monkeypatch.setattr(crud_token_wallet, "credit_tokens", credit_tokens_failing_once)

    first = client.post("/api/v1/payments/webhook", json=event, headers=SIGNATURE_HEADERS)

    # Stripe retries non-2xx deliveries; nothing from the failed attempt is kept
    assert first.status_code == 500
    db_session.expire_all()
    assert crud_payment.get_payment(db_session, payment_id=payment.id).status == "pending"
    assert crud_token_wallet.get_balance(db_session, user_id=payer.id) == 0
    assert crud_bonus.get_wallet(db_session, user_id=r1.id) is None

    second = client.post("/api/v1/payments/webhook", json=event, headers=SIGNATURE_HEADERS)

    assert second.status_code == 200
    assert second.json()["status"] == "processed"
    db_session.expire_all()
    assert crud_payment.get_payment(db_session, payment_id=payment.id).status == "completed"
    assert crud_token_wallet.get_balance(db_session, user_id=payer.id) == 200
    assert crud_bonus.get_wallet(db_session, user_id=r1.id).balance == Decimal("4.99")

    third = client.post("/api/v1/payments/webhook", json=event, headers=SIGNATURE_HEADERS)
    assert third.json()["status"] == "already_processed"
    db_session.expire_all()
    assert crud_token_wallet.get_balance(db_session, user_id=payer.id) == 200


# --- Subscriptions ---
def test_create_subscription_checkout(
    client: TestClient, normal_user_token_headers: tuple, stripe_checkout, db_session: Session
):
    headers, user = normal_user_token_headers

    response = client.post("/api/v1/payments/subscription-checkout", json={"plan_id": "premium_3m"}, headers=headers)

    assert response.status_code == 200
    data = response.json()
    sent = stripe_checkout[0]
    assert sent["metadata"]["planId"] == "premium_3m"
    assert sent["metadata"]["planDuration"] == "3"
    assert sent["metadata"]["payment_id"] == str(data["payment_id"])
    assert sent["line_items"][0]["price_data"]["unit_amount"] == 2999

    payment = crud_payment.get_payment(db_session, payment_id=data["payment_id"])
    assert payment.kind == "subscription"
    assert payment.package_id == "premium_3m"
    assert payment.amount == Decimal("29.99")
    assert payment.tokens == 100

def test_subscription_checkout_unknown_plan(client: TestClient, normal_user_token_headers: tuple, stripe_checkout):
    headers, _ = normal_user_token_headers
    response = client.post("/api/v1/payments/subscription-checkout", json={"plan_id": "premium_lifetime"}, headers=headers)
    assert response.status_code == 404
    assert stripe_checkout == []

def test_paid_subscription_activates_premium_and_pays_commission(
    client: TestClient, normal_user_token_headers: tuple, db_session: Session, accept_any_signature
):
    headers, payer = normal_user_token_headers
    referrer = create_user(db_session)
    crud_referral.create_edge(db_session, referred_user_id=payer.id, referrer_id=referrer.id)
    payment = create_payment(
        db_session, payer, amount="12.99", status="pending", tokens=100,
        stripe_session_id="cs_test_plan", kind="subscription", package_id="premium_1m",
    )
    event = checkout_completed_event("cs_test_plan", payment.id, amount_total=1299)

    response = client.post("/api/v1/payments/webhook", json=event, headers=SIGNATURE_HEADERS)

    assert response.status_code == 200
    assert response.json()["commission_levels"] == 1
    db_session.expire_all()
    assert crud_token_wallet.get_balance(db_session, user_id=payer.id) == 100
    assert crud_token_wallet.get_transactions(db_session, user_id=payer.id)[0].type == "subscription_grant"
    # 12.99 * 0.50 rounded down
    assert crud_bonus.get_wallet(db_session, user_id=referrer.id).balance == Decimal("6.49")

    status = client.get("/api/v1/payments/subscription", headers=headers).json()
    assert status["is_premium"] is True
    assert status["plan_id"] == "premium_1m"
    assert status["status"] == "active"

    # A redelivery must not extend the plan a second time
    expires_at = crud_subscription.get_subscription(db_session, user_id=payer.id).expires_at
    assert client.post("/api/v1/payments/webhook", json=event, headers=SIGNATURE_HEADERS).json()["status"] == "already_processed"
    db_session.expire_all()
    assert crud_subscription.get_subscription(db_session, user_id=payer.id).expires_at == expires_at

def test_subscription_payment_with_unknown_plan_stays_pending(
    client: TestClient, db_session: Session, accept_any_signature
):
    payer, _ = create_chain(db_session, 1)
    payment = create_payment(
        db_session, payer, amount="5.00", status="pending", tokens=100,
        stripe_session_id="cs_test_gone", kind="subscription", package_id="premium_retired",
    )

    response = client.post(
        "/api/v1/payments/webhook",
        json=checkout_completed_event("cs_test_gone", payment.id, amount_total=500),
        headers=SIGNATURE_HEADERS,
    )

    assert response.status_code == 500
    db_session.expire_all()
    assert crud_payment.get_payment(db_session, payment_id=payment.id).status == "pending"
    assert crud_token_wallet.get_balance(db_session, user_id=payer.id) == 0
    assert crud_subscription.get_subscription(db_session, user_id=payer.id) is None

def test_subscription_status_without_plan(client: TestClient, normal_user_token_headers: tuple):
    headers, _ = normal_user_token_headers
    response = client.get("/api/v1/payments/subscription", headers=headers)
    assert response.status_code == 200
    assert response.json()["is_premium"] is False


# --- History (GET /payments/me) ---
def test_read_my_payments(client: TestClient, normal_user_token_headers: tuple, db_session: Session):
    headers, user = normal_user_token_headers
    create_payment(db_session, user, amount="24.99", tokens=550)

    response = client.get("/api/v1/payments/me", headers=headers)

    assert response.status_code == 200
    data = response.json()
    assert len(data) == 1
    assert Decimal(data[0]["amount"]) == Decimal("24.99")
