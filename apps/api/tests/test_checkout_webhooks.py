import json

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import select

from conftest import TEST_PROCESSOR_SECRET, auth_header, create_user
from main import app
from models.credit_transaction import CREDIT_PURCHASE, CreditTransaction
from models.listing import Listing
from models.listing_boost import ListingBoost
from models.subscription import SUBSCRIPTION_ACTIVE, SUBSCRIPTION_CANCELED, Subscription
from models.user import User
from services.crypto import decrypt_token, encrypt_token
from services.payment_processor import PaymentProcessor, compute_webhook_signature, get_payment_processor


@pytest_asyncio.fixture
async def processor_calls(api_client):
    """Route the processor through a mock transport and record each request."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        calls.append((request.url.path, body))
        if request.url.path == "/api/subscriptions":
            return httpx.Response(200, json={"subscription_id": "sub_1", "checkout_url": "https://pay.test/sub_1"})
        return httpx.Response(200, json={"payment_id": f"pay_{len(calls)}", "checkout_url": f"https://pay.test/{len(calls)}"})

    processor = PaymentProcessor(
        name="testpay",
        api_key="pk_test",
        api_secret=TEST_PROCESSOR_SECRET,
        base_url="https://processor.test",
        transport=httpx.MockTransport(handler),
    )
    app.dependency_overrides[get_payment_processor] = lambda: processor
    yield calls
    app.dependency_overrides.pop(get_payment_processor, None)


async def _deliver(client, payload: dict, secret: str = TEST_PROCESSOR_SECRET):
    body = json.dumps(payload).encode()
    return await client.post(
        "/webhooks/payment",
        content=body,
        headers={"X-Payment-Signature": compute_webhook_signature(body, secret), "content-type": "application/json"},
    )


@pytest.mark.asyncio
async def test_checkout_is_unavailable_without_processor_key(api_client):
    client, _ = api_client

    credits = await client.post("/checkout/credits", json={"package": "credits_starter", "email": "a@b.com"})
    turbo = await client.post("/checkout/turbo", json={"type": "turbo_1_day", "email": "a@b.com"})

    assert credits.status_code == 503
    assert turbo.status_code == 503
    assert "not configured" in credits.json()["error"]


@pytest.mark.asyncio
async def test_credit_checkout_returns_redirect_without_touching_balance(api_client, processor_calls):
    client, session_maker = api_client
    await create_user(session_maker, "buyer", credits=10)

    response = await client.post(
        "/checkout/credits",
        json={"package": "credits_standard"},
        headers=auth_header("buyer"),
    )

    assert response.status_code == 200
    assert response.json()["url"] == "https://pay.test/1"
    assert response.json()["hasStoredPaymentMethod"] is False
    path, body = processor_calls[0]
    assert path == "/api/charges"
    assert body["amount"] == 50.0
    assert body["customer_email"] == "buyer@example.com"
    assert body["metadata"] == {"package": "credits_standard", "type": "credits_purchase", "credits": "550", "userId": "buyer"}

    async with session_maker() as session:
        user = (await session.execute(select(User).where(User.id == "buyer"))).scalar_one()
    assert user.credits == 10


@pytest.mark.asyncio
async def test_checkout_validates_keys_and_guest_email(api_client, processor_calls):
    client, _ = api_client

    unknown = await client.post("/checkout/credits", json={"package": "credits_mega", "email": "g@x.com"})
    no_email = await client.post("/checkout/pro", json={"plan": "pro_1_month"})
    guest = await client.post("/checkout/pro", json={"plan": "pro_3_months", "email": "guest@x.com"})

    assert unknown.status_code == 400
    assert unknown.json() == {"error": "Invalid credit package"}
    assert no_email.status_code == 400
    assert guest.status_code == 200
    assert guest.json()["subscriptionId"] == "sub_1"
    assert processor_calls[-1][1]["metadata"]["duration_months"] == "3"


@pytest.mark.asyncio
async def test_turbo_checkout_for_listing_requires_owner(api_client, processor_calls):
    client, session_maker = api_client
    await create_user(session_maker, "owner")
    await create_user(session_maker, "other")
    async with session_maker() as session:
        session.add(Listing(id="turbo-listing", user_id="owner", title="t", city="c", description="d"))
        await session.commit()

    anonymous = await client.post("/checkout/turbo", json={"type": "turbo_3_days", "listingId": "turbo-listing", "email": "x@y.com"})
    foreign = await client.post("/checkout/turbo", json={"type": "turbo_3_days", "listingId": "turbo-listing"}, headers=auth_header("other"))
    owned = await client.post("/checkout/turbo", json={"type": "superturbo_1_day", "listingId": "turbo-listing"}, headers=auth_header("owner"))

    assert anonymous.status_code == 401
    assert foreign.status_code == 403
    assert owned.status_code == 200
    metadata = processor_calls[-1][1]["metadata"]
    assert metadata["boost_type"] == "SUPERTURBO"
    assert metadata["listing_id"] == "turbo-listing"


@pytest.mark.asyncio
async def test_one_click_without_stored_token_requires_checkout(api_client, processor_calls):
    client, session_maker = api_client
    await create_user(session_maker, "no-token")

    response = await client.post(
        "/purchase/credits/one-click",
        json={"package": "credits_starter"},
        headers=auth_header("no-token"),
    )

    assert response.status_code == 400
    assert response.json()["requiresCheckout"] is True
    assert processor_calls == []


@pytest.mark.asyncio
async def test_one_click_charges_stored_token_and_grants_credits(api_client, processor_calls):
    client, session_maker = api_client
    await create_user(session_maker, "saved", credits=5, payment_token_encrypted=encrypt_token("tok_saved"))

    response = await client.post(
        "/purchase/credits/one-click",
        json={"package": "credits_starter"},
        headers=auth_header("saved"),
    )

    assert response.status_code == 200
    assert response.json()["credits"] == 255
    assert response.json()["creditsAdded"] == 250
    assert processor_calls[0][1]["customer_token"] == "tok_saved"

    summary = await client.get("/user/credits", headers=auth_header("saved"))
    assert summary.json()["credits"] == 255
    assert summary.json()["recentTransactions"][0]["type"] == CREDIT_PURCHASE


@pytest.mark.asyncio
async def test_payment_webhook_rejects_missing_or_bad_signature(api_client):
    client, _ = api_client
    body = json.dumps({"type": "payment.succeeded"}).encode()

    missing = await client.post("/webhooks/payment", content=body)
    forged = await _deliver(client, {"type": "payment.succeeded"}, secret="wrong")

    assert missing.status_code == 400
    assert missing.json() == {"error": "Missing signature"}
    assert forged.status_code == 400
    assert forged.json() == {"error": "Invalid signature"}


@pytest.mark.asyncio
async def test_credit_payment_is_applied_once(api_client):
    client, session_maker = api_client
    await create_user(session_maker, "payer", credits=0)
    event = {
        "type": "payment.succeeded",
        "payment_id": "pay_abc",
        "metadata": {"type": "credits_purchase", "credits": "550", "userId": "payer", "package": "credits_standard"},
    }

    first = await _deliver(client, event)
    second = await _deliver(client, event)

    assert first.json() == {"received": True}
    assert second.json() == {"received": True}
    async with session_maker() as session:
        user = (await session.execute(select(User).where(User.id == "payer"))).scalar_one()
        ledger = (await session.execute(select(CreditTransaction))).scalars().all()
    assert user.credits == 550
    assert [(entry.amount, entry.external_reference) for entry in ledger] == [(550, "pay_abc")]


@pytest.mark.asyncio
async def test_unknown_user_payment_still_acknowledged(api_client):
    client, _ = api_client
    response = await _deliver(
        client,
        {"type": "payment.succeeded", "payment_id": "pay_x", "metadata": {"type": "credits_purchase", "credits": "10", "userId": "ghost"}},
    )
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_pro_payment_and_subscription_lifecycle(api_client):
    client, session_maker = api_client
    await create_user(session_maker, "pro-user")

    await _deliver(
        client,
        {
            "type": "payment.succeeded",
            "payment_id": "pay_pro",
            "subscription_id": "sub_pro",
            "metadata": {"type": "pro_subscription", "plan": "pro_1_month", "userId": "pro-user"},
        },
    )
    async with session_maker() as session:
        user = (await session.execute(select(User).where(User.id == "pro-user"))).scalar_one()
        subscription = (await session.execute(select(Subscription))).scalar_one()
    assert user.is_pro is True
    assert user.pro_until is not None
    assert subscription.status == SUBSCRIPTION_ACTIVE
    assert subscription.external_id == "sub_pro"

    await _deliver(client, {"type": "subscription.cancelled", "subscription_id": "sub_pro"})
    async with session_maker() as session:
        subscription = (await session.execute(select(Subscription))).scalar_one()
    assert subscription.status == SUBSCRIPTION_CANCELED
    assert subscription.cancel_at_period_end is True


@pytest.mark.asyncio
async def test_turbo_payment_grants_boost_once(api_client):
    client, session_maker = api_client
    await create_user(session_maker, "turbo-user")
    event = {
        "type": "charge.succeeded",
        "payment_id": "pay_turbo",
        "metadata": {"type": "turbo_boost", "turbo": "turbo_7_days", "boost_type": "TURBO", "duration_days": "7", "userId": "turbo-user"},
    }

    await _deliver(client, event)
    await _deliver(client, event)

    async with session_maker() as session:
        boosts = (await session.execute(select(ListingBoost))).scalars().all()
    assert len(boosts) == 1
    assert boosts[0].price_credits == 0
    assert boosts[0].user_id == "turbo-user"
    assert boosts[0].external_reference == "pay_turbo"


@pytest.mark.asyncio
async def test_saved_payment_method_is_stored_encrypted(api_client):
    client, session_maker = api_client
    await create_user(session_maker, "card-user", email="card@example.com")

    await _deliver(client, {"type": "payment_method.saved", "customer_email": "Card@Example.com", "customer_id": "cus_123"})

    async with session_maker() as session:
        user = (await session.execute(select(User).where(User.id == "card-user"))).scalar_one()
    assert user.payment_token_encrypted != "cus_123"
    assert decrypt_token(user.payment_token_encrypted) == "cus_123"


@pytest.mark.asyncio
async def test_malformed_signed_events_are_acknowledged_without_side_effects(api_client):
    client, session_maker = api_client
    await create_user(session_maker, "payer", credits=0, email="payer@example.com")
    malformed = [
        {"type": "payment.succeeded", "payment_id": "pay_1", "metadata": {"type": "credits_purchase", "userId": "payer", "credits": "abc"}},
        {"type": "payment.succeeded", "payment_id": "pay_2", "metadata": ["x"]},
        {"type": "payment.succeeded", "payment_id": "pay_3", "metadata": {"type": ["credits_purchase"], "userId": "payer"}},
        {"type": "charge.succeeded", "payment_id": "pay_4", "metadata": {"type": "turbo_boost", "turbo": {"k": 1}, "duration_days": "soon"}},
        {"type": "payment.succeeded", "payment_id": "pay_5", "metadata": {"type": "pro_subscription", "plan": ["pro_1_month"], "userId": "payer"}},
        {"type": "payment_method.saved", "customer_email": "payer@example.com", "customer_id": "cus_1", "expires_at": "tomorrow"},
        {"type": "payment.failed", "metadata": "oops"},
    ]

    responses = [await _deliver(client, event) for event in malformed]

    assert [response.status_code for response in responses] == [200] * len(malformed)
    assert all(response.json() == {"received": True} for response in responses)
    async with session_maker() as session:
        user = (await session.execute(select(User).where(User.id == "payer"))).scalar_one()
        ledger = (await session.execute(select(CreditTransaction))).scalars().all()
        boosts = (await session.execute(select(ListingBoost))).scalars().all()
    assert user.credits == 0
    assert user.is_pro is False
    assert ledger == []
    assert boosts == []
    assert decrypt_token(user.payment_token_encrypted) == "cus_1"
    assert user.payment_token_expires_at is None
