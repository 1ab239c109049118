from datetime import timedelta

import pytest
from sqlalchemy import select

from conftest import auth_header, create_user
from database import utcnow
from models.content_item import ContentItem
from models.credit_transaction import CREDIT_BOOST, CreditTransaction
from models.listing import LISTING_ACTIVE, Listing
from models.listing_boost import ListingBoost
from models.transaction import TRANSACTION_VOD_UNLOCK, Transaction
from models.user import User
from services.boosts import expire_boosts


async def _seed_listing(session_maker, listing_id: str, owner_id: str) -> None:
    async with session_maker() as session:
        session.add(
            Listing(
                id=listing_id,
                user_id=owner_id,
                title="Centro",
                city="Lisboa",
                description="Atendimento no centro",
                status=LISTING_ACTIVE,
            )
        )
        await session.commit()


async def _seed_content(session_maker, item_id: str, owner_id: str, *, premium=True, price=200) -> None:
    async with session_maker() as session:
        session.add(
            ContentItem(
                id=item_id,
                user_id=owner_id,
                title="Premium clip",
                is_premium=premium,
                price_credits=price,
            )
        )
        await session.commit()


@pytest.mark.asyncio
async def test_boost_with_insufficient_credits_keeps_balance(api_client):
    client, session_maker = api_client
    await create_user(session_maker, "boost-poor", credits=100, is_service_provider=True)
    await _seed_listing(session_maker, "listing-poor", "boost-poor")

    response = await client.post(
        "/purchase/boost",
        json={"type": "HIGHLIGHT", "priceCredits": 150, "durationDays": 7, "listingId": "listing-poor"},
        headers=auth_header("boost-poor"),
    )

    assert response.status_code == 400
    assert "Insufficient credits" in response.json()["error"]
    async with session_maker() as session:
        user = (await session.execute(select(User).where(User.id == "boost-poor"))).scalar_one()
        boosts = (await session.execute(select(ListingBoost))).scalars().all()
    assert user.credits == 100
    assert boosts == []


@pytest.mark.asyncio
async def test_boost_purchase_debits_and_creates_live_boost(api_client):
    client, session_maker = api_client
    await create_user(session_maker, "boost-owner", credits=500, is_service_provider=True)
    await _seed_listing(session_maker, "listing-owned", "boost-owner")

    response = await client.post(
        "/purchase/boost",
        json={"type": "highlight", "priceCredits": 150, "durationDays": 3, "listingId": "listing-owned"},
        headers=auth_header("boost-owner"),
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["remainingCredits"] == 350
    assert payload["boost"]["type"] == "HIGHLIGHT"
    assert payload["boost"]["listingId"] == "listing-owned"
    assert payload["boost"]["live"] is True

    async with session_maker() as session:
        ledger = (await session.execute(select(CreditTransaction))).scalars().all()
    assert [(entry.type, entry.amount, entry.balance_after) for entry in ledger] == [(CREDIT_BOOST, -150, 350)]

    listed = await client.get("/user/boosts", headers=auth_header("boost-owner"))
    assert listed.status_code == 200
    assert [boost["id"] for boost in listed.json()["boosts"]] == [payload["boost"]["id"]]

    listings = await client.get("/listings")
    assert listings.json()["listings"][0]["boosted"] is True


@pytest.mark.asyncio
async def test_boost_on_someone_elses_listing_is_forbidden(api_client):
    client, session_maker = api_client
    await create_user(session_maker, "listing-owner")
    await create_user(session_maker, "intruder", credits=500)
    await _seed_listing(session_maker, "listing-foreign", "listing-owner")

    response = await client.post(
        "/purchase/boost",
        json={"type": "HIGHLIGHT", "priceCredits": 50, "durationDays": 1, "listingId": "listing-foreign"},
        headers=auth_header("intruder"),
    )

    assert response.status_code == 403
    async with session_maker() as session:
        user = (await session.execute(select(User).where(User.id == "intruder"))).scalar_one()
    assert user.credits == 500


@pytest.mark.asyncio
async def test_boost_requires_session(api_client):
    client, _ = api_client
    response = await client.post("/purchase/boost", json={"type": "HIGHLIGHT", "priceCredits": 1, "durationDays": 1})
    assert response.status_code == 401
    assert response.json() == {"error": "Authentication required"}


@pytest.mark.asyncio
async def test_vod_unlock_records_transaction_for_content_owner(api_client):
    client, session_maker = api_client
    await create_user(session_maker, "vod-creator", is_content_creator=True)
    await create_user(session_maker, "vod-client", credits=300)
    await _seed_content(session_maker, "vod-1", "vod-creator")

    response = await client.post(
        "/purchase/vod",
        json={"contentItemId": "vod-1"},
        headers=auth_header("vod-client"),
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["remainingCredits"] == 100
    assert payload["transaction"]["type"] == TRANSACTION_VOD_UNLOCK
    assert payload["transaction"]["amountCash"] == 20.0
    assert payload["transaction"]["platformFee"] == 4.0
    assert payload["transaction"]["providerAmount"] == 16.0

    async with session_maker() as session:
        transaction = (await session.execute(select(Transaction))).scalar_one()
        item = (await session.execute(select(ContentItem).where(ContentItem.id == "vod-1"))).scalar_one()
    assert transaction.provider_id == "vod-creator"
    assert transaction.client_id == "vod-client"
    assert transaction.payout_request_id is None
    assert item.views_count == 1


@pytest.mark.asyncio
async def test_vod_unlock_rejects_free_and_own_content(api_client):
    client, session_maker = api_client
    await create_user(session_maker, "vod-owner", credits=1000, is_content_creator=True)
    await _seed_content(session_maker, "vod-own", "vod-owner")
    await _seed_content(session_maker, "vod-free", "vod-owner", premium=False, price=None)
    await create_user(session_maker, "vod-viewer", credits=1000)

    own = await client.post("/purchase/vod", json={"contentItemId": "vod-own"}, headers=auth_header("vod-owner"))
    free = await client.post("/purchase/vod", json={"contentItemId": "vod-free"}, headers=auth_header("vod-viewer"))
    missing = await client.post("/purchase/vod", json={"contentItemId": "nope"}, headers=auth_header("vod-viewer"))

    assert own.status_code == 400
    assert own.json()["error"] == "You own this content"
    assert free.status_code == 400
    assert free.json()["error"] == "Content is free or not premium"
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_content_creation_requires_creator_flag(api_client):
    client, session_maker = api_client
    await create_user(session_maker, "plain-client")
    await create_user(session_maker, "creator", is_content_creator=True, is_client=False)

    denied = await client.post(
        "/content",
        json={"title": "Clip", "isPremium": True, "priceCredits": 50},
        headers=auth_header("plain-client"),
    )
    created = await client.post(
        "/content",
        json={"title": "Clip", "isPremium": True, "priceCredits": 50},
        headers=auth_header("creator"),
    )

    assert denied.status_code == 403
    assert created.status_code == 201
    assert created.json()["contentItem"]["priceCredits"] == 50


@pytest.mark.asyncio
async def test_expiry_sweep_deactivates_only_ended_boosts(session_maker, db_session):
    await create_user(session_maker, "sweep-user")
    now = utcnow()
    async with session_maker() as session:
        session.add_all(
            [
                ListingBoost(
                    id="boost-ended",
                    type="HIGHLIGHT",
                    user_id="sweep-user",
                    purchased_by="sweep-user",
                    start_date=now - timedelta(days=3),
                    end_date=now - timedelta(hours=1),
                    is_active=True,
                ),
                ListingBoost(
                    id="boost-running",
                    type="HIGHLIGHT",
                    user_id="sweep-user",
                    purchased_by="sweep-user",
                    start_date=now - timedelta(days=1),
                    end_date=now + timedelta(days=1),
                    is_active=True,
                ),
            ]
        )
        await session.commit()

    assert await expire_boosts(db_session, now=now) == 1

    async with session_maker() as session:
        rows = {boost.id: boost for boost in (await session.execute(select(ListingBoost))).scalars().all()}
    assert rows["boost-ended"].is_active is False
    assert rows["boost-running"].is_active is True
    assert rows["boost-ended"].is_live(now) is False
    assert rows["boost-running"].is_live(now) is True


@pytest.mark.asyncio
async def test_blog_post_can_be_boosted_by_its_author(api_client):
    client, session_maker = api_client
    await create_user(session_maker, "blogger", credits=100)
    await create_user(session_maker, "reader", credits=100)

    created = await client.post(
        "/blog",
        json={"title": "Guia de Lisboa", "content": "Texto"},
        headers=auth_header("blogger"),
    )
    duplicate = await client.post(
        "/blog",
        json={"title": "Guia de Lisboa", "content": "Outro texto"},
        headers=auth_header("blogger"),
    )
    assert created.json()["post"]["slug"] == "guia-de-lisboa"
    assert duplicate.json()["post"]["slug"] == "guia-de-lisboa-2"
    post_id = created.json()["post"]["id"]

    fetched = await client.get("/blog/guia-de-lisboa")
    assert fetched.json()["content"] == "Texto"

    foreign = await client.post(
        "/purchase/boost",
        json={"type": "BLOG", "priceCredits": 20, "durationDays": 2, "blogPostId": post_id},
        headers=auth_header("reader"),
    )
    own = await client.post(
        "/purchase/boost",
        json={"type": "BLOG", "priceCredits": 20, "durationDays": 2, "blogPostId": post_id},
        headers=auth_header("blogger"),
    )

    assert foreign.status_code == 403
    assert own.status_code == 200
    assert own.json()["boost"]["blogPostId"] == post_id
    assert own.json()["remainingCredits"] == 80


@pytest.mark.asyncio
async def test_account_boost_without_target(api_client):
    client, session_maker = api_client
    await create_user(session_maker, "self-promoter", credits=40)

    response = await client.post(
        "/purchase/boost",
        json={"type": "PROFILE", "priceCredits": 40, "durationDays": 1},
        headers=auth_header("self-promoter"),
    )

    assert response.status_code == 200
    assert response.json()["boost"]["userId"] == "self-promoter"
    assert response.json()["remainingCredits"] == 0
