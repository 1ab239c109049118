import pytest
from sqlalchemy import select

from conftest import auth_header, create_user
from models.listing import LISTING_ACTIVE, LISTING_PENDING, Listing
from models.profile import Profile
from models.user import ROLE_ADMIN


async def _seed_directory(session_maker):
    await create_user(session_maker, "creator-1", is_content_creator=True)
    await create_user(session_maker, "provider-live", is_service_provider=True)
    await create_user(session_maker, "provider-pending", is_service_provider=True)
    await create_user(session_maker, "half-done", is_content_creator=True)
    async with session_maker() as session:
        session.add_all(
            [
                Profile(id="p-creator", user_id="creator-1", name="Ana", age=25, city="Paris", description="hi"),
                Profile(id="p-live", user_id="provider-live", name="Bea", age=30, city="Lyon", description="hello"),
                Profile(id="p-pending", user_id="provider-pending", name="Cid", age=31, city="Lyon", description="hey"),
                Profile(id="p-half", user_id="half-done", name="Dot"),
                Listing(
                    id="l-live",
                    user_id="provider-live",
                    title="Live",
                    city="Lyon",
                    description="Listed",
                    status=LISTING_ACTIVE,
                ),
                Listing(
                    id="l-pending",
                    user_id="provider-pending",
                    title="Waiting",
                    city="Lyon",
                    description="Not yet",
                    status=LISTING_PENDING,
                ),
            ]
        )
        await session.commit()


@pytest.mark.asyncio
async def test_public_directory_hides_incomplete_profiles(api_client):
    client, session_maker = api_client
    await _seed_directory(session_maker)

    response = await client.get("/profiles")

    assert response.status_code == 200
    payload = response.json()
    assert {profile["id"] for profile in payload["profiles"]} == {"p-creator", "p-live"}
    assert payload["total"] == 2
    assert payload["pages"] == 1
    assert payload["currentPage"] == 1

    lyon = await client.get("/profiles", params={"city": "Lyon"})
    assert [profile["id"] for profile in lyon.json()["profiles"]] == ["p-live"]
    assert lyon.json()["profiles"][0]["user"]["isServiceProvider"] is True


@pytest.mark.asyncio
async def test_admin_directory_includes_hidden_profiles(api_client):
    client, session_maker = api_client
    await _seed_directory(session_maker)

    response = await client.get("/profiles", headers=auth_header("viewer", role=ROLE_ADMIN))

    assert response.status_code == 200
    assert response.json()["total"] == 4

    paged = await client.get(
        "/profiles",
        params={"page": 2, "limit": 3},
        headers=auth_header("viewer", role=ROLE_ADMIN),
    )
    assert len(paged.json()["profiles"]) == 1
    assert paged.json()["pages"] == 2


@pytest.mark.asyncio
async def test_profile_detail_and_creator_page(api_client):
    client, session_maker = api_client
    await _seed_directory(session_maker)

    detail = await client.get("/profiles/p-live")
    assert detail.status_code == 200
    assert detail.json()["name"] == "Bea"
    assert detail.json()["userId"] == "provider-live"

    missing = await client.get("/profiles/nope")
    assert missing.status_code == 404
    assert missing.json() == {"error": "Profile not found"}

    creator = await client.get("/creator/creator-1")
    assert creator.status_code == 200
    assert creator.json()["profile"]["id"] == "p-creator"

    not_creator = await client.get("/creator/provider-live")
    assert not_creator.status_code == 404
    assert not_creator.json() == {"error": "Creator profile not found"}


@pytest.mark.asyncio
async def test_owner_profile_update_creates_and_validates(api_client):
    client, session_maker = api_client
    await create_user(session_maker, "owner", is_service_provider=True)
    async with session_maker() as session:
        session.add(
            Listing(id="l-own", user_id="owner", title="Mine", city="Nice", description="Own listing")
        )
        await session.commit()

    before = await client.get("/user/profile", headers=auth_header("owner"))
    assert before.status_code == 200
    assert before.json()["profile"] is None
    assert before.json()["user"]["id"] == "owner"
    assert [listing["id"] for listing in before.json()["listings"]] == ["l-own"]

    too_young = await client.put("/user/profile", json={"age": 17}, headers=auth_header("owner"))
    assert too_young.status_code == 400
    assert too_young.json() == {"error": "age must be at least 18"}

    not_a_number = await client.put("/user/profile", json={"age": "old"}, headers=auth_header("owner"))
    assert not_a_number.status_code == 400

    saved = await client.put(
        "/user/profile",
        json={"name": "Owner", "age": 40, "city": "Nice", "description": "About me"},
        headers=auth_header("owner"),
    )
    assert saved.status_code == 200
    assert saved.json()["success"] is True
    assert saved.json()["profile"]["age"] == 40
    assert "user" not in saved.json()["profile"]

    updated = await client.put("/user/profile", json={"city": "Nantes"}, headers=auth_header("owner"))
    assert updated.json()["profile"]["city"] == "Nantes"
    assert updated.json()["profile"]["name"] == "Owner"

    async with session_maker() as session:
        profiles = (await session.execute(select(Profile).where(Profile.user_id == "owner"))).scalars().all()
    assert len(profiles) == 1
    assert profiles[0].description == "About me"


@pytest.mark.asyncio
async def test_owner_profile_requires_session(api_client):
    client, _ = api_client

    assert (await client.get("/user/profile")).status_code == 401
    assert (await client.put("/user/profile", json={"name": "x"})).status_code == 401
