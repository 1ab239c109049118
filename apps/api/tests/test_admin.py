import pytest
from sqlalchemy import select

from config import settings
from conftest import auth_header, create_user
from models.admin_audit_log import AdminAuditLog
from models.listing import LISTING_ACTIVE, LISTING_INACTIVE, LISTING_PENDING, Listing
from models.user import ROLE_ADMIN, ROLE_USER, User
from routers.auth_scope import AdminGate


def test_admin_gate_matches_role_or_allow_list_case_insensitively():
    gate = AdminGate(allow_list=frozenset({"boss@example.com"}))

    assert gate.is_admin("ADMIN", "someone@example.com") is True
    assert gate.is_admin("USER", "  Boss@Example.COM ") is True
    assert gate.is_admin("USER", "someone@example.com") is False
    assert gate.is_admin(None, None) is False


@pytest.mark.asyncio
async def test_admin_routes_require_session(api_client):
    client, _ = api_client

    for path in ("/admin/check-auth", "/admin/stats", "/admin/users", "/admin/audit-logs"):
        response = await client.get(path)
        assert response.status_code == 401, path
        assert response.json() == {"error": "Authentication required"}


@pytest.mark.asyncio
async def test_admin_routes_reject_regular_users(api_client):
    client, session_maker = api_client
    await create_user(session_maker, "regular")

    response = await client.get("/admin/stats", headers=auth_header("regular"))

    assert response.status_code == 403
    assert response.json() == {"error": "Admin access required"}


@pytest.mark.asyncio
async def test_allow_listed_email_is_admin(api_client, monkeypatch):
    client, session_maker = api_client
    monkeypatch.setattr(settings, "ADMIN_EMAILS", "Ops@Example.com, other@example.com")
    await create_user(session_maker, "ops", email="ops@example.com")

    response = await client.get("/admin/check-auth", headers=auth_header("ops", "ops@example.com"))

    assert response.status_code == 200
    assert response.json() == {"isAdmin": True, "email": "ops@example.com"}


@pytest.mark.asyncio
async def test_session_for_deleted_user_is_unauthenticated(api_client):
    client, _ = api_client
    response = await client.get("/admin/check-auth", headers=auth_header("ghost"))
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_toggle_role_and_make_admin_are_audited(api_client):
    client, session_maker = api_client
    await create_user(session_maker, "root", role=ROLE_ADMIN)
    await create_user(session_maker, "member")

    toggled = await client.put(
        "/admin/users/member/toggle-role",
        json={"roleFlag": "isContentCreator", "value": True},
        headers=auth_header("root"),
    )
    unknown = await client.put(
        "/admin/users/member/toggle-role",
        json={"roleFlag": "isPilot", "value": True},
        headers=auth_header("root"),
    )
    promoted = await client.put("/admin/users/member/make-admin", headers=auth_header("root"))
    missing = await client.put("/admin/users/nobody/make-admin", headers=auth_header("root"))

    assert toggled.status_code == 200
    assert toggled.json()["user"]["isContentCreator"] is True
    assert toggled.json()["user"]["isClient"] is True
    assert unknown.status_code == 400
    assert promoted.status_code == 200
    assert promoted.json()["user"]["role"] == ROLE_ADMIN
    assert missing.status_code == 404

    async with session_maker() as session:
        member = (await session.execute(select(User).where(User.id == "member"))).scalar_one()
        logs = (await session.execute(select(AdminAuditLog).order_by(AdminAuditLog.created_at))).scalars().all()
    assert member.is_content_creator is True
    assert member.role == ROLE_ADMIN
    assert [(log.action, log.target_id, log.admin_id) for log in logs] == [
        ("TOGGLE_ROLE", "member", "root"),
        ("MAKE_ADMIN", "member", "root"),
    ]

    audit = await client.get("/admin/audit-logs?action=MAKE_ADMIN", headers=auth_header("root"))
    assert [row["action"] for row in audit.json()["logs"]] == ["MAKE_ADMIN"]


@pytest.mark.asyncio
async def test_listing_moderation_lifecycle(api_client):
    client, session_maker = api_client
    await create_user(session_maker, "moderator", role=ROLE_ADMIN)
    await create_user(session_maker, "escort-1", is_service_provider=True)

    created = await client.post(
        "/listings",
        json={"title": "Novo anúncio", "city": "Porto", "description": "Descrição", "price": 120},
        headers=auth_header("escort-1"),
    )
    assert created.status_code == 201
    listing_id = created.json()["listing"]["id"]
    assert created.json()["listing"]["status"] == LISTING_PENDING

    public = await client.get("/listings")
    assert public.json()["listings"] == []

    pending = await client.get("/admin/pending-listings", headers=auth_header("moderator"))
    assert [row["id"] for row in pending.json()["listings"]] == [listing_id]

    approved = await client.post(f"/admin/approve-listing/{listing_id}", headers=auth_header("moderator"))
    assert approved.json()["listing"]["status"] == LISTING_ACTIVE
    again = await client.post(f"/admin/approve-listing/{listing_id}", headers=auth_header("moderator"))
    assert again.status_code == 400

    edited = await client.put(f"/listings/{listing_id}", json={"title": "Editado"}, headers=auth_header("escort-1"))
    assert edited.json()["listing"]["status"] == LISTING_PENDING

    foreign_edit = await client.put(f"/listings/{listing_id}", json={"title": "x"}, headers=auth_header("moderator"))
    assert foreign_edit.status_code == 403

    rejected = await client.post(f"/admin/reject-listing/{listing_id}", headers=auth_header("moderator"))
    assert rejected.json()["listing"]["status"] == LISTING_INACTIVE

    async with session_maker() as session:
        listing = (await session.execute(select(Listing).where(Listing.id == listing_id))).scalar_one()
    assert listing.title == "Editado"
    assert listing.status == LISTING_INACTIVE


@pytest.mark.asyncio
async def test_admin_stats_counts(api_client):
    client, session_maker = api_client
    await create_user(session_maker, "stats-admin", role=ROLE_ADMIN)
    await create_user(session_maker, "stats-user")

    response = await client.get("/admin/stats", headers=auth_header("stats-admin"))

    assert response.status_code == 200
    assert response.json()["totalUsers"] == 2
    assert response.json()["pendingPayouts"] == 0


@pytest.mark.asyncio
async def test_admin_reports_group_users_and_listings(api_client):
    client, session_maker = api_client
    await create_user(session_maker, "report-admin", role=ROLE_ADMIN)
    await create_user(session_maker, "report-creator", is_content_creator=True)
    await create_user(session_maker, "report-provider", is_service_provider=True, is_client=False)
    async with session_maker() as session:
        session.add_all(
            [
                Listing(id="r-1", user_id="report-provider", title="One", city="Oslo", description="a", status=LISTING_ACTIVE),
                Listing(id="r-2", user_id="report-provider", title="Two", city="Oslo", description="b"),
                Listing(id="r-3", user_id="report-provider", title="Three", city="Oslo", description="c", status=LISTING_INACTIVE),
            ]
        )
        await session.commit()

    denied = await client.get("/admin/reports", headers=auth_header("report-creator"))
    assert denied.status_code == 403

    response = await client.get("/admin/reports", headers=auth_header("report-admin"))

    assert response.status_code == 200
    report = response.json()
    assert report["totalUsers"] == 3
    assert report["totalProfiles"] == 0
    assert report["totalListings"] == 3
    assert report["activeListings"] == 1
    assert report["pendingListings"] == 1
    assert report["usersByRole"] == {ROLE_ADMIN: 1, ROLE_USER: 2}
    assert report["usersByAccountType"] == {"isClient": 2, "isContentCreator": 1, "isServiceProvider": 1}
    assert report["listingsByStatus"] == {LISTING_ACTIVE: 1, LISTING_PENDING: 1, LISTING_INACTIVE: 1}
