from decimal import Decimal

import pytest
from sqlalchemy import select

from conftest import auth_header, create_unpaid_transaction, create_user
from models.admin_audit_log import AdminAuditLog
from models.payout_request import PAYOUT_COMPLETED, PAYOUT_REJECTED, PAYOUT_REQUESTED, PayoutRequest
from models.transaction import Transaction
from models.user import ROLE_ADMIN
from services.errors import InvalidState, NotFound, ValidationError
from services.payouts import approve_payout, get_available_balance, reject_payout, request_payout


async def _seed_provider(session_maker, provider_id="provider-1", amounts=("30.00", "20.00")):
    await create_user(session_maker, provider_id, is_service_provider=True)
    await create_user(session_maker, f"{provider_id}-client")
    for index, amount in enumerate(amounts):
        await create_unpaid_transaction(session_maker, f"{provider_id}-tx-{index}", provider_id, f"{provider_id}-client", amount)


async def _attached_ids(session_maker, payout_id):
    async with session_maker() as session:
        result = await session.execute(select(Transaction.id).where(Transaction.payout_request_id == payout_id))
        return sorted(result.scalars().all())


@pytest.mark.asyncio
async def test_request_attaches_rows_and_reject_detaches_them(session_maker, db_session):
    await _seed_provider(session_maker)

    payout = await request_payout("provider-1", db_session, amount="50.00", payout_method="pix", payout_details="key")

    assert payout.status == PAYOUT_REQUESTED
    assert Decimal(str(payout.attached_amount)) == Decimal("50.00")
    assert await _attached_ids(session_maker, payout.id) == ["provider-1-tx-0", "provider-1-tx-1"]
    assert await get_available_balance("provider-1", db_session) == Decimal("0.00")

    rejected = await reject_payout(payout.id, db_session, reason="invalid bank details", admin_id=None)

    assert rejected.status == PAYOUT_REJECTED
    assert rejected.rejection_reason == "invalid bank details"
    assert await _attached_ids(session_maker, payout.id) == []
    assert await get_available_balance("provider-1", db_session) == Decimal("50.00")


@pytest.mark.asyncio
async def test_first_fit_skips_rows_that_overflow_and_records_attached_amount(session_maker, db_session):
    await _seed_provider(session_maker, "provider-ff", amounts=("30.00", "25.00", "20.00"))

    payout = await request_payout("provider-ff", db_session, amount="50.00")

    assert await _attached_ids(session_maker, payout.id) == ["provider-ff-tx-0", "provider-ff-tx-2"]
    assert Decimal(str(payout.attached_amount)) == Decimal("50.00")
    assert await get_available_balance("provider-ff", db_session) == Decimal("25.00")


@pytest.mark.asyncio
async def test_first_fit_can_attach_less_than_requested(session_maker, db_session):
    await _seed_provider(session_maker, "provider-under", amounts=("30.00", "25.00"))

    payout = await request_payout("provider-under", db_session, amount="50.00")

    assert Decimal(str(payout.amount)) == Decimal("50.00")
    assert Decimal(str(payout.attached_amount)) == Decimal("30.00")
    assert await _attached_ids(session_maker, payout.id) == ["provider-under-tx-0"]


@pytest.mark.asyncio
async def test_request_with_nothing_attachable_persists_nothing(session_maker, db_session):
    await _seed_provider(session_maker, "provider-none", amounts=("30.00",))

    with pytest.raises(ValidationError):
        await request_payout("provider-none", db_session, amount="20.00")

    async with session_maker() as session:
        assert (await session.execute(select(PayoutRequest))).scalars().all() == []


@pytest.mark.asyncio
async def test_request_validates_amount_against_balance(session_maker, db_session):
    await _seed_provider(session_maker, "provider-bal", amounts=("10.00",))

    with pytest.raises(ValidationError, match="Invalid amount"):
        await request_payout("provider-bal", db_session, amount="0")
    with pytest.raises(ValidationError, match="Insufficient balance"):
        await request_payout("provider-bal", db_session, amount="10.01")


@pytest.mark.asyncio
async def test_only_requested_payouts_transition(session_maker, db_session):
    await _seed_provider(session_maker, "provider-state")
    await create_user(session_maker, "payout-admin", role=ROLE_ADMIN)
    payout = await request_payout("provider-state", db_session, amount="50.00")

    approved = await approve_payout(payout.id, db_session, admin_id="payout-admin")
    assert approved.status == PAYOUT_COMPLETED
    assert approved.processed_by == "payout-admin"
    assert approved.processed_at is not None

    with pytest.raises(InvalidState):
        await approve_payout(payout.id, db_session, admin_id="payout-admin")
    with pytest.raises(InvalidState):
        await reject_payout(payout.id, db_session, reason="late", admin_id="payout-admin")
    with pytest.raises(NotFound):
        await approve_payout("missing", db_session, admin_id="payout-admin")

    # completed payouts keep their rows attached
    assert len(await _attached_ids(session_maker, payout.id)) == 2


@pytest.mark.asyncio
async def test_reject_requires_reason(session_maker, db_session):
    await _seed_provider(session_maker, "provider-reason")
    payout = await request_payout("provider-reason", db_session, amount="50.00")

    with pytest.raises(ValidationError):
        await reject_payout(payout.id, db_session, reason="   ", admin_id=None)


@pytest.mark.asyncio
async def test_payout_http_flow_with_admin_approval(api_client):
    client, session_maker = api_client
    await _seed_provider(session_maker, "provider-http")
    await create_user(session_maker, "admin-http", role=ROLE_ADMIN)

    earnings = await client.get("/user/earnings", headers=auth_header("provider-http"))
    assert earnings.json()["currentBalance"] == 50.0

    created = await client.post(
        "/user/payouts/request",
        json={"amount": 50, "payoutMethod": "bank", "payoutDetails": "IBAN PT50"},
        headers=auth_header("provider-http"),
    )
    assert created.status_code == 201
    payout_id = created.json()["payout"]["id"]

    mine = await client.get("/user/payouts", headers=auth_header("provider-http"))
    assert [row["id"] for row in mine.json()["payouts"]] == [payout_id]

    pending = await client.get("/admin/payouts?status=requested", headers=auth_header("admin-http"))
    assert [row["id"] for row in pending.json()["payouts"]] == [payout_id]

    approved = await client.put(f"/admin/payouts/{payout_id}/approve", headers=auth_header("admin-http"))
    assert approved.status_code == 200
    assert approved.json()["payout"]["status"] == PAYOUT_COMPLETED

    again = await client.put(f"/admin/payouts/{payout_id}/approve", headers=auth_header("admin-http"))
    assert again.status_code == 400

    summary = await client.get("/admin/payouts/summary", headers=auth_header("admin-http"))
    assert summary.json()["totalCompleted"] == 50.0

    earnings = await client.get("/user/earnings", headers=auth_header("provider-http"))
    assert earnings.json()["currentBalance"] == 0.0
    assert earnings.json()["lastPayoutDate"] is not None

    async with session_maker() as session:
        actions = (await session.execute(select(AdminAuditLog.action))).scalars().all()
    assert actions == ["APPROVE_PAYOUT"]


@pytest.mark.asyncio
async def test_payout_request_requires_provider_capability(api_client):
    client, session_maker = api_client
    await create_user(session_maker, "just-client")

    response = await client.post(
        "/user/payouts/request",
        json={"amount": 10},
        headers=auth_header("just-client"),
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_admin_reject_requires_reason_over_http(api_client):
    client, session_maker = api_client
    await _seed_provider(session_maker, "provider-rej")
    await create_user(session_maker, "admin-rej", role=ROLE_ADMIN)
    async with session_maker() as session:
        payout = await request_payout("provider-rej", session, amount="20.00")

    missing_reason = await client.put(f"/admin/payouts/{payout.id}/reject", json={}, headers=auth_header("admin-rej"))
    rejected = await client.put(
        f"/admin/payouts/{payout.id}/reject",
        json={"rejectionReason": "invalid bank details"},
        headers=auth_header("admin-rej"),
    )

    assert missing_reason.status_code == 400
    assert rejected.status_code == 200
    assert rejected.json()["payout"]["rejectionReason"] == "invalid bank details"
    assert await _attached_ids(session_maker, payout.id) == []
