"""
Tests for the balance endpoints: top-ups, ledger listing, operator edits,
deletes and adjustments, and the balance-vs-ledger check.

These tests verify:
  - Top-ups credit the caller (or, for admins, a target user)
  - Editing an entry's amount carries exactly the difference into the balance
  - Deleting an entry with reversal keeps balance and ledger in agreement;
    a history-only delete is flagged and shows up as a verify mismatch
  - Adjustments land the balance on the exact requested value
  - Listing filters and today's count
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from ppob_ledger.exceptions import LogNotFoundError
from ppob_ledger.models import ActivityLog, BalanceLog, BalanceLogType, Direction
from ppob_ledger.services import balance_service


async def top_up(client, amount, **extra):
    response = await client.post("/balance/top-up", json={"amount": amount, **extra})
    assert response.status_code == 201, response.text
    return response.json()


class TestTopUp:

    async def test_cashier_tops_up_own_balance(self, kasir_client, db_session, kasir):
        body = await top_up(kasir_client, 5_000)

        assert body["new_balance"] == 5_000
        log = body["balance_log"]
        assert log["type"] == "TOP_UP"
        assert (log["balance_before"], log["balance_after"]) == (0, 5_000)
        assert log["description"] == "Top up saldo Rp 5.000"
        assert await balance_service.get_user_balance(db_session, kasir.id) == 5_000

    async def test_admin_tops_up_target(self, admin_client, db_session, admin, kasir):
        body = await top_up(admin_client, 20_000, target_user_id=str(kasir.id))

        assert body["balance_log"]["user_id"] == str(kasir.id)
        assert await balance_service.get_user_balance(db_session, kasir.id) == 20_000
        assert await balance_service.get_user_balance(db_session, admin.id) == 0

        result = await db_session.execute(
            select(ActivityLog).where(ActivityLog.action == "TOP_UP")
        )
        activity = result.scalar_one()
        assert activity.user_id == admin.id
        assert "Kasir Satu" in activity.details

    async def test_cashier_target_is_ignored(self, kasir_client, db_session, kasir, second_kasir):
        await top_up(kasir_client, 5_000, target_user_id=str(second_kasir.id))

        assert await balance_service.get_user_balance(db_session, kasir.id) == 5_000
        assert await balance_service.get_user_balance(db_session, second_kasir.id) == 0

    async def test_admin_unknown_target(self, admin_client):
        response = await admin_client.post(
            "/balance/top-up", json={"amount": 1_000, "target_user_id": str(uuid.uuid4())}
        )
        assert response.status_code == 404
        assert response.json()["error_type"] == "user_not_found"

    async def test_non_positive_amount(self, kasir_client):
        for amount in (0, -100):
            response = await kasir_client.post("/balance/top-up", json={"amount": amount})
            assert response.status_code == 422


class TestEditLog:

    async def test_raising_amount_adds_difference(self, kasir_client, admin_client, db_session, kasir):
        log = (await top_up(kasir_client, 5_000))["balance_log"]

        response = await admin_client.put(f"/balance/logs/{log['id']}", json={"amount": 8_000})
        assert response.status_code == 200
        body = response.json()
        assert body["adjustment"] == 3_000
        assert body["log"]["amount"] == 8_000
        assert body["log"]["balance_after"] == 8_000

        assert await balance_service.get_user_balance(db_session, kasir.id) == 8_000
        verification = await balance_service.verify_user_balance(db_session, kasir.id)
        assert verification["match"] is True

    async def test_raising_debit_amount_takes_more(
        self, kasir_client, admin_client, db_session, kasir, catalog, fund,
    ):
        await fund(kasir, 10_000)
        txn = (
            await kasir_client.post(
                "/transactions",
                json={"product_id": str(catalog.pulsa.id), "customer_number": "0812"},
            )
        ).json()
        charge = (
            await db_session.execute(
                select(BalanceLog).where(BalanceLog.reference_id == uuid.UUID(txn["id"]))
            )
        ).scalar_one()

        response = await admin_client.put(f"/balance/logs/{charge.id}", json={"amount": 5_000})
        assert response.json()["adjustment"] == -1_000
        assert response.json()["log"]["balance_after"] == 5_000
        assert await balance_service.get_user_balance(db_session, kasir.id) == 5_000

    async def test_description_only_edit(self, kasir_client, admin_client, db_session, kasir):
        log = (await top_up(kasir_client, 5_000))["balance_log"]

        response = await admin_client.put(
            f"/balance/logs/{log['id']}", json={"description": "Setoran pagi"}
        )
        assert response.json()["adjustment"] == 0
        assert response.json()["log"]["description"] == "Setoran pagi"
        assert await balance_service.get_user_balance(db_session, kasir.id) == 5_000

    async def test_edit_is_audited(self, kasir_client, admin_client, db_session, admin):
        log = (await top_up(kasir_client, 5_000))["balance_log"]
        await admin_client.put(f"/balance/logs/{log['id']}", json={"amount": 8_000})

        result = await db_session.execute(
            select(ActivityLog).where(ActivityLog.action == "UPDATE_BALANCE_LOG")
        )
        activity = result.scalar_one()
        assert activity.user_id == admin.id
        assert activity.entity_id == uuid.UUID(log["id"])

    async def test_unknown_log(self, admin_client):
        response = await admin_client.put(f"/balance/logs/{uuid.uuid4()}", json={"amount": 1})
        assert response.status_code == 404
        assert response.json()["error_type"] == "log_not_found"

    async def test_cashier_cannot_edit(self, kasir_client):
        log = (await top_up(kasir_client, 5_000))["balance_log"]
        response = await kasir_client.put(f"/balance/logs/{log['id']}", json={"amount": 50_000})
        assert response.status_code == 403


class TestDeleteLog:

    async def test_delete_with_reversal(self, kasir_client, admin_client, db_session, kasir):
        await top_up(kasir_client, 10_000)
        log = (await top_up(kasir_client, 5_000))["balance_log"]

        response = await admin_client.delete(
            f"/balance/logs/{log['id']}", params={"reverse_balance": "true"}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["balance_reversed"] is True
        assert body["adjustment"] == -5_000
        assert body["warning"] is None

        assert await balance_service.get_user_balance(db_session, kasir.id) == 10_000
        verification = await balance_service.verify_user_balance(db_session, kasir.id)
        assert verification["match"] is True

    async def test_history_only_delete_breaks_verification(
        self, kasir_client, admin_client, db_session, kasir,
    ):
        await top_up(kasir_client, 10_000)
        log = (await top_up(kasir_client, 5_000))["balance_log"]

        response = await admin_client.delete(
            f"/balance/logs/{log['id']}", params={"reverse_balance": "false"}
        )
        body = response.json()
        assert body["balance_reversed"] is False
        assert body["adjustment"] == 0
        assert body["warning"]

        verify = (await kasir_client.get(f"/balance/users/{kasir.id}/verify")).json()
        assert verify == {
            "user_id": str(kasir.id),
            "balance": 15_000,
            "computed_balance": 10_000,
            "match": False,
        }

    async def test_reverse_flag_is_required(self, kasir_client, admin_client):
        log = (await top_up(kasir_client, 5_000))["balance_log"]
        response = await admin_client.delete(f"/balance/logs/{log['id']}")
        assert response.status_code == 422

    async def test_delete_is_audited(self, kasir_client, admin_client, db_session, admin):
        log = (await top_up(kasir_client, 5_000))["balance_log"]
        await admin_client.delete(
            f"/balance/logs/{log['id']}", params={"reverse_balance": "false"}
        )

        result = await db_session.execute(
            select(ActivityLog).where(ActivityLog.action == "DELETE_BALANCE_LOG")
        )
        activity = result.scalar_one()
        assert activity.user_id == admin.id
        assert "Saldo tidak diubah" in activity.details


class TestAdjust:

    async def test_adjust_up_and_down(self, kasir_client, admin_client, db_session, kasir):
        await top_up(kasir_client, 10_000)

        response = await admin_client.post(
            "/balance/adjust", json={"user_id": str(kasir.id), "new_balance": 7_500}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["new_balance"] == 7_500
        assert body["balance_log"]["type"] == "ADJUSTMENT"
        assert body["balance_log"]["amount"] == 2_500
        assert (body["balance_log"]["balance_before"], body["balance_log"]["balance_after"]) == (
            10_000, 7_500,
        )

        await admin_client.post(
            "/balance/adjust", json={"user_id": str(kasir.id), "new_balance": 12_000}
        )
        assert await balance_service.get_user_balance(db_session, kasir.id) == 12_000
        verification = await balance_service.verify_user_balance(db_session, kasir.id)
        assert verification["match"] is True

    async def test_adjust_to_same_value_writes_nothing(self, kasir_client, admin_client, db_session, kasir):
        await top_up(kasir_client, 10_000)

        response = await admin_client.post(
            "/balance/adjust", json={"user_id": str(kasir.id), "new_balance": 10_000}
        )
        assert response.json()["balance_log"] is None

        entries = (
            await db_session.execute(select(BalanceLog).where(BalanceLog.user_id == kasir.id))
        ).scalars().all()
        assert len(entries) == 1


class TestListLogs:

    async def test_cashier_sees_only_own(
        self, kasir_client, second_kasir_client, admin_client, kasir, second_kasir,
    ):
        await top_up(kasir_client, 1_000)
        await top_up(second_kasir_client, 2_000)

        mine = (await kasir_client.get("/balance/logs")).json()
        assert [log["user_id"] for log in mine["logs"]] == [str(kasir.id)]
        assert mine["today_count"] == 1

        # A cashier cannot widen the scope with user_id
        widened = (
            await kasir_client.get("/balance/logs", params={"user_id": str(second_kasir.id)})
        ).json()
        assert [log["user_id"] for log in widened["logs"]] == [str(kasir.id)]

        everything = (await admin_client.get("/balance/logs")).json()
        assert everything["pagination"]["total"] == 2
        just_second = (
            await admin_client.get("/balance/logs", params={"user_id": str(second_kasir.id)})
        ).json()
        assert just_second["pagination"]["total"] == 1

    async def test_filter_by_type(self, kasir_client, kasir, catalog, fund):
        await fund(kasir, 10_000)
        await kasir_client.post(
            "/transactions",
            json={"product_id": str(catalog.pulsa.id), "customer_number": "0812"},
        )

        body = (await kasir_client.get("/balance/logs", params={"type": "TRANSACTION"})).json()
        assert body["pagination"]["total"] == 1
        assert body["logs"][0]["type"] == "TRANSACTION"

    async def test_date_range_and_today_count(self, kasir_client, kasir):
        last_week = datetime.now(timezone.utc) - timedelta(days=7)
        await top_up(kasir_client, 1_000, date=last_week.isoformat())
        await top_up(kasir_client, 2_000)

        body = (await kasir_client.get("/balance/logs")).json()
        assert body["pagination"]["total"] == 2
        assert body["today_count"] == 1
        assert body["logs"][0]["amount"] == 2_000  # newest first

        since = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
        recent = (await kasir_client.get("/balance/logs", params={"start_date": since})).json()
        assert recent["pagination"]["total"] == 1

    async def test_offset_date_lands_in_utc_range(self, kasir_client):
        wib = timezone(timedelta(hours=7))
        await top_up(kasir_client, 1_000, date=datetime.now(wib).isoformat())

        now = datetime.now(timezone.utc)
        body = (
            await kasir_client.get(
                "/balance/logs",
                params={
                    "start_date": (now - timedelta(hours=1)).isoformat(),
                    "end_date": (now + timedelta(hours=1)).isoformat(),
                },
            )
        ).json()
        assert body["pagination"]["total"] == 1

    async def test_offset_filter_bounds(self, kasir_client):
        await top_up(kasir_client, 1_000)

        # The same one-hour window around now, expressed in WIB
        wib = timezone(timedelta(hours=7))
        now = datetime.now(wib)
        body = (
            await kasir_client.get(
                "/balance/logs",
                params={
                    "start_date": (now - timedelta(hours=1)).isoformat(),
                    "end_date": (now + timedelta(hours=1)).isoformat(),
                },
            )
        ).json()
        assert body["pagination"]["total"] == 1


class TestReadBalance:

    async def test_own_balance(self, kasir_client, kasir):
        await top_up(kasir_client, 3_000)
        response = await kasir_client.get(f"/balance/users/{kasir.id}")
        assert response.json() == {"user_id": str(kasir.id), "balance": 3_000}

    async def test_other_cashier_is_forbidden(self, kasir_client, second_kasir):
        response = await kasir_client.get(f"/balance/users/{second_kasir.id}")
        assert response.status_code == 403
        assert response.json()["error_type"] == "unauthorized_access"

        response = await kasir_client.get(f"/balance/users/{second_kasir.id}/verify")
        assert response.status_code == 403

    async def test_admin_reads_any(self, admin_client, kasir):
        response = await admin_client.get(f"/balance/users/{kasir.id}/verify")
        assert response.status_code == 200
        assert response.json()["match"] is True

    async def test_unknown_user(self, admin_client):
        response = await admin_client.get(f"/balance/users/{uuid.uuid4()}")
        assert response.status_code == 404


class TestDeleteOperations:
    """Service-level checks of the two ledger delete operations."""

    async def test_reversing_delete_of_debit_gives_money_back(self, db_session, kasir, fund):
        await fund(kasir, 10_000)
        charge = await balance_service.apply_mutation(
            db_session,
            user_id=kasir.id,
            log_type=BalanceLogType.TRANSACTION,
            magnitude=4_000,
            direction=Direction.DEBIT,
        )

        removed, adjustment = await balance_service.delete_balance_log_reversing(
            db_session, charge.id,
        )
        assert removed.id == charge.id
        assert adjustment == 4_000
        assert await balance_service.get_user_balance(db_session, kasir.id) == 10_000

    async def test_history_only_delete_leaves_balance(self, db_session, kasir, fund):
        await fund(kasir, 10_000)
        entry = (
            await db_session.execute(select(BalanceLog).where(BalanceLog.user_id == kasir.id))
        ).scalar_one()

        await balance_service.delete_balance_log_history_only(db_session, entry.id)

        assert await balance_service.get_user_balance(db_session, kasir.id) == 10_000
        assert await balance_service.compute_balance_from_logs(db_session, kasir.id) == 0

    async def test_unknown_entry(self, db_session):
        with pytest.raises(LogNotFoundError):
            await balance_service.delete_balance_log_history_only(db_session, uuid.uuid4())
