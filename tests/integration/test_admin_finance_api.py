import csv
import io
import json
from datetime import timedelta

import httpx
import pytest
from httpx import AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from payout_ledger.core.datetime_utils import utc_now
from payout_ledger.db.models import EarningEvent, Payout, ProviderAccount
from payout_ledger.main import app
from payout_ledger.services.export_service import EXPORT_HEADERS
from payout_ledger.services.settlement_gateway import (
    HttpSettlementGateway,
    get_settlement_gateway,
)
from tests.utils import (
    EventFactory,
    PayoutFactory,
    admin_action,
    get_earnings,
    headers_for,
    money,
    post_events,
    request_payout,
)


@pytest.fixture
async def pending_payout(client: AsyncClient, sample_provider_id: str) -> dict:
    """500.00 USD payout against 1200.00 of earnings."""
    await post_events(
        client,
        [
            EventFactory.create_booking_event(
                sample_provider_id, amount="1300.00", fee="100.00"
            )
        ],
    )
    return await request_payout(
        client, sample_provider_id, PayoutFactory.create_bank_payout_data("500.00")
    )


async def _processing(client: AsyncClient, payout_id: int) -> None:
    assert (await admin_action(client, payout_id, "approve")).status_code == 200
    assert (await admin_action(client, payout_id, "process")).status_code == 200


@pytest.mark.integration
class TestAdminTransitions:
    async def test_approve_with_notes(
        self, client: AsyncClient, pending_payout: dict
    ) -> None:
        response = await admin_action(
            client, pending_payout["id"], "approve", {"notes": "Verified account"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "APPROVED"
        assert data["notes"] == "Verified account"
        assert data["approved_at"] is not None

    async def test_approve_without_body(
        self, client: AsyncClient, pending_payout: dict
    ) -> None:
        response = await admin_action(client, pending_payout["id"], "approve")

        assert response.status_code == 200
        assert response.json()["notes"] is None

    async def test_reject_requires_reason(
        self, client: AsyncClient, pending_payout: dict
    ) -> None:
        missing = await admin_action(client, pending_payout["id"], "reject")
        blank = await admin_action(client, pending_payout["id"], "reject", {"reason": "  "})

        assert missing.status_code == 422
        assert blank.status_code == 422
        assert blank.json()["error"]["details"]["field"] == "reason"

    async def test_reject_releases_reservation(
        self, client: AsyncClient, pending_payout: dict, sample_provider_id: str
    ) -> None:
        response = await admin_action(
            client, pending_payout["id"], "reject", {"reason": "Account mismatch"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "REJECTED"
        assert data["rejection_reason"] == "Account mismatch"
        assert data["rejected_at"] is not None

        earnings = await get_earnings(client, sample_provider_id)
        assert money(earnings["available_balance"]) == money("1200.00")
        assert money(earnings["pending_payouts"]) == money("0")

    async def test_process_keeps_reservation(
        self, client: AsyncClient, pending_payout: dict, sample_provider_id: str
    ) -> None:
        await admin_action(client, pending_payout["id"], "approve")

        response = await admin_action(
            client, pending_payout["id"], "process", {"reference_number": "BATCH-7"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "PROCESSING"
        assert data["processed_at"] is not None
        assert data["processing_reference"] == "BATCH-7"

        earnings = await get_earnings(client, sample_provider_id)
        assert money(earnings["pending_payouts"]) == money("500.00")

    async def test_process_requires_approval(
        self, client: AsyncClient, pending_payout: dict
    ) -> None:
        response = await admin_action(client, pending_payout["id"], "process")

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "PAYOUT_INVALID_STATE"
        assert error["details"]["current_status"] == "PENDING"

    async def test_mark_paid_requires_reference(
        self, client: AsyncClient, pending_payout: dict
    ) -> None:
        await _processing(client, pending_payout["id"])

        response = await admin_action(client, pending_payout["id"], "paid", {})

        assert response.status_code == 422
        assert response.json()["error"]["details"]["field"] == "reference_number"

    async def test_mark_paid_settles(
        self, client: AsyncClient, pending_payout: dict, sample_provider_id: str
    ) -> None:
        await _processing(client, pending_payout["id"])

        response = await admin_action(
            client, pending_payout["id"], "paid", {"reference_number": "TRX-001"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "COMPLETED"
        assert data["reference_number"] == "TRX-001"
        assert data["paid_at"] is not None

        earnings = await get_earnings(client, sample_provider_id)
        assert money(earnings["available_balance"]) == money("700.00")
        assert money(earnings["pending_payouts"]) == money("0")
        assert money(earnings["total_payouts"]) == money("500.00")

    async def test_mark_failed_releases(
        self, client: AsyncClient, pending_payout: dict, sample_provider_id: str
    ) -> None:
        await _processing(client, pending_payout["id"])

        response = await admin_action(
            client, pending_payout["id"], "failed", {"reason": "Account closed"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "FAILED"
        assert data["failure_reason"] == "Account closed"

        earnings = await get_earnings(client, sample_provider_id)
        assert money(earnings["available_balance"]) == money("1200.00")
        assert money(earnings["total_payouts"]) == money("0")

    async def test_terminal_payout_rejects_every_action(
        self, client: AsyncClient, pending_payout: dict
    ) -> None:
        await admin_action(
            client, pending_payout["id"], "reject", {"reason": "Duplicate request"}
        )

        for action, body in (
            ("approve", None),
            ("reject", {"reason": "again"}),
            ("process", None),
            ("paid", {"reference_number": "X"}),
            ("failed", {"reason": "X"}),
        ):
            response = await admin_action(client, pending_payout["id"], action, body)
            assert response.status_code == 409, action

    async def test_unknown_payout_not_found(self, client: AsyncClient) -> None:
        response = await admin_action(client, 424242, "approve")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "PAYOUT_NOT_FOUND"

    async def test_provider_cannot_use_admin_routes(
        self, client: AsyncClient, pending_payout: dict, sample_provider_id: str
    ) -> None:
        response = await client.put(
            f"/v1/admin/finance/payouts/{pending_payout['id']}/approve",
            headers=headers_for(sample_provider_id),
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "AUTHORIZATION_ERROR"


@pytest.mark.integration
class TestSettlementGateway:
    async def test_gateway_reference_recorded(
        self, client: AsyncClient, pending_payout: dict
    ) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"reference": "TRF-123"})

        app.dependency_overrides[get_settlement_gateway] = lambda: HttpSettlementGateway(
            "http://settlement.test", transport=httpx.MockTransport(handler)
        )
        await admin_action(client, pending_payout["id"], "approve")

        response = await admin_action(client, pending_payout["id"], "process")

        assert response.status_code == 200
        assert response.json()["processing_reference"] == "TRF-123"
        assert len(seen) == 1
        assert seen[0].url.path == "/transfers"
        assert (
            seen[0].headers["Idempotency-Key"]
            == f"payout-{pending_payout['id']}-process"
        )
        body = json.loads(seen[0].content)
        assert body["amount_minor"] == 50000
        assert body["currency"] == "USD"

    async def test_gateway_failure_leaves_payout_approved(
        self, client: AsyncClient, pending_payout: dict, sample_provider_id: str
    ) -> None:
        app.dependency_overrides[get_settlement_gateway] = lambda: HttpSettlementGateway(
            "http://settlement.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )
        await admin_action(client, pending_payout["id"], "approve")

        response = await admin_action(client, pending_payout["id"], "process")

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "SETTLEMENT_GATEWAY_ERROR"

        current = await client.get(
            f"/v1/provider/payouts/{pending_payout['id']}",
            headers=headers_for(sample_provider_id),
        )
        assert current.json()["status"] == "APPROVED"
        assert current.json()["processed_at"] is None

    async def test_settlement_confirmed_on_mark_paid(
        self, client: AsyncClient, pending_payout: dict
    ) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"reference": "TRF-9"})

        app.dependency_overrides[get_settlement_gateway] = lambda: HttpSettlementGateway(
            "http://settlement.test", transport=httpx.MockTransport(handler)
        )
        await _processing(client, pending_payout["id"])

        response = await admin_action(
            client, pending_payout["id"], "paid", {"reference_number": "PAID-9"}
        )

        assert response.status_code == 200
        assert [request.url.path for request in seen] == ["/transfers", "/settlements"]
        assert (
            seen[1].headers["Idempotency-Key"]
            == f"payout-{pending_payout['id']}-settle"
        )
        assert json.loads(seen[1].content)["reference_number"] == "PAID-9"

    async def test_settlement_failure_leaves_payout_processing(
        self, client: AsyncClient, pending_payout: dict, sample_provider_id: str
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/settlements":
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json={})

        app.dependency_overrides[get_settlement_gateway] = lambda: HttpSettlementGateway(
            "http://settlement.test", transport=httpx.MockTransport(handler)
        )
        await _processing(client, pending_payout["id"])

        response = await admin_action(
            client, pending_payout["id"], "paid", {"reference_number": "PAID-9"}
        )

        assert response.status_code == 502
        assert response.json()["error"]["details"]["operation"] == "settle"
        earnings = await get_earnings(client, sample_provider_id)
        assert money(earnings["pending_payouts"]) == money("500.00")
        assert money(earnings["total_payouts"]) == money("0")


@pytest.mark.integration
class TestAdminQueries:
    async def test_list_filters_by_provider(
        self, client: AsyncClient, pending_payout: dict, admin_headers: dict
    ) -> None:
        await post_events(client, [EventFactory.create_booking_event("prov_second")])
        await request_payout(
            client, "prov_second", PayoutFactory.create_bank_payout_data("100.00")
        )

        everything = await client.get("/v1/admin/finance/payouts", headers=admin_headers)
        scoped = await client.get(
            "/v1/admin/finance/payouts",
            params={"provider_id": "prov_second"},
            headers=admin_headers,
        )

        assert everything.json()["total_elements"] == 2
        assert scoped.json()["total_elements"] == 1
        assert scoped.json()["content"][0]["provider_id"] == "prov_second"

    async def test_page_size_bounds(
        self, client: AsyncClient, admin_headers: dict
    ) -> None:
        for params in ({"size": 0}, {"size": 101}, {"page": -1}):
            response = await client.get(
                "/v1/admin/finance/payouts", params=params, headers=admin_headers
            )
            assert response.status_code == 422, params

    async def test_admin_can_read_any_payout(
        self, client: AsyncClient, pending_payout: dict, admin_headers: dict
    ) -> None:
        response = await client.get(
            f"/v1/admin/finance/payouts/{pending_payout['id']}", headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["amount"] == "500.00"

    async def test_statistics(
        self,
        client: AsyncClient,
        pending_payout: dict,
        admin_headers: dict,
        sample_provider_id: str,
    ) -> None:
        second = await request_payout(
            client,
            sample_provider_id,
            PayoutFactory.create_mobile_money_payout_data("100.00"),
        )
        await admin_action(client, second["id"], "reject", {"reason": "Wrong number"})

        response = await client.get(
            "/v1/admin/finance/payouts/statistics", headers=admin_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total_payouts"] == 2
        assert money(data["total_amount"]) == money("600.00")
        assert money(data["average_amount"]) == money("300.00")
        assert data["payouts_by_status"]["PENDING"] == 1
        assert data["payouts_by_status"]["REJECTED"] == 1
        assert data["payouts_by_status"]["COMPLETED"] == 0
        assert data["payouts_by_method"] == {"BANK_TRANSFER": 1, "MOBILE_MONEY": 1}
        assert money(data["amount_by_method"]["MOBILE_MONEY"]) == money("100.00")

    async def test_statistics_empty(
        self, client: AsyncClient, admin_headers: dict
    ) -> None:
        response = await client.get(
            "/v1/admin/finance/payouts/statistics", headers=admin_headers
        )

        data = response.json()
        assert data["total_payouts"] == 0
        assert money(data["average_amount"]) == money("0")

    async def test_ledger_summary(
        self, client: AsyncClient, pending_payout: dict, admin_headers: dict
    ) -> None:
        response = await client.get(
            "/v1/admin/finance/ledger/summary",
            params={"period": "7d"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["period"] == "7d"
        assert data["currency"] == "USD"
        assert money(data["total_revenue"]) == money("1300.00")
        assert money(data["total_commissions"]) == money("100.00")
        assert money(data["pending_payouts"]) == money("500.00")
        assert money(data["available_balance"]) == money("700.00")
        assert data["statistics"]["total_payouts"] == 1

    async def test_ledger_summary_rejects_unknown_period(
        self, client: AsyncClient, admin_headers: dict
    ) -> None:
        response = await client.get(
            "/v1/admin/finance/ledger/summary",
            params={"period": "1y"},
            headers=admin_headers,
        )

        assert response.status_code == 422

    @pytest.mark.parametrize(
        "path",
        ["/v1/admin/finance/ledger/summary", "/v1/admin/finance/payouts/statistics"],
    )
    @pytest.mark.parametrize("currency", ["usd", "US", "USDX"])
    async def test_malformed_currency_rejected(
        self, client: AsyncClient, admin_headers: dict, path: str, currency: str
    ) -> None:
        response = await client.get(
            path, params={"currency": currency}, headers=admin_headers
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_payouts_needing_attention(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        pending_payout: dict,
        admin_headers: dict,
        sample_provider_id: str,
    ) -> None:
        fresh = await request_payout(
            client, sample_provider_id, PayoutFactory.create_bank_payout_data("10.00")
        )
        stuck = await request_payout(
            client, sample_provider_id, PayoutFactory.create_bank_payout_data("20.00")
        )
        await _processing(client, stuck["id"])

        now = utc_now()
        await db_session.execute(
            update(Payout)
            .where(Payout.id == pending_payout["id"])
            .values(requested_at=now - timedelta(hours=30))
        )
        await db_session.execute(
            update(Payout)
            .where(Payout.id == stuck["id"])
            .values(processed_at=now - timedelta(hours=3))
        )
        await db_session.commit()

        response = await client.get(
            "/v1/admin/finance/payouts/attention", headers=admin_headers
        )

        assert response.status_code == 200
        ids = [item["id"] for item in response.json()]
        assert pending_payout["id"] in ids
        assert stuck["id"] in ids
        assert fresh["id"] not in ids

    async def test_export_csv(
        self, client: AsyncClient, pending_payout: dict, admin_headers: dict
    ) -> None:
        response = await client.get(
            "/v1/admin/finance/payouts/export", headers=admin_headers
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment; filename=payouts-" in response.headers["content-disposition"]

        rows = list(csv.reader(io.StringIO(response.text)))
        assert rows[0] == EXPORT_HEADERS
        assert len(rows) == 2
        row = dict(zip(EXPORT_HEADERS, rows[1]))
        assert row["payout_id"] == str(pending_payout["id"])
        assert row["amount"] == "500.00"
        assert row["status"] == "PENDING"
        assert row["destination"] == "Test Bank ********6789"

    async def test_export_respects_filters(
        self, client: AsyncClient, pending_payout: dict, admin_headers: dict
    ) -> None:
        response = await client.get(
            "/v1/admin/finance/payouts/export",
            params={"status": "COMPLETED"},
            headers=admin_headers,
        )

        rows = list(csv.reader(io.StringIO(response.text)))
        assert rows == [EXPORT_HEADERS]


@pytest.mark.integration
class TestReconciliation:
    async def test_balanced_ledger(
        self,
        client: AsyncClient,
        pending_payout: dict,
        admin_headers: dict,
        sample_provider_id: str,
    ) -> None:
        response = await client.post(
            "/v1/admin/finance/ledger/reconcile",
            params={"provider_id": sample_provider_id},
            headers=admin_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["balanced"] is True
        assert data["repaired"] is False
        assert data["matches_events"] is True
        assert money(data["recomputed"]["available_balance"]) == money("700.00")
        assert all(money(value) == 0 for value in data["drift"].values())

    async def test_drift_detected_and_repaired(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        pending_payout: dict,
        admin_headers: dict,
        sample_provider_id: str,
    ) -> None:
        await db_session.execute(
            update(ProviderAccount)
            .where(ProviderAccount.provider_id == sample_provider_id)
            .values(pending_payouts_minor=0)
        )
        await db_session.commit()

        detected = await client.post(
            "/v1/admin/finance/ledger/reconcile",
            params={"provider_id": sample_provider_id},
            headers=admin_headers,
        )
        assert detected.json()["balanced"] is False
        assert money(detected.json()["drift"]["pending_payouts"]) == money("-500.00")

        repaired = await client.post(
            "/v1/admin/finance/ledger/reconcile",
            params={"provider_id": sample_provider_id, "repair": "true"},
            headers=admin_headers,
        )
        assert repaired.json()["repaired"] is True

        earnings = await get_earnings(client, sample_provider_id)
        assert money(earnings["pending_payouts"]) == money("500.00")
        assert money(earnings["available_balance"]) == money("700.00")

    async def test_journal_checked_against_events(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        pending_payout: dict,
        admin_headers: dict,
        sample_provider_id: str,
    ) -> None:
        await db_session.execute(
            update(EarningEvent)
            .where(EarningEvent.provider_id == sample_provider_id)
            .values(fee_minor=0)
        )
        await db_session.commit()

        response = await client.post(
            "/v1/admin/finance/ledger/reconcile",
            params={"provider_id": sample_provider_id},
            headers=admin_headers,
        )

        data = response.json()
        assert data["matches_events"] is False
        assert data["balanced"] is False
        assert all(money(value) == 0 for value in data["drift"].values())

    async def test_unknown_account(
        self, client: AsyncClient, admin_headers: dict
    ) -> None:
        response = await client.post(
            "/v1/admin/finance/ledger/reconcile",
            params={"provider_id": "prov_ghost", "currency": "USD"},
            headers=admin_headers,
        )

        assert response.status_code == 404


@pytest.mark.integration
class TestOperationalEndpoints:
    async def test_health(self, client: AsyncClient) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    async def test_metrics_exposed(
        self, client: AsyncClient, pending_payout: dict
    ) -> None:
        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "payout_ledger_payouts_requested_total" in response.text
        assert "payout_ledger_pending_payouts_minor" in response.text
