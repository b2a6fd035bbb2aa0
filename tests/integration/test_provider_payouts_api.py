import pytest
from httpx import AsyncClient

from payout_ledger.core.enums import Role
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
async def funded_provider(client: AsyncClient, sample_provider_id: str) -> str:
    """Provider with 1200.00 USD available."""
    await post_events(
        client,
        [
            EventFactory.create_booking_event(
                sample_provider_id, amount="1300.00", fee="100.00"
            )
        ],
    )
    return sample_provider_id


@pytest.mark.integration
class TestRequestPayout:
    async def test_request_reserves_balance(
        self, client: AsyncClient, funded_provider: str
    ) -> None:
        payout = await request_payout(
            client, funded_provider, PayoutFactory.create_bank_payout_data("500.00")
        )

        assert payout["status"] == "PENDING"
        assert payout["provider_id"] == funded_provider
        assert payout["amount"] == "500.00"
        assert payout["currency"] == "USD"
        assert payout["method"] == "BANK_TRANSFER"
        assert payout["method_details"]["bank_name"] == "Test Bank"
        assert payout["requested_at"]

        earnings = await get_earnings(client, funded_provider)
        assert money(earnings["available_balance"]) == money("700.00")
        assert money(earnings["pending_payouts"]) == money("500.00")

    async def test_currency_defaults_to_earnings_currency(
        self, client: AsyncClient, funded_provider: str
    ) -> None:
        payout = await request_payout(
            client,
            funded_provider,
            PayoutFactory.create_mobile_money_payout_data("200.00", currency=None),
        )

        assert payout["currency"] == "USD"
        assert payout["method"] == "MOBILE_MONEY"

    async def test_amount_exceeding_balance_rejected(
        self, client: AsyncClient, funded_provider: str
    ) -> None:
        response = await client.post(
            "/v1/provider/payouts",
            json=PayoutFactory.create_bank_payout_data("1200.01"),
            headers=headers_for(funded_provider),
        )

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "PAYOUT_INSUFFICIENT_BALANCE"
        assert error["details"]["available"] == "1200.00"

        earnings = await get_earnings(client, funded_provider)
        assert money(earnings["available_balance"]) == money("1200.00")
        assert money(earnings["pending_payouts"]) == money("0")

        listing = await client.get(
            "/v1/provider/payouts", headers=headers_for(funded_provider)
        )
        assert listing.json()["total_elements"] == 0

    async def test_amount_beyond_storage_range_rejected(
        self, client: AsyncClient, funded_provider: str
    ) -> None:
        response = await client.post(
            "/v1/provider/payouts",
            json=PayoutFactory.create_bank_payout_data("100000000000000000000.00"),
            headers=headers_for(funded_provider),
        )

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"]["field"] == "amount"

        earnings = await get_earnings(client, funded_provider)
        assert money(earnings["available_balance"]) == money("1200.00")
        assert money(earnings["pending_payouts"]) == money("0")

    async def test_earnings_reject_malformed_currency(
        self, client: AsyncClient, funded_provider: str
    ) -> None:
        response = await client.get(
            "/v1/provider/earnings",
            params={"currency": "usd"},
            headers=headers_for(funded_provider),
        )

        assert response.status_code == 422

    async def test_full_balance_can_be_requested(
        self, client: AsyncClient, funded_provider: str
    ) -> None:
        await request_payout(
            client, funded_provider, PayoutFactory.create_bank_payout_data("1200.00")
        )

        earnings = await get_earnings(client, funded_provider)
        assert money(earnings["available_balance"]) == money("0")

    async def test_provider_without_earnings_rejected(
        self, client: AsyncClient
    ) -> None:
        response = await client.post(
            "/v1/provider/payouts",
            json=PayoutFactory.create_bank_payout_data("10.00"),
            headers=headers_for("prov_no_earnings"),
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "PAYOUT_INSUFFICIENT_BALANCE"

    @pytest.mark.parametrize("amount", ["0", "-1.00", "10.005"])
    async def test_invalid_amount_rejected(
        self, client: AsyncClient, funded_provider: str, amount: str
    ) -> None:
        response = await client.post(
            "/v1/provider/payouts",
            json=PayoutFactory.create_bank_payout_data(amount),
            headers=headers_for(funded_provider),
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_incomplete_bank_details_rejected(
        self, client: AsyncClient, funded_provider: str
    ) -> None:
        payload = PayoutFactory.create_bank_payout_data(account_number="")

        response = await client.post(
            "/v1/provider/payouts", json=payload, headers=headers_for(funded_provider)
        )

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "PAYOUT_METHOD_DETAILS_INCOMPLETE"
        assert error["details"]["missing_fields"] == ["account_number"]

    async def test_missing_details_for_method_rejected(
        self, client: AsyncClient, funded_provider: str
    ) -> None:
        response = await client.post(
            "/v1/provider/payouts",
            json={"amount": "100.00", "method": "MOBILE_MONEY"},
            headers=headers_for(funded_provider),
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "PAYOUT_METHOD_DETAILS_INCOMPLETE"

    async def test_unknown_method_rejected(
        self, client: AsyncClient, funded_provider: str
    ) -> None:
        payload = {**PayoutFactory.create_bank_payout_data(), "method": "CHEQUE"}

        response = await client.post(
            "/v1/provider/payouts", json=payload, headers=headers_for(funded_provider)
        )

        assert response.status_code == 422

    async def test_admin_cannot_request_payout(
        self, client: AsyncClient, admin_headers: dict
    ) -> None:
        response = await client.post(
            "/v1/provider/payouts",
            json=PayoutFactory.create_bank_payout_data(),
            headers=admin_headers,
        )

        assert response.status_code == 403


@pytest.mark.integration
class TestCancelPayout:
    async def test_cancel_pending_releases_reservation(
        self, client: AsyncClient, funded_provider: str
    ) -> None:
        payout = await request_payout(
            client, funded_provider, PayoutFactory.create_bank_payout_data("500.00")
        )

        response = await client.put(
            f"/v1/provider/payouts/{payout['id']}/cancel",
            headers=headers_for(funded_provider),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "CANCELLED"
        assert data["cancelled_at"] is not None

        earnings = await get_earnings(client, funded_provider)
        assert money(earnings["available_balance"]) == money("1200.00")
        assert money(earnings["pending_payouts"]) == money("0")

    async def test_cancel_twice_fails_without_double_release(
        self, client: AsyncClient, funded_provider: str
    ) -> None:
        payout = await request_payout(
            client, funded_provider, PayoutFactory.create_bank_payout_data("500.00")
        )
        url = f"/v1/provider/payouts/{payout['id']}/cancel"

        await client.put(url, headers=headers_for(funded_provider))
        second = await client.put(url, headers=headers_for(funded_provider))

        assert second.status_code == 409
        assert second.json()["error"]["message"] == "This payout can no longer be cancelled"
        earnings = await get_earnings(client, funded_provider)
        assert money(earnings["available_balance"]) == money("1200.00")

    async def test_cancel_approved_payout_fails(
        self, client: AsyncClient, funded_provider: str
    ) -> None:
        payout = await request_payout(
            client, funded_provider, PayoutFactory.create_bank_payout_data("500.00")
        )
        await admin_action(client, payout["id"], "approve")

        response = await client.put(
            f"/v1/provider/payouts/{payout['id']}/cancel",
            headers=headers_for(funded_provider),
        )

        assert response.status_code == 409
        assert response.json()["error"]["details"]["current_status"] == "APPROVED"
        earnings = await get_earnings(client, funded_provider)
        assert money(earnings["available_balance"]) == money("700.00")
        assert money(earnings["pending_payouts"]) == money("500.00")

    async def test_cancel_other_providers_payout_forbidden(
        self, client: AsyncClient, funded_provider: str
    ) -> None:
        payout = await request_payout(
            client, funded_provider, PayoutFactory.create_bank_payout_data("500.00")
        )

        foreign = await client.put(
            f"/v1/provider/payouts/{payout['id']}/cancel",
            headers=headers_for("prov_intruder"),
        )
        missing = await client.put(
            "/v1/provider/payouts/999999/cancel",
            headers=headers_for("prov_intruder"),
        )

        assert foreign.status_code == 403
        assert missing.status_code == 403
        assert foreign.json()["error"]["message"] == missing.json()["error"]["message"]

    async def test_admin_cannot_use_provider_cancel(
        self, client: AsyncClient, funded_provider: str
    ) -> None:
        payout = await request_payout(
            client, funded_provider, PayoutFactory.create_bank_payout_data("500.00")
        )

        response = await client.put(
            f"/v1/provider/payouts/{payout['id']}/cancel",
            headers=headers_for("admin_test_001", Role.ADMIN),
        )

        assert response.status_code == 403


@pytest.mark.integration
class TestProviderQueries:
    async def test_get_own_payout(
        self, client: AsyncClient, funded_provider: str
    ) -> None:
        payout = await request_payout(
            client, funded_provider, PayoutFactory.create_bank_payout_data("100.00")
        )

        response = await client.get(
            f"/v1/provider/payouts/{payout['id']}", headers=headers_for(funded_provider)
        )

        assert response.status_code == 200
        assert response.json()["id"] == payout["id"]

    async def test_other_providers_payout_is_not_found(
        self, client: AsyncClient, funded_provider: str
    ) -> None:
        payout = await request_payout(
            client, funded_provider, PayoutFactory.create_bank_payout_data("100.00")
        )

        response = await client.get(
            f"/v1/provider/payouts/{payout['id']}", headers=headers_for("prov_other")
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "PAYOUT_NOT_FOUND"

    async def test_list_only_returns_own_payouts(
        self, client: AsyncClient, funded_provider: str
    ) -> None:
        other = "prov_other"
        await post_events(client, [EventFactory.create_booking_event(other)])
        await request_payout(client, other, PayoutFactory.create_bank_payout_data("50.00"))
        for amount in ("10.00", "20.00", "30.00"):
            await request_payout(
                client, funded_provider, PayoutFactory.create_bank_payout_data(amount)
            )

        response = await client.get(
            "/v1/provider/payouts", headers=headers_for(funded_provider)
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total_elements"] == 3
        assert data["total_pages"] == 1
        assert {item["provider_id"] for item in data["content"]} == {funded_provider}
        # newest first
        assert [item["amount"] for item in data["content"]] == [
            "30.00",
            "20.00",
            "10.00",
        ]

    async def test_filter_by_status_and_method(
        self, client: AsyncClient, funded_provider: str
    ) -> None:
        bank = await request_payout(
            client, funded_provider, PayoutFactory.create_bank_payout_data("10.00")
        )
        await request_payout(
            client,
            funded_provider,
            PayoutFactory.create_mobile_money_payout_data("20.00"),
        )
        await client.put(
            f"/v1/provider/payouts/{bank['id']}/cancel",
            headers=headers_for(funded_provider),
        )

        cancelled = await client.get(
            "/v1/provider/payouts",
            params={"status": "CANCELLED"},
            headers=headers_for(funded_provider),
        )
        mobile = await client.get(
            "/v1/provider/payouts",
            params={"method": "MOBILE_MONEY", "status": ""},
            headers=headers_for(funded_provider),
        )

        assert [item["id"] for item in cancelled.json()["content"]] == [bank["id"]]
        assert mobile.json()["total_elements"] == 1
        assert mobile.json()["content"][0]["method"] == "MOBILE_MONEY"

    async def test_unknown_status_filter_rejected(
        self, client: AsyncClient, funded_provider: str
    ) -> None:
        response = await client.get(
            "/v1/provider/payouts",
            params={"status": "ON_HOLD"},
            headers=headers_for(funded_provider),
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_inverted_date_range_rejected(
        self, client: AsyncClient, funded_provider: str
    ) -> None:
        response = await client.get(
            "/v1/provider/payouts",
            params={"start_date": "2026-02-01", "end_date": "2026-01-01"},
            headers=headers_for(funded_provider),
        )

        assert response.status_code == 422

    async def test_earnings_show_last_payout_date(
        self, client: AsyncClient, funded_provider: str
    ) -> None:
        payout = await request_payout(
            client, funded_provider, PayoutFactory.create_bank_payout_data("100.00")
        )
        await admin_action(client, payout["id"], "approve")
        await admin_action(client, payout["id"], "process")
        paid = await admin_action(
            client, payout["id"], "paid", {"reference_number": "PAID-1"}
        )

        earnings = await get_earnings(client, funded_provider)

        assert earnings["last_payout_date"] == paid.json()["paid_at"]
        assert money(earnings["total_payouts"]) == money("100.00")
