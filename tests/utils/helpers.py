from decimal import Decimal

from httpx import AsyncClient

from payout_ledger.core.enums import Role
from payout_ledger.core.security import create_access_token

ADMIN_ID = "admin_test_001"


def headers_for(actor_id: str, role: Role = Role.PROVIDER) -> dict:
    return {"Authorization": f"Bearer {create_access_token(actor_id, role)}"}


def admin_headers() -> dict:
    return headers_for(ADMIN_ID, Role.ADMIN)


async def post_events(client: AsyncClient, events: list[dict]) -> list[dict]:
    """Post booking events through the ledger API and return their bodies."""
    responses = []
    for event in events:
        response = await client.post(
            "/v1/ledger/events", json=event, headers=admin_headers()
        )
        assert response.status_code in (200, 201), response.text
        responses.append(response.json())
    return responses


async def request_payout(
    client: AsyncClient, provider_id: str, payload: dict
) -> dict:
    response = await client.post(
        "/v1/provider/payouts", json=payload, headers=headers_for(provider_id)
    )
    assert response.status_code == 201, response.text
    return response.json()


async def admin_action(
    client: AsyncClient, payout_id: int, action: str, body: dict | None = None
):
    return await client.put(
        f"/v1/admin/finance/payouts/{payout_id}/{action}",
        json=body,
        headers=admin_headers(),
    )


async def get_earnings(client: AsyncClient, provider_id: str) -> dict:
    response = await client.get(
        "/v1/provider/earnings", headers=headers_for(provider_id)
    )
    assert response.status_code == 200, response.text
    return response.json()


def money(value) -> Decimal:
    """Parse a serialized amount into a Decimal."""
    return Decimal(str(value))
