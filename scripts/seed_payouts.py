"""Seed a running API with provider earnings and payouts in every status."""

import argparse
import asyncio
import sys
from datetime import datetime, timezone
from uuid import uuid4

import httpx

from payout_ledger.core.enums import Role
from payout_ledger.core.security import create_access_token

PROVIDERS = ["prov_harbor_tours", "prov_city_cleaners", "prov_sunset_spa"]

BANK_DETAILS = {
    "account_number": "000123456789",
    "account_name": "Seed Provider",
    "bank_name": "Seed Bank",
}

# admin actions applied after the request, one list per seeded payout
LIFECYCLES = [
    [],
    ["approve"],
    ["approve", "process"],
    ["approve", "process", "paid"],
    ["approve", "process", "failed"],
    ["reject"],
]

ACTION_BODIES = {
    "approve": {"notes": "Seeded approval"},
    "process": {"reference_number": None},
    "paid": {"reference_number": "SEED-REF"},
    "failed": {"reason": "Seeded bank rejection"},
    "reject": {"reason": "Seeded rejection"},
}


def _auth(actor_id: str, role: Role) -> dict:
    return {"Authorization": f"Bearer {create_access_token(actor_id, role)}"}


async def seed(api_url: str, currency: str) -> int:
    admin = _auth("admin_seed", Role.ADMIN)
    failures = 0

    async with httpx.AsyncClient(base_url=api_url, timeout=30.0) as client:
        for provider_id in PROVIDERS:
            response = await client.post(
                "/v1/ledger/events",
                json={
                    "event_id": f"evt_seed_{uuid4().hex[:12]}",
                    "event_type": "booking_paid",
                    "occurred_at": datetime.now(timezone.utc).isoformat(),
                    "provider_id": provider_id,
                    "currency": currency,
                    "amount": "5000.00",
                    "fee": "500.00",
                },
                headers=admin,
            )
            if response.status_code not in (200, 201):
                print(f"Earnings event failed for {provider_id}: {response.text[:200]}")
                failures += 1
                continue

            provider = _auth(provider_id, Role.PROVIDER)
            for actions in LIFECYCLES:
                response = await client.post(
                    "/v1/provider/payouts",
                    json={
                        "amount": "100.00",
                        "method": "BANK_TRANSFER",
                        "currency": currency,
                        "bank_details": BANK_DETAILS,
                    },
                    headers=provider,
                )
                if response.status_code != 201:
                    print(f"Payout request failed for {provider_id}: {response.text[:200]}")
                    failures += 1
                    continue

                payout_id = response.json()["id"]
                for action in actions:
                    response = await client.put(
                        f"/v1/admin/finance/payouts/{payout_id}/{action}",
                        json=ACTION_BODIES[action],
                        headers=admin,
                    )
                    if response.status_code != 200:
                        print(f"{action} failed for payout {payout_id}: {response.text[:200]}")
                        failures += 1
                        break
                print(f"Payout {payout_id} for {provider_id}: {response.json().get('status')}")

        print("\n--- Ledger summary ---")
        response = await client.get(
            "/v1/admin/finance/ledger/summary",
            params={"period": "all", "currency": currency},
            headers=admin,
        )
        print(response.text)

    return 1 if failures else 0


async def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--url", type=str, default="http://localhost:8000")
    parser.add_argument("--currency", type=str, default="USD")
    args = parser.parse_args()
    try:
        return await seed(args.url, args.currency)
    except httpx.RequestError as e:
        print(f"API unreachable at {args.url}: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
