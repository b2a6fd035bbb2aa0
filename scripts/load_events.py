"""Replay booking events from a JSONL file into the ledger API.

Rows are checked against the event schema before sending, so a malformed
export is reported by line number instead of as a string of 422s. Replayed
event ids are expected (the API is idempotent) and are counted separately
from ids that were reused with different figures.
"""

import argparse
import asyncio
import json
import sys
from collections import defaultdict
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from payout_ledger.core.enums import EventType, Role
from payout_ledger.core.security import create_access_token
from payout_ledger.schemas.events import EarningEventCreate


def net_effect(event: EarningEventCreate) -> Decimal:
    """Change to the provider's available balance once the event is applied."""
    if event.event_type == EventType.BOOKING_PAID:
        return event.amount - event.fee
    return -event.amount


class EventLoader:
    def __init__(
        self,
        api_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.headers = {
            "Authorization": f"Bearer {create_access_token('event-loader', Role.ADMIN)}"
        }

    def read_events(
        self, file_path: Path
    ) -> tuple[list[EarningEventCreate], list[dict[str, Any]]]:
        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        events: list[EarningEventCreate] = []
        rejected: list[dict[str, Any]] = []
        with open(file_path, "r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    events.append(EarningEventCreate.model_validate(json.loads(line)))
                except json.JSONDecodeError as e:
                    rejected.append({"line": line_num, "error": f"invalid JSON: {e.msg}"})
                except ValidationError as e:
                    fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
                    rejected.append(
                        {"line": line_num, "error": f"invalid fields: {', '.join(fields)}"}
                    )
        return events, rejected

    async def send_events(self, events: list[EarningEventCreate]) -> dict[str, Any]:
        stats: dict[str, Any] = {
            "total": len(events),
            "credited": 0,
            "replayed": 0,
            "conflicting": [],
            "failed": [],
            "net_by_account": defaultdict(Decimal),
        }

        async with httpx.AsyncClient(
            base_url=self.api_url, timeout=self.timeout, transport=self.transport
        ) as client:
            for event in events:
                payload = event.model_dump(mode="json", exclude_none=True)
                try:
                    response = await client.post(
                        "/v1/ledger/events", json=payload, headers=self.headers
                    )
                except httpx.RequestError as e:
                    stats["failed"].append({"event_id": event.event_id, "error": str(e)})
                    continue

                if response.status_code == 201:
                    stats["credited"] += 1
                    account = (event.provider_id, event.currency)
                    stats["net_by_account"][account] += net_effect(event)
                elif response.status_code == 200:
                    stats["replayed"] += 1
                elif response.status_code == 409:
                    stats["conflicting"].append(event.event_id)
                else:
                    stats["failed"].append(
                        {
                            "event_id": event.event_id,
                            "status": response.status_code,
                            "error": response.text[:100],
                        }
                    )
        return stats

    async def reconcile(self, accounts: list[tuple[str, str]]) -> dict[tuple[str, str], bool]:
        """Ask the ledger to check each touched account against its journal."""
        results = {}
        async with httpx.AsyncClient(
            base_url=self.api_url, timeout=self.timeout, transport=self.transport
        ) as client:
            for provider_id, currency in accounts:
                response = await client.post(
                    "/v1/admin/finance/ledger/reconcile",
                    params={"provider_id": provider_id, "currency": currency},
                    headers=self.headers,
                )
                response.raise_for_status()
                results[(provider_id, currency)] = response.json()["balanced"]
        return results


def print_report(
    stats: dict[str, Any],
    rejected: list[dict[str, Any]],
    balanced: Optional[dict[tuple[str, str], bool]] = None,
) -> None:
    print("=" * 60)
    print(f"Events sent:      {stats['total']}")
    print(f"Credited:         {stats['credited']}")
    print(f"Replayed:         {stats['replayed']}")
    print(f"Conflicting ids:  {len(stats['conflicting'])}")
    print(f"Failed:           {len(stats['failed'])}")
    print(f"Rejected rows:    {len(rejected)}")

    for row in rejected:
        print(f"  line {row['line']}: {row['error']}")
    for event_id in stats["conflicting"]:
        print(f"  {event_id}: already recorded with different figures")
    for failure in stats["failed"]:
        print(f"  {failure['event_id']}: {failure.get('status', '-')} {failure['error']}")

    if stats["net_by_account"]:
        print("\nNet change to available balance")
        for (provider_id, currency), net in sorted(stats["net_by_account"].items()):
            status = ""
            if balanced is not None:
                status = "  balanced" if balanced[(provider_id, currency)] else "  DRIFT"
            print(f"  {provider_id:<30} {net:>14} {currency}{status}")


async def main() -> int:
    parser = argparse.ArgumentParser(description="Replay booking events into the ledger")
    parser.add_argument("--file", type=str, required=True, help="JSONL file of events")
    parser.add_argument("--url", type=str, default="http://localhost:8000")
    parser.add_argument("--timeout", type=float, default=30.0)
    parser.add_argument(
        "--reconcile",
        action="store_true",
        help="reconcile every account the file credited or debited",
    )
    args = parser.parse_args()

    loader = EventLoader(api_url=args.url, timeout=args.timeout)
    try:
        events, rejected = loader.read_events(Path(args.file))
    except FileNotFoundError as e:
        print(f"Error: {e}")
        return 1

    stats = await loader.send_events(events)
    balanced = None
    if args.reconcile:
        balanced = await loader.reconcile(list(stats["net_by_account"]))

    print_report(stats, rejected, balanced)
    drifted = balanced is not None and not all(balanced.values())
    return 1 if stats["failed"] or stats["conflicting"] or rejected or drifted else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
