import json
from decimal import Decimal
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from payout_ledger.main import app
from scripts.load_events import EventLoader
from tests.utils import EventFactory, get_earnings, money


def _write_jsonl(path: Path, rows: list) -> Path:
    lines = [row if isinstance(row, str) else json.dumps(row) for row in rows]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def loader() -> EventLoader:
    return EventLoader("http://test", transport=ASGITransport(app=app))


@pytest.mark.integration
class TestEventLoader:
    async def test_replays_file_and_reports_per_account(
        self, client: AsyncClient, loader: EventLoader, tmp_path: Path
    ) -> None:
        paid = EventFactory.create_booking_event(
            "prov_loader_a", event_id="evt_load_1", amount="1000.00", fee="100.00"
        )
        conflicting = {**paid, "amount": "999.00"}
        rows = [
            paid,
            EventFactory.create_refund_event(
                "prov_loader_a", event_id="evt_load_2", amount="50.00"
            ),
            EventFactory.create_booking_event(
                "prov_loader_b", event_id="evt_load_3", amount="300.00", fee="0.00"
            ),
            paid,
            conflicting,
            "{not json",
            {**paid, "event_id": "evt_load_4", "amount": "-5.00"},
        ]
        events, rejected = loader.read_events(
            _write_jsonl(tmp_path / "events.jsonl", rows)
        )

        assert len(events) == 5
        assert [row["line"] for row in rejected] == [6, 7]
        assert "amount" in rejected[1]["error"]

        stats = await loader.send_events(events)

        assert stats["credited"] == 3
        assert stats["replayed"] == 1
        assert stats["conflicting"] == ["evt_load_1"]
        assert stats["failed"] == []
        assert stats["net_by_account"] == {
            ("prov_loader_a", "USD"): Decimal("850.00"),
            ("prov_loader_b", "USD"): Decimal("300.00"),
        }

        earnings = await get_earnings(client, "prov_loader_a")
        assert money(earnings["available_balance"]) == money("850.00")

        balanced = await loader.reconcile(list(stats["net_by_account"]))
        assert balanced == {
            ("prov_loader_a", "USD"): True,
            ("prov_loader_b", "USD"): True,
        }

    def test_missing_file_raises(self, loader: EventLoader, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            loader.read_events(tmp_path / "absent.jsonl")
