"""
Settlement processor integration.

Funds move outside this service. The processor is asked to submit a transfer
when a payout enters PROCESSING and to confirm settlement when it is marked
paid. Both calls carry a per-payout idempotency key so a retried command is
safe; a failure leaves the payout in its previous status.
"""

import logging
from typing import Any, Optional

import httpx

from payout_ledger.core.config import settings
from payout_ledger.db.models import Payout
from payout_ledger.exceptions import SettlementGatewayException

logger = logging.getLogger(__name__)


class SettlementGateway:
    """Transfers are executed by hand; nothing is sent to a processor."""

    name = "manual"

    async def submit_transfer(self, payout: Payout) -> Optional[str]:
        """Submit the transfer and return the processor reference, if any."""
        logger.info(
            "Manual transfer for payout_id=%s",
            payout.id,
            extra={"payout_id": payout.id, "gateway": self.name},
        )
        return None

    async def confirm_settlement(self, payout: Payout, reference_number: str) -> None:
        logger.info(
            "Manual settlement for payout_id=%s reference=%s",
            payout.id,
            reference_number,
            extra={"payout_id": payout.id, "gateway": self.name},
        )


class HttpSettlementGateway(SettlementGateway):
    name = "http"

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self._headers = {"Content-Type": "application/json"}
        if api_key:
            self._headers["Authorization"] = f"Bearer {api_key}"

    async def _post(
        self, path: str, operation: str, payout: Payout, payload: dict[str, Any]
    ) -> Any:
        headers = {
            **self._headers,
            "Idempotency-Key": f"payout-{payout.id}-{operation}",
        }
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.post(path, json=payload, headers=headers)
                response.raise_for_status()
                return response.json() if response.content else None
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Settlement processor rejected %s payout_id=%s status=%s",
                operation,
                payout.id,
                exc.response.status_code,
                extra={"payout_id": payout.id, "status_code": exc.response.status_code},
            )
            raise SettlementGatewayException(
                operation, payout.id, f"HTTP {exc.response.status_code}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.error(
                "Settlement processor unreachable during %s payout_id=%s error=%s",
                operation,
                payout.id,
                exc,
                extra={"payout_id": payout.id},
            )
            raise SettlementGatewayException(
                operation, payout.id, str(exc) or type(exc).__name__
            ) from exc

    async def submit_transfer(self, payout: Payout) -> Optional[str]:
        data = await self._post(
            "/transfers",
            "process",
            payout,
            {
                "payout_id": payout.id,
                "provider_id": payout.provider_id,
                "amount_minor": payout.amount_minor,
                "currency": payout.currency,
                "method": payout.method.value,
                "destination": payout.method_details,
            },
        )
        reference = data.get("reference") if isinstance(data, dict) else None
        logger.info(
            "Transfer submitted payout_id=%s reference=%s",
            payout.id,
            reference,
            extra={"payout_id": payout.id, "reference": reference},
        )
        return reference

    async def confirm_settlement(self, payout: Payout, reference_number: str) -> None:
        await self._post(
            "/settlements",
            "settle",
            payout,
            {"payout_id": payout.id, "reference_number": reference_number},
        )
        logger.info(
            "Settlement confirmed payout_id=%s reference=%s",
            payout.id,
            reference_number,
            extra={"payout_id": payout.id, "reference": reference_number},
        )


def get_settlement_gateway() -> SettlementGateway:
    if settings.settlement_base_url:
        return HttpSettlementGateway(
            base_url=settings.settlement_base_url,
            api_key=settings.settlement_api_key,
            timeout=settings.settlement_timeout_seconds,
        )
    return SettlementGateway()
