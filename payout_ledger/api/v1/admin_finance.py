import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Body, Response

from payout_ledger.api.dependencies import (
    AdminDep,
    AdminFiltersDep,
    CurrencyQuery,
    SessionDep,
    SettlementGatewayDep,
)
from payout_ledger.core.config import settings
from payout_ledger.core.enums import LedgerPeriod
from payout_ledger.schemas.common import Page
from payout_ledger.schemas.ledger import LedgerSummary, PayoutStatistics, ReconciliationReport
from payout_ledger.schemas.payouts import (
    ApprovePayoutRequest,
    MarkFailedRequest,
    MarkPaidRequest,
    PayoutResponse,
    ProcessPayoutRequest,
    RejectPayoutRequest,
)
from payout_ledger.services.command_service import PayoutCommandService
from payout_ledger.services.export_service import PayoutExportService
from payout_ledger.services.ledger_service import LedgerService
from payout_ledger.services.query_service import PayoutQueryService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/ledger/summary", response_model=LedgerSummary)
async def get_ledger_summary(
    actor: AdminDep,
    session: SessionDep,
    period: LedgerPeriod = LedgerPeriod.LAST_30_DAYS,
    currency: CurrencyQuery = None,
) -> LedgerSummary:
    return await PayoutQueryService(session).get_ledger_summary(period, currency)


@router.post("/ledger/reconcile", response_model=ReconciliationReport)
async def reconcile_ledger(
    actor: AdminDep,
    session: SessionDep,
    provider_id: str,
    currency: CurrencyQuery = None,
    repair: bool = False,
) -> ReconciliationReport:
    logger.info(
        "Ledger reconciliation requested provider_id=%s currency=%s repair=%s actor_id=%s",
        provider_id,
        currency,
        repair,
        actor.actor_id,
    )
    async with session.begin():
        ledger_service = LedgerService(session)
        currency = await ledger_service.resolve_currency(provider_id, currency)
        return await ledger_service.reconcile(provider_id, currency, repair=repair)


@router.get("/payouts", response_model=Page[PayoutResponse])
async def list_payouts(
    actor: AdminDep,
    session: SessionDep,
    filters: AdminFiltersDep,
    page: int = 0,
    size: int = settings.default_page_size,
) -> Page[PayoutResponse]:
    return await PayoutQueryService(session).list_admin_payouts(filters, page, size)


@router.get("/payouts/statistics", response_model=PayoutStatistics)
async def get_payout_statistics(
    actor: AdminDep,
    session: SessionDep,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    currency: CurrencyQuery = None,
) -> PayoutStatistics:
    return await PayoutQueryService(session).get_payout_statistics(
        currency=currency, start_date=start_date, end_date=end_date
    )


@router.get("/payouts/attention", response_model=list[PayoutResponse])
async def get_payouts_needing_attention(
    actor: AdminDep, session: SessionDep
) -> list[PayoutResponse]:
    payouts = await PayoutQueryService(session).find_payouts_needing_attention()
    return [PayoutResponse.model_validate(payout) for payout in payouts]


@router.get("/payouts/export")
async def export_payouts(
    actor: AdminDep, session: SessionDep, filters: AdminFiltersDep
) -> Response:
    artifact = await PayoutExportService(session).export_payouts(filters)
    return Response(
        content=artifact.content,
        media_type=artifact.content_type,
        headers={"Content-Disposition": f"attachment; filename={artifact.filename}"},
    )


@router.get("/payouts/{payout_id}", response_model=PayoutResponse)
async def get_payout(
    payout_id: int, actor: AdminDep, session: SessionDep
) -> PayoutResponse:
    payout = await PayoutQueryService(session).get_payout(actor, payout_id)
    return PayoutResponse.model_validate(payout)


@router.put("/payouts/{payout_id}/approve", response_model=PayoutResponse)
async def approve_payout(
    payout_id: int,
    actor: AdminDep,
    session: SessionDep,
    gateway: SettlementGatewayDep,
    body: Optional[ApprovePayoutRequest] = Body(default=None),
) -> PayoutResponse:
    service = PayoutCommandService(session, gateway)
    payout = await service.approve_payout(
        actor, payout_id, body.notes if body else None
    )
    return PayoutResponse.model_validate(payout)


@router.put("/payouts/{payout_id}/reject", response_model=PayoutResponse)
async def reject_payout(
    payout_id: int,
    actor: AdminDep,
    session: SessionDep,
    gateway: SettlementGatewayDep,
    body: Optional[RejectPayoutRequest] = Body(default=None),
) -> PayoutResponse:
    service = PayoutCommandService(session, gateway)
    payout = await service.reject_payout(
        actor, payout_id, body.reason if body else None
    )
    return PayoutResponse.model_validate(payout)


@router.put("/payouts/{payout_id}/process", response_model=PayoutResponse)
async def process_payout(
    payout_id: int,
    actor: AdminDep,
    session: SessionDep,
    gateway: SettlementGatewayDep,
    body: Optional[ProcessPayoutRequest] = Body(default=None),
) -> PayoutResponse:
    service = PayoutCommandService(session, gateway)
    payout = await service.process_payout(
        actor, payout_id, body.reference_number if body else None
    )
    return PayoutResponse.model_validate(payout)


@router.put("/payouts/{payout_id}/paid", response_model=PayoutResponse)
async def mark_payout_paid(
    payout_id: int,
    actor: AdminDep,
    session: SessionDep,
    gateway: SettlementGatewayDep,
    body: Optional[MarkPaidRequest] = Body(default=None),
) -> PayoutResponse:
    service = PayoutCommandService(session, gateway)
    payout = await service.mark_paid(
        actor, payout_id, body.reference_number if body else None
    )
    return PayoutResponse.model_validate(payout)


@router.put("/payouts/{payout_id}/failed", response_model=PayoutResponse)
async def mark_payout_failed(
    payout_id: int,
    actor: AdminDep,
    session: SessionDep,
    gateway: SettlementGatewayDep,
    body: Optional[MarkFailedRequest] = Body(default=None),
) -> PayoutResponse:
    service = PayoutCommandService(session, gateway)
    payout = await service.mark_failed(
        actor, payout_id, body.reason if body else None
    )
    return PayoutResponse.model_validate(payout)
