from fastapi import APIRouter, status

from payout_ledger.api.dependencies import (
    CurrencyQuery,
    ProviderDep,
    ProviderFiltersDep,
    SessionDep,
    SettlementGatewayDep,
)
from payout_ledger.core.config import settings
from payout_ledger.schemas.common import Page
from payout_ledger.schemas.ledger import EarningsSummary
from payout_ledger.schemas.payouts import PayoutRequestCreate, PayoutResponse
from payout_ledger.services.command_service import PayoutCommandService
from payout_ledger.services.query_service import PayoutQueryService

router = APIRouter()


@router.get("/earnings", response_model=EarningsSummary)
async def get_earnings(
    actor: ProviderDep, session: SessionDep, currency: CurrencyQuery = None
) -> EarningsSummary:
    return await PayoutQueryService(session).get_earnings_summary(actor, currency)


@router.get("/payouts", response_model=Page[PayoutResponse])
async def list_payouts(
    actor: ProviderDep,
    session: SessionDep,
    filters: ProviderFiltersDep,
    page: int = 0,
    size: int = settings.default_page_size,
) -> Page[PayoutResponse]:
    return await PayoutQueryService(session).list_provider_payouts(
        actor, filters, page, size
    )


@router.get("/payouts/{payout_id}", response_model=PayoutResponse)
async def get_payout(
    payout_id: int, actor: ProviderDep, session: SessionDep
) -> PayoutResponse:
    payout = await PayoutQueryService(session).get_payout(actor, payout_id)
    return PayoutResponse.model_validate(payout)


@router.post(
    "/payouts", response_model=PayoutResponse, status_code=status.HTTP_201_CREATED
)
async def request_payout(
    payout_data: PayoutRequestCreate,
    actor: ProviderDep,
    session: SessionDep,
    gateway: SettlementGatewayDep,
) -> PayoutResponse:
    service = PayoutCommandService(session, gateway)
    payout = await service.request_payout(actor, payout_data)
    return PayoutResponse.model_validate(payout)


@router.put("/payouts/{payout_id}/cancel", response_model=PayoutResponse)
async def cancel_payout(
    payout_id: int,
    actor: ProviderDep,
    session: SessionDep,
    gateway: SettlementGatewayDep,
) -> PayoutResponse:
    service = PayoutCommandService(session, gateway)
    payout = await service.cancel_payout(actor, payout_id)
    return PayoutResponse.model_validate(payout)
