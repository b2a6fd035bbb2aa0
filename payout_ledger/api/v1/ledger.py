from fastapi import APIRouter, Response, status

from payout_ledger.api.dependencies import AdminDep, SessionDep
from payout_ledger.schemas.events import EarningEventCreate, EarningEventResponse
from payout_ledger.services.event_processor import EventProcessor

router = APIRouter()


@router.post(
    "/events",
    response_model=EarningEventResponse,
)
async def process_event(
    event_data: EarningEventCreate,
    actor: AdminDep,
    session: SessionDep,
    response: Response,
) -> EarningEventResponse:
    processor = EventProcessor(session)
    event, is_new = await processor.process_event(event_data)

    result = EarningEventResponse.model_validate(event)
    result.idempotent = not is_new

    response.status_code = status.HTTP_201_CREATED if is_new else status.HTTP_200_OK

    return result
