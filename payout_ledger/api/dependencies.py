from typing import Annotated, Optional

from fastapi import Depends, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from payout_ledger.core.enums import Role
from payout_ledger.core.security import Actor, decode_access_token
from payout_ledger.db.session import get_session
from payout_ledger.exceptions import (
    AuthenticationException,
    AuthorizationException,
    ValidationException,
)
from payout_ledger.schemas.payouts import AdminPayoutFilters, ProviderPayoutFilters
from payout_ledger.services.settlement_gateway import (
    SettlementGateway,
    get_settlement_gateway,
)

SessionDep = Annotated[AsyncSession, Depends(get_session)]

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_actor(
    credentials: Annotated[
        Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)
    ],
) -> Actor:
    if credentials is None:
        raise AuthenticationException(message="Not authenticated")
    return decode_access_token(credentials.credentials)


CurrentActorDep = Annotated[Actor, Depends(get_current_actor)]


async def require_provider(actor: CurrentActorDep) -> Actor:
    if actor.role != Role.PROVIDER:
        raise AuthorizationException()
    return actor


async def require_admin(actor: CurrentActorDep) -> Actor:
    if actor.role != Role.ADMIN:
        raise AuthorizationException()
    return actor


ProviderDep = Annotated[Actor, Depends(require_provider)]
AdminDep = Annotated[Actor, Depends(require_admin)]

SettlementGatewayDep = Annotated[SettlementGateway, Depends(get_settlement_gateway)]

CurrencyQuery = Annotated[Optional[str], Query(pattern=r"^[A-Z]{3}$")]


def _filters_error(exc: ValidationError) -> ValidationException:
    return ValidationException(
        message="Invalid filter value",
        details={
            "errors": [
                {
                    "field": ".".join(str(part) for part in error["loc"]),
                    "msg": error["msg"],
                }
                for error in exc.errors()
            ]
        },
    )


async def provider_payout_filters(
    status: Optional[str] = None,
    method: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> ProviderPayoutFilters:
    try:
        return ProviderPayoutFilters(
            status=status, method=method, start_date=start_date, end_date=end_date
        )
    except ValidationError as exc:
        raise _filters_error(exc) from exc


async def admin_payout_filters(
    status: Optional[str] = None,
    method: Optional[str] = None,
    provider_id: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> AdminPayoutFilters:
    try:
        return AdminPayoutFilters(
            status=status,
            method=method,
            provider_id=provider_id,
            start_date=start_date,
            end_date=end_date,
        )
    except ValidationError as exc:
        raise _filters_error(exc) from exc


ProviderFiltersDep = Annotated[ProviderPayoutFilters, Depends(provider_payout_filters)]
AdminFiltersDep = Annotated[AdminPayoutFilters, Depends(admin_payout_filters)]
