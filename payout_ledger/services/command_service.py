import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from payout_ledger.core.enums import Role
from payout_ledger.core.security import Actor
from payout_ledger.db.models import Payout
from payout_ledger.exceptions import AuthorizationException, PayoutNotFoundException
from payout_ledger.schemas.payouts import PayoutRequestCreate
from payout_ledger.services.payout_engine import PayoutEngine
from payout_ledger.services.settlement_gateway import SettlementGateway

logger = logging.getLogger(__name__)


class PayoutCommandService:
    """Role-gated payout commands.

    Each command runs in its own transaction on the given session, so the
    status change and the ledger adjustment commit together or not at all.
    """

    def __init__(
        self, session: AsyncSession, gateway: Optional[SettlementGateway] = None
    ) -> None:
        self.session = session
        self.engine = PayoutEngine(session, gateway)

    def _require(self, actor: Actor, role: Role) -> None:
        if actor.role != role:
            logger.warning(
                "Rejected command actor_id=%s role=%s required=%s",
                actor.actor_id,
                actor.role.value,
                role.value,
                extra={"actor_id": actor.actor_id, "role": actor.role.value},
            )
            raise AuthorizationException()

    async def _load(self, payout_id: int) -> Payout:
        payout = await self.engine.payout_repo.get_by_id(payout_id)
        if payout is None:
            raise PayoutNotFoundException(payout_id)
        return payout

    async def request_payout(self, actor: Actor, data: PayoutRequestCreate) -> Payout:
        self._require(actor, Role.PROVIDER)
        async with self.session.begin():
            currency = await self.engine.ledger_service.resolve_currency(
                actor.actor_id, data.currency
            )
            return await self.engine.request(
                provider_id=actor.actor_id,
                amount=data.amount,
                currency=currency,
                method=data.method,
                bank_details=data.bank_details,
                mobile_money_details=data.mobile_money_details,
            )

    async def cancel_payout(self, actor: Actor, payout_id: int) -> Payout:
        self._require(actor, Role.PROVIDER)
        async with self.session.begin():
            payout = await self.engine.payout_repo.get_by_id(payout_id)
            # Missing and foreign payouts are indistinguishable to providers.
            if payout is None or payout.provider_id != actor.actor_id:
                raise AuthorizationException()
            return await self.engine.cancel(payout, actor.actor_id)

    async def approve_payout(
        self, actor: Actor, payout_id: int, notes: Optional[str] = None
    ) -> Payout:
        self._require(actor, Role.ADMIN)
        async with self.session.begin():
            payout = await self._load(payout_id)
            return await self.engine.approve(payout, actor.actor_id, notes)

    async def reject_payout(
        self, actor: Actor, payout_id: int, reason: Optional[str]
    ) -> Payout:
        self._require(actor, Role.ADMIN)
        async with self.session.begin():
            payout = await self._load(payout_id)
            return await self.engine.reject(payout, actor.actor_id, reason)

    async def process_payout(
        self, actor: Actor, payout_id: int, reference_number: Optional[str] = None
    ) -> Payout:
        self._require(actor, Role.ADMIN)
        async with self.session.begin():
            payout = await self._load(payout_id)
            return await self.engine.process(payout, actor.actor_id, reference_number)

    async def mark_paid(
        self, actor: Actor, payout_id: int, reference_number: Optional[str]
    ) -> Payout:
        self._require(actor, Role.ADMIN)
        async with self.session.begin():
            payout = await self._load(payout_id)
            return await self.engine.mark_paid(payout, actor.actor_id, reference_number)

    async def mark_failed(
        self, actor: Actor, payout_id: int, reason: Optional[str]
    ) -> Payout:
        self._require(actor, Role.ADMIN)
        async with self.session.begin():
            payout = await self._load(payout_id)
            return await self.engine.mark_failed(payout, actor.actor_id, reason)
