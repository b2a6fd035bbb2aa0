import logging
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from payout_ledger.core.datetime_utils import utc_now
from payout_ledger.core.enums import PayoutAction, PayoutMethod, PayoutStatus
from payout_ledger.core.money import MAX_MINOR, to_minor
from payout_ledger.db.models import Payout
from payout_ledger.db.repositories import PayoutRepository
from payout_ledger.exceptions import (
    IncompleteMethodDetailsException,
    PayoutStateException,
    ValidationException,
)
from payout_ledger.metrics import (
    payout_transition_conflicts_total,
    payout_transitions_total,
    payouts_requested_total,
)
from payout_ledger.schemas.payouts import BankTransferDetails, MobileMoneyDetails
from payout_ledger.services.ledger_service import LedgerService
from payout_ledger.services.settlement_gateway import SettlementGateway

logger = logging.getLogger(__name__)

# action -> (required current status, resulting status)
TRANSITIONS: dict[PayoutAction, tuple[PayoutStatus, PayoutStatus]] = {
    PayoutAction.CANCEL: (PayoutStatus.PENDING, PayoutStatus.CANCELLED),
    PayoutAction.APPROVE: (PayoutStatus.PENDING, PayoutStatus.APPROVED),
    PayoutAction.REJECT: (PayoutStatus.PENDING, PayoutStatus.REJECTED),
    PayoutAction.PROCESS: (PayoutStatus.APPROVED, PayoutStatus.PROCESSING),
    PayoutAction.MARK_PAID: (PayoutStatus.PROCESSING, PayoutStatus.COMPLETED),
    PayoutAction.MARK_FAILED: (PayoutStatus.PROCESSING, PayoutStatus.FAILED),
}

RELEASING_ACTIONS = frozenset(
    {PayoutAction.CANCEL, PayoutAction.REJECT, PayoutAction.MARK_FAILED}
)

METHOD_DETAILS_MODELS = {
    PayoutMethod.BANK_TRANSFER: BankTransferDetails,
    PayoutMethod.MOBILE_MONEY: MobileMoneyDetails,
}


def assert_transition(payout_id: int, current: PayoutStatus, action: PayoutAction) -> PayoutStatus:
    """Return the status ``action`` leads to, or raise if illegal from ``current``."""
    source, target = TRANSITIONS[action]
    if current != source:
        raise PayoutStateException(payout_id, action.value, current.value)
    return target


def require_text(value: Optional[str], field: str) -> str:
    if value is None or not value.strip():
        raise ValidationException(
            message=f"{field.replace('_', ' ').capitalize()} is required",
            details={"field": field},
        )
    return value.strip()


def validate_amount(amount: Decimal) -> int:
    try:
        amount_minor = to_minor(amount)
    except ValueError as exc:
        raise ValidationException(
            message="Amount must be a number with at most two decimal places",
            details={"field": "amount", "amount": str(amount)},
        ) from exc
    if amount_minor <= 0:
        raise ValidationException(
            message="Amount must be greater than zero",
            details={"field": "amount", "amount": str(amount)},
        )
    if amount_minor > MAX_MINOR:
        raise ValidationException(
            message="Amount exceeds the largest supported value",
            details={"field": "amount", "amount": str(amount)},
        )
    return amount_minor


def validate_method_details(
    method: PayoutMethod,
    bank_details: Optional[BankTransferDetails],
    mobile_money_details: Optional[MobileMoneyDetails],
) -> dict:
    """Return the normalized details payload for ``method``.

    Exactly the variant matching the method must be supplied, with every
    required field non-blank.
    """
    details = (
        bank_details if method == PayoutMethod.BANK_TRANSFER else mobile_money_details
    )
    other = (
        mobile_money_details if method == PayoutMethod.BANK_TRANSFER else bank_details
    )
    model = METHOD_DETAILS_MODELS[method]

    if other is not None:
        raise ValidationException(
            message=f"Details supplied do not match payout method {method.value}",
            details={"method": method.value},
        )
    if details is None:
        raise IncompleteMethodDetailsException(method.value, list(model.REQUIRED_FIELDS))

    missing = [
        field
        for field in model.REQUIRED_FIELDS
        if not (getattr(details, field) or "").strip()
    ]
    if missing:
        raise IncompleteMethodDetailsException(method.value, missing)

    return {
        key: value.strip()
        for key, value in details.model_dump(exclude_none=True).items()
        if value.strip()
    }


class PayoutEngine:
    """Validates and applies payout state transitions.

    Must be called within a transaction: the status change and its ledger
    adjustment are flushed together and commit or roll back as one unit.
    The settlement processor is only contacted once the status change has
    won, so a failed call rolls the transition back with it.
    """

    def __init__(
        self, session: AsyncSession, gateway: Optional[SettlementGateway] = None
    ) -> None:
        self.session = session
        self.payout_repo = PayoutRepository(session)
        self.ledger_service = LedgerService(session)
        self.gateway = gateway or SettlementGateway()

    async def request(
        self,
        provider_id: str,
        amount: Decimal,
        currency: str,
        method: PayoutMethod,
        bank_details: Optional[BankTransferDetails] = None,
        mobile_money_details: Optional[MobileMoneyDetails] = None,
    ) -> Payout:
        amount_minor = validate_amount(amount)
        method_details = validate_method_details(
            method, bank_details, mobile_money_details
        )

        # Nothing is inserted unless the balance covers the amount.
        await self.ledger_service.reserve(provider_id, currency, amount_minor)
        payout = await self.payout_repo.create_payout(
            provider_id=provider_id,
            amount_minor=amount_minor,
            currency=currency,
            method=method,
            method_details=method_details,
        )
        await self.ledger_service.record_reservation(payout)

        payouts_requested_total.labels(method=method.value).inc()
        logger.info(
            "Payout requested payout_id=%s provider_id=%s amount_minor=%s currency=%s method=%s",
            payout.id,
            provider_id,
            amount_minor,
            currency,
            method.value,
            extra={
                "payout_id": payout.id,
                "provider_id": provider_id,
                "amount_minor": amount_minor,
                "currency": currency,
                "method": method.value,
            },
        )
        return payout

    async def cancel(self, payout: Payout, actor_id: str) -> Payout:
        assert_transition(payout.id, payout.status, PayoutAction.CANCEL)
        return await self._apply(
            payout, PayoutAction.CANCEL, actor_id, {"cancelled_at": utc_now()}
        )

    async def approve(
        self, payout: Payout, actor_id: str, notes: Optional[str] = None
    ) -> Payout:
        assert_transition(payout.id, payout.status, PayoutAction.APPROVE)
        values: dict[str, Any] = {"approved_at": utc_now(), "approved_by": actor_id}
        if notes and notes.strip():
            values["notes"] = notes.strip()
        return await self._apply(payout, PayoutAction.APPROVE, actor_id, values)

    async def reject(self, payout: Payout, actor_id: str, reason: Optional[str]) -> Payout:
        assert_transition(payout.id, payout.status, PayoutAction.REJECT)
        reason = require_text(reason, "reason")
        return await self._apply(
            payout,
            PayoutAction.REJECT,
            actor_id,
            {"rejection_reason": reason, "rejected_at": utc_now()},
        )

    async def process(
        self, payout: Payout, actor_id: str, reference_number: Optional[str] = None
    ) -> Payout:
        assert_transition(payout.id, payout.status, PayoutAction.PROCESS)
        values: dict[str, Any] = {"processed_at": utc_now(), "processed_by": actor_id}
        if reference_number and reference_number.strip():
            values["reference_number"] = reference_number.strip()
            values["processing_reference"] = reference_number.strip()

        async def submit(processing: Payout) -> None:
            gateway_reference = await self.gateway.submit_transfer(processing)
            # An admin-supplied reference takes precedence.
            if gateway_reference and "reference_number" not in values:
                processing.reference_number = gateway_reference
                processing.processing_reference = gateway_reference

        return await self._apply(
            payout, PayoutAction.PROCESS, actor_id, values, dispatch=submit
        )

    async def mark_paid(
        self, payout: Payout, actor_id: str, reference_number: Optional[str]
    ) -> Payout:
        assert_transition(payout.id, payout.status, PayoutAction.MARK_PAID)
        reference_number = require_text(reference_number, "reference_number")

        async def confirm(paid: Payout) -> None:
            await self.gateway.confirm_settlement(paid, reference_number)

        return await self._apply(
            payout,
            PayoutAction.MARK_PAID,
            actor_id,
            {"reference_number": reference_number, "paid_at": utc_now()},
            dispatch=confirm,
        )

    async def mark_failed(
        self, payout: Payout, actor_id: str, reason: Optional[str]
    ) -> Payout:
        assert_transition(payout.id, payout.status, PayoutAction.MARK_FAILED)
        reason = require_text(reason, "reason")
        return await self._apply(
            payout,
            PayoutAction.MARK_FAILED,
            actor_id,
            {"failure_reason": reason, "failed_at": utc_now()},
        )

    async def _apply(
        self,
        payout: Payout,
        action: PayoutAction,
        actor_id: str,
        values: dict[str, Any],
        dispatch: Optional[Callable[[Payout], Awaitable[None]]] = None,
    ) -> Payout:
        from_status = payout.status
        to_status = assert_transition(payout.id, from_status, action)

        applied = await self.payout_repo.apply_transition(payout, to_status, values)
        if not applied:
            payout_transition_conflicts_total.labels(action=action.value).inc()
            current = await self.payout_repo.get_by_id(payout.id)
            current_status = current.status if current else from_status
            logger.warning(
                "Payout transition lost to a concurrent update payout_id=%s action=%s status=%s",
                payout.id,
                action.value,
                current_status.value,
                extra={
                    "payout_id": payout.id,
                    "action": action.value,
                    "status": current_status.value,
                },
            )
            raise PayoutStateException(payout.id, action.value, current_status.value)

        if dispatch is not None:
            await dispatch(payout)

        if action in RELEASING_ACTIONS:
            await self.ledger_service.release_payout(payout, action)
        elif action == PayoutAction.MARK_PAID:
            await self.ledger_service.settle_payout(payout)

        payout_transitions_total.labels(
            action=action.value, status=to_status.value
        ).inc()
        logger.info(
            "Payout transition applied payout_id=%s action=%s from=%s to=%s actor_id=%s",
            payout.id,
            action.value,
            from_status.value,
            to_status.value,
            actor_id,
            extra={
                "payout_id": payout.id,
                "provider_id": payout.provider_id,
                "action": action.value,
                "from_status": from_status.value,
                "status": to_status.value,
                "actor_id": actor_id,
            },
        )
        return payout
