from sqlalchemy.ext.asyncio import AsyncSession

from payout_ledger.core.money import from_minor
from payout_ledger.db.repositories import LedgerRepository, PayoutRepository
from payout_ledger.schemas.ledger import EarningsSummary


class BalanceCalculator:
    def __init__(self, session: AsyncSession) -> None:
        self.ledger_repo = LedgerRepository(session)
        self.payout_repo = PayoutRepository(session)

    async def get_earnings_summary(
        self, provider_id: str, currency: str
    ) -> EarningsSummary:
        account = await self.ledger_repo.get_account(provider_id, currency)
        if account is None:
            zero = from_minor(0)
            return EarningsSummary(
                provider_id=provider_id,
                currency=currency,
                total_revenue=zero,
                total_commissions=zero,
                total_refunds=zero,
                total_earnings=zero,
                total_payouts=zero,
                pending_payouts=zero,
                available_balance=zero,
            )

        last_paid_at = await self.payout_repo.get_last_paid_at(provider_id, currency)
        return EarningsSummary(
            provider_id=provider_id,
            currency=currency,
            total_revenue=from_minor(account.total_revenue_minor),
            total_commissions=from_minor(account.total_commissions_minor),
            total_refunds=from_minor(account.total_refunds_minor),
            total_earnings=from_minor(account.total_earnings_minor),
            total_payouts=from_minor(account.total_payouts_minor),
            pending_payouts=from_minor(account.pending_payouts_minor),
            available_balance=from_minor(account.available_balance_minor),
            last_payout_date=last_paid_at,
            last_updated=account.updated_at,
        )

    async def get_platform_totals(self, currency: str) -> dict:
        revenue, commissions, refunds, pending, payouts, last_updated = (
            await self.ledger_repo.get_platform_totals(currency)
        )
        earnings = revenue - commissions - refunds
        return {
            "total_revenue": from_minor(revenue),
            "total_commissions": from_minor(commissions),
            "total_refunds": from_minor(refunds),
            "total_earnings": from_minor(earnings),
            "total_payouts": from_minor(payouts),
            "pending_payouts": from_minor(pending),
            "available_balance": from_minor(earnings - payouts - pending),
            "last_updated": last_updated,
        }
