from fastapi import APIRouter

from payout_ledger.api.v1 import admin_finance, ledger, provider_payouts

api_router = APIRouter()

api_router.include_router(ledger.router, prefix="/ledger", tags=["ledger"])
api_router.include_router(
    provider_payouts.router, prefix="/provider", tags=["provider"]
)
api_router.include_router(
    admin_finance.router, prefix="/admin/finance", tags=["admin-finance"]
)
