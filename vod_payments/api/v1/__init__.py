from fastapi import APIRouter

from vod_payments.api.v1 import payments, withdrawals

api_router = APIRouter()

api_router.include_router(payments.router, prefix="/payments", tags=["payments"])
api_router.include_router(
    withdrawals.router, prefix="/withdrawals", tags=["withdrawals"]
)
