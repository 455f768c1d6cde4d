from typing import Optional

from fastapi import APIRouter, Query, status

from vod_payments.api.dependencies import OrchestratorDep, SessionDep
from vod_payments.core.enums import WithdrawalStatus, WithdrawalType, enum_value
from vod_payments.db.repositories import FinanceRepository, WithdrawalRepository
from vod_payments.exceptions import UserNotFoundException, WithdrawalNotFoundException
from vod_payments.schemas.common import Pagination
from vod_payments.schemas.withdrawals import (
    FinanceData,
    FinanceResponse,
    WithdrawalCreate,
    WithdrawalData,
    WithdrawalListResponse,
    WithdrawalResponse,
)

router = APIRouter()

MAX_PAGE_SIZE = 100


@router.post("", response_model=WithdrawalResponse, status_code=status.HTTP_201_CREATED)
async def request_withdrawal(
    request: WithdrawalCreate, orchestrator: OrchestratorDep
) -> WithdrawalResponse:
    withdrawal = await orchestrator.recorder.withdraw(
        user_id=request.user_id, amount=request.amount, phone=request.phone_number
    )
    return WithdrawalResponse(
        message=f"Withdrawal {enum_value(withdrawal.status)}",
        data=WithdrawalData.model_validate(withdrawal),
    )


@router.get("/user/{user_id}", response_model=WithdrawalListResponse)
async def get_user_withdrawals(
    user_id: str,
    session: SessionDep,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1),
    status: Optional[WithdrawalStatus] = None,
    type: Optional[WithdrawalType] = None,
) -> WithdrawalListResponse:
    limit = min(limit, MAX_PAGE_SIZE)
    withdrawals, total = await WithdrawalRepository(session).list_by_user(
        user_id, page, limit, status=status, withdrawal_type=type
    )
    return WithdrawalListResponse(
        data=[WithdrawalData.model_validate(withdrawal) for withdrawal in withdrawals],
        pagination=Pagination.build(page, limit, total),
    )


@router.get("/filmmaker/{user_id}/finance", response_model=FinanceResponse)
async def get_filmmaker_finance(user_id: str, session: SessionDep) -> FinanceResponse:
    finance = await FinanceRepository(session).get_finance(user_id)
    if finance is None:
        raise UserNotFoundException(user_id)
    counts = await WithdrawalRepository(session).count_by_status(user_id)
    return FinanceResponse(
        data=FinanceData(
            user_id=finance.user_id,
            pending_balance=finance.pending_balance,
            available_balance=finance.available_balance,
            withdrawn_balance=finance.withdrawn_balance,
            total_earned=finance.total_earned,
            payout_method=finance.payout_method,
            payout_phone=finance.payout_phone,
            is_verified=finance.is_verified,
            withdrawal_counts=counts,
        )
    )


@router.get("/{withdrawal_id}", response_model=WithdrawalResponse)
async def get_withdrawal(withdrawal_id: str, session: SessionDep) -> WithdrawalResponse:
    withdrawal = await WithdrawalRepository(session).get_by_id(withdrawal_id)
    if withdrawal is None:
        raise WithdrawalNotFoundException(withdrawal_id)
    return WithdrawalResponse(data=WithdrawalData.model_validate(withdrawal))
