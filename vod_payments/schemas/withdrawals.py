from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field

from vod_payments.core.enums import WithdrawalStatus, WithdrawalType
from vod_payments.schemas.common import BaseResponse, CamelModel, Pagination


class WithdrawalCreate(CamelModel):
    user_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    phone_number: Optional[str] = Field(default=None, pattern=r"^\+?[0-9]{9,15}$")


class WithdrawalData(CamelModel):
    id: str
    user_id: Optional[str] = None
    amount: Decimal
    currency: str
    phone: Optional[str] = None
    status: WithdrawalStatus
    payment_id: Optional[str] = None
    type: WithdrawalType
    external_id: Optional[str] = None
    reference_id: Optional[str] = None
    description: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: datetime
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class WithdrawalResponse(BaseResponse):
    data: WithdrawalData


class WithdrawalListResponse(BaseResponse):
    data: list[WithdrawalData]
    pagination: Pagination


class FinanceData(CamelModel):
    user_id: str
    pending_balance: Decimal
    available_balance: Decimal
    withdrawn_balance: Decimal
    total_earned: Decimal
    payout_method: str
    payout_phone: Optional[str] = None
    is_verified: bool
    withdrawal_counts: dict[str, int] = Field(default_factory=dict)


class FinanceResponse(BaseResponse):
    data: FinanceData
