from vod_payments.schemas.common import (
    BaseResponse,
    ErrorDetail,
    ErrorResponse,
    Pagination,
)

__all__ = [
    "BaseResponse",
    "ErrorDetail",
    "ErrorResponse",
    "Pagination",
]
