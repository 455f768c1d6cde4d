from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def response_meta() -> dict:
    return {"timestamp": datetime.now(timezone.utc).isoformat()}


class CamelModel(BaseModel):
    """Wire models use camelCase; Python code uses snake_case."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class BaseResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None
    meta: dict = Field(default_factory=response_meta)


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, pages=-(-total // limit))


class ErrorDetail(BaseModel):
    code: str
    details: Optional[dict] = None


class ErrorResponse(BaseModel):
    success: bool = False
    message: str
    error: ErrorDetail
    meta: dict = Field(default_factory=dict)
