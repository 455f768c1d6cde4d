from datetime import datetime
from decimal import Decimal
from typing import Optional

from vod_payments.schemas.common import BaseResponse, CamelModel


class SeriesSummary(CamelModel):
    id: str
    title: str
    total_episodes: int
    currency: str


class EpisodePrice(CamelModel):
    id: str
    title: str
    season_number: Optional[int] = None
    episode_number: Optional[int] = None
    individual_price: Decimal


class TierPrice(CamelModel):
    period: str
    period_label: str
    price: Decimal
    savings: Decimal
    savings_percentage: int
    is_best_value: bool


class BestValue(CamelModel):
    period: str
    period_label: str
    price: Decimal
    savings: Decimal


class SeriesPricing(CamelModel):
    total_individual_price: Decimal
    series_pricing: list[TierPrice]
    best_value: Optional[BestValue] = None


class SeriesPricingData(CamelModel):
    series: SeriesSummary
    episodes: list[EpisodePrice]
    pricing: SeriesPricing


class SeriesPricingResponse(BaseResponse):
    data: SeriesPricingData


class SeriesAccessData(CamelModel):
    series_id: str
    user_id: str
    has_access: bool
    access_period: Optional[str] = None
    expires_at: Optional[datetime] = None
    days_remaining: Optional[int] = None
    episodes_covered: int = 0


class SeriesAccessResponse(BaseResponse):
    data: SeriesAccessData
