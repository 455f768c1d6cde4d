from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from vod_payments.core.enums import AccessPeriod
from vod_payments.core.periods import period_label
from vod_payments.db.models import Content
from vod_payments.services.money import quantize_money, to_decimal

DEFAULT_TIER_MULTIPLIERS = {
    AccessPeriod.HOURS_24.value: Decimal("0.2"),
    AccessPeriod.DAYS_7.value: Decimal("0.5"),
    AccessPeriod.DAYS_30.value: Decimal("1.5"),
    AccessPeriod.DAYS_90.value: Decimal("3"),
    AccessPeriod.DAYS_180.value: Decimal("5"),
    AccessPeriod.DAYS_365.value: Decimal("8"),
}

# Applied to the summed episode prices when the series has no tier for a period.
FALLBACK_DISCOUNTS = {
    AccessPeriod.DAYS_30.value: Decimal("0.3"),
    AccessPeriod.DAYS_90.value: Decimal("0.4"),
    AccessPeriod.DAYS_180.value: Decimal("0.5"),
    AccessPeriod.DAYS_365.value: Decimal("0.6"),
}


def total_individual_price(episodes: list[Content]) -> Decimal:
    return sum((to_decimal(episode.view_price or 0) for episode in episodes), Decimal("0"))


def tier_prices(series: Content, episodes: list[Content]) -> dict[str, Decimal]:
    if series.pricing_tiers:
        return {
            period: quantize_money(to_decimal(price))
            for period, price in series.pricing_tiers.items()
        }
    total = total_individual_price(episodes)
    return {
        period: quantize_money(total * multiplier)
        for period, multiplier in DEFAULT_TIER_MULTIPLIERS.items()
    }


def resolve_tier_price(
    series: Content, episodes: list[Content], access_period: str
) -> Decimal:
    """Price charged for series access over a period."""
    tiers = series.pricing_tiers or {}
    if access_period in tiers:
        return quantize_money(to_decimal(tiers[access_period]))
    price = total_individual_price(episodes)
    discount = FALLBACK_DISCOUNTS.get(access_period)
    if discount is not None:
        price = price * (Decimal("1") - discount)
    return quantize_money(price)


def build_pricing(series: Content, episodes: list[Content]) -> dict:
    total = total_individual_price(episodes)
    tiers = tier_prices(series, episodes)

    best_period: Optional[str] = None
    best_savings: Optional[Decimal] = None
    rows = []
    for period, price in tiers.items():
        savings = total - price
        if best_savings is None or savings >= best_savings:
            best_period, best_savings = period, savings
        rows.append(
            {
                "period": period,
                "period_label": period_label(period),
                "price": price,
                "savings": savings,
                "savings_percentage": (
                    int((savings / total * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
                    if total > 0
                    else 0
                ),
            }
        )
    for row in rows:
        row["is_best_value"] = row["period"] == best_period

    best_value = None
    if best_period is not None:
        best_value = {
            "period": best_period,
            "period_label": period_label(best_period),
            "price": tiers[best_period],
            "savings": best_savings,
        }
    return {
        "total_individual_price": total,
        "series_pricing": rows,
        "best_value": best_value,
    }
