from datetime import datetime, timedelta, timezone

import pytest

from vod_payments.core.enums import PaymentClass, SubscriptionPlan
from vod_payments.core.payment_kinds import (
    Download,
    SeriesAccess,
    SubscriptionRenewal,
    Watch,
    build_kind,
)
from vod_payments.core.periods import calculate_expiry, days_remaining, period_label

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


@pytest.mark.unit
class TestPeriods:
    def test_fixed_periods(self) -> None:
        assert calculate_expiry("24h", NOW) == NOW + timedelta(days=1)
        assert calculate_expiry("365d", NOW) == NOW + timedelta(days=365)

    def test_one_time_has_no_expiry(self) -> None:
        assert calculate_expiry("one-time", NOW) is None
        assert calculate_expiry(None, NOW) is None

    def test_labels(self) -> None:
        assert period_label("365d") == "1 Year"
        assert period_label("weird") == "weird"

    def test_days_remaining_rounds_up(self) -> None:
        assert days_remaining(NOW + timedelta(days=2, hours=1), NOW) == 3
        assert days_remaining(NOW - timedelta(days=1), NOW) == 0
        assert days_remaining(None, NOW) is None


@pytest.mark.unit
class TestPaymentKinds:
    def test_watch_defaults_to_one_time(self) -> None:
        kind = build_kind("watch", "m1")

        assert isinstance(kind, Watch)
        assert kind.access_period.value == "one-time"

    def test_download(self) -> None:
        assert build_kind(PaymentClass.DOWNLOAD, "m1") == Download("m1")

    def test_series_defaults_to_thirty_days(self) -> None:
        kind = build_kind("series_access", "s1")

        assert isinstance(kind, SeriesAccess)
        assert kind.access_period.value == "30d"

    def test_renewal_keeps_plan(self) -> None:
        kind = build_kind("subscription_renewal", plan="enterprise", access_period="90d")

        assert isinstance(kind, SubscriptionRenewal)
        assert kind.plan == SubscriptionPlan.ENTERPRISE
        assert kind.payment_class == PaymentClass.SUBSCRIPTION_RENEWAL
