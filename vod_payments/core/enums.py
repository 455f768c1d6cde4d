from enum import Enum


class PaymentClass(str, Enum):
    WATCH = "watch"
    DOWNLOAD = "download"
    SERIES_ACCESS = "series_access"
    SUBSCRIPTION_UPGRADE = "subscription_upgrade"
    SUBSCRIPTION_RENEWAL = "subscription_renewal"


class AccessPeriod(str, Enum):
    ONE_TIME = "one-time"
    HOURS_24 = "24h"
    DAYS_7 = "7d"
    DAYS_30 = "30d"
    DAYS_90 = "90d"
    DAYS_180 = "180d"
    DAYS_365 = "365d"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    MOMO = "momo"
    CARD = "card"


class WithdrawalStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


class WithdrawalType(str, Enum):
    FILMMAKER_EARNING = "filmmaker_earning"
    ADMIN_FEE = "admin_fee"
    SUBSCRIPTION_ADMIN_FEE = "subscription_admin_fee"
    SERIES_ACCESS_ADMIN_FEE = "series_access_admin_fee"
    MANUAL_WITHDRAWAL = "manual_withdrawal"
    AUTOMATIC_PAYOUT = "automatic_payout"


class GatewayStatus(str, Enum):
    SUCCESSFUL = "SUCCESSFUL"
    FAILED = "FAILED"
    PENDING = "PENDING"


class AccessType(str, Enum):
    VIEW = "view"
    DOWNLOAD = "download"
    SERIES = "series"


class EntitlementStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class ContentType(str, Enum):
    MOVIE = "movie"
    SERIES = "series"
    EPISODE = "episode"


class ContentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class SubscriptionPlan(str, Enum):
    BASIC = "basic"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class UserRole(str, Enum):
    VIEWER = "viewer"
    FILMMAKER = "filmmaker"
    ADMIN = "admin"


TERMINAL_PAYMENT_STATUSES = (PaymentStatus.SUCCEEDED, PaymentStatus.FAILED)


def enum_value(value) -> str:
    """Plain string for a str-enum member or a value already loaded from the DB."""
    return value.value if isinstance(value, Enum) else value
