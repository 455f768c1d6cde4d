from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import jwt

from vod_payments.core.enums import PaymentClass
from vod_payments.core.periods import utcnow
from vod_payments.exceptions import MisconfiguredException

ALGORITHM = "HS256"

STREAM_TTL = timedelta(hours=48)
DOWNLOAD_TTL = timedelta(hours=24)

OPERATION_TTLS = {
    "stream": STREAM_TTL,
    "hls-stream": STREAM_TTL,
    "download": DOWNLOAD_TTL,
}

OPERATIONS_BY_CLASS = {
    PaymentClass.WATCH: ("stream", "hls-stream"),
    PaymentClass.DOWNLOAD: ("download",),
}


@dataclass(frozen=True)
class SignedUrl:
    op: str
    url: str
    expires_at: datetime


class TokenSigner:
    """Issues short-lived signed URLs for stream and download. Holds no state."""

    def __init__(self, secret: Optional[str], api_url: str) -> None:
        self.secret = secret
        self.api_url = api_url.rstrip("/")

    def ensure_configured(self) -> None:
        if not self.secret:
            raise MisconfiguredException("JWT_SECRET")

    def sign(
        self,
        op: str,
        payment_id: str,
        user_id: str,
        movie_id: str,
        content_type: Optional[str] = None,
        series_id: Optional[str] = None,
        access_period: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> SignedUrl:
        self.ensure_configured()
        issued_at = now or utcnow()
        expires_at = issued_at + OPERATION_TTLS[op]
        claims = {
            "payment_id": payment_id,
            "user_id": user_id,
            "movie_id": movie_id,
            "op": op,
            "content_type": content_type,
            "series_id": series_id,
            "access_period": access_period,
            "expires_at": expires_at.isoformat(),
            "iat": issued_at,
            "exp": expires_at,
        }
        token = jwt.encode(claims, self.secret, algorithm=ALGORITHM)
        return SignedUrl(
            op=op,
            url=f"{self.api_url}/movies/{op}/{payment_id}?token={token}",
            expires_at=expires_at,
        )

    def urls_for_payment(
        self,
        payment_class: PaymentClass,
        payment_id: str,
        user_id: str,
        movie_id: str,
        content_type: Optional[str] = None,
        series_id: Optional[str] = None,
        access_period: Optional[str] = None,
    ) -> list[SignedUrl]:
        now = utcnow()
        return [
            self.sign(
                op,
                payment_id=payment_id,
                user_id=user_id,
                movie_id=movie_id,
                content_type=content_type,
                series_id=series_id,
                access_period=access_period,
                now=now,
            )
            for op in OPERATIONS_BY_CLASS.get(PaymentClass(payment_class), ())
        ]

    def decode(self, token: str) -> dict:
        self.ensure_configured()
        return jwt.decode(token, self.secret, algorithms=[ALGORITHM])
