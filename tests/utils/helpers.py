import hashlib
import hmac
from decimal import Decimal

from sqlalchemy import select

from vod_payments.db.models import Entitlement, FilmmakerFinance, Payment, Withdrawal
from vod_payments.db.session import AsyncSessionLocal


async def load_payment(payment_id: str) -> Payment:
    async with AsyncSessionLocal() as session:
        result = await session.execute(select(Payment).where(Payment.id == payment_id))
        return result.scalar_one()


async def load_entitlements(payment_id: str) -> list[Entitlement]:
    async with AsyncSessionLocal() as session:
        result = await session.execute(
            select(Entitlement).where(Entitlement.payment_id == payment_id)
        )
        return list(result.scalars().all())


async def load_withdrawals(payment_id: str) -> list[Withdrawal]:
    async with AsyncSessionLocal() as session:
        result = await session.execute(
            select(Withdrawal)
            .where(Withdrawal.payment_id == payment_id)
            .order_by(Withdrawal.created_at)
        )
        return list(result.scalars().all())


async def load_finance(user_id: str) -> FilmmakerFinance:
    async with AsyncSessionLocal() as session:
        result = await session.execute(
            select(FilmmakerFinance).where(FilmmakerFinance.user_id == user_id)
        )
        return result.scalar_one()


def sign_webhook(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def money(value) -> Decimal:
    """Normalize JSON money strings and DB numerics for comparison."""
    return Decimal(str(value)).quantize(Decimal("0.01"))
