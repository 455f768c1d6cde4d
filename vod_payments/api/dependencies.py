from typing import Annotated, AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vod_payments.core.config import Settings, settings
from vod_payments.db.session import AsyncSessionLocal
from vod_payments.services.card_gateway import StripeCardGateway
from vod_payments.services.gateway_client import LanariPayClient
from vod_payments.services.payment_orchestrator import PaymentOrchestrator
from vod_payments.services.reconciler import Reconciler


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return AsyncSessionLocal


def get_settings() -> Settings:
    return settings


SessionDep = Annotated[AsyncSession, Depends(get_session)]
SettingsDep = Annotated[Settings, Depends(get_settings)]


def get_gateway(settings: SettingsDep) -> LanariPayClient:
    return LanariPayClient(settings)


def get_card_gateway(settings: SettingsDep) -> StripeCardGateway:
    return StripeCardGateway(settings.stripe_secret_key)


def get_orchestrator(
    settings: SettingsDep,
    session_factory: Annotated[
        async_sessionmaker[AsyncSession], Depends(get_session_factory)
    ],
    gateway: Annotated[LanariPayClient, Depends(get_gateway)],
    card_gateway: Annotated[StripeCardGateway, Depends(get_card_gateway)],
) -> PaymentOrchestrator:
    return PaymentOrchestrator(
        session_factory=session_factory,
        gateway=gateway,
        settings=settings,
        card_gateway=card_gateway,
    )


OrchestratorDep = Annotated[PaymentOrchestrator, Depends(get_orchestrator)]


def get_reconciler(orchestrator: OrchestratorDep) -> Reconciler:
    return Reconciler(orchestrator)


ReconcilerDep = Annotated[Reconciler, Depends(get_reconciler)]
