"""Seed a viewer, a verified filmmaker, a movie and a three-episode series."""

import asyncio
import sys
from decimal import Decimal
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from vod_payments.core.enums import ContentStatus, ContentType, UserRole
from vod_payments.db.models import Content, FilmmakerFinance, User
from vod_payments.db.session import AsyncSessionLocal


async def seed_catalog() -> None:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            viewer = User(name="Demo Viewer", email="viewer@example.com")
            filmmaker = User(
                name="Demo Filmmaker",
                email="filmmaker@example.com",
                role=UserRole.FILMMAKER,
            )
            session.add_all([viewer, filmmaker])
            await session.flush()

            session.add(
                FilmmakerFinance(
                    user_id=filmmaker.id,
                    payout_phone="0788123456",
                    is_verified=True,
                )
            )
            movie = Content(
                title="Umurage",
                filmmaker_id=filmmaker.id,
                status=ContentStatus.APPROVED,
                view_price=Decimal("500"),
                download_price=Decimal("1500"),
            )
            series = Content(
                title="Inzira",
                content_type=ContentType.SERIES,
                filmmaker_id=filmmaker.id,
                status=ContentStatus.APPROVED,
            )
            session.add_all([movie, series])
            await session.flush()

            for number in range(1, 4):
                session.add(
                    Content(
                        title=f"Inzira S1E{number}",
                        content_type=ContentType.EPISODE,
                        filmmaker_id=filmmaker.id,
                        series_id=series.id,
                        status=ContentStatus.APPROVED,
                        view_price=Decimal("300"),
                        season_number=1,
                        episode_number=number,
                    )
                )

    print(f"Viewer:     {viewer.id}")
    print(f"Filmmaker:  {filmmaker.id}")
    print(f"Movie:      {movie.id}")
    print(f"Series:     {series.id}")


if __name__ == "__main__":
    asyncio.run(seed_catalog())
