import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import text

from vod_payments.db.session import AsyncSessionLocal

TABLES = [
    ("withdrawals", "Withdrawals"),
    ("entitlements", "Entitlements"),
    ("payments", "Payments"),
    ("contents", "Contents"),
    ("filmmaker_finances", "Filmmaker Finances"),
    ("users", "Users"),
]


async def reset_database() -> bool:
    """Truncates every payment, catalog and account table.

    Returns:
        bool: True if reset was successful, False otherwise.
    """
    print("Starting database reset...")
    print("-" * 60)

    async with AsyncSessionLocal() as session:
        try:
            for table_name, display_name in TABLES:
                await session.execute(text(f"TRUNCATE TABLE {table_name} CASCADE;"))
                print(f"Truncated table: {display_name}")

            await session.commit()
            print("-" * 60)
            print("Database reset successful")
            print("\nCurrent state:")

            for table_name, display_name in TABLES:
                result = await session.execute(text(f"SELECT COUNT(*) FROM {table_name}"))
                print(f"  {display_name}: {result.scalar()} records")

            return True

        except Exception as e:
            await session.rollback()
            print(f"\nError during reset: {e}")
            return False


def confirm_reset() -> bool:
    print("\nWARNING: This operation will delete ALL data")
    print("Only use in development/testing environments")
    print("\nDo you want to continue? (yes/no): ", end="")

    response = input().strip().lower()
    return response in ["yes", "y"]


async def main() -> None:
    print("\n" + "=" * 60)
    print("DATABASE RESET")
    print("=" * 60)

    if not confirm_reset():
        print("\nOperation cancelled by user")
        sys.exit(0)

    if await reset_database():
        print("\nReset complete. Database is clean.")
        sys.exit(0)
    print("\nReset failed. Check logs for details.")
    sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
