import asyncio
import sys

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from payout_ledger.db.session import AsyncSessionLocal

TABLES = [
    ("ledger_entries", "Ledger Entries"),
    ("payouts", "Payouts"),
    ("provider_accounts", "Provider Accounts"),
    ("earning_events", "Earning Events"),
]


async def reset_database() -> bool:
    """Truncate every ledger table and restart identities.

    Returns:
        bool: True if reset was successful, False otherwise.
    """
    print("Starting database reset...")
    print("-" * 60)

    async with AsyncSessionLocal() as session:
        try:
            async with session.begin():
                for table_name, display_name in TABLES:
                    await session.execute(
                        text(f"TRUNCATE TABLE {table_name} RESTART IDENTITY CASCADE;")
                    )
                    print(f"Truncated table: {display_name}")
        except SQLAlchemyError as e:
            print(f"\nError during reset: {e}")
            return False

        print("-" * 60)
        print("Database reset successful")
        for table_name, display_name in TABLES:
            result = await session.execute(text(f"SELECT COUNT(*) FROM {table_name}"))
            print(f"  {display_name}: {result.scalar()} records")
    return True


def confirm_reset() -> bool:
    print("\nWARNING: This operation will delete ALL data")
    print("Only use in development/testing environments")
    print("\nDo you want to continue? (yes/no): ", end="")
    return input().strip().lower() in ["yes", "y"]


async def main() -> int:
    print("\n" + "=" * 60)
    print("DATABASE RESET")
    print("=" * 60)

    if not confirm_reset():
        print("\nOperation cancelled by user")
        return 0

    if await reset_database():
        print("\nReset complete. Database is clean.")
        return 0
    print("\nReset failed. Check logs for details.")
    return 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
