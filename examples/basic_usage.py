"""
Example usage of pghandle connection handles

Requires a reachable PostgreSQL server; connection settings come from
database.yaml next to this file (if present) and PGHANDLE_* environment
variables.
"""

import asyncio
import logging
from pathlib import Path

from pghandle import ConnectionManager, MergeOutcome, QueryError, load_config, setup_db_logging

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).parent / "database.yaml"


async def example_basic_usage(manager: ConnectionManager):
    """Create a table, insert a row and read it back"""
    print("=== Basic Usage ===")

    async with manager.connection() as db:
        await db.query("CREATE TABLE IF NOT EXISTS users (username text primary key, email text, banned boolean);")
        await db.query("DELETE FROM users;")

        await db.insert_helper(table="users",
                               columns={"username": "tester", "email": "test@test.com", "banned": False})
        print(f"Inserted {db.row_count} row")

        await db.select_helper(table="users",
                               columns=["username", "email"],
                               where=db.where_helper({"username -like": "test%", "banned": False}),
                               order_by=db.order_by_helper(["email"]))

        await db.async_for_each(lambda index, row: print(f"  {index}: {row['username']} <{row['email']}>"),
                                lambda: print("  done"))

        print(db.to_dataframe())


async def example_merge(manager: ConnectionManager):
    """Insert-or-update the same record twice"""
    print("\n=== Merge ===")

    async with manager.connection() as db:
        for email in ("first@test.com", "second@test.com"):
            outcome = await db.merge_helper(table="users",
                                            columns={"username": "merged", "email": email},
                                            where=db.where_helper({"username": "merged"}))
            print(f"{email}: {'updated' if outcome is MergeOutcome.UPDATE else 'inserted'}")


async def example_transaction(manager: ConnectionManager):
    """Roll back an update"""
    print("\n=== Transaction ===")

    async with manager.connection() as db:
        await db.begin_transaction()
        await db.update_helper(table="users", columns={"banned": True},
                               where=db.where_helper({"username": ["tester", "merged"]}))
        print(f"Banned {db.row_count} users inside the transaction")
        await db.rollback()

        await db.select_helper(table="users", where=db.where_helper({"banned": True}))
        print(f"Banned users after rollback: {db.row_count}")


async def example_error_handling(manager: ConnectionManager):
    """Inspect a failed statement"""
    print("\n=== Error Handling ===")

    async with manager.connection() as db:
        try:
            await db.query("SELECT * FROM missing_table WHERE id=?;", [1])
        except QueryError as e:
            print(f"Query failed: {e.message}")
            print(f"SQL: {e.sql}  params: {e.params}")


async def main():
    """Run all examples"""
    config = load_config(CONFIG_PATH if CONFIG_PATH.exists() else None)
    setup_db_logging(config.logging)

    async with ConnectionManager(config) as manager:
        manager.configure_reaper(True, 1)
        await example_basic_usage(manager)
        await example_merge(manager)
        await example_transaction(manager)
        await example_error_handling(manager)

    print("\n=== All examples completed ===")


if __name__ == "__main__":
    asyncio.run(main())
