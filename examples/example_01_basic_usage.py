"""Example 01: Basic Usage - open, upgrade, delete.

This example demonstrates:
- Binding a local engine as the process-wide override
- Creating a database with an upgrade routine
- Reopening at the latest version
- Deleting through an open connection (close, flush delay, delete)
"""

import asyncio

import versionstore
from versionstore.sqlite_engine import SqliteEngine


def create_books(event):
    db = event.target.result
    books = db.create_object_store("books", key_path="id")
    books.create_index("byTitle", "title", unique=True)
    books.create_index("byAuthor", "author")


async def main() -> None:
    engine = SqliteEngine(":memory:")
    versionstore.force_engine(engine)

    db = await versionstore.open("library", 1, create_books)
    print(f"Created {db.name} v{db.version} with stores {db.object_store_names}")
    db.close()

    db = await versionstore.open("library")
    print(f"Reopened {db.name} at v{db.version}")

    result = await versionstore.delete(db)
    print(f"Deleted library (was v{result.old_version})")

    print(f"cmp(1, 5) = {versionstore.cmp(1, 5)}")
    print(f"cmp('z', 'a') = {versionstore.cmp('z', 'a')}")

    versionstore.force_engine(None)
    engine.close()


if __name__ == "__main__":
    asyncio.run(main())
