"""Example 02: Blocked Upgrades - resuming the same request.

A second connection asks for version 2 while a version 1 connection is
still open. The call raises BlockedError; after the caller closes the
blocking connection, awaiting ``resume`` finishes the original request.
"""

import asyncio

import versionstore
from versionstore.sqlite_engine import SqliteEngine


def add_authors(event):
    print(f"  upgrading v{event.old_version} -> v{event.new_version}")
    event.target.result.create_object_store("authors", key_path="id")


async def main() -> None:
    engine = SqliteEngine(":memory:")
    versionstore.force_engine(engine)

    old = await versionstore.open("library", 1)
    try:
        await versionstore.open("library", 2, add_authors)
    except versionstore.BlockedError as blocked:
        print(f"Blocked: {blocked}")
        old.close()
        db = await blocked.resume
        print(f"Resumed: {db.name} v{db.version} stores={db.object_store_names}")
        db.close()

    versionstore.force_engine(None)
    engine.close()


if __name__ == "__main__":
    asyncio.run(main())
