import sys
import os
import asyncio
from pymongo import ASCENDING, DESCENDING

# Add parent directory to path to import database
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from constants import Collections
from database import DocumentStore
from logging_config import get_logger

logger = get_logger("setup_indexes")

async def create_indexes(store: DocumentStore):
    print("🚀 Starting Index Creation...")

    # Every collection is addressed by its string id
    for name in (Collections.USERS, Collections.PROJECTS, Collections.EXPENSES,
                 Collections.INVITATIONS, Collections.NOTIFICATIONS, Collections.PUSH_SUBSCRIPTIONS):
        await store.collection(name).create_index([("id", ASCENDING)], unique=True)
    print("✅ Created index: (id UNIQUE) on all collections")

    # --- Users ---
    print("\n📦 Users Collection:")
    # Login and invitation lookups by email
    await store.collection(Collections.USERS).create_index([("email", ASCENDING)], unique=True)
    print("✅ Created index: (email UNIQUE)")
    # Cascade delete: update_many({project_ids: X})
    await store.collection(Collections.USERS).create_index([("project_ids", ASCENDING)])
    print("✅ Created index: (project_ids)")

    # --- Projects ---
    print("\n📦 Projects Collection:")
    # Project listing merges these two queries
    await store.collection(Collections.PROJECTS).create_index([("admin_id", ASCENDING)])
    print("✅ Created index: (admin_id)")
    await store.collection(Collections.PROJECTS).create_index([("members.user_id", ASCENDING)])
    print("✅ Created index: (members.user_id)")

    # --- Expenses ---
    print("\n📦 Expenses Collection:")
    # For Listing: find({project_id: X, is_deleted: {$ne: true}, status: Y})
    await store.collection(Collections.EXPENSES).create_index(
        [("project_id", ASCENDING), ("status", ASCENDING), ("expense_date", DESCENDING)]
    )
    print("✅ Created index: (project_id, status, expense_date DESC)")
    await store.collection(Collections.EXPENSES).create_index([("project_id", ASCENDING), ("is_deleted", ASCENDING)])
    print("✅ Created index: (project_id, is_deleted)")
    # For My Expenses: find({created_by: X})
    await store.collection(Collections.EXPENSES).create_index([("created_by", ASCENDING), ("created_at", DESCENDING)])
    print("✅ Created index: (created_by, created_at DESC)")

    # --- Invitations ---
    print("\n📦 Invitations Collection:")
    await store.collection(Collections.INVITATIONS).create_index(
        [("project_id", ASCENDING), ("status", ASCENDING), ("created_at", DESCENDING)]
    )
    print("✅ Created index: (project_id, status, created_at DESC)")

    # --- Notifications ---
    print("\n📦 Notifications Collection:")
    # For Unread Count: find({user_id: X, read: False})
    await store.collection(Collections.NOTIFICATIONS).create_index([("user_id", ASCENDING), ("read", ASCENDING)])
    print("✅ Created index: (user_id, read)")
    # For List Notifications: find({user_id: X}).sort(created_at: -1)
    await store.collection(Collections.NOTIFICATIONS).create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    print("✅ Created index: (user_id, created_at DESC)")

    # --- Push Subscriptions ---
    print("\n📦 Push Subscriptions Collection:")
    await store.collection(Collections.PUSH_SUBSCRIPTIONS).create_index([("user_id", ASCENDING)])
    print("✅ Created index: (user_id)")

    logger.info("Indexes created", extra={"data": {"db": store.db.name}})
    print("\n✨ All indexes created successfully!")

if __name__ == "__main__":
    # Ensure event loop for async driver
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    loop.run_until_complete(create_indexes(DocumentStore()))
