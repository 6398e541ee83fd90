"""
Migration 001: Create the documents table

Creates:
- documents: one row per list or item document, keyed by (collection, id),
  with the fields stored as JSONB

Run with: python -m migrations.001_create_documents
"""

import asyncio
from sqlalchemy import text
from shoplist.db.database import get_engine


async def upgrade():
    """Create the documents table and its lookup indexes."""
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.execute(text("""
            CREATE TABLE IF NOT EXISTS documents (
                collection VARCHAR(64) NOT NULL,
                id VARCHAR(64) NOT NULL,
                data JSONB NOT NULL DEFAULT '{}'::jsonb,
                created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
                updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
                PRIMARY KEY (collection, id)
            );
        """))
        print("✅ Created documents table")

        # Items are always read by list, lists by owner or member email
        await conn.execute(text("""
            CREATE INDEX IF NOT EXISTS idx_documents_items_list_id
            ON documents ((data->>'listId'))
            WHERE collection = 'items';
        """))
        await conn.execute(text("""
            CREATE INDEX IF NOT EXISTS idx_documents_lists_owner_uid
            ON documents ((data->>'ownerUid'))
            WHERE collection = 'lists';
        """))
        await conn.execute(text("""
            CREATE INDEX IF NOT EXISTS idx_documents_lists_member_emails
            ON documents USING GIN ((data->'memberEmails'))
            WHERE collection = 'lists';
        """))
        print("✅ Created documents indexes")
    await engine.dispose()


async def downgrade():
    """Drop the documents table."""
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.execute(text("DROP TABLE IF EXISTS documents;"))
        print("✅ Dropped documents table")
    await engine.dispose()


if __name__ == "__main__":
    import sys

    if len(sys.argv) > 1 and sys.argv[1] == "down":
        asyncio.run(downgrade())
    else:
        asyncio.run(upgrade())
