# services/init_db.py
import logging

import psycopg2

from services.db import db_transaction

logger = logging.getLogger(__name__)

SCHEMA = [
    ("auth_users", """
        CREATE TABLE IF NOT EXISTS auth_users (
            id TEXT PRIMARY KEY,
            email TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            user_metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """),
    ("user_profiles", """
        CREATE TABLE IF NOT EXISTS user_profiles (
            user_id TEXT PRIMARY KEY REFERENCES auth_users(id) ON DELETE CASCADE,
            email TEXT NOT NULL DEFAULT '',
            real_email TEXT,
            email_verified BOOLEAN NOT NULL DEFAULT FALSE,
            is_admin BOOLEAN NOT NULL DEFAULT FALSE,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """),
    ("inventory_items", """
        CREATE TABLE IF NOT EXISTS inventory_items (
            id TEXT PRIMARY KEY,
            item_name TEXT NOT NULL,
            tag TEXT NOT NULL DEFAULT '',
            location TEXT NOT NULL DEFAULT '',
            qty INTEGER NOT NULL DEFAULT 1,
            checked BOOLEAN NOT NULL DEFAULT FALSE,
            notes TEXT,
            created_by TEXT,
            updated_by TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """),
    ("consumables_items", """
        CREATE TABLE IF NOT EXISTS consumables_items (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            category TEXT NOT NULL DEFAULT '',
            unit TEXT NOT NULL DEFAULT 'pcs',
            location TEXT NOT NULL,
            on_hand INTEGER NOT NULL DEFAULT 0 CHECK (on_hand >= 0),
            min_level INTEGER NOT NULL DEFAULT 0 CHECK (min_level >= 0),
            updated_by_name TEXT,
            updated_by_username TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """),
    ("feedback_entries", """
        CREATE TABLE IF NOT EXISTS feedback_entries (
            id TEXT PRIMARY KEY,
            message TEXT NOT NULL,
            sender_name TEXT,
            sender_username TEXT,
            sender_user_id TEXT,
            resolved BOOLEAN NOT NULL DEFAULT FALSE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """),
    ("notification_logs", """
        CREATE TABLE IF NOT EXISTS notification_logs (
            id TEXT PRIMARY KEY,
            consumable_id TEXT NOT NULL,
            notification_type TEXT NOT NULL,
            status TEXT NOT NULL CHECK (status IN ('sent', 'failed')),
            sent_to_emails JSONB NOT NULL DEFAULT '[]'::jsonb,
            trigger_value INTEGER,
            error_message TEXT,
            sent_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """),
]

INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_inventory_items_created_at ON inventory_items (created_at DESC)",
    "CREATE INDEX IF NOT EXISTS idx_consumables_items_location ON consumables_items (location)",
    "CREATE INDEX IF NOT EXISTS idx_feedback_entries_sender ON feedback_entries (sender_user_id, created_at DESC)",
    "CREATE INDEX IF NOT EXISTS idx_notification_logs_dedup ON notification_logs (consumable_id, status, sent_at)",
]


def init_db():
    """Create every table and index if missing. Safe to run repeatedly."""
    try:
        with db_transaction() as conn:
            c = conn.cursor()
            for table, ddl in SCHEMA:
                c.execute(ddl)
                logger.info(f"✅ Table ready: {table}")
            for ddl in INDEXES:
                c.execute(ddl)
    except psycopg2.Error as e:
        logger.error(f"❌ Schema initialization failed: {e}")
        raise
    logger.info("✅ Database schema initialized")
