"""Миграция: промокоды и учет их использования"""

from database.migrations.migration_manager import Migration


class AddPromotions(Migration):
    version = 3
    description = "Add promotions and promotion usage records"

    async def upgrade(self, db):
        """Применение миграции"""
        await db.execute(
            """CREATE TABLE IF NOT EXISTS promotions
            (id INTEGER PRIMARY KEY AUTOINCREMENT,
             business_id INTEGER NOT NULL REFERENCES businesses(id),
             code TEXT NOT NULL,
             status TEXT NOT NULL DEFAULT 'active',
             discount_type TEXT NOT NULL CHECK (discount_type IN ('percentage', 'fixed')),
             discount_value REAL NOT NULL,
             max_discount_amount REAL,
             valid_from TEXT NOT NULL,
             valid_until TEXT NOT NULL,
             total_uses INTEGER,
             current_uses INTEGER NOT NULL DEFAULT 0,
             min_purchase REAL,
             service_ids TEXT NOT NULL DEFAULT '[]',
             UNIQUE(business_id, code),
             CHECK (total_uses IS NULL OR current_uses <= total_uses))"""
        )

        await db.execute(
            """CREATE TABLE IF NOT EXISTS promotion_usages
            (id INTEGER PRIMARY KEY AUTOINCREMENT,
             promotion_id INTEGER NOT NULL REFERENCES promotions(id),
             client_id INTEGER NOT NULL,
             appointment_id INTEGER NOT NULL REFERENCES appointments(id),
             used_at TEXT NOT NULL)"""
        )

        # Индексы
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_promotions_lookup ON promotions(business_id, code, status)"
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_promotion_usages ON promotion_usages(promotion_id)"
        )

    async def downgrade(self, db):
        """Откат миграции"""
        await db.execute("DROP TABLE IF EXISTS promotion_usages")
        await db.execute("DROP TABLE IF EXISTS promotions")
