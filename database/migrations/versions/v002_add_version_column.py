"""Добавление колонки version для оптимистичной блокировки"""

from database.migrations.migration_manager import Migration


class AddVersionColumn(Migration):
    version = 2
    description = "Add version column for optimistic locking in appointments"

    async def upgrade(self, db):
        # Добавляем колонку version
        await db.execute("ALTER TABLE appointments ADD COLUMN version INTEGER DEFAULT 1")

        # Обновляем существующие записи
        await db.execute("UPDATE appointments SET version=1 WHERE version IS NULL")

    async def downgrade(self, db):
        # DROP COLUMN доступен начиная с SQLite 3.35
        await db.execute("ALTER TABLE appointments DROP COLUMN version")
