"""Запросы к базе данных"""

import logging

import aiosqlite

import config
from database.migrations.migration_manager import MigrationManager
from database.migrations.versions import ALL_MIGRATIONS

# Порядок важен для очистки: дочерние таблицы раньше родительских
TABLES = (
    "promotion_usages",
    "appointment_status_history",
    "appointments",
    "promotions",
    "staff_services",
    "staff",
    "services",
    "businesses",
)


class Database:
    """Класс для работы с базой данных"""

    @staticmethod
    def migration_manager() -> MigrationManager:
        return MigrationManager(config.DATABASE_PATH, ALL_MIGRATIONS)

    @staticmethod
    async def init_db():
        """Инициализация БД: применяем все миграции"""
        version = await Database.migration_manager().migrate()
        logging.info(f"Database initialized at schema version {version}")

    @staticmethod
    async def clear_all():
        """Удалить все данные (схема остается)"""
        async with aiosqlite.connect(config.DATABASE_PATH) as db:
            for table in TABLES:
                await db.execute(f"DELETE FROM {table}")
            await db.commit()
