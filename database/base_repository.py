"""Базовый репозиторий"""

from typing import Any, Optional, Tuple

import aiosqlite

import config


class BaseRepository:
    """Общие помощники для запросов к SQLite"""

    @staticmethod
    def _db_path() -> str:
        return config.DATABASE_PATH

    @staticmethod
    async def _execute_query(
        query: str,
        params: Tuple = (),
        commit: bool = False,
        fetch_one: bool = False,
        fetch_all: bool = False,
    ) -> Any:
        """Выполнить запрос в отдельном соединении

        Returns:
            Строку, список строк или lastrowid (для commit)
        """
        async with aiosqlite.connect(BaseRepository._db_path()) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(query, params) as cursor:
                if fetch_one:
                    return await cursor.fetchone()
                if fetch_all:
                    return await cursor.fetchall()
                if commit:
                    await db.commit()
                    return cursor.lastrowid
        return None

    @staticmethod
    async def _count(table: str, where: str = "", params: Tuple = ()) -> int:
        """Количество строк в таблице"""
        query = f"SELECT COUNT(*) FROM {table}"
        if where:
            query += f" WHERE {where}"
        row = await BaseRepository._execute_query(query, params, fetch_one=True)
        return row[0] if row else 0

    @staticmethod
    async def _fetch_one_on(
        db: aiosqlite.Connection, query: str, params: Tuple = ()
    ) -> Optional[aiosqlite.Row]:
        """Чтение одной строки на уже открытом соединении (внутри транзакции)"""
        async with db.execute(query, params) as cursor:
            return await cursor.fetchone()
