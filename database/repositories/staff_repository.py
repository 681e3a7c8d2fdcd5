"""Репозиторий для работы с сотрудниками"""

from collections import defaultdict
from typing import Iterable, List, Optional

import aiosqlite

from database.base_repository import BaseRepository
from database.models import Staff


class StaffRepository(BaseRepository):
    """Репозиторий сотрудников"""

    @staticmethod
    async def _load_service_ids(db: aiosqlite.Connection, staff_ids: List[int]) -> dict:
        result = defaultdict(set)
        if not staff_ids:
            return result
        placeholders = ",".join("?" * len(staff_ids))
        async with db.execute(
            f"SELECT staff_id, service_id FROM staff_services WHERE staff_id IN ({placeholders})",
            tuple(staff_ids),
        ) as cursor:
            for staff_id, service_id in await cursor.fetchall():
                result[staff_id].add(service_id)
        return result

    @staticmethod
    async def get_business_staff(business_id: int) -> List[Staff]:
        """Активные сотрудники бизнеса, упорядоченные по ID"""
        async with aiosqlite.connect(StaffRepository._db_path()) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM staff WHERE business_id=? AND is_active=1 ORDER BY id",
                (business_id,),
            ) as cursor:
                rows = await cursor.fetchall()
            services = await StaffRepository._load_service_ids(db, [r["id"] for r in rows])

        return [
            Staff(
                id=row["id"],
                business_id=row["business_id"],
                name=row["name"],
                service_ids=services[row["id"]],
                is_active=bool(row["is_active"]),
            )
            for row in rows
        ]

    @staticmethod
    async def get_qualified_staff(business_id: int, service_ids: Iterable[int]) -> List[Staff]:
        """Сотрудники, которые выполняют ВСЕ указанные услуги"""
        wanted = set(service_ids)
        return [s for s in await StaffRepository.get_business_staff(business_id) if s.can_perform(wanted)]

    @staticmethod
    async def get_staff(staff_id: int, business_id: int) -> Optional[Staff]:
        """Активный сотрудник бизнеса по ID"""
        for staff in await StaffRepository.get_business_staff(business_id):
            if staff.id == staff_id:
                return staff
        return None

    @staticmethod
    async def create_staff(staff: Staff) -> int:
        """Создать сотрудника вместе со списком услуг"""
        async with aiosqlite.connect(StaffRepository._db_path()) as db:
            cursor = await db.execute(
                "INSERT INTO staff (business_id, name, is_active) VALUES (?, ?, ?)",
                (staff.business_id, staff.name, staff.is_active),
            )
            staff_id = cursor.lastrowid
            await db.executemany(
                "INSERT INTO staff_services (staff_id, service_id) VALUES (?, ?)",
                [(staff_id, service_id) for service_id in sorted(staff.service_ids)],
            )
            await db.commit()
            return staff_id
