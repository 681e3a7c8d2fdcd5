"""Репозиторий для работы с услугами"""

from typing import List

from database.base_repository import BaseRepository
from database.models import Service


class ServiceRepository(BaseRepository):
    """Репозиторий для услуг"""

    @staticmethod
    def _from_row(row) -> Service:
        return Service(
            id=row["id"],
            business_id=row["business_id"],
            name=row["name"],
            duration_minutes=row["duration_minutes"],
            price=row["price"],
            final_price=row["final_price"],
            is_active=bool(row["is_active"]),
        )

    @staticmethod
    async def get_services(business_id: int, service_ids: List[int]) -> List[Service]:
        """Активные услуги бизнеса в порядке запроса

        Отсутствующие или чужие ID просто не попадают в результат.
        """
        if not service_ids:
            return []
        placeholders = ",".join("?" * len(service_ids))
        rows = await ServiceRepository._execute_query(
            f"""SELECT * FROM services
            WHERE business_id=? AND is_active=1 AND id IN ({placeholders})""",
            (business_id, *service_ids),
            fetch_all=True,
        )
        by_id = {row["id"]: ServiceRepository._from_row(row) for row in rows or []}
        return [by_id[sid] for sid in service_ids if sid in by_id]

    @staticmethod
    async def create_service(service: Service) -> int:
        """Создать новую услугу"""
        return await ServiceRepository._execute_query(
            """INSERT INTO services
            (business_id, name, duration_minutes, price, final_price, is_active)
            VALUES (?, ?, ?, ?, ?, ?)""",
            (service.business_id, service.name, service.duration_minutes,
             service.price, service.final_price, service.is_active),
            commit=True,
        )
