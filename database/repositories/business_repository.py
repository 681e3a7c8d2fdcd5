"""Репозиторий для работы с бизнесами"""

from typing import Optional

from database.base_repository import BaseRepository
from database.models import BookingConfig, Business, WeeklySchedule


class BusinessRepository(BaseRepository):
    """Репозиторий бизнесов (ядро только читает)"""

    @staticmethod
    def _from_row(row) -> Business:
        return Business(
            id=row["id"],
            name=row["name"],
            is_active=bool(row["is_active"]),
            schedule=WeeklySchedule.from_json(row["schedule"]),
            booking_config=BookingConfig.from_json(row["booking_config"]),
        )

    @staticmethod
    async def get_business(business_id: int, active_only: bool = True) -> Optional[Business]:
        """Получить бизнес по ID"""
        query = "SELECT * FROM businesses WHERE id=?"
        if active_only:
            query += " AND is_active=1"
        row = await BusinessRepository._execute_query(query, (business_id,), fetch_one=True)
        return BusinessRepository._from_row(row) if row else None

    @staticmethod
    async def create_business(business: Business) -> int:
        """Создать бизнес"""
        return await BusinessRepository._execute_query(
            """INSERT INTO businesses (name, is_active, schedule, booking_config)
            VALUES (?, ?, ?, ?)""",
            (
                business.name,
                business.is_active,
                business.schedule.to_json(),
                business.booking_config.to_json(),
            ),
            commit=True,
        )
