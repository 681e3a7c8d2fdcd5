"""Проверка пересечений записей сотрудника"""

from datetime import datetime
from typing import Iterable, Optional

import aiosqlite

import config
from database.models import ACTIVE_STATUSES, Appointment
from database.repositories.appointment_repository import AppointmentRepository
from utils.datetime_utils import overlaps


def find_conflict(
    appointments: Iterable[Appointment],
    start_at: datetime,
    end_at: datetime,
    exclude_id: Optional[int] = None,
) -> Optional[Appointment]:
    """Первая активная запись, пересекающая [start_at, end_at)

    Существующая запись занимает сотрудника до reserved_end_at (с буфером),
    поэтому результат не зависит от порядка создания записей.
    """
    for appointment in appointments:
        if exclude_id is not None and appointment.id == exclude_id:
            continue
        if appointment.status not in ACTIVE_STATUSES:
            continue
        if overlaps(appointment.start_at, appointment.reserved_end_at, start_at, end_at):
            return appointment
    return None


class ConflictDetector:
    """Авторитетная проверка занятости сотрудника"""

    @staticmethod
    async def find_conflicting(
        db: aiosqlite.Connection,
        business_id: int,
        staff_id: int,
        date_str: str,
        start_at: datetime,
        end_at: datetime,
        exclude_id: Optional[int] = None,
    ) -> Optional[Appointment]:
        """Проверка на соединении вызывающего

        Должна выполняться внутри той же транзакции (BEGIN IMMEDIATE),
        что и последующая запись, иначе возможна гонка check-then-act.
        """
        existing = await AppointmentRepository.find_active_on(
            db, business_id, date_str, staff_id=staff_id
        )
        return find_conflict(existing, start_at, end_at, exclude_id)

    @staticmethod
    async def is_staff_free(
        business_id: int,
        staff_id: int,
        date_str: str,
        start_at: datetime,
        end_at: datetime,
        exclude_id: Optional[int] = None,
    ) -> bool:
        """Проверка только для чтения (без последующей записи)"""
        async with aiosqlite.connect(config.DATABASE_PATH) as db:
            conflict = await ConflictDetector.find_conflicting(
                db, business_id, staff_id, date_str, start_at, end_at, exclude_id
            )
        return conflict is None
