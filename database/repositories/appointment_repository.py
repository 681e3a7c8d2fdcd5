"""Репозиторий для работы с записями"""

import json
from datetime import datetime
from typing import Iterable, List, Optional

import aiosqlite

from database.base_repository import BaseRepository
from database.models import (
    ACTIVE_STATUSES,
    Appointment,
    AppointmentService,
    Cancellation,
    StatusChange,
)
from utils.datetime_utils import from_iso

_ACTIVE_PLACEHOLDERS = ",".join("?" * len(ACTIVE_STATUSES))


def _cancellation_from_json(raw: Optional[str]) -> Optional[Cancellation]:
    if not raw:
        return None
    data = json.loads(raw)
    data["cancelled_at"] = from_iso(data["cancelled_at"])
    return Cancellation(**data)


class AppointmentRepository(BaseRepository):
    """Репозиторий записей

    Методы с параметром db работают на соединении вызывающего,
    чтобы проверка и запись шли в одной транзакции.
    """

    @staticmethod
    def _from_row(row, history: Optional[List[StatusChange]] = None) -> Appointment:
        return Appointment(
            id=row["id"],
            business_id=row["business_id"],
            client_id=row["client_id"],
            staff_id=row["staff_id"],
            date=row["date"],
            start_time=row["start_time"],
            end_time=row["end_time"],
            start_at=from_iso(row["start_at"]),
            end_at=from_iso(row["end_at"]),
            total_duration=row["total_duration"],
            services=[AppointmentService(**s) for s in json.loads(row["services"])],
            status=row["status"],
            subtotal=row["subtotal"],
            discount=row["discount"],
            promotion_id=row["promotion_id"],
            discount_code=row["discount_code"],
            deposit=row["deposit"],
            deposit_paid=bool(row["deposit_paid"]),
            total=row["total"],
            tip=row["tip"],
            final_total=row["final_total"],
            status_history=history or [],
            cancellation=_cancellation_from_json(row["cancellation"]),
            notes=row["notes"],
            deposit_charge_ref=row["deposit_charge_ref"],
            version=row["version"],
            created_at=from_iso(row["created_at"]),
            updated_at=from_iso(row["updated_at"]),
        )

    @staticmethod
    async def _load_history(db: aiosqlite.Connection, appointment_id: int) -> List[StatusChange]:
        async with db.execute(
            """SELECT status, changed_by, changed_at, reason
            FROM appointment_status_history WHERE appointment_id=? ORDER BY id""",
            (appointment_id,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [
            StatusChange(
                status=row[0], changed_by=row[1], changed_at=from_iso(row[2]), reason=row[3]
            )
            for row in rows
        ]

    @staticmethod
    async def get_on(db: aiosqlite.Connection, appointment_id: int) -> Optional[Appointment]:
        """Запись по ID на открытом соединении"""
        db.row_factory = aiosqlite.Row
        row = await AppointmentRepository._fetch_one_on(
            db, "SELECT * FROM appointments WHERE id=?", (appointment_id,)
        )
        if not row:
            return None
        history = await AppointmentRepository._load_history(db, appointment_id)
        return AppointmentRepository._from_row(row, history)

    @staticmethod
    async def get_by_id(appointment_id: int) -> Optional[Appointment]:
        """Запись по ID вместе с историей статусов"""
        async with aiosqlite.connect(AppointmentRepository._db_path()) as db:
            return await AppointmentRepository.get_on(db, appointment_id)

    @staticmethod
    async def find_active_on(
        db: aiosqlite.Connection,
        business_id: int,
        date_str: str,
        staff_id: Optional[int] = None,
    ) -> List[Appointment]:
        """Активные записи бизнеса за день (опционально одного сотрудника)"""
        db.row_factory = aiosqlite.Row
        query = f"""SELECT * FROM appointments
            WHERE business_id=? AND date=? AND status IN ({_ACTIVE_PLACEHOLDERS})"""
        params = [business_id, date_str, *ACTIVE_STATUSES]
        if staff_id is not None:
            query += " AND staff_id=?"
            params.append(staff_id)
        query += " ORDER BY start_time"

        async with db.execute(query, tuple(params)) as cursor:
            rows = await cursor.fetchall()
        return [AppointmentRepository._from_row(row) for row in rows]

    @staticmethod
    async def find_active_for_day(business_id: int, date_str: str) -> List[Appointment]:
        """Активные записи бизнеса за день (отдельное соединение, только чтение)"""
        async with aiosqlite.connect(AppointmentRepository._db_path()) as db:
            return await AppointmentRepository.find_active_on(db, business_id, date_str)

    @staticmethod
    async def find_upcoming_active(now: datetime) -> List[Appointment]:
        """Будущие активные записи (для восстановления напоминаний)"""
        async with aiosqlite.connect(AppointmentRepository._db_path()) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                f"""SELECT * FROM appointments
                WHERE date >= ? AND status IN ({_ACTIVE_PLACEHOLDERS})
                ORDER BY date, start_time""",
                (now.date().isoformat(), *ACTIVE_STATUSES),
            ) as cursor:
                rows = await cursor.fetchall()
        return [a for a in map(AppointmentRepository._from_row, rows) if a.end_at > now]

    @staticmethod
    async def insert(db: aiosqlite.Connection, appointment: Appointment) -> int:
        """Вставка новой записи (внутри транзакции вызывающего)"""
        cursor = await db.execute(
            """INSERT INTO appointments
            (business_id, client_id, staff_id, date, start_time, end_time, start_at, end_at,
             total_duration, services, status, subtotal, discount, promotion_id, discount_code,
             deposit, deposit_paid, total, tip, final_total, notes, version, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                appointment.business_id,
                appointment.client_id,
                appointment.staff_id,
                appointment.date,
                appointment.start_time,
                appointment.end_time,
                appointment.start_at.isoformat(),
                appointment.end_at.isoformat(),
                appointment.total_duration,
                appointment.services_json(),
                appointment.status,
                appointment.subtotal,
                appointment.discount,
                appointment.promotion_id,
                appointment.discount_code,
                appointment.deposit,
                appointment.deposit_paid,
                appointment.total,
                appointment.tip,
                appointment.final_total,
                appointment.notes,
                appointment.version,
                appointment.created_at.isoformat(),
                appointment.updated_at.isoformat(),
            ),
        )
        return cursor.lastrowid

    @staticmethod
    async def add_history(db: aiosqlite.Connection, appointment_id: int, change: StatusChange):
        """Добавить запись в историю статусов (только добавление)"""
        await db.execute(
            """INSERT INTO appointment_status_history
            (appointment_id, status, changed_by, changed_at, reason)
            VALUES (?, ?, ?, ?, ?)""",
            (appointment_id, change.status, change.changed_by,
             change.changed_at.isoformat(), change.reason),
        )

    @staticmethod
    async def update_schedule(
        db: aiosqlite.Connection,
        appointment: Appointment,
        expected_version: int,
        allowed_statuses: Iterable[str],
    ) -> bool:
        """Перенос: обновить время при совпадении версии и статуса"""
        allowed = tuple(allowed_statuses)
        cursor = await db.execute(
            f"""UPDATE appointments
            SET date=?, start_time=?, end_time=?, start_at=?, end_at=?,
                updated_at=?, version=version + 1
            WHERE id=? AND version=? AND status IN ({",".join("?" * len(allowed))})""",
            (
                appointment.date,
                appointment.start_time,
                appointment.end_time,
                appointment.start_at.isoformat(),
                appointment.end_at.isoformat(),
                appointment.updated_at.isoformat(),
                appointment.id,
                expected_version,
                *allowed,
            ),
        )
        return cursor.rowcount == 1

    @staticmethod
    async def update_status(
        db: aiosqlite.Connection,
        appointment_id: int,
        new_status: str,
        expected_version: int,
        allowed_statuses: Iterable[str],
        updated_at: datetime,
        cancellation: Optional[Cancellation] = None,
    ) -> bool:
        """Смена статуса при совпадении версии и исходного статуса"""
        allowed = tuple(allowed_statuses)
        cursor = await db.execute(
            f"""UPDATE appointments
            SET status=?, cancellation=COALESCE(?, cancellation),
                updated_at=?, version=version + 1
            WHERE id=? AND version=? AND status IN ({",".join("?" * len(allowed))})""",
            (
                new_status,
                cancellation.to_json() if cancellation else None,
                updated_at.isoformat(),
                appointment_id,
                expected_version,
                *allowed,
            ),
        )
        return cursor.rowcount == 1

    @staticmethod
    async def set_deposit_charge(appointment_id: int, charge_ref: str, paid: bool) -> bool:
        """Сохранить ссылку на платеж депозита"""
        async with aiosqlite.connect(AppointmentRepository._db_path()) as db:
            cursor = await db.execute(
                """UPDATE appointments
                SET deposit_charge_ref=?, deposit_paid=MAX(deposit_paid, ?)
                WHERE id=?""",
                (charge_ref, paid, appointment_id),
            )
            await db.commit()
            return cursor.rowcount == 1

    @staticmethod
    async def mark_deposit_paid(appointment_id: int, charge_ref: Optional[str]) -> bool:
        """Отметить депозит оплаченным (только один раз)"""
        async with aiosqlite.connect(AppointmentRepository._db_path()) as db:
            cursor = await db.execute(
                """UPDATE appointments
                SET deposit_paid=1, deposit_charge_ref=COALESCE(?, deposit_charge_ref),
                    version=version + 1
                WHERE id=? AND deposit_paid=0 AND deposit > 0""",
                (charge_ref, appointment_id),
            )
            await db.commit()
            return cursor.rowcount == 1
