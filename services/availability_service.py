"""Расчет сетки свободных слотов на день"""

import asyncio
import logging
from typing import Iterable, List, Optional, Tuple

from database.models import Appointment, Business, Slot, Staff
from database.repositories.appointment_repository import AppointmentRepository
from database.repositories.business_repository import BusinessRepository
from database.repositories.service_repository import ServiceRepository
from database.repositories.staff_repository import StaffRepository
from services.conflict_detector import find_conflict
from services.errors import ErrorCode
from utils.datetime_utils import interval_for, minutes_to_time, parse_date, time_to_minutes


def day_slot_times(business: Business, date_str: str, total_duration: int = 0) -> List[str]:
    """Времена начала слотов за день по всем окнам работы

    Шаг сетки - slot_duration. Слот не включается, если слот или сама
    запись (услуги + буфер) выходит за время закрытия окна.
    """
    day = business.schedule.for_date(date_str, parse_date(date_str).weekday())
    if not day.is_open:
        return []

    step = business.booking_config.slot_duration
    span = max(step, total_duration)
    times = []
    for open_str, close_str in sorted(day.windows, key=lambda w: time_to_minutes(w[0])):
        current = time_to_minutes(open_str)
        close = time_to_minutes(close_str)
        while current + span <= close:
            times.append(minutes_to_time(current))
            current += step
    return times


def staff_free_times(
    times: List[str],
    date_str: str,
    total_duration: int,
    appointments: List[Appointment],
) -> set:
    """Времена из сетки, в которые у сотрудника нет пересечений"""
    free = set()
    for time_str in times:
        if time_to_minutes(time_str) + total_duration > 24 * 60:
            continue
        start_at, end_at = interval_for(date_str, time_str, total_duration)
        if find_conflict(appointments, start_at, end_at) is None:
            free.add(time_str)
    return free


class AvailabilityService:
    """Сервис доступности"""

    @staticmethod
    async def check_availability(
        business_id: int,
        date_str: str,
        service_ids: Iterable[int],
        staff_id: Optional[int] = None,
    ) -> Tuple[List[Slot], ErrorCode]:
        """Слоты дня с признаком доступности и списком свободных сотрудников

        Returns:
            (slots, code); выходной день - пустой список и SUCCESS
        """
        service_ids = list(service_ids)
        if not service_ids:
            return [], ErrorCode.INVALID_REQUEST
        try:
            parse_date(date_str)
        except ValueError:
            return [], ErrorCode.INVALID_REQUEST

        business = await BusinessRepository.get_business(business_id)
        if business is None:
            return [], ErrorCode.NOT_FOUND

        services = await ServiceRepository.get_services(business_id, service_ids)
        if len(services) != len(service_ids):
            return [], ErrorCode.NOT_FOUND

        total_duration = (
            sum(s.duration_minutes for s in services) + business.booking_config.buffer_time
        )

        try:
            times = day_slot_times(business, date_str, total_duration)
        except ValueError as e:
            logging.error(f"Broken schedule for business {business_id}: {e}")
            return [], ErrorCode.INVALID_REQUEST
        if not times:
            return [], ErrorCode.SUCCESS

        candidates: List[Staff] = await StaffRepository.get_qualified_staff(business_id, service_ids)
        if staff_id is not None:
            candidates = [s for s in candidates if s.id == staff_id]

        # Читаем записи дня один раз, дальше считаем без общего изменяемого состояния
        day_appointments = await AppointmentRepository.find_active_for_day(business_id, date_str)

        async def _free_for(staff: Staff) -> set:
            own = [a for a in day_appointments if a.staff_id == staff.id]
            return staff_free_times(times, date_str, total_duration, own)

        free_sets = await asyncio.gather(*(_free_for(staff) for staff in candidates))

        slots = []
        for time_str in times:
            staff_available = [
                staff.id for staff, free in zip(candidates, free_sets) if time_str in free
            ]
            slots.append(Slot(
                time=time_str,
                available=bool(staff_available),
                staff_available=staff_available,
            ))
        return slots, ErrorCode.SUCCESS
