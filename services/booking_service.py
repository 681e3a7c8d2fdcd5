"""Сервис управления записями (жизненный цикл)"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

import aiosqlite

import config
from database.models import (
    DISCOUNT_FIXED,
    MUTABLE_STATUSES,
    PENALTY_NONE,
    STATUS_CANCELLED,
    STATUS_CHECKED_IN,
    STATUS_COMPLETED,
    STATUS_CONFIRMED,
    STATUS_IN_PROGRESS,
    STATUS_NO_SHOW,
    STATUS_PENDING,
    STATUS_RESCHEDULED,
    Appointment,
    AppointmentService,
    BookingConfig,
    Cancellation,
    CancellationPolicy,
    StatusChange,
)
from database.repositories.appointment_repository import AppointmentRepository
from database.repositories.business_repository import BusinessRepository
from database.repositories.promotion_repository import PromotionRepository
from database.repositories.service_repository import ServiceRepository
from database.repositories.staff_repository import StaffRepository
from services.conflict_detector import ConflictDetector
from services.errors import ErrorCode
from services.notification_service import NotificationService
from services.payment_service import PaymentService
from services.pricing_service import compute_pricing
from services.promotion_service import PromotionService
from utils.datetime_utils import (
    hours_until,
    interval_for,
    minutes_to_time,
    now_local,
    parse_date,
    time_to_minutes,
)

MINUTES_PER_DAY = 24 * 60

# Переходы, которые выполняет бизнес: действие -> (из каких статусов, в какой)
STATUS_TRANSITIONS = {
    "confirm": ((STATUS_PENDING,), STATUS_CONFIRMED),
    "check_in": ((STATUS_PENDING, STATUS_CONFIRMED), STATUS_CHECKED_IN),
    "start": ((STATUS_CHECKED_IN,), STATUS_IN_PROGRESS),
    "complete": ((STATUS_CHECKED_IN, STATUS_IN_PROGRESS), STATUS_COMPLETED),
    "no_show": ((STATUS_PENDING, STATUS_CONFIRMED), STATUS_NO_SHOW),
}
TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED, STATUS_NO_SHOW)


@dataclass
class BookingRequest:
    """Запрос на создание записи"""
    client_id: int
    business_id: int
    service_ids: List[int]
    date: str
    start_time: str
    staff_id: Optional[int] = None
    discount_code: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class CancellationResult:
    """Результат отмены"""
    appointment: Appointment
    refund_amount: float
    penalty_applied: bool


@dataclass
class _Window:
    start_at: datetime
    end_at: datetime
    end_time: str
    # Конец интервала вместе с буфером (для проверки пересечений)
    reserved_end: datetime


def within_advance_window(
    start_at: datetime, booking_config: BookingConfig, now: datetime, check_max: bool = True
) -> bool:
    """now + min_advance <= start <= now + max_advance"""
    if start_at < now + timedelta(hours=booking_config.min_advance_hours):
        return False
    if check_max and start_at > now + timedelta(days=booking_config.max_advance_days):
        return False
    return True


def calculate_penalty(deposit: float, policy: CancellationPolicy) -> float:
    """Штраф за позднюю отмену, удерживаемый из депозита"""
    if policy.penalty_type == PENALTY_NONE:
        return 0
    if policy.penalty_type == DISCOUNT_FIXED:
        penalty = policy.penalty_amount
    else:
        penalty = deposit * policy.penalty_percentage / 100
    return max(0, min(penalty, deposit))


def calculate_refund(
    deposit: float, policy: CancellationPolicy, start_at: datetime, now: datetime
) -> Tuple[float, bool]:
    """Возврат при отмене

    Returns:
        (refund_amount, penalty_applied)
    """
    if not policy.allow_cancellation:
        # Политика запрещает возврат, но не саму отмену
        return 0, False

    if hours_until(start_at, now) < policy.hours_before_appointment:
        penalty = calculate_penalty(deposit, policy)
        return deposit - penalty, penalty > 0

    return deposit, False


def _schedule_window(
    date_str: str, start_time: str, duration: int, buffer_time: int = 0
) -> Optional[_Window]:
    """Интервал записи; None если формат неверен или запись доходит до полуночи"""
    try:
        parse_date(date_str)
        start_minutes = time_to_minutes(start_time)
    except ValueError:
        return None
    end_minutes = start_minutes + duration
    if duration <= 0 or end_minutes >= MINUTES_PER_DAY:
        return None
    start_at, end_at = interval_for(date_str, start_time, duration)
    _, reserved_end = interval_for(date_str, start_time, duration + buffer_time)
    return _Window(
        start_at=start_at,
        end_at=end_at,
        end_time=minutes_to_time(end_minutes),
        reserved_end=reserved_end,
    )


class BookingService:
    """Сервис для работы с записями

    Все операции возвращают (значение, ErrorCode). Проверка пересечений
    и запись выполняются в одной транзакции BEGIN IMMEDIATE; уведомления
    и депозит - только после commit и не откатывают запись.
    """

    def __init__(
        self,
        notification_service: NotificationService,
        payment_service: Optional[PaymentService] = None,
    ):
        self.notification_service = notification_service
        self.payment_service = payment_service

    # === СОЗДАНИЕ ===

    async def create_booking(
        self, request: BookingRequest, now: Optional[datetime] = None
    ) -> Tuple[Optional[Appointment], ErrorCode]:
        """Создание записи с атомарной проверкой пересечений"""
        now = now or now_local()
        service_ids = list(request.service_ids)
        if not service_ids or len(set(service_ids)) != len(service_ids):
            return None, ErrorCode.INVALID_REQUEST

        business = await BusinessRepository.get_business(request.business_id)
        if business is None:
            return None, ErrorCode.NOT_FOUND
        booking_config = business.booking_config

        services = await ServiceRepository.get_services(request.business_id, service_ids)
        if len(services) != len(service_ids):
            return None, ErrorCode.NOT_FOUND

        # Кандидаты: выбранный сотрудник или все, кто умеет все услуги
        if request.staff_id is not None:
            staff = await StaffRepository.get_staff(request.staff_id, request.business_id)
            if staff is None:
                return None, ErrorCode.NOT_FOUND
            if not staff.can_perform(service_ids):
                logging.info(f"Staff {staff.id} cannot perform services {service_ids}")
                return None, ErrorCode.INVALID_REQUEST
            candidates = [staff]
        else:
            candidates = await StaffRepository.get_qualified_staff(request.business_id, service_ids)
            if not candidates:
                return None, ErrorCode.INVALID_REQUEST

        service_duration = sum(s.duration_minutes for s in services)
        window = _schedule_window(
            request.date, request.start_time, service_duration, booking_config.buffer_time
        )
        if window is None:
            return None, ErrorCode.INVALID_REQUEST

        if not within_advance_window(window.start_at, booking_config, now):
            logging.info(f"Booking {request.date} {request.start_time} outside advance window")
            return None, ErrorCode.INVALID_REQUEST

        promotion = None
        if request.discount_code:
            subtotal = sum(s.final_price for s in services)
            promotion, code = await PromotionService.validate_discount(
                request.discount_code, request.business_id, subtotal, service_ids, now
            )
            if promotion is None:
                return None, code
        pricing = compute_pricing(services, booking_config, promotion)

        status = STATUS_PENDING if booking_config.require_confirmation else STATUS_CONFIRMED
        appointment = Appointment(
            id=None,
            business_id=request.business_id,
            client_id=request.client_id,
            staff_id=None,
            date=request.date,
            start_time=request.start_time,
            end_time=window.end_time,
            start_at=window.start_at,
            end_at=window.end_at,
            total_duration=service_duration + booking_config.buffer_time,
            services=[
                AppointmentService(
                    service_id=item.service_id,
                    name=item.name,
                    duration=item.duration,
                    price=item.price,
                    discount=item.discount,
                )
                for item in pricing.items
            ],
            status=status,
            subtotal=pricing.subtotal,
            discount=pricing.discount,
            promotion_id=promotion.id if promotion else None,
            discount_code=promotion.code if promotion else None,
            deposit=pricing.deposit,
            total=pricing.total,
            final_total=pricing.total,
            notes=request.notes,
            created_at=now,
            updated_at=now,
        )
        change = StatusChange(status=status, changed_by=request.client_id, changed_at=now,
                              reason="Booking created")

        async with aiosqlite.connect(config.DATABASE_PATH) as db:
            try:
                await db.execute("BEGIN IMMEDIATE")

                # Первый свободный кандидат (по ID) внутри транзакции
                for candidate in candidates:
                    conflict = await ConflictDetector.find_conflicting(
                        db, request.business_id, candidate.id, request.date,
                        window.start_at, window.reserved_end,
                    )
                    if conflict is None:
                        appointment.staff_id = candidate.id
                        break

                if appointment.staff_id is None:
                    await db.rollback()
                    logging.info(f"Slot {request.date} {request.start_time} not available")
                    return None, ErrorCode.CONFLICT

                appointment.id = await AppointmentRepository.insert(db, appointment)
                await AppointmentRepository.add_history(db, appointment.id, change)

                if promotion is not None:
                    redeemed = await PromotionRepository.increment_usage(
                        db, promotion.id, request.client_id, appointment.id, now
                    )
                    if not redeemed:
                        await db.rollback()
                        logging.info(f"Promotion {promotion.id} exhausted concurrently")
                        return None, ErrorCode.INVALID

                await db.commit()

            except aiosqlite.IntegrityError as e:
                await db.rollback()
                logging.warning(f"Integrity error creating booking: {e}")
                return None, ErrorCode.CONFLICT
            except Exception as e:
                await db.rollback()
                logging.error(f"Error in create_booking: {e}")
                return None, ErrorCode.UNKNOWN_ERROR

        appointment.status_history = [change]
        logging.info(
            f"Booking created: {appointment.id} for client {request.client_id}, "
            f"staff {appointment.staff_id}"
        )

        # Побочные эффекты (вне транзакции)
        await self.notification_service.send_confirmation(appointment)
        self.notification_service.schedule_reminders(appointment, now=now)
        await self._request_deposit(appointment)

        return appointment, ErrorCode.SUCCESS

    async def _request_deposit(self, appointment: Appointment):
        """Выставить счет на депозит; ошибка не влияет на запись"""
        if appointment.deposit <= 0 or self.payment_service is None:
            return
        try:
            charge = await self.payment_service.create_deposit_charge(
                appointment.deposit, appointment.client_id, appointment.id
            )
            if charge is None:
                return
            await AppointmentRepository.set_deposit_charge(
                appointment.id, charge.charge_ref, charge.paid
            )
            appointment.deposit_charge_ref = charge.charge_ref
            appointment.deposit_paid = appointment.deposit_paid or charge.paid
        except Exception as e:
            logging.error(f"Error requesting deposit for {appointment.id}: {e}")

    # === ОТМЕНА ===

    async def cancel_booking(
        self,
        appointment_id: int,
        client_id: Optional[int] = None,
        reason: Optional[str] = None,
        cancelled_by: str = "client",
        changed_by: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Tuple[Optional[CancellationResult], ErrorCode]:
        """Отмена записи с расчетом возврата депозита

        Повторная отмена отклоняется с INVALID_REQUEST.
        """
        now = now or now_local()
        appointment = await AppointmentRepository.get_by_id(appointment_id)
        if appointment is None or (client_id is not None and appointment.client_id != client_id):
            return None, ErrorCode.NOT_FOUND

        if appointment.status not in MUTABLE_STATUSES:
            logging.info(f"Appointment {appointment_id} cannot be cancelled from {appointment.status}")
            return None, ErrorCode.INVALID_REQUEST

        business = await BusinessRepository.get_business(appointment.business_id, active_only=False)
        if business is None:
            return None, ErrorCode.NOT_FOUND

        refund_amount, penalty_applied = calculate_refund(
            appointment.deposit, business.booking_config.cancellation_policy,
            appointment.start_at, now,
        )
        cancellation = Cancellation(
            cancelled_at=now,
            cancelled_by=cancelled_by,
            reason=reason,
            refunded=refund_amount > 0,
            refund_amount=refund_amount,
        )
        change = StatusChange(
            status=STATUS_CANCELLED,
            changed_by=changed_by if changed_by is not None else client_id,
            changed_at=now,
            reason=reason,
        )

        code = await self._apply_status_change(
            appointment, STATUS_CANCELLED, MUTABLE_STATUSES, change, now, cancellation
        )
        if code != ErrorCode.SUCCESS:
            return None, code

        cancelled = replace(
            appointment,
            status=STATUS_CANCELLED,
            cancellation=cancellation,
            status_history=appointment.status_history + [change],
            version=appointment.version + 1,
            updated_at=now,
        )
        logging.info(
            f"Booking {appointment_id} cancelled by {cancelled_by}, "
            f"refund {refund_amount}, penalty {penalty_applied}"
        )

        self.notification_service.cancel_reminders(appointment_id)
        await self.notification_service.send_cancellation(cancelled, refund_amount)

        return CancellationResult(cancelled, refund_amount, penalty_applied), ErrorCode.SUCCESS

    async def _apply_status_change(
        self,
        appointment: Appointment,
        new_status: str,
        allowed_statuses,
        change: StatusChange,
        now: datetime,
        cancellation: Optional[Cancellation] = None,
    ) -> ErrorCode:
        """Условное обновление статуса (версия + исходный статус) и история"""
        async with aiosqlite.connect(config.DATABASE_PATH) as db:
            try:
                await db.execute("BEGIN IMMEDIATE")
                updated = await AppointmentRepository.update_status(
                    db, appointment.id, new_status, appointment.version,
                    allowed_statuses, now, cancellation,
                )
                if not updated:
                    await db.rollback()
                    logging.warning(f"Concurrent modification of appointment {appointment.id}")
                    return ErrorCode.CONFLICT

                await AppointmentRepository.add_history(db, appointment.id, change)
                await db.commit()
                return ErrorCode.SUCCESS
            except Exception as e:
                await db.rollback()
                logging.error(f"Error changing status of {appointment.id}: {e}")
                return ErrorCode.UNKNOWN_ERROR

    # === ПЕРЕНОС ===

    async def reschedule_booking(
        self,
        appointment_id: int,
        new_date: str,
        new_start_time: str,
        client_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Tuple[Optional[Appointment], ErrorCode]:
        """Перенос записи в одной транзакции

        Статус не меняется; в историю пишется отметка rescheduled.
        """
        now = now or now_local()
        appointment = await AppointmentRepository.get_by_id(appointment_id)
        if appointment is None or (client_id is not None and appointment.client_id != client_id):
            return None, ErrorCode.NOT_FOUND

        if appointment.status not in MUTABLE_STATUSES:
            return None, ErrorCode.INVALID_REQUEST

        if appointment.staff_id is None:
            logging.warning(f"Appointment {appointment_id} has no staff, cannot check conflicts")
            return None, ErrorCode.INVALID_REQUEST

        business = await BusinessRepository.get_business(appointment.business_id, active_only=False)
        if business is None:
            return None, ErrorCode.NOT_FOUND
        booking_config = business.booking_config
        if not booking_config.allow_rescheduling:
            logging.info(f"Rescheduling disabled for business {business.id}")
            return None, ErrorCode.INVALID_REQUEST

        duration = appointment.total_duration - booking_config.buffer_time
        window = _schedule_window(new_date, new_start_time, duration, booking_config.buffer_time)
        if window is None:
            return None, ErrorCode.INVALID_REQUEST

        if not within_advance_window(window.start_at, booking_config, now, check_max=False):
            return None, ErrorCode.INVALID_REQUEST

        old_date, old_time = appointment.date, appointment.start_time
        rescheduled = replace(
            appointment,
            date=new_date,
            start_time=new_start_time,
            end_time=window.end_time,
            start_at=window.start_at,
            end_at=window.end_at,
            updated_at=now,
        )
        change = StatusChange(
            status=STATUS_RESCHEDULED,
            changed_by=client_id,
            changed_at=now,
            reason=f"{old_date} {old_time} -> {new_date} {new_start_time}",
        )

        async with aiosqlite.connect(config.DATABASE_PATH) as db:
            try:
                await db.execute("BEGIN IMMEDIATE")

                conflict = await ConflictDetector.find_conflicting(
                    db, appointment.business_id, appointment.staff_id, new_date,
                    window.start_at, window.reserved_end, exclude_id=appointment.id,
                )
                if conflict is not None:
                    await db.rollback()
                    logging.info(f"Slot {new_date} {new_start_time} not available")
                    return None, ErrorCode.CONFLICT

                updated = await AppointmentRepository.update_schedule(
                    db, rescheduled, appointment.version, MUTABLE_STATUSES
                )
                if not updated:
                    await db.rollback()
                    logging.warning(f"Concurrent modification of appointment {appointment_id}")
                    return None, ErrorCode.CONFLICT

                await AppointmentRepository.add_history(db, appointment.id, change)
                await db.commit()

            except aiosqlite.IntegrityError as e:
                await db.rollback()
                logging.warning(f"Integrity error rescheduling {appointment_id}: {e}")
                return None, ErrorCode.CONFLICT
            except Exception as e:
                await db.rollback()
                logging.error(f"Error in reschedule_booking: {e}")
                return None, ErrorCode.UNKNOWN_ERROR

        rescheduled.version = appointment.version + 1
        rescheduled.status_history = appointment.status_history + [change]
        logging.info(f"Booking {appointment_id} rescheduled successfully")

        # Перепланируем напоминания (вне транзакции)
        self.notification_service.cancel_reminders(appointment_id)
        self.notification_service.schedule_reminders(rescheduled, now=now)
        await self.notification_service.send_reschedule(rescheduled, old_date, old_time)

        return rescheduled, ErrorCode.SUCCESS

    # === ДЕЙСТВИЯ БИЗНЕСА ===

    async def update_status(
        self,
        appointment_id: int,
        action: str,
        business_id: Optional[int] = None,
        changed_by: Optional[int] = None,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Tuple[Optional[Appointment], ErrorCode]:
        """Подтверждение, check-in, начало, завершение, неявка"""
        if action not in STATUS_TRANSITIONS:
            return None, ErrorCode.INVALID_REQUEST
        from_statuses, to_status = STATUS_TRANSITIONS[action]
        now = now or now_local()

        appointment = await AppointmentRepository.get_by_id(appointment_id)
        if appointment is None or (
            business_id is not None and appointment.business_id != business_id
        ):
            return None, ErrorCode.NOT_FOUND

        if appointment.status not in from_statuses:
            logging.info(f"Cannot {action} appointment {appointment_id} from {appointment.status}")
            return None, ErrorCode.INVALID_REQUEST

        change = StatusChange(status=to_status, changed_by=changed_by, changed_at=now, reason=reason)
        code = await self._apply_status_change(appointment, to_status, from_statuses, change, now)
        if code != ErrorCode.SUCCESS:
            return None, code

        if to_status in TERMINAL_STATUSES:
            self.notification_service.cancel_reminders(appointment_id)

        logging.info(f"Appointment {appointment_id}: {appointment.status} -> {to_status}")
        return replace(
            appointment,
            status=to_status,
            status_history=appointment.status_history + [change],
            version=appointment.version + 1,
            updated_at=now,
        ), ErrorCode.SUCCESS

    async def mark_deposit_paid(
        self, appointment_id: int, charge_ref: Optional[str] = None
    ) -> Tuple[Optional[Appointment], ErrorCode]:
        """Отметить депозит оплаченным по сигналу платежного провайдера"""
        appointment = await AppointmentRepository.get_by_id(appointment_id)
        if appointment is None:
            return None, ErrorCode.NOT_FOUND

        if not await AppointmentRepository.mark_deposit_paid(appointment_id, charge_ref):
            logging.warning(f"Deposit for {appointment_id} already paid or not required")
            return None, ErrorCode.INVALID_REQUEST

        logging.info(f"Deposit paid for appointment {appointment_id}")
        return await AppointmentRepository.get_by_id(appointment_id), ErrorCode.SUCCESS

    async def get_appointment(
        self, appointment_id: int, client_id: Optional[int] = None
    ) -> Tuple[Optional[Appointment], ErrorCode]:
        """Запись по ID (опционально только своя)"""
        appointment = await AppointmentRepository.get_by_id(appointment_id)
        if appointment is None or (client_id is not None and appointment.client_id != client_id):
            return None, ErrorCode.NOT_FOUND
        return appointment, ErrorCode.SUCCESS
