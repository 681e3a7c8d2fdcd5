"""Сервис уведомлений и напоминаний"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from aiogram import Bot
from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from config import ADMIN_IDS, DAY_NAMES, FEEDBACK_DELAY_HOURS, REMINDER_OFFSETS_HOURS
from database.models import Appointment
from database.repositories.appointment_repository import AppointmentRepository
from utils.datetime_utils import now_local, parse_date


def reminder_job_ids(appointment_id: int) -> list:
    """ID всех job'ов, связанных с записью"""
    ids = [f"reminder_{hours}h_{appointment_id}" for hours in REMINDER_OFFSETS_HOURS]
    ids.append(f"feedback_{appointment_id}")
    return ids


def _format_when(date_str: str, time_str: str) -> str:
    date_obj = parse_date(date_str)
    return f"{date_obj.strftime('%d.%m.%Y')} ({DAY_NAMES[date_obj.weekday()]}) в {time_str}"


class NotificationService:
    """Отправка уведомлений клиенту/админам и планирование напоминаний

    Все методы - fire-and-forget: ошибки логируются и не пробрасываются.
    """

    def __init__(self, bot: Bot, scheduler: AsyncIOScheduler):
        self.bot = bot
        self.scheduler = scheduler

    async def _send(self, chat_id: int, text: str, reply_markup=None):
        try:
            await self.bot.send_message(chat_id, text, reply_markup=reply_markup)
        except Exception as e:
            logging.error(f"Failed to send message to {chat_id}: {e}")

    async def _notify_admins(self, text: str):
        for admin_id in ADMIN_IDS:
            await self._send(admin_id, text)

    # === ПОДТВЕРЖДЕНИЯ ===

    async def send_confirmation(self, appointment: Appointment):
        """Подтверждение создания записи"""
        try:
            services = ", ".join(s.name for s in appointment.services)
            status_line = (
                "⏳ Ожидает подтверждения" if appointment.status == "pending" else "✅ Подтверждена"
            )
            text = (
                "🎉 Запись создана\n\n"
                f"📅 {_format_when(appointment.date, appointment.start_time)}\n"
                f"💇 {services}\n"
                f"💰 {appointment.total:.2f}\n"
                f"{status_line}"
            )
            if appointment.deposit > 0:
                text += f"\n💳 Депозит: {appointment.deposit:.2f}"
            await self._send(appointment.client_id, text)
            await self._notify_admins(
                "🔔 Новая запись\n\n"
                f"{_format_when(appointment.date, appointment.start_time)}\n"
                f"Клиент: {appointment.client_id}, сотрудник: {appointment.staff_id}"
            )
        except Exception as e:
            logging.error(f"Error sending confirmation for {appointment.id}: {e}")

    async def send_cancellation(self, appointment: Appointment, refund_amount: float = 0):
        """Уведомление об отмене"""
        try:
            text = (
                "❌ Запись отменена\n\n"
                f"📅 {_format_when(appointment.date, appointment.start_time)}"
            )
            if refund_amount > 0:
                text += f"\n💸 Возврат: {refund_amount:.2f}"
            await self._send(appointment.client_id, text)
            await self._notify_admins(
                "❌ Отмена\n\n"
                f"{_format_when(appointment.date, appointment.start_time)}\n"
                f"ID записи: {appointment.id}"
            )
        except Exception as e:
            logging.error(f"Error sending cancellation for {appointment.id}: {e}")

    async def send_reschedule(self, appointment: Appointment, old_date: str, old_time: str):
        """Уведомление о переносе"""
        try:
            text = (
                "🔄 Запись перенесена\n\n"
                f"Было: {_format_when(old_date, old_time)}\n"
                f"Стало: {_format_when(appointment.date, appointment.start_time)}"
            )
            await self._send(appointment.client_id, text)
            await self._notify_admins(f"🔄 Перенос записи {appointment.id}\n\n{text}")
        except Exception as e:
            logging.error(f"Error sending reschedule notice for {appointment.id}: {e}")

    # === НАПОМИНАНИЯ ===

    def schedule_reminders(self, appointment: Appointment, now: Optional[datetime] = None):
        """Планирование напоминаний до начала и запроса отзыва после окончания"""
        now = now or now_local()
        try:
            for hours in REMINDER_OFFSETS_HOURS:
                run_date = appointment.start_at - timedelta(hours=hours)
                if run_date <= now:
                    continue
                self.scheduler.add_job(
                    self._send_reminder,
                    "date",
                    run_date=run_date,
                    args=[appointment.client_id, appointment.date, appointment.start_time, hours],
                    id=f"reminder_{hours}h_{appointment.id}",
                    replace_existing=True,
                )

            feedback_time = appointment.end_at + timedelta(hours=FEEDBACK_DELAY_HOURS)
            if feedback_time > now:
                self.scheduler.add_job(
                    self._send_feedback_request,
                    "date",
                    run_date=feedback_time,
                    args=[appointment.client_id, appointment.id],
                    id=f"feedback_{appointment.id}",
                    replace_existing=True,
                )
        except Exception as e:
            logging.error(f"Error scheduling reminders for {appointment.id}: {e}")

    def cancel_reminders(self, appointment_id: int):
        """Отмена всех запланированных job'ов записи"""
        for job_id in reminder_job_ids(appointment_id):
            self._remove_job_safe(job_id)

    def _remove_job_safe(self, job_id: str):
        """Безопасное удаление задачи из scheduler"""
        try:
            self.scheduler.remove_job(job_id)
        except Exception:
            # Job'а может не быть (уже сработал или не планировался)
            logging.debug(f"Job {job_id} not found in scheduler")

    async def restore_reminders(self) -> int:
        """Восстановить напоминания после рестарта"""
        try:
            now = now_local()
            appointments = await AppointmentRepository.find_upcoming_active(now)
            for appointment in appointments:
                self.schedule_reminders(appointment, now=now)
            logging.info(f"Restored reminders for {len(appointments)} appointments")
            return len(appointments)
        except Exception as e:
            logging.error(f"Error restoring reminders: {e}")
            return 0

    async def _send_reminder(self, user_id: int, date_str: str, time_str: str, hours: int):
        """Отправка напоминания"""
        await self._send(
            user_id,
            "⏰ НАПОМИНАНИЕ!\n\n"
            f"Через {hours} ч у вас запись:\n"
            f"📅 {_format_when(date_str, time_str)}",
        )

    async def _send_feedback_request(self, user_id: int, appointment_id: int):
        """Запрос обратной связи"""
        feedback_kb = InlineKeyboardMarkup(
            inline_keyboard=[
                [
                    InlineKeyboardButton(
                        text="⭐" * rating, callback_data=f"feedback:{appointment_id}:{rating}"
                    )
                    for rating in (5, 4)
                ],
                [
                    InlineKeyboardButton(
                        text="⭐" * rating, callback_data=f"feedback:{appointment_id}:{rating}"
                    )
                    for rating in (3, 2, 1)
                ],
            ]
        )
        await self._send(
            user_id,
            "💬 Как прошла встреча?\n\nОцените качество услуги:",
            reply_markup=feedback_kb,
        )
