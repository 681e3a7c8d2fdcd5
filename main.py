"""Главный файл приложения"""

import asyncio
import logging

from aiogram import Bot, Dispatcher
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from config import BOT_TOKEN, TIMEZONE
from database.queries import Database
from handlers import payment_handlers
from services.booking_service import BookingService
from services.notification_service import NotificationService
from services.payment_service import PaymentService

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


async def main():
    """Главная функция"""
    # Инициализация
    bot = Bot(token=BOT_TOKEN)
    dp = Dispatcher()

    scheduler = AsyncIOScheduler(
        timezone=TIMEZONE,
        job_defaults={
            'coalesce': False,
            'max_instances': 1
        }
    )

    # Инициализация БД
    await Database.init_db()

    # Сервисы
    notification_service = NotificationService(bot, scheduler)
    payment_service = PaymentService(bot)
    booking_service = BookingService(notification_service, payment_service)

    # Регистрация сервисов для dependency injection
    dp["booking_service"] = booking_service
    dp["notification_service"] = notification_service

    dp.include_router(payment_handlers.router)

    # Восстановление напоминаний
    await notification_service.restore_reminders()

    # Запуск планировщика
    scheduler.start()

    logging.info("🚀 Booking core started")

    try:
        await dp.start_polling(bot, skip_updates=True)
    finally:
        await bot.session.close()
        scheduler.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
