"""Конфигурация приложения"""

import os

import pytz
from dotenv import load_dotenv

load_dotenv()

# Telegram
BOT_TOKEN = os.getenv("BOT_TOKEN")

# Админы (поддержка нескольких)
ADMIN_IDS_STR = os.getenv("ADMIN_IDS", "")
if not ADMIN_IDS_STR:
    raise ValueError("ADMIN_IDS not found in .env file")

ADMIN_IDS = [int(id.strip()) for id in ADMIN_IDS_STR.split(",") if id.strip()]

if not BOT_TOKEN:
    raise ValueError("BOT_TOKEN not found in .env file")
if not ADMIN_IDS:
    raise ValueError("No valid admin IDs provided")

# База данных
DATABASE_PATH = os.getenv("DATABASE_PATH", "bookings.db")

# Временная зона бизнеса (одни локальные часы на всё ядро)
TIMEZONE = pytz.timezone(os.getenv("TIMEZONE", "Europe/Moscow"))

# Оплата депозита (пустой токен = депозиты не выставляются)
PAYMENT_PROVIDER_TOKEN = os.getenv("PAYMENT_PROVIDER_TOKEN", "")
CURRENCY = os.getenv("CURRENCY", "RUB")

# Напоминания: за сколько часов до начала (только будущие)
REMINDER_OFFSETS_HOURS = (24, 2, 1)
# Запрос обратной связи через N часов после окончания
FEEDBACK_DELAY_HOURS = 2

# Значения по умолчанию для настроек записи бизнеса
DEFAULT_SLOT_DURATION = 30
DEFAULT_MIN_ADVANCE_HOURS = 1
DEFAULT_MAX_ADVANCE_DAYS = 30
DEFAULT_CANCELLATION_HOURS = 24

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"

# Названия дней недели
DAY_NAMES = [
    "понедельник",
    "вторник",
    "среду",
    "четверг",
    "пятницу",
    "субботу",
    "воскресенье",
]
