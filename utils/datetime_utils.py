"""Утилиты для работы с датами и временем"""

from datetime import date, datetime, timedelta
from typing import Union

import pytz

from config import DATE_FORMAT, TIME_FORMAT, TIMEZONE

Instant = Union[int, datetime]


def now_local() -> datetime:
    """Текущее время в timezone приложения (aware)"""
    return datetime.now(TIMEZONE)


def time_to_minutes(time_str: str) -> int:
    """Перевод "HH:MM" в минуты от полуночи

    Raises:
        ValueError: строка не в формате HH:MM
    """
    parts = time_str.split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ValueError(f"Invalid time format: {time_str!r}")

    hours, minutes = int(parts[0]), int(parts[1])
    if hours > 23 or minutes > 59:
        raise ValueError(f"Invalid time value: {time_str!r}")
    return hours * 60 + minutes


def minutes_to_time(minutes: int) -> str:
    """Перевод минут от полуночи в "HH:MM" """
    if minutes < 0:
        raise ValueError(f"Negative minutes: {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def overlaps(start_a: Instant, end_a: Instant, start_b: Instant, end_b: Instant) -> bool:
    """Пересечение полуоткрытых интервалов [start, end)

    Соприкосновение границ пересечением не считается.
    """
    return start_a < end_b and end_a > start_b


def parse_date(date_str: str) -> date:
    """Парсинг даты YYYY-MM-DD"""
    return datetime.strptime(date_str, DATE_FORMAT).date()


def localize_datetime(dt: datetime) -> datetime:
    """Безопасная локализация datetime с учетом DST

    Args:
        dt: Наивный datetime объект

    Returns:
        Aware datetime в TIMEZONE приложения
    """
    if dt.tzinfo is not None:
        # Уже aware - конвертируем в нужную зону
        return dt.astimezone(TIMEZONE)

    # Используем is_dst=None чтобы получить исключение при неоднозначности
    try:
        return TIMEZONE.localize(dt, is_dst=None)
    except pytz.exceptions.AmbiguousTimeError:
        # Время попадает на переход часов - используем стандартное время
        return TIMEZONE.localize(dt, is_dst=False)
    except pytz.exceptions.NonExistentTimeError:
        # Время не существует (пропущено при переходе) - сдвигаем на час вперед
        return TIMEZONE.localize(dt + timedelta(hours=1), is_dst=True)


def parse_datetime(date_str: str, time_str: str) -> datetime:
    """Парсинг даты и времени в aware datetime

    Args:
        date_str: Дата в формате YYYY-MM-DD
        time_str: Время в формате HH:MM

    Returns:
        Aware datetime объект
    """
    naive_dt = datetime.strptime(f"{date_str} {time_str}", f"{DATE_FORMAT} {TIME_FORMAT}")
    return localize_datetime(naive_dt)


def interval_for(date_str: str, start_time: str, duration_minutes: int) -> tuple:
    """Абсолютный интервал [start, end) записи в локальных часах бизнеса"""
    start_at = parse_datetime(date_str, start_time)
    end_at = localize_datetime(start_at.replace(tzinfo=None) + timedelta(minutes=duration_minutes))
    return start_at, end_at


def hours_until(dt: datetime, now: datetime) -> float:
    """Сколько часов осталось до dt (отрицательно для прошедшего)"""
    return (dt - now).total_seconds() / 3600


def from_iso(value: str) -> datetime:
    """Чтение ISO-строки из БД в локальное aware datetime"""
    return localize_datetime(datetime.fromisoformat(value))
