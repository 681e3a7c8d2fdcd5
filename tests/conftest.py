"""Конфигурация pytest и общие фикстуры для всех тестов

Этот файл содержит:
- Настройку тестовой среды
- Mock объекты для aiogram Bot и APScheduler
- Фикстуры для БД и тестовых данных (бизнес, услуги, сотрудники, промокоды)
- Фикстуры для сервисов
- Автоматическую очистку после тестов
"""

import os
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, Mock

import pytest

# Добавляем корневую папку в PYTHONPATH
sys.path.insert(0, str(Path(__file__).parent.parent))

# ============================================================================
# НАСТРОЙКА ТЕСТОВОЙ СРЕДЫ
# ============================================================================

# Настройка переменных окружения ДО импорта config
os.environ["DATABASE_PATH"] = "./test_bookings.db"
os.environ["BOT_TOKEN"] = "1234567890:ABCdefGHIjklMNOpqrsTUVwxyz12345678"
os.environ["ADMIN_IDS"] = "12345"
os.environ["TIMEZONE"] = "Europe/Moscow"

# Теперь можно импортировать модули проекта
from config import DATABASE_PATH, TIMEZONE  # noqa: E402
from database.models import (  # noqa: E402
    DISCOUNT_PERCENTAGE,
    BookingConfig,
    Business,
    CancellationPolicy,
    DaySchedule,
    Promotion,
    Service,
    Staff,
    WeeklySchedule,
)
from database.queries import Database  # noqa: E402
from database.repositories import (  # noqa: E402
    BusinessRepository,
    PromotionRepository,
    ServiceRepository,
    StaffRepository,
)
from services.booking_service import BookingRequest, BookingService  # noqa: E402
from services.notification_service import NotificationService  # noqa: E402
from services.payment_service import PaymentService  # noqa: E402

# Фиксированное "сейчас": понедельник, 08:00 по времени бизнеса
FIXED_NOW = TIMEZONE.localize(datetime(2030, 1, 7, 8, 0))
BOOKING_DATE = "2030-01-08"
CLIENT_ID = 555


# ============================================================================
# PYTEST КОНФИГУРАЦИЯ
# ============================================================================


def pytest_configure(config):
    """Регистрация пользовательских маркеров"""
    config.addinivalue_line("markers", "slow: mark test as slow running")
    config.addinivalue_line("markers", "integration: integration test")
    config.addinivalue_line("markers", "unit: unit test")


# ============================================================================
# ОЧИСТКА БД
# ============================================================================


@pytest.fixture(autouse=True)
async def cleanup_database():
    """Автоматическая очистка БД после каждого теста"""
    yield

    try:
        await Database.clear_all()
    except Exception as e:
        # БД могла не создаваться (чистые unit-тесты)
        print(f"Warning: Failed to cleanup test database: {e}")


@pytest.fixture(scope="session", autouse=True)
def cleanup_test_db_on_exit():
    """Удаляем тестовую БД после всех тестов"""
    yield

    if os.path.exists(DATABASE_PATH):
        try:
            os.remove(DATABASE_PATH)
            print(f"\n✅ Cleaned up test database: {DATABASE_PATH}")
        except Exception as e:
            print(f"\n⚠️  Warning: Could not remove test database: {e}")


@pytest.fixture
async def init_database():
    """Инициализация тестовой БД"""
    await Database.init_db()
    yield


# ============================================================================
# MOCK SCHEDULER
# ============================================================================


class MockScheduler:
    """Mock APScheduler для тестов"""

    def __init__(self):
        self.jobs: Dict[str, Dict[str, Any]] = {}
        self.job_history: List[Dict[str, Any]] = []

    def add_job(
        self,
        func,
        trigger,
        run_date=None,
        args=None,
        kwargs=None,
        id=None,
        replace_existing=False,
    ):
        """Мок add_job"""
        if id:
            if id in self.jobs and not replace_existing:
                raise Exception(f"Job {id} already exists")

            self.jobs[id] = {
                "func": func,
                "trigger": trigger,
                "run_date": run_date,
                "args": args or [],
                "kwargs": kwargs or {},
            }
            self.job_history.append({"action": "add", "id": id})
        return Mock()

    def remove_job(self, job_id: str):
        """Мок remove_job"""
        if job_id in self.jobs:
            del self.jobs[job_id]
            self.job_history.append({"action": "remove", "id": job_id})
        else:
            raise Exception(f"Job {job_id} not found")

    def get_job(self, job_id: str):
        """Мок get_job"""
        return self.jobs.get(job_id)

    def get_jobs(self) -> List:
        """Мок get_jobs"""
        return list(self.jobs.values())

    def shutdown(self, wait=True):
        """Мок shutdown"""
        self.jobs.clear()


@pytest.fixture
def mock_scheduler():
    """Фикстура mock scheduler"""
    return MockScheduler()


# ============================================================================
# MOCK BOT
# ============================================================================


class MockBot:
    """Mock Telegram Bot для тестов"""

    def __init__(self):
        self.sent_messages: List[Dict[str, Any]] = []
        self.invoices: List[Dict[str, Any]] = []
        self.fail_sending = False
        self.session = Mock()
        self.session.close = AsyncMock()

    async def send_message(self, chat_id: int, text: str, reply_markup=None, **kwargs):
        """Мок send_message"""
        if self.fail_sending:
            raise RuntimeError("Telegram is unavailable")
        self.sent_messages.append({
            "chat_id": chat_id,
            "text": text,
            "reply_markup": reply_markup,
            **kwargs,
        })
        return Mock()

    async def create_invoice_link(self, title: str, description: str, payload: str, **kwargs):
        """Мок create_invoice_link"""
        self.invoices.append({"title": title, "payload": payload, **kwargs})
        return f"https://t.me/$invoice_{payload}"

    def messages_to(self, chat_id: int) -> List[str]:
        return [m["text"] for m in self.sent_messages if m["chat_id"] == chat_id]


@pytest.fixture
def mock_bot():
    """Фикстура mock bot"""
    return MockBot()


# ============================================================================
# SERVICE FIXTURES
# ============================================================================


@pytest.fixture
def notification_service(mock_bot, mock_scheduler):
    return NotificationService(mock_bot, mock_scheduler)


@pytest.fixture
def booking_service(notification_service, mock_bot):
    """Фикстура BookingService"""
    payment_service = PaymentService(mock_bot, provider_token="TEST:provider")
    return BookingService(notification_service, payment_service)


# ============================================================================
# HELPER FIXTURES
# ============================================================================


@pytest.fixture
def now():
    """Фиксированное текущее время"""
    return FIXED_NOW


@pytest.fixture
def booking_date():
    """Дата записи: следующий день после FIXED_NOW"""
    return BOOKING_DATE


def weekly(open_time: str = "09:00", close_time: str = "18:00") -> WeeklySchedule:
    """Расписание: все дни недели одно окно"""
    return WeeklySchedule(
        days={day: DaySchedule(is_open=True, windows=[(open_time, close_time)]) for day in range(7)}
    )


# ============================================================================
# DATABASE HELPER FIXTURES
# ============================================================================


@pytest.fixture
def create_business(init_database):
    """Создание бизнеса в БД"""

    async def _create(
        schedule: Optional[WeeklySchedule] = None,
        policy: Optional[CancellationPolicy] = None,
        **config_overrides,
    ) -> Business:
        booking_config = BookingConfig(
            cancellation_policy=policy or CancellationPolicy(), **config_overrides
        )
        business = Business(
            id=None,
            name="Test Salon",
            schedule=schedule or weekly(),
            booking_config=booking_config,
        )
        business.id = await BusinessRepository.create_business(business)
        return business

    return _create


@pytest.fixture
def create_service(init_database):
    """Создание услуги в БД"""

    async def _create(
        business_id: int,
        name: str = "Стрижка",
        duration: int = 60,
        price: float = 1000,
        final_price: Optional[float] = None,
    ) -> Service:
        service = Service(
            id=None,
            business_id=business_id,
            name=name,
            duration_minutes=duration,
            price=price,
            final_price=final_price,
        )
        service.id = await ServiceRepository.create_service(service)
        return service

    return _create


@pytest.fixture
def create_staff(init_database):
    """Создание сотрудника в БД"""

    async def _create(business_id: int, service_ids, name: str = "Мастер") -> Staff:
        staff = Staff(id=None, business_id=business_id, name=name, service_ids=set(service_ids))
        staff.id = await StaffRepository.create_staff(staff)
        return staff

    return _create


@pytest.fixture
def create_promotion(init_database):
    """Создание промокода в БД (по умолчанию действует +-30 дней от FIXED_NOW)"""

    async def _create(business_id: int, code: str = "SAVE10", **overrides) -> Promotion:
        fields = {
            "discount_type": DISCOUNT_PERCENTAGE,
            "discount_value": 10,
            "valid_from": FIXED_NOW - timedelta(days=30),
            "valid_until": FIXED_NOW + timedelta(days=30),
        }
        fields.update(overrides)
        promotion = Promotion(id=None, business_id=business_id, code=code, **fields)
        promotion.id = await PromotionRepository.create_promotion(promotion)
        return promotion

    return _create


@pytest.fixture
def salon(create_business, create_service, create_staff):
    """Бизнес с одной услугой и одним мастером"""

    async def _create(duration: int = 60, price: float = 1000, **config_overrides):
        business = await create_business(**config_overrides)
        service = await create_service(business.id, duration=duration, price=price)
        staff = await create_staff(business.id, [service.id])
        return business, service, staff

    return _create


@pytest.fixture
def make_request():
    """Фабрика BookingRequest"""

    def _make(business_id: int, service_ids, start_time: str = "10:00", **kwargs) -> BookingRequest:
        kwargs.setdefault("client_id", CLIENT_ID)
        kwargs.setdefault("date", BOOKING_DATE)
        return BookingRequest(
            business_id=business_id,
            service_ids=list(service_ids),
            start_time=start_time,
            **kwargs,
        )

    return _make
