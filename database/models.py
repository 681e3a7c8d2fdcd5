"""Модели данных"""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set, Tuple

from config import (
    DEFAULT_CANCELLATION_HOURS,
    DEFAULT_MAX_ADVANCE_DAYS,
    DEFAULT_MIN_ADVANCE_HOURS,
    DEFAULT_SLOT_DURATION,
)

# Статусы записи
STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_CHECKED_IN = "checked_in"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
STATUS_NO_SHOW = "no_show"
# Только отметка в истории, не состояние
STATUS_RESCHEDULED = "rescheduled"

ACTIVE_STATUSES = (
    STATUS_PENDING,
    STATUS_CONFIRMED,
    STATUS_CHECKED_IN,
    STATUS_IN_PROGRESS,
)
MUTABLE_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED)

DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_FIXED = "fixed"
PENALTY_NONE = "none"


@dataclass
class DaySchedule:
    """Расписание одного дня: флаг и окна работы ("HH:MM", "HH:MM")"""
    is_open: bool = False
    windows: List[Tuple[str, str]] = field(default_factory=list)


@dataclass
class WeeklySchedule:
    """Недельное расписание (0 = понедельник) и исключения по датам"""
    days: Dict[int, DaySchedule] = field(default_factory=dict)
    exceptions: Dict[str, DaySchedule] = field(default_factory=dict)

    def for_date(self, date_str: str, weekday: int) -> DaySchedule:
        """Расписание на конкретную дату с учетом исключений"""
        if date_str in self.exceptions:
            return self.exceptions[date_str]
        return self.days.get(weekday, DaySchedule())

    def to_json(self) -> str:
        return json.dumps({
            "days": {str(k): asdict(v) for k, v in self.days.items()},
            "exceptions": {k: asdict(v) for k, v in self.exceptions.items()},
        })

    @classmethod
    def from_json(cls, raw: Optional[str]) -> "WeeklySchedule":
        if not raw:
            return cls()
        data = json.loads(raw)

        def _day(d: dict) -> DaySchedule:
            return DaySchedule(
                is_open=bool(d.get("is_open")),
                windows=[tuple(w) for w in d.get("windows", [])],
            )

        return cls(
            days={int(k): _day(v) for k, v in data.get("days", {}).items()},
            exceptions={k: _day(v) for k, v in data.get("exceptions", {}).items()},
        )


@dataclass
class CancellationPolicy:
    """Политика отмены"""
    allow_cancellation: bool = True
    hours_before_appointment: float = DEFAULT_CANCELLATION_HOURS
    penalty_percentage: float = 0
    penalty_type: str = DISCOUNT_PERCENTAGE
    penalty_amount: float = 0


@dataclass
class BookingConfig:
    """Настройки записи бизнеса"""
    slot_duration: int = DEFAULT_SLOT_DURATION
    buffer_time: int = 0
    min_advance_hours: float = DEFAULT_MIN_ADVANCE_HOURS
    max_advance_days: float = DEFAULT_MAX_ADVANCE_DAYS
    require_confirmation: bool = False
    require_deposit: bool = False
    deposit_type: str = DISCOUNT_PERCENTAGE
    deposit_amount: float = 0
    allow_rescheduling: bool = True
    cancellation_policy: CancellationPolicy = field(default_factory=CancellationPolicy)

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: Optional[str]) -> "BookingConfig":
        if not raw:
            return cls()
        data = json.loads(raw)
        policy = CancellationPolicy(**data.pop("cancellation_policy", {}))
        return cls(cancellation_policy=policy, **data)


@dataclass
class Business:
    """Бизнес (только чтение для ядра)"""
    id: Optional[int]
    name: str
    schedule: WeeklySchedule = field(default_factory=WeeklySchedule)
    booking_config: BookingConfig = field(default_factory=BookingConfig)
    is_active: bool = True


@dataclass
class Service:
    """Модель услуги/процедуры"""
    id: Optional[int]
    business_id: int
    name: str
    duration_minutes: int
    price: float
    final_price: Optional[float] = None
    is_active: bool = True

    def __post_init__(self):
        if self.final_price is None:
            self.final_price = self.price


@dataclass
class Staff:
    """Сотрудник и набор услуг, которые он выполняет"""
    id: Optional[int]
    business_id: int
    name: str
    service_ids: Set[int] = field(default_factory=set)
    is_active: bool = True

    def can_perform(self, service_ids) -> bool:
        return set(service_ids) <= self.service_ids


@dataclass
class Promotion:
    """Промокод"""
    id: Optional[int]
    business_id: int
    code: str
    discount_type: str
    discount_value: float
    valid_from: datetime
    valid_until: datetime
    max_discount_amount: Optional[float] = None
    total_uses: Optional[int] = None
    current_uses: int = 0
    min_purchase: Optional[float] = None
    service_ids: Set[int] = field(default_factory=set)
    status: str = "active"


@dataclass
class AppointmentService:
    """Снимок услуги на момент записи"""
    service_id: int
    name: str
    duration: int
    price: float
    discount: float = 0


@dataclass
class StatusChange:
    """Запись в истории статусов"""
    status: str
    changed_by: Optional[int]
    changed_at: datetime
    reason: Optional[str] = None


@dataclass
class Cancellation:
    """Данные об отмене"""
    cancelled_at: datetime
    cancelled_by: str
    reason: Optional[str]
    refunded: bool
    refund_amount: float

    def to_json(self) -> str:
        data = asdict(self)
        data["cancelled_at"] = self.cancelled_at.isoformat()
        return json.dumps(data)


@dataclass
class Appointment:
    """Запись клиента"""
    id: Optional[int]
    business_id: int
    client_id: int
    staff_id: Optional[int]
    date: str
    start_time: str
    end_time: str
    start_at: datetime
    end_at: datetime
    total_duration: int
    services: List[AppointmentService] = field(default_factory=list)
    status: str = STATUS_PENDING

    # Цены
    subtotal: float = 0
    discount: float = 0
    promotion_id: Optional[int] = None
    discount_code: Optional[str] = None
    deposit: float = 0
    deposit_paid: bool = False
    total: float = 0
    tip: float = 0
    final_total: float = 0

    status_history: List[StatusChange] = field(default_factory=list)
    cancellation: Optional[Cancellation] = None
    notes: Optional[str] = None
    deposit_charge_ref: Optional[str] = None
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def reserved_end_at(self) -> datetime:
        """Конец занятости сотрудника вместе с буфером"""
        return self.start_at + timedelta(minutes=self.total_duration)

    def services_json(self) -> str:
        return json.dumps([asdict(s) for s in self.services])


@dataclass
class PriceItem:
    """Позиция расчета стоимости"""
    service_id: int
    name: str
    price: float
    final_price: float
    discount: float
    duration: int


@dataclass
class PriceBreakdown:
    """Результат расчета стоимости"""
    items: List[PriceItem]
    subtotal: float
    discount: float
    total: float
    deposit: float
    total_duration: int
    promotion: Optional[Promotion] = None


@dataclass
class Slot:
    """Слот в сетке доступности"""
    time: str
    available: bool
    staff_available: List[int] = field(default_factory=list)
