"""Репозитории для работы с базой данных"""

from database.repositories.appointment_repository import AppointmentRepository
from database.repositories.business_repository import BusinessRepository
from database.repositories.promotion_repository import PromotionRepository
from database.repositories.service_repository import ServiceRepository
from database.repositories.staff_repository import StaffRepository

__all__ = [
    "AppointmentRepository",
    "BusinessRepository",
    "PromotionRepository",
    "ServiceRepository",
    "StaffRepository",
]
