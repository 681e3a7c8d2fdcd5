"""Сервис проверки промокодов"""

import logging
from datetime import datetime
from typing import Iterable, Optional, Tuple

from database.models import DISCOUNT_PERCENTAGE, Promotion
from database.repositories.promotion_repository import PromotionRepository
from services.errors import ErrorCode
from utils.datetime_utils import now_local


def is_promotion_applicable(
    promotion: Promotion,
    subtotal: float,
    service_ids: Iterable[int],
    now: datetime,
) -> bool:
    """Все условия промокода (без обращения к БД)"""
    if promotion.status != "active":
        return False
    if not (promotion.valid_from <= now <= promotion.valid_until):
        return False
    if promotion.total_uses is not None and promotion.current_uses >= promotion.total_uses:
        return False
    if promotion.min_purchase is not None and subtotal < promotion.min_purchase:
        return False
    if promotion.service_ids and not promotion.service_ids.intersection(service_ids):
        return False
    return True


def calculate_discount_amount(promotion: Promotion, subtotal: float) -> float:
    """Сумма скидки по промокоду

    Фиксированная скидка здесь не ограничивается подытогом,
    это делает расчет итога (total = max(0, subtotal - discount)).
    """
    if promotion.discount_type == DISCOUNT_PERCENTAGE:
        amount = subtotal * promotion.discount_value / 100
        if promotion.max_discount_amount is not None:
            amount = min(amount, promotion.max_discount_amount)
        return amount
    return promotion.discount_value


class PromotionService:
    """Проверка промокодов"""

    @staticmethod
    async def validate_discount(
        code: str,
        business_id: int,
        subtotal: float,
        service_ids: Iterable[int],
        now: Optional[datetime] = None,
    ) -> Tuple[Optional[Promotion], ErrorCode]:
        """Проверить промокод

        Returns:
            (promotion, SUCCESS) или (None, INVALID) - без уточнения причины
        """
        if not code or not code.strip():
            return None, ErrorCode.INVALID

        now = now or now_local()
        promotion = await PromotionRepository.get_by_code(business_id, code)

        if promotion is None or not is_promotion_applicable(
            promotion, subtotal, list(service_ids), now
        ):
            logging.info(f"Discount code rejected for business {business_id}")
            return None, ErrorCode.INVALID

        return promotion, ErrorCode.SUCCESS
