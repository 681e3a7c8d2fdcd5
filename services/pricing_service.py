"""Расчет стоимости, скидки и депозита"""

from typing import Iterable, List, Optional, Tuple

from database.models import (
    DISCOUNT_PERCENTAGE,
    BookingConfig,
    PriceBreakdown,
    PriceItem,
    Promotion,
    Service,
)
from database.repositories.business_repository import BusinessRepository
from database.repositories.service_repository import ServiceRepository
from services.errors import ErrorCode
from services.promotion_service import PromotionService, calculate_discount_amount


def calculate_deposit(total: float, booking_config: BookingConfig) -> float:
    """Депозит: 0 <= deposit <= total"""
    if not booking_config.require_deposit:
        return 0
    if booking_config.deposit_type == DISCOUNT_PERCENTAGE:
        deposit = total * booking_config.deposit_amount / 100
    else:
        deposit = booking_config.deposit_amount
    return max(0, min(deposit, total))


def compute_pricing(
    services: List[Service],
    booking_config: BookingConfig,
    promotion: Optional[Promotion] = None,
) -> PriceBreakdown:
    """Подытог, скидка, итог и депозит по снимку цен услуг"""
    items = [
        PriceItem(
            service_id=s.id,
            name=s.name,
            price=s.price,
            final_price=s.final_price,
            discount=s.price - s.final_price,
            duration=s.duration_minutes,
        )
        for s in services
    ]
    subtotal = sum(item.final_price for item in items)
    discount = calculate_discount_amount(promotion, subtotal) if promotion else 0
    total = max(0, subtotal - discount)

    return PriceBreakdown(
        items=items,
        subtotal=subtotal,
        discount=discount,
        total=total,
        deposit=calculate_deposit(total, booking_config),
        total_duration=sum(item.duration for item in items),
        promotion=promotion,
    )


class PricingService:
    """Публичный расчет цены для клиента"""

    @staticmethod
    async def calculate_price(
        business_id: int,
        service_ids: Iterable[int],
        discount_code: Optional[str] = None,
    ) -> Tuple[Optional[PriceBreakdown], ErrorCode]:
        """Расчет стоимости набора услуг

        Неверный промокод не ломает расчет: цена считается без скидки.
        """
        service_ids = list(service_ids)
        if not service_ids:
            return None, ErrorCode.INVALID_REQUEST

        business = await BusinessRepository.get_business(business_id)
        if business is None:
            return None, ErrorCode.NOT_FOUND

        services = await ServiceRepository.get_services(business_id, service_ids)
        if len(services) != len(service_ids):
            return None, ErrorCode.NOT_FOUND

        breakdown = compute_pricing(services, business.booking_config)
        if discount_code:
            promotion, _ = await PromotionService.validate_discount(
                discount_code, business_id, breakdown.subtotal, service_ids
            )
            if promotion:
                breakdown = compute_pricing(services, business.booking_config, promotion)

        return breakdown, ErrorCode.SUCCESS
