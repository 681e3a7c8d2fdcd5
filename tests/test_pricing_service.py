"""Тесты промокодов и расчета стоимости"""

from datetime import timedelta

import pytest

from database.models import (
    DISCOUNT_FIXED,
    DISCOUNT_PERCENTAGE,
    BookingConfig,
    Promotion,
    Service,
)
from services.errors import ErrorCode
from services.pricing_service import PricingService, calculate_deposit, compute_pricing
from services.promotion_service import (
    PromotionService,
    calculate_discount_amount,
    is_promotion_applicable,
)
from utils.datetime_utils import now_local
from conftest import FIXED_NOW


def _promotion(**overrides) -> Promotion:
    fields = {
        "id": 1,
        "business_id": 1,
        "code": "SAVE10",
        "discount_type": DISCOUNT_PERCENTAGE,
        "discount_value": 10,
        "valid_from": FIXED_NOW - timedelta(days=1),
        "valid_until": FIXED_NOW + timedelta(days=1),
    }
    fields.update(overrides)
    return Promotion(**fields)


def _service(service_id: int, price: float, final_price=None, duration: int = 60) -> Service:
    return Service(
        id=service_id, business_id=1, name=f"Услуга {service_id}",
        duration_minutes=duration, price=price, final_price=final_price,
    )


@pytest.mark.unit
class TestDiscountAmount:
    """Расчет суммы скидки"""

    def test_percentage_clamped_by_max(self):
        """10% от 10000 = 1000, ограничено 500"""
        promotion = _promotion(max_discount_amount=500)
        assert calculate_discount_amount(promotion, 10000) == 500

    def test_percentage(self):
        assert calculate_discount_amount(_promotion(), 2000) == 200

    def test_fixed(self):
        promotion = _promotion(discount_type=DISCOUNT_FIXED, discount_value=300)
        assert calculate_discount_amount(promotion, 2000) == 300


@pytest.mark.unit
class TestPromotionApplicable:
    """Условия применимости промокода"""

    def test_valid(self):
        assert is_promotion_applicable(_promotion(), 1000, [1], FIXED_NOW)

    def test_inactive(self):
        assert not is_promotion_applicable(_promotion(status="paused"), 1000, [1], FIXED_NOW)

    def test_outside_validity_window(self):
        assert not is_promotion_applicable(_promotion(), 1000, [1], FIXED_NOW + timedelta(days=2))
        assert not is_promotion_applicable(_promotion(), 1000, [1], FIXED_NOW - timedelta(days=2))

    def test_usage_exhausted(self):
        promotion = _promotion(total_uses=5, current_uses=5)
        assert not is_promotion_applicable(promotion, 1000, [1], FIXED_NOW)

    def test_min_purchase(self):
        promotion = _promotion(min_purchase=1500)
        assert not is_promotion_applicable(promotion, 1000, [1], FIXED_NOW)
        assert is_promotion_applicable(promotion, 1500, [1], FIXED_NOW)

    def test_service_restriction(self):
        promotion = _promotion(service_ids={7})
        assert not is_promotion_applicable(promotion, 1000, [1, 2], FIXED_NOW)
        assert is_promotion_applicable(promotion, 1000, [1, 7], FIXED_NOW)


@pytest.mark.unit
class TestComputePricing:
    """Подытог, итог и депозит"""

    def test_subtotal_uses_final_price(self):
        services = [_service(1, 1000, final_price=800), _service(2, 500)]
        breakdown = compute_pricing(services, BookingConfig())

        assert breakdown.subtotal == 1300
        assert breakdown.discount == 0
        assert breakdown.total == 1300
        assert breakdown.items[0].discount == 200
        assert breakdown.total_duration == 120

    def test_promotion_applied(self):
        """SAVE10: подытог 10000, скидка 500, итог 9500"""
        breakdown = compute_pricing(
            [_service(1, 10000)], BookingConfig(), _promotion(max_discount_amount=500)
        )

        assert breakdown.discount == 500
        assert breakdown.total == 9500

    def test_total_never_negative(self):
        promotion = _promotion(discount_type=DISCOUNT_FIXED, discount_value=5000)
        breakdown = compute_pricing([_service(1, 1000)], BookingConfig(), promotion)

        assert breakdown.total == 0
        assert breakdown.total == max(0, breakdown.subtotal - breakdown.discount)
        assert breakdown.deposit == 0

    def test_deposit_percentage(self):
        cfg = BookingConfig(require_deposit=True, deposit_type=DISCOUNT_PERCENTAGE, deposit_amount=30)
        assert calculate_deposit(1000, cfg) == 300

    def test_deposit_fixed_clamped_to_total(self):
        cfg = BookingConfig(require_deposit=True, deposit_type=DISCOUNT_FIXED, deposit_amount=5000)
        assert calculate_deposit(1000, cfg) == 1000

    def test_deposit_not_required(self):
        cfg = BookingConfig(require_deposit=False, deposit_amount=500)
        assert calculate_deposit(1000, cfg) == 0


class TestValidateDiscount:
    """Проверка промокода через БД"""

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_valid_code_case_insensitive(self, salon, create_promotion):
        business, service, _ = await salon()
        await create_promotion(business.id, "SAVE10")

        promotion, code = await PromotionService.validate_discount(
            "save10", business.id, 1000, [service.id], FIXED_NOW
        )

        assert code == ErrorCode.SUCCESS
        assert promotion.code == "SAVE10"

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_unknown_code(self, salon):
        business, service, _ = await salon()

        promotion, code = await PromotionService.validate_discount(
            "NOPE", business.id, 1000, [service.id], FIXED_NOW
        )

        assert promotion is None
        assert code == ErrorCode.INVALID

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_other_business_code(self, salon, create_business, create_promotion):
        business, service, _ = await salon()
        other = await create_business()
        await create_promotion(other.id, "SAVE10")

        _, code = await PromotionService.validate_discount(
            "SAVE10", business.id, 1000, [service.id], FIXED_NOW
        )
        assert code == ErrorCode.INVALID

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_idempotent(self, salon, create_promotion):
        """Повторная проверка без использования дает тот же результат"""
        business, service, _ = await salon()
        await create_promotion(business.id, "SAVE10", total_uses=1)

        first = await PromotionService.validate_discount(
            "SAVE10", business.id, 1000, [service.id], FIXED_NOW
        )
        second = await PromotionService.validate_discount(
            "SAVE10", business.id, 1000, [service.id], FIXED_NOW
        )

        assert first == second
        assert first[1] == ErrorCode.SUCCESS


class TestCalculatePrice:
    """Публичный расчет цены"""

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_with_discount(self, create_business, create_service, create_promotion):
        business = await create_business(
            require_deposit=True, deposit_type=DISCOUNT_PERCENTAGE, deposit_amount=20
        )
        service = await create_service(business.id, price=10000)
        now = now_local()
        await create_promotion(
            business.id, "SAVE10", max_discount_amount=500,
            valid_from=now - timedelta(days=1), valid_until=now + timedelta(days=1),
        )

        breakdown, code = await PricingService.calculate_price(business.id, [service.id], "SAVE10")

        assert code == ErrorCode.SUCCESS
        assert breakdown.subtotal == 10000
        assert breakdown.discount == 500
        assert breakdown.total == 9500
        assert breakdown.deposit == 1900
        assert breakdown.promotion.code == "SAVE10"

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_invalid_code_ignored(self, salon):
        business, service, _ = await salon(price=1000)

        breakdown, code = await PricingService.calculate_price(business.id, [service.id], "NOPE")

        assert code == ErrorCode.SUCCESS
        assert breakdown.discount == 0
        assert breakdown.total == 1000
        assert breakdown.promotion is None

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_not_found(self, salon):
        business, service, _ = await salon()

        _, code = await PricingService.calculate_price(business.id, [service.id, 9999])
        assert code == ErrorCode.NOT_FOUND

        _, code = await PricingService.calculate_price(9999, [service.id])
        assert code == ErrorCode.NOT_FOUND

        _, code = await PricingService.calculate_price(business.id, [])
        assert code == ErrorCode.INVALID_REQUEST
