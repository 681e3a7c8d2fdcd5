"""Обработчики оплаты депозита"""

import logging

from aiogram import F, Router
from aiogram.types import Message, PreCheckoutQuery

from services.booking_service import BookingService
from services.errors import ErrorCode
from services.payment_service import parse_deposit_payload

router = Router()


@router.pre_checkout_query()
async def deposit_pre_checkout(query: PreCheckoutQuery):
    """Подтверждение перед оплатой"""
    if parse_deposit_payload(query.invoice_payload) is None:
        await query.answer(ok=False, error_message="Неизвестный счет")
        return
    await query.answer(ok=True)


@router.message(F.successful_payment)
async def deposit_paid(message: Message, booking_service: BookingService):
    """Успешная оплата депозита"""
    payment = message.successful_payment
    appointment_id = parse_deposit_payload(payment.invoice_payload)
    if appointment_id is None:
        logging.warning(f"Payment with unknown payload: {payment.invoice_payload}")
        return

    _, error_code = await booking_service.mark_deposit_paid(
        appointment_id, payment.provider_payment_charge_id
    )

    if error_code == ErrorCode.SUCCESS:
        await message.answer("✅ Депозит оплачен. Ждем вас!")
    elif error_code == ErrorCode.INVALID_REQUEST:
        await message.answer("ℹ️ Депозит по этой записи уже оплачен")
    else:
        await message.answer("❌ Запись не найдена. Свяжитесь с администратором")
