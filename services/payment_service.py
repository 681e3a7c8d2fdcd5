"""Сервис выставления депозитов"""

import logging
from dataclasses import dataclass
from typing import Optional

from aiogram import Bot
from aiogram.types import LabeledPrice

from config import CURRENCY, PAYMENT_PROVIDER_TOKEN

DEPOSIT_PAYLOAD_PREFIX = "deposit:"


@dataclass
class DepositCharge:
    """Результат выставления депозита"""
    charge_ref: str
    paid: bool = False


def deposit_payload(appointment_id: int) -> str:
    return f"{DEPOSIT_PAYLOAD_PREFIX}{appointment_id}"


def parse_deposit_payload(payload: str) -> Optional[int]:
    """ID записи из payload счета или None для чужих платежей"""
    if not payload or not payload.startswith(DEPOSIT_PAYLOAD_PREFIX):
        return None
    raw = payload[len(DEPOSIT_PAYLOAD_PREFIX):]
    return int(raw) if raw.isdigit() else None


class PaymentService:
    """Выставление счета на депозит через Telegram Payments"""

    def __init__(self, bot: Bot, provider_token: str = PAYMENT_PROVIDER_TOKEN, currency: str = CURRENCY):
        self.bot = bot
        self.provider_token = provider_token
        self.currency = currency

    async def create_deposit_charge(
        self, amount: float, payer: int, reference: int
    ) -> Optional[DepositCharge]:
        """Создать счет на депозит

        Args:
            amount: Сумма депозита
            payer: ID клиента
            reference: ID записи

        Returns:
            DepositCharge со ссылкой на счет или None, если выставить не удалось
        """
        if amount <= 0:
            return None
        if not self.provider_token:
            logging.warning(f"Payment provider not configured, deposit for {reference} not charged")
            return None

        try:
            # Telegram принимает сумму в минимальных единицах валюты
            link = await self.bot.create_invoice_link(
                title="Депозит за запись",
                description=f"Депозит за запись #{reference}",
                payload=deposit_payload(reference),
                provider_token=self.provider_token,
                currency=self.currency,
                prices=[LabeledPrice(label="Депозит", amount=round(amount * 100))],
            )
        except Exception as e:
            logging.error(f"Failed to create deposit charge for {reference} (payer {payer}): {e}")
            return None

        logging.info(f"Deposit charge created for appointment {reference}")
        return DepositCharge(charge_ref=link, paid=False)
