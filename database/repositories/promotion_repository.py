"""Репозиторий для работы с промокодами"""

import json
from datetime import datetime
from typing import Optional

import aiosqlite

from database.base_repository import BaseRepository
from database.models import Promotion
from utils.datetime_utils import from_iso


class PromotionRepository(BaseRepository):
    """Репозиторий промокодов"""

    @staticmethod
    def _from_row(row) -> Promotion:
        return Promotion(
            id=row["id"],
            business_id=row["business_id"],
            code=row["code"],
            status=row["status"],
            discount_type=row["discount_type"],
            discount_value=row["discount_value"],
            max_discount_amount=row["max_discount_amount"],
            valid_from=from_iso(row["valid_from"]),
            valid_until=from_iso(row["valid_until"]),
            total_uses=row["total_uses"],
            current_uses=row["current_uses"],
            min_purchase=row["min_purchase"],
            service_ids=set(json.loads(row["service_ids"] or "[]")),
        )

    @staticmethod
    async def get_by_code(business_id: int, code: str) -> Optional[Promotion]:
        """Промокод бизнеса (регистр кода не важен)"""
        row = await PromotionRepository._execute_query(
            "SELECT * FROM promotions WHERE business_id=? AND code=?",
            (business_id, code.strip().upper()),
            fetch_one=True,
        )
        return PromotionRepository._from_row(row) if row else None

    @staticmethod
    async def get_by_id(promotion_id: int) -> Optional[Promotion]:
        """Промокод по ID"""
        row = await PromotionRepository._execute_query(
            "SELECT * FROM promotions WHERE id=?", (promotion_id,), fetch_one=True
        )
        return PromotionRepository._from_row(row) if row else None

    @staticmethod
    async def create_promotion(promotion: Promotion) -> int:
        """Создать промокод"""
        return await PromotionRepository._execute_query(
            """INSERT INTO promotions
            (business_id, code, status, discount_type, discount_value, max_discount_amount,
             valid_from, valid_until, total_uses, current_uses, min_purchase, service_ids)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                promotion.business_id,
                promotion.code.strip().upper(),
                promotion.status,
                promotion.discount_type,
                promotion.discount_value,
                promotion.max_discount_amount,
                promotion.valid_from.isoformat(),
                promotion.valid_until.isoformat(),
                promotion.total_uses,
                promotion.current_uses,
                promotion.min_purchase,
                json.dumps(sorted(promotion.service_ids)),
            ),
            commit=True,
        )

    @staticmethod
    async def increment_usage(
        db: aiosqlite.Connection,
        promotion_id: int,
        client_id: int,
        appointment_id: int,
        used_at: datetime,
    ) -> bool:
        """Атомарно засчитать использование (внутри транзакции вызывающего)

        Returns:
            False если лимит уже исчерпан
        """
        cursor = await db.execute(
            """UPDATE promotions SET current_uses = current_uses + 1
            WHERE id=? AND status='active'
              AND (total_uses IS NULL OR current_uses < total_uses)""",
            (promotion_id,),
        )
        if cursor.rowcount == 0:
            return False

        await db.execute(
            """INSERT INTO promotion_usages (promotion_id, client_id, appointment_id, used_at)
            VALUES (?, ?, ?, ?)""",
            (promotion_id, client_id, appointment_id, used_at.isoformat()),
        )
        return True

    @staticmethod
    async def count_usages(promotion_id: int) -> int:
        """Количество записей об использовании"""
        return await PromotionRepository._count(
            "promotion_usages", "promotion_id=?", (promotion_id,)
        )
