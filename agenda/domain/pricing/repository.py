"""Pricing repository - Database reads for schedule prices"""

from datetime import date
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models import PriceValue, Schedule


class PricingRepository:
    """Repository for price lookups"""

    @staticmethod
    def get_schedule(db: Session, schedule_id: int) -> Optional[Schedule]:
        return db.query(Schedule).filter(Schedule.id == schedule_id).first()

    @staticmethod
    def get_category_price(db: Session, category_id: int, on_date: date) -> Optional[PriceValue]:
        """Price version of a category in force on the given date, latest start first"""
        return (
            db.query(PriceValue)
            .filter(
                PriceValue.category_id == category_id,
                PriceValue.start_date <= on_date,
                or_(PriceValue.end_date.is_(None), PriceValue.end_date >= on_date),
            )
            .order_by(PriceValue.start_date.desc())
            .first()
        )
