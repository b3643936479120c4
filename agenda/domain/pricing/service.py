"""Pricing resolver - Amount charged for a schedule's occurrence on a date"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Union

from sqlalchemy.orm import Session

from ...errors import ScheduleNotFoundError
from ...shared.validators import to_clinic_time
from .repository import PricingRepository

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


class PricingResolver:
    """Fixed override first, then the category price in force, else zero"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = PricingRepository()

    def price_for(self, schedule_id: int, on: Union[date, datetime]) -> Decimal:
        if isinstance(on, datetime):
            on = to_clinic_time(on).date()

        schedule = self.repo.get_schedule(self.db, schedule_id)
        if not schedule:
            raise ScheduleNotFoundError(schedule_id)

        if schedule.fixed_price is not None:
            return Decimal(schedule.fixed_price)

        if schedule.price_category_id:
            price = self.repo.get_category_price(self.db, schedule.price_category_id, on)
            if price:
                return Decimal(price.amount)
            logger.warning(
                f"⚠️ No price in force for category {schedule.price_category_id} on {on.isoformat()}"
            )

        return ZERO
