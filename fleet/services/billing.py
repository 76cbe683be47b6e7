"""
Billing Engine for FLEET-DISPATCH

Converts a rental's actual duration into a total cost.

Formula:
- Early / on-time: rented * rate + unused * rate * penalty
- Late:            predicted * rate + late_days * late_fee
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from types import MappingProxyType
from typing import Mapping, Union

from django.conf import settings

from core.exceptions import InvalidPlan, ValidationError
from fleet.services.availability import to_utc

logger = logging.getLogger(__name__)

CENTS = Decimal('0.01')


@dataclass(frozen=True)
class PlanRate:
    """Daily rate and early-return penalty for one plan."""
    days: int
    daily_rate: Decimal
    penalty_rate: Decimal


@dataclass(frozen=True)
class RateTable:
    """Immutable plan → rate mapping plus the per-day late surcharge."""
    plans: Mapping[int, PlanRate]
    late_fee_per_day: Decimal = Decimal('50.00')

    def __post_init__(self):
        object.__setattr__(self, 'plans', MappingProxyType(dict(self.plans)))

    @classmethod
    def build(cls, plan_rates: Mapping, late_fee_per_day) -> 'RateTable':
        """Build from {days: (daily_rate, penalty_rate)} with string or Decimal values."""
        plans = {
            int(days): PlanRate(int(days), Decimal(str(rate)), Decimal(str(penalty)))
            for days, (rate, penalty) in plan_rates.items()
        }
        return cls(plans=plans, late_fee_per_day=Decimal(str(late_fee_per_day)))

    @classmethod
    def from_settings(cls) -> 'RateTable':
        return cls.build(settings.RENTAL_PLAN_RATES, settings.RENTAL_LATE_FEE_PER_DAY)

    def for_plan(self, plan) -> PlanRate:
        try:
            return self.plans[int(plan)]
        except (KeyError, TypeError, ValueError):
            raise InvalidPlan(plan)

    def supports(self, plan) -> bool:
        try:
            return int(plan) in self.plans
        except (TypeError, ValueError):
            return False


DEFAULT_RATES = RateTable.build(
    {7: ('30.00', '0.20'), 15: ('28.00', '0.40'), 30: ('22.00', '0.60')},
    '50.00',
)


def _calendar_date(value: Union[date, datetime]) -> date:
    if isinstance(value, datetime):
        return to_utc(value).date()
    return value


def day_span(start: Union[date, datetime], end: Union[date, datetime]) -> int:
    """Whole calendar days from start to end, time of day discarded."""
    return (_calendar_date(end) - _calendar_date(start)).days


def compute_cost(plan, start_date, predicted_end_date, actual_return_date,
                 rates: RateTable = DEFAULT_RATES) -> Decimal:
    """
    Total cost of a rental, rounded to cents on the final figure only.

    Raises:
        InvalidPlan: plan missing from the rate table
        ValidationError: return dated before the rental start
    """
    plan_rate = rates.for_plan(plan)

    rented_days = day_span(start_date, actual_return_date)
    predicted_days = day_span(start_date, predicted_end_date)
    if rented_days < 0:
        raise ValidationError("Return date is before the rental start")

    if rented_days <= predicted_days:
        unused_days = max(0, predicted_days - rented_days)
        cost = (
            rented_days * plan_rate.daily_rate
            + unused_days * plan_rate.daily_rate * plan_rate.penalty_rate
        )
    else:
        late_days = rented_days - predicted_days
        cost = predicted_days * plan_rate.daily_rate + late_days * rates.late_fee_per_day

    return cost.quantize(CENTS, rounding=ROUND_HALF_UP)


class BillingEngine:
    """
    Rental billing bound to one rate table.

    Defaults to the table configured in settings.
    """

    def __init__(self, rates: RateTable = None):
        self.rates = rates or RateTable.from_settings()

    def validate_plan(self, plan) -> int:
        self.rates.for_plan(plan)
        return int(plan)

    def compute_cost(self, plan, start_date, predicted_end_date, actual_return_date) -> Decimal:
        cost = compute_cost(plan, start_date, predicted_end_date, actual_return_date, rates=self.rates)
        logger.debug(
            f"[RENTAL] Billed plan={plan} start={start_date} predicted={predicted_end_date} "
            f"returned={actual_return_date} → {cost}"
        )
        return cost
