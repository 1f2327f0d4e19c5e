from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR
from typing import Optional

from promo_engine.models.discount_code import DiscountKindEnum
from promo_engine.services.discount_errors import BelowMinimumAmount
from promo_engine.services.discount_rules import DiscountRule

BELOW_MINIMUM_AMOUNT = BelowMinimumAmount.kind


@dataclass(frozen=True)
class DiscountComputation:
    subtotal: int
    reduction: int
    final_amount: int
    reason: Optional[str] = None
    minimum_amount: Optional[int] = None

    @property
    def applies(self) -> bool:
        return self.reason is None

    def raise_if_not_applicable(self) -> None:
        if self.reason == BELOW_MINIMUM_AMOUNT:
            raise BelowMinimumAmount(self.minimum_amount)


def _floor_to_unit(amount: Decimal) -> int:
    return int(amount.to_integral_value(rounding=ROUND_FLOOR))


def calculate_discount(rule: DiscountRule, eligible_subtotal: int) -> DiscountComputation:
    """
    Reduction for an eligible subtotal, rounded down to a whole currency unit.

    The result never exceeds the subtotal, so the discounted amount can't go
    negative. A subtotal under the code's minimum yields no reduction and the
    BelowMinimumAmount reason.
    """
    subtotal = max(0, int(eligible_subtotal))
    if rule.minimum_amount is not None and subtotal < rule.minimum_amount:
        return DiscountComputation(
            subtotal=subtotal,
            reduction=0,
            final_amount=subtotal,
            reason=BELOW_MINIMUM_AMOUNT,
            minimum_amount=rule.minimum_amount,
        )

    if rule.kind == DiscountKindEnum.FIXED:
        raw = min(Decimal(rule.value), Decimal(subtotal))
    else:
        raw = Decimal(subtotal) * Decimal(rule.value) / Decimal(100)
        if rule.maximum_amount is not None:
            raw = min(raw, Decimal(rule.maximum_amount))

    reduction = min(max(_floor_to_unit(raw), 0), subtotal)
    return DiscountComputation(
        subtotal=subtotal,
        reduction=reduction,
        final_amount=subtotal - reduction,
        minimum_amount=rule.minimum_amount,
    )
