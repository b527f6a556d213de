"""Amount adjustment — make line items add up to the charged gross amount.

The gateway rejects a session whose item details do not sum to the gross
amount, so any drift between locally priced items and the order total has
to be folded back into the item prices before the request is sent. All
arithmetic here is on integers in the smallest currency unit.

Algorithm:
    1. calculated = sum(price * quantity) + shipping_fee
    2. diff = target_gross - calculated; nothing to do when diff == 0
    3. |diff| above the tolerance is refused (AmountMismatchError)
    4. lines are ordered by line value, highest first, and every unit gets
       the same share of diff (its quantity's share of the total quantity)
    5. the rounding leftover goes to the first line; when the leftover does
       not divide that line's quantity, the line is split in two so unit
       prices stay whole numbers
"""

from dataclasses import dataclass, replace

import structlog
from protean.exceptions import ValidationError

from checkout.errors import AmountMismatchError

logger = structlog.get_logger(__name__)

DEFAULT_TOLERANCE = 100


@dataclass(frozen=True)
class LineAmount:
    """One priced line: ``price`` is the unit price in minor units."""

    item_id: str
    price: int
    quantity: int
    name: str = ""

    @property
    def subtotal(self) -> int:
        return self.price * self.quantity


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _round_div(numerator: int, denominator: int) -> int:
    """Integer division rounded half away from zero (``denominator`` > 0)."""
    quotient, remainder = divmod(abs(numerator), denominator)
    if 2 * remainder >= denominator:
        quotient += 1
    return quotient if numerator >= 0 else -quotient


def line_total(lines: list[LineAmount], shipping_fee: int = 0) -> int:
    return sum(line.subtotal for line in lines) + shipping_fee


class AmountAdjuster:
    def __init__(self, tolerance: int = DEFAULT_TOLERANCE) -> None:
        if not _is_int(tolerance) or tolerance < 0:
            raise ValueError("tolerance must be a non-negative integer")
        self.tolerance = tolerance

    def reconcile(
        self,
        lines: list[LineAmount],
        shipping_fee: int,
        target_gross: int,
    ) -> list[LineAmount]:
        """Return lines whose total plus ``shipping_fee`` equals ``target_gross``."""
        self._validate(lines, shipping_fee, target_gross)

        calculated = line_total(lines, shipping_fee)
        diff = target_gross - calculated
        if diff == 0:
            return list(lines)

        if abs(diff) > self.tolerance:
            logger.warning(
                "Item total does not match gross amount",
                calculated=calculated,
                target_gross=target_gross,
                diff=diff,
                tolerance=self.tolerance,
            )
            raise AmountMismatchError(
                f"Items add up to {calculated} but the gross amount is {target_gross} "
                f"(difference {diff} exceeds tolerance {self.tolerance})",
                calculated=calculated,
                target_gross=target_gross,
            )

        ordered = sorted(lines, key=lambda line: line.subtotal, reverse=True)
        total_quantity = sum(line.quantity for line in ordered)

        per_unit = _round_div(diff, total_quantity)
        adjusted = [replace(line, price=line.price + per_unit) for line in ordered]
        leftover = diff - per_unit * total_quantity

        if leftover:
            adjusted = self._absorb_leftover(adjusted, leftover)

        if any(line.price < 0 for line in adjusted):
            raise AmountMismatchError(
                "Adjustment would make an item price negative",
                calculated=calculated,
                target_gross=target_gross,
            )

        result_total = line_total(adjusted, shipping_fee)
        if result_total != target_gross:
            raise AmountMismatchError(
                f"Adjusted items add up to {result_total}, expected {target_gross}",
                calculated=result_total,
                target_gross=target_gross,
            )

        logger.info(
            "Adjusted item prices to match gross amount",
            diff=diff,
            per_unit=per_unit,
            leftover=leftover,
            lines=len(adjusted),
        )
        return adjusted

    @staticmethod
    def _absorb_leftover(lines: list[LineAmount], leftover: int) -> list[LineAmount]:
        first = lines[0]
        shift, extra_units = divmod(leftover, first.quantity)
        if extra_units == 0:
            return [replace(first, price=first.price + shift), *lines[1:]]

        # Split: extra_units units carry one more minor unit than the rest.
        bumped = replace(first, price=first.price + shift + 1, quantity=extra_units)
        rest = replace(first, price=first.price + shift, quantity=first.quantity - extra_units)
        return [bumped, rest, *lines[1:]]

    @staticmethod
    def _validate(lines, shipping_fee, target_gross) -> None:
        errors = {}
        if not lines:
            errors["items"] = ["At least one item is required"]
        for line in lines or []:
            if not _is_int(line.price) or line.price < 0:
                errors.setdefault("price", []).append(f"Invalid price for item {line.item_id}")
            if not _is_int(line.quantity) or line.quantity <= 0:
                errors.setdefault("quantity", []).append(f"Invalid quantity for item {line.item_id}")
        if not _is_int(shipping_fee) or shipping_fee < 0:
            errors["shipping_fee"] = ["Shipping fee must be a non-negative integer"]
        if not _is_int(target_gross) or target_gross <= 0:
            errors["gross_amount"] = ["Gross amount must be a positive integer"]
        if errors:
            raise ValidationError(errors)
