"""
Input Validation for the Commission & Settlement Engine

Validates caller input before any computation begins.
Raises ValueError with clear messages for rejected input; advisory agreement
invariants (split sums, single active group per table) are only logged.
"""

import logging
import re
from decimal import Decimal, InvalidOperation

from .models import HUNDRED, TREASURY_INCOME, ZERO, Counterparty

logger = logging.getLogger(__name__)

PERIOD_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def parse_amount(value, field_name: str = "amount") -> Decimal:
    """
    Strictly parse a numeric input at the system boundary.

    Unlike models.to_decimal, blank or unparseable input is an error here.
    """
    if value is None or isinstance(value, bool):
        raise ValueError(f"{field_name} is required")
    text = str(value).strip()
    if not text:
        raise ValueError(f"{field_name} is required")
    try:
        parsed = Decimal(text)
    except InvalidOperation:
        raise ValueError(f"{field_name} must be a valid number, got: {value!r}") from None
    if not parsed.is_finite():
        raise ValueError(f"{field_name} must be a finite number, got: {value!r}")
    return parsed


class InputValidator:
    """Validates engine input according to business rules."""

    def validate_simulation_amount(self, amount) -> Decimal:
        """Parse the hypothetical amount. Raises ValueError unless it is > 0."""
        parsed = parse_amount(amount)
        if parsed <= 0:
            raise ValueError(f"amount must be positive, got: {parsed}")
        return parsed

    def validate_period(self, period) -> str:
        if not isinstance(period, str) or not PERIOD_PATTERN.match(period):
            raise ValueError(f"period must use the YYYY-MM format, got: {period!r}")
        return period

    def check_agreements(self, counterparties: list[Counterparty]) -> list[str]:
        """
        Report advisory invariant violations without rejecting anything.

        - counterparty and platform split percentages should sum to 100
        - a table should belong to at most one active group

        Returns the warning messages (also logged).
        """
        warnings = []
        for counterparty in counterparties:
            warnings.extend(self._check_splits(counterparty))
            warnings.extend(self._check_group_membership(counterparty))

        for message in warnings:
            logger.warning(message)
        return warnings

    def _check_splits(self, counterparty: Counterparty) -> list[str]:
        messages = []
        for table in counterparty.tables:
            if table.is_supplemental_income or table.pricing_model == TREASURY_INCOME:
                continue
            total = table.counterparty_split_percent + table.platform_split_percent
            if total != HUNDRED and total != ZERO:
                messages.append(
                    f"Table {table.id} of {counterparty.name}: split percentages sum to {total}, not 100"
                )
        return messages

    def _check_group_membership(self, counterparty: Counterparty) -> list[str]:
        messages = []
        seen: dict[str, str] = {}
        for group in counterparty.groups:
            if not group.active:
                continue
            for table_id in group.member_table_ids:
                if table_id in seen:
                    messages.append(
                        f"Table {table_id} of {counterparty.name} belongs to active groups "
                        f"{seen[table_id]} and {group.id}"
                    )
                else:
                    seen[table_id] = group.id
        return messages
