"""
Earning Formula

Pure functions turning a rate table entry and a transaction volume into a
gross earning and its counterparty/platform split, for each pricing model.
No rounding happens here; money is rounded only when building output.
"""

from decimal import ROUND_HALF_UP, Decimal

from ..models import (
    FIXED_COMMISSION,
    HUNDRED,
    REVENUE_SHARE,
    TREASURY_INCOME,
    CommissionTable,
    Earning,
)


def quantize_money(value: Decimal) -> Decimal:
    """Round to 2 decimal places using ROUND_HALF_UP."""
    return value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


def percent_of(amount: Decimal, percent: Decimal) -> Decimal:
    return amount * percent / HUNDRED


class EarningFormula:
    """Computes earnings per pricing model."""

    def compute(self, table: CommissionTable, volume: Decimal, term: str | None = None) -> Earning | None:
        """
        Compute the earning for a volume on one table entry.

        Fixed Commission:  gross = volume * percent_rate / 100
        Revenue Share:     gross = volume * sell_rate / 100 - volume * buy_rate / 100
        Treasury Income:   gross = stored earning (volume is not used)

        Returns None when the term is missing or disabled: such an entry
        contributes nothing and must not show up as a zero row.
        """
        if table.pricing_model == TREASURY_INCOME:
            return self._compute_treasury(table, table.treasury_detail.earning)

        if term is None:
            return None
        rate = table.rate_for(term)
        if rate is None:
            return None

        if table.pricing_model == FIXED_COMMISSION:
            gross = percent_of(volume, rate.percent_rate)
        elif table.pricing_model == REVENUE_SHARE:
            buy_amount = percent_of(volume, rate.buy_rate)
            sell_amount = percent_of(volume, rate.sell_rate)
            # Negative margins are reported as they are
            gross = sell_amount - buy_amount
        else:
            return None

        return self.split(table, gross)

    def compute_or_zero(self, table: CommissionTable, volume: Decimal, term: str | None = None) -> Earning:
        """Same as compute, with a zero earning for entries that contribute nothing."""
        earning = self.compute(table, volume, term)
        if earning is None:
            return Earning()
        return earning

    def split(self, table: CommissionTable, gross: Decimal) -> Earning:
        """Divide gross between counterparty and platform by the table's split."""
        return Earning(
            gross=gross,
            counterparty_share=percent_of(gross, table.counterparty_split_percent),
            platform_share=percent_of(gross, table.platform_split_percent),
        )

    def scale_treasury(self, table: CommissionTable, hypothetical_volume: Decimal) -> Earning:
        """
        Scale a treasury earning to a hypothetical volume.

        scaled gross = earning * hypothetical_volume / reference_amount,
        with a zero reference amount treated as 1.
        """
        detail = table.treasury_detail
        reference = detail.reference_amount or Decimal('1')
        return self._compute_treasury(table, detail.earning * hypothetical_volume / reference)

    def compute_supplemental(self, table: CommissionTable, volume: Decimal) -> Earning:
        """Supplemental income: each side gets its own percentage of the volume."""
        detail = table.supplemental
        if detail is None:
            return Earning()
        counterparty_share = percent_of(volume, detail.counterparty_percent)
        platform_share = percent_of(volume, detail.platform_percent)
        return Earning(
            gross=counterparty_share + platform_share,
            counterparty_share=counterparty_share,
            platform_share=platform_share,
        )

    def _compute_treasury(self, table: CommissionTable, gross: Decimal) -> Earning:
        platform_share = percent_of(gross, table.treasury_detail.platform_percent)
        return Earning(gross=gross, counterparty_share=None, platform_share=platform_share)
