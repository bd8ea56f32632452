"""
Domain Models for the Commission & Settlement Engine

These dataclasses provide type-safe representations of counterparties, their
rate tables, table groups and settlement records, plus the result shapes the
calculators produce. All monetary values, rates and percentages use Decimal.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

logger = logging.getLogger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

FIXED_COMMISSION = "fixed_commission"
REVENUE_SHARE = "revenue_share"
TREASURY_INCOME = "treasury_income"

PRICING_MODEL_LABELS = {
    FIXED_COMMISSION: "Fixed Commission",
    REVENUE_SHARE: "Revenue Share",
    TREASURY_INCOME: "Treasury Income",
}

DOMESTIC = "Domestic"
INTERNATIONAL = "International"

STATUS_DRAFT = "Draft"
STATUS_FINALIZED = "Finalized"
SETTLEMENT_STATUSES = (STATUS_DRAFT, STATUS_FINALIZED)

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value) -> Decimal:
    """Parse a stored numeric field, falling back to zero.

    Blank, missing, non-numeric and non-finite values all become 0. This is the
    internal parsing rule for data that already passed the application's
    boundary; strict parsing lives in validators.parse_amount.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        return value if value.is_finite() else ZERO
    text = str(value).strip()
    if not text:
        return ZERO
    try:
        parsed = Decimal(text)
    except InvalidOperation:
        return ZERO
    return parsed if parsed.is_finite() else ZERO


def _optional_decimal(value) -> Decimal | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return to_decimal(value)


def volume_key(table_id: str, term: str | None = None) -> str:
    """Key of a volume entry: "{table_id}-{term}", or "{table_id}" for supplemental tables."""
    if term is None:
        return str(table_id)
    return f"{table_id}-{term}"


def parse_period(period: str) -> date:
    """Parse a "YYYY-MM" period into the first day of that month."""
    return datetime.strptime(period, "%Y-%m").date()


def parse_date(value: str) -> date:
    """Parse an ISO date or datetime string into a date."""
    text = value.strip()
    if len(text) == 10:
        return datetime.strptime(text, "%Y-%m-%d").date()
    return datetime.fromisoformat(text.replace("Z", "+00:00")).date()


# =============================================================================
# RATE TABLE MODELS
# =============================================================================


@dataclass
class MaturityRate:
    """Pricing for one settlement term ("maturity") of a rate table."""

    term: str
    enabled: bool = True
    percent_rate: Decimal = ZERO  # fixed commission
    buy_rate: Decimal = ZERO  # revenue share
    sell_rate: Decimal = ZERO  # revenue share

    @property
    def margin_rate(self) -> Decimal:
        """Advisory sell - buy margin. Recomputed on every read."""
        return self.sell_rate - self.buy_rate

    @classmethod
    def from_dict(cls, data: dict) -> "MaturityRate":
        return cls(
            term=str(data["term"]),
            enabled=data.get("enabled", True) is not False,
            percent_rate=to_decimal(data.get("percent_rate")),
            buy_rate=to_decimal(data.get("buy_rate")),
            sell_rate=to_decimal(data.get("sell_rate")),
        )


@dataclass
class TreasuryDetail:
    """Pre-computed treasury earning agreed for a reference amount."""

    reference_amount: Decimal = ZERO
    platform_percent: Decimal = ZERO
    earning: Decimal = ZERO

    @classmethod
    def from_dict(cls, data: dict) -> "TreasuryDetail":
        return cls(
            reference_amount=to_decimal(data.get("reference_amount")),
            platform_percent=to_decimal(data.get("platform_percent")),
            earning=to_decimal(data.get("earning")),
        )


@dataclass
class SupplementalDetail:
    """Side income line (e.g. a card-scheme rebate) with its own split percentages."""

    code: str = ""
    income_type: str = ""
    counterparty_percent: Decimal = ZERO
    platform_percent: Decimal = ZERO

    @classmethod
    def from_dict(cls, data: dict) -> "SupplementalDetail":
        return cls(
            code=data.get("code", ""),
            income_type=data.get("income_type", ""),
            counterparty_percent=to_decimal(data.get("counterparty_percent")),
            platform_percent=to_decimal(data.get("platform_percent")),
        )


@dataclass
class CommissionTable:
    """One priced line of a counterparty's agreement.

    Concrete tables are one of FixedCommissionTable, RevenueShareTable or
    TreasuryIncomeTable; the pricing_model tag identifies which.
    """

    id: str
    product: str = ""
    card_type: str = ""
    geography: str = DOMESTIC
    description: str = ""
    counterparty_split_percent: Decimal = ZERO
    platform_split_percent: Decimal = ZERO
    closed_at: str | None = None
    active: bool = True
    supplemental: SupplementalDetail | None = None

    pricing_model = ""

    @property
    def model_label(self) -> str:
        return PRICING_MODEL_LABELS.get(self.pricing_model, self.pricing_model)

    @property
    def is_closed(self) -> bool:
        return bool(self.closed_at)

    @property
    def is_supplemental_income(self) -> bool:
        return self.supplemental is not None

    @property
    def classification_label(self) -> str:
        return f"{self.product or '-'} / {self.card_type or '-'} / {self.geography or '-'}"

    def active_rates(self) -> list[MaturityRate]:
        """Enabled maturity rates; disabled terms never appear here."""
        return []

    def rate_for(self, term: str) -> MaturityRate | None:
        """The enabled rate for a term, or None when missing or disabled."""
        for rate in self.active_rates():
            if rate.term == term:
                return rate
        return None

    @staticmethod
    def _common_fields(data: dict) -> dict:
        supplemental = data.get("supplemental")
        return {
            "id": str(data["id"]),
            "product": data.get("product", ""),
            "card_type": data.get("card_type", ""),
            "geography": data.get("geography", DOMESTIC),
            "description": data.get("description", ""),
            "counterparty_split_percent": to_decimal(data.get("counterparty_split_percent")),
            "platform_split_percent": to_decimal(data.get("platform_split_percent")),
            "closed_at": data.get("closed_at") or None,
            "active": data.get("active", True) is not False,
            "supplemental": SupplementalDetail.from_dict(supplemental) if supplemental else None,
        }


@dataclass
class _RateBasedTable(CommissionTable):
    maturity_rates: list[MaturityRate] = field(default_factory=list)

    def active_rates(self) -> list[MaturityRate]:
        return [rate for rate in self.maturity_rates if rate.enabled]

    @classmethod
    def from_dict(cls, data: dict) -> "_RateBasedTable":
        rates = [MaturityRate.from_dict(r) for r in data.get("maturity_rates") or []]
        return cls(maturity_rates=rates, **cls._common_fields(data))


@dataclass
class FixedCommissionTable(_RateBasedTable):
    """Percent-of-volume commission per maturity term."""

    pricing_model = FIXED_COMMISSION


@dataclass
class RevenueShareTable(_RateBasedTable):
    """Buy/sell rate pair per maturity term; the margin is the earning."""

    pricing_model = REVENUE_SHARE


@dataclass
class TreasuryIncomeTable(CommissionTable):
    """Stored treasury earning; no maturity terms."""

    treasury_detail: TreasuryDetail = field(default_factory=TreasuryDetail)

    pricing_model = TREASURY_INCOME

    @classmethod
    def from_dict(cls, data: dict) -> "TreasuryIncomeTable":
        detail = TreasuryDetail.from_dict(data.get("treasury_detail") or {})
        return cls(treasury_detail=detail, **cls._common_fields(data))


TABLE_TYPES = {
    FIXED_COMMISSION: FixedCommissionTable,
    REVENUE_SHARE: RevenueShareTable,
    TREASURY_INCOME: TreasuryIncomeTable,
}


def table_from_dict(data: dict) -> CommissionTable:
    """Build the concrete table for the pricing_model tag."""
    model = data.get("pricing_model")
    table_type = TABLE_TYPES.get(model)
    if table_type is None:
        raise ValueError(
            f"Invalid pricing_model: {model}. Must be one of {', '.join(TABLE_TYPES)}"
        )
    return table_type.from_dict(data)


@dataclass
class CommissionTableGroup:
    """A named, time-bounded version of an agreement grouping several tables."""

    id: str
    name: str
    valid_from: str | None = None
    valid_to: str | None = None  # None = open-ended
    active: bool = True
    member_table_ids: list[str] = field(default_factory=list)

    def covers_period(self, period: str) -> bool:
        """Whether the validity window intersects the calendar month of period."""
        month_start = parse_period(period)
        if month_start.month == 12:
            next_month = month_start.replace(year=month_start.year + 1, month=1)
        else:
            next_month = month_start.replace(month=month_start.month + 1)

        if self.valid_from and parse_date(self.valid_from) >= next_month:
            return False
        if self.valid_to and parse_date(self.valid_to) < month_start:
            return False
        return True

    @classmethod
    def from_dict(cls, data: dict) -> "CommissionTableGroup":
        # Member ids keep their order; duplicates are dropped
        members = list(dict.fromkeys(str(i) for i in data.get("member_table_ids") or []))
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            valid_from=data.get("valid_from") or None,
            valid_to=data.get("valid_to") or None,
            active=data.get("active", True) is not False,
            member_table_ids=members,
        )


@dataclass
class Counterparty:
    """A bank or payment institution with its agreement tables and groups."""

    id: str
    name: str
    counterparty_type: str = ""
    tables: list[CommissionTable] = field(default_factory=list)
    groups: list[CommissionTableGroup] = field(default_factory=list)

    def table_by_id(self, table_id: str) -> CommissionTable | None:
        for table in self.tables:
            if table.id == table_id:
                return table
        return None

    def group_by_id(self, group_id: str) -> CommissionTableGroup | None:
        for group in self.groups:
            if group.id == group_id:
                return group
        return None

    @classmethod
    def from_dict(cls, data: dict, strict: bool = True) -> "Counterparty":
        """
        Build a counterparty snapshot.

        With strict=False, tables with an unknown pricing model are logged and
        left out instead of rejecting the whole snapshot.
        """
        tables = []
        for table_data in data.get("tables") or []:
            try:
                tables.append(table_from_dict(table_data))
            except ValueError as e:
                if strict:
                    raise
                logger.warning("Skipping table %s of counterparty %s: %s", table_data.get("id"), data.get("id"), e)
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            counterparty_type=data.get("counterparty_type", ""),
            tables=tables,
            groups=[CommissionTableGroup.from_dict(g) for g in data.get("groups") or []],
        )


# =============================================================================
# SETTLEMENT RECORD MODELS
# =============================================================================


@dataclass
class CachedTotals:
    """Totals persisted on a settlement record. Authoritative when present."""

    volume: Decimal
    counterparty_share: Decimal
    platform_share: Decimal

    @property
    def gross(self) -> Decimal:
        return self.counterparty_share + self.platform_share

    @classmethod
    def from_record_dict(cls, data: dict) -> "CachedTotals | None":
        """
        Cached totals count only when all three fields are present.

        A record is either fully cached or recomputed: cached shares without a
        cached volume are ignored and the whole record is recomputed.
        """
        keys = ("cached_volume", "cached_counterparty_share", "cached_platform_share")
        if any(data.get(k) is None for k in keys):
            return None
        return cls(
            volume=to_decimal(data["cached_volume"]),
            counterparty_share=to_decimal(data["cached_counterparty_share"]),
            platform_share=to_decimal(data["cached_platform_share"]),
        )


@dataclass
class Adjustment:
    """Manual extra income or deduction entered on a settlement, per side."""

    description: str = ""
    counterparty_amount: Decimal = ZERO
    platform_amount: Decimal = ZERO

    @classmethod
    def from_dict(cls, data: dict | None) -> "Adjustment":
        data = data or {}
        return cls(
            description=data.get("description", ""),
            counterparty_amount=to_decimal(data.get("counterparty_amount")),
            platform_amount=to_decimal(data.get("platform_amount")),
        )


@dataclass
class SettlementRecord:
    """One period's recorded volumes for one table group ("Hakediş")."""

    id: str
    counterparty_id: str
    group_id: str
    period: str  # YYYY-MM
    volume_by_key: dict[str, Decimal] = field(default_factory=dict)
    status: str = STATUS_DRAFT
    cached: CachedTotals | None = None
    group_name: str = ""  # display snapshot, the live group is resolved by id
    created_at: str | None = None
    notes: str = ""
    extra_income: Adjustment = field(default_factory=Adjustment)
    deductions: Adjustment = field(default_factory=Adjustment)
    manual_volume: Decimal | None = None
    manual_platform_share: Decimal | None = None

    def volume_for(self, table_id: str, term: str | None = None) -> Decimal:
        return self.volume_by_key.get(volume_key(table_id, term), ZERO)

    @classmethod
    def from_dict(cls, data: dict, strict: bool = True) -> "SettlementRecord":
        """
        Build a record. An unknown status raises ValueError, or with
        strict=False is logged and read as Draft.
        """
        status = data.get("status", STATUS_DRAFT)
        if status not in SETTLEMENT_STATUSES:
            if strict:
                raise ValueError(
                    f"Invalid status: {status}. Must be one of {', '.join(SETTLEMENT_STATUSES)}"
                )
            logger.warning("Settlement %s has unknown status %r, reading it as %s", data.get("id"), status, STATUS_DRAFT)
            status = STATUS_DRAFT
        volumes = {str(k): to_decimal(v) for k, v in (data.get("volume_by_key") or {}).items()}
        return cls(
            id=str(data.get("id", "")),
            counterparty_id=str(data["counterparty_id"]),
            group_id=str(data["group_id"]),
            period=data["period"],
            volume_by_key=volumes,
            status=status,
            cached=CachedTotals.from_record_dict(data),
            group_name=data.get("group_name", ""),
            created_at=data.get("created_at") or None,
            notes=data.get("notes", ""),
            extra_income=Adjustment.from_dict(data.get("extra_income")),
            deductions=Adjustment.from_dict(data.get("deductions")),
            manual_volume=_optional_decimal(data.get("manual_volume")),
            manual_platform_share=_optional_decimal(data.get("manual_platform_share")),
        )


# =============================================================================
# INPUT MODELS
# =============================================================================


def _counterparties_from(data: dict, strict: bool = True) -> list[Counterparty]:
    return [Counterparty.from_dict(c, strict) for c in data.get("counterparties") or []]


@dataclass
class SettlementInput:
    """One record plus the snapshot it is computed against."""

    record: SettlementRecord
    counterparties: list[Counterparty]
    include_negative: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> "SettlementInput":
        return cls(
            record=SettlementRecord.from_dict(data["record"]),
            counterparties=_counterparties_from(data),
            include_negative=data.get("include_negative", True) is not False,
        )


@dataclass
class ReportInput:
    """Settlement records, snapshot and raw report filters.

    Parsing is lenient: a malformed record is logged and skipped so the rest
    of the report still aggregates.
    """

    records: list[SettlementRecord]
    counterparties: list[Counterparty]
    filters: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "ReportInput":
        records = []
        for record_data in data.get("records") or []:
            try:
                records.append(SettlementRecord.from_dict(record_data, strict=False))
            except (KeyError, TypeError, AttributeError) as e:
                logger.warning("Skipping malformed settlement %r: %s", record_data, e)
        return cls(
            records=records,
            counterparties=_counterparties_from(data, strict=False),
            filters=dict(data.get("filters") or {}),
        )


@dataclass
class SimulationInput:
    """Snapshot plus the raw hypothetical amount, validated by the engine."""

    counterparties: list[Counterparty]
    amount: object

    @classmethod
    def from_dict(cls, data: dict) -> "SimulationInput":
        return cls(counterparties=_counterparties_from(data), amount=data.get("amount"))


# =============================================================================
# OUTPUT / RESULT MODELS
# =============================================================================


@dataclass
class Earning:
    """Gross earning and its split.

    counterparty_share is None for treasury income: only the platform side is
    contractual there and the counterparty implicitly keeps the remainder.
    """

    gross: Decimal = ZERO
    counterparty_share: Decimal | None = ZERO
    platform_share: Decimal = ZERO


@dataclass
class SettlementLine:
    """One (table, term) or supplemental line of a settlement breakdown."""

    table_id: str
    key: str
    sequence: str
    group_name: str
    description: str
    product: str
    card_type: str
    geography: str
    model_label: str
    term: str | None
    rate_display: str
    classification: str = ""
    volume: Decimal = ZERO
    buy_amount: Decimal = ZERO
    sell_amount: Decimal = ZERO
    gross: Decimal = ZERO
    counterparty_share: Decimal = ZERO
    platform_share: Decimal = ZERO
    is_supplemental: bool = False


@dataclass
class SettlementComputation:
    """Live recomputation of a record from its volumes and the rate tables."""

    volume: Decimal = ZERO
    buy_amount: Decimal = ZERO
    sell_amount: Decimal = ZERO
    gross: Decimal = ZERO
    counterparty_share: Decimal = ZERO
    platform_share: Decimal = ZERO
    supplemental_volume: Decimal = ZERO
    supplemental_counterparty_share: Decimal = ZERO
    supplemental_platform_share: Decimal = ZERO
    excluded_counterparty_count: int = 0
    excluded_platform_count: int = 0
    contributing_lines: int = 0

    @property
    def total_volume(self) -> Decimal:
        return self.volume + self.supplemental_volume

    @property
    def total_counterparty_share(self) -> Decimal:
        return self.counterparty_share + self.supplemental_counterparty_share

    @property
    def total_platform_share(self) -> Decimal:
        return self.platform_share + self.supplemental_platform_share

    @property
    def total_gross(self) -> Decimal:
        return self.gross + self.supplemental_counterparty_share + self.supplemental_platform_share


@dataclass
class SettlementTotals:
    """Resolved totals of one record, from cache or recomputation."""

    volume: Decimal = ZERO
    gross: Decimal = ZERO
    counterparty_share: Decimal = ZERO
    platform_share: Decimal = ZERO
    source: str = "computed"  # 'cached' or 'computed'


@dataclass
class SettlementResult:
    """Everything computed for a single settlement record."""

    record: SettlementRecord
    group_name: str
    totals: SettlementTotals
    computation: SettlementComputation
    lines: list[SettlementLine]
    cache: CachedTotals


@dataclass
class CounterpartySummary:
    counterparty_id: str
    name: str
    record_count: int = 0
    volume: Decimal = ZERO
    gross: Decimal = ZERO
    counterparty_share: Decimal = ZERO
    platform_share: Decimal = ZERO


@dataclass
class PeriodSummary:
    period: str
    record_count: int = 0
    volume: Decimal = ZERO
    gross: Decimal = ZERO
    counterparty_share: Decimal = ZERO
    platform_share: Decimal = ZERO


@dataclass
class ReportSummary:
    record_count: int = 0
    finalized_count: int = 0
    draft_count: int = 0
    total_volume: Decimal = ZERO
    total_gross: Decimal = ZERO
    total_counterparty_share: Decimal = ZERO
    total_platform_share: Decimal = ZERO
    average_gross: Decimal = ZERO
    counterparty_ratio_percent: Decimal = ZERO


@dataclass
class SettlementReport:
    summary: ReportSummary
    by_counterparty: list[CounterpartySummary] = field(default_factory=list)
    by_period: list[PeriodSummary] = field(default_factory=list)


@dataclass
class SimulationRow:
    """Row-level detail behind a counterparty's simulated earning."""

    counterparty_name: str
    table_id: str
    classification: str
    model_label: str
    pricing_model: str
    buy_rate: Decimal = ZERO
    sell_rate: Decimal = ZERO
    commission_amount: Decimal = ZERO
    scaled_gross: Decimal = ZERO
    earning: Decimal = ZERO


@dataclass
class SimulationResult:
    counterparty_id: str
    counterparty_name: str
    counterparty_type: str
    row_count: int = 0
    average_buy_rate: Decimal = ZERO
    average_sell_rate: Decimal = ZERO
    total_sell_volume: Decimal = ZERO
    total_earning: Decimal = ZERO
    margin_percent: Decimal = ZERO
    rows: list[SimulationRow] = field(default_factory=list)


@dataclass
class SimulationOutcome:
    """Ranked simulation results, or an explicit no-data outcome."""

    amount: Decimal
    status: str  # 'ok' or 'no_data'
    results: list[SimulationResult] = field(default_factory=list)
    message: str = ""

    @property
    def has_data(self) -> bool:
        return self.status == "ok"
