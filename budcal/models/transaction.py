"""
Core Ledger Models for BudCal

These models define the strict schemas for all ledger data flowing
through the system. They are designed to:
1. Enforce type safety at runtime
2. Keep manual and calendar-derived records distinguishable
3. Be serializable for storage and logging
4. Make unclassified results impossible to persist

DESIGN DECISION: We use Pydantic v2. Amounts are Decimal, never float,
so that "150,50" parsed from a calendar and "150.50" typed by the user
are the same value.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


UNTITLED_EVENT = "Evento senza titolo"
DESCRIPTION_MAX_LENGTH = 1000
MANUAL_SOURCE_LABEL = "Manuale"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_amount(amount: Decimal) -> str:
    """Render an amount without trailing zeros (2000, 150.5)."""
    return f"{amount.normalize():f}"


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionKind(str, Enum):
    """
    Classification of a ledger entry.

    UNCLASSIFIED exists only as a resolver outcome.
    It is never stored.
    """
    INCOME = "income"
    EXPENSE = "expense"
    UNCLASSIFIED = "unclassified"

    @property
    def label(self) -> str:
        """Italian label used in rule summaries."""
        return {
            TransactionKind.INCOME: "Entrata",
            TransactionKind.EXPENSE: "Uscita",
        }.get(self, "Non classificato")


class TransactionOrigin(str, Enum):
    """
    Provenance of a transaction.

    CRITICAL: MANUAL records are never regenerated or overwritten by a sync.
    """
    MANUAL = "manual"
    CALENDAR = "calendar"


class RuleSource(str, Enum):
    """Where a calendar's default rule was read from."""
    DESCRIPTION = "description"
    NAME = "name"
    NONE = "none"


# =============================================================================
# RULE MODELS (ephemeral, never persisted)
# =============================================================================

class BudgetRule(BaseModel):
    """
    A classification parsed from a text fragment, e.g. "entrata 2000".
    """
    model_config = ConfigDict(frozen=True)

    kind: TransactionKind
    amount: Decimal = Field(..., ge=0)

    @field_validator('kind')
    @classmethod
    def reject_unclassified(cls, v: TransactionKind) -> TransactionKind:
        if v == TransactionKind.UNCLASSIFIED:
            raise ValueError("A budget rule must be income or expense")
        return v

    @property
    def label(self) -> str:
        return f"{self.kind.label} €{format_amount(self.amount)}"


class Classification(BaseModel):
    """Effective classification of one calendar event."""
    model_config = ConfigDict(frozen=True)

    kind: TransactionKind = TransactionKind.UNCLASSIFIED
    amount: Decimal = Field(default=Decimal("0"))

    @property
    def is_materializable(self) -> bool:
        """Only classified, strictly positive results become transactions."""
        return self.kind != TransactionKind.UNCLASSIFIED and self.amount > 0

    @classmethod
    def from_rule(cls, rule: Optional[BudgetRule]) -> "Classification":
        if rule is None:
            return cls()
        return cls(kind=rule.kind, amount=rule.amount)


class CalendarDefault(BaseModel):
    """A calendar's default rule together with the text it came from."""
    model_config = ConfigDict(frozen=True)

    rule: Optional[BudgetRule] = None
    source: RuleSource = RuleSource.NONE
    text: str = ""


# =============================================================================
# CORE TRANSACTION MODEL
# =============================================================================

class Transaction(BaseModel):
    """
    The unit of ledger data.

    For calendar-derived transactions `id` equals the source event id,
    so a re-sync addresses the same record instead of adding a new one.
    Editing a derived transaction flips `origin` to MANUAL and keeps both
    `id` and `external_event_id`; later syncs then skip that event.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        min_length=1,
        description="Transaction id (event id for calendar-derived records)"
    )
    date: str = Field(
        default_factory=lambda: _utcnow().isoformat(),
        description="ISO-8601 date or date-time"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Non-negative amount in EUR"
    )
    kind: TransactionKind
    description: str = Field(
        default=UNTITLED_EVENT,
        max_length=DESCRIPTION_MAX_LENGTH,
    )
    origin: TransactionOrigin = TransactionOrigin.MANUAL
    external_event_id: Optional[str] = Field(
        default=None,
        description="Calendar event this transaction was derived or edited from"
    )
    calendar_name: Optional[str] = Field(
        default=None,
        description="Calendar the event belonged to"
    )

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator('date')
    @classmethod
    def validate_iso_date(cls, v: str) -> str:
        """Accept `YYYY-MM-DD` or a full ISO date-time."""
        try:
            if len(v) == 10:
                date.fromisoformat(v)
            else:
                datetime.fromisoformat(v)
        except ValueError:
            raise ValueError(f"Not an ISO-8601 date or date-time: {v!r}")
        return v

    @field_validator('description', mode='before')
    @classmethod
    def default_description(cls, v: Optional[str]) -> str:
        if v is None or not str(v).strip():
            return UNTITLED_EVENT
        return v

    @field_validator('external_event_id', 'calendar_name', mode='before')
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode='after')
    def validate_kind(self) -> 'Transaction':
        if self.kind == TransactionKind.UNCLASSIFIED:
            raise ValueError("Unclassified transactions cannot be stored")
        return self

    @property
    def is_manual(self) -> bool:
        return self.origin == TransactionOrigin.MANUAL

    @property
    def occurred_on(self):
        """Calendar day of the transaction (local to its own offset)."""
        if len(self.date) == 10:
            return date.fromisoformat(self.date)
        return datetime.fromisoformat(self.date).date()

    @property
    def occurred_at(self) -> datetime:
        """
        Comparable UTC instant of the transaction.

        All-day dates count from midnight UTC; naive date-times are read as UTC.
        """
        if len(self.date) == 10:
            moment = datetime.combine(date.fromisoformat(self.date), datetime.min.time())
        else:
            moment = datetime.fromisoformat(self.date)
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment.astimezone(timezone.utc)

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.kind == TransactionKind.INCOME else -self.amount

    @property
    def source_label(self) -> str:
        """Grouping label: calendar name, or 'Manuale' for hand-entered records."""
        return self.calendar_name or MANUAL_SOURCE_LABEL

    def pins_event(self, event_id: str) -> bool:
        """True if this manual record already represents `event_id`."""
        return self.is_manual and event_id in (self.external_event_id, self.id)


# =============================================================================
# SYNC / DIAGNOSTICS MODELS
# =============================================================================

class TimeWindow(BaseModel):
    """Half-open interval of event start times covered by a sync."""
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @model_validator(mode='after')
    def validate_order(self) -> 'TimeWindow':
        if self.end <= self.start:
            raise ValueError("Time window end must be after its start")
        return self

    @classmethod
    def around(
        cls,
        now: Optional[datetime] = None,
        years_back: int = 1,
        years_forward: int = 1,
    ) -> "TimeWindow":
        """Window from `years_back` years ago to `years_forward` years ahead."""
        now = now or _utcnow()
        return cls(
            start=_shift_years(now, -years_back),
            end=_shift_years(now, years_forward),
        )

    @property
    def time_min(self) -> str:
        return _rfc3339(self.start)

    @property
    def time_max(self) -> str:
        return _rfc3339(self.end)


def _shift_years(moment: datetime, years: int) -> datetime:
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return moment.replace(year=moment.year + years, day=28)


def _rfc3339(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.isoformat()


class SyncReport(BaseModel):
    """
    Outcome of one reconciliation run.

    This is the sole output surface of a sync.
    """

    started_at: datetime = Field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None

    total_found: int = Field(default=0, ge=0, description="Events scanned")
    calendars_scanned: int = Field(
        default=0,
        ge=0,
        description="Calendars whose events were read completely"
    )
    created_transactions: int = Field(
        default=0,
        ge=0,
        description="Calendar-derived transactions written by this run"
    )
    removed_transactions: int = Field(
        default=0,
        ge=0,
        description="Stale calendar-derived transactions deleted by this run"
    )
    rules: list[str] = Field(
        default_factory=list,
        description="Active default rules, one line per calendar"
    )
    skipped_calendars: list[str] = Field(
        default_factory=list,
        description="Calendars whose events could not be listed"
    )

    @property
    def duration(self) -> Optional[timedelta]:
        if self.finished_at is None:
            return None
        return self.finished_at - self.started_at

    def to_summary_dict(self) -> dict:
        """Shape consumed by the UI layer."""
        return {
            "totalFound": self.total_found,
            "calendarsScanned": self.calendars_scanned,
            "createdTransactions": self.created_transactions,
            "rules": list(self.rules),
        }


class CalendarDiagnosis(BaseModel):
    """What one calendar resolves to, for debugging "no rule detected"."""

    calendar_name: str
    calendar_id: str
    description_used: str = ""
    rule_detected: Optional[BudgetRule] = None
    rule_source: RuleSource = RuleSource.NONE

    @property
    def rule_summary(self) -> str:
        if self.rule_detected is None:
            return "none detected"
        return f"from {self.rule_source.value} ({self.rule_detected.label})"


class LedgerSummary(BaseModel):
    """Totals over a set of transactions."""

    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")
    transaction_count: int = Field(default=0, ge=0)
    income_by_source: dict[str, Decimal] = Field(default_factory=dict)
    expense_by_source: dict[str, Decimal] = Field(default_factory=dict)

    @property
    def balance(self) -> Decimal:
        return self.income - self.expense
