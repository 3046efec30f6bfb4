"""Budget rule language: parsing and resolution."""

from budcal.rules.parser import (
    EXPENSE_PATTERN,
    INCOME_PATTERN,
    parse_amount,
    parse_budget_rule,
)
from budcal.rules.resolver import (
    event_text,
    resolve,
    resolve_calendar_default,
    resolve_with_default,
)

__all__ = [
    "EXPENSE_PATTERN",
    "INCOME_PATTERN",
    "event_text",
    "parse_amount",
    "parse_budget_rule",
    "resolve",
    "resolve_calendar_default",
    "resolve_with_default",
]
