"""
Budget Rule Parser

Turns free text (a calendar description, a calendar name, an event's
title and description) into an optional BudgetRule.

The rule language is deliberately tiny:

    <keyword>[separators][€]<number>

where <keyword> belongs to the income family ("entrata", "income",
"ricavo", "incasso", ...) or the expense family ("uscita", "spesa",
"expense", "costo", "pagamento", ...). Matching is case-insensitive and
the first keyword+number pair anywhere in the text counts.

IMPORTANT: Finding no rule is the common case and is NOT an error.
The parser never raises on ordinary text.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Optional

from budcal.models.transaction import BudgetRule, TransactionKind


_AMOUNT = r"[\s:.]*€?\s*(\d+[.,]?\d*)"

INCOME_PATTERN = re.compile(
    r"(?:entrat[aei]|income|ricav[oi]|incass[oi])" + _AMOUNT,
    re.IGNORECASE,
)
EXPENSE_PATTERN = re.compile(
    r"(?:uscit[aei]|spes[ae]|expense|cost[oi]|pagament[oi])" + _AMOUNT,
    re.IGNORECASE,
)

# Income is checked first: a fragment yields at most one rule
_PATTERNS = (
    (TransactionKind.INCOME, INCOME_PATTERN),
    (TransactionKind.EXPENSE, EXPENSE_PATTERN),
)


def parse_amount(raw: str) -> Optional[Decimal]:
    """Parse "150,50" or "150.50" (or "150.") as a Decimal."""
    try:
        return Decimal(raw.replace(",", ".").rstrip("."))
    except InvalidOperation:
        return None


def parse_budget_rule(text: Optional[str]) -> Optional[BudgetRule]:
    """
    Parse a text fragment into a BudgetRule.

    Args:
        text: Arbitrary text, may be None or empty

    Returns:
        The income rule if an income keyword+amount is present,
        else the expense rule if an expense one is, else None.
    """
    if not text:
        return None

    for kind, pattern in _PATTERNS:
        match = pattern.search(text)
        if match is None:
            continue
        amount = parse_amount(match.group(1))
        if amount is not None:
            return BudgetRule(kind=kind, amount=amount)

    return None
