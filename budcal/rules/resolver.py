"""
Rule Resolution

Decides which rule applies to a calendar event.

Precedence:
1. A rule in the event's own title/description (event-level override)
2. The calendar's default rule (description first, display name second)
3. Otherwise the event is unclassified with amount 0

This lets a "Stipendio entrata 1500" calendar default to income while a
single refund entry tagged "uscita 40" is booked as an expense.
"""

from typing import Optional

from budcal.models.transaction import (
    BudgetRule,
    CalendarDefault,
    Classification,
    RuleSource,
)
from budcal.rules.parser import parse_budget_rule


def event_text(title: Optional[str], description: Optional[str]) -> str:
    """Text searched for an event-level override."""
    return f"{title or ''} {description or ''}"


def resolve_calendar_default(
    description: Optional[str],
    name: Optional[str],
) -> CalendarDefault:
    """
    Compute a calendar's default rule.

    The description is preferred; the display name is only consulted
    when the description yields no rule.
    """
    rule = parse_budget_rule(description)
    if rule is not None:
        return CalendarDefault(
            rule=rule,
            source=RuleSource.DESCRIPTION,
            text=description,
        )

    rule = parse_budget_rule(name)
    if rule is not None:
        return CalendarDefault(rule=rule, source=RuleSource.NAME, text=name)

    return CalendarDefault(text=description or "")


def resolve_with_default(
    default_rule: Optional[BudgetRule],
    text: Optional[str],
) -> Classification:
    """Resolve an event against an already-parsed calendar default."""
    override = parse_budget_rule(text)
    if override is not None:
        return Classification.from_rule(override)
    return Classification.from_rule(default_rule)


def resolve(
    calendar_default_text: Optional[str],
    text: Optional[str],
) -> Classification:
    """
    Resolve an event's classification from raw texts.

    Args:
        calendar_default_text: The calendar's description (or name when
            the description has no rule)
        text: The event's title and description, concatenated

    Returns:
        The effective Classification (possibly unclassified)
    """
    return resolve_with_default(parse_budget_rule(calendar_default_text), text)
