"""
Triage Value Objects
====================

Deterministic urgency scoring for multisig tickets.

Every factor is an ordered bucket test: the first matching bucket wins.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from multisig_triage.config import ScoringDefaults
from multisig_triage.triage.domain.entities import Ticket

HOUR_SECONDS = 3600
DAY_SECONDS = 24 * HOUR_SECONDS
WEEK_SECONDS = 7 * DAY_SECONDS
MONTH_SECONDS = 30 * DAY_SECONDS

FACTOR_WEIGHTS: Dict[str, float] = {
    "value": 0.30,
    "deadline": 0.25,
    "approvals": 0.20,
    "type": 0.15,
    "recipient": 0.10,
}

# Approximate USD rates; other currencies pass through unconverted
CURRENCY_RATES: Dict[str, float] = {
    "ETH": 2000.0,
    "BTC": 45000.0,
}

TYPE_KEYWORDS: Tuple[Tuple[Tuple[str, ...], float], ...] = (
    (("emergency", "urgent"), 0.9),
    (("security", "breach"), 0.8),
    (("payroll", "salary"), 0.7),
    (("vendor", "payment"), 0.5),
    (("treasury", "investment"), 0.4),
    (("maintenance", "upgrade"), 0.2),
    (("test", "demo"), 0.1),
)
DEFAULT_TYPE_FACTOR = 0.3


def format_amount(value: float) -> str:
    """Render 250000.0 as '250000' and 1.5 as '1.5'."""
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return str(number)


class UrgencyCalculator:
    """
    Pure functions for urgency calculations.

    Stateless utility class; "now" is always passed in.
    """

    @staticmethod
    def to_usd(value: float, currency: Optional[str]) -> float:
        rate = CURRENCY_RATES.get((currency or "USD").upper(), 1.0)
        return value * rate

    @staticmethod
    def seconds_until(deadline: datetime, now: datetime) -> float:
        return (deadline - now).total_seconds()

    @staticmethod
    def value_factor(ticket: Ticket) -> float:
        if not ticket.value:
            return 0.1
        usd = UrgencyCalculator.to_usd(ticket.value, ticket.currency)
        if usd == 0:
            return 0.1
        if usd < 1_000:
            return 0.2
        if usd < 10_000:
            return 0.4
        if usd < 100_000:
            return 0.7
        if usd < 1_000_000:
            return 0.9
        return 1.0

    @staticmethod
    def deadline_factor(ticket: Ticket, now: datetime) -> float:
        if ticket.deadline is None:
            return 0.3
        remaining = UrgencyCalculator.seconds_until(ticket.deadline, now)
        if remaining < 0:
            return 1.0
        if remaining < HOUR_SECONDS:
            return 0.9
        if remaining < DAY_SECONDS:
            return 0.7
        if remaining < WEEK_SECONDS:
            return 0.5
        if remaining < MONTH_SECONDS:
            return 0.3
        return 0.1

    @staticmethod
    def approvals_factor(ticket: Ticket) -> float:
        current = ticket.approval_count
        required = ticket.effective_required_approvals
        if current >= required:
            return 0.1
        if current == 0:
            return 0.9
        if current == required - 1:
            return 0.3
        return 0.6

    @staticmethod
    def type_factor(ticket: Ticket) -> float:
        ticket_type = (ticket.type or "").lower()
        for keywords, factor in TYPE_KEYWORDS:
            if any(keyword in ticket_type for keyword in keywords):
                return factor
        return DEFAULT_TYPE_FACTOR

    @staticmethod
    def recipient_factor(ticket: Ticket) -> float:
        recipient = ticket.recipient
        if recipient is None or recipient.is_new or not recipient.verified:
            return 0.8
        if recipient.whitelisted:
            return 0.2
        return 0.5

    @staticmethod
    def factors(ticket: Ticket, now: datetime) -> Dict[str, float]:
        """Compute every factor value for a ticket."""
        return {
            "value": UrgencyCalculator.value_factor(ticket),
            "deadline": UrgencyCalculator.deadline_factor(ticket, now),
            "approvals": UrgencyCalculator.approvals_factor(ticket),
            "type": UrgencyCalculator.type_factor(ticket),
            "recipient": UrgencyCalculator.recipient_factor(ticket),
        }

    @staticmethod
    def base_urgency(factors: Dict[str, float]) -> float:
        """
        Weighted mean over the factors that carry a weight.

        Returns:
            The neutral score when no weighted factor is present
        """
        total_score = 0.0
        total_weight = 0.0
        for name, value in factors.items():
            weight = FACTOR_WEIGHTS.get(name)
            if weight:
                total_score += value * weight
                total_weight += weight

        if total_weight <= 0:
            return ScoringDefaults.NEUTRAL_SCORE
        return total_score / total_weight

    @staticmethod
    def summary(ticket: Ticket) -> str:
        """Template summary used when no model summary is available."""
        ticket_type = ticket.type or "transaction"
        if ticket.value:
            value = f"{format_amount(ticket.value)} {ticket.currency or 'USD'}"
        else:
            value = "unknown value"
        if ticket.recipient and ticket.recipient.address:
            recipient = f"to {ticket.recipient.address[:8]}..."
        else:
            recipient = "to unknown recipient"
        return f"{ticket_type} of {value} {recipient}"

    @staticmethod
    def tags(ticket: Ticket, now: datetime) -> List[str]:
        """Deterministic tags in generation order, capped at five."""
        tags: List[str] = []

        if ticket.type:
            tags.append(ticket.type.lower())

        if ticket.value:
            if ticket.value > 100_000:
                tags.append("high-value")
            elif ticket.value < 1_000:
                tags.append("low-value")
            else:
                tags.append("medium-value")

        current = ticket.approval_count
        if current >= ticket.effective_required_approvals:
            tags.append("approved")
        elif current == 0:
            tags.append("pending-approval")
        else:
            tags.append("partially-approved")

        if ticket.deadline is not None:
            remaining = UrgencyCalculator.seconds_until(ticket.deadline, now)
            if remaining < DAY_SECONDS:
                tags.append("urgent-deadline")
            elif remaining < WEEK_SECONDS:
                tags.append("near-deadline")

        return tags[:ScoringDefaults.MAX_TAGS]


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)
