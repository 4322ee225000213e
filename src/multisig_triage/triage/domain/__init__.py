"""
Triage Domain Layer
===================

Pure business objects and calculations for ticket triage.
"""

from multisig_triage.triage.domain.entities import (
    Approval,
    Recipient,
    Ticket,
    UrgencyBreakdown,
    UrgencyPromptBuilder,
    UrgencyResult,
)
from multisig_triage.triage.domain.value_objects import (
    FACTOR_WEIGHTS,
    UrgencyCalculator,
    format_amount,
)

__all__ = [
    "Approval",
    "Recipient",
    "Ticket",
    "UrgencyBreakdown",
    "UrgencyPromptBuilder",
    "UrgencyResult",
    "FACTOR_WEIGHTS",
    "UrgencyCalculator",
    "format_amount",
]
