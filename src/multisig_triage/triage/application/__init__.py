"""
Triage Application Layer
=========================

Application layer for ticket triage module.

Contains:
- Services: Business logic orchestration
- DTOs: Data transfer objects for API serialization
"""

from multisig_triage.triage.application.dto import (
    ApprovalInfo,
    LLMAdjustmentPayload,
    RecipientInfo,
    SearchTicketsRequest,
    SearchTicketsResponse,
    StatsResponse,
    SubmitTicketRequest,
    SubmitTicketResponse,
    TicketResponse,
    UrgencyBreakdownInfo,
)
from multisig_triage.triage.application.services import (
    IScoringBackend,
    ITicketRepository,
    ReTriageJob,
    TriageService,
    UrgencyScoringService,
)

__all__ = [
    # DTOs
    "ApprovalInfo",
    "LLMAdjustmentPayload",
    "RecipientInfo",
    "SearchTicketsRequest",
    "SearchTicketsResponse",
    "StatsResponse",
    "SubmitTicketRequest",
    "SubmitTicketResponse",
    "TicketResponse",
    "UrgencyBreakdownInfo",
    # Services
    "ReTriageJob",
    "TriageService",
    "UrgencyScoringService",
    # Interfaces
    "IScoringBackend",
    "ITicketRepository",
]
