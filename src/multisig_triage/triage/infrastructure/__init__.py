"""
Triage Infrastructure Layer
============================

Infrastructure implementations for ticket triage module.

Contains:
- Models: Record encoding and key scheme
- Repositories: Indexed key-value ticket repository
- External: LLM scoring backend, circuit breaker, re-triage scheduler
"""

from multisig_triage.triage.infrastructure.models import (
    TicketKeys,
    decode_ticket,
    encode_ticket,
)
from multisig_triage.triage.infrastructure.repositories import KeyValueTicketRepository
from multisig_triage.triage.infrastructure.external import (
    CircuitBreaker,
    CircuitState,
    LLMScoringBackend,
    ReTriageScheduler,
)

__all__ = [
    "TicketKeys",
    "decode_ticket",
    "encode_ticket",
    "KeyValueTicketRepository",
    "CircuitBreaker",
    "CircuitState",
    "LLMScoringBackend",
    "ReTriageScheduler",
]
