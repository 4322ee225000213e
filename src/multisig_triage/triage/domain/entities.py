"""
Triage Domain Entities
======================

Domain entities for the ticket triage module.

Contains pure Python business objects for multisig approval tickets and
the urgency results attached to them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from multisig_triage.config import ScoringDefaults, TicketStatus
from multisig_triage.core import InvalidUrgencyScoreException


@dataclass
class Recipient:
    """Destination of a multisig transaction."""
    address: Optional[str] = None
    verified: bool = False
    whitelisted: bool = False
    is_new: bool = False


@dataclass
class Approval:
    """One co-signer approval."""
    approver: str
    timestamp: Optional[datetime] = None
    signature: Optional[str] = None


@dataclass
class UrgencyBreakdown:
    """How an urgency score was assembled."""
    base_urgency: float
    external_adjustment: float
    factors: Dict[str, float]


@dataclass
class UrgencyResult:
    """
    Result of urgency scoring.

    Score is always within [0, 1]; tags hold at most five entries.
    """
    score: float
    breakdown: UrgencyBreakdown
    summary: str
    tags: List[str]

    def __post_init__(self):
        """Validate urgency result."""
        if not 0.0 <= self.score <= 1.0:
            raise InvalidUrgencyScoreException(self.score)


@dataclass
class Ticket:
    """
    Multisig approval ticket.

    Derived fields (urgency, breakdown, summary, tags) are overwritten on
    every scoring; created_at is set once on first store.
    """
    id: Optional[str]
    type: Optional[str] = None
    description: Optional[str] = None
    value: Optional[float] = None
    currency: Optional[str] = None
    recipient: Optional[Recipient] = None
    deadline: Optional[datetime] = None
    required_approvals: int = ScoringDefaults.REQUIRED_APPROVALS
    approvals: List[Approval] = field(default_factory=list)
    status: str = TicketStatus.PENDING

    # Derived by scoring
    urgency: Optional[float] = None
    urgency_breakdown: Optional[UrgencyBreakdown] = None
    summary: str = ""
    tags: List[str] = field(default_factory=list)

    # Lifecycle timestamps
    created_at: Optional[datetime] = None
    stored_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None

    @property
    def approval_count(self) -> int:
        return len(self.approvals)

    @property
    def effective_required_approvals(self) -> int:
        """Required approvals, falling back to the default when unset."""
        return self.required_approvals or ScoringDefaults.REQUIRED_APPROVALS

    @property
    def is_scored(self) -> bool:
        return self.urgency is not None

    def apply_score(self, result: UrgencyResult) -> None:
        """Overwrite the derived fields with a fresh scoring result."""
        self.urgency = result.score
        self.urgency_breakdown = result.breakdown
        self.summary = result.summary
        self.tags = list(result.tags)


class UrgencyPromptBuilder:
    """
    Builds prompts for LLM urgency adjustment.

    All prompt logic in one place.
    """

    SYSTEM_PROMPT = """You are a financial risk analyst reviewing multisig transaction approval tickets.

For each ticket you receive a deterministic base urgency score between 0 and 1.
Decide how much the score should move, write a short summary, and pick tags.

RULES:
- adjustment must be between -0.2 and +0.2
- summary is 1-2 sentences describing the transaction
- tags are 3-5 short lowercase labels

Respond ONLY in JSON format:
{
    "adjustment": 0.05,
    "summary": "Brief description",
    "tags": ["tag1", "tag2", "tag3"]
}"""

    @classmethod
    def build_prompt(cls, ticket: Ticket, base_urgency: float) -> str:
        """Build adjustment prompt from ticket fields and the base score."""
        value = ticket.value if ticket.value is not None else "Unknown"
        deadline = ticket.deadline.isoformat() if ticket.deadline else "No deadline"
        recipient = ticket.recipient.address if ticket.recipient and ticket.recipient.address else "Unknown"

        return f"""Base urgency score: {base_urgency:.2f}

Ticket details:
- Type: {ticket.type or "Unknown"}
- Value: {value} {ticket.currency or "USD"}
- Description: {ticket.description or "No description"}
- Deadline: {deadline}
- Approvals: {ticket.approval_count}/{ticket.effective_required_approvals}
- Recipient: {recipient}

How much should the base urgency score of {base_urgency:.2f} be adjusted (respond with JSON only)?"""

    @classmethod
    def get_system_prompt(cls) -> str:
        """Get the system prompt for urgency adjustment."""
        return cls.SYSTEM_PROMPT
