"""
Triage Application DTOs
========================

Data Transfer Objects for Triage API layer.

Pydantic models for request/response validation.
"""

import math
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from multisig_triage.triage.domain import (
    Approval,
    Recipient,
    Ticket,
    UrgencyBreakdown,
)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive timestamps as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ========== Request DTOs ==========

class RecipientInfo(BaseModel):
    """Recipient of the transaction."""
    address: Optional[str] = Field(None, description="Destination address")
    verified: bool = False
    whitelisted: bool = False
    is_new: bool = False


class ApprovalInfo(BaseModel):
    """Approval already collected for the transaction."""
    approver: str = Field(..., min_length=1, description="Approver identifier")
    timestamp: Optional[datetime] = None
    signature: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)


class SubmitTicketRequest(BaseModel):
    """Request model for ticket submission."""
    id: Optional[str] = Field(None, description="Caller-chosen ticket ID; generated when absent")
    type: Optional[str] = Field(None, description="Free-text transaction type")
    description: Optional[str] = Field(None, description="Free-text description")
    value: Optional[float] = Field(None, description="Transaction amount")
    currency: Optional[str] = Field(None, max_length=16, description="Currency code")
    recipient: Optional[RecipientInfo] = None
    deadline: Optional[datetime] = Field(None, description="Absolute approval deadline")
    required_approvals: Optional[int] = Field(None, ge=1, description="Signatures needed (default 2)")
    approvals: List[ApprovalInfo] = Field(default_factory=list)

    @field_validator("deadline")
    @classmethod
    def normalize_deadline(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)

    @field_validator("value")
    @classmethod
    def validate_value(cls, v: Optional[float]) -> Optional[float]:
        """Reject NaN and infinities."""
        if v is not None and not math.isfinite(v):
            raise ValueError("value must be a finite number")
        return v

    def to_domain(self, ticket_id: str) -> Ticket:
        """Convert to a fresh, unscored domain ticket."""
        recipient = None
        if self.recipient is not None:
            recipient = Recipient(
                address=self.recipient.address,
                verified=self.recipient.verified,
                whitelisted=self.recipient.whitelisted,
                is_new=self.recipient.is_new
            )

        ticket = Ticket(
            id=ticket_id,
            type=self.type,
            description=self.description,
            value=self.value,
            currency=self.currency,
            recipient=recipient,
            deadline=self.deadline,
            approvals=[
                Approval(approver=a.approver, timestamp=a.timestamp, signature=a.signature)
                for a in self.approvals
            ]
        )
        if self.required_approvals is not None:
            ticket.required_approvals = self.required_approvals
        return ticket


class SearchTicketsRequest(BaseModel):
    """
    Search predicates.

    Supplied predicates are combined by union: a ticket matching any of
    them is returned.
    """
    start_time: Optional[datetime] = Field(None, description="Created at or after")
    end_time: Optional[datetime] = Field(None, description="Created at or before")
    min_urgency: Optional[float] = Field(None, ge=0.0, le=1.0, description="Minimum urgency")
    status: Optional[str] = Field(None, min_length=1, description="Exact status")
    limit: Optional[int] = Field(None, ge=1, le=1000, description="Maximum tickets returned")

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_times(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)


# ========== Response DTOs ==========

class SubmitTicketResponse(BaseModel):
    """Response model for ticket submission."""
    ticket_id: str
    urgency: float = Field(..., ge=0.0, le=1.0)
    summary: str
    tags: List[str]


class UrgencyBreakdownInfo(BaseModel):
    """Breakdown of an urgency score."""
    base_urgency: float
    external_adjustment: float
    factors: Dict[str, float]

    @classmethod
    def from_domain(cls, breakdown: UrgencyBreakdown) -> "UrgencyBreakdownInfo":
        return cls(
            base_urgency=breakdown.base_urgency,
            external_adjustment=breakdown.external_adjustment,
            factors=dict(breakdown.factors)
        )


class TicketResponse(BaseModel):
    """Full ticket record."""
    id: str
    type: Optional[str] = None
    description: Optional[str] = None
    value: Optional[float] = None
    currency: Optional[str] = None
    recipient: Optional[RecipientInfo] = None
    deadline: Optional[datetime] = None
    required_approvals: int
    approvals: List[ApprovalInfo]
    status: str
    urgency: Optional[float] = None
    urgency_breakdown: Optional[UrgencyBreakdownInfo] = None
    summary: str
    tags: List[str]
    created_at: Optional[datetime] = None
    stored_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None

    @classmethod
    def from_domain(cls, ticket: Ticket) -> "TicketResponse":
        """Create from domain entity."""
        recipient = None
        if ticket.recipient is not None:
            recipient = RecipientInfo(
                address=ticket.recipient.address,
                verified=ticket.recipient.verified,
                whitelisted=ticket.recipient.whitelisted,
                is_new=ticket.recipient.is_new
            )
        breakdown = None
        if ticket.urgency_breakdown is not None:
            breakdown = UrgencyBreakdownInfo.from_domain(ticket.urgency_breakdown)

        return cls(
            id=ticket.id,
            type=ticket.type,
            description=ticket.description,
            value=ticket.value,
            currency=ticket.currency,
            recipient=recipient,
            deadline=ticket.deadline,
            required_approvals=ticket.required_approvals,
            approvals=[
                ApprovalInfo(approver=a.approver, timestamp=a.timestamp, signature=a.signature)
                for a in ticket.approvals
            ],
            status=ticket.status,
            urgency=ticket.urgency,
            urgency_breakdown=breakdown,
            summary=ticket.summary,
            tags=list(ticket.tags),
            created_at=ticket.created_at,
            stored_at=ticket.stored_at,
            last_updated=ticket.last_updated
        )


class SearchTicketsResponse(BaseModel):
    """Response model for ticket search."""
    tickets: List[TicketResponse]
    count: int


class StatsResponse(BaseModel):
    """Response model for ticket statistics."""
    total: int
    by_status: Dict[str, int]
    by_urgency: Dict[str, int]
    by_type: Dict[str, int]


# ========== LLM DTOs ==========

class LLMAdjustmentPayload(BaseModel):
    """Structured block expected inside an LLM urgency response."""
    adjustment: float = 0.0
    summary: str = ""
    tags: List[str] = Field(default_factory=list)

    @field_validator("adjustment")
    @classmethod
    def validate_adjustment(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("adjustment must be finite")
        return v

    @field_validator("summary", mode="before")
    @classmethod
    def empty_summary(cls, v):
        return "" if v is None else v

    @field_validator("tags", mode="before")
    @classmethod
    def empty_tags(cls, v):
        return [] if v is None else v
