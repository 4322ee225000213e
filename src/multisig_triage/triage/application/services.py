"""
Triage Application Services
============================

Application services for urgency scoring, ticket intake and re-triage.

Orchestrates business logic between domain entities and repositories.
"""

import json
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Dict, List, Optional
from uuid import uuid4

from pydantic import ValidationError

from multisig_triage.config import ScoringDefaults, TicketStatus
from multisig_triage.core import (
    InvalidTicketIdException,
    ResourceNotFoundException,
    ValidationException,
)
from multisig_triage.shared.infrastructure.logging import get_logger, log_latency
from multisig_triage.triage.application.dto import (
    LLMAdjustmentPayload,
    SearchTicketsRequest,
    SearchTicketsResponse,
    StatsResponse,
    SubmitTicketRequest,
    SubmitTicketResponse,
    TicketResponse,
)
from multisig_triage.triage.domain import (
    Ticket,
    UrgencyBreakdown,
    UrgencyCalculator,
    UrgencyPromptBuilder,
    UrgencyResult,
)
from multisig_triage.triage.domain.value_objects import utcnow

logger = get_logger(__name__)

Clock = Callable[[], datetime]


# ========== Repository Interfaces ==========

class ITicketRepository(ABC):
    """Interface for indexed ticket storage."""

    @abstractmethod
    async def store(self, ticket: Ticket) -> str:
        """Write the ticket and rebuild its index entries."""

    @abstractmethod
    async def get(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket by ID."""

    @abstractmethod
    async def delete(self, ticket_id: str) -> bool:
        """Delete ticket and its index entries."""

    @abstractmethod
    async def search(
        self,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        min_urgency: Optional[float] = None,
        status: Optional[str] = None,
        limit: Optional[int] = 50
    ) -> List[Ticket]:
        """Union search over the supplied predicates."""

    @abstractmethod
    async def get_pending(self) -> List[Ticket]:
        """All tickets with pending status."""

    @abstractmethod
    async def get_by_deadline_before(self, threshold: datetime) -> List[Ticket]:
        """Tickets whose deadline is at or before threshold."""

    @abstractmethod
    async def get_stats(self) -> dict:
        """Counts by status, urgency bucket and type."""


class IScoringBackend(ABC):
    """Interface for the optional external urgency adjustment."""

    @abstractmethod
    async def adjust(self, prompt: str) -> str:
        """Return free-form text answering the adjustment prompt."""


# ========== Application Services ==========

class UrgencyScoringService:
    """
    Service for ticket urgency scoring.

    Combines the deterministic weighted factors with an optional, bounded
    adjustment from an external backend. Never raises on backend failure.
    """

    def __init__(
        self,
        backend: Optional[IScoringBackend] = None,
        clock: Clock = utcnow
    ):
        self._backend = backend
        self._clock = clock

    @property
    def has_backend(self) -> bool:
        return self._backend is not None

    async def score(self, ticket: Ticket) -> UrgencyResult:
        """
        Score a ticket.

        Args:
            ticket: Ticket to score (not modified)

        Returns:
            UrgencyResult with score in [0, 1], breakdown, summary and tags
        """
        now = self._clock()
        factors = UrgencyCalculator.factors(ticket, now)
        base_urgency = UrgencyCalculator.base_urgency(factors)

        adjustment = 0.0
        summary = ""
        tags: List[str] = []

        if self._backend is not None:
            payload = await self._request_adjustment(ticket, base_urgency)
            if payload is not None:
                adjustment = payload.adjustment
                summary = payload.summary
                tags = payload.tags

        if not summary:
            summary = UrgencyCalculator.summary(ticket)
        if not tags:
            tags = UrgencyCalculator.tags(ticket, now)

        final_score = max(0.0, min(1.0, base_urgency + adjustment))

        return UrgencyResult(
            score=final_score,
            breakdown=UrgencyBreakdown(
                base_urgency=base_urgency,
                external_adjustment=adjustment,
                factors=factors
            ),
            summary=summary,
            tags=tags
        )

    async def _request_adjustment(
        self,
        ticket: Ticket,
        base_urgency: float
    ) -> Optional[LLMAdjustmentPayload]:
        prompt = UrgencyPromptBuilder.build_prompt(ticket, base_urgency)
        try:
            response = await self._backend.adjust(prompt)
        except Exception as e:
            logger.warning(
                "Urgency adjustment failed, using base urgency",
                extra={"ticket_id": ticket.id, "error": str(e)}
            )
            return None

        payload = self.parse_adjustment(response)
        if payload is None:
            logger.warning(
                "Discarding unparseable urgency adjustment",
                extra={"ticket_id": ticket.id}
            )
        return payload

    @staticmethod
    def parse_adjustment(text: Optional[str]) -> Optional[LLMAdjustmentPayload]:
        """
        Extract the first well-formed JSON object from a model response.

        Returns:
            Payload with the adjustment clamped and tags capped, or None
            when no valid block is found (the whole answer is discarded)
        """
        if not text:
            return None

        content = text
        if "```json" in content:
            content = content.split("```json", 1)[1].split("```", 1)[0]
        elif "```" in content:
            parts = content.split("```")
            if len(parts) >= 3:
                content = parts[1]

        decoder = json.JSONDecoder()
        start = content.find("{")
        while start != -1:
            try:
                data, _ = decoder.raw_decode(content, start)
                break
            except json.JSONDecodeError:
                start = content.find("{", start + 1)
        else:
            return None

        try:
            payload = LLMAdjustmentPayload.model_validate(data)
        except ValidationError:
            return None

        bound = ScoringDefaults.MAX_ADJUSTMENT
        payload.adjustment = max(-bound, min(bound, payload.adjustment))
        payload.summary = payload.summary.strip()
        payload.tags = [t.strip() for t in payload.tags if t.strip()][:ScoringDefaults.MAX_TAGS]
        return payload


class TriageService:
    """
    Facade exposed to remote callers: submit, fetch, search, stats, delete.

    Submission scores before storing, so stored tickets always carry an
    urgency.
    """

    def __init__(
        self,
        repository: ITicketRepository,
        scorer: UrgencyScoringService,
        clock: Clock = utcnow,
        default_limit: int = 50
    ):
        self._repo = repository
        self._scorer = scorer
        self._clock = clock
        self._default_limit = default_limit

    async def submit_ticket(self, request: Optional[SubmitTicketRequest]) -> SubmitTicketResponse:
        """
        Score and store a new ticket.

        Raises:
            ValidationException: If ticket data is missing or the ID is unusable
        """
        if request is None:
            raise ValidationException("Ticket data is required")

        ticket_id = request.id if request.id is not None else uuid4().hex
        if not ticket_id.strip():
            raise InvalidTicketIdException(ticket_id, "must not be blank")
        if ":" in ticket_id:
            raise InvalidTicketIdException(ticket_id, "must not contain ':'")

        ticket = request.to_domain(ticket_id)
        ticket.status = TicketStatus.PENDING
        ticket.created_at = self._clock()

        result = await self._scorer.score(ticket)
        ticket.apply_score(result)

        await self._repo.store(ticket)

        logger.info(
            "Ticket submitted",
            extra={"ticket_id": ticket.id, "urgency": round(ticket.urgency, 4)}
        )

        return SubmitTicketResponse(
            ticket_id=ticket.id,
            urgency=ticket.urgency,
            summary=ticket.summary,
            tags=ticket.tags
        )

    async def get_ticket(self, ticket_id: Optional[str]) -> TicketResponse:
        """
        Fetch one ticket.

        Raises:
            ValidationException: If no ID is given
            ResourceNotFoundException: If the ticket does not exist
        """
        if not ticket_id:
            raise ValidationException("Ticket ID is required")

        ticket = await self._repo.get(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return TicketResponse.from_domain(ticket)

    async def search_tickets(self, criteria: SearchTicketsRequest) -> SearchTicketsResponse:
        """Union search; results sorted by urgency then recency."""
        tickets = await self._repo.search(
            start_time=criteria.start_time,
            end_time=criteria.end_time,
            min_urgency=criteria.min_urgency,
            status=criteria.status,
            limit=criteria.limit or self._default_limit
        )
        return SearchTicketsResponse(
            tickets=[TicketResponse.from_domain(t) for t in tickets],
            count=len(tickets)
        )

    async def get_due_tickets(self, before: datetime) -> SearchTicketsResponse:
        """Tickets with a deadline at or before the given time."""
        tickets = await self._repo.get_by_deadline_before(before)
        return SearchTicketsResponse(
            tickets=[TicketResponse.from_domain(t) for t in tickets],
            count=len(tickets)
        )

    async def get_stats(self) -> StatsResponse:
        stats = await self._repo.get_stats()
        return StatsResponse(**stats)

    async def delete_ticket(self, ticket_id: Optional[str]) -> None:
        """
        Delete a ticket.

        Raises:
            ValidationException: If no ID is given
            ResourceNotFoundException: If the ticket does not exist
        """
        if not ticket_id:
            raise ValidationException("Ticket ID is required")
        if not await self._repo.delete(ticket_id):
            raise ResourceNotFoundException("Ticket", ticket_id)
        logger.info("Ticket deleted", extra={"ticket_id": ticket_id})


class ReTriageJob:
    """
    Re-scores pending tickets and persists meaningful changes.

    This job:
    1. Loads all pending tickets
    2. Recomputes each urgency score
    3. Writes back only when the score moved by more than the threshold
    """

    def __init__(
        self,
        repository: ITicketRepository,
        scorer: UrgencyScoringService,
        threshold: float = 0.1,
        clock: Clock = utcnow
    ):
        self._repo = repository
        self._scorer = scorer
        self._threshold = threshold
        self._clock = clock

    async def run(self) -> Dict[str, int]:
        """
        Run one re-triage pass. Never raises.

        Returns:
            Summary of evaluation results
        """
        summary = {"tickets_evaluated": 0, "tickets_updated": 0, "tickets_failed": 0}

        with log_latency(logger, "retriage_tick"):
            try:
                tickets = await self._repo.get_pending()
            except Exception as e:
                logger.error("Failed to load pending tickets", extra={"error": str(e)})
                return summary

            for ticket in tickets:
                summary["tickets_evaluated"] += 1
                try:
                    if await self._retriage(ticket):
                        summary["tickets_updated"] += 1
                except Exception as e:
                    summary["tickets_failed"] += 1
                    logger.error(
                        "Re-triage failed for ticket",
                        extra={"ticket_id": ticket.id, "error": str(e)}
                    )

        if summary["tickets_updated"] or summary["tickets_failed"]:
            logger.info("Re-triage pass finished", extra=summary)
        return summary

    async def _retriage(self, ticket: Ticket) -> bool:
        result = await self._scorer.score(ticket)

        if ticket.urgency is not None and abs(result.score - ticket.urgency) <= self._threshold:
            return False

        ticket.apply_score(result)
        ticket.last_updated = self._clock()
        await self._repo.store(ticket)
        return True
