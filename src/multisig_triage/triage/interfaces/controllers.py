"""
Triage Controllers (API Routes)
================================

FastAPI routes for ticket submission, lookup and search.

Controllers delegate to application services.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from multisig_triage.shared.infrastructure.logging import get_context_logger
from multisig_triage.triage.application import (
    SearchTicketsRequest,
    SearchTicketsResponse,
    StatsResponse,
    SubmitTicketRequest,
    SubmitTicketResponse,
    TicketResponse,
    TriageService,
)

router = APIRouter(prefix="/tickets", tags=["Ticket Triage"])


# ========== Example payloads for Swagger ==========

SUBMIT_REQUEST_EXAMPLE = {
    "type": "payroll",
    "description": "Monthly contractor payroll",
    "value": 250000,
    "currency": "USD",
    "recipient": {"address": "0x8ba1f109551bd432803012645ac136ddd64dba72", "verified": True},
    "deadline": "2026-12-01T12:00:00Z",
    "required_approvals": 3,
    "approvals": [{"approver": "alice", "signature": "0xabc"}]
}

SUBMIT_RESPONSE_EXAMPLE = {
    "ticket_id": "9f0c6b1e2d7a4f3e8b5c1a2d3e4f5a6b",
    "urgency": 0.57,
    "summary": "payroll of 250000 USD to 0x8ba1f1...",
    "tags": ["payroll", "high-value", "partially-approved"]
}


# ========== Dependencies ==========

def get_triage_service(request: Request) -> TriageService:
    """Get the triage service built during application startup."""
    service = getattr(request.app.state, "triage_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Triage service not available"
        )
    return service


# ========== Route Handlers ==========

@router.post(
    "",
    response_model=SubmitTicketResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a ticket for triage",
    description="""
    Score a multisig approval ticket and store it.

    The urgency score blends value, deadline, approvals, type and recipient
    factors, optionally nudged by the configured language model.
    """,
    responses={
        201: {
            "description": "Ticket scored and stored",
            "content": {"application/json": {"example": SUBMIT_RESPONSE_EXAMPLE}}
        },
        400: {"description": "Invalid ticket data"}
    }
)
async def submit_ticket(
    request: Request,
    payload: SubmitTicketRequest,
    service: TriageService = Depends(get_triage_service)
) -> SubmitTicketResponse:
    logger = get_context_logger(__name__, getattr(request.state, "correlation_id", None))
    result = await service.submit_ticket(payload)
    logger.info("Ticket accepted", extra={"ticket_id": result.ticket_id})
    return result


@router.get(
    "",
    response_model=SearchTicketsResponse,
    summary="Search tickets",
    description="""
    Return tickets matching ANY of the supplied predicates (union), sorted
    by urgency then creation time, newest first. Without predicates all
    tickets are returned.
    """
)
async def search_tickets(
    start_time: Optional[datetime] = Query(None, description="Created at or after"),
    end_time: Optional[datetime] = Query(None, description="Created at or before"),
    min_urgency: Optional[float] = Query(None, ge=0.0, le=1.0),
    ticket_status: Optional[str] = Query(None, alias="status", min_length=1),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    service: TriageService = Depends(get_triage_service)
) -> SearchTicketsResponse:
    criteria = SearchTicketsRequest(
        start_time=start_time,
        end_time=end_time,
        min_urgency=min_urgency,
        status=ticket_status,
        limit=limit
    )
    return await service.search_tickets(criteria)


@router.get(
    "/due",
    response_model=SearchTicketsResponse,
    summary="Tickets due before a time"
)
async def due_tickets(
    before: datetime = Query(..., description="Deadline at or before"),
    service: TriageService = Depends(get_triage_service)
) -> SearchTicketsResponse:
    return await service.get_due_tickets(before)


@router.get(
    "/stats",
    response_model=StatsResponse,
    summary="Ticket statistics"
)
async def ticket_stats(
    service: TriageService = Depends(get_triage_service)
) -> StatsResponse:
    return await service.get_stats()


@router.get(
    "/{ticket_id}",
    response_model=TicketResponse,
    summary="Get a ticket",
    responses={404: {"description": "Ticket not found"}}
)
async def get_ticket(
    ticket_id: str,
    service: TriageService = Depends(get_triage_service)
) -> TicketResponse:
    return await service.get_ticket(ticket_id)


@router.delete(
    "/{ticket_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a ticket",
    responses={404: {"description": "Ticket not found"}}
)
async def delete_ticket(
    ticket_id: str,
    service: TriageService = Depends(get_triage_service)
) -> Response:
    await service.delete_ticket(ticket_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


triage_router = router
