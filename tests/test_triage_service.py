from datetime import timedelta

import pytest

from multisig_triage.core import ResourceNotFoundException, ValidationException
from multisig_triage.triage.application import (
    SearchTicketsRequest,
    SubmitTicketRequest,
    TriageService,
    UrgencyScoringService,
)
from multisig_triage.triage.infrastructure import KeyValueTicketRepository

from conftest import NOW


@pytest.fixture
def service(memory_store, clock):
    repository = KeyValueTicketRepository(memory_store, clock=clock)
    return TriageService(repository, UrgencyScoringService(clock=clock), clock=clock, default_limit=2)


def payroll_request(**overrides) -> SubmitTicketRequest:
    fields = {
        "type": "payroll",
        "value": 250000,
        "currency": "USD",
        "required_approvals": 3,
        "approvals": [{"approver": "alice"}],
        "deadline": NOW + timedelta(days=90),
    }
    fields.update(overrides)
    return SubmitTicketRequest(**fields)


@pytest.mark.asyncio
async def test_submit_scores_and_stores(service):
    response = await service.submit_ticket(payroll_request())

    assert len(response.ticket_id) == 32
    assert response.urgency == pytest.approx(0.6)
    assert response.tags == ["payroll", "high-value", "partially-approved"]

    ticket = await service.get_ticket(response.ticket_id)
    assert ticket.status == "pending"
    assert ticket.created_at == NOW
    assert ticket.urgency_breakdown.factors["approvals"] == 0.6
    assert ticket.summary == response.summary


@pytest.mark.asyncio
async def test_submit_defaults_required_approvals(service):
    response = await service.submit_ticket(
        SubmitTicketRequest(id="demo-1", type="test demo", value=100, required_approvals=1)
    )
    assert response.urgency == pytest.approx(0.41)

    defaulted = await service.submit_ticket(SubmitTicketRequest(id="plain"))
    assert (await service.get_ticket(defaulted.ticket_id)).required_approvals == 2


@pytest.mark.asyncio
async def test_submit_rejects_bad_ids(service):
    with pytest.raises(ValidationException):
        await service.submit_ticket(None)
    with pytest.raises(ValidationException):
        await service.submit_ticket(payroll_request(id="a:b"))
    with pytest.raises(ValidationException):
        await service.submit_ticket(payroll_request(id="   "))


@pytest.mark.asyncio
async def test_get_and_delete_errors(service):
    with pytest.raises(ValidationException):
        await service.get_ticket("")
    with pytest.raises(ResourceNotFoundException):
        await service.get_ticket("nope")
    with pytest.raises(ResourceNotFoundException):
        await service.delete_ticket("nope")


@pytest.mark.asyncio
async def test_delete_ticket(service):
    response = await service.submit_ticket(payroll_request(id="t1"))

    await service.delete_ticket(response.ticket_id)

    with pytest.raises(ResourceNotFoundException):
        await service.get_ticket("t1")


@pytest.mark.asyncio
async def test_search_applies_default_limit(service):
    for i in range(3):
        await service.submit_ticket(payroll_request(id=f"t{i}"))

    result = await service.search_tickets(SearchTicketsRequest(status="pending"))
    assert result.count == 2

    result = await service.search_tickets(SearchTicketsRequest(status="pending", limit=10))
    assert result.count == 3


@pytest.mark.asyncio
async def test_due_tickets_and_stats(service):
    await service.submit_ticket(payroll_request(id="soon", deadline=NOW + timedelta(hours=1)))
    await service.submit_ticket(payroll_request(id="later"))

    due = await service.get_due_tickets(NOW + timedelta(days=1))
    assert [t.id for t in due.tickets] == ["soon"]

    stats = await service.get_stats()
    assert stats.total == 2
    assert stats.by_type == {"payroll": 2}
