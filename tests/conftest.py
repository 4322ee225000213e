from datetime import datetime, timedelta, timezone

import pytest

from multisig_triage.infrastructure.kvstore import InMemoryKeyValueStore
from multisig_triage.triage.domain import Approval, Recipient, Ticket

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def memory_store():
    return InMemoryKeyValueStore()


@pytest.fixture
def make_ticket():
    counter = {"n": 0}

    def factory(**overrides) -> Ticket:
        counter["n"] += 1
        approvals = overrides.pop("approvals", None)
        if isinstance(approvals, int):
            approvals = [Approval(approver=f"signer-{i}") for i in range(approvals)]
        fields = {
            "id": f"t{counter['n']}",
            "type": "vendor payment",
            "description": "Quarterly invoice",
            "value": 5000.0,
            "currency": "USD",
            "recipient": Recipient(address="0x8ba1f109551bd432803012645ac136ddd64dba72", verified=True),
            "deadline": None,
            "required_approvals": 2,
            "approvals": approvals or [],
        }
        fields.update(overrides)
        return Ticket(**fields)

    return factory
