from datetime import timedelta

import pytest

from multisig_triage.core import InvalidUrgencyScoreException
from multisig_triage.triage.domain import (
    FACTOR_WEIGHTS,
    Recipient,
    UrgencyBreakdown,
    UrgencyCalculator,
    UrgencyResult,
    format_amount,
)

from conftest import NOW


def test_factor_weights_sum_to_one():
    assert sum(FACTOR_WEIGHTS.values()) == pytest.approx(1.0)


def test_payroll_ticket_blends_to_high_middle(make_ticket):
    ticket = make_ticket(
        type="payroll",
        value=250000,
        currency="USD",
        required_approvals=3,
        approvals=1,
        recipient=None,
        deadline=NOW + timedelta(days=90),
    )

    factors = UrgencyCalculator.factors(ticket, NOW)
    assert factors == {
        "value": 0.9,
        "deadline": 0.1,
        "approvals": 0.6,
        "type": 0.7,
        "recipient": 0.8,
    }
    assert UrgencyCalculator.base_urgency(factors) == pytest.approx(0.6)
    assert UrgencyCalculator.tags(ticket, NOW) == ["payroll", "high-value", "partially-approved"]


def test_test_demo_ticket_is_low_urgency(make_ticket):
    ticket = make_ticket(
        type="test demo",
        value=100,
        currency=None,
        required_approvals=1,
        recipient=None,
    )

    factors = UrgencyCalculator.factors(ticket, NOW)
    assert factors["type"] == 0.1
    assert factors["value"] == 0.2
    assert factors["approvals"] == 0.9
    assert factors["deadline"] == 0.3
    assert UrgencyCalculator.base_urgency(factors) == pytest.approx(0.41)


@pytest.mark.parametrize(
    "value,currency,expected",
    [
        (None, "USD", 0.1),
        (0, "USD", 0.1),
        (999, "USD", 0.2),
        (1000, "USD", 0.4),
        (10, "ETH", 0.7),
        (3, "btc", 0.9),
        (1_000_000, "EUR", 1.0),
    ],
)
def test_value_factor_converts_currency(make_ticket, value, currency, expected):
    ticket = make_ticket(value=value, currency=currency)
    assert UrgencyCalculator.value_factor(ticket) == expected


@pytest.mark.parametrize(
    "offset,expected",
    [
        (timedelta(seconds=-1), 1.0),
        (timedelta(minutes=30), 0.9),
        (timedelta(hours=1), 0.7),
        (timedelta(days=2), 0.5),
        (timedelta(days=10), 0.3),
        (timedelta(days=30), 0.1),
    ],
)
def test_deadline_factor_buckets(make_ticket, offset, expected):
    ticket = make_ticket(deadline=NOW + offset)
    assert UrgencyCalculator.deadline_factor(ticket, NOW) == expected


@pytest.mark.parametrize(
    "required,current,expected",
    [(2, 2, 0.1), (2, 0, 0.9), (2, 1, 0.3), (4, 1, 0.6), (1, 3, 0.1)],
)
def test_approvals_factor(make_ticket, required, current, expected):
    ticket = make_ticket(required_approvals=required, approvals=current)
    assert UrgencyCalculator.approvals_factor(ticket) == expected


def test_approvals_default_to_two_required(make_ticket):
    ticket = make_ticket(required_approvals=0, approvals=1)
    assert ticket.effective_required_approvals == 2
    assert UrgencyCalculator.approvals_factor(ticket) == 0.3


def test_type_factor_uses_first_matching_group(make_ticket):
    assert UrgencyCalculator.type_factor(make_ticket(type="Security EMERGENCY")) == 0.9
    assert UrgencyCalculator.type_factor(make_ticket(type="Contract Upgrade")) == 0.2
    assert UrgencyCalculator.type_factor(make_ticket(type="grant")) == 0.3
    assert UrgencyCalculator.type_factor(make_ticket(type=None)) == 0.3


def test_recipient_factor(make_ticket):
    assert UrgencyCalculator.recipient_factor(make_ticket(recipient=None)) == 0.8
    unverified = Recipient(address="0xabc", verified=False, whitelisted=True)
    assert UrgencyCalculator.recipient_factor(make_ticket(recipient=unverified)) == 0.8
    fresh = Recipient(address="0xabc", verified=True, whitelisted=True, is_new=True)
    assert UrgencyCalculator.recipient_factor(make_ticket(recipient=fresh)) == 0.8
    trusted = Recipient(address="0xabc", verified=True, whitelisted=True)
    assert UrgencyCalculator.recipient_factor(make_ticket(recipient=trusted)) == 0.2
    known = Recipient(address="0xabc", verified=True)
    assert UrgencyCalculator.recipient_factor(make_ticket(recipient=known)) == 0.5


def test_base_urgency_ignores_unweighted_factors():
    assert UrgencyCalculator.base_urgency({}) == 0.5
    assert UrgencyCalculator.base_urgency({"mood": 1.0}) == 0.5
    assert UrgencyCalculator.base_urgency({"value": 0.4, "mood": 1.0}) == pytest.approx(0.4)


def test_summary_template(make_ticket):
    ticket = make_ticket(type="payroll", value=250000.0, currency=None)
    assert UrgencyCalculator.summary(ticket) == "payroll of 250000 USD to 0x8ba1f1..."

    bare = make_ticket(type=None, value=None, recipient=None)
    assert UrgencyCalculator.summary(bare) == "transaction of unknown value to unknown recipient"


def test_tags_cover_value_tiers_and_deadlines(make_ticket):
    soon = make_ticket(type="Vendor", value=500, approvals=0, deadline=NOW + timedelta(hours=3))
    assert UrgencyCalculator.tags(soon, NOW) == [
        "vendor", "low-value", "pending-approval", "urgent-deadline"
    ]

    later = make_ticket(type=None, value=50000, approvals=2, deadline=NOW + timedelta(days=3))
    assert UrgencyCalculator.tags(later, NOW) == ["medium-value", "approved", "near-deadline"]


def test_format_amount():
    assert format_amount(250000.0) == "250000"
    assert format_amount(1.5) == "1.5"


def test_urgency_result_rejects_out_of_range_scores():
    breakdown = UrgencyBreakdown(base_urgency=0.5, external_adjustment=0.0, factors={})
    with pytest.raises(InvalidUrgencyScoreException):
        UrgencyResult(score=1.2, breakdown=breakdown, summary="", tags=[])
