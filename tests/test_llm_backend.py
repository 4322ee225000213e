from unittest.mock import AsyncMock

import pytest

from multisig_triage.core import CircuitOpenException, LLMException
from multisig_triage.infrastructure.llm import ILLMClient, MockLLMClient
from multisig_triage.triage.application import UrgencyScoringService
from multisig_triage.triage.infrastructure import CircuitBreaker, CircuitState, LLMScoringBackend


@pytest.mark.asyncio
async def test_backend_sends_system_and_user_prompt():
    client = MockLLMClient(adjustment=0.1)
    backend = LLMScoringBackend(client, temperature=0.2, max_tokens=150)

    text = await backend.adjust("Base urgency score: 0.50")

    messages = client.calls[0]
    assert [m["role"] for m in messages] == ["system", "user"]
    assert "adjustment" in messages[0]["content"]
    assert messages[1]["content"] == "Base urgency score: 0.50"

    payload = UrgencyScoringService.parse_adjustment(text)
    assert payload.adjustment == pytest.approx(0.1)
    assert payload.tags == ["mock", "multisig", "needs-review"]


@pytest.mark.asyncio
async def test_open_circuit_skips_the_client():
    client = AsyncMock(spec=ILLMClient)
    client.chat_completion.side_effect = LLMException("connection refused")
    breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60)
    backend = LLMScoringBackend(client, circuit_breaker=breaker)

    for _ in range(2):
        with pytest.raises(LLMException):
            await backend.adjust("prompt")
    assert breaker.state == CircuitState.OPEN

    with pytest.raises(CircuitOpenException) as excinfo:
        await backend.adjust("prompt")
    assert 0 < excinfo.value.retry_after <= 60
    assert client.chat_completion.await_count == 2


def test_circuit_half_opens_after_recovery_timeout():
    breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=0)

    breaker.record_failure()
    assert breaker.state == CircuitState.HALF_OPEN
    assert breaker.allow_request()

    breaker.record_success()
    assert breaker.state == CircuitState.CLOSED


def test_failure_while_half_open_reopens():
    breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=0)
    for _ in range(3):
        breaker.record_failure()
    assert breaker.state == CircuitState.HALF_OPEN

    breaker.recovery_timeout = 60
    breaker.record_failure()
    assert breaker.state == CircuitState.OPEN
    assert not breaker.allow_request()
