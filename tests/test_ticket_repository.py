from datetime import timedelta

import pytest

from multisig_triage.triage.infrastructure import KeyValueTicketRepository, TicketKeys

from conftest import NOW


@pytest.fixture
def repository(memory_store, clock):
    return KeyValueTicketRepository(memory_store, clock=clock)


async def keys(store):
    return [key async for key, _ in store.scan()]


def test_key_encoding():
    assert TicketKeys.primary("t1") == "ticket:t1"
    assert TicketKeys.timestamp(NOW) == "001768478400000"
    assert TicketKeys.timestamp(NOW.replace(year=1960)) == "000000000000000"
    assert TicketKeys.urgency_bucket(0.25) == "0.3"
    assert TicketKeys.urgency_bucket(0.649) == "0.6"
    assert TicketKeys.urgency_floor(0.69) == "0.6"
    assert TicketKeys.index("status", "pending", "t1") == "index:status:pending:t1"
    assert TicketKeys.prefix_end("index:status:pending:") == "index:status:pending;"
    assert TicketKeys.ticket_id_from_index("index:urgency:0.6:t1") == "t1"


@pytest.mark.asyncio
async def test_store_writes_primary_and_indexes(repository, memory_store, make_ticket):
    ticket = make_ticket(id="t1", type="payroll", urgency=0.62, deadline=NOW + timedelta(days=1))

    assert await repository.store(ticket) == "t1"

    created = TicketKeys.timestamp(NOW)
    deadline = TicketKeys.timestamp(NOW + timedelta(days=1))
    assert await keys(memory_store) == sorted([
        f"index:deadline:{deadline}:t1",
        "index:status:pending:t1",
        f"index:time:{created}:t1",
        "index:type:payroll:t1",
        "index:urgency:0.6:t1",
        "ticket:t1",
    ])

    loaded = await repository.get("t1")
    assert loaded.type == "payroll"
    assert loaded.urgency == pytest.approx(0.62)
    assert loaded.created_at == NOW
    assert loaded.stored_at == NOW
    assert loaded.recipient.address.startswith("0x8ba1f1")


@pytest.mark.asyncio
async def test_restore_replaces_index_entries(repository, memory_store, make_ticket, clock):
    await repository.store(make_ticket(id="t1", urgency=0.2))

    clock.advance(minutes=5)
    updated = await repository.get("t1")
    updated.urgency = 0.9
    updated.status = "approved"
    await repository.store(updated)

    stored = await keys(memory_store)
    assert "index:urgency:0.2:t1" not in stored
    assert "index:status:pending:t1" not in stored
    assert "index:urgency:0.9:t1" in stored
    assert "index:status:approved:t1" in stored

    loaded = await repository.get("t1")
    assert loaded.created_at == NOW
    assert loaded.stored_at == NOW + timedelta(minutes=5)
    assert await repository.search(status="pending") == []


@pytest.mark.asyncio
async def test_delete_removes_every_key(repository, memory_store, make_ticket):
    await repository.store(make_ticket(id="t1", urgency=0.5, deadline=NOW))

    assert await repository.delete("t1") is True
    assert len(memory_store) == 0
    assert await repository.delete("t1") is False


@pytest.mark.asyncio
async def test_undecodable_records_are_skipped(repository, memory_store, make_ticket):
    await repository.store(make_ticket(id="good", urgency=0.5))
    await memory_store.put("ticket:bad", b"{not json")
    await memory_store.put("index:status:pending:bad", b"1")

    assert await repository.get("bad") is None
    assert [t.id for t in await repository.search()] == ["good"]
    assert [t.id for t in await repository.search(status="pending")] == ["good"]
    assert (await repository.get_stats())["total"] == 1

    assert await repository.delete("bad") is True
    assert await memory_store.get("ticket:bad") is None


@pytest.mark.asyncio
async def test_search_unions_predicates(repository, make_ticket):
    await repository.store(make_ticket(id="low", urgency=0.3))
    await repository.store(make_ticket(id="high", urgency=0.8, status="approved"))
    await repository.store(make_ticket(id="other", urgency=0.1, status="rejected"))
    await repository.store(make_ticket(id="both", urgency=0.75))

    results = await repository.search(status="pending", min_urgency=0.7)

    assert [t.id for t in results] == ["high", "both", "low"]

    by_status = {t.id for t in await repository.search(status="pending")}
    by_urgency = {t.id for t in await repository.search(min_urgency=0.7)}
    assert by_status == {"low", "both"}
    assert by_urgency == {"high", "both"}
    assert {t.id for t in results} == by_status | by_urgency


@pytest.mark.asyncio
async def test_min_urgency_checks_the_record_not_the_bucket(repository, make_ticket):
    await repository.store(make_ticket(id="rounded-up", urgency=0.66))
    await repository.store(make_ticket(id="rounded-down", urgency=0.64))

    assert [t.id for t in await repository.search(min_urgency=0.68)] == []
    assert [t.id for t in await repository.search(min_urgency=0.62)] == ["rounded-up", "rounded-down"]


@pytest.mark.asyncio
async def test_time_range_is_inclusive(repository, make_ticket):
    for hours in range(4):
        await repository.store(make_ticket(id=f"h{hours}", urgency=0.5, created_at=NOW + timedelta(hours=hours)))

    results = await repository.search(start_time=NOW + timedelta(hours=1), end_time=NOW + timedelta(hours=2))
    assert [t.id for t in results] == ["h2", "h1"]

    results = await repository.search(end_time=NOW)
    assert [t.id for t in results] == ["h0"]


@pytest.mark.asyncio
async def test_search_without_predicates_sorts_and_limits(repository, make_ticket):
    await repository.store(make_ticket(id="old", urgency=0.5, created_at=NOW))
    await repository.store(make_ticket(id="new", urgency=0.5, created_at=NOW + timedelta(seconds=1)))
    await repository.store(make_ticket(id="top", urgency=0.9, created_at=NOW))
    await repository.store(make_ticket(id="unscored", created_at=NOW))

    assert [t.id for t in await repository.search(limit=None)] == ["top", "new", "old", "unscored"]
    assert [t.id for t in await repository.search(limit=2)] == ["top", "new"]


@pytest.mark.asyncio
async def test_stale_index_entries_are_ignored(repository, memory_store, make_ticket):
    await repository.store(make_ticket(id="t1", urgency=0.5))
    await memory_store.put("index:status:pending:ghost", b"1")
    await memory_store.put("index:urgency:0.9:t1", b"1")

    assert [t.id for t in await repository.search(status="pending")] == ["t1"]
    assert await repository.search(min_urgency=0.8) == []


@pytest.mark.asyncio
async def test_get_pending_returns_all_pending(repository, make_ticket):
    for i in range(60):
        await repository.store(make_ticket(id=f"p{i:02d}", urgency=0.5))
    await repository.store(make_ticket(id="done", urgency=0.5, status="executed"))

    pending = await repository.get_pending()

    assert len(pending) == 60
    assert all(t.status == "pending" for t in pending)


@pytest.mark.asyncio
async def test_deadline_query_is_inclusive_and_earliest_first(repository, make_ticket):
    await repository.store(make_ticket(id="late", urgency=0.5, deadline=NOW + timedelta(days=2)))
    await repository.store(make_ticket(id="due", urgency=0.5, deadline=NOW))
    await repository.store(make_ticket(id="overdue", urgency=0.5, deadline=NOW - timedelta(days=1)))
    await repository.store(make_ticket(id="none", urgency=0.5))

    results = await repository.get_by_deadline_before(NOW)

    assert [t.id for t in results] == ["overdue", "due"]


@pytest.mark.asyncio
async def test_stats_counts_by_dimension(repository, make_ticket):
    await repository.store(make_ticket(id="a", type="payroll", urgency=0.67))
    await repository.store(make_ticket(id="b", type="payroll", urgency=0.61, status="approved"))
    await repository.store(make_ticket(id="c", type=None, urgency=0.1))
    await repository.store(make_ticket(id="d", type="grant"))

    stats = await repository.get_stats()

    assert stats == {
        "total": 4,
        "by_status": {"pending": 3, "approved": 1},
        "by_urgency": {"0.6": 2, "0.1": 1, "unscored": 1},
        "by_type": {"payroll": 2, "unknown": 1, "grant": 1},
    }
