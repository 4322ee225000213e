"""
Triage Infrastructure Repositories
====================================

Indexed ticket repository over an ordered key-value store.

Index entries only nominate candidate ticket IDs; every candidate is
checked against its primary record before it is returned, so stale or
dangling index entries never surface as results.
"""

from datetime import datetime
from typing import Callable, Dict, List, Optional

from pydantic import ValidationError

from multisig_triage.config import IndexDimension, TicketStatus
from multisig_triage.core import RepositoryException
from multisig_triage.infrastructure.kvstore import OrderedKeyValueStore
from multisig_triage.shared.infrastructure.logging import get_logger
from multisig_triage.triage.application import ITicketRepository
from multisig_triage.triage.domain import Ticket
from multisig_triage.triage.domain.value_objects import utcnow
from multisig_triage.triage.infrastructure.models import (
    INDEX_MARKER,
    TICKET_PREFIX,
    TicketKeys,
    as_utc,
    decode_ticket,
    encode_ticket,
    epoch_millis,
)

logger = get_logger(__name__)


def _sort_key(ticket: Ticket):
    urgency = ticket.urgency if ticket.urgency is not None else -1.0
    created = epoch_millis(ticket.created_at) if ticket.created_at else 0
    return urgency, created


class KeyValueTicketRepository(ITicketRepository):
    """Ticket storage with time, urgency, status, type and deadline indexes."""

    def __init__(
        self,
        store: OrderedKeyValueStore,
        clock: Callable[[], datetime] = utcnow
    ):
        self._store = store
        self._clock = clock

    # ========== Writes ==========

    async def store(self, ticket: Ticket) -> str:
        """
        Write a ticket and rebuild its index entries.

        Index entries of the previously stored version are removed first,
        so re-storing with changed fields leaves no ghost entries.

        Returns:
            The ticket ID
        """
        if not ticket.id:
            raise RepositoryException("Cannot store a ticket without an ID")

        key = TicketKeys.primary(ticket.id)
        previous = await self._load(key)
        if previous is not None:
            for index_key in TicketKeys.index_entries(previous):
                await self._store.delete(index_key)
            if ticket.created_at is None:
                ticket.created_at = previous.created_at

        now = self._clock()
        if ticket.created_at is None:
            ticket.created_at = now
        ticket.stored_at = now

        await self._store.put(key, encode_ticket(ticket))
        for index_key in TicketKeys.index_entries(ticket):
            await self._store.put(index_key, INDEX_MARKER)

        return ticket.id

    async def delete(self, ticket_id: str) -> bool:
        """
        Delete the primary record and the index entries derived from it.

        Returns:
            False if no record exists
        """
        key = TicketKeys.primary(ticket_id)
        raw = await self._store.get(key)
        if raw is None:
            return False

        try:
            ticket = decode_ticket(raw)
        except ValidationError as e:
            logger.warning(
                "Deleting undecodable ticket record",
                extra={"ticket_id": ticket_id, "error": str(e)}
            )
            await self._store.delete(key)
            return True

        await self._store.delete(key)
        for index_key in TicketKeys.index_entries(ticket):
            await self._store.delete(index_key)
        return True

    # ========== Reads ==========

    async def get(self, ticket_id: str) -> Optional[Ticket]:
        return await self._load(TicketKeys.primary(ticket_id))

    async def search(
        self,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        min_urgency: Optional[float] = None,
        status: Optional[str] = None,
        limit: Optional[int] = 50
    ) -> List[Ticket]:
        """
        Search tickets.

        Each supplied predicate contributes its own candidate set and the
        sets are unioned, so adding predicates widens the result. With no
        predicates every ticket is considered. Results are ordered by
        urgency, then creation time, both descending.

        Args:
            start_time: Created at or after
            end_time: Created at or before
            min_urgency: Urgency at least this value
            status: Exact status
            limit: Maximum results (None for all)
        """
        if start_time is None and end_time is None and min_urgency is None and status is None:
            tickets = await self._all_tickets()
        else:
            fetched: Dict[str, Optional[Ticket]] = {}
            matched: Dict[str, Ticket] = {}

            async def collect(ticket_ids: List[str], accept: Callable[[Ticket], bool]) -> None:
                for ticket_id in ticket_ids:
                    if ticket_id not in fetched:
                        fetched[ticket_id] = await self.get(ticket_id)
                    ticket = fetched[ticket_id]
                    if ticket is not None and accept(ticket):
                        matched.setdefault(ticket_id, ticket)

            if start_time is not None or end_time is not None:
                lower = as_utc(start_time) if start_time is not None else None
                upper = as_utc(end_time) if end_time is not None else None
                await collect(
                    await self._time_range_ids(lower, upper),
                    lambda t: t.created_at is not None
                    and (lower is None or t.created_at >= lower)
                    and (upper is None or t.created_at <= upper)
                )

            if min_urgency is not None:
                await collect(
                    await self._min_urgency_ids(min_urgency),
                    lambda t: t.urgency is not None and t.urgency >= min_urgency
                )

            if status is not None:
                await collect(
                    await self._status_ids(status),
                    lambda t: t.status == status
                )

            tickets = list(matched.values())

        tickets.sort(key=_sort_key, reverse=True)
        if limit is not None:
            tickets = tickets[:limit]
        return tickets

    async def get_pending(self) -> List[Ticket]:
        return await self.search(status=TicketStatus.PENDING, limit=None)

    async def get_by_deadline_before(self, threshold: datetime) -> List[Ticket]:
        """Tickets with a deadline at or before threshold, earliest first."""
        threshold = as_utc(threshold)
        prefix = TicketKeys.index_prefix(IndexDimension.DEADLINE)
        upper = TicketKeys.prefix_end(
            TicketKeys.index_prefix(IndexDimension.DEADLINE, TicketKeys.timestamp(threshold))
        )

        tickets = []
        for ticket_id in await self._scan_ids(prefix, upper):
            ticket = await self.get(ticket_id)
            if ticket is not None and ticket.deadline is not None and ticket.deadline <= threshold:
                tickets.append(ticket)
        return tickets

    async def get_stats(self) -> dict:
        """
        Count stored tickets by status, urgency bucket and type.

        Malformed records are skipped.
        """
        stats = {
            "total": 0,
            "by_status": {},
            "by_urgency": {},
            "by_type": {},
        }

        for ticket in await self._all_tickets():
            stats["total"] += 1

            by_status = stats["by_status"]
            by_status[ticket.status] = by_status.get(ticket.status, 0) + 1

            bucket = TicketKeys.urgency_floor(ticket.urgency) if ticket.is_scored else "unscored"
            stats["by_urgency"][bucket] = stats["by_urgency"].get(bucket, 0) + 1

            ticket_type = ticket.type or "unknown"
            stats["by_type"][ticket_type] = stats["by_type"].get(ticket_type, 0) + 1

        return stats

    # ========== Helpers ==========

    async def _load(self, key: str) -> Optional[Ticket]:
        raw = await self._store.get(key)
        if raw is None:
            return None
        try:
            return decode_ticket(raw)
        except ValidationError as e:
            logger.warning("Skipping undecodable ticket record", extra={"key": key, "error": str(e)})
            return None

    async def _all_tickets(self) -> List[Ticket]:
        tickets = []
        async for key, raw in self._store.scan(TICKET_PREFIX, TicketKeys.prefix_end(TICKET_PREFIX)):
            try:
                tickets.append(decode_ticket(raw))
            except ValidationError as e:
                logger.warning("Skipping undecodable ticket record", extra={"key": key, "error": str(e)})
        return tickets

    async def _scan_ids(self, lower: str, upper: str) -> List[str]:
        """Ticket IDs of index entries in [lower, upper), deduplicated in key order."""
        ticket_ids: Dict[str, None] = {}
        async for key, _ in self._store.scan(lower, upper):
            ticket_ids.setdefault(TicketKeys.ticket_id_from_index(key), None)
        return list(ticket_ids)

    async def _time_range_ids(
        self,
        start_time: Optional[datetime],
        end_time: Optional[datetime]
    ) -> List[str]:
        prefix = TicketKeys.index_prefix(IndexDimension.TIME)
        lower = prefix
        upper = TicketKeys.prefix_end(prefix)
        if start_time is not None:
            lower = TicketKeys.index_prefix(IndexDimension.TIME, TicketKeys.timestamp(start_time))
        if end_time is not None:
            upper = TicketKeys.prefix_end(
                TicketKeys.index_prefix(IndexDimension.TIME, TicketKeys.timestamp(end_time))
            )
        return await self._scan_ids(lower, upper)

    async def _min_urgency_ids(self, min_urgency: float) -> List[str]:
        # Buckets are rounded, so start one bucket low and let the record decide
        prefix = TicketKeys.index_prefix(IndexDimension.URGENCY)
        lower = TicketKeys.index_prefix(
            IndexDimension.URGENCY, TicketKeys.urgency_floor(max(0.0, min_urgency))
        )
        return await self._scan_ids(lower, TicketKeys.prefix_end(prefix))

    async def _status_ids(self, status: str) -> List[str]:
        prefix = TicketKeys.index_prefix(IndexDimension.STATUS, status)
        return await self._scan_ids(prefix, TicketKeys.prefix_end(prefix))
