"""
Triage Storage Models
=====================

Record encoding and the composite key scheme used on the ordered
key-value store.

Layout:
    ticket:<ticketId>                      -> JSON ticket record
    index:<dimension>:<value>:<ticketId>   -> presence marker

Numeric key components are zero-padded so that byte order matches
numeric order.
"""

import math
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from pydantic import TypeAdapter

from multisig_triage.config import IndexDimension
from multisig_triage.triage.domain import Ticket

TICKET_PREFIX = "ticket:"
INDEX_PREFIX = "index:"
INDEX_MARKER = b"1"
TIMESTAMP_WIDTH = 15

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ticket_adapter = TypeAdapter(Ticket)


def encode_ticket(ticket: Ticket) -> bytes:
    """Serialize a ticket record to JSON bytes."""
    return _ticket_adapter.dump_json(ticket)


def decode_ticket(raw: bytes) -> Ticket:
    """
    Parse a stored ticket record.

    Raises:
        pydantic.ValidationError: If the record is malformed
    """
    return _ticket_adapter.validate_json(raw)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def epoch_millis(value: datetime) -> int:
    """Milliseconds since the epoch; pre-epoch times clamp to 0."""
    return max(0, (as_utc(value) - _EPOCH) // timedelta(milliseconds=1))


class TicketKeys:
    """Builds and parses the keys a ticket occupies."""

    @staticmethod
    def primary(ticket_id: str) -> str:
        return f"{TICKET_PREFIX}{ticket_id}"

    @staticmethod
    def timestamp(value: datetime) -> str:
        return str(epoch_millis(value)).zfill(TIMESTAMP_WIDTH)

    @staticmethod
    def urgency_bucket(urgency: float) -> str:
        """Urgency rounded half-up to one decimal."""
        return f"{math.floor(urgency * 10 + 0.5) / 10:.1f}"

    @staticmethod
    def urgency_floor(urgency: float) -> str:
        """Urgency rounded down to one decimal."""
        return f"{math.floor(urgency * 10) / 10:.1f}"

    @staticmethod
    def index_prefix(dimension: str, value: Optional[str] = None) -> str:
        if value is None:
            return f"{INDEX_PREFIX}{dimension}:"
        return f"{INDEX_PREFIX}{dimension}:{value}:"

    @staticmethod
    def index(dimension: str, value: str, ticket_id: str) -> str:
        return f"{TicketKeys.index_prefix(dimension, value)}{ticket_id}"

    @staticmethod
    def prefix_end(prefix: str) -> str:
        """Exclusive upper bound covering every key that starts with prefix."""
        return prefix[:-1] + chr(ord(prefix[-1]) + 1)

    @staticmethod
    def ticket_id_from_index(key: str) -> str:
        return key.rsplit(":", 1)[1]

    @staticmethod
    def index_entries(ticket: Ticket) -> List[str]:
        """Every index key the ticket should currently occupy."""
        keys = []
        if ticket.created_at is not None:
            keys.append(TicketKeys.index(
                IndexDimension.TIME, TicketKeys.timestamp(ticket.created_at), ticket.id
            ))
        if ticket.is_scored:
            keys.append(TicketKeys.index(
                IndexDimension.URGENCY, TicketKeys.urgency_bucket(ticket.urgency), ticket.id
            ))
        keys.append(TicketKeys.index(IndexDimension.STATUS, ticket.status, ticket.id))
        if ticket.type:
            keys.append(TicketKeys.index(IndexDimension.TYPE, ticket.type, ticket.id))
        if ticket.deadline is not None:
            keys.append(TicketKeys.index(
                IndexDimension.DEADLINE, TicketKeys.timestamp(ticket.deadline), ticket.id
            ))
        return keys
