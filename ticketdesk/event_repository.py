"""Event entity and its database repository with optimistic locking."""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import delete, insert, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ticketdesk.database import EVENTS, DatabaseError


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Event:
    name: str
    start_at: datetime
    end_at: datetime
    total_seats: int
    description: str = ""
    venue: str = ""
    id: str = ""
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    version: int = 1


class EventNotFoundError(LookupError):
    """No event matches the given id (or version)."""


@contextmanager
def _failure(message: str):
    try:
        yield
    except SQLAlchemyError as exc:
        raise DatabaseError(f"{message}: {exc}") from exc


def _to_event(row) -> Event:
    return Event(
        id=row.id,
        name=row.name,
        description=row.description or "",
        venue=row.venue or "",
        start_at=row.start_at,
        end_at=row.end_at,
        total_seats=row.total_seats,
        created_at=row.created_at,
        updated_at=row.updated_at,
        version=row.version,
    )


class EventRepository:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create(self, event: Event) -> None:
        """Insert the event and assign its new id."""
        new_id = str(uuid.uuid4())
        stmt = insert(EVENTS).values(
            id=new_id,
            name=event.name,
            description=event.description or None,
            venue=event.venue or None,
            start_at=event.start_at,
            end_at=event.end_at,
            total_seats=event.total_seats,
            created_at=event.created_at,
            updated_at=event.updated_at,
            version=event.version,
        )
        with _failure("failed to create event"), self.engine.begin() as conn:
            conn.execute(stmt)
        event.id = new_id

    def get_by_id(self, event_id: str) -> Event:
        with _failure("failed to get event"), self.engine.connect() as conn:
            row = conn.execute(select(EVENTS).where(EVENTS.c.id == event_id)).first()
        if row is None:
            raise EventNotFoundError(f"event not found: {event_id}")
        return _to_event(row)

    def list(self, limit: int, offset: int) -> list:
        """Return events, latest start first."""
        stmt = select(EVENTS).order_by(EVENTS.c.start_at.desc()).limit(limit).offset(offset)
        with _failure("failed to list events"), self.engine.connect() as conn:
            rows = conn.execute(stmt).all()
        return [_to_event(row) for row in rows]

    def update(self, event: Event) -> None:
        """Update when the stored version matches, then bump the event's version."""
        stmt = (
            update(EVENTS)
            .where(EVENTS.c.id == event.id, EVENTS.c.version == event.version)
            .values(
                name=event.name,
                description=event.description or None,
                venue=event.venue or None,
                start_at=event.start_at,
                end_at=event.end_at,
                total_seats=event.total_seats,
                updated_at=_now(),
                version=EVENTS.c.version + 1,
            )
        )
        with _failure("failed to update event"), self.engine.begin() as conn:
            affected = conn.execute(stmt).rowcount
        if affected == 0:
            raise EventNotFoundError(f"event not found: {event.id}")
        event.version += 1

    def delete(self, event_id: str) -> None:
        with _failure("failed to delete event"), self.engine.begin() as conn:
            affected = conn.execute(delete(EVENTS).where(EVENTS.c.id == event_id)).rowcount
        if affected == 0:
            raise EventNotFoundError(f"event not found: {event_id}")