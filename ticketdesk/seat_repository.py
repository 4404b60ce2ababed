"""Seat entity and its database repository."""

from __future__ import annotations

import enum
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import func, insert, select, update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from ticketdesk.database import SEATS, DatabaseError, unwrap_tx

_BATCH_SIZE = 1000


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SeatStatus(str, enum.Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    CONFIRMED = "confirmed"


@dataclass
class Seat:
    event_id: str
    seat_number: str
    price: int
    status: SeatStatus = SeatStatus.AVAILABLE
    id: str = ""
    reserved_by: Optional[str] = None
    reserved_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    version: int = 1


class SeatNotFoundError(LookupError):
    """No seat matches the given id."""


class SeatAlreadyReservedError(Exception):
    """At least one requested seat is not available."""


class SeatNotReservedError(Exception):
    """At least one seat to confirm is not in the reserved state."""


@contextmanager
def _failure(message: str):
    try:
        yield
    except SQLAlchemyError as exc:
        raise DatabaseError(f"{message}: {exc}") from exc


def _to_seat(row) -> Seat:
    return Seat(
        id=row.id,
        event_id=row.event_id,
        seat_number=row.seat_number,
        status=SeatStatus(row.status),
        price=row.price,
        reserved_by=row.reserved_by,
        reserved_at=row.reserved_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
        version=row.version,
    )


def _values(seat: Seat, seat_id: str) -> dict:
    return dict(
        id=seat_id,
        event_id=seat.event_id,
        seat_number=seat.seat_number,
        status=SeatStatus(seat.status).value,
        price=seat.price,
        created_at=seat.created_at,
        updated_at=seat.updated_at,
        version=seat.version,
    )


def _connection(tx) -> Connection:
    conn = unwrap_tx(tx)
    if conn is None:
        raise DatabaseError("invalid transaction")
    return conn


class SeatRepository:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create(self, seat: Seat) -> None:
        seat_id = str(uuid.uuid4())
        with _failure("failed to create seat"), self.engine.begin() as conn:
            conn.execute(insert(SEATS).values(**_values(seat, seat_id)))
        seat.id = seat_id

    def create_bulk(self, seats: Iterable[Seat]) -> None:
        """Insert seats in batches of 1000, assigning each its new id."""
        seats = list(seats)
        for start in range(0, len(seats), _BATCH_SIZE):
            self._create_batch(seats[start:start + _BATCH_SIZE])

    def _create_batch(self, seats: list) -> None:
        ids = [str(uuid.uuid4()) for _ in seats]
        rows = [_values(seat, seat_id) for seat, seat_id in zip(seats, ids)]
        with _failure("failed to create seats"), self.engine.begin() as conn:
            conn.execute(insert(SEATS), rows)
        for seat, seat_id in zip(seats, ids):
            seat.id = seat_id

    def get_by_id(self, seat_id: str) -> Seat:
        with _failure("failed to get seat"), self.engine.connect() as conn:
            row = conn.execute(select(SEATS).where(SEATS.c.id == seat_id)).first()
        if row is None:
            raise SeatNotFoundError(f"seat not found: {seat_id}")
        return _to_seat(row)

    def _select(self, *conditions) -> list:
        stmt = select(SEATS).where(*conditions).order_by(SEATS.c.seat_number)
        with _failure("failed to list seats"), self.engine.connect() as conn:
            rows = conn.execute(stmt).all()
        return [_to_seat(row) for row in rows]

    def get_by_event_id(self, event_id: str) -> list:
        return self._select(SEATS.c.event_id == event_id)

    def get_available_by_event_id(self, event_id: str) -> list:
        return self._select(
            SEATS.c.event_id == event_id, SEATS.c.status == SeatStatus.AVAILABLE.value
        )

    def reserve_seats(self, tx, seat_ids: list, reservation_id: str) -> None:
        """Mark available seats reserved; fail unless every seat was available."""
        if not seat_ids:
            return
        conn = _connection(tx)
        now = _now()
        stmt = (
            update(SEATS)
            .where(SEATS.c.id.in_(seat_ids), SEATS.c.status == SeatStatus.AVAILABLE.value)
            .values(
                status=SeatStatus.RESERVED.value,
                reserved_by=reservation_id,
                reserved_at=now,
                updated_at=now,
                version=SEATS.c.version + 1,
            )
        )
        with _failure("failed to reserve seats"):
            affected = conn.execute(stmt).rowcount
        if affected != len(seat_ids):
            raise SeatAlreadyReservedError("seat is already reserved")

    def confirm_seats(self, tx, seat_ids: list) -> None:
        """Mark reserved seats confirmed; fail unless every seat was reserved."""
        if not seat_ids:
            return
        conn = _connection(tx)
        stmt = (
            update(SEATS)
            .where(SEATS.c.id.in_(seat_ids), SEATS.c.status == SeatStatus.RESERVED.value)
            .values(
                status=SeatStatus.CONFIRMED.value,
                updated_at=_now(),
                version=SEATS.c.version + 1,
            )
        )
        with _failure("failed to confirm seats"):
            affected = conn.execute(stmt).rowcount
        if affected != len(seat_ids):
            raise SeatNotReservedError("seat is not reserved")

    def release_seats(self, tx, seat_ids: list) -> None:
        """Return seats to the available state, whatever their status."""
        if not seat_ids:
            return
        conn = _connection(tx)
        stmt = (
            update(SEATS)
            .where(SEATS.c.id.in_(seat_ids))
            .values(
                status=SeatStatus.AVAILABLE.value,
                reserved_by=None,
                reserved_at=None,
                updated_at=_now(),
                version=SEATS.c.version + 1,
            )
        )
        with _failure("failed to release seats"):
            conn.execute(stmt)

    def count_available_by_event_id(self, event_id: str) -> int:
        stmt = (
            select(func.count())
            .select_from(SEATS)
            .where(SEATS.c.event_id == event_id, SEATS.c.status == SeatStatus.AVAILABLE.value)
        )
        with _failure("failed to count seats"), self.engine.connect() as conn:
            return conn.execute(stmt).scalar_one()