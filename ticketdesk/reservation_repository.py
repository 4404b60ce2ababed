"""Reservation entity and its database repository."""

from __future__ import annotations

import enum
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from sqlalchemy import insert, select, update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ticketdesk.database import RESERVATION_SEATS, RESERVATIONS, DatabaseError, unwrap_tx

_UNIQUE_VIOLATION = "23505"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ReservationStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


@dataclass
class Reservation:
    event_id: str
    user_id: str
    idempotency_key: str
    total_amount: int
    expires_at: datetime
    seat_ids: list = field(default_factory=list)
    status: ReservationStatus = ReservationStatus.PENDING
    id: str = ""
    confirmed_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)


class ReservationNotFoundError(LookupError):
    """No reservation matches the given id or key."""


class IdempotencyKeyAlreadyExistsError(Exception):
    """A reservation with the same idempotency key already exists."""


@contextmanager
def _failure(message: str):
    try:
        yield
    except SQLAlchemyError as exc:
        raise DatabaseError(f"{message}: {exc}") from exc


def _connection(tx) -> Connection:
    conn = unwrap_tx(tx)
    if conn is None:
        raise DatabaseError("invalid transaction")
    return conn


def _is_unique_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code:
        return code == _UNIQUE_VIOLATION
    return "UNIQUE" in str(orig).upper()


class ReservationRepository:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create(self, tx, reservation: Reservation) -> None:
        """Insert the reservation and its seat links within tx, assigning its new id."""
        conn = _connection(tx)
        new_id = str(uuid.uuid4())
        stmt = insert(RESERVATIONS).values(
            id=new_id,
            event_id=reservation.event_id,
            user_id=reservation.user_id,
            status=ReservationStatus(reservation.status).value,
            idempotency_key=reservation.idempotency_key,
            total_amount=reservation.total_amount,
            expires_at=reservation.expires_at,
            created_at=reservation.created_at,
            updated_at=reservation.updated_at,
        )
        try:
            conn.execute(stmt)
        except IntegrityError as exc:
            if _is_unique_violation(exc):
                raise IdempotencyKeyAlreadyExistsError(
                    f"idempotency key already exists: {reservation.idempotency_key}"
                ) from exc
            raise DatabaseError(f"failed to create reservation: {exc}") from exc
        except SQLAlchemyError as exc:
            raise DatabaseError(f"failed to create reservation: {exc}") from exc
        reservation.id = new_id

        if reservation.seat_ids:
            links = [{"reservation_id": new_id, "seat_id": seat_id} for seat_id in reservation.seat_ids]
            with _failure("failed to link reservation seats"):
                conn.execute(insert(RESERVATION_SEATS), links)

    def _one(self, condition, key: str) -> Reservation:
        with _failure("failed to get reservation"), self.engine.connect() as conn:
            row = conn.execute(select(RESERVATIONS).where(condition)).first()
            if row is None:
                raise ReservationNotFoundError(f"reservation not found: {key}")
            return self._to_reservation(conn, row)

    def get_by_id(self, reservation_id: str) -> Reservation:
        return self._one(RESERVATIONS.c.id == reservation_id, reservation_id)

    def get_by_idempotency_key(self, key: str) -> Reservation:
        return self._one(RESERVATIONS.c.idempotency_key == key, key)

    def get_by_user_id(self, user_id: str, limit: int, offset: int) -> list:
        """Return the user's reservations, newest first."""
        stmt = (
            select(RESERVATIONS)
            .where(RESERVATIONS.c.user_id == user_id)
            .order_by(RESERVATIONS.c.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        with _failure("failed to list reservations"), self.engine.connect() as conn:
            rows = conn.execute(stmt).all()
            return [self._to_reservation(conn, row) for row in rows]

    def update(self, tx, reservation: Reservation) -> None:
        """Store the reservation's status, confirmation time and update time."""
        conn = _connection(tx)
        stmt = (
            update(RESERVATIONS)
            .where(RESERVATIONS.c.id == reservation.id)
            .values(
                status=ReservationStatus(reservation.status).value,
                confirmed_at=reservation.confirmed_at,
                updated_at=reservation.updated_at,
            )
        )
        with _failure("failed to update reservation"):
            affected = conn.execute(stmt).rowcount
        if affected == 0:
            raise ReservationNotFoundError(f"reservation not found: {reservation.id}")

    def get_expired_pending(self, expire_after: Union[float, timedelta]) -> list:
        """Return pending reservations created more than expire_after seconds ago."""
        if not isinstance(expire_after, timedelta):
            expire_after = timedelta(seconds=expire_after)
        cutoff = _now() - expire_after
        stmt = select(RESERVATIONS).where(
            RESERVATIONS.c.status == ReservationStatus.PENDING.value,
            RESERVATIONS.c.created_at < cutoff,
        )
        with _failure("failed to get expired reservations"), self.engine.connect() as conn:
            rows = conn.execute(stmt).all()
            return [self._to_reservation(conn, row) for row in rows]

    @staticmethod
    def _seat_ids(conn: Connection, reservation_id: str) -> list:
        stmt = select(RESERVATION_SEATS.c.seat_id).where(
            RESERVATION_SEATS.c.reservation_id == reservation_id
        )
        return list(conn.execute(stmt).scalars())

    def _to_reservation(self, conn: Connection, row) -> Reservation:
        return Reservation(
            id=row.id,
            event_id=row.event_id,
            user_id=row.user_id,
            seat_ids=self._seat_ids(conn, row.id),
            status=ReservationStatus(row.status),
            idempotency_key=row.idempotency_key,
            total_amount=row.total_amount,
            expires_at=_utc(row.expires_at),
            confirmed_at=_utc(row.confirmed_at),
            created_at=_utc(row.created_at),
            updated_at=_utc(row.updated_at),
        )