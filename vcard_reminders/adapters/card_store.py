"""SQLAlchemy-backed storage for appointment cards and the staff directory."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text, create_engine, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from vcard_reminders.domain.models import AppointmentCard, StaffDirectoryEntry

logger = logging.getLogger(__name__)


class PersistenceError(RuntimeError):
    """Raised when the card store cannot be read or written."""


class Base(DeclarativeBase):
    pass


class CardRow(Base):
    __tablename__ = "appointment_cards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200))
    due_at: Mapped[datetime] = mapped_column(DateTime, index=True)
    contact_number: Mapped[str] = mapped_column(String(32), default="")
    note: Mapped[str] = mapped_column(Text, default="")
    assigned_to: Mapped[str] = mapped_column(String(120))
    card_front: Mapped[str] = mapped_column(String(500), default="")
    card_back: Mapped[str] = mapped_column(String(500), default="")
    notified: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    pinned: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime)
    updated_at: Mapped[datetime] = mapped_column(DateTime)


class StaffRow(Base):
    __tablename__ = "staff_directory"

    assignee: Mapped[str] = mapped_column(String(120), primary_key=True)
    phone_number: Mapped[str] = mapped_column(String(32), default="")


def to_storage(value: datetime) -> datetime:
    """Timestamps are stored as naive UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def from_storage(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _to_card(row: CardRow) -> AppointmentCard:
    return AppointmentCard(
        id=row.id,
        name=row.name,
        due_at=from_storage(row.due_at),
        assigned_to=row.assigned_to,
        contact_number=row.contact_number or "",
        note=row.note or "",
        notified=bool(row.notified),
        card_front=row.card_front or "",
        card_back=row.card_back or "",
        pinned=bool(row.pinned),
        created_at=from_storage(row.created_at) if row.created_at else None,
        updated_at=from_storage(row.updated_at) if row.updated_at else None,
    )


def build_engine(database_url: str) -> Engine:
    return create_engine(database_url, pool_pre_ping=True)


class CardRepository:
    """Query/update access to cards. Holds no business rules."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, database_url: str, *, create_schema: bool = True) -> CardRepository:
        repository = cls(build_engine(database_url))
        if create_schema:
            repository.create_schema()
        return repository

    def create_schema(self) -> None:
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Schema creation failed: {exc}") from exc

    def add_card(
        self,
        *,
        name: str,
        due_at: datetime,
        assigned_to: str,
        contact_number: str = "",
        note: str = "",
        card_front: str = "",
        card_back: str = "",
        pinned: bool = False,
    ) -> AppointmentCard:
        now = to_storage(datetime.now(tz=UTC))
        row = CardRow(
            name=name,
            due_at=to_storage(due_at),
            assigned_to=assigned_to,
            contact_number=contact_number,
            note=note,
            card_front=card_front,
            card_back=card_back,
            pinned=pinned,
            notified=False,
            created_at=now,
            updated_at=now,
        )
        try:
            with self._session_factory.begin() as session:
                session.add(row)
                session.flush()
                return _to_card(row)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Card insert failed: {exc}") from exc

    def add_staff(self, assignee: str, phone_number: str) -> StaffDirectoryEntry:
        try:
            with self._session_factory.begin() as session:
                session.merge(StaffRow(assignee=assignee, phone_number=phone_number))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Staff upsert failed: {exc}") from exc
        return StaffDirectoryEntry(assignee=assignee, phone_number=phone_number)

    def find_due_batch(self, window_start: datetime, window_end: datetime) -> list[AppointmentCard]:
        """Unnotified cards with ``window_start <= due_at < window_end``, oldest first."""
        statement = (
            select(CardRow)
            .where(
                CardRow.due_at >= to_storage(window_start),
                CardRow.due_at < to_storage(window_end),
                CardRow.notified.is_(False),
            )
            .order_by(CardRow.due_at, CardRow.id)
        )
        return self._select_cards(statement)

    def find_all_unnotified(self) -> list[AppointmentCard]:
        statement = select(CardRow).where(CardRow.notified.is_(False)).order_by(CardRow.due_at, CardRow.id)
        return self._select_cards(statement)

    def find_card(self, card_id: int) -> AppointmentCard | None:
        try:
            with self._session_factory() as session:
                row = session.get(CardRow, card_id)
                return _to_card(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Card lookup failed for {card_id}: {exc}") from exc

    def find_staff_by_assignee(self, assignee: str) -> StaffDirectoryEntry | None:
        try:
            with self._session_factory() as session:
                row = session.get(StaffRow, assignee)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Staff lookup failed for {assignee}: {exc}") from exc
        if row is None:
            return None
        return StaffDirectoryEntry(assignee=row.assignee, phone_number=row.phone_number or "")

    def update_notified(self, card_id: int, timestamp: datetime) -> bool:
        """Flip ``notified`` to true if it is still false.

        Returns False when the card is gone or was already notified.
        """
        statement = (
            update(CardRow)
            .where(CardRow.id == card_id, CardRow.notified.is_(False))
            .values(notified=True, updated_at=to_storage(timestamp))
        )
        try:
            with self._session_factory.begin() as session:
                result = session.execute(statement)
                return result.rowcount == 1
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Notified update failed for {card_id}: {exc}") from exc

    def _select_cards(self, statement) -> list[AppointmentCard]:
        try:
            with self._session_factory() as session:
                return [_to_card(row) for row in session.scalars(statement)]
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Card query failed: {exc}") from exc
