from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, String, Index
from sqlalchemy.orm import Mapped, mapped_column

from barbershop.booking import Booking, STATUS_CONFIRMED
from barbershop.db import Base


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tg_id: Mapped[int] = mapped_column(BigInteger, unique=True, index=True)
    username: Mapped[str | None] = mapped_column(String(64), nullable=True)
    full_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    client_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class LocalBooking(Base):
    """Копия записи, сделанной пользователем через бота."""

    __tablename__ = "local_bookings"
    __table_args__ = (
        Index("ix_local_bookings_slot", "barber_id", "date", "time_slot"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tg_user_id: Mapped[int] = mapped_column(BigInteger, index=True)
    tg_username: Mapped[str | None] = mapped_column(String(64), nullable=True)
    barber_id: Mapped[str] = mapped_column(String(16))
    service_id: Mapped[str] = mapped_column(String(16))
    date: Mapped[str] = mapped_column(String(10))
    time_slot: Mapped[str] = mapped_column(String(5))
    client_name: Mapped[str] = mapped_column(String(128), default="")
    client_phone: Mapped[str] = mapped_column(String(32), default="")
    price: Mapped[int] = mapped_column(Integer, default=0)
    duration: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(16), default=STATUS_CONFIRMED)
    created_at: Mapped[int] = mapped_column(BigInteger, default=0)

    def to_booking(self) -> Booking:
        return Booking(
            id=self.id,
            barber_id=self.barber_id,
            service_id=self.service_id,
            date=self.date,
            time_slot=self.time_slot,
            client_name=self.client_name or "",
            client_phone=self.client_phone or "",
            price=int(self.price or 0),
            duration=int(self.duration or 0),
            status=self.status,
            created_at=int(self.created_at or 0),
            tg_user_id=self.tg_user_id,
            tg_username=self.tg_username,
        )

    @classmethod
    def from_booking(cls, b: Booking, tg_user_id: int) -> "LocalBooking":
        return cls(
            id=b.id,
            tg_user_id=tg_user_id,
            tg_username=b.tg_username,
            barber_id=b.barber_id,
            service_id=b.service_id,
            date=b.date,
            time_slot=b.time_slot,
            client_name=b.client_name,
            client_phone=b.client_phone,
            price=b.price,
            duration=b.duration,
            status=b.status,
            created_at=b.created_at,
        )
