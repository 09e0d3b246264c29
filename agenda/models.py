# agenda/models.py
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, DateTime, Date, Enum, ForeignKey, Boolean, Text, Index, UniqueConstraint, text
from datetime import datetime, date
import enum
from .database import Base


def utcnow() -> datetime:
    return datetime.utcnow()


class BookingStatus(str, enum.Enum):
    pending = "pending"
    confirmed = "confirmed"
    cancelled = "cancelled"
    completed = "completed"


class User(Base):
    """Cuenta de acceso (colaborador de auth)."""
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("email", name="uq_users_email"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    profile = relationship("Profile", back_populates="user", uselist=False, passive_deletes=True)


class AuthSession(Base):
    __tablename__ = "auth_sessions"

    token: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    user = relationship("User")


class PasswordReset(Base):
    __tablename__ = "password_resets"

    token: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class Profile(Base):
    """Un perfil por usuario; id == users.id."""
    __tablename__ = "profiles"

    id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    phone: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user = relationship("User", back_populates="profile", lazy="joined")


class Service(Base):
    """Catálogo de servicios: dato de referencia, sólo lectura para el flujo de reserva."""
    __tablename__ = "services"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)  # slug: general, sports...
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    name_en: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    duration: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        # Exclusividad del slot: como máximo una reserva activa por (fecha, hora).
        # Las canceladas liberan el slot.
        Index(
            "uq_bookings_active_slot",
            "booking_date",
            "booking_time",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
        UniqueConstraint("user_id", "request_key", name="uq_bookings_user_request"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    service_id: Mapped[str] = mapped_column(String(50), ForeignKey("services.id"), nullable=False)
    booking_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    booking_time: Mapped[str] = mapped_column(String(5), nullable=False)  # "HH:MM"
    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus, name="booking_status"), default=BookingStatus.pending, nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    chart_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    # Clave de idempotencia por acción del usuario (reintentos del mismo submit)
    request_key: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    service = relationship("Service", lazy="joined")
    profile = relationship(
        "Profile",
        primaryjoin="foreign(Booking.user_id) == Profile.id",
        viewonly=True,
        lazy="joined",
    )

    @property
    def is_active(self) -> bool:
        return self.status != BookingStatus.cancelled
