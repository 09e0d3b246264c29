# agenda/services/admin_list.py
"""Listado de reservas para administración: filtros, cambios de estado y borrado.

La lista local (BookingCache) guarda copias planas de las reservas, nunca objetos
ORM, para que un reflejo optimista no termine persistido por accidente. Ante
cualquier aviso del canal de cambios se recarga y se reemplaza completa.
"""
from __future__ import annotations
import logging
from dataclasses import asdict, dataclass, replace
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from .. import models
from ..errors import AgendaError, NotFoundError, ValidationError
from ..slots import local_today, parse_date
from .events import BookingChange, Subscription
from .store import BookingStore, parse_status

logger = logging.getLogger(__name__)

STATUS_ALL = "all"


@dataclass(frozen=True)
class BookingRow:
    id: int
    user_id: int
    service_id: str
    service_name: str
    price: int
    booking_date: date
    booking_time: str
    status: str
    notes: Optional[str]
    chart_number: Optional[str]
    name: str
    phone: str
    email: str
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["booking_date"] = self.booking_date.isoformat()
        data["created_at"] = self.created_at.isoformat() if self.created_at else None
        return data


def booking_row(b: models.Booking) -> BookingRow:
    profile = b.profile
    user = profile.user if profile is not None else None
    return BookingRow(
        id=b.id,
        user_id=b.user_id,
        service_id=b.service_id,
        service_name=b.service.name if b.service else b.service_id,
        price=b.service.price if b.service else 0,
        booking_date=b.booking_date,
        booking_time=b.booking_time,
        status=b.status.value,
        notes=b.notes,
        chart_number=b.chart_number,
        name=(profile.name if profile else "") or "",
        phone=(profile.phone if profile else "") or "",
        email=(user.email if user else "") or "",
        created_at=b.created_at,
    )


# ====== Filtros ======
@dataclass
class BookingFilter:
    search: str = ""
    status: str = STATUS_ALL
    booking_date: Optional[date] = None

    def __post_init__(self):
        self.search = (self.search or "").strip()
        self.status = (self.status or STATUS_ALL).strip().lower()
        if self.status != STATUS_ALL:
            parse_status(self.status)
        if self.booking_date is not None:
            self.booking_date = parse_date(self.booking_date)

    def matches(self, row: BookingRow) -> bool:
        if self.search:
            term = self.search.lower()
            haystack = (row.name, row.phone, row.chart_number or "", row.email)
            if not any(term in (v or "").lower() for v in haystack):
                return False
        if self.status != STATUS_ALL and row.status != self.status:
            return False
        if self.booking_date is not None and row.booking_date != self.booking_date:
            return False
        return True


def filter_bookings(rows: Iterable[BookingRow], flt: BookingFilter) -> List[BookingRow]:
    return [r for r in rows if flt.matches(r)]


def booking_stats(rows: Iterable[BookingRow], today: Optional[date] = None) -> Dict[str, int]:
    today = today or local_today()
    rows = list(rows)
    return {
        "total": len(rows),
        "confirmed": sum(1 for r in rows if r.status == "confirmed"),
        "pending": sum(1 for r in rows if r.status == "pending"),
        "completed": sum(1 for r in rows if r.status == "completed"),
        "cancelled": sum(1 for r in rows if r.status == "cancelled"),
        "today": sum(1 for r in rows if r.booking_date == today),
        "revenue": sum(r.price for r in rows if r.status == "completed"),
    }


# ====== Caché local ======
class BookingCache:
    def __init__(self, store: BookingStore):
        self.store = store
        self.rows: List[BookingRow] = []
        self.loaded = False
        self._subscription: Optional[Subscription] = None

    def load(self) -> List[BookingRow]:
        self.rows = [booking_row(b) for b in self.store.get_all_bookings()]
        self.loaded = True
        return self.rows

    def attach(self) -> Subscription:
        if self._subscription is None or not self._subscription.active:
            self._subscription = self.store.subscribe_to_booking_changes(self._on_change)
        return self._subscription

    def detach(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def _on_change(self, change: BookingChange) -> None:
        logger.debug("Cambio recibido %s: recargando lista", change)
        self.load()

    def get(self, booking_id: int) -> Optional[BookingRow]:
        return next((r for r in self.rows if r.id == booking_id), None)

    def put(self, row: BookingRow) -> None:
        self.rows = [row if r.id == row.id else r for r in self.rows]

    def remove(self, booking_id: int) -> None:
        self.rows = [r for r in self.rows if r.id != booking_id]


# ====== Acciones de admin ======
class AdminBookingList:
    def __init__(self, store: BookingStore, cache: Optional[BookingCache] = None):
        self.store = store
        self.cache = cache or BookingCache(store)
        if not self.cache.loaded:
            self.cache.load()

    @property
    def rows(self) -> List[BookingRow]:
        return self.cache.rows

    def filtered(self, flt: Optional[BookingFilter] = None) -> List[BookingRow]:
        return filter_bookings(self.cache.rows, flt or BookingFilter())

    def stats(self, today: Optional[date] = None) -> Dict[str, int]:
        return booking_stats(self.cache.rows, today)

    def _require(self, booking_id: int) -> BookingRow:
        row = self.cache.get(booking_id)
        if row is None:
            raise NotFoundError("Reserva no encontrada")
        return row

    def set_status(self, booking_id: int, status) -> BookingRow:
        status = parse_status(status)
        previous = self._require(booking_id)
        self.cache.put(replace(previous, status=status.value))
        try:
            updated = self.store.update_booking(booking_id, status=status)
        except AgendaError:
            # El reflejo optimista se deshace: el estado previo queda intacto
            self.cache.put(previous)
            raise
        row = booking_row(updated)
        self.cache.put(row)
        logger.info("Estado cambiado: id=%s %s → %s", booking_id, previous.status, row.status)
        return row

    def update_details(self, booking_id: int, notes: Optional[str] = None,
                       chart_number: Optional[str] = None) -> BookingRow:
        self._require(booking_id)
        fields = {}
        if notes is not None:
            fields["notes"] = notes
        if chart_number is not None:
            fields["chart_number"] = chart_number
        if not fields:
            raise ValidationError("Nada que actualizar.")
        row = booking_row(self.store.update_booking(booking_id, **fields))
        self.cache.put(row)
        return row

    def delete(self, booking_id: int) -> None:
        if not self.store.delete_booking(booking_id):
            raise NotFoundError("Reserva no encontrada")
        self.cache.remove(booking_id)
