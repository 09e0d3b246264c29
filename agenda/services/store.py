# agenda/services/store.py
"""Almacén de reservas/servicios/perfiles sobre SQLAlchemy.

Es la única fuente de verdad: la exclusividad del slot la garantiza el índice
único parcial de `bookings`, y un rechazo del índice se reporta igual que un
conflicto detectado antes de escribir (SlotUnavailableError).
"""
from __future__ import annotations
import logging
from contextlib import contextmanager
from datetime import date
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models
from ..errors import NotFoundError, SlotUnavailableError, StoreError, ValidationError
from ..slots import parse_date, parse_slot
from .events import BookingChange, EventHub, Subscription, booking_events

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("name", "phone")
BOOKING_FIELDS = ("service_id", "booking_date", "booking_time", "status", "notes", "chart_number")

SLOT_TAKEN_MSG = "Ese horario ya está reservado. Por favor elija otro."


def parse_status(value) -> models.BookingStatus:
    try:
        return models.BookingStatus(value)
    except ValueError:
        raise ValidationError(f"Estado inválido: {value!r}")


class BookingStore:
    def __init__(self, db: Session, hub: EventHub = booking_events):
        self.db = db
        self.hub = hub

    # ──────────────────────────────────────────────────────────────────────
    # Helpers
    # ──────────────────────────────────────────────────────────────────────
    @contextmanager
    def _guard(self, action: str):
        """Traduce fallas de SQLAlchemy a StoreError (y hace rollback)."""
        try:
            yield
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Store %s falló: %s", action, e)
            raise StoreError("No se pudo completar la operación. Intente de nuevo.") from e

    def _publish(self, kind: str, booking_id: int) -> None:
        self.hub.publish(BookingChange(kind=kind, booking_id=booking_id))

    def _integrity_failure(self, err: IntegrityError, booking_date: date, booking_time: str,
                           exclude_id: Optional[int] = None) -> Exception:
        """
        Después del rollback: si el slot está ocupado por otra reserva activa, el
        rechazo fue del índice de exclusividad. Cualquier otra restricción (FK,
        etc.) es una falla del almacén.
        """
        if self.find_active_booking_ids(booking_date, booking_time, exclude_id=exclude_id):
            logger.warning("Escritura rechazada por BD: slot ocupado %s %s", booking_date, booking_time)
            return SlotUnavailableError(SLOT_TAKEN_MSG)
        logger.error("Escritura rechazada por BD (no es el slot): %s", err)
        return StoreError("No se pudo completar la operación. Intente de nuevo.")

    def _bookings_query(self):
        return self.db.query(models.Booking).order_by(
            models.Booking.booking_date.asc(),
            models.Booking.booking_time.asc(),
        )

    # ──────────────────────────────────────────────────────────────────────
    # Perfiles
    # ──────────────────────────────────────────────────────────────────────
    def get_profile(self, user_id: int) -> Optional[models.Profile]:
        with self._guard("get_profile"):
            return self.db.get(models.Profile, user_id)

    def update_profile(self, user_id: int, **fields) -> models.Profile:
        unknown = set(fields) - set(PROFILE_FIELDS)
        if unknown:
            raise ValidationError(f"Campos de perfil no permitidos: {sorted(unknown)}")
        with self._guard("update_profile"):
            profile = self.db.get(models.Profile, user_id)
            if profile is None:
                # Se crea implícitamente en el primer guardado
                profile = models.Profile(id=user_id, name=fields.get("name") or "")
                self.db.add(profile)
            for key, value in fields.items():
                if value is not None:
                    setattr(profile, key, value)
            self.db.commit()
            self.db.refresh(profile)
        logger.info("Perfil actualizado: user_id=%s", user_id)
        return profile

    # ──────────────────────────────────────────────────────────────────────
    # Servicios
    # ──────────────────────────────────────────────────────────────────────
    def get_active_services(self) -> List[models.Service]:
        with self._guard("get_active_services"):
            return (
                self.db.query(models.Service)
                .filter(models.Service.active.is_(True))
                .order_by(models.Service.created_at.asc(), models.Service.id.asc())
                .all()
            )

    def get_service(self, service_id: str) -> Optional[models.Service]:
        with self._guard("get_service"):
            return self.db.get(models.Service, service_id)

    # ──────────────────────────────────────────────────────────────────────
    # Reservas: lectura
    # ──────────────────────────────────────────────────────────────────────
    def get_booking(self, booking_id: int) -> Optional[models.Booking]:
        with self._guard("get_booking"):
            return self.db.get(models.Booking, booking_id)

    def get_booking_by_request_key(self, user_id: int, request_key: str) -> Optional[models.Booking]:
        with self._guard("get_booking_by_request_key"):
            return (
                self.db.query(models.Booking)
                .filter(models.Booking.user_id == user_id)
                .filter(models.Booking.request_key == request_key)
                .first()
            )

    def get_bookings_for_user(self, user_id: int) -> List[models.Booking]:
        with self._guard("get_bookings_for_user"):
            return self._bookings_query().filter(models.Booking.user_id == user_id).all()

    def get_all_bookings(self) -> List[models.Booking]:
        with self._guard("get_all_bookings"):
            return self._bookings_query().all()

    def get_bookings_between(self, start: date, end: date) -> List[models.Booking]:
        """Reservas con start <= fecha <= end (todas, incluidas canceladas)."""
        with self._guard("get_bookings_between"):
            return (
                self._bookings_query()
                .filter(models.Booking.booking_date >= start)
                .filter(models.Booking.booking_date <= end)
                .all()
            )

    def find_active_booking_ids(self, booking_date: date, booking_time: str,
                                exclude_id: Optional[int] = None) -> List[int]:
        with self._guard("find_active_booking_ids"):
            q = (
                self.db.query(models.Booking.id)
                .filter(models.Booking.booking_date == booking_date)
                .filter(models.Booking.booking_time == booking_time)
                .filter(models.Booking.status != models.BookingStatus.cancelled)
            )
            if exclude_id is not None:
                q = q.filter(models.Booking.id != exclude_id)
            ids = [row[0] for row in q.all()]
        logger.debug("Ocupación %s %s (excluye=%s): %s", booking_date, booking_time, exclude_id, ids)
        return ids

    def list_taken_slots(self, booking_date: date) -> List[str]:
        with self._guard("list_taken_slots"):
            rows = (
                self.db.query(models.Booking.booking_time)
                .filter(models.Booking.booking_date == booking_date)
                .filter(models.Booking.status != models.BookingStatus.cancelled)
                .all()
            )
        return [r[0] for r in rows]

    # ──────────────────────────────────────────────────────────────────────
    # Reservas: escritura
    # ──────────────────────────────────────────────────────────────────────
    def create_booking(self, user_id: int, service_id: str, booking_date, booking_time: str,
                       notes: Optional[str] = None,
                       status: models.BookingStatus = models.BookingStatus.pending,
                       request_key: Optional[str] = None) -> models.Booking:
        """
        Inserta la reserva. Con request_key es idempotente: el mismo submit
        reintentado devuelve la reserva ya creada en vez de duplicarla.
        """
        day = parse_date(booking_date)
        slot = parse_slot(booking_time)
        status = parse_status(status)

        if request_key:
            existing = self.get_booking_by_request_key(user_id, request_key)
            if existing is not None:
                logger.info("create_booking idempotente: request_key=%s booking_id=%s", request_key, existing.id)
                return existing

        if self.get_service(service_id) is None:
            raise ValidationError(f"Servicio inexistente: {service_id!r}")

        booking = models.Booking(
            user_id=user_id,
            service_id=service_id,
            booking_date=day,
            booking_time=slot,
            status=status,
            notes=notes,
            request_key=request_key,
        )
        with self._guard("create_booking"):
            self.db.add(booking)
            try:
                self.db.commit()
            except IntegrityError as e:
                self.db.rollback()
                # Carrera con el mismo request_key: devolvemos la que ganó
                if request_key:
                    existing = self.get_booking_by_request_key(user_id, request_key)
                    if existing is not None:
                        return existing
                raise self._integrity_failure(e, day, slot) from e
            self.db.refresh(booking)

        logger.info("Reserva creada: id=%s user_id=%s %s %s status=%s",
                    booking.id, user_id, day, slot, booking.status.value)
        self._publish("created", booking.id)
        return booking

    def update_booking(self, booking_id: int, **fields) -> models.Booking:
        unknown = set(fields) - set(BOOKING_FIELDS)
        if unknown:
            raise ValidationError(f"Campos de reserva no permitidos: {sorted(unknown)}")
        if "booking_date" in fields:
            fields["booking_date"] = parse_date(fields["booking_date"])
        if "booking_time" in fields:
            fields["booking_time"] = parse_slot(fields["booking_time"])
        if "status" in fields:
            fields["status"] = parse_status(fields["status"])

        with self._guard("update_booking"):
            booking = self.db.get(models.Booking, booking_id)
            if booking is None:
                raise NotFoundError("Reserva no encontrada")
            for key, value in fields.items():
                setattr(booking, key, value)
            target = (booking.booking_date, booking.booking_time)
            try:
                self.db.commit()
            except IntegrityError as e:
                self.db.rollback()
                logger.warning("update_booking rechazado por BD: id=%s fields=%s", booking_id, fields)
                raise self._integrity_failure(e, *target, exclude_id=booking_id) from e
            self.db.refresh(booking)

        logger.info("Reserva actualizada: id=%s fields=%s", booking_id, sorted(fields))
        self._publish("updated", booking_id)
        return booking

    def delete_booking(self, booking_id: int) -> bool:
        """Borrado duro (distinto de cancelar). False si no existía."""
        with self._guard("delete_booking"):
            booking = self.db.get(models.Booking, booking_id)
            if booking is None:
                return False
            self.db.delete(booking)
            self.db.commit()
        logger.info("Reserva eliminada: id=%s", booking_id)
        self._publish("deleted", booking_id)
        return True

    # ──────────────────────────────────────────────────────────────────────
    # Suscripción
    # ──────────────────────────────────────────────────────────────────────
    def subscribe_to_booking_changes(self, callback: Callable[[BookingChange], None]) -> Subscription:
        return self.hub.subscribe(callback)
