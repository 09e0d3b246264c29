# agenda/services/booking_form.py
"""Flujo del formulario de reserva en tres etapas.

1. servicio → 2. fecha/hora → 3. datos personales. Cada etapa se habilita sólo
cuando la anterior está completa; el envío exige las tres y una sesión activa.
"""
from __future__ import annotations
import enum
import logging
from dataclasses import asdict, dataclass
from datetime import date
from typing import Optional

from .. import models
from ..config import settings
from ..errors import (
    AgendaError,
    AuthenticationRequired,
    StoreError,
    SubmissionInProgressError,
    ValidationError,
)
from ..slots import is_bookable_date, local_today, parse_date, parse_slot
from .conflicts import ensure_available
from .store import BookingStore, parse_status

logger = logging.getLogger(__name__)

RETRY_MSG = "No se pudo registrar la reserva. Revise su conexión e intente de nuevo."

# Una reserva nueva nace pendiente o confirmada, nunca cancelada/completada
INITIAL_STATUSES = (models.BookingStatus.pending, models.BookingStatus.confirmed)


class FormStage(str, enum.Enum):
    service = "service"
    datetime = "datetime"
    personal = "personal"
    ready = "ready"


class FlowState(str, enum.Enum):
    editing = "editing"
    submitting = "submitting"
    confirmed = "confirmed"


@dataclass
class BookingForm:
    service_id: str = ""
    booking_date: Optional[date] = None
    booking_time: str = ""
    name: str = ""
    phone: str = ""
    email: str = ""
    notes: str = ""
    email_locked: bool = False

    @property
    def service_complete(self) -> bool:
        return bool(self.service_id)

    @property
    def datetime_enabled(self) -> bool:
        return self.service_complete

    @property
    def datetime_complete(self) -> bool:
        return self.datetime_enabled and self.booking_date is not None and bool(self.booking_time)

    @property
    def personal_enabled(self) -> bool:
        return self.datetime_complete

    @property
    def personal_complete(self) -> bool:
        return self.personal_enabled and all(
            (v or "").strip() for v in (self.name, self.phone, self.email)
        )

    @property
    def is_complete(self) -> bool:
        return self.personal_complete

    @property
    def current_stage(self) -> FormStage:
        if not self.service_complete:
            return FormStage.service
        if not self.datetime_complete:
            return FormStage.datetime
        if not self.personal_complete:
            return FormStage.personal
        return FormStage.ready


@dataclass
class BookingConfirmation:
    booking_id: int
    status: str
    service_id: str
    service_name: str
    price: int
    booking_date: str
    booking_time: str
    name: str
    phone: str
    email: str
    notes: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def form_status(form: BookingForm) -> dict:
    return {
        "stage": form.current_stage.value,
        "service_complete": form.service_complete,
        "datetime_enabled": form.datetime_enabled,
        "datetime_complete": form.datetime_complete,
        "personal_enabled": form.personal_enabled,
        "personal_complete": form.personal_complete,
        "complete": form.is_complete,
    }


class BookingFlow:
    def __init__(self, store: BookingStore, user: Optional[models.User] = None,
                 today: Optional[date] = None, default_status: Optional[str] = None):
        self.store = store
        self.user = user
        self.today = today or local_today()
        status = parse_status(default_status or settings.BOOKING_DEFAULT_STATUS)
        if status not in INITIAL_STATUSES:
            raise ValidationError(f"Estado inicial no permitido: {status.value!r}")
        self.default_status = status
        self.form = BookingForm()
        self.state = FlowState.editing
        self.error: Optional[str] = None
        self.confirmation: Optional[BookingConfirmation] = None
        if user is not None:
            self._prefill_from_account(user)

    def _prefill_from_account(self, user: models.User) -> None:
        if user.email:
            self.form.email = user.email
            self.form.email_locked = True
        profile = self.store.get_profile(user.id)
        if profile is not None:
            self.form.name = profile.name or ""
            self.form.phone = profile.phone or ""
        elif user.display_name:
            self.form.name = user.display_name

    # ──────────────────────────────────────────────────────────────────────
    # Etapas
    # ──────────────────────────────────────────────────────────────────────
    def choose_service(self, service_id: str) -> None:
        service = self.store.get_service(service_id) if service_id else None
        if service is None or not service.active:
            raise ValidationError("Seleccione un servicio disponible.")
        self.form.service_id = service.id

    def choose_slot(self, booking_date, booking_time: str) -> None:
        if not self.form.datetime_enabled:
            raise ValidationError("Primero seleccione un servicio.")
        day = parse_date(booking_date)
        if not is_bookable_date(day, self.today):
            raise ValidationError("No se pueden reservar fechas pasadas.")
        self.form.booking_date = day
        self.form.booking_time = parse_slot(booking_time)

    def fill_personal(self, name: str, phone: str, email: Optional[str] = None,
                      notes: Optional[str] = None) -> None:
        if not self.form.personal_enabled:
            raise ValidationError("Primero seleccione fecha y hora.")
        self.form.name = (name or "").strip()
        self.form.phone = (phone or "").strip()
        # Con sesión, el correo queda fijo al de la cuenta
        if not self.form.email_locked:
            self.form.email = (email or "").strip()
        self.form.notes = (notes or "").strip()

    @property
    def can_submit(self) -> bool:
        return self.form.is_complete and self.user is not None and self.state == FlowState.editing

    # ──────────────────────────────────────────────────────────────────────
    # Envío
    # ──────────────────────────────────────────────────────────────────────
    def submit(self, request_key: Optional[str] = None) -> BookingConfirmation:
        if self.state == FlowState.confirmed and self.confirmation is not None:
            return self.confirmation
        if self.state == FlowState.submitting:
            raise SubmissionInProgressError("Su reserva se está enviando, espere un momento.")
        if self.user is None:
            raise AuthenticationRequired("Inicie sesión o cree una cuenta para completar la reserva.")
        if not self.form.is_complete:
            raise ValidationError("Complete todos los pasos del formulario.")

        self.state = FlowState.submitting
        self.error = None
        try:
            booking = self._write(request_key)
        except AgendaError as e:
            self.state = FlowState.editing
            self.error = RETRY_MSG if isinstance(e, StoreError) else e.message
            raise

        self.confirmation = self._summary(booking)
        self.state = FlowState.confirmed
        logger.info("Reserva confirmada en formulario: id=%s user_id=%s", booking.id, self.user.id)
        return self.confirmation

    def _write(self, request_key: Optional[str]) -> models.Booking:
        f = self.form
        if request_key:
            # Reintento de un submit que sí llegó a escribirse
            prior = self.store.get_booking_by_request_key(self.user.id, request_key)
            if prior is not None:
                return prior

        ensure_available(self.store, f.booking_date, f.booking_time)

        self.store.update_profile(self.user.id, name=f.name, phone=f.phone)
        return self.store.create_booking(
            user_id=self.user.id,
            service_id=f.service_id,
            booking_date=f.booking_date,
            booking_time=f.booking_time,
            notes=f.notes or None,
            status=self.default_status,
            request_key=request_key,
        )

    def _summary(self, booking: models.Booking) -> BookingConfirmation:
        service = booking.service
        return BookingConfirmation(
            booking_id=booking.id,
            status=booking.status.value,
            service_id=booking.service_id,
            service_name=service.name if service else booking.service_id,
            price=service.price if service else 0,
            booking_date=booking.booking_date.isoformat(),
            booking_time=booking.booking_time,
            name=self.form.name,
            phone=self.form.phone,
            email=self.form.email,
            notes=booking.notes,
        )
