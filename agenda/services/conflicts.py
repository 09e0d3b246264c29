# agenda/services/conflicts.py
"""Chequeo de conflictos de slot.

Política fail-closed: si la consulta falla, se levanta AvailabilityCheckError y el
llamador NO debe escribir. Nunca se reporta "sin conflicto" ante un error.
"""
from __future__ import annotations
import logging
from datetime import date
from typing import List, Optional

from ..errors import AvailabilityCheckError, SlotUnavailableError, StoreError
from ..slots import all_slots, parse_date, parse_slot
from .store import SLOT_TAKEN_MSG, BookingStore

logger = logging.getLogger(__name__)

CHECK_FAILED_MSG = "No se pudo verificar la disponibilidad del horario. Intente de nuevo."


def has_conflict(store: BookingStore, booking_date, booking_time: str,
                 exclude_booking_id: Optional[int] = None) -> bool:
    """
    True si otra reserva activa (no cancelada) ocupa (fecha, hora).
    exclude_booking_id se usa al reprogramar una reserva contra sí misma.
    """
    day = parse_date(booking_date)
    slot = parse_slot(booking_time)
    try:
        ids = store.find_active_booking_ids(day, slot, exclude_id=exclude_booking_id)
    except StoreError as e:
        logger.error("Chequeo de disponibilidad falló: %s %s err=%s", day, slot, e)
        raise AvailabilityCheckError(CHECK_FAILED_MSG) from e
    return len(ids) > 0


def ensure_available(store: BookingStore, booking_date, booking_time: str,
                     exclude_booking_id: Optional[int] = None) -> None:
    if has_conflict(store, booking_date, booking_time, exclude_booking_id):
        logger.warning("Conflicto de slot: %s %s (excluye=%s)", booking_date, booking_time, exclude_booking_id)
        raise SlotUnavailableError(SLOT_TAKEN_MSG)


def available_slots(store: BookingStore, day: date) -> List[str]:
    """Slots libres de un día. Sólo orientativo para la UI; la escritura vuelve a validar."""
    day = parse_date(day)
    try:
        taken = set(store.list_taken_slots(day))
    except StoreError as e:
        raise AvailabilityCheckError(CHECK_FAILED_MSG) from e
    return [s for s in all_slots() if s not in taken]
