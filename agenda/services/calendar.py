# agenda/services/calendar.py
"""Vista semanal del calendario de administración.

La grilla tiene una fila por día (lunes a domingo) y una columna por slot.
Cada celda muestra como máximo una reserva activa. Al soltar una reserva
arrastrada se vuelve a chequear el conflicto en ese momento (no al empezar a
arrastrar) y la grilla se recarga desde el almacén después de escribir.
"""
from __future__ import annotations
import enum
import logging
import math
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .. import models
from ..config import settings
from ..errors import AgendaError, NotFoundError, SlotUnavailableError
from ..slots import all_slots, local_today, parse_date, parse_slot
from .conflicts import ensure_available
from .store import BookingStore

logger = logging.getLogger(__name__)

DAYS_PER_WEEK = 7


# ====== Semanas ======
def week_start(day: date) -> date:
    """Lunes de la semana que contiene `day`."""
    return day - timedelta(days=day.weekday())


def week_dates(day: date) -> List[date]:
    start = week_start(day)
    return [start + timedelta(days=i) for i in range(DAYS_PER_WEEK)]


class WeekNavigator:
    def __init__(self, today_fn: Callable[[], date] = local_today, current: Optional[date] = None):
        self._today_fn = today_fn
        self.current = current or today_fn()

    @property
    def week_start(self) -> date:
        return week_start(self.current)

    @property
    def dates(self) -> List[date]:
        return week_dates(self.current)

    def next(self) -> List[date]:
        self.current += timedelta(days=7)
        return self.dates

    def prev(self) -> List[date]:
        self.current -= timedelta(days=7)
        return self.dates

    def today(self) -> List[date]:
        self.current = self._today_fn()
        return self.dates


# ====== Geometría ======
@dataclass(frozen=True)
class GridMetrics:
    width: float
    slot_count: int
    header_height: float = settings.CALENDAR_HEADER_HEIGHT
    label_width: float = settings.CALENDAR_LABEL_WIDTH
    cell_height: float = settings.CALENDAR_CELL_HEIGHT

    @property
    def cell_width(self) -> float:
        if self.slot_count <= 0:
            return 0.0
        return (self.width - self.label_width) / self.slot_count


def locate_cell(x: float, y: float, metrics: GridMetrics,
                day_count: int = DAYS_PER_WEEK) -> Optional[Tuple[int, int]]:
    """
    Pixel (relativo a la esquina superior izquierda de la grilla) → (día, slot).
    None si cae en el encabezado, en la columna de etiquetas o fuera de la grilla.
    """
    if metrics.cell_width <= 0 or metrics.cell_height <= 0:
        return None
    if not (math.isfinite(x) and math.isfinite(y)):
        return None
    slot_index = math.floor((x - metrics.label_width) / metrics.cell_width)
    day_index = math.floor((y - metrics.header_height) / metrics.cell_height)
    if 0 <= slot_index < metrics.slot_count and 0 <= day_index < day_count:
        return day_index, slot_index
    return None


def cell_origin(day_index: int, slot_index: int, metrics: GridMetrics) -> Tuple[float, float]:
    """Esquina superior izquierda de una celda, en pixeles."""
    return (
        metrics.label_width + slot_index * metrics.cell_width,
        metrics.header_height + day_index * metrics.cell_height,
    )


# ====== Grilla ======
@dataclass
class WeekGrid:
    dates: List[date]
    slots: List[str]
    cells: Dict[Tuple[date, str], models.Booking] = field(default_factory=dict)

    def at(self, day: date, time_str: str) -> Optional[models.Booking]:
        return self.cells.get((day, time_str))

    def position_of(self, booking_id: int) -> Optional[Tuple[int, int]]:
        for (day, time_str), booking in self.cells.items():
            if booking.id == booking_id:
                return self.dates.index(day), self.slots.index(time_str)
        return None

    def rows(self) -> List[dict]:
        return [
            {
                "date": day.isoformat(),
                "cells": [{"time": t, "booking": self.at(day, t)} for t in self.slots],
            }
            for day in self.dates
        ]


def build_week_grid(bookings: Iterable[models.Booking], dates: List[date],
                    slots: Optional[List[str]] = None) -> WeekGrid:
    slots = slots if slots is not None else all_slots()
    grid = WeekGrid(dates=list(dates), slots=list(slots))
    visible_days = set(grid.dates)
    visible_slots = set(grid.slots)
    for b in bookings:
        if not b.is_active or b.booking_date not in visible_days or b.booking_time not in visible_slots:
            continue
        key = (b.booking_date, b.booking_time)
        if key in grid.cells:
            # No debería pasar: el índice único lo impide
            logger.warning("Dos reservas activas en %s %s: %s y %s", key[0], key[1], grid.cells[key].id, b.id)
            continue
        grid.cells[key] = b
    return grid


# ====== Arrastrar y soltar ======
class DropOutcome(str, enum.Enum):
    discarded = "discarded"   # soltada fuera de la grilla (o sin arrastre)
    unchanged = "unchanged"   # misma celda: no se escribe
    conflict = "conflict"     # destino ocupado: la reserva no se mueve
    moved = "moved"


@dataclass
class DragState:
    booking_id: int
    origin_date: date
    origin_time: str
    offset_x: float
    offset_y: float
    pointer_x: float
    pointer_y: float


@dataclass
class DropResult:
    outcome: DropOutcome
    booking_id: Optional[int] = None
    booking_date: Optional[date] = None
    booking_time: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "booking_id": self.booking_id,
            "booking_date": self.booking_date.isoformat() if self.booking_date else None,
            "booking_time": self.booking_time,
            "message": self.message,
        }


class CalendarScheduler:
    def __init__(self, store: BookingStore, navigator: Optional[WeekNavigator] = None,
                 metrics: Optional[GridMetrics] = None, width: float = 1200):
        self.store = store
        self.navigator = navigator or WeekNavigator()
        self.slots = all_slots()
        self.metrics = metrics or GridMetrics(width=width, slot_count=len(self.slots))
        self.drag: Optional[DragState] = None
        self.message: Optional[str] = None
        self.grid = WeekGrid(dates=self.navigator.dates, slots=self.slots)
        self.reload()

    # --- datos ---
    def reload(self) -> WeekGrid:
        dates = self.navigator.dates
        bookings = self.store.get_bookings_between(dates[0], dates[-1])
        self.grid = build_week_grid(bookings, dates, self.slots)
        return self.grid

    def booking_at(self, day, time_str: str) -> Optional[models.Booking]:
        return self.grid.at(parse_date(day), time_str)

    # --- navegación ---
    def next_week(self) -> WeekGrid:
        self.navigator.next()
        return self.reload()

    def prev_week(self) -> WeekGrid:
        self.navigator.prev()
        return self.reload()

    def this_week(self) -> WeekGrid:
        self.navigator.today()
        return self.reload()

    # --- arrastre ---
    def begin_drag(self, booking_id: int, x: float, y: float) -> DragState:
        pos = self.grid.position_of(booking_id)
        if pos is None:
            raise NotFoundError("La reserva no está en la semana visible")
        day_index, slot_index = pos
        ox, oy = cell_origin(day_index, slot_index, self.metrics)
        self.drag = DragState(
            booking_id=booking_id,
            origin_date=self.grid.dates[day_index],
            origin_time=self.grid.slots[slot_index],
            offset_x=x - ox,
            offset_y=y - oy,
            pointer_x=x,
            pointer_y=y,
        )
        self.message = None
        logger.debug("Drag inicio: booking_id=%s desde %s %s", booking_id, self.drag.origin_date, self.drag.origin_time)
        return self.drag

    def move(self, x: float, y: float) -> None:
        if self.drag is not None:
            self.drag.pointer_x = x
            self.drag.pointer_y = y

    @property
    def ghost_position(self) -> Optional[Tuple[float, float]]:
        """Dónde dibujar la tarjeta arrastrada (puntero menos offset)."""
        if self.drag is None:
            return None
        return self.drag.pointer_x - self.drag.offset_x, self.drag.pointer_y - self.drag.offset_y

    def cancel_drag(self) -> None:
        self.drag = None

    def release(self, x: float, y: float) -> DropResult:
        drag, self.drag = self.drag, None
        if drag is None:
            return DropResult(DropOutcome.discarded)

        cell = locate_cell(x, y, self.metrics, day_count=len(self.grid.dates))
        if cell is None:
            logger.debug("Drop fuera de la grilla: booking_id=%s x=%s y=%s", drag.booking_id, x, y)
            return DropResult(DropOutcome.discarded, drag.booking_id, drag.origin_date, drag.origin_time)

        day_index, slot_index = cell
        return self.relocate(
            drag.booking_id,
            self.grid.dates[day_index],
            self.grid.slots[slot_index],
            origin=(drag.origin_date, drag.origin_time),
        )

    def relocate(self, booking_id: int, new_date, new_time: str,
                 origin: Optional[Tuple[date, str]] = None) -> DropResult:
        """Mueve una reserva a (fecha, hora) validando el conflicto al momento de escribir."""
        new_date = parse_date(new_date)
        new_time = parse_slot(new_time)
        if origin is None:
            booking = self.store.get_booking(booking_id)
            if booking is None:
                raise NotFoundError("Reserva no encontrada")
            origin = (booking.booking_date, booking.booking_time)

        if (new_date, new_time) == tuple(origin):
            return DropResult(DropOutcome.unchanged, booking_id, new_date, new_time)

        try:
            ensure_available(self.store, new_date, new_time, exclude_booking_id=booking_id)
            self.store.update_booking(booking_id, booking_date=new_date, booking_time=new_time)
        except SlotUnavailableError as e:
            # Pre-chequeo o rechazo del índice: mismo tratamiento
            self.message = e.message
            self.reload()
            logger.warning("Drop rechazado: booking_id=%s → %s %s", booking_id, new_date, new_time)
            return DropResult(DropOutcome.conflict, booking_id, origin[0], origin[1], e.message)
        except AgendaError as e:
            self.message = e.message
            raise

        self.message = None
        self.reload()
        logger.info("Reserva movida: id=%s %s %s → %s %s", booking_id, origin[0], origin[1], new_date, new_time)
        return DropResult(DropOutcome.moved, booking_id, new_date, new_time)
