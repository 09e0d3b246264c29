# agenda/slots.py
"""Modelo de slots: conjunto fijo y ordenado de horas reservables por día.

Es configuración estática (ver settings), nunca se deriva de la BD.
"""
from __future__ import annotations
from datetime import date, datetime, timedelta
from typing import List, Optional

import pytz

from .config import settings
from .errors import ValidationError

_TIME_FMT = "%H:%M"


def _window(open_s: str, close_s: str, step_min: int) -> List[str]:
    """Slots de step_min que caben completos en [open, close)."""
    cur = datetime.strptime(open_s, _TIME_FMT)
    end = datetime.strptime(close_s, _TIME_FMT)
    delta = timedelta(minutes=step_min)
    out = []
    while cur + delta <= end:
        out.append(cur.strftime(_TIME_FMT))
        cur += delta
    return out


def _build_slots() -> List[str]:
    morning = _window(settings.CLINIC_MORNING_OPEN, settings.CLINIC_MORNING_CLOSE, settings.SLOT_MINUTES)
    afternoon = _window(settings.CLINIC_AFTERNOON_OPEN, settings.CLINIC_AFTERNOON_CLOSE, settings.SLOT_MINUTES)
    return morning + afternoon


SLOTS: tuple = tuple(_build_slots())
_SLOT_INDEX = {s: i for i, s in enumerate(SLOTS)}


def all_slots() -> List[str]:
    return list(SLOTS)


def is_valid_slot(value: Optional[str]) -> bool:
    return value in _SLOT_INDEX


def slot_index(value: str) -> int:
    if value not in _SLOT_INDEX:
        raise ValidationError(f"Horario inválido: {value!r}")
    return _SLOT_INDEX[value]


def compare_slots(a: str, b: str) -> int:
    """-1 si a es antes que b, 0 si son el mismo slot, 1 si es después."""
    ia, ib = slot_index(a), slot_index(b)
    return (ia > ib) - (ia < ib)


def parse_slot(value: Optional[str]) -> str:
    value = (value or "").strip()
    if not is_valid_slot(value):
        raise ValidationError(f"Horario inválido: {value!r}")
    return value


def parse_date(value) -> date:
    """Acepta date o 'YYYY-MM-DD'."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime((value or "").strip(), "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise ValidationError("Formato de fecha inválido. Use YYYY-MM-DD.")


def local_today() -> date:
    return datetime.now(pytz.timezone(settings.TIMEZONE)).date()


def is_bookable_date(day: date, today: Optional[date] = None) -> bool:
    """No se aceptan fechas pasadas para reservas nuevas."""
    return day >= (today or local_today())
