# agenda/routers/admin.py
from __future__ import annotations
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from ..config import settings
from .. import models, schemas
from ..slots import local_today, parse_date
from ..services.admin_list import AdminBookingList, BookingFilter, booking_row
from ..services.calendar import CalendarScheduler, DropOutcome, DropResult, GridMetrics, WeekNavigator
from ..services.events import booking_events
from ..services.store import BookingStore
from .deps import get_store, require_admin

router = APIRouter(tags=["admin"])

# ──────────────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────────────
def _week_of(week: Optional[str]) -> date:
    return parse_date(week) if week else local_today()

def _scheduler(store: BookingStore, week: Optional[str], metrics: Optional[GridMetrics] = None,
               width: float = 1200) -> CalendarScheduler:
    navigator = WeekNavigator(current=_week_of(week))
    return CalendarScheduler(store, navigator=navigator, metrics=metrics, width=width)

def _grid_out(scheduler: CalendarScheduler) -> dict:
    grid = scheduler.grid
    start = grid.dates[0]
    return {
        "week_start": start.isoformat(),
        "week_end": grid.dates[-1].isoformat(),
        "prev_week": (start - timedelta(days=7)).isoformat(),
        "next_week": (start + timedelta(days=7)).isoformat(),
        "today": local_today().isoformat(),
        "slots": grid.slots,
        "days": [
            {
                "date": row["date"],
                "cells": [
                    {"time": c["time"], "booking": booking_row(c["booking"]).to_dict() if c["booking"] else None}
                    for c in row["cells"]
                ],
            }
            for row in grid.rows()
        ],
    }

def _drop_response(result: DropResult, scheduler: CalendarScheduler) -> JSONResponse:
    ok = result.outcome != DropOutcome.conflict
    body = {"ok": ok, "result": result.to_dict(), "calendar": _grid_out(scheduler)}
    return JSONResponse(status_code=200 if ok else 409, content=body)

# ──────────────────────────────────────────────────────────────────────────────
# Básicos
# (recuerda: main.py monta este router con prefix="/admin")
# ──────────────────────────────────────────────────────────────────────────────
@router.get("/ping")
def admin_ping():
    return {"ok": True, "ts": datetime.utcnow().isoformat()}

@router.get("/health")
def admin_health():
    return {
        "ok": True,
        "app": settings.APP_NAME,
        "env": settings.ENV,
        "tz": settings.TIMEZONE,
        "booking_subscribers": len(booking_events),
        "ts": datetime.utcnow().isoformat(),
    }

# ──────────────────────────────────────────────────────────────────────────────
# Listado de reservas
# ──────────────────────────────────────────────────────────────────────────────
@router.get("/bookings")
def admin_list_bookings(
    search: str = Query(default="", description="nombre / teléfono / N° de ficha / correo"),
    status: str = Query(default="all"),
    date_str: Optional[str] = Query(default=None, alias="date", description="YYYY-MM-DD"),
    store: BookingStore = Depends(get_store),
    _: models.User = Depends(require_admin),
):
    flt = BookingFilter(search=search, status=status, booking_date=date_str or None)
    rows = AdminBookingList(store).filtered(flt)
    return {"ok": True, "count": len(rows), "bookings": [r.to_dict() for r in rows]}

@router.get("/bookings/stats")
def admin_booking_stats(store: BookingStore = Depends(get_store), _: models.User = Depends(require_admin)):
    return {"ok": True, "stats": AdminBookingList(store).stats()}

@router.patch("/bookings/{booking_id}/status")
def admin_set_status(
    booking_id: int,
    req: schemas.StatusUpdate,
    store: BookingStore = Depends(get_store),
    _: models.User = Depends(require_admin),
):
    row = AdminBookingList(store).set_status(booking_id, req.status)
    return {"ok": True, "booking": row.to_dict()}

@router.patch("/bookings/{booking_id}")
def admin_update_booking(
    booking_id: int,
    req: schemas.BookingDetailsUpdate,
    store: BookingStore = Depends(get_store),
    _: models.User = Depends(require_admin),
):
    row = AdminBookingList(store).update_details(booking_id, notes=req.notes, chart_number=req.chart_number)
    return {"ok": True, "booking": row.to_dict()}

@router.delete("/bookings/{booking_id}")
def admin_delete_booking(
    booking_id: int,
    store: BookingStore = Depends(get_store),
    _: models.User = Depends(require_admin),
):
    AdminBookingList(store).delete(booking_id)
    return {"ok": True, "deleted_id": booking_id}

# ──────────────────────────────────────────────────────────────────────────────
# Calendario semanal
# ──────────────────────────────────────────────────────────────────────────────
@router.get("/calendar")
def admin_calendar(
    week: Optional[str] = Query(default=None, description="cualquier fecha de la semana (YYYY-MM-DD)"),
    store: BookingStore = Depends(get_store),
    _: models.User = Depends(require_admin),
):
    return {"ok": True, "calendar": _grid_out(_scheduler(store, week))}

@router.post("/calendar/move")
def admin_calendar_move(
    req: schemas.MoveRequest,
    store: BookingStore = Depends(get_store),
    _: models.User = Depends(require_admin),
):
    """
    Mueve una reserva a una celda concreta. El conflicto se valida al escribir.
    """
    scheduler = _scheduler(store, req.booking_date)
    result = scheduler.relocate(req.booking_id, req.booking_date, req.booking_time)
    return _drop_response(result, scheduler)

@router.post("/calendar/drop")
def admin_calendar_drop(
    req: schemas.DropRequest,
    store: BookingStore = Depends(get_store),
    _: models.User = Depends(require_admin),
):
    """
    Arrastrar y soltar: recibe el puntero al presionar y al soltar (pixeles
    relativos a la grilla) y resuelve la celda destino con la geometría enviada.
    """
    scheduler = _scheduler(store, req.week)
    scheduler.metrics = GridMetrics(
        width=req.width,
        slot_count=len(scheduler.slots),
        header_height=req.header_height if req.header_height is not None else settings.CALENDAR_HEADER_HEIGHT,
        label_width=req.label_width if req.label_width is not None else settings.CALENDAR_LABEL_WIDTH,
        cell_height=req.cell_height if req.cell_height is not None else settings.CALENDAR_CELL_HEIGHT,
    )
    scheduler.begin_drag(req.booking_id, req.start_x, req.start_y)
    result = scheduler.release(req.x, req.y)
    return _drop_response(result, scheduler)
