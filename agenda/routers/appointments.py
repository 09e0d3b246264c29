from typing import Optional

from fastapi import APIRouter, Depends, Query
from dateutil import parser as dtparser

from .. import models, schemas
from ..errors import AgendaError, ValidationError
from ..slots import all_slots
from ..services.admin_list import booking_row
from ..services.booking_form import BookingFlow, form_status
from ..services.conflicts import available_slots
from ..services.store import BookingStore
from .deps import current_user, get_store, require_user

router = APIRouter(prefix="", tags=["appointments"])


def _flow_from_request(req: schemas.BookingFormIn, store: BookingStore,
                       user: Optional[models.User]) -> tuple[BookingFlow, list[str]]:
    """
    Recorre las etapas en orden con lo que mandó el cliente. Se detiene en la
    primera etapa inválida (las siguientes siguen bloqueadas).
    """
    flow = BookingFlow(store, user=user)
    errors: list[str] = []
    steps = (
        lambda: flow.choose_service(req.service_id),
        lambda: flow.choose_slot(req.booking_date, req.booking_time),
        lambda: flow.fill_personal(req.name, req.phone, req.email, req.notes),
    )
    for step in steps:
        try:
            step()
        except ValidationError as e:
            errors.append(e.message)
            break
    return flow, errors


@router.get("/services", response_model=list[schemas.ServiceOut])
def list_services(store: BookingStore = Depends(get_store)):
    return store.get_active_services()


@router.get("/slots", response_model=schemas.SlotsResponse)
def get_slots(date: str = Query(..., description="YYYY-MM-DD"), store: BookingStore = Depends(get_store)):
    try:
        d = dtparser.isoparse(date).date()
    except (ValueError, OverflowError):
        raise ValidationError("Formato de fecha inválido. Usa YYYY-MM-DD.")
    return schemas.SlotsResponse(date=d.isoformat(), slots=all_slots(), available=available_slots(store, d))


@router.post("/bookings/form/check", response_model=schemas.FormStatusResponse)
def check_form(req: schemas.BookingFormIn,
               store: BookingStore = Depends(get_store),
               user: Optional[models.User] = Depends(current_user)):
    flow, errors = _flow_from_request(req, store, user)
    return schemas.FormStatusResponse(
        **form_status(flow.form),
        authenticated=user is not None,
        can_submit=flow.can_submit,
        errors=errors,
    )


@router.post("/bookings", status_code=201)
def book(req: schemas.BookingFormIn,
         store: BookingStore = Depends(get_store),
         user: Optional[models.User] = Depends(current_user)):
    flow, errors = _flow_from_request(req, store, user)
    if errors:
        raise ValidationError(errors[0])
    try:
        confirmation = flow.submit(request_key=req.request_key)
    except AgendaError as e:
        # Mensaje pensado para la UI (p. ej. reintentar), el formulario queda intacto
        if flow.error:
            e.message = flow.error
        raise
    return {"ok": True, "booking": confirmation.to_dict()}


@router.get("/bookings/me")
def my_bookings(store: BookingStore = Depends(get_store), user: models.User = Depends(require_user)):
    rows = [booking_row(b).to_dict() for b in store.get_bookings_for_user(user.id)]
    return {"ok": True, "count": len(rows), "bookings": rows}


@router.get("/profile", response_model=schemas.ProfileOut)
def get_profile(store: BookingStore = Depends(get_store), user: models.User = Depends(require_user)):
    profile = store.get_profile(user.id)
    if profile is None:
        profile = store.update_profile(user.id, name=user.display_name or "")
    return profile


@router.patch("/profile", response_model=schemas.ProfileOut)
def update_profile(req: schemas.ProfileUpdate,
                   store: BookingStore = Depends(get_store),
                   user: models.User = Depends(require_user)):
    return store.update_profile(user.id, **req.model_dump(exclude_none=True))
