from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional

# ===== Auth =====
class SignUpRequest(BaseModel):
    email: str
    password: str
    confirm_password: Optional[str] = None
    name: str

class SignInRequest(BaseModel):
    email: str
    password: str

class UserOut(BaseModel):
    id: int
    email: str
    display_name: Optional[str] = None
    is_admin: bool = False

class SessionResponse(BaseModel):
    token: str
    expires_at: datetime
    user: UserOut

class PasswordResetRequest(BaseModel):
    email: str

class PasswordResetConfirm(BaseModel):
    token: str
    password: str
    confirm_password: Optional[str] = None

# ===== Catálogo / perfil =====
class ServiceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    name_en: Optional[str] = None
    duration: str
    price: int
    description: Optional[str] = None

class ProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    phone: Optional[str] = None
    updated_at: datetime

class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None

class SlotsResponse(BaseModel):
    date: str
    slots: list[str]
    available: list[str]

# ===== Formulario de reserva =====
class BookingFormIn(BaseModel):
    service_id: str = ""
    booking_date: Optional[str] = None
    booking_time: str = ""
    name: str = ""
    phone: str = ""
    email: str = ""
    notes: str = ""
    # Generada por el cliente una vez por intento de reserva; los reintentos la repiten
    request_key: Optional[str] = None

class FormStatusResponse(BaseModel):
    stage: str
    service_complete: bool
    datetime_enabled: bool
    datetime_complete: bool
    personal_enabled: bool
    personal_complete: bool
    complete: bool
    authenticated: bool
    can_submit: bool
    errors: list[str] = []

# ===== Admin =====
class StatusUpdate(BaseModel):
    status: str

class BookingDetailsUpdate(BaseModel):
    notes: Optional[str] = None
    chart_number: Optional[str] = None

class MoveRequest(BaseModel):
    booking_id: int
    booking_date: str
    booking_time: str

class DropRequest(BaseModel):
    booking_id: int
    week: Optional[str] = None  # cualquier fecha de la semana visible (YYYY-MM-DD)
    # Puntero al presionar y al soltar, relativos a la esquina de la grilla
    start_x: float = Field(allow_inf_nan=False)
    start_y: float = Field(allow_inf_nan=False)
    x: float = Field(allow_inf_nan=False)
    y: float = Field(allow_inf_nan=False)
    width: float = Field(gt=0, allow_inf_nan=False)
    header_height: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    label_width: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    cell_height: Optional[float] = Field(default=None, gt=0, allow_inf_nan=False)
