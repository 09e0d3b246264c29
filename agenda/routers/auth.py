# agenda/routers/auth.py
from typing import Optional

from fastapi import APIRouter, Depends

from .. import models, schemas
from ..services.auth import AdminPolicy, AuthService, SessionInfo
from .deps import get_auth, require_user, session_token

router = APIRouter(prefix="/auth", tags=["auth"])


def _user_out(user: models.User) -> schemas.UserOut:
    return schemas.UserOut(
        id=user.id,
        email=user.email,
        display_name=user.display_name,
        is_admin=AdminPolicy().is_admin(user),
    )


def _session_out(info: SessionInfo) -> schemas.SessionResponse:
    return schemas.SessionResponse(token=info.token, expires_at=info.expires_at, user=_user_out(info.user))


@router.post("/signup", response_model=schemas.SessionResponse, status_code=201)
def sign_up(req: schemas.SignUpRequest, auth: AuthService = Depends(get_auth)):
    return _session_out(auth.sign_up(req.email, req.password, req.name, req.confirm_password))


@router.post("/signin", response_model=schemas.SessionResponse)
def sign_in(req: schemas.SignInRequest, auth: AuthService = Depends(get_auth)):
    return _session_out(auth.sign_in(req.email, req.password))


@router.post("/signout")
def sign_out(token: Optional[str] = Depends(session_token), auth: AuthService = Depends(get_auth)):
    auth.sign_out(token)
    return {"ok": True}


@router.post("/password-reset")
def request_password_reset(req: schemas.PasswordResetRequest, auth: AuthService = Depends(get_auth)):
    # Misma respuesta exista o no la cuenta
    auth.request_password_reset(req.email)
    return {"ok": True, "message": "Si el correo está registrado, se enviarán instrucciones."}


@router.post("/password-reset/confirm")
def confirm_password_reset(req: schemas.PasswordResetConfirm, auth: AuthService = Depends(get_auth)):
    auth.reset_password(req.token, req.password, req.confirm_password)
    return {"ok": True}


@router.get("/me", response_model=schemas.UserOut)
def me(user: models.User = Depends(require_user)):
    return _user_out(user)
