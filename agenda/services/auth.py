# agenda/services/auth.py
"""Colaborador de autenticación: cuentas, sesiones y reseteo de contraseña.

Tokens opacos (secrets.token_urlsafe) guardados en BD; contraseñas con bcrypt.
El permiso de admin sale de una lista configurable (ADMIN_EMAILS), no de un
correo fijo en el código.
"""
from __future__ import annotations
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

import bcrypt
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models
from ..config import settings
from ..errors import AuthenticationError, AuthorizationError, StoreError, ValidationError
from .events import AuthChange, EventHub, auth_events

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        # Hash corrupto en BD: se trata como credencial inválida
        logger.error("Hash de contraseña inválido en BD")
        return False


def _normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def validate_password(password: str, confirm_password: Optional[str] = None) -> None:
    if confirm_password is not None and password != confirm_password:
        raise ValidationError("Las contraseñas no coinciden.")
    if len(password or "") < settings.PASSWORD_MIN_LENGTH:
        raise ValidationError(f"La contraseña debe tener al menos {settings.PASSWORD_MIN_LENGTH} caracteres.")


@dataclass
class SessionInfo:
    token: str
    user: models.User
    expires_at: datetime


class AdminPolicy:
    """Capacidad de admin: correo de la cuenta dentro de la lista permitida."""

    def __init__(self, emails: Optional[Iterable[str]] = None):
        source = settings.admin_email_set if emails is None else emails
        self.emails = {_normalize_email(e) for e in (source or ()) if e}

    def is_admin(self, user: Optional[models.User]) -> bool:
        return user is not None and _normalize_email(user.email) in self.emails

    def require(self, user: Optional[models.User]) -> models.User:
        if user is None:
            raise AuthenticationError("Inicie sesión para continuar.")
        if not self.is_admin(user):
            logger.warning("Acceso admin denegado: user_id=%s", user.id)
            raise AuthorizationError("No tiene acceso al panel de administración.")
        return user


class AuthService:
    def __init__(self, db: Session, hub: EventHub = auth_events, now_fn=datetime.utcnow):
        self.db = db
        self.hub = hub
        self.now = now_fn

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Auth %s falló: %s", action, e)
            raise StoreError("No se pudo completar la operación. Intente de nuevo.") from e

    def _open_session(self, user: models.User) -> SessionInfo:
        token = secrets.token_urlsafe(32)
        expires = self.now() + timedelta(hours=settings.SESSION_TTL_HOURS)
        self.db.add(models.AuthSession(token=token, user_id=user.id, expires_at=expires))
        self._commit("open_session")
        self.hub.publish(AuthChange("signed_in", user.id))
        return SessionInfo(token=token, user=user, expires_at=expires)

    def _find_user(self, email: str) -> Optional[models.User]:
        return self.db.query(models.User).filter(models.User.email == _normalize_email(email)).first()

    # ──────────────────────────────────────────────────────────────────────
    def sign_up(self, email: str, password: str, display_name: str,
                confirm_password: Optional[str] = None) -> SessionInfo:
        email = _normalize_email(email)
        if not email or "@" not in email:
            raise ValidationError("Ingrese un correo válido.")
        if not (display_name or "").strip():
            raise ValidationError("Ingrese su nombre.")
        validate_password(password, confirm_password)

        user = models.User(email=email, password_hash=hash_password(password),
                           display_name=display_name.strip())
        self.db.add(user)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            raise ValidationError("Ya existe una cuenta con ese correo.")
        self.db.add(models.Profile(id=user.id, name=user.display_name))
        self._commit("sign_up")
        logger.info("Cuenta creada: user_id=%s", user.id)
        return self._open_session(user)

    def sign_in(self, email: str, password: str) -> SessionInfo:
        user = self._find_user(email)
        if user is None or not verify_password(password or "", user.password_hash):
            raise AuthenticationError("No se pudo iniciar sesión. Verifique correo y contraseña.")
        return self._open_session(user)

    def sign_out(self, token: Optional[str]) -> None:
        if not token:
            return
        session = self.db.get(models.AuthSession, token)
        if session is None:
            return
        user_id = session.user_id
        self.db.delete(session)
        self._commit("sign_out")
        self.hub.publish(AuthChange("signed_out", user_id))

    def current_user(self, token: Optional[str]) -> Optional[models.User]:
        if not token:
            return None
        session = self.db.get(models.AuthSession, token)
        if session is None or session.expires_at <= self.now():
            return None
        return session.user

    def request_password_reset(self, email: str) -> Optional[str]:
        """
        Emite un token de reseteo. No revela si el correo existe: para correos
        desconocidos devuelve None sin error. El envío del correo queda fuera.
        """
        user = self._find_user(email)
        if user is None:
            logger.info("Reseteo solicitado para correo desconocido")
            return None
        token = secrets.token_urlsafe(32)
        expires = self.now() + timedelta(minutes=settings.RESET_TOKEN_TTL_MINUTES)
        self.db.add(models.PasswordReset(token=token, user_id=user.id, expires_at=expires))
        self._commit("request_password_reset")
        logger.info("Token de reseteo emitido: user_id=%s expira=%s", user.id, expires.isoformat())
        return token

    def reset_password(self, token: str, new_password: str,
                       confirm_password: Optional[str] = None) -> None:
        reset = self.db.get(models.PasswordReset, token) if token else None
        if reset is None or reset.used or reset.expires_at <= self.now():
            raise AuthenticationError("El enlace de reseteo es inválido o expiró.")
        validate_password(new_password, confirm_password)
        user = self.db.get(models.User, reset.user_id)
        user.password_hash = hash_password(new_password)
        reset.used = True
        # Las sesiones abiertas quedan invalidadas
        self.db.query(models.AuthSession).filter(models.AuthSession.user_id == user.id).delete()
        self._commit("reset_password")
        self.hub.publish(AuthChange("password_reset", user.id))

    def purge_expired(self) -> int:
        """Borra sesiones vencidas y tokens de reseteo usados o vencidos."""
        now = self.now()
        n_sessions = self.db.query(models.AuthSession).filter(models.AuthSession.expires_at <= now).delete()
        n_resets = (
            self.db.query(models.PasswordReset)
            .filter((models.PasswordReset.expires_at <= now) | (models.PasswordReset.used.is_(True)))
            .delete()
        )
        self._commit("purge_expired")
        return n_sessions + n_resets
