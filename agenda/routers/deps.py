# agenda/routers/deps.py
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import AuthenticationError
from ..models import User
from ..services.auth import AdminPolicy, AuthService
from ..services.store import BookingStore


def get_store(db: Session = Depends(get_db)) -> BookingStore:
    return BookingStore(db)


def get_auth(db: Session = Depends(get_db)) -> AuthService:
    return AuthService(db)


def session_token(x_session_token: Optional[str] = Header(default=None)) -> Optional[str]:
    return (x_session_token or "").strip() or None


def current_user(token: Optional[str] = Depends(session_token),
                 auth: AuthService = Depends(get_auth)) -> Optional[User]:
    return auth.current_user(token)


def require_user(user: Optional[User] = Depends(current_user)) -> User:
    if user is None:
        raise AuthenticationError("Inicie sesión para continuar.")
    return user


def require_admin(user: Optional[User] = Depends(current_user)) -> User:
    return AdminPolicy().require(user)
