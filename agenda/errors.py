# agenda/errors.py
"""Errores de dominio.

Los routers no arman HTTPException a mano para estos casos: main.py registra un
handler que traduce cualquier AgendaError a JSON con su status_code.
"""


class AgendaError(Exception):
    """Base de todos los errores esperables de la agenda."""
    status_code = 400
    kind = "error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or ""


class ValidationError(AgendaError):
    """Datos incompletos o inválidos."""
    status_code = 422
    kind = "validation"


class SlotUnavailableError(AgendaError):
    """El horario elegido ya está ocupado."""
    status_code = 409
    kind = "slot_taken"


class AvailabilityCheckError(AgendaError):
    """No se pudo verificar la disponibilidad del horario."""
    status_code = 503
    kind = "availability_check_failed"


class StoreError(AgendaError):
    """Falla del almacenamiento; la operación no se aplicó."""
    status_code = 503
    kind = "store"


class NotFoundError(AgendaError):
    """Registro no encontrado."""
    status_code = 404
    kind = "not_found"


class AuthenticationError(AgendaError):
    """Sesión inválida o credenciales incorrectas."""
    status_code = 401
    kind = "authentication"


class AuthenticationRequired(AuthenticationError):
    """Debe iniciar sesión o crear una cuenta para continuar."""
    kind = "sign_in_required"


class AuthorizationError(AgendaError):
    """No tiene permisos para esta acción."""
    status_code = 403
    kind = "authorization"


class SubmissionInProgressError(AgendaError):
    """Ya hay un envío en curso."""
    status_code = 409
    kind = "in_flight"
