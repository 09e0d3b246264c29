# agenda/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, Set


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ===== App =====
    APP_NAME: str = "agenda_clinica"
    ENV: str = "dev"
    # TZ local de la clínica (única zona que maneja el sistema)
    TIMEZONE: str = "Asia/Tokyo"

    # ===== DB =====
    # En producción define DATABASE_URL con tu Postgres. Local puede caer a SQLite.
    DATABASE_URL: str = "sqlite:///./agenda.db"

    DB_POOL_SIZE: int = 2
    DB_MAX_OVERFLOW: int = 5
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800  # 30 min

    # ===== Horario de la clínica y slots =====
    # Dos ventanas (mañana / tarde) con cierre al mediodía entre ambas
    CLINIC_MORNING_OPEN: str = "09:00"
    CLINIC_MORNING_CLOSE: str = "12:00"
    CLINIC_AFTERNOON_OPEN: str = "14:00"
    CLINIC_AFTERNOON_CLOSE: str = "19:00"
    SLOT_MINUTES: int = 30

    # Estado con el que nacen las reservas del formulario: pending | confirmed
    BOOKING_DEFAULT_STATUS: str = "pending"

    # ===== Auth =====
    # Lista de correos con capacidad de administrador, separados por coma
    ADMIN_EMAILS: str = ""
    SESSION_TTL_HOURS: int = 24 * 7
    RESET_TOKEN_TTL_MINUTES: int = 60
    PASSWORD_MIN_LENGTH: int = 6

    # ===== Calendario (geometría de la grilla en px) =====
    CALENDAR_HEADER_HEIGHT: int = 60
    CALENDAR_LABEL_WIDTH: int = 120
    CALENDAR_CELL_HEIGHT: int = 80

    # ===== Mantenimiento =====
    SEED_SERVICES: bool = True
    SCHEDULER_ENABLED: bool = True
    HOUSEKEEPING_INTERVAL_MINUTES: int = 60

    # Derivados (se llenan en model_post_init)
    admin_email_set: Optional[Set[str]] = None

    def model_post_init(self, __context) -> None:
        """
        Normaliza:
          - ADMIN_EMAILS → conjunto en minúsculas
          - BOOKING_DEFAULT_STATUS → sólo pending/confirmed (si no, pending)
        """
        self.admin_email_set = {
            e.strip().lower() for e in (self.ADMIN_EMAILS or "").split(",") if e.strip()
        }

        status = (self.BOOKING_DEFAULT_STATUS or "").strip().lower()
        if status not in ("pending", "confirmed"):
            status = "pending"
        self.BOOKING_DEFAULT_STATUS = status


settings = Settings()
