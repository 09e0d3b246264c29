import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from ..database import SessionLocal
from ..config import settings
from ..services.auth import AuthService

logger = logging.getLogger(__name__)

def housekeeping_job():
    """Limpia sesiones vencidas y tokens de reseteo usados/vencidos."""
    db: Session = SessionLocal()
    try:
        purged = AuthService(db).purge_expired()
        if purged:
            logger.info("Housekeeping: %s registros de auth purgados", purged)
    finally:
        db.close()

def start_scheduler():
    scheduler = BackgroundScheduler(timezone=settings.TIMEZONE)
    scheduler.add_job(
        housekeeping_job,
        IntervalTrigger(minutes=settings.HOUSEKEEPING_INTERVAL_MINUTES),
        id="auth_housekeeping",
        replace_existing=True,
    )
    scheduler.start()
    return scheduler
