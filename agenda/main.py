# agenda/main.py
import os
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import settings
from .database import SessionLocal, init_db
from .errors import AgendaError
from .jobs.scheduler import start_scheduler
from .services.seed import seed_services

# Routers
from .routers.appointments import router as appointments_router
from .routers.auth import router as auth_router
from .routers.admin import router as admin_router

# ──────────────────────────────────────────────────────────────────────────────
# LOGGING
# Controla niveles con variables de entorno:
#   LOG_LEVEL, SQLA_LOG_LEVEL, UVICORN_LOG_LEVEL
# ──────────────────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

# Ruido de SQLAlchemy y Uvicorn
logging.getLogger("sqlalchemy.engine").setLevel(
    getattr(logging, os.getenv("SQLA_LOG_LEVEL", "WARNING"), logging.WARNING)
)
logging.getLogger("uvicorn.error").setLevel(
    getattr(logging, os.getenv("UVICORN_LOG_LEVEL", "INFO"), logging.INFO)
)

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────────────────────────────────────
# FastAPI App
# ──────────────────────────────────────────────────────────────────────────────
app = FastAPI(title=settings.APP_NAME)

# Monta rutas
app.include_router(appointments_router)
app.include_router(auth_router)
app.include_router(admin_router, prefix="/admin")  # ← el admin.py NO repite /admin


@app.exception_handler(AgendaError)
def agenda_error_handler(request: Request, exc: AgendaError):
    if exc.status_code >= 500:
        logger.error("%s %s → %s: %s", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "error": exc.kind, "detail": exc.message},
    )

# ──────────────────────────────────────────────────────────────────────────────
# Ciclo de vida
# ──────────────────────────────────────────────────────────────────────────────
@app.on_event("startup")
def on_startup():
    init_db()
    if settings.SEED_SERVICES:
        db = SessionLocal()
        try:
            seed_services(db)
        finally:
            db.close()
    if settings.SCHEDULER_ENABLED:
        app.state.scheduler = start_scheduler()
    logger.info("Startup completo: %s (%s)", settings.APP_NAME, settings.ENV)

@app.on_event("shutdown")
def on_shutdown():
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        scheduler.shutdown(wait=False)

@app.get("/")
def root():
    return {"ok": True, "app": settings.APP_NAME, "env": settings.ENV}
