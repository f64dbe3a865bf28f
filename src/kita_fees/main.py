"""Main FastAPI application"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.responses import RedirectResponse
from starlette.middleware.sessions import SessionMiddleware
from apscheduler.schedulers.background import BackgroundScheduler

from src.kita_fees.api.endpoints import health, child_import, ui_auth, ui_children, ui_import
from src.kita_fees.config import settings
from src.kita_fees.services.import_wizard import IMPORT_WIZARDS

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

settings.validate_secrets_for_production()

scheduler: BackgroundScheduler | None = None


def purge_import_wizards() -> None:
    IMPORT_WIZARDS.purge_expired(settings.IMPORT_WIZARD_TTL_MINUTES)


@asynccontextmanager
async def lifespan(app: FastAPI):
    global scheduler

    logger.info(f"Starting Kita Fees in {settings.APP_ENV} environment")

    if settings.SCHEDULER_ENABLED:
        scheduler = BackgroundScheduler()
        scheduler.add_job(
            purge_import_wizards,
            'interval',
            minutes=10,
            id='import_wizard_cleanup',
            replace_existing=True
        )
        scheduler.start()
        logger.info("Scheduler started - purging stale import wizards every 10 minutes")

    yield

    if scheduler:
        scheduler.shutdown()
        logger.info("Scheduler stopped")
    logger.info("Shutting down Kita Fees")


app = FastAPI(
    title="Kita Fees - Children Administration",
    description="Administration of children, parents and fees for a Kita, including CSV import",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    SessionMiddleware,
    secret_key=settings.SESSION_SECRET_KEY,
    session_cookie="kita_session",
    max_age=60 * 60 * 12,
)

app.include_router(health.router, tags=["Health"])
app.include_router(child_import.router, tags=["Import"])

app.include_router(ui_auth.router)
app.include_router(ui_children.router)
app.include_router(ui_import.router)


@app.get("/")
def root():
    return RedirectResponse(url="/ui/children", status_code=302)
