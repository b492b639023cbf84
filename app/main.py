import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get(f"{settings.API_PREFIX}/health")
def health_check():
    return {"status": "ok", "app": settings.APP_NAME}


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

# Termin pembayaran (quotation payment schedules)
from app.routers import payment_milestones  # noqa: E402

app.include_router(
    payment_milestones.router,
    prefix=f"{settings.API_PREFIX}/payment-milestones",
    tags=["Termin Pembayaran"],
)

# Project delivery milestones + analytics
from app.routers import milestones  # noqa: E402

app.include_router(
    milestones.router,
    prefix=f"{settings.API_PREFIX}/milestones",
    tags=["Milestone Proyek"],
)

logger.info("%s started (log level %s)", settings.APP_NAME, settings.LOG_LEVEL)
