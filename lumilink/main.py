import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from dotenv import load_dotenv
import sentry_sdk

# 1. Load .env and configure logging
load_dotenv()

from lumilink.core.config import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

# Initialize Sentry (if DSN provided)
if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        traces_sample_rate=1.0,
    )

from lumilink.core.errors import AnalyticsError, StoreError
from lumilink.core.limiter import limiter
from lumilink.db.base import Base
from lumilink.db.session import engine, SessionLocal
from lumilink.services.gamification import seed_badges
from lumilink.routes import analytics, badges


# 2. Lifespan (database)
@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)

        db = SessionLocal()
        try:
            seed_badges(db)
            logger.info("Badge catalog seeded.")
        finally:
            db.close()
    except Exception as e:
        logger.error(f"CRITICAL DATABASE ERROR: {e}")
        raise e
    yield
    logger.info("Shutting down...")


# 3. App
app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# 4. Exception handlers
@app.exception_handler(AnalyticsError)
async def analytics_error_handler(request: Request, exc: AnalyticsError):
    if isinstance(exc, StoreError):
        logger.error(f"{request.method} {request.url.path}: {exc.message} (code={exc.code}, detail={exc.detail})")
        message = "Internal server error"
    else:
        logger.warning(f"{request.method} {request.url.path}: {exc.message}")
        message = exc.message
    return JSONResponse({"success": False, "message": message}, status_code=exc.status_code)


# 5. Middlewares
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# 6. Routes
@app.get("/health")
def health():
    return {"status": "ok", "app": settings.APP_NAME, "environment": settings.ENVIRONMENT}

app.include_router(analytics.router)
app.include_router(badges.router)
