"""FastAPI application entry point"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from app.core.config import settings
from app.core.logging import setup_logging
from app.core.middleware import setup_cors_middleware, security_middleware, register_exception_handlers
from app.core.otel import initialize_otel, setup_otel_logging, instrument_fastapi, instrument_sqlalchemy
from app.db.session import engine, init_db
from app.db.redis import get_redis_client

# Import routers
from app.api import auth, tokens, admin, leaderboard

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    # Startup
    if initialize_otel():
        if setup_otel_logging():
            logger.info(f"OpenTelemetry fully initialized, exporting to {settings.OTEL_EXPORTER_OTLP_ENDPOINT}")
        else:
            logger.warning("OpenTelemetry metrics/traces initialized but logging setup failed")
    else:
        logger.info("OpenTelemetry not configured - running without distributed tracing")
    
    logger.info("Initializing database...")
    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise
    
    logger.info("Testing Redis connection...")
    try:
        get_redis_client().ping()
        logger.info("Redis connection successful")
    except Exception as e:
        logger.error(f"Redis connection failed: {e}")
        raise
    
    instrument_sqlalchemy(engine)
    
    yield
    
    # Shutdown
    logger.info("Shutting down...")


# Create FastAPI app
app = FastAPI(
    title="Frequency Factory Backend",
    description="Frequency Token ledger and daily login bonus",
    version="1.0.0",
    lifespan=lifespan
)

instrument_fastapi(app)
setup_cors_middleware(app)
app.middleware("http")(security_middleware)
register_exception_handlers(app)

# Include routers
app.include_router(auth.router)
app.include_router(tokens.router)
app.include_router(admin.router)
app.include_router(leaderboard.router)


# Prometheus metrics endpoint
@app.get("/metrics")
def metrics_endpoint():
    """Prometheus metrics endpoint"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# Health check endpoint
@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}
