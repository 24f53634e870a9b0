"""FastAPI application entry point for the CAPS tutoring chatbot."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from capstutor import config
from capstutor.routers import turn
from capstutor.services import transcript_store

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    try:
        from capstutor.observability.langfuse import setup_langfuse_tracing
        setup_langfuse_tracing(service_name=config.SERVICE_NAME)
        logger.info("OTEL tracing configured")
    except Exception as e:
        logger.warning(f"OTEL tracing not configured: {e}")

    store = turn.get_store()
    store.start_sweeper()
    logger.info("Session sweeper started")

    yield

    store.stop_sweeper()
    await transcript_store.close_pool()
    from capstutor.observability.langfuse import shutdown_tracing
    shutdown_tracing()
    logger.info("CAPS tutor shutting down")


app = FastAPI(
    title="CAPS Tutor",
    description=(
        "Chat tutoring backend for the South African CAPS curriculum. "
        "Classifies each message, routes it to a homework, practice, exam, "
        "concept or conversation agent, and tracks per-user session state."
    ),
    version="0.1.0",
    lifespan=lifespan,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

allowed_origins = [
    "http://localhost:3000",
    config.FRONTEND_URL,
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(turn.router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "sessions": len(turn.get_store())}


@app.get("/")
async def root() -> dict:
    return {
        "service": config.SERVICE_NAME,
        "docs": "/docs",
        "health": "/health",
    }
