import asyncio
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

# Load environment variables as early as possible
load_dotenv()

from .core.config import settings
from .database import create_db_and_tables
from .dependencies import supervisor_scope
from .application.errors import BookingError
from .application.services.expiry_service import run_supervisor_loop
from .exceptions import http_exception_handler, booking_error_handler
from .middleware import SecurityMiddleware, LoggingMiddleware, ErrorHandlingMiddleware
from .routers import auth_router, appointments_router, payments_router, providers_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"Starting {settings.APP_NAME}...")
    app.state.db_init_ok = True
    app.state.db_init_error = None
    try:
        create_db_and_tables()
        logger.info("Database initialized successfully")
    except Exception as e:
        # Do not crash the app; report via health endpoint
        app.state.db_init_ok = False
        app.state.db_init_error = str(e)
        logger.exception("Database initialization failed")

    stop_event = asyncio.Event()
    supervisor_task = None
    if settings.SUPERVISOR_ENABLED and app.state.db_init_ok:
        supervisor_task = asyncio.create_task(
            run_supervisor_loop(supervisor_scope, settings.SWEEP_INTERVAL_SECONDS, stop_event)
        )
    yield
    # Shutdown
    stop_event.set()
    if supervisor_task:
        await supervisor_task
    logger.info(f"Shutting down {settings.APP_NAME}...")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    docs_url=("/docs" if settings.DOCS_ENABLED else None),
    redoc_url=("/redoc" if settings.DOCS_ENABLED else None),
    openapi_url=("/openapi.json" if settings.DOCS_ENABLED else None)
)

# Add custom exception handlers
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(BookingError, booking_error_handler)

# Add middleware
app.add_middleware(ErrorHandlingMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_middleware(SecurityMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.allowed_methods_list,
    allow_headers=settings.allowed_headers_list,
)

app.include_router(auth_router.router)
app.include_router(appointments_router.router)
app.include_router(payments_router.router)
app.include_router(providers_router.router)


@app.get("/health")
def health():
    db_ok = getattr(app.state, "db_init_ok", True)
    return {
        "status": "ok" if db_ok else "degraded",
        "version": settings.APP_VERSION,
        "database": "ok" if db_ok else app.state.db_init_error,
    }
