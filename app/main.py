import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# Load environment variables at the very beginning
load_dotenv()

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from app.api import generation, health, system, tunes, webhooks  # noqa: E402
from app.config import settings  # noqa: E402
from app.core.errors import AppError  # noqa: E402
from app.integrations import firebase as firebase_module  # noqa: E402
from app.integrations import http_client as http_module  # noqa: E402
from app.integrations import redis_client as redis_module  # noqa: E402
from app.integrations.providers.registry import build_image_providers  # noqa: E402
from app.services.generation_router import GenerationRouter  # noqa: E402
from app.services.health_monitor import ProviderHealthMonitor  # noqa: E402


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    try:
        firebase_module.initialize()
    except Exception as e:
        # Routes that need Firestore answer 503 until this is fixed
        logger.error(f"[STARTUP] Firebase initialization failed: {e}")

    redis_module.initialize()
    await http_module.initialize()

    providers = build_image_providers()
    monitor = ProviderHealthMonitor(
        providers.keys(),
        probes={name: p.probe for name, p in providers.items()},
    )
    primary = settings.ai_provider if settings.ai_provider in providers else "fal"
    if primary != settings.ai_provider:
        logger.warning(f"[STARTUP] Unknown AI_PROVIDER '{settings.ai_provider}', using '{primary}'")

    app.state.health_monitor = monitor
    app.state.generation_router = GenerationRouter(
        providers,
        monitor,
        primary=primary,
        fallback_enabled=settings.ai_fallback_enabled,
        fallback_provider=settings.ai_fallback_provider,
        timeout_sec=settings.ai_timeout_sec,
    )
    logger.info(
        f"[STARTUP] Generation router ready (primary={primary}, "
        f"fallback={(settings.ai_fallback_provider or 'ranked') if settings.ai_fallback_enabled else 'off'})"
    )

    if settings.health_monitoring_autostart:
        monitor.start_monitoring()

    yield

    await monitor.stop_monitoring()
    await http_module.close()
    logger.info("[SHUTDOWN] Shutdown complete")


app = FastAPI(title="coolpix.me AI Headshot API", lifespan=lifespan)


# ---- Exception handlers ----
# HTTP errors keep CORS headers so the frontend can read the JSON body
# instead of getting a generic network error.
CORS_ERROR_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Credentials": "true",
    "Access-Control-Allow-Methods": "*",
    "Access-Control-Allow-Headers": "*",
}


@app.exception_handler(StarletteHTTPException)
async def custom_http_exception_handler(request: Request, exc: StarletteHTTPException):
    headers = dict(getattr(exc, "headers", None) or {})
    headers.update(CORS_ERROR_HEADERS)
    logger.info(f"[ERROR HANDLER] {request.url.path} -> {exc.status_code}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=headers)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    log = logger.error if exc.status_code >= 500 else logger.info
    log(f"[ERROR HANDLER] {request.url.path} -> {exc.status_code} ({type(exc).__name__}): {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
        headers=dict(CORS_ERROR_HEADERS),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    # Malformed input is a 400 everywhere, body and query alike
    errors = jsonable_encoder(exc.errors())
    logger.info(f"[ERROR HANDLER] {request.url.path} -> 400: {len(errors)} validation error(s)")
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid request", "errors": errors},
        headers=dict(CORS_ERROR_HEADERS),
    )


# ---- CORS ----
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(system.router)
app.include_router(generation.router)
app.include_router(health.router)
app.include_router(tunes.router)
app.include_router(webhooks.router)
