"""
Webhook Relay - Main FastAPI Application
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse

from app.core.config import settings
from app.core.logging import setup_logging, get_logger
from app.core.middleware import setup_middleware, setup_exception_handlers
from app.api.routes import router as api_router
from app.api.webhooks.capture import router as capture_router
from app.db.database import engine, init_models
from app.domain.services.forwarding_service import load_forward_target

# Setup logging before anything else
setup_logging(
    level="DEBUG" if settings.DEBUG else "INFO",
    json_format=not settings.DEBUG,
    app_name=settings.APP_NAME
)

logger = get_logger(__name__)


def _parse_allowed_origins(raw: str) -> list[str]:
    """Parse comma-separated CORS origins string into a clean list."""
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


_OPENAPI_TAGS = [
    {"name": "capture", "description": "לכידת webhooks על כל path שאינו תחת ה-API הפנימי."},
    {"name": "stats", "description": "ספירות webhooks לפי tenant (host)."},
    {"name": "metadata", "description": "מנגנוני הזדהות והגדרות אחסון."},
    {"name": "webhooks", "description": "עיון ומחיקה של webhooks של ה-tenant."},
    {"name": "admin", "description": "פעולות administrator: מחיקה גורפת ו-circuit breakers."},
    {"name": "auth", "description": "הנפקת טוקנים ל-tenants."},
    {"name": "Health", "description": "liveness / readiness."},
]


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description=(
        "Relay שלוכד webhooks לכל host, שומר אותם, מציג ספירות לפי tenant "
        "ומעביר עותק ליעד ברירת מחדל אופציונלי."
    ),
    openapi_tags=_OPENAPI_TAGS,
    openapi_url=f"/{settings.RESERVED_PATH_SEGMENT}/openapi.json",
    docs_url=f"/{settings.RESERVED_PATH_SEGMENT}/docs",
    redoc_url=None,
)

# יעד ההעברה נקבע פעם אחת בעליית התהליך
app.state.forward_target = load_forward_target()

# Setup middleware (correlation ID, request logging)
setup_middleware(app)
setup_exception_handlers(app)

allowed_origins = _parse_allowed_origins(settings.ALLOWED_ORIGINS)

if allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Correlation-ID", "X-Admin-API-Key"],
    )


@app.get(
    "/health",
    summary="בדיקת חיוּת (Liveness Probe)",
    description="בדיקה קלה שהתהליך חי ומגיב. לא בודק תלויות חיצוניות.",
    tags=["Health"],
)
async def health_check() -> dict[str, str]:
    """Liveness probe: התהליך חי ומגיב."""
    return {"status": "healthy"}


@app.get(
    "/health/ready",
    summary="בדיקת מוכנות (Readiness Probe)",
    description=(
        "בדיקת DB, ובמצב FORWARD_DISPATCH_MODE=celery גם את ה-broker. "
        "מחזיר status=healthy אם הכל תקין, או status=degraded עם פירוט השגיאה."
    ),
    responses={
        200: {
            "description": "כל התלויות תקינות",
            "content": {"application/json": {"example": {"status": "healthy", "db": "ok"}}},
        },
        503: {
            "description": "לפחות תלות אחת לא זמינה",
            "content": {
                "application/json": {
                    "example": {"status": "degraded", "db": "error: db_unavailable"}
                }
            },
        },
    },
    tags=["Health"],
)
async def readiness_check() -> JSONResponse:
    """Readiness probe: בדיקת התלויות."""
    from app.domain.services.health_service import check_readiness

    result = await check_readiness()
    status_code = 200 if result["status"] == "healthy" else 503
    return JSONResponse(content=result, status_code=status_code)


app.include_router(api_router, prefix=f"/{settings.RESERVED_PATH_SEGMENT}")
# חייב להיות אחרון: תופס כל path שלא נתפס קודם
app.include_router(capture_router)


@app.on_event("startup")
async def startup() -> None:
    """Initialize database tables on startup"""
    logger.info(
        "Starting application",
        extra_data={
            "app_name": settings.APP_NAME,
            "reserved_path_segment": settings.RESERVED_PATH_SEGMENT,
            "forward_target": app.state.forward_target.base_url if app.state.forward_target else None,
            "forward_dispatch_mode": settings.FORWARD_DISPATCH_MODE,
        },
    )
    await init_models()
    logger.info("Database tables initialized")


@app.on_event("shutdown")
async def shutdown() -> None:
    """Cleanup on shutdown"""
    logger.info("Shutting down application")
    await engine.dispose()
    logger.info("Database connections disposed")
