from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from promo_engine.core.config import settings
from promo_engine.core.logging_config import get_logger  # ensure file logging is registered at startup
from promo_engine.services.discount_errors import DiscountError

logger = get_logger("main")

app = FastAPI(
    title="Promo Engine API",
    description="Discount code evaluation, redemption and authoring",
    version="1.0.0",
    redirect_slashes=False,
)

# Import router after app creation to catch import errors
try:
    from promo_engine.api.v1.api import api_router
    logger.info("Successfully imported api_router")
except Exception as e:
    logger.error(f"Failed to import api_router: {e}", exc_info=True)
    raise

@app.on_event("startup")
async def startup_event():
    """Application startup. Migrations are run by run_server.py before uvicorn starts."""
    logger.info("=== Application startup complete ===")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


def get_cors_headers(request: Request) -> dict:
    """Get CORS headers based on request origin"""
    origin = request.headers.get("origin")
    if origin and origin in settings.CORS_ORIGINS:
        return {
            "Access-Control-Allow-Origin": origin,
            "Access-Control-Allow-Credentials": "true",
            "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type, Authorization",
        }
    return {}


@app.exception_handler(DiscountError)
async def discount_error_handler(request: Request, exc: DiscountError):
    """Business-rule failures keep their kind so clients can explain why a code was refused"""
    headers = get_cors_headers(request)
    if exc.transient:
        headers["Retry-After"] = "1"
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.to_dict()},
        headers=headers,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler to ensure CORS headers are always sent"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    cors_headers = get_cors_headers(request)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "error": str(exc) if settings.DEBUG else "An error occurred"},
        headers=cors_headers
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """HTTP exception handler with CORS headers"""
    cors_headers = get_cors_headers(request)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers={**cors_headers, **(exc.headers or {})}
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Validation exception handler with CORS headers"""
    cors_headers = get_cors_headers(request)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_errors(exc)},
        headers=cors_headers
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may hold exception instances (e.g. from model validators)
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]


try:
    app.include_router(api_router, prefix="/api/v1")
    logger.info("Successfully included api_router")
except Exception as e:
    logger.error(f"Failed to include api_router: {e}", exc_info=True)
    raise


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
