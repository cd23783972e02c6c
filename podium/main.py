"""
podium/main.py
ASGI entry point of the prediction service.

    uvicorn podium.main:app --reload
"""
import os
import logging
from pathlib import Path
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# .env must be loaded before podium.database reads DATABASE_URL
PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=PROJECT_ROOT / ".env")

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from podium.config.feature_flags import feature_flags
from podium.database import init_db, close_db
from podium.errors import APIError, ErrorCode, new_log_id
from podium.routes import router as api_router
from podium.routes.predictions import limiter

APP_VERSION = "1.0.0"
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

DEFAULT_ORIGINS = ["http://localhost:5173", "http://127.0.0.1:5173"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Prediction service {APP_VERSION} starting ({ENVIRONMENT})")
    await init_db()
    yield
    await close_db()
    logger.info("Prediction service stopped")


app = FastAPI(
    title="Podium Predictions API",
    description="Prediction rounds, picks and scoring for the season race tracker",
    version=APP_VERSION,
    docs_url="/docs" if ENVIRONMENT == "development" else None,
    redoc_url=None,
    lifespan=lifespan
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

extra_origins = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=DEFAULT_ORIGINS + extra_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)


def _error_body(error: str, message: str, code: str, details=None) -> dict:
    body = {"success": False, "error": error, "message": message, "code": code}
    if details:
        body["details"] = details
    return body


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    logger.info(f"Rejected body on {request.method} {request.url.path}: {len(problems)} problem(s)")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body(
            "Validation Error", "Request validation failed", ErrorCode.VALIDATION_ERROR, problems
        ),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        code = ErrorCode.AUTH_REQUIRED
    elif exc.status_code >= 500:
        code = ErrorCode.INTERNAL_ERROR
    else:
        code = ErrorCode.INVALID_INPUT

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body("Error", str(exc.detail), code),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    logger.warning(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
    return exc.to_response()


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    log_id = new_log_id()
    logger.exception(f"[{log_id}] Unhandled {type(exc).__name__} on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(
            "Internal Error",
            "An unexpected error occurred. Please try again later.",
            ErrorCode.INTERNAL_ERROR,
            {"log_id": log_id},
        ),
    )


@app.get("/health", tags=["Health"])
async def health_check():
    return {
        "status": "healthy",
        "environment": ENVIRONMENT,
        "version": APP_VERSION,
        "features": feature_flags.as_dict(),
    }


app.include_router(api_router)
