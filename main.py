import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.config import settings
from core.database import create_db_and_tables
from core.envelope import CORRELATION_HEADER, get_correlation_id, new_correlation_id, wrap_error
from core.errors import ApplicationError, to_domain_error
from routes.billing import router as billing_router
from routes.jobs import router as jobs_router
from routes.organizations import router as organizations_router
from routes.payments import router as payments_router
from routes.quota import router as quota_router
from routes.usage import router as usage_router
from routes.webhooks import router as webhooks_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


# =========================================
# 🏁 Lifespan (DB initialization)
# =========================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db_and_tables()
    logger.info("✅ Database tables created on startup.")
    yield
    logger.info("✅ Application shutting down.")


# =========================================
#  ✅ FastAPI App
# =========================================
app = FastAPI(lifespan=lifespan, title="Meterflow Billing Backend")

allowed_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =========================================
# 🔗 Correlation id
# =========================================
@app.middleware("http")
async def correlation_id_middleware(request: Request, call_next):
    correlation_id = request.headers.get(CORRELATION_HEADER) or new_correlation_id()
    request.state.correlation_id = correlation_id
    response = await call_next(request)
    response.headers[CORRELATION_HEADER] = correlation_id
    return response


# =========================================
# ❌ Error envelope
# =========================================
@app.exception_handler(ApplicationError)
async def application_error_handler(request: Request, exc: ApplicationError):
    correlation_id = get_correlation_id(request)
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(f"❌ [{correlation_id}] {request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=wrap_error(exc.code, exc.message, exc.details, correlation_id),
        headers={CORRELATION_HEADER: correlation_id},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    correlation_id = get_correlation_id(request)
    logger.warning(f"⚠️ [{correlation_id}] {request.method} {request.url.path} -> invalid request")
    return JSONResponse(
        status_code=400,
        content=wrap_error("VALIDATION_ERROR", "Request validation failed", {"errors": exc.errors()}, correlation_id),
        headers={CORRELATION_HEADER: correlation_id},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    correlation_id = get_correlation_id(request)
    logger.exception(f"💥 [{correlation_id}] Unhandled error on {request.method} {request.url.path}")
    error = to_domain_error(exc)
    return JSONResponse(
        status_code=error.status_code,
        content=wrap_error(error.code, error.message, error.details, correlation_id),
        headers={CORRELATION_HEADER: correlation_id},
    )


# =========================================
# 📦 Routers
# =========================================
app.include_router(organizations_router)
app.include_router(billing_router)
app.include_router(payments_router)
app.include_router(usage_router)
app.include_router(quota_router)
app.include_router(webhooks_router)
app.include_router(jobs_router)


# =========================================
# 🩺 Health Check
# =========================================
@app.get("/health")
def health_check():
    return {"status": "ok", "message": "Backend is running", "environment": settings.ENVIRONMENT}


@app.get("/")
def read_root():
    return {"message": "Welcome to Meterflow Backend!"}
