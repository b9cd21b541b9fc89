import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .cache import AuthCache
from .config import ALLOWED_ORIGINS
from .database import Base, engine
from .routes.contracts import router as contracts_router
from .routes.customers import router as customers_router
from .routes.google_calendar import router as google_calendar_router
from .routes.jobs import router as jobs_router
from .routes.notifications import router as notifications_router
from .routes.reports import router as reports_router
from .routes.technician import router as technician_router
from .routes.technicians import router as technicians_router
from .routes.users import router as users_router
from .routes.vendors import router as vendors_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    # Tests install their own cache (fake clock) before startup
    if getattr(app.state, "auth_cache", None) is None:
        app.state.auth_cache = AuthCache()

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="FieldOps API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """All HTTP errors go out as {"error": detail}"""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    """Validation errors minus the raw input and exception context, which may not serialize"""
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]


@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise


# Log CORS configuration for debugging
logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(users_router)
app.include_router(customers_router)
app.include_router(vendors_router)
app.include_router(technicians_router)
app.include_router(technician_router)
app.include_router(jobs_router)
app.include_router(contracts_router)
app.include_router(notifications_router)
app.include_router(reports_router)
app.include_router(google_calendar_router)


@app.get("/")
def root():
    return {"message": "FieldOps API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}
