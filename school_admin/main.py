from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from .core.config import settings
from .core.database import AsyncSessionLocal, create_tables, close_db
from .core.seed import ensure_admin_user, seed_demo_data
from .api import auth, students, groups, enrollments, users, maintenance
import logging
import sys

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Starting School Administration API...")
    try:
        # A store that cannot be reached here stops the process
        await create_tables()
        async with AsyncSessionLocal() as session:
            await ensure_admin_user(session)
            if settings.seed_demo_data:
                await seed_demo_data(session)
        logger.info("Application startup completed successfully")
        yield
    except Exception as e:
        logger.error(f"Error during application startup: {e}")
        raise
    finally:
        logger.info("Shutting down School Administration API...")
        try:
            await close_db()
            logger.info("Application shutdown completed")
        except Exception as e:
            logger.error(f"Error during application shutdown: {e}")


app = FastAPI(
    title="School Administration API",
    description="Students, course groups, enrollments and users",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


def error_body(message, error=None):
    content = {"success": False, "message": message}
    if error:
        content["error"] = error
    return content


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.error(f"HTTP {exc.status_code} error on {request.url}: {exc.detail}")
    error = getattr(exc, "error", None)
    if exc.status_code >= 500 and not settings.is_development:
        error = None
    if exc.status_code == 404 and error is None:
        error = "not_found"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.detail, error),
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{location}: {first.get('msg')}" if location else first.get("msg", "Invalid request")
    logger.warning(f"Validation error on {request.url}: {message}")
    return JSONResponse(status_code=400, content=error_body(message, "validation_error"))


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url}: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=error_body("Internal server error", str(exc) if settings.is_development else None)
    )


# Include API routers
app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(students.router, prefix="/api/students", tags=["Students"])
app.include_router(groups.router, prefix="/api/groups", tags=["Groups"])
app.include_router(enrollments.router, prefix="/api/enrollments", tags=["Enrollments"])
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(maintenance.router, prefix="/api/maintenance", tags=["Maintenance"])


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint - API health check"""
    return {
        "success": True,
        "message": "School Administration API is running",
        "data": {"version": "1.0.0", "status": "healthy"}
    }


@app.get("/api/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {
        "success": True,
        "message": "School Administration API is working correctly",
        "data": {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat()
        }
    }


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests"""
    logger.info(f"Incoming request: {request.method} {request.url}")

    try:
        response = await call_next(request)
        logger.info(f"Request completed: {request.method} {request.url} - Status: {response.status_code}")
        return response
    except Exception as e:
        logger.error(f"Request failed: {request.method} {request.url} - Error: {str(e)}")
        raise
