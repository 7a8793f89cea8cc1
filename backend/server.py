"""
Material Request Management System
PostgreSQL Backend
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from pathlib import Path
import logging

# Load environment variables
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

from app.config import app_settings  # noqa: E402

# ==================== Logging Configuration ====================
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Create the main app
app = FastAPI(
    title="Material Request Management System",
    description="Material requests, approvals and posting per business unit",
    version="1.0.0"
)

# Health check endpoint at root level (for Kubernetes)
@app.get("/health")
async def root_health_check():
    """Health check endpoint for liveness/readiness probes"""
    return {"status": "healthy", "database": "PostgreSQL"}

# ==================== Routes ====================
from routes.auth_routes import auth_router  # noqa: E402
from routes.users_routes import users_router  # noqa: E402
from routes.business_units_routes import business_units_router  # noqa: E402
from routes.departments_routes import departments_router  # noqa: E402
from routes.approvers_routes import approvers_router  # noqa: E402
from routes.requests_routes import requests_router  # noqa: E402
from routes.dashboard_routes import dashboard_router  # noqa: E402
from routes.audit_routes import audit_router  # noqa: E402

app.include_router(auth_router)
app.include_router(users_router)
app.include_router(business_units_router)
app.include_router(departments_router)
app.include_router(approvers_router)
app.include_router(requests_router)
app.include_router(dashboard_router)
app.include_router(audit_router)

# ==================== CORS Configuration ====================
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=app_settings.cors_origin_list,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ==================== Error Handlers ====================
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Body / query validation failures as 400 with one entry per field"""
    errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"detail": "Validation error", "errors": errors})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})

# ==================== Startup & Shutdown Events ====================
@app.on_event("startup")
async def startup_db_client():
    """Initialize PostgreSQL database on startup"""
    logger.info("Starting Material Request Management System...")

    from database import init_postgres_db
    await init_postgres_db()

    logger.info("PostgreSQL database initialized successfully")

@app.on_event("shutdown")
async def shutdown_db_client():
    """Close database connections on shutdown"""
    logger.info("Shutting down...")

    from database import close_postgres_db
    await close_postgres_db()

    logger.info("Database connections closed")
