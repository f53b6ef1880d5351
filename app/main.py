"""
Time-Off Service - Main Application Entry Point
"""
import logging
from urllib.parse import urlparse, urlunparse

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi import HTTPException
from sqlalchemy.exc import OperationalError

from app.api.router import api_router
from app.core.config import settings
from app.core.errors import (
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)
from app.core.logging import setup_logging
from app.core.security import hash_password
from app.db.session import SessionLocal, create_sqlite_schema
from app.models.employee import Employee
from app.models.user import User, Role
from app.services import ledger_service

# Setup logging first
setup_logging()
logger = logging.getLogger(__name__)


def _mask_database_url(url: str) -> str:
    """Mask password in DATABASE_URL for safe logging; show full path for sqlite."""
    try:
        parsed = urlparse(url)
        if parsed.scheme.startswith("sqlite"):
            return url
        if parsed.password:
            netloc = f"{parsed.username}:****@{parsed.hostname or ''}"
            if parsed.port:
                netloc += f":{parsed.port}"
            return urlunparse(parsed._replace(netloc=netloc))
    except ValueError:
        return "***"
    return url


# Create FastAPI app
app = FastAPI(
    title="Time-Off Service",
    description="Leave requests with two-level approval and per-year balances",
    version=settings.VERSION or "1.0.0"
)

# Configure CORS - must be before other middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register exception handlers
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Include all API routes under /api/v1
app.include_router(api_router, prefix="/api/v1")


@app.on_event("startup")
def startup_log_config() -> None:
    """Log DATABASE_URL at startup so it can be verified against Alembic."""
    logger.info("DATABASE_URL (app): %s", _mask_database_url(settings.DATABASE_URL))
    create_sqlite_schema()


@app.on_event("startup")
def bootstrap_initial_admin() -> None:
    """
    Create the initial admin user and profile if no admin exists.
    This ensures the system always has at least one admin user.
    """
    db = SessionLocal()
    try:
        admin_exists = db.query(User).filter(User.role == Role.ADMIN.value).first()
        if admin_exists:
            logger.info("Admin user already exists, skipping initial bootstrap")
            return

        logger.info("No admin user found, creating initial admin setup...")
        email = settings.INITIAL_ADMIN_EMAIL.strip().lower()
        admin = User(
            email=email,
            password_hash=hash_password(settings.INITIAL_ADMIN_PASSWORD),
            role=Role.ADMIN.value,
            department="Administration",
            is_active=True,
        )
        db.add(admin)
        db.flush()

        profile = db.query(Employee).filter(Employee.email == email).first()
        if profile is None:
            profile = Employee(
                user_id=admin.id,
                name="System Administrator",
                email=email,
                department="Administration",
                position="Administrator",
            )
            db.add(profile)
            db.flush()
            ledger_service.allocate_defaults_for_employee(db, profile.id)
        db.commit()

        logger.info("Initial admin user created successfully: %s", email)
        logger.info("Password: [set via INITIAL_ADMIN_PASSWORD environment variable]")
    except OperationalError as e:
        db.rollback()
        # Database not ready yet (tables might not exist)
        if "no such table" in str(e).lower():
            logger.warning("Database tables not ready yet, run alembic upgrade head; skipping initial bootstrap")
        else:
            logger.error("Database error during admin bootstrap: %s", e)
    except Exception as e:
        db.rollback()
        logger.error("Error during initial admin bootstrap: %s", e)
    finally:
        db.close()
