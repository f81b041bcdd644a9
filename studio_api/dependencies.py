"""FastAPI dependencies for authentication and store access.

Every ``/api`` router is mounted with ``require_admin``; ``/health`` and
``/metrics`` stay open.

Usage in routers:
    @router.get("/user-tables/{project_id}")
    def list_user_tables(
        project_id: int,
        manager: Annotated[TableLifecycleManager, Depends(get_table_manager)],
    ):
        ...
"""

import secrets
from typing import Annotated

import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from studio_api.config import settings
from studio_api.database import StudioDB
from studio_api.errors import StoreError
from studio_api.table_engine import TableLifecycleManager

logger = structlog.get_logger(__name__)

# Security scheme for Swagger UI. Missing credentials are reported by
# get_api_key_from_header so the 401 envelope stays uniform.
security = HTTPBearer(
    scheme_name="Bearer Auth",
    description="Enter the ADMIN_API_KEY",
    auto_error=False,
)


class AuthenticationError(HTTPException):
    """Raised when authentication fails."""

    def __init__(self, detail: str = "Invalid or missing API key"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "unauthorized", "message": detail},
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_key_prefix(key: str) -> str:
    """First characters of a key, safe to log."""
    return key[:6] + "..." if len(key) > 6 else "***"


def verify_admin_key(api_key: str) -> bool:
    if not settings.admin_api_key:
        return False
    return secrets.compare_digest(api_key.encode(), settings.admin_api_key.encode())


def get_api_key_from_header(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> str:
    """
    Extract API key from Authorization header using HTTPBearer.

    Raises:
        AuthenticationError: If credentials are missing
    """
    if not credentials or not credentials.credentials:
        logger.warning("auth_missing_credentials")
        raise AuthenticationError("Missing or invalid credentials")

    return credentials.credentials


async def require_admin(
    api_key: Annotated[str, Depends(get_api_key_from_header)],
) -> str:
    """
    Dependency that requires the admin key.

    Raises:
        AuthenticationError: If the key is not the admin key or no admin key
            is configured
    """
    if verify_admin_key(api_key):
        return api_key

    if not settings.admin_api_key:
        logger.error("auth_admin_key_not_configured")
        raise AuthenticationError("Admin API key not configured on server")

    logger.warning("auth_admin_access_denied", key_prefix=get_key_prefix(api_key))
    raise AuthenticationError("Invalid admin API key")


def get_db(request: Request) -> StudioDB:
    """Store handle owned by the application lifespan."""
    db = getattr(request.app.state, "db", None)
    if db is None or not db.is_open:
        raise StoreError("Database is not initialized")
    return db


def get_table_manager(
    db: Annotated[StudioDB, Depends(get_db)],
) -> TableLifecycleManager:
    return TableLifecycleManager(db)
