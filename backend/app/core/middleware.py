"""Middleware and exception handlers for the FastAPI application"""
import logging
from fastapi import Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.security import (
    get_allowed_origins, get_client_identifier, check_rate_limit,
    validate_origin_referer, log_api_access, set_csrf_cookie
)
from app.core.logging import security_logger
from app.db.redis import get_or_create_csrf_token
from app.services.token_service import LedgerValidationError, UserNotFoundError

logger = logging.getLogger(__name__)

PUBLIC_PATHS = {
    "/api/auth/csrf",
    "/api/auth/register",
    "/api/auth/login",
    "/api/auth/logout",
    "/api/auth/me",
    "/metrics",
    "/health",
}


def setup_cors_middleware(app):
    """Setup CORS middleware for FastAPI app"""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_allowed_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _rejection(content: str, status_code: int, request: Request) -> Response:
    response = Response(content=content, status_code=status_code, media_type="application/json")
    origin = request.headers.get("Origin")
    if origin and origin in get_allowed_origins():
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
    return response


async def security_middleware(request: Request, call_next):
    """Middleware for rate limiting, origin checks, CSRF token echo and API access logging"""
    session_id = request.cookies.get("session_id")
    status_code = 500
    error = None
    
    try:
        path = request.url.path
        
        # Rate limiting
        identifier = get_client_identifier(request, session_id)
        is_state_changing = request.method in ["POST", "PATCH", "DELETE", "PUT"]
        if not check_rate_limit(identifier, strict=is_state_changing):
            error = "Rate limit exceeded"
            status_code = 429
            security_logger.warning(f"Rate limit exceeded - Identifier: {identifier}, Path: {path}")
            return _rejection('{"error": "Rate limit exceeded. Please try again later."}', 429, request)
        
        # Origin/Referer validation
        if path not in PUBLIC_PATHS and is_state_changing and not validate_origin_referer(request):
            error = "Invalid origin or referer"
            status_code = 403
            security_logger.warning(f"Origin/Referer validation failed - Path: {path}")
            return _rejection('{"error": "Invalid origin or referer"}', 403, request)
        
        response = await call_next(request)
        status_code = response.status_code
        
        # Keep the SPA's CSRF token in sync for signed-in sessions
        if session_id and status_code < 400 and path != "/api/auth/logout":
            set_csrf_cookie(response, get_or_create_csrf_token(session_id), request)
        
        return response
        
    except Exception as e:
        error = str(e)
        security_logger.error(f"Security middleware error: {error}", exc_info=True)
        raise
    finally:
        log_api_access(request, session_id, status_code, error)


async def user_not_found_handler(request: Request, exc: UserNotFoundError):
    """Unknown acting/target user"""
    return JSONResponse(status_code=404, content={"detail": "User not found"})


async def ledger_validation_handler(request: Request, exc: LedgerValidationError):
    """Malformed ledger request that got past schema validation"""
    return JSONResponse(status_code=400, content={"detail": str(exc)})


async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"}
    )


def register_exception_handlers(app):
    app.add_exception_handler(UserNotFoundError, user_not_found_handler)
    app.add_exception_handler(LedgerValidationError, ledger_validation_handler)
    app.add_exception_handler(Exception, global_exception_handler)
