"""Security dependencies, middleware helpers, and rate limiting"""
import json
from datetime import datetime, timezone
from typing import Optional
from fastapi import Depends, Header, HTTPException, Request, Response
from sqlalchemy.orm import Session
from app.db.redis import get_session, get_csrf_token, check_rate_limit as redis_check_rate_limit
from app.db.session import get_db
from app.core.config import settings
from app.core.logging import security_logger, api_access_logger
from app.models.user import User


def require_auth(request: Request) -> int:
    """Dependency: Require authentication, return user_id"""
    session_id = request.cookies.get("session_id")
    
    if not session_id:
        raise HTTPException(401, "Not authenticated. Please log in.")
    
    user_id = get_session(session_id)
    if not user_id:
        raise HTTPException(401, "Session expired. Please log in again.")
    
    return user_id


def require_csrf_new(
    request: Request,
    user_id: int = Depends(require_auth),
    x_csrf_token: Optional[str] = Header(None, alias="X-CSRF-Token")
) -> int:
    """Dependency: Require auth + valid CSRF token, return user_id"""
    session_id = request.cookies.get("session_id")
    
    expected_csrf = get_csrf_token(session_id)
    if not expected_csrf or x_csrf_token != expected_csrf:
        security_logger.warning(
            f"CSRF validation failed - User: {user_id}, "
            f"IP: {request.client.host if request.client else 'unknown'}, "
            f"Path: {request.url.path}"
        )
        raise HTTPException(403, "Invalid or missing CSRF token")
    
    return user_id


def _load_admin(user_id: int, db: Session) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_admin:
        security_logger.warning(f"Admin access denied - User: {user_id}")
        raise HTTPException(403, "Admin access required")
    return user


def require_admin(user_id: int = Depends(require_csrf_new), db: Session = Depends(get_db)) -> User:
    """Dependency: Require admin role (state-changing requests, CSRF checked)"""
    return _load_admin(user_id, db)


def require_admin_get(user_id: int = Depends(require_auth), db: Session = Depends(get_db)) -> User:
    """Dependency: Require admin role (for GET requests - no CSRF required)"""
    return _load_admin(user_id, db)


def get_client_identifier(request: Request, session_id: Optional[str] = None) -> str:
    """Get a unique identifier for rate limiting"""
    if session_id:
        return f"session:{session_id}"
    
    # Fallback to IP address
    client_ip = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
    if not client_ip:
        client_ip = request.client.host if request.client else "unknown"
    return f"ip:{client_ip}"


def check_rate_limit(identifier: str, strict: bool = False) -> bool:
    """Check if request is within rate limit
    
    Args:
        identifier: Client identifier (session ID or IP)
        strict: If True, use stricter rate limits for state-changing operations
        
    Returns:
        True if within limit, False if exceeded
    """
    return redis_check_rate_limit(identifier, strict=strict)


def get_allowed_origins() -> list:
    """Get list of allowed CORS origins"""
    allowed_origins = [settings.FRONTEND_URL]
    if settings.ENVIRONMENT == "development":
        allowed_origins.extend([
            "http://localhost:3000",
            "http://localhost:5173",
            "http://localhost:8000",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:8000"
        ])
    return allowed_origins


def validate_origin_referer(request: Request) -> bool:
    """Validate Origin and Referer headers"""
    origin = request.headers.get("Origin")
    referer = request.headers.get("Referer")
    
    # In development, allow requests without Origin/Referer (curl, test clients)
    if settings.ENVIRONMENT == "development" and not origin and not referer:
        return True
    
    allowed = [o.rstrip("/") for o in get_allowed_origins() if o]
    
    if origin:
        return origin.rstrip("/") in allowed
    
    if referer:
        return any(referer.startswith(a + "/") or referer == a for a in allowed)
    
    return False


def log_api_access(
    request: Request,
    session_id: Optional[str] = None,
    status_code: int = 200,
    error: Optional[str] = None
):
    """Log detailed API access information"""
    client_ip = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
    if not client_ip:
        client_ip = request.client.host if request.client else "unknown"
    
    log_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "method": request.method,
        "path": request.url.path,
        "query": str(request.url.query) if request.url.query else None,
        "session_id": session_id[:16] + "..." if session_id else None,
        "client_ip": client_ip,
        "user_agent": request.headers.get("User-Agent", "unknown"),
        "origin": request.headers.get("Origin", "none"),
        "status_code": status_code,
        "error": error
    }
    
    if error or status_code >= 400:
        api_access_logger.warning(f"API Access: {json.dumps(log_data)}")
    else:
        api_access_logger.info(f"API Access: {json.dumps(log_data)}")


def _cookie_domain(request: Request) -> Optional[str]:
    host = request.headers.get("host", settings.DOMAIN).split(":")[0]
    domain_parts = host.split(".")
    # Parent domain for cross-subdomain sharing; none for localhost/single-part hosts
    if len(domain_parts) >= 2 and not host.replace(".", "").isdigit():
        return "." + ".".join(domain_parts[-2:])
    return None


def set_auth_cookie(response: Response, session_id: str, request: Request) -> None:
    """Set session cookie with proper domain for cross-subdomain sharing"""
    response.set_cookie(
        key="session_id",
        value=session_id,
        domain=_cookie_domain(request),
        httponly=True,
        secure=settings.ENVIRONMENT == "production",
        samesite="lax",
        max_age=30 * 24 * 60 * 60
    )


def set_csrf_cookie(response: Response, csrf_token: str, request: Request) -> None:
    """Expose the CSRF token to the SPA (header + readable cookie)"""
    response.headers["X-CSRF-Token"] = csrf_token
    response.set_cookie(
        key="csrf_token_client",
        value=csrf_token,
        domain=_cookie_domain(request),
        httponly=False,  # JS must read this
        secure=settings.ENVIRONMENT == "production",
        samesite="lax",
        path="/"
    )
