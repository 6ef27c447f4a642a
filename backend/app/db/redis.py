"""Redis client for session management and rate limiting"""
import redis
import logging
import secrets
from typing import Optional
from app.core.config import settings

logger = logging.getLogger(__name__)

# Lazy initialization - no connection at import time
_client = None


def get_redis_client():
    """Get or create Redis client (lazy initialization)
    
    This prevents connection attempts during import, allowing fakes to be
    swapped in by tests first.
    """
    global _client
    if _client is None:
        _client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _client


# Session TTL (30 days)
SESSION_TTL = 30 * 24 * 60 * 60


def set_session(session_id: str, user_id: int) -> None:
    """Store session in Redis"""
    key = f"session:{session_id}"
    get_redis_client().setex(key, SESSION_TTL, user_id)


def get_session(session_id: str) -> Optional[int]:
    """Get user_id from session"""
    key = f"session:{session_id}"
    user_id = get_redis_client().get(key)
    return int(user_id) if user_id else None


def delete_session(session_id: str) -> None:
    """Delete session and its CSRF token from Redis"""
    get_redis_client().delete(f"session:{session_id}", f"csrf:{session_id}")


def set_csrf_token(session_id: str, token: str) -> None:
    """Store CSRF token in Redis"""
    key = f"csrf:{session_id}"
    get_redis_client().setex(key, SESSION_TTL, token)


def get_csrf_token(session_id: str) -> Optional[str]:
    """Get CSRF token from Redis"""
    if not session_id:
        return None
    key = f"csrf:{session_id}"
    return get_redis_client().get(key)


def get_or_create_csrf_token(session_id: str) -> str:
    """Get existing CSRF token or create new one if it doesn't exist"""
    csrf_token = get_csrf_token(session_id)
    if not csrf_token:
        csrf_token = secrets.token_urlsafe(32)
        set_csrf_token(session_id, csrf_token)
    return csrf_token


def increment_rate_limit(identifier: str, window: int) -> int:
    """Increment the fixed-window counter for identifier and return the new count.

    The TTL is only set when the key has none, so the window starts at the
    first request and is not extended by later ones.
    """
    key = f"ratelimit:{identifier}"
    pipe = get_redis_client().pipeline()
    pipe.incr(key)
    pipe.ttl(key)
    count, ttl = pipe.execute()
    if ttl == -1:
        get_redis_client().expire(key, window)
    return int(count)


def check_rate_limit(identifier: str, strict: bool = False) -> bool:
    """Check if request is within rate limit using Redis. Returns True if allowed, False if rate limited."""
    max_requests = settings.RATE_LIMIT_STRICT_REQUESTS if strict else settings.RATE_LIMIT_REQUESTS
    bucket = f"{identifier}:strict" if strict else identifier
    current_count = increment_rate_limit(bucket, settings.RATE_LIMIT_WINDOW)
    return current_count <= max_requests

