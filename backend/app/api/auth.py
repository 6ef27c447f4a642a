"""Auth API routes"""
import secrets
import logging
from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session
from app.schemas.auth import RegisterRequest, LoginRequest
from app.services.auth_service import (
    register_user, login_user, logout_user, get_current_user_from_session
)
from app.core.security import set_auth_cookie
from app.db.session import get_db
from app.db.redis import get_or_create_csrf_token

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger(__name__)


@router.post("/register")
def register(request_data: RegisterRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    """Create an account, credit the signup bonus and log the user in"""
    try:
        result = register_user(request_data.email, request_data.password, db, name=request_data.name)
    except ValueError as e:
        raise HTTPException(400, str(e))
    set_auth_cookie(response, result["session_id"], request)
    return {"user": result["user"]}


@router.post("/login")
def login(request_data: LoginRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    """Login user"""
    try:
        result = login_user(request_data.email, request_data.password, db)
    except ValueError as e:
        raise HTTPException(401, str(e))
    set_auth_cookie(response, result["session_id"], request)
    return {"user": result["user"]}


@router.post("/logout")
def logout(request: Request, response: Response):
    """Logout user"""
    session_id = request.cookies.get("session_id")
    result = logout_user(session_id)
    if session_id:
        response.delete_cookie("session_id")
    return result


@router.get("/me")
def get_current_user(request: Request, db: Session = Depends(get_db)):
    """Get current logged-in user"""
    session_id = request.cookies.get("session_id")
    return get_current_user_from_session(session_id, db)


@router.get("/csrf")
def get_csrf_token_route(request: Request, response: Response):
    """Get or generate CSRF token for the session"""
    session_id = request.cookies.get("session_id")
    
    if not session_id:
        session_id = secrets.token_urlsafe(32)
        set_auth_cookie(response, session_id, request)
    
    csrf_token = get_or_create_csrf_token(session_id)
    return {"csrfToken": csrf_token}
