"""Authentication service - business logic for user authentication"""
import bcrypt
import logging
import secrets
from typing import Optional, Dict, Any
from sqlalchemy.orm import Session

from app.models.user import User
from app.core.metrics import login_attempts_counter
from app.db.redis import set_session, delete_session, get_session
from app.services.token_service import grant_signup_bonus, observe_signup_bonus

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def hash_password(password: str) -> str:
    """Hash a password using bcrypt"""
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash"""
    if not password_hash or not password:
        return False
    return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))


def create_user(email: str, password: str, db: Session, name: Optional[str] = None, is_admin: bool = False) -> User:
    """Create a new user and credit the signup bonus in the same commit.

    Raises:
        ValueError: If the email is taken or the password is too short
    """
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    
    existing_user = db.query(User).filter(User.email == email).first()
    if existing_user:
        raise ValueError("Email already registered")
    
    user = User(
        email=email,
        password_hash=hash_password(password),
        name=name or email.split("@")[0],
        is_admin=is_admin,
        token_balance=0,
        total_tokens_earned=0,
        login_streak=0,
    )
    try:
        db.add(user)
        db.flush()
        signup_balance = grant_signup_bonus(user.id, db, commit=False)
        db.commit()
    except Exception:
        db.rollback()
        raise
    observe_signup_bonus(user.id, signup_balance)
    db.refresh(user)
    
    logger.info(f"User created: {user.email} (ID: {user.id}) with balance {user.token_balance}")
    return user


def authenticate_user(email: str, password: str, db: Session) -> Optional[User]:
    """Authenticate a user by email and password"""
    user = db.query(User).filter(User.email == email).first()
    if not user:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def get_user_by_id(user_id: int, db: Session) -> Optional[User]:
    """Get user by ID"""
    return db.query(User).filter(User.id == user_id).first()


def create_session(user_id: int) -> str:
    """Create a new session for user"""
    session_id = secrets.token_urlsafe(32)
    set_session(session_id, user_id)
    return session_id


def serialize_user(user: User) -> Dict[str, Any]:
    """Profile payload returned to the signed-in user"""
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "isAdmin": user.is_admin,
        "tokenBalance": user.token_balance,
        "totalTokensEarned": user.total_tokens_earned,
        "loginStreak": user.login_streak,
        "lastDailyBonusDate": user.last_daily_bonus_date,
        "createdAt": user.created_at.isoformat() if user.created_at else None,
    }


def register_user(email: str, password: str, db: Session, name: Optional[str] = None) -> Dict[str, Any]:
    """Registration flow: create the account (with signup bonus) and open a session"""
    user = create_user(email, password, db, name=name)
    session_id = create_session(user.id)
    return {"user": serialize_user(user), "session_id": session_id}


def login_user(email: str, password: str, db: Session) -> Dict[str, Any]:
    """
    Login flow: authenticate and create a session.
    
    Raises:
        ValueError: If the credentials are invalid
    """
    user = authenticate_user(email, password, db)
    if not user:
        login_attempts_counter.labels(status="failure").inc()
        raise ValueError("Invalid email or password")
    
    session_id = create_session(user.id)
    login_attempts_counter.labels(status="success").inc()
    logger.info(f"User logged in: {user.email} (ID: {user.id})")
    return {"user": serialize_user(user), "session_id": session_id}


def logout_user(session_id: Optional[str]) -> Dict[str, str]:
    """Logout flow: delete session"""
    if session_id:
        delete_session(session_id)
        logger.info(f"User logged out (session: {session_id[:16]}...)")
    return {"message": "Logged out successfully"}


def get_current_user_from_session(session_id: Optional[str], db: Session) -> Dict[str, Any]:
    """Resolve the session cookie to a profile, or {"user": None}"""
    if not session_id:
        return {"user": None}
    user_id = get_session(session_id)
    if not user_id:
        return {"user": None}
    user = get_user_by_id(user_id, db)
    if not user:
        return {"user": None}
    return {"user": serialize_user(user)}
