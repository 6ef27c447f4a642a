"""User model"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, CheckConstraint
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from app.models.base import Base


class User(Base):
    """User accounts, carrying the token balance and daily-bonus streak"""
    __tablename__ = "users"
    
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=True)
    name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)  # Admin role flag
    
    # Ledger state - only written through app.services.token_service
    token_balance = Column(Integer, default=0, nullable=False)
    total_tokens_earned = Column(Integer, default=0, nullable=False)  # Lifetime sum of awards
    
    # Daily bonus streak
    last_daily_bonus_date = Column(String(10), nullable=True)  # YYYY-MM-DD, calendar day of last claim
    login_streak = Column(Integer, default=0, nullable=False)
    
    # Relationships
    token_transactions = relationship("TokenTransaction", back_populates="user", cascade="all, delete-orphan")
    
    __table_args__ = (
        CheckConstraint('token_balance >= 0', name='ck_users_token_balance_non_negative'),
        CheckConstraint('login_streak >= 0', name='ck_users_login_streak_non_negative'),
    )
    
    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, balance={self.token_balance}, streak={self.login_streak})>"
