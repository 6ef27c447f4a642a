"""TokenTransaction model"""
import enum
from sqlalchemy import Column, Integer, String, Text, ForeignKey, Index, DateTime
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from app.models.base import Base


class TransactionType(str, enum.Enum):
    """Closed set of ledger event tags"""
    SIGNUP_BONUS = "signup_bonus"
    SUBMIT_TRACK = "submit_track"
    PREDICTION = "prediction"
    COMMENT = "comment"
    DAILY_LOGIN = "daily_login"
    SKIP_QUEUE = "skip_queue"
    REFERRAL = "referral"
    ADMIN_GRANT = "admin_grant"
    ADMIN_DEDUCT = "admin_deduct"


class TokenTransaction(Base):
    """Append-only token ledger entry"""
    __tablename__ = "token_transactions"
    
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)  # Positive for earnings, negative for spends
    type = Column(String(32), nullable=False)  # TransactionType value
    reference_id = Column(Integer, nullable=True)  # Submission, comment, etc. that triggered it
    description = Column(Text, nullable=True)
    balance_after = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False, index=True)
    
    # Relationships
    user = relationship("User", back_populates="token_transactions")
    
    # Index for history queries
    __table_args__ = (
        Index('ix_token_transactions_user_created', 'user_id', 'created_at'),
    )
    
    def __repr__(self):
        return f"<TokenTransaction(user_id={self.user_id}, amount={self.amount}, type={self.type}, balance_after={self.balance_after})>"
