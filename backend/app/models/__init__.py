"""SQLAlchemy models package - imports all models so they register with Base.metadata"""
from app.models.base import Base, MAX_INTEGER
from app.models.user import User
from app.models.token_transaction import TokenTransaction, TransactionType

# Export all for convenience
__all__ = ["Base", "MAX_INTEGER", "User", "TokenTransaction", "TransactionType"]
