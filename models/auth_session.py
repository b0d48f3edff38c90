from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func

from database import Base


class AuthSession(Base):
    __tablename__ = 'auth_sessions'
    id = Column(String(64), primary_key=True)
    user_id = Column(String(36), index=True, nullable=False)
    created_at = Column(DateTime, nullable=False, default=func.now(), server_default=func.now())
    expires_at = Column(DateTime, nullable=False)
