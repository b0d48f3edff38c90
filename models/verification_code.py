from sqlalchemy import Boolean, Column, DateTime, Index, String
from sqlalchemy.sql import func

from database import Base
from models.user import _new_id


class VerificationCode(Base):
    __tablename__ = "verification_codes"
    id = Column(String(36), primary_key=True, default=_new_id)
    email = Column(String, index=True, nullable=False)
    code = Column(String(6), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    used = Column(Boolean, default=False, nullable=False, server_default='0')
    created_at = Column(DateTime, nullable=False, default=func.now(), server_default=func.now())

    __table_args__ = (
        Index('idx_verification_codes_email_code', 'email', 'code'),
    )

    def to_dict(self):
        # The code itself stays out of log lines
        return {
            'id': self.id,
            'email': self.email,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'used': self.used,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
