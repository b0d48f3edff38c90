import uuid

from sqlalchemy import Boolean, Column, DateTime, String, Text
from sqlalchemy.sql import func

from database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = 'users'
    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(Text, nullable=False)
    email = Column(Text, unique=True, index=True, nullable=False)
    department = Column(Text, nullable=False)
    password = Column(Text, nullable=True)  # Not used by the code login
    is_active = Column(Boolean, nullable=False, default=True, server_default='1')
    created_at = Column(DateTime, nullable=False, default=func.now(), server_default=func.now())

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'department': self.department,
            'is_active': self.is_active,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
