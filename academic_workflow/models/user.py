from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
import enum
from ..core.database import Base


class UserRole(str, enum.Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


class User(Base):
    """Directory entry for a principal known to the identity provider"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    role = Column(String, nullable=False, index=True)
    department = Column(String)
    roll_number = Column(String)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
