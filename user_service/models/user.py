from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Time
from sqlalchemy.dialects import mysql
import enum

from user_service.database import Base

# Microsecond precision so updated_at moves forward even on back-to-back writes
Timestamp = DateTime().with_variant(mysql.DATETIME(fsp=6), "mysql")


def utcnow() -> datetime:
    # Naive UTC: neither MySQL DATETIME nor SQLite keep an offset
    return datetime.now(timezone.utc).replace(tzinfo=None)


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class UserRole(str, enum.Enum):
    STUDENT = "student"
    STAFF = "staff"
    FACULTY = "faculty"
    OTHER = "other"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(50), nullable=True)
    status = Column(String(20), nullable=False, default=UserStatus.ACTIVE.value)
    role = Column(String(20), nullable=False, default=UserRole.STUDENT.value, index=True)
    home_area = Column(String(255), nullable=True, index=True)
    preferred_departure_time = Column(Time, nullable=True)
    google_id = Column(String(255), unique=True, nullable=True)
    created_at = Column(Timestamp, nullable=False, default=utcnow)
    updated_at = Column(Timestamp, nullable=False, default=utcnow)
