from sqlalchemy import Boolean, Column, DateTime, String, func

from shifttrack.database import Base


class User(Base):
    """Read-only mirror of the user directory."""

    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True)
    full_name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    role = Column(String, nullable=False, default="EMPLOYEE", index=True)
    department = Column(String, nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
