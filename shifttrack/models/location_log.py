from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Numeric, String, Text, func
from sqlalchemy.orm import relationship
from sqlalchemy.schema import Index

from shifttrack.database import Base


class LocationLog(Base):
    __tablename__ = "location_logs"

    id = Column(String, primary_key=True, index=True)

    time_entry_id = Column(String, ForeignKey("time_entries.id"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)

    latitude = Column(Numeric(10, 8, asdecimal=False), nullable=False)
    longitude = Column(Numeric(11, 8, asdecimal=False), nullable=False)
    accuracy = Column(Numeric(10, 2, asdecimal=False), nullable=True)

    recorded_at = Column(DateTime(timezone=True), nullable=False)
    is_auto_recorded = Column(Boolean, nullable=False, default=True)

    address = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    time_entry = relationship("TimeEntry", back_populates="location_logs")

    __table_args__ = (
        Index("ix_location_logs_entry_recorded", "time_entry_id", "recorded_at"),
    )
