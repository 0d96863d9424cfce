"""Loan waitlist model."""

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from database import Base


class WaitlistEntry(Base):
    """Creator signed up for the creator loan waitlist."""

    __tablename__ = "loan_waitlist"

    fid = Column(Integer, primary_key=True, autoincrement=False)
    email = Column(String, nullable=False)
    position = Column(Integer, nullable=False, default=0)
    joined_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
