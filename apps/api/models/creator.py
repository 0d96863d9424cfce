"""Creator model for cached Farcaster profile stats."""

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String
from sqlalchemy.sql import func

from database import Base


class Creator(Base):
    """Farcaster creator profile, upserted after every score computation."""

    __tablename__ = "creators"

    fid = Column(Integer, primary_key=True, autoincrement=False)
    username = Column(String, nullable=False, index=True)
    follower_count = Column(Integer, nullable=False, default=0, index=True)
    following_count = Column(Integer, nullable=False, default=0)
    power_badge = Column(Boolean, nullable=False, default=False)
    neynar_score = Column(Float, nullable=False, default=0.0, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
