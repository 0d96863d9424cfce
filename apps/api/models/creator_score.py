"""CreatorScore model for daily score snapshots."""

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from database import Base


class CreatorScore(Base):
    """One computed score per creator per calendar day (UTC)."""

    __tablename__ = "creator_scores"
    __table_args__ = (
        UniqueConstraint("creator_fid", "score_date", name="uq_creator_scores_creator_day"),
        Index("ix_creator_scores_day_overall", "score_date", "overall_score"),
        Index("ix_creator_scores_tier_overall", "tier", "overall_score"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    creator_fid = Column(Integer, nullable=False, index=True)
    overall_score = Column(Integer, nullable=False)
    percentile_rank = Column(Integer, nullable=False)
    tier = Column(Integer, nullable=False)
    engagement = Column(Float, nullable=False, default=0.0)
    consistency = Column(Float, nullable=False, default=0.0)
    growth = Column(Float, nullable=False, default=0.0)
    quality = Column(Float, nullable=False, default=0.0)
    network = Column(Float, nullable=False, default=0.0)
    score_date = Column(Date, nullable=False, index=True)
    valid_until = Column(DateTime(timezone=True), nullable=False)
    shareable_id = Column(String, nullable=False, unique=True, index=True)
    is_provisional = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def components(self) -> dict:
        return {
            "engagement": self.engagement,
            "consistency": self.consistency,
            "growth": self.growth,
            "quality": self.quality,
            "network": self.network,
        }
