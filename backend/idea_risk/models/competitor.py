import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from ..database import Base
from .idea import GUID


class Competitor(Base):
    __tablename__ = "competitors"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    idea_id = Column(GUID(), ForeignKey("ideas.id"), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    website = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    positioning_json = Column(Text, nullable=True)

    pricing_model = Column(String(32), nullable=True)   # freemium | subscription | enterprise
    pricing_amount = Column(Float, nullable=True)

    key_features_json = Column(Text, nullable=True)
    our_differentiation = Column(Text, nullable=True)
    threat_level = Column(Integer, nullable=False, default=5)

    data_source = Column(String(32), nullable=False, default="ai_generated")  # web_search | ai_generated
    confidence_score = Column(Integer, nullable=False, default=5)
    is_direct_competitor = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    idea = relationship("Idea", back_populates="competitors")
