import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator, CHAR


from ..database import Base


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses CHAR(36) to store UUIDs as strings, compatible with all backends
    including SQLite.
    """

    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return value

    def process_result_value(self, value, dialect):
        if value is not None:
            return uuid.UUID(value)
        return value


class Idea(Base):
    __tablename__ = "ideas"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    idea_text = Column(Text, nullable=False)
    title = Column(String(255), nullable=True)

    # Descriptive fields: user supplied or synthesized from wizard answers
    problem = Column(Text, nullable=True)
    audience = Column(Text, nullable=True)
    solution = Column(Text, nullable=True)
    monetization = Column(Text, nullable=True)

    # Wizard inputs (JSON text)
    questions_json = Column(Text, nullable=True)
    wizard_answers_json = Column(Text, nullable=True)

    # Analysis output: NULL means "not analyzed yet".
    # score + risk_score set without a full analysis = demo baseline.
    score = Column(Integer, nullable=True, default=None)
    risk_score = Column(Float, nullable=True, default=None)
    risk_analysis_json = Column(Text, nullable=True, default=None)
    ai_insights_json = Column(Text, nullable=True, default=None)

    status = Column(String(32), nullable=False, default="pending")  # pending | generating | complete | failed
    error_message = Column(Text, nullable=True)
    error_occurred_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    analyzed_at = Column(DateTime, nullable=True)

    competitors = relationship(
        "Competitor",
        back_populates="idea",
        cascade="all, delete-orphan",
        order_by="Competitor.threat_level.desc()",
    )
