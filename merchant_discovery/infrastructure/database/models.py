"""SQLAlchemy ORM models for transactions, discoveries and learning records"""

from sqlalchemy import Boolean, Column, Date, DateTime, Float, Integer, JSON, Text
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class TransactionRecord(Base):
    """Statement transaction written by the upload pipeline"""

    __tablename__ = "transactions"

    id = Column(Text, primary_key=True)
    date = Column(Date, nullable=False, index=True)
    amount = Column(Float, nullable=False)
    description = Column(Text, nullable=False)
    raw_description = Column(Text, nullable=False)
    type = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class MerchantDiscovery(Base):
    """AI merchant hypothesis for one canonical code, awaiting or past validation"""

    __tablename__ = "merchant_discovery"

    id = Column(Integer, primary_key=True, autoincrement=True)
    raw_code = Column(Text, nullable=False, unique=True, index=True)
    context_snapshot = Column(JSON, nullable=False)
    ai_reasoning = Column(JSON, nullable=False)
    ai_final_inference = Column(Text, nullable=False)
    ai_confidence = Column(Float, nullable=False)
    ai_merchant_type = Column(Text, nullable=False)
    ai_reasoning_summary = Column(Text, nullable=False, default="")
    ai_used_web_search = Column(Boolean, nullable=False, default=False)
    status = Column(Text, nullable=False, default="pending", index=True)
    user_validated_name = Column(Text, nullable=True)
    user_feedback_notes = Column(Text, nullable=True)
    impact_score = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    validated_at = Column(DateTime(timezone=True), nullable=True)


class DiscoveryLearning(Base):
    """Append-only record of one human validation"""

    __tablename__ = "discovery_learning"

    id = Column(Integer, primary_key=True, autoincrement=True)
    pattern_signature = Column(Text, nullable=False, index=True)
    original_code = Column(Text, nullable=False, index=True)
    context_summary = Column(Text, nullable=False)
    ai_inference = Column(Text, nullable=False)
    ai_confidence = Column(Float, nullable=False)
    user_correction = Column(Text, nullable=True)
    was_correct = Column(Boolean, nullable=False)
    error_type = Column(Text, nullable=True)
    context_features = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
