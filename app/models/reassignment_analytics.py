# models/reassignment_analytics.py
from sqlalchemy import Column, Date, Integer, Numeric, String, ForeignKey, Index, UniqueConstraint, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.db.base_class import Base

class ReassignmentAnalytics(Base):
    __tablename__ = "reassignment_analytics"

    analytics_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    date = Column(Date, nullable=False)
    sdr_id = Column(UUID(as_uuid=True), nullable=False)
    consultant_id = Column(UUID(as_uuid=True), ForeignKey("consultants.consultant_id", ondelete="CASCADE"), nullable=True)
    total_reassignments = Column(Integer, nullable=False, default=0)
    successful_reassignments = Column(Integer, nullable=False, default=0)
    failed_reassignments = Column(Integer, nullable=False, default=0)
    avg_processing_time_ms = Column(Numeric(10, 2, asdecimal=False), nullable=True)
    most_common_reason = Column(String(500), nullable=True)
    skills_based_reassignments = Column(Integer, nullable=False, default=0)
    avg_reassignment_number = Column(Numeric(5, 2, asdecimal=False), nullable=True)
    max_reassignment_number = Column(Integer, nullable=False, default=0)
    unique_leads_reassigned = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("date", "sdr_id", "consultant_id", name="unique_analytics_date_sdr_consultant"),
        CheckConstraint("failed_reassignments <= total_reassignments", name="chk_failed_not_greater_than_total"),
        Index("idx_reassignment_analytics_date", "date"),
        Index("idx_reassignment_analytics_sdr", "sdr_id"),
        Index("idx_reassignment_analytics_consultant", "consultant_id"),
    )
