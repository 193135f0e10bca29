# models/assignment_reassignment.py
from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, Numeric, Text, JSON,
    ForeignKey, CheckConstraint, UniqueConstraint, Index
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from uuid import uuid4
from datetime import datetime
from app.db.base_class import Base

REASSIGNMENT_SOURCES = ("user_request", "system_automatic", "admin_override")


class AssignmentReassignment(Base):
    """Append-only ledger row: one per reassignment attempt, successful or not."""

    __tablename__ = "assignment_reassignments"

    reassignment_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    assignment_id = Column(
        UUID(as_uuid=True), ForeignKey("assignments.assignment_id", ondelete="CASCADE"), nullable=False
    )
    sdr_id = Column(UUID(as_uuid=True), nullable=False)
    original_consultant_id = Column(UUID(as_uuid=True), ForeignKey("consultants.consultant_id"), nullable=False)
    # Absent only for failed attempts where no candidate was selected
    new_consultant_id = Column(UUID(as_uuid=True), ForeignKey("consultants.consultant_id"), nullable=True)
    reassignment_number = Column(Integer, nullable=False)
    reason = Column(String(500), nullable=True)
    lead_identifier = Column(String(255), nullable=False)
    lead_name = Column(String(255), nullable=False)
    previous_skills_match_score = Column(Numeric(3, 2, asdecimal=False), nullable=True)
    new_skills_match_score = Column(Numeric(3, 2, asdecimal=False), nullable=True)
    skills_requirements = Column(JSON, nullable=False, default=list)
    exclusion_list = Column(JSON, nullable=False, default=list)
    reassignment_source = Column(String(30), nullable=False, default="user_request")
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow)
    processing_time_ms = Column(Integer, nullable=True)
    success = Column(Boolean, nullable=False, default=True)
    error_message = Column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("assignment_id", "reassignment_number", name="uq_reassignment_number_per_assignment"),
        CheckConstraint("reassignment_number > 0", name="chk_reassignment_number_positive"),
        CheckConstraint("original_consultant_id != new_consultant_id", name="chk_different_consultants"),
        CheckConstraint(
            "reassignment_source IN ('user_request','system_automatic','admin_override')",
            name="chk_reassignment_source"
        ),
        CheckConstraint(
            "(success AND error_message IS NULL) OR (NOT success AND error_message IS NOT NULL)",
            name="chk_error_message_iff_failed"
        ),
        CheckConstraint("NOT success OR new_consultant_id IS NOT NULL", name="chk_success_has_new_consultant"),
        Index("idx_reassignments_assignment", "assignment_id"),
        Index("idx_reassignments_sdr", "sdr_id"),
        Index("idx_reassignments_original_consultant", "original_consultant_id"),
        Index("idx_reassignments_new_consultant", "new_consultant_id"),
        Index("idx_reassignments_lead_identifier", "lead_identifier"),
        Index("idx_reassignments_timestamp", "timestamp"),
        Index("idx_reassignments_success", "success"),
    )

    # Relationships
    assignment = relationship("Assignment", back_populates="reassignments")
    original_consultant = relationship("Consultant", foreign_keys=[original_consultant_id])
    new_consultant = relationship("Consultant", foreign_keys=[new_consultant_id])
