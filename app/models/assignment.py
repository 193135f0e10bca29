# models/assignment.py
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, JSON, CheckConstraint, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from uuid import uuid4
from datetime import datetime
from app.db.base_class import Base


class Assignment(Base):
    __tablename__ = "assignments"

    assignment_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    lead_identifier = Column(String(255), nullable=False)
    lead_name = Column(String(255), nullable=False)
    consultant_id = Column(UUID(as_uuid=True), ForeignKey("consultants.consultant_id"), nullable=False)
    sdr_id = Column(UUID(as_uuid=True), nullable=False)
    status = Column(String(20), nullable=False, default="active")
    assigned_at = Column(DateTime, default=datetime.utcnow)
    reassignment_count = Column(Integer, nullable=False, default=0)
    # Materialized from assignment_reassignments; never the source of truth
    reassignment_history = Column(JSON, nullable=False, default=list)
    original_assignment_id = Column(
        UUID(as_uuid=True), ForeignKey("assignments.assignment_id", ondelete="SET NULL"), nullable=True
    )
    assignment_method = Column(String(20), nullable=False, default="round_robin")
    skills_data = Column(JSON, nullable=False, default=dict)
    reassignment_reason = Column(String(500), nullable=True)

    __table_args__ = (
        CheckConstraint("reassignment_count >= 0", name="chk_assignment_reassignment_count"),
        CheckConstraint(
            "assignment_method IN ('round_robin','skills_based','vip','manual')",
            name="chk_assignment_method"
        ),
        CheckConstraint("status IN ('active','completed','cancelled')", name="chk_assignment_status"),
        Index("idx_assignments_consultant", "consultant_id"),
        Index("idx_assignments_lead_identifier_status", "lead_identifier", "status"),
        Index("idx_assignments_reassignment_count", "reassignment_count"),
    )

    # Relationships
    consultant = relationship("Consultant", back_populates="assignments")
    reassignments = relationship(
        "AssignmentReassignment",
        back_populates="assignment",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="AssignmentReassignment.reassignment_number",
    )
    original_assignment = relationship("Assignment", remote_side=[assignment_id])
