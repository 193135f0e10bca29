# models/consultant.py
from sqlalchemy import Column, String, Boolean, Integer, DateTime, CheckConstraint, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from uuid import uuid4
from app.db.base_class import Base

class Consultant(Base):
    __tablename__ = "consultants"

    consultant_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, nullable=True)
    phone = Column(String(20), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    current_assignment_count = Column(Integer, default=0, nullable=False)
    max_assignment_count = Column(Integer, default=10, nullable=False)
    last_assigned_at = Column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("current_assignment_count >= 0", name="chk_consultant_load_non_negative"),
        CheckConstraint("max_assignment_count > 0", name="chk_consultant_capacity_positive"),
        Index("idx_consultants_active", "is_active"),
    )

    # Relationships
    skills = relationship("ConsultantSkill", back_populates="consultant", cascade="all, delete-orphan")
    assignments = relationship("Assignment", back_populates="consultant")

    @property
    def skill_ids(self) -> set:
        return {cs.skill_id for cs in self.skills if cs.is_active}
