# models/skill.py
from sqlalchemy import Column, String, Text, Boolean, ForeignKey, CheckConstraint, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from app.db.base_class import Base


class Skill(Base):
    __tablename__ = "skills"

    skill_id = Column(String(50), primary_key=True)  # e.g. lang_arabic, prop_luxury
    name = Column(String(100), nullable=False, unique=True)
    category = Column(String(30), nullable=False)
    description = Column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "category IN ('language','property_type','client_type','specialization','custom')",
            name="chk_skill_category"
        ),
    )

    consultant_skills = relationship("ConsultantSkill", back_populates="skill", cascade="all, delete-orphan")


class ConsultantSkill(Base):
    __tablename__ = "consultant_skills"

    consultant_id = Column(UUID(as_uuid=True), ForeignKey("consultants.consultant_id", ondelete="CASCADE"), primary_key=True)
    skill_id = Column(String(50), ForeignKey("skills.skill_id", ondelete="CASCADE"), primary_key=True)
    proficiency_level = Column(String(20), nullable=True)  # beginner, intermediate, advanced, expert
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("idx_consultant_skills_skill", "skill_id"),
    )

    # Relationships
    consultant = relationship("Consultant", back_populates="skills")
    skill = relationship("Skill", back_populates="consultant_skills")
