# crud/skill.py
from typing import Dict, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.models.skill import Skill


async def list_skills(db: AsyncSession) -> List[Skill]:
    result = await db.execute(select(Skill).order_by(Skill.category, Skill.name))
    return result.scalars().all()


async def get_skill_names(db: AsyncSession) -> Dict[str, str]:
    """Catalog lookup: skill_id -> display name."""
    result = await db.execute(select(Skill.skill_id, Skill.name))
    return {row.skill_id: row.name for row in result}
