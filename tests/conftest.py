"""
Shared fixtures: a fresh in-memory SQLite schema per test, a skill catalog
and a small factory for consultants and assignments.
"""
import os
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"  # must be set before importing app modules

from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.base_class import Base
from app.models import Assignment, Consultant, ConsultantSkill, Skill

SKILLS = [
    ("sql", "SQL", "specialization"),
    ("python", "Python", "specialization"),
    ("java", "Java", "specialization"),
    ("lang_arabic", "Arabic", "language"),
    ("lang_russian", "Russian", "language"),
    ("prop_luxury", "Luxury Villas", "property_type"),
]

SDR_ID = UUID("00000000-0000-0000-0000-0000000000aa")


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_fk(dbapi_conn, _):
        """SQLite ignores FKs by default, so cascades need this."""
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def catalog(db):
    for skill_id, name, category in SKILLS:
        db.add(Skill(skill_id=skill_id, name=name, category=category))
    await db.commit()
    return {skill_id: name for skill_id, name, _ in SKILLS}


class Factory:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def consultant(
        self,
        name: str,
        skills: Iterable[str] = (),
        load: int = 0,
        capacity: int = 10,
        active: bool = True,
        last_assigned_at: Optional[datetime] = None,
    ) -> Consultant:
        consultant = Consultant(
            consultant_id=uuid4(),
            name=name,
            is_active=active,
            current_assignment_count=load,
            max_assignment_count=capacity,
            last_assigned_at=last_assigned_at,
        )
        self.db.add(consultant)
        for skill_id in skills:
            self.db.add(ConsultantSkill(consultant_id=consultant.consultant_id, skill_id=skill_id))
        await self.db.commit()
        return consultant

    async def assignment(self, consultant: Consultant, lead_identifier: str = "lead-001",
                         lead_name: str = "Layla Haddad") -> Assignment:
        assignment = Assignment(
            assignment_id=uuid4(),
            lead_identifier=lead_identifier,
            lead_name=lead_name,
            consultant_id=consultant.consultant_id,
            sdr_id=SDR_ID,
            status="active",
            assigned_at=datetime.utcnow(),
            reassignment_count=0,
            reassignment_history=[],
            assignment_method="round_robin",
            skills_data={},
        )
        self.db.add(assignment)
        await self.db.commit()
        return assignment


@pytest_asyncio.fixture
async def factory(db, catalog):
    return Factory(db)
