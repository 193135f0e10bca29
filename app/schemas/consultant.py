from typing import Any, FrozenSet, Iterable, Optional, Set, Tuple
from uuid import UUID
from datetime import datetime
from pydantic import BaseModel, field_validator, model_validator


def normalize_name(name: str) -> str:
    """Case- and whitespace-insensitive form used to compare consultant names."""
    return " ".join(name.split()).casefold()


class ConsultantRef(BaseModel):
    """
    Reference to a consultant by id OR by name.

    Exclusion lists arrive from callers as loose strings (an id or a display
    name); `parse` turns each into a ref whose equality is the normalized
    identity, so one membership check covers both forms.
    """

    consultant_id: Optional[UUID] = None
    name: Optional[str] = None

    model_config = {"frozen": True}

    @field_validator("name")
    @classmethod
    def _normalize(cls, value: Optional[str]) -> Optional[str]:
        return normalize_name(value) if value is not None else None

    @model_validator(mode="after")
    def _exactly_one(self):
        if (self.consultant_id is None) == (self.name is None or self.name == ""):
            raise ValueError("ConsultantRef needs exactly one of consultant_id or name")
        return self

    @classmethod
    def parse(cls, value: Any) -> "ConsultantRef":
        if isinstance(value, ConsultantRef):
            return value
        if isinstance(value, UUID):
            return cls(consultant_id=value)
        text = str(value).strip()
        try:
            return cls(consultant_id=UUID(text))
        except ValueError:
            return cls(name=text)

    def matches(self, consultant_id: UUID, name: str) -> bool:
        if self.consultant_id is not None:
            return self.consultant_id == consultant_id
        return self.name == normalize_name(name)

    def __str__(self) -> str:
        return str(self.consultant_id) if self.consultant_id is not None else self.name


def split_refs(refs: Iterable[ConsultantRef]) -> Tuple[Set[UUID], Set[str]]:
    ids, names = set(), set()
    for ref in refs:
        if ref.consultant_id is not None:
            ids.add(ref.consultant_id)
        else:
            names.add(ref.name)
    return ids, names


class ConsultantSnapshot(BaseModel):
    """Consultant state as read at matching time; may be stale by commit time."""

    consultant_id: UUID
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool
    current_assignment_count: int
    max_assignment_count: int
    last_assigned_at: Optional[datetime] = None
    skill_ids: FrozenSet[str] = frozenset()

    model_config = {"from_attributes": True}

    @property
    def is_eligible(self) -> bool:
        return self.is_active and self.current_assignment_count < self.max_assignment_count
