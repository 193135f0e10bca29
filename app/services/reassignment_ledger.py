import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence
from uuid import UUID
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import LEDGER_WRITE_TIMEOUT_SECONDS, LEDGER_MAX_WRITE_ATTEMPTS
from app.crud import assignment as crud_assignment
from app.crud import assignment_reassignment as crud_events
from app.crud import consultant as crud_consultant
from app.models.assignment import Assignment
from app.models.assignment_reassignment import AssignmentReassignment, REASSIGNMENT_SOURCES
from app.schemas.reassignment import HistoryEntry
from app.services.exceptions import AssignmentError, InvalidReassignment, StoreUnavailable, Timeout
from app.utils.locks import KeyedLock

logger = logging.getLogger(__name__)

# Extra writes that must commit or roll back together with the event
TransactionStep = Callable[[AsyncSession, Assignment], Awaitable[None]]

NUMBER_CONSTRAINT = "uq_reassignment_number_per_assignment"


def is_number_conflict(error: IntegrityError) -> bool:
    """True when the unique (assignment_id, reassignment_number) constraint was violated."""
    message = str(error.orig)
    # PostgreSQL names the constraint, SQLite lists its columns
    return NUMBER_CONSTRAINT in message or "assignment_reassignments.reassignment_number" in message


def build_history_entry(event: AssignmentReassignment) -> Dict[str, Any]:
    improvement = None
    if event.new_skills_match_score is not None and event.previous_skills_match_score is not None:
        improvement = round(event.new_skills_match_score - event.previous_skills_match_score, 2)
    return HistoryEntry(
        reassignment_number=event.reassignment_number,
        from_consultant_id=event.original_consultant_id,
        to_consultant_id=event.new_consultant_id,
        timestamp=event.timestamp,
        reason=event.reason,
        skills_match_improvement=improvement,
        success=event.success,
    ).model_dump(mode="json")


class ReassignmentLedger:
    """
        Append-only record of every reassignment attempt.

        Each `record_reassignment` call, in one transaction:
        - locks the owning assignment and allocates
          reassignment_number = 1 + current max for that assignment
        - appends the event
        - bumps the assignment's reassignment_count by exactly one and
          appends the matching history entry
        - on success only, moves the assignment to the new consultant.

        Numbers are allocated under a per-assignment lock in this process and a
        row lock in the database; a unique (assignment_id, reassignment_number)
        constraint catches writers in other processes, and the write is retried
        with a fresh number. Unrelated assignments never wait on each other.

        Failed attempts are recorded too and consume a number.
    """

    _locks = KeyedLock()

    def __init__(
        self,
        db: AsyncSession,
        timeout: Optional[float] = LEDGER_WRITE_TIMEOUT_SECONDS,
        max_attempts: int = LEDGER_MAX_WRITE_ATTEMPTS,
    ):
        self.db = db
        self.timeout = timeout
        self.max_attempts = max_attempts

    async def record_reassignment(
        self,
        assignment_id: UUID,
        original_consultant_id: UUID,
        new_consultant_id: Optional[UUID],
        lead_identifier: str,
        lead_name: str,
        reason: Optional[str],
        source: str = "user_request",
        previous_score: Optional[float] = None,
        new_score: Optional[float] = None,
        requirements_snapshot: Optional[Sequence[Dict[str, Any]]] = None,
        exclusion_snapshot: Optional[Sequence[str]] = None,
        processing_time_ms: Optional[int] = None,
        success: bool = True,
        error_message: Optional[str] = None,
        timeout: Optional[float] = None,
        within_transaction: Optional[TransactionStep] = None,
    ) -> AssignmentReassignment:
        self._check_preconditions(
            original_consultant_id, new_consultant_id, source,
            previous_score, new_score, success, error_message,
        )
        fields = dict(
            original_consultant_id=original_consultant_id,
            new_consultant_id=new_consultant_id,
            lead_identifier=lead_identifier,
            lead_name=lead_name,
            reason=reason,
            reassignment_source=source,
            previous_skills_match_score=previous_score,
            new_skills_match_score=new_score,
            skills_requirements=list(requirements_snapshot or []),
            exclusion_list=[str(e) for e in (exclusion_snapshot or [])],
            processing_time_ms=processing_time_ms,
            success=success,
            error_message=error_message,
        )
        budget = timeout if timeout is not None else self.timeout

        async with self._locks.acquire(assignment_id):
            for attempt in range(1, self.max_attempts + 1):
                try:
                    event = await asyncio.wait_for(
                        self._write(assignment_id, fields, within_transaction), budget
                    )
                except AssignmentError:
                    await self.db.rollback()
                    raise
                except asyncio.TimeoutError:
                    await self.db.rollback()
                    logger.warning("Ledger write for assignment %s timed out after %ss", assignment_id, budget)
                    raise Timeout(
                        f"Recording reassignment for assignment {assignment_id} timed out",
                        {"assignment_id": str(assignment_id), "timeout": budget},
                    )
                except IntegrityError as e:
                    await self.db.rollback()
                    if not is_number_conflict(e):
                        logger.warning("Ledger write for assignment %s rejected: %s", assignment_id, e.orig)
                        raise InvalidReassignment(
                            f"Reassignment for assignment {assignment_id} violates a data constraint",
                            {"assignment_id": str(assignment_id)},
                        ) from e
                    logger.warning(
                        "Reassignment number conflict on assignment %s (attempt %d/%d): %s",
                        assignment_id, attempt, self.max_attempts, e.orig,
                    )
                    continue
                except DBAPIError as e:
                    await self.db.rollback()
                    logger.error("Ledger write for assignment %s failed: %s", assignment_id, e)
                    raise StoreUnavailable(
                        f"Could not record reassignment for assignment {assignment_id}",
                        {"assignment_id": str(assignment_id)},
                    ) from e

                logger.info(
                    "Recorded reassignment #%d for assignment %s: %s -> %s (success=%s)",
                    event.reassignment_number, assignment_id,
                    original_consultant_id, new_consultant_id, success,
                )
                return event

        raise StoreUnavailable(
            f"Could not allocate a reassignment number for assignment {assignment_id}",
            {"assignment_id": str(assignment_id), "attempts": self.max_attempts},
        )

    @staticmethod
    def _check_preconditions(
        original_consultant_id: UUID,
        new_consultant_id: Optional[UUID],
        source: str,
        previous_score: Optional[float],
        new_score: Optional[float],
        success: bool,
        error_message: Optional[str],
    ) -> None:
        if new_consultant_id is not None and new_consultant_id == original_consultant_id:
            raise InvalidReassignment(
                "Original and new consultant must differ",
                {"consultant_id": str(original_consultant_id)},
            )
        if success and new_consultant_id is None:
            raise InvalidReassignment("A successful reassignment needs a new consultant")
        if source not in REASSIGNMENT_SOURCES:
            raise InvalidReassignment(f"Unknown reassignment source: {source}")
        for label, value in (("previous_score", previous_score), ("new_score", new_score)):
            if value is not None and not 0.0 <= value <= 1.0:
                raise InvalidReassignment(f"{label} must be within [0, 1]", {label: value})
        if success and error_message:
            raise InvalidReassignment("error_message is only allowed on failed reassignments")
        if not success and not error_message:
            raise InvalidReassignment("Failed reassignments must carry an error_message")

    async def _write(
        self,
        assignment_id: UUID,
        fields: Dict[str, Any],
        within_transaction: Optional[TransactionStep],
    ) -> AssignmentReassignment:
        assignment = await crud_assignment.get_assignment(self.db, assignment_id, for_update=True)
        if assignment is None:
            raise InvalidReassignment(
                f"Assignment {assignment_id} does not exist",
                {"assignment_id": str(assignment_id)},
            )
        missing = await crud_consultant.missing_consultant_ids(
            self.db, [fields["original_consultant_id"], fields["new_consultant_id"]]
        )
        if missing:
            raise InvalidReassignment(
                f"Unknown consultant(s): {', '.join(str(c) for c in missing)}",
                {"consultant_ids": [str(c) for c in missing]},
            )

        if within_transaction is not None:
            await within_transaction(self.db, assignment)

        number = await crud_events.max_reassignment_number(self.db, assignment_id) + 1
        if assignment.reassignment_count != number - 1:
            logger.warning(
                "Assignment %s reassignment_count=%s disagrees with ledger max=%s",
                assignment_id, assignment.reassignment_count, number - 1,
            )

        event = await crud_events.append_event(
            self.db,
            assignment_id=assignment_id,
            sdr_id=assignment.sdr_id,
            reassignment_number=number,
            timestamp=datetime.utcnow(),
            **fields,
        )
        await crud_assignment.increment_reassignment_count(
            self.db,
            assignment,
            delta=1,
            history_entry=build_history_entry(event),
            new_consultant_id=event.new_consultant_id if event.success else None,
            reason=event.reason,
        )
        await self.db.commit()
        return event

    # --- Read side ---
    async def get_history(self, assignment_id: UUID) -> List[AssignmentReassignment]:
        return await crud_events.get_events_for_assignment(self.db, assignment_id)

    async def list_events(
        self,
        start: datetime,
        end: datetime,
        sdr_id: Optional[UUID] = None,
        consultant_id: Optional[UUID] = None,
    ) -> List[AssignmentReassignment]:
        return await crud_events.get_events_between(self.db, start, end, sdr_id, consultant_id)

    async def rebuild_history(self, assignment_id: UUID) -> Assignment:
        """Recompute the assignment's cached history and count from its events."""
        async with self._locks.acquire(assignment_id):
            assignment = await crud_assignment.get_assignment(self.db, assignment_id, for_update=True)
            if assignment is None:
                raise InvalidReassignment(
                    f"Assignment {assignment_id} does not exist",
                    {"assignment_id": str(assignment_id)},
                )
            events = await crud_events.get_events_for_assignment(self.db, assignment_id)
            await crud_assignment.replace_history(self.db, assignment, [build_history_entry(e) for e in events])
            await self.db.commit()
            return assignment
