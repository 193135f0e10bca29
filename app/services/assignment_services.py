import logging
import time
from datetime import datetime
from typing import List, Optional
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import CONSULTANT_LOOKUP_TIMEOUT_SECONDS, LEDGER_WRITE_TIMEOUT_SECONDS
from app.crud import assignment as crud_assignment
from app.crud import consultant as crud_consultant
from app.models.assignment import Assignment
from app.schemas.assignment import (
    AssignmentRead,
    AssignmentRequest,
    AssignmentResponse,
    SelectionFailure,
    SelectionResult,
)
from app.schemas.reassignment import (
    AssignmentHistoryResponse,
    ReassignmentEventRead,
    ReassignmentRecordRequest,
    ReassignmentRequest,
    ReassignmentResponse,
)
from app.services.assignment_selector import AssignmentSelector, ReassignmentContext
from app.services.exceptions import AssignmentError, ConsultantNoLongerEligible, InvalidReassignment
from app.services.reassignment_ledger import ReassignmentLedger
from app.services.skill_scorer import SkillScorer
from app.utils.store import bounded_store_call

logger = logging.getLogger(__name__)


def elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class AssignmentServices:

    @staticmethod
    async def assign_lead_service(request: AssignmentRequest, db: AsyncSession) -> AssignmentResponse:
        """
        Assign a new lead to a consultant.

        Workflow:
        1. Run the AssignmentSelector with the requested skills and exclusions.
        2. Claim one unit of the chosen consultant's capacity with a
           compare-and-set update, re-checking active/under-capacity at write time.
        3. Create the assignment with a snapshot of requirements and score.
        4. Commit.

        Returns:
            AssignmentResponse: success with the assignment and the selection, or
            success=False with the failure kind. When the consultant stops being
            eligible between selection and commit the failure is
            ConsultantNoLongerEligible and nothing is written.
        """
        started = time.perf_counter()

        # 1. --- Select ---
        selector = AssignmentSelector(db)
        outcome = await selector.select(
            request.lead_identifier,
            request.lead_name,
            request.required_skills,
            request.exclude_consultants,
            timeout=request.timeout,
        )
        if not outcome.success:
            return AssignmentResponse(success=False, error=outcome.error, processing_time_ms=elapsed_ms(started))
        selection = outcome.selection

        # 2-4. --- Claim capacity + persist ---
        try:
            assignment = await bounded_store_call(
                AssignmentServices._persist_assignment(request, selection, db),
                request.timeout or CONSULTANT_LOOKUP_TIMEOUT_SECONDS,
                "assignment write",
            )
        except AssignmentError as e:
            await db.rollback()
            logger.warning("Assignment of lead %s not committed: %s [%s]", request.lead_identifier, e, e.kind)
            return AssignmentResponse(
                success=False, selection=selection, error=e.to_failure(), processing_time_ms=elapsed_ms(started)
            )
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Lead %s assigned to consultant %s (assignment %s)",
            request.lead_identifier, selection.consultant.consultant_id, assignment.assignment_id,
        )
        return AssignmentResponse(
            success=True,
            assignment=AssignmentRead.model_validate(assignment),
            selection=selection,
            processing_time_ms=elapsed_ms(started),
        )

    @staticmethod
    async def _persist_assignment(
        request: AssignmentRequest, selection: SelectionResult, db: AsyncSession
    ) -> Assignment:
        consultant_id = selection.consultant.consultant_id
        original_id = request.original_assignment_id
        if original_id is not None and await crud_assignment.get_assignment(db, original_id) is None:
            raise InvalidReassignment(
                f"Original assignment {original_id} does not exist",
                {"original_assignment_id": str(original_id)},
            )
        if not await crud_consultant.claim_capacity(db, consultant_id):
            raise ConsultantNoLongerEligible(
                f"Consultant {consultant_id} is no longer active or under capacity",
                {"consultant_id": str(consultant_id)},
            )

        assignment = await crud_assignment.create_assignment(
            db,
            lead_identifier=request.lead_identifier,
            lead_name=request.lead_name,
            consultant_id=consultant_id,
            sdr_id=request.sdr_id,
            assignment_method=selection.assignment_method,
            skills_data={
                "required_skills": [r.model_dump() for r in selection.required_skills],
                "matched_skills": selection.matched_skills,
                "match_score": selection.match_score,
                "match_type": selection.match_type,
                "fallback_used": selection.fallback_used,
            },
            original_assignment_id=original_id,
        )
        await db.commit()
        return assignment

    @staticmethod
    async def reassign_lead_service(
        assignment_id: UUID, request: ReassignmentRequest, db: AsyncSession
    ) -> ReassignmentResponse:
        """
        Move an assignment to a different consultant.

        Workflow:
        1. Load the assignment; the current consultant is always excluded.
        2. Score the current consultant against the new requirements (previous score).
        3. Run the AssignmentSelector.
        4. In one ledger transaction: lock the assignment, claim the new
           consultant's capacity, release the old one, append the event and
           update the assignment.

        Every failed attempt (no candidate, lost race) is still written to the
        ledger as a failed event. Only failures of the ledger write itself
        (bad input, timeout, store down) leave no event behind.
        """
        started = time.perf_counter()
        timeout = request.timeout or CONSULTANT_LOOKUP_TIMEOUT_SECONDS
        ledger = ReassignmentLedger(db, timeout=request.timeout or LEDGER_WRITE_TIMEOUT_SECONDS)

        # 1. --- Fetch Assignment ---
        try:
            assignment = await bounded_store_call(
                crud_assignment.get_assignment(db, assignment_id), timeout, "assignment lookup"
            )
        except AssignmentError as e:
            return ReassignmentResponse(success=False, error=e.to_failure(), processing_time_ms=elapsed_ms(started))
        if assignment is None:
            error = InvalidReassignment(
                f"Assignment {assignment_id} does not exist", {"assignment_id": str(assignment_id)}
            )
            return ReassignmentResponse(success=False, error=error.to_failure(), processing_time_ms=elapsed_ms(started))
        if assignment.status != "active":
            error = InvalidReassignment(
                f"Assignment {assignment_id} is {assignment.status}; only active assignments can be reassigned",
                {"assignment_id": str(assignment_id), "status": assignment.status},
            )
            return ReassignmentResponse(success=False, error=error.to_failure(), processing_time_ms=elapsed_ms(started))

        # plain values: the instance is expired by any rollback below
        current_id = assignment.consultant_id
        lead_identifier = assignment.lead_identifier
        lead_name = assignment.lead_name
        required = list(request.required_skills)
        context = ReassignmentContext(assignment_id, current_id, request.reason)
        exclusions = AssignmentSelector.effective_exclusions(request.exclude_consultants, context)

        # 2. --- Previous score ---
        previous_score = None
        if required:
            try:
                current = await bounded_store_call(
                    crud_consultant.get_consultant(db, current_id), timeout, "current consultant lookup"
                )
            except AssignmentError as e:
                return ReassignmentResponse(success=False, error=e.to_failure(), processing_time_ms=elapsed_ms(started))
            if current is not None:
                previous_score = round(SkillScorer.score(required, current.skill_ids), 2)

        # 3. --- Select ---
        selector = AssignmentSelector(db)
        outcome = await selector.select(
            lead_identifier, lead_name, required, exclusions, reassignment=context, timeout=request.timeout
        )

        record = dict(
            assignment_id=assignment_id,
            original_consultant_id=current_id,
            lead_identifier=lead_identifier,
            lead_name=lead_name,
            reason=request.reason,
            source=request.source,
            previous_score=previous_score,
            requirements_snapshot=[r.model_dump() for r in required],
            exclusion_snapshot=[str(e) for e in exclusions],
        )

        if not outcome.success:
            return await AssignmentServices._record_failure(
                ledger, db, record, None, outcome.error, None, started
            )
        selection = outcome.selection
        new_id = selection.consultant.consultant_id

        async def move_load(session: AsyncSession, locked: Assignment) -> None:
            if locked.consultant_id != current_id:
                raise ConsultantNoLongerEligible(
                    f"Assignment {assignment_id} was reassigned while a new consultant was being selected",
                    {"assignment_id": str(assignment_id), "consultant_id": str(locked.consultant_id)},
                )
            if not await crud_consultant.claim_capacity(session, new_id):
                raise ConsultantNoLongerEligible(
                    f"Consultant {new_id} is no longer active or under capacity",
                    {"consultant_id": str(new_id)},
                )
            await crud_consultant.release_capacity(session, current_id)

        # 4. --- Commit through the ledger ---
        try:
            event = await ledger.record_reassignment(
                new_consultant_id=new_id,
                new_score=round(selection.match_score, 2) if required else None,
                processing_time_ms=elapsed_ms(started),
                success=True,
                within_transaction=move_load,
                **record,
            )
        except ConsultantNoLongerEligible as e:
            return await AssignmentServices._record_failure(
                ledger, db, record, new_id, e.to_failure(), selection, started
            )
        except AssignmentError as e:
            logger.error("Reassignment of %s could not be recorded: %s [%s]", assignment_id, e, e.kind)
            return ReassignmentResponse(
                success=False, selection=selection, error=e.to_failure(), processing_time_ms=elapsed_ms(started)
            )

        assignment = await crud_assignment.get_assignment(db, assignment_id)
        return ReassignmentResponse(
            success=True,
            assignment=AssignmentRead.model_validate(assignment),
            event=ReassignmentEventRead.model_validate(event),
            selection=selection,
            processing_time_ms=elapsed_ms(started),
        )

    @staticmethod
    async def _record_failure(
        ledger: ReassignmentLedger,
        db: AsyncSession,
        record: dict,
        new_consultant_id: Optional[UUID],
        error: SelectionFailure,
        selection: Optional[SelectionResult],
        started: float,
    ) -> ReassignmentResponse:
        logger.warning(
            "Reassignment of %s failed: %s [%s]", record["assignment_id"], error.message, error.kind
        )
        event = None
        try:
            event = await ledger.record_reassignment(
                new_consultant_id=new_consultant_id,
                processing_time_ms=elapsed_ms(started),
                success=False,
                error_message=error.message,
                **record,
            )
        except AssignmentError as e:
            logger.error("Failed reassignment of %s could not be recorded: %s", record["assignment_id"], e)

        assignment = await crud_assignment.get_assignment(db, record["assignment_id"])
        return ReassignmentResponse(
            success=False,
            assignment=AssignmentRead.model_validate(assignment) if assignment else None,
            event=ReassignmentEventRead.model_validate(event) if event else None,
            selection=selection,
            error=error,
            processing_time_ms=elapsed_ms(started),
        )

    @staticmethod
    async def record_reassignment_service(request: ReassignmentRecordRequest, db: AsyncSession) -> ReassignmentEventRead:
        """Append an externally decided reassignment; raises the ledger's errors."""
        ledger = ReassignmentLedger(db, timeout=request.timeout or LEDGER_WRITE_TIMEOUT_SECONDS)
        event = await ledger.record_reassignment(
            assignment_id=request.assignment_id,
            original_consultant_id=request.original_consultant_id,
            new_consultant_id=request.new_consultant_id,
            lead_identifier=request.lead_identifier,
            lead_name=request.lead_name,
            reason=request.reason,
            source=request.source,
            previous_score=request.previous_skills_match_score,
            new_score=request.new_skills_match_score,
            requirements_snapshot=[r.model_dump() for r in request.skills_requirements],
            exclusion_snapshot=request.exclusion_list,
            processing_time_ms=request.processing_time_ms,
            success=request.success,
            error_message=request.error_message,
        )
        return ReassignmentEventRead.model_validate(event)

    @staticmethod
    async def get_assignment_service(assignment_id: UUID, db: AsyncSession) -> AssignmentRead:
        assignment = await crud_assignment.get_assignment(db, assignment_id)
        if not assignment:
            raise LookupError(f"Assignment {assignment_id} not found")
        return AssignmentRead.model_validate(assignment)

    @staticmethod
    async def list_assignments_for_lead_service(lead_identifier: str, db: AsyncSession) -> List[AssignmentRead]:
        assignments = await crud_assignment.get_assignments_by_lead(db, lead_identifier)
        return [AssignmentRead.model_validate(a) for a in assignments]

    @staticmethod
    async def get_assignment_history_service(assignment_id: UUID, db: AsyncSession) -> AssignmentHistoryResponse:
        assignment = await crud_assignment.get_assignment(db, assignment_id)
        if not assignment:
            raise LookupError(f"Assignment {assignment_id} not found")

        events = await ReassignmentLedger(db).get_history(assignment_id)
        return AssignmentHistoryResponse(
            assignment=AssignmentRead.model_validate(assignment),
            reassignment_history=[ReassignmentEventRead.model_validate(e) for e in events],
            total_reassignments=len(events),
            last_reassignment_at=events[-1].timestamp if events else None,
        )

    @staticmethod
    async def rebuild_history_service(assignment_id: UUID, db: AsyncSession) -> AssignmentRead:
        assignment = await ReassignmentLedger(db).rebuild_history(assignment_id)
        return AssignmentRead.model_validate(assignment)

    @staticmethod
    async def list_events_service(
        start: datetime,
        end: datetime,
        db: AsyncSession,
        sdr_id: Optional[UUID] = None,
        consultant_id: Optional[UUID] = None,
    ) -> List[ReassignmentEventRead]:
        events = await ReassignmentLedger(db).list_events(start, end, sdr_id, consultant_id)
        return [ReassignmentEventRead.model_validate(e) for e in events]
