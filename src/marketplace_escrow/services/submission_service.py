"""Submission Service: the provider's evidence that the work is done."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from marketplace_escrow.domain.enums import ReviewOutcome
from marketplace_escrow.domain.exceptions import EvidenceStorageUnavailableError
from marketplace_escrow.domain.inputs import EvidenceItem, validate_evidence
from marketplace_escrow.infrastructure.database.orm_models import EvidenceRecord, WorkSubmission
from marketplace_escrow.infrastructure.database.repositories import SubmissionRepository
from marketplace_escrow.logging_config import get_logger

if TYPE_CHECKING:
    import uuid
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession

    from marketplace_escrow.domain.capabilities import EvidenceStore

logger = get_logger(__name__)


class SubmissionService:
    """Records work submissions and their review outcome."""

    def __init__(self, session: AsyncSession, evidence_store: EvidenceStore | None = None) -> None:
        self._session = session
        self._evidence_store = evidence_store
        self._repo = SubmissionRepository(session)

    async def evidence_from_upload(
        self,
        blob: bytes,
        filename: str,
        description: str = "",
        content_type: str = "application/octet-stream",
    ) -> EvidenceItem:
        """Store an uploaded file and return an evidence item pointing at it."""
        if self._evidence_store is None:
            raise EvidenceStorageUnavailableError()
        reference = await self._evidence_store.store(blob, filename, content_type)
        return EvidenceItem(reference=reference, description=description, original_name=filename)

    async def create(
        self,
        engagement_id: uuid.UUID,
        escrow_id: uuid.UUID,
        provider_id: str,
        evidence: Sequence[EvidenceItem],
        summary: str = "",
    ) -> WorkSubmission:
        """Create the next submission attempt.

        Raises:
            EvidenceRequiredError: If ``evidence`` is empty.
            InvalidEvidenceError: If any item has a blank reference.
        """
        validate_evidence(evidence)

        previous = await self._repo.get_by_engagement(engagement_id)
        submission = WorkSubmission(
            engagement_id=engagement_id,
            escrow_id=escrow_id,
            provider_id=provider_id,
            attempt=len(previous) + 1,
            summary=summary,
            outcome=ReviewOutcome.PENDING.value,
            evidence=[
                EvidenceRecord(
                    position=i,
                    reference=item.reference.strip(),
                    description=item.description,
                    original_name=item.original_name,
                )
                for i, item in enumerate(evidence)
            ],
        )
        submission = await self._repo.create(submission)

        logger.info(
            "submission.created",
            engagement_id=str(engagement_id),
            submission_id=str(submission.id),
            attempt=submission.attempt,
            evidence_count=len(evidence),
        )
        return submission

    async def mark_reviewed(
        self,
        submission: WorkSubmission,
        approved: bool,
        reviewer_id: str,
        reason: str | None = None,
    ) -> WorkSubmission:
        submission.outcome = (ReviewOutcome.APPROVED if approved else ReviewOutcome.REJECTED).value
        submission.reviewed_by = reviewer_id
        submission.review_reason = reason
        submission.reviewed_at = datetime.now(UTC)
        await self._session.flush()
        return submission

    async def latest(self, engagement_id: uuid.UUID) -> WorkSubmission | None:
        return await self._repo.get_latest(engagement_id)

    async def list_for_engagement(self, engagement_id: uuid.UUID) -> list[WorkSubmission]:
        return await self._repo.get_by_engagement(engagement_id)
