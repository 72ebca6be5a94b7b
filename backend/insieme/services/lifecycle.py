"""
Worksheet lifecycle - owns worksheet status transitions.

    creating ──► ready ──► submitted
        └──────► error

A worksheet is written as ``creating`` before generation starts (normally by
the client, under a client-chosen temp id). ``complete_or_fail`` settles it
exactly once under that same id, whether or not the placeholder write ever
landed. ``creating`` worksheets older than the staleness threshold are hidden
from active views but kept for diagnostics.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Union

from pydantic import BaseModel

from ..config.settings import settings as default_settings
from ..errors import InvalidTransitionError, NotFoundError, PersistenceError
from ..models import GenerateProblemsRequest, Worksheet, WorksheetStatus, utc_now

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    WorksheetStatus.CREATING: {WorksheetStatus.READY, WorksheetStatus.ERROR},
    WorksheetStatus.READY: {WorksheetStatus.SUBMITTED},
    WorksheetStatus.ERROR: set(),
    WorksheetStatus.SUBMITTED: set(),
}


def check_transition(current: WorksheetStatus, target: WorksheetStatus) -> None:
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Worksheet cannot move from {current.value} to {target.value}",
            details={"from": current.value, "to": target.value},
        )


class GenerationFailure(BaseModel):
    """Outcome of a generation attempt that produced no worksheet."""

    reason: str
    message: str = ""


GenerationOutcome = Union[Worksheet, GenerationFailure]


class WorksheetLifecycleManager:
    """Creates placeholders, settles them, and flips worksheets to submitted."""

    def __init__(self, store, settings=default_settings):
        self.store = store
        self.settings = settings
        self.collection = settings.WORKSHEETS_COLLECTION

    # ============ CREATION ============

    @staticmethod
    def placeholder_for(request: GenerateProblemsRequest, worksheet_id: str) -> Worksheet:
        """The ``creating`` stub for a generation request."""
        topic = (request.topic or "").strip()
        return Worksheet(
            id=worksheet_id,
            title=topic or "PDF worksheet",
            subject=request.subject,
            topic=topic,
            difficulty=request.difficulty,
            created_by=request.user_id,
            problems=[],
            status=WorksheetStatus.CREATING,
            has_pdf=bool(request.pdf_data),
        )

    async def begin_creation(
        self,
        request: GenerateProblemsRequest,
        worksheet_id: Optional[str] = None,
    ) -> str:
        """
        Store a ``creating`` placeholder and return its id.

        A failed write is only logged: ``complete_or_fail`` tolerates a
        missing placeholder.
        """
        worksheet_id = worksheet_id or f"temp_{uuid.uuid4().hex}"
        placeholder = self.placeholder_for(request, worksheet_id)
        try:
            await self.store.set(self.collection, worksheet_id, placeholder.to_document())
        except PersistenceError as e:
            logger.warning(f"Placeholder write failed for {worksheet_id}: {e}")
        return worksheet_id

    # ============ SETTLEMENT ============

    async def complete_or_fail(
        self,
        temp_id: str,
        outcome: GenerationOutcome,
        placeholder: Worksheet,
    ) -> Worksheet:
        """
        Settle a generation request under ``temp_id``.

        Args:
            temp_id: Placeholder id; the final document always uses it
            outcome: The generated worksheet, or a GenerationFailure
            placeholder: Stub used for the error document when no
                placeholder was stored

        Returns:
            The worksheet as it now stands in the store

        Raises:
            PersistenceError: a successful result could not be stored
            InvalidTransitionError: the worksheet already errored or was submitted
        """
        existing = await self._read_quietly(temp_id)

        if isinstance(outcome, GenerationFailure):
            return await self._fail(temp_id, outcome, existing or placeholder, stored=existing is not None)

        if existing is not None and existing.status is WorksheetStatus.READY:
            # Same request settled twice: keep the first result, problems are immutable
            logger.info(f"Worksheet {temp_id} already ready; keeping stored content")
            return existing

        current = existing.status if existing is not None else WorksheetStatus.CREATING
        check_transition(current, WorksheetStatus.READY)

        final = outcome.model_copy(
            update={
                "id": temp_id,
                "status": WorksheetStatus.READY,
                "error_reason": None,
                "updated_at": utc_now(),
            }
        )
        if existing is not None:
            final = final.model_copy(
                update={"created_at": existing.created_at, "created_by": existing.created_by}
            )

        await self.store.set(self.collection, temp_id, final.to_document())
        action = "updated in place" if existing is not None else "created (placeholder missing)"
        logger.info(f"✅ Worksheet {temp_id} ready with {len(final.problems)} problems, {action}")
        return final

    async def _fail(
        self,
        temp_id: str,
        failure: GenerationFailure,
        base: Worksheet,
        stored: bool,
    ) -> Worksheet:
        if stored and base.status is not WorksheetStatus.CREATING:
            logger.warning(
                f"Generation failure ({failure.reason}) ignored for worksheet {temp_id} in status {base.status.value}"
            )
            return base

        suffix = self.settings.ERROR_TITLE_SUFFIX
        title = base.title if base.title.endswith(suffix) else f"{base.title}{suffix}"
        errored = base.model_copy(
            update={
                "id": temp_id,
                "title": title,
                "status": WorksheetStatus.ERROR,
                "problems": [],
                "error_reason": failure.reason,
                "updated_at": utc_now(),
            }
        )
        try:
            await self.store.set(self.collection, temp_id, errored.to_document())
            logger.info(f"Worksheet {temp_id} marked as error ({failure.reason})")
        except PersistenceError as e:
            logger.error(f"❌ Could not record generation error for worksheet {temp_id}: {e}")
        return errored

    async def _read_quietly(self, worksheet_id: str) -> Optional[Worksheet]:
        try:
            doc = await self.store.get(self.collection, worksheet_id)
        except PersistenceError as e:
            logger.warning(f"Could not read worksheet {worksheet_id}, treating as absent: {e}")
            return None
        return Worksheet.model_validate(doc) if doc else None

    # ============ SUBMISSION ============

    async def mark_submitted(self, worksheet_id: str) -> bool:
        """
        Flip ``ready`` to ``submitted``. Call only after the submission is stored.

        Returns:
            False when the worksheet does not exist (nothing to flip)
        """
        doc = await self.store.get(self.collection, worksheet_id)
        if not doc:
            logger.warning(f"Worksheet {worksheet_id} not found; status not updated")
            return False

        current = WorksheetStatus(doc.get("status", WorksheetStatus.CREATING.value))
        if current is WorksheetStatus.SUBMITTED:
            return True

        check_transition(current, WorksheetStatus.SUBMITTED)
        await self.store.update(
            self.collection,
            worksheet_id,
            {"status": WorksheetStatus.SUBMITTED.value, "updatedAt": utc_now().isoformat()},
        )
        logger.info(f"Worksheet {worksheet_id} submitted")
        return True

    # ============ READ SIDE ============

    async def get_worksheet(self, worksheet_id: str) -> Worksheet:
        doc = await self.store.get(self.collection, worksheet_id)
        if not doc:
            raise NotFoundError(f"Worksheet {worksheet_id} not found")
        return Worksheet.model_validate(doc)

    def is_stale(self, worksheet: Worksheet, now: Optional[datetime] = None) -> bool:
        """A ``creating`` worksheet past the threshold was abandoned."""
        if worksheet.status is not WorksheetStatus.CREATING:
            return False
        now = now or utc_now()
        created_at = worksheet.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return now - created_at > timedelta(minutes=self.settings.STALE_CREATING_MINUTES)

    def filter_active(
        self,
        worksheets: Iterable[Worksheet],
        now: Optional[datetime] = None,
    ) -> List[Worksheet]:
        now = now or utc_now()
        active = []
        for worksheet in worksheets:
            if self.is_stale(worksheet, now):
                logger.warning(f"Filtering out stuck creating worksheet: {worksheet.id}")
                continue
            active.append(worksheet)
        return active

    async def list_active_worksheets(self, user_id: str, now: Optional[datetime] = None) -> List[Worksheet]:
        """The user's worksheets, newest first, without abandoned placeholders."""
        docs = await self.store.find(self.collection, {"createdBy": user_id}, order_by="createdAt")
        worksheets = []
        for doc in docs:
            try:
                worksheets.append(Worksheet.model_validate(doc))
            except ValueError as e:
                logger.warning(f"Skipping malformed worksheet {doc.get('id')}: {e}")
        return self.filter_active(worksheets, now)
