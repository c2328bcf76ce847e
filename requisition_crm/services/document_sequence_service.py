"""
Document Sequence Service for Atomic Number Generation

- Financial year based numbering (April-March)
- Continuous sequence within financial year (NO daily reset)
- One atomic UPDATE ... RETURNING per allocation, never a row count
- Format: {SCOPE}{SEP}{FY}{SEP}{SEQUENCE}

USAGE:
    from requisition_crm.services.document_sequence_service import DocumentSequenceService

    async def create_po(db: AsyncSession):
        service = DocumentSequenceService(db)
        po_number = await service.next_number("PO")
        # Returns: PO-25-26-0001

The allocation runs inside the caller's transaction: if the document that
consumes the number is rolled back, so is the increment.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional, Union

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from requisition_crm.config import settings
from requisition_crm.core.exceptions import ValidationFailed
from requisition_crm.models.document_sequence import (
    DocumentSequence, DocumentSequenceAudit, DocumentScope, format_document_number
)


logger = logging.getLogger(__name__)


# Scope metadata
DOCUMENT_METADATA = {
    DocumentScope.REQUEST.value: {"name": "Material Request"},
    DocumentScope.PURCHASE_ORDER.value: {"name": "Purchase Order"},
    DocumentScope.DELIVERY_CHALLAN.value: {"name": "Delivery Challan"},
}


class DocumentSequenceService:
    """
    Service for generating atomic document numbers.

    Features:
    - Single-statement increment, safe under concurrent sessions
    - Counter row created on first use of a (scope, period)
    - Audit logging for all operations
    """

    def __init__(
        self,
        db: AsyncSession,
        actor_id: Optional[uuid.UUID] = None,
        separator: Optional[str] = None,
        padding: Optional[int] = None,
    ):
        """
        Initialize the service.

        Args:
            db: Async database session
            actor_id: Optional principal id for audit logging
            separator: Overrides DOCUMENT_NUMBER_SEPARATOR for new counters
            padding: Overrides DOCUMENT_NUMBER_PADDING for new counters
        """
        self.db = db
        self.actor_id = actor_id
        self.separator = separator if separator is not None else settings.DOCUMENT_NUMBER_SEPARATOR
        self.padding = padding if padding is not None else settings.DOCUMENT_NUMBER_PADDING

    @staticmethod
    def _normalize_scope(scope: Union[str, DocumentScope]) -> str:
        value = scope.value if isinstance(scope, DocumentScope) else str(scope).upper()
        if value not in DOCUMENT_METADATA:
            valid = ", ".join(DOCUMENT_METADATA.keys())
            raise ValidationFailed(
                f"Invalid document scope '{value}'. Valid scopes: {valid}",
                {"scope": value}
            )
        return value

    @staticmethod
    def current_period(now: Optional[datetime] = None) -> str:
        return DocumentSequence.get_financial_year(now)

    def _log_audit(
        self,
        scope: str,
        period: str,
        operation: str,
        old_number: Optional[int] = None,
        new_number: Optional[int] = None,
        document_number: Optional[str] = None,
    ) -> None:
        """Queue an audit record in the caller's transaction."""
        self.db.add(DocumentSequenceAudit(
            scope=scope,
            period=period,
            operation=operation,
            old_number=old_number,
            new_number=new_number,
            document_number=document_number,
            actor_id=self.actor_id,
        ))

    async def next_number(
        self,
        scope: Union[str, DocumentScope],
        period: Optional[str] = None
    ) -> str:
        """
        Allocate the next document number.

        Args:
            scope: REQ, PO or DC
            period: Optional FY string. Auto-calculated if not provided.

        Returns:
            Formatted document number, e.g., PO-25-26-0001

        Raises:
            ValidationFailed: unknown scope
        """
        scope = self._normalize_scope(scope)
        period = period or self.current_period()

        row = await self._increment(scope, period)
        if row is None:
            await self._create_sequence(scope, period)
            row = await self._increment(scope, period)
            if row is None:
                raise ValidationFailed(
                    f"Document sequence {scope}/{period} is inactive",
                    {"scope": scope, "period": period}
                )

        new_number, padding, separator = row
        document_number = format_document_number(scope, period, new_number, padding, separator)

        self._log_audit(
            scope=scope,
            period=period,
            operation="GET_NEXT",
            old_number=new_number - 1,
            new_number=new_number,
            document_number=document_number,
        )
        logger.debug("Allocated %s", document_number)
        return document_number

    async def _increment(self, scope: str, period: str):
        """Bump the counter in one statement; None when no active row exists."""
        result = await self.db.execute(
            update(DocumentSequence)
            .where(
                DocumentSequence.scope == scope,
                DocumentSequence.period == period,
                DocumentSequence.is_active.is_(True),
            )
            .values(current_number=DocumentSequence.current_number + 1)
            .returning(
                DocumentSequence.current_number,
                DocumentSequence.padding_length,
                DocumentSequence.separator,
            )
            .execution_options(synchronize_session=False)
        )
        return result.one_or_none()

    async def _create_sequence(self, scope: str, period: str, starting_number: int = 0) -> None:
        """
        Insert the counter for a new period.

        Runs in a savepoint: when a concurrent session inserted the same
        (scope, period) first, the unique constraint fires and we fall back
        to that row.
        """
        try:
            async with self.db.begin_nested():
                self.db.add(DocumentSequence(
                    scope=scope,
                    document_name=DOCUMENT_METADATA[scope]["name"],
                    period=period,
                    current_number=starting_number,
                    padding_length=self.padding,
                    separator=self.separator,
                ))
        except IntegrityError:
            logger.debug("Sequence %s/%s created concurrently", scope, period)
        else:
            logger.info("Created document sequence %s/%s", scope, period)

    async def preview_next_number(
        self,
        scope: Union[str, DocumentScope],
        period: Optional[str] = None
    ) -> str:
        """
        Preview what the next number would be without incrementing.

        Two callers may see the same preview; only next_number reserves.
        """
        scope = self._normalize_scope(scope)
        period = period or self.current_period()

        sequence = await self._get_sequence(scope, period)
        if sequence:
            return sequence.preview_next_number()

        # No sequence exists yet - would be first number
        return format_document_number(scope, period, 1, self.padding, self.separator)

    async def current_number(
        self,
        scope: Union[str, DocumentScope],
        period: Optional[str] = None
    ) -> int:
        """Last used sequence number (0 if no sequence exists)."""
        scope = self._normalize_scope(scope)
        period = period or self.current_period()

        result = await self.db.execute(
            select(DocumentSequence.current_number)
            .where(
                DocumentSequence.scope == scope,
                DocumentSequence.period == period,
                DocumentSequence.is_active.is_(True)
            )
        )
        current = result.scalar_one_or_none()
        return current or 0

    async def initialize_sequence(
        self,
        scope: Union[str, DocumentScope],
        starting_number: int = 0,
        period: Optional[str] = None
    ) -> DocumentSequence:
        """
        Initialize or reset a sequence to a specific number.

        Use this to migrate existing data; the next allocation returns
        ``starting_number + 1``.
        """
        scope = self._normalize_scope(scope)
        if starting_number < 0:
            raise ValidationFailed(
                "Starting number cannot be negative",
                {"starting_number": starting_number}
            )
        period = period or self.current_period()

        sequence = await self._get_sequence(scope, period, active_only=False)
        old_number = sequence.current_number if sequence else None

        if sequence:
            sequence.current_number = starting_number
            sequence.is_active = True
        else:
            sequence = DocumentSequence(
                scope=scope,
                document_name=DOCUMENT_METADATA[scope]["name"],
                period=period,
                current_number=starting_number,
                padding_length=self.padding,
                separator=self.separator,
            )
            self.db.add(sequence)

        self._log_audit(
            scope=scope,
            period=period,
            operation="INITIALIZE",
            old_number=old_number,
            new_number=starting_number,
        )
        await self.db.flush()
        logger.info("Initialized sequence %s/%s at %d", scope, period, starting_number)
        return sequence

    async def _get_sequence(
        self,
        scope: str,
        period: str,
        active_only: bool = True
    ) -> Optional[DocumentSequence]:
        query = select(DocumentSequence).where(
            DocumentSequence.scope == scope,
            DocumentSequence.period == period,
        )
        if active_only:
            query = query.where(DocumentSequence.is_active.is_(True))
        # Counters are bumped with bulk UPDATEs; refresh any cached instance
        result = await self.db.execute(query.execution_options(populate_existing=True))
        return result.scalar_one_or_none()
