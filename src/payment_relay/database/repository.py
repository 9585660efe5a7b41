"""Repository layer for payment persistence operations."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, Any, List

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    PaymentRecord,
    StatusHistory,
    PaymentStatus,
)

logger = logging.getLogger(__name__)


class PaymentRecordRepository:
    """Repository for PaymentRecord operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        conversation_id: str,
        amount: Decimal,
        currency: str,
        paid_price: Optional[Decimal] = None,
        gateway_payment_id: Optional[str] = None,
        gateway_transaction_id: Optional[str] = None,
        raw_response: Optional[Dict[str, Any]] = None,
        status: str = PaymentStatus.PENDING.value,
    ) -> PaymentRecord:
        """Create a new payment record.

        Args:
            conversation_id: Business key shared with the gateway.
            amount: Basket total before VAT.
            currency: Three-letter currency code.
            paid_price: Amount charged including VAT.
            gateway_payment_id: Gateway payment identifier.
            gateway_transaction_id: Gateway transaction identifier of the first item.
            raw_response: Gateway response to keep for debugging.
            status: Initial status.

        Returns:
            Created PaymentRecord instance.
        """
        record = PaymentRecord(
            conversation_id=conversation_id,
            amount=amount,
            paid_price=paid_price,
            currency=currency.upper(),
            gateway_payment_id=gateway_payment_id,
            gateway_transaction_id=gateway_transaction_id,
            status=status,
        )
        if raw_response:
            record.raw_response = raw_response

        self.session.add(record)
        await self.session.flush()

        logger.info(f"Created payment record {conversation_id} with status {status}")
        return record

    async def get_by_conversation_id(self, conversation_id: str) -> Optional[PaymentRecord]:
        result = await self.session.execute(
            select(PaymentRecord).where(PaymentRecord.conversation_id == conversation_id)
        )
        return result.scalar_one_or_none()

    async def set_status(self, conversation_id: str, new_status: str) -> bool:
        """Overwrite the status of one record in a single UPDATE.

        Re-applying the same status is harmless, so redelivered events need
        no special handling.

        Returns:
            True if a record matched, False otherwise.
        """
        result = await self.session.execute(
            update(PaymentRecord)
            .where(PaymentRecord.conversation_id == conversation_id)
            .values(status=new_status, updated_at=datetime.utcnow())
        )
        matched = result.rowcount > 0
        if matched:
            logger.info(f"Set payment record {conversation_id} status to {new_status}")
        return matched


class StatusHistoryRepository:
    """Repository for StatusHistory rows."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        conversation_id: str,
        action: str,
        new_status: Optional[str] = None,
        event_type: Optional[str] = None,
        detail: Optional[Dict[str, Any]] = None,
    ) -> StatusHistory:
        entry = StatusHistory(
            conversation_id=conversation_id,
            action=action,
            new_status=new_status,
            event_type=event_type,
        )
        if detail:
            entry.detail = detail

        self.session.add(entry)
        await self.session.flush()
        return entry

    async def get_by_conversation_id(self, conversation_id: str) -> List[StatusHistory]:
        result = await self.session.execute(
            select(StatusHistory)
            .where(StatusHistory.conversation_id == conversation_id)
            .order_by(StatusHistory.created_at.asc())
        )
        return list(result.scalars().all())
