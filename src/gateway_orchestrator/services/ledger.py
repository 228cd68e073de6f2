"""Transaction ledger: charge attempts, outcomes and gateway counters.

Guarantees:
- Counters are maintained with database-level increments (x = x + 1),
  never read-modify-write in Python.
- A transaction leaves pending exactly once. The pending -> terminal write is
  conditional on the row still being pending; the first terminal write wins
  and a later, different one is a ConflictError.
- totalRevenue only grows, and only on success.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gateway_orchestrator.errors import ConflictError, NotFoundError, ValidationError
from gateway_orchestrator.models import GatewayTransaction, PaymentGateway, utcnow
from gateway_orchestrator.types import (
    TransactionStateMachine,
    TransactionStatus,
    success_rate,
)

logger = logging.getLogger(__name__)

TIMEOUT_ERROR_CODE = "timeout"
DEFAULT_GRACE = timedelta(minutes=30)

_CURRENCY_RE = re.compile(r"^[A-Za-z]{3}$")
_CENTS = Decimal("0.01")
# Numeric(14, 2)
_MAX_AMOUNT = Decimal("999999999999.99")


@dataclass(frozen=True)
class FinalizeResult:
    """Result of a finalize call.

    Always check ``changed``: False means the transaction already carried the
    requested status and nothing was written (duplicate webhook, retried sweep).
    """

    transaction: GatewayTransaction
    changed: bool


@dataclass(frozen=True)
class GatewayStats:
    """Running statistics for one gateway."""

    total: int
    successful: int
    failed: int
    revenue: Decimal
    success_rate: float
    recent_transactions: list[GatewayTransaction] = field(default_factory=list)


def new_transaction_id() -> str:
    """Merchant reference handed to the provider."""
    return f"txn_{uuid4().hex}"


def parse_amount(amount: Decimal | str | int) -> Decimal:
    """Parse a charge amount, rejecting anything that is not a positive whole cent."""
    try:
        value = Decimal(str(amount))
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid amount: {amount}") from exc
    if not value.is_finite() or value <= 0:
        raise ValidationError("Amount must be positive")
    if value > _MAX_AMOUNT:
        raise ValidationError(f"Amount exceeds {_MAX_AMOUNT}")
    if value != value.quantize(_CENTS):
        raise ValidationError(f"Amount {value} has more than two decimal places")
    return value.quantize(_CENTS)


def _is_duplicate_reference(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    return (
        "gateway_transaction_ref_uq" in message
        or "gateway_transaction.transaction_id" in message
    )


class TransactionLedger:
    """Records charge attempts and outcomes.

    Notes:
    - The ledger never commits; callers own the unit of work.
    - Terminal statuses are write-once (see TransactionStateMachine).
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _gateway_exists(self, gateway_id: UUID) -> bool:
        result = await self.session.execute(
            select(PaymentGateway.id).where(PaymentGateway.id == gateway_id)
        )
        return result.scalar_one_or_none() is not None

    async def _load(self, transaction_id: str, gateway_id: UUID | None) -> GatewayTransaction:
        query = select(GatewayTransaction).where(
            GatewayTransaction.transaction_id == transaction_id
        )
        if gateway_id is not None:
            query = query.where(GatewayTransaction.gateway_id == gateway_id)
        result = await self.session.execute(query.execution_options(populate_existing=True))
        rows = list(result.scalars().all())
        if not rows:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        if len(rows) > 1:
            raise ValidationError(
                f"Transaction {transaction_id} exists on several gateways; gateway_id required"
            )
        return rows[0]

    async def record_attempt(
        self,
        gateway_id: UUID,
        amount: Decimal | str | int,
        currency: str,
        status: TransactionStatus | str = TransactionStatus.PENDING,
        *,
        transaction_id: str | None = None,
        payment_method: str | None = None,
        customer_email: str | None = None,
        customer_name: str | None = None,
        provider_reference: str | None = None,
        error_code: str | None = None,
        error_message: str | None = None,
    ) -> GatewayTransaction:
        """Record a charge attempt and bump the gateway's total.

        A non-pending initial status is finalized immediately, so counters
        and revenue follow the same path as any other outcome.

        Raises:
            ValidationError: amount not a positive whole cent, bad currency or status.
            NotFoundError: unknown gateway.
            ConflictError: transaction_id already recorded on this gateway.
        """
        amount = parse_amount(amount)
        if not currency or not _CURRENCY_RE.match(currency):
            raise ValidationError(f"Invalid currency code: {currency!r}")
        try:
            status = TransactionStatus(status)
        except ValueError as exc:
            raise ValidationError(f"Invalid transaction status: {status}") from exc

        if not await self._gateway_exists(gateway_id):
            raise NotFoundError(f"Gateway {gateway_id} not found")

        transaction_id = transaction_id or new_transaction_id()
        duplicate = await self.session.execute(
            select(GatewayTransaction.id).where(
                GatewayTransaction.gateway_id == gateway_id,
                GatewayTransaction.transaction_id == transaction_id,
            )
        )
        if duplicate.scalar_one_or_none() is not None:
            raise ConflictError(
                f"Transaction {transaction_id} already recorded",
                current=None,
                requested=status.value,
            )

        transaction = GatewayTransaction(
            transaction_id=transaction_id,
            gateway_id=gateway_id,
            provider_reference=provider_reference,
            amount=amount,
            currency=currency.upper(),
            status=TransactionStatus.PENDING,
            payment_method=payment_method,
            customer_email=customer_email,
            customer_name=customer_name,
        )
        self.session.add(transaction)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            if not _is_duplicate_reference(exc):
                raise
            # Lost a race with an identical insert; the caller must roll back.
            raise ConflictError(
                f"Transaction {transaction.transaction_id} already recorded",
                current=None,
                requested=status.value,
            ) from exc

        await self.session.execute(
            update(PaymentGateway)
            .where(PaymentGateway.id == gateway_id)
            .values(
                total_transactions=PaymentGateway.total_transactions + 1,
                version=PaymentGateway.version + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )

        if status is not TransactionStatus.PENDING:
            result = await self.finalize(
                transaction.transaction_id,
                status,
                gateway_id=gateway_id,
                error_code=error_code,
                error_message=error_message,
            )
            return result.transaction
        return transaction

    async def attach_reference(
        self, transaction_id: str, provider_reference: str, *, gateway_id: UUID | None = None
    ) -> GatewayTransaction:
        """Store the provider's id on a transaction that does not have one yet."""
        transaction = await self._load(transaction_id, gateway_id)
        if transaction.provider_reference is None and provider_reference:
            await self.session.execute(
                update(GatewayTransaction)
                .where(
                    GatewayTransaction.id == transaction.id,
                    GatewayTransaction.provider_reference.is_(None),
                )
                .values(provider_reference=provider_reference)
                .execution_options(synchronize_session=False)
            )
            transaction = await self._load(transaction_id, transaction.gateway_id)
        return transaction

    async def finalize(
        self,
        transaction_id: str,
        status: TransactionStatus | str,
        *,
        gateway_id: UUID | None = None,
        error_code: str | None = None,
        error_message: str | None = None,
        provider_reference: str | None = None,
    ) -> FinalizeResult:
        """Move a pending transaction to a terminal status.

        Idempotent: the same terminal status again is a no-op.

        Raises:
            ValidationError: target status is pending or not a status.
            NotFoundError: unknown transaction.
            ConflictError: already finalized with a different status.
        """
        try:
            status = TransactionStatus(status)
        except ValueError as exc:
            raise ValidationError(f"Invalid transaction status: {status}") from exc
        if status is TransactionStatus.PENDING:
            raise ValidationError("Cannot finalize a transaction to pending")

        transaction = await self._load(transaction_id, gateway_id)
        if transaction.status is status:
            return FinalizeResult(transaction=transaction, changed=False)
        if not TransactionStateMachine.can_transition(transaction.status, status):
            raise ConflictError(
                f"Transaction {transaction_id} is already {transaction.status.value}",
                current=transaction.status.value,
                requested=status.value,
            )

        values: dict[str, Any] = {
            "status": status,
            "finalized_at": utcnow(),
            "error_code": error_code,
            "error_message": error_message,
        }
        if provider_reference:
            values["provider_reference"] = provider_reference

        result = await self.session.execute(
            update(GatewayTransaction)
            .where(
                GatewayTransaction.id == transaction.id,
                GatewayTransaction.status == TransactionStatus.PENDING,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            current = await self._load(transaction_id, transaction.gateway_id)
            if current.status is status:
                return FinalizeResult(transaction=current, changed=False)
            raise ConflictError(
                f"Transaction {transaction_id} is already {current.status.value}",
                current=current.status.value,
                requested=status.value,
            )

        counters: dict[str, Any] = {}
        if status is TransactionStatus.SUCCEEDED:
            counters["successful_transactions"] = PaymentGateway.successful_transactions + 1
            counters["total_revenue"] = PaymentGateway.total_revenue + transaction.amount
        elif status is TransactionStatus.FAILED:
            counters["failed_transactions"] = PaymentGateway.failed_transactions + 1

        if counters:
            await self.session.execute(
                update(PaymentGateway)
                .where(PaymentGateway.id == transaction.gateway_id)
                .values(
                    **counters,
                    version=PaymentGateway.version + 1,
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )

        logger.info(
            "Transaction %s finalized as %s%s",
            transaction_id,
            status.value,
            f" ({error_code})" if error_code else "",
        )
        return FinalizeResult(
            transaction=await self._load(transaction_id, transaction.gateway_id),
            changed=True,
        )

    async def success_rate(self, gateway_id: UUID) -> float:
        """Observed success ratio of a gateway; 0.0 before any attempt."""
        result = await self.session.execute(
            select(
                PaymentGateway.successful_transactions,
                PaymentGateway.total_transactions,
            ).where(PaymentGateway.id == gateway_id)
        )
        row = result.one_or_none()
        if row is None:
            raise NotFoundError(f"Gateway {gateway_id} not found")
        return success_rate(row.successful_transactions, row.total_transactions)

    async def expire_stale_pending(
        self,
        grace: timedelta = DEFAULT_GRACE,
        now: datetime | None = None,
    ) -> int:
        """Fail pending transactions older than ``grace``.

        A webhook racing the sweep resolves through finalize(): whichever
        terminal write lands first is kept. Returns how many were expired.
        """
        cutoff = (now or utcnow()) - grace
        result = await self.session.execute(
            select(GatewayTransaction.transaction_id, GatewayTransaction.gateway_id)
            .where(
                GatewayTransaction.status == TransactionStatus.PENDING,
                GatewayTransaction.created_at < cutoff,
            )
            .order_by(GatewayTransaction.created_at)
        )
        stale = result.all()

        expired = 0
        for transaction_id, gateway_id in stale:
            try:
                outcome = await self.finalize(
                    transaction_id,
                    TransactionStatus.FAILED,
                    gateway_id=gateway_id,
                    error_code=TIMEOUT_ERROR_CODE,
                    error_message="No terminal outcome received within the grace period",
                )
            except ConflictError:
                logger.info("Transaction %s finalized concurrently; sweep skipped it", transaction_id)
                continue
            if outcome.changed:
                expired += 1

        if expired:
            logger.warning("Expired %d stale pending transactions", expired)
        return expired

    async def get_transaction(
        self, transaction_id: str, gateway_id: UUID | None = None
    ) -> GatewayTransaction:
        return await self._load(transaction_id, gateway_id)

    async def list_transactions(
        self, gateway_id: UUID | None = None, limit: int = 50
    ) -> list[GatewayTransaction]:
        """Most recent transactions first."""
        if limit < 1:
            raise ValidationError("limit must be at least 1")
        query = select(GatewayTransaction).order_by(
            GatewayTransaction.created_at.desc(), GatewayTransaction.id
        )
        if gateway_id is not None:
            query = query.where(GatewayTransaction.gateway_id == gateway_id)
        result = await self.session.execute(query.limit(limit))
        return list(result.scalars().all())

    async def stats(self, gateway: PaymentGateway, recent: int = 10) -> GatewayStats:
        """Counters, success rate and the most recent transactions of a gateway."""
        return GatewayStats(
            total=gateway.total_transactions,
            successful=gateway.successful_transactions,
            failed=gateway.failed_transactions,
            revenue=gateway.total_revenue,
            success_rate=success_rate(
                gateway.successful_transactions, gateway.total_transactions
            ),
            recent_transactions=await self.list_transactions(gateway.id, limit=recent),
        )
