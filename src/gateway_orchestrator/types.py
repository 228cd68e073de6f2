"""Domain types shared by the registry, selector and ledger."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class Provider(str, Enum):
    """Known payment providers. Closed set: one adapter per member."""

    STRIPE = "stripe"
    PAYPAL = "paypal"
    RAZORPAY = "razorpay"
    CASHFREE = "cashfree"

    @classmethod
    def parse(cls, value: str | Provider) -> Provider | None:
        """Return the provider for ``value`` or None when unknown."""
        if isinstance(value, Provider):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class ConfigStatus(str, Enum):
    """Cached health classification of a provider's credentials."""

    CONFIGURED = "configured"
    NOT_CONFIGURED = "not_configured"
    ERROR = "error"


class TransactionStatus(str, Enum):
    """Gateway transaction status values."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"

    @property
    def is_terminal(self) -> bool:
        return self is not TransactionStatus.PENDING


class TransactionStateMachine:
    """Transaction status transitions.

    Allowed transitions:
    - pending → succeeded
    - pending → failed
    - pending → refunded

    Terminal statuses never change again.
    """

    VALID_TRANSITIONS: dict[TransactionStatus, list[TransactionStatus]] = {
        TransactionStatus.PENDING: [
            TransactionStatus.SUCCEEDED,
            TransactionStatus.FAILED,
            TransactionStatus.REFUNDED,
        ],
        TransactionStatus.SUCCEEDED: [],
        TransactionStatus.FAILED: [],
        TransactionStatus.REFUNDED: [],
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(TransactionStatus(from_status), [])
        return TransactionStatus(to_status) in allowed


def success_rate(successful: int, total: int) -> float:
    """Observed success ratio; 0.0 when nothing has been attempted."""
    if total <= 0:
        return 0.0
    return successful / total


@dataclass(frozen=True)
class GatewaySnapshot:
    """Immutable view of a gateway row, read by the selector."""

    id: UUID
    provider: Provider
    display_name: str
    is_enabled: bool
    is_test_mode: bool
    is_primary: bool
    config_status: ConfigStatus
    supported_currencies: frozenset[str]
    supported_countries: frozenset[str]
    total_transactions: int
    successful_transactions: int
    failed_transactions: int
    total_revenue: Decimal
    created_at: datetime

    @property
    def success_rate(self) -> float:
        return success_rate(self.successful_transactions, self.total_transactions)

    def supports(self, currency: str, country: str | None) -> bool:
        """Currency must be listed; an empty country set means every country."""
        if currency.upper() not in self.supported_currencies:
            return False
        if not self.supported_countries or country is None:
            return True
        return country.upper() in self.supported_countries

    @property
    def is_available(self) -> bool:
        return self.is_enabled and self.config_status is ConfigStatus.CONFIGURED
