"""Tests for domain types and settings parsing."""

from __future__ import annotations

import pytest

from gateway_orchestrator.config import Settings, parse_api_tokens
from gateway_orchestrator.types import (
    Provider,
    TransactionStateMachine,
    TransactionStatus,
    success_rate,
)


class TestTransactionStateMachine:
    """Transaction status transitions."""

    @pytest.mark.parametrize(
        "target",
        [TransactionStatus.SUCCEEDED, TransactionStatus.FAILED, TransactionStatus.REFUNDED],
    )
    def test_pending_can_reach_every_terminal_status(self, target):
        assert TransactionStateMachine.can_transition(TransactionStatus.PENDING, target)

    @pytest.mark.parametrize(
        "source",
        [TransactionStatus.SUCCEEDED, TransactionStatus.FAILED, TransactionStatus.REFUNDED],
    )
    def test_terminal_statuses_are_final(self, source):
        for target in TransactionStatus:
            assert not TransactionStateMachine.can_transition(source, target)

    def test_accepts_plain_strings(self):
        assert TransactionStateMachine.can_transition("pending", "succeeded")
        assert not TransactionStateMachine.can_transition("failed", "succeeded")


class TestProvider:
    """Provider name parsing."""

    def test_parse_is_case_and_space_insensitive(self):
        assert Provider.parse(" Stripe ") is Provider.STRIPE

    def test_unknown_name(self):
        assert Provider.parse("adyen") is None


class TestSuccessRate:
    def test_zero_total(self):
        assert success_rate(0, 0) == 0.0

    def test_ratio(self):
        assert success_rate(9, 10) == pytest.approx(0.9)


class TestSettings:
    """Environment-driven configuration."""

    def test_parse_api_tokens(self):
        tokens = parse_api_tokens("tok1:alice@example.com:admin, tok2:bob:viewer,tok3:carol")

        assert tokens["tok1"].is_admin
        assert tokens["tok2"].role == "viewer"
        assert not tokens["tok2"].is_admin
        assert tokens["tok3"].is_admin

    def test_malformed_token_entry(self):
        with pytest.raises(ValueError):
            parse_api_tokens("just-a-token")

    def test_invalid_adapter_mode(self):
        with pytest.raises(ValueError):
            Settings(database_url="sqlite+aiosqlite://", payment_adapters="mock")

    def test_non_positive_timeout(self):
        with pytest.raises(ValueError):
            Settings(database_url="sqlite+aiosqlite://", probe_timeout_seconds=0)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite://")
        monkeypatch.setenv("PAYMENT_ADAPTERS", "STUB")
        monkeypatch.setenv("PENDING_GRACE_MINUTES", "45")
        monkeypatch.setenv("API_TOKENS", "t:ops:admin")
        monkeypatch.setenv("DEFAULT_PRIMARY_PROVIDER", "")

        settings = Settings.from_env()

        assert settings.payment_adapters == "stub"
        assert settings.pending_grace_minutes == 45
        assert settings.api_tokens["t"].actor == "ops"
        assert settings.default_primary_provider is None
