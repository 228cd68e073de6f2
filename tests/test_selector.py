"""Tests for gateway selection.

Tests verify:
1. Eligibility (enabled, configured, currency, country)
2. Primary preference and explicit provider handling
3. Deterministic fallback by success rate, age and name
4. Scenarios A-C from the checkout walkthrough
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given, settings, strategies as st

from gateway_orchestrator.errors import NoAvailableGatewayError, ValidationError
from gateway_orchestrator.services.selector import GatewaySelector
from gateway_orchestrator.types import ConfigStatus, GatewaySnapshot, Provider

BASE = datetime(2026, 1, 1, tzinfo=timezone.utc)


def snapshot(
    provider: Provider,
    *,
    enabled: bool = True,
    primary: bool = False,
    status: ConfigStatus = ConfigStatus.CONFIGURED,
    currencies: tuple[str, ...] = ("USD",),
    countries: tuple[str, ...] = (),
    total: int = 0,
    successful: int = 0,
    created_minutes: int = 0,
) -> GatewaySnapshot:
    return GatewaySnapshot(
        id=uuid4(),
        provider=provider,
        display_name=provider.value.title(),
        is_enabled=enabled,
        is_test_mode=True,
        is_primary=primary,
        config_status=status,
        supported_currencies=frozenset(currencies),
        supported_countries=frozenset(countries),
        total_transactions=total,
        successful_transactions=successful,
        failed_transactions=total - successful,
        total_revenue=Decimal("0"),
        created_at=BASE + timedelta(minutes=created_minutes),
    )


class TestScenarios:
    """Checkout walkthrough scenarios."""

    def test_scenario_a_primary_selected(self):
        """Enabled, configured primary supporting USD is selected."""
        gateways = [snapshot(Provider.STRIPE, primary=True)]

        chosen = GatewaySelector.select(gateways, "USD", "US")

        assert chosen.provider is Provider.STRIPE

    def test_scenario_b_disabled_primary_falls_back(self):
        """Disabled primary is skipped in favour of an eligible gateway."""
        gateways = [
            snapshot(Provider.STRIPE, primary=True, enabled=False),
            snapshot(Provider.PAYPAL, countries=("US",)),
        ]

        chosen = GatewaySelector.select(gateways, "USD", "US")

        assert chosen.provider is Provider.PAYPAL

    def test_scenario_c_nothing_configured(self):
        """No configured gateway raises NoAvailableGatewayError."""
        gateways = [
            snapshot(Provider.STRIPE, status=ConfigStatus.NOT_CONFIGURED),
            snapshot(Provider.PAYPAL, status=ConfigStatus.ERROR),
        ]

        with pytest.raises(NoAvailableGatewayError) as exc_info:
            GatewaySelector.select(gateways, "USD", "US")

        assert exc_info.value.public_message == "payment temporarily unavailable"

    def test_empty_registry(self):
        """An empty registry never selects anything."""
        with pytest.raises(NoAvailableGatewayError):
            GatewaySelector.select([], "USD", "US")


class TestEligibility:
    """Eligibility filters."""

    def test_currency_must_be_supported(self):
        gateways = [snapshot(Provider.RAZORPAY, primary=True, currencies=("INR",))]

        with pytest.raises(NoAvailableGatewayError):
            GatewaySelector.select(gateways, "EUR", "IN")

    def test_codes_are_case_insensitive(self):
        gateways = [snapshot(Provider.CASHFREE, currencies=("INR",), countries=("IN",))]

        chosen = GatewaySelector.select(gateways, "inr", "in")

        assert chosen.provider is Provider.CASHFREE

    def test_empty_country_set_means_all_countries(self):
        gateways = [snapshot(Provider.STRIPE, countries=())]

        assert GatewaySelector.select(gateways, "USD", "BR").provider is Provider.STRIPE

    def test_country_not_listed_is_ineligible(self):
        gateways = [snapshot(Provider.RAZORPAY, countries=("IN", "US"))]

        with pytest.raises(NoAvailableGatewayError):
            GatewaySelector.select(gateways, "USD", "BR")

    def test_missing_country_skips_country_filter(self):
        gateways = [snapshot(Provider.RAZORPAY, countries=("IN",))]

        assert GatewaySelector.select(gateways, "USD").provider is Provider.RAZORPAY

    def test_missing_currency_is_validation_error(self):
        with pytest.raises(ValidationError):
            GatewaySelector.select([snapshot(Provider.STRIPE)], "", "US")


class TestExplicitProvider:
    """Explicitly requested provider."""

    def test_explicit_eligible_provider_wins_over_primary(self):
        gateways = [
            snapshot(Provider.STRIPE, primary=True),
            snapshot(Provider.PAYPAL),
        ]

        chosen = GatewaySelector.select(gateways, "USD", "US", explicit_provider="paypal")

        assert chosen.provider is Provider.PAYPAL

    def test_explicit_ineligible_provider_does_not_fall_back(self):
        """An ineligible explicit choice fails even if another gateway could take it."""
        gateways = [
            snapshot(Provider.STRIPE, primary=True),
            snapshot(Provider.PAYPAL, enabled=False),
        ]

        with pytest.raises(NoAvailableGatewayError):
            GatewaySelector.select(gateways, "USD", "US", explicit_provider=Provider.PAYPAL)

    def test_unknown_explicit_provider_is_validation_error(self):
        with pytest.raises(ValidationError):
            GatewaySelector.select([snapshot(Provider.STRIPE)], "USD", "US", explicit_provider="adyen")


class TestFallbackOrdering:
    """Ranking when the primary is not eligible."""

    def test_highest_success_rate_wins(self):
        gateways = [
            snapshot(Provider.STRIPE, total=10, successful=5),
            snapshot(Provider.PAYPAL, total=10, successful=9),
            snapshot(Provider.CASHFREE, total=10, successful=7),
        ]

        assert GatewaySelector.select(gateways, "USD", "US").provider is Provider.PAYPAL

    def test_ties_broken_by_earliest_creation(self):
        gateways = [
            snapshot(Provider.STRIPE, created_minutes=5),
            snapshot(Provider.PAYPAL, created_minutes=1),
        ]

        assert GatewaySelector.select(gateways, "USD", "US").provider is Provider.PAYPAL

    def test_full_ties_broken_by_provider_name(self):
        gateways = [
            snapshot(Provider.STRIPE),
            snapshot(Provider.CASHFREE),
            snapshot(Provider.PAYPAL),
        ]

        assert GatewaySelector.select(gateways, "USD", "US").provider is Provider.CASHFREE

    def test_zero_transactions_rank_as_zero_rate(self):
        gateways = [
            snapshot(Provider.STRIPE, total=0, successful=0, created_minutes=0),
            snapshot(Provider.PAYPAL, total=4, successful=1, created_minutes=10),
        ]

        assert GatewaySelector.select(gateways, "USD", "US").provider is Provider.PAYPAL


snapshots_strategy = st.lists(
    st.builds(
        snapshot,
        st.sampled_from(list(Provider)),
        enabled=st.booleans(),
        primary=st.booleans(),
        status=st.sampled_from(list(ConfigStatus)),
        currencies=st.lists(st.sampled_from(["USD", "EUR", "INR"]), max_size=3).map(tuple),
        countries=st.lists(st.sampled_from(["US", "IN", "GB"]), max_size=3).map(tuple),
        total=st.just(10),
        successful=st.integers(min_value=0, max_value=10),
        created_minutes=st.integers(min_value=0, max_value=100),
    ),
    max_size=4,
    unique_by=lambda g: g.provider,
)


class TestSelectorProperties:
    """Properties that hold for any registry snapshot."""

    @given(gateways=snapshots_strategy, currency=st.sampled_from(["USD", "EUR", "INR"]))
    @settings(max_examples=200)
    def test_selected_gateway_is_always_eligible(self, gateways, currency):
        try:
            chosen = GatewaySelector.select(gateways, currency, "US")
        except NoAvailableGatewayError:
            assert GatewaySelector.eligible(gateways, currency, "US") == []
            return

        assert chosen.is_enabled
        assert chosen.config_status is ConfigStatus.CONFIGURED
        assert currency in chosen.supported_currencies
        assert not chosen.supported_countries or "US" in chosen.supported_countries

    @given(gateways=snapshots_strategy)
    @settings(max_examples=200)
    def test_selection_is_deterministic(self, gateways):
        def pick(items):
            try:
                return GatewaySelector.select(items, "USD", "US").id
            except NoAvailableGatewayError:
                return None

        assert pick(gateways) == pick(list(reversed(gateways)))

    @given(gateways=snapshots_strategy)
    @settings(max_examples=200)
    def test_eligible_primary_is_preferred(self, gateways):
        eligible = GatewaySelector.eligible(gateways, "USD", "US")
        primaries = [g for g in eligible if g.is_primary]
        if not primaries:
            return

        chosen = GatewaySelector.select(gateways, "USD", "US")

        assert chosen.is_primary
