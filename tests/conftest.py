"""
Shared fixtures for the RetireReady test suite.

All tests evaluate on a fixed date so ages and results are reproducible.
"""

from datetime import date

import pytest

from models import (
    Asset,
    AssetType,
    ClientProfile,
    ComputedMetrics,
    FitCategory,
    IncomeExpenses,
    IncomeSourceProjection,
    PlanningReadiness,
    ProductRecommendation,
    ProductType,
    ProtectionHealth,
    RetirementProjection,
)

AS_OF = date(2025, 1, 15)


def make_projection(**overrides) -> RetirementProjection:
    """Hand-built projection for engines that only read a few fields."""
    sources = overrides.pop("income_sources", None) or IncomeSourceProjection(
        social_security=overrides.pop("social_security", 2000.0),
        pension=overrides.pop("pension", 0.0),
        portfolio_withdrawal=overrides.pop("portfolio_withdrawal", 1500.0),
    )
    fields = dict(
        current_age=40,
        retirement_age=65,
        years_to_retirement=25,
        total_retirement_assets_today=200000.0,
        future_value_existing=858000.0,
        future_value_contributions=0.0,
        total_contributions_future=0.0,
        projected_portfolio_at_retirement=450000.0,
        income_sources=sources,
        monthly_income_projected=sources.total,
        monthly_income_target=5000.0,
        monthly_income_target_today=2388.0,
        monthly_gap=max(0.0, 5000.0 - sources.total),
        gap_percentage=max(0.0, (5000.0 - sources.total) / 5000.0 * 100),
        return_rate=0.06,
        inflation_rate=0.03,
    )
    fields.update(overrides)
    return RetirementProjection(**fields)


def make_recommendation(product: ProductType, fit: FitCategory, **overrides) -> ProductRecommendation:
    fields = dict(
        product=product,
        product_name="Fixed Index Annuity" if product == ProductType.ANNUITY else "Indexed Universal Life",
        fit=fit,
        score=50,
        disqualified=fit == FitCategory.NOT_RECOMMENDED,
    )
    fields.update(overrides)
    return ProductRecommendation(**fields)


@pytest.fixture
def as_of():
    return AS_OF


@pytest.fixture
def profile():
    return ClientProfile(
        dob=date(1985, 1, 15),
        retirement_age=65,
        desired_monthly_income=6000,
        dependents=2,
    )


@pytest.fixture
def income():
    return IncomeExpenses(
        w2_income=10000,
        fixed_expenses=4000,
        variable_expenses=2000,
        employer_match_pct=3,
        annual_retirement_contribution=12000,
        social_security=2500,
    )


@pytest.fixture
def assets():
    return [
        Asset(asset_type=AssetType.RETIREMENT_401K, current_value=150000),
        Asset(asset_type=AssetType.RETIREMENT_ROTH_IRA, current_value=30000),
        Asset(asset_type=AssetType.BROKERAGE_ETF, current_value=40000),
        Asset(asset_type=AssetType.CASH_SAVINGS, current_value=25000),
    ]


@pytest.fixture
def protection():
    return ProtectionHealth(emergency_fund_months=6, term_life_coverage=500000)


@pytest.fixture
def metrics():
    return ComputedMetrics(
        liquidity_runway_months=6,
        protection_gap=150000,
        seq_risk_index=40,
        tax_bucket_now_pct=30,
        tax_bucket_later_pct=55,
        tax_bucket_never_pct=15,
    )


@pytest.fixture
def planning():
    return PlanningReadiness(
        income_stability="stable",
        funding_commitment_years="10-20",
        near_term_liquidity_need="low",
        current_tax_bracket="24",
        behavior_in_down_market="hold",
    )
