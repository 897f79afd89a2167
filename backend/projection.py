"""
RetireReady - Projection Engine
===============================
Point-in-time retirement income projection.

Turns a client profile, income snapshot and asset list into projected
portfolio value at retirement, a per-source monthly income breakdown,
the target income and the resulting gap. Pure math - nothing here raises
for missing business data; absent values project as zero.
"""

import logging
from datetime import date
from typing import Iterable, List, Optional

from models import (
    Asset,
    ClientProfile,
    IncomeExpenses,
    IncomeSourceProjection,
    RetirementProjection,
    SpendingTargetMethod,
)
from retirement_assumptions import DEFAULT_ASSUMPTIONS, Assumptions, calculate_age

logger = logging.getLogger(__name__)


# =============================================================================
# COMPOUNDING HELPERS
# =============================================================================

def future_value(present_value: float, annual_rate: float, years: int) -> float:
    """Compound a lump sum forward. Non-positive horizons return the balance unchanged."""
    if years <= 0:
        return present_value
    return present_value * (1 + annual_rate) ** years


def future_value_of_contributions(
    annual_contribution: float,
    annual_rate: float,
    years: int,
    growth_rate_pct: float = 0.0,
) -> float:
    """
    Future value of a growing annual contribution stream.

    The contribution made in year `y` is `annual * (1 + g)^y` and compounds
    for the `years - y - 1` years left before retirement.
    """
    if years <= 0 or annual_contribution <= 0:
        return 0.0

    growth = growth_rate_pct / 100
    total = 0.0
    for year in range(years):
        contribution = annual_contribution * (1 + growth) ** year
        total += contribution * (1 + annual_rate) ** (years - year - 1)
    return total


def total_contributions(annual_contribution: float, years: int, growth_rate_pct: float = 0.0) -> float:
    """Undiscounted sum of the contribution stream."""
    if years <= 0 or annual_contribution <= 0:
        return 0.0
    growth = growth_rate_pct / 100
    return sum(annual_contribution * (1 + growth) ** year for year in range(years))


def adjust_for_inflation(future_amount: float, inflation_rate: float, years: int) -> float:
    """Express a future nominal amount in today's dollars."""
    if years <= 0:
        return future_amount
    return future_amount / (1 + inflation_rate) ** years


def calculate_years_to_retirement(current_age: int, retirement_age: int) -> int:
    return max(0, retirement_age - current_age)


def total_retirement_assets(assets: Iterable[Asset]) -> float:
    return sum(asset.current_value for asset in assets if asset.is_retirement_asset)


# =============================================================================
# PROJECTION ENGINE
# =============================================================================

class ProjectionEngine:
    """
    Projects retirement income for one client snapshot.
    """

    def __init__(self, assumptions: Assumptions = DEFAULT_ASSUMPTIONS, as_of: Optional[date] = None):
        self.assumptions = assumptions
        self.current_date = as_of or date.today()

    def calculate_projection(
        self,
        profile: ClientProfile,
        income: IncomeExpenses,
        assets: List[Asset],
        return_rate: Optional[float] = None,
        inflation_rate: Optional[float] = None,
    ) -> RetirementProjection:
        """
        Build the retirement projection.

        `return_rate` / `inflation_rate` override the base assumptions for
        what-if runs; both are annual decimals.
        """
        rate = self.assumptions.returns.base if return_rate is None else return_rate
        inflation = self.assumptions.inflation.default if inflation_rate is None else inflation_rate

        # Step 1: Timeline
        current_age = calculate_age(profile.dob, self.current_date, self.assumptions)
        retirement_age = profile.retirement_age or self.assumptions.default_retirement_age
        years = calculate_years_to_retirement(current_age, retirement_age)

        # Step 2: Portfolio at retirement
        assets_today = total_retirement_assets(assets)
        fv_existing = future_value(assets_today, rate, years)
        fv_contributions = future_value_of_contributions(
            income.annual_retirement_contribution,
            rate,
            years,
            income.contribution_growth_rate,
        )
        projected_portfolio = fv_existing + fv_contributions

        # Step 3: Income sources at retirement
        income_sources = self._project_income_sources(income, projected_portfolio)
        projected_income = income_sources.total

        # Step 4: Target and gap
        target = self._calculate_target_income(profile, income)
        gap = max(0.0, target - projected_income)
        gap_pct = max(0.0, gap / target * 100) if target > 0 else 0.0

        logger.debug(
            "Projection: age=%s years=%s portfolio=%.0f projected=%.0f target=%.0f gap=%.1f%%",
            current_age, years, projected_portfolio, projected_income, target, gap_pct,
        )

        return RetirementProjection(
            current_age=current_age,
            retirement_age=retirement_age,
            years_to_retirement=years,
            total_retirement_assets_today=round(assets_today, 2),
            future_value_existing=round(fv_existing, 2),
            future_value_contributions=round(fv_contributions, 2),
            total_contributions_future=round(
                total_contributions(
                    income.annual_retirement_contribution, years, income.contribution_growth_rate
                ),
                2,
            ),
            projected_portfolio_at_retirement=round(projected_portfolio, 2),
            income_sources=income_sources,
            monthly_income_projected=round(projected_income, 2),
            monthly_income_target=round(target, 2),
            monthly_income_target_today=round(adjust_for_inflation(target, inflation, years), 2),
            monthly_gap=round(gap, 2),
            gap_percentage=round(gap_pct, 2),
            return_rate=rate,
            inflation_rate=inflation,
        )

    def _project_income_sources(
        self, income: IncomeExpenses, projected_portfolio: float
    ) -> IncomeSourceProjection:
        haircut = self.assumptions.social_security.haircut(income.social_security_confidence)
        portfolio_income = projected_portfolio * self.assumptions.withdrawal.safe / 12

        return IncomeSourceProjection(
            social_security=round(income.social_security * haircut, 2),
            pension=round(income.pension_income, 2),
            annuity=round(income.annuity_income, 2),
            other_guaranteed=round(income.other_guaranteed_income_monthly, 2),
            portfolio_withdrawal=round(portfolio_income, 2),
            part_time=round(income.expected_part_time_income, 2),
        )

    def _calculate_target_income(self, profile: ClientProfile, income: IncomeExpenses) -> float:
        """Monthly target: fixed desired amount or a percent of earned income, times lifestyle."""
        if profile.spending_target_method == SpendingTargetMethod.FIXED:
            base_target = profile.desired_monthly_income
        elif profile.spending_target_method == SpendingTargetMethod.PERCENT:
            base_target = income.earned_monthly_income * profile.spending_percent_of_income / 100
        else:
            raise ValueError(f"Unknown spending target method: {profile.spending_target_method!r}")

        multiplier = self.assumptions.lifestyle_multipliers[profile.retirement_lifestyle]
        return base_target * multiplier
