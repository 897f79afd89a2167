"""
RetireReady - Strategy Comparison
=================================
Side-by-side retirement drawdown of two paths:

- Current Path: keep funding the 401(k)/IRA, all income comes from
  taxable portfolio withdrawals.
- Optimized Strategy: redirect part of contributions to indexed universal
  life (tax-free policy loans) and/or move part of the portfolio into a
  fixed index annuity with an income rider (guaranteed floor).

Both paths are simulated year by year from retirement to the planning age
with required minimum distributions and a flat marginal tax rate.
Products that failed suitability are left out of the optimized path.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from models import (
    AdvisorSummary,
    Asset,
    ClientProfile,
    ComparisonMetrics,
    ComputedMetrics,
    ConcernLevel,
    FitCategory,
    IncomeExpenses,
    MarketRiskExposure,
    PlanningReadiness,
    PrimaryRetirementGoal,
    ProductPositioning,
    ProductRecommendation,
    ProductType,
    ProtectionHealth,
    RetirementProjection,
    ScenarioComparison,
    StrategyIncomeSources,
    StrategyPath,
    StrategyProjection,
    TaxBracketEstimate,
    TaxWrapper,
    YearlyProjection,
)
from retirement_assumptions import DEFAULT_ASSUMPTIONS, Assumptions, format_currency

logger = logging.getLogger(__name__)

HIGH_TAX_BRACKETS = (
    TaxBracketEstimate.BRACKET_24,
    TaxBracketEstimate.BRACKET_32,
    TaxBracketEstimate.BRACKET_35_PLUS,
)

LEGACY_AGES = (90, 95)
MAX_TRIGGER_REASONS = 2

DISCLAIMER = (
    "These projections are for educational purposes only and are based on illustrated, "
    "conservative assumptions. They do not constitute financial, tax, or legal advice. "
    "Indexed universal life cash value and policy loans are subject to policy terms and conditions. "
    "Annuity guarantees are backed by the claims-paying ability of the issuing insurance company. "
    "Consult with qualified professionals before making financial decisions."
)


def required_minimum_distribution(balance: float, age: int, start_age: int = 73) -> float:
    """Uniform lifetime table approximation: divisor 27.4 at 72, minus 0.9 a year."""
    if age < start_age or balance <= 0:
        return 0.0
    divisor = max(1.0, 27.4 - (age - 72) * 0.9)
    return balance / divisor


def _wrapper_share(assets: List[Asset], wrapper: TaxWrapper) -> Optional[float]:
    total = sum(asset.current_value for asset in assets)
    if total <= 0:
        return None
    return sum(a.current_value for a in assets if a.tax_wrapper == wrapper) / total


@dataclass
class _Drawdown:
    """Year-by-year outcome of one retirement drawdown."""
    yearly: List[YearlyProjection] = field(default_factory=list)
    lifetime_taxes: float = 0.0
    runs_out_age: Optional[int] = None

    def value_at(self, age: int) -> float:
        for year in self.yearly:
            if year.age == age:
                return year.portfolio_value
        return 0.0


@dataclass
class _ProductPlan:
    """What the optimized path adds, and why."""
    includes_insurance: bool = False
    includes_annuity: bool = False
    insurance_reason: Optional[str] = None
    annuity_reason: Optional[str] = None
    excluded: Dict[ProductType, str] = field(default_factory=dict)


class ScenarioComparisonEngine:
    """
    Compares the Current Path with an Optimized Strategy for one household.
    """

    def __init__(self, assumptions: Assumptions = DEFAULT_ASSUMPTIONS):
        self.assumptions = assumptions
        self.rates = assumptions.scenario_comparison

    def compare(
        self,
        profile: ClientProfile,
        income: IncomeExpenses,
        assets: List[Asset],
        protection: ProtectionHealth,
        planning: PlanningReadiness,
        metrics: ComputedMetrics,
        projection: RetirementProjection,
        recommendations: Optional[List[ProductRecommendation]] = None,
    ) -> ScenarioComparison:
        deferred_share, never_share = self._tax_shares(assets, metrics)

        current = self.simulate_current_path(projection, deferred_share)
        plan = self.select_products(
            profile, income, protection, planning, metrics, projection,
            deferred_share, never_share, recommendations,
        )
        optimized = self.simulate_optimized_strategy(income, projection, deferred_share, plan)
        comparison_metrics = self._comparison_metrics(current, optimized)

        logger.debug(
            "Strategy comparison: insurance=%s annuity=%s income_gain=%.0f tax_savings=%.0f",
            plan.includes_insurance, plan.includes_annuity,
            comparison_metrics.income_improvement_monthly, comparison_metrics.tax_savings_lifetime,
        )

        return ScenarioComparison(
            current_age=projection.current_age,
            retirement_age=projection.retirement_age,
            years_to_retirement=projection.years_to_retirement,
            current_path=current,
            optimized_strategy=optimized,
            comparison_metrics=comparison_metrics,
            includes_insurance=plan.includes_insurance,
            includes_annuity=plan.includes_annuity,
            insurance_reason=plan.insurance_reason,
            annuity_reason=plan.annuity_reason,
            excluded_products=plan.excluded,
            plain_english_summary=self._plain_english_summary(current, optimized, plan),
            product_positioning=self._product_positioning(optimized, plan),
            advisor_summary=self._advisor_summary(plan),
            disclaimer=DISCLAIMER,
        )

    # =========================================================================
    # SIMULATION
    # =========================================================================

    def _tax_shares(self, assets: List[Asset], metrics: ComputedMetrics) -> Tuple[float, float]:
        """Tax-deferred and tax-free shares of assets, from holdings or metrics."""
        deferred = _wrapper_share(assets, TaxWrapper.TAX_LATER)
        never = _wrapper_share(assets, TaxWrapper.TAX_NEVER)
        if deferred is None:
            if metrics.tax_bucket_later_pct > 0:
                deferred = metrics.tax_bucket_later_pct / 100
            else:
                deferred = self.rates.default_tax_deferred_share
        if never is None:
            never = metrics.tax_bucket_never_pct / 100
        return deferred, never

    def _drawdown(
        self,
        retirement_age: int,
        portfolio: float,
        annual_need: float,
        rmd_share: float,
        taxable_share: float,
        other_annual_income: float,
    ) -> _Drawdown:
        """
        Withdraw max(RMD, need) each year, tax the taxable share at the
        default marginal rate, then grow what is left at the base return.
        """
        rate = self.assumptions.tax.marginal_default
        growth = self.assumptions.returns.base
        result = _Drawdown()
        balance = portfolio

        for age in range(retirement_age, self.assumptions.longevity.planning_age + 1):
            rmd = required_minimum_distribution(balance * rmd_share, age, self.rates.rmd_start_age)
            withdrawal = max(rmd, min(annual_need, balance))
            taxes = withdrawal * taxable_share * rate
            result.lifetime_taxes += taxes

            balance -= withdrawal
            if balance > 0:
                balance *= 1 + growth
            elif annual_need > 0 and result.runs_out_age is None:
                result.runs_out_age = age
            balance = max(0.0, balance)

            result.yearly.append(YearlyProjection(
                age=age,
                year=age - retirement_age + 1,
                portfolio_value=balance,
                total_income=other_annual_income + withdrawal - taxes,
                taxes_paid=taxes,
                withdrawal_amount=withdrawal,
            ))

        return result

    def simulate_current_path(self, projection: RetirementProjection, deferred_share: float) -> StrategyProjection:
        """Status quo: every portfolio withdrawal is taxed as ordinary income."""
        sources = projection.income_sources
        guaranteed = sources.guaranteed
        needed = max(0.0, projection.monthly_income_target - guaranteed)
        rate = self.assumptions.tax.marginal_default

        drawdown = self._drawdown(
            projection.retirement_age,
            projection.projected_portfolio_at_retirement,
            needed * 12,
            rmd_share=deferred_share,
            taxable_share=1.0,
            other_annual_income=guaranteed * 12,
        )

        gross = guaranteed + needed
        return StrategyProjection(
            scenario_name=StrategyPath.CURRENT_PATH,
            scenario_description=(
                "Continue current strategy with 401(k)/IRA contributions. "
                "All retirement income comes from taxable withdrawals."
            ),
            retirement_income_gross=gross,
            retirement_income_net=gross - needed * rate,
            lifetime_taxes_paid=drawdown.lifetime_taxes,
            has_guaranteed_income=guaranteed > 0,
            has_tax_free_income=False,
            money_runs_out_age=drawdown.runs_out_age,
            portfolio_at_retirement=projection.projected_portfolio_at_retirement,
            legacy_value_at_90=drawdown.value_at(LEGACY_AGES[0]),
            legacy_value_at_95=drawdown.value_at(LEGACY_AGES[1]),
            market_risk_exposure=MarketRiskExposure.HIGH,
            income_sources=StrategyIncomeSources(
                social_security=sources.social_security,
                pension=sources.pension,
                portfolio_withdrawal=needed,
                part_time=sources.part_time,
            ),
            yearly_projections=drawdown.yearly,
        )

    def select_products(
        self,
        profile: ClientProfile,
        income: IncomeExpenses,
        protection: ProtectionHealth,
        planning: PlanningReadiness,
        metrics: ComputedMetrics,
        projection: RetirementProjection,
        deferred_share: float,
        never_share: float,
        recommendations: Optional[List[ProductRecommendation]] = None,
    ) -> _ProductPlan:
        plan = _ProductPlan()
        unsuitable = {
            rec.product: rec.disqualification_reason or "Does not currently meet suitability criteria."
            for rec in (recommendations or [])
            if rec.fit == FitCategory.NOT_RECOMMENDED
        }

        # Indexed universal life triggers
        insurance_triggers = []
        if deferred_share * 100 > 60:
            insurance_triggers.append("over 60% in tax-deferred accounts")
        if never_share * 100 < 20:
            insurance_triggers.append("under 20% in tax-free vehicles")
        if planning.current_tax_bracket in HIGH_TAX_BRACKETS:
            insurance_triggers.append("high tax bracket")
        if planning.wants_tax_free_bucket:
            insurance_triggers.append("preference for tax-free income")
        if planning.legacy_priority == ConcernLevel.HIGH:
            insurance_triggers.append("legacy priority")
        if metrics.protection_gap > 50000:
            insurance_triggers.append("protection gap")

        if insurance_triggers:
            if ProductType.PERMANENT_INSURANCE in unsuitable:
                plan.excluded[ProductType.PERMANENT_INSURANCE] = unsuitable[ProductType.PERMANENT_INSURANCE]
            else:
                plan.includes_insurance = True
                plan.insurance_reason = "IUL included because: " + ", ".join(
                    insurance_triggers[:MAX_TRIGGER_REASONS]
                )

        # Annuity triggers
        wants_guaranteed = (
            protection.prefers_guaranteed_income
            or profile.primary_retirement_goal == PrimaryRetirementGoal.SECURE_GUARANTEED_INCOME
        )
        has_income_gap = projection.gap_percentage > 15
        near_retirement = projection.years_to_retirement <= 10
        guaranteed = projection.income_sources.social_security + projection.income_sources.pension
        essentials = income.fixed_expenses or projection.monthly_income_target * 0.6
        coverage = guaranteed / essentials if essentials > 0 else 1.0

        annuity_triggers = []
        if wants_guaranteed:
            annuity_triggers.append("prefers guaranteed income")
        if has_income_gap:
            annuity_triggers.append(f"{round(projection.gap_percentage)}% income gap")
        if planning.sequence_risk_concern == ConcernLevel.HIGH:
            annuity_triggers.append("high sequence risk concern")
        if coverage < 0.7:
            annuity_triggers.append("low guaranteed income coverage")

        qualifies = (
            wants_guaranteed
            or (has_income_gap and near_retirement)
            or planning.sequence_risk_concern == ConcernLevel.HIGH
            or coverage < 0.7
        )
        if qualifies:
            if ProductType.ANNUITY in unsuitable:
                plan.excluded[ProductType.ANNUITY] = unsuitable[ProductType.ANNUITY]
            else:
                plan.includes_annuity = True
                plan.annuity_reason = "Annuity included because: " + ", ".join(
                    annuity_triggers[:MAX_TRIGGER_REASONS]
                )

        return plan

    def simulate_optimized_strategy(
        self,
        income: IncomeExpenses,
        projection: RetirementProjection,
        deferred_share: float,
        plan: _ProductPlan,
    ) -> StrategyProjection:
        rates = self.rates
        years = projection.years_to_retirement
        growth = self.assumptions.returns.base
        tax_rate = self.assumptions.tax.marginal_default
        sources = projection.income_sources
        portfolio = projection.projected_portfolio_at_retirement

        # Indexed universal life funded from redirected contributions
        premium = cash_value = tax_free_monthly = death_benefit = 0.0
        if plan.includes_insurance:
            premium = income.annual_retirement_contribution * rates.insurance_allocation_pct / 100
            for _ in range(years):
                cash_value = (cash_value + premium) * (1 + rates.insurance_illustrated_rate)
            if years > 0:
                tax_free_monthly = cash_value * rates.insurance_loanable_share / rates.insurance_loan_years / 12
                death_benefit = max(premium * rates.death_benefit_multiple * years / 10, cash_value * 1.5)
            # Redirected premiums no longer compound in the portfolio
            if growth > 0:
                portfolio -= premium * ((1 + growth) ** years - 1) / growth
            else:
                portfolio -= premium * years

        # Annuity bought with part of the portfolio at retirement
        annuity_premium = annuity_monthly = 0.0
        if plan.includes_annuity:
            annuity_premium = projection.projected_portfolio_at_retirement * rates.annuity_allocation_pct / 100
            benefit_base = annuity_premium * (1 + rates.annuity_rider_rate) ** min(years, rates.annuity_rider_years_cap)
            annuity_monthly = benefit_base * rates.annuity_payout_rate / 12
            portfolio -= annuity_premium

        portfolio = max(0.0, portfolio)
        guaranteed = sources.guaranteed + annuity_monthly
        needed = max(0.0, projection.monthly_income_target - guaranteed - tax_free_monthly)
        taxable_share = deferred_share * 0.85 if plan.includes_insurance else deferred_share

        drawdown = self._drawdown(
            projection.retirement_age,
            portfolio,
            needed * 12,
            rmd_share=taxable_share,
            taxable_share=taxable_share,
            other_annual_income=(guaranteed + tax_free_monthly) * 12,
        )

        gross = guaranteed + tax_free_monthly + needed
        if plan.includes_insurance and plan.includes_annuity:
            risk = MarketRiskExposure.LOW
        elif plan.includes_insurance or plan.includes_annuity:
            risk = MarketRiskExposure.MODERATE
        else:
            risk = MarketRiskExposure.HIGH

        return StrategyProjection(
            scenario_name=StrategyPath.OPTIMIZED_STRATEGY,
            scenario_description=self._optimized_description(plan),
            retirement_income_gross=gross,
            retirement_income_net=gross - needed * taxable_share * tax_rate,
            lifetime_taxes_paid=drawdown.lifetime_taxes,
            has_guaranteed_income=annuity_monthly > 0,
            has_tax_free_income=plan.includes_insurance,
            money_runs_out_age=drawdown.runs_out_age,
            portfolio_at_retirement=portfolio,
            legacy_value_at_90=drawdown.value_at(LEGACY_AGES[0]) + death_benefit,
            legacy_value_at_95=drawdown.value_at(LEGACY_AGES[1]) + death_benefit,
            market_risk_exposure=risk,
            insurance_allocation_pct=rates.insurance_allocation_pct if plan.includes_insurance else None,
            insurance_annual_premium=premium if plan.includes_insurance else None,
            insurance_projected_cash_value=cash_value if plan.includes_insurance else None,
            insurance_tax_free_income=tax_free_monthly if plan.includes_insurance else None,
            insurance_death_benefit=death_benefit if plan.includes_insurance else None,
            annuity_allocation_pct=rates.annuity_allocation_pct if plan.includes_annuity else None,
            annuity_premium=annuity_premium if plan.includes_annuity else None,
            annuity_guaranteed_income=annuity_monthly if plan.includes_annuity else None,
            income_sources=StrategyIncomeSources(
                social_security=sources.social_security,
                pension=sources.pension,
                portfolio_withdrawal=needed,
                insurance_loans=tax_free_monthly,
                annuity_income=annuity_monthly,
                part_time=sources.part_time,
            ),
            yearly_projections=drawdown.yearly,
        )

    def _comparison_metrics(self, current: StrategyProjection, optimized: StrategyProjection) -> ComparisonMetrics:
        planning_age = self.assumptions.longevity.planning_age
        income_gain = optimized.retirement_income_net - current.retirement_income_net
        income_gain_pct = income_gain / current.retirement_income_net * 100 if current.retirement_income_net > 0 else 0.0
        longevity_gain = (optimized.money_runs_out_age or planning_age) - (current.money_runs_out_age or planning_age)

        risk_order = [MarketRiskExposure.LOW, MarketRiskExposure.MODERATE, MarketRiskExposure.HIGH]
        return ComparisonMetrics(
            income_improvement_percent=max(0.0, income_gain_pct),
            income_improvement_monthly=max(0.0, income_gain),
            tax_savings_lifetime=max(0.0, current.lifetime_taxes_paid - optimized.lifetime_taxes_paid),
            longevity_improvement_years=max(0, longevity_gain),
            legacy_improvement_amount=max(0.0, optimized.legacy_value_at_90 - current.legacy_value_at_90),
            market_risk_reduction=(
                risk_order.index(optimized.market_risk_exposure) < risk_order.index(current.market_risk_exposure)
            ),
        )

    # =========================================================================
    # NARRATIVE
    # =========================================================================

    @staticmethod
    def _optimized_description(plan: _ProductPlan) -> str:
        if plan.includes_insurance and plan.includes_annuity:
            return "Tax-efficient strategy with IUL for tax-free income and an FIA for a guaranteed income floor."
        if plan.includes_insurance:
            return "Tax-efficient strategy introducing IUL for tax-free retirement income and legacy."
        if plan.includes_annuity:
            return "Income-focused strategy with an FIA for guaranteed lifetime income."
        return "Optimized allocation with improved tax diversification."

    @staticmethod
    def _plain_english_summary(
        current: StrategyProjection,
        optimized: StrategyProjection,
        plan: _ProductPlan,
    ) -> str:
        parts = [
            "If you continue with your current strategy, your retirement income is highly dependent "
            "on market performance and taxable withdrawals."
        ]

        income_gain = optimized.retirement_income_net - current.retirement_income_net
        tax_savings = current.lifetime_taxes_paid - optimized.lifetime_taxes_paid
        if income_gain > 0:
            parts.append(
                f"The optimized strategy could provide approximately {format_currency(income_gain)} "
                "more per month in net retirement income."
            )
        if tax_savings > 100000:
            parts.append(
                "Over your retirement, this approach may reduce your lifetime tax burden by "
                f"approximately {format_currency(tax_savings)}."
            )

        if plan.includes_insurance and plan.includes_annuity:
            parts.append(
                "A tax-free income bucket through IUL and guaranteed income through an annuity make "
                "retirement income more predictable and less exposed to weak markets."
            )
        elif plan.includes_insurance:
            parts.append(
                "A tax-free income bucket through IUL reduces future tax exposure and creates an income "
                "stream that is not fully dependent on market returns."
            )
        elif plan.includes_annuity:
            parts.append(
                "Guaranteed income through a fixed index annuity creates an income floor that cannot be "
                "outlived, reducing the risk of running out of money."
            )

        if optimized.legacy_value_at_90 > current.legacy_value_at_90 * 1.2:
            parts.append("Additionally, the optimized strategy may leave a larger legacy for your heirs.")

        return " ".join(parts)

    @staticmethod
    def _product_positioning(optimized: StrategyProjection, plan: _ProductPlan) -> ProductPositioning:
        insurance_text = None
        annuity_text = None

        if plan.includes_insurance:
            insurance_text = (
                "This strategy introduces a tax-free income asset to reduce future tax risk. "
                "The IUL component provides:\n"
                "• Tax-deferred growth with downside protection\n"
                "• Tax-free policy loans in retirement (no RMDs)\n"
                f"• Projected monthly tax-free income of {format_currency(optimized.insurance_tax_free_income or 0)}\n"
                "• Income-tax-free death benefit of approximately "
                f"{format_currency(optimized.insurance_death_benefit or 0)} for legacy\n\n"
                "This is not a recommendation to buy IUL. It shows how tax diversification may "
                "change your retirement outcomes."
            )

        if plan.includes_annuity:
            annuity_text = (
                "This strategy introduces a guaranteed income floor to hedge longevity risk. "
                "The Fixed Index Annuity component provides:\n"
                "• Guaranteed lifetime income that cannot be outlived\n"
                f"• Projected monthly guaranteed income of {format_currency(optimized.annuity_guaranteed_income or 0)}\n"
                "• Protection against market downturns in early retirement (sequence risk)\n\n"
                "This is scenario modeling, not product advice. Consult a licensed professional "
                "to discuss suitability."
            )

        return ProductPositioning(insurance_explanation=insurance_text, annuity_explanation=annuity_text)

    @staticmethod
    def _advisor_summary(plan: _ProductPlan) -> AdvisorSummary:
        objections = []
        focus = []

        if plan.includes_insurance:
            objections.extend([
                "IUL fees are too high - show net illustrated returns after costs",
                "I don't trust insurance products - emphasize tax code benefits, not product features",
                "I want liquidity - explain the 10-15 year accumulation before loans are available",
            ])
            focus.extend([
                "Tax diversification: show the current tax bucket imbalance",
                "Compare illustrated IUL income to an equivalent taxable portfolio withdrawal",
            ])

        if plan.includes_annuity:
            objections.extend([
                "I lose control of my money - explain the 10% annual free withdrawal and income rider",
                "Annuity returns are low - compare to bond allocation risk-adjusted returns",
                "I might die early - discuss joint-life options and return of premium riders",
            ])
            focus.extend([
                "Essential expenses: show the gap between guaranteed income and fixed costs",
                "Sequence risk: illustrate a 2008-style scenario on the withdrawal strategy",
            ])

        if not plan.includes_insurance and not plan.includes_annuity:
            focus.extend([
                "Current strategy appears adequate - discuss monitoring and adjustment triggers",
                "Revisit when closer to retirement or if circumstances change",
            ])

        return AdvisorSummary(
            insurance_included_reason=plan.insurance_reason,
            annuity_included_reason=plan.annuity_reason,
            client_objections=objections,
            conversation_focus=focus,
        )
