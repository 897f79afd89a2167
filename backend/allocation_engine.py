"""
RetireReady - Savings Allocation Waterfall
==========================================
Distributes monthly savings capacity across savings vehicles in a fixed
priority order:

    1. 401(k) to employer match
    2. HSA
    3. Roth IRA (partial or backdoor above the phase-out)
    4. 401(k) beyond the match
    5. Fixed index annuity (only when suitability criteria are met)
    6. Indexed universal life (only when suitability criteria are met)
    7. Taxable brokerage (remainder)

The waterfall is a fold over the ordered step definitions. Each definition
sees the remaining capacity and returns a step spec (or None to skip); the
fold caps every suggestion at what is left.
"""

import logging
from dataclasses import dataclass
from datetime import date
from functools import reduce
from typing import Callable, Dict, List, Optional, Tuple

from models import (
    PROTECTION_VEHICLES,
    TAX_ADVANTAGED_VEHICLES,
    AllocationRecommendation,
    AllocationSources,
    AllocationStep,
    AllocationSummary,
    ClientProfile,
    ComputedMetrics,
    ConcernLevel,
    FitCategory,
    GuardrailResult,
    IncomeExpenses,
    PrimaryRetirementGoal,
    ProductRecommendation,
    ProductType,
    ProtectionHealth,
    RetirementProjection,
    SavingsVehicle,
)
from retirement_assumptions import (
    DEFAULT_ASSUMPTIONS,
    Assumptions,
    calculate_age,
    clamp_score,
    format_currency,
    get_contribution_limit,
)

logger = logging.getLogger(__name__)

# Vehicle fit score by product suitability fit
ANNUITY_FIT_SCORES = {
    FitCategory.STRONG: 80,
    FitCategory.MODERATE: 60,
    FitCategory.EXPLORE: 35,
    FitCategory.NOT_RECOMMENDED: 20,
}
INSURANCE_FIT_SCORES = {
    FitCategory.STRONG: 75,
    FitCategory.MODERATE: 55,
    FitCategory.EXPLORE: 30,
    FitCategory.NOT_RECOMMENDED: 15,
}

GUARDRAIL_HOLD_REASON = "Best-interest guardrails not met"

# Lump-sum sizing rules of thumb
INSURANCE_DB_PER_PREMIUM_DOLLAR = 15
INSURANCE_IDLE_CASH_SHARE = 0.6
INSURANCE_PREMIUM_CAP = 24000
INSURANCE_PREMIUM_MIN = 6000
ANNUITY_PAYOUT_RATE = 0.06
ANNUITY_ROLLOVER_SHARE = 0.4
ANNUITY_PREMIUM_CAP = 200000
ANNUITY_PREMIUM_MIN = 50000


# =============================================================================
# FOLD STATE
# =============================================================================

@dataclass(frozen=True)
class StepSpec:
    """What a step definition proposes before capacity is applied."""
    vehicle: SavingsVehicle
    label: str
    annual_limit: float
    rationale: str
    is_applicable: bool = True
    not_applicable_reason: Optional[str] = None


@dataclass(frozen=True)
class WaterfallState:
    remaining: float
    steps: Tuple[AllocationStep, ...] = ()


@dataclass(frozen=True)
class AllocationContext:
    """Everything the step definitions read. Resolved once per call."""
    profile: ClientProfile
    income: IncomeExpenses
    protection: ProtectionHealth
    metrics: ComputedMetrics
    projection: RetirementProjection
    recommendations: Dict[ProductType, ProductRecommendation]
    guardrails: Optional[GuardrailResult]
    assumptions: Assumptions
    age: int
    annual_income: float

    @property
    def goal(self) -> PrimaryRetirementGoal:
        return self.profile.primary_retirement_goal

    @property
    def match_amount(self) -> float:
        if self.income.employer_match_pct <= 0:
            return 0
        return round(self.annual_income * self.income.employer_match_pct / 100)

    def fit(self, product: ProductType) -> FitCategory:
        recommendation = self.recommendations.get(product)
        return recommendation.fit if recommendation else FitCategory.NOT_RECOMMENDED

    @property
    def guardrail_hold(self) -> Optional[str]:
        """Reason product steps are on hold, or None when guardrails allow them."""
        g = self.guardrails
        if g is None or (g.all_guardrails_pass and not g.education_only):
            return None
        if g.education_reason:
            return g.education_reason
        if g.explicit_rejection_reasons:
            return g.explicit_rejection_reasons[0]
        return GUARDRAIL_HOLD_REASON


StepDefinition = Callable[[AllocationContext, float], Optional[StepSpec]]


def _criteria_reason(failures: List[str]) -> str:
    return "Does not currently meet suitability criteria: " + "; ".join(failures)


# =============================================================================
# STEP DEFINITIONS
# =============================================================================

def employer_match_step(ctx: AllocationContext, remaining: float) -> StepSpec:
    pct = ctx.income.employer_match_pct
    if pct > 0:
        return StepSpec(
            vehicle=SavingsVehicle.K401_MATCH,
            label="401(k) to Employer Match",
            annual_limit=ctx.match_amount,
            rationale=f"Employer matches {pct:g}% - this is free money with 100% instant return",
        )
    return StepSpec(
        vehicle=SavingsVehicle.K401_MATCH,
        label="401(k) to Employer Match",
        annual_limit=0,
        rationale="No employer match available",
        is_applicable=False,
        not_applicable_reason="No employer match available in your plan",
    )


def hsa_step(ctx: AllocationContext, remaining: float) -> StepSpec:
    limit = get_contribution_limit("hsa", ctx.age, ctx.profile.has_family, ctx.assumptions)
    if ctx.income.hsa_eligible:
        return StepSpec(
            vehicle=SavingsVehicle.HSA,
            label="Health Savings Account (HSA)",
            annual_limit=limit,
            rationale="Triple tax advantage: deductible, tax-free growth, tax-free withdrawal for medical",
        )
    return StepSpec(
        vehicle=SavingsVehicle.HSA,
        label="Health Savings Account (HSA)",
        annual_limit=limit,
        rationale="Triple tax advantage account",
        is_applicable=False,
        not_applicable_reason="Requires high-deductible health plan (HDHP) enrollment",
    )


def roth_step(ctx: AllocationContext, remaining: float) -> StepSpec:
    limit = get_contribution_limit("ira", ctx.age, assumptions=ctx.assumptions)
    phase_out = ctx.assumptions.roth_phase_out[ctx.profile.filing_status]

    if ctx.annual_income < phase_out.start:
        return StepSpec(
            vehicle=SavingsVehicle.ROTH_IRA,
            label="Roth IRA",
            annual_limit=limit,
            rationale="Tax-free growth, no RMDs, more flexibility than 401(k)",
        )
    if ctx.annual_income <= phase_out.end:
        return StepSpec(
            vehicle=SavingsVehicle.ROTH_IRA,
            label="Roth IRA (Partial)",
            annual_limit=round(limit * ctx.assumptions.waterfall.partial_roth_fraction),
            rationale="Partial contribution allowed - income in phase-out range",
        )
    return StepSpec(
        vehicle=SavingsVehicle.BACKDOOR_ROTH,
        label="Backdoor Roth IRA",
        annual_limit=limit,
        rationale=(
            f"Income exceeds Roth IRA limit of {format_currency(phase_out.end)} - "
            "convert traditional IRA contributions to Roth for tax-free growth"
        ),
    )


def k401_beyond_match_step(ctx: AllocationContext, remaining: float) -> Optional[StepSpec]:
    additional = max(0, get_contribution_limit("401k", ctx.age, assumptions=ctx.assumptions) - ctx.match_amount)
    if additional <= 0:
        return None
    return StepSpec(
        vehicle=SavingsVehicle.K401_MAX,
        label="401(k) Beyond Match",
        annual_limit=additional,
        rationale="Tax-deferred growth, reduces current taxable income",
    )


def annuity_step(ctx: AllocationContext, remaining: float) -> StepSpec:
    w = ctx.assumptions.waterfall
    fit = ctx.fit(ProductType.ANNUITY)
    gap_pct = ctx.projection.gap_percentage
    has_gap = gap_pct > w.annuity_gap_threshold_pct
    wants_guaranteed = (
        ctx.protection.prefers_guaranteed_income
        or ctx.goal == PrimaryRetirementGoal.SECURE_GUARANTEED_INCOME
    )
    hold = ctx.guardrail_hold

    if hold is None and fit != FitCategory.NOT_RECOMMENDED and wants_guaranteed and has_gap \
            and remaining >= w.min_product_capacity:
        suggestion = min(remaining * w.annuity_share_cap, w.annuity_dollar_cap)
        return StepSpec(
            vehicle=SavingsVehicle.ANNUITY,
            label="Fixed Index Annuity",
            annual_limit=round(suggestion * 12),
            rationale=f"Addresses {round(gap_pct)}% income gap with guaranteed lifetime income",
        )

    if hold is not None:
        reason = hold
    else:
        failures = []
        if not has_gap:
            failures.append("no significant income gap")
        if not wants_guaranteed:
            failures.append("guaranteed income not primary goal")
        if fit == FitCategory.NOT_RECOMMENDED:
            failures.append("product fit analysis indicates poor match")
        if remaining < w.min_product_capacity:
            failures.append(f"remaining savings below {format_currency(w.min_product_capacity)}/month")
        reason = _criteria_reason(failures)

    return StepSpec(
        vehicle=SavingsVehicle.ANNUITY,
        label="Fixed Index Annuity",
        annual_limit=0,
        rationale="Guaranteed lifetime income product",
        is_applicable=False,
        not_applicable_reason=reason,
    )


def insurance_step(ctx: AllocationContext, remaining: float) -> StepSpec:
    w = ctx.assumptions.waterfall
    fit = ctx.fit(ProductType.PERMANENT_INSURANCE)
    never_pct = ctx.metrics.tax_bucket_never_pct
    needs_tax_diversification = never_pct < w.insurance_tax_free_threshold_pct
    has_protection_need = ctx.metrics.protection_gap > w.insurance_protection_gap_threshold
    high_income = ctx.annual_income > w.insurance_income_floor
    can_commit = ctx.protection.can_commit_10yr_contributions
    goal_aligned = (
        ctx.protection.open_to_tax_diversification
        or ctx.goal in (PrimaryRetirementGoal.PROTECT_FAMILY, PrimaryRetirementGoal.MAXIMIZE_TAX_FREE)
    )
    hold = ctx.guardrail_hold

    meets = (
        hold is None
        and fit != FitCategory.NOT_RECOMMENDED
        and can_commit
        and (needs_tax_diversification or has_protection_need)
        and goal_aligned
        and high_income
        and remaining >= w.min_product_capacity
    )
    if meets:
        suggestion = min(remaining * w.insurance_share_cap, w.insurance_dollar_cap)
        protection_text = "protection + " if has_protection_need else ""
        return StepSpec(
            vehicle=SavingsVehicle.PERMANENT_INSURANCE,
            label="Indexed Universal Life (IUL)",
            annual_limit=round(suggestion * 12),
            rationale=(
                f"Provides {protection_text}tax-free retirement income "
                f"(tax-free bucket at {never_pct:g}%)"
            ),
        )

    if hold is not None:
        reason = hold
    else:
        failures = []
        if not high_income:
            failures.append(
                f"income below {format_currency(w.insurance_income_floor)} threshold "
                f"({format_currency(ctx.annual_income)})"
            )
        if not can_commit:
            failures.append("cannot commit to 10+ year contributions")
        if not needs_tax_diversification and not has_protection_need:
            failures.append("tax-free bucket adequate and no protection gap")
        if not goal_aligned:
            failures.append("tax diversification and protection are not stated goals")
        if fit == FitCategory.NOT_RECOMMENDED:
            failures.append("product fit analysis indicates poor match")
        if remaining < w.min_product_capacity:
            failures.append(f"remaining savings below {format_currency(w.min_product_capacity)}/month")
        reason = _criteria_reason(failures)

    return StepSpec(
        vehicle=SavingsVehicle.PERMANENT_INSURANCE,
        label="Indexed Universal Life (IUL)",
        annual_limit=0,
        rationale="Tax-free retirement income + permanent protection",
        is_applicable=False,
        not_applicable_reason=reason,
    )


def taxable_step(ctx: AllocationContext, remaining: float) -> Optional[StepSpec]:
    if remaining <= 0:
        return None
    return StepSpec(
        vehicle=SavingsVehicle.TAXABLE,
        label="Taxable Brokerage Account",
        annual_limit=remaining * 12,
        rationale="Full liquidity, no contribution limits, flexible access before retirement",
    )


WATERFALL_STEPS: Tuple[StepDefinition, ...] = (
    employer_match_step,
    hsa_step,
    roth_step,
    k401_beyond_match_step,
    annuity_step,
    insurance_step,
    taxable_step,
)


# =============================================================================
# VEHICLE FIT
# =============================================================================

def vehicle_fit_score(vehicle: SavingsVehicle, ctx: AllocationContext) -> int:
    goal = ctx.goal
    score = 50

    if vehicle == SavingsVehicle.K401_MATCH:
        return 100
    if vehicle == SavingsVehicle.HSA:
        if goal in (PrimaryRetirementGoal.MAXIMIZE_TAX_FREE, PrimaryRetirementGoal.MINIMIZE_TAXES):
            score += 30
        return min(100, score + 20)
    if vehicle in (SavingsVehicle.ROTH_IRA, SavingsVehicle.BACKDOOR_ROTH):
        if goal == PrimaryRetirementGoal.MAXIMIZE_TAX_FREE:
            score += 25
        if goal == PrimaryRetirementGoal.MINIMIZE_TAXES:
            score += 20
        if ctx.metrics.tax_bucket_never_pct < 20:
            score += 15
        return min(100, score)
    if vehicle == SavingsVehicle.K401_MAX:
        if goal == PrimaryRetirementGoal.MINIMIZE_TAXES:
            score += 20
        if ctx.metrics.tax_bucket_later_pct < 50:
            score += 10
        return min(100, score)
    if vehicle == SavingsVehicle.ANNUITY:
        score = ANNUITY_FIT_SCORES[ctx.fit(ProductType.ANNUITY)]
        if goal == PrimaryRetirementGoal.SECURE_GUARANTEED_INCOME:
            score += 15
        if ctx.protection.prefers_guaranteed_income:
            score += 10
        return min(100, score)
    if vehicle == SavingsVehicle.PERMANENT_INSURANCE:
        score = INSURANCE_FIT_SCORES[ctx.fit(ProductType.PERMANENT_INSURANCE)]
        if goal == PrimaryRetirementGoal.PROTECT_FAMILY:
            score += 15
        if goal == PrimaryRetirementGoal.MAXIMIZE_TAX_FREE and ctx.protection.can_commit_10yr_contributions:
            score += 10
        return min(100, score)
    if vehicle == SavingsVehicle.TAXABLE:
        if ctx.protection.liquidity_need_next_5yr == ConcernLevel.HIGH:
            score += 20
        return min(100, score)
    raise ValueError(f"No fit rule for savings vehicle: {vehicle!r}")


# =============================================================================
# ENGINE
# =============================================================================

class AllocationEngine:
    """
    Product-neutral savings waterfall.
    """

    def __init__(self, assumptions: Assumptions = DEFAULT_ASSUMPTIONS, as_of: Optional[date] = None):
        self.assumptions = assumptions
        self.current_date = as_of or date.today()

    def compute_savings_allocation(
        self,
        profile: ClientProfile,
        income: IncomeExpenses,
        protection: ProtectionHealth,
        metrics: ComputedMetrics,
        projection: RetirementProjection,
        recommendations: List[ProductRecommendation],
        guardrails: Optional[GuardrailResult] = None,
    ) -> AllocationRecommendation:
        ctx = AllocationContext(
            profile=profile,
            income=income,
            protection=protection,
            metrics=metrics,
            projection=projection,
            recommendations={r.product: r for r in recommendations},
            guardrails=guardrails,
            assumptions=self.assumptions,
            age=calculate_age(profile.dob, self.current_date, self.assumptions),
            annual_income=income.total_monthly_income * 12,
        )
        capacity = income.monthly_savings_capacity

        final = reduce(
            lambda state, define: self._apply_step(ctx, state, define),
            WATERFALL_STEPS,
            WaterfallState(remaining=capacity),
        )
        steps = list(final.steps)
        allocated = capacity - final.remaining

        tax_efficiency = self._tax_efficiency_score(steps, allocated)
        risk_balance = self._risk_balance_score(steps, allocated)

        logger.debug(
            "Allocation: capacity=%.2f allocated=%.2f remaining=%.2f tax_eff=%s risk_bal=%s",
            capacity, allocated, final.remaining, tax_efficiency, risk_balance,
        )

        return AllocationRecommendation(
            savings_waterfall=steps,
            monthly_allocation_summary=AllocationSummary(
                total_savings_capacity=round(capacity, 2),
                allocated=round(allocated, 2),
                remaining=round(final.remaining, 2),
            ),
            tax_efficiency_score=tax_efficiency,
            risk_balance_score=risk_balance,
            rationale=self._rationale(ctx, tax_efficiency),
            disclaimers=self._disclaimers(),
        )

    @staticmethod
    def _apply_step(ctx: AllocationContext, state: WaterfallState, define: StepDefinition) -> WaterfallState:
        spec = define(ctx, state.remaining)
        if spec is None:
            return state

        monthly_limit = round(spec.annual_limit / 12)
        suggested = min(monthly_limit, state.remaining) if spec.is_applicable else 0
        suggested = round(max(0, suggested), 2)

        step = AllocationStep(
            priority=len(state.steps) + 1,
            vehicle=spec.vehicle,
            label=spec.label,
            annual_limit=round(spec.annual_limit, 2),
            monthly_limit=monthly_limit,
            suggested_monthly=suggested,
            rationale=spec.rationale,
            fit_score=vehicle_fit_score(spec.vehicle, ctx),
            is_applicable=spec.is_applicable,
            not_applicable_reason=spec.not_applicable_reason,
        )
        logger.debug(
            "Waterfall step %s %s: suggested=%.2f applicable=%s",
            step.priority, step.vehicle.value, suggested, step.is_applicable,
        )
        return WaterfallState(remaining=state.remaining - suggested, steps=state.steps + (step,))

    # =========================================================================
    # SUMMARY METRICS
    # =========================================================================

    @staticmethod
    def _tax_efficiency_score(steps: List[AllocationStep], allocated: float) -> int:
        if allocated <= 0:
            return 0
        advantaged = sum(
            s.suggested_monthly for s in steps
            if s.is_applicable and s.vehicle in TAX_ADVANTAGED_VEHICLES
        )
        return round(clamp_score(advantaged / allocated * 100))

    def _risk_balance_score(self, steps: List[AllocationStep], allocated: float) -> int:
        protection = sum(
            s.suggested_monthly for s in steps
            if s.is_applicable and s.vehicle in PROTECTION_VEHICLES
        )
        ratio = protection / allocated if allocated > 0 else 0
        ideal = self.assumptions.waterfall.ideal_protection_share
        return round(clamp_score(100 - abs(ideal - ratio) * 200))

    @staticmethod
    def _rationale(ctx: AllocationContext, tax_efficiency: int) -> List[str]:
        rationale = []
        if ctx.income.employer_match_pct > 0:
            rationale.append(
                f"Capture full {ctx.income.employer_match_pct:g}% employer match first for guaranteed 100% return"
            )
        if ctx.income.hsa_eligible:
            rationale.append("HSA provides triple tax advantage - prioritized for healthcare and retirement")
        phase_out = ctx.assumptions.roth_phase_out[ctx.profile.filing_status]
        if ctx.annual_income <= phase_out.end:
            rationale.append("Roth IRA provides tax-free growth and more flexibility than traditional accounts")
        if tax_efficiency > 70:
            rationale.append(f"{tax_efficiency}% of savings in tax-advantaged accounts - excellent tax efficiency")
        if ctx.guardrail_hold is not None:
            rationale.append("Insurance and annuity allocations are on hold until best-interest checks are met")
        return rationale

    def _disclaimers(self) -> List[str]:
        return [
            "This allocation is educational and based on general financial planning principles.",
            "Individual circumstances vary. Consult a licensed financial professional before making investment decisions.",
            f"Contribution limits are for {self.assumptions.contribution_year} and may change annually.",
            "Insurance products involve costs, fees, and surrender charges. Review illustrations carefully.",
        ]


# =============================================================================
# ALLOCATION SOURCES
# =============================================================================

def compute_allocation_sources(
    income: IncomeExpenses,
    protection_gap: float,
    income_gap_monthly: float,
    has_guaranteed_income_gap: bool,
    annuity_eligible: bool,
    insurance_eligible: bool,
) -> AllocationSources:
    """
    Lump sums available for product funding beyond the monthly budget.

    Insurance is sized from idle checking cash against the protection gap;
    the annuity is sized from an old 401(k) rollover against the income gap.
    """
    idle_cash = income.monthly_checking_balance
    rollover = income.old_401k_balance if income.has_old_401k else 0.0
    capacity = income.monthly_savings_capacity
    total_available = idle_cash + rollover + capacity * 12

    suggested_insurance = 0.0
    if insurance_eligible and protection_gap > 0 and idle_cash > 0:
        suggested_insurance = min(
            round(protection_gap / INSURANCE_DB_PER_PREMIUM_DOLLAR),
            idle_cash * INSURANCE_IDLE_CASH_SHARE,
            INSURANCE_PREMIUM_CAP,
        )
        if suggested_insurance < INSURANCE_PREMIUM_MIN:
            suggested_insurance = 0.0

    suggested_annuity = 0.0
    if annuity_eligible and has_guaranteed_income_gap and rollover > 0:
        suggested_annuity = min(
            round(income_gap_monthly * 12 / ANNUITY_PAYOUT_RATE),
            rollover * ANNUITY_ROLLOVER_SHARE,
            ANNUITY_PREMIUM_CAP,
        )
        if suggested_annuity < ANNUITY_PREMIUM_MIN:
            suggested_annuity = 0.0

    return AllocationSources(
        idle_checking_cash=idle_cash,
        old_401k_rollover=rollover,
        monthly_savings_capacity=capacity,
        total_available_for_allocation=total_available,
        suggested_insurance_allocation=suggested_insurance,
        suggested_annuity_allocation=suggested_annuity,
    )
