"""
RetireReady - Permanent Insurance Suitability
=============================================
Fit analysis for indexed universal life (permanent coverage with cash value).

Starts from a neutral 50 and moves with cashflow, commitment, tax and
protection signals. Any disqualifier caps the score and forces the
lowest fit category.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Tuple

from models import (
    CheckImportance,
    CheckStatus,
    ClientProfile,
    ComputedMetrics,
    ConcernLevel,
    FitCategory,
    FundingCommitment,
    IncomeExpenses,
    IncomeStability,
    MaxingQualifiedPlans,
    PlanningReadiness,
    PreconditionCheck,
    PrimaryRetirementGoal,
    ProductRecommendation,
    ProductType,
    ProtectionHealth,
    TaxBracketEstimate,
)
from retirement_assumptions import DEFAULT_ASSUMPTIONS, Assumptions, clamp_score

logger = logging.getLogger(__name__)

PRODUCT_NAME = "Indexed Universal Life"

MAX_REASONS = 6
MAX_FRICTION = 5
MAX_NOT_IF = 6
MAX_FIX_FIRST = 4
MAX_NEXT_STEPS = 5

HIGH_TAX_BRACKETS = (
    TaxBracketEstimate.BRACKET_24,
    TaxBracketEstimate.BRACKET_32,
    TaxBracketEstimate.BRACKET_35_PLUS,
)

DISCLAIMER = (
    "IUL policies are complex financial instruments. Policy loans and withdrawals reduce "
    "cash value and death benefit. This analysis is educational - consult a licensed "
    "financial professional before making decisions."
)


@dataclass
class _Evaluation:
    score: float
    reasons: List[str] = field(default_factory=list)
    friction: List[str] = field(default_factory=list)
    disqualifiers: List[Tuple[float, str]] = field(default_factory=list)

    def add(self, points: float, reason: str):
        self.score += points
        self.reasons.append(reason)

    def subtract(self, points: float, reason: str):
        self.score -= points
        self.friction.append(reason)

    def disqualify(self, ceiling: float, reason: str):
        self.disqualifiers.append((ceiling, reason))

    @property
    def disqualified(self) -> bool:
        return bool(self.disqualifiers)


class InsuranceSuitabilityEngine:
    """
    Evaluates whether permanent life insurance with cash value fits the household.
    """

    def __init__(self, assumptions: Assumptions = DEFAULT_ASSUMPTIONS):
        self.assumptions = assumptions
        self.thresholds = assumptions.insurance_suitability

    def evaluate(
        self,
        profile: ClientProfile,
        income: IncomeExpenses,
        protection: ProtectionHealth,
        planning: PlanningReadiness,
        metrics: ComputedMetrics,
        years_to_retirement: int,
    ) -> ProductRecommendation:
        emergency_months = protection.emergency_fund_months
        annual_income = income.earned_monthly_income * 12
        expense_ratio = self._expense_ratio(income)
        has_match = income.employer_match_pct > 0

        ev = _Evaluation(score=self.thresholds.base_score)
        self._apply_disqualifiers(ev, planning, emergency_months, has_match, expense_ratio)
        if not ev.disqualified:
            self._apply_signals(
                ev, profile, income, planning, metrics, emergency_months, annual_income, expense_ratio
            )

        score = clamp_score(ev.score)
        disqualification_reason = None
        if ev.disqualified:
            score = min([score] + [ceiling for ceiling, _ in ev.disqualifiers])
            disqualification_reason = " ".join(reason for _, reason in ev.disqualifiers)
        score = round(score)

        fit = self._fit_category(score, ev.disqualified)

        if not ev.reasons and not ev.disqualified and years_to_retirement >= 15:
            ev.reasons.append("Your long time horizon allows cash value to compound effectively.")

        logger.debug(
            "Insurance suitability: score=%s fit=%s disqualifiers=%s",
            score, fit.value, len(ev.disqualifiers),
        )

        return ProductRecommendation(
            product=ProductType.PERMANENT_INSURANCE,
            product_name=PRODUCT_NAME,
            fit=fit,
            score=score,
            strategy=None,
            reasons=ev.reasons[:MAX_REASONS],
            friction=ev.friction[:MAX_FRICTION],
            not_if=self._not_if(emergency_months, annual_income, expense_ratio, income)[:MAX_NOT_IF],
            fix_first=self._fix_first(planning, emergency_months, has_match)[:MAX_FIX_FIRST],
            next_steps=self._next_steps(fit, planning, emergency_months, has_match)[:MAX_NEXT_STEPS],
            preconditions=self._preconditions(planning, emergency_months, has_match, expense_ratio),
            disqualified=ev.disqualified,
            disqualification_reason=disqualification_reason,
            disclaimer=DISCLAIMER,
        )

    # =========================================================================
    # RULES
    # =========================================================================

    @staticmethod
    def _expense_ratio(income: IncomeExpenses) -> float:
        """Share of earned income spent each month; 1.0 when nothing is earned."""
        earned = income.earned_monthly_income
        if earned <= 0:
            return 1.0
        return (income.fixed_expenses + income.variable_expenses) / earned

    def _apply_disqualifiers(
        self,
        ev: _Evaluation,
        planning: PlanningReadiness,
        emergency_months: float,
        has_match: bool,
        expense_ratio: float,
    ):
        if planning.income_stability == IncomeStability.UNSTABLE:
            ev.disqualify(15, "Unstable income makes consistent premium funding risky. Focus on income stabilization first.")

        if planning.liquidity_need == ConcernLevel.HIGH:
            ev.disqualify(20, "Expected major expenses in the next few years conflict with the policy's long-term structure.")

        if emergency_months < self.thresholds.min_emergency_months:
            ev.disqualify(20, "Build an emergency fund of at least 3-6 months before committing to premiums.")

        if planning.commitment == FundingCommitment.YEARS_3_5:
            ev.disqualify(15, "Permanent coverage needs 10+ years of consistent funding. A 3-5 year horizon is too short.")

        if planning.debt_pressure_level == ConcernLevel.HIGH and emergency_months < 6:
            ev.disqualify(20, "High debt pressure combined with an inadequate emergency fund. Address debt and savings first.")

        if has_match and not planning.contributing_to_401k_match:
            ev.disqualify(25, "You're missing free money - capture your full employer match first.")

        if expense_ratio > self.thresholds.max_expense_ratio:
            ev.disqualify(
                20,
                f"Your expenses consume {round(expense_ratio * 100)}% of income. "
                "Build more savings margin before committing to premiums.",
            )

    @staticmethod
    def _apply_signals(
        ev: _Evaluation,
        profile: ClientProfile,
        income: IncomeExpenses,
        planning: PlanningReadiness,
        metrics: ComputedMetrics,
        emergency_months: float,
        annual_income: float,
        expense_ratio: float,
    ):
        if planning.income_stability == IncomeStability.STABLE:
            ev.add(15, "Your stable income supports consistent premium payments - a key requirement for success.")

        if emergency_months >= 6:
            ev.add(10, f"With {emergency_months:g} months of emergency reserves, you have a solid foundation for premium commitments.")
        elif emergency_months >= 3:
            ev.add(3, "Emergency reserves meet the minimum for premium commitments.")

        if planning.liquidity_need == ConcernLevel.LOW:
            ev.add(10, "No major near-term expenses expected, allowing cash value to grow uninterrupted.")

        commitment = planning.commitment
        if commitment in (FundingCommitment.YEARS_10_20, FundingCommitment.YEARS_20_PLUS):
            ev.add(15, f"Your {commitment.value} year funding commitment aligns with the optimal accumulation period.")
        elif commitment == FundingCommitment.YEARS_5_10:
            ev.add(5, "A 5-10 year funding commitment is workable, though longer is better.")

        if planning.funding_discipline == ConcernLevel.HIGH:
            ev.add(10, "High funding discipline is crucial - these policies reward consistent contributions.")
        elif planning.funding_discipline == ConcernLevel.MEDIUM:
            ev.add(5, "Moderate funding discipline can support a properly structured policy.")
        else:
            ev.subtract(10, "Low funding discipline raises the risk of lapse.")

        if planning.current_tax_bracket in HIGH_TAX_BRACKETS or planning.tax_concern_level == ConcernLevel.HIGH:
            ev.add(10, "Your tax situation makes tax-free retirement income more valuable.")

        if planning.wants_tax_free_bucket:
            ev.add(10, "You value tax-free income options - cash value can be accessed tax-free via policy loans.")

        if metrics.tax_bucket_never_pct < 15:
            ev.add(10, f"Only {round(metrics.tax_bucket_never_pct)}% of assets are in tax-free vehicles. This improves tax diversification.")

        if planning.sequence_risk_concern == ConcernLevel.HIGH:
            ev.add(5, "Index floor protection can buffer sequence-of-returns risk in early retirement.")

        if planning.permanent_coverage_need:
            ev.add(10, "Your need for permanent coverage aligns with the policy's death benefit structure.")
        elif planning.legacy_priority == ConcernLevel.HIGH:
            ev.add(10, "Your legacy goals can be supported by an income-tax-free death benefit.")

        if annual_income >= 200000:
            ev.add(10, "Your income level ($200K+) supports optimal funding and maximizes tax advantages.")
        elif annual_income >= 150000:
            ev.add(5, "Your income level supports proper funding for meaningful accumulation.")
        elif annual_income < 100000:
            ev.subtract(5, "At this income level, 401(k), Roth IRA and HSA usually come first.")

        if profile.dependents > 0:
            ev.add(5, f"{profile.dependents} dependent(s) benefit from permanent family protection.")

        if expense_ratio > 0:
            if expense_ratio < 0.6:
                ev.add(10, f"Your expense ratio of {round(expense_ratio * 100)}% leaves substantial room for premium commitments.")
            elif expense_ratio < 0.7:
                ev.add(5, f"With a {round(expense_ratio * 100)}% expense-to-income ratio, you have adequate capacity for premiums.")
            elif expense_ratio >= 0.8:
                ev.subtract(5, f"A {round(expense_ratio * 100)}% expense ratio leaves little room for premiums.")

        total_expenses = income.fixed_expenses + income.variable_expenses
        if total_expenses > 0 and profile.dependents > 0:
            fixed_ratio = income.fixed_expenses / total_expenses
            if fixed_ratio > 0.7:
                ev.add(5, f"{round(fixed_ratio * 100)}% of expenses are essential fixed costs - permanent coverage protects the family.")

        if income.monthly_savings_capacity > 1000:
            ev.add(5, "Monthly savings capacity supports consistent premiums.")

        if planning.maxing_qualified_plans == MaxingQualifiedPlans.NO:
            ev.subtract(5, "Qualified plans are not yet being funded - they usually come first.")

        if profile.primary_retirement_goal == PrimaryRetirementGoal.PROTECT_FAMILY:
            ev.add(5, "Protecting your family is your primary goal.")

    def _fit_category(self, score: float, disqualified: bool) -> FitCategory:
        if disqualified:
            return FitCategory.NOT_RECOMMENDED
        if score >= self.thresholds.strong_threshold:
            return FitCategory.STRONG
        if score >= self.thresholds.moderate_threshold:
            return FitCategory.MODERATE
        if score >= self.thresholds.explore_threshold:
            return FitCategory.EXPLORE
        return FitCategory.NOT_RECOMMENDED

    # =========================================================================
    # TEXT
    # =========================================================================

    @staticmethod
    def _preconditions(
        planning: PlanningReadiness,
        emergency_months: float,
        has_match: bool,
        expense_ratio: float,
    ) -> List[PreconditionCheck]:
        stability_status = {
            IncomeStability.STABLE: CheckStatus.PASS,
            IncomeStability.SOMEWHAT_STABLE: CheckStatus.WARNING,
            IncomeStability.UNSTABLE: CheckStatus.FAIL,
        }[planning.income_stability]

        if emergency_months >= 6:
            emergency_status = CheckStatus.PASS
        elif emergency_months >= 3:
            emergency_status = CheckStatus.WARNING
        else:
            emergency_status = CheckStatus.FAIL

        commitment = planning.commitment
        if commitment in (FundingCommitment.YEARS_10_20, FundingCommitment.YEARS_20_PLUS):
            commitment_status = CheckStatus.PASS
        elif commitment == FundingCommitment.YEARS_5_10:
            commitment_status = CheckStatus.WARNING
        else:
            commitment_status = CheckStatus.FAIL

        if not has_match:
            match_status = CheckStatus.PASS
            match_value = "No employer match"
        elif planning.contributing_to_401k_match:
            match_status = CheckStatus.PASS
            match_value = "Capturing match"
        else:
            match_status = CheckStatus.FAIL
            match_value = "Match not captured"

        if expense_ratio <= 0.7:
            expense_status = CheckStatus.PASS
        elif expense_ratio <= 0.85:
            expense_status = CheckStatus.WARNING
        else:
            expense_status = CheckStatus.FAIL

        return [
            PreconditionCheck(
                check_id="income_stability",
                label="Stable Income",
                status=stability_status,
                value=planning.income_stability.value,
                importance=CheckImportance.CRITICAL,
            ),
            PreconditionCheck(
                check_id="emergency_fund",
                label="Emergency Fund (6+ months)",
                status=emergency_status,
                value=f"{emergency_months:g} months",
                importance=CheckImportance.CRITICAL,
            ),
            PreconditionCheck(
                check_id="funding_commitment",
                label="10+ Year Funding Commitment",
                status=commitment_status,
                value=f"{commitment.value} years",
                importance=CheckImportance.CRITICAL,
            ),
            PreconditionCheck(
                check_id="employer_match",
                label="Employer Match Captured",
                status=match_status,
                value=match_value,
                importance=CheckImportance.IMPORTANT,
            ),
            PreconditionCheck(
                check_id="expense_ratio",
                label="Expense-to-Income Ratio",
                status=expense_status,
                value=f"{round(expense_ratio * 100)}%",
                importance=CheckImportance.IMPORTANT,
            ),
        ]

    @staticmethod
    def _not_if(
        emergency_months: float,
        annual_income: float,
        expense_ratio: float,
        income: IncomeExpenses,
    ) -> List[str]:
        items = [
            "Not ideal if you may need this money in the next 5-7 years - early access can reduce policy efficiency.",
            "Not recommended if funding could be inconsistent; interruptions can trigger policy lapse or MEC status.",
        ]
        if emergency_months < 6:
            items.append("If emergency reserves are below 6 months, prioritize savings before committing to premiums.")
        if annual_income < 100000:
            items.append("At income levels below $100K, maximizing 401(k), Roth IRA, and HSA may provide better returns.")
        if 0.7 <= expense_ratio <= 0.85:
            items.append(
                f"Your {round(expense_ratio * 100)}% expense ratio is borderline - ensure you can maintain premiums through income fluctuations."
            )
        if income.monthly_savings_capacity < 500:
            items.append("Limited monthly savings capacity may make consistent premium payments challenging.")
        items.append('This is not a "set it and forget it" product - annual policy reviews are essential.')
        items.append("Policy loans, if not managed properly, can cause the policy to lapse and trigger taxes.")
        return items

    @staticmethod
    def _fix_first(planning: PlanningReadiness, emergency_months: float, has_match: bool) -> List[str]:
        items = []
        if emergency_months < 3:
            items.append(f"Build emergency fund from {emergency_months:g} to 6+ months of expenses")
        if has_match and not planning.contributing_to_401k_match:
            items.append("Contribute enough to your 401(k) to capture the full employer match")
        if planning.debt_pressure_level == ConcernLevel.HIGH:
            items.append("Create a paydown plan for high-interest debt")
        if planning.income_stability == IncomeStability.UNSTABLE:
            items.append("Stabilize income before taking on fixed premium commitments")
        return items

    @staticmethod
    def _next_steps(
        fit: FitCategory,
        planning: PlanningReadiness,
        emergency_months: float,
        has_match: bool,
    ) -> List[str]:
        if fit == FitCategory.NOT_RECOMMENDED:
            steps = []
            if emergency_months < 6:
                steps.append("Build emergency fund to 6+ months of expenses")
            if has_match and not planning.contributing_to_401k_match:
                steps.append("Contribute enough to 401(k) to capture full employer match")
            if planning.debt_pressure_level == ConcernLevel.HIGH:
                steps.append("Create a debt paydown plan for high-interest obligations")
            steps.append("Consider maxing out 401(k)/Roth IRA before exploring permanent coverage")
            steps.append("Learn how cash value, policy loans and lapse risk work before revisiting")
            return steps

        steps = [
            "Request illustrations showing minimum, target, and maximum funding scenarios",
            "Compare cap rates, participation rates, and fees across 2-3 carriers",
            "Understand loan provisions - how tax-free retirement income actually works",
            "Schedule a consultation to review policy mechanics and projected accumulation",
        ]
        if fit == FitCategory.EXPLORE:
            steps.append("Consider whether term coverage plus Roth investing might better fit your situation")
        return steps
