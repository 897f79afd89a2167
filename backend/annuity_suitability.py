"""
RetireReady - Annuity Suitability
=================================
Fit analysis for a fixed index annuity (guaranteed lifetime income).

Point model starting from zero. A single hard gate - thin emergency
reserves combined with high near-term liquidity need - marks the client
"not fit yet" no matter how many positive signals are present.
"""

import logging
from dataclasses import dataclass, field
from typing import List

from models import (
    AnnuityStrategy,
    CheckImportance,
    CheckStatus,
    ClientProfile,
    ConcernLevel,
    FitCategory,
    IncomeStability,
    PlanningReadiness,
    PreconditionCheck,
    PrimaryRetirementGoal,
    ProductRecommendation,
    ProductType,
    ProtectionHealth,
    RetirementProjection,
    TaxBracketEstimate,
)
from retirement_assumptions import DEFAULT_ASSUMPTIONS, Assumptions, clamp_score

logger = logging.getLogger(__name__)

PRODUCT_NAME = "Fixed Index Annuity"

MAX_REASONS = 6
MAX_FRICTION = 5
MAX_NOT_IF = 6
MAX_FIX_FIRST = 4
MAX_NEXT_STEPS = 5

DISCLAIMER = (
    "Annuities are long-term insurance contracts. Withdrawals before age 59½ may incur "
    "IRS penalties. Surrender charges apply in early years. This analysis is educational - "
    "consult a licensed financial professional before making decisions."
)


@dataclass
class _Signals:
    """Accumulates points and the text that explains them."""
    score: float = 0
    reasons: List[str] = field(default_factory=list)
    friction: List[str] = field(default_factory=list)

    def add(self, points: float, reason: str):
        self.score += points
        self.reasons.append(reason)

    def subtract(self, points: float, reason: str):
        self.score -= points
        self.friction.append(reason)


class AnnuitySuitabilityEngine:
    """
    Evaluates whether a guaranteed-income annuity fits the household.
    """

    def __init__(self, assumptions: Assumptions = DEFAULT_ASSUMPTIONS):
        self.assumptions = assumptions
        self.thresholds = assumptions.annuity_suitability

    def evaluate(
        self,
        profile: ClientProfile,
        protection: ProtectionHealth,
        planning: PlanningReadiness,
        projection: RetirementProjection,
    ) -> ProductRecommendation:
        emergency_months = protection.emergency_fund_months
        liquidity_need = planning.liquidity_need
        years = projection.years_to_retirement
        gap_pct = projection.gap_percentage
        coverage_pct = self._guaranteed_coverage_pct(projection)
        wants_guaranteed = (
            protection.prefers_guaranteed_income
            or profile.primary_retirement_goal == PrimaryRetirementGoal.SECURE_GUARANTEED_INCOME
        )

        preconditions = self._preconditions(emergency_months, liquidity_need, years, gap_pct, coverage_pct)

        # Hard gate
        disqualified = (
            emergency_months < self.thresholds.min_emergency_months
            and liquidity_need == ConcernLevel.HIGH
        )
        disqualification_reason = None
        if disqualified:
            disqualification_reason = (
                f"Low emergency reserves ({emergency_months:g} months) combined with high "
                "near-term liquidity needs. Build reserves and address upcoming expenses "
                "before locking funds into an annuity."
            )

        signals = self._score_signals(
            planning, emergency_months, liquidity_need, years, gap_pct, coverage_pct, wants_guaranteed
        )
        score = clamp_score(signals.score)
        if disqualified:
            score = min(score, self.thresholds.disqualified_ceiling)
        score = round(score)

        fit = self._fit_category(score, disqualified)
        strategy = self._select_strategy(fit, planning, years, gap_pct, wants_guaranteed)

        if not signals.reasons and not disqualified:
            signals.reasons.append("Annuities provide a guaranteed income floor that cannot be outlived.")

        logger.debug(
            "Annuity suitability: score=%s fit=%s strategy=%s disqualified=%s",
            score, fit.value, strategy.value, disqualified,
        )

        return ProductRecommendation(
            product=ProductType.ANNUITY,
            product_name=PRODUCT_NAME,
            fit=fit,
            score=score,
            strategy=strategy,
            reasons=signals.reasons[:MAX_REASONS],
            friction=signals.friction[:MAX_FRICTION],
            not_if=self._not_if(emergency_months, liquidity_need)[:MAX_NOT_IF],
            fix_first=self._fix_first(emergency_months, liquidity_need, years, gap_pct, coverage_pct)[:MAX_FIX_FIRST],
            next_steps=self._next_steps(fit, emergency_months, liquidity_need, years)[:MAX_NEXT_STEPS],
            preconditions=preconditions,
            disqualified=disqualified,
            disqualification_reason=disqualification_reason,
            disclaimer=DISCLAIMER,
        )

    # =========================================================================
    # SCORING
    # =========================================================================

    @staticmethod
    def _guaranteed_coverage_pct(projection: RetirementProjection) -> float:
        """Social Security + pension against essential expenses (~60% of target)."""
        essential = projection.monthly_income_target * 0.6
        if essential <= 0:
            return 100.0
        sources = projection.income_sources
        return (sources.social_security + sources.pension) / essential * 100

    def _score_signals(
        self,
        planning: PlanningReadiness,
        emergency_months: float,
        liquidity_need: ConcernLevel,
        years: int,
        gap_pct: float,
        coverage_pct: float,
        wants_guaranteed: bool,
    ) -> _Signals:
        s = _Signals()

        if wants_guaranteed:
            s.add(25, "You indicated a preference for guaranteed lifetime income - annuities are designed for this.")

        if gap_pct > 20:
            s.add(20, f"A {round(gap_pct)}% retirement income gap could be addressed with guaranteed annuity income.")
        elif gap_pct > 10:
            s.add(10, f"A {round(gap_pct)}% income gap suggests some guaranteed income floor may be beneficial.")

        if coverage_pct < 50:
            s.add(15, "Current guaranteed income (SS + pension) covers less than half of essential expenses.")
        elif coverage_pct < 80:
            s.add(8, "Adding guaranteed income could provide more security for essential expenses.")

        if planning.sequence_risk_concern == ConcernLevel.HIGH:
            s.add(10, "You're concerned about market timing in retirement - annuity income continues regardless of markets.")

        if planning.longevity_concern == ConcernLevel.HIGH:
            s.add(10, "Lifetime income addresses your concern about outliving savings.")

        if planning.wants_monthly_paycheck_feel:
            s.add(5, "A predictable monthly paycheck in retirement matches your stated preference.")

        if emergency_months >= 6:
            s.add(10, f"With {emergency_months:g} months of emergency reserves, you can commit to surrender periods without liquidity stress.")
        elif emergency_months >= 3:
            s.add(3, "Emergency reserves meet the minimum for a surrender-period commitment.")

        if years >= 10:
            s.add(10, f"{years} years until retirement allows time for deferred growth and income rider accumulation.")
        elif years >= 5:
            s.add(5, "Your time horizon supports annuity accumulation, though longer would be ideal.")

        if planning.tax_concern_level == ConcernLevel.HIGH or planning.current_tax_bracket in (
            TaxBracketEstimate.BRACKET_32,
            TaxBracketEstimate.BRACKET_35_PLUS,
        ):
            s.add(5, "Annuity growth is tax-deferred and income can be structured for tax efficiency.")

        if planning.income_stability == IncomeStability.STABLE:
            s.add(5, "Stable income supports funding the contract on schedule.")

        # Friction
        if liquidity_need == ConcernLevel.HIGH:
            s.subtract(20, "High near-term liquidity needs conflict with annuity surrender periods.")
        elif liquidity_need == ConcernLevel.MEDIUM:
            s.subtract(5, "Some near-term liquidity needs - keep enough outside the contract.")

        if years < 3:
            s.subtract(15, f"Only {years} years to retirement limits deferred annuity benefits.")

        if gap_pct <= 0 and coverage_pct >= 80:
            s.subtract(15, "Guaranteed income already covers essential expenses.")

        if planning.income_stability == IncomeStability.UNSTABLE:
            s.subtract(10, "Unstable income makes a long-term contract commitment riskier.")

        if planning.debt_pressure_level == ConcernLevel.HIGH:
            s.subtract(10, "High debt pressure should be addressed before long-term commitments.")

        if planning.legacy_priority == ConcernLevel.HIGH:
            s.subtract(5, "Annuitizing income can reduce what passes to heirs.")

        return s

    def _fit_category(self, score: float, disqualified: bool) -> FitCategory:
        if disqualified:
            return FitCategory.NOT_RECOMMENDED
        if score >= self.thresholds.strong_threshold:
            return FitCategory.STRONG
        if score >= self.thresholds.moderate_threshold:
            return FitCategory.MODERATE
        return FitCategory.EXPLORE

    @staticmethod
    def _select_strategy(
        fit: FitCategory,
        planning: PlanningReadiness,
        years: int,
        gap_pct: float,
        wants_guaranteed: bool,
    ) -> AnnuityStrategy:
        if fit == FitCategory.NOT_RECOMMENDED:
            return AnnuityStrategy.NOT_FIT_YET
        if wants_guaranteed and gap_pct > 20 and fit in (FitCategory.STRONG, FitCategory.MODERATE):
            return AnnuityStrategy.INCOME_FLOOR
        if years <= 5 or planning.sequence_risk_concern == ConcernLevel.HIGH:
            return AnnuityStrategy.BUFFER_REDZONE
        if planning.sequence_risk_concern == ConcernLevel.MEDIUM and gap_pct > 0:
            return AnnuityStrategy.GROWTH_PROTECTION
        return AnnuityStrategy.OPTIONAL

    # =========================================================================
    # TEXT
    # =========================================================================

    @staticmethod
    def _preconditions(
        emergency_months: float,
        liquidity_need: ConcernLevel,
        years: int,
        gap_pct: float,
        coverage_pct: float,
    ) -> List[PreconditionCheck]:
        def status(passed: bool, warned: bool) -> CheckStatus:
            if passed:
                return CheckStatus.PASS
            return CheckStatus.WARNING if warned else CheckStatus.FAIL

        liquidity_status = {
            ConcernLevel.LOW: CheckStatus.PASS,
            ConcernLevel.MEDIUM: CheckStatus.WARNING,
            ConcernLevel.HIGH: CheckStatus.FAIL,
        }[liquidity_need]

        return [
            PreconditionCheck(
                check_id="emergency_fund",
                label="Emergency Fund (6+ months)",
                status=status(emergency_months >= 6, emergency_months >= 3),
                value=f"{emergency_months:g} months",
                importance=CheckImportance.CRITICAL,
            ),
            PreconditionCheck(
                check_id="liquidity",
                label="Low Near-Term Liquidity Needs",
                status=liquidity_status,
                value=liquidity_need.value,
                importance=CheckImportance.CRITICAL,
            ),
            PreconditionCheck(
                check_id="time_horizon",
                label="Time Horizon (10+ years)",
                status=status(years >= 10, years >= 5),
                value=f"{years} years",
                importance=CheckImportance.IMPORTANT,
            ),
            PreconditionCheck(
                check_id="income_gap",
                label="Retirement Income Gap",
                status=status(gap_pct > 20, gap_pct > 10),
                value=f"{round(gap_pct)}%",
                importance=CheckImportance.IMPORTANT,
            ),
            PreconditionCheck(
                check_id="guaranteed_coverage",
                label="Guaranteed Income Coverage",
                status=status(coverage_pct < 50, coverage_pct < 80),
                value=f"{round(coverage_pct)}% of essentials",
                importance=CheckImportance.HELPFUL,
            ),
        ]

    @staticmethod
    def _not_if(emergency_months: float, liquidity_need: ConcernLevel) -> List[str]:
        items = [
            "Not ideal if you need access to these funds within 5-7 years - surrender charges can be significant.",
            "Not recommended if you have high-interest debt that should be prioritized.",
        ]
        if emergency_months < 6:
            items.append(
                f"With only {emergency_months:g} months in emergency savings, prioritize reserves before locking funds."
            )
        if liquidity_need != ConcernLevel.LOW:
            items.append("If major expenses are expected soon (home, education, business), address those first.")
        items.append("Annuity fees and surrender charges vary significantly - compare multiple products carefully.")
        items.append("Early withdrawals before 59½ may incur a 10% IRS penalty plus ordinary income tax.")
        return items

    @staticmethod
    def _fix_first(
        emergency_months: float,
        liquidity_need: ConcernLevel,
        years: int,
        gap_pct: float,
        coverage_pct: float,
    ) -> List[str]:
        items = []
        if emergency_months < 3:
            items.append(f"Build emergency fund from {emergency_months:g} to 3-6 months before considering an annuity")
        if liquidity_need == ConcernLevel.HIGH:
            items.append("Address expected major expenses first - annuity surrender charges apply for 5-10 years")
        if years < 3:
            items.append(
                f"With only {years} years to retirement, consider an immediate annuity (SPIA) instead of a deferred annuity"
            )
        if gap_pct <= 0 and coverage_pct >= 80:
            items.append("Your current SS + pension already covers essentials - consider other vehicles for growth")
        return items

    @staticmethod
    def _next_steps(
        fit: FitCategory,
        emergency_months: float,
        liquidity_need: ConcernLevel,
        years: int,
    ) -> List[str]:
        if fit == FitCategory.NOT_RECOMMENDED:
            steps = []
            if emergency_months < 6:
                steps.append("Build emergency fund to at least 3-6 months of expenses")
            if liquidity_need != ConcernLevel.LOW:
                steps.append("Create a plan for expected major expenses before committing to long-term products")
            steps.append("Learn how fixed index annuities, surrender periods and income riders work")
            steps.append("Revisit annuity suitability once financial fundamentals are addressed")
            return steps

        steps = []
        if years < 3:
            steps.append("Explore immediate annuities (SPIA) that begin income within 1 year")
        steps.extend([
            "Compare Fixed Index Annuity (FIA) vs SPIA options based on your timeline",
            "Review income rider options and guaranteed withdrawal benefit rates",
            "Calculate income benefit projections at various start ages",
            "Understand surrender periods and any liquidity features (e.g., 10% free withdrawal)",
        ])
        if fit == FitCategory.EXPLORE:
            steps.append("Consider whether other income strategies might better fit your situation")
        return steps
