"""
RetireReady - Readiness Orchestrator
====================================
Sequences the engines into one retirement readiness result:

    Projection -> Stress tests -> Scores -> Product suitability
    -> Best-interest guardrails -> Savings allocation -> Insights/actions

Every call is a pure function of its inputs and the evaluation date.
"""

import logging
from datetime import date
from typing import List, Optional

from allocation_engine import AllocationEngine
from annuity_suitability import AnnuitySuitabilityEngine
from guardrails import BestInterestGuardrails
from insurance_suitability import InsuranceSuitabilityEngine
from models import (
    AnnuityStrategy,
    Asset,
    ClientProfile,
    ComputedMetrics,
    FitCategory,
    GuardrailResult,
    IncomeExpenses,
    Liability,
    PlanningReadiness,
    ProductRecommendation,
    ProductType,
    ProtectionHealth,
    RetirementProjection,
    RetirementReadinessResult,
    ScenarioResult,
    StressScenario,
    SubScores,
)
from projection import ProjectionEngine
from retirement_assumptions import DEFAULT_ASSUMPTIONS, Assumptions, format_currency
from scoring import ScoringEngine
from stress_tests import StressTester

logger = logging.getLogger(__name__)

MAX_INSIGHTS = 5
MAX_ACTIONS = 4
HIGH_INTEREST_RATE_PCT = 8
MAX_NEXT_STEPS = 5


class RetirementReadinessEngine:
    """
    Runs the full readiness pipeline for one household snapshot.

    The evaluation date is fixed at construction so repeated calls with the
    same inputs produce identical results.
    """

    def __init__(self, assumptions: Assumptions = DEFAULT_ASSUMPTIONS, as_of: Optional[date] = None):
        self.assumptions = assumptions
        self.current_date = as_of or date.today()

        self.projection_engine = ProjectionEngine(assumptions, self.current_date)
        self.stress_tester = StressTester(assumptions)
        self.scoring_engine = ScoringEngine(assumptions)
        self.annuity_engine = AnnuitySuitabilityEngine(assumptions)
        self.insurance_engine = InsuranceSuitabilityEngine(assumptions)
        self.guardrails = BestInterestGuardrails(assumptions, self.current_date)
        self.allocation_engine = AllocationEngine(assumptions, self.current_date)

    def evaluate_products(
        self,
        profile: ClientProfile,
        income: IncomeExpenses,
        protection: ProtectionHealth,
        planning: PlanningReadiness,
        metrics: ComputedMetrics,
        projection: RetirementProjection,
    ) -> List[ProductRecommendation]:
        return [
            self.annuity_engine.evaluate(profile, protection, planning, projection),
            self.insurance_engine.evaluate(
                profile, income, protection, planning, metrics, projection.years_to_retirement
            ),
        ]

    def hold_for_education(
        self,
        recommendations: List[ProductRecommendation],
        guardrails: GuardrailResult,
    ) -> List[ProductRecommendation]:
        """
        Downgrade every product to the lowest fit when guardrails put the
        household in education-only mode. The rejection narrative (or the
        education reason) becomes the disqualification reason and the
        education topics replace the product next steps.
        """
        reason = (
            guardrails.explicit_rejection_reasons[0]
            if guardrails.explicit_rejection_reasons
            else guardrails.education_reason
        )
        ceilings = {
            ProductType.ANNUITY: self.assumptions.annuity_suitability.disqualified_ceiling,
            ProductType.PERMANENT_INSURANCE: self.assumptions.insurance_suitability.disqualified_ceiling,
        }

        held = []
        for rec in recommendations:
            data = rec.model_dump(exclude={"fit_label"})
            data.update(
                fit=FitCategory.NOT_RECOMMENDED,
                score=round(min(rec.score, ceilings[rec.product])),
                reasons=[],
                next_steps=guardrails.education_content[:MAX_NEXT_STEPS],
                disqualified=True,
                disqualification_reason=rec.disqualification_reason if rec.disqualified else reason,
            )
            if rec.product == ProductType.ANNUITY:
                data["strategy"] = AnnuityStrategy.NOT_FIT_YET
            held.append(ProductRecommendation.model_validate(data))

        logger.debug("Education-only: %s product recommendations held", len(held))
        return held

    def compute_retirement_readiness(
        self,
        profile: ClientProfile,
        income: IncomeExpenses,
        assets: List[Asset],
        liabilities: List[Liability],
        protection: ProtectionHealth,
        metrics: ComputedMetrics,
        planning: Optional[PlanningReadiness] = None,
        include_upside: bool = False,
    ) -> RetirementReadinessResult:
        """
        Main entry point.

        A missing `planning` questionnaire still produces scores and product
        analysis (using default answers) but the guardrails put the result in
        education-only mode.
        """
        answers = planning or PlanningReadiness()

        # Step 1: Projection
        projection = self.projection_engine.calculate_projection(profile, income, assets)

        # Step 2: Stress tests
        scenarios = self.stress_tester.run_all(
            projection, metrics.tax_bucket_later_pct, include_upside=include_upside
        )

        # Step 3: Scores
        sub_scores = self.scoring_engine.calculate_sub_scores(projection, scenarios, metrics)
        overall = self.scoring_engine.score(sub_scores)

        # Step 4: Product suitability
        recommendations = self.evaluate_products(profile, income, protection, answers, metrics, projection)

        # Step 5: Best-interest guardrails
        total_assets = sum(asset.current_value for asset in assets)
        guardrails = self.guardrails.run(
            profile, income, protection, planning, total_assets, projection.years_to_retirement
        )
        if guardrails.education_only:
            recommendations = self.hold_for_education(recommendations, guardrails)

        # Step 6: Savings allocation
        allocation = self.allocation_engine.compute_savings_allocation(
            profile, income, protection, metrics, projection, recommendations, guardrails
        )

        # Step 7: Narrative
        insights = generate_key_insights(projection, scenarios, metrics)
        actions = generate_action_items(
            projection, sub_scores, metrics, recommendations, liabilities, guardrails
        )

        logger.info(
            "Retirement readiness: score=%s grade=%s education_only=%s",
            overall.score, overall.grade, guardrails.education_only,
        )

        return RetirementReadinessResult(
            overall_score=overall.score,
            overall_grade=overall.grade,
            overall_label=overall.label,
            sub_scores=sub_scores,
            sub_score_labels=ScoringEngine.sub_score_labels(sub_scores),
            projection=projection,
            scenarios=scenarios,
            recommendations=recommendations,
            guardrails=guardrails,
            allocation=allocation,
            key_insights=insights,
            action_items=actions,
            education_only=guardrails.education_only,
            generated_at=self.current_date,
        )


# =============================================================================
# INSIGHTS & ACTIONS
# =============================================================================

def generate_key_insights(
    projection: RetirementProjection,
    scenarios: List[ScenarioResult],
    metrics: ComputedMetrics,
) -> List[str]:
    insights = []

    if projection.monthly_gap > 0:
        insights.append(
            f"You have a projected monthly income gap of {format_currency(projection.monthly_gap)} "
            f"({round(projection.gap_percentage)}% of target)."
        )
    else:
        insights.append("Your projected retirement income meets or exceeds your target. Great progress!")

    for scenario in scenarios:
        if scenario.scenario_name == StressScenario.SEQUENCE_RISK and scenario.projected_shortfall_age:
            insights.append(
                "Under sequence risk (poor early returns), your portfolio could deplete by "
                f"age {scenario.projected_shortfall_age}."
            )

    if metrics.tax_bucket_later_pct > 60:
        insights.append(
            f"{round(metrics.tax_bucket_later_pct)}% of assets are tax-deferred, "
            "which may create tax burden in retirement."
        )

    if projection.monthly_income_target > 0:
        guaranteed_pct = projection.guaranteed_coverage_pct
        if guaranteed_pct < 40:
            insights.append(
                f"Only {round(guaranteed_pct)}% of target income is from guaranteed sources. "
                "Consider adding guaranteed income floor."
            )
        elif guaranteed_pct >= 60:
            insights.append(
                f"{round(guaranteed_pct)}% of target income comes from guaranteed sources, "
                "providing solid foundation."
            )

    if metrics.protection_gap > 100000:
        insights.append(
            f"A protection gap of {format_currency(metrics.protection_gap)} could leave your family vulnerable."
        )

    return insights[:MAX_INSIGHTS]


def generate_action_items(
    projection: RetirementProjection,
    sub_scores: SubScores,
    metrics: ComputedMetrics,
    recommendations: List[ProductRecommendation],
    liabilities: List[Liability],
    guardrails: Optional[GuardrailResult] = None,
) -> List[str]:
    actions = []

    if projection.monthly_gap > 500:
        actions.append(
            f"Increase retirement savings to close {format_currency(projection.monthly_gap)}/month gap"
        )

    if sub_scores.tax_risk < 60:
        actions.append("Consider Roth conversions or tax-free savings vehicles")

    if sub_scores.liquidity < 50:
        actions.append("Build emergency fund to 6+ months of expenses")

    high_interest = [l for l in liabilities if l.rate >= HIGH_INTEREST_RATE_PCT and l.balance > 0]
    if high_interest:
        worst = max(high_interest, key=lambda l: l.rate)
        actions.append(
            f"Pay down high-interest debt first ({format_currency(sum(l.balance for l in high_interest))} "
            f"at up to {worst.rate:g}%)"
        )

    if sub_scores.protection < 60 and metrics.protection_gap > 0:
        actions.append("Review life insurance coverage options")

    education_only = guardrails is not None and guardrails.education_only
    strong = [r for r in recommendations if r.fit == FitCategory.STRONG]
    if strong and not education_only:
        names = ", ".join(r.product_name for r in strong)
        actions.append(f"Schedule consultation to discuss {names} options")

    if not actions:
        actions.append("Continue current savings trajectory and review annually")

    return actions[:MAX_ACTIONS]


def compute_retirement_readiness(
    profile: ClientProfile,
    income: IncomeExpenses,
    assets: List[Asset],
    liabilities: List[Liability],
    protection: ProtectionHealth,
    metrics: ComputedMetrics,
    planning: Optional[PlanningReadiness] = None,
    assumptions: Assumptions = DEFAULT_ASSUMPTIONS,
    as_of: Optional[date] = None,
) -> RetirementReadinessResult:
    """Convenience wrapper around `RetirementReadinessEngine`."""
    engine = RetirementReadinessEngine(assumptions, as_of)
    return engine.compute_retirement_readiness(
        profile, income, assets, liabilities, protection, metrics, planning
    )
