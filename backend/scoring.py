"""
RetireReady - Scoring Engine
============================
Reduces the projection, stress scenarios and portfolio metrics into six
sub-scores and one weighted overall score with a letter grade.

Risk sub-scores never drop below 10 so a weak area never reads as
"no data" on a dashboard.
"""

import logging
from typing import Dict, List, Optional

from models import (
    ComputedMetrics,
    OverallScore,
    RetirementProjection,
    ScenarioResult,
    StressScenario,
    SubScores,
)
from retirement_assumptions import (
    DEFAULT_ASSUMPTIONS,
    Assumptions,
    clamp_score,
    get_grade,
    get_score_label,
    round_half_up,
)

logger = logging.getLogger(__name__)

RISK_SCORE_FLOOR = 10

# (minimum coverage ratio, score)
INCOME_ADEQUACY_BANDS = [
    (1.2, 95),
    (1.0, 85),
    (0.9, 70),
    (0.8, 55),
    (0.7, 40),
    (0.5, 25),
]

# (minimum runway months, score)
LIQUIDITY_BANDS = [
    (12, 95),
    (9, 85),
    (6, 70),
    (4, 50),
    (3, 35),
    (1, 20),
]


def _banded(value: float, bands, floor: int) -> int:
    for threshold, score in bands:
        if value >= threshold:
            return score
    return floor


def _tiered_deduction(value: float, tiers) -> int:
    """Deduction for the first tier whose threshold `value` exceeds."""
    for threshold, deduction in tiers:
        if value > threshold:
            return deduction
    return 0


def _find_scenario(scenarios: List[ScenarioResult], name: StressScenario) -> Optional[ScenarioResult]:
    for scenario in scenarios:
        if scenario.scenario_name == name:
            return scenario
    return None


class ScoringEngine:
    """
    Six independent scoring functions plus the weighted composite.
    """

    def __init__(self, assumptions: Assumptions = DEFAULT_ASSUMPTIONS):
        self.assumptions = assumptions

    # =========================================================================
    # SUB-SCORES
    # =========================================================================

    def income_adequacy_score(self, projection: RetirementProjection) -> int:
        """Banded by projected/target coverage."""
        if projection.monthly_income_target <= 0:
            return 100
        coverage = projection.monthly_income_projected / projection.monthly_income_target
        return _banded(coverage, INCOME_ADEQUACY_BANDS, RISK_SCORE_FLOOR)

    def tax_risk_score(self, metrics: ComputedMetrics) -> int:
        score = 100

        # Over-concentration in tax-deferred assets
        if metrics.tax_bucket_later_pct > 70:
            score -= 30
        elif metrics.tax_bucket_later_pct > 50:
            score -= 15

        # Too little in never-taxed assets
        if metrics.tax_bucket_never_pct < 10:
            score -= 25
        elif metrics.tax_bucket_never_pct < 20:
            score -= 10

        # Heavy fully-taxable holdings
        if metrics.tax_bucket_now_pct > 40:
            score -= 10

        return round_half_up(clamp_score(score, RISK_SCORE_FLOOR, 100))

    def sequence_risk_score(
        self, scenarios: List[ScenarioResult], metrics: ComputedMetrics
    ) -> int:
        """
        Compares Base Case and Sequence Risk survival. Without both scenarios
        the externally supplied sequence-risk index is used instead.
        """
        base = _find_scenario(scenarios, StressScenario.BASE_CASE)
        sequence = _find_scenario(scenarios, StressScenario.SEQUENCE_RISK)

        if base is None or sequence is None:
            return round_half_up(clamp_score(100 - metrics.seq_risk_index, RISK_SCORE_FLOOR, 100))

        score = 100
        drop = base.success_probability - sequence.success_probability
        score -= _tiered_deduction(drop, [(30, 40), (20, 25), (10, 15)])

        if sequence.projected_shortfall_age is not None:
            score -= 20

        score -= _tiered_deduction(metrics.seq_risk_index, [(70, 15), (50, 10)])

        return round_half_up(clamp_score(score, RISK_SCORE_FLOOR, 100))

    def longevity_risk_score(
        self, projection: RetirementProjection, scenarios: List[ScenarioResult]
    ) -> int:
        score = 100

        shortfall_ages = [
            s.projected_shortfall_age for s in scenarios if s.projected_shortfall_age is not None
        ]
        if shortfall_ages:
            earliest = min(shortfall_ages)
            if earliest < 80:
                score -= 50
            elif earliest < 85:
                score -= 35
            elif earliest < 90:
                score -= 20
            else:
                score -= 10

        score -= _tiered_deduction(projection.gap_percentage, [(30, 25), (20, 15), (10, 10)])

        # Guaranteed income bonus
        if projection.monthly_income_target > 0:
            sources = projection.income_sources
            guaranteed = sources.social_security + sources.pension + sources.annuity
            guaranteed_pct = guaranteed / projection.monthly_income_target * 100
            if guaranteed_pct >= 80:
                score += 15
            elif guaranteed_pct >= 60:
                score += 10
            elif guaranteed_pct >= 40:
                score += 5

        return round_half_up(clamp_score(score, RISK_SCORE_FLOOR, 100))

    def liquidity_score(self, metrics: ComputedMetrics) -> int:
        return _banded(metrics.liquidity_runway_months, LIQUIDITY_BANDS, RISK_SCORE_FLOOR)

    def protection_score(self, metrics: ComputedMetrics) -> int:
        score = 100
        score -= _tiered_deduction(
            metrics.protection_gap, [(500000, 30), (250000, 20), (100000, 10), (0, 5)]
        )
        score -= _tiered_deduction(metrics.disability_gap, [(5000, 15), (2500, 10), (0, 5)])
        score -= _tiered_deduction(metrics.ltc_gap, [(3000, 15), (1500, 10), (0, 5)])
        return round_half_up(clamp_score(score, RISK_SCORE_FLOOR, 100))

    # =========================================================================
    # COMPOSITE
    # =========================================================================

    def calculate_sub_scores(
        self,
        projection: RetirementProjection,
        scenarios: List[ScenarioResult],
        metrics: ComputedMetrics,
    ) -> SubScores:
        sub_scores = SubScores(
            income_adequacy=self.income_adequacy_score(projection),
            tax_risk=self.tax_risk_score(metrics),
            sequence_risk=self.sequence_risk_score(scenarios, metrics),
            longevity_risk=self.longevity_risk_score(projection, scenarios),
            liquidity=self.liquidity_score(metrics),
            protection=self.protection_score(metrics),
        )
        logger.debug("Sub-scores: %s", sub_scores.model_dump())
        return sub_scores

    def calculate_overall_score(self, sub_scores: SubScores) -> int:
        w = self.assumptions.score_weights
        weighted = (
            sub_scores.income_adequacy * w.income_adequacy
            + sub_scores.tax_risk * w.tax_risk
            + sub_scores.sequence_risk * w.sequence_risk
            + sub_scores.longevity_risk * w.longevity_risk
            + sub_scores.liquidity * w.liquidity
            + sub_scores.protection * w.protection
        )
        return round_half_up(clamp_score(weighted))

    def score(self, sub_scores: SubScores) -> OverallScore:
        overall = self.calculate_overall_score(sub_scores)
        return OverallScore(
            score=overall,
            grade=get_grade(overall, self.assumptions),
            label=get_score_label(overall),
        )

    @staticmethod
    def sub_score_labels(sub_scores: SubScores) -> Dict[str, str]:
        return {name: get_score_label(value) for name, value in sub_scores.model_dump().items()}
