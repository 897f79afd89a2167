"""
RetireReady - Test Suite
========================
Tests for the retirement readiness engines.
"""

from datetime import date

import pytest
from pydantic import ValidationError

from retirement_assumptions import (
    DEFAULT_ASSUMPTIONS,
    ConfidenceLevel,
    FilingStatus,
    calculate_age,
    get_contribution_limit,
    get_grade,
    get_score_label,
    load_assumptions,
    round_half_up,
)
from models import (
    Asset,
    AssetType,
    CheckStatus,
    ClientProfile,
    ComputedMetrics,
    ConcernLevel,
    ConstraintType,
    DownMarketBehavior,
    FitCategory,
    GoalPriorityRanking,
    IncomeExpenses,
    IncomeSourceProjection,
    IncomeStability,
    Liability,
    LiabilityType,
    MarketRiskExposure,
    PlanningReadiness,
    PrimaryRetirementGoal,
    ProductRecommendation,
    ProductType,
    ProtectionHealth,
    SavingsVehicle,
    SpendingTargetMethod,
    StrategyPath,
    StressScenario,
    SubScores,
    TaxWrapper,
    AnnuityStrategy,
)
from projection import (
    ProjectionEngine,
    future_value,
    future_value_of_contributions,
)
from stress_tests import StressTester, calculate_success_probability, simulate_portfolio
from scoring import ScoringEngine
from annuity_suitability import AnnuitySuitabilityEngine
from insurance_suitability import InsuranceSuitabilityEngine
from guardrails import MISSING_PLANNING_REASON, BestInterestGuardrails
from allocation_engine import AllocationEngine, compute_allocation_sources
from readiness import RetirementReadinessEngine, compute_retirement_readiness
from scenario_comparison import ScenarioComparisonEngine, required_minimum_distribution

from conftest import AS_OF, make_projection, make_recommendation


# =============================================================================
# ASSUMPTIONS TESTS
# =============================================================================

class TestAssumptions:
    """Test the assumption set and shared helpers."""

    def test_default_values(self):
        """Defaults should carry the 2024 planning figures."""
        a = DEFAULT_ASSUMPTIONS
        assert a.returns.base == 0.06
        assert a.withdrawal.safe == 0.04
        assert a.limits.k401 == 23000
        assert a.roth_phase_out[FilingStatus.SINGLE].end == 161000
        assert a.longevity.planning_age == 95

    def test_load_assumptions_without_overrides_returns_defaults(self):
        """No overrides should hand back the shared default set."""
        assert load_assumptions() is DEFAULT_ASSUMPTIONS

    def test_load_assumptions_deep_merges(self):
        """Overrides should replace only the named fields."""
        custom = load_assumptions({"returns": {"base": 0.05}, "longevity": {"planning_age": 100}})
        assert custom.returns.base == 0.05
        assert custom.returns.conservative == 0.04
        assert custom.longevity.planning_age == 100
        assert DEFAULT_ASSUMPTIONS.returns.base == 0.06

    def test_load_assumptions_rejects_bad_shape(self):
        """Malformed overrides are a contract violation."""
        with pytest.raises(ValidationError):
            load_assumptions({"returns": {"base": "plenty"}})

    def test_assumptions_are_immutable(self):
        """The assumption set cannot be mutated in place."""
        with pytest.raises(ValidationError):
            DEFAULT_ASSUMPTIONS.default_age = 50

    def test_calculate_age_before_and_after_birthday(self):
        """Age should only increment on or after the birthday."""
        assert calculate_age(date(1985, 6, 1), date(2025, 5, 31)) == 39
        assert calculate_age(date(1985, 6, 1), date(2025, 6, 1)) == 40

    def test_calculate_age_defaults_and_clamps(self):
        """Missing birth date falls back to 40; results stay within 18-100."""
        assert calculate_age(None, AS_OF) == 40
        assert calculate_age(date(2020, 1, 1), AS_OF) == 18
        assert calculate_age(date(1900, 1, 1), AS_OF) == 100

    def test_contribution_limits_with_catch_up(self):
        """Catch-up amounts apply at 50 (401k/IRA) and 55 (HSA)."""
        assert get_contribution_limit("401k", 49) == 23000
        assert get_contribution_limit("401k", 50) == 30500
        assert get_contribution_limit("ira", 50) == 8000
        assert get_contribution_limit("hsa", 54, has_family=True) == 8300
        assert get_contribution_limit("hsa", 55, has_family=True) == 9300

    def test_unknown_vehicle_limit_raises(self):
        """Unknown vehicles are a programming error."""
        with pytest.raises(ValueError):
            get_contribution_limit("pension", 40)

    def test_grade_cut_points(self):
        """Grades follow the fixed cut points."""
        assert get_grade(80) == "A"
        assert get_grade(79) == "B"
        assert get_grade(65) == "B"
        assert get_grade(64) == "C"
        assert get_grade(50) == "C"
        assert get_grade(35) == "D"
        assert get_grade(34) == "F"

    def test_score_labels(self):
        assert get_score_label(85) == "Excellent"
        assert get_score_label(60) == "Good"
        assert get_score_label(45) == "Moderate"
        assert get_score_label(20) == "Concerning"
        assert get_score_label(5) == "Critical"

    def test_social_security_haircut(self):
        """Confidence tiers map to fixed haircuts."""
        ss = DEFAULT_ASSUMPTIONS.social_security
        assert ss.haircut(ConfidenceLevel.LOW) == 0.75
        assert ss.haircut(ConfidenceLevel.MEDIUM) == 0.90
        assert ss.haircut(ConfidenceLevel.HIGH) == 1.0

    def test_round_half_up(self):
        """Halves round up, not to the nearest even number."""
        assert round_half_up(62.5) == 63
        assert round_half_up(2.5) == 3
        assert round_half_up(2.49) == 2
        assert round_half_up(0) == 0

    def test_suitability_thresholds_are_overridable(self):
        assumptions = load_assumptions({
            "annuity_suitability": {"strong_threshold": 90},
            "insurance_suitability": {"max_expense_ratio": 0.95},
        })
        assert assumptions.annuity_suitability.strong_threshold == 90
        assert assumptions.annuity_suitability.moderate_threshold == 50
        assert assumptions.insurance_suitability.max_expense_ratio == 0.95
        assert DEFAULT_ASSUMPTIONS.insurance_suitability.max_expense_ratio == 0.85


# =============================================================================
# DATA MODEL TESTS
# =============================================================================

class TestDataModels:
    """Test input defaulting and result contracts."""

    def test_asset_tax_wrapper_classified_from_type(self):
        """Unclassified assets get their tax bucket from the asset type."""
        assert Asset(asset_type=AssetType.RETIREMENT_401K).tax_wrapper == TaxWrapper.TAX_LATER
        assert Asset(asset_type=AssetType.RETIREMENT_ROTH_IRA).tax_wrapper == TaxWrapper.TAX_NEVER
        assert Asset(asset_type=AssetType.BROKERAGE_ETF).tax_wrapper == TaxWrapper.TAX_NOW

    def test_explicit_tax_wrapper_kept(self):
        asset = Asset(asset_type=AssetType.RETIREMENT_401K, tax_wrapper=TaxWrapper.TAX_NOW)
        assert asset.tax_wrapper == TaxWrapper.TAX_NOW

    def test_savings_capacity_floored_at_zero(self):
        """Expenses above income should not produce negative capacity."""
        income = IncomeExpenses(w2_income=3000, fixed_expenses=4000)
        assert income.monthly_savings_capacity == 0

    def test_negative_amounts_rejected(self):
        with pytest.raises(ValidationError):
            IncomeExpenses(w2_income=-1)

    def test_unknown_enum_tag_rejected(self):
        """Free-form category strings are not accepted."""
        with pytest.raises(ValidationError):
            PlanningReadiness(near_term_liquidity_need="extreme")

    def test_planning_defaults_resolved_once(self):
        """Unanswered liquidity and commitment resolve to medium and 5-10 years."""
        planning = PlanningReadiness()
        assert planning.near_term_liquidity_need is None
        assert planning.liquidity_need == ConcernLevel.MEDIUM
        assert planning.commitment.value == "5-10"

    def test_disqualified_recommendation_must_be_lowest_fit(self):
        """A disqualified product can never carry a positive fit."""
        with pytest.raises(ValidationError):
            ProductRecommendation(
                product=ProductType.ANNUITY,
                product_name="Fixed Index Annuity",
                fit=FitCategory.STRONG,
                score=90,
                disqualified=True,
            )


# =============================================================================
# PROJECTION TESTS
# =============================================================================

class TestProjection:
    """Test the retirement income projection."""

    @pytest.fixture
    def engine(self):
        return ProjectionEngine(as_of=AS_OF)

    def test_future_value(self):
        assert future_value(100, 0.10, 2) == pytest.approx(121)
        assert future_value(100000, 0.06, 0) == 100000

    def test_future_value_of_contributions(self):
        """Each year's contribution compounds for the years left."""
        assert future_value_of_contributions(1000, 0.0, 3) == pytest.approx(3000)
        assert future_value_of_contributions(1000, 0.10, 2) == pytest.approx(2100)
        assert future_value_of_contributions(1000, 0.0, 2, growth_rate_pct=10) == pytest.approx(2100)

    def test_no_contributions_project_zero(self):
        assert future_value_of_contributions(0, 0.06, 20) == 0
        assert future_value_of_contributions(5000, 0.06, 0) == 0

    def test_projection_with_flat_returns(self, engine):
        """Only retirement accounts fund the portfolio; gap is target minus projected."""
        profile = ClientProfile(dob=date(1985, 1, 15), retirement_age=65, desired_monthly_income=5000)
        income = IncomeExpenses(social_security=2000, social_security_confidence="high")
        assets = [
            Asset(asset_type=AssetType.RETIREMENT_401K, current_value=100000),
            Asset(asset_type=AssetType.BROKERAGE_ETF, current_value=50000),
        ]

        projection = engine.calculate_projection(profile, income, assets, return_rate=0.0)

        assert projection.current_age == 40
        assert projection.years_to_retirement == 25
        assert projection.total_retirement_assets_today == 100000
        assert projection.projected_portfolio_at_retirement == 100000
        assert projection.income_sources.portfolio_withdrawal == pytest.approx(333.33)
        assert projection.income_sources.social_security == 2000
        assert projection.monthly_income_target == 5000
        assert projection.monthly_gap == pytest.approx(2666.67)
        assert projection.gap_percentage == pytest.approx(53.33, abs=0.01)

    def test_social_security_haircut_applied(self, engine, profile):
        income = IncomeExpenses(social_security=2000, social_security_confidence="low")
        projection = engine.calculate_projection(profile, income, [])
        assert projection.income_sources.social_security == 1500

    def test_percent_target_with_lifestyle(self, engine):
        """Percent-of-income targets scale by the lifestyle multiplier."""
        profile = ClientProfile(
            spending_target_method=SpendingTargetMethod.PERCENT,
            spending_percent_of_income=80,
            retirement_lifestyle="premium",
        )
        income = IncomeExpenses(w2_income=10000)
        projection = engine.calculate_projection(profile, income, [])
        assert projection.monthly_income_target == pytest.approx(10400)

    def test_zero_target_has_zero_gap(self, engine):
        projection = engine.calculate_projection(ClientProfile(), IncomeExpenses(), [])
        assert projection.monthly_income_target == 0
        assert projection.gap_percentage == 0

    def test_missing_data_uses_defaults(self, engine):
        """No birth date and no retirement age project from 40 to 65."""
        projection = engine.calculate_projection(ClientProfile(), IncomeExpenses(), [])
        assert projection.current_age == 40
        assert projection.retirement_age == 65
        assert projection.years_to_retirement == 25

    def test_past_retirement_age_has_zero_years(self, engine):
        profile = ClientProfile(dob=date(1955, 1, 1), retirement_age=65)
        projection = engine.calculate_projection(profile, IncomeExpenses(), [])
        assert projection.years_to_retirement == 0

    def test_target_in_todays_dollars(self, engine, profile):
        projection = engine.calculate_projection(profile, IncomeExpenses(), [])
        assert projection.monthly_income_target_today < projection.monthly_income_target


# =============================================================================
# STRESS TEST TESTS
# =============================================================================

class TestStressTests:
    """Test the deterministic scenario replays."""

    @pytest.fixture
    def tester(self):
        return StressTester()

    def test_depletion_year_with_zero_returns(self):
        """$500k drawn at $40k/yr with no growth runs out in year 13."""
        outcome = simulate_portfolio(500000, 40000, [0.0] * 5, 0.0, 30)
        assert outcome.shortfall_year == 13
        assert outcome.ending_balance == 0
        assert outcome.total_withdrawn == pytest.approx(500000)
        assert outcome.years_simulated == 13

    def test_portfolio_survives(self):
        outcome = simulate_portfolio(1000000, 10000, [], 0.0, 10)
        assert outcome.shortfall_year is None
        assert outcome.ending_balance == pytest.approx(900000)
        assert outcome.years_simulated == 10

    def test_success_probability_bands(self):
        assert calculate_success_probability(1500000, 100000, 10, 0.0) == 95
        assert calculate_success_probability(1000000, 100000, 10, 0.0) == 70
        assert calculate_success_probability(100000, 100000, 10, 0.0) == 15

    def test_success_probability_without_need(self):
        """No need or no horizon reads as certain success."""
        assert calculate_success_probability(0, 0, 30, 0.06) == 100
        assert calculate_success_probability(100000, 50000, 0, 0.06) == 100

    def test_default_scenario_set(self, tester):
        scenarios = tester.run_all(make_projection())
        assert [s.scenario_name for s in scenarios] == [
            StressScenario.BASE_CASE,
            StressScenario.SEQUENCE_RISK,
            StressScenario.TAX_LONGEVITY,
        ]

    def test_upside_scenario_is_optional(self, tester):
        scenarios = tester.run_all(make_projection(), include_upside=True)
        assert scenarios[-1].scenario_name == StressScenario.GOOD_EARLY_RETURNS

    def test_sequence_risk_haircut_and_penalty(self, tester):
        """Sequence risk starts 25% lower and never beats base case minus the penalty floor."""
        projection = make_projection()
        base = tester.base_case(projection)
        sequence = tester.sequence_risk(projection)
        assert sequence.starting_balance == pytest.approx(projection.projected_portfolio_at_retirement * 0.75)
        assert sequence.success_probability <= max(base.success_probability - 20, 5)
        assert sequence.success_probability >= 5

    def test_tax_drag_grosses_up_withdrawal(self, tester):
        projection = make_projection()
        scenario = tester.tax_longevity(projection, tax_bucket_later_pct=50)
        assert scenario.annual_withdrawal == pytest.approx(5000 * 12 * 1.16)

    def test_shortfall_age_is_retirement_age_plus_year(self, tester):
        projection = make_projection(projected_portfolio_at_retirement=100000, monthly_income_target=5000)
        base = tester.base_case(projection)
        assert base.projected_shortfall_age is not None
        assert base.projected_shortfall_age == 65 + base.years_simulated


# =============================================================================
# SCORING TESTS
# =============================================================================

class TestScoring:
    """Test sub-scores and the overall grade."""

    @pytest.fixture
    def scoring(self):
        return ScoringEngine()

    def test_income_adequacy_bands(self, scoring):
        assert scoring.income_adequacy_score(
            make_projection(monthly_income_projected=5000, monthly_income_target=5000)
        ) == 85
        assert scoring.income_adequacy_score(
            make_projection(monthly_income_projected=2000, monthly_income_target=5000)
        ) == 10
        assert scoring.income_adequacy_score(make_projection(monthly_income_target=0)) == 100

    def test_tax_risk_deductions(self, scoring):
        metrics = ComputedMetrics(tax_bucket_later_pct=80, tax_bucket_never_pct=5, tax_bucket_now_pct=15)
        assert scoring.tax_risk_score(metrics) == 45

    def test_sequence_risk_fallback_to_index(self, scoring):
        """Without scenarios the supplied index is used, floored at 10."""
        assert scoring.sequence_risk_score([], ComputedMetrics(seq_risk_index=30)) == 70
        assert scoring.sequence_risk_score([], ComputedMetrics(seq_risk_index=95)) == 10

    def test_guaranteed_income_bonus_at_75_percent(self, scoring):
        """75% guaranteed coverage earns the 60%+ bonus tier."""
        projection = make_projection(
            income_sources=IncomeSourceProjection(social_security=3000, pension=750),
            monthly_income_target=5000,
            gap_percentage=25,
        )
        # 100 - 15 (gap > 20%) + 10 (guaranteed >= 60%)
        assert scoring.longevity_risk_score(projection, []) == 95

    def test_liquidity_bands(self, scoring):
        assert scoring.liquidity_score(ComputedMetrics(liquidity_runway_months=12)) == 95
        assert scoring.liquidity_score(ComputedMetrics(liquidity_runway_months=0.5)) == 10

    def test_protection_deductions(self, scoring):
        metrics = ComputedMetrics(protection_gap=600000, disability_gap=3000, ltc_gap=0)
        assert scoring.protection_score(metrics) == 60

    def test_overall_is_weighted_sum(self, scoring):
        sub_scores = SubScores(
            income_adequacy=80, tax_risk=60, sequence_risk=70,
            longevity_risk=90, liquidity=50, protection=40,
        )
        expected = round(80 * 0.25 + 60 * 0.15 + 70 * 0.20 + 90 * 0.20 + 50 * 0.10 + 40 * 0.10)
        overall = scoring.score(sub_scores)
        assert overall.score == expected
        assert overall.grade == get_grade(expected)

    def test_overall_rounds_half_up(self, scoring):
        """A weighted score landing exactly on .5 rounds up."""
        sub_scores = SubScores(
            income_adequacy=50, tax_risk=0, sequence_risk=0,
            longevity_risk=0, liquidity=0, protection=0,
        )
        # 50 * 0.25 = 12.5
        assert scoring.calculate_overall_score(sub_scores) == 13

    @pytest.mark.parametrize("portfolio,target", [(0, 8000), (450000, 5000), (5000000, 3000)])
    def test_sub_scores_within_bounds(self, scoring, portfolio, target):
        """Risk sub-scores stay in [10, 100] across very different households."""
        projection = make_projection(projected_portfolio_at_retirement=portfolio, monthly_income_target=target)
        scenarios = StressTester().run_all(projection, 70)
        metrics = ComputedMetrics(seq_risk_index=80, protection_gap=900000, disability_gap=9000, ltc_gap=9000)
        sub_scores = scoring.calculate_sub_scores(projection, scenarios, metrics)
        for name, value in sub_scores.model_dump().items():
            low = 0 if name == "income_adequacy" else 10
            assert low <= value <= 100


# =============================================================================
# ANNUITY SUITABILITY TESTS
# =============================================================================

class TestAnnuitySuitability:
    """Test the fixed index annuity fit engine."""

    @pytest.fixture
    def engine(self):
        return AnnuitySuitabilityEngine()

    @pytest.fixture
    def income_seeker(self):
        return ClientProfile(primary_retirement_goal=PrimaryRetirementGoal.SECURE_GUARANTEED_INCOME)

    @pytest.fixture
    def gap_projection(self):
        # 50% gap, Social Security covers a third of essentials
        return make_projection(social_security=1000, portfolio_withdrawal=1500)

    def test_thin_reserves_and_high_liquidity_disqualify(self, engine, gap_projection):
        """Two months of reserves plus high near-term liquidity need means not fit yet."""
        result = engine.evaluate(
            ClientProfile(),
            ProtectionHealth(emergency_fund_months=2),
            PlanningReadiness(near_term_liquidity_need="high"),
            gap_projection,
        )
        assert result.disqualified
        assert result.fit == FitCategory.NOT_RECOMMENDED
        assert result.fit_label == "Not fit yet"
        assert result.strategy == AnnuityStrategy.NOT_FIT_YET
        assert "emergency reserves" in result.disqualification_reason
        assert "liquidity" in result.disqualification_reason

    def test_disqualification_dominates_positive_signals(self, engine, income_seeker, gap_projection):
        """Every positive signal still cannot lift a disqualified client above the floor."""
        result = engine.evaluate(
            income_seeker,
            ProtectionHealth(emergency_fund_months=2, prefers_guaranteed_income=True),
            PlanningReadiness(
                near_term_liquidity_need="high",
                sequence_risk_concern="high",
                longevity_concern="high",
                income_stability="stable",
                wants_monthly_paycheck_feel=True,
            ),
            gap_projection,
        )
        assert result.fit == FitCategory.NOT_RECOMMENDED
        assert result.score <= 15
        assert len(result.reasons) > 0

    def test_strong_fit_income_floor(self, engine, income_seeker, gap_projection):
        result = engine.evaluate(
            income_seeker,
            ProtectionHealth(emergency_fund_months=8),
            PlanningReadiness(
                near_term_liquidity_need="low",
                sequence_risk_concern="high",
                longevity_concern="high",
                income_stability="stable",
            ),
            gap_projection,
        )
        assert not result.disqualified
        assert result.fit == FitCategory.STRONG
        assert result.score == 100
        assert result.strategy == AnnuityStrategy.INCOME_FLOOR

    def test_covered_client_only_explores(self, engine):
        """Guaranteed income already covering essentials adds friction."""
        covered = make_projection(social_security=3000, portfolio_withdrawal=3000, gap_percentage=0)
        result = engine.evaluate(
            ClientProfile(), ProtectionHealth(emergency_fund_months=6), PlanningReadiness(), covered
        )
        assert result.score == 0
        assert result.fit == FitCategory.EXPLORE
        assert result.strategy == AnnuityStrategy.OPTIONAL
        assert any("already covers" in f for f in result.friction)

    def test_high_sequence_concern_buffers_red_zone(self, engine, gap_projection):
        """Without a guaranteed-income wish, high sequence concern picks the red-zone buffer."""
        result = engine.evaluate(
            ClientProfile(),
            ProtectionHealth(emergency_fund_months=8),
            PlanningReadiness(near_term_liquidity_need="low", sequence_risk_concern="high"),
            gap_projection,
        )
        # 20 (gap) + 15 (coverage) + 10 (sequence) + 10 (reserves) + 10 (horizon)
        assert result.score == 65
        assert result.fit == FitCategory.MODERATE
        assert result.strategy == AnnuityStrategy.BUFFER_REDZONE

    def test_near_retirement_buffers_red_zone(self, engine):
        close = make_projection(years_to_retirement=4, social_security=1000, portfolio_withdrawal=1500)
        result = engine.evaluate(
            ClientProfile(),
            ProtectionHealth(emergency_fund_months=8),
            PlanningReadiness(near_term_liquidity_need="low"),
            close,
        )
        assert result.strategy == AnnuityStrategy.BUFFER_REDZONE

    def test_medium_sequence_concern_with_gap_protects_growth(self, engine, gap_projection):
        result = engine.evaluate(
            ClientProfile(),
            ProtectionHealth(emergency_fund_months=8),
            PlanningReadiness(near_term_liquidity_need="low"),
            gap_projection,
        )
        assert result.score == 55
        assert result.fit == FitCategory.MODERATE
        assert result.strategy == AnnuityStrategy.GROWTH_PROTECTION

    def test_thresholds_come_from_assumptions(self, income_seeker, gap_projection):
        """Raising the strong cut point above 100 caps the fit at moderate."""
        engine = AnnuitySuitabilityEngine(load_assumptions({"annuity_suitability": {"strong_threshold": 101}}))
        result = engine.evaluate(
            income_seeker,
            ProtectionHealth(emergency_fund_months=8),
            PlanningReadiness(
                near_term_liquidity_need="low",
                sequence_risk_concern="high",
                longevity_concern="high",
                income_stability="stable",
            ),
            gap_projection,
        )
        assert result.score == 100
        assert result.fit == FitCategory.MODERATE
        assert result.strategy == AnnuityStrategy.INCOME_FLOOR

    def test_next_steps_differ_by_fit(self, engine, income_seeker, gap_projection):
        fit = engine.evaluate(
            income_seeker,
            ProtectionHealth(emergency_fund_months=8),
            PlanningReadiness(near_term_liquidity_need="low"),
            gap_projection,
        )
        not_fit = engine.evaluate(
            income_seeker,
            ProtectionHealth(emergency_fund_months=1),
            PlanningReadiness(near_term_liquidity_need="high"),
            gap_projection,
        )
        assert fit.next_steps != not_fit.next_steps
        assert any("Learn how" in step for step in not_fit.next_steps)

    def test_text_lists_are_bounded(self, engine, gap_projection):
        result = engine.evaluate(
            ClientProfile(),
            ProtectionHealth(emergency_fund_months=1),
            PlanningReadiness(near_term_liquidity_need="high", debt_pressure_level="high"),
            make_projection(years_to_retirement=1),
        )
        assert len(result.reasons) <= 6
        assert len(result.friction) <= 5
        assert len(result.not_if) <= 6
        assert len(result.fix_first) <= 4
        assert len(result.next_steps) <= 5


# =============================================================================
# INSURANCE SUITABILITY TESTS
# =============================================================================

class TestInsuranceSuitability:
    """Test the indexed universal life fit engine."""

    @pytest.fixture
    def engine(self):
        return InsuranceSuitabilityEngine()

    @pytest.fixture
    def high_earner(self):
        return IncomeExpenses(w2_income=20000, fixed_expenses=5000, variable_expenses=3000, employer_match_pct=4)

    @pytest.fixture
    def committed(self):
        return PlanningReadiness(
            income_stability="stable",
            funding_commitment_years="20+",
            funding_discipline="high",
            near_term_liquidity_need="low",
            current_tax_bracket="32",
            wants_tax_free_bucket=True,
        )

    def evaluate(self, engine, income, protection, planning, metrics=None):
        return engine.evaluate(
            ClientProfile(dependents=2),
            income,
            protection,
            planning,
            metrics or ComputedMetrics(tax_bucket_never_pct=10),
            25,
        )

    def test_strong_fit(self, engine, high_earner, committed):
        result = self.evaluate(engine, high_earner, ProtectionHealth(emergency_fund_months=8), committed)
        assert not result.disqualified
        assert result.fit == FitCategory.STRONG
        assert result.score == 100
        assert result.strategy is None

    def test_thin_emergency_fund_disqualifies(self, engine, high_earner):
        """Reserves under three months disqualify regardless of other answers."""
        result = self.evaluate(
            engine, high_earner, ProtectionHealth(emergency_fund_months=2),
            PlanningReadiness(near_term_liquidity_need="high"),
        )
        assert result.disqualified
        assert result.fit == FitCategory.NOT_RECOMMENDED
        assert result.score <= 20

    def test_lowest_ceiling_wins_and_reasons_combine(self, engine, high_earner, committed):
        planning = committed.model_copy(update={"income_stability": IncomeStability.UNSTABLE})
        result = self.evaluate(engine, high_earner, ProtectionHealth(emergency_fund_months=1), planning)
        assert result.score <= 15
        assert "Unstable income" in result.disqualification_reason
        assert "emergency fund" in result.disqualification_reason

    def test_uncaptured_match_disqualifies(self, engine, high_earner, committed):
        planning = committed.model_copy(update={"contributing_to_401k_match": False})
        result = self.evaluate(engine, high_earner, ProtectionHealth(emergency_fund_months=8), planning)
        assert result.disqualified
        assert result.score <= 25
        assert "employer match" in result.disqualification_reason

    def test_high_expense_ratio_disqualifies(self, engine, committed):
        income = IncomeExpenses(w2_income=10000, fixed_expenses=6000, variable_expenses=3000)
        result = self.evaluate(engine, income, ProtectionHealth(emergency_fund_months=8), committed)
        assert result.disqualified
        assert "90%" in result.disqualification_reason

    def test_zero_earned_income_fails_expense_check(self, engine, committed):
        """No earned income means every dollar of expenses is unfunded."""
        income = IncomeExpenses(w2_income=0, fixed_expenses=3000, variable_expenses=1000)
        result = self.evaluate(engine, income, ProtectionHealth(emergency_fund_months=8), committed)
        assert result.disqualified
        assert result.fit == FitCategory.NOT_RECOMMENDED
        assert result.score <= 20
        assert "100%" in result.disqualification_reason
        check = next(c for c in result.preconditions if c.check_id == "expense_ratio")
        assert check.status == CheckStatus.FAIL
        assert check.value == "100%"

    def test_disqualified_result_has_no_endorsements(self, engine, high_earner, committed):
        """Positive signals are skipped once any disqualifier fires."""
        planning = committed.model_copy(update={"contributing_to_401k_match": False})
        result = self.evaluate(engine, high_earner, ProtectionHealth(emergency_fund_months=8), planning)
        assert result.disqualified
        assert result.reasons == []
        assert result.friction == []

    def test_expense_ceiling_comes_from_assumptions(self, committed):
        engine = InsuranceSuitabilityEngine(load_assumptions({"insurance_suitability": {"max_expense_ratio": 0.95}}))
        income = IncomeExpenses(w2_income=10000, fixed_expenses=6000, variable_expenses=3000)
        result = self.evaluate(engine, income, ProtectionHealth(emergency_fund_months=8), committed)
        assert not result.disqualified
        assert result.fit == FitCategory.STRONG

    def test_fit_label_for_lowest_tier(self, engine, high_earner):
        result = self.evaluate(
            engine, high_earner, ProtectionHealth(emergency_fund_months=0), PlanningReadiness()
        )
        assert result.fit_label == "Not recommended"


# =============================================================================
# GUARDRAIL TESTS
# =============================================================================

class TestGuardrails:
    """Test best-interest data completeness and suitability constraints."""

    @pytest.fixture
    def guardrails(self):
        return BestInterestGuardrails(as_of=AS_OF)

    def test_complete_data(self, guardrails, profile, income, planning):
        check = guardrails.check_data_completeness(profile, income, planning, total_assets=245000)
        assert check.completeness_score == 100
        assert check.is_complete
        assert not check.education_only_mode
        assert check.reason == "All required data present for personalized recommendations"

    def test_nothing_supplied_is_education_only(self, guardrails):
        check = guardrails.check_data_completeness(None, None, None)
        assert check.completeness_score == 0
        assert len(check.missing_fields) == 8
        assert check.education_only_mode

    def test_three_missing_fields(self, guardrails, income, planning):
        """Three gaps are incomplete but still personalized."""
        planning = planning.model_copy(update={"behavior_in_down_market": None})
        check = guardrails.check_data_completeness(ClientProfile(), income, planning, total_assets=1000)
        assert len(check.missing_fields) == 3
        assert not check.is_complete
        assert not check.education_only_mode
        assert check.completeness_score == round(5 / 8 * 100)

    def test_missing_planning_is_education_only(self, guardrails, profile, income, protection):
        result = guardrails.run(profile, income, protection, None, 245000, 25)
        assert result.education_only
        assert result.education_reason == MISSING_PLANNING_REASON
        assert result.suitability_guardrails == []
        assert not result.all_guardrails_pass
        assert result.education_content

    def test_all_constraints_pass(self, guardrails, profile, income, protection, planning):
        result = guardrails.run(profile, income, protection, planning, 245000, 10)
        assert result.all_guardrails_pass
        assert not result.education_only
        assert result.explicit_rejection_reasons == []
        assert all(check.passes for check in result.suitability_guardrails)

    def test_young_long_horizon_blocks(self, guardrails, income, protection, planning):
        young = ClientProfile(dob=date(1995, 1, 15), retirement_age=65)
        result = guardrails.run(young, income, protection, planning, 245000, 35)
        blocking = result.blocking
        assert [c.constraint_type for c in blocking] == [ConstraintType.AGE_HORIZON]
        assert not result.all_guardrails_pass
        assert not result.education_only
        assert blocking[0].message in result.explicit_rejection_reasons

    def test_age_constraint_override(self, guardrails, income, protection, planning):
        """Strong longevity worry, paycheck preference and risk aversion waive the age block."""
        young = ClientProfile(dob=date(1995, 1, 15), retirement_age=65)
        anxious = planning.model_copy(update={
            "longevity_concern": ConcernLevel.HIGH,
            "wants_monthly_paycheck_feel": True,
            "behavior_in_down_market": DownMarketBehavior.PANIC_SELL,
        })
        result = guardrails.run(young, income, protection, anxious, 245000, 35)
        age_check = [c for c in result.suitability_guardrails if c.constraint_type == ConstraintType.AGE_HORIZON]
        assert age_check and age_check[0].passes

    def test_age_constraint_needs_birth_date(self, guardrails):
        checks = guardrails.check_suitability_constraints(
            PlanningReadiness(), ProtectionHealth(emergency_fund_months=6), 35
        )
        assert ConstraintType.AGE_HORIZON not in [c.constraint_type for c in checks]

    def test_two_blocks_force_education_only(self, guardrails, profile, income, planning):
        planning = planning.model_copy(update={"near_term_liquidity_need": ConcernLevel.HIGH})
        result = guardrails.run(profile, income, ProtectionHealth(emergency_fund_months=2), planning, 245000, 10)
        assert result.education_only
        assert result.education_reason == "Multiple suitability concerns: emergency_fund, liquidity"
        assert result.explicit_rejection_reasons[0].startswith("Based on your")
        assert "insufficient emergency reserves" in result.explicit_rejection_reasons[0]

    def test_goal_conflicts_recorded(self, guardrails):
        planning = PlanningReadiness(goal_priorities=GoalPriorityRanking(
            legacy_estate=1, guaranteed_income=4, flexibility_liquidity=2, inflation_protection=3
        ))
        checks = guardrails.check_suitability_constraints(planning, ProtectionHealth(emergency_fund_months=6), 10)
        conflicts = [c for c in checks if c.constraint_type == ConstraintType.GOAL_CONFLICT]
        assert len(conflicts) == 2
        assert not any(c.passes for c in conflicts)
        assert not any(c.is_blocking for c in conflicts)

    def test_rejection_reason_without_factors(self, guardrails):
        planning = PlanningReadiness(
            near_term_liquidity_need="low", willingness_illiquidity_years=10, self_assessed_health="good"
        )
        reason = guardrails.build_rejection_reason(planning, ProtectionHealth(emergency_fund_months=6))
        assert reason.startswith("Current financial position")

    @pytest.mark.parametrize("priorities,extra,expected", [
        (None, {}, False),
        ({"guaranteed_income": 1, "flexibility_liquidity": 2, "legacy_estate": 4, "inflation_protection": 3}, {}, True),
        ({"guaranteed_income": 3, "flexibility_liquidity": 2, "legacy_estate": 4, "inflation_protection": 1}, {}, False),
        ({"guaranteed_income": 3, "flexibility_liquidity": 4, "legacy_estate": 1, "inflation_protection": 2}, {}, False),
        ({"guaranteed_income": 3, "flexibility_liquidity": 4, "legacy_estate": 2, "inflation_protection": 1},
         {"longevity_concern": "high"}, True),
    ])
    def test_should_include_guaranteed_income(self, guardrails, priorities, extra, expected):
        planning = PlanningReadiness(goal_priorities=priorities, **extra)
        include, reason = guardrails.should_include_guaranteed_income(planning)
        assert include is expected
        assert reason


# =============================================================================
# ALLOCATION TESTS
# =============================================================================

class TestAllocation:
    """Test the savings waterfall."""

    @pytest.fixture
    def engine(self):
        return AllocationEngine(as_of=AS_OF)

    def allocate(self, engine, profile, income, recommendations=(), guardrails=None, **kwargs):
        return engine.compute_savings_allocation(
            profile,
            income,
            kwargs.get("protection", ProtectionHealth()),
            kwargs.get("metrics", ComputedMetrics()),
            kwargs.get("projection", make_projection()),
            list(recommendations),
            guardrails,
        )

    @staticmethod
    def step(result, vehicle):
        return next(s for s in result.savings_waterfall if s.vehicle == vehicle)

    def test_employer_match_first(self, engine, profile):
        """$120k income with a 3% match captures $3,600/yr ($300/mo) first."""
        income = IncomeExpenses(w2_income=10000, employer_match_pct=3, fixed_expenses=4000, variable_expenses=2000)
        result = self.allocate(engine, profile, income)
        first = result.savings_waterfall[0]
        assert first.priority == 1
        assert first.vehicle == SavingsVehicle.K401_MATCH
        assert first.annual_limit == 3600
        assert first.monthly_limit == 300
        assert first.suggested_monthly == 300
        assert result.monthly_allocation_summary.total_savings_capacity == 4000
        assert result.monthly_allocation_summary.remaining == 0
        assert result.tax_efficiency_score == 62
        assert result.risk_balance_score == 50

    def test_backdoor_roth_above_phase_out(self, engine):
        """Single filer at $200k is redirected to a backdoor Roth."""
        profile = ClientProfile(dob=date(1985, 1, 15), filing_status=FilingStatus.SINGLE)
        income = IncomeExpenses(w2_income=200000 / 12)
        roth = self.step(self.allocate(engine, profile, income), SavingsVehicle.BACKDOOR_ROTH)
        assert roth.label == "Backdoor Roth IRA"
        assert roth.is_applicable
        assert roth.not_applicable_reason is None

    def test_partial_roth_in_phase_out(self, engine):
        profile = ClientProfile(dob=date(1985, 1, 15))
        income = IncomeExpenses(w2_income=12500)
        roth = self.step(self.allocate(engine, profile, income), SavingsVehicle.ROTH_IRA)
        assert roth.label == "Roth IRA (Partial)"
        assert roth.annual_limit == 3500

    def test_married_joint_keeps_full_roth(self, engine):
        profile = ClientProfile(dob=date(1985, 1, 15), filing_status=FilingStatus.MARRIED_JOINT)
        income = IncomeExpenses(w2_income=200000 / 12)
        roth = self.step(self.allocate(engine, profile, income), SavingsVehicle.ROTH_IRA)
        assert roth.annual_limit == 7000

    def test_no_match_is_skipped_with_reason(self, engine, profile):
        result = self.allocate(engine, profile, IncomeExpenses(w2_income=8000))
        first = result.savings_waterfall[0]
        assert not first.is_applicable
        assert first.suggested_monthly == 0
        assert first.not_applicable_reason == "No employer match available in your plan"
        assert self.step(result, SavingsVehicle.K401_MAX).annual_limit == 23000

    def test_conservation_and_monotonic_remaining(self, engine, profile, income, protection, metrics):
        """Suggestions never exceed capacity and the running remainder never grows."""
        result = self.allocate(engine, profile, income, protection=protection, metrics=metrics)
        capacity = income.monthly_savings_capacity
        remaining = capacity
        for step in result.savings_waterfall:
            assert step.suggested_monthly <= remaining + 1e-9
            remaining -= step.suggested_monthly
            assert remaining >= -1e-9
        allocated = sum(s.suggested_monthly for s in result.savings_waterfall)
        assert allocated <= capacity + 1e-9
        assert result.monthly_allocation_summary.remaining == pytest.approx(capacity - allocated)

    def test_priorities_are_sequential(self, engine, profile, income):
        result = self.allocate(engine, profile, income)
        assert [s.priority for s in result.savings_waterfall] == list(range(1, len(result.savings_waterfall) + 1))

    def test_annuity_included_when_criteria_met(self, engine):
        profile = ClientProfile(
            dob=date(1985, 1, 15), primary_retirement_goal=PrimaryRetirementGoal.SECURE_GUARANTEED_INCOME
        )
        result = self.allocate(
            engine,
            profile,
            IncomeExpenses(w2_income=20000),
            recommendations=[make_recommendation(ProductType.ANNUITY, FitCategory.MODERATE)],
            projection=make_projection(gap_percentage=30),
        )
        annuity = self.step(result, SavingsVehicle.ANNUITY)
        assert annuity.is_applicable
        assert annuity.suggested_monthly == 2000
        assert annuity.fit_score == 75

    def test_annuity_excluded_without_fit(self, engine, profile, income):
        result = self.allocate(
            engine, profile, income,
            recommendations=[make_recommendation(ProductType.ANNUITY, FitCategory.NOT_RECOMMENDED)],
        )
        annuity = self.step(result, SavingsVehicle.ANNUITY)
        assert not annuity.is_applicable
        assert annuity.suggested_monthly == 0
        assert "poor match" in annuity.not_applicable_reason

    def test_failed_guardrails_hold_products(self, engine, profile, income):
        guardrails = BestInterestGuardrails(as_of=AS_OF).run(profile, income, None, None, 0, 25)
        result = self.allocate(
            engine, profile, income,
            recommendations=[
                make_recommendation(ProductType.ANNUITY, FitCategory.STRONG),
                make_recommendation(ProductType.PERMANENT_INSURANCE, FitCategory.STRONG),
            ],
            guardrails=guardrails,
        )
        for vehicle in (SavingsVehicle.ANNUITY, SavingsVehicle.PERMANENT_INSURANCE):
            step = self.step(result, vehicle)
            assert not step.is_applicable
            assert step.not_applicable_reason == MISSING_PLANNING_REASON

    def test_taxable_only_with_leftover(self, engine, profile):
        income = IncomeExpenses(w2_income=10000, employer_match_pct=3, fixed_expenses=9900)
        result = self.allocate(engine, profile, income)
        assert result.savings_waterfall[0].suggested_monthly == 100
        assert SavingsVehicle.TAXABLE not in [s.vehicle for s in result.savings_waterfall]
        assert result.monthly_allocation_summary.remaining == 0

    def test_disclaimers_name_contribution_year(self, engine, profile, income):
        result = self.allocate(engine, profile, income)
        assert any("2024" in d for d in result.disclaimers)

    def test_allocation_sources(self):
        income = IncomeExpenses(
            w2_income=10000, fixed_expenses=6000, monthly_checking_balance=50000,
            has_old_401k=True, old_401k_balance=300000,
        )
        sources = compute_allocation_sources(
            income, protection_gap=600000, income_gap_monthly=2000,
            has_guaranteed_income_gap=True, annuity_eligible=True, insurance_eligible=True,
        )
        assert sources.suggested_insurance_allocation == 24000
        assert sources.suggested_annuity_allocation == pytest.approx(120000)
        assert sources.total_available_for_allocation == 50000 + 300000 + 4000 * 12

    def test_allocation_sources_minimums(self):
        income = IncomeExpenses(monthly_checking_balance=5000, has_old_401k=True, old_401k_balance=50000)
        sources = compute_allocation_sources(income, 600000, 2000, True, True, True)
        assert sources.suggested_insurance_allocation == 0
        assert sources.suggested_annuity_allocation == 0


# =============================================================================
# READINESS PIPELINE TESTS
# =============================================================================

class TestReadiness:
    """End-to-end tests for the orchestrator."""

    @pytest.fixture
    def engine(self):
        return RetirementReadinessEngine(as_of=AS_OF)

    def run(self, engine, profile, income, assets, protection, metrics, planning, liabilities=()):
        return engine.compute_retirement_readiness(
            profile, income, assets, list(liabilities), protection, metrics, planning
        )

    def test_full_pipeline(self, engine, profile, income, assets, protection, metrics, planning):
        result = self.run(engine, profile, income, assets, protection, metrics, planning)
        assert len(result.scenarios) == 3
        assert [r.product for r in result.recommendations] == [
            ProductType.ANNUITY, ProductType.PERMANENT_INSURANCE
        ]
        assert 1 <= len(result.key_insights) <= 5
        assert 1 <= len(result.action_items) <= 4
        assert result.generated_at == AS_OF
        assert result.overall_grade == get_grade(result.overall_score)

    def test_overall_is_weighted_sub_scores(self, engine, profile, income, assets, protection, metrics, planning):
        result = self.run(engine, profile, income, assets, protection, metrics, planning)
        assert result.overall_score == ScoringEngine().calculate_overall_score(result.sub_scores)

    def test_idempotent(self, engine, profile, income, assets, protection, metrics, planning):
        """Identical inputs produce byte-identical output."""
        first = self.run(engine, profile, income, assets, protection, metrics, planning)
        second = self.run(engine, profile, income, assets, protection, metrics, planning)
        assert first.model_dump_json() == second.model_dump_json()

    def test_module_entry_point_matches_engine(self, engine, profile, income, assets, protection, metrics, planning):
        via_engine = self.run(engine, profile, income, assets, protection, metrics, planning)
        via_function = compute_retirement_readiness(
            profile, income, assets, [], protection, metrics, planning, as_of=AS_OF
        )
        assert via_engine == via_function

    def test_thin_reserves_disqualify_both_products(self, engine, profile, income, assets, metrics, planning):
        planning = planning.model_copy(update={"near_term_liquidity_need": ConcernLevel.HIGH})
        result = self.run(
            engine, profile, income, assets, ProtectionHealth(emergency_fund_months=2), metrics, planning
        )
        assert all(r.disqualified for r in result.recommendations)
        assert all(r.fit == FitCategory.NOT_RECOMMENDED for r in result.recommendations)

    def test_missing_planning_is_education_only(self, engine, profile, income, assets, protection, metrics):
        result = self.run(engine, profile, income, assets, protection, metrics, None)
        assert result.education_only
        assert result.guardrails.education_reason == MISSING_PLANNING_REASON
        assert not any(a.startswith("Schedule consultation") for a in result.action_items)

    def test_education_only_holds_product_recommendations(self, engine, profile, income, assets, protection, metrics):
        """Education-only mode downgrades every product to the lowest fit."""
        result = self.run(engine, profile, income, assets, protection, metrics, None)
        assert [r.product for r in result.recommendations] == [
            ProductType.ANNUITY, ProductType.PERMANENT_INSURANCE
        ]
        for rec in result.recommendations:
            assert rec.fit == FitCategory.NOT_RECOMMENDED
            assert rec.disqualified
            assert rec.disqualification_reason == MISSING_PLANNING_REASON
            assert rec.reasons == []
            assert rec.next_steps == result.guardrails.education_content[:5]
        annuity, insurance = result.recommendations
        assert annuity.strategy == AnnuityStrategy.NOT_FIT_YET
        assert annuity.fit_label == "Not fit yet"
        assert annuity.score <= 15
        assert insurance.score <= 25

    def test_passing_guardrails_keep_recommendations(self, engine, profile, income, assets, protection, metrics, planning):
        result = self.run(engine, profile, income, assets, protection, metrics, planning)
        assert not result.education_only
        assert any(r.fit != FitCategory.NOT_RECOMMENDED for r in result.recommendations)

    def test_high_interest_debt_action(self, engine, profile, income, assets, protection, metrics, planning):
        card = Liability(liability_type=LiabilityType.CREDIT_CARD, balance=12000, rate=22, payment_monthly=400)
        result = self.run(engine, profile, income, assets, protection, metrics, planning, [card])
        assert any("high-interest debt" in a for a in result.action_items)

    def test_alternate_assumptions(self, profile, income, assets, protection, metrics, planning):
        """A longer planning horizon flows through without touching module state."""
        engine = RetirementReadinessEngine(load_assumptions({"longevity": {"planning_age": 100}}), AS_OF)
        result = self.run(engine, profile, income, assets, protection, metrics, planning)
        base = next(s for s in result.scenarios if s.scenario_name == StressScenario.BASE_CASE)
        assert "age 100" in base.key_insight or base.projected_shortfall_age is not None
        assert DEFAULT_ASSUMPTIONS.longevity.planning_age == 95


# =============================================================================
# STRATEGY COMPARISON TESTS
# =============================================================================

class TestScenarioComparison:
    """Test the Current Path vs Optimized Strategy comparison."""

    @pytest.fixture
    def engine(self):
        return ScenarioComparisonEngine()

    @pytest.fixture
    def projection(self, profile, income, assets):
        return ProjectionEngine(as_of=AS_OF).calculate_projection(profile, income, assets)

    @pytest.fixture
    def balanced_metrics(self):
        # Neither tax bucket is lopsided
        return ComputedMetrics(tax_bucket_later_pct=40, tax_bucket_never_pct=30)

    def test_required_minimum_distribution(self):
        """No RMD before 73; the divisor is 26.5 at 73."""
        assert required_minimum_distribution(265000, 72) == 0
        assert required_minimum_distribution(265000, 73) == pytest.approx(10000)
        assert required_minimum_distribution(0, 80) == 0

    def test_current_path_without_savings_runs_out_at_retirement(self, engine):
        projection = make_projection(projected_portfolio_at_retirement=0, social_security=2000)
        result = engine.simulate_current_path(projection, 0.6)
        assert result.scenario_name == StrategyPath.CURRENT_PATH
        assert result.money_runs_out_age == 65
        assert result.retirement_income_gross == 5000
        # 3,000 a month from the portfolio taxed at 22%
        assert result.retirement_income_net == pytest.approx(4340)
        assert result.lifetime_taxes_paid == 0
        assert len(result.yearly_projections) == 31

    def test_covered_household_only_takes_rmds(self, engine):
        """Guaranteed income covers the target, so only RMDs leave the portfolio."""
        projection = make_projection(social_security=5000, portfolio_withdrawal=0)
        result = engine.simulate_current_path(projection, 1.0)
        assert result.money_runs_out_age is None
        assert result.income_sources.portfolio_withdrawal == 0
        assert all(y.withdrawal_amount == 0 for y in result.yearly_projections if y.age < 73)
        assert result.yearly_projections[0].portfolio_value == pytest.approx(450000 * 1.06)
        first_rmd = next(y for y in result.yearly_projections if y.age == 73)
        assert first_rmd.withdrawal_amount > 0
        assert first_rmd.taxes_paid == pytest.approx(first_rmd.withdrawal_amount * 0.22)

    def test_annuity_income_rider(self, engine, balanced_metrics):
        projection = make_projection(social_security=1000, portfolio_withdrawal=1500)
        protection = ProtectionHealth(emergency_fund_months=8, prefers_guaranteed_income=True)
        planning = PlanningReadiness(legacy_priority="low")
        result = engine.compare(
            ClientProfile(), IncomeExpenses(), [], protection, planning, balanced_metrics, projection
        )
        assert not result.includes_insurance
        assert result.includes_annuity
        assert result.annuity_reason == "Annuity included because: prefers guaranteed income, 50% income gap"

        optimized = result.optimized_strategy
        assert optimized.annuity_premium == pytest.approx(67500)
        assert optimized.annuity_guaranteed_income == pytest.approx(67500 * 1.055 ** 10 * 0.05 / 12)
        assert optimized.portfolio_at_retirement == pytest.approx(382500)
        assert optimized.has_guaranteed_income
        assert optimized.insurance_annual_premium is None
        assert optimized.market_risk_exposure == MarketRiskExposure.MODERATE
        assert result.comparison_metrics.market_risk_reduction

    def test_insurance_funded_from_contributions(self, engine, balanced_metrics):
        """Two years of 12% of a $10,000 contribution at the 5.5% illustrated rate."""
        projection = make_projection(years_to_retirement=2, social_security=3000, portfolio_withdrawal=2000)
        income = IncomeExpenses(annual_retirement_contribution=10000)
        planning = PlanningReadiness(wants_tax_free_bucket=True, sequence_risk_concern="low")
        result = engine.compare(
            ClientProfile(), income, [], ProtectionHealth(), planning, balanced_metrics, projection
        )
        assert result.includes_insurance
        assert not result.includes_annuity
        assert result.insurance_reason == "IUL included because: preference for tax-free income"

        optimized = result.optimized_strategy
        cash_value = ((1200 * 1.055) + 1200) * 1.055
        assert optimized.insurance_annual_premium == pytest.approx(1200)
        assert optimized.insurance_projected_cash_value == pytest.approx(cash_value)
        assert optimized.insurance_tax_free_income == pytest.approx(cash_value * 0.8 / 20 / 12)
        assert optimized.insurance_death_benefit == pytest.approx(cash_value * 1.5)
        # Redirected premiums would have grown at 6% in the portfolio
        assert optimized.portfolio_at_retirement == pytest.approx(450000 - 1200 * 2.06)
        assert optimized.has_tax_free_income
        assert optimized.legacy_value_at_90 >= optimized.insurance_death_benefit

    def test_unsuitable_products_are_left_out(self, engine, balanced_metrics):
        projection = make_projection(years_to_retirement=2, social_security=3000, portfolio_withdrawal=2000)
        planning = PlanningReadiness(wants_tax_free_bucket=True, sequence_risk_concern="low")
        held = make_recommendation(
            ProductType.PERMANENT_INSURANCE,
            FitCategory.NOT_RECOMMENDED,
            disqualification_reason="Build an emergency fund first.",
        )
        result = engine.compare(
            ClientProfile(), IncomeExpenses(annual_retirement_contribution=10000), [],
            ProtectionHealth(), planning, balanced_metrics, projection, [held],
        )
        assert not result.includes_insurance
        assert result.excluded_products == {ProductType.PERMANENT_INSURANCE: "Build an emergency fund first."}
        assert result.optimized_strategy.market_risk_exposure == MarketRiskExposure.HIGH
        assert not result.comparison_metrics.market_risk_reduction
        assert any("appears adequate" in f for f in result.advisor_summary.conversation_focus)

    def test_full_household(self, engine, profile, income, assets, protection, metrics, planning, projection):
        result = engine.compare(profile, income, assets, protection, planning, metrics, projection)
        assert result.includes_insurance
        assert result.insurance_reason == (
            "IUL included because: over 60% in tax-deferred accounts, under 20% in tax-free vehicles"
        )
        assert result.current_path.scenario_name == StrategyPath.CURRENT_PATH
        assert result.optimized_strategy.scenario_name == StrategyPath.OPTIMIZED_STRATEGY
        assert len(result.current_path.yearly_projections) == 95 - projection.retirement_age + 1
        assert result.comparison_metrics.tax_savings_lifetime > 0
        assert result.advisor_summary.client_objections
        assert result.product_positioning.insurance_explanation
        assert result.disclaimer

    def test_repeatable(self, engine, profile, income, assets, protection, metrics, planning, projection):
        first = engine.compare(profile, income, assets, protection, planning, metrics, projection)
        second = engine.compare(profile, income, assets, protection, planning, metrics, projection)
        assert first.model_dump_json() == second.model_dump_json()


# =============================================================================
# RUN TESTS
# =============================================================================

if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
