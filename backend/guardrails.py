"""
RetireReady - Best-Interest Guardrails
======================================
Gates product recommendations behind two independent checks:

1. Data completeness - eight required facts about the household.
2. Suitability constraints - age, reserves, liquidity, health, horizon,
   experience, goal conflicts and debt pressure.

One blocking constraint fails the guardrail. Two or more (or too much
missing data) switch the whole result to education-only mode.
"""

import logging
from datetime import date
from typing import List, Optional, Tuple

from models import (
    ClientProfile,
    ConcernLevel,
    ConstraintType,
    DataCompletenessCheck,
    DownMarketBehavior,
    GoalPriorityRanking,
    GuardrailCheck,
    GuardrailResult,
    GuardrailSeverity,
    HealthStatus,
    IncomeExpenses,
    InvestmentExperience,
    LongevityHistory,
    PlanningReadiness,
    ProtectionHealth,
    TaxBracketEstimate,
)
from retirement_assumptions import DEFAULT_ASSUMPTIONS, Assumptions, calculate_age

logger = logging.getLogger(__name__)

REQUIRED_FIELD_COUNT = 8
MAX_MISSING_FOR_COMPLETE = 2
MAX_MISSING_BEFORE_EDUCATION_ONLY = 3
EDUCATION_ONLY_BLOCK_COUNT = 2

AGE_MINIMUM_FOR_ANNUITY = 45
AGE_EXCEPTION_YEARS_TO_RETIREMENT = 15
DEFAULT_YEARS_TO_RETIREMENT = 20

RISK_AVERSE_BEHAVIORS = (DownMarketBehavior.PANIC_SELL, DownMarketBehavior.REDUCE_RISK)

MISSING_PLANNING_REASON = (
    "Complete the planning readiness questionnaire to receive personalized recommendations"
)

EDUCATION_CONTENT = [
    "How an emergency fund protects long-term plans from forced withdrawals",
    "Capturing an employer match before any other retirement savings",
    "Tax buckets: taxable, tax-deferred and tax-free money in retirement",
    "How sequence-of-returns risk affects the first years of retirement",
    "Guaranteed income sources: Social Security, pensions and annuities",
    "Trade-offs of long-term insurance products: surrender periods, fees and liquidity",
]


class BestInterestGuardrails:
    """
    Best-interest checks run before any product is recommended.
    """

    def __init__(self, assumptions: Assumptions = DEFAULT_ASSUMPTIONS, as_of: Optional[date] = None):
        self.assumptions = assumptions
        self.current_date = as_of or date.today()

    # =========================================================================
    # DATA COMPLETENESS
    # =========================================================================

    def check_data_completeness(
        self,
        profile: Optional[ClientProfile],
        income: Optional[IncomeExpenses],
        planning: Optional[PlanningReadiness],
        total_assets: float = 0.0,
    ) -> DataCompletenessCheck:
        annual_income = income.earned_monthly_income * 12 if income else 0.0

        fields: List[Tuple[str, bool]] = [
            ("Age/Date of Birth", bool(profile and profile.dob)),
            ("Target Retirement Age", bool(profile and profile.retirement_age)),
            ("Annual Income", annual_income > 0),
            ("Total Assets", total_assets > 0),
            ("Risk Tolerance/Behavior", bool(planning and planning.behavior_in_down_market)),
            ("Liquidity Needs", bool(planning and planning.near_term_liquidity_need)),
            ("Time Horizon", bool(planning and planning.funding_commitment_years)),
            (
                "Tax Bracket Estimate",
                bool(planning and planning.current_tax_bracket != TaxBracketEstimate.NOT_SURE),
            ),
        ]
        missing = [label for label, present in fields if not present]
        present_count = REQUIRED_FIELD_COUNT - len(missing)

        if not missing:
            reason = "All required data present for personalized recommendations"
        elif len(missing) <= MAX_MISSING_FOR_COMPLETE:
            reason = f"Minor data gaps: {', '.join(missing)}. Recommendations may be general."
        else:
            reason = f"Cannot produce personalized recommendations: Missing {', '.join(missing)}"

        return DataCompletenessCheck(
            is_complete=len(missing) <= MAX_MISSING_FOR_COMPLETE,
            missing_fields=missing,
            education_only_mode=len(missing) > MAX_MISSING_BEFORE_EDUCATION_ONLY,
            reason=reason,
            completeness_score=round(present_count / REQUIRED_FIELD_COUNT * 100),
        )

    # =========================================================================
    # SUITABILITY CONSTRAINTS
    # =========================================================================

    def check_suitability_constraints(
        self,
        planning: PlanningReadiness,
        protection: ProtectionHealth,
        years_to_retirement: int,
        current_age: Optional[int] = None,
    ) -> List[GuardrailCheck]:
        """
        Evaluate every constraint and record whether it passes.

        The age constraint is only evaluated when an age is known.
        """
        checks = []
        emergency_months = protection.emergency_fund_months
        priorities = planning.goal_priorities

        if current_age is not None:
            young_and_far = (
                current_age < AGE_MINIMUM_FOR_ANNUITY
                and years_to_retirement > AGE_EXCEPTION_YEARS_TO_RETIREMENT
            )
            # Strong longevity worry, paycheck preference and risk-averse behavior waive it
            override = (
                planning.longevity_concern == ConcernLevel.HIGH
                and planning.wants_monthly_paycheck_feel
                and planning.behavior_in_down_market in RISK_AVERSE_BEHAVIORS
            )
            if young_and_far and not override:
                message = (
                    f"At age {current_age} with {years_to_retirement} years to retirement, focus on "
                    "growth strategies. Guaranteed income products are better suited for ages 50+, "
                    "or those within 15 years of retirement."
                )
            elif young_and_far:
                message = "Strong longevity and stability preferences support considering guaranteed income early."
            else:
                message = "Age and time horizon are appropriate for guaranteed income products."
            checks.append(self._check(
                ConstraintType.AGE_HORIZON, not (young_and_far and not override), GuardrailSeverity.BLOCK, message
            ))

        if emergency_months < 3:
            message = (
                f"Emergency fund of {emergency_months:g} months is below minimum. "
                "Build 3-6 months before committing to illiquid products."
            )
        else:
            message = f"Emergency fund of {emergency_months:g} months meets the minimum."
        checks.append(self._check(
            ConstraintType.EMERGENCY_FUND, emergency_months >= 3, GuardrailSeverity.BLOCK, message
        ))

        high_liquidity = (
            planning.near_term_liquidity_need == ConcernLevel.HIGH
            or planning.short_term_cash_needs_1_3yr == ConcernLevel.HIGH
        )
        checks.append(self._check(
            ConstraintType.LIQUIDITY,
            not high_liquidity,
            GuardrailSeverity.BLOCK,
            "High near-term liquidity needs conflict with illiquid product recommendations. "
            "Address expected expenses first."
            if high_liquidity else "No high near-term liquidity needs reported.",
        ))

        health_conflict = (
            planning.self_assessed_health == HealthStatus.POOR
            and planning.family_longevity_history == LongevityHistory.BELOW_AVERAGE
        )
        checks.append(self._check(
            ConstraintType.HEALTH,
            not health_conflict,
            GuardrailSeverity.WARN,
            "Health and longevity factors reduce suitability for lifetime income products. "
            "Consider term-based alternatives."
            if health_conflict else "No health or longevity conflict identified.",
        ))

        willing_years = planning.willingness_illiquidity_years or 0
        short_horizon = willing_years < 7 and years_to_retirement < 5
        checks.append(self._check(
            ConstraintType.TIME_HORIZON,
            not short_horizon,
            GuardrailSeverity.WARN,
            "Short time horizon conflicts with surrender period requirements. Focus on liquid strategies."
            if short_horizon else "Time horizon is compatible with surrender periods.",
        ))

        inexperienced = (
            planning.investment_experience_level == InvestmentExperience.NOVICE
            and planning.comfort_with_complex_products == ConcernLevel.LOW
        )
        checks.append(self._check(
            ConstraintType.EXPERIENCE,
            not inexperienced,
            GuardrailSeverity.WARN,
            "Complex products may not be suitable for novice investors. "
            "Education and simpler alternatives recommended first."
            if inexperienced else "Experience level is adequate for the products discussed.",
        ))

        if priorities is not None:
            legacy_first = priorities.legacy_estate == 1 and priorities.guaranteed_income > 2
            checks.append(self._check(
                ConstraintType.GOAL_CONFLICT,
                not legacy_first,
                GuardrailSeverity.WARN,
                "Legacy is your top priority - guaranteed income products may reduce estate value. "
                "Consider life insurance for legacy goals."
                if legacy_first else "Legacy priority does not conflict with guaranteed income.",
            ))

            flexibility_first = priorities.flexibility_liquidity < priorities.guaranteed_income
            checks.append(self._check(
                ConstraintType.GOAL_CONFLICT,
                not flexibility_first,
                GuardrailSeverity.WARN,
                "You prioritize flexibility over guaranteed income - consider more liquid alternatives first."
                if flexibility_first else "Guaranteed income ranks at or above flexibility.",
            ))

        debt_strain = planning.debt_pressure_level == ConcernLevel.HIGH and emergency_months < 6
        checks.append(self._check(
            ConstraintType.DEBT_PRESSURE,
            not debt_strain,
            GuardrailSeverity.BLOCK,
            "High debt pressure combined with low reserves. "
            "Address debt and build savings before product commitments."
            if debt_strain else "Debt pressure is manageable.",
        ))

        return checks

    @staticmethod
    def _check(
        constraint_type: ConstraintType, passes: bool, severity: GuardrailSeverity, message: str
    ) -> GuardrailCheck:
        return GuardrailCheck(
            constraint_type=constraint_type, passes=passes, severity=severity, message=message
        )

    # =========================================================================
    # NARRATIVE & GOAL HIERARCHY
    # =========================================================================

    @staticmethod
    def build_rejection_reason(planning: PlanningReadiness, protection: ProtectionHealth) -> str:
        """Client-specific explanation built from the active negative factors."""
        factors = []
        priorities = planning.goal_priorities

        if priorities is not None and priorities.flexibility_liquidity <= 2:
            factors.append("strong need for flexibility")
        if planning.liquidity_need != ConcernLevel.LOW:
            factors.append("near-term liquidity needs")
        if (planning.willingness_illiquidity_years or 0) < 7:
            factors.append("short liquidity horizon")
        if planning.self_assessed_health in (HealthStatus.POOR, HealthStatus.FAIR):
            factors.append("health considerations")
        if planning.debt_pressure_level == ConcernLevel.HIGH:
            factors.append("high debt pressure")
        if protection.emergency_fund_months < 3:
            factors.append("insufficient emergency reserves")

        if not factors:
            return (
                "Current financial position suggests focusing on foundational planning "
                "before specialized products."
            )
        return f"Based on your {', '.join(factors)}, this strategy would not align with your stated priorities."

    @staticmethod
    def should_include_guaranteed_income(planning: PlanningReadiness) -> Tuple[bool, str]:
        """Goal-hierarchy test for recommending lifetime income. Returns (include, reason)."""
        priorities: Optional[GoalPriorityRanking] = planning.goal_priorities
        if priorities is None:
            return False, "Goal priorities not specified"

        if priorities.legacy_estate == 1 and priorities.guaranteed_income > 2:
            return False, "Legacy is your top priority - guaranteed income products may reduce estate value"

        if priorities.flexibility_liquidity < priorities.guaranteed_income:
            return False, "You prioritize flexibility over guaranteed income - consider more liquid alternatives"

        if priorities.guaranteed_income <= 2:
            return True, "Guaranteed income aligns with your top priorities"

        if priorities.guaranteed_income == 3 and (
            planning.longevity_concern == ConcernLevel.HIGH
            or planning.wants_monthly_paycheck_feel
            or planning.sleep_at_night_priority == ConcernLevel.HIGH
        ):
            return True, "Your longevity concern and preference for stability support guaranteed income consideration"

        return False, "Goal hierarchy does not strongly support guaranteed income recommendation"

    # =========================================================================
    # COMPOSITE
    # =========================================================================

    def run(
        self,
        profile: Optional[ClientProfile],
        income: Optional[IncomeExpenses],
        protection: Optional[ProtectionHealth],
        planning: Optional[PlanningReadiness],
        total_assets: float = 0.0,
        years_to_retirement: Optional[int] = None,
    ) -> GuardrailResult:
        protection = protection or ProtectionHealth()
        completeness = self.check_data_completeness(profile, income, planning, total_assets)

        if planning is None:
            logger.debug("Guardrails: no planning answers, education-only")
            return GuardrailResult(
                data_completeness=completeness,
                suitability_guardrails=[],
                all_guardrails_pass=False,
                education_only=True,
                education_reason=MISSING_PLANNING_REASON,
                explicit_rejection_reasons=[],
                education_content=list(EDUCATION_CONTENT),
            )

        current_age = None
        if profile is not None and profile.dob is not None:
            current_age = calculate_age(profile.dob, self.current_date, self.assumptions)

        if years_to_retirement is None:
            years_to_retirement = DEFAULT_YEARS_TO_RETIREMENT

        checks = self.check_suitability_constraints(planning, protection, years_to_retirement, current_age)
        blocking = [check for check in checks if check.is_blocking]
        all_pass = not blocking

        rejection_reasons = []
        if not all_pass:
            rejection_reasons.append(self.build_rejection_reason(planning, protection))
            rejection_reasons.extend(check.message for check in blocking)

        education_only = completeness.education_only_mode or len(blocking) >= EDUCATION_ONLY_BLOCK_COUNT
        education_reason = None
        if completeness.education_only_mode:
            education_reason = completeness.reason
        elif education_only:
            education_reason = "Multiple suitability concerns: " + ", ".join(
                check.constraint_type.value for check in blocking
            )

        logger.debug(
            "Guardrails: completeness=%s blocking=%s education_only=%s",
            completeness.completeness_score, len(blocking), education_only,
        )

        return GuardrailResult(
            data_completeness=completeness,
            suitability_guardrails=checks,
            all_guardrails_pass=all_pass,
            education_only=education_only,
            education_reason=education_reason,
            explicit_rejection_reasons=rejection_reasons,
            education_content=list(EDUCATION_CONTENT) if education_only else [],
        )
