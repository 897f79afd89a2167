"""
RetireReady - Planning Assumptions
==================================
Hardcoded 2024 planning assumptions: return rates, withdrawal rates,
contribution limits, Roth phase-outs and scoring thresholds.

These values are bundled into an immutable `Assumptions` object that every
engine receives explicitly. Alternate assumption sets are built with
`load_assumptions()` - nothing reads module-level state at call time.

Last Updated: 2024 contribution year
"""

import math
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# FILING STATUS ENUM
# =============================================================================

class FilingStatus(str, Enum):
    SINGLE = "single"
    MARRIED_JOINT = "married_joint"
    MARRIED_SEPARATE = "married_separate"
    HEAD_HOUSEHOLD = "head_household"


class ConfidenceLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RetirementLifestyle(str, Enum):
    BASIC = "basic"
    COMFORTABLE = "comfortable"
    PREMIUM = "premium"


# =============================================================================
# ASSUMPTION GROUPS
# =============================================================================

class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class InflationAssumptions(_FrozenModel):
    default: float = 0.03
    low: float = 0.02
    high: float = 0.04


class ReturnAssumptions(_FrozenModel):
    """Annual nominal portfolio returns."""
    conservative: float = 0.04
    base: float = 0.06
    aggressive: float = 0.075


class WithdrawalAssumptions(_FrozenModel):
    """Safe withdrawal rates (annual share of the portfolio)."""
    safe: float = 0.04
    conservative: float = 0.035
    aggressive: float = 0.05


class LongevityAssumptions(_FrozenModel):
    planning_age: int = 95
    optimistic_age: int = 90
    male_65: int = 84
    female_65: int = 87


class TaxAssumptions(_FrozenModel):
    marginal_default: float = 0.22
    marginal_high: float = 0.32
    marginal_low: float = 0.12
    tax_drag: float = 0.01


class SocialSecurityAssumptions(_FrozenModel):
    full_retirement_age: int = 67
    haircut_low: float = 0.75
    haircut_medium: float = 0.90
    haircut_high: float = 1.0

    def haircut(self, confidence: ConfidenceLevel) -> float:
        if confidence == ConfidenceLevel.LOW:
            return self.haircut_low
        if confidence == ConfidenceLevel.MEDIUM:
            return self.haircut_medium
        if confidence == ConfidenceLevel.HIGH:
            return self.haircut_high
        raise ValueError(f"Unknown confidence level: {confidence!r}")


class ContributionLimits(_FrozenModel):
    """2024 IRS contribution limits (annual dollars)."""
    k401: int = 23000
    k401_catch_up: int = 7500
    ira: int = 7000
    ira_catch_up: int = 1000
    hsa_individual: int = 4150
    hsa_family: int = 8300
    hsa_catch_up: int = 1000
    catch_up_age: int = 50
    hsa_catch_up_age: int = 55


class PhaseOutRange(_FrozenModel):
    start: float
    end: float


def _default_roth_phase_out() -> Dict[FilingStatus, PhaseOutRange]:
    return {
        FilingStatus.SINGLE: PhaseOutRange(start=146000, end=161000),
        FilingStatus.MARRIED_JOINT: PhaseOutRange(start=230000, end=240000),
        FilingStatus.MARRIED_SEPARATE: PhaseOutRange(start=0, end=10000),
        FilingStatus.HEAD_HOUSEHOLD: PhaseOutRange(start=146000, end=161000),
    }


class SequenceReturns(_FrozenModel):
    """First-five-year return paths used by the stress scenarios."""
    normal: Tuple[float, ...] = (0.06, 0.06, 0.06, 0.06, 0.06)
    bad_early: Tuple[float, ...] = (-0.10, 0.00, -0.05, 0.02, 0.04)
    good_early: Tuple[float, ...] = (0.15, 0.12, 0.10, 0.08, 0.06)


class StressAssumptions(_FrozenModel):
    """Adjustments applied by the adverse scenarios."""
    sequence_portfolio_haircut: float = 0.75
    sequence_probability_penalty: float = 20
    sequence_probability_floor: float = 5


class ScoreWeights(_FrozenModel):
    income_adequacy: float = 0.25
    tax_risk: float = 0.15
    sequence_risk: float = 0.20
    longevity_risk: float = 0.20
    liquidity: float = 0.10
    protection: float = 0.10


class GradeCutoffs(_FrozenModel):
    a: int = 80
    b: int = 65
    c: int = 50
    d: int = 35


class WaterfallAssumptions(_FrozenModel):
    """Savings waterfall gates and caps (monthly dollars unless noted)."""
    min_product_capacity: float = 500
    annuity_share_cap: float = 0.30
    annuity_dollar_cap: float = 2000
    annuity_gap_threshold_pct: float = 20
    insurance_share_cap: float = 0.25
    insurance_dollar_cap: float = 1500
    insurance_income_floor: float = 150000
    insurance_tax_free_threshold_pct: float = 15
    insurance_protection_gap_threshold: float = 100000
    partial_roth_fraction: float = 0.5
    ideal_protection_share: float = 0.25


class AnnuitySuitabilityAssumptions(_FrozenModel):
    """Fit cut points for the fixed index annuity engine (score starts at 0)."""
    strong_threshold: float = 70
    moderate_threshold: float = 50
    disqualified_ceiling: float = 15
    min_emergency_months: float = 3


class InsuranceSuitabilityAssumptions(_FrozenModel):
    """Fit cut points for the indexed universal life engine."""
    base_score: float = 50
    strong_threshold: float = 80
    moderate_threshold: float = 60
    explore_threshold: float = 40
    disqualified_ceiling: float = 25
    max_expense_ratio: float = 0.85
    min_emergency_months: float = 3


class ScenarioComparisonAssumptions(_FrozenModel):
    """Illustration rates for the Current Path vs Optimized Strategy comparison."""
    insurance_illustrated_rate: float = 0.055
    insurance_allocation_pct: float = 12
    insurance_loanable_share: float = 0.80
    insurance_loan_years: int = 20
    death_benefit_multiple: float = 8
    annuity_allocation_pct: float = 15
    annuity_rider_rate: float = 0.055
    annuity_rider_years_cap: int = 10
    annuity_payout_rate: float = 0.05
    rmd_start_age: int = 73
    default_tax_deferred_share: float = 0.6


def _default_lifestyle_multipliers() -> Dict[RetirementLifestyle, float]:
    return {
        RetirementLifestyle.BASIC: 0.7,
        RetirementLifestyle.COMFORTABLE: 1.0,
        RetirementLifestyle.PREMIUM: 1.3,
    }


class Assumptions(_FrozenModel):
    """
    Complete assumption set handed to every engine.

    Build alternates with `load_assumptions({...})` or `model_copy(update=...)`.
    """
    inflation: InflationAssumptions = Field(default_factory=InflationAssumptions)
    returns: ReturnAssumptions = Field(default_factory=ReturnAssumptions)
    withdrawal: WithdrawalAssumptions = Field(default_factory=WithdrawalAssumptions)
    longevity: LongevityAssumptions = Field(default_factory=LongevityAssumptions)
    tax: TaxAssumptions = Field(default_factory=TaxAssumptions)
    social_security: SocialSecurityAssumptions = Field(default_factory=SocialSecurityAssumptions)
    limits: ContributionLimits = Field(default_factory=ContributionLimits)
    roth_phase_out: Dict[FilingStatus, PhaseOutRange] = Field(default_factory=_default_roth_phase_out)
    sequence_returns: SequenceReturns = Field(default_factory=SequenceReturns)
    stress: StressAssumptions = Field(default_factory=StressAssumptions)
    score_weights: ScoreWeights = Field(default_factory=ScoreWeights)
    grade_cutoffs: GradeCutoffs = Field(default_factory=GradeCutoffs)
    waterfall: WaterfallAssumptions = Field(default_factory=WaterfallAssumptions)
    annuity_suitability: AnnuitySuitabilityAssumptions = Field(default_factory=AnnuitySuitabilityAssumptions)
    insurance_suitability: InsuranceSuitabilityAssumptions = Field(
        default_factory=InsuranceSuitabilityAssumptions
    )
    scenario_comparison: ScenarioComparisonAssumptions = Field(default_factory=ScenarioComparisonAssumptions)
    lifestyle_multipliers: Dict[RetirementLifestyle, float] = Field(
        default_factory=_default_lifestyle_multipliers
    )
    default_age: int = 40
    default_retirement_age: int = 65
    min_age: int = 18
    max_age: int = 100
    contribution_year: int = 2024


DEFAULT_ASSUMPTIONS = Assumptions()


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def _deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_assumptions(overrides: Optional[Dict[str, Any]] = None) -> Assumptions:
    """
    Build an assumption set from partial overrides layered over the defaults.

    Example:
        load_assumptions({"returns": {"base": 0.05}, "longevity": {"planning_age": 100}})

    Raises pydantic.ValidationError when an override has the wrong shape.
    """
    if not overrides:
        return DEFAULT_ASSUMPTIONS
    base = DEFAULT_ASSUMPTIONS.model_dump()
    return Assumptions.model_validate(_deep_merge(base, overrides))


def calculate_age(
    dob: Optional[date],
    as_of: date,
    assumptions: Assumptions = DEFAULT_ASSUMPTIONS,
) -> int:
    """
    Age in whole years on `as_of`, clamped to the supported range.
    A missing birth date falls back to the default planning age.
    """
    if dob is None:
        return assumptions.default_age

    age = as_of.year - dob.year
    if (as_of.month, as_of.day) < (dob.month, dob.day):
        age -= 1

    return max(assumptions.min_age, min(assumptions.max_age, age))


def clamp_score(score: float, low: float = 0, high: float = 100) -> float:
    """Clamp a numeric score into [low, high]."""
    return max(low, min(high, score))


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (62.5 -> 63)."""
    return math.floor(value + 0.5)


def get_contribution_limit(
    vehicle: str,
    age: int,
    has_family: bool = False,
    assumptions: Assumptions = DEFAULT_ASSUMPTIONS,
) -> int:
    """Annual contribution limit including catch-up amounts."""
    limits = assumptions.limits
    catch_up = age >= limits.catch_up_age

    if vehicle == "401k":
        return limits.k401 + (limits.k401_catch_up if catch_up else 0)
    if vehicle == "ira":
        return limits.ira + (limits.ira_catch_up if catch_up else 0)
    if vehicle == "hsa":
        base = limits.hsa_family if has_family else limits.hsa_individual
        return base + (limits.hsa_catch_up if age >= limits.hsa_catch_up_age else 0)
    raise ValueError(f"No contribution limit defined for vehicle: {vehicle}")


def get_grade(score: float, assumptions: Assumptions = DEFAULT_ASSUMPTIONS) -> str:
    cutoffs = assumptions.grade_cutoffs
    if score >= cutoffs.a:
        return "A"
    if score >= cutoffs.b:
        return "B"
    if score >= cutoffs.c:
        return "C"
    if score >= cutoffs.d:
        return "D"
    return "F"


SCORE_BANDS: List[Tuple[int, str]] = [
    (80, "Excellent"),
    (60, "Good"),
    (40, "Moderate"),
    (20, "Concerning"),
]


def get_score_label(score: float) -> str:
    """Human label for a 0-100 score."""
    for threshold, label in SCORE_BANDS:
        if score >= threshold:
            return label
    return "Critical"


def format_currency(amount: float) -> str:
    return f"${amount:,.0f}"


def get_reference_table(assumptions: Assumptions = DEFAULT_ASSUMPTIONS) -> Dict[str, Any]:
    """Serializable view of the assumption set for display endpoints."""
    return assumptions.model_dump(mode="json")
