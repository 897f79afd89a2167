"""
RetireReady - Data Models
=========================
Pydantic models for the retirement readiness pipeline.

These models serve as the contract between:
- Intake forms and storage (collaborators supplying client snapshots)
- The calculation engines (projection, stress tests, scoring, suitability)
- Display and reporting layers consuming the readiness result

Every category is a closed enum; free-form strings never carry meaning.
"""

from datetime import date
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from retirement_assumptions import ConfidenceLevel, FilingStatus, RetirementLifestyle


# =============================================================================
# ENUMS - CLIENT INPUTS
# =============================================================================

class PrimaryRetirementGoal(str, Enum):
    MAXIMIZE_TAX_FREE = "maximize_tax_free"
    SECURE_GUARANTEED_INCOME = "secure_guaranteed_income"
    PROTECT_FAMILY = "protect_family"
    BALANCED = "balanced"
    MINIMIZE_TAXES = "minimize_taxes"


class SpendingTargetMethod(str, Enum):
    FIXED = "fixed"
    PERCENT = "percent"


class TaxWrapper(str, Enum):
    TAX_NOW = "TAX_NOW"
    TAX_LATER = "TAX_LATER"
    TAX_NEVER = "TAX_NEVER"


class AssetType(str, Enum):
    CASH_CHECKING = "cash_checking"
    CASH_SAVINGS = "cash_savings"
    CASH_CD = "cash_cd"
    CASH_MONEY_MARKET = "cash_money_market"
    CASH_TBILLS = "cash_tbills"
    BROKERAGE_EQUITY = "brokerage_equity"
    BROKERAGE_ETF = "brokerage_etf"
    BROKERAGE_MUTUAL_FUND = "brokerage_mutual_fund"
    BROKERAGE_BOND = "brokerage_bond"
    BROKERAGE_OPTIONS = "brokerage_options"
    BROKERAGE_ALTERNATIVES = "brokerage_alternatives"
    BROKERAGE_CRYPTO = "brokerage_crypto"
    RETIREMENT_401K = "retirement_401k"
    RETIREMENT_403B = "retirement_403b"
    RETIREMENT_457 = "retirement_457"
    RETIREMENT_TRAD_IRA = "retirement_trad_ira"
    RETIREMENT_SEP = "retirement_sep"
    RETIREMENT_SIMPLE = "retirement_simple"
    RETIREMENT_ROTH_IRA = "retirement_roth_ira"
    RETIREMENT_ROTH_401K = "retirement_roth_401k"
    EDUCATION_529 = "education_529"
    EDUCATION_UTMA = "education_utma"
    EDUCATION_UGMA = "education_ugma"
    INSURANCE_TERM = "insurance_term"
    INSURANCE_WHOLE_LIFE = "insurance_whole_life"
    INSURANCE_IUL = "insurance_iul"
    INSURANCE_VUL = "insurance_vul"
    ANNUITY_FIA = "annuity_fia"
    ANNUITY_RILA = "annuity_rila"
    ANNUITY_SPIA = "annuity_spia"
    ANNUITY_DIA = "annuity_dia"
    BUSINESS_EQUITY = "business_equity"
    REAL_ESTATE_PRIMARY = "real_estate_primary"
    REAL_ESTATE_RENTAL = "real_estate_rental"
    REAL_ESTATE_LAND = "real_estate_land"
    PENSION = "pension"
    SOCIAL_SECURITY = "social_security"
    HSA = "hsa"


# Assets that fund retirement income at the projection horizon
RETIREMENT_ASSET_TYPES = frozenset({
    AssetType.RETIREMENT_401K,
    AssetType.RETIREMENT_403B,
    AssetType.RETIREMENT_457,
    AssetType.RETIREMENT_TRAD_IRA,
    AssetType.RETIREMENT_SEP,
    AssetType.RETIREMENT_SIMPLE,
    AssetType.RETIREMENT_ROTH_IRA,
    AssetType.RETIREMENT_ROTH_401K,
    AssetType.ANNUITY_FIA,
    AssetType.ANNUITY_RILA,
    AssetType.ANNUITY_SPIA,
    AssetType.ANNUITY_DIA,
    AssetType.INSURANCE_IUL,
    AssetType.INSURANCE_WHOLE_LIFE,
    AssetType.INSURANCE_VUL,
})

_TAX_LATER_TYPES = frozenset({
    AssetType.RETIREMENT_401K,
    AssetType.RETIREMENT_403B,
    AssetType.RETIREMENT_457,
    AssetType.RETIREMENT_TRAD_IRA,
    AssetType.RETIREMENT_SEP,
    AssetType.RETIREMENT_SIMPLE,
    AssetType.ANNUITY_FIA,
    AssetType.ANNUITY_RILA,
    AssetType.ANNUITY_SPIA,
    AssetType.ANNUITY_DIA,
    AssetType.PENSION,
})

_TAX_NEVER_TYPES = frozenset({
    AssetType.RETIREMENT_ROTH_IRA,
    AssetType.RETIREMENT_ROTH_401K,
    AssetType.INSURANCE_IUL,
    AssetType.INSURANCE_WHOLE_LIFE,
    AssetType.INSURANCE_VUL,
    AssetType.EDUCATION_529,
    AssetType.HSA,
})


def default_tax_wrapper(asset_type: AssetType) -> TaxWrapper:
    """Tax bucket an asset falls into when the collaborator did not classify it."""
    if asset_type in _TAX_LATER_TYPES:
        return TaxWrapper.TAX_LATER
    if asset_type in _TAX_NEVER_TYPES:
        return TaxWrapper.TAX_NEVER
    return TaxWrapper.TAX_NOW


class LiabilityType(str, Enum):
    MORTGAGE_PRIMARY = "mortgage_primary"
    MORTGAGE_RENTAL = "mortgage_rental"
    HELOC = "heloc"
    STUDENT_LOAN = "student_loan"
    AUTO_LOAN = "auto_loan"
    CREDIT_CARD = "credit_card"
    BUSINESS_LOAN = "business_loan"
    PERSONAL_LOAN = "personal_loan"


class ConcernLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class IncomeStability(str, Enum):
    STABLE = "stable"
    SOMEWHAT_STABLE = "somewhat_stable"
    UNSTABLE = "unstable"


class FundingCommitment(str, Enum):
    YEARS_3_5 = "3-5"
    YEARS_5_10 = "5-10"
    YEARS_10_20 = "10-20"
    YEARS_20_PLUS = "20+"


class TaxBracketEstimate(str, Enum):
    BRACKET_10_12 = "10-12"
    BRACKET_22 = "22"
    BRACKET_24 = "24"
    BRACKET_32 = "32"
    BRACKET_35_PLUS = "35+"
    NOT_SURE = "not_sure"


class MaxingQualifiedPlans(str, Enum):
    NO = "no"
    SOME = "some"
    YES = "yes"
    NOT_APPLICABLE = "not_applicable"


class HealthStatus(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class LongevityHistory(str, Enum):
    BELOW_AVERAGE = "below_average"
    AVERAGE = "average"
    ABOVE_AVERAGE = "above_average"


class InvestmentExperience(str, Enum):
    NOVICE = "novice"
    INTERMEDIATE = "intermediate"
    EXPERIENCED = "experienced"


class DownMarketBehavior(str, Enum):
    PANIC_SELL = "panic_sell"
    REDUCE_RISK = "reduce_risk"
    HOLD = "hold"
    BUY_MORE = "buy_more"
    UNSURE = "unsure"


# =============================================================================
# ENUMS - ENGINE OUTPUTS
# =============================================================================

class StressScenario(str, Enum):
    BASE_CASE = "Base Case"
    SEQUENCE_RISK = "Sequence Risk"
    TAX_LONGEVITY = "Tax & Longevity"
    GOOD_EARLY_RETURNS = "Good Early Returns"


class StrategyPath(str, Enum):
    CURRENT_PATH = "Current Path"
    OPTIMIZED_STRATEGY = "Optimized Strategy"


class MarketRiskExposure(str, Enum):
    HIGH = "high"
    MODERATE = "moderate"
    LOW = "low"


class ProductType(str, Enum):
    ANNUITY = "annuity"
    PERMANENT_INSURANCE = "permanent_insurance"


class FitCategory(str, Enum):
    """Ordered best to worst."""
    STRONG = "strong"
    MODERATE = "moderate"
    EXPLORE = "explore"
    NOT_RECOMMENDED = "not_recommended"


class AnnuityStrategy(str, Enum):
    INCOME_FLOOR = "FIA_INCOME_FLOOR"
    BUFFER_REDZONE = "FIA_BUFFER_REDZONE"
    GROWTH_PROTECTION = "FIA_GROWTH_PROTECTION"
    OPTIONAL = "FIA_OPTIONAL"
    NOT_FIT_YET = "FIA_NOT_FIT_YET"


class CheckStatus(str, Enum):
    PASS = "pass"
    WARNING = "warning"
    FAIL = "fail"


class CheckImportance(str, Enum):
    CRITICAL = "critical"
    IMPORTANT = "important"
    HELPFUL = "helpful"


class GuardrailSeverity(str, Enum):
    BLOCK = "block"
    WARN = "warn"


class ConstraintType(str, Enum):
    AGE_HORIZON = "age_horizon"
    EMERGENCY_FUND = "emergency_fund"
    LIQUIDITY = "liquidity"
    HEALTH = "health"
    TIME_HORIZON = "time_horizon"
    EXPERIENCE = "experience"
    GOAL_CONFLICT = "goal_conflict"
    DEBT_PRESSURE = "debt_pressure"


class SavingsVehicle(str, Enum):
    K401_MATCH = "401k_match"
    HSA = "hsa"
    ROTH_IRA = "roth_ira"
    BACKDOOR_ROTH = "backdoor_roth"
    K401_MAX = "401k_max"
    ANNUITY = "annuity"
    PERMANENT_INSURANCE = "iul"
    TAXABLE = "taxable"


TAX_ADVANTAGED_VEHICLES = frozenset({
    SavingsVehicle.K401_MATCH,
    SavingsVehicle.K401_MAX,
    SavingsVehicle.ROTH_IRA,
    SavingsVehicle.BACKDOOR_ROTH,
    SavingsVehicle.HSA,
    SavingsVehicle.PERMANENT_INSURANCE,
})

PROTECTION_VEHICLES = frozenset({
    SavingsVehicle.ANNUITY,
    SavingsVehicle.PERMANENT_INSURANCE,
})


# =============================================================================
# CLIENT INPUT RECORDS
# =============================================================================

class _Snapshot(BaseModel):
    """Immutable input snapshot."""
    model_config = ConfigDict(frozen=True)


class ClientProfile(_Snapshot):
    """Profile and goals. All currency values are monthly."""
    dob: Optional[date] = None
    state: str = ""
    filing_status: FilingStatus = FilingStatus.SINGLE
    dependents: int = Field(default=0, ge=0)
    retirement_age: Optional[int] = Field(default=None, ge=18, le=100)
    desired_monthly_income: float = Field(default=0.0, ge=0)
    primary_retirement_goal: PrimaryRetirementGoal = PrimaryRetirementGoal.BALANCED
    retirement_lifestyle: RetirementLifestyle = RetirementLifestyle.COMFORTABLE
    spending_target_method: SpendingTargetMethod = SpendingTargetMethod.FIXED
    spending_percent_of_income: float = Field(default=80.0, ge=0, le=200)
    planned_retirement_state: str = ""

    @property
    def has_family(self) -> bool:
        return self.dependents > 0 or self.filing_status == FilingStatus.MARRIED_JOINT


class IncomeExpenses(_Snapshot):
    """Income and expense snapshot. Income and expense amounts are monthly."""
    w2_income: float = Field(default=0.0, ge=0)
    business_income: float = Field(default=0.0, ge=0)
    rental_income: float = Field(default=0.0, ge=0)
    pension_income: float = Field(default=0.0, ge=0)
    social_security: float = Field(default=0.0, ge=0)
    annuity_income: float = Field(default=0.0, ge=0)
    other_guaranteed_income_monthly: float = Field(default=0.0, ge=0)
    fixed_expenses: float = Field(default=0.0, ge=0)
    variable_expenses: float = Field(default=0.0, ge=0)
    debt_service: float = Field(default=0.0, ge=0)
    employer_match_pct: float = Field(default=0.0, ge=0, le=100)
    hsa_eligible: bool = False

    # Retirement planning (annual contribution in dollars, growth in percent)
    annual_retirement_contribution: float = Field(default=0.0, ge=0)
    contribution_growth_rate: float = Field(default=0.0, ge=0, le=100)
    social_security_confidence: ConfidenceLevel = ConfidenceLevel.MEDIUM
    expected_part_time_income: float = Field(default=0.0, ge=0)

    # Cash available outside the monthly budget
    monthly_checking_balance: float = Field(default=0.0, ge=0)
    has_old_401k: bool = False
    old_401k_balance: float = Field(default=0.0, ge=0)

    @computed_field
    @property
    def earned_monthly_income(self) -> float:
        return self.w2_income + self.business_income

    @computed_field
    @property
    def total_monthly_income(self) -> float:
        """Income counted toward savings capacity."""
        return self.w2_income + self.business_income + self.rental_income + self.social_security

    @computed_field
    @property
    def total_monthly_expenses(self) -> float:
        return self.fixed_expenses + self.variable_expenses + self.debt_service

    @computed_field
    @property
    def monthly_savings_capacity(self) -> float:
        return max(0.0, self.total_monthly_income - self.total_monthly_expenses)


class Asset(_Snapshot):
    asset_type: AssetType
    tax_wrapper: TaxWrapper = TaxWrapper.TAX_NOW
    title: str = ""
    current_value: float = Field(default=0.0, ge=0)
    cost_basis: float = Field(default=0.0, ge=0)

    @model_validator(mode='before')
    @classmethod
    def classify_tax_wrapper(cls, data):
        """Fill the tax bucket from the asset type when it was not supplied."""
        if isinstance(data, dict) and data.get("tax_wrapper") is None and "asset_type" in data:
            data = dict(data)
            data["tax_wrapper"] = default_tax_wrapper(AssetType(data["asset_type"]))
        return data

    @property
    def is_retirement_asset(self) -> bool:
        return self.asset_type in RETIREMENT_ASSET_TYPES


class Liability(_Snapshot):
    liability_type: LiabilityType
    balance: float = Field(default=0.0, ge=0)
    rate: float = Field(default=0.0, ge=0, description="Annual interest rate in percent")
    payment_monthly: float = Field(default=0.0, ge=0)
    term_months: Optional[int] = Field(default=None, ge=0)


class ProtectionHealth(_Snapshot):
    term_life_coverage: float = Field(default=0.0, ge=0)
    permanent_life_db: float = Field(default=0.0, ge=0)
    permanent_life_cv: float = Field(default=0.0, ge=0)
    ltc_daily_benefit: float = Field(default=0.0, ge=0)
    emergency_fund_months: float = Field(default=0.0, ge=0)

    # Suitability gating preferences
    prefers_guaranteed_income: bool = False
    liquidity_need_next_5yr: ConcernLevel = ConcernLevel.MEDIUM
    can_commit_10yr_contributions: bool = False
    open_to_tax_diversification: bool = False
    existing_db_pension_monthly: float = Field(default=0.0, ge=0)

    @property
    def total_life_coverage(self) -> float:
        return self.term_life_coverage + self.permanent_life_db


class GoalPriorityRanking(_Snapshot):
    """Priority rank 1 (highest) to 4 for each retirement goal."""
    guaranteed_income: int = Field(default=3, ge=1, le=4)
    flexibility_liquidity: int = Field(default=2, ge=1, le=4)
    legacy_estate: int = Field(default=4, ge=1, le=4)
    inflation_protection: int = Field(default=1, ge=1, le=4)


class PlanningReadiness(_Snapshot):
    """
    Behavioral and planning-readiness answers.

    Fields counted by the data-completeness check default to None so an
    unanswered question is distinguishable from a chosen answer. Use the
    resolved properties (`liquidity_need`, `commitment`) in calculations.
    """
    # Cashflow & commitment
    income_stability: IncomeStability = IncomeStability.SOMEWHAT_STABLE
    funding_commitment_years: Optional[FundingCommitment] = None
    funding_discipline: ConcernLevel = ConcernLevel.MEDIUM

    # Emergency & liquidity
    near_term_liquidity_need: Optional[ConcernLevel] = None
    short_term_cash_needs_1_3yr: Optional[ConcernLevel] = None

    # Retirement basics
    contributing_to_401k_match: bool = True
    maxing_qualified_plans: MaxingQualifiedPlans = MaxingQualifiedPlans.SOME

    # Tax & diversification
    current_tax_bracket: TaxBracketEstimate = TaxBracketEstimate.NOT_SURE
    tax_concern_level: ConcernLevel = ConcernLevel.MEDIUM
    wants_tax_free_bucket: bool = False
    expects_higher_future_taxes: bool = False
    rmd_concern: ConcernLevel = ConcernLevel.LOW

    # Volatility, legacy, debt
    sequence_risk_concern: ConcernLevel = ConcernLevel.MEDIUM
    legacy_priority: ConcernLevel = ConcernLevel.MEDIUM
    permanent_coverage_need: bool = False
    debt_pressure_level: ConcernLevel = ConcernLevel.LOW

    # Health & longevity
    self_assessed_health: Optional[HealthStatus] = None
    family_longevity_history: Optional[LongevityHistory] = None
    longevity_concern: Optional[ConcernLevel] = None

    # Goal hierarchy
    goal_priorities: Optional[GoalPriorityRanking] = None

    # Risk, horizon & behavior
    investment_experience_level: Optional[InvestmentExperience] = None
    comfort_with_complex_products: Optional[ConcernLevel] = None
    willingness_illiquidity_years: Optional[int] = Field(default=None, ge=0)
    behavior_in_down_market: Optional[DownMarketBehavior] = None
    wants_monthly_paycheck_feel: bool = False
    sleep_at_night_priority: Optional[ConcernLevel] = None

    @property
    def liquidity_need(self) -> ConcernLevel:
        return self.near_term_liquidity_need or ConcernLevel.MEDIUM

    @property
    def commitment(self) -> FundingCommitment:
        return self.funding_commitment_years or FundingCommitment.YEARS_5_10


class ComputedMetrics(_Snapshot):
    """Portfolio metrics produced upstream; consumed as-is."""
    net_worth: float = 0.0
    liquid_pct: float = Field(default=0.0, ge=0, le=100)
    top_concentration_pct: float = Field(default=0.0, ge=0, le=100)
    liquidity_runway_months: float = Field(default=0.0, ge=0)
    dime_need: float = Field(default=0.0, ge=0)
    protection_gap: float = Field(default=0.0, ge=0)
    disability_gap: float = Field(default=0.0, ge=0)
    ltc_gap: float = Field(default=0.0, ge=0)
    retirement_gap_mo: float = Field(default=0.0, ge=0)
    seq_risk_index: float = Field(default=0.0, ge=0, le=100)
    tax_bucket_now_pct: float = Field(default=0.0, ge=0, le=100)
    tax_bucket_later_pct: float = Field(default=0.0, ge=0, le=100)
    tax_bucket_never_pct: float = Field(default=0.0, ge=0, le=100)
    lifetime_tax_drag_est: float = Field(default=0.0, ge=0)


# =============================================================================
# PROJECTION & STRESS RESULTS
# =============================================================================

class _Result(BaseModel):
    model_config = ConfigDict(frozen=True)


class IncomeSourceProjection(_Result):
    """Projected monthly income at retirement by source."""
    social_security: float = 0.0
    pension: float = 0.0
    annuity: float = 0.0
    other_guaranteed: float = 0.0
    portfolio_withdrawal: float = 0.0
    part_time: float = 0.0

    @computed_field
    @property
    def guaranteed(self) -> float:
        return self.social_security + self.pension + self.annuity + self.other_guaranteed

    @computed_field
    @property
    def total(self) -> float:
        return self.guaranteed + self.portfolio_withdrawal + self.part_time


class RetirementProjection(_Result):
    current_age: int
    retirement_age: int
    years_to_retirement: int
    total_retirement_assets_today: float
    future_value_existing: float
    future_value_contributions: float
    total_contributions_future: float
    projected_portfolio_at_retirement: float
    income_sources: IncomeSourceProjection
    monthly_income_projected: float
    monthly_income_target: float
    monthly_income_target_today: float
    monthly_gap: float
    gap_percentage: float
    return_rate: float
    inflation_rate: float

    @property
    def guaranteed_coverage_pct(self) -> float:
        """Social Security + pension as a share of target income."""
        if self.monthly_income_target <= 0:
            return 0.0
        covered = self.income_sources.social_security + self.income_sources.pension
        return covered / self.monthly_income_target * 100


class ScenarioResult(_Result):
    scenario_name: StressScenario
    description: str
    starting_balance: float
    annual_withdrawal: float
    return_assumption: str
    success_probability: float = Field(ge=0, le=100)
    projected_shortfall_age: Optional[int] = None
    ending_balance: float
    total_withdrawn: float
    years_simulated: int
    sustainable_monthly_income: float
    key_insight: str


# =============================================================================
# SCORES
# =============================================================================

class SubScores(_Result):
    income_adequacy: int = Field(ge=0, le=100)
    tax_risk: int = Field(ge=0, le=100)
    sequence_risk: int = Field(ge=0, le=100)
    longevity_risk: int = Field(ge=0, le=100)
    liquidity: int = Field(ge=0, le=100)
    protection: int = Field(ge=0, le=100)


class OverallScore(_Result):
    score: int = Field(ge=0, le=100)
    grade: str
    label: str


# =============================================================================
# PRODUCT SUITABILITY
# =============================================================================

class PreconditionCheck(_Result):
    check_id: str
    label: str
    status: CheckStatus
    value: str
    importance: CheckImportance


_FIT_LABELS: Dict[FitCategory, str] = {
    FitCategory.STRONG: "Strong fit",
    FitCategory.MODERATE: "Moderate fit",
    FitCategory.EXPLORE: "Worth exploring",
    FitCategory.NOT_RECOMMENDED: "Not recommended",
}


class ProductRecommendation(_Result):
    product: ProductType
    product_name: str
    fit: FitCategory
    score: int = Field(ge=0, le=100)
    strategy: Optional[AnnuityStrategy] = None
    reasons: List[str] = Field(default_factory=list)
    friction: List[str] = Field(default_factory=list)
    not_if: List[str] = Field(default_factory=list)
    fix_first: List[str] = Field(default_factory=list)
    next_steps: List[str] = Field(default_factory=list)
    preconditions: List[PreconditionCheck] = Field(default_factory=list)
    disqualified: bool = False
    disqualification_reason: Optional[str] = None
    disclaimer: str = ""

    @model_validator(mode="after")
    def _disqualification_forces_lowest_fit(self) -> "ProductRecommendation":
        if self.disqualified and self.fit != FitCategory.NOT_RECOMMENDED:
            raise ValueError("A disqualified recommendation must carry the lowest fit category")
        return self

    @computed_field
    @property
    def fit_label(self) -> str:
        if self.fit == FitCategory.NOT_RECOMMENDED and self.product == ProductType.ANNUITY:
            return "Not fit yet"
        return _FIT_LABELS[self.fit]


# =============================================================================
# GUARDRAILS
# =============================================================================

class DataCompletenessCheck(_Result):
    is_complete: bool
    missing_fields: List[str]
    education_only_mode: bool
    reason: str
    completeness_score: int = Field(ge=0, le=100)


class GuardrailCheck(_Result):
    constraint_type: ConstraintType
    passes: bool
    severity: GuardrailSeverity
    message: str

    @property
    def is_blocking(self) -> bool:
        return not self.passes and self.severity == GuardrailSeverity.BLOCK


class GuardrailResult(_Result):
    data_completeness: DataCompletenessCheck
    suitability_guardrails: List[GuardrailCheck]
    all_guardrails_pass: bool
    education_only: bool
    education_reason: Optional[str] = None
    explicit_rejection_reasons: List[str] = Field(default_factory=list)
    education_content: List[str] = Field(default_factory=list)

    @property
    def blocking(self) -> List[GuardrailCheck]:
        return [check for check in self.suitability_guardrails if check.is_blocking]

    @property
    def warnings(self) -> List[GuardrailCheck]:
        return [
            check for check in self.suitability_guardrails
            if not check.passes and check.severity == GuardrailSeverity.WARN
        ]


# =============================================================================
# ALLOCATION
# =============================================================================

class AllocationStep(_Result):
    priority: int = Field(ge=1)
    vehicle: SavingsVehicle
    label: str
    annual_limit: float
    monthly_limit: float
    suggested_monthly: float = Field(ge=0)
    rationale: str
    fit_score: int = Field(ge=0, le=100)
    is_applicable: bool
    not_applicable_reason: Optional[str] = None


class AllocationSummary(_Result):
    total_savings_capacity: float
    allocated: float
    remaining: float


class AllocationRecommendation(_Result):
    savings_waterfall: List[AllocationStep]
    monthly_allocation_summary: AllocationSummary
    tax_efficiency_score: int = Field(ge=0, le=100)
    risk_balance_score: int = Field(ge=0, le=100)
    rationale: List[str]
    disclaimers: List[str]


class AllocationSources(_Result):
    idle_checking_cash: float
    old_401k_rollover: float
    monthly_savings_capacity: float
    total_available_for_allocation: float
    suggested_insurance_allocation: float
    suggested_annuity_allocation: float


# =============================================================================
# READINESS RESULT
# =============================================================================

class RetirementReadinessResult(_Result):
    overall_score: int = Field(ge=0, le=100)
    overall_grade: str
    overall_label: str
    sub_scores: SubScores
    sub_score_labels: Dict[str, str]
    projection: RetirementProjection
    scenarios: List[ScenarioResult]
    recommendations: List[ProductRecommendation]
    guardrails: GuardrailResult
    allocation: AllocationRecommendation
    key_insights: List[str]
    action_items: List[str]
    education_only: bool
    generated_at: date


# =============================================================================
# STRATEGY COMPARISON
# =============================================================================

class YearlyProjection(_Result):
    """One retirement year of a strategy path (age inclusive)."""
    age: int
    year: int
    portfolio_value: float
    total_income: float
    taxes_paid: float
    withdrawal_amount: float


class StrategyIncomeSources(_Result):
    """Monthly retirement income by source for one strategy path."""
    social_security: float = 0.0
    pension: float = 0.0
    portfolio_withdrawal: float = 0.0
    insurance_loans: float = 0.0
    annuity_income: float = 0.0
    part_time: float = 0.0


class StrategyProjection(_Result):
    scenario_name: StrategyPath
    scenario_description: str
    retirement_income_gross: float
    retirement_income_net: float
    lifetime_taxes_paid: float
    has_guaranteed_income: bool
    has_tax_free_income: bool
    money_runs_out_age: Optional[int] = None
    portfolio_at_retirement: float
    legacy_value_at_90: float
    legacy_value_at_95: float
    market_risk_exposure: MarketRiskExposure

    # Optimized Strategy only
    insurance_allocation_pct: Optional[float] = None
    insurance_annual_premium: Optional[float] = None
    insurance_projected_cash_value: Optional[float] = None
    insurance_tax_free_income: Optional[float] = None
    insurance_death_benefit: Optional[float] = None
    annuity_allocation_pct: Optional[float] = None
    annuity_premium: Optional[float] = None
    annuity_guaranteed_income: Optional[float] = None

    income_sources: StrategyIncomeSources
    yearly_projections: List[YearlyProjection]


class ComparisonMetrics(_Result):
    """Improvements of the optimized path over the current one, floored at zero."""
    income_improvement_percent: float = Field(ge=0)
    income_improvement_monthly: float = Field(ge=0)
    tax_savings_lifetime: float = Field(ge=0)
    longevity_improvement_years: int = Field(ge=0)
    legacy_improvement_amount: float = Field(ge=0)
    market_risk_reduction: bool


class ProductPositioning(_Result):
    insurance_explanation: Optional[str] = None
    annuity_explanation: Optional[str] = None


class AdvisorSummary(_Result):
    insurance_included_reason: Optional[str] = None
    annuity_included_reason: Optional[str] = None
    client_objections: List[str] = Field(default_factory=list)
    conversation_focus: List[str] = Field(default_factory=list)


class ScenarioComparison(_Result):
    current_age: int
    retirement_age: int
    years_to_retirement: int
    current_path: StrategyProjection
    optimized_strategy: StrategyProjection
    comparison_metrics: ComparisonMetrics
    includes_insurance: bool
    includes_annuity: bool
    insurance_reason: Optional[str] = None
    annuity_reason: Optional[str] = None
    excluded_products: Dict[ProductType, str] = Field(default_factory=dict)
    plain_english_summary: str
    product_positioning: ProductPositioning
    advisor_summary: AdvisorSummary
    disclaimer: str
