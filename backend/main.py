"""
RetireReady - FastAPI Backend
=============================
HTTP surface over the retirement readiness engines.

Every endpoint is a stateless calculation: the request body carries the
household snapshot and the response is the serialized engine result.
Nothing is stored and no client data is logged.
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from allocation_engine import AllocationEngine, compute_allocation_sources
from annuity_suitability import AnnuitySuitabilityEngine
from guardrails import BestInterestGuardrails
from insurance_suitability import InsuranceSuitabilityEngine
from models import (
    Asset,
    ClientProfile,
    ComputedMetrics,
    FitCategory,
    IncomeExpenses,
    Liability,
    PlanningReadiness,
    ProductType,
    ProtectionHealth,
)
from projection import ProjectionEngine
from readiness import RetirementReadinessEngine
from retirement_assumptions import Assumptions, get_reference_table, load_assumptions
from scenario_comparison import ScenarioComparisonEngine

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION SETUP
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("RetireReady starting up...")
    yield
    logger.info("RetireReady shutting down...")


app = FastAPI(
    title="RetireReady",
    description="Deterministic retirement readiness API",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],  # React dev servers
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# REQUEST MODELS
# =============================================================================

class _EngineRequest(BaseModel):
    """Fields shared by every calculation request."""
    as_of: Optional[date] = None
    assumption_overrides: Dict[str, Any] = Field(default_factory=dict)


class ReadinessRequest(_EngineRequest):
    profile: ClientProfile
    income: IncomeExpenses
    assets: List[Asset] = Field(default_factory=list)
    liabilities: List[Liability] = Field(default_factory=list)
    protection: ProtectionHealth = Field(default_factory=ProtectionHealth)
    metrics: ComputedMetrics = Field(default_factory=ComputedMetrics)
    planning: Optional[PlanningReadiness] = None
    include_upside: bool = False


class AnnuitySuitabilityRequest(_EngineRequest):
    profile: ClientProfile
    income: IncomeExpenses
    assets: List[Asset] = Field(default_factory=list)
    protection: ProtectionHealth = Field(default_factory=ProtectionHealth)
    planning: PlanningReadiness = Field(default_factory=PlanningReadiness)


class InsuranceSuitabilityRequest(AnnuitySuitabilityRequest):
    metrics: ComputedMetrics = Field(default_factory=ComputedMetrics)


class GuardrailRequest(_EngineRequest):
    profile: Optional[ClientProfile] = None
    income: Optional[IncomeExpenses] = None
    protection: Optional[ProtectionHealth] = None
    planning: Optional[PlanningReadiness] = None
    total_assets: float = Field(default=0.0, ge=0)
    years_to_retirement: Optional[int] = Field(default=None, ge=0)


class AllocationRequest(InsuranceSuitabilityRequest):
    apply_guardrails: bool = True


class ScenarioComparisonRequest(InsuranceSuitabilityRequest):
    apply_guardrails: bool = True


def _resolve_assumptions(request: _EngineRequest) -> Assumptions:
    try:
        return load_assumptions(request.assumption_overrides)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=f"Invalid assumption overrides: {e.errors()}")


# =============================================================================
# API ENDPOINTS
# =============================================================================

@app.get("/")
async def root():
    """API health check."""
    return {
        "service": "RetireReady",
        "version": "1.0.0",
        "status": "healthy",
    }


@app.get("/api/health")
async def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": {
            "projection": "ready",
            "stress_tests": "ready",
            "suitability": "ready",
            "guardrails": "ready",
            "allocation": "ready",
            "scenario_comparison": "ready",
        }
    }


@app.post("/api/readiness")
async def compute_readiness(request: ReadinessRequest):
    """Full retirement readiness analysis."""
    engine = RetirementReadinessEngine(_resolve_assumptions(request), request.as_of)
    result = engine.compute_retirement_readiness(
        request.profile,
        request.income,
        request.assets,
        request.liabilities,
        request.protection,
        request.metrics,
        request.planning,
        include_upside=request.include_upside,
    )
    return result.model_dump(mode="json")


@app.post("/api/suitability/annuity")
async def annuity_suitability(request: AnnuitySuitabilityRequest):
    """Fixed index annuity fit for one household."""
    assumptions = _resolve_assumptions(request)
    projection = ProjectionEngine(assumptions, request.as_of).calculate_projection(
        request.profile, request.income, request.assets
    )
    recommendation = AnnuitySuitabilityEngine(assumptions).evaluate(
        request.profile, request.protection, request.planning, projection
    )
    return recommendation.model_dump(mode="json")


@app.post("/api/suitability/insurance")
async def insurance_suitability(request: InsuranceSuitabilityRequest):
    """Permanent life insurance fit for one household."""
    assumptions = _resolve_assumptions(request)
    projection = ProjectionEngine(assumptions, request.as_of).calculate_projection(
        request.profile, request.income, request.assets
    )
    recommendation = InsuranceSuitabilityEngine(assumptions).evaluate(
        request.profile,
        request.income,
        request.protection,
        request.planning,
        request.metrics,
        projection.years_to_retirement,
    )
    return recommendation.model_dump(mode="json")


@app.post("/api/guardrails")
async def best_interest_guardrails(request: GuardrailRequest):
    """Data completeness and suitability constraint checks."""
    guardrails = BestInterestGuardrails(_resolve_assumptions(request), request.as_of)
    result = guardrails.run(
        request.profile,
        request.income,
        request.protection,
        request.planning,
        request.total_assets,
        request.years_to_retirement,
    )
    return result.model_dump(mode="json")


@app.post("/api/allocation")
async def savings_allocation(request: AllocationRequest):
    """Savings waterfall plus lump-sum allocation sources."""
    assumptions = _resolve_assumptions(request)
    engine = RetirementReadinessEngine(assumptions, request.as_of)

    projection = engine.projection_engine.calculate_projection(
        request.profile, request.income, request.assets
    )
    recommendations = engine.evaluate_products(
        request.profile, request.income, request.protection, request.planning, request.metrics, projection
    )
    guardrails = None
    if request.apply_guardrails:
        guardrails = engine.guardrails.run(
            request.profile,
            request.income,
            request.protection,
            request.planning,
            sum(asset.current_value for asset in request.assets),
            projection.years_to_retirement,
        )
        if guardrails.education_only:
            recommendations = engine.hold_for_education(recommendations, guardrails)

    allocation = AllocationEngine(assumptions, request.as_of).compute_savings_allocation(
        request.profile,
        request.income,
        request.protection,
        request.metrics,
        projection,
        recommendations,
        guardrails,
    )

    fits = {r.product: r.fit for r in recommendations}
    guardrails_pass = guardrails is None or guardrails.all_guardrails_pass
    sources = compute_allocation_sources(
        request.income,
        protection_gap=request.metrics.protection_gap,
        income_gap_monthly=projection.monthly_gap,
        has_guaranteed_income_gap=projection.gap_percentage > assumptions.waterfall.annuity_gap_threshold_pct,
        annuity_eligible=guardrails_pass and fits[ProductType.ANNUITY] != FitCategory.NOT_RECOMMENDED,
        insurance_eligible=guardrails_pass and fits[ProductType.PERMANENT_INSURANCE] != FitCategory.NOT_RECOMMENDED,
    )

    return {
        "allocation": allocation.model_dump(mode="json"),
        "sources": sources.model_dump(mode="json"),
        "guardrails": guardrails.model_dump(mode="json") if guardrails else None,
    }


@app.post("/api/scenarios/compare")
async def compare_strategies(request: ScenarioComparisonRequest):
    """Current Path vs Optimized Strategy drawdown comparison."""
    assumptions = _resolve_assumptions(request)
    engine = RetirementReadinessEngine(assumptions, request.as_of)

    projection = engine.projection_engine.calculate_projection(
        request.profile, request.income, request.assets
    )
    recommendations = engine.evaluate_products(
        request.profile, request.income, request.protection, request.planning, request.metrics, projection
    )
    if request.apply_guardrails:
        guardrails = engine.guardrails.run(
            request.profile,
            request.income,
            request.protection,
            request.planning,
            sum(asset.current_value for asset in request.assets),
            projection.years_to_retirement,
        )
        if guardrails.education_only:
            recommendations = engine.hold_for_education(recommendations, guardrails)

    comparison = ScenarioComparisonEngine(assumptions).compare(
        request.profile,
        request.income,
        request.assets,
        request.protection,
        request.planning,
        request.metrics,
        projection,
        recommendations,
    )
    return comparison.model_dump(mode="json")


# --- REFERENCE DATA ---

@app.get("/api/reference/assumptions")
async def get_assumptions():
    """Default planning assumptions: rates, limits, phase-outs and thresholds."""
    return get_reference_table()


# --- ERROR HANDLERS ---

@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if os.getenv("DEBUG") else "An error occurred"
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
