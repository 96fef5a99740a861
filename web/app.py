"""
FastAPI application exposing the valuation engine as a JSON API.

Production deployment configuration via environment variables.

Failure outcomes are distinguishable by status and error code:
- 422 {"error": "insufficient_comparables"}: not enough data
- 400 {"error": "computation_error"}: invalid input or failed computation
- 200 {"status": "no_anomalies"}: an anomaly scan with no findings
"""

import logging
import os
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from core.valuation_engine import (
    PROFILES,
    InsufficientComparablesError,
    NormalizationResult,
    SubjectProperty,
    ValuationError,
    __version__,
    detect_anomalies,
    detect_data_gaps,
    detect_rapid_changes,
    evaluate,
    get_profile,
    merge_reports,
    normalize,
)
from utils.config import Config

logger = logging.getLogger(__name__)

# =============================================================================
# Environment Configuration
# =============================================================================

# Production mode detection
IS_PRODUCTION = os.getenv("PRODUCTION", "").lower() == "true"

# CORS configuration - locked down for production
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "").split(",") if os.getenv("ALLOWED_ORIGINS") else []
if not ALLOWED_ORIGINS and not IS_PRODUCTION:
    # Development fallback only
    ALLOWED_ORIGINS = ["http://localhost:8000", "http://127.0.0.1:8000"]

# Debug mode - never enabled in production
DEBUG_MODE = os.getenv("DEBUG", "false").lower() == "true" and not IS_PRODUCTION


# =============================================================================
# Request Models
# =============================================================================

class SubjectInput(BaseModel):
    """The property being valued."""
    area: float
    street: str = ""
    house_number: str = ""
    city: str = ""
    neighborhood: Optional[str] = None
    rooms: Optional[float] = None
    floor: Optional[int] = None
    id: str = "subject"
    valuation_date: Optional[date] = None
    condition: Optional[str] = None
    building_class: Optional[str] = None
    build_year: Optional[int] = None
    parking_spaces: Optional[int] = None
    has_elevator: Optional[bool] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    def to_subject(self) -> SubjectProperty:
        """Build the engine's SubjectProperty, omitting unset fields."""
        data = {k: v for k, v in self.model_dump().items() if v is not None}
        return SubjectProperty(**data)


class NormalizeRequest(BaseModel):
    """Raw transaction records to normalise."""
    records: List[Dict[str, Any]]
    profile: Optional[str] = None


class ValuationRequest(BaseModel):
    """Subject property plus raw comparable records."""
    subject: SubjectInput
    comparables: List[Dict[str, Any]]
    profile: Optional[str] = None
    reference_date: Optional[date] = None
    # comparable id -> {adjustment factor id: applied}
    overrides: Dict[str, Dict[str, bool]] = {}


class AnomalyRequest(BaseModel):
    """Raw transaction population to scan."""
    records: List[Dict[str, Any]]
    profile: Optional[str] = None
    rapid_changes: bool = False
    data_gaps: bool = False
    reference_date: Optional[date] = None


def _normalization_summary(result: NormalizationResult) -> dict:
    return {
        "total_records": result.total_records,
        "normalized_count": result.normalized_count,
        "dropped_count": result.dropped_count,
        "rejections_by_code": dict(result.rejections_by_code),
    }


def create_app(config: Optional[Config] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    config = config or Config.load()

    app = FastAPI(
        title="Valuation Engine",
        description="Comparable-sales valuation and anomaly detection",
        version=__version__,
        # Production settings: disable docs/redoc for private deployment
        docs_url=None if IS_PRODUCTION else "/docs",
        redoc_url=None if IS_PRODUCTION else "/redoc",
        openapi_url=None if IS_PRODUCTION else "/openapi.json",
        debug=DEBUG_MODE,
    )

    # ==========================================================================
    # Healthcheck endpoints: no dependencies, no IO
    # ==========================================================================
    @app.get("/", include_in_schema=False)
    def root():
        """Root healthcheck."""
        return {"status": "ok"}

    @app.get("/health", include_in_schema=False)
    def health():
        """Secondary health endpoint."""
        return {"status": "healthy", "version": __version__}

    # CORS middleware - locked down for production
    if ALLOWED_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=ALLOWED_ORIGINS,
            allow_credentials=True,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )

    # ==========================================================================
    # Error mapping
    # ==========================================================================
    @app.exception_handler(InsufficientComparablesError)
    async def insufficient_comparables_handler(request: Request, exc: InsufficientComparablesError):
        return JSONResponse(
            status_code=422,
            content={
                "error": "insufficient_comparables",
                "message": str(exc),
                "excluded": exc.excluded,
            },
        )

    @app.exception_handler(ValuationError)
    async def valuation_error_handler(request: Request, exc: ValuationError):
        return JSONResponse(
            status_code=400,
            content={"error": "computation_error", "message": str(exc)},
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=400,
            content={"error": "computation_error", "message": str(exc)},
        )

    def resolve_profile(name: Optional[str]):
        return get_profile(name or config.default_profile)

    # ==========================================================================
    # API
    # ==========================================================================
    @app.get("/api/profiles")
    def list_profiles():
        """Property-category profiles and their key constants."""
        return {
            "default": config.default_profile,
            "profiles": {name: profile.to_dict() for name, profile in PROFILES.items()},
        }

    @app.post("/api/normalize")
    def normalize_records(request_data: NormalizeRequest):
        """Normalise raw records; malformed ones are dropped and counted."""
        profile = resolve_profile(request_data.profile)
        result = normalize(request_data.records, profile)
        return result.to_dict()

    @app.post("/api/valuations")
    def create_valuation(request_data: ValuationRequest):
        """
        Value a subject property from raw comparable records.

        Returns:
            - valuation: the full ValuationResult
            - normalization: record counts, including drops by code
        """
        profile = resolve_profile(request_data.profile)
        subject = request_data.subject.to_subject()
        normalised = normalize(request_data.comparables, profile)

        try:
            result = evaluate(
                subject,
                normalised.transactions,
                config=profile,
                reference_date=request_data.reference_date,
                overrides=request_data.overrides,
            )
        except InsufficientComparablesError:
            logger.info(
                "Valuation of %s failed: %d of %d comparables usable",
                subject.id,
                normalised.normalized_count,
                normalised.total_records,
            )
            raise

        return {
            "status": "ok",
            "valuation": result.to_dict(),
            "normalization": _normalization_summary(normalised),
        }

    @app.post("/api/anomalies")
    def scan_anomalies(request_data: AnomalyRequest):
        """Scan a raw population for anomalous transactions."""
        profile = resolve_profile(request_data.profile)
        normalised = normalize(request_data.records, profile)
        population = normalised.transactions

        batches = [detect_anomalies(population, profile)]
        if request_data.rapid_changes:
            batches.append(detect_rapid_changes(population, profile))
        if request_data.data_gaps:
            batches.append(
                detect_data_gaps(population, request_data.reference_date, profile)
            )
        reports = merge_reports(*batches)

        return {
            "status": "anomalies_found" if reports else "no_anomalies",
            "count": len(reports),
            "anomalies": [r.to_dict() for r in reports],
            "normalization": _normalization_summary(normalised),
        }

    return app


# Create app instance for uvicorn
app = create_app()
