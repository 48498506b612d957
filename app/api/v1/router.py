"""
API v1 router.
"""
from fastapi import APIRouter

from app.api.v1.endpoints import (
    activity,
    audits,
    evaluations,
    evidence,
    health,
    reports,
    scoring_ai,
    validations,
    visits,
)

api_router = APIRouter()

# Health check endpoint (no prefix, so it's /api/v1/health)
api_router.include_router(health.router, tags=["health"])

api_router.include_router(evaluations.sections_router, prefix="/sections", tags=["sections"])
api_router.include_router(audits.router, prefix="/audits", tags=["audits"])
api_router.include_router(evidence.router, prefix="/audits", tags=["evidence"])
api_router.include_router(validations.router, prefix="/audits", tags=["validations"])
api_router.include_router(evaluations.router, prefix="/audits", tags=["evaluations"])
api_router.include_router(scoring_ai.router, prefix="/audits", tags=["ai"])
api_router.include_router(visits.router, prefix="/audits", tags=["visits"])
api_router.include_router(reports.router, prefix="/audits", tags=["reports"])
api_router.include_router(activity.router, prefix="/activity", tags=["activity"])
