"""
Configuration API Routes
"""
from fastapi import APIRouter

from gridportal.config import settings
from gridportal.schemas import DrillDownSettings

router = APIRouter()


@router.get("/drill-down-settings", response_model=DrillDownSettings)
async def drill_down_settings():
    """Application-wide drill-down behavior."""
    return DrillDownSettings(
        enable_unlimited_drill_down=settings.ENABLE_UNLIMITED_DRILL_DOWN,
        default_max_depth=settings.DEFAULT_MAX_DEPTH
    )
