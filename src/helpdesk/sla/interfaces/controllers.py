"""
SLA Controllers (API Routes)
=============================

FastAPI routes for SLA configuration.

Controllers are thin - they delegate to application services.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.infrastructure.database import get_session
from helpdesk.sla.application import (
    SLAService,
    SLAConfigRequest,
    SLAConfigResponse,
    SLAConfigListResponse,
)
from helpdesk.sla.infrastructure import SQLAlchemySLAConfigRepository
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/sla", tags=["SLA Configuration"])


SLA_CONFIG_EXAMPLE = {
    "id": "4c1f6c4e-2a55-4f0b-9d38-6f3b8b1d2c11",
    "category": "IT Infrastructure",
    "priority": "Critical",
    "response_time_hours": 1,
    "resolution_time_hours": 4,
    "created_at": "2024-01-15T10:00:00Z"
}


# ========== Dependencies ==========

def build_sla_service(session: AsyncSession) -> SLAService:
    return SLAService(SQLAlchemySLAConfigRepository(session))


async def get_sla_service(
    session: AsyncSession = Depends(get_session)
) -> SLAService:
    """Get SLA service instance."""
    return build_sla_service(session)


# ========== Route Handlers ==========

@router.get(
    "/configs",
    response_model=SLAConfigListResponse,
    summary="List SLA configuration rows",
    description="""
    Returns every configured (category, priority) row.

    Pairs without a row fall back to the default resolution table:
    Critical 4h, High 8h, Medium 24h, Low 72h.
    """
)
async def list_sla_configs(
    sla_service: SLAService = Depends(get_sla_service)
):
    configs = await sla_service.list_configs()
    return SLAConfigListResponse(configs=[SLAConfigResponse.from_domain(c) for c in configs])


@router.put(
    "/configs",
    response_model=SLAConfigResponse,
    summary="Create or replace an SLA configuration row",
    description="""
    Upserts the row for (category, priority). New tickets use it for their
    due date; existing tickets keep theirs.
    """,
    responses={
        200: {
            "description": "Row saved",
            "content": {"application/json": {"example": SLA_CONFIG_EXAMPLE}}
        }
    }
)
async def upsert_sla_config(
    request: SLAConfigRequest,
    sla_service: SLAService = Depends(get_sla_service)
):
    saved = await sla_service.upsert_config(request.to_domain())
    return SLAConfigResponse.from_domain(saved)
