"""
SLA Application DTOs
=====================

Data Transfer Objects for the SLA API layer.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from helpdesk.sla.domain import SLAConfig


# ========== Type Aliases for Literals ==========
CategoryStr = Literal["IT Infrastructure", "HR", "Administration", "Accounts", "Others"]
PriorityStr = Literal["Low", "Medium", "High", "Critical"]


class SLAConfigRequest(BaseModel):
    """Request model for creating or replacing one SLA row."""
    category: CategoryStr
    priority: PriorityStr
    response_time_hours: int = Field(..., gt=0, description="Hours until first response is due")
    resolution_time_hours: int = Field(..., gt=0, description="Hours until resolution is due")

    def to_domain(self) -> SLAConfig:
        return SLAConfig(**self.model_dump())


class SLAConfigResponse(BaseModel):
    """Response model for one SLA row."""
    id: Optional[str] = None
    category: CategoryStr
    priority: PriorityStr
    response_time_hours: int
    resolution_time_hours: int
    created_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, config: SLAConfig) -> "SLAConfigResponse":
        return cls(**config.model_dump())


class SLAConfigListResponse(BaseModel):
    configs: List[SLAConfigResponse] = Field(default_factory=list)
