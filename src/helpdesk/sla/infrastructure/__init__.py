"""
SLA Infrastructure Layer
=========================

Infrastructure implementations for SLA configuration:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer and the YAML seed loader
"""

from helpdesk.sla.infrastructure.models import SLAConfigModel
from helpdesk.sla.infrastructure.repositories import (
    SQLAlchemySLAConfigRepository,
    YAMLSLASeedLoader,
)

__all__ = [
    "SLAConfigModel",
    "SQLAlchemySLAConfigRepository",
    "YAMLSLASeedLoader",
]
