"""ORM model registry — import all models so Alembic autogenerate discovers them."""

from leadsync.models.lead import Lead
from leadsync.models.mapping_set import MappingRule, MappingSet
from leadsync.models.sync_job import SyncJob

__all__ = [
    "Lead",
    "MappingRule",
    "MappingSet",
    "SyncJob",
]
