"""Mapping set Pydantic v2 request/response schemas."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from leadsync.lib.mapping.rules import MappingRule
from leadsync.schemas.common import PaginationMeta

TransformName = Literal["identity", "numeric", "boolean", "date", "timestamp"]


class MappingRuleSchema(BaseModel):
    """One target field with up to three prioritized source fields."""

    target_field: str = Field(min_length=1, max_length=100)
    primary_source: str = Field(min_length=1, max_length=255)
    secondary_source: str | None = Field(default=None, max_length=255)
    tertiary_source: str | None = Field(default=None, max_length=255)
    transform: TransformName = "identity"
    active: bool = True

    model_config = {"from_attributes": True}

    def to_rule(self) -> MappingRule:
        return MappingRule.from_sources(
            self.target_field,
            self.primary_source,
            self.secondary_source,
            self.tertiary_source,
            transform=self.transform,
            active=self.active,
        )

    @classmethod
    def from_rule(cls, rule: MappingRule) -> "MappingRuleSchema":
        candidates = [*rule.candidates, None, None]
        return cls(
            target_field=rule.target_field,
            primary_source=candidates[0],
            secondary_source=candidates[1],
            tertiary_source=candidates[2],
            transform=str(rule.transform),
            active=rule.active,
        )


class MappingSetCreateRequest(BaseModel):
    """Create (the next version of) a named mapping set."""

    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    rules: list[MappingRuleSchema] = Field(min_length=1)


class MappingVersionRequest(BaseModel):
    """Edited rule list stored as a new version of an existing set."""

    description: str | None = None
    rules: list[MappingRuleSchema] = Field(min_length=1)


class MappingSetResponse(BaseModel):
    """A mapping set version with its rules in evaluation order."""

    id: UUID
    name: str
    version: int
    description: str | None = None
    created_at: datetime
    rules: list[MappingRuleSchema]

    model_config = {"from_attributes": True}


class PaginatedMappingSetResponse(BaseModel):
    """Paginated list of mapping sets."""

    items: list[MappingSetResponse]
    pagination: PaginationMeta


class MappingSuggestRequest(BaseModel):
    """Header row of a source file."""

    headers: list[str] = Field(min_length=1)


class MappingSuggestResponse(BaseModel):
    """Rules suggested for a header row."""

    rules: list[MappingRuleSchema]
    unmatched_headers: list[str] = Field(default_factory=list)
