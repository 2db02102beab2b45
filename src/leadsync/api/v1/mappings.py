"""Mapping set API endpoints.

POST /mapping-sets, GET /mapping-sets, GET /mapping-sets/{id},
POST /mapping-sets/{id}/versions, POST /mapping-sets/suggest.
"""

import math
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from leadsync.core.dependencies import get_async_session, require_api_key
from leadsync.lib.mapping import suggest_rules
from leadsync.lib.sync_engine.errors import MappingSetNotFoundError
from leadsync.schemas.common import PaginationMeta, PaginationParams
from leadsync.schemas.mappings import (
    MappingRuleSchema,
    MappingSetCreateRequest,
    MappingSetResponse,
    MappingSuggestRequest,
    MappingSuggestResponse,
    MappingVersionRequest,
    PaginatedMappingSetResponse,
)
from leadsync.services import mapping_service

mappings_router = APIRouter(prefix="/mapping-sets", tags=["mappings"], dependencies=[Depends(require_api_key)])


@mappings_router.post("", response_model=MappingSetResponse, status_code=201)
async def create_mapping_set(
    body: MappingSetCreateRequest,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> MappingSetResponse:
    """Create a mapping set, or the next version of an existing name."""
    try:
        mapping_set = await mapping_service.create_mapping_set(
            session,
            name=body.name,
            rules=[rule.to_rule() for rule in body.rules],
            description=body.description,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return MappingSetResponse.model_validate(mapping_set)


@mappings_router.get("", response_model=PaginatedMappingSetResponse)
async def list_mapping_sets(
    session: Annotated[AsyncSession, Depends(get_async_session)],
    pagination: Annotated[PaginationParams, Depends()],
    name: str | None = None,
) -> PaginatedMappingSetResponse:
    """List mapping set versions, newest first."""
    items, total = await mapping_service.list_mapping_sets(
        session, name=name, page=pagination.page, page_size=pagination.page_size
    )
    return PaginatedMappingSetResponse(
        items=[MappingSetResponse.model_validate(m) for m in items],
        pagination=PaginationMeta(
            total=total,
            page=pagination.page,
            page_size=pagination.page_size,
            total_pages=max(1, math.ceil(total / pagination.page_size)),
        ),
    )


@mappings_router.post("/suggest", response_model=MappingSuggestResponse)
async def suggest_mapping(body: MappingSuggestRequest) -> MappingSuggestResponse:
    """Suggest rules for a source header row."""
    rules = suggest_rules(body.headers)
    used = {source for rule in rules for source in rule.candidates}
    return MappingSuggestResponse(
        rules=[MappingRuleSchema.from_rule(rule) for rule in rules],
        unmatched_headers=[h for h in body.headers if h not in used],
    )


@mappings_router.get("/{mapping_set_id}", response_model=MappingSetResponse)
async def get_mapping_set(
    mapping_set_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> MappingSetResponse:
    """Get a mapping set version with its rules."""
    mapping_set = await mapping_service.get_mapping_set(session, mapping_set_id)
    if mapping_set is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mapping set not found")
    return MappingSetResponse.model_validate(mapping_set)


@mappings_router.post("/{mapping_set_id}/versions", response_model=MappingSetResponse, status_code=201)
async def create_mapping_version(
    mapping_set_id: uuid.UUID,
    body: MappingVersionRequest,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> MappingSetResponse:
    """Store an edited rule list as a new version of the set."""
    try:
        mapping_set = await mapping_service.create_mapping_version(
            session,
            mapping_set_id,
            rules=[rule.to_rule() for rule in body.rules],
            description=body.description,
        )
    except MappingSetNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return MappingSetResponse.model_validate(mapping_set)
