"""Mapping set service — versioned, immutable sets of field mapping rules."""

import uuid
from collections.abc import Sequence

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leadsync.lib.mapping.defaults import DEFAULT_LEAD_RULES, DEFAULT_MAPPING_NAME
from leadsync.lib.mapping.rules import MappingRule as RuleDef
from leadsync.lib.sync_engine.errors import MappingSetNotFoundError
from leadsync.models.mapping_set import MappingRule, MappingSet


def rule_from_model(rule: MappingRule) -> RuleDef:
    """Convert a persisted rule into the resolver's value object."""
    return RuleDef.from_sources(
        rule.target_field,
        rule.primary_source,
        rule.secondary_source,
        rule.tertiary_source,
        transform=rule.transform,
        active=rule.active,
    )


def _rule_models(rules: Sequence[RuleDef]) -> list[MappingRule]:
    seen: set[str] = set()
    models: list[MappingRule] = []
    for position, rule in enumerate(rules):
        if rule.target_field in seen:
            msg = f"Duplicate rule for target field {rule.target_field!r}"
            raise ValueError(msg)
        seen.add(rule.target_field)
        candidates = list(rule.candidates) + [None] * (3 - len(rule.candidates))
        models.append(
            MappingRule(
                position=position,
                target_field=rule.target_field,
                primary_source=candidates[0],
                secondary_source=candidates[1],
                tertiary_source=candidates[2],
                transform=str(rule.transform),
                active=rule.active,
            )
        )
    return models


async def _latest_version(session: AsyncSession, name: str) -> int:
    result = await session.execute(select(func.max(MappingSet.version)).where(MappingSet.name == name))
    return result.scalar_one_or_none() or 0


async def create_mapping_set(
    session: AsyncSession,
    *,
    name: str,
    rules: Sequence[RuleDef],
    description: str | None = None,
) -> MappingSet:
    """Create the next version of the named mapping set.

    The first set with a name is version 1; every later call with the same
    name creates version N+1.  Existing versions are never modified.

    Args:
        session: Database session.
        name: Mapping set name.
        rules: Rules in evaluation order.
        description: Optional free text.

    Returns:
        The created MappingSet with its rules loaded.

    Raises:
        ValueError: If ``rules`` is empty or has duplicate targets.
    """
    if not rules:
        msg = "A mapping set needs at least one rule"
        raise ValueError(msg)
    version = await _latest_version(session, name) + 1
    mapping_set = MappingSet(name=name, version=version, description=description, rules=_rule_models(rules))
    session.add(mapping_set)
    await session.commit()
    await session.refresh(mapping_set, ["created_at", "rules"])
    logger.info(f"Created mapping set {name!r} v{version} with {len(rules)} rule(s)")
    return mapping_set


async def create_mapping_version(
    session: AsyncSession,
    mapping_set_id: uuid.UUID,
    *,
    rules: Sequence[RuleDef],
    description: str | None = None,
) -> MappingSet:
    """Create a new version of an existing set with an edited rule list.

    Raises:
        MappingSetNotFoundError: If the base set does not exist.
    """
    base = await get_mapping_set(session, mapping_set_id)
    if base is None:
        msg = f"Mapping set {mapping_set_id} not found"
        raise MappingSetNotFoundError(msg)
    return await create_mapping_set(
        session,
        name=base.name,
        rules=rules,
        description=description if description is not None else base.description,
    )


async def get_mapping_set(session: AsyncSession, mapping_set_id: uuid.UUID) -> MappingSet | None:
    """Get a mapping set (with rules) by ID."""
    result = await session.execute(select(MappingSet).where(MappingSet.id == mapping_set_id))
    return result.scalar_one_or_none()


async def get_latest_mapping_set(session: AsyncSession, name: str) -> MappingSet | None:
    """Get the highest version of the named mapping set."""
    result = await session.execute(
        select(MappingSet).where(MappingSet.name == name).order_by(MappingSet.version.desc()).limit(1)
    )
    return result.scalar_one_or_none()


async def list_mapping_sets(
    session: AsyncSession,
    *,
    name: str | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[MappingSet], int]:
    """List mapping sets, newest first.

    Args:
        session: Database session.
        name: Only versions of this set.
        page: Page number.
        page_size: Items per page.

    Returns:
        Tuple of (mapping sets, total count).
    """
    query = select(MappingSet)
    count_query = select(func.count(MappingSet.id))
    if name:
        query = query.where(MappingSet.name == name)
        count_query = count_query.where(MappingSet.name == name)

    total = (await session.execute(count_query)).scalar_one()
    offset = (page - 1) * page_size
    query = query.order_by(MappingSet.created_at.desc(), MappingSet.version.desc()).offset(offset).limit(page_size)
    result = await session.execute(query)
    return list(result.scalars().all()), total


async def load_rules(session: AsyncSession, mapping_set_id: uuid.UUID) -> list[RuleDef]:
    """Load a set's rules as resolver value objects, in evaluation order.

    Raises:
        MappingSetNotFoundError: If the set does not exist.
    """
    mapping_set = await get_mapping_set(session, mapping_set_id)
    if mapping_set is None:
        msg = f"Mapping set {mapping_set_id} not found"
        raise MappingSetNotFoundError(msg)
    return [rule_from_model(rule) for rule in mapping_set.rules]


async def seed_default_mapping(session: AsyncSession, *, force: bool = False) -> MappingSet:
    """Ensure the built-in lead mapping exists and return its latest version.

    Args:
        session: Database session.
        force: Create a new version even if one already exists.
    """
    existing = await get_latest_mapping_set(session, DEFAULT_MAPPING_NAME)
    if existing is not None and not force:
        logger.info(f"Default mapping {DEFAULT_MAPPING_NAME!r} already at v{existing.version}")
        return existing
    return await create_mapping_set(
        session,
        name=DEFAULT_MAPPING_NAME,
        rules=DEFAULT_LEAD_RULES,
        description="Built-in lead mapping for spreadsheet exports and CRM field codes",
    )
