"""Priority-fallback resolution of raw records into target-shaped records."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from leadsync.lib.mapping.record import MISSING, Record
from leadsync.lib.mapping.rules import MappingRule
from leadsync.lib.mapping.transforms import TransformError, apply_transform


@dataclass
class MappingResult:
    """Outcome of resolving one record.

    Attributes:
        values: Target field → resolved value.  Fields with no usable
            candidate are absent, never ``None``.
        errors: Human-readable per-field transform failures.
    """

    values: dict[str, Any] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.values


def select_candidate(record: Record, rule: MappingRule) -> tuple[str, Any] | None:
    """Return ``(source_field, raw_value)`` for the first present candidate.

    Args:
        record: The raw record.
        rule: Rule whose candidates are checked primary → tertiary.

    Returns:
        The winning source field and its raw value, or None if no
        candidate carries a non-empty value.
    """
    for source_field in rule.candidates:
        value = record.lookup(source_field)
        if value is not MISSING:
            return source_field, value
    return None


def resolve_record(record: Mapping[str, Any], rules: Iterable[MappingRule]) -> MappingResult:
    """Map one raw record into target-field space.

    Inactive rules are skipped.  A transform failure drops that single
    field and is recorded on the result; the rest of the record is still
    resolved.

    Args:
        record: Raw source record.
        rules: Mapping rules to apply.

    Returns:
        MappingResult with the sparse resolved values and any field errors.
    """
    raw = record if isinstance(record, Record) else Record(record)
    result = MappingResult()

    for rule in rules:
        if not rule.active:
            continue
        selected = select_candidate(raw, rule)
        if selected is None:
            continue
        source_field, value = selected
        try:
            result.values[rule.target_field] = apply_transform(rule.transform, value)
        except TransformError as exc:
            message = f"{rule.target_field} <- {source_field}: {exc}"
            logger.warning(f"Mapping transform failed: {message}")
            result.errors.append(message)

    return result
