"""Mapping library public API.

Provides raw record handling, mapping rules, value transforms, and
priority-fallback resolution into target-shaped records.
"""

from leadsync.lib.mapping.defaults import DEFAULT_LEAD_RULES, DEFAULT_MAPPING_NAME, suggest_rules
from leadsync.lib.mapping.record import MISSING, Record, is_empty
from leadsync.lib.mapping.resolver import MappingResult, resolve_record, select_candidate
from leadsync.lib.mapping.rules import PRIORITY_LABELS, MappingRule, Transform
from leadsync.lib.mapping.transforms import TransformError, apply_transform

__all__ = [
    "DEFAULT_LEAD_RULES",
    "DEFAULT_MAPPING_NAME",
    "MISSING",
    "PRIORITY_LABELS",
    "MappingResult",
    "MappingRule",
    "Record",
    "Transform",
    "TransformError",
    "apply_transform",
    "is_empty",
    "resolve_record",
    "select_candidate",
    "suggest_rules",
]
