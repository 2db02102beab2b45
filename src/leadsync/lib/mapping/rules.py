"""Mapping rule value objects."""

import enum
from dataclasses import dataclass, field

PRIORITY_LABELS = ("primary", "secondary", "tertiary")


class Transform(enum.StrEnum):
    """Value coercion applied after a candidate has been selected."""

    IDENTITY = "identity"
    NUMERIC = "numeric"
    BOOLEAN = "boolean"
    DATE = "date"
    TIMESTAMP = "timestamp"


@dataclass(frozen=True, slots=True)
class MappingRule:
    """Resolve one target field from up to three prioritized source fields.

    Attributes:
        target_field: Destination column name.
        candidates: Source field identifiers in priority order
            (primary, secondary, tertiary).
        transform: Coercion applied to the winning value.
        active: Inactive rules are ignored by the resolver.
    """

    target_field: str
    candidates: tuple[str, ...]
    transform: Transform = Transform.IDENTITY
    active: bool = field(default=True)

    def __post_init__(self) -> None:
        if not self.target_field or not self.target_field.strip():
            msg = "Mapping rule target_field must not be empty"
            raise ValueError(msg)
        if not 1 <= len(self.candidates) <= len(PRIORITY_LABELS):
            msg = (
                f"Mapping rule for {self.target_field!r} needs 1-{len(PRIORITY_LABELS)} "
                f"source candidates, got {len(self.candidates)}"
            )
            raise ValueError(msg)
        if any(not c or not c.strip() for c in self.candidates):
            msg = f"Mapping rule for {self.target_field!r} has an empty source candidate"
            raise ValueError(msg)
        # Accept plain strings for the transform tag
        object.__setattr__(self, "transform", Transform(self.transform))

    @classmethod
    def from_sources(
        cls,
        target_field: str,
        primary: str,
        secondary: str | None = None,
        tertiary: str | None = None,
        *,
        transform: Transform | str = Transform.IDENTITY,
        active: bool = True,
    ) -> "MappingRule":
        """Build a rule from tagged primary/secondary/tertiary sources."""
        candidates = tuple(c for c in (primary, secondary, tertiary) if c)
        return cls(target_field, candidates, Transform(transform), active)

    def tagged_candidates(self) -> list[tuple[str, str]]:
        """Return ``(priority_label, source_field)`` pairs in evaluation order."""
        return list(zip(PRIORITY_LABELS, self.candidates, strict=False))
