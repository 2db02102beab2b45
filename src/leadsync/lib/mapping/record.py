"""Raw record container with explicit presence/absence semantics.

Source rows arrive as untyped key→value mappings.  A key can be absent,
present but empty (``None``, NaN, blank string), or present with a value;
only the last case counts as *present* for mapping purposes.
"""

import math
from collections.abc import Iterator, Mapping
from typing import Any


class _Missing:
    """Sentinel type for a field with no usable value."""

    _instance: "_Missing | None" = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


def is_empty(value: Any) -> bool:
    """Return True when a value should be treated as absent."""
    if value is None or value is MISSING:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and value.strip() == ""


class Record(Mapping[str, Any]):
    """Read-only view over one source row.

    Args:
        data: Source field identifier → raw value.
    """

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(data or {})

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"Record({self._data!r})"

    def has(self, key: str) -> bool:
        """Return True if ``key`` exists and carries a non-empty value."""
        return key in self._data and not is_empty(self._data[key])

    def lookup(self, key: str) -> Any:
        """Return the value for ``key`` or ``MISSING`` when absent or empty."""
        if self.has(key):
            return self._data[key]
        return MISSING

    def present_keys(self) -> list[str]:
        """Keys whose values are non-empty, in source order."""
        return [key for key in self._data if self.has(key)]

    def to_dict(self) -> dict[str, Any]:
        """Return a shallow copy of the underlying data."""
        return dict(self._data)
